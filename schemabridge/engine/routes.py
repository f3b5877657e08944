"""
Mode dispatch - one route per request, chosen from the health snapshot.

Each route variant carries only what its path needs; DummyRoute has no
server descriptor, so nothing downstream can reach the server from it.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from ..core.schema import SchemaDescriptor, ONLINE, DEGRADED, OFFLINE, DUMMY


@dataclass(frozen=True)
class Contract:
    """The consumer/server descriptor pair the engine translates between."""
    consumer: SchemaDescriptor
    server: SchemaDescriptor

    @classmethod
    def load(cls, consumer_path: str, server_path: str) -> "Contract":
        """Load both descriptors from JSON files."""
        return cls(
            consumer=SchemaDescriptor.from_dict(json.loads(Path(consumer_path).read_text(encoding="utf-8"))),
            server=SchemaDescriptor.from_dict(json.loads(Path(server_path).read_text(encoding="utf-8"))),
        )


@dataclass(frozen=True)
class OnlineRoute:
    consumer: SchemaDescriptor
    server: SchemaDescriptor
    health: str = ONLINE  # online|degraded
    mode: str = ONLINE


@dataclass(frozen=True)
class OfflineRoute:
    consumer: SchemaDescriptor
    mode: str = OFFLINE


@dataclass(frozen=True)
class DummyRoute:
    consumer: SchemaDescriptor
    mode: str = DUMMY


Route = Union[OnlineRoute, OfflineRoute, DummyRoute]


def decide_route(state: str, contract: Contract) -> Route:
    """
    Map a health state onto a route.

    Degraded still tries the server; a failed call falls through to the
    offline route for that request.
    """
    if state == DUMMY:
        return DummyRoute(consumer=contract.consumer)
    if state in (ONLINE, DEGRADED):
        return OnlineRoute(consumer=contract.consumer, server=contract.server, health=state)
    if state == OFFLINE:
        return OfflineRoute(consumer=contract.consumer)
    raise ValueError(f"Unknown health state: {state}")
