"""
Translation units - immutable, declarative payload mappings between two
schema versions. Applying a unit is a pure function of the payload.
"""

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

TO_SERVER = "to_server"
TO_CONSUMER = "to_consumer"
DIRECTIONS = (TO_SERVER, TO_CONSUMER)

RULE_OPS = ("copy", "concat", "split", "constant")

_MISSING = object()


def get_path(payload: Dict[str, Any], path: str) -> Any:
    """Read a dotted path; returns _MISSING when any segment is absent."""
    current: Any = payload
    for segment in path.split("."):
        if not isinstance(current, dict) or segment not in current:
            return _MISSING
        current = current[segment]
    return current


def set_path(payload: Dict[str, Any], path: str, value: Any):
    """Write a dotted path, creating intermediate objects."""
    segments = path.split(".")
    current = payload
    for segment in segments[:-1]:
        current = current.setdefault(segment, {})
    current[segments[-1]] = value


@dataclass(frozen=True)
class FieldRule:
    """
    One target field derived from source fields.

    Ops:
        copy: target = sources[0]
        concat: target = separator.join(non-empty sources)
        split: piece of sources[0]; index 0 is the head before the first
            separator, -1 the rest after it, any other index the n-th piece
        constant: target = value
    """
    target: str
    op: str = "copy"
    sources: Tuple[str, ...] = ()
    separator: str = " "
    index: int = 0
    value: Any = None

    def __post_init__(self):
        if self.op not in RULE_OPS:
            raise ValueError(f"Unsupported rule op: {self.op}")
        if self.op != "constant" and not self.sources:
            raise ValueError(f"Rule for '{self.target}' needs at least one source")

    def evaluate(self, payload: Dict[str, Any]) -> Any:
        """Value for the target field, or _MISSING when sources are absent."""
        if self.op == "constant":
            return self.value

        if self.op == "copy":
            return get_path(payload, self.sources[0])

        if self.op == "concat":
            parts = []
            for source in self.sources:
                value = get_path(payload, source)
                if value is _MISSING or value is None or value == "":
                    continue
                parts.append(str(value))
            return self.separator.join(parts) if parts else _MISSING

        # split
        value = get_path(payload, self.sources[0])
        if not isinstance(value, str):
            return _MISSING
        if self.index == 0:
            return value.split(self.separator, 1)[0]
        if self.index == -1:
            pieces = value.split(self.separator, 1)
            return pieces[1] if len(pieces) > 1 else _MISSING
        pieces = value.split(self.separator)
        return pieces[self.index] if -len(pieces) <= self.index < len(pieces) else _MISSING

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"target": self.target, "op": self.op, "sources": list(self.sources)}
        if self.op in ("concat", "split"):
            data["separator"] = self.separator
        if self.op == "split":
            data["index"] = self.index
        if self.op == "constant":
            data["value"] = self.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldRule":
        if not isinstance(data, dict) or not data.get("target"):
            raise ValueError(f"Invalid rule: {data!r}")
        sources = data.get("sources") or ([data["source"]] if data.get("source") else [])
        return cls(
            target=str(data["target"]),
            op=data.get("op", "copy"),
            sources=tuple(str(s) for s in sources),
            separator=data.get("separator", " "),
            index=int(data.get("index", 0)),
            value=data.get("value"),
        )


def parse_rules(raw: Optional[Iterable[Dict[str, Any]]]) -> Tuple[FieldRule, ...]:
    """Parse generated rule dicts; raises ValueError on malformed input."""
    if not raw:
        return ()
    return tuple(FieldRule.from_dict(item) for item in raw)


def rules_fingerprint(rules: Iterable[FieldRule]) -> str:
    text = json.dumps([r.to_dict() for r in rules], sort_keys=True, default=str)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def apply_rules(rules: Iterable[FieldRule], payload: Dict[str, Any]) -> Dict[str, Any]:
    """Apply rules in order; absent sources leave the target unset."""
    result: Dict[str, Any] = {}
    for rule in rules:
        value = rule.evaluate(payload)
        if value is not _MISSING:
            set_path(result, rule.target, value)
    return result


@dataclass(frozen=True)
class TranslationUnit:
    """Cached mapping for one (consumer schema, server schema, direction) key."""
    consumer_key: str  # name@version
    server_key: str  # name@version
    direction: str
    rules: Tuple[FieldRule, ...] = field(default_factory=tuple)
    origin: str = "generated"  # generated|bridge|static

    def __post_init__(self):
        if self.direction not in DIRECTIONS:
            raise ValueError(f"Invalid direction: {self.direction}")

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.consumer_key, self.server_key, self.direction)

    @property
    def fingerprint(self) -> str:
        return rules_fingerprint(self.rules)

    def apply(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return apply_rules(self.rules, payload)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consumer": self.consumer_key,
            "server": self.server_key,
            "direction": self.direction,
            "origin": self.origin,
            "rules": [r.to_dict() for r in self.rules],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], origin: str = "static") -> "TranslationUnit":
        return cls(
            consumer_key=data["consumer"],
            server_key=data["server"],
            direction=data["direction"],
            rules=parse_rules(data.get("rules")),
            origin=data.get("origin", origin),
        )


def units_to_bridge_file(units: List[TranslationUnit]) -> Dict[str, Any]:
    """JSON document the engine loads from BRIDGE_FILE_PATH."""
    return {"units": [u.to_dict() for u in units]}


def units_from_bridge_file(data: Dict[str, Any]) -> List[TranslationUnit]:
    return [TranslationUnit.from_dict(item, origin="bridge") for item in data.get("units", [])]
