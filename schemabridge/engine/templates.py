"""
Dummy-mode heuristic templates.

With no real backend there is no grounding data, so responses are built from
the request itself: declared rules first (DUMMY_TEMPLATES_PATH), then
built-ins for whatever is still missing:

- same-name copy and name concatenation/split (field-name heuristics)
- identifier fields get ``dummy-<digest of the request>``
- required non-string fields get a type default

A template result is only used when it satisfies the consumer response
descriptor; string fields are never invented.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..core import config
from ..core.schema import SchemaDescriptor, payload_digest
from ..generation.naming import field_tokens, propose_rules
from .units import FieldRule, apply_rules, parse_rules
from .validation import validate_payload

logger = logging.getLogger(__name__)

DUMMY_ID_PREFIX = "dummy-"

_TYPE_DEFAULTS = {
    "integer": 0,
    "number": 0.0,
    "boolean": False,
    "object": {},
    "array": [],
}


def dummy_identifier(request_payload: Dict[str, Any]) -> str:
    """Deterministic placeholder id: the same request always gets the same id."""
    return DUMMY_ID_PREFIX + payload_digest(request_payload, length=10)


def _is_identifier(name: str) -> bool:
    tokens = field_tokens(name)
    return bool(tokens) and tokens[-1] == "id"


class DummyTemplates:
    """
    Heuristic response templates for dummy mode.

    The rules file is JSON::

        {"rules": [...],                       # applied to every descriptor
         "templates": {"users": [...]}}        # keyed by consumer descriptor name

    where each rule uses the translation-unit rule format, evaluated
    against the consumer request.
    """

    def __init__(self, rules_path: Optional[str] = None):
        self.rules_path = rules_path if rules_path is not None else config.DUMMY_TEMPLATES_PATH
        self._common: Tuple[FieldRule, ...] = ()
        self._by_name: Dict[str, Tuple[FieldRule, ...]] = {}
        if self.rules_path:
            self.load(self.rules_path)

    def load(self, path: str):
        """Load declared template rules; a broken file leaves only built-ins."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
            common = parse_rules(data.get("rules"))
            by_name = {name: parse_rules(rules) for name, rules in (data.get("templates") or {}).items()}
        except FileNotFoundError:
            logger.warning(f"Dummy templates file not found: {path}")
            return
        except (ValueError, AttributeError) as e:
            logger.error(f"Invalid dummy templates file {path}: {e}")
            return

        self._common = common
        self._by_name = by_name
        logger.info(f"Loaded {len(common) + sum(len(r) for r in by_name.values())} dummy template rules from {path}")

    def declared_rules(self, descriptor: SchemaDescriptor) -> List[FieldRule]:
        return list(self._by_name.get(descriptor.name, ())) + list(self._common)

    def render(self, request_payload: Dict[str, Any], consumer: SchemaDescriptor) -> Optional[Dict[str, Any]]:
        """
        Build a consumer response from the request alone.

        Returns:
            Response payload, or None when required fields cannot be filled
        """
        fields = consumer.response
        if not fields:
            return None

        response = apply_rules(self.declared_rules(consumer), request_payload)

        heuristic = apply_rules(parse_rules(propose_rules(consumer.request, fields)), request_payload)
        for name, value in heuristic.items():
            response.setdefault(name, value)

        for name, spec in fields.items():
            if response.get(name) is not None:
                continue
            if _is_identifier(name) and spec.type in ("string", "any"):
                response[name] = dummy_identifier(request_payload)
            elif spec.required and spec.type in _TYPE_DEFAULTS:
                response[name] = copy.deepcopy(_TYPE_DEFAULTS[spec.type])

        response = {k: v for k, v in response.items() if k in fields}
        errors = validate_payload(response, fields)
        if errors:
            logger.debug(f"Dummy template incomplete for {consumer.key}: {errors}")
            return None
        return response
