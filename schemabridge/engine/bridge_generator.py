"""
Bridge Generator - static translation units from a pair of descriptors.

Design-time only: asks the generation capability for declarative rules in
both directions, runs each unit through the same validation gate as live
units, and renders standalone Python source for the pair.
"""

from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..core import config
from ..core.errors import GenerationError, TranslationError
from ..core.schema import SchemaDescriptor
from ..core.timeouts import call_with_timeout
from ..generation.provider import IGenerationProvider, TransformRequest
from .translator import validate_unit
from .units import TO_SERVER, TO_CONSUMER, FieldRule, TranslationUnit, parse_rules, units_to_bridge_file
from util.logging import logger

_HELPERS = '''
_MISSING = object()


def _get(payload, path):
    current = payload
    for segment in path.split("."):
        if not isinstance(current, dict) or segment not in current:
            return _MISSING
        current = current[segment]
    return current


def _put(result, path, value):
    if value is _MISSING:
        return
    segments = path.split(".")
    current = result
    for segment in segments[:-1]:
        current = current.setdefault(segment, {})
    current[segments[-1]] = value


def _concat(payload, paths, separator):
    parts = [str(v) for v in (_get(payload, p) for p in paths) if v is not _MISSING and v is not None and v != ""]
    return separator.join(parts) if parts else _MISSING


def _split(payload, path, separator, index):
    value = _get(payload, path)
    if not isinstance(value, str):
        return _MISSING
    if index == 0:
        return value.split(separator, 1)[0]
    if index == -1:
        pieces = value.split(separator, 1)
        return pieces[1] if len(pieces) > 1 else _MISSING
    pieces = value.split(separator)
    return pieces[index] if -len(pieces) <= index < len(pieces) else _MISSING
'''


@dataclass(frozen=True)
class BridgeBundle:
    """Validated units for both directions plus their rendered source."""
    units: List[TranslationUnit]
    bridge_code: str
    rules: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    def to_bridge_file(self) -> Dict[str, Any]:
        return units_to_bridge_file(self.units)


def _rule_expression(rule: FieldRule) -> str:
    if rule.op == "copy":
        return f"_get(payload, {rule.sources[0]!r})"
    if rule.op == "concat":
        return f"_concat(payload, {list(rule.sources)!r}, {rule.separator!r})"
    if rule.op == "split":
        return f"_split(payload, {rule.sources[0]!r}, {rule.separator!r}, {rule.index!r})"
    return repr(rule.value)


def _render_function(name: str, unit: TranslationUnit) -> List[str]:
    summary = f"{unit.direction}: {unit.consumer_key} <-> {unit.server_key}"
    lines = [
        f"def {name}(payload):",
        f"    {summary!r}",
        "    result = {}",
    ]
    for rule in unit.rules:
        lines.append(f"    _put(result, {rule.target!r}, {_rule_expression(rule)})")
    lines.append("    return result")
    return lines


def render_bridge_code(units: List[TranslationUnit]) -> str:
    """Standalone Python module with to_server/to_consumer functions."""
    by_direction = {unit.direction: unit for unit in units}
    first = units[0]

    lines = [
        repr(f"Generated bridge: {first.consumer_key} <-> {first.server_key}."),
        _HELPERS,
    ]
    for direction in (TO_SERVER, TO_CONSUMER):
        if direction in by_direction:
            lines.append("")
            lines.extend(_render_function(direction, by_direction[direction]))
            lines.append("")
    return "\n".join(lines).rstrip() + "\n"


class BridgeGenerator:
    """Produces reusable translation units without a live payload."""

    def __init__(self, provider: IGenerationProvider, timeout: float = None, strict: bool = None):
        self.provider = provider
        self.timeout = timeout if timeout is not None else config.GENERATION_TIMEOUT_SEC
        self.strict = config.SCHEMA_VALIDATION_STRICT if strict is None else strict

    def generate(self, consumer: SchemaDescriptor, server: SchemaDescriptor) -> BridgeBundle:
        """
        Build and validate units for both directions.

        Raises:
            GenerationError: no usable rules, or a unit failed validation
        """
        units = [
            self._build(consumer, server, TO_SERVER),
            self._build(consumer, server, TO_CONSUMER),
        ]
        rules = {unit.direction: [r.to_dict() for r in unit.rules] for unit in units}
        bundle = BridgeBundle(units=units, bridge_code=render_bridge_code(units), rules=rules)

        logger.log_bridge_generation(consumer.key, server.key, sum(len(u.rules) for u in units))
        return bundle

    def _build(self, consumer: SchemaDescriptor, server: SchemaDescriptor, direction: str) -> TranslationUnit:
        if direction == TO_SERVER:
            source, target, shape = consumer, server, "request"
        else:
            source, target, shape = server, consumer, "response"

        request = TransformRequest(source=source, target=target, shape=shape, direction=direction)
        try:
            result = call_with_timeout(self.provider.transform, request, timeout=self.timeout)
            rules = parse_rules(result.rules)
        except FuturesTimeoutError as e:
            raise GenerationError(f"Rule generation timed out after {self.timeout}s ({direction})") from e
        except (TranslationError, ValueError) as e:
            raise GenerationError(f"Rule generation failed ({direction}): {e}") from e
        except Exception as e:
            raise GenerationError(f"Generation capability failed ({direction}): {e}") from e

        if not rules and target.fields_for(shape):
            logger.log_bridge_generation(consumer.key, server.key, 0, status="failed", details={"direction": direction})
            raise GenerationError(f"No rules generated for {direction}", details={"direction": direction})

        unit = TranslationUnit(
            consumer_key=consumer.key,
            server_key=server.key,
            direction=direction,
            rules=rules,
            origin="bridge",
        )

        errors = validate_unit(unit, source.fields_for(shape), target.fields_for(shape), strict=self.strict)
        if errors:
            logger.log_bridge_generation(consumer.key, server.key, len(rules), status="rejected",
                                         details={"direction": direction, "errors": errors})
            raise GenerationError(f"Generated {direction} unit failed validation",
                                  details={"direction": direction, "errors": errors})
        return unit
