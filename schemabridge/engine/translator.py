"""
Schema Translator - bidirectional payload transformation consumer <-> server.

Cached translation units are applied directly. Without one, the generation
capability is asked to transform the payload and the result is validated
against the target descriptor. Generated rules are promoted to a cached unit
after N consistent validations.
"""

import threading
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Dict, List, Optional, Tuple

from ..core import config
from ..core.errors import TranslationError
from ..core.schema import SchemaDescriptor, FieldSpec
from ..core.timeouts import call_with_timeout
from ..generation.provider import IGenerationProvider, TransformRequest
from .units import (
    TO_SERVER, TO_CONSUMER, TranslationUnit, apply_rules, parse_rules, rules_fingerprint
)
from .validation import validate_payload, project, sample_payload
from util.logging import logger

UnitKey = Tuple[str, str, str]


def validate_unit(unit: TranslationUnit, source_fields: Dict[str, FieldSpec],
                  target_fields: Dict[str, FieldSpec], strict: bool = False) -> List[str]:
    """Run a unit over a synthesized source sample and validate the output."""
    output = unit.apply(sample_payload(source_fields))
    return validate_payload(output, target_fields, strict=strict)


class SchemaTranslator:
    """
    Translates payloads between consumer and server schemas.

    Units are immutable and swapped in under a lock, so concurrent readers
    see either no unit or a complete one; concurrent promotions of the same
    key resolve as last-validated-wins.
    """

    def __init__(self, provider: IGenerationProvider, promotion_threshold: int = None,
                 timeout: float = None, strict: bool = None):
        self.provider = provider
        self.promotion_threshold = promotion_threshold or config.TRANSLATION_PROMOTION_THRESHOLD
        self.timeout = timeout if timeout is not None else config.GENERATION_TIMEOUT_SEC
        self.strict = config.SCHEMA_VALIDATION_STRICT if strict is None else strict

        self._units: Dict[UnitKey, TranslationUnit] = {}
        self._candidates: Dict[UnitKey, Tuple[str, int]] = {}  # key -> (rules fingerprint, consistent count)
        self._lock = threading.Lock()

    def to_server(self, payload: Dict[str, Any], consumer: SchemaDescriptor, server: SchemaDescriptor) -> Dict[str, Any]:
        """Translate a consumer request into the server request schema."""
        return self._translate(payload, consumer, server, direction=TO_SERVER)

    def to_consumer(self, payload: Dict[str, Any], server: SchemaDescriptor, consumer: SchemaDescriptor) -> Dict[str, Any]:
        """Translate a server response into the consumer response schema."""
        return self._translate(payload, consumer, server, direction=TO_CONSUMER)

    def _translate(self, payload: Dict[str, Any], consumer: SchemaDescriptor,
                   server: SchemaDescriptor, direction: str) -> Dict[str, Any]:
        if direction == TO_SERVER:
            source, target, shape = consumer, server, "request"
        else:
            source, target, shape = server, consumer, "response"

        key = (consumer.key, server.key, direction)
        target_fields = target.fields_for(shape)

        unit = self._units.get(key)
        if unit is not None:
            result = unit.apply(payload)
            self._check(result, target_fields, direction, target)
            logger.log_translation(direction, unit.origin)
            return project(result, target_fields)

        result, rules = self._generate(payload, source, target, shape, direction)

        errors = validate_payload(result, target_fields, strict=self.strict)
        if errors:
            self._reset_candidate(key)
            self._reject(errors, direction, target)

        if rules and project(apply_rules(rules, payload), target_fields) == project(result, target_fields):
            self._record_candidate(key, rules, consumer, server, direction)

        logger.log_translation(direction, "generated", details={"model": self.provider.model_name})
        return project(result, target_fields)

    def _generate(self, payload, source, target, shape, direction):
        request = TransformRequest(source=source, target=target, shape=shape, direction=direction, payload=payload)
        try:
            result = call_with_timeout(self.provider.transform, request, timeout=self.timeout)
        except FuturesTimeoutError as e:
            raise TranslationError(f"Generation timed out after {self.timeout}s",
                                   reason=TranslationError.GENERATION_UNAVAILABLE) from e
        except TranslationError:
            raise
        except Exception as e:
            raise TranslationError(f"Generation capability failed: {e}",
                                   reason=TranslationError.GENERATION_UNAVAILABLE) from e

        try:
            rules = parse_rules(result.rules)
        except ValueError as e:
            logger.warning(f"Discarding malformed generated rules ({direction}): {e}")
            rules = ()

        output = result.payload
        if output is None and rules:
            output = apply_rules(rules, payload)
        if output is None:
            raise TranslationError("Generation returned neither payload nor rules",
                                   reason=TranslationError.SCHEMA_MISMATCH)
        return output, rules

    def _check(self, result, target_fields, direction, target):
        errors = validate_payload(result, target_fields, strict=self.strict)
        if errors:
            self._reject(errors, direction, target)

    def _reject(self, errors: List[str], direction: str, target: SchemaDescriptor):
        logger.log_schema_validation_error(f"translate.{direction}", errors, descriptor=target.key)
        raise TranslationError(f"Translated payload does not match {target.key}",
                               reason=TranslationError.SCHEMA_MISMATCH, errors=errors)

    def _record_candidate(self, key: UnitKey, rules, consumer, server, direction):
        fingerprint = rules_fingerprint(rules)
        with self._lock:
            previous = self._candidates.get(key)
            count = previous[1] + 1 if previous and previous[0] == fingerprint else 1

            if count < self.promotion_threshold:
                self._candidates[key] = (fingerprint, count)
                return

            self._candidates.pop(key, None)
            self._units[key] = TranslationUnit(
                consumer_key=consumer.key,
                server_key=server.key,
                direction=direction,
                rules=tuple(rules),
                origin="generated",
            )

        logger.log_operation("translate.promote", "success", {
            "direction": direction, "consumer": consumer.key, "server": server.key,
            "rules_count": len(rules), "validations": count
        })

    def _reset_candidate(self, key: UnitKey):
        with self._lock:
            self._candidates.pop(key, None)

    def register_unit(self, unit: TranslationUnit, consumer: SchemaDescriptor, server: SchemaDescriptor):
        """
        Install a static unit (bridge file or generator output).

        Raises:
            TranslationError: the unit does not pass the validation gate
        """
        if unit.key[:2] != (consumer.key, server.key):
            raise TranslationError(f"Unit {unit.key} does not belong to {consumer.key} -> {server.key}",
                                   reason=TranslationError.SCHEMA_MISMATCH)

        if unit.direction == TO_SERVER:
            source_fields, target_fields, target = consumer.request, server.request, server
        else:
            source_fields, target_fields, target = server.response, consumer.response, consumer

        errors = validate_unit(unit, source_fields, target_fields, strict=self.strict)
        if errors:
            self._reject(errors, unit.direction, target)

        with self._lock:
            self._units[unit.key] = unit
            self._candidates.pop(unit.key, None)

    def invalidate_stale(self, consumer: SchemaDescriptor, server: SchemaDescriptor) -> int:
        """Drop units and candidates that do not belong to the current descriptor pair."""
        current = (consumer.key, server.key)
        with self._lock:
            stale = [k for k in self._units if k[:2] != current]
            for k in stale:
                del self._units[k]
            for k in [k for k in self._candidates if k[:2] != current]:
                del self._candidates[k]

        if stale:
            logger.info(f"Invalidated {len(stale)} translation units after schema version change")
        return len(stale)

    def get_unit(self, consumer: SchemaDescriptor, server: SchemaDescriptor, direction: str) -> Optional[TranslationUnit]:
        return self._units.get((consumer.key, server.key, direction))

    def list_units(self) -> List[TranslationUnit]:
        with self._lock:
            return list(self._units.values())
