"""
Validation gate - checks a payload against a descriptor field set.
Every generated or static translation passes through here before it is trusted.
"""

from typing import Any, Dict, List

from ..core.schema import FieldSpec


def _type_ok(value: Any, field_type: str) -> bool:
    if field_type == "any":
        return True
    if field_type == "string":
        return isinstance(value, str)
    if field_type == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if field_type == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if field_type == "boolean":
        return isinstance(value, bool)
    if field_type == "object":
        return isinstance(value, dict)
    if field_type == "array":
        return isinstance(value, list)
    return False


def validate_payload(payload: Any, fields: Dict[str, FieldSpec], strict: bool = False) -> List[str]:
    """
    Validate a payload against a field set.

    Args:
        payload: Candidate payload
        fields: Target field specs
        strict: Also reject fields the target does not declare

    Returns:
        List of error strings (empty when valid). Messages name fields, never values.
    """
    if not isinstance(payload, dict):
        return [f"payload must be an object, got {type(payload).__name__}"]

    errors = []
    for name, spec in fields.items():
        if name not in payload or payload[name] is None:
            if spec.required:
                errors.append(f"missing required field '{name}'")
            continue
        if not _type_ok(payload[name], spec.type):
            errors.append(f"field '{name}' expected {spec.type}, got {type(payload[name]).__name__}")

    if strict:
        for name in payload:
            if name not in fields:
                errors.append(f"unexpected field '{name}'")

    return errors


def project(payload: Dict[str, Any], fields: Dict[str, FieldSpec]) -> Dict[str, Any]:
    """Keep only the fields the target declares (non-strict mode)."""
    if not fields:
        return dict(payload)
    return {k: v for k, v in payload.items() if k in fields}


def sample_payload(fields: Dict[str, FieldSpec]) -> Dict[str, Any]:
    """Synthesize a type-conformant sample payload (bridge validation input)."""
    samples = {
        "string": lambda name: f"sample {name}",
        "integer": lambda name: 1,
        "number": lambda name: 1.5,
        "boolean": lambda name: True,
        "object": lambda name: {},
        "array": lambda name: [],
        "any": lambda name: f"sample {name}",
    }
    return {name: samples[spec.type](name) for name, spec in fields.items()}
