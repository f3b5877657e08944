"""
Prompt builders for the generation capability.
"""

import json
from typing import Any, Dict, List

from ..core.schema import SchemaDescriptor

SYSTEM_PROMPT = (
    "You translate JSON payloads between API schemas. "
    "Answer with a single JSON object and nothing else."
)

RULES_HELP = (
    "Rules are objects {\"target\": field, \"op\": \"copy\"|\"concat\"|\"split\"|\"constant\", "
    "\"sources\": [fields], \"separator\": str, \"index\": int, \"value\": any}. "
    "copy takes sources[0]; concat joins sources with separator; split takes piece index "
    "of sources[0] (0 = head, -1 = rest after the first separator); constant emits value."
)


def _shape(descriptor: SchemaDescriptor, shape: str) -> Dict[str, Any]:
    return {
        name: {"type": spec.type, "required": spec.required}
        for name, spec in descriptor.fields_for(shape).items()
    }


def build_transform_prompt(source: SchemaDescriptor, target: SchemaDescriptor, shape: str, payload: Any) -> str:
    """Prompt asking for a translated payload plus the rules that produce it."""
    sections = [
        f"Source schema ({source.key}, {shape}):",
        json.dumps(_shape(source, shape), indent=2),
        f"Target schema ({target.key}, {shape}):",
        json.dumps(_shape(target, shape), indent=2),
        RULES_HELP,
    ]
    if payload is None:
        sections.append('Return {"rules": [...]} mapping every target field you can derive.')
    else:
        sections.append("Source payload:")
        sections.append(json.dumps(payload, indent=2, ensure_ascii=False))
        sections.append('Return {"payload": {...translated...}, "rules": [...]}.')
    return "\n".join(sections)


def build_generate_prompt(descriptor: SchemaDescriptor, request_payload: Any, examples: List[Dict[str, Any]]) -> str:
    """Few-shot prompt asking for a response that matches the consumer schema."""
    sections = [
        f"The backend is unavailable. Predict the response for {descriptor.key}.",
        "Response schema:",
        json.dumps(_shape(descriptor, "response"), indent=2),
    ]
    for i, example in enumerate(examples, 1):
        sections.append(f"Example {i} request: {json.dumps(example.get('request'), ensure_ascii=False)}")
        sections.append(f"Example {i} response: {json.dumps(example.get('response'), ensure_ascii=False)}")
    sections.append(f"Request: {json.dumps(request_payload, ensure_ascii=False)}")
    sections.append('Return {"payload": {...response...}}.')
    return "\n".join(sections)
