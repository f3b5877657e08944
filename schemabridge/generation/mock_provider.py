"""
Mock generation provider - deterministic stand-in for an LLM.
Used for development, tests and deployments without a model server.
"""

from typing import Any, Dict

from .provider import IGenerationProvider, TransformRequest, TransformResult, GenerateRequest
from .naming import propose_rules
from ..engine.units import apply_rules, parse_rules


class MockGenerationProvider(IGenerationProvider):
    """
    Field-name heuristics in place of a model.

    ``transform`` proposes rename/concat/split rules from field names.
    ``generate`` starts from the nearest example response and overwrites
    fields it can derive from the new request.
    """

    def __init__(self, model_name: str = "mock-model"):
        self.model_name = model_name
        self.calls = {"transform": 0, "generate": 0}

    def transform(self, request: TransformRequest) -> TransformResult:
        self.calls["transform"] += 1

        raw_rules = propose_rules(request.source.fields_for(request.shape), request.target.fields_for(request.shape))
        if request.payload is None:
            return TransformResult(payload=None, rules=raw_rules, model_used=self.model_name)

        payload = apply_rules(parse_rules(raw_rules), request.payload)
        return TransformResult(payload=payload, rules=raw_rules, model_used=self.model_name)

    def generate(self, request: GenerateRequest) -> Dict[str, Any]:
        self.calls["generate"] += 1

        response: Dict[str, Any] = {}
        if request.examples:
            nearest = request.examples[0].get("response") or {}
            response.update(nearest)

        derived = apply_rules(
            parse_rules(propose_rules(request.descriptor.request, request.descriptor.response)),
            request.request_payload
        )
        response.update(derived)
        return response
