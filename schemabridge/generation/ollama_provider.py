"""
Ollama-backed generation provider.
"""

import json
from datetime import datetime
from typing import Any, Dict, List

import ollama

from .provider import IGenerationProvider, TransformRequest, TransformResult, GenerateRequest
from .prompts import SYSTEM_PROMPT, build_transform_prompt, build_generate_prompt
from ..core.errors import TranslationError
from util.logging import logger


class OllamaGenerationProvider(IGenerationProvider):
    """
    Generation provider that talks to a local Ollama instance.
    Uses JSON output mode at temperature 0 so repeated calls stay stable.
    """

    def __init__(self, model_name: str, host: str = None, timeout: float = None):
        self.model_name = model_name
        self.client = ollama.Client(host=host, timeout=timeout)

    def transform(self, request: TransformRequest) -> TransformResult:
        prompt = build_transform_prompt(request.source, request.target, request.shape, request.payload)
        data = self._chat_json(prompt)

        payload = data.get("payload")
        rules = data.get("rules")
        if payload is not None and not isinstance(payload, dict):
            raise TranslationError("Model returned a non-object payload", reason=TranslationError.SCHEMA_MISMATCH)
        if rules is not None and not isinstance(rules, list):
            rules = None

        return TransformResult(payload=payload, rules=rules, model_used=self.model_name)

    def generate(self, request: GenerateRequest) -> Dict[str, Any]:
        prompt = build_generate_prompt(request.descriptor, request.request_payload, request.examples)
        data = self._chat_json(prompt)

        # Models sometimes skip the wrapper object
        payload = data.get("payload", data)
        if not isinstance(payload, dict):
            raise TranslationError("Model returned a non-object payload", reason=TranslationError.SCHEMA_MISMATCH)
        return payload

    def _chat_json(self, prompt: str) -> Dict[str, Any]:
        """Run one chat turn in JSON mode and parse the answer."""
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        start_time = datetime.now()
        try:
            response = self.client.chat(
                model=self.model_name,
                messages=messages,
                format="json",
                options={"temperature": 0}
            )
        except ollama.ResponseError as e:
            raise TranslationError(f"Ollama model error: {e}", reason=TranslationError.GENERATION_UNAVAILABLE) from e
        except ConnectionError as e:
            raise TranslationError(f"Ollama unreachable: {e}", reason=TranslationError.GENERATION_UNAVAILABLE) from e

        processing_ms = int((datetime.now() - start_time).total_seconds() * 1000)
        content = response["message"]["content"] or ""
        logger.debug(f"Ollama call model={self.model_name} took {processing_ms}ms ({len(content)} chars)")

        try:
            data = json.loads(content)
        except ValueError as e:
            raise TranslationError("Model output is not valid JSON", reason=TranslationError.SCHEMA_MISMATCH) from e

        if not isinstance(data, dict):
            raise TranslationError("Model output is not a JSON object", reason=TranslationError.SCHEMA_MISMATCH)
        return data

    def health(self) -> bool:
        """Check Ollama connectivity."""
        try:
            self.client.list()
            return True
        except (ollama.ResponseError, ConnectionError):
            return False
