"""
Generation capability interface - the engine's only contract with an LLM.

``transform`` maps a payload from one schema to another (and may return the
declarative rules it used); ``generate`` synthesizes a consumer response from
few-shot examples. Providers raise TranslationError for outages
(generation_unavailable) and for unusable output (schema_mismatch).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.schema import SchemaDescriptor


@dataclass
class TransformRequest:
    """Structured input for a schema transform."""
    source: SchemaDescriptor
    target: SchemaDescriptor
    shape: str  # request|response
    direction: str  # to_server|to_consumer
    payload: Optional[Dict[str, Any]] = None  # None asks for rules only (bridge generation)


@dataclass
class TransformResult:
    """Transform output: the translated payload and/or the rules behind it."""
    payload: Optional[Dict[str, Any]] = None
    rules: Optional[List[Dict[str, Any]]] = None
    model_used: str = ""


@dataclass
class GenerateRequest:
    """Few-shot synthesis input: nearest exemplars as request/response pairs."""
    descriptor: SchemaDescriptor
    request_payload: Dict[str, Any]
    examples: List[Dict[str, Any]] = field(default_factory=list)
    mode: str = "offline"


class IGenerationProvider(ABC):
    """Abstract interface for generation providers."""

    model_name: str = ""

    @abstractmethod
    def transform(self, request: TransformRequest) -> TransformResult:
        """Translate a payload between schemas (or propose rules when payload is None)."""
        pass

    @abstractmethod
    def generate(self, request: GenerateRequest) -> Dict[str, Any]:
        """Synthesize a consumer response payload from examples."""
        pass

    def health(self) -> bool:
        """Whether the provider is currently reachable."""
        return True

    def get_status(self) -> Dict[str, Any]:
        return {
            "provider": self.__class__.__name__,
            "model_name": self.model_name,
            "healthy": self.health()
        }
