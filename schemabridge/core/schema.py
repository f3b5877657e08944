"""
Core data model - exemplars, schema descriptors and health snapshots.
Exemplars are immutable once written; descriptors are never mutated by the engine.
"""

import hashlib
import json
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Health states reported by the monitor
ONLINE = "online"
DEGRADED = "degraded"
OFFLINE = "offline"
DUMMY = "dummy"
HEALTH_STATES = (ONLINE, DEGRADED, OFFLINE, DUMMY)

# Exemplar mode tags (degraded is a health state, never a mode)
MODES = (ONLINE, OFFLINE, DUMMY)

# Exemplar outcome tags
SUCCESS = "success"
ERROR = "error"
OUTCOMES = (SUCCESS, ERROR)

# Confidence bands, lowest to highest
CONFIDENCE_UNKNOWN = "unknown"
CONFIDENCE_LOW = "low"
CONFIDENCE_MEDIUM = "medium"
CONFIDENCE_HIGH = "high"
CONFIDENCE_BANDS = (CONFIDENCE_UNKNOWN, CONFIDENCE_LOW, CONFIDENCE_MEDIUM, CONFIDENCE_HIGH)

# Where an exemplar's response payload came from
SOURCES = ("server", "cache", "retrieval", "template", "generated", "placeholder", "reconciled")

FIELD_TYPES = ("string", "integer", "number", "boolean", "object", "array", "any")

# JSON-Schema spellings accepted when loading descriptors
_TYPE_ALIASES = {
    "str": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
    "dict": "object",
    "list": "array",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def canonical_json(payload: Any) -> str:
    """Stable JSON text for hashing and embedding (sorted keys, compact)."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def payload_digest(payload: Any, length: int = 12) -> str:
    """Short deterministic digest of a payload."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()[:length]


@dataclass(frozen=True)
class FieldSpec:
    """One field of a schema descriptor."""
    type: str = "any"
    required: bool = False
    description: str = ""


@dataclass(frozen=True)
class SchemaDescriptor:
    """
    Named, versioned structural contract for one side (consumer or server).

    Each side has a request shape and a response shape. Descriptors are
    translation input only; the engine never mutates them.
    """
    name: str
    version: str
    request: Dict[str, FieldSpec] = field(default_factory=dict)
    response: Dict[str, FieldSpec] = field(default_factory=dict)

    def fields_for(self, kind: str) -> Dict[str, FieldSpec]:
        """Field set for 'request' or 'response'."""
        if kind == "request":
            return self.request
        if kind == "response":
            return self.response
        raise ValueError(f"kind must be 'request' or 'response': {kind}")

    @property
    def key(self) -> str:
        return f"{self.name}@{self.version}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "request": {k: asdict(v) for k, v in self.request.items()},
            "response": {k: asdict(v) for k, v in self.response.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SchemaDescriptor":
        """
        Build a descriptor from its JSON form.

        Accepts the native form::

            {"name": "users", "version": "1", "request": {"firstName": {"type": "string", "required": true}}, ...}

        or a JSON-Schema-like form per shape::

            {"title": "users", "version": "1", "request": {"properties": {...}, "required": [...]}, ...}
        """
        if not isinstance(data, dict):
            raise ValueError("Schema descriptor must be a JSON object")

        name = data.get("name") or data.get("title")
        if not name:
            raise ValueError("Schema descriptor requires a name")
        version = str(data.get("version", "1"))

        return cls(
            name=str(name),
            version=version,
            request=_parse_fields(data.get("request", {})),
            response=_parse_fields(data.get("response", {})),
        )


def _parse_fields(shape: Any) -> Dict[str, FieldSpec]:
    if not shape:
        return {}
    if not isinstance(shape, dict):
        raise ValueError("Descriptor shape must be a JSON object")

    # JSON-Schema-like shape
    if "properties" in shape:
        required = set(shape.get("required", []))
        return {
            name: _parse_field(spec, name in required)
            for name, spec in shape["properties"].items()
        }

    return {name: _parse_field(spec, None) for name, spec in shape.items()}


def _parse_field(spec: Any, required: Optional[bool]) -> FieldSpec:
    # Shorthand: {"firstName": "string"}
    if isinstance(spec, str):
        spec = {"type": spec}
    if not isinstance(spec, dict):
        raise ValueError(f"Invalid field spec: {spec!r}")

    field_type = _TYPE_ALIASES.get(spec.get("type", "any"), spec.get("type", "any"))
    if field_type not in FIELD_TYPES:
        raise ValueError(f"Unsupported field type: {field_type}")

    if required is None:
        required = bool(spec.get("required", False))

    return FieldSpec(type=field_type, required=required, description=spec.get("description", ""))


@dataclass(frozen=True)
class Exemplar:
    """One logged exchange. Immutable once written."""
    id: str
    consumer_request: Dict[str, Any]
    schema_version: str
    mode: str  # online|offline|dummy
    outcome: str  # success|error
    response: Optional[Dict[str, Any]] = None
    server_request: Optional[Dict[str, Any]] = None
    server_response: Optional[Dict[str, Any]] = None
    embedding: List[float] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utcnow)
    source: str = "server"
    confidence: Optional[str] = None
    error_reason: Optional[str] = None

    def __post_init__(self):
        if self.mode not in MODES:
            raise ValueError(f"Invalid exemplar mode: {self.mode}")
        if self.outcome not in OUTCOMES:
            raise ValueError(f"Invalid exemplar outcome: {self.outcome}")
        if self.source not in SOURCES:
            raise ValueError(f"Invalid exemplar source: {self.source}")

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    def to_dict(self, include_embedding: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "consumer_request": self.consumer_request,
            "schema_version": self.schema_version,
            "server_request": self.server_request,
            "response": self.response,
            "server_response": self.server_response,
            "mode": self.mode,
            "outcome": self.outcome,
            "source": self.source,
            "confidence": self.confidence,
            "error_reason": self.error_reason,
            "timestamp": self.timestamp.isoformat(),
        }
        if include_embedding:
            data["embedding"] = list(self.embedding)
        return data


@dataclass(frozen=True)
class HealthSnapshot:
    """Immutable view of the Health Monitor state."""
    state: str
    consecutive_failures: int = 0
    last_check: Optional[datetime] = None
    last_error: Optional[str] = None
    dummy_forced: bool = False
    version: int = 0
