"""
Error taxonomy for the translation & fallback engine.

Every engine error carries a machine-readable ``reason`` so the API layer and
the engine's fall-through logic can make decisions without string matching.
"""

from typing import Any, Dict, List, Mapping, Optional


class BridgeError(Exception):
    """
    Base exception for all engine errors.

    Attributes:
        message: Human-readable description (safe for logs and clients)
        reason: Lower-snake-case machine code (e.g. "schema_mismatch")
        details: Additional JSON-safe context (never payload values)
    """

    http_status = 500

    def __init__(self, message: str = "", *, reason: Optional[str] = None,
                 details: Optional[Mapping[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.details = dict(details or {})

    def __str__(self) -> str:
        base = self.message or self.__class__.__name__
        if self.reason:
            base += f" [reason={self.reason}]"
        if self.details:
            base += f" details={self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Error envelope body."""
        return {
            "type": self.__class__.__name__,
            "reason": self.reason,
            "message": self.message,
            "details": self.details
        }


class TranslationError(BridgeError):
    """Payload could not be translated between schemas."""

    SCHEMA_MISMATCH = "schema_mismatch"
    GENERATION_UNAVAILABLE = "generation_unavailable"

    http_status = 502

    def __init__(self, message: str, *, reason: str = SCHEMA_MISMATCH,
                 errors: Optional[List[str]] = None, **kwargs: Any):
        details = dict(kwargs.pop("details", None) or {})
        if errors:
            details["errors"] = list(errors)
        super().__init__(message, reason=reason, details=details)
        self.errors = list(errors or [])


class RetrievalError(BridgeError):
    """Knowledge base could not be read or written."""

    STORE_UNAVAILABLE = "store_unavailable"
    EMBEDDING_UNAVAILABLE = "embedding_unavailable"

    http_status = 503

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("reason", self.STORE_UNAVAILABLE)
        super().__init__(message, **kwargs)


class ExemplarNotFound(BridgeError):
    """No exemplar exists with the requested id."""

    http_status = 404

    def __init__(self, exemplar_id: str):
        super().__init__(f"Exemplar not found: {exemplar_id}", reason="not_found",
                         details={"exemplar_id": exemplar_id})
        self.exemplar_id = exemplar_id


class ServerError(BridgeError):
    """Backend server call failed."""

    TIMEOUT = "timeout"
    NON_2XX = "non2xx"
    UNREACHABLE = "unreachable"

    http_status = 502

    def __init__(self, message: str, *, reason: str, status_code: Optional[int] = None, **kwargs: Any):
        details = dict(kwargs.pop("details", None) or {})
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, reason=reason, details=details)
        self.status_code = status_code


class CacheError(BridgeError):
    """Response cache failure. Non-fatal: callers bypass the cache."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("reason", "cache_unavailable")
        super().__init__(message, **kwargs)


class GenerationError(BridgeError):
    """Design-time bridge generation failed or produced an invalid unit."""

    http_status = 422

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("reason", "generation_failed")
        super().__init__(message, **kwargs)
