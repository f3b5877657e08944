"""
Redaction policy for knowledge base exports (/logs).
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from util.logging import audit_event, sanitize_payload
from . import config

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"

# Exemplar fields that carry payloads; metadata columns are never redacted
PAYLOAD_FIELDS = ("consumer_request", "server_request", "response", "server_response")


class RedactionPolicy:
    """Masks configured sensitive keys inside exemplar payloads."""

    def __init__(self, enabled: Optional[bool] = None, fields: Optional[Iterable[str]] = None):
        self.enabled = config.REDACTION_ENABLED if enabled is None else enabled
        self.fields: List[str] = list(fields if fields is not None else config.REDACT_FIELDS)

    def redact(self, payload: Any) -> Any:
        """Redact one payload (nested objects and lists included)."""
        if not self.enabled or payload is None:
            return payload
        return _redact(payload, {f.lower() for f in self.fields})

    def redact_exemplar(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Redact an exemplar dict as produced by Exemplar.to_dict().

        Args:
            data: Exemplar dictionary

        Returns:
            New dict; payload fields redacted, metadata untouched
        """
        if not self.enabled:
            return data

        redacted = dict(data)
        for name in PAYLOAD_FIELDS:
            if name in redacted:
                redacted[name] = self.redact(redacted[name])
        return redacted

    def record_access(self, accessor: str, count: int, offset: int):
        """Audit an export of exemplars."""
        audit_event(
            event_type="logs.export",
            identifiers={"accessor": accessor, "count": count, "offset": offset},
            payload={"redaction_enabled": self.enabled, "fields": self.fields}
        )
        if not self.enabled:
            logger.warning(f"Exemplars exported without redaction to {accessor}")


def _redact(payload: Any, lowered: set) -> Any:
    # Unlike sanitize_payload, values are kept at full length
    if isinstance(payload, dict):
        return {
            k: REDACTED if str(k).lower() in lowered else _redact(v, lowered)
            for k, v in payload.items()
        }
    if isinstance(payload, list):
        return [_redact(item, lowered) for item in payload]
    return payload


def redact_for_log(payload: Any) -> Any:
    """Payload form safe for plain log lines (redacted and truncated)."""
    return sanitize_payload(payload, sensitive_fields=config.REDACT_FIELDS)
