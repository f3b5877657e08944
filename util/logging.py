"""
Structured logging for the translation & fallback engine.
Every engine decision (mode, translation, prediction, health transition) goes
through one logger so operators can follow a request end to end.
"""

import logging
from typing import Any, Dict, List

DEFAULT_SENSITIVE_FIELDS = ['password', 'secret', 'token', 'apiKey', 'api_key', 'authorization', 'credential']


class StructuredLogger:
    """Structured logger for engine operations."""

    def __init__(self, name: str = "schemabridge"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("error", "failed", "rejected"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_translation(self, direction: str, unit_source: str, status: str = "success", details: Dict[str, Any] = None):
        """Log a payload translation (direction is to_server|to_consumer)."""
        log_details = {"direction": direction, "unit_source": unit_source}
        if details:
            log_details.update(details)

        self.log_operation(f"translate.{direction}", status, log_details)

    def log_health_transition(self, previous: str, current: str, consecutive_failures: int, details: Dict[str, Any] = None):
        """Log a Health Monitor state change."""
        log_details = {
            "previous": previous,
            "current": current,
            "consecutive_failures": consecutive_failures
        }
        if details:
            log_details.update(details)

        self.log_operation("health.transition", current, log_details)

    def log_exemplar(self, exemplar_id: str, mode: str, outcome: str, source: str, status: str = "success"):
        """Log an exemplar append to the knowledge base."""
        self.log_operation("knowledge_base.append", status, {
            "exemplar_id": exemplar_id,
            "mode": mode,
            "outcome": outcome,
            "source": source
        })

    def log_prediction(self, mode: str, source: str, confidence: str, matches: int = 0, nearest_distance: float = None):
        """Log a fallback prediction."""
        log_details = {
            "mode": mode,
            "source": source,
            "confidence": confidence,
            "matches": matches
        }
        if nearest_distance is not None:
            log_details["nearest_distance"] = round(nearest_distance, 4)

        self.log_operation("fallback.predict", "success", log_details)

    def log_cache_event(self, event: str, fingerprint: str, details: Dict[str, Any] = None):
        """Log a cache hit/miss/eviction (fingerprint truncated)."""
        log_details = {"fingerprint": fingerprint[:12]}
        if details:
            log_details.update(details)

        self.logger.debug(f"Operation: cache.{event}, Details: {log_details}")

    def log_reconciliation(self, replayed: int, divergences: int, status: str = "success", details: Dict[str, Any] = None):
        """Log a reconciliation run after recovery."""
        log_details = {"replayed": replayed, "divergences": divergences}
        if details:
            log_details.update(details)

        self.log_operation("reconcile.run", status, log_details)

    def log_bridge_generation(self, consumer_schema: str, server_schema: str, rules_count: int, status: str = "success", details: Dict[str, Any] = None):
        """Log a design-time bridge generation."""
        log_details = {
            "consumer_schema": consumer_schema,
            "server_schema": server_schema,
            "rules_count": rules_count
        }
        if details:
            log_details.update(details)

        self.log_operation("bridge.generate", status, log_details)

    def log_schema_validation_error(self, operation: str, errors: List[Any], descriptor: str = None):
        """Log schema validation errors with sanitized details."""
        # Limit error messages so payload values never end up in logs verbatim
        sanitized_errors = [str(error)[:100] for error in errors]

        log_details = {
            "operation": operation,
            "errors": sanitized_errors,
            "error_count": len(sanitized_errors)
        }
        if descriptor:
            log_details["descriptor"] = descriptor

        self.log_operation("schema_validation.error", "rejected", log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None, sensitive_fields: List[str] = None):
    """General audit event logging with privacy controls."""
    if sensitive_fields is None:
        sensitive_fields = DEFAULT_SENSITIVE_FIELDS

    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)

    logger.log_operation(event_type.replace(".", "_"), "audit", log_details)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = DEFAULT_SENSITIVE_FIELDS
    lowered = {field.lower() for field in sensitive_fields}

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or str(k).lower() not in lowered:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
