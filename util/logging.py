"""
Structured audit logging for the broadcast gateway.
Validation, authorization, broadcast and registration outcomes are logged here.
"""

import logging
from typing import Any, Dict, List

SENSITIVE_FIELDS = ['password', 'wif', 'key', 'private_key', 'signing_key', 'token', 'access_token', 'secret']


class StructuredLogger:
    """Structured logger for gateway operations."""

    def __init__(self, name: str = "broadcast_gateway"):
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

        self.logger.info(message)

    def log_validation_failure(self, operation_type: str, errors: List[Any]):
        """Log field-level validation errors for one operation."""
        sanitized_errors = []
        for error in errors:
            if hasattr(error, 'to_dict'):
                error = error.to_dict()
            if isinstance(error, dict):
                sanitized_errors.append({'field': error.get('field'), 'error': error.get('error')})
            else:
                sanitized_errors.append(str(error)[:100])

        self.log_operation("validation.failed", "rejected", {
            "operation_type": operation_type,
            "errors": sanitized_errors,
            "error_count": len(sanitized_errors)
        })

    def log_scope_violation(self, user: str, invalid_types: List[str], client_id: str = None):
        """Log a batch rejected because of its granted scope."""
        details = {"user": user, "invalid_types": list(invalid_types)}
        if client_id:
            details["client_id"] = client_id
        self.log_operation("authorize.scope", "rejected", details)

    def log_authorship_violation(self, user: str, operation_types: List[str], client_id: str = None):
        """Log a batch rejected because an operation is authored by someone else."""
        details = {"user": user, "operation_types": list(operation_types)}
        if client_id:
            details["client_id"] = client_id
        self.log_operation("authorize.authorship", "rejected", details)

    def log_broadcast(self, user: str, operation_types: List[str], status: str = "success", details: Dict[str, Any] = None):
        """Log a dispatched transaction."""
        log_details = {"user": user, "operation_types": list(operation_types)}
        if details:
            log_details.update(details)
        self.log_operation("broadcast.send", status, log_details)

    def log_rate_limit_decision(self, key: str, admitted: bool, current_uses: int, reason: str = ""):
        """Log a registration admission decision."""
        log_details = {
            "key": key,
            "current_uses": current_uses,
            "reason": reason
        }
        self.log_operation("rate_limit.register", "admitted" if admitted else "denied", log_details)

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
    """General audit event logging with redaction of credential fields."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)

    # Determine operation type from event_type
    if event_type.startswith("authorize"):
        operation = "authorize"
    elif event_type.startswith("token"):
        operation = "token"
    elif event_type.startswith("register"):
        operation = "register"
    else:
        operation = event_type.replace(".", "_")

    logger.log_operation(operation, "audit", log_details)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, (list, tuple)):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
