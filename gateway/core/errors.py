"""
Gateway error taxonomy.

Every error is a per-request outcome. The API layer maps them onto HTTP
responses through ``to_dict()``; nothing here is fatal to the process.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class ErrorKind(str, Enum):
    # Field-level validation codes
    IS_REQUIRED = "error_is_required"
    VOTE_WEIGHT = "error_vote_weight"
    AMOUNT_FORMAT = "error_amount_format"
    USER_EXIST = "error_user_exist"
    BOOLEAN_FORMAT = "error_boolean_format"
    UNKNOWN_OPERATION = "error_unknown_operation"
    TX_BASE64_REQUIRED = "error_tx_base64_required"
    TX_BASE64_ENCODE = "error_tx_base64_encode"
    TX_BASE64_JSON = "error_tx_base64_json"

    # Request-level codes
    INVALID_REQUEST = "invalid_request"
    INVALID_SCOPE = "invalid_scope"
    UNAUTHORIZED_CLIENT = "unauthorized_client"
    INVALID_GRANT = "invalid_grant"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"


class GatewayError(Exception):
    """Base class for gateway request outcomes."""

    error = ErrorKind.SERVER_ERROR

    def __init__(self, error_description: str):
        super().__init__(error_description)
        self.error_description = error_description

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error.value, "error_description": self.error_description}


class RegistryError(GatewayError):
    """Raised while building the schema registry; a deployment defect."""


class UnknownOperation(GatewayError):
    error = ErrorKind.INVALID_REQUEST

    def __init__(self, operation: str):
        super().__init__(f"Unknown operation: {operation}")
        self.operation = operation


class ValidationFailed(GatewayError):
    """One or more operations carry field-level errors."""

    error = ErrorKind.INVALID_REQUEST

    def __init__(self, errors: Sequence[Any]):
        super().__init__("The request contains invalid operation parameters")
        self.errors = list(errors)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [e.to_dict() if hasattr(e, "to_dict") else e for e in self.errors]
        return data


class ScopeViolation(GatewayError):
    error = ErrorKind.INVALID_SCOPE

    def __init__(self, invalid_types: List[str]):
        self.invalid_types = list(invalid_types)
        super().__init__(
            "The access_token scope does not allow the following operation(s): "
            + ", ".join(self.invalid_types)
        )


class AuthorshipViolation(GatewayError):
    error = ErrorKind.UNAUTHORIZED_CLIENT

    def __init__(self, acting_user: str, operation_types: Optional[List[str]] = None):
        self.acting_user = acting_user
        self.operation_types = list(operation_types or [])
        super().__init__(
            f"This access_token allow you to broadcast transaction only for the account @{acting_user}"
        )


class RateLimited(GatewayError):
    error = ErrorKind.RATE_LIMITED


class InvalidRateLimiterConfig(GatewayError):
    error = ErrorKind.SERVER_ERROR


class RemoteBroadcastFailure(GatewayError):
    """Ledger rejected or failed the broadcast; keeps the remote error."""

    error = ErrorKind.SERVER_ERROR

    def __init__(self, error_description: str, remote_error: Any = None):
        super().__init__(error_description)
        self.remote_error = remote_error


class AuthenticationError(GatewayError):
    error = ErrorKind.INVALID_GRANT
