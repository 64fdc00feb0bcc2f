"""
Bearer-token authentication for API routes.

Tokens are issued elsewhere and stored in the ``tokens`` table; this module
only resolves them to a session (user, role, app, scope).
"""

from dataclasses import dataclass, field
from typing import List, Optional

from fastapi import Header

from ..core import config
from ..core.dao import get_token
from ..core.errors import AuthenticationError
from ..core.schema import ScopeGrant
from util.logging import logger


@dataclass
class Session:
    user: str
    role: str
    proxy: Optional[str] = None  # client_id of the app acting for the user
    scope: List[str] = field(default_factory=list)

    @property
    def grant(self) -> ScopeGrant:
        return ScopeGrant.from_scope(self.scope)

    @property
    def effective_scope(self) -> List[str]:
        return self.grant.expand(config.AUTHORIZED_OPERATIONS)


def _extract_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.strip():
        return None
    parts = authorization.strip().split(" ", 1)
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1].strip() or None
    return parts[0]


def authenticate(role: Optional[str] = None):
    """Dependency factory; ``role`` restricts the session to 'app' or 'user' tokens."""

    def dependency(authorization: Optional[str] = Header(None)) -> Session:
        token = _extract_token(authorization)
        if not token:
            raise AuthenticationError("Access token is missing")

        record = get_token(token)
        if record is None:
            logger.warning("Authentication failed: unknown access token")
            raise AuthenticationError("Invalid access token")

        if role and record.role != role:
            logger.warning(f"Authentication failed: {record.role} token used where {role} token required")
            raise AuthenticationError(f"This endpoint requires a {role} access token")

        return Session(user=record.user, role=record.role, proxy=record.client_id, scope=record.scope)

    return dependency
