"""
Typed records shared by the registry, validator, authorizer and rate limiter.
"""

from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import ErrorKind

WILDCARD_SCOPE = "*"


def is_blank(value: Any) -> bool:
    """Absent-equivalent param values: None, '', False and numeric zero.

    Used both for required-param checks and to decide whether a hook has
    anything to check. Empty lists and dicts are values, not blanks.
    """
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (int, float)):
        return value == 0
    return False


@dataclass(frozen=True)
class OperationSchema:
    name: str
    params: Tuple[str, ...]
    roles: Tuple[str, ...] = ()
    author_field: Optional[str] = None
    optional_fields: Tuple[str, ...] = ()
    mapped_type: Optional[str] = None  # custom operations only
    signer_fields: Tuple[str, ...] = ()  # account lists that may only name the author
    validate: Optional[Callable] = None  # validate(params, errors), may be a coroutine
    normalize: Optional[Callable] = None  # normalize(params) -> params, may be a coroutine

    @property
    def is_custom(self) -> bool:
        return self.mapped_type is not None

    @property
    def broadcast_type(self) -> str:
        return self.mapped_type or self.name

    def with_roles(self, roles: Tuple[str, ...]) -> "OperationSchema":
        return replace(self, roles=tuple(roles))


@dataclass
class FieldError:
    field: str
    error: ErrorKind
    values: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "error": self.error.value, "values": dict(self.values)}


@dataclass(frozen=True)
class OperationRequest:
    type: str
    params: Dict[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_pair(cls, pair) -> "OperationRequest":
        """Build from the ``[type, params]`` wire pair."""
        if not isinstance(pair, (list, tuple)) or not pair or not isinstance(pair[0], str):
            raise ValueError(f"Invalid operation: {pair!r}")
        params = pair[1] if len(pair) > 1 and pair[1] is not None else {}
        if not isinstance(params, dict):
            raise ValueError(f"Invalid operation parameters for {pair[0]}")
        return cls(type=pair[0], params=params)


@dataclass(frozen=True)
class ScopeGrant:
    """Operation names granted to one session, or the wildcard."""

    operations: Tuple[str, ...] = ()
    wildcard: bool = False

    @classmethod
    def from_scope(cls, scope) -> "ScopeGrant":
        """An empty scope or one containing ``*`` grants every configured operation."""
        if isinstance(scope, str):
            scope = [s for s in scope.split(",")]
        operations = tuple(s.strip() for s in (scope or []) if s and s.strip())
        if not operations or WILDCARD_SCOPE in operations:
            return cls(operations=(), wildcard=True)
        return cls(operations=operations)

    def expand(self, authorized_operations: List[str]) -> List[str]:
        if self.wildcard:
            return list(authorized_operations)
        return list(self.operations)


@dataclass
class RateWindowRecord:
    key: str
    uses: List[int] = field(default_factory=list)  # epoch milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AppRecord:
    client_id: str
    owner: str
    name: Optional[str] = None


@dataclass
class TokenRecord:
    token: str
    user: str
    role: str
    client_id: Optional[str] = None
    scope: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    @property
    def grant(self) -> ScopeGrant:
        return ScopeGrant.from_scope(self.scope)
