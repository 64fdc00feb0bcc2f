"""
Scope and authorship checks over a whole operation batch.

A token scoped to one user must never broadcast for another account, not even
for part of a batch, so both checks run over every request before a verdict
is returned and any violation rejects the entire batch.
"""

from typing import List, Optional, Sequence

from . import config
from .errors import AuthorshipViolation, ScopeViolation
from .operation import is_operation_author
from .registry import OperationRegistry, registry as default_registry, snake_case
from .schema import OperationRequest, ScopeGrant
from util.logging import logger


def scope_allows(grant: ScopeGrant, operation: str, authorized_operations: Optional[Sequence[str]] = None) -> bool:
    if authorized_operations is None:
        authorized_operations = config.AUTHORIZED_OPERATIONS
    allowed = {snake_case(op) for op in grant.expand(list(authorized_operations))}
    return snake_case(operation) in allowed


def find_scope_violations(batch: Sequence[OperationRequest], grant: ScopeGrant,
                          authorized_operations: Optional[Sequence[str]] = None) -> List[str]:
    """Operation types outside ``grant``, in batch order, without duplicates."""
    invalid: List[str] = []
    for request in batch:
        if not scope_allows(grant, request.type, authorized_operations) and request.type not in invalid:
            invalid.append(request.type)
    return invalid


def find_authorship_violations(batch: Sequence[OperationRequest], acting_user: str,
                               registry: OperationRegistry = default_registry) -> List[str]:
    """Operation types whose author field does not name ``acting_user``."""
    return [
        request.type for request in batch
        if not is_operation_author(request.type, request.params, acting_user, registry=registry)
    ]


def authorize_batch(batch: Sequence[OperationRequest], grant: ScopeGrant, acting_user: str,
                    registry: OperationRegistry = default_registry,
                    authorized_operations: Optional[Sequence[str]] = None,
                    client_id: Optional[str] = None) -> None:
    """Raise ScopeViolation or AuthorshipViolation unless every request passes.

    Unknown operation types raise UnknownOperation before either check.
    """
    for request in batch:
        registry.resolve_or_raise(request.type)

    invalid_types = find_scope_violations(batch, grant, authorized_operations)
    foreign_types = find_authorship_violations(batch, acting_user, registry=registry)

    if invalid_types:
        logger.log_scope_violation(acting_user, invalid_types, client_id)
        raise ScopeViolation(invalid_types)
    if foreign_types:
        logger.log_authorship_violation(acting_user, foreign_types, client_id)
        raise AuthorshipViolation(acting_user, foreign_types)
