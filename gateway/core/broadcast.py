"""
Broadcast dispatch and the end-to-end broadcast pipeline.

Pipeline order for a batch: resolve every type, validate every request,
default authors, authorize the whole batch, normalize, then dispatch with
custom types rewritten to their base type.
"""

import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from . import config
from .authorizer import authorize_batch
from .errors import ErrorKind, RemoteBroadcastFailure, ValidationFailed
from .ledger import LedgerClient, LedgerError
from .operation import describe_remote_error, normalize_query, set_default_author, validate
from .registry import OperationRegistry, registry as default_registry
from .schema import FieldError, OperationRequest, ScopeGrant
from util.logging import logger


@dataclass
class PreparedOperation:
    operation: str
    params: Dict[str, Any]
    normalized_query: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"operation": self.operation, "params": self.params, "normalized_query": self.normalized_query}


@dataclass
class BroadcastResult:
    result: Dict[str, Any]
    operations: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)


def decode_transaction(encoded: Optional[str]) -> List[OperationRequest]:
    """Decode the base64 JSON ``[[type, params], ...]`` transaction form."""
    if not encoded:
        raise ValidationFailed([FieldError(field="base64", error=ErrorKind.TX_BASE64_REQUIRED)])
    try:
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        raise ValidationFailed([FieldError(field="base64", error=ErrorKind.TX_BASE64_ENCODE)])
    try:
        parsed = json.loads(decoded)
        if not isinstance(parsed, list) or not parsed:
            raise ValueError("transaction must be a non-empty list")
        return [OperationRequest.from_pair(pair) for pair in parsed]
    except ValueError:
        raise ValidationFailed([FieldError(field="base64", error=ErrorKind.TX_BASE64_JSON)])


class BroadcastDispatcher:
    """Hands authorized operations to the ledger client."""

    def __init__(self, ledger: LedgerClient, registry: OperationRegistry = default_registry,
                 signing_material: Any = None):
        self.ledger = ledger
        self.registry = registry
        self.signing_material = signing_material

    def map_operations(self, requests: Sequence[OperationRequest]) -> List[Tuple[str, Dict[str, Any]]]:
        return [(self.registry.broadcast_type(r.type), r.params) for r in requests]

    async def send(self, requests: Sequence[OperationRequest], signing_material: Any = None) -> BroadcastResult:
        operations = self.map_operations(requests)
        if signing_material is None:
            signing_material = self.signing_material
        try:
            result = await self.ledger.broadcast(operations, signing_material)
        except LedgerError as e:
            message = describe_remote_error(e)
            logger.error(f"Transaction broadcast failed: {message}")
            raise RemoteBroadcastFailure(message, remote_error=e) from e
        return BroadcastResult(result=result, operations=operations)


class BroadcastPipeline:
    """Validate, authorize, normalize and dispatch operation batches."""

    def __init__(self, dispatcher: BroadcastDispatcher, registry: OperationRegistry = default_registry,
                 authorized_operations: Optional[Sequence[str]] = None):
        self.dispatcher = dispatcher
        self.registry = registry
        self.authorized_operations = authorized_operations

    async def validate_batch(self, batch: Sequence[OperationRequest]) -> List[FieldError]:
        errors: List[FieldError] = []
        for request in batch:
            request_errors = await validate(request.type, request.params, registry=self.registry)
            if request_errors:
                logger.log_validation_failure(request.type, request_errors)
            errors.extend(request_errors)
        return errors

    async def prepare(self, batch: Sequence[OperationRequest], acting_user: str) -> List[PreparedOperation]:
        """Validate and normalize without authorizing or broadcasting."""
        for request in batch:
            self.registry.resolve_or_raise(request.type)
        errors = await self.validate_batch(batch)
        if errors:
            raise ValidationFailed(errors)

        prepared = []
        for request in batch:
            normalized = await normalize_query(request.type, request.params, acting_user, registry=self.registry)
            prepared.append(PreparedOperation(request.type, request.params, normalized))
        return prepared

    async def broadcast(self, batch: Sequence[OperationRequest], grant: ScopeGrant, acting_user: str,
                        signing_material: Any = None, client_id: Optional[str] = None) -> BroadcastResult:
        for request in batch:
            self.registry.resolve_or_raise(request.type)

        errors = await self.validate_batch(batch)
        if errors:
            raise ValidationFailed(errors)

        defaulted = [
            OperationRequest(r.type, set_default_author(r.type, r.params, acting_user, registry=self.registry))
            for r in batch
        ]
        authorize_batch(defaulted, grant, acting_user, registry=self.registry,
                        authorized_operations=self.authorized_operations or config.AUTHORIZED_OPERATIONS,
                        client_id=client_id)

        normalized = []
        for request in defaulted:
            params = await normalize_query(request.type, request.params, acting_user, registry=self.registry)
            normalized.append(OperationRequest(request.type, params))

        types = [r.type for r in batch]
        logger.log_broadcast(acting_user, types, status="dispatching", details={"client_id": client_id})
        result = await self.dispatcher.send(normalized, signing_material)
        logger.log_broadcast(acting_user, types, details={"tx_id": result.result.get("id") if result.result else None})
        return result
