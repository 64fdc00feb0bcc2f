"""
Query normalization and validation for single operations, plus parsing of
ledger error messages.
"""

import copy
import inspect
from typing import Any, Dict, List, Optional, Tuple

from .errors import ErrorKind, RemoteBroadcastFailure
from .ledger import LedgerError
from .paths import get_path, has_path, root_field, set_path
from .registry import OperationRegistry, registry as default_registry
from .schema import FieldError, OperationSchema, is_blank

GENERIC_BROADCAST_ERROR = "Transaction broadcast failed"


async def _maybe_await(result):
    if inspect.isawaitable(result):
        return await result
    return result


def get_error_message(error: Any) -> str:
    """Interpolate the node's templated error message.

    Reads ``data.stack[0].format`` and replaces every ``${name}`` with the
    matching entry of ``data.stack[0].data``. Returns '' when the error
    carries no template.
    """
    if isinstance(error, LedgerError):
        error = {"data": error.data}
    if not isinstance(error, dict) or not has_path(error, "data.stack[0].format"):
        return ""

    message = str(get_path(error, "data.stack[0].format"))
    data = get_path(error, "data.stack[0].data")
    if isinstance(data, dict):
        for name, value in data.items():
            message = message.replace("${" + str(name) + "}", str(value))
    return message


def describe_remote_error(error: Any) -> str:
    """Best-effort human readable message; never empty."""
    message = get_error_message(error)
    if not message:
        message = getattr(error, "message", None) or (str(error) if error else "")
    return message or GENERIC_BROADCAST_ERROR


def _names_only(accounts: Any, username: str) -> bool:
    """Every entry of an account list, or the single account, is ``username``."""
    if isinstance(accounts, (list, tuple)):
        return all(account == username for account in accounts)
    return accounts == username


def is_operation_author(operation: str, query: Dict[str, Any], username: str,
                        registry: OperationRegistry = default_registry) -> bool:
    """True when the operation acts for ``username`` alone.

    When the author path indexes into an account list, every entry of that
    list must be ``username``.
    Signer fields must be empty or name only ``username``. Operations
    without an author field are authorized vacuously.
    """
    schema = registry.resolve_or_raise(operation)
    query = query or {}
    for field in schema.signer_fields:
        value = query.get(field)
        if not is_blank(value) and not _names_only(value, username):
            return False

    if not schema.author_field:
        return True
    authors = query.get(root_field(schema.author_field))
    if isinstance(authors, (list, tuple)):
        return bool(authors) and _names_only(authors, username)
    return get_path(query, schema.author_field) == username


def set_default_author(operation: str, query: Dict[str, Any], username: str,
                       registry: OperationRegistry = default_registry) -> Dict[str, Any]:
    """Copy of ``query`` with an absent or empty author field set to ``username``."""
    schema = registry.resolve_or_raise(operation)
    c_query = copy.deepcopy(query) if query else {}
    if schema.author_field and is_blank(get_path(c_query, schema.author_field)):
        set_path(c_query, schema.author_field, username)
    return c_query


def is_valid(operation: str, params: Dict[str, Any],
             registry: OperationRegistry = default_registry) -> bool:
    """Every schema param is present (no hooks, no optional-field exemption)."""
    schema = registry.resolve(operation)
    if schema is None:
        return False
    return all(param in params for param in schema.params)


def validate_required(schema: OperationSchema, query: Dict[str, Any]) -> List[FieldError]:
    errors = []
    author_field = root_field(schema.author_field) if schema.author_field else None
    for param in schema.params:
        if param in schema.optional_fields:
            continue
        if author_field and param == author_field:
            continue
        if is_blank(query.get(param)):
            errors.append(FieldError(field=param, error=ErrorKind.IS_REQUIRED, values={"field": param}))
    return errors


async def validate(operation: str, query: Dict[str, Any],
                   registry: OperationRegistry = default_registry) -> List[FieldError]:
    """Field errors for ``query``; an empty list means valid.

    Unknown operations raise UnknownOperation.
    """
    schema = registry.resolve_or_raise(operation)
    query = query or {}
    errors = validate_required(schema, query)
    if schema.validate is not None:
        try:
            await _maybe_await(schema.validate(query, errors))
        except LedgerError as e:
            raise RemoteBroadcastFailure(describe_remote_error(e), remote_error=e) from e
    return errors


async def normalize_query(operation: str, query: Dict[str, Any], username: str,
                          registry: OperationRegistry = default_registry) -> Dict[str, Any]:
    """Author-default ``query`` then apply the operation's normalize hook."""
    schema = registry.resolve_or_raise(operation)
    c_query = set_default_author(schema.name, query, username, registry=registry)
    if schema.normalize is None:
        return c_query
    try:
        return await _maybe_await(schema.normalize(c_query))
    except LedgerError as e:
        raise RemoteBroadcastFailure(describe_remote_error(e), remote_error=e) from e


async def normalize_and_validate(operation: str, query: Dict[str, Any], username: str,
                                 registry: OperationRegistry = default_registry
                                 ) -> Tuple[Optional[Dict[str, Any]], List[FieldError]]:
    """``(normalized, [])`` when valid, ``(None, errors)`` otherwise."""
    errors = await validate(operation, query, registry=registry)
    if errors:
        return None, errors
    return await normalize_query(operation, query, username, registry=registry), []
