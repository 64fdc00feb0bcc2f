"""
Per-operation hooks: optional fields, validation and normalization.

Validation hooks append FieldErrors to the list they receive. Normalize hooks
return a new params dict shaped for broadcast. Hooks that touch the ledger
are coroutines.
"""

import json
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from .errors import ErrorKind
from .ledger import LedgerClient
from .schema import FieldError, is_blank

ASSET_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([A-Z]{3,6})\s*$")
ASSET_PRECISION = {"VESTS": 6, "SCORE": 6}
DEFAULT_PRECISION = 3

VOTE_WEIGHT_MIN = -10000
VOTE_WEIGHT_MAX = 10000

_ledger: Optional[LedgerClient] = None


def use_ledger(client: Optional[LedgerClient]) -> None:
    """Set the ledger client used by existence checks."""
    global _ledger
    _ledger = client


def current_ledger() -> LedgerClient:
    global _ledger
    if _ledger is None:
        from .config import get_ledger_client
        _ledger = get_ledger_client()
    return _ledger


def format_asset(value: Any) -> Optional[str]:
    """``'1 STEEM'`` -> ``'1.000 STEEM'``; None when not an asset.

    Amounts are padded to the symbol's precision and never rounded: an
    amount with more significant decimals than the symbol allows is not
    an asset.
    """
    if not isinstance(value, str):
        return None
    match = ASSET_PATTERN.match(value)
    if not match:
        return None
    amount, symbol = match.groups()
    quantum = Decimal(1).scaleb(-ASSET_PRECISION.get(symbol, DEFAULT_PRECISION))
    try:
        exact = Decimal(amount)
        padded = exact.quantize(quantum)
    except InvalidOperation:
        return None
    if padded != exact:
        return None
    return f"{padded} {symbol}"


def parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.lower() in ("true", "1", "false", "0"):
        return value.lower() in ("true", "1")
    return None


def parse_int(value: Any) -> Optional[int]:
    """Integral ints, floats and digit strings; None for anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str) and re.fullmatch(r"\s*-?\d+\s*", value):
        return int(value)
    return None


async def _check_account(params: Dict[str, Any], field: str, errors: List[FieldError]) -> None:
    name = params.get(field)
    if is_blank(name):
        return
    if not isinstance(name, str) or not await current_ledger().account_exists(name):
        errors.append(FieldError(field=field, error=ErrorKind.USER_EXIST, values={"user": str(name)}))


def _check_asset(params: Dict[str, Any], field: str, errors: List[FieldError], symbols=None) -> None:
    value = params.get(field)
    if is_blank(value):
        return
    formatted = format_asset(value)
    if formatted is None or (symbols and formatted.split(" ")[1] not in symbols):
        errors.append(FieldError(field=field, error=ErrorKind.AMOUNT_FORMAT, values={"field": field}))


# vote

async def validate_vote(params, errors):
    weight = params.get("weight")
    if not is_blank(weight):
        weight = parse_int(weight)
        if weight is None or not VOTE_WEIGHT_MIN <= weight <= VOTE_WEIGHT_MAX:
            errors.append(FieldError(
                field="weight",
                error=ErrorKind.VOTE_WEIGHT,
                values={"min": str(VOTE_WEIGHT_MIN), "max": str(VOTE_WEIGHT_MAX)}
            ))
    await _check_account(params, "author", errors)


def normalize_vote(params):
    params = dict(params)
    weight = parse_int(params.get("weight"))
    if weight is not None:
        params["weight"] = weight
    return params


# comment

def normalize_comment(params):
    params = dict(params)
    params.setdefault("parent_author", "")
    params.setdefault("title", "")
    metadata = params.get("json_metadata")
    if isinstance(metadata, (dict, list)):
        params["json_metadata"] = json.dumps(metadata)
    elif is_blank(metadata):
        params["json_metadata"] = "{}"
    return params


# transfers

async def validate_transfer(params, errors):
    _check_asset(params, "amount", errors)
    await _check_account(params, "to", errors)


def _format_amount(params):
    params = dict(params)
    formatted = format_asset(params.get("amount"))
    if formatted:
        params["amount"] = formatted
    return params


def normalize_transfer(params):
    params = _format_amount(params)
    params["memo"] = params.get("memo") or ""
    return params


def normalize_transfer_to_vesting(params):
    params = _format_amount(params)
    if is_blank(params.get("to")):
        params["to"] = params.get("from")
    return params


# witness

def validate_account_witness_vote(params, errors):
    if "approve" in params and parse_bool(params["approve"]) is None:
        errors.append(FieldError(field="approve", error=ErrorKind.BOOLEAN_FORMAT, values={"field": "approve"}))


def normalize_account_witness_vote(params):
    params = dict(params)
    approve = parse_bool(params.get("approve"))
    params["approve"] = True if approve is None else approve
    return params


# delegation

async def validate_delegate_vesting_shares(params, errors):
    _check_asset(params, "vesting_shares", errors, symbols=("VESTS",))
    await _check_account(params, "delegatee", errors)


def normalize_delegate_vesting_shares(params):
    params = dict(params)
    formatted = format_asset(params.get("vesting_shares"))
    if formatted:
        params["vesting_shares"] = formatted
    return params


# custom operations, broadcast as custom_json

async def validate_follow(params, errors):
    await _check_account(params, "following", errors)


async def validate_reblog(params, errors):
    await _check_account(params, "author", errors)


def _follow_json(params, what):
    follower = params.get("follower")
    return {
        "required_auths": [],
        "required_posting_auths": [follower],
        "id": "follow",
        "json": json.dumps(["follow", {"follower": follower, "following": params.get("following"), "what": what}]),
    }


def normalize_follow(params):
    return _follow_json(params, ["blog"])


def normalize_unfollow(params):
    return _follow_json(params, [])


def normalize_ignore(params):
    return _follow_json(params, ["ignore"])


def normalize_reblog(params):
    account = params.get("account")
    return {
        "required_auths": [],
        "required_posting_auths": [account],
        "id": "follow",
        "json": json.dumps(["reblog", {
            "account": account,
            "author": params.get("author"),
            "permlink": params.get("permlink"),
        }]),
    }
