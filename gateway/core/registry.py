"""
Operation schema registry.

Base operations are the ledger's native types. Custom operations are views
over a base type with their own name and params; they are broadcast as their
``mapped_type`` and sign with its authority. The registry is built once and
never mutated afterwards.
"""

import re
from types import MappingProxyType
from typing import Dict, Iterable, List, Optional

from . import hooks
from .errors import RegistryError, UnknownOperation
from .paths import parse_path
from .schema import OperationSchema

POSTING = "posting"
ACTIVE = "active"
OWNER = "owner"

# name, roles, params
BASE_OPERATIONS = [
    ("vote", (POSTING, ACTIVE, OWNER), ("voter", "author", "permlink", "weight")),
    ("comment", (POSTING, ACTIVE, OWNER),
     ("parent_author", "parent_permlink", "author", "permlink", "title", "body", "json_metadata")),
    ("transfer", (ACTIVE, OWNER), ("from", "to", "amount", "memo")),
    ("transfer_to_vesting", (ACTIVE, OWNER), ("from", "to", "amount")),
    ("withdraw_vesting", (ACTIVE, OWNER), ("account", "vesting_shares")),
    ("limit_order_create", (ACTIVE, OWNER),
     ("owner", "orderid", "amount_to_sell", "min_to_receive", "fill_or_kill", "expiration")),
    ("limit_order_cancel", (ACTIVE, OWNER), ("owner", "orderid")),
    ("convert", (ACTIVE, OWNER), ("owner", "requestid", "amount")),
    ("account_create", (ACTIVE, OWNER),
     ("fee", "creator", "new_account_name", "owner", "active", "posting", "memo_key", "json_metadata")),
    ("account_update", (OWNER, ACTIVE), ("account", "owner", "active", "posting", "memo_key", "json_metadata")),
    ("witness_update", (ACTIVE, OWNER), ("owner", "url", "block_signing_key", "props", "fee")),
    ("account_witness_vote", (ACTIVE, OWNER), ("account", "witness", "approve")),
    ("account_witness_proxy", (ACTIVE, OWNER), ("account", "proxy")),
    ("custom_json", (POSTING, ACTIVE, OWNER), ("required_auths", "required_posting_auths", "id", "json")),
    ("delete_comment", (POSTING, ACTIVE, OWNER), ("author", "permlink")),
    ("comment_options", (POSTING, ACTIVE, OWNER),
     ("author", "permlink", "max_accepted_payout", "percent_steem_dollars", "allow_votes",
      "allow_curation_rewards", "extensions")),
    ("set_withdraw_vesting_route", (ACTIVE, OWNER), ("from_account", "to_account", "percent", "auto_vest")),
    ("claim_reward_balance", (POSTING, ACTIVE, OWNER), ("account", "reward_steem", "reward_sbd", "reward_vests")),
    ("delegate_vesting_shares", (ACTIVE, OWNER), ("delegator", "delegatee", "vesting_shares")),
    ("account_create_with_delegation", (ACTIVE, OWNER),
     ("fee", "delegation", "creator", "new_account_name", "owner", "active", "posting", "memo_key",
      "json_metadata", "extensions")),
    ("transfer_to_savings", (ACTIVE, OWNER), ("from", "to", "amount", "memo")),
    ("transfer_from_savings", (ACTIVE, OWNER), ("from", "request_id", "to", "amount", "memo")),
    ("cancel_transfer_from_savings", (ACTIVE, OWNER), ("from", "request_id")),
    ("change_recovery_account", (OWNER,), ("account_to_recover", "new_recovery_account", "extensions")),
]

# name, mapped_type, params
CUSTOM_OPERATIONS = [
    ("follow", "custom_json", ("follower", "following")),
    ("unfollow", "custom_json", ("follower", "following")),
    ("ignore", "custom_json", ("follower", "following")),
    ("reblog", "custom_json", ("account", "author", "permlink")),
]

# Which param must name the authenticated user
OPERATION_AUTHOR = {
    "vote": "voter",
    "comment": "author",
    "transfer": "from",
    "transfer_to_vesting": "from",
    "withdraw_vesting": "account",
    "limit_order_create": "owner",
    "limit_order_cancel": "owner",
    "convert": "owner",
    "account_create": "creator",
    "account_update": "account",
    "witness_update": "owner",
    "account_witness_vote": "account",
    "account_witness_proxy": "account",
    "custom_json": "required_posting_auths[0]",
    "delete_comment": "author",
    "comment_options": "author",
    "set_withdraw_vesting_route": "from_account",
    "claim_reward_balance": "account",
    "delegate_vesting_shares": "delegator",
    "account_create_with_delegation": "creator",
    "transfer_to_savings": "from",
    "transfer_from_savings": "from",
    "cancel_transfer_from_savings": "from",
    "change_recovery_account": "account_to_recover",
    "follow": "follower",
    "unfollow": "follower",
    "ignore": "follower",
    "reblog": "account",
}

# Account-list params that, when non-empty, may only name the acting user
SIGNER_FIELDS = {
    "custom_json": ("required_auths",),
}

# Params that may be absent or falsy (empty strings, 0, False, [])
OPTIONAL_FIELDS = {
    "comment": ("parent_author", "title", "json_metadata"),
    "transfer": ("memo",),
    "transfer_to_vesting": ("to",),
    "transfer_to_savings": ("memo",),
    "transfer_from_savings": ("memo", "request_id"),
    "cancel_transfer_from_savings": ("request_id",),
    "limit_order_create": ("fill_or_kill",),
    "account_create": ("json_metadata",),
    "account_update": ("owner", "active", "posting", "json_metadata"),
    "account_create_with_delegation": ("json_metadata", "extensions"),
    "account_witness_vote": ("approve",),
    "custom_json": ("required_auths",),
    "comment_options": ("max_accepted_payout", "percent_steem_dollars", "allow_votes",
                        "allow_curation_rewards", "extensions"),
    "set_withdraw_vesting_route": ("percent", "auto_vest"),
    "change_recovery_account": ("extensions",),
}

HOOKS = {
    "vote": (hooks.validate_vote, hooks.normalize_vote),
    "comment": (None, hooks.normalize_comment),
    "transfer": (hooks.validate_transfer, hooks.normalize_transfer),
    "transfer_to_vesting": (hooks.validate_transfer, hooks.normalize_transfer_to_vesting),
    "transfer_to_savings": (hooks.validate_transfer, hooks.normalize_transfer),
    "transfer_from_savings": (hooks.validate_transfer, hooks.normalize_transfer),
    "account_witness_vote": (hooks.validate_account_witness_vote, hooks.normalize_account_witness_vote),
    "delegate_vesting_shares": (hooks.validate_delegate_vesting_shares, hooks.normalize_delegate_vesting_shares),
    "follow": (hooks.validate_follow, hooks.normalize_follow),
    "unfollow": (hooks.validate_follow, hooks.normalize_unfollow),
    "ignore": (hooks.validate_follow, hooks.normalize_ignore),
    "reblog": (hooks.validate_reblog, hooks.normalize_reblog),
}


def snake_case(name: str) -> str:
    """Canonical operation name: ``voteComment``, ``Vote-Comment`` -> ``vote_comment``."""
    if not isinstance(name, str):
        return ""
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name)
    name = re.sub(r"[^A-Za-z0-9]+", "_", name)
    return name.strip("_").lower()


def _schema(name, params, roles=(), mapped_type=None) -> OperationSchema:
    author_field = OPERATION_AUTHOR.get(name)
    if author_field is not None:
        parse_path(author_field)
    validate, normalize = HOOKS.get(name, (None, None))
    return OperationSchema(
        name=name,
        params=tuple(params),
        roles=tuple(roles),
        author_field=author_field,
        optional_fields=tuple(OPTIONAL_FIELDS.get(name, ())),
        signer_fields=tuple(SIGNER_FIELDS.get(name, ())),
        mapped_type=mapped_type,
        validate=validate,
        normalize=normalize,
    )


class OperationRegistry:
    """Immutable catalog of base and custom operation schemas."""

    def __init__(self, base: Iterable[OperationSchema], custom: Iterable[OperationSchema] = ()):
        base_table: Dict[str, OperationSchema] = {}
        for schema in base:
            if schema.name in base_table:
                raise RegistryError(f"Duplicate operation: {schema.name}")
            if schema.mapped_type is not None:
                raise RegistryError(f"Base operation {schema.name} cannot map to another type")
            base_table[schema.name] = schema

        custom_table: Dict[str, OperationSchema] = {}
        for schema in custom:
            if schema.name in base_table or schema.name in custom_table:
                raise RegistryError(f"Duplicate operation: {schema.name}")
            mapped = base_table.get(schema.mapped_type or "")
            if mapped is None:
                raise RegistryError(
                    f"Custom operation {schema.name} maps to unknown base operation {schema.mapped_type!r}"
                )
            # Custom operations sign with the authority of their base type
            custom_table[schema.name] = schema.with_roles(mapped.roles)

        self._base = MappingProxyType(base_table)
        self._custom = MappingProxyType(custom_table)

    def resolve(self, name: str) -> Optional[OperationSchema]:
        """Schema for ``name`` in any casing, or None when unknown."""
        key = snake_case(name)
        return self._base.get(key) or self._custom.get(key)

    def resolve_or_raise(self, name: str) -> OperationSchema:
        schema = self.resolve(name)
        if schema is None:
            raise UnknownOperation(name)
        return schema

    def base(self, name: str) -> Optional[OperationSchema]:
        return self._base.get(snake_case(name))

    def broadcast_type(self, name: str) -> str:
        return self.resolve_or_raise(name).broadcast_type

    def author_field(self, name: str) -> Optional[str]:
        return self.resolve_or_raise(name).author_field

    def names(self) -> List[str]:
        return list(self._base) + list(self._custom)

    def custom_names(self) -> List[str]:
        return list(self._custom)

    def __contains__(self, name) -> bool:
        return self.resolve(name) is not None

    def __len__(self) -> int:
        return len(self._base) + len(self._custom)


def build_default_registry() -> OperationRegistry:
    base = [_schema(name, params, roles=roles) for name, roles, params in BASE_OPERATIONS]
    custom = [_schema(name, params, mapped_type=mapped) for name, mapped, params in CUSTOM_OPERATIONS]
    return OperationRegistry(base, custom)


# Global registry instance
registry = build_default_registry()


def get_operation(name: str) -> Optional[OperationSchema]:
    """Resolve an operation name against the global registry."""
    return registry.resolve(name)
