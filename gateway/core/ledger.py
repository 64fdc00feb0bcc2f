"""
Ledger client boundary.

The gateway only reads accounts, hands finished operation batches to a
signing broadcaster and asks it to create sponsored accounts. Consensus
rules, key derivation and transaction signing live on the other side.
"""

import asyncio
import hashlib
import json
import itertools
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from util.logging import logger


class LedgerError(Exception):
    """Structured error reported by the ledger node.

    ``data`` mirrors the node's error payload, e.g.
    ``{"stack": [{"format": "...${name}...", "data": {"name": "..."}}]}``.
    """

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.data = data or {}
        self.code = code


class LedgerClient(ABC):
    """Abstract interface for ledger access."""

    @abstractmethod
    async def get_accounts(self, names: Sequence[str]) -> List[Dict[str, Any]]:
        """Return account objects for the names that exist."""
        pass

    @abstractmethod
    async def broadcast(self, operations: List[Tuple[str, Dict[str, Any]]], signing_material: Any) -> Dict[str, Any]:
        """Sign and submit one transaction holding ``operations``."""
        pass

    @abstractmethod
    async def create_account(self, new_account_name: str, password: str, creator: str,
                             fee: str, delegation: str, json_metadata: str) -> Dict[str, Any]:
        """Create a sponsored account whose keys derive from ``password``."""
        pass

    async def account_exists(self, name: str) -> bool:
        accounts = await self.get_accounts([name])
        return any(a.get("name") == name for a in accounts)


class InMemoryLedgerClient(LedgerClient):
    """Ledger kept in process memory, for development and tests."""

    def __init__(self, accounts: Optional[Dict[str, Dict[str, Any]]] = None):
        self._accounts: Dict[str, Dict[str, Any]] = {}
        self._blocks = itertools.count(1)
        self.transactions: List[Dict[str, Any]] = []
        self.fail_with: Optional[LedgerError] = None
        for name, account in (accounts or {}).items():
            self.add_account(name, **account)

    def add_account(self, name: str, **fields) -> Dict[str, Any]:
        account = {"name": name, "memo_key": "", "json_metadata": "{}"}
        account.update(fields)
        self._accounts[name] = account
        return account

    async def get_accounts(self, names: Sequence[str]) -> List[Dict[str, Any]]:
        return [dict(self._accounts[n]) for n in names if n in self._accounts]

    async def broadcast(self, operations, signing_material) -> Dict[str, Any]:
        if self.fail_with is not None:
            raise self.fail_with
        trx = {"operations": [[t, p] for t, p in operations], "extensions": []}
        tx_id = hashlib.sha256(json.dumps(trx, sort_keys=True).encode()).hexdigest()[:40]
        self.transactions.append(trx)
        return {"id": tx_id, "block_num": next(self._blocks), "trx_num": 0, "expired": False}

    async def create_account(self, new_account_name, password, creator, fee, delegation, json_metadata):
        if self.fail_with is not None:
            raise self.fail_with
        if new_account_name in self._accounts:
            raise LedgerError(
                "Account already exists",
                data={"stack": [{"format": "Account ${name} already exists", "data": {"name": new_account_name}}]}
            )
        self.add_account(new_account_name, json_metadata=json_metadata, recovery_account=creator)
        return {"name": new_account_name, "creator": creator, "fee": fee, "delegation": delegation}


class JsonRpcLedgerClient(LedgerClient):
    """JSON-RPC client for a node fronted by a signing broadcaster."""

    GET_ACCOUNTS = "condenser_api.get_accounts"
    BROADCAST = "broadcaster.broadcast_transaction"
    CREATE_ACCOUNT = "broadcaster.account_create_with_delegation"

    def __init__(self, url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self._ids = itertools.count(1)

    def _call(self, method: str, params: Any) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Ledger RPC {method} failed: {e}")
            raise LedgerError(f"Ledger RPC {method} failed: {e}") from e

        if not isinstance(body, dict):
            logger.error(f"Ledger RPC {method} returned a non-object body")
            raise LedgerError(f"Ledger RPC {method} returned a malformed response")
        if body.get("error"):
            error = body["error"]
            if not isinstance(error, dict):
                raise LedgerError(str(error))
            raise LedgerError(error.get("message", "Ledger error"), data=error.get("data"), code=error.get("code"))
        return body.get("result")

    async def get_accounts(self, names):
        return await asyncio.to_thread(self._call, self.GET_ACCOUNTS, [list(names)]) or []

    async def broadcast(self, operations, signing_material):
        trx = {"operations": [[t, p] for t, p in operations], "extensions": []}
        return await asyncio.to_thread(self._call, self.BROADCAST, {"trx": trx, "keys": signing_material})

    async def create_account(self, new_account_name, password, creator, fee, delegation, json_metadata):
        params = {
            "creator": creator,
            "new_account_name": new_account_name,
            "password": password,
            "fee": fee,
            "delegation": delegation,
            "json_metadata": json_metadata,
        }
        return await asyncio.to_thread(self._call, self.CREATE_ACCOUNT, params)
