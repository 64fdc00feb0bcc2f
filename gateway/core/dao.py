"""
Data access for IP windows, apps, tokens and user metadata.
"""

import json
import sqlite3
from typing import Any, Dict, List, Optional

from .db import get_db, init_db
from .schema import AppRecord, RateWindowRecord, TokenRecord
from util.logging import logger

# Initialize database on module import
init_db()


def _load_json(raw: Optional[str], default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning(f"Discarding malformed JSON column value: {raw[:50]}")
        return default


# IP windows

def get_ip_record(ip: str) -> Optional[RateWindowRecord]:
    """Registration uses recorded for ``ip``, or None."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT ip, uses FROM ips WHERE ip = ?", (ip,))
        row = cursor.fetchone()

    if not row:
        return None
    uses = _load_json(row[1], [])
    if not isinstance(uses, list):
        uses = []
    return RateWindowRecord(key=row[0], uses=uses)


def put_ip_record(record: RateWindowRecord) -> None:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "INSERT INTO ips (ip, client_id, uses) VALUES (?, ?, ?) "
            "ON CONFLICT(ip) DO UPDATE SET uses = excluded.uses, updated_at = CURRENT_TIMESTAMP",
            (record.key, record.key, json.dumps(record.uses))
        )
        conn.commit()


def list_ip_records() -> List[RateWindowRecord]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT ip, uses FROM ips ORDER BY ip")
        rows = cursor.fetchall()
    return [RateWindowRecord(key=ip, uses=_load_json(uses, [])) for ip, uses in rows]


def delete_ip_record(ip: str) -> bool:
    """Operator reset of one IP window."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("DELETE FROM ips WHERE ip = ?", (ip,))
        conn.commit()
        return cursor.rowcount > 0


# Apps

def create_app(client_id: str, owner: str, name: Optional[str] = None) -> AppRecord:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "INSERT INTO apps (client_id, owner, name) VALUES (?, ?, ?)",
            (client_id, owner, name)
        )
        conn.commit()
    return AppRecord(client_id=client_id, owner=owner, name=name)


def get_app(client_id: str) -> Optional[AppRecord]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT client_id, owner, name FROM apps WHERE client_id = ?", (client_id,))
        row = cursor.fetchone()
    if not row:
        return None
    return AppRecord(client_id=row[0], owner=row[1], name=row[2])


# Tokens

def create_token(token: str, user: str, role: str = "app", client_id: Optional[str] = None,
                 scope: Optional[List[str]] = None) -> TokenRecord:
    """Store an issued token. Issuance itself happens elsewhere."""
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "INSERT INTO tokens (token, client_id, user, role, scope) VALUES (?, ?, ?, ?, ?)",
            (token, client_id, user, role, json.dumps(scope or []))
        )
        conn.commit()
    return TokenRecord(token=token, user=user, role=role, client_id=client_id, scope=list(scope or []))


def get_token(token: str) -> Optional[TokenRecord]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT token, user, role, client_id, scope, created_at FROM tokens WHERE token = ?",
            (token,)
        )
        row = cursor.fetchone()
    if not row:
        return None
    token_val, user, role, client_id, scope, created_at = row
    return TokenRecord(token=token_val, user=user, role=role, client_id=client_id,
                       scope=_load_json(scope, []), created_at=created_at)


def revoke_tokens(user: Optional[str] = None, client_id: Optional[str] = None) -> int:
    """Delete tokens matching every given filter. Refuses an empty filter."""
    where = []
    values = []
    if user:
        where.append("user = ?")
        values.append(user)
    if client_id:
        where.append("client_id = ?")
        values.append(client_id)
    if not where:
        return 0

    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(f"DELETE FROM tokens WHERE {' AND '.join(where)}", values)
        conn.commit()
        return cursor.rowcount


# User metadata

def get_user_metadata(client_id: str, user: str) -> Dict[str, Any]:
    with get_db() as conn:
        cursor = conn.cursor()
        cursor.execute(
            "SELECT metadata FROM user_metadata WHERE client_id = ? AND user = ?",
            (client_id, user)
        )
        row = cursor.fetchone()
    return _load_json(row[0], {}) if row else {}


def update_user_metadata(client_id: str, user: str, metadata: Dict[str, Any]) -> None:
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO user_metadata (client_id, user, metadata) VALUES (?, ?, ?) "
                "ON CONFLICT(client_id, user) DO UPDATE SET metadata = excluded.metadata, "
                "updated_at = CURRENT_TIMESTAMP",
                (client_id, user, json.dumps(metadata))
            )
            conn.commit()
    except sqlite3.Error as e:
        logger.error(f"Failed to update metadata for user '{user}' (app '{client_id}'): {e}")
        raise
