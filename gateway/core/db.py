"""
SQLite persistence for the gateway: IP windows, apps, tokens and user metadata.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator
from . import config


@contextmanager
def get_db() -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    Path(config.DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(config.DB_PATH)
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize the database with required tables."""
    with get_db() as conn:
        cursor = conn.cursor()

        # Registration uses per client IP, epoch milliseconds as a JSON list
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS ips (
                ip TEXT PRIMARY KEY,
                client_id TEXT,
                uses TEXT NOT NULL DEFAULT '[]',
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS apps (
                client_id TEXT PRIMARY KEY,
                owner TEXT NOT NULL,
                name TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS tokens (
                token TEXT PRIMARY KEY,
                client_id TEXT,
                user TEXT NOT NULL,
                role TEXT NOT NULL DEFAULT 'app',  -- 'app' or 'user'
                scope TEXT NOT NULL DEFAULT '[]',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS user_metadata (
                client_id TEXT NOT NULL,
                user TEXT NOT NULL,
                metadata TEXT NOT NULL DEFAULT '{}',
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (client_id, user)
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_tokens_user_client ON tokens(user, client_id)')

        conn.commit()


def health_check():
    """Check database health."""
    try:
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [table[0] for table in cursor.fetchall()]
            required_tables = ['ips', 'apps', 'tokens', 'user_metadata']
            return all(table in table_names for table in required_tables)
    except sqlite3.Error:
        return False
