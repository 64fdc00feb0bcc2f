"""
Shared fixtures: a throwaway database per test and a fresh in-memory ledger.
"""

import os
import tempfile

import pytest

# Set up test environment with temporary database before gateway modules load
TEST_DB_PATH = tempfile.mkstemp(suffix='.db')[1]
os.environ['DB_PATH'] = TEST_DB_PATH
os.environ.setdefault('LEDGER_PROVIDER', 'memory')

from gateway.core import config, hooks
from gateway.core.db import init_db
from gateway.core.ledger import InMemoryLedgerClient


@pytest.fixture
def temp_db(tmp_path):
    """Point the gateway at an empty database for one test."""
    db_path = str(tmp_path / "gateway.db")
    previous = config.DB_PATH
    config.DB_PATH = db_path
    init_db()
    yield db_path
    config.DB_PATH = previous


@pytest.fixture
def ledger():
    """In-memory ledger with a few accounts, installed for hook lookups."""
    client = InMemoryLedgerClient({
        "alice": {},
        "bob": {},
        "carol": {},
    })
    previous = hooks._ledger
    hooks.use_ledger(client)
    yield client
    hooks.use_ledger(previous)
