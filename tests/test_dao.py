"""
Tests for the SQLite data access layer.
"""

from gateway.core.dao import (
    create_app,
    create_token,
    delete_ip_record,
    get_app,
    get_ip_record,
    get_token,
    get_user_metadata,
    list_ip_records,
    put_ip_record,
    revoke_tokens,
    update_user_metadata,
)
from gateway.core.db import health_check
from gateway.core.schema import RateWindowRecord


def test_database_health(temp_db):
    """Test that database initializes correctly."""
    assert health_check() == True, "Database should be healthy"


def test_ip_record_upsert(temp_db):
    put_ip_record(RateWindowRecord("1.1.1.1", [1, 2]))
    put_ip_record(RateWindowRecord("1.1.1.1", [1, 2, 3]))

    record = get_ip_record("1.1.1.1")
    assert record.uses == [1, 2, 3]
    assert [r.key for r in list_ip_records()] == ["1.1.1.1"]

    assert delete_ip_record("1.1.1.1")
    assert get_ip_record("1.1.1.1") is None
    assert not delete_ip_record("1.1.1.1")


def test_tokens_round_trip_scope(temp_db):
    create_app("cool-app", owner="alice")
    create_token("t1", "alice", role="app", client_id="cool-app", scope=["vote", "comment"])

    record = get_token("t1")
    assert record.user == "alice"
    assert record.scope == ["vote", "comment"]
    assert not record.grant.wildcard
    assert get_app("cool-app").owner == "alice"
    assert get_token("missing") is None


def test_revoke_filters(temp_db):
    create_token("t1", "alice", client_id="a")
    create_token("t2", "alice", client_id="b")
    create_token("t3", "bob", client_id="a")

    assert revoke_tokens() == 0
    assert revoke_tokens(user="alice", client_id="a") == 1
    assert revoke_tokens(client_id="a") == 1
    assert get_token("t2") is not None


def test_user_metadata_per_app(temp_db):
    assert get_user_metadata("a", "alice") == {}
    update_user_metadata("a", "alice", {"theme": "dark"})
    update_user_metadata("a", "alice", {"theme": "light"})
    update_user_metadata("b", "alice", {"lang": "fr"})

    assert get_user_metadata("a", "alice") == {"theme": "light"}
    assert get_user_metadata("b", "alice") == {"lang": "fr"}
