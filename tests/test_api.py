"""
End-to-end tests for the gateway HTTP API.
"""

import base64
import json

import pytest
from fastapi.testclient import TestClient

from gateway.core import dao
from gateway.core.ledger import LedgerError
from gateway.core.rate_limit import InMemoryRateWindowStore, RegistrationRateLimiter

APP_TOKEN = "app-token-alice"
SCOPED_TOKEN = "app-token-alice-vote"
USER_TOKEN = "user-token-alice"


def auth(token):
    return {"Authorization": f"Bearer {token}"}


class TestGatewayAPI:
    """Test cases for gateway API endpoints."""

    @pytest.fixture
    def client(self, temp_db, ledger):
        from gateway.api import main

        main.configure(
            ledger=ledger,
            limiter=RegistrationRateLimiter(InMemoryRateWindowStore(), 2, 1, "week"),
        )
        dao.create_app("cool-app", owner="alice", name="Cool App")
        dao.create_app("other-app", owner="bob")
        dao.create_token(APP_TOKEN, "alice", role="app", client_id="cool-app", scope=[])
        dao.create_token(SCOPED_TOKEN, "alice", role="app", client_id="cool-app", scope=["vote"])
        dao.create_token("app-token-alice-other", "alice", role="app", client_id="other-app", scope=[])
        dao.create_token(USER_TOKEN, "alice", role="user", client_id=None, scope=[])

        with TestClient(main.app) as test_client:
            yield test_client

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["db_health"] is True
        assert data["operation_count"] > 0

    def test_missing_token(self, client):
        response = client.post("/api/broadcast", json={"operations": [["vote", {}]]})
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_grant"

    def test_unknown_token(self, client):
        response = client.get("/api/me", headers=auth("nope"))
        assert response.status_code == 401

    def test_me(self, client):
        response = client.get("/api/me", headers=auth(APP_TOKEN))
        assert response.status_code == 200
        data = response.json()
        assert data["user"] == "alice"
        assert data["_id"] == "alice"
        assert data["account"]["name"] == "alice"
        assert "vote" in data["scope"]
        assert data["user_metadata"] == {}

    def test_me_scope_is_explicit_grant(self, client):
        response = client.get("/api/me", headers=auth(SCOPED_TOKEN))
        assert response.json()["scope"] == ["vote"]

    def test_update_metadata(self, client):
        response = client.put("/api/me", headers=auth(APP_TOKEN), json={"user_metadata": {"theme": "dark"}})
        assert response.status_code == 200
        assert response.json()["user_metadata"] == {"theme": "dark"}

        response = client.get("/api/me", headers=auth(APP_TOKEN))
        assert response.json()["user_metadata"] == {"theme": "dark"}

    def test_update_metadata_must_be_object(self, client):
        response = client.put("/api/me", headers=auth(APP_TOKEN), json={"user_metadata": ["a"]})
        assert response.status_code == 400

    def test_update_metadata_requires_app_token(self, client):
        response = client.put("/api/me", headers=auth(USER_TOKEN), json={"user_metadata": {}})
        assert response.status_code == 401

    def test_broadcast(self, client, ledger):
        response = client.post("/api/broadcast", headers=auth(APP_TOKEN), json={
            "operations": [["vote", {"author": "bob", "permlink": "p", "weight": 10000}]]
        })
        assert response.status_code == 200
        assert response.json()["result"]["id"]
        assert ledger.transactions[0]["operations"][0][1]["voter"] == "alice"

    def test_broadcast_for_other_account_rejected(self, client, ledger):
        response = client.post("/api/broadcast", headers=auth(APP_TOKEN), json={
            "operations": [
                ["vote", {"voter": "alice", "author": "bob", "permlink": "p", "weight": 100}],
                ["vote", {"voter": "bob", "author": "carol", "permlink": "p", "weight": 100}],
            ]
        })
        assert response.status_code == 401
        data = response.json()
        assert data["error"] == "unauthorized_client"
        assert data["error_description"] == (
            "This access_token allow you to broadcast transaction only for the account @alice"
        )
        assert ledger.transactions == []

    def test_broadcast_outside_scope(self, client, ledger):
        response = client.post("/api/broadcast", headers=auth(SCOPED_TOKEN), json={
            "operations": [["comment", {"parent_permlink": "tag", "permlink": "p", "body": "hi"}]]
        })
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_scope"

    def test_broadcast_unknown_operation(self, client):
        response = client.post("/api/broadcast", headers=auth(APP_TOKEN), json={
            "operations": [["teleport", {}]]
        })
        assert response.status_code == 400
        assert response.json()["error_description"] == "Unknown operation: teleport"

    def test_broadcast_validation_errors(self, client):
        response = client.post("/api/broadcast", headers=auth(APP_TOKEN), json={
            "operations": [["vote", {"author": "bob"}]]
        })
        assert response.status_code == 400
        errors = response.json()["errors"]
        assert {e["field"] for e in errors} == {"permlink", "weight"}
        assert errors[0]["error"] == "error_is_required"

    def test_broadcast_malformed_pair(self, client):
        response = client.post("/api/broadcast", headers=auth(APP_TOKEN), json={"operations": [[1, 2]]})
        assert response.status_code == 400

    def test_broadcast_ledger_failure(self, client, ledger):
        ledger.fail_with = LedgerError("rejected", data={"stack": [{
            "format": "Missing posting authority ${account}", "data": {"account": "alice"}
        }]})
        response = client.post("/api/broadcast", headers=auth(APP_TOKEN), json={
            "operations": [["follow", {"following": "bob"}]]
        })
        assert response.status_code == 500
        assert response.json()["error_description"] == "Missing posting authority alice"

    def test_prepare_single_operation(self, client, ledger):
        response = client.post("/api/prepare", headers=auth(APP_TOKEN), json={
            "operation": "transfer", "params": {"to": "bob", "amount": "2 TME"}
        })
        assert response.status_code == 200
        prepared = response.json()["operations"][0]
        assert prepared["normalized_query"]["amount"] == "2.000 TME"
        assert prepared["normalized_query"]["from"] == "alice"
        assert ledger.transactions == []

    def test_prepare_base64_transaction(self, client):
        encoded = base64.b64encode(json.dumps([["follow", {"following": "bob"}]]).encode()).decode()
        response = client.post("/api/prepare", headers=auth(APP_TOKEN), json={"operation": "tx", "base64": encoded})
        assert response.status_code == 200
        assert response.json()["operations"][0]["normalized_query"]["id"] == "follow"

    def test_prepare_base64_missing(self, client):
        response = client.post("/api/prepare", headers=auth(APP_TOKEN), json={"operation": "tx"})
        assert response.status_code == 400
        assert response.json()["errors"][0]["error"] == "error_tx_base64_required"

    def test_register_throttled_per_ip(self, client, ledger):
        for name in ("newbie", "newbie2"):
            response = client.post("/api/register", json={"name": name, "password": "secret"})
            assert response.status_code == 200
            assert response.json()["success"] is True

        response = client.post("/api/register", json={"name": "newbie3", "password": "secret"})
        assert response.status_code == 429
        data = response.json()
        assert data["success"] is False
        assert data["message"] == "This IP Address has already been used 2 times this week"

    def test_register_failure_not_counted(self, client, ledger):
        response = client.post("/api/register", json={"name": "alice", "password": "secret"})
        assert response.status_code == 500
        assert response.json()["error"] == "Account alice already exists"

        for name in ("newbie", "newbie2"):
            assert client.post("/api/register", json={"name": name, "password": "secret"}).status_code == 200

    def test_register_misconfigured_limiter(self, client):
        from gateway.api import main

        main.app.state.limiter = RegistrationRateLimiter(InMemoryRateWindowStore(), "two", 1, "week")
        response = client.post("/api/register", json={"name": "newbie", "password": "secret"})
        assert response.status_code == 503

    def test_revoke_user_tokens_for_app(self, client):
        response = client.post("/api/token/revoke/user/cool-app", headers=auth(USER_TOKEN))
        assert response.status_code == 200
        assert response.json() == {"success": True, "revoked": 2}
        assert dao.get_token(APP_TOKEN) is None
        assert dao.get_token("app-token-alice-other") is not None

    def test_revoke_app_requires_owner(self, client):
        response = client.get("/api/token/revoke/app/other-app", headers=auth(USER_TOKEN))
        assert response.json()["revoked"] == 0
        assert dao.get_token("app-token-alice-other") is not None

        response = client.get("/api/token/revoke/app/cool-app", headers=auth(USER_TOKEN))
        assert response.json()["revoked"] == 2

    def test_revoke_requires_user_token(self, client):
        response = client.get("/api/token/revoke/user", headers=auth(APP_TOKEN))
        assert response.status_code == 401
