"""
Tests for configuration helpers and audit logging.
"""

import importlib
from unittest.mock import patch

import pytest

from gateway.core import config
from gateway.core.ledger import InMemoryLedgerClient, JsonRpcLedgerClient
from util.logging import audit_event, logger, sanitize_payload


class TestConfig:
    def test_registration_limits_parse_integers(self):
        with patch.object(config, "REGISTER_ALLOWED_USES", "3"), \
             patch.object(config, "REGISTER_WINDOW_SIZE", "2"), \
             patch.object(config, "REGISTER_WINDOW_UNIT", "day"):
            assert config.get_registration_limits() == (3, 2, "day")
            assert config.validate_rate_limit_config() == []

    def test_malformed_limits_passed_through(self):
        with patch.object(config, "REGISTER_ALLOWED_USES", "many"), \
             patch.object(config, "REGISTER_WINDOW_UNIT", "fortnight"):
            allowed, _, unit = config.get_registration_limits()
            assert allowed == "many"
            issues = config.validate_rate_limit_config()
            assert any("REGISTER_ALLOWED_USES" in issue for issue in issues)
            assert any("REGISTER_WINDOW_UNIT" in issue for issue in issues)

    def test_ledger_provider(self):
        with patch.object(config, "LEDGER_PROVIDER", "memory"):
            assert isinstance(config.get_ledger_client(), InMemoryLedgerClient)
        with patch.object(config, "LEDGER_PROVIDER", "rpc"):
            client = config.get_ledger_client()
            assert isinstance(client, JsonRpcLedgerClient)
            assert client.url == config.LEDGER_RPC_URL


class TestLogging:
    def test_sanitize_redacts_credentials(self):
        payload = {"name": "newbie", "password": "secret", "nested": {"wif": "5K..."}}
        sanitized = sanitize_payload(payload)
        assert sanitized["name"] == "newbie"
        assert sanitized["password"] == "[REDACTED]"
        assert sanitized["nested"]["wif"] == "[REDACTED]"

    def test_long_strings_truncated(self):
        assert sanitize_payload("x" * 150) == "x" * 100 + "..."

    def test_audit_event_routes_to_operation(self):
        with patch.object(logger, "log_operation") as mock_log:
            audit_event("register.account_created", {"ip": "1.2.3.4"}, payload={"password": "secret"})
        operation, status, details = mock_log.call_args[0]
        assert operation == "register"
        assert status == "audit"
        assert details["payload"]["password"] == "[REDACTED]"

    def test_scope_violation_logged(self):
        with patch.object(logger, "log_operation") as mock_log:
            logger.log_scope_violation("alice", ["transfer"], "cool-app")
        mock_log.assert_called_once_with(
            "authorize.scope", "rejected",
            {"user": "alice", "invalid_types": ["transfer"], "client_id": "cool-app"}
        )


class TestPackageLayout:
    @pytest.mark.parametrize("module", [
        "gateway.core.registry",
        "gateway.core.broadcast",
        "gateway.core.rate_limit",
        "gateway.api.main",
        "util.logging",
    ])
    def test_modules_import_without_package_markers(self, module):
        assert importlib.import_module(module).__name__ == module
