"""
Tests for the broadcast dispatcher and the end-to-end pipeline.
"""

import asyncio
import base64
import json
from unittest.mock import AsyncMock

import pytest

from gateway.core.broadcast import BroadcastDispatcher, BroadcastPipeline, decode_transaction
from gateway.core.errors import (
    AuthorshipViolation,
    ErrorKind,
    RemoteBroadcastFailure,
    ScopeViolation,
    UnknownOperation,
    ValidationFailed,
)
from gateway.core.ledger import LedgerError
from gateway.core.schema import OperationRequest, ScopeGrant

AUTHORIZED = ["vote", "comment", "custom_json", "follow", "reblog"]


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def pipeline(ledger):
    dispatcher = BroadcastDispatcher(ledger, signing_material={"posting": "test-key"})
    return BroadcastPipeline(dispatcher, authorized_operations=AUTHORIZED)


class TestDecodeTransaction:
    def encode(self, value):
        return base64.b64encode(json.dumps(value).encode()).decode()

    def test_decodes_operation_pairs(self):
        batch = decode_transaction(self.encode([["vote", {"voter": "alice"}], ["follow", {}]]))
        assert [r.type for r in batch] == ["vote", "follow"]
        assert batch[0].params == {"voter": "alice"}

    @pytest.mark.parametrize("encoded,kind", [
        (None, ErrorKind.TX_BASE64_REQUIRED),
        ("", ErrorKind.TX_BASE64_REQUIRED),
        ("not base64!", ErrorKind.TX_BASE64_ENCODE),
        (base64.b64encode(b"{not json").decode(), ErrorKind.TX_BASE64_JSON),
        (base64.b64encode(b"[]").decode(), ErrorKind.TX_BASE64_JSON),
    ])
    def test_rejects_bad_input(self, encoded, kind):
        with pytest.raises(ValidationFailed) as exc_info:
            decode_transaction(encoded)
        assert exc_info.value.errors[0].error == kind


class TestDispatcher:
    def test_custom_types_mapped_to_base(self, ledger):
        dispatcher = BroadcastDispatcher(ledger)
        mapped = dispatcher.map_operations([
            OperationRequest("follow", {"a": 1}),
            OperationRequest("customJson", {"b": 2}),
            OperationRequest("vote", {}),
        ])
        assert mapped == [("custom_json", {"a": 1}), ("custom_json", {"b": 2}), ("vote", {})]

    def test_ledger_error_message_interpolated(self, ledger):
        ledger.fail_with = LedgerError("rejected", data={"stack": [{
            "format": "Missing posting authority ${account}", "data": {"account": "alice"}
        }]})
        dispatcher = BroadcastDispatcher(ledger)
        with pytest.raises(RemoteBroadcastFailure) as exc_info:
            run(dispatcher.send([OperationRequest("vote", {})]))
        assert exc_info.value.error_description == "Missing posting authority alice"
        assert exc_info.value.remote_error is ledger.fail_with

    def test_uses_default_signing_material(self):
        mock_ledger = AsyncMock()
        mock_ledger.broadcast.return_value = {"id": "abc"}
        dispatcher = BroadcastDispatcher(mock_ledger, signing_material="default-key")

        result = run(dispatcher.send([OperationRequest("vote", {"voter": "alice"})]))

        assert result.result == {"id": "abc"}
        mock_ledger.broadcast.assert_awaited_once_with([("vote", {"voter": "alice"})], "default-key")


class TestPipeline:
    def test_broadcasts_normalized_batch(self, pipeline, ledger):
        batch = [
            OperationRequest("vote", {"author": "bob", "permlink": "p", "weight": "5000"}),
            OperationRequest("follow", {"following": "carol"}),
        ]
        outcome = run(pipeline.broadcast(batch, ScopeGrant.from_scope([]), "alice"))

        assert outcome.result["id"]
        assert len(ledger.transactions) == 1
        operations = ledger.transactions[0]["operations"]
        assert operations[0] == ["vote", {"author": "bob", "permlink": "p", "weight": 5000, "voter": "alice"}]
        assert operations[1][0] == "custom_json"
        assert operations[1][1]["required_posting_auths"] == ["alice"]

    def test_foreign_author_blocks_whole_batch(self, pipeline, ledger):
        batch = [
            OperationRequest("vote", {"author": "bob", "permlink": "p", "weight": 100}),
            OperationRequest("vote", {"voter": "bob", "author": "carol", "permlink": "p", "weight": 100}),
        ]
        with pytest.raises(AuthorshipViolation):
            run(pipeline.broadcast(batch, ScopeGrant.from_scope([]), "alice"))
        assert ledger.transactions == []

    def test_scope_violation(self, pipeline, ledger):
        batch = [OperationRequest("transfer", {"to": "bob", "amount": "1.000 TME"})]
        with pytest.raises(ScopeViolation):
            run(pipeline.broadcast(batch, ScopeGrant.from_scope([]), "alice"))
        assert ledger.transactions == []

    def test_validation_errors_from_every_operation(self, pipeline, ledger):
        batch = [
            OperationRequest("vote", {"author": "bob", "permlink": "p", "weight": 20000}),
            OperationRequest("comment", {"author": "alice"}),
        ]
        with pytest.raises(ValidationFailed) as exc_info:
            run(pipeline.broadcast(batch, ScopeGrant.from_scope([]), "alice"))
        fields = [e.field for e in exc_info.value.errors]
        assert "weight" in fields
        assert "body" in fields
        assert ledger.transactions == []

    def test_unknown_operation(self, pipeline, ledger):
        with pytest.raises(UnknownOperation):
            run(pipeline.broadcast([OperationRequest("teleport", {})], ScopeGrant.from_scope([]), "alice"))

    def test_prepare_does_not_broadcast(self, pipeline, ledger):
        prepared = run(pipeline.prepare([OperationRequest("reblog", {"author": "bob", "permlink": "p"})], "alice"))
        assert prepared[0].operation == "reblog"
        assert prepared[0].normalized_query["required_posting_auths"] == ["alice"]
        assert '"reblog"' in prepared[0].normalized_query["json"]
        assert ledger.transactions == []

    def test_custom_json_signing_for_another_account_not_sent(self, pipeline, ledger):
        batch = [OperationRequest("custom_json", {
            "required_posting_auths": ["alice", "bob"],
            "id": "follow",
            "json": "[]",
        })]
        with pytest.raises(AuthorshipViolation):
            run(pipeline.broadcast(batch, ScopeGrant.from_scope([]), "alice"))
        assert ledger.transactions == []

    def test_over_precise_transfer_not_sent(self, ledger):
        dispatcher = BroadcastDispatcher(ledger)
        pipeline = BroadcastPipeline(dispatcher, authorized_operations=["transfer"])
        batch = [OperationRequest("transfer", {"to": "bob", "amount": "1.23456 TME"})]
        with pytest.raises(ValidationFailed) as exc_info:
            run(pipeline.broadcast(batch, ScopeGrant.from_scope([]), "alice"))
        assert exc_info.value.errors[0].error == ErrorKind.AMOUNT_FORMAT
        assert ledger.transactions == []
