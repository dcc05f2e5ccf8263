import json
from http.client import RemoteDisconnected
from unittest.mock import Mock, patch
from urllib.parse import urlparse

import pytest

from common.rules_engine.models import ExecutionStatus, TransferRequest
from connectors.sb1.auth import SB1AuthError
from connectors.sb1.client import SB1HttpError
from connectors.sb1.config import SB1Config
from pipelines.data_source import BankApiError
from pipelines.engine import RuleEngine
from pipelines.live_sb1 import LiveSB1BankClient


@pytest.fixture
def client() -> LiveSB1BankClient:
    return LiveSB1BankClient(
        SB1Config(
            base_url="https://api.sparebank1.no",
            client_id="cid",
            client_secret="secret",
            financial_institution="fid",
            access_token="token",
            refresh_token="refresh",
            token_expires_at="2099-01-01T00:00:00+00:00",
        )
    )


def _request() -> TransferRequest:
    return TransferRequest(amount="179.00", from_account="12345678901", to_account="12345678902")


def test_get_accounts_adapts_payload(client):
    payload = {"accounts": [{"key": "k1", "accountNumber": "12345678901", "name": "Brukskonto"}], "errors": []}
    with patch("pipelines.live_sb1.fetch_accounts", return_value=payload):
        response = client.get_accounts()
    assert [a.key for a in response.accounts] == ["k1"]


def test_get_transactions_wraps_http_errors(client):
    with patch("pipelines.live_sb1.fetch_transactions", side_effect=SB1HttpError(503, "Service Unavailable")):
        with pytest.raises(BankApiError) as excinfo:
            client.get_transactions("k1")
    assert excinfo.value.code == "503"
    assert "k1" in str(excinfo.value)


def test_auth_errors_become_bank_errors(client):
    with patch("pipelines.live_sb1.fetch_accounts", side_effect=SB1AuthError("Token refresh failed: 400")):
        with pytest.raises(BankApiError) as excinfo:
            client.get_accounts()
    assert excinfo.value.code == "AUTH"


def test_create_transfer_success(client):
    with patch("pipelines.live_sb1.post_transfer", return_value={"paymentId": "p-1", "status": "COMPLETED"}) as post:
        response = client.create_transfer(_request())
    assert response.payment_id == "p-1"
    assert post.call_args.args[1]["fromAccount"] == "12345678901"


def test_rejected_transfer_is_a_soft_failure(client):
    body = json.dumps({"errors": [{"code": "INSUFFICIENT_FUNDS", "message": "Not enough money"}]})
    error = SB1HttpError(422, "Not enough money", body, code="INSUFFICIENT_FUNDS")
    with patch("pipelines.live_sb1.post_transfer", side_effect=error):
        response = client.create_transfer(_request())
    assert response.errors[0].message == "Not enough money"


def test_server_error_on_transfer_is_a_hard_failure(client):
    with patch("pipelines.live_sb1.post_transfer", side_effect=SB1HttpError(502, "Bad Gateway", "<html>")):
        with pytest.raises(BankApiError, match="Transfer failed"):
            client.create_transfer(_request())


def _raw_response(body: bytes):
    response = Mock()
    response.read.return_value = body
    response.__enter__ = Mock(return_value=response)
    response.__exit__ = Mock(return_value=False)
    return response


def _json_response(payload: dict):
    return _raw_response(json.dumps(payload).encode("utf-8"))


def _timing_out_response():
    response = _raw_response(b"")
    response.read.side_effect = TimeoutError("The read operation timed out")
    return response


def _fake_sb1(transfer_outcome):
    """urlopen stand-in serving one Netflix charge on checking-1 and the two demo accounts."""

    def _fake_urlopen(req, timeout=30):
        path = urlparse(req.full_url).path
        if path == "/personal/banking/transactions":
            return _json_response(
                {
                    "transactions": [
                        {
                            "id": "tx-1",
                            "description": "NETFLIX.COM",
                            "amount": -179.0,
                            "typeCode": "PURCHASE",
                            "bookingStatus": "BOOKED",
                            "accountKey": "checking-1",
                        }
                    ]
                }
            )
        if path == "/personal/banking/accounts":
            return _json_response(
                {
                    "accounts": [
                        {"key": "checking-1", "accountNumber": "12345678901", "name": "Checking"},
                        {"key": "savings-1", "accountNumber": "12345678902", "name": "Savings"},
                    ]
                }
            )
        if isinstance(transfer_outcome, Exception):
            raise transfer_outcome
        return transfer_outcome

    return _fake_urlopen


def test_read_timeouts_fail_accounts_without_aborting_the_poll(client, repository, netflix_rule):
    repository.create_rule(netflix_rule(id="r1"))
    repository.create_rule(netflix_rule(id="r2", trigger_account_key="savings-1"))

    with patch("connectors.sb1.client.urlopen", return_value=_timing_out_response()), patch(
        "connectors.sb1.client.time.sleep"
    ):
        report = RuleEngine(client, repository).evaluate_all()

    assert report.accounts_failed == 2
    assert report.accounts_polled == 0
    assert repository.get_tracked_transaction("tx-1") is None


def test_invalid_json_fails_the_account(client, repository, netflix_rule):
    repository.create_rule(netflix_rule())
    with patch("connectors.sb1.client.urlopen", return_value=_raw_response(b"<html>maintenance</html>")):
        report = RuleEngine(client, repository).evaluate_all()

    assert report.accounts_failed == 1
    assert report.transactions_seen == 0


@pytest.mark.parametrize(
    "outcome",
    [
        _timing_out_response(),
        ConnectionResetError(104, "Connection reset by peer"),
        RemoteDisconnected("Remote end closed connection without response"),
    ],
)
def test_transfer_transport_failure_records_failed_execution(client, repository, netflix_rule, outcome):
    repository.create_rule(netflix_rule())

    with patch("connectors.sb1.client.urlopen", _fake_sb1(outcome)), patch("connectors.sb1.client.time.sleep"):
        report = RuleEngine(client, repository).evaluate_all()

    assert report.rules_matched == 1
    assert report.executions_failed == 1
    executions = repository.get_rule_executions("netflix-sweep")
    assert [e.status for e in executions] == [ExecutionStatus.FAILED]
    assert executions[0].error_message.startswith("Transfer failed")
    assert [log.action_taken for log in repository.get_processing_log("netflix-sweep")] == ["executed:failed"]
