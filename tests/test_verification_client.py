"""
tests/test_verification_client.py
---------------------------------
Unit tests for core/verification_client.py.
The requests session is mocked; no network access needed.
Run with: python -m pytest tests/
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from core.errors import TargetUnavailableError
from core.verification_client import HttpVerificationAccessor, VerificationRequest


def response(status_code: int = 200, body=None, text: str = "") -> MagicMock:
    resp = MagicMock(status_code=status_code, text=text)
    if body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


@pytest.fixture
def session() -> MagicMock:
    return MagicMock()


@pytest.fixture
def client(session) -> HttpVerificationAccessor:
    return HttpVerificationAccessor("http://target:9010/", "shop", timeout=3.0, session=session)


REQUEST = VerificationRequest(
    expression_id="e7",
    sql="price > 0",
    result_type="BOOL",
    table="products",
    columns={"price": "NUMERIC"},
)


class TestProbe:
    def test_healthy(self, client, session) -> None:
        session.request.return_value = response(200, {"status": "ok"})
        client.probe()
        session.request.assert_called_once_with(
            "GET", "http://target:9010/v1/health", timeout=3.0
        )

    def test_unhealthy_status(self, client, session) -> None:
        session.request.return_value = response(503)
        with pytest.raises(TargetUnavailableError, match="HTTP 503"):
            client.probe()

    def test_connection_refused(self, client, session) -> None:
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(TargetUnavailableError, match="Cannot reach"):
            client.probe()


class TestVerify:
    def test_payload(self, client, session) -> None:
        session.request.return_value = response(200, {"accepted": True})
        result = client.verify(REQUEST)
        assert result.accepted
        args, kwargs = session.request.call_args
        assert args == ("POST", "http://target:9010/v1/expressions:verify")
        assert kwargs["json"] == {
            "database": "shop",
            "dialect": "google_standard_sql",
            "expression": {
                "id": "e7",
                "sql": "price > 0",
                "type": "BOOL",
                "table": "products",
                "columns": {"price": "NUMERIC"},
            },
        }

    def test_rejection_with_error_body(self, client, session) -> None:
        session.request.return_value = response(
            200, {"accepted": False, "error": {"code": "INVALID_ARGUMENT", "message": "bad column"}}
        )
        result = client.verify(REQUEST)
        assert not result.accepted
        assert result.message == "INVALID_ARGUMENT: bad column"

    def test_client_error_is_a_rejection(self, client, session) -> None:
        session.request.return_value = response(400, None, text="syntax error near >")
        result = client.verify(REQUEST)
        assert not result.accepted
        assert result.message == "HTTP 400: syntax error near >"

    @pytest.mark.parametrize("body", [[], "ok", 1])
    def test_non_object_body_is_a_rejection(self, client, session, body) -> None:
        session.request.return_value = response(200, body, text="unexpected")
        result = client.verify(REQUEST)
        assert not result.accepted
        assert result.message == "HTTP 200: unexpected"

    def test_null_body_is_a_rejection(self, client, session) -> None:
        resp = MagicMock(status_code=200, text="null")
        resp.json.return_value = None
        session.request.return_value = resp
        assert client.verify(REQUEST).message == "HTTP 200: null"

    def test_server_error_raises(self, client, session) -> None:
        session.request.return_value = response(500, {"accepted": False})
        with pytest.raises(TargetUnavailableError):
            client.verify(REQUEST)

    def test_timeout_raises(self, client, session) -> None:
        session.request.side_effect = requests.Timeout("slow")
        with pytest.raises(TargetUnavailableError):
            client.verify(REQUEST)
