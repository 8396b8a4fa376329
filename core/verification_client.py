"""
core/verification_client.py
---------------------------
HTTP client for the target's expression-verification endpoint.

Protocol (JSON over HTTP)::

    GET  {endpoint}/v1/health                 → 200 when the target is usable
    POST {endpoint}/v1/expressions:verify
        {"database": "...", "dialect": "google_standard_sql",
         "expression": {"id": "e7", "sql": "price > 0", "type": "BOOL",
                        "table": "products", "columns": {"price": "NUMERIC"}}}
        → {"accepted": true}
        → {"accepted": false, "error": {"code": "INVALID_ARGUMENT", "message": "..."}}

The endpoint only compiles / plans the expression; nothing is written to
the target.

Design Decision:
    Transport problems (connection refused, timeouts, 5xx) raise
    ``TargetUnavailableError`` so the verifier can degrade to
    ``verification-skipped``; a 4xx answer or ``accepted: false`` is a
    verdict on the expression and is returned, not raised.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import requests

from core.errors import TargetUnavailableError
from logger import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class VerificationRequest:
    """One expression to check, with the context the target needs to compile it."""
    expression_id: str
    sql: str
    result_type: str
    table: str
    columns: dict[str, str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.expression_id,
            "sql": self.sql,
            "type": self.result_type,
            "table": self.table,
            "columns": dict(self.columns),
        }


@dataclass(frozen=True)
class VerificationResult:
    accepted: bool
    message: str | None = None


class VerificationAccessor(Protocol):
    """What the verifier needs from a target connection."""

    def probe(self) -> None: ...

    def verify(self, request: VerificationRequest) -> VerificationResult: ...


class HttpVerificationAccessor:
    """
    ``requests``-based accessor.

    Args:
        endpoint: Base URL, e.g. ``http://localhost:9010``.
        database: Target database name sent with every request.
        dialect:  Target SQL dialect.
        timeout:  Per-request timeout in seconds.
        session:  Optional pre-built ``requests.Session`` (tests inject a mock).
    """

    def __init__(
        self,
        endpoint: str,
        database: str,
        dialect: str = "google_standard_sql",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.database = database
        self.dialect = dialect
        self.timeout = timeout
        self._session = session or requests.Session()

    def probe(self) -> None:
        """
        Check that the endpoint answers.

        Raises:
            TargetUnavailableError: If the health check fails.
        """
        response = self._send("GET", "/v1/health")
        if response.status_code != 200:
            raise TargetUnavailableError(
                f"Verification endpoint {self.endpoint} is unhealthy (HTTP {response.status_code})."
            )
        log.debug("Verification endpoint %s is healthy.", self.endpoint)

    def verify(self, request: VerificationRequest) -> VerificationResult:
        """
        Submit one expression for a dry compile.

        Raises:
            TargetUnavailableError: On transport failure or a 5xx answer.
        """
        payload = {
            "database": self.database,
            "dialect": self.dialect,
            "expression": request.to_dict(),
        }
        response = self._send("POST", "/v1/expressions:verify", json=payload)
        if response.status_code >= 500:
            raise TargetUnavailableError(
                f"Verification endpoint failed with HTTP {response.status_code}."
            )
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if response.status_code == 200 and body.get("accepted") is True:
            return VerificationResult(accepted=True)
        return VerificationResult(accepted=False, message=self._error_message(response, body))

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _send(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.endpoint}{path}"
        try:
            return self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise TargetUnavailableError(f"Cannot reach verification endpoint {url}: {exc}") from exc

    @staticmethod
    def _error_message(response: requests.Response, body: Any) -> str:
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            code = error.get("code")
            return f"{code}: {error['message']}" if code else str(error["message"])
        return f"HTTP {response.status_code}: {response.text[:200]}"
