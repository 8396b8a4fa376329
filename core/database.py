"""
core/database.py
----------------
Read-only connections to live source catalogs (MySQL / PostgreSQL).

Design Decisions:
    * ``CatalogConnection`` is a context manager so readers can use it with
      ``with`` statements and be guaranteed the connection is closed on exit.
    * Retry logic is implemented for transient connection errors using
      linear back-off (configurable via ``max_retries`` / ``retry_delay``).
    * Queries never use Python string interpolation for values; only
      backtick-quoted identifiers are inserted into SQL strings.
      Parameterised execution (``%s``) is used for everything else, which
      both drivers accept.
    * Driver errors are re-raised as :class:`SourceParseError` so a live
      source that cannot be read fails the same way a broken dump does.
"""
from __future__ import annotations

import time
from typing import Any

import mysql.connector
import psycopg2

from config import CONFIG
from core.errors import SourceParseError
from logger import get_logger
from models.profiles import Dialect, SourceProfile

log = get_logger(__name__)

_DRIVER_ERRORS = (mysql.connector.Error, psycopg2.Error)


class CatalogConnection:
    """
    Thin wrapper over a DB-API connection to the source database.

    Example::

        with CatalogConnection.from_profile(profile) as db:
            rows = db.query("SELECT table_name FROM information_schema.tables")
    """

    def __init__(
        self,
        profile: SourceProfile,
        connect_timeout: int = 10,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self._profile = profile
        self._connect_timeout = connect_timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._conn: Any = None

    @classmethod
    def from_profile(cls, profile: SourceProfile) -> "CatalogConnection":
        """Convenience factory using the timeout from the application config."""
        return cls(profile, connect_timeout=CONFIG.source.connect_timeout)

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> "CatalogConnection":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False  # Never suppress exceptions

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def _open(self) -> Any:
        p = self._profile
        if p.dialect is Dialect.MYSQL:
            return mysql.connector.connect(
                host=p.host,
                port=p.port,
                user=p.user,
                password=p.password or "",
                database=p.dbname,
                connect_timeout=self._connect_timeout,
            )
        return psycopg2.connect(
            host=p.host,
            port=p.port,
            user=p.user,
            password=p.password or "",
            dbname=p.dbname,
            connect_timeout=self._connect_timeout,
        )

    def connect(self) -> None:
        """
        Open the connection with back-off retries.

        Raises:
            SourceParseError: If connection fails after all retries.
        """
        p = self._profile
        for attempt in range(1, self._max_retries + 1):
            try:
                log.info(
                    "Connecting to %s at %s:%s (attempt %d/%d)",
                    p.dialect.value, p.host, p.port, attempt, self._max_retries,
                )
                self._conn = self._open()
                log.info("Connected to %s database '%s'.", p.dialect.value, p.dbname)
                return
            except _DRIVER_ERRORS as exc:
                log.warning("Connection attempt %d failed: %s", attempt, exc)
                if attempt < self._max_retries:
                    time.sleep(self._retry_delay * attempt)
        raise SourceParseError(
            f"Could not connect to {p.dialect.value} at {p.host}:{p.port} "
            f"after {self._max_retries} attempts."
        )

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
            log.debug("Source connection closed.")
        except _DRIVER_ERRORS as exc:
            log.warning("Error while closing source connection: %s", exc)
        self._conn = None

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query(self, sql: str, params: tuple | None = None) -> list[tuple]:
        """
        Execute a catalog query and return every row.

        Raises:
            SourceParseError: If not connected or the driver reports an error.
        """
        if self._conn is None:
            raise SourceParseError("Source connection is not open. Call connect() first.")
        cursor = self._conn.cursor()
        try:
            cursor.execute(sql, params)
            return list(cursor.fetchall() or [])
        except _DRIVER_ERRORS as exc:
            log.error("Catalog query failed: %s | SQL: %.300s", exc, sql)
            raise SourceParseError(f"Catalog query failed: {exc}", obj=sql) from exc
        finally:
            cursor.close()
