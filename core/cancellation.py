"""
core/cancellation.py
--------------------
Cooperative cancellation for long-running stages.

Stages poll :meth:`CancellationToken.is_cancelled` at safe boundaries
(between tables while parsing, between expressions while verifying) and
stop there, so the model is never left half-updated.
"""
from __future__ import annotations

import threading


class CancellationToken:
    """Thread-safe, one-way cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled by user") -> None:
        if not self._event.is_set():
            self.reason = reason
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()
