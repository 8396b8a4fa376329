"""
core/verifier.py
----------------
Expression Verifier: checks every default, generated and check expression
against the live target.

Flow per run:
    1. clear previous ``verify`` issues and reset every expression to
       ``unverified``,
    2. probe the target; if it is unreachable every expression gets a
       ``verification-skipped`` issue and the run ends,
    3. translate and submit expressions on a bounded thread pool,
    4. apply each verdict under the owning table's lock.

Design Decisions:
    * The network call happens outside any lock; only the write-back to
      the model is serialised, per table, so verdicts for different tables
      never wait on each other.
    * A target that disappears mid-run is not fatal: expressions not yet
      checked are marked skipped and conversion carries on.
    * Cancellation is checked before each expression; unchecked expressions
      stay ``unverified`` and one ``aborted`` issue is recorded.
"""
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum

from config import CONFIG
from core.cancellation import CancellationToken
from core.dialects import get_dialect
from core.errors import TargetUnavailableError
from core.expression_translator import ExpressionTranslator, TranslationError
from core.verification_client import VerificationAccessor, VerificationRequest
from logger import get_logger
from models.issues import Issue, IssueCategory, IssueStage, Severity
from models.schema import Column, Conv, Expression, Table

log = get_logger(__name__)


class Outcome(str, Enum):
    VERIFIED = "verified"
    REJECTED = "rejected"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass
class _Job:
    table: Table
    expression: Expression
    kind: str
    column: Column | None = None


@dataclass
class VerificationSummary:
    total: int = 0
    verified: int = 0
    rejected: int = 0
    skipped: int = 0
    cancelled: int = 0
    skip_reason: str | None = None

    def record(self, outcome: Outcome) -> None:
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)


def collect_jobs(conv: Conv) -> list[_Job]:
    """Every expression of *conv*, in model order."""
    jobs: list[_Job] = []
    for table in conv.tables.values():
        for column in table.columns.values():
            if column.default is not None:
                jobs.append(_Job(table, column.default, "default", column))
            if column.generated is not None:
                jobs.append(_Job(table, column.generated, "generated", column))
        for check in table.check_constraints:
            jobs.append(_Job(table, check.expression, "check"))
    return jobs


class ExpressionVerifier:
    """
    Verifies the expressions of a mapped model.

    Args:
        accessor: Target connection; ``None`` skips verification.
        workers:  Thread-pool size (defaults to ``VERIFY_WORKERS``).
    """

    def __init__(self, accessor: VerificationAccessor | None, workers: int | None = None) -> None:
        self.accessor = accessor
        self.workers = max(1, workers or CONFIG.verifier.workers)
        self._conv_lock = threading.Lock()
        self._table_locks: dict[str, threading.Lock] = {}
        self._unavailable: str | None = None

    def verify(self, conv: Conv, cancel: CancellationToken | None = None) -> VerificationSummary:
        conv.clear_issues(IssueStage.VERIFY)
        jobs = collect_jobs(conv)
        for job in jobs:
            job.expression.reset()
        summary = VerificationSummary(total=len(jobs))
        if not jobs:
            log.info("No expressions to verify.")
            return summary

        self._unavailable = None
        self._table_locks = {}
        if self.accessor is None:
            self._unavailable = "verification is disabled or no endpoint is configured"
        else:
            try:
                self.accessor.probe()
            except TargetUnavailableError as exc:
                self._unavailable = str(exc)
        if self._unavailable:
            log.warning("Skipping verification of %d expression(s): %s", len(jobs), self._unavailable)
            for job in jobs:
                self._skip(conv, job, self._unavailable)
                summary.record(Outcome.SKIPPED)
            summary.skip_reason = self._unavailable
            return summary

        translator = ExpressionTranslator(get_dialect(conv.source_dialect))
        self._table_locks = {table_id: threading.Lock() for table_id in conv.tables}
        log.info("Verifying %d expression(s) with %d worker(s)", len(jobs), self.workers)

        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [pool.submit(self._check, conv, translator, job, cancel) for job in jobs]
            for future in as_completed(futures):
                summary.record(future.result())

        if summary.cancelled:
            reason = cancel.reason if cancel is not None else None
            with self._conv_lock:
                conv.mark_aborted(
                    f"Verification aborted with {summary.cancelled} of {summary.total} "
                    f"expression(s) unchecked: {reason or 'cancelled'}.",
                    IssueStage.VERIFY,
                )
        summary.skip_reason = self._unavailable
        log.info(
            "Verification finished: %d verified, %d rejected, %d skipped, %d cancelled.",
            summary.verified, summary.rejected, summary.skipped, summary.cancelled,
        )
        return summary

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _check(
        self,
        conv: Conv,
        translator: ExpressionTranslator,
        job: _Job,
        cancel: CancellationToken | None,
    ) -> Outcome:
        if cancel is not None and cancel.is_cancelled():
            return Outcome.CANCELLED
        if self._unavailable:
            self._skip(conv, job, self._unavailable)
            return Outcome.SKIPPED

        expression = job.expression
        try:
            sql = translator.translate(expression.source_text, job.table)
        except TranslationError as exc:
            self._reject(conv, job, expression.source_text, f"Cannot translate expression: {exc}")
            return Outcome.REJECTED

        try:
            result = self.accessor.verify(self._request(job, sql))
        except TargetUnavailableError as exc:
            self._unavailable = str(exc)
            log.warning("Target became unavailable: %s", exc)
            self._skip(conv, job, self._unavailable)
            return Outcome.SKIPPED

        if result.accepted:
            with self._table_locks[job.table.id]:
                expression.mark_verified(sql)
            return Outcome.VERIFIED
        self._reject(conv, job, sql, result.message or "rejected by target")
        return Outcome.REJECTED

    @staticmethod
    def _request(job: _Job, sql: str) -> VerificationRequest:
        if job.kind == "check":
            result_type = "BOOL"
        elif job.column is not None and job.column.target_type is not None:
            result_type = job.column.target_type.render()
        else:
            result_type = "STRING(MAX)"
        columns = {
            (c.target_name or c.name): (c.target_type.render() if c.target_type else "STRING(MAX)")
            for c in job.table.columns.values()
        }
        return VerificationRequest(
            expression_id=job.expression.id,
            sql=sql,
            result_type=result_type,
            table=job.table.target_name or job.table.name,
            columns=columns,
        )

    # ------------------------------------------------------------------
    # Result application
    # ------------------------------------------------------------------

    def _describe(self, job: _Job) -> str:
        if job.column is not None:
            return f"{job.kind} of {job.table.name}.{job.column.name}"
        return f"check constraint on {job.table.name}"

    def _reject(self, conv: Conv, job: _Job, sql: str, reason: str) -> None:
        log.debug("Expression %s rejected: %s", job.expression.id, reason)
        with self._table_locks[job.table.id]:
            job.expression.mark_rejected(sql, reason)
            conv.add_issue(Issue(
                category=IssueCategory.EXPRESSION_REJECTED,
                severity=Severity.ERROR,
                detail=f"The target rejected the {self._describe(job)} ({sql}): {reason}",
                stage=IssueStage.VERIFY,
                table_id=job.table.id,
                column_id=job.column.id if job.column else None,
                constraint_id=job.expression.id,
            ))

    def _skip(self, conv: Conv, job: _Job, reason: str) -> None:
        lock = self._table_locks.get(job.table.id) or self._conv_lock
        with lock:
            conv.add_issue(Issue(
                category=IssueCategory.VERIFICATION_SKIPPED,
                severity=Severity.WARNING,
                detail=f"The {self._describe(job)} was not verified: {reason.rstrip('.')}.",
                stage=IssueStage.VERIFY,
                table_id=job.table.id,
                column_id=job.column.id if job.column else None,
                constraint_id=job.expression.id,
            ))
