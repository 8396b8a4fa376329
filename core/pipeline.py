"""
core/pipeline.py
----------------
The two engine entry points.

    convert_from_source:  read → map → verify → (snapshot)
    convert_from_session: load snapshot → verify → (snapshot)

Each stage completes before the next starts.  Reading and mapping errors
that prevent a valid model propagate; everything else ends up as issues on
the returned model.
"""
from __future__ import annotations

import time
import uuid
from datetime import datetime, timezone
from pathlib import Path

from config import CONFIG
from core.cancellation import CancellationToken
from core.dialects import ProgressCallback, get_dialect
from core.errors import SourceParseError
from core.mapper import map_conv
from core.session_store import SessionStore
from core.verification_client import HttpVerificationAccessor, VerificationAccessor
from core.verifier import ExpressionVerifier
from logger import get_logger
from models.profiles import SourceProfile, TargetProfile
from models.schema import Conv

log = get_logger(__name__)


def build_accessor(target: TargetProfile) -> HttpVerificationAccessor | None:
    """HTTP accessor for *target*, or None when it names no verification endpoint."""
    if not target.verify_endpoint:
        return None
    return HttpVerificationAccessor(
        endpoint=target.verify_endpoint,
        database=target.dbname or "",
        dialect=target.dialect,
        timeout=target.timeout,
    )


def convert_from_source(
    source_profile: SourceProfile,
    target_profile: TargetProfile,
    cancel: CancellationToken | None = None,
    progress_cb: ProgressCallback | None = None,
    session_out: Path | str | None = None,
    verify: bool = True,
    accessor: VerificationAccessor | None = None,
) -> Conv:
    """
    Convert a source schema.

    Args:
        source_profile: Where to read from.
        target_profile: Target database and verification endpoint.
        cancel:         Aborts at the next table / expression boundary.
        progress_cb:    Called after each table read.
        session_out:    Snapshot path; a cancelled run is saved flagged partial.
        verify:         False skips expression verification.
        accessor:       Verification accessor overriding the profile's endpoint.

    Returns:
        The converted model.

    Raises:
        SourceParseError: If the source cannot be read.
    """
    clock = time.perf_counter()
    conv = Conv()
    _start_audit(conv)
    dialect = get_dialect(source_profile.dialect)
    log.info("Converting %s source (%s mode).", dialect.tag, source_profile.mode.value)

    try:
        dialect.parse(source_profile, conv, cancel=cancel, progress_cb=progress_cb)
    except SourceParseError as exc:
        log.error("Cannot read source: %s", exc)
        raise
    map_conv(conv, dialect)

    if conv.is_partial:
        log.warning("Source reading was aborted; skipping verification.")
    else:
        _verify(conv, target_profile, cancel, verify, accessor)
    return _finish(conv, clock, session_out)


def convert_from_session(
    session_path: Path | str,
    target_profile: TargetProfile,
    cancel: CancellationToken | None = None,
    session_out: Path | str | None = None,
    verify: bool = True,
    accessor: VerificationAccessor | None = None,
) -> Conv:
    """
    Resume from a snapshot: reading and mapping are skipped, only the
    expressions are verified again against the (possibly different) target.

    Raises:
        SchemaVersionError:  If the snapshot is newer than this tool.
        CorruptSessionError: If the snapshot is unusable.
    """
    clock = time.perf_counter()
    conv = SessionStore.load(session_path)
    _start_audit(conv)
    if conv.is_partial:
        log.warning("Session '%s' holds a partial model.", session_path)
    _verify(conv, target_profile, cancel, verify, accessor)
    return _finish(conv, clock, session_out)


def _start_audit(conv: Conv) -> None:
    audit = conv.audit
    audit.migration_request_id = audit.migration_request_id or uuid.uuid4().hex
    audit.started_at = datetime.now(timezone.utc)
    audit.tool_version = CONFIG.app_version


def _verify(
    conv: Conv,
    target: TargetProfile,
    cancel: CancellationToken | None,
    verify: bool,
    accessor: VerificationAccessor | None,
) -> None:
    owned = None
    if verify and accessor is None:
        accessor = owned = build_accessor(target)
    try:
        ExpressionVerifier(accessor if verify else None).verify(conv, cancel)
    finally:
        if owned is not None:
            owned.close()


def _finish(conv: Conv, clock: float, session_out: Path | str | None) -> Conv:
    audit = conv.audit
    audit.finished_at = datetime.now(timezone.utc)
    audit.duration_seconds = round(time.perf_counter() - clock, 3)
    audit.issue_counts = conv.issue_counts()
    if session_out is not None:
        SessionStore.save(conv, session_out, allow_partial=conv.is_partial)
    log.info("Conversion finished in %.2fs: %d table(s), %d issue(s).",
             audit.duration_seconds, len(conv.tables), sum(audit.issue_counts.values()))
    return conv
