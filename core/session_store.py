"""
core/session_store.py
---------------------
Durable snapshots of the conversion model.

File format (JSON)::

    {
        "format":   "schemaconv-session",
        "version":  1,
        "saved_at": "2026-10-19T12:00:00+00:00",
        "partial":  false,
        "conv":     {... Conv.to_dict() ...}
    }

Design Decisions:
    * The document is self-describing (format tag + version) so a reader
      can refuse files it does not understand instead of misreading them.
    * Writes go to a temporary file that is then renamed over the target,
      so an interrupted save never leaves a half-written session behind.
    * A model carrying an ``aborted`` issue is only saved when the caller
      explicitly allows it, and the document is then flagged ``partial``.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from core.errors import CorruptSessionError, PartialSessionError, SchemaVersionError, SessionError
from logger import get_logger
from models.schema import Conv

log = get_logger(__name__)

SESSION_FORMAT = "schemaconv-session"
SESSION_VERSION = 1


class SessionStore:
    """Saves and loads :class:`~models.schema.Conv` snapshots."""

    @staticmethod
    def save(conv: Conv, path: Path | str, allow_partial: bool = False) -> Path:
        """
        Serialise *conv* to *path* atomically.

        Args:
            conv:          Model to snapshot (not modified).
            path:          Destination file.
            allow_partial: Permit saving a model whose run was aborted.

        Returns:
            The path written.

        Raises:
            PartialSessionError: If *conv* is partial and *allow_partial* is False.
            SessionError:        If the file cannot be written.
        """
        path = Path(path)
        partial = conv.is_partial
        if partial and not allow_partial:
            raise PartialSessionError(
                "The model is partial (the run was aborted); pass allow_partial=True "
                "to save it as a partial session."
            )
        document = {
            "format": SESSION_FORMAT,
            "version": SESSION_VERSION,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "partial": partial,
            "conv": conv.to_dict(),
        }
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            raise SessionError(f"Cannot write session file '{path}': {exc}") from exc
        log.info("Saved %ssession with %d table(s) to '%s'.",
                 "partial " if partial else "", len(conv.tables), path)
        return path

    @staticmethod
    def load(path: Path | str) -> Conv:
        """
        Read a snapshot written by :meth:`save`.

        Raises:
            SchemaVersionError:  If the file was written by a newer format version.
            CorruptSessionError: If the file is unreadable or structurally invalid.
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CorruptSessionError(f"Cannot read session file '{path}': {exc}") from exc
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CorruptSessionError(f"Invalid JSON in session file '{path}': {exc}") from exc

        conv = SessionStore.from_document(document, source=str(path))
        log.info("Loaded %ssession with %d table(s) from '%s'.",
                 "partial " if conv.is_partial else "", len(conv.tables), path)
        return conv

    @staticmethod
    def from_document(document: Any, source: str = "<document>") -> Conv:
        """Validate a parsed session document and build the model it holds."""
        if not isinstance(document, dict) or document.get("format") != SESSION_FORMAT:
            raise CorruptSessionError(f"'{source}' is not a {SESSION_FORMAT} file.")
        version = document.get("version")
        if not isinstance(version, int) or isinstance(version, bool):
            raise CorruptSessionError(f"'{source}' has no valid format version.")
        if version > SESSION_VERSION:
            raise SchemaVersionError(
                f"'{source}' uses session format version {version}; "
                f"this tool understands up to version {SESSION_VERSION}."
            )
        data = document.get("conv")
        if not isinstance(data, dict):
            raise CorruptSessionError(f"'{source}' has no model.")

        try:
            conv = Conv.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise CorruptSessionError(
                f"'{source}' is structurally invalid: {type(exc).__name__}: {exc}"
            ) from exc

        problems = conv.dangling_references()
        if problems:
            raise CorruptSessionError(
                f"'{source}' has dangling references: " + "; ".join(problems[:5])
            )
        if document.get("partial") and not conv.is_partial:
            raise CorruptSessionError(f"'{source}' is flagged partial but records no abort.")
        return conv
