"""
main.py
-------
Command-line entry point.

Convert a source schema::

    python main.py --source mysql --source-profile file=shop.sql \\
        --target-profile dbname=shop,endpoint=http://localhost:9010 --prefix out/shop

Resume from a session snapshot (only verification runs again)::

    python main.py --session out/shop.session.json --target-profile dbname=shop

Without ``file`` in a dump profile the dump is read from stdin::

    mysqldump --no-data shop | python main.py --source mysql --prefix out/shop

``--validate`` checks the arguments and profiles and exits.

Outputs ``<prefix>.schema.ddl``, ``<prefix>.session.json`` and
``<prefix>.report.json`` and prints a short summary.  Ctrl-C stops at the
next table / expression and still writes the (partial) outputs.
"""
from __future__ import annotations

import argparse
import json
import signal
import sys
from pathlib import Path

from config import CONFIG
from core.cancellation import CancellationToken
from core.ddl_writer import DdlWriter
from core.errors import ConversionError
from core.pipeline import convert_from_session, convert_from_source
from core.report import ReportAssembler
from logger import get_logger, set_level
from models.profiles import ProfileError, SourceProfile, TargetProfile

log = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_PARTIAL = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schemaconv",
        description=f"{CONFIG.app_name} {CONFIG.app_version}: convert MySQL, PostgreSQL "
                    f"or DynamoDB schemas to GoogleSQL DDL.",
    )
    parser.add_argument("--source", help="Source dialect: mysql, postgresql (pg_dump) or dynamodb")
    parser.add_argument("--source-profile", default="",
                        help="Source profile, e.g. file=dump.sql or host=db,user=u,dbname=shop")
    parser.add_argument("--target-profile", default="",
                        help="Target profile, e.g. dbname=shop,endpoint=http://localhost:9010")
    parser.add_argument("--session", help="Resume from this session file instead of reading a source")
    parser.add_argument("--prefix", help="Output path prefix (default: OUTPUT_DIR/<dbname>)")
    parser.add_argument("--log-level", help="Console log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--dry-run", action="store_true", help="Skip expression verification")
    parser.add_argument("--validate", action="store_true",
                        help="Check the arguments and profiles, then exit without converting")
    return parser


def _output_prefix(args: argparse.Namespace, source: SourceProfile | None,
                   target: TargetProfile) -> Path:
    if args.prefix:
        return Path(args.prefix)
    if args.session:
        name = Path(args.session).name.split(".")[0]
    elif source is not None and source.file is not None:
        name = source.file.stem
    else:
        name = (source.dbname if source else None) or target.dbname or "schema"
    return CONFIG.conversion.output_dir / name


def _install_interrupt_handler(cancel: CancellationToken) -> None:
    def handler(signum, frame):
        log.warning("Interrupted; stopping at the next safe point (press Ctrl-C again to abort).")
        cancel.cancel("interrupted by user")
        signal.signal(signal.SIGINT, signal.default_int_handler)

    signal.signal(signal.SIGINT, handler)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.log_level:
        try:
            set_level(args.log_level)
        except ValueError as exc:
            parser.error(str(exc))
    if bool(args.session) == bool(args.source):
        parser.error("give either --source (with --source-profile) or --session")

    try:
        target = TargetProfile.from_string(args.target_profile)
        source = None if args.session else SourceProfile.from_string(args.source, args.source_profile)
    except ProfileError as exc:
        parser.error(str(exc))
    if args.validate:
        log.info("Arguments and profiles are valid.")
        return EXIT_OK

    prefix = _output_prefix(args, source, target)
    session_path = prefix.with_name(prefix.name + ".session.json")
    cancel = CancellationToken()
    _install_interrupt_handler(cancel)

    try:
        if args.session:
            conv = convert_from_session(args.session, target, cancel=cancel,
                                        session_out=session_path, verify=not args.dry_run)
        else:
            conv = convert_from_source(
                source, target, cancel=cancel, session_out=session_path,
                verify=not args.dry_run,
                progress_cb=lambda count, name: log.debug("Read table %d: %s", count, name),
            )
    except ConversionError as exc:
        log.error("Conversion failed: %s", exc)
        return EXIT_FAILED

    report = ReportAssembler().assemble(conv)
    DdlWriter(conv).write(prefix.with_name(prefix.name + ".schema.ddl"))
    report_path = prefix.with_name(prefix.name + ".report.json")
    report_path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
    log.info("Wrote report to '%s'.", report_path)

    print(report.render_text())
    return EXIT_PARTIAL if conv.is_partial else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
