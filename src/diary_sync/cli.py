"""``diary-sync`` command line.

Also serves the peer protocol: a remote install runs ``diary-sync ser``
and ``diary-sync clear`` on this host over ssh, so ``ser`` must print
nothing but cache lines on stdout.
"""

import argparse
import asyncio
import datetime as dt
import json
import logging
import sys

from pydantic import ValidationError

from . import __version__
from .app import DiaryApp
from .config import load_config, load_env_files
from .config_loader import ensure_config, load_hierarchical_config
from .config_schema import build_config
from .errors import DiarySyncError, SyncAbortedError
from .logger import setup_logging
from .store.models import DiffType, format_timestamp, parse_timestamp
from .sync.reporter import (
    format_conflict_session,
    format_sync_report,
    report_to_json,
)

logger = logging.getLogger(__name__)

COMMANDS = {
    "search": "search",
    "s": "search",
    "insert": "insert",
    "i": "insert",
    "sync": "sync",
    "ser": "serialize",
    "serialize": "serialize",
    "clear": "clear",
    "clear_cache": "clear",
    "list": "list",
    "list_conflicts": "list",
    "show": "show",
    "show_conflict": "show",
    "remove": "remove",
    "remove_conflict": "remove",
    "commit": "commit",
    "discard": "discard",
    "validate": "validate",
    "flip": "flip",
    "init": "init",
}


class UsageError(Exception):
    """Bad command line input."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="diary-sync",
        description="Diary sync - keep a diary consistent across local files, "
        "an object store bucket and a peer machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  search, s         search entries (today, YYYY-MM-DD, YYYY-MM, YYYY or text)
  insert, i         quick-capture text into the cache
  sync              run a full sync pass
  ser, serialize    print the cache as JSON lines (peer protocol)
  clear             empty the cache (peer protocol)
  list              list conflicted dates, or the sessions of DATE
  show              show a conflict session (default: the oldest)
  remove            delete a conflict session
  commit            write a conflict session back into its entry
  discard           delete every conflict session of DATE
  flip              swap a conflict chunk between add and rem: -t CHUNK_ID add|rem
  validate          compare cloud object sizes with stored entries
  init              write a starter config file

Examples:
  diary-sync insert -t "Walked to the harbour"
  diary-sync search -t 2024-03
  diary-sync sync --json
  diary-sync show -t 2024-03-01T10:00:00.000000Z
        """,
    )
    parser.add_argument("command", choices=sorted(COMMANDS), metavar="COMMAND")
    parser.add_argument(
        "-t", "--text", nargs="+", default=[], help="Text, date or session argument"
    )
    parser.add_argument(
        "--json", action="store_true", help="Print sync reports and conflicts as JSON"
    )
    parser.add_argument(
        "--database",
        help="Override database path (takes precedence over DATABASE_PATH and config files)",
    )
    parser.add_argument(
        "--diary-path",
        help="Override diary directory (takes precedence over DIARY_PATH and config files)",
    )
    parser.add_argument(
        "--ssh-url",
        help="Override peer URL (takes precedence over SSH_URL and config files)",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--service",
        action="store_true",
        help="Log to a file only (LOG_FILE, default /tmp/diary-sync.log)",
    )
    parser.add_argument(
        "--version", action="version", version=f"diary-sync version {__version__}"
    )
    return parser


def _parse_date(text: str) -> dt.date:
    try:
        return dt.date.fromisoformat(text.strip())
    except ValueError:
        raise UsageError(f"Invalid date '{text}': expected YYYY-MM-DD") from None


def _parse_session(text: str) -> dt.datetime:
    try:
        return parse_timestamp(text)
    except ValueError:
        raise UsageError(
            f"Invalid session '{text}': expected a timestamp such as "
            "2024-03-01T10:00:00.000000Z"
        ) from None


def _require(text: str, what: str) -> str:
    if not text.strip():
        raise UsageError(f"This command needs {what}: pass it with -t")
    return text


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_sync(app: DiaryApp, args: argparse.Namespace) -> int:
    try:
        report = asyncio.run(app.run_sync())
    except SyncAbortedError as exc:
        report = exc.report
        print(f"Sync aborted during {exc.step}: {exc.__cause__}", file=sys.stderr)
        status = 1
    else:
        status = 0
    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    elif args.debug:
        print(format_sync_report(report))
    else:
        for line in report.log_lines():
            print(line)
    return status


def _cmd_list(app: DiaryApp, text: str) -> int:
    if text.strip():
        for session in app.conflicts.list_sessions(_parse_date(text)):
            print(format_timestamp(session))
        return 0
    dates = app.conflicts.list_dates()
    for diary_date in dates:
        print(diary_date.isoformat())
    if len(dates) == 1:
        for session in app.conflicts.list_sessions(dates[0]):
            print(f"  {format_timestamp(session)}")
    return 0


def _cmd_show(app: DiaryApp, text: str, as_json: bool) -> int:
    session = _parse_session(text) if text.strip() else app.conflicts.first_conflict()
    if session is None:
        print("No conflicts")
        return 0
    chunks = app.conflicts.list_chunks(session)
    if as_json:
        print(
            json.dumps([{"id": c.id, **c.to_export()} for c in chunks], indent=2)
        )
    else:
        print(format_conflict_session(chunks))
    return 0


def _cmd_validate(app: DiaryApp) -> int:
    if app.cloud is None:
        raise UsageError("No bucket configured: set DIARY_BUCKET")
    mismatches = app.cloud.validate()
    for diary_date, object_size, entry_size in mismatches:
        print(f"date {diary_date} object {object_size} entry {entry_size}")
    return 1 if mismatches else 0


def dispatch(app: DiaryApp, command: str, args: argparse.Namespace) -> int:
    """Run *command* against *app*; returns the process exit status."""
    text = " ".join(args.text)

    if command == "search":
        for block in app.search_text(_require(text, "search text")):
            print(block)
            print()
    elif command == "insert":
        item = app.cache_text(_require(text, "text to insert"))
        print(f"cached {format_timestamp(item.timestamp)}")
    elif command == "sync":
        return _cmd_sync(app, args)
    elif command == "serialize":
        for line in app.serialize_cache():
            print(line)
    elif command == "clear":
        for line in app.clear_cache():
            print(line)
    elif command == "list":
        return _cmd_list(app, text)
    elif command == "show":
        return _cmd_show(app, text, args.json)
    elif command == "remove":
        session = _parse_session(_require(text, "a session timestamp"))
        removed = app.conflicts.delete_session(session)
        print(f"removed {removed} chunks")
    elif command == "commit":
        session = _parse_session(_require(text, "a session timestamp"))
        new_session = app.conflicts.commit(session)
        print(f"committed {format_timestamp(session)}")
        if new_session is not None:
            print(f"new conflict {format_timestamp(new_session)}")
    elif command == "discard":
        diary_date = _parse_date(_require(text, "a date"))
        removed = app.conflicts.delete_by_date(diary_date)
        print(f"discarded {removed} chunks")
    elif command == "validate":
        return _cmd_validate(app)
    elif command == "flip":
        parts = _require(text, "a chunk id and add|rem").split()
        if len(parts) != 2:
            raise UsageError("flip needs: -t CHUNK_ID add|rem")
        app.conflicts.update_chunk_type(parts[0], DiffType(parts[1]))
        print(f"chunk {parts[0]} is now {parts[1]}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, load configuration and run one command."""
    args = build_parser().parse_args(argv)
    command = COMMANDS[args.command]

    load_env_files()
    try:
        unified = build_config(load_hierarchical_config())
    except ValidationError as exc:
        print(f"Invalid config file: {exc}", file=sys.stderr)
        return 2

    setup_logging(
        mode="service" if args.service else "cli",
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=unified.logging.format,
        level=unified.logging.level,
    )

    if command == "init":
        print(ensure_config())
        return 0

    try:
        config = load_config(
            database_path=args.database,
            diary_path=args.diary_path,
            ssh_url=args.ssh_url,
            debug=args.debug,
            yaml_fallbacks=unified.diary.fallbacks(),
        )
        app = DiaryApp(config)
        return dispatch(app, command, args)
    except (UsageError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    except DiarySyncError as exc:
        logger.debug("Command %s failed", command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def run() -> None:
    """Console entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
