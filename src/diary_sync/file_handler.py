"""File handler module: diary file naming and encoding-aware read/write.

Diary files are named ``YYYY-MM-DD.txt``; yearly archives are named
``diary_YYYY.txt``.  Writes are atomic (temp file plus ``os.replace``) so
an editor or file-sync client never sees a half-written entry.
"""

from __future__ import annotations

import datetime as dt
import os
import re
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

from diary_sync.errors import ParseError, TransportError
from diary_sync.store.models import as_utc

# =============================================================================
# Naming
# =============================================================================

_ENTRY_NAME = re.compile(r"^(\d{4})-(\d{2})-(\d{2})\.txt$")


def entry_filename(diary_date: dt.date) -> str:
    return f"{diary_date.isoformat()}.txt"


def archive_filename(year: int) -> str:
    return f"diary_{year}.txt"


def is_entry_filename(name: str) -> bool:
    """Return ``True`` if *name* has the ``YYYY-MM-DD.txt`` shape."""
    return _ENTRY_NAME.match(name) is not None


def parse_entry_filename(name: str) -> dt.date:
    """Parse the date out of a ``YYYY-MM-DD.txt`` file name.

    Raises:
        ParseError: If *name* does not have that shape or is not a real
            calendar date (``2024-02-30.txt``).
    """
    match = _ENTRY_NAME.match(name)
    if match is None:
        raise ParseError(f"Not a diary file name: {name}")
    year, month, day = (int(g) for g in match.groups())
    try:
        return dt.date(year, month, day)
    except ValueError as exc:
        raise ParseError(f"Invalid date in file name {name}: {exc}") from exc


def list_entry_files(directory: Path) -> list[Path]:
    """Files in *directory* shaped like diary entries, sorted by name.

    Raises:
        TransportError: If the directory cannot be listed.
    """
    try:
        return sorted(
            p
            for p in directory.iterdir()
            if p.is_file() and is_entry_filename(p.name)
        )
    except OSError as exc:
        raise TransportError(f"Cannot list {directory}: {exc}") from exc


def file_mtime(path: Path) -> dt.datetime:
    """Modification time of *path* as aware UTC."""
    return as_utc(
        dt.datetime.fromtimestamp(path.stat().st_mtime, dt.timezone.utc)
    )


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Diary files are normally UTF-8, but entries typed into other editors
    occasionally are not.  Empty files and failed detection fall back to
    UTF-8.

    Returns:
        Tuple of (content_string, detected_encoding).

    Raises:
        TransportError: If the file cannot be read.
    """
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise TransportError(f"Cannot read {path}: {exc}") from exc
    if not raw:
        return ("", "utf-8")

    try:
        return (raw.decode("utf-8"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        return (raw.decode("utf-8", errors="replace"), "utf-8")
    return (str(result), result.encoding)


def write_file(path: Path, content: str) -> int:
    """Atomically write *content* as UTF-8, creating parent directories.

    Returns:
        Number of bytes written.

    Raises:
        TransportError: If the file cannot be written.
    """
    encoded = content.encode("utf-8")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent), prefix=".", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(encoded)
            os.replace(tmp_path, path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
    except OSError as exc:
        raise TransportError(f"Cannot write {path}: {exc}") from exc
    return len(encoded)
