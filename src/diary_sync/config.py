"""Runtime configuration for diary-sync.

Reads settings from CLI args, environment variables, ``config.env`` /
``.env`` files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    DATABASE_PATH: SQLite database file (default: ~/.local/share/diary_sync/diary.db)
    DIARY_PATH: Directory of YYYY-MM-DD.txt files (default: ~/Dropbox/epistle)
    DIARY_BUCKET: Object store bucket; empty disables the cloud replica
    AWS_REGION_NAME: Region for the object store client (default: us-east-1)
    SSH_URL: Peer to pull cache items from, ssh://user@host[:port]
    BACKUP_PATH: Offline backup directory to validate
    TIME_BUFFER: Cloud staleness tolerance in seconds (default: 60)
    LOCAL_TOLERANCE: Local file mtime tolerance in seconds (default: 1)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

from .sync.peer import DEFAULT_CLEAR_COMMAND, DEFAULT_SERIALIZE_COMMAND

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_PATH = "~/.local/share/diary_sync/diary.db"
DEFAULT_DIARY_PATH = "~/Dropbox/epistle"
DEFAULT_BUCKET = "diary_bucket"
DEFAULT_REGION = "us-east-1"


@dataclass
class Config:
    database_path: Path
    diary_path: Path
    diary_bucket: str = DEFAULT_BUCKET
    aws_region_name: str = DEFAULT_REGION
    ssh_url: str | None = None
    backup_path: Path | None = None
    time_buffer: float = 60.0
    local_tolerance: float = 1.0
    peer_serialize_command: str = DEFAULT_SERIALIZE_COMMAND
    peer_clear_command: str = DEFAULT_CLEAR_COMMAND
    debug: bool = False


def load_env_files() -> list[Path]:
    """Load ``config.env`` files into the environment, then ``.env``.

    Looks for ``config.env`` in the current directory and in
    ``~/.config/diary_sync/``.  Values already set in the environment are
    never overridden.

    Returns:
        The ``config.env`` files that were loaded.
    """
    loaded: list[Path] = []
    for candidate in (
        Path.cwd() / "config.env",
        Path.home() / ".config" / "diary_sync" / "config.env",
    ):
        if candidate.exists():
            load_dotenv(candidate)
            loaded.append(candidate)
    load_dotenv()
    return loaded


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    A peer URL with a scheme other than ``ssh`` is accepted; it only
    leaves the peer unreachable.

    Raises:
        ValueError: If a buffer is negative or the ssh URL lacks a host.
    """
    if config.time_buffer < 0:
        raise ValueError(
            f"Invalid TIME_BUFFER '{config.time_buffer}': must be zero or more seconds"
        )
    if config.local_tolerance < 0:
        raise ValueError(
            f"Invalid LOCAL_TOLERANCE '{config.local_tolerance}': must be zero or more seconds"
        )

    if config.ssh_url:
        config.ssh_url = config.ssh_url.strip()
        parsed = urlparse(config.ssh_url)
        if parsed.scheme != "ssh":
            logger.info(
                "SSH_URL '%s' is not an ssh:// URL; peer pull disabled",
                config.ssh_url,
            )
        elif not parsed.hostname:
            raise ValueError(
                f"Invalid SSH_URL '{config.ssh_url}': URL must include a hostname"
            )

    if not config.diary_bucket:
        logger.info("DIARY_BUCKET is empty; cloud replica disabled")


def _get_float(env_key: str, fb: dict, fb_key: str, default: float) -> float:
    raw = os.getenv(env_key)
    if raw is None:
        if fb.get(fb_key) is None:
            return default
        raw = fb[fb_key]
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ValueError(
            f"Invalid {env_key} '{raw}': must be a number of seconds"
        ) from None


def load_config(
    database_path: str | None = None,
    diary_path: str | None = None,
    ssh_url: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_env_files()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        database_path: Override database file path.
        diary_path: Override diary directory.
        ssh_url: Override peer URL.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Dict of values from the YAML ``diary`` section.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is malformed.
    """
    fb = yaml_fallbacks or {}

    # --- Paths: CLI > env > YAML > default ---

    final_db = (
        database_path
        or os.getenv("DATABASE_PATH")
        or fb.get("database_path")
        or DEFAULT_DATABASE_PATH
    )
    final_diary = (
        diary_path
        or os.getenv("DIARY_PATH")
        or fb.get("diary_path")
        or DEFAULT_DIARY_PATH
    )
    backup_raw = os.getenv("BACKUP_PATH") or fb.get("backup_path")

    # --- Strings: env > YAML > default (empty bucket is meaningful) ---

    bucket = os.getenv("DIARY_BUCKET")
    if bucket is None:
        bucket = fb.get("diary_bucket", DEFAULT_BUCKET)
    region = (
        os.getenv("AWS_REGION_NAME")
        or fb.get("aws_region_name")
        or DEFAULT_REGION
    )
    final_ssh = ssh_url or os.getenv("SSH_URL") or fb.get("ssh_url")

    # --- Numeric fields: env > YAML > default ---

    time_buffer = _get_float("TIME_BUFFER", fb, "time_buffer", 60.0)
    local_tolerance = _get_float(
        "LOCAL_TOLERANCE", fb, "local_tolerance", 1.0
    )

    config = Config(
        database_path=Path(final_db).expanduser(),
        diary_path=Path(final_diary).expanduser(),
        diary_bucket=(bucket or "").strip(),
        aws_region_name=region,
        ssh_url=final_ssh or None,
        backup_path=Path(backup_raw).expanduser() if backup_raw else None,
        time_buffer=time_buffer,
        local_tolerance=local_tolerance,
        peer_serialize_command=fb.get(
            "peer_serialize_command", DEFAULT_SERIALIZE_COMMAND
        ),
        peer_clear_command=fb.get("peer_clear_command", DEFAULT_CLEAR_COMMAND),
        debug=debug or bool(fb.get("debug", False)),
    )

    validate_config(config)

    return config
