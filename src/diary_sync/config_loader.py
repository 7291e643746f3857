"""
Config file discovery and loading for diary-sync.

Finds YAML config files by convention, merges them with "project wins"
semantics, and interpolates ``${VAR}`` / ``${VAR:-default}`` from the
environment.

Usage:
    from diary_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DIARY_SYNC_CONFIG"

# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Substitute ``${VAR}`` and ``${VAR:-default}`` in *value*.

    An unset or empty variable becomes its default, or ``""`` without one.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate(obj: Any) -> Any:
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate(item) for item in obj]
    return obj


def load_yaml_file(path: Path) -> Any:
    """Parse *path* with the safe loader."""
    with open(path, "r", encoding="utf-8") as fh:
        return yaml.safe_load(fh)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``DIARY_SYNC_CONFIG`` env var (explicit single path)
        2. ``.diary_sync/config.yml`` in CWD
        3. ``.diary_sync/config.yaml`` in CWD
        4. ``~/.config/diary_sync/config.yml``
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    cwd = Path.cwd()
    candidates.append(cwd / ".diary_sync" / "config.yml")
    candidates.append(cwd / ".diary_sync" / "config.yaml")
    candidates.append(Path.home() / ".config" / "diary_sync" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# diary-sync configuration
#
# Every setting can also come from the environment (or a config.env file):
#   DATABASE_PATH, DIARY_PATH, DIARY_BUCKET, AWS_REGION_NAME, SSH_URL,
#   BACKUP_PATH, TIME_BUFFER, LOCAL_TOLERANCE
# Values may reference the environment as ${VAR} or ${VAR:-default}.
#
# diary:
#   database_path: ~/.local/share/diary_sync/diary.db
#   diary_path: ${HOME}/Dropbox/epistle
#   diary_bucket: diary_bucket      # "" disables the cloud replica
#   aws_region_name: us-east-1
#   ssh_url: ssh://user@host:22
#   backup_path: null
#   time_buffer: 60
#   local_tolerance: 1
#
# logging:
#   level: INFO
#   file: null
#   format: text
"""


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a starter file if there is none.

    Args:
        target: Where to create the starter file (default:
            ``CWD / .diary_sync / config.yml``).
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or Path.cwd() / ".diary_sync" / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are applied from lowest precedence to highest; each file's
    top-level sections replace those of earlier files.  Environment
    interpolation runs after the merge.  Returns ``{}`` when no file
    exists.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        data = load_yaml_file(path)
        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate(merged)
