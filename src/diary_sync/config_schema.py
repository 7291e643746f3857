"""YAML configuration schema for diary-sync.

Defines Pydantic models for the config file, with a ``diary`` section
(replica locations and sync tuning) and a ``logging`` section.  Every
field is optional, so an absent or empty file is valid.

Usage:
    from diary_sync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=unified.diary.fallbacks())
"""

from __future__ import annotations

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class DiarySection(BaseModel):
    """Replica locations and sync tuning.

    Unset fields fall through to environment variables and defaults.
    """

    database_path: str | None = Field(
        default=None, description="SQLite database file"
    )
    diary_path: str | None = Field(
        default=None, description="Directory of YYYY-MM-DD.txt files"
    )
    diary_bucket: str | None = Field(
        default=None,
        description="Object store bucket (empty string disables the cloud replica)",
    )
    aws_region_name: str | None = Field(
        default=None, description="Object store region"
    )
    ssh_url: str | None = Field(
        default=None, description="Peer URL, ssh://user@host[:port]"
    )
    backup_path: str | None = Field(
        default=None, description="Offline backup directory"
    )
    time_buffer: float | None = Field(
        default=None, ge=0, description="Cloud staleness tolerance (seconds)"
    )
    local_tolerance: float | None = Field(
        default=None, ge=0, description="Local mtime tolerance (seconds)"
    )
    peer_serialize_command: str | None = Field(
        default=None, description="Remote command printing the peer cache"
    )
    peer_clear_command: str | None = Field(
        default=None, description="Remote command clearing the peer cache"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {"frozen": True}

    def fallbacks(self) -> dict:
        """Set fields as a dict for ``load_config(yaml_fallbacks=...)``."""
        return self.model_dump(exclude_none=True)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str | None = Field(default=None, description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", pattern="^(text|json)$")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration file model.

    ``UnifiedConfig()`` (zero-config) is always valid.
    """

    diary: DiarySection = Field(default_factory=DiarySection)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the merged YAML dict.

    Missing sections get defaults.

    Raises:
        pydantic.ValidationError: If a value has the wrong type or range.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
