"""Typed configuration — single source of truth for all logship runtime settings.

Loading priority (highest to lowest):
  1. Explicit init kwargs (programmatic overrides, tests)
  2. Environment variables: LOGSHIP_<SECTION>__<KEY>  (double-underscore separator)
  3. Config file: LOGSHIP_CONFIG_FILE env var, or conf/settings.toml at project root
  4. Model field defaults

Example env overrides:
  LOGSHIP_TAIL__WHENCE=newest
  LOGSHIP_SENDER__MAX_BATCH_BYTES=1048576
  LOGSHIP_LOGGING__LEVEL=DEBUG
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# Derive project root from this file's location: src/logship/config.py → ../../..
_PROJECT_ROOT = Path(__file__).parent.parent.parent
_DEFAULT_CONFIG = _PROJECT_ROOT / "conf" / "settings.toml"


def _config_file() -> Path:
    """Resolve the config file path.

    Returns LOGSHIP_CONFIG_FILE if set (raises FileNotFoundError if missing),
    otherwise returns the bundled default at conf/settings.toml.
    """
    if env_val := os.environ.get("LOGSHIP_CONFIG_FILE"):
        p = Path(env_val)
        if not p.is_file():
            raise FileNotFoundError(f"LOGSHIP_CONFIG_FILE not found: {p}")
        return p
    return _DEFAULT_CONFIG


# ---------------------------------------------------------------------------
# Section models — each maps to a [section] in conf/settings.toml
# ---------------------------------------------------------------------------


class TailSettings(BaseModel):
    """Directory tailing: start position, ignore rules and retry pacing."""

    whence: Literal["oldest", "newest"] = "oldest"

    ignore_hidden: bool = True
    ignore_suffixes: list[str] = []
    valid_file_pattern: str = "*"

    # Pause between attempts to open a file when none is open.  Unbounded.
    reopen_delay: float = 3.0
    # The current file disappeared (rotation race or directory removal).
    vanished_delay: float = 0.1
    vanished_retries: int = 3
    # Done-file log appends are retried until they succeed or the tailer closes.
    done_file_delay: float = 3.0
    # Idle pause before reporting end-of-stream when no successor file exists.
    eof_delay: float = 0.5

    @field_validator("vanished_retries")
    @classmethod
    def _positive_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"vanished_retries must be >= 1, got {v}")
        return v


class SenderSettings(BaseModel):
    """Batching, schema reconciliation and validation policy for delivery."""

    repo: str = ""
    # "field alias, field, ...", see logship.user_schema.
    user_schema: str = ""
    # Declaration used to create the repo when it does not exist yet.
    auto_create: str = ""
    # The endpoint rejects request bodies above 2 MiB.
    max_batch_bytes: int = 2 * 1024 * 1024
    schema_refresh_seconds: int = 300
    validation: Literal["drop_field", "reject_record"] = "drop_field"

    @field_validator("max_batch_bytes", "schema_refresh_seconds")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"must be >= 0, got {v}")
        return v


class LoggingSettings(BaseModel):
    """Logging verbosity and output format."""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"

    @field_validator("level", mode="before")
    @classmethod
    def _normalise_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"level must be one of {sorted(valid)}, got {v!r}")
        return v.upper()


# ---------------------------------------------------------------------------
# Root settings class
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """All logship runtime settings, fully resolved and validated."""

    tail: TailSettings = TailSettings()
    sender: SenderSettings = SenderSettings()
    logging: LoggingSettings = LoggingSettings()

    model_config = SettingsConfigDict(
        env_prefix="LOGSHIP_",
        env_nested_delimiter="__",  # LOGSHIP_TAIL__WHENCE → tail.whence
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Exclude dotenv and file-secret sources; logship uses TOML + env only.
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=_config_file()),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide Settings instance (loaded once, cached thereafter).

    Tests should call ``get_settings.cache_clear()`` before each test that
    patches environment variables or the config file.
    """
    return Settings()
