"""Configuration for stashreview.

Loads ``.stashreview.toml`` from the project root (walking up to ``.git``),
applies ``STASH_*`` environment overrides, validates with Pydantic, and
provides sensible defaults so zero-config still works for everything except
the server URL.
"""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".stashreview.toml"

# env var -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "STASH_URL": ("stash", "url"),
    "STASH_USER": ("stash", "user"),
    "STASH_TOKEN": ("stash", "token"),
    "STASH_TIMEOUT": ("stash", "timeout"),
    "STASHREVIEW_LOG_LEVEL": ("logging", "level"),
}


class ConfigError(ValueError):
    """Raised when the config file is not valid TOML or fails validation."""


class StashConfig(BaseModel):
    """Connection settings for the Stash server."""

    model_config = ConfigDict(extra="ignore")

    url: str = Field(default="", description="Base URL of the Stash server, e.g. https://stash.example.com")
    user: str = Field(default="", description="User name sent as X-Auth-User")
    token: str = Field(default="", description="Access token sent as X-Auth-Token")
    timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")


class ReviewConfig(BaseModel):
    """Behaviour of review operations."""

    model_config = ConfigDict(extra="ignore")

    comment_preview_len: int = Field(default=40, ge=1, description="Characters of comment text shown in log lines")
    version_retries: int = Field(
        default=3,
        ge=1,
        description="Attempts for decline/merge when the pull request version changes underneath",
    )
    strict_changes: bool = Field(
        default=False,
        description="Raise on unrecognized review changes instead of logging and skipping them",
    )
    ignore_whitespace: bool = Field(default=False, description="Ask the server to ignore whitespace-only differences")


class LoggingConfig(BaseModel):
    """Log output settings for the command line."""

    model_config = ConfigDict(extra="ignore")

    level: str = Field(default="WARNING", description="Root log level")

    @field_validator("level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            msg = f"unknown log level {value!r}"
            raise ValueError(msg)
        return level


class Config(BaseModel):
    """Top-level stashreview configuration."""

    model_config = ConfigDict(extra="ignore")

    stash: StashConfig = Field(default_factory=StashConfig, description="Stash server connection")
    review: ReviewConfig = Field(default_factory=ReviewConfig, description="Review operation settings")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging settings")


def _collect_unknown_keys(
    data: dict[str, Any],
    model_cls: type[BaseModel],
    prefix: str = "",
) -> list[str]:
    """Recursively find keys in *data* that don't match any field in *model_cls*.

    Returns dotted key paths like ``review.retries``.
    """
    known = set(model_cls.model_fields)
    unknown: list[str] = []

    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if key not in known:
            unknown.append(dotted)
            continue
        annotation = model_cls.model_fields[key].annotation
        if isinstance(annotation, type) and issubclass(annotation, BaseModel) and isinstance(value, dict):
            unknown.extend(_collect_unknown_keys(value, annotation, prefix=f"{dotted}."))

    return unknown


def _find_config_file(start: Path) -> Path | None:
    """Walk up from *start* looking for ``.stashreview.toml``, stopping at ``.git`` root."""
    current = start.resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        if (current / ".git").exists():
            return None
        current = current.parent


def _apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of *data* with ``STASH_*`` environment values layered on top."""
    merged = {section: dict(values) for section, values in data.items() if isinstance(values, dict)}
    merged.update({k: v for k, v in data.items() if not isinstance(v, dict)})
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            logger.debug("Config %s.%s overridden by %s", section, key, env_name)
            merged.setdefault(section, {})[key] = value
    return merged


def load_config(
    cwd: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[Config, Path | None]:
    """Load configuration from ``.stashreview.toml`` and the environment.

    Walks up from *cwd* (defaulting to the current directory) looking for the
    config file.  If not found, only environment overrides and defaults apply.

    Returns:
        (config, config_path); config_path is None when no file was found.

    Raises:
        ConfigError: On invalid TOML or validation errors.
    """
    start = Path(cwd) if cwd else Path.cwd()
    config_path = _find_config_file(start)
    data: dict[str, Any] = {}

    if config_path is None:
        logger.info("No %s found, using defaults", CONFIG_FILENAME)
    else:
        logger.info("Loading config from %s", config_path)
        try:
            data = tomllib.loads(config_path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as exc:
            msg = f"Invalid TOML in {config_path}: {exc}"
            raise ConfigError(msg) from exc

        for key in _collect_unknown_keys(data, Config):
            logger.warning("Unknown config key '%s' in %s", key, config_path)

    data = _apply_env_overrides(data, os.environ if environ is None else environ)

    try:
        config = Config.model_validate(data)
    except ValidationError as exc:
        source = config_path or "environment"
        msg = f"Invalid config in {source}: {exc}"
        raise ConfigError(msg) from exc

    return config, config_path


# -- Active config --------------------------------------------------------------

_state: dict[str, Config] = {"config": Config()}


def get_config() -> Config:
    """Return the active configuration."""
    return _state["config"]


def set_config(config: Config) -> None:
    """Set the active configuration (called once by the CLI at startup)."""
    _state["config"] = config
