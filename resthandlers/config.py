"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. Explicit path passed to load_settings()
2. ./resthandlers.yaml (working directory)
3. ~/.resthandlers/config.yaml (user home)

Environment variables override YAML: RESTHANDLERS_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
Without a config file the defaults apply, still subject to env overrides.
"""

import logging
import os
import re
import sys
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

ENV_PREFIX = "RESTHANDLERS_"

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str = "sqlite+aiosqlite:///./resthandlers.db"
    echo: bool = False


class HandlersConfig(BaseModel):
    """Default options of the resource handlers."""

    api_version: str = "1"
    post_response: Literal["record", "status", "redirect"] = "record"
    patch_response: Literal["record", "reread", "nocontent"] = "record"

    @field_validator("api_version", mode="before")
    @classmethod
    def _stringify_version(cls, value: Any) -> Any:
        # env overrides coerce numeric strings to int
        return str(value) if isinstance(value, int) else value


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "info"
    format: str = "%(levelname)s:%(name)s:%(message)s"


class ResthandlersConfig(BaseModel):
    """Top-level configuration."""

    database: DatabaseConfig = DatabaseConfig()
    handlers: HandlersConfig = HandlersConfig()
    logging: LoggingConfig = LoggingConfig()


def _find_config_file() -> Path | None:
    candidates = [
        Path.cwd() / "resthandlers.yaml",
        Path.cwd() / "resthandlers.yml",
        Path.home() / ".resthandlers" / "config.yaml",
        Path.home() / ".resthandlers" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply RESTHANDLERS_<SECTION>_<KEY> env var overrides to config data.

    For example, ``RESTHANDLERS_HANDLERS_API_VERSION`` maps to section
    ``handlers``, field ``api_version``.
    """
    known_sections = sorted(ResthandlersConfig.model_fields.keys(), key=len, reverse=True)
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if not isinstance(data.get(matched_section), dict):
            data[matched_section] = {}
        # Coerce to int, bool, or keep as string
        try:
            data[matched_section][matched_field] = int(value)
        except ValueError:
            if value.lower() in ("true", "false"):
                data[matched_section][matched_field] = value.lower() == "true"
            else:
                data[matched_section][matched_field] = value
    return data


def load_settings(config_path: str | None = None) -> ResthandlersConfig:
    """Load configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.resthandlers/).

    Returns:
        Parsed and validated ResthandlersConfig.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
    """
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    raw_data: dict[str, Any] = {}
    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return ResthandlersConfig(**data)


def configure_logging(config: LoggingConfig) -> None:
    """Configure root logging to stdout and set the package log level."""
    logging.basicConfig(format=config.format, stream=sys.stdout)
    logging.getLogger("resthandlers").setLevel(config.level.upper())
