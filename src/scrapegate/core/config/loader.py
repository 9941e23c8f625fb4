"""
YAML configuration loading.

``configs/app.yaml`` (or the file named by ``$SCRAPEGATE_CONFIG``) is parsed,
``${VAR}`` / ``${VAR:-default}`` references are filled from the environment,
and the result is validated into an AppConfig.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import AppConfig


DEFAULT_CONFIG_PATH = Path("configs/app.yaml")

# Environment variable naming an alternative config file
CONFIG_ENV_VAR = "SCRAPEGATE_CONFIG"

_ENV_REF = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")


class ConfigError(Exception):
    """A config file could not be read, parsed or validated.

    ``problems`` holds one ``"location: message"`` line per validation
    failure; ``details`` is the same list joined for display.
    """

    def __init__(self, message: str, path: Path | None = None, problems: list[str] | None = None):
        super().__init__(message)
        self.path = path
        self.problems = problems or []

    @property
    def details(self) -> str | None:
        return "\n".join(self.problems) or None


def _validation_problems(error: ValidationError) -> list[str]:
    return [
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    ]


def _expand_env_vars(data: Any) -> Any:
    """Replace ``${VAR}`` / ``${VAR:-default}`` in every string, recursively."""
    if isinstance(data, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), m.group(2) or ""), data)
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    return data


def _read_mapping(path: Path) -> dict[str, Any]:
    """Parse a YAML file whose top level must be a mapping (empty file -> {})."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}", path=path) from None
    except OSError as e:
        raise ConfigError(f"Cannot read {path}", path=path, problems=[str(e)]) from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}", path=path, problems=[str(e)]) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Expected a mapping at the top of {path}, got {type(data).__name__}",
            path=path,
        )
    return data


def resolve_config_path(path: Path | str | None = None) -> Path:
    """Explicit path, then ``$SCRAPEGATE_CONFIG``, then ``configs/app.yaml``."""
    if path is not None:
        return Path(path)
    return Path(os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)


def load_app_config(
    path: Path | str | None = None,
    expand_env: bool = True,
) -> AppConfig:
    """Load and validate the application configuration.

    A missing file yields the built-in defaults, so the CLI works without
    any config at all.

    Raises:
        ConfigError: The file exists but is unreadable, not YAML, or invalid
    """
    path = resolve_config_path(path)
    if not path.exists():
        return AppConfig()

    data = _read_mapping(path)
    if expand_env:
        data = _expand_env_vars(data)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid app configuration in {path}",
            path=path,
            problems=_validation_problems(e),
        ) from e


def validate_config_file(path: Path | str) -> list[str]:
    """Check a config file; returns problems as text lines (empty when valid)."""
    path = Path(path)
    try:
        data = _expand_env_vars(_read_mapping(path))
        AppConfig.model_validate(data)
    except ConfigError as e:
        return [str(e), *e.problems]
    except ValidationError as e:
        return _validation_problems(e)
    return []
