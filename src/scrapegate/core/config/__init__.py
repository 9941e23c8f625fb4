"""Configuration loading and validation."""

from .models import (
    AppConfig,
    CacheSettings,
    FetchSettings,
    LoggingConfig,
    SiteConfig,
)
from .loader import ConfigError, load_app_config, validate_config_file

__all__ = [
    # Config models
    "AppConfig",
    "CacheSettings",
    "FetchSettings",
    "LoggingConfig",
    "SiteConfig",
    # Loaders
    "ConfigError",
    "load_app_config",
    "validate_config_file",
]
