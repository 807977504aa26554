"""Core infrastructure layer - no domain dependencies.

This module provides foundation-level services:
- Configuration management (TOML)
- Logging output (Loguru)
"""

from .config import (
    Config,
    ConfigError,
    LoggingConfig,
    PlayerConfig,
    PlaylistConfig,
    ResolverConfig,
    VisualizerConfig,
    create_default_config,
    ensure_directories,
    get_config_dir,
    get_config_path,
    get_data_dir,
    load_config,
    parse_config,
)
from .output import get_log_file_path, setup_loguru

__all__ = [
    # Config
    "Config",
    "ConfigError",
    "LoggingConfig",
    "PlayerConfig",
    "PlaylistConfig",
    "ResolverConfig",
    "VisualizerConfig",
    "create_default_config",
    "ensure_directories",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "load_config",
    "parse_config",
    # Output
    "get_log_file_path",
    "setup_loguru",
]
