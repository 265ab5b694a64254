"""
Configuration management for medialib.

This module handles loading, validating, and providing access to the
configuration stored in config.yaml.

The configuration file contains:
    - Location of the library database and the remote download cache
    - Sync batching parameters
    - WebDAV client settings
    - Text matching options
    - Logging directory and level

Configuration File Location:
    An explicit path may be passed to load_config(). Otherwise config.yaml
    in the current working directory is used if present, and built-in
    defaults apply when it is not.

Example config.yaml:
    library:
      database: "~/.medialib/library.db"
      cache_directory: "~/.medialib/cache"

    sync:
      batch_size: 15
      max_workers: 15
      prune_missing: true

    webdav:
      timeout: 30
      max_cache_segments: 12

    matching:
      fold_traditional_chinese: false

    logging:
      directory: "~/.medialib/logs"
      level: "INFO"
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from medialib.core.exceptions import ConfigError


CONFIG_FILENAME = "config.yaml"

DEFAULT_HOME = "~/.medialib"
DEFAULT_BATCH_SIZE = 15
DEFAULT_USER_AGENT = "medialib/1.0"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class LibraryConfig:
    """
    Storage locations.

    Attributes:
        database_path: SQLite file holding roots, tracks, artists, playlists.
        cache_directory: Root of the per-source download cache used for
                         WebDAV files. Each root gets its own subdirectory.
    """
    database_path: Path = field(
        default_factory=lambda: Path(DEFAULT_HOME).expanduser() / "library.db"
    )
    cache_directory: Path = field(
        default_factory=lambda: Path(DEFAULT_HOME).expanduser() / "cache"
    )


@dataclass(frozen=True)
class SyncConfig:
    """
    Incremental sync behavior.

    Attributes:
        batch_size: Files processed per batch before results are persisted.
        max_workers: Upper bound on concurrent metadata extractions in a batch.
        prune_missing: Remove cached tracks whose file disappeared from the root.
    """
    batch_size: int = DEFAULT_BATCH_SIZE
    max_workers: int = DEFAULT_BATCH_SIZE
    prune_missing: bool = True


@dataclass(frozen=True)
class WebDAVConfig:
    """
    WebDAV client settings.

    Attributes:
        timeout: Seconds before an HTTP request is abandoned.
        user_agent: User-Agent header sent with every request.
        max_cache_segments: Number of trailing path segments kept when
                            mapping a remote file to the local cache.
        chunk_size: Bytes per chunk for streamed downloads.
    """
    timeout: int = 30
    user_agent: str = DEFAULT_USER_AGENT
    max_cache_segments: int = 12
    chunk_size: int = 64 * 1024


@dataclass(frozen=True)
class MatchingConfig:
    """
    Text matching options.

    Attributes:
        fold_traditional_chinese: Also fold Traditional Chinese characters to
                                  Simplified before comparing text.
    """
    fold_traditional_chinese: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    """
    Logging output.

    Attributes:
        directory: Directory receiving the log files.
        level: Console log level.
    """
    directory: Path = field(
        default_factory=lambda: Path(DEFAULT_HOME).expanduser() / "logs"
    )
    level: str = "INFO"


@dataclass(frozen=True)
class Config:
    """
    Complete configuration.

    Created by load_config() and treated as immutable.

    Example:
        config = load_config()
        print(f"Library database: {config.library.database_path}")
        print(f"Batch size: {config.sync.batch_size}")
    """
    library: LibraryConfig = field(default_factory=LibraryConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    webdav: WebDAVConfig = field(default_factory=WebDAVConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in the current working
                     directory and falls back to defaults when absent.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit file is not found, the YAML is invalid,
                     or a field has an invalid value.
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME
        if not config_path.exists():
            return Config()
    elif not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # An empty file is a valid "all defaults" configuration
    if raw_config is None:
        return Config()

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return Config(
        library=_parse_library_config(_section(raw_config, "library")),
        sync=_parse_sync_config(_section(raw_config, "sync")),
        webdav=_parse_webdav_config(_section(raw_config, "webdav")),
        matching=_parse_matching_config(_section(raw_config, "matching")),
        logging=_parse_logging_config(_section(raw_config, "logging")),
    )


def _section(raw_config: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw_config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"Section '{name}' must be a dictionary",
            details={"section": name}
        )
    return section


def _path_field(section: dict[str, Any], key: str, qualified: str, default: Path) -> Path:
    raw = section.get(key)
    if raw is None:
        return default
    if not isinstance(raw, str) or not raw.strip():
        raise ConfigError(
            f"'{qualified}' must be a non-empty string",
            details={"field": qualified}
        )
    return Path(raw.strip()).expanduser().resolve()


def _positive_int(section: dict[str, Any], key: str, qualified: str, default: int) -> int:
    raw = section.get(key)
    if raw is None:
        return default
    # bool is a subclass of int; "true" is never a valid count
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
        raise ConfigError(
            f"'{qualified}' must be a positive integer",
            details={"field": qualified, "value": raw}
        )
    return raw


def _bool_field(section: dict[str, Any], key: str, qualified: str, default: bool) -> bool:
    raw = section.get(key)
    if raw is None:
        return default
    if not isinstance(raw, bool):
        raise ConfigError(
            f"'{qualified}' must be true or false",
            details={"field": qualified, "value": raw}
        )
    return raw


def _parse_library_config(section: dict[str, Any]) -> LibraryConfig:
    defaults = LibraryConfig()
    return LibraryConfig(
        database_path=_path_field(section, "database", "library.database", defaults.database_path),
        cache_directory=_path_field(
            section, "cache_directory", "library.cache_directory", defaults.cache_directory
        ),
    )


def _parse_sync_config(section: dict[str, Any]) -> SyncConfig:
    batch_size = _positive_int(section, "batch_size", "sync.batch_size", DEFAULT_BATCH_SIZE)
    return SyncConfig(
        batch_size=batch_size,
        max_workers=_positive_int(section, "max_workers", "sync.max_workers", batch_size),
        prune_missing=_bool_field(section, "prune_missing", "sync.prune_missing", True),
    )


def _parse_webdav_config(section: dict[str, Any]) -> WebDAVConfig:
    defaults = WebDAVConfig()

    user_agent = section.get("user_agent", defaults.user_agent)
    if not isinstance(user_agent, str) or not user_agent.strip():
        raise ConfigError(
            "'webdav.user_agent' must be a non-empty string",
            details={"field": "webdav.user_agent"}
        )

    return WebDAVConfig(
        timeout=_positive_int(section, "timeout", "webdav.timeout", defaults.timeout),
        user_agent=user_agent.strip(),
        max_cache_segments=_positive_int(
            section, "max_cache_segments", "webdav.max_cache_segments", defaults.max_cache_segments
        ),
        chunk_size=_positive_int(section, "chunk_size", "webdav.chunk_size", defaults.chunk_size),
    )


def _parse_matching_config(section: dict[str, Any]) -> MatchingConfig:
    return MatchingConfig(
        fold_traditional_chinese=_bool_field(
            section, "fold_traditional_chinese", "matching.fold_traditional_chinese", False
        )
    )


def _parse_logging_config(section: dict[str, Any]) -> LoggingConfig:
    defaults = LoggingConfig()

    level = section.get("level", defaults.level)
    if not isinstance(level, str) or level.upper() not in _LOG_LEVELS:
        raise ConfigError(
            f"'logging.level' must be one of {sorted(_LOG_LEVELS)}",
            details={"field": "logging.level", "value": level}
        )

    return LoggingConfig(
        directory=_path_field(section, "directory", "logging.directory", defaults.directory),
        level=level.upper(),
    )
