"""
Sync Configuration - Centralized settings for the vault sync agent.

Two layers of configuration are read here:
    - SyncConfig: the agent's own settings (vault, exclusions, timing),
      persisted as the plugin's data.json and overridable from the environment.
    - BackendConfig: the Local RAG server's YAML config, read-only, used to
      locate the remote indexing service.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import yaml

from .errors import ConfigurationError
from .exclusion import normalize_tag


logger = logging.getLogger(__name__)

DEFAULT_BACKEND_CONFIG_PATH = Path.home() / ".config" / "local_rag" / "config.yml"

SETTINGS_FILE = "data.json"
PENDING_FILE = "pending.json"


def parse_list(value: Any) -> List[str]:
    """Split a comma-separated setting into trimmed, non-empty items."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = [str(item) for item in value]
    return [item.strip() for item in items if item.strip()]


@dataclass
class SyncConfig:
    """
    Configuration for the sync agent.

    Plugin state (settings and the pending queue) lives in data_dir, which
    defaults to the plugin folder inside the vault's .obsidian directory.
    """

    # --- Paths ---
    vault_root: Path = field(default_factory=Path.cwd)
    data_dir: Optional[Path] = None
    config_path: Path = field(default_factory=lambda: DEFAULT_BACKEND_CONFIG_PATH)

    # --- Exclusions ---
    exclude_paths: List[str] = field(default_factory=list)
    exclude_tags: List[str] = field(default_factory=list)

    # --- Queue ---
    index_interval_minutes: float = 5
    batch_size: int = 10
    max_retry_attempts: int = 5

    # --- Timeouts ---
    request_timeout_seconds: float = 30.0
    shutdown_grace_seconds: float = 10.0

    # --- Documents ---
    file_extensions: Set[str] = field(default_factory=lambda: {".md"})

    def __post_init__(self):
        """Resolve paths, normalize tags and validate limits."""
        self.vault_root = Path(self.vault_root).expanduser().resolve()
        if self.data_dir is None:
            self.data_dir = self.vault_root / ".obsidian" / "plugins" / "local-rag"
        self.data_dir = Path(self.data_dir).expanduser().resolve()
        self.config_path = Path(self.config_path).expanduser()

        self.exclude_paths = parse_list(self.exclude_paths)
        tags = (normalize_tag(tag) for tag in parse_list(self.exclude_tags))
        self.exclude_tags = [tag for tag in tags if tag]
        self.file_extensions = {ext.lower() for ext in self.file_extensions}

        if self.index_interval_minutes <= 0:
            raise ConfigurationError(
                f"index_interval_minutes must be positive, got {self.index_interval_minutes}"
            )
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.max_retry_attempts < 0:
            raise ConfigurationError(
                f"max_retry_attempts must not be negative, got {self.max_retry_attempts}"
            )

    @property
    def settings_path(self) -> Path:
        return self.data_dir / SETTINGS_FILE

    @property
    def pending_path(self) -> Path:
        return self.data_dir / PENDING_FILE

    @property
    def interval_seconds(self) -> float:
        return self.index_interval_minutes * 60

    @classmethod
    def from_env(cls, **overrides) -> "SyncConfig":
        """
        Create config from environment variables.

        Supported env vars:
            RAGSYNC_VAULT: Vault root directory
            RAGSYNC_DATA_DIR: Directory holding data.json and pending.json
            RAGSYNC_CONFIG_PATH: Local RAG server config (YAML)
            RAGSYNC_INTERVAL_MINUTES: Dispatch interval
            RAGSYNC_EXCLUDE_PATHS: Comma-separated path prefixes
            RAGSYNC_EXCLUDE_TAGS: Comma-separated tags
            RAGSYNC_BATCH_SIZE: Documents per batch request
            RAGSYNC_MAX_RETRY_ATTEMPTS: Bulk reindex retry passes
        """
        values: Dict[str, Any] = {}

        if vault := os.environ.get("RAGSYNC_VAULT"):
            values["vault_root"] = Path(vault)

        if data_dir := os.environ.get("RAGSYNC_DATA_DIR"):
            values["data_dir"] = Path(data_dir)

        if config_path := os.environ.get("RAGSYNC_CONFIG_PATH"):
            values["config_path"] = Path(config_path)

        if exclude_paths := os.environ.get("RAGSYNC_EXCLUDE_PATHS"):
            values["exclude_paths"] = parse_list(exclude_paths)

        if exclude_tags := os.environ.get("RAGSYNC_EXCLUDE_TAGS"):
            values["exclude_tags"] = parse_list(exclude_tags)

        try:
            if interval := os.environ.get("RAGSYNC_INTERVAL_MINUTES"):
                values["index_interval_minutes"] = float(interval)

            if batch_size := os.environ.get("RAGSYNC_BATCH_SIZE"):
                values["batch_size"] = int(batch_size)

            if attempts := os.environ.get("RAGSYNC_MAX_RETRY_ATTEMPTS"):
                values["max_retry_attempts"] = int(attempts)
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting in environment: {e}") from e

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


# Keys used by the plugin's data.json
_SETTINGS_KEYS = {
    "configPath": "config_path",
    "indexIntervalMinutes": "index_interval_minutes",
    "excludePaths": "exclude_paths",
    "excludeTags": "exclude_tags",
    "batchSize": "batch_size",
    "maxRetryAttempts": "max_retry_attempts",
}


def load_settings(config: SyncConfig) -> SyncConfig:
    """
    Merge the persisted plugin settings (data.json) over a config.

    Missing keys keep their current value. A missing file is not an error;
    an unreadable or malformed one raises ConfigurationError.
    """
    path = config.settings_path
    if not path.exists():
        return config

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Error reading settings file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Settings file {path} must contain a JSON object")

    values = {
        "vault_root": config.vault_root,
        "data_dir": config.data_dir,
        "config_path": config.config_path,
        "exclude_paths": config.exclude_paths,
        "exclude_tags": config.exclude_tags,
        "index_interval_minutes": config.index_interval_minutes,
        "batch_size": config.batch_size,
        "max_retry_attempts": config.max_retry_attempts,
        "request_timeout_seconds": config.request_timeout_seconds,
        "shutdown_grace_seconds": config.shutdown_grace_seconds,
        "file_extensions": config.file_extensions,
    }
    for key, attr in _SETTINGS_KEYS.items():
        if key in data and data[key] is not None:
            values[attr] = data[key]

    try:
        return SyncConfig(**values)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value in settings file {path}: {e}") from e


def save_settings(config: SyncConfig) -> None:
    """Write the user-facing settings back to data.json."""
    data = {
        "configPath": str(config.config_path),
        "indexIntervalMinutes": config.index_interval_minutes,
        "excludePaths": list(config.exclude_paths),
        "excludeTags": list(config.exclude_tags),
        "batchSize": config.batch_size,
        "maxRetryAttempts": config.max_retry_attempts,
    }
    config.data_dir.mkdir(parents=True, exist_ok=True)
    config.settings_path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def _expand_home(value: str) -> str:
    if value.startswith("~/"):
        return str(Path.home() / value[2:])
    return value


def _backend_defaults() -> Dict[str, Any]:
    home = Path.home()
    return {
        "port": 8080,
        "db_path": str(home / ".local_rag" / "local_rag.db"),
        "search": {"top_k": 5},
        "embedder": {
            "type": "ollama",
            "base_url": "http://localhost:11434",
            "model": "nomic-embed-text",
        },
        "logging": {
            "log_to_file": True,
            "log_file_path": str(home / ".local_rag" / "local_rag.log"),
        },
        "chunker": {"type": "paragraph", "overlap_bytes": 0, "chunk_size": 1000},
        "batch_processing": {"worker_count": 4},
        "extensions": {"host": "http://localhost"},
    }


@dataclass
class BackendConfig:
    """The Local RAG server configuration, as far as the agent needs it."""

    port: int
    db_path: str
    search: Dict[str, Any]
    embedder: Dict[str, Any]
    logging: Dict[str, Any]
    chunker: Dict[str, Any]
    batch_processing: Dict[str, Any]
    extensions: Dict[str, Any]

    @property
    def base_url(self) -> str:
        host = str(self.extensions.get("host", "http://localhost")).rstrip("/")
        return f"{host}:{self.port}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackendConfig":
        """Build from parsed YAML, filling absent sections from defaults."""
        merged = _backend_defaults()
        for key, value in data.items():
            if key not in merged:
                continue
            if isinstance(merged[key], dict):
                if not isinstance(value, dict):
                    raise ConfigurationError(f"Config section '{key}' must be a mapping")
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value

        try:
            port = int(merged["port"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid port: {merged['port']!r}") from e

        log_cfg = dict(merged["logging"])
        log_cfg["log_file_path"] = _expand_home(str(log_cfg.get("log_file_path", "")))

        return cls(
            port=port,
            db_path=_expand_home(str(merged["db_path"])),
            search=merged["search"],
            embedder=merged["embedder"],
            logging=log_cfg,
            chunker=merged["chunker"],
            batch_processing=merged["batch_processing"],
            extensions=merged["extensions"],
        )

    @classmethod
    def load(cls, config_path: Path = DEFAULT_BACKEND_CONFIG_PATH) -> "BackendConfig":
        """Load the server config, raising ConfigurationError on any problem."""
        config_path = Path(config_path).expanduser()
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        try:
            data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Error reading config file: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")

        return cls.from_dict(data)

    @classmethod
    def load_with_defaults(cls, config_path: Path = DEFAULT_BACKEND_CONFIG_PATH) -> "BackendConfig":
        """Load the server config, falling back to built-in defaults."""
        try:
            return cls.load(config_path)
        except ConfigurationError as e:
            logger.warning(f"{e}; using default backend settings")
            return cls.from_dict({})


# Singleton default config
_default_config: SyncConfig | None = None


def get_config() -> SyncConfig:
    """Get the default configuration (singleton)."""
    global _default_config
    if _default_config is None:
        _default_config = SyncConfig.from_env()
    return _default_config


def set_config(config: SyncConfig) -> None:
    """Override the default configuration (for testing)."""
    global _default_config
    _default_config = config
