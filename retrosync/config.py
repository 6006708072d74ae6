"""Configuration management for retrosync.

Settings are resolved from, in increasing precedence: built-in defaults, an
optional JSON config file, environment variables and finally explicit
overrides (usually CLI options).
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

from .exceptions import RetroSyncConfigError
from .utils import (
    ARCHIVED_SUFFIX,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    METADATA_DIR_NAMES,
    STAGING_SUFFIX,
)

logger = logging.getLogger(__name__)

# Environment variables understood by retrosync. ATVHOST, ATVPORT and
# LOCAL_BASE_DIR are the variables the Docker image is configured with.
ENV_VARS: dict[str, str] = {
    "host": "ATVHOST",
    "port": "ATVPORT",
    "local_base_dir": "LOCAL_BASE_DIR",
    "two_way_paths": "RETROSYNC_TWOWAY_PATHS",
    "backup_only_paths": "RETROSYNC_BACKUP_PATHS",
    "exclude_paths": "RETROSYNC_EXCLUDE_PATHS",
    "max_retries": "RETROSYNC_MAX_RETRIES",
    "retry_delay": "RETROSYNC_RETRY_DELAY",
    "connect_timeout": "RETROSYNC_CONNECT_TIMEOUT",
    "max_time": "RETROSYNC_MAX_TIME",
    "sync_interval": "RETROSYNC_SYNC_INTERVAL",
}

_LIST_FIELDS = {
    "two_way_paths",
    "backup_only_paths",
    "exclude_paths",
    "metadata_dir_names",
}
_INT_FIELDS = {"port", "max_retries"}
_FLOAT_FIELDS = {
    "retry_delay",
    "connect_timeout",
    "max_time",
    "sync_interval",
    "probe_interval",
    "probe_timeout",
}


@dataclass(frozen=True)
class Config:
    """Resolved retrosync settings."""

    host: str = ""
    """Hostname or IP address of the device running the web uploader"""

    port: int = 80
    """TCP port of the web uploader"""

    local_base_dir: Path = Path(".")
    """Local directory that mirrors the remote tree"""

    two_way_paths: tuple[str, ...] = ("/downloads", "/saves")
    """Remote directories synchronized in both directions"""

    backup_only_paths: tuple[str, ...] = ("/config",)
    """Remote directories copied remote -> local only"""

    exclude_paths: tuple[str, ...] = ("/downloads/cloud_backups",)
    """Remote prefixes that are never touched"""

    metadata_dir_names: tuple[str, ...] = METADATA_DIR_NAMES
    archived_suffix: str = ARCHIVED_SUFFIX
    staging_suffix: str = STAGING_SUFFIX

    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    connect_timeout: float = 5.0
    max_time: float = 120.0
    sync_interval: float = 600.0
    probe_interval: float = 5.0
    probe_timeout: float = 3.0

    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def base_url(self) -> str:
        """Base URL of the remote file service."""
        return f"http://{self.host}:{self.port}"

    def validate(self) -> "Config":
        """Check that the configuration is usable.

        Returns:
            self, to allow chaining

        Raises:
            RetroSyncConfigError: If a setting is missing or out of range
        """
        if not self.host:
            raise RetroSyncConfigError(
                "Remote host not configured. Set ATVHOST or pass --host."
            )
        if not 0 < self.port < 65536:
            raise RetroSyncConfigError(f"Invalid port: {self.port}")
        if self.max_retries < 1:
            raise RetroSyncConfigError("max_retries must be at least 1")
        if self.connect_timeout <= 0 or self.max_time <= 0:
            raise RetroSyncConfigError("Timeouts must be positive")
        if self.sync_interval < 0:
            raise RetroSyncConfigError("sync_interval must not be negative")
        if not self.two_way_paths and not self.backup_only_paths:
            raise RetroSyncConfigError(
                "Nothing to do: no two-way or backup-only paths configured"
            )
        for path in (
            *self.two_way_paths,
            *self.backup_only_paths,
            *self.exclude_paths,
        ):
            if not path.startswith("/"):
                raise RetroSyncConfigError(
                    f"Remote paths must be absolute: {path!r}"
                )
        return self

    def path_rules(self):
        """Build the immutable classification rules for this configuration."""
        from .sync.classifier import PathRules

        return PathRules.create(
            two_way=self.two_way_paths,
            backup_only=self.backup_only_paths,
            excluded=self.exclude_paths,
            metadata_dir_names=self.metadata_dir_names,
            archived_suffix=self.archived_suffix,
            staging_suffix=self.staging_suffix,
        )

    def local_path_for(self, remote_path: str) -> Path:
        """Map a configured remote directory to its local mirror."""
        return self.local_base_dir / remote_path.strip("/")

    @classmethod
    def load(
        cls,
        config_file: Optional[Path] = None,
        environ: Optional[dict[str, str]] = None,
        **overrides: Any,
    ) -> "Config":
        """Resolve configuration from file, environment and overrides.

        Args:
            config_file: Optional JSON file with settings
            environ: Environment mapping (defaults to os.environ)
            **overrides: Explicit values; None values are ignored

        Returns:
            Resolved Config (not yet validated)

        Raises:
            RetroSyncConfigError: If the file or a value cannot be parsed
        """
        config = cls()

        if config_file is not None:
            config = config.merge(load_config_file(config_file))

        env = os.environ if environ is None else environ
        env_values: dict[str, Any] = {}
        for name, var in ENV_VARS.items():
            value = env.get(var)
            if value:
                env_values[name] = value
        if env_values:
            logger.debug("Settings from environment: %s", sorted(env_values))
            config = config.merge(env_values)

        explicit = {k: v for k, v in overrides.items() if v is not None}
        if explicit:
            config = config.merge(explicit)

        return config

    def merge(self, values: dict[str, Any]) -> "Config":
        """Return a copy with the given raw values converted and applied."""
        known = {f.name for f in fields(self)} - {"extra"}
        converted: dict[str, Any] = {}
        extra = dict(self.extra)
        for key, value in values.items():
            if key not in known:
                logger.warning("Unknown config setting %r ignored", key)
                extra[key] = value
                continue
            converted[key] = _convert(key, value)
        return replace(self, extra=extra, **converted)


def _convert(key: str, value: Any) -> Any:
    try:
        if key in _LIST_FIELDS:
            if isinstance(value, str):
                items = [v.strip() for v in value.replace(",", " ").split()]
            else:
                items = [str(v).strip() for v in value]
            return tuple(item for item in items if item)
        if key in _INT_FIELDS:
            return int(value)
        if key in _FLOAT_FIELDS:
            return float(value)
        if key == "local_base_dir":
            return Path(str(value).rstrip("/") or "/")
        return str(value)
    except (TypeError, ValueError) as e:
        raise RetroSyncConfigError(f"Invalid value for {key}: {value!r}") from e


def load_config_file(path: Path) -> dict[str, Any]:
    """Load settings from a JSON config file.

    Keys may use snake_case or camelCase (``twoWayPaths``).

    Raises:
        RetroSyncConfigError: If the file cannot be read or is not an object
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as e:
        raise RetroSyncConfigError(f"Cannot read config file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise RetroSyncConfigError(f"Invalid JSON in config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise RetroSyncConfigError(f"Config file {path} must contain a JSON object")

    return {_snake_case(key): value for key, value in data.items()}


def _snake_case(name: str) -> str:
    out = []
    for char in name:
        if char.isupper():
            out.append("_")
            out.append(char.lower())
        else:
            out.append(char)
    return "".join(out).lstrip("_")
