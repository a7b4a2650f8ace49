"""Configuration management for s3uploader"""

import json
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

# Base directory for the project
BASE_DIR = Path(__file__).resolve().parent.parent

PYPROJECT_FILE = BASE_DIR / "pyproject.toml"

# Looked up relative to the working directory, next to the service
CONFIG_FILE = Path("config.json")
ENV_FILE = Path(".env")

# Environment variable names for configuration
ENV_AWS_PROFILE = "S3UPLOADER_AWS_PROFILE"
ENV_AWS_REGION = "S3UPLOADER_AWS_REGION"
ENV_LOG_DIRECTORY = "S3UPLOADER_LOG_DIRECTORY"
ENV_MONITOR_PORT = "S3UPLOADER_MONITOR_PORT"

DEFAULTS: dict[str, Any] = {
    "aws_profile": "default",
    "aws_region": "us-west-2",
    "delete_after_upload": True,
    "core_pool_size": 1,
    "maximum_pool_size": 3,
    "queue_capacity": 3,
    "keep_alive_seconds": 60,
    "connection_timeout": 50.0,
    "socket_timeout": 120.0,
    "pause_interval": 2.0,
    "object_acl": "public-read",
    "log_directory": "logs",
    "monitor_enabled": True,
    "monitor_host": "127.0.0.1",
    "monitor_port": 5000,
    "sources": [],
}

# Accepted spellings for boolean options given as text or 0/1
TRUE_VALUES = {"true", "yes", "on", "1"}
FALSE_VALUES = {"false", "no", "off", "0"}


class ConfigError(ValueError):
    """Raised when the service configuration is missing or invalid."""


def get_package_version() -> str:
    """Get the package version from pyproject.toml."""
    try:
        with open(PYPROJECT_FILE, "rb") as f:
            pyproject = tomllib.load(f)
        return str(pyproject.get("project", {}).get("version", "0.0.0"))
    except Exception:
        return "0.0.0"


@dataclass(frozen=True)
class MetadataHeader:
    """A header attached to every object uploaded from a source.

    Not all headers are accepted by S3; see the S3 PutObject documentation.
    """

    key: str
    value: str


@dataclass(frozen=True)
class SourceSpec:
    """A local folder to poll and the bucket/prefix its files are uploaded to."""

    local_path: Path
    bucket_name: str
    glob_pattern: str = ""
    object_key_root: str = ""
    metadata_headers: tuple[MetadataHeader, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SourceSpec":
        """Build a source from its configuration file entry.

        Raises:
            ConfigError: If a required key is missing or a header is malformed
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Source entries must be objects, got: {data!r}")

        local_path = data.get("local_path")
        bucket_name = data.get("s3_bucket_name")
        if not local_path:
            raise ConfigError("Every source must set 'local_path'")
        if not bucket_name:
            raise ConfigError(f"Source '{local_path}' must set 's3_bucket_name'")

        headers: list[MetadataHeader] = []
        for header in data.get("metadata_headers") or []:
            try:
                headers.append(MetadataHeader(str(header["key"]), str(header["value"])))
            except (KeyError, TypeError) as e:
                raise ConfigError(
                    f"Source '{local_path}' has a metadata header without key/value: {header!r}"
                ) from e

        return cls(
            local_path=Path(local_path),
            bucket_name=str(bucket_name),
            glob_pattern=str(data.get("glob_pattern") or ""),
            object_key_root=str(data.get("s3_object_key_root") or ""),
            metadata_headers=tuple(headers),
        )


class Settings:
    """Service settings, layered from defaults, the config file and the environment."""

    _settings: dict[str, Any]

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._settings = dict(DEFAULTS)
        if data:
            self._settings.update(data)

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file, with environment variables taking precedence.

        Priority order (highest to lowest):
        1. Environment variables (from .env file or system)
        2. The JSON configuration file
        3. Hardcoded defaults

        Raises:
            ConfigError: If the file is missing or is not valid JSON
        """
        load_dotenv(ENV_FILE)

        path = config_file or CONFIG_FILE
        if not path.exists():
            raise ConfigError(f"The configuration file '{path}' was not found")

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"The configuration file '{path}' is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"The configuration file '{path}' must contain a JSON object")

        settings = cls(data)

        env_overrides = {
            "aws_profile": os.environ.get(ENV_AWS_PROFILE),
            "aws_region": os.environ.get(ENV_AWS_REGION),
            "log_directory": os.environ.get(ENV_LOG_DIRECTORY),
            "monitor_port": os.environ.get(ENV_MONITOR_PORT),
        }

        # Only apply non-None environment values
        settings.update({k: v for k, v in env_overrides.items() if v is not None})
        return settings

    def get(self, key: str, default: Any = None) -> Any:
        """Get a setting value by key."""
        return self._settings.get(key, default)

    def update(self, data: dict[str, Any]) -> None:
        """Update multiple settings at once."""
        self._settings.update(data)

    def all(self) -> dict[str, Any]:
        """Get all settings as a dictionary."""
        return self._settings.copy()

    def _int(self, key: str) -> int:
        try:
            return int(self._settings[key])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"The '{key}' option must be a number") from e

    def _float(self, key: str) -> float:
        try:
            return float(self._settings[key])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"The '{key}' option must be a number") from e

    def _bool(self, key: str) -> bool:
        value = self._settings[key]
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower() if isinstance(value, str | int) else None
        if text in TRUE_VALUES:
            return True
        if text in FALSE_VALUES:
            return False
        raise ConfigError(f"The '{key}' option must be true or false")

    def validate(self) -> None:
        """Check the settings before the pipeline is built.

        Raises:
            ConfigError: Describing the first problem found
        """
        for key in ("core_pool_size", "maximum_pool_size", "queue_capacity"):
            if self._int(key) < 1:
                raise ConfigError(f"The '{key}' option must be at least 1")
        for key in ("keep_alive_seconds", "connection_timeout", "socket_timeout"):
            if self._float(key) <= 0:
                raise ConfigError(f"The '{key}' option must be greater than 0")
        if self._float("pause_interval") < 0:
            raise ConfigError("The 'pause_interval' option must not be negative")
        self._int("monitor_port")
        self._bool("delete_after_upload")
        self._bool("monitor_enabled")

        if self.core_pool_size > self.maximum_pool_size:
            raise ConfigError(
                "The 'maximum_pool_size' option must be greater than or equal to "
                "the 'core_pool_size' option"
            )

        if not self.sources:
            raise ConfigError("At least one source must be configured")

    @property
    def aws_profile(self) -> str:
        """Get the AWS profile name."""
        return str(self._settings.get("aws_profile", "default"))

    @property
    def aws_region(self) -> str:
        """Get the AWS region."""
        return str(self._settings.get("aws_region", "us-west-2"))

    @property
    def delete_after_upload(self) -> bool:
        """Delete files after upload instead of moving them to 'uploaded'."""
        return self._bool("delete_after_upload")

    @property
    def core_pool_size(self) -> int:
        return self._int("core_pool_size")

    @property
    def maximum_pool_size(self) -> int:
        return self._int("maximum_pool_size")

    @property
    def queue_capacity(self) -> int:
        return self._int("queue_capacity")

    @property
    def keep_alive_seconds(self) -> float:
        return self._float("keep_alive_seconds")

    @property
    def connection_timeout(self) -> float:
        """Get the timeout for opening a connection, in seconds."""
        return self._float("connection_timeout")

    @property
    def socket_timeout(self) -> float:
        """Get the timeout for reading from a connected socket, in seconds."""
        return self._float("socket_timeout")

    @property
    def pause_interval(self) -> float:
        """Get the pause between full sweeps of all sources, in seconds."""
        return self._float("pause_interval")

    @property
    def object_acl(self) -> str:
        """Get the canned ACL attached to uploads ('' to attach none)."""
        return str(self._settings.get("object_acl") or "")

    @property
    def log_directory(self) -> Path:
        """Get the directory for JSONL event logs."""
        return Path(self._settings.get("log_directory") or "logs")

    @property
    def monitor_enabled(self) -> bool:
        return self._bool("monitor_enabled")

    @property
    def monitor_host(self) -> str:
        return str(self._settings.get("monitor_host", "127.0.0.1"))

    @property
    def monitor_port(self) -> int:
        return self._int("monitor_port")

    @property
    def sources(self) -> list[SourceSpec]:
        """Get the configured sources."""
        raw = self._settings.get("sources") or []
        if not isinstance(raw, list):
            raise ConfigError("The 'sources' option must be a list")
        return [SourceSpec.from_dict(item) for item in raw]
