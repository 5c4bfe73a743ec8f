"""Configuration loading and Pydantic models for PicShare.

Configuration is loaded once at process start (YAML file, then a fixed set
of environment overrides) and is immutable afterwards. The resulting
``PicShareConfig`` is handed to the app factory and passed by reference to
the services that need it.
"""

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

# Development fallbacks. A deployment must override both.
DEFAULT_SIGNING_KEY = "picshare-dev-signing-key"
DEFAULT_PUBLIC_BASE_URL = "localhost:8000"

# Fixed page size for metadata queries; clients only choose the page index.
PAGE_SIZE = 50

# Lifetime of an issued token. Not configurable.
TOKEN_TTL_MINUTES = 30


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ServerConfig(_Frozen):
    """Server binding and runtime configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    log_format: str = "text"
    shutdown_timeout: int = 30


class AuthConfig(_Frozen):
    """Token signing and cookie configuration.

    ``bcrypt_rounds`` is not read from YAML or the environment. It exists so
    tests can construct a config with a cheap work factor.
    """

    signing_key: str = DEFAULT_SIGNING_KEY
    cookie_name: str = "token"
    bcrypt_rounds: int = 10


class MetadataConfig(_Frozen):
    """Metadata store configuration."""

    engine: str = "sqlite"
    sqlite_path: str = "./data/metadata.db"


class StorageConfig(_Frozen):
    """Blob storage backend configuration.

    ``public_base_url`` and ``media_dir`` build the externally resolvable
    reference of each image: ``{public_base_url}/{media_dir}/{uid}/{id}.{ext}``.
    """

    backend: str = "local"
    local_root: str = "./data/image"
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL
    media_dir: str = "image"


class ObservabilityConfig(_Frozen):
    """Metrics and health check toggles."""

    metrics: bool = True
    health_check: bool = True


class PicShareConfig(_Frozen):
    """Top-level PicShare configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    metadata: MetadataConfig = Field(default_factory=MetadataConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    @property
    def uses_default_signing_key(self) -> bool:
        return self.auth.signing_key == DEFAULT_SIGNING_KEY


def _parse_server(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the server section from YAML data into a dict for Pydantic."""
    if data is None:
        return {}
    keys = ("host", "port", "log_level", "log_format", "shutdown_timeout")
    return {k: data[k] for k in keys if k in data}


def _parse_auth(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the auth section from YAML data."""
    if data is None:
        return {}
    keys = ("signing_key", "cookie_name")
    return {k: data[k] for k in keys if k in data}


def _parse_metadata(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the metadata section from YAML data.

    Handles nested structure: metadata.sqlite.path -> sqlite_path
    """
    if data is None:
        return {}
    result: dict[str, Any] = {"engine": data.get("engine", "sqlite")}
    sqlite_section = data.get("sqlite")
    if isinstance(sqlite_section, dict) and "path" in sqlite_section:
        result["sqlite_path"] = sqlite_section["path"]
    return result


def _parse_storage(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the storage section from YAML data.

    Handles nested structure: storage.local.root_dir -> local_root
    """
    if data is None:
        return {}

    result: dict[str, Any] = {"backend": data.get("backend", "local")}
    for key in ("public_base_url", "media_dir"):
        if key in data:
            result[key] = data[key]

    local_section = data.get("local")
    if isinstance(local_section, dict) and "root_dir" in local_section:
        result["local_root"] = local_section["root_dir"]

    return result


def _parse_observability(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the observability section from YAML data."""
    if data is None:
        return {}
    return {k: data[k] for k in ("metrics", "health_check") if k in data}


def load_config(path: Path) -> PicShareConfig:
    """Load a PicShareConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated PicShareConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return PicShareConfig(
        server=ServerConfig(**_parse_server(raw.get("server"))),
        auth=AuthConfig(**_parse_auth(raw.get("auth"))),
        metadata=MetadataConfig(**_parse_metadata(raw.get("metadata"))),
        storage=StorageConfig(**_parse_storage(raw.get("storage"))),
        observability=ObservabilityConfig(**_parse_observability(raw.get("observability"))),
    )


def apply_env_overrides(config: PicShareConfig, environ: Mapping[str, str]) -> PicShareConfig:
    """Return a copy of ``config`` with environment overrides applied.

    ``SIGNING_KEY`` replaces the token signing secret and ``REF_URL`` the
    public base URL used in image references. Empty values are ignored.

    Args:
        config: The configuration loaded from file (or defaults).
        environ: The process environment (usually ``os.environ``).

    Returns:
        A new PicShareConfig; the input is left untouched.
    """
    signing_key = environ.get("SIGNING_KEY", "")
    ref_url = environ.get("REF_URL", "")

    if signing_key:
        config = config.model_copy(
            update={"auth": config.auth.model_copy(update={"signing_key": signing_key})}
        )
    if ref_url:
        config = config.model_copy(
            update={"storage": config.storage.model_copy(update={"public_base_url": ref_url})}
        )

    if config.uses_default_signing_key:
        logger.warning(
            "Using the development signing key; set SIGNING_KEY before deploying"
        )
    return config
