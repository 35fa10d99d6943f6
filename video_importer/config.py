"""Runtime configuration for the video importer."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
from pathlib import Path
import tempfile
from typing import Any

from video_importer.logging import get_logger

logger = get_logger(__name__)

DEFAULT_GATEWAY_URL = "https://gateway.etherna.io/"
DEFAULT_INDEX_URL = "https://index.etherna.io/"
DEFAULT_PERMALINK_PREFIX = "https://etherna.io/embed/"
DEFAULT_THUMBNAIL_URL_TEMPLATE = "https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"

DEFAULT_HTTP_TIMEOUT_SECONDS = 600.0
DEFAULT_BATCH_DEPTH = 20
DEFAULT_BATCH_TTL_DAYS = 365
DEFAULT_BLOCK_TIME_SECONDS = 5
DEFAULT_BATCH_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_BATCH_TIMEOUT_SECONDS = 420.0
DEFAULT_CHUNK_SIZE_BYTES = 10_485_760
DEFAULT_READ_BUFFER_BYTES = 81_920
DEFAULT_MAX_RETRY = 3

_RUNTIME_ENV_CACHE: dict[str, str] | None = None


def _load_env_file(path: Path) -> dict[str, str]:
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    env_values: dict[str, str] = {}
    for line in contents.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            continue
        env_values[key.strip()] = value.strip().strip('"').strip("'")
    return env_values


def load_runtime_env(
    *,
    env_file: str | os.PathLike[str] | None = None,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Load runtime environment values applying .env before explicit environment."""

    env: dict[str, str] = {}
    source = dict(base_env if base_env is not None else os.environ)

    path = Path(env_file) if env_file is not None else Path(".env")
    if path.exists() and path.is_file():
        env.update(_load_env_file(path))

    env.update({key: str(value) for key, value in source.items() if value is not None})
    return env


def get_runtime_env() -> Mapping[str, str]:
    """Return the cached runtime environment mapping."""

    global _RUNTIME_ENV_CACHE
    if _RUNTIME_ENV_CACHE is None:
        _RUNTIME_ENV_CACHE = load_runtime_env()
    return _RUNTIME_ENV_CACHE


def override_runtime_env(runtime_env: Mapping[str, str] | None) -> None:
    """Override the cached runtime environment (primarily for testing)."""

    global _RUNTIME_ENV_CACHE
    if runtime_env is None:
        _RUNTIME_ENV_CACHE = None
    else:
        _RUNTIME_ENV_CACHE = dict(runtime_env)


def _env_value(env: Mapping[str, Any], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_bool(value: str | None, *, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(value: str | None, *, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: str | None, *, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _bounded_int(value: str | None, *, default: int, minimum: int = 1) -> int:
    return max(minimum, _as_int(value, default=default))


def _positive_float(value: str | None, *, default: float) -> float:
    resolved = _as_float(value, default=default)
    if resolved <= 0:
        return default
    return resolved


def _normalise_base_url(raw: str | None, default: str) -> str:
    base = (raw or default).strip()
    if not base.endswith("/"):
        base += "/"
    return base


@dataclass(slots=True, frozen=True)
class GatewayConfig:
    base_url: str
    api_key: str | None
    timeout_seconds: float

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> GatewayConfig:
        return cls(
            base_url=_normalise_base_url(_env_value(env, "GATEWAY_URL"), DEFAULT_GATEWAY_URL),
            api_key=_env_value(env, "GATEWAY_API_KEY"),
            timeout_seconds=_positive_float(
                _env_value(env, "HTTP_TIMEOUT_SECONDS"),
                default=DEFAULT_HTTP_TIMEOUT_SECONDS,
            ),
        )


@dataclass(slots=True, frozen=True)
class IndexConfig:
    base_url: str
    api_key: str | None

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> IndexConfig:
        return cls(
            base_url=_normalise_base_url(_env_value(env, "INDEX_URL"), DEFAULT_INDEX_URL),
            api_key=_env_value(env, "INDEX_API_KEY"),
        )


@dataclass(slots=True, frozen=True)
class BatchConfig:
    """Capacity reservation sizing and readiness polling budget."""

    depth: int = DEFAULT_BATCH_DEPTH
    ttl_days: int = DEFAULT_BATCH_TTL_DAYS
    block_time_seconds: int = DEFAULT_BLOCK_TIME_SECONDS
    poll_interval_seconds: float = DEFAULT_BATCH_POLL_INTERVAL_SECONDS
    timeout_seconds: float = DEFAULT_BATCH_TIMEOUT_SECONDS

    @property
    def ttl_seconds(self) -> int:
        return self.ttl_days * 24 * 60 * 60

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> BatchConfig:
        return cls(
            depth=_bounded_int(_env_value(env, "BATCH_DEPTH"), default=DEFAULT_BATCH_DEPTH),
            ttl_days=_bounded_int(_env_value(env, "BATCH_TTL_DAYS"), default=DEFAULT_BATCH_TTL_DAYS),
            block_time_seconds=_bounded_int(
                _env_value(env, "BATCH_BLOCK_TIME_SECONDS"),
                default=DEFAULT_BLOCK_TIME_SECONDS,
            ),
            poll_interval_seconds=_positive_float(
                _env_value(env, "BATCH_POLL_INTERVAL_SECONDS"),
                default=DEFAULT_BATCH_POLL_INTERVAL_SECONDS,
            ),
            timeout_seconds=_positive_float(
                _env_value(env, "BATCH_TIMEOUT_SECONDS"),
                default=DEFAULT_BATCH_TIMEOUT_SECONDS,
            ),
        )


@dataclass(slots=True, frozen=True)
class DownloadConfig:
    download_dir: str
    chunk_size_bytes: int = DEFAULT_CHUNK_SIZE_BYTES
    read_buffer_bytes: int = DEFAULT_READ_BUFFER_BYTES
    thumbnail_url_template: str = DEFAULT_THUMBNAIL_URL_TEMPLATE

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> DownloadConfig:
        download_dir = _env_value(env, "DOWNLOAD_DIR") or str(
            Path(tempfile.gettempdir()) / "video-importer"
        )
        return cls(
            download_dir=download_dir,
            chunk_size_bytes=_bounded_int(
                _env_value(env, "DOWNLOAD_CHUNK_BYTES"), default=DEFAULT_CHUNK_SIZE_BYTES
            ),
            read_buffer_bytes=_bounded_int(
                _env_value(env, "DOWNLOAD_BUFFER_BYTES"), default=DEFAULT_READ_BUFFER_BYTES
            ),
            thumbnail_url_template=(
                _env_value(env, "THUMBNAIL_URL_TEMPLATE") or DEFAULT_THUMBNAIL_URL_TEMPLATE
            ),
        )


@dataclass(slots=True, frozen=True)
class PublishConfig:
    max_attempts: int = DEFAULT_MAX_RETRY
    pin: bool = False
    offer: bool = False
    owner_address: str | None = None
    permalink_prefix: str = DEFAULT_PERMALINK_PREFIX

    @classmethod
    def from_env(cls, env: Mapping[str, Any]) -> PublishConfig:
        return cls(
            max_attempts=_bounded_int(_env_value(env, "MAX_RETRY"), default=DEFAULT_MAX_RETRY),
            pin=_as_bool(_env_value(env, "PIN_VIDEO"), default=False),
            offer=_as_bool(_env_value(env, "OFFER_VIDEO"), default=False),
            owner_address=_env_value(env, "OWNER_ADDRESS"),
            permalink_prefix=_env_value(env, "PERMALINK_PREFIX") or DEFAULT_PERMALINK_PREFIX,
        )


@dataclass(slots=True, frozen=True)
class ImporterConfig:
    gateway: GatewayConfig
    index: IndexConfig
    batch: BatchConfig
    download: DownloadConfig
    publish: PublishConfig


def load_config(runtime_env: Mapping[str, Any] | None = None) -> ImporterConfig:
    """Build the importer configuration from the runtime environment."""

    env = runtime_env if runtime_env is not None else get_runtime_env()
    config = ImporterConfig(
        gateway=GatewayConfig.from_env(env),
        index=IndexConfig.from_env(env),
        batch=BatchConfig.from_env(env),
        download=DownloadConfig.from_env(env),
        publish=PublishConfig.from_env(env),
    )
    logger.debug(
        "Loaded importer configuration",
        extra={
            "event": "config.loaded",
            "gateway_url": config.gateway.base_url,
            "index_url": config.index.base_url,
        },
    )
    return config


__all__ = [
    "BatchConfig",
    "DownloadConfig",
    "GatewayConfig",
    "ImporterConfig",
    "IndexConfig",
    "PublishConfig",
    "get_runtime_env",
    "load_config",
    "load_runtime_env",
    "override_runtime_env",
]
