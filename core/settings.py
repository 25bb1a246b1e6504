from __future__ import annotations

import logging
import os
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

from core.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_PROPERTIES_FILE = "application.properties"
PROPERTIES_PATH_ENV = "S3HELPER_PROPERTIES"

_MISSING = object()


def _env_name(key: str) -> str:
    """aws.region -> AWS_REGION, aws.s3.waiter.max-attempts -> AWS_S3_WAITER_MAX_ATTEMPTS"""
    return re.sub(r"[.\-]", "_", key.strip()).upper()


def _env(name: str) -> Optional[str]:
    v = os.getenv(name)
    if v is None or not v.strip():
        return None
    return v.strip()


# ---------------------------------------------------------------------
# Property file
# ---------------------------------------------------------------------

class PropertySettings:
    """
    Flat key=value settings, loaded once from a properties file.

    Lookup precedence (DO NOT break this):
      1) env var derived from the key (aws.region -> AWS_REGION)
      2) value from the properties file
      3) explicit default passed to get()
    """

    def __init__(self, values: Mapping[str, Optional[str]], source: str = "") -> None:
        cleaned: Dict[str, str] = {}
        for k, v in values.items():
            if v is None:
                continue
            cleaned[str(k).strip()] = str(v).strip()
        self._values = MappingProxyType(cleaned)
        self.source = source

    @classmethod
    def load(cls, path: Optional[str] = None) -> "PropertySettings":
        raw_path = path or _env(PROPERTIES_PATH_ENV) or DEFAULT_PROPERTIES_FILE
        file_path = Path(raw_path)
        if not file_path.is_file():
            logger.error("[Config] settings file not found: %s", file_path.resolve())
            raise ConfigError(f"settings file not found: {raw_path}")

        try:
            values = dotenv_values(file_path, interpolate=False)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("[Config] failed to read settings file %s: %s", raw_path, exc)
            raise ConfigError(f"failed to read settings file {raw_path}: {exc}") from exc

        logger.info("[Config] loaded %d keys from %s", len(values), raw_path)
        return cls(values, source=str(file_path))

    def get(self, key: str, default=_MISSING) -> str:
        v = _env(_env_name(key))
        if v is not None:
            return v
        if key in self._values and self._values[key] != "":
            return self._values[key]
        if default is _MISSING:
            raise ConfigError(f"missing configuration key {key!r} (file={self.source or '<none>'})")
        return default

    def get_int(self, key: str, default: int) -> int:
        raw = self.get(key, "")
        if not raw:
            return int(default)
        try:
            return int(raw)
        except ValueError as exc:
            raise ConfigError(f"{key} must be an integer (got {raw!r})") from exc


_properties: Optional[PropertySettings] = None
_properties_lock = threading.Lock()


def get_properties() -> PropertySettings:
    global _properties
    if _properties is None:
        with _properties_lock:
            if _properties is None:
                _properties = PropertySettings.load()
    return _properties


# ---------------------------------------------------------------------
# Typed storage settings
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class StorageSettings:
    """
    Storage provider configuration.

    provider:
      - "s3"     -> S3StorageClient (boto3)
      - "minio"  -> MinioStorageClient (S3-compatible local stack)
      - "local"  -> LocalFilesStorageClient (buckets are directories)
    """
    provider: str = "s3"

    # S3
    region: str = ""
    endpoint_url: Optional[str] = None
    waiter_delay_seconds: int = 5
    waiter_max_attempts: int = 20
    presign_ttl_seconds: int = 900

    # Upload metadata tag: {"file-type": upload_file_type}
    upload_file_type: str = "i2c Chained File"

    # MinIO
    minio_endpoint: str = "http://localhost:9000"
    minio_access_key: str = ""
    minio_secret_key: str = ""

    # Local
    local_dir: str = "./data"

    @property
    def wait_timeout_seconds(self) -> int:
        return self.waiter_delay_seconds * self.waiter_max_attempts


def _normalize_storage_provider(raw: str) -> str:
    v = (raw or "").strip().lower()
    if v in ("s3", "aws", "aws_s3"):
        return "s3"
    if v in ("minio", "object_store", "objectstore"):
        return "minio"
    if v in ("local", "file", "files", "filesystem"):
        return "local"
    raise ConfigError(f"unknown storage.provider {raw!r} (expected s3 | minio | local)")


def load_storage_settings(props: PropertySettings) -> StorageSettings:
    provider = _normalize_storage_provider(props.get("storage.provider", "s3"))

    # Region is the one key the settings file must carry for S3.
    if provider == "s3":
        region = props.get("aws.region")
    else:
        region = props.get("aws.region", "")

    endpoint_url = props.get("aws.s3.endpoint", "").rstrip("/") or None

    delay = max(1, props.get_int("aws.s3.waiter.delay", 5))
    attempts = max(1, props.get_int("aws.s3.waiter.max-attempts", 20))
    ttl = max(1, props.get_int("aws.s3.presign.ttl", 900))

    return StorageSettings(
        provider=provider,
        region=region,
        endpoint_url=endpoint_url,
        waiter_delay_seconds=delay,
        waiter_max_attempts=attempts,
        presign_ttl_seconds=ttl,
        upload_file_type=props.get("upload.file-type", "i2c Chained File"),
        minio_endpoint=props.get("minio.endpoint", "http://localhost:9000").rstrip("/"),
        minio_access_key=props.get("minio.access-key", ""),
        minio_secret_key=props.get("minio.secret-key", ""),
        local_dir=props.get("storage.local.dir", "./data"),
    )


_settings: Optional[StorageSettings] = None
_settings_lock = threading.Lock()


def get_settings() -> StorageSettings:
    global _settings
    if _settings is None:
        with _settings_lock:
            if _settings is None:
                _settings = load_storage_settings(get_properties())
    return _settings


def reset_settings() -> None:
    """Drop cached settings so the next access reloads (tests, config changes)."""
    global _properties, _settings
    with _settings_lock, _properties_lock:
        _properties = None
        _settings = None
