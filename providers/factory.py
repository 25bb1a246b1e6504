from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from core.errors import ConfigError
from core.settings import StorageSettings, get_settings
from .storage import ObjectStorageClient
from providers.impl.storage_local_files import LocalFilesStorageClient
from providers.impl.storage_minio import MinioStorageClient
from providers.impl.storage_s3 import S3StorageClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Providers:
    """
    Central container for providers.

    Built once per process; the storage client is read-only afterwards and
    shared by every caller.
    """
    settings: StorageSettings
    storage: ObjectStorageClient


def build_storage_client(settings: StorageSettings) -> ObjectStorageClient:
    provider = settings.provider
    if provider == "s3":
        return S3StorageClient.from_settings(settings)
    if provider == "minio":
        return MinioStorageClient.from_settings(settings)
    if provider == "local":
        return LocalFilesStorageClient.from_settings(settings)
    raise ConfigError(f"unknown storage provider {provider!r}")


def build_providers(settings: StorageSettings) -> Providers:
    storage = build_storage_client(settings)
    logger.info("[Providers] storage=%s", type(storage).__name__)
    return Providers(settings=settings, storage=storage)


_cached: Optional[Providers] = None
_lock = threading.Lock()


def get_providers() -> Providers:
    """
    Process-wide providers, constructed at most once even when several
    threads race on first use.
    """
    global _cached
    if _cached is None:
        with _lock:
            if _cached is None:
                _cached = build_providers(get_settings())
    return _cached


def reset_providers() -> None:
    global _cached
    with _lock:
        _cached = None
