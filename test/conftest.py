import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

# Tests run from a checkout without installation: make the flat packages
# (core, providers, helper) and main.py importable.
REPO_ROOT = Path(__file__).resolve().parents[1]

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from core.errors import ErrorKind, StorageError  # noqa: E402
from core.settings import reset_settings  # noqa: E402
from helper.service import reset_helper  # noqa: E402
from providers.factory import reset_providers  # noqa: E402

_ENV_KEYS = [
    "S3HELPER_PROPERTIES",
    "AWS_REGION",
    "AWS_S3_ENDPOINT",
    "AWS_S3_WAITER_DELAY",
    "AWS_S3_WAITER_MAX_ATTEMPTS",
    "AWS_S3_PRESIGN_TTL",
    "STORAGE_PROVIDER",
    "STORAGE_LOCAL_DIR",
    "UPLOAD_FILE_TYPE",
    "MINIO_ENDPOINT",
    "MINIO_ACCESS_KEY",
    "MINIO_SECRET_KEY",
    "LOG_LEVEL",
    "DEMO_BUCKET",
    "DEMO_PREFIX",
    "DEMO_FILE",
    "DEMO_DOWNLOAD_DIR",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_KEYS:
        monkeypatch.delenv(name, raising=False)
    reset_settings()
    reset_providers()
    reset_helper()
    yield
    reset_settings()
    reset_providers()
    reset_helper()


class FakeStorageClient:
    """In-memory ObjectStorageClient. Records every call in .calls."""

    def __init__(self, url_base: str = "https://fake.example") -> None:
        self.buckets: Dict[str, Dict[str, Tuple[bytes, Dict[str, str]]]] = {}
        self.calls: List[str] = []
        self.url_base = url_base
        self.fail_with: Optional[StorageError] = None
        self.refuse_delete: Dict[str, str] = {}

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    def _bucket(self, bucket: str) -> Dict[str, Tuple[bytes, Dict[str, str]]]:
        if bucket not in self.buckets:
            raise StorageError(ErrorKind.NOT_FOUND, f"bucket {bucket} does not exist", code="NoSuchBucket")
        return self.buckets[bucket]

    def create_bucket(self, bucket: str) -> None:
        self._record("create_bucket")
        if bucket in self.buckets:
            raise StorageError(ErrorKind.CONFLICT, "already owned", code="BucketAlreadyOwnedByYou")
        self.buckets[bucket] = {}

    def head_bucket(self, bucket: str) -> None:
        self._record("head_bucket")
        self._bucket(bucket)

    def delete_bucket(self, bucket: str) -> None:
        self._record("delete_bucket")
        if self._bucket(bucket):
            raise StorageError(ErrorKind.CONFLICT, "bucket not empty", code="BucketNotEmpty")
        del self.buckets[bucket]

    def list_buckets(self) -> List[str]:
        self._record("list_buckets")
        return sorted(self.buckets)

    def wait_until_bucket_exists(self, bucket: str) -> None:
        self._record("wait_until_bucket_exists")
        self._bucket(bucket)

    def put_object(self, bucket: str, key: str, data: bytes, metadata: Optional[Dict[str, str]] = None) -> None:
        self._record("put_object")
        self._bucket(bucket)[key] = (bytes(data), dict(metadata or {}))

    def get_object(self, bucket: str, key: str) -> bytes:
        self._record("get_object")
        objects = self._bucket(bucket)
        if key not in objects:
            raise StorageError(ErrorKind.NOT_FOUND, f"no such key {key}", code="NoSuchKey")
        return objects[key][0]

    def head_object(self, bucket: str, key: str) -> Dict[str, Any]:
        self._record("head_object")
        objects = self._bucket(bucket)
        if key not in objects:
            raise StorageError(ErrorKind.NOT_FOUND, "Not Found", code="404")
        data, meta = objects[key]
        return {"ContentLength": len(data), "Metadata": dict(meta)}

    def delete_objects(self, bucket: str, keys: List[str]) -> Dict[str, str]:
        self._record("delete_objects")
        objects = self._bucket(bucket)
        failed: Dict[str, str] = {}
        for key in keys:
            if key in self.refuse_delete:
                failed[key] = self.refuse_delete[key]
                continue
            objects.pop(key, None)
        return failed

    def get_url(self, bucket: str, key: str) -> str:
        self._record("get_url")
        return f"{self.url_base}/{bucket}/{key}"

    def presign_url(self, bucket: str, key: str, ttl_seconds: int = 900) -> str:
        self._record("presign_url")
        return f"{self.url_base}/{bucket}/{key}?expires={ttl_seconds}"


@pytest.fixture
def fake_storage():
    return FakeStorageClient()


@pytest.fixture
def properties_file(tmp_path):
    def _write(text: str) -> str:
        path = tmp_path / "application.properties"
        path.write_text(text, encoding="utf-8")
        return str(path)

    return _write
