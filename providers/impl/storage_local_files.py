from __future__ import annotations

import json
import logging
import shutil
from datetime import datetime, timezone
from hashlib import md5
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.errors import ErrorKind, StorageError
from core.settings import StorageSettings
from providers.storage import ObjectStorageClient

logger = logging.getLogger(__name__)

_META_DIR = ".metadata"


class LocalFilesStorageClient(ObjectStorageClient):
    """
    Local filesystem storage: <root>/<bucket>/<key>.

    Used for offline development. Object metadata lives in JSON sidecars
    under <root>/.metadata/<bucket>/<key>.json.
    """

    def __init__(self, root_dir: str) -> None:
        self.root = Path(root_dir).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "LocalFilesStorageClient":
        return cls(settings.local_dir)

    def _under_root(self, path: Path, what: str, base: Optional[Path] = None) -> Path:
        base = base or self.root
        resolved = path.resolve()
        try:
            resolved.relative_to(base)
        except ValueError as exc:
            raise StorageError(ErrorKind.INVALID_INPUT, f"{what}: path escapes {base}") from exc
        return resolved

    def _bucket_dir(self, bucket: str) -> Path:
        if not bucket or "/" in bucket or bucket in (".", "..", _META_DIR):
            raise StorageError(ErrorKind.INVALID_INPUT, f"invalid bucket name {bucket!r}", code="InvalidBucketName")
        return self._under_root(self.root / bucket, f"bucket {bucket}")

    def _existing_bucket_dir(self, bucket: str) -> Path:
        d = self._bucket_dir(bucket)
        if not d.is_dir():
            raise StorageError(ErrorKind.NOT_FOUND, f"bucket {bucket} does not exist", code="NoSuchBucket")
        return d

    def _object_path(self, bucket: str, key: str) -> Path:
        if not key or key.endswith("/"):
            raise StorageError(ErrorKind.INVALID_INPUT, f"invalid object key {key!r}", code="InvalidArgument")
        d = self._existing_bucket_dir(bucket)
        # keys must stay inside their own bucket, not just inside the root
        return self._under_root(d / key, f"object {bucket}/{key}", base=d)

    def _meta_path(self, bucket: str, key: str) -> Path:
        meta_dir = (self.root / _META_DIR / bucket).resolve()
        return self._under_root(meta_dir / f"{key}.json", f"object {bucket}/{key}", base=meta_dir)

    # Buckets

    def create_bucket(self, bucket: str) -> None:
        d = self._bucket_dir(bucket)
        if d.exists():
            raise StorageError(ErrorKind.CONFLICT, f"bucket {bucket} already exists", code="BucketAlreadyOwnedByYou")
        d.mkdir(parents=True)

    def head_bucket(self, bucket: str) -> None:
        self._existing_bucket_dir(bucket)

    def delete_bucket(self, bucket: str) -> None:
        d = self._existing_bucket_dir(bucket)
        if any(p.is_file() for p in d.rglob("*")):
            raise StorageError(ErrorKind.CONFLICT, f"bucket {bucket} is not empty", code="BucketNotEmpty")
        shutil.rmtree(d)
        shutil.rmtree(self.root / _META_DIR / bucket, ignore_errors=True)

    def list_buckets(self) -> List[str]:
        return sorted(p.name for p in self.root.iterdir() if p.is_dir() and p.name != _META_DIR)

    def wait_until_bucket_exists(self, bucket: str) -> None:
        # Filesystem is immediately consistent
        self.head_bucket(bucket)

    # Objects

    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        path = self._object_path(bucket, key)
        meta_path = self._meta_path(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            meta_path.parent.mkdir(parents=True, exist_ok=True)
            meta_path.write_text(json.dumps({str(k): str(v) for k, v in (metadata or {}).items()}), encoding="utf-8")
        except OSError as exc:
            raise StorageError(ErrorKind.IO, f"put object {bucket}/{key}: {exc}") from exc

    def get_object(self, bucket: str, key: str) -> bytes:
        path = self._object_path(bucket, key)
        if not path.is_file():
            raise StorageError(ErrorKind.NOT_FOUND, f"object {bucket}/{key} does not exist", code="NoSuchKey")
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(ErrorKind.IO, f"get object {bucket}/{key}: {exc}") from exc

    def head_object(self, bucket: str, key: str) -> Dict[str, Any]:
        path = self._object_path(bucket, key)
        if not path.is_file():
            raise StorageError(ErrorKind.NOT_FOUND, f"object {bucket}/{key} does not exist", code="404")
        meta_path = self._meta_path(bucket, key)
        try:
            st = path.stat()
            etag = md5(path.read_bytes()).hexdigest()
            meta = json.loads(meta_path.read_text(encoding="utf-8")) if meta_path.is_file() else {}
        except (OSError, ValueError) as exc:
            # ValueError covers a corrupt sidecar (JSONDecodeError) and bad encoding
            raise StorageError(ErrorKind.IO, f"head object {bucket}/{key}: {exc}") from exc
        return {
            "ContentLength": st.st_size,
            "ContentType": "binary/octet-stream",
            "ETag": f'"{etag}"',
            "LastModified": datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
            "Metadata": meta,
        }

    def delete_objects(self, bucket: str, keys: List[str]) -> Dict[str, str]:
        self._existing_bucket_dir(bucket)
        failed: Dict[str, str] = {}
        for key in keys:
            try:
                path = self._object_path(bucket, key)
                path.unlink(missing_ok=True)
                self._meta_path(bucket, key).unlink(missing_ok=True)
            except StorageError as exc:
                logger.warning("[LocalFiles] delete failed bucket=%s key=%s: %s", bucket, key, exc)
                failed[key] = exc.code or "InvalidArgument"
            except OSError as exc:
                logger.warning("[LocalFiles] delete failed bucket=%s key=%s: %s", bucket, key, exc)
                failed[key] = "InternalError"
        return failed

    # URLs

    def get_url(self, bucket: str, key: str) -> str:
        d = self._bucket_dir(bucket)
        return self._under_root(d / key, f"object {bucket}/{key}", base=d).as_uri()

    def presign_url(self, bucket: str, key: str, ttl_seconds: int = 900) -> str:
        # Local dev: no signing, the file URI is stable
        return self.get_url(bucket, key)
