from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from core.errors import ErrorKind, StorageError, StorageResult, kind_for_code
from core.settings import StorageSettings
from helper.keys import ObjectRef, object_key, source_file_name
from providers.factory import get_providers
from providers.storage import ObjectStorageClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

FILE_TYPE_METADATA_KEY = "file-type"


class S3Helper:
    """
    Simplified bucket/object operations over an ObjectStorageClient.

    Every method returns a StorageResult; service and filesystem failures
    never escape as exceptions. Object keys are always prefix + name.
    """

    def __init__(self, storage: ObjectStorageClient, settings: Optional[StorageSettings] = None) -> None:
        self.storage = storage
        self.settings = settings or StorageSettings()

    # ---------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------

    def _call(self, what: str, fn: Callable[[], T]) -> StorageResult[T]:
        try:
            return StorageResult.success(fn())
        except StorageError as exc:
            return self._fail(what, exc.kind, exc.message)

    @staticmethod
    def _fail(what: str, kind: ErrorKind, message: str) -> StorageResult[Any]:
        if kind == ErrorKind.NOT_FOUND:
            logger.warning("[S3Helper] %s: %s", what, message)
        else:
            logger.error("[S3Helper] %s failed (%s): %s", what, kind.value, message)
        return StorageResult.failure(kind, message)

    @staticmethod
    def _invalid_bucket(what: str, bucket: str) -> Optional[StorageResult[Any]]:
        if not (bucket or "").strip():
            return S3Helper._fail(what, ErrorKind.INVALID_INPUT, "bucket name is required")
        return None

    # ---------------------------------------------------------------------
    # Buckets
    # ---------------------------------------------------------------------

    def create_bucket(self, bucket: str) -> StorageResult[None]:
        """
        Create the bucket and block until the service reports it exists
        (or the waiter gives up, which is reported as TRANSIENT).
        """
        what = f"create bucket {bucket}"
        bad = self._invalid_bucket(what, bucket)
        if bad is not None:
            return bad

        def _create() -> None:
            self.storage.create_bucket(bucket)
            self.storage.wait_until_bucket_exists(bucket)

        result = self._call(what, _create)
        if result.ok:
            logger.info("[S3Helper] %s is ready", bucket)
        return result

    def list_buckets(self) -> StorageResult[List[str]]:
        result = self._call("list buckets", self.storage.list_buckets)
        for name in result.value or []:
            logger.info("[S3Helper] bucket: %s", name)
        return result

    def delete_bucket(self, bucket: str) -> StorageResult[None]:
        """Only empty buckets can be deleted; a non-empty one yields CONFLICT."""
        what = f"delete bucket {bucket}"
        bad = self._invalid_bucket(what, bucket)
        if bad is not None:
            return bad
        result = self._call(what, lambda: self.storage.delete_bucket(bucket))
        if result.ok:
            logger.info("[S3Helper] bucket %s deleted", bucket)
        return result

    def bucket_exists(self, bucket: str) -> StorageResult[bool]:
        what = f"bucket exists {bucket}"
        bad = self._invalid_bucket(what, bucket)
        if bad is not None:
            return bad
        try:
            self.storage.head_bucket(bucket)
        except StorageError as exc:
            if exc.kind == ErrorKind.NOT_FOUND:
                return StorageResult.success(False)
            return self._fail(what, exc.kind, exc.message)
        return StorageResult.success(True)

    # ---------------------------------------------------------------------
    # Objects
    # ---------------------------------------------------------------------

    def delete_object(self, bucket: str, key: str) -> StorageResult[None]:
        """Delete one object through a single-entry batch delete."""
        what = f"delete object s3://{bucket}/{key}"
        bad = self._invalid_bucket(what, bucket)
        if bad is not None:
            return bad
        if not key:
            return self._fail(what, ErrorKind.INVALID_INPUT, "object key is required")

        result: StorageResult[Dict[str, str]] = self._call(what, lambda: self.storage.delete_objects(bucket, [key]))
        if not result.ok:
            return StorageResult.failure(result.error_kind or ErrorKind.UNKNOWN, result.message)

        failed = result.value or {}
        if key in failed:
            code = failed[key]
            return self._fail(what, kind_for_code(code), f"service refused delete (code={code})")

        logger.info("[S3Helper] deleted s3://%s/%s", bucket, key)
        return StorageResult.success(None)

    def upload_object(
        self,
        bucket: str,
        prefix: str,
        source_path: str,
        file_name: Optional[str] = None,
    ) -> StorageResult[ObjectRef]:
        """
        Upload a local file under key prefix + (file_name or basename(source_path)).

        The whole file is read into memory first. The object carries one
        metadata tag: {"file-type": settings.upload_file_type}.
        """
        new_name = file_name or source_file_name(source_path)
        ref = ObjectRef.of(bucket, prefix, new_name)
        what = f"upload {source_path} -> {ref}"

        bad = self._invalid_bucket(what, bucket)
        if bad is not None:
            return bad
        if not new_name:
            return self._fail(what, ErrorKind.INVALID_INPUT, "target file name is empty")

        try:
            data = Path(source_path).read_bytes()
        except OSError as exc:
            return self._fail(what, ErrorKind.IO, f"cannot read source file: {exc}")

        metadata = {FILE_TYPE_METADATA_KEY: self.settings.upload_file_type}
        result = self._call(what, lambda: self.storage.put_object(bucket, ref.key, data, metadata))
        if not result.ok:
            return StorageResult.failure(result.error_kind or ErrorKind.UNKNOWN, result.message)

        logger.info(
            "[S3Helper] File -> %s was uploaded successfully as %s (%d bytes)",
            source_file_name(source_path),
            new_name,
            len(data),
        )
        return StorageResult.success(ref)

    def download_object(
        self,
        bucket: str,
        prefix: str,
        file_name: str,
        dest_dir: str,
    ) -> StorageResult[str]:
        """
        Download prefix + file_name into dest_dir/file_name and return the
        absolute path. dest_dir must already exist; it is never created.
        """
        key = object_key(prefix, file_name)
        what = f"download s3://{bucket}/{key}"

        if not os.path.isdir(dest_dir or ""):
            return self._fail(what, ErrorKind.INVALID_INPUT, f"download directory does not exist: {dest_dir!r}")
        bad = self._invalid_bucket(what, bucket)
        if bad is not None:
            return bad
        if not file_name:
            return self._fail(what, ErrorKind.INVALID_INPUT, "file name is required")

        base_dir = os.path.abspath(dest_dir)
        out_path = os.path.abspath(os.path.join(base_dir, file_name))
        if out_path == base_dir or os.path.commonpath([base_dir, out_path]) != base_dir:
            return self._fail(what, ErrorKind.INVALID_INPUT, f"file name {file_name!r} escapes {dest_dir!r}")

        fetched = self._call(what, lambda: self.storage.get_object(bucket, key))
        if not fetched.ok:
            return StorageResult.failure(fetched.error_kind or ErrorKind.UNKNOWN, fetched.message)

        # directories are never created here
        try:
            with open(out_path, "wb") as f:
                f.write(fetched.value or b"")
        except OSError as exc:
            return self._fail(what, ErrorKind.IO, f"cannot write {out_path}: {exc}")

        logger.info("[S3Helper] File %s is downloaded and stored successfully at %s", file_name, dest_dir)
        return StorageResult.success(out_path)

    def file_exists(self, bucket: str, prefix: str, file_name: str) -> StorageResult[bool]:
        key = object_key(prefix, file_name)
        what = f"file exists s3://{bucket}/{key}"
        bad = self._invalid_bucket(what, bucket)
        if bad is not None:
            return bad
        try:
            self.storage.head_object(bucket, key)
        except StorageError as exc:
            if exc.kind == ErrorKind.NOT_FOUND:
                return StorageResult.success(False)
            return self._fail(what, exc.kind, exc.message)
        return StorageResult.success(True)

    def object_info(self, bucket: str, prefix: str, file_name: str) -> StorageResult[Dict[str, Any]]:
        key = object_key(prefix, file_name)
        what = f"object info s3://{bucket}/{key}"
        bad = self._invalid_bucket(what, bucket)
        if bad is not None:
            return bad
        return self._call(what, lambda: self.storage.head_object(bucket, key))

    # ---------------------------------------------------------------------
    # URLs
    # ---------------------------------------------------------------------

    def get_url(self, bucket: str, prefix: str, file_name: str) -> StorageResult[str]:
        key = object_key(prefix, file_name)
        what = f"url for s3://{bucket}/{key}"
        bad = self._invalid_bucket(what, bucket)
        if bad is not None:
            return bad
        result = self._call(what, lambda: self.storage.get_url(bucket, key))
        if result.ok:
            logger.info("[S3Helper] The URL for %s is %s", file_name, result.value)
        return result

    def get_presigned_url(
        self,
        bucket: str,
        prefix: str,
        file_name: str,
        ttl_seconds: Optional[int] = None,
    ) -> StorageResult[str]:
        key = object_key(prefix, file_name)
        what = f"presign s3://{bucket}/{key}"
        bad = self._invalid_bucket(what, bucket)
        if bad is not None:
            return bad
        ttl = ttl_seconds or self.settings.presign_ttl_seconds
        return self._call(what, lambda: self.storage.presign_url(bucket, key, ttl))


_helper: Optional[S3Helper] = None
_helper_lock = threading.Lock()


def get_helper() -> S3Helper:
    """Process-wide helper built from the process-wide providers (single init)."""
    global _helper
    if _helper is None:
        with _helper_lock:
            if _helper is None:
                providers = get_providers()
                _helper = S3Helper(providers.storage, providers.settings)
    return _helper


def reset_helper() -> None:
    global _helper
    with _helper_lock:
        _helper = None
