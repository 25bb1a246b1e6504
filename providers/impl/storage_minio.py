from __future__ import annotations

import io
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import quote

from minio import Minio
from minio.deleteobjects import DeleteObject
from minio.error import S3Error, ServerError
from urllib3.exceptions import HTTPError

from core.errors import ConfigError, ErrorKind, StorageError, kind_for_code
from core.settings import StorageSettings
from providers.storage import ObjectStorageClient

logger = logging.getLogger(__name__)


def _strip_http(endpoint: str) -> str:
    # Minio client expects "host:port" (no scheme)
    endpoint = (endpoint or "").strip()
    endpoint = endpoint.replace("http://", "").replace("https://", "")
    endpoint = endpoint.rstrip("/")
    return endpoint


@contextmanager
def _minio_errors(what: str) -> Iterator[None]:
    try:
        yield
    except S3Error as e:
        raise StorageError(kind_for_code(e.code), f"{what}: {e.message or e}", code=e.code or "") from e
    except ServerError as e:
        raise StorageError(ErrorKind.TRANSIENT, f"{what}: {e}", code=str(e.status_code)) from e
    except HTTPError as e:
        raise StorageError(ErrorKind.TRANSIENT, f"{what}: {e}") from e
    except ValueError as e:
        # minio validates bucket/object names client-side
        raise StorageError(ErrorKind.INVALID_INPUT, f"{what}: {e}") from e


@dataclass
class MinioStorageClient(ObjectStorageClient):
    """
    MinIO / S3-compatible implementation for local stacks.

    Settings used:
      - minio.endpoint   (e.g. http://localhost:9000)
      - minio.access-key
      - minio.secret-key
      - aws.region       (optional)

    Notes:
      - Keys are treated as opaque strings; nothing is normalized.
      - wait_until_bucket_exists polls bucket_exists (minio has no waiters).
    """

    endpoint: str
    access_key: str
    secret_key: str
    region: Optional[str] = None
    wait_delay_seconds: float = 5.0
    wait_max_attempts: int = 20
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.secure = self.endpoint.strip().lower().startswith("https://")
        self.host = _strip_http(self.endpoint)
        if not self.host:
            raise ConfigError("minio.endpoint is empty or invalid")

        if self.client is None:
            self.client = Minio(
                self.host,
                access_key=self.access_key,
                secret_key=self.secret_key,
                secure=self.secure,
                region=self.region or None,
            )
        logger.info("[MinIO] client ready endpoint=%s", self.host)

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "MinioStorageClient":
        if not settings.minio_access_key or not settings.minio_secret_key:
            raise ConfigError("minio.access-key / minio.secret-key not set")
        return cls(
            endpoint=settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            region=settings.region or None,
            wait_delay_seconds=settings.waiter_delay_seconds,
            wait_max_attempts=settings.waiter_max_attempts,
        )

    # Buckets

    def create_bucket(self, bucket: str) -> None:
        with _minio_errors(f"create bucket {bucket}"):
            self.client.make_bucket(bucket_name=bucket)

    def head_bucket(self, bucket: str) -> None:
        with _minio_errors(f"head bucket {bucket}"):
            found = self.client.bucket_exists(bucket_name=bucket)
        if not found:
            raise StorageError(ErrorKind.NOT_FOUND, f"head bucket {bucket}: bucket does not exist", code="NoSuchBucket")

    def delete_bucket(self, bucket: str) -> None:
        with _minio_errors(f"delete bucket {bucket}"):
            self.client.remove_bucket(bucket_name=bucket)

    def list_buckets(self) -> List[str]:
        with _minio_errors("list buckets"):
            return [b.name for b in self.client.list_buckets()]

    def wait_until_bucket_exists(self, bucket: str) -> None:
        for attempt in range(1, int(self.wait_max_attempts) + 1):
            with _minio_errors(f"wait for bucket {bucket}"):
                if self.client.bucket_exists(bucket_name=bucket):
                    return
            logger.debug("[MinIO] bucket %s not visible yet (attempt %d)", bucket, attempt)
            if attempt < self.wait_max_attempts:
                time.sleep(self.wait_delay_seconds)
        raise StorageError(
            ErrorKind.TRANSIENT,
            f"wait for bucket {bucket}: not visible after {self.wait_max_attempts} attempts",
        )

    # Objects

    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        if data is None:
            data = b""

        # metadata headers must be strings
        meta: Dict[str, str] = {}
        for k, v in (metadata or {}).items():
            if v is None:
                continue
            meta[str(k)] = str(v)

        with _minio_errors(f"put object {bucket}/{key}"):
            self.client.put_object(
                bucket_name=bucket,
                object_name=key,
                data=io.BytesIO(data),
                length=len(data),
                metadata=meta or None,
            )

    def get_object(self, bucket: str, key: str) -> bytes:
        with _minio_errors(f"get object {bucket}/{key}"):
            resp = self.client.get_object(bucket_name=bucket, object_name=key)
            try:
                return resp.read()
            finally:
                resp.close()
                resp.release_conn()

    def head_object(self, bucket: str, key: str) -> Dict[str, Any]:
        with _minio_errors(f"head object {bucket}/{key}"):
            st = self.client.stat_object(bucket_name=bucket, object_name=key)
        meta = {}
        for k, v in dict(st.metadata or {}).items():
            lk = str(k).lower()
            if lk.startswith("x-amz-meta-"):
                meta[lk[len("x-amz-meta-"):]] = v
        return {
            "ContentLength": st.size,
            "ContentType": st.content_type,
            "ETag": st.etag,
            "LastModified": st.last_modified.isoformat() if st.last_modified else None,
            "Metadata": meta,
        }

    def delete_objects(self, bucket: str, keys: List[str]) -> Dict[str, str]:
        failed: Dict[str, str] = {}
        with _minio_errors(f"delete objects in {bucket}"):
            # remove_objects is lazy; errors only surface while iterating
            for err in self.client.remove_objects(
                bucket_name=bucket,
                delete_object_list=[DeleteObject(k) for k in keys],
            ):
                logger.warning("[MinIO] delete failed bucket=%s key=%s code=%s", bucket, err.name, err.code)
                failed[err.name] = err.code
        return failed

    # URLs

    def get_url(self, bucket: str, key: str) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.host}/{quote(bucket)}/{quote(key)}"

    def presign_url(self, bucket: str, key: str, ttl_seconds: int = 900) -> str:
        with _minio_errors(f"presign {bucket}/{key}"):
            return self.client.presigned_get_object(
                bucket_name=bucket,
                object_name=key,
                expires=timedelta(seconds=max(1, int(ttl_seconds))),
            )
