from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import boto3
from botocore import UNSIGNED
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
    NoCredentialsError,
    ParamValidationError,
    WaiterError,
)

from core.errors import ConfigError, ErrorKind, StorageError, kind_for_code
from core.settings import StorageSettings
from providers.storage import ObjectStorageClient

logger = logging.getLogger(__name__)


def _translate(exc: Exception, what: str) -> StorageError:
    if isinstance(exc, ClientError):
        err = exc.response.get("Error") or {}
        code = str(err.get("Code") or "")
        message = err.get("Message") or str(exc)
        kind = kind_for_code(code)
        if kind == ErrorKind.UNKNOWN:
            # HeadBucket/HeadObject carry no body, only the status
            status = (exc.response.get("ResponseMetadata") or {}).get("HTTPStatusCode")
            kind = kind_for_code(str(status or ""))
        return StorageError(kind, f"{what}: {message}", code=code)
    if isinstance(exc, WaiterError):
        return StorageError(ErrorKind.TRANSIENT, f"{what}: timed out waiting ({exc})")
    if isinstance(exc, ParamValidationError):
        return StorageError(ErrorKind.INVALID_INPUT, f"{what}: {exc}")
    if isinstance(exc, NoCredentialsError):
        return StorageError(ErrorKind.PERMISSION, f"{what}: {exc}")
    if isinstance(exc, (BotoConnectionError, HTTPClientError)):
        return StorageError(ErrorKind.TRANSIENT, f"{what}: {exc}")
    return StorageError(ErrorKind.UNKNOWN, f"{what}: {exc}")


@contextmanager
def _s3_errors(what: str) -> Iterator[None]:
    try:
        yield
    except (ClientError, BotoCoreError) as exc:
        raise _translate(exc, what) from exc


class S3StorageClient(ObjectStorageClient):
    """
    Native AWS S3 client built from the configured region.

    Uses boto3 credential resolution (env, shared config, instance role).
    No access keys are read from the settings file.

    Optional:
      - endpoint_url for S3-compatible services
      - waiter delay / max attempts bounding create_bucket's wait
    """

    def __init__(
        self,
        region: str,
        endpoint_url: Optional[str] = None,
        waiter_delay_seconds: int = 5,
        waiter_max_attempts: int = 20,
        client: Any = None,
        url_client: Any = None,
    ) -> None:
        region = (region or "").strip()
        if not region:
            raise ConfigError("aws.region is required for the S3 storage client")

        self.region = region
        self.endpoint_url = endpoint_url
        self.waiter_delay_seconds = max(1, int(waiter_delay_seconds))
        self.waiter_max_attempts = max(1, int(waiter_max_attempts))

        cfg = Config(
            region_name=region,
            retries={"max_attempts": 8, "mode": "standard"},
        )
        self.s3 = client or boto3.client("s3", endpoint_url=endpoint_url, config=cfg)

        # Plain object URLs come from an unsigned client: no credentials, no expiry
        self._url_s3 = url_client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            config=cfg.merge(Config(signature_version=UNSIGNED)),
        )
        logger.info("[S3] client ready region=%s endpoint=%s", region, endpoint_url or "<aws>")

    @classmethod
    def from_settings(cls, settings: StorageSettings) -> "S3StorageClient":
        return cls(
            region=settings.region,
            endpoint_url=settings.endpoint_url,
            waiter_delay_seconds=settings.waiter_delay_seconds,
            waiter_max_attempts=settings.waiter_max_attempts,
        )

    # -----------------------------------------------------------------
    # Buckets
    # -----------------------------------------------------------------

    def create_bucket(self, bucket: str) -> None:
        kwargs: Dict[str, Any] = {"Bucket": bucket}
        # us-east-1 rejects an explicit LocationConstraint
        if self.endpoint_url is None and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        with _s3_errors(f"create bucket {bucket}"):
            self.s3.create_bucket(**kwargs)

    def head_bucket(self, bucket: str) -> None:
        with _s3_errors(f"head bucket {bucket}"):
            self.s3.head_bucket(Bucket=bucket)

    def delete_bucket(self, bucket: str) -> None:
        with _s3_errors(f"delete bucket {bucket}"):
            self.s3.delete_bucket(Bucket=bucket)

    def list_buckets(self) -> List[str]:
        with _s3_errors("list buckets"):
            resp = self.s3.list_buckets()
        return [b["Name"] for b in resp.get("Buckets") or [] if b.get("Name")]

    def wait_until_bucket_exists(self, bucket: str) -> None:
        waiter = self.s3.get_waiter("bucket_exists")
        with _s3_errors(f"wait for bucket {bucket}"):
            waiter.wait(
                Bucket=bucket,
                WaiterConfig={
                    "Delay": self.waiter_delay_seconds,
                    "MaxAttempts": self.waiter_max_attempts,
                },
            )

    # -----------------------------------------------------------------
    # Objects
    # -----------------------------------------------------------------

    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        kwargs: Dict[str, Any] = {"Bucket": bucket, "Key": key, "Body": data}
        if metadata:
            # S3 metadata keys must be strings
            kwargs["Metadata"] = {str(kk): str(vv) for kk, vv in metadata.items()}
        with _s3_errors(f"put object s3://{bucket}/{key}"):
            self.s3.put_object(**kwargs)

    def get_object(self, bucket: str, key: str) -> bytes:
        with _s3_errors(f"get object s3://{bucket}/{key}"):
            resp = self.s3.get_object(Bucket=bucket, Key=key)
            return resp["Body"].read()

    def head_object(self, bucket: str, key: str) -> Dict[str, Any]:
        with _s3_errors(f"head object s3://{bucket}/{key}"):
            resp = self.s3.head_object(Bucket=bucket, Key=key)
        # Return a stable dict (avoid dumping the whole boto response)
        return {
            "ContentLength": resp.get("ContentLength"),
            "ContentType": resp.get("ContentType"),
            "ETag": resp.get("ETag"),
            "LastModified": resp.get("LastModified").isoformat() if resp.get("LastModified") else None,
            "Metadata": resp.get("Metadata") or {},
        }

    def delete_objects(self, bucket: str, keys: List[str]) -> Dict[str, str]:
        if not keys:
            return {}
        with _s3_errors(f"delete objects in {bucket}"):
            resp = self.s3.delete_objects(
                Bucket=bucket,
                Delete={"Objects": [{"Key": k} for k in keys], "Quiet": True},
            )
        failed: Dict[str, str] = {}
        for err in resp.get("Errors") or []:
            logger.warning(
                "[S3] delete failed bucket=%s key=%s code=%s message=%s",
                bucket,
                err.get("Key"),
                err.get("Code"),
                err.get("Message"),
            )
            failed[str(err.get("Key") or "")] = str(err.get("Code") or "")
        return failed

    # -----------------------------------------------------------------
    # URLs
    # -----------------------------------------------------------------

    def get_url(self, bucket: str, key: str) -> str:
        with _s3_errors(f"url for s3://{bucket}/{key}"):
            return self._url_s3.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": bucket, "Key": key},
            )

    def presign_url(self, bucket: str, key: str, ttl_seconds: int = 900) -> str:
        with _s3_errors(f"presign s3://{bucket}/{key}"):
            return self.s3.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=max(1, int(ttl_seconds)),
            )
