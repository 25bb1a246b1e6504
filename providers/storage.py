from __future__ import annotations

from typing import Protocol, runtime_checkable, Optional, Dict, Any, List


@runtime_checkable
class ObjectStorageClient(Protocol):
    """
    Object storage capability interface.

    Implementations raise core.errors.StorageError (never a raw SDK error)
    so the helper can report not-found / permission / transient failures
    uniformly.
    """

    # Buckets
    def create_bucket(self, bucket: str) -> None: ...

    def head_bucket(self, bucket: str) -> None: ...

    def delete_bucket(self, bucket: str) -> None: ...

    def list_buckets(self) -> List[str]: ...

    def wait_until_bucket_exists(self, bucket: str) -> None: ...

    # Objects
    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None: ...

    def get_object(self, bucket: str, key: str) -> bytes: ...

    def head_object(self, bucket: str, key: str) -> Dict[str, Any]: ...

    def delete_objects(self, bucket: str, keys: List[str]) -> Dict[str, str]:
        """Batch delete. Returns the keys that could not be deleted, mapped to the error code."""
        ...

    # URLs
    def get_url(self, bucket: str, key: str) -> str: ...

    def presign_url(self, bucket: str, key: str, ttl_seconds: int = 900) -> str: ...
