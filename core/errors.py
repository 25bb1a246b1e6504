from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    INVALID_INPUT = "invalid_input"
    IO = "io"
    UNKNOWN = "unknown"


class ConfigError(RuntimeError):
    """Settings file missing/unparseable, or a required key is absent."""


class StorageError(RuntimeError):
    """
    Raised by storage clients. Carries an ErrorKind so callers can pick
    retry vs. abort without parsing SDK error codes.
    """

    def __init__(self, kind: ErrorKind, message: str, code: str = "") -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code

    def __str__(self) -> str:
        if self.code:
            return f"{self.kind.value}: {self.message} (code={self.code})"
        return f"{self.kind.value}: {self.message}"


_CODE_KINDS = {
    "404": ErrorKind.NOT_FOUND,
    "NoSuchKey": ErrorKind.NOT_FOUND,
    "NoSuchBucket": ErrorKind.NOT_FOUND,
    "NoSuchObject": ErrorKind.NOT_FOUND,
    "NotFound": ErrorKind.NOT_FOUND,
    "403": ErrorKind.PERMISSION,
    "AccessDenied": ErrorKind.PERMISSION,
    "AllAccessDisabled": ErrorKind.PERMISSION,
    "InvalidAccessKeyId": ErrorKind.PERMISSION,
    "SignatureDoesNotMatch": ErrorKind.PERMISSION,
    "BucketAlreadyExists": ErrorKind.CONFLICT,
    "BucketAlreadyOwnedByYou": ErrorKind.CONFLICT,
    "BucketNotEmpty": ErrorKind.CONFLICT,
    "OperationAborted": ErrorKind.CONFLICT,
    "400": ErrorKind.INVALID_INPUT,
    "InvalidBucketName": ErrorKind.INVALID_INPUT,
    "InvalidArgument": ErrorKind.INVALID_INPUT,
    "KeyTooLongError": ErrorKind.INVALID_INPUT,
    "SlowDown": ErrorKind.TRANSIENT,
    "Throttling": ErrorKind.TRANSIENT,
    "RequestTimeout": ErrorKind.TRANSIENT,
    "InternalError": ErrorKind.TRANSIENT,
    "ServiceUnavailable": ErrorKind.TRANSIENT,
    "500": ErrorKind.TRANSIENT,
    "503": ErrorKind.TRANSIENT,
}


def kind_for_code(code: Optional[str]) -> ErrorKind:
    """Map an S3 error code (or HTTP status as string) onto an ErrorKind."""
    return _CODE_KINDS.get(str(code or "").strip(), ErrorKind.UNKNOWN)


@dataclass(frozen=True)
class StorageResult(Generic[T]):
    """
    Uniform outcome of every helper operation.

    ok=True  -> value holds the payload (may be None for mutating calls)
    ok=False -> error_kind + message describe the failure
    """
    ok: bool
    value: Optional[T] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def success(cls, value: Any = None) -> "StorageResult[Any]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "StorageResult[Any]":
        return cls(ok=False, error_kind=kind, message=message)

    @classmethod
    def from_error(cls, exc: StorageError) -> "StorageResult[Any]":
        return cls.failure(exc.kind, exc.message)

    @property
    def is_not_found(self) -> bool:
        return not self.ok and self.error_kind == ErrorKind.NOT_FOUND

    def unwrap(self) -> T:
        if not self.ok:
            raise StorageError(self.error_kind or ErrorKind.UNKNOWN, self.message)
        return self.value  # type: ignore[return-value]
