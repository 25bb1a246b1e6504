from __future__ import annotations

import os
from dataclasses import dataclass


def object_key(prefix: str, name: str) -> str:
    """
    prefix + name, nothing else.

    No separator is inserted and nothing is normalized: "group-images/" +
    "Hello.pdf" -> "group-images/Hello.pdf", but "group-images" + "Hello.pdf"
    -> "group-imagesHello.pdf". Callers own the trailing slash.
    """
    return f"{prefix or ''}{name or ''}"


def source_file_name(source_path: str) -> str:
    return os.path.basename(os.fspath(source_path))


@dataclass(frozen=True)
class ObjectRef:
    bucket: str
    key: str

    @classmethod
    def of(cls, bucket: str, prefix: str, name: str) -> "ObjectRef":
        return cls(bucket=bucket, key=object_key(prefix, name))

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"
