from __future__ import annotations

import sys
from typing import Optional

from core.errors import ConfigError
from core.providers_root import build_helper
from core.settings import PropertySettings


def run(properties_path: Optional[str] = None) -> int:
    """
    Demo run: list buckets, then (when demo.* keys are configured) download
    one object and print its local path and URL.
    """
    try:
        props = PropertySettings.load(properties_path)
        helper = build_helper(props)
    except ConfigError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 1

    listed = helper.list_buckets()
    if not listed.ok:
        print(f"list buckets failed: {listed.message}", file=sys.stderr)
        return 1
    for name in listed.value or []:
        print(name)

    bucket = props.get("demo.bucket", "")
    if not bucket:
        return 0

    prefix = props.get("demo.prefix", "")
    file_name = props.get("demo.file", "")
    download_dir = props.get("demo.download-dir", "")

    downloaded = helper.download_object(bucket, prefix, file_name, download_dir)
    print(downloaded.value if downloaded.ok else f"download failed ({downloaded.error_kind.value}): {downloaded.message}")

    url = helper.get_url(bucket, prefix, file_name)
    print(url.value if url.ok else f"url failed ({url.error_kind.value}): {url.message}")

    return 0 if downloaded.ok and url.ok else 1


def main() -> None:
    path = sys.argv[1] if len(sys.argv) > 1 else None
    sys.exit(run(path))


if __name__ == "__main__":
    main()
