"""Content fingerprints for documents and chunks."""

from __future__ import annotations

import hashlib


def content_hash(data: str | bytes) -> str:
    """Return the MD5 hex digest of *data* (strings are UTF-8 encoded).

    Used for change detection only; nothing enforces uniqueness on it.
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.md5(data).hexdigest()  # noqa: S324
