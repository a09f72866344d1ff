"""Truncated SHA-256 digests used to name stored bundles."""

from __future__ import annotations

import hashlib
import io
import shutil
from typing import BinaryIO

_DIGEST_BYTES = 20


def _tag(hasher: "hashlib._Hash") -> str:
    return hasher.digest()[:_DIGEST_BYTES].hex()


def of_reader(reader: BinaryIO) -> tuple[io.BytesIO, str]:
    """Consume a binary stream and return a copy of its data and its digest.

    The whole stream is read into memory, so this is meant for modest inputs.
    """
    buffer = io.BytesIO()
    hasher = hashlib.sha256()

    class _Tee:
        def write(self, chunk: bytes) -> int:
            hasher.update(chunk)
            return buffer.write(chunk)

    shutil.copyfileobj(reader, _Tee())
    buffer.seek(0)
    return buffer, _tag(hasher)


def of_buffer(data: bytes) -> str:
    """Return the truncated SHA-256 digest of ``data`` as lower-case hex."""
    return _tag(hashlib.sha256(data))