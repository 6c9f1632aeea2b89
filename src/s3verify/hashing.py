"""Single-pass content hashing for request bodies."""

import base64
import hashlib
import io
from dataclasses import dataclass
from typing import BinaryIO

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ContentHash:
    """MD5 and SHA-256 digests plus length of one request body."""

    md5: bytes
    sha256: bytes
    length: int

    @property
    def md5_base64(self) -> str:
        """The ``Content-MD5`` header value."""
        return base64.b64encode(self.md5).decode("ascii")

    @property
    def md5_hex(self) -> str:
        return self.md5.hex()

    @property
    def sha256_hex(self) -> str:
        """The ``X-Amz-Content-Sha256`` header value."""
        return self.sha256.hex()


def compute_hash(source: BinaryIO | bytes) -> ContentHash:
    """Hash a body in one buffered pass and rewind it.

    Args:
        source: A seekable binary stream, or raw bytes.

    Returns:
        The MD5 digest, SHA-256 digest and byte length of the content.
        The stream is left positioned at offset 0 so the transport can
        read it again.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        source = io.BytesIO(bytes(source))

    md5 = hashlib.md5()
    sha256 = hashlib.sha256()
    length = 0
    source.seek(0)
    while True:
        chunk = source.read(_CHUNK_SIZE)
        if not chunk:
            break
        md5.update(chunk)
        sha256.update(chunk)
        length += len(chunk)
    source.seek(0)
    return ContentHash(md5=md5.digest(), sha256=sha256.digest(), length=length)


EMPTY_HASH = compute_hash(b"")
