"""Data model types for s3verify.

These dataclasses describe the fixtures the harness uploads, the request
values it signs and sends, and the decoded S3 response documents it
verifies against.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType


def normalize_etag(etag: str) -> str:
    """Strip surrounding whitespace and double quotes from an ETag."""
    return etag.strip().strip('"')


@dataclass(frozen=True)
class Request:
    """An immutable HTTP request value.

    A fresh instance is built for every call; signing returns a new instance
    instead of mutating this one.

    Attributes:
        method: Upper-case HTTP method.
        url: Absolute target URL including the query string.
        headers: Read-only header mapping (names keep their original case).
        body: Exact bytes to transmit.
    """

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def header(self, name: str, default: str | None = None) -> str | None:
        """Case-insensitive header lookup."""
        lower = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lower:
                return value
        return default

    def with_headers(self, extra: Mapping[str, str]) -> Request:
        """Return a copy with ``extra`` merged in, replacing same-named headers."""
        replaced = {name.lower() for name in extra}
        merged = {k: v for k, v in self.headers.items() if k.lower() not in replaced}
        merged.update(extra)
        return replace(self, headers=merged)


@dataclass
class ObjectInfo:
    """A fixture object registered for testing.

    Attributes:
        key: The object key.
        content_type: MIME type sent on upload.
        body: The object's bytes.
        etag: ETag returned by a successful PUT (quotes stripped).
        last_modified: Last-Modified returned by the server.
        upload_id: Upload ID attached by the multipart coordinator.
    """

    key: str
    content_type: str = "application/octet-stream"
    body: bytes = b""
    etag: str = ""
    last_modified: datetime | None = None
    upload_id: str = ""


@dataclass
class BucketInfo:
    """A bucket created or listed by the harness."""

    name: str
    creation_date: str = ""


@dataclass(frozen=True)
class ObjectPart:
    """One uploaded part of a multipart upload.

    Attributes:
        part_number: 1-based part number, unique within an upload.
        etag: ETag returned by the server, quotes stripped.
        size: Size of the part in bytes.
    """

    part_number: int
    etag: str
    size: int = 0


@dataclass(frozen=True)
class CompletedPart:
    """A (part number, ETag) pair sent in a completion request."""

    part_number: int
    etag: str


@dataclass
class CompleteMultipartUpload:
    """The ordered part list of a completion request body."""

    parts: list[CompletedPart] = field(default_factory=list)


class UploadState(str, enum.Enum):
    """Lifecycle state of a multipart upload."""

    INITIATED = "Initiated"
    PARTS_UPLOADED = "PartsUploaded"
    COMPLETED = "Completed"
    ABORTED = "Aborted"

    @property
    def terminal(self) -> bool:
        return self in (UploadState.COMPLETED, UploadState.ABORTED)


@dataclass
class ErrorResponse:
    """The body of a non-2xx S3 response."""

    code: str = ""
    message: str = ""
    resource: str = ""
    request_id: str = ""


@dataclass
class ListAllMyBucketsResult:
    """Decoded ListBuckets response."""

    owner_id: str = ""
    owner_display_name: str = ""
    buckets: list[BucketInfo] = field(default_factory=list)


@dataclass
class ListEntry:
    """One ``Contents`` element of a bucket listing."""

    key: str
    etag: str = ""
    size: int = 0
    last_modified: str = ""


@dataclass
class ListBucketResult:
    """Decoded ListObjects (v1 or v2) response.

    ``marker`` is only meaningful for v1 and ``key_count`` for v2.
    """

    name: str = ""
    prefix: str = ""
    delimiter: str = ""
    marker: str = ""
    max_keys: int = 0
    key_count: int = 0
    is_truncated: bool = False
    contents: list[ListEntry] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)


@dataclass
class InitiateMultipartUploadResult:
    """Decoded InitiateMultipartUpload response."""

    bucket: str = ""
    key: str = ""
    upload_id: str = ""


@dataclass
class ListPartsResult:
    """Decoded ListParts response."""

    bucket: str = ""
    key: str = ""
    upload_id: str = ""
    is_truncated: bool = False
    next_part_number_marker: int = 0
    parts: list[ObjectPart] = field(default_factory=list)


@dataclass
class CompleteMultipartUploadResult:
    """Decoded CompleteMultipartUpload response."""

    location: str = ""
    bucket: str = ""
    key: str = ""
    etag: str = ""


@dataclass
class CopyObjectResult:
    """Decoded CopyObject response."""

    etag: str = ""
    last_modified: str = ""
