"""S3 XML request rendering and response decoding helpers for s3verify."""

import logging
import xml.etree.ElementTree as ET
from xml.sax.saxutils import escape as _sax_escape

from s3verify.errors import ProtocolError
from s3verify.models import (
    BucketInfo,
    CompleteMultipartUpload,
    CompleteMultipartUploadResult,
    CopyObjectResult,
    ErrorResponse,
    InitiateMultipartUploadResult,
    ListAllMyBucketsResult,
    ListBucketResult,
    ListEntry,
    ListPartsResult,
    ObjectPart,
    normalize_etag,
)

logger = logging.getLogger(__name__)

S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"


def _escape_xml(value: str) -> str:
    """Escape special XML characters in a string value."""
    return _sax_escape(str(value))


# -- Request bodies -------------------------------------------------------------


def render_complete_multipart_upload(complete: CompleteMultipartUpload) -> str:
    """Render a CompleteMultipartUpload request body.

    Parts are emitted in the order given; ordering is the caller's concern.

    Args:
        complete: The part list to send.

    Returns:
        An XML string for CompleteMultipartUpload.
    """
    parts = ["<CompleteMultipartUpload>"]
    for part in complete.parts:
        parts.append("<Part>")
        parts.append(f"<PartNumber>{part.part_number}</PartNumber>")
        parts.append(f"<ETag>&quot;{_escape_xml(normalize_etag(part.etag))}&quot;</ETag>")
        parts.append("</Part>")
    parts.append("</CompleteMultipartUpload>")
    return "".join(parts)


def render_create_bucket_configuration(region: str) -> str:
    """Render a CreateBucketConfiguration request body.

    Args:
        region: The location constraint for the new bucket.

    Returns:
        An XML string for CreateBucketConfiguration.
    """
    return (
        f'<CreateBucketConfiguration xmlns="{S3_NAMESPACE}">'
        f"<LocationConstraint>{_escape_xml(region)}</LocationConstraint>"
        "</CreateBucketConfiguration>"
    )


# -- Response decoding ----------------------------------------------------------


def _local(tag: str) -> str:
    """Strip a ``{namespace}`` prefix from an element tag."""
    return tag.rsplit("}", 1)[-1]


def _parse_root(body: bytes | str, expected_root: str) -> ET.Element:
    """Parse an XML document and check its root element name.

    Raises:
        ProtocolError: If the body is not well-formed or has the wrong root.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as exc:
        logger.debug("Malformed XML body: %r", body[:200])
        raise ProtocolError("XML Body", f"well-formed <{expected_root}>", str(exc)) from exc
    if _local(root.tag) != expected_root:
        raise ProtocolError("XML Root", expected_root, _local(root.tag))
    return root


def _children(parent: ET.Element, name: str) -> list[ET.Element]:
    """All direct children named ``name``, with or without a namespace."""
    return [child for child in parent if _local(child.tag) == name]


def _find_elem(parent: ET.Element, name: str) -> ET.Element | None:
    """First direct child named ``name``, with or without a namespace.

    Uses explicit ``is not None`` checks to avoid ElementTree's deprecated
    truth-value testing of elements.
    """
    for child in parent:
        if _local(child.tag) == name:
            return child
    return None


def _text(parent: ET.Element, name: str, default: str = "") -> str:
    elem = _find_elem(parent, name)
    if elem is None or elem.text is None:
        return default
    return elem.text


def _int(parent: ET.Element, name: str, default: int = 0) -> int:
    raw = _text(parent, name)
    if not raw:
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ProtocolError(f"{name} Value", "an integer", raw) from exc


def _bool(parent: ET.Element, name: str) -> bool:
    return _text(parent, name).strip().lower() == "true"


def parse_error(body: bytes | str) -> ErrorResponse:
    """Decode an S3 ``<Error>`` document."""
    root = _parse_root(body, "Error")
    return ErrorResponse(
        code=_text(root, "Code"),
        message=_text(root, "Message"),
        resource=_text(root, "Resource"),
        request_id=_text(root, "RequestId"),
    )


def parse_initiate_multipart_upload(body: bytes | str) -> InitiateMultipartUploadResult:
    """Decode an InitiateMultipartUploadResult document."""
    root = _parse_root(body, "InitiateMultipartUploadResult")
    return InitiateMultipartUploadResult(
        bucket=_text(root, "Bucket"),
        key=_text(root, "Key"),
        upload_id=_text(root, "UploadId").strip(),
    )


def parse_list_parts(body: bytes | str) -> ListPartsResult:
    """Decode a ListPartsResult document. Part ETags are unquoted."""
    root = _parse_root(body, "ListPartsResult")
    parts = [
        ObjectPart(
            part_number=_int(elem, "PartNumber"),
            etag=normalize_etag(_text(elem, "ETag")),
            size=_int(elem, "Size"),
        )
        for elem in _children(root, "Part")
    ]
    return ListPartsResult(
        bucket=_text(root, "Bucket"),
        key=_text(root, "Key"),
        upload_id=_text(root, "UploadId"),
        is_truncated=_bool(root, "IsTruncated"),
        next_part_number_marker=_int(root, "NextPartNumberMarker"),
        parts=parts,
    )


def parse_complete_multipart_upload(body: bytes | str) -> CompleteMultipartUploadResult:
    """Decode a CompleteMultipartUploadResult document."""
    root = _parse_root(body, "CompleteMultipartUploadResult")
    return CompleteMultipartUploadResult(
        location=_text(root, "Location"),
        bucket=_text(root, "Bucket"),
        key=_text(root, "Key"),
        etag=normalize_etag(_text(root, "ETag")),
    )


def parse_copy_object_result(body: bytes | str) -> CopyObjectResult:
    """Decode a CopyObjectResult document."""
    root = _parse_root(body, "CopyObjectResult")
    return CopyObjectResult(
        etag=normalize_etag(_text(root, "ETag")),
        last_modified=_text(root, "LastModified"),
    )


def parse_list_buckets(body: bytes | str) -> ListAllMyBucketsResult:
    """Decode a ListAllMyBucketsResult document."""
    root = _parse_root(body, "ListAllMyBucketsResult")
    result = ListAllMyBucketsResult()
    owner = _find_elem(root, "Owner")
    if owner is not None:
        result.owner_id = _text(owner, "ID")
        result.owner_display_name = _text(owner, "DisplayName")
    buckets = _find_elem(root, "Buckets")
    if buckets is not None:
        result.buckets = [
            BucketInfo(name=_text(b, "Name"), creation_date=_text(b, "CreationDate"))
            for b in _children(buckets, "Bucket")
        ]
    return result


def parse_list_objects(body: bytes | str) -> ListBucketResult:
    """Decode a ListBucketResult document (ListObjects v1 or v2)."""
    root = _parse_root(body, "ListBucketResult")
    contents = [
        ListEntry(
            key=_text(elem, "Key"),
            etag=normalize_etag(_text(elem, "ETag")),
            size=_int(elem, "Size"),
            last_modified=_text(elem, "LastModified"),
        )
        for elem in _children(root, "Contents")
    ]
    common_prefixes = [_text(cp, "Prefix") for cp in _children(root, "CommonPrefixes")]
    return ListBucketResult(
        name=_text(root, "Name"),
        prefix=_text(root, "Prefix"),
        delimiter=_text(root, "Delimiter"),
        marker=_text(root, "Marker"),
        max_keys=_int(root, "MaxKeys"),
        key_count=_int(root, "KeyCount", default=len(contents)),
        is_truncated=_bool(root, "IsTruncated"),
        contents=contents,
        common_prefixes=common_prefixes,
    )
