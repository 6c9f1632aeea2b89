"""Request factories for every S3 operation s3verify exercises.

Each factory is a pure function: it builds the target URL, hashes the body
and returns a fresh, unsigned ``Request``.  Nothing here is shared between
calls, so concurrent checks can build requests freely.
"""

from datetime import datetime, timezone
from email.utils import format_datetime

from s3verify.config import DEFAULT_REGION
from s3verify.hashing import EMPTY_HASH, compute_hash
from s3verify.models import CompleteMultipartUpload, Request
from s3verify.signer import uri_encode
from s3verify.urls import make_target_url
from s3verify.xml_utils import (
    render_complete_multipart_upload,
    render_create_bucket_configuration,
)


def http_date(value: datetime) -> str:
    """Format a datetime as an RFC 7231 HTTP date (naive values are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def _bodyless(method: str, url: str, headers: dict[str, str] | None = None) -> Request:
    all_headers = {"X-Amz-Content-Sha256": EMPTY_HASH.sha256_hex}
    all_headers.update(headers or {})
    return Request(method=method, url=url, headers=all_headers)


def _with_body(
    method: str,
    url: str,
    body: bytes,
    headers: dict[str, str] | None = None,
    content_md5: bool = True,
) -> Request:
    # Hash first: the digests describe exactly the bytes that go on the wire.
    digest = compute_hash(body)
    all_headers = {"X-Amz-Content-Sha256": digest.sha256_hex}
    if content_md5:
        all_headers["Content-MD5"] = digest.md5_base64
    all_headers.update(headers or {})
    return Request(method=method, url=url, headers=all_headers, body=body)


def _conditional_headers(
    if_match: str | None = None,
    if_none_match: str | None = None,
    if_modified_since: datetime | None = None,
    if_unmodified_since: datetime | None = None,
    prefix: str = "",
) -> dict[str, str]:
    headers: dict[str, str] = {}
    if if_match is not None:
        headers[f"{prefix}if-match" if prefix else "If-Match"] = if_match
    if if_none_match is not None:
        headers[f"{prefix}if-none-match" if prefix else "If-None-Match"] = if_none_match
    if if_modified_since is not None:
        name = f"{prefix}if-modified-since" if prefix else "If-Modified-Since"
        headers[name] = http_date(if_modified_since)
    if if_unmodified_since is not None:
        name = f"{prefix}if-unmodified-since" if prefix else "If-Unmodified-Since"
        headers[name] = http_date(if_unmodified_since)
    return headers


# -- Service and bucket operations ----------------------------------------------


def new_list_buckets_request(endpoint: str) -> Request:
    """GET / (ListBuckets)."""
    return _bodyless("GET", make_target_url(endpoint))


def new_make_bucket_request(endpoint: str, bucket: str, region: str = DEFAULT_REGION) -> Request:
    """PUT /bucket, with a location constraint outside us-east-1."""
    url = make_target_url(endpoint, bucket)
    if region == DEFAULT_REGION:
        return _bodyless("PUT", url)
    body = render_create_bucket_configuration(region).encode("utf-8")
    return _with_body("PUT", url, body, content_md5=False)


def new_head_bucket_request(endpoint: str, bucket: str) -> Request:
    """HEAD /bucket."""
    return _bodyless("HEAD", make_target_url(endpoint, bucket))


def new_remove_bucket_request(endpoint: str, bucket: str) -> Request:
    """DELETE /bucket."""
    return _bodyless("DELETE", make_target_url(endpoint, bucket))


def new_list_objects_v1_request(
    endpoint: str,
    bucket: str,
    prefix: str | None = None,
    delimiter: str | None = None,
    marker: str | None = None,
    max_keys: int | None = None,
) -> Request:
    """GET /bucket (ListObjects v1)."""
    query: dict[str, str] = {}
    if prefix is not None:
        query["prefix"] = prefix
    if delimiter is not None:
        query["delimiter"] = delimiter
    if marker is not None:
        query["marker"] = marker
    if max_keys is not None:
        query["max-keys"] = str(max_keys)
    return _bodyless("GET", make_target_url(endpoint, bucket, query=query))


def new_list_objects_v2_request(
    endpoint: str,
    bucket: str,
    prefix: str | None = None,
    delimiter: str | None = None,
    continuation_token: str | None = None,
    start_after: str | None = None,
    max_keys: int | None = None,
) -> Request:
    """GET /bucket?list-type=2 (ListObjects v2)."""
    query: dict[str, str] = {"list-type": "2"}
    if prefix is not None:
        query["prefix"] = prefix
    if delimiter is not None:
        query["delimiter"] = delimiter
    if continuation_token is not None:
        query["continuation-token"] = continuation_token
    if start_after is not None:
        query["start-after"] = start_after
    if max_keys is not None:
        query["max-keys"] = str(max_keys)
    return _bodyless("GET", make_target_url(endpoint, bucket, query=query))


# -- Object operations -----------------------------------------------------------


def new_put_object_request(
    endpoint: str,
    bucket: str,
    key: str,
    body: bytes,
    content_type: str = "application/octet-stream",
) -> Request:
    """PUT /bucket/key with Content-MD5."""
    url = make_target_url(endpoint, bucket, key)
    return _with_body("PUT", url, body, headers={"Content-Type": content_type})


def new_get_object_request(
    endpoint: str,
    bucket: str,
    key: str,
    *,
    if_match: str | None = None,
    if_none_match: str | None = None,
    if_modified_since: datetime | None = None,
    if_unmodified_since: datetime | None = None,
    byte_range: tuple[int, int] | None = None,
) -> Request:
    """GET /bucket/key, optionally conditional or ranged.

    ``byte_range`` is an inclusive (first, last) pair.
    """
    headers = _conditional_headers(if_match, if_none_match, if_modified_since, if_unmodified_since)
    if byte_range is not None:
        headers["Range"] = f"bytes={byte_range[0]}-{byte_range[1]}"
    return _bodyless("GET", make_target_url(endpoint, bucket, key), headers)


def new_head_object_request(
    endpoint: str,
    bucket: str,
    key: str,
    *,
    if_match: str | None = None,
    if_none_match: str | None = None,
    if_modified_since: datetime | None = None,
    if_unmodified_since: datetime | None = None,
) -> Request:
    """HEAD /bucket/key, optionally conditional."""
    headers = _conditional_headers(if_match, if_none_match, if_modified_since, if_unmodified_since)
    return _bodyless("HEAD", make_target_url(endpoint, bucket, key), headers)


def new_copy_object_request(
    endpoint: str,
    source_bucket: str,
    source_key: str,
    dest_bucket: str,
    dest_key: str,
    *,
    if_match: str | None = None,
    if_none_match: str | None = None,
    if_modified_since: datetime | None = None,
    if_unmodified_since: datetime | None = None,
) -> Request:
    """PUT /dest_bucket/dest_key with x-amz-copy-source and copy conditions."""
    headers = {"x-amz-copy-source": "/" + uri_encode(f"{source_bucket}/{source_key}", encode_slash=False)}
    headers.update(
        _conditional_headers(
            if_match,
            if_none_match,
            if_modified_since,
            if_unmodified_since,
            prefix="x-amz-copy-source-",
        )
    )
    # The copied bytes come from the server; the request itself is empty.
    return _with_body(
        "PUT", make_target_url(endpoint, dest_bucket, dest_key), b"", headers, content_md5=False
    )


def new_remove_object_request(endpoint: str, bucket: str, key: str) -> Request:
    """DELETE /bucket/key."""
    return _bodyless("DELETE", make_target_url(endpoint, bucket, key))


# -- Multipart operations --------------------------------------------------------


def new_initiate_multipart_upload_request(
    endpoint: str, bucket: str, key: str, content_type: str = "application/octet-stream"
) -> Request:
    """POST /bucket/key?uploads."""
    url = make_target_url(endpoint, bucket, key, query={"uploads": ""})
    return _with_body("POST", url, b"", headers={"Content-Type": content_type}, content_md5=False)


def new_upload_part_request(
    endpoint: str, bucket: str, key: str, upload_id: str, part_number: int, data: bytes
) -> Request:
    """PUT /bucket/key?partNumber=N&uploadId=ID with Content-MD5."""
    query = {"partNumber": str(part_number), "uploadId": upload_id}
    return _with_body("PUT", make_target_url(endpoint, bucket, key, query=query), data)


def new_list_parts_request(
    endpoint: str, bucket: str, key: str, upload_id: str, part_number_marker: int | None = None
) -> Request:
    """GET /bucket/key?uploadId=ID, optionally resuming after a part number."""
    query = {"uploadId": upload_id}
    if part_number_marker:
        query["part-number-marker"] = str(part_number_marker)
    return _bodyless("GET", make_target_url(endpoint, bucket, key, query=query))


def new_complete_multipart_upload_request(
    endpoint: str, bucket: str, key: str, upload_id: str, complete: CompleteMultipartUpload
) -> Request:
    """POST /bucket/key?uploadId=ID with the CompleteMultipartUpload body.

    The part list is sent exactly as given; validating it is the
    coordinator's job.
    """
    body = render_complete_multipart_upload(complete).encode("utf-8")
    url = make_target_url(endpoint, bucket, key, query={"uploadId": upload_id})
    return _with_body(
        "POST", url, body, headers={"Content-Type": "application/xml"}, content_md5=False
    )


def new_abort_multipart_upload_request(
    endpoint: str, bucket: str, key: str, upload_id: str
) -> Request:
    """DELETE /bucket/key?uploadId=ID."""
    return _bodyless(
        "DELETE", make_target_url(endpoint, bucket, key, query={"uploadId": upload_id})
    )
