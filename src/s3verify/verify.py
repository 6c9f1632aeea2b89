"""Response verification for s3verify.

Every check applies the same contract to a response: status code first,
then mandatory headers, then the body.  A mismatch raises
``VerificationError`` with the expected and actual values verbatim.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from s3verify.errors import ProtocolError, VerificationError
from s3verify.models import ListAllMyBucketsResult, ListBucketResult, normalize_etag
from s3verify.xml_utils import parse_error, parse_list_buckets, parse_list_objects

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Present on every S3 response, success or error.
STANDARD_HEADERS = ("x-amz-request-id", "Date")


@dataclass(frozen=True)
class Expectation:
    """What a single response must look like.

    Attributes:
        status: Expected HTTP status code.
        headers: Header names that must be present in addition to the
            standard ones.
        body: Exact expected body, or None to skip byte comparison.
        error_code: Expected ``<Error><Code>`` value, or None.
        empty_body: Require an empty body.
    """

    status: int
    headers: tuple[str, ...] = ()
    body: bytes | None = None
    error_code: str | None = None
    empty_body: bool = False


def verify_status(response: httpx.Response, expected: int) -> None:
    """Compare the status code as an integer."""
    if response.status_code != expected:
        raise VerificationError("Status", expected, response.status_code)


def verify_header_present(response: httpx.Response, name: str) -> str:
    """Require header ``name`` and return its value."""
    value = response.headers.get(name)
    if value is None:
        raise VerificationError("Header", f"{name} present", None)
    return value


def verify_header_equals(response: httpx.Response, name: str, expected: str) -> None:
    actual = verify_header_present(response, name)
    if actual != expected:
        raise VerificationError(f"{name} Header", expected, actual)


def verify_standard_headers(response: httpx.Response) -> None:
    """Require the headers every S3 response carries."""
    for name in STANDARD_HEADERS:
        verify_header_present(response, name)


def verify_etag(response: httpx.Response, expected: str | None = None) -> str:
    """Require an ETag header and return it unquoted.

    When ``expected`` is given the unquoted values must match.
    """
    etag = normalize_etag(verify_header_present(response, "ETag"))
    if not etag:
        raise VerificationError("ETag", "non-empty ETag", etag)
    if expected is not None and etag != normalize_etag(expected):
        raise VerificationError("ETag", normalize_etag(expected), etag)
    return etag


def verify_empty_body(response: httpx.Response) -> None:
    if response.content:
        raise VerificationError("Body", b"", response.content)


def verify_body_equals(response: httpx.Response, expected: bytes) -> None:
    if response.content != expected:
        raise VerificationError("Body", expected, response.content)


def verify_error(response: httpx.Response, expected_code: str) -> None:
    """Decode an ``<Error>`` body and compare its Code.

    Only the code is compared; servers are free to word the message.
    """
    try:
        error = parse_error(response.content)
    except ProtocolError as exc:
        raise VerificationError("Error Body", f"<Error> with Code {expected_code}", exc.actual) from exc
    if error.code != expected_code:
        raise VerificationError("Error Code", expected_code, error.code)


def verify_response(response: httpx.Response, expect: Expectation) -> None:
    """Apply the full status / headers / body contract."""
    verify_status(response, expect.status)
    verify_standard_headers(response)
    for name in expect.headers:
        verify_header_present(response, name)
    if expect.empty_body:
        verify_empty_body(response)
    if expect.body is not None:
        verify_body_equals(response, expect.body)
    if expect.error_code is not None:
        verify_error(response, expect.error_code)


def decode_body(response: httpx.Response, parser: Callable[[bytes], T]) -> T:
    """Decode an XML body with one of the ``xml_utils.parse_*`` functions."""
    return parser(response.content)


def verify_list_objects(
    response: httpx.Response,
    bucket: str,
    expected_keys: Iterable[str],
    expected_prefixes: Iterable[str] = (),
    etags: dict[str, str] | None = None,
) -> ListBucketResult:
    """Structurally compare a ListObjects (v1 or v2) body.

    The bucket name, the set of keys and the set of common prefixes must
    match exactly.  When ``etags`` maps keys to their known ETags, each
    listed entry must carry that ETag.
    """
    result = decode_body(response, parse_list_objects)
    if result.name != bucket:
        raise VerificationError("Listing Bucket", bucket, result.name)
    keys = sorted(entry.key for entry in result.contents)
    wanted = sorted(expected_keys)
    if keys != wanted:
        raise VerificationError("Listing Keys", wanted, keys)
    prefixes = sorted(result.common_prefixes)
    wanted_prefixes = sorted(expected_prefixes)
    if prefixes != wanted_prefixes:
        raise VerificationError("Listing Prefixes", wanted_prefixes, prefixes)
    for entry in result.contents:
        if etags and entry.key in etags and entry.etag != normalize_etag(etags[entry.key]):
            raise VerificationError(f"ETag for {entry.key}", etags[entry.key], entry.etag)
    return result


def verify_list_buckets(response: httpx.Response, expected: Iterable[str]) -> ListAllMyBucketsResult:
    """Require every bucket in ``expected`` to appear in a ListBuckets body.

    The endpoint may hold other buckets, so extra entries are allowed.
    """
    result = decode_body(response, parse_list_buckets)
    names = {bucket.name for bucket in result.buckets}
    for name in expected:
        if name not in names:
            raise VerificationError("Bucket List", f"{name} listed", sorted(names))
    return result
