"""Target URL construction for S3 requests (path-style addressing)."""

import urllib.parse
from collections.abc import Iterable, Mapping

from s3verify.errors import SigningError
from s3verify.signer import canonical_query_string, uri_encode
from s3verify.validation import validate_bucket_name, validate_object_key

QueryParams = Mapping[str, str] | Iterable[tuple[str, str]]


def make_target_url(
    endpoint: str,
    bucket: str = "",
    obj: str = "",
    query: QueryParams | None = None,
) -> str:
    """Build ``scheme://host/bucket/object?query`` for an operation.

    Each object-name segment is percent-encoded on its own so that ``/``
    separators inside the key survive.  The query string is emitted in
    canonical (sorted) order, so the URL on the wire matches what the
    signer canonicalizes.

    Args:
        endpoint: Base endpoint URL, e.g. ``http://localhost:9000``.
        bucket: Bucket name; empty for service-level operations.
        obj: Object key; empty for bucket-level operations.
        query: Query parameters as a mapping or ordered pairs.

    Returns:
        The absolute target URL.

    Raises:
        SigningError: If the endpoint has no scheme or host.
        InvalidNameError: If the bucket or object name is invalid.
    """
    parts = urllib.parse.urlsplit(endpoint)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise SigningError(f"Malformed endpoint URL: {endpoint!r}")
    if obj and not bucket:
        raise SigningError("An object name requires a bucket name")

    path = parts.path.rstrip("/")
    if bucket:
        validate_bucket_name(bucket)
        path += "/" + bucket
        if obj:
            validate_object_key(obj)
            path += "/" + "/".join(uri_encode(seg) for seg in obj.split("/"))
    else:
        path += "/"

    query_string = ""
    if query:
        pairs = query.items() if isinstance(query, Mapping) else query
        query_string = canonical_query_string((str(k), str(v)) for k, v in pairs)

    return urllib.parse.urlunsplit((parts.scheme, parts.netloc, path, query_string, ""))
