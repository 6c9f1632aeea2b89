"""AWS Signature Version 4 request signing for s3verify.

Implements the header-based SigV4 signing algorithm used for every request
the harness sends.  Signing is a pure function of the request, the
credentials and the timestamp: the same inputs always produce the same
``Authorization`` header.

References:
    - https://docs.aws.amazon.com/AmazonS3/latest/API/sig-v4-authenticating-requests.html
"""

import hashlib
import hmac
import logging
import re
import urllib.parse
from collections.abc import Iterable
from datetime import datetime, timezone

from s3verify.config import Credentials
from s3verify.errors import SigningError
from s3verify.hashing import compute_hash
from s3verify.models import Request

logger = logging.getLogger(__name__)

# Constants
ALGORITHM = "AWS4-HMAC-SHA256"
KEY_PREFIX = "AWS4"
SCOPE_TERMINATOR = "aws4_request"
SERVICE_NAME = "s3"
EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"

# Methods that never carry a body; their payload hash is always EMPTY_SHA256.
BODYLESS_METHODS = frozenset({"GET", "HEAD", "DELETE"})

# Headers left out of the signature, matching the reference SDK signer.
IGNORED_HEADERS = frozenset({"authorization", "content-length", "content-type", "user-agent"})

_DEFAULT_PORTS = {"http": 80, "https": 443}


class RequestSigner:
    """Signs requests with AWS Signature Version 4.

    Attributes:
        credentials: The access key, secret key and region to sign with.
        service: The service name used in the credential scope.
    """

    def __init__(self, credentials: Credentials, service: str = SERVICE_NAME) -> None:
        """Initialize the signer.

        Args:
            credentials: Credentials for the run.
            service: Service name for the credential scope.

        Raises:
            SigningError: If the access key, secret key or region is missing.
        """
        for field_name in ("access_key", "secret_key", "region"):
            if not getattr(credentials, field_name):
                raise SigningError(f"Missing credential field: {field_name}")
        self.credentials = credentials
        self.service = service
        # Signing key cache: date -> signing_key bytes
        self._signing_key_cache: dict[str, bytes] = {}

    def sign(self, request: Request, now: datetime | None = None) -> Request:
        """Return a signed copy of ``request``.

        Sets ``Host``, ``x-amz-date``, ``X-Amz-Content-Sha256`` and
        ``Authorization``.  The input request is left untouched.

        Args:
            request: The unsigned request.
            now: Signing time; defaults to the current UTC time.

        Returns:
            A new, signed request.

        Raises:
            SigningError: On a malformed URL or a body on a bodyless method.
        """
        parts = urllib.parse.urlsplit(request.url)
        host = _host_header(parts)

        payload_hash = self._payload_hash(request)

        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        amz_date = now.astimezone(timezone.utc).strftime(AMZ_DATE_FORMAT)
        date_part = amz_date[:8]

        signing_headers = {
            name: value
            for name, value in request.headers.items()
            if name.lower() not in IGNORED_HEADERS
            and name.lower() not in ("host", "x-amz-date", "x-amz-content-sha256")
        }
        signing_headers["host"] = host
        signing_headers["x-amz-date"] = amz_date
        signing_headers["x-amz-content-sha256"] = payload_hash
        signed_headers = sorted({name.lower() for name in signing_headers})

        canonical_request = self.build_canonical_request(
            method=request.method,
            path=parts.path,
            query_string=parts.query,
            headers=signing_headers,
            signed_headers=signed_headers,
            payload_hash=payload_hash,
        )
        scope = self.scope(date_part)
        string_to_sign = self.build_string_to_sign(amz_date, scope, canonical_request)
        signature = self.compute_signature(self.signing_key(date_part), string_to_sign)

        authorization = (
            f"{ALGORITHM} Credential={self.credentials.access_key}/{scope}, "
            f"SignedHeaders={';'.join(signed_headers)}, Signature={signature}"
        )
        logger.debug("Signed %s %s (scope=%s)", request.method, request.url, scope)
        return request.with_headers(
            {
                "Host": host,
                "x-amz-date": amz_date,
                "X-Amz-Content-Sha256": payload_hash,
                "Authorization": authorization,
            }
        )

    # -- Payload hash ----------------------------------------------------------

    def _payload_hash(self, request: Request) -> str:
        """Determine the payload hash for a request.

        A pre-computed ``X-Amz-Content-Sha256`` header is trusted as-is;
        otherwise the hash is computed from the body bytes.
        """
        declared = request.header("x-amz-content-sha256")
        if request.method in BODYLESS_METHODS:
            if request.body:
                raise SigningError(f"{request.method} request must not carry a body")
            if declared is not None and declared != EMPTY_SHA256:
                raise SigningError(
                    f"{request.method} request declares payload hash {declared}, "
                    f"expected the empty-body hash"
                )
            return EMPTY_SHA256
        if declared is not None:
            return declared
        return compute_hash(request.body).sha256_hex

    # -- Canonical request construction ----------------------------------------

    def build_canonical_request(
        self,
        method: str,
        path: str,
        query_string: str,
        headers: dict[str, str],
        signed_headers: list[str],
        payload_hash: str,
    ) -> str:
        """Build the canonical request string.

        Args:
            method: HTTP method (uppercase).
            path: The URL path, possibly already percent-encoded.
            query_string: The raw query string.
            headers: Headers to sign (names may be mixed case).
            signed_headers: Sorted lowercase names of the signed headers.
            payload_hash: SHA-256 hex digest of the payload.

        Returns:
            The canonical request string.
        """
        canonical_uri = uri_encode_path(urllib.parse.unquote(path))
        canonical_query = _build_canonical_query_string(query_string)

        # Canonical headers: lowercase names, trim values, sort by name
        lower_headers: dict[str, str] = {}
        for name, value in headers.items():
            lower_name = name.lower()
            if lower_name in lower_headers:
                # Multiple same headers: join with comma
                lower_headers[lower_name] += "," + _trim_header_value(value)
            else:
                lower_headers[lower_name] = _trim_header_value(value)

        canonical_headers = "".join(
            f"{name}:{lower_headers.get(name, '')}\n" for name in signed_headers
        )

        parts = [
            method,
            canonical_uri,
            canonical_query,
            canonical_headers,
            ";".join(signed_headers),
            payload_hash,
        ]
        return "\n".join(parts)

    # -- String to sign --------------------------------------------------------

    def scope(self, date: str) -> str:
        """Credential scope for a date (YYYYMMDD/region/service/aws4_request)."""
        return f"{date}/{self.credentials.region}/{self.service}/{SCOPE_TERMINATOR}"

    def build_string_to_sign(self, timestamp: str, scope: str, canonical_request: str) -> str:
        """Build the string to sign.

        Args:
            timestamp: ISO 8601 basic timestamp (YYYYMMDDTHHMMSSZ).
            scope: Credential scope.
            canonical_request: The assembled canonical request string.

        Returns:
            The string to sign.
        """
        canonical_hash = hashlib.sha256(canonical_request.encode("utf-8")).hexdigest()
        return f"{ALGORITHM}\n{timestamp}\n{scope}\n{canonical_hash}"

    # -- Signing key derivation ------------------------------------------------

    def signing_key(self, date: str) -> bytes:
        """Return the (cached) signing key for a date."""
        cached = self._signing_key_cache.get(date)
        if cached is not None:
            return cached

        key = derive_signing_key(
            self.credentials.secret_key, date, self.credentials.region, self.service
        )
        # A run rarely spans more than two dates.
        if len(self._signing_key_cache) > 8:
            self._signing_key_cache.clear()
        self._signing_key_cache[date] = key
        return key

    # -- Signature computation -------------------------------------------------

    def compute_signature(self, signing_key: bytes, string_to_sign: str) -> str:
        """Compute the final HMAC-SHA256 hex signature.

        Returns:
            64-character lowercase hex string.
        """
        return hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


# ---------------------------------------------------------------------------
# Module-level utility functions
# ---------------------------------------------------------------------------


def sign_request(
    request: Request, credentials: Credentials, now: datetime | None = None
) -> Request:
    """Sign a single request without keeping a signer around."""
    return RequestSigner(credentials).sign(request, now=now)


def derive_signing_key(secret_key: str, date: str, region: str, service: str) -> bytes:
    """Derive the SigV4 signing key via the HMAC-SHA256 chain.

    Args:
        secret_key: The secret access key.
        date: Date string (YYYYMMDD).
        region: AWS region.
        service: AWS service name.

    Returns:
        The 32-byte signing key.
    """
    k_date = hmac.new(
        (KEY_PREFIX + secret_key).encode("utf-8"),
        date.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    k_region = hmac.new(k_date, region.encode("utf-8"), hashlib.sha256).digest()
    k_service = hmac.new(k_region, service.encode("utf-8"), hashlib.sha256).digest()
    return hmac.new(k_service, SCOPE_TERMINATOR.encode("utf-8"), hashlib.sha256).digest()


def uri_encode(s: str, encode_slash: bool = True) -> str:
    """S3-compatible URI encoding.

    Characters A-Z, a-z, 0-9, '-', '_', '.', '~' are not encoded.
    All other characters are percent-encoded with uppercase hex.
    Spaces become %20 (not +).

    Args:
        s: The string to encode.
        encode_slash: If True (default), '/' is encoded as %2F.

    Returns:
        The URI-encoded string.
    """
    safe = "-_.~" if encode_slash else "-_.~/"
    return urllib.parse.quote(s, safe=safe)


def uri_encode_path(path: str) -> str:
    """URI-encode a path, preserving forward slashes.

    Each path segment is individually URI-encoded.
    """
    if not path:
        return "/"
    segments = path.split("/")
    result = "/".join(uri_encode(seg, encode_slash=True) for seg in segments)
    if not result.startswith("/"):
        result = "/" + result
    return result


def canonical_query_string(params: Iterable[tuple[str, str]]) -> str:
    """Render decoded (name, value) pairs as a canonical query string.

    Pairs are sorted by name, then by value (byte order).  Empty values
    are rendered as ``name=``.
    """
    return "&".join(
        f"{uri_encode(name)}={uri_encode(value)}" for name, value in sorted(params)
    )


def _build_canonical_query_string(query_string: str) -> str:
    """Build the canonical query string from a raw query string.

    Args:
        query_string: The raw query string (without leading '?').

    Returns:
        The canonical query string.
    """
    if not query_string:
        return ""

    params: list[tuple[str, str]] = []
    for pair in query_string.split("&"):
        if not pair:
            continue
        if "=" in pair:
            name, value = pair.split("=", 1)
        else:
            name = pair
            value = ""
        # URL-decode first (query params may already be encoded)
        params.append((urllib.parse.unquote(name), urllib.parse.unquote(value)))
    return canonical_query_string(params)


def _trim_header_value(value: str) -> str:
    """Trim and normalize a header value for canonical headers.

    Strips leading/trailing whitespace and collapses sequential spaces
    to a single space.
    """
    return re.sub(r" +", " ", value.strip())


def _host_header(parts: urllib.parse.SplitResult) -> str:
    """Derive the Host header from a split URL, omitting default ports."""
    if parts.scheme not in _DEFAULT_PORTS:
        raise SigningError(f"Unsupported URL scheme: {parts.scheme!r}")
    try:
        hostname = parts.hostname
        port = parts.port
    except ValueError as exc:
        raise SigningError(f"Malformed URL: {exc}") from exc
    if not hostname:
        raise SigningError("URL has no host")
    if ":" in hostname:
        hostname = f"[{hostname}]"
    if port is None or port == _DEFAULT_PORTS[parts.scheme]:
        return hostname
    return f"{hostname}:{port}"
