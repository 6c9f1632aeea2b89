"""Error taxonomy for s3verify.

Every failure the harness can produce is one of the classes below.  Errors
raised by the server under test surface as ``VerificationError``; everything
else is either a transport problem or a bug in the harness itself.
"""

from typing import Any


class S3VerifyError(Exception):
    """Base class for all s3verify failures.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportError(S3VerifyError):
    """Connection, DNS or timeout failure while talking to the endpoint."""

    def __init__(self, method: str, url: str, reason: str) -> None:
        super().__init__(f"{method} {url} failed: {reason}")
        self.method = method
        self.url = url
        self.reason = reason


class SigningError(S3VerifyError):
    """Malformed input to the request signer (bad URL, missing credentials)."""


class InvalidNameError(S3VerifyError):
    """A bucket or object name violates S3 naming constraints."""

    def __init__(self, kind: str, name: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"Invalid {kind} name {name!r}{detail}")
        self.kind = kind
        self.name = name


class VerificationError(S3VerifyError):
    """A response did not match the expected S3 contract.

    Attributes:
        what: Which part of the response mismatched (status, header, body...).
        expected: The expected value, reported verbatim.
        actual: The value actually received, reported verbatim.
    """

    def __init__(self, what: str, expected: Any, actual: Any) -> None:
        super().__init__(f"Unexpected {what} Received: wanted {expected!r}, got {actual!r}")
        self.what = what
        self.expected = expected
        self.actual = actual


class ProtocolError(VerificationError):
    """A response could not be used to continue the protocol exchange."""


class InvalidPartListError(S3VerifyError):
    """A completion part list violates the multipart invariant.

    Raised before any request is sent: the list is empty, not strictly
    ascending by part number, or names a part the server never returned.
    """


class UploadStateError(S3VerifyError):
    """An operation was attempted on an upload in the wrong state."""

    def __init__(self, upload_id: str, state: str, operation: str) -> None:
        super().__init__(f"Cannot {operation} upload {upload_id!r} in state {state}")
        self.upload_id = upload_id
        self.state = state
        self.operation = operation


class CleanupError(S3VerifyError):
    """Removing test fixtures failed."""


class PrepareError(S3VerifyError):
    """Creating test fixtures failed."""
