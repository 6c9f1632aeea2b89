"""S3 naming validation helpers for s3verify.

The URL builder calls these before it assembles a target URL so that a
typo in a fixture name fails fast instead of producing a confusing server
error.  The rules are the published AWS ones; they are not meant to be
exhaustive.

Each function raises ``InvalidNameError`` on invalid input.
"""

import re

from s3verify.errors import InvalidNameError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# S3 bucket naming rules:
#   - 3-63 characters
#   - lowercase letters, digits, hyphens, and periods
#   - must start and end with a letter or digit
#   - must not be formatted as an IP address
#   - must not start with "xn--" (internationalized domain prefix)
#   - must not end with "-s3alias" or "--ol-s3"
#   - no consecutive periods ("..") allowed

_BUCKET_RE = re.compile(r"^[a-z0-9][a-z0-9.\-]{1,61}[a-z0-9]$")
_IP_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")

_MAX_KEY_BYTES = 1024


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_bucket_name(name: str) -> None:
    """Validate an S3 bucket name against AWS naming rules.

    Args:
        name: The candidate bucket name.

    Raises:
        InvalidNameError: If the name violates any S3 bucket naming rule.
    """
    if len(name) < 3 or len(name) > 63:
        raise InvalidNameError("bucket", name, "must be 3-63 characters long")

    if not _BUCKET_RE.match(name):
        raise InvalidNameError("bucket", name, "contains invalid characters")

    if _IP_RE.match(name):
        raise InvalidNameError("bucket", name, "must not be formatted as an IP address")

    if name.startswith("xn--"):
        raise InvalidNameError("bucket", name, "must not start with 'xn--'")

    if name.endswith("-s3alias") or name.endswith("--ol-s3"):
        raise InvalidNameError("bucket", name, "uses a reserved suffix")

    if ".." in name:
        raise InvalidNameError("bucket", name, "must not contain '..'")


def validate_object_key(key: str) -> None:
    """Validate an S3 object key.

    Args:
        key: The object key string.

    Raises:
        InvalidNameError: If the key is empty or exceeds 1024 UTF-8 bytes.
    """
    if not key:
        raise InvalidNameError("object", key, "must not be empty")

    if len(key.encode("utf-8")) > _MAX_KEY_BYTES:
        raise InvalidNameError("object", key, f"exceeds {_MAX_KEY_BYTES} bytes")
