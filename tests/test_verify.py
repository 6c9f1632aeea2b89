"""Tests for the response verification contract."""

import httpx
import pytest

from s3verify.errors import VerificationError
from s3verify.verify import (
    Expectation,
    verify_error,
    verify_etag,
    verify_list_buckets,
    verify_list_objects,
    verify_response,
    verify_standard_headers,
    verify_status,
)

STANDARD = {"x-amz-request-id": "ABC123", "Date": "Thu, 01 Jan 2026 00:00:00 GMT"}


def _response(status: int = 200, content: bytes = b"", **headers: str) -> httpx.Response:
    all_headers = dict(STANDARD)
    all_headers.update({k.replace("_", "-"): v for k, v in headers.items()})
    return httpx.Response(status, headers=all_headers, content=content)


class TestVerifyStatus:
    """Status codes are compared as integers."""

    def test_match(self):
        """Matching status passes."""
        verify_status(_response(204), 204)

    def test_mismatch_reports_both_values(self):
        """Mismatches carry expected and actual verbatim."""
        with pytest.raises(VerificationError) as exc_info:
            verify_status(_response(403), 200)
        assert exc_info.value.expected == 200
        assert exc_info.value.actual == 403
        assert "wanted 200, got 403" in str(exc_info.value)


class TestHeaders:
    """Mandatory header checks."""

    def test_standard_headers_present(self):
        """x-amz-request-id and Date satisfy the standard check."""
        verify_standard_headers(_response())

    def test_missing_request_id(self):
        """A response without x-amz-request-id fails."""
        with pytest.raises(VerificationError):
            verify_standard_headers(httpx.Response(200, headers={"Date": STANDARD["Date"]}))

    def test_etag_unquoted(self):
        """verify_etag returns the unquoted ETag and compares unquoted values."""
        response = _response(ETag='"abc"')
        assert verify_etag(response) == "abc"
        assert verify_etag(response, '"abc"') == "abc"
        with pytest.raises(VerificationError):
            verify_etag(response, "other")

    def test_etag_missing(self):
        """A missing ETag fails."""
        with pytest.raises(VerificationError):
            verify_etag(_response())


class TestVerifyError:
    """Expected failures compare the error code only."""

    def test_code_match_ignores_message(self):
        """Any message is accepted when the code matches."""
        verify_error(
            _response(412, b"<Error><Code>PreconditionFailed</Code><Message>whatever</Message></Error>"),
            "PreconditionFailed",
        )

    def test_code_mismatch(self):
        """A different code fails."""
        with pytest.raises(VerificationError) as exc_info:
            verify_error(_response(404, b"<Error><Code>NoSuchKey</Code></Error>"), "NoSuchUpload")
        assert exc_info.value.actual == "NoSuchKey"

    def test_non_xml_body(self):
        """An unparseable error body fails verification."""
        with pytest.raises(VerificationError):
            verify_error(_response(404, b"nope"), "NoSuchKey")


class TestVerifyResponse:
    """The full status / headers / body contract."""

    def test_exact_body(self):
        """Exact byte comparison passes on equal bodies."""
        verify_response(_response(200, b"abc", ETag='"e"'), Expectation(status=200, headers=("ETag",), body=b"abc"))

    def test_body_mismatch(self):
        """Different bytes fail."""
        with pytest.raises(VerificationError):
            verify_response(_response(200, b"abd"), Expectation(status=200, body=b"abc"))

    def test_status_checked_first(self):
        """A wrong status is reported even when the body also differs."""
        with pytest.raises(VerificationError) as exc_info:
            verify_response(_response(500, b"x"), Expectation(status=200, body=b"abc"))
        assert exc_info.value.what == "Status"

    def test_empty_body(self):
        """empty_body rejects any content."""
        with pytest.raises(VerificationError):
            verify_response(_response(204, b"x"), Expectation(status=204, empty_body=True))

    def test_error_code(self):
        """error_code decodes the error document."""
        verify_response(
            _response(400, b"<Error><Code>InvalidPartOrder</Code></Error>"),
            Expectation(status=400, error_code="InvalidPartOrder"),
        )


class TestStructuralListings:
    """Listings are compared structurally, not byte for byte."""

    LISTING = (
        b"<ListBucketResult><Name>b</Name>"
        b"<Contents><Key>s3verify/a</Key><ETag>&quot;e1&quot;</ETag></Contents>"
        b"<Contents><Key>s3verify/b</Key><ETag>&quot;e2&quot;</ETag></Contents>"
        b"</ListBucketResult>"
    )

    def test_keys_any_order(self):
        """Expected keys may be given in any order."""
        verify_list_objects(_response(200, self.LISTING), "b", ["s3verify/b", "s3verify/a"])

    def test_missing_key(self):
        """A key missing from the listing fails."""
        with pytest.raises(VerificationError):
            verify_list_objects(_response(200, self.LISTING), "b", ["s3verify/a"])

    def test_etag_mismatch(self):
        """Known ETags must match the listed ones."""
        with pytest.raises(VerificationError):
            verify_list_objects(
                _response(200, self.LISTING), "b", ["s3verify/a", "s3verify/b"], etags={"s3verify/a": "zz"}
            )

    def test_list_buckets_allows_extras(self):
        """Other buckets on the endpoint do not fail the check."""
        body = (
            b"<ListAllMyBucketsResult><Buckets><Bucket><Name>mine</Name></Bucket>"
            b"<Bucket><Name>theirs</Name></Bucket></Buckets></ListAllMyBucketsResult>"
        )
        verify_list_buckets(_response(200, body), ["mine"])
        with pytest.raises(VerificationError):
            verify_list_buckets(_response(200, body), ["absent"])
