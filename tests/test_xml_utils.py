"""Tests for S3 XML rendering and response decoding."""

import xml.etree.ElementTree as ET

import pytest

from s3verify.errors import ProtocolError
from s3verify.models import CompletedPart, CompleteMultipartUpload
from s3verify.xml_utils import (
    S3_NAMESPACE,
    parse_complete_multipart_upload,
    parse_copy_object_result,
    parse_error,
    parse_initiate_multipart_upload,
    parse_list_buckets,
    parse_list_objects,
    parse_list_parts,
    render_complete_multipart_upload,
    render_create_bucket_configuration,
)


class TestRenderCompleteMultipartUpload:
    """Tests for render_complete_multipart_upload()."""

    def test_parts_in_given_order(self):
        """Parts are emitted in the order given with quoted ETags."""
        body = render_complete_multipart_upload(
            CompleteMultipartUpload(
                parts=[CompletedPart(2, "bbb"), CompletedPart(1, '"aaa"')]
            )
        )
        root = ET.fromstring(body)
        assert root.tag == "CompleteMultipartUpload"
        parts = [(p.findtext("PartNumber"), p.findtext("ETag")) for p in root.findall("Part")]
        assert parts == [("2", '"bbb"'), ("1", '"aaa"')]

    def test_create_bucket_configuration(self):
        """The location constraint is wrapped in the S3 namespace."""
        root = ET.fromstring(render_create_bucket_configuration("eu-west-1"))
        assert root.tag == f"{{{S3_NAMESPACE}}}CreateBucketConfiguration"
        assert root.findtext(f"{{{S3_NAMESPACE}}}LocationConstraint") == "eu-west-1"


class TestParseResponses:
    """Tests for the parse_* decoders."""

    def test_error(self):
        """Error documents decode code and message."""
        error = parse_error(
            b"<Error><Code>NoSuchKey</Code><Message>gone</Message>"
            b"<Resource>/b/k</Resource><RequestId>1</RequestId></Error>"
        )
        assert error.code == "NoSuchKey"
        assert error.message == "gone"
        assert error.resource == "/b/k"

    def test_initiate_with_namespace(self):
        """Namespaced documents decode the same as plain ones."""
        result = parse_initiate_multipart_upload(
            f'<InitiateMultipartUploadResult xmlns="{S3_NAMESPACE}">'
            "<Bucket>b</Bucket><Key>k</Key><UploadId> abc </UploadId>"
            "</InitiateMultipartUploadResult>"
        )
        assert (result.bucket, result.key, result.upload_id) == ("b", "k", "abc")

    def test_list_parts_unquotes_etags(self):
        """Part ETags come back without quotes."""
        result = parse_list_parts(
            "<ListPartsResult><UploadId>u</UploadId><IsTruncated>false</IsTruncated>"
            "<Part><PartNumber>1</PartNumber><ETag>&quot;e1&quot;</ETag><Size>5</Size></Part>"
            "<Part><PartNumber>2</PartNumber><ETag>\"e2\"</ETag><Size>6</Size></Part>"
            "</ListPartsResult>"
        )
        assert [(p.part_number, p.etag, p.size) for p in result.parts] == [(1, "e1", 5), (2, "e2", 6)]
        assert result.is_truncated is False

    def test_list_parts_truncated_page(self):
        """A truncated page carries the marker to resume from."""
        result = parse_list_parts(
            "<ListPartsResult><UploadId>u</UploadId><IsTruncated>true</IsTruncated>"
            "<NextPartNumberMarker>1</NextPartNumberMarker>"
            "<Part><PartNumber>1</PartNumber><ETag>\"e1\"</ETag><Size>5</Size></Part>"
            "</ListPartsResult>"
        )
        assert result.is_truncated is True
        assert result.next_part_number_marker == 1

    def test_complete_result(self):
        """CompleteMultipartUploadResult decodes location and ETag."""
        result = parse_complete_multipart_upload(
            "<CompleteMultipartUploadResult><Location>http://h/b/k</Location>"
            "<Bucket>b</Bucket><Key>k</Key><ETag>\"abc-2\"</ETag></CompleteMultipartUploadResult>"
        )
        assert result.etag == "abc-2"
        assert result.location == "http://h/b/k"

    def test_complete_result_rejects_error_document(self):
        """A 200 carrying an <Error> body is a ProtocolError."""
        with pytest.raises(ProtocolError):
            parse_complete_multipart_upload(
                "<Error><Code>InternalError</Code><Message>x</Message></Error>"
            )

    def test_copy_result(self):
        """CopyObjectResult decodes the ETag."""
        result = parse_copy_object_result(
            "<CopyObjectResult><LastModified>2026-01-01T00:00:00Z</LastModified>"
            "<ETag>&quot;abc&quot;</ETag></CopyObjectResult>"
        )
        assert result.etag == "abc"

    def test_list_buckets(self):
        """ListAllMyBucketsResult decodes owner and buckets."""
        result = parse_list_buckets(
            "<ListAllMyBucketsResult><Owner><ID>o</ID><DisplayName>me</DisplayName></Owner>"
            "<Buckets><Bucket><Name>a</Name><CreationDate>t</CreationDate></Bucket>"
            "<Bucket><Name>b</Name></Bucket></Buckets></ListAllMyBucketsResult>"
        )
        assert result.owner_id == "o"
        assert [b.name for b in result.buckets] == ["a", "b"]

    def test_list_objects_v2(self):
        """ListBucketResult decodes contents, prefixes and KeyCount."""
        result = parse_list_objects(
            f'<ListBucketResult xmlns="{S3_NAMESPACE}"><Name>b</Name><Prefix>p/</Prefix>'
            "<KeyCount>2</KeyCount><MaxKeys>1000</MaxKeys><IsTruncated>true</IsTruncated>"
            "<Contents><Key>p/a</Key><ETag>&quot;e&quot;</ETag><Size>3</Size></Contents>"
            "<CommonPrefixes><Prefix>p/d/</Prefix></CommonPrefixes></ListBucketResult>"
        )
        assert result.name == "b"
        assert result.key_count == 2
        assert result.is_truncated is True
        assert [(c.key, c.etag, c.size) for c in result.contents] == [("p/a", "e", 3)]
        assert result.common_prefixes == ["p/d/"]

    def test_malformed_xml(self):
        """A body that is not XML is a ProtocolError."""
        with pytest.raises(ProtocolError):
            parse_list_objects(b"not xml")

    def test_wrong_root(self):
        """A document with an unexpected root element is a ProtocolError."""
        with pytest.raises(ProtocolError) as exc_info:
            parse_list_parts("<ListBucketResult/>")
        assert exc_info.value.actual == "ListBucketResult"

    def test_bad_integer(self):
        """A non-integer numeric field is a ProtocolError."""
        with pytest.raises(ProtocolError):
            parse_list_parts("<ListPartsResult><Part><PartNumber>x</PartNumber></Part></ListPartsResult>")
