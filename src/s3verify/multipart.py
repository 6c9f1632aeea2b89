"""Multipart upload coordination for s3verify.

The coordinator drives the initiate / upload part / list parts / complete
(or abort) exchange against the endpoint and keeps client-side bookkeeping
for every upload it started: the state of the upload and the ETag the
server returned for each part.  That bookkeeping is what the completion
request is built and validated from.

Lifecycle::

    Initiated --upload part--> PartsUploaded --complete--> Completed
    Initiated / PartsUploaded --abort--> Aborted

Completed and Aborted are terminal; an upload ID is never reused.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from s3verify.errors import (
    InvalidPartListError,
    ProtocolError,
    UploadStateError,
    VerificationError,
)
from s3verify.models import (
    CompletedPart,
    CompleteMultipartUpload,
    CompleteMultipartUploadResult,
    ListPartsResult,
    ObjectPart,
    UploadState,
    normalize_etag,
)
from s3verify.requests import (
    new_abort_multipart_upload_request,
    new_complete_multipart_upload_request,
    new_initiate_multipart_upload_request,
    new_list_parts_request,
    new_upload_part_request,
)
from s3verify.transport import S3Session
from s3verify.verify import (
    verify_error,
    verify_etag,
    verify_standard_headers,
    verify_status,
)
from s3verify.xml_utils import (
    parse_complete_multipart_upload,
    parse_initiate_multipart_upload,
    parse_list_parts,
)

logger = logging.getLogger(__name__)

MIN_PART_NUMBER = 1
MAX_PART_NUMBER = 10000


@dataclass
class UploadRecord:
    """Client-side view of one multipart upload.

    Attributes:
        upload_id: The ID the server assigned at initiation.
        bucket: Target bucket.
        key: Target object key.
        state: Current lifecycle state.
        parts: Uploaded parts keyed by part number.
        closing: A complete or abort request is in flight.
    """

    upload_id: str
    bucket: str
    key: str
    state: UploadState = UploadState.INITIATED
    parts: dict[int, ObjectPart] = field(default_factory=dict)
    closing: bool = False


class MultipartUploadCoordinator:
    """Runs multipart uploads and tracks their parts.

    Many uploads may be in flight at once, and parts of one upload may be
    uploaded concurrently; every upload owns its own part map.
    """

    def __init__(self, session: S3Session) -> None:
        self.session = session
        self._uploads: dict[str, UploadRecord] = {}

    def record(self, upload_id: str) -> UploadRecord:
        """Return the bookkeeping for ``upload_id``.

        Raises:
            UploadStateError: If this coordinator never initiated the upload.
        """
        record = self._uploads.get(upload_id)
        if record is None:
            raise UploadStateError(upload_id, "Unknown", "look up")
        return record

    def _active(self, upload_id: str, operation: str) -> UploadRecord:
        record = self._uploads.get(upload_id)
        if record is None:
            raise UploadStateError(upload_id, "Unknown", operation)
        if record.state.terminal:
            raise UploadStateError(upload_id, record.state.value, operation)
        if record.closing:
            raise UploadStateError(upload_id, "Closing", operation)
        return record

    def open_uploads(self) -> list[str]:
        """IDs of uploads that are neither completed nor aborted."""
        return [uid for uid, record in self._uploads.items() if not record.state.terminal]

    def parts(self, upload_id: str) -> list[CompletedPart]:
        """Recorded parts sorted by part number, ready for ``complete``."""
        record = self.record(upload_id)
        return [
            CompletedPart(part_number=part.part_number, etag=part.etag)
            for _, part in sorted(record.parts.items())
        ]

    async def initiate(
        self, bucket: str, key: str, content_type: str = "application/octet-stream"
    ) -> str:
        """Start a multipart upload and return its upload ID.

        Raises:
            VerificationError: If the status or headers are wrong.
            ProtocolError: If the response carries no usable upload ID.
        """
        request = new_initiate_multipart_upload_request(
            self.session.endpoint, bucket, key, content_type
        )
        response = await self.session.send(request)
        verify_status(response, 200)
        verify_standard_headers(response)
        result = parse_initiate_multipart_upload(response.content)
        if not result.upload_id:
            raise ProtocolError("UploadId", "a non-empty upload ID", result.upload_id)
        if result.upload_id in self._uploads:
            raise ProtocolError("UploadId", "a fresh upload ID", result.upload_id)

        self._uploads[result.upload_id] = UploadRecord(
            upload_id=result.upload_id, bucket=bucket, key=key
        )
        logger.debug("Initiated upload %s for %s/%s", result.upload_id, bucket, key)
        return result.upload_id

    async def upload_part(self, upload_id: str, part_number: int, data: bytes) -> ObjectPart:
        """Upload one part and record its ETag.

        Re-uploading a part number replaces the earlier record.

        Raises:
            UploadStateError: If the upload is unknown or already terminal.
            InvalidPartListError: If ``part_number`` is outside 1..10000.
        """
        record = self._active(upload_id, "upload a part to")
        if not MIN_PART_NUMBER <= part_number <= MAX_PART_NUMBER:
            raise InvalidPartListError(
                f"Part number {part_number} outside {MIN_PART_NUMBER}..{MAX_PART_NUMBER}"
            )

        request = new_upload_part_request(
            self.session.endpoint, record.bucket, record.key, upload_id, part_number, data
        )
        response = await self.session.send(request)
        verify_status(response, 200)
        verify_standard_headers(response)
        etag = verify_etag(response)

        # Another task may have completed or aborted the upload meanwhile.
        if record.state.terminal:
            raise UploadStateError(upload_id, record.state.value, "record a part for")
        part = ObjectPart(part_number=part_number, etag=etag, size=len(data))
        record.parts[part_number] = part
        record.state = UploadState.PARTS_UPLOADED
        return part

    async def list_parts(self, upload_id: str) -> ListPartsResult:
        """List the upload's parts and check them against the recorded ones.

        Truncated listings are followed page by page via
        ``NextPartNumberMarker``.  Every recorded part must be listed exactly
        once with the same ETag, and nothing else may be listed.

        Raises:
            ProtocolError: If a truncated page does not advance the marker.
        """
        record = self._active(upload_id, "list parts of")
        result = ListPartsResult(bucket=record.bucket, key=record.key, upload_id=upload_id)
        marker = 0
        while True:
            request = new_list_parts_request(
                self.session.endpoint, record.bucket, record.key, upload_id, part_number_marker=marker
            )
            response = await self.session.send(request)
            verify_status(response, 200)
            verify_standard_headers(response)
            page = parse_list_parts(response.content)
            if page.upload_id and page.upload_id != upload_id:
                raise VerificationError("UploadId", upload_id, page.upload_id)
            result.parts.extend(page.parts)
            if not page.is_truncated:
                break
            # A truncated page must move the marker forward.
            if page.next_part_number_marker <= marker:
                raise ProtocolError(
                    "NextPartNumberMarker", f"a part number above {marker}", page.next_part_number_marker
                )
            marker = page.next_part_number_marker

        listed: dict[int, list[ObjectPart]] = {}
        for part in result.parts:
            listed.setdefault(part.part_number, []).append(part)

        for number, part in sorted(record.parts.items()):
            matches = listed.get(number, [])
            if len(matches) != 1:
                raise VerificationError(f"Listing of Part {number}", 1, len(matches))
            if matches[0].etag != part.etag:
                raise VerificationError(f"ETag of Part {number}", part.etag, matches[0].etag)

        unexpected = sorted(set(listed) - set(record.parts))
        if unexpected:
            raise VerificationError("Listed Parts", sorted(record.parts), sorted(listed))
        return result

    def _validate_completion(self, record: UploadRecord, parts: list[CompletedPart]) -> None:
        if not parts:
            raise InvalidPartListError(f"Empty part list for upload {record.upload_id!r}")
        previous = 0
        for part in parts:
            if part.part_number <= previous:
                raise InvalidPartListError(
                    f"Part numbers must be strictly ascending: {part.part_number} after {previous}"
                )
            uploaded = record.parts.get(part.part_number)
            if uploaded is None or uploaded.etag != normalize_etag(part.etag):
                raise InvalidPartListError(
                    f"Part {part.part_number} with ETag {part.etag!r} was not uploaded "
                    f"to upload {record.upload_id!r}"
                )
            previous = part.part_number

    async def complete(
        self, upload_id: str, parts: Iterable[CompletedPart] | None = None
    ) -> CompleteMultipartUploadResult:
        """Complete the upload.

        Args:
            upload_id: The upload to complete.
            parts: The part list to send. Defaults to every recorded part
                in ascending order.

        Raises:
            InvalidPartListError: If the part list is empty, out of order or
                names a part the server never returned. Nothing is sent.
            UploadStateError: If the upload is unknown or already terminal, or
                another complete or abort is in flight.
        """
        record = self._active(upload_id, "complete")
        part_list = list(parts) if parts is not None else self.parts(upload_id)
        self._validate_completion(record, part_list)

        request = new_complete_multipart_upload_request(
            self.session.endpoint,
            record.bucket,
            record.key,
            upload_id,
            CompleteMultipartUpload(parts=part_list),
        )
        record.closing = True
        try:
            response = await self.session.send(request)
            verify_status(response, 200)
            verify_standard_headers(response)
            # A 200 can still carry an <Error> document; the parser rejects it.
            result = parse_complete_multipart_upload(response.content)
            record.state = UploadState.COMPLETED
        finally:
            record.closing = False

        logger.debug("Completed upload %s with %d parts", upload_id, len(part_list))
        return result

    async def abort(self, upload_id: str, missing_ok: bool = False) -> None:
        """Abort the upload, discarding any uploaded parts.

        With ``missing_ok`` a 404 NoSuchUpload answer is accepted too, for
        cleanup of uploads the server may already have dropped.
        """
        record = self._active(upload_id, "abort")
        request = new_abort_multipart_upload_request(
            self.session.endpoint, record.bucket, record.key, upload_id
        )
        record.closing = True
        try:
            response = await self.session.send(request)
            if missing_ok and response.status_code == 404:
                verify_error(response, "NoSuchUpload")
            else:
                verify_status(response, 204)
                verify_standard_headers(response)
            record.state = UploadState.ABORTED
        finally:
            record.closing = False
        logger.debug("Aborted upload %s", upload_id)

    async def verify_upload_absent(self, upload_id: str) -> None:
        """Check that a finished upload can no longer be listed.

        Raises:
            UploadStateError: If the upload is not in a terminal state.
            VerificationError: Unless ListParts answers 404 NoSuchUpload.
        """
        record = self.record(upload_id)
        if not record.state.terminal:
            raise UploadStateError(upload_id, record.state.value, "verify absence of")
        request = new_list_parts_request(
            self.session.endpoint, record.bucket, record.key, upload_id
        )
        response = await self.session.send(request)
        verify_status(response, 404)
        verify_standard_headers(response)
        verify_error(response, "NoSuchUpload")
