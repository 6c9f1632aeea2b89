"""Conformance checks run by the s3verify suite.

Each check is a coroutine taking the shared ``SuiteContext``.  A check
builds requests with the factories in ``s3verify.requests``, sends them
through the signing session and verifies every response; any mismatch
raises an ``S3VerifyError`` subclass which fails the check.

Checks run in table order and later checks rely on the fixtures earlier
ones created (the bucket, object ETags, Last-Modified times, completed
multipart objects).
"""

import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx

from s3verify.errors import (
    CleanupError,
    ProtocolError,
    S3VerifyError,
    UploadStateError,
    VerificationError,
)
from s3verify.hashing import compute_hash
from s3verify.models import CompleteMultipartUpload, ObjectInfo, Request
from s3verify.multipart import MultipartUploadCoordinator
from s3verify.orchestrator import run_concurrently
from s3verify.requests import (
    new_complete_multipart_upload_request,
    new_copy_object_request,
    new_get_object_request,
    new_head_bucket_request,
    new_head_object_request,
    new_list_buckets_request,
    new_list_objects_v1_request,
    new_list_objects_v2_request,
    new_make_bucket_request,
    new_put_object_request,
    new_remove_bucket_request,
    new_remove_object_request,
)
from s3verify.transport import S3Session
from s3verify.verify import (
    Expectation,
    verify_error,
    verify_etag,
    verify_header_equals,
    verify_list_buckets,
    verify_list_objects,
    verify_response,
)
from s3verify.xml_utils import parse_copy_object_result

logger = logging.getLogger(__name__)

KEY_PREFIX = "s3verify/"
OBJECT_SIZE = 60
# Every part but the last must be at least 5 MiB.
MIN_PART_SIZE = 5 * 1024 * 1024
LAST_PART_SIZE = 1024
MULTIPART_OBJECT_COUNT = 2
# An ETag no real object carries.
MISMATCHED_ETAG = "1234567890"
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class SuiteContext:
    """State shared by the checks of one run.

    Attributes:
        session: Signing session bound to the endpoint under test.
        coordinator: Multipart bookkeeping for every upload of the run.
        bucket: Name of the bucket the run creates and removes.
        object_count: Number of single-PUT objects to upload.
        request_pool_size: Bound on concurrent multipart initiations.
        objects: Single-PUT fixtures.
        multipart_objects: Fixtures assembled by multipart upload.
        copies: Objects created by CopyObject.
        stray_keys: Keys created unexpectedly, removed during cleanup.
        bucket_created: Whether cleanup has a bucket to remove.
    """

    session: S3Session
    coordinator: MultipartUploadCoordinator
    bucket: str
    object_count: int = 10
    request_pool_size: int = 10
    objects: list[ObjectInfo] = field(default_factory=list)
    multipart_objects: list[ObjectInfo] = field(default_factory=list)
    copies: list[ObjectInfo] = field(default_factory=list)
    stray_keys: list[str] = field(default_factory=list)
    bucket_created: bool = False

    @property
    def endpoint(self) -> str:
        return self.session.endpoint

    @property
    def region(self) -> str:
        return self.session.credentials.region

    def all_objects(self) -> list[ObjectInfo]:
        return self.objects + self.multipart_objects + self.copies

    async def send(self, request: Request) -> httpx.Response:
        return await self.session.send(request)


def new_context(
    session: S3Session, bucket_prefix: str = "s3verify", object_count: int = 10,
    request_pool_size: int = 10,
) -> SuiteContext:
    """Create a context with a fresh, unique bucket name."""
    return SuiteContext(
        session=session,
        coordinator=MultipartUploadCoordinator(session),
        bucket=f"{bucket_prefix}-{uuid.uuid4().hex[:12]}",
        object_count=object_count,
        request_pool_size=request_pool_size,
    )


def _unique_key(kind: str) -> str:
    return f"{KEY_PREFIX}{kind}-{uuid.uuid4().hex[:8]}"


def parse_last_modified(response: httpx.Response) -> datetime:
    """Parse the Last-Modified header of a response."""
    raw = response.headers.get("Last-Modified")
    if raw is None:
        raise VerificationError("Header", "Last-Modified present", None)
    try:
        return parsedate_to_datetime(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolError("Last-Modified", "an HTTP date", raw) from exc


async def _last_modified(ctx: SuiteContext, obj: ObjectInfo) -> datetime:
    # HeadObject normally records this; fetch it if that check did not run.
    if obj.last_modified is None:
        response = await ctx.send(new_head_object_request(ctx.endpoint, ctx.bucket, obj.key))
        verify_response(response, Expectation(status=200, headers=("Last-Modified",)))
        obj.last_modified = parse_last_modified(response)
    return obj.last_modified


# -- Buckets ---------------------------------------------------------------------


async def check_make_bucket(ctx: SuiteContext) -> None:
    """PUT the run's bucket, then HEAD it."""
    response = await ctx.send(new_make_bucket_request(ctx.endpoint, ctx.bucket, ctx.region))
    if response.status_code == 200:
        ctx.bucket_created = True
    verify_response(response, Expectation(status=200))

    response = await ctx.send(new_head_bucket_request(ctx.endpoint, ctx.bucket))
    verify_response(response, Expectation(status=200, empty_body=True))


async def check_list_buckets(ctx: SuiteContext) -> None:
    """The run's bucket appears in ListBuckets."""
    response = await ctx.send(new_list_buckets_request(ctx.endpoint))
    verify_response(response, Expectation(status=200))
    verify_list_buckets(response, [ctx.bucket])


async def check_remove_bucket(ctx: SuiteContext) -> None:
    """DELETE the (now empty) bucket; HEAD then answers 404."""
    response = await ctx.send(new_remove_bucket_request(ctx.endpoint, ctx.bucket))
    verify_response(response, Expectation(status=204, empty_body=True))
    ctx.bucket_created = False

    response = await ctx.send(new_head_bucket_request(ctx.endpoint, ctx.bucket))
    verify_response(response, Expectation(status=404))


# -- Objects ---------------------------------------------------------------------


async def _put_object(ctx: SuiteContext, obj: ObjectInfo) -> ObjectInfo:
    request = new_put_object_request(ctx.endpoint, ctx.bucket, obj.key, obj.body, obj.content_type)
    response = await ctx.send(request)
    verify_response(response, Expectation(status=200, headers=("ETag",)))
    obj.etag = verify_etag(response, compute_hash(obj.body).md5_hex)
    return obj


async def check_put_objects(ctx: SuiteContext) -> None:
    """Upload ``object_count`` objects concurrently; each ETag is the body MD5."""
    pending = [
        ObjectInfo(key=_unique_key("object"), body=os.urandom(OBJECT_SIZE), content_type="text/plain")
        for _ in range(ctx.object_count)
    ]
    uploaded = await run_concurrently([lambda obj=obj: _put_object(ctx, obj) for obj in pending])
    ctx.objects.extend(uploaded)


async def _head_object(ctx: SuiteContext, obj: ObjectInfo) -> None:
    response = await ctx.send(new_head_object_request(ctx.endpoint, ctx.bucket, obj.key))
    verify_response(response, Expectation(status=200, headers=("ETag", "Last-Modified"), empty_body=True))
    verify_etag(response, obj.etag)
    verify_header_equals(response, "Content-Length", str(len(obj.body)))
    obj.last_modified = parse_last_modified(response)


async def check_head_objects(ctx: SuiteContext) -> None:
    """HEAD every object: ETag, Content-Length and Last-Modified."""
    await run_concurrently(
        [lambda obj=obj: _head_object(ctx, obj) for obj in ctx.objects + ctx.multipart_objects]
    )


async def _get_object(ctx: SuiteContext, obj: ObjectInfo) -> None:
    response = await ctx.send(new_get_object_request(ctx.endpoint, ctx.bucket, obj.key))
    verify_response(response, Expectation(status=200, headers=("ETag",), body=obj.body))
    verify_etag(response, obj.etag)


async def check_get_objects(ctx: SuiteContext) -> None:
    """GET every object and compare the bytes."""
    await run_concurrently(
        [lambda obj=obj: _get_object(ctx, obj) for obj in ctx.all_objects()]
    )


async def check_get_object_range(ctx: SuiteContext) -> None:
    """A ranged GET answers 206 with exactly the requested bytes."""
    obj = ctx.objects[0]
    request = new_get_object_request(ctx.endpoint, ctx.bucket, obj.key, byte_range=(0, 9))
    response = await ctx.send(request)
    verify_response(response, Expectation(status=206, body=obj.body[:10]))


async def check_get_object_if_unmodified_since(ctx: SuiteContext) -> None:
    """If-Unmodified-Since: epoch fails with 412, the true time succeeds."""
    obj = ctx.objects[0]
    response = await ctx.send(
        new_get_object_request(ctx.endpoint, ctx.bucket, obj.key, if_unmodified_since=EPOCH)
    )
    verify_response(response, Expectation(status=412, error_code="PreconditionFailed"))

    last_modified = await _last_modified(ctx, obj)
    response = await ctx.send(
        new_get_object_request(ctx.endpoint, ctx.bucket, obj.key, if_unmodified_since=last_modified)
    )
    verify_response(response, Expectation(status=200, body=obj.body))


async def check_get_object_if_match(ctx: SuiteContext) -> None:
    """If-Match with the wrong ETag is 412; If-None-Match with the right one is 304."""
    obj = ctx.objects[0]
    response = await ctx.send(
        new_get_object_request(ctx.endpoint, ctx.bucket, obj.key, if_match=MISMATCHED_ETAG)
    )
    verify_response(response, Expectation(status=412, error_code="PreconditionFailed"))

    response = await ctx.send(
        new_get_object_request(ctx.endpoint, ctx.bucket, obj.key, if_none_match=f'"{obj.etag}"')
    )
    verify_response(response, Expectation(status=304, empty_body=True))


async def check_head_object_if_modified_since(ctx: SuiteContext) -> None:
    """HEAD with If-Modified-Since equal to Last-Modified is 304."""
    obj = ctx.objects[0]
    last_modified = await _last_modified(ctx, obj)
    response = await ctx.send(
        new_head_object_request(ctx.endpoint, ctx.bucket, obj.key, if_modified_since=last_modified)
    )
    verify_response(response, Expectation(status=304, empty_body=True))


async def check_copy_object(ctx: SuiteContext) -> None:
    """Copy an object; the copy has the source's ETag and bytes."""
    source = ctx.objects[0]
    copy = ObjectInfo(key=_unique_key("copy"), body=source.body, content_type=source.content_type)
    response = await ctx.send(
        new_copy_object_request(ctx.endpoint, ctx.bucket, source.key, ctx.bucket, copy.key)
    )
    verify_response(response, Expectation(status=200))
    result = parse_copy_object_result(response.content)
    if result.etag != source.etag:
        raise VerificationError("CopyObject ETag", source.etag, result.etag)
    copy.etag = result.etag
    ctx.copies.append(copy)


async def check_copy_object_if_none_match(ctx: SuiteContext) -> None:
    """Copy-if-none-match: a foreign ETag copies, the source's own ETag is 412."""
    source = ctx.objects[0]
    copy = ObjectInfo(key=_unique_key("copy"), body=source.body, content_type=source.content_type)
    response = await ctx.send(
        new_copy_object_request(
            ctx.endpoint, ctx.bucket, source.key, ctx.bucket, copy.key, if_none_match=MISMATCHED_ETAG
        )
    )
    verify_response(response, Expectation(status=200))
    copy.etag = parse_copy_object_result(response.content).etag
    ctx.copies.append(copy)

    await _copy_precondition_failed(ctx, source, if_none_match=source.etag)


async def check_copy_object_if_match(ctx: SuiteContext) -> None:
    """Copy-if-match with a foreign ETag is 412."""
    await _copy_precondition_failed(ctx, ctx.objects[0], if_match=MISMATCHED_ETAG)


async def _copy_precondition_failed(ctx: SuiteContext, source: ObjectInfo, **conditions) -> None:
    key = _unique_key("copy")
    response = await ctx.send(
        new_copy_object_request(ctx.endpoint, ctx.bucket, source.key, ctx.bucket, key, **conditions)
    )
    if response.status_code == 200:
        ctx.stray_keys.append(key)
    verify_response(response, Expectation(status=412, error_code="PreconditionFailed"))


def _expected_etags(ctx: SuiteContext) -> dict[str, str]:
    return {obj.key: obj.etag for obj in ctx.all_objects() if obj.etag}


async def check_list_objects_v1(ctx: SuiteContext) -> None:
    """ListObjects v1 by prefix returns every key; with a delimiter it rolls up."""
    keys = [obj.key for obj in ctx.all_objects()]
    response = await ctx.send(new_list_objects_v1_request(ctx.endpoint, ctx.bucket, prefix=KEY_PREFIX))
    verify_response(response, Expectation(status=200))
    verify_list_objects(response, ctx.bucket, keys, etags=_expected_etags(ctx))

    response = await ctx.send(new_list_objects_v1_request(ctx.endpoint, ctx.bucket, delimiter="/"))
    verify_response(response, Expectation(status=200))
    verify_list_objects(response, ctx.bucket, [], expected_prefixes=[KEY_PREFIX])


async def check_list_objects_v2(ctx: SuiteContext) -> None:
    """ListObjects v2 by prefix returns every key and a matching KeyCount."""
    keys = [obj.key for obj in ctx.all_objects()]
    response = await ctx.send(new_list_objects_v2_request(ctx.endpoint, ctx.bucket, prefix=KEY_PREFIX))
    verify_response(response, Expectation(status=200))
    result = verify_list_objects(response, ctx.bucket, keys, etags=_expected_etags(ctx))
    if result.key_count != len(keys):
        raise VerificationError("KeyCount", len(keys), result.key_count)


async def _remove_object(ctx: SuiteContext, obj: ObjectInfo) -> None:
    response = await ctx.send(new_remove_object_request(ctx.endpoint, ctx.bucket, obj.key))
    verify_response(response, Expectation(status=204, empty_body=True))
    response = await ctx.send(new_head_object_request(ctx.endpoint, ctx.bucket, obj.key))
    verify_response(response, Expectation(status=404))


async def check_remove_objects(ctx: SuiteContext) -> None:
    """DELETE every object; each then HEADs as 404."""
    objects = ctx.all_objects()
    await run_concurrently([lambda obj=obj: _remove_object(ctx, obj) for obj in objects])
    ctx.objects.clear()
    ctx.multipart_objects.clear()
    ctx.copies.clear()


# -- Multipart -------------------------------------------------------------------


async def _initiate(ctx: SuiteContext, obj: ObjectInfo) -> ObjectInfo:
    obj.upload_id = await ctx.coordinator.initiate(ctx.bucket, obj.key, obj.content_type)
    return obj


async def check_multipart_initiate(ctx: SuiteContext) -> None:
    """Initiate several uploads, at most ``request_pool_size`` at a time."""
    pending = [
        ObjectInfo(key=_unique_key("multipart"), content_type="application/octet-stream")
        for _ in range(MULTIPART_OBJECT_COUNT)
    ]
    initiated = await run_concurrently(
        [lambda obj=obj: _initiate(ctx, obj) for obj in pending],
        limit=ctx.request_pool_size,
    )
    ctx.multipart_objects.extend(initiated)


def _part_payloads() -> list[bytes]:
    return [os.urandom(MIN_PART_SIZE), os.urandom(LAST_PART_SIZE)]


async def check_multipart_upload_parts(ctx: SuiteContext) -> None:
    """Upload every part of every upload concurrently."""
    uploads = []
    for obj in ctx.multipart_objects:
        payloads = _part_payloads()
        obj.body = b"".join(payloads)
        for number, data in enumerate(payloads, start=1):
            uploads.append(
                lambda obj=obj, number=number, data=data: ctx.coordinator.upload_part(
                    obj.upload_id, number, data
                )
            )
    await run_concurrently(uploads)


async def check_multipart_list_parts(ctx: SuiteContext) -> None:
    """ListParts reports exactly the parts that were uploaded."""
    await run_concurrently(
        [lambda obj=obj: ctx.coordinator.list_parts(obj.upload_id) for obj in ctx.multipart_objects]
    )


async def _complete(ctx: SuiteContext, obj: ObjectInfo) -> None:
    result = await ctx.coordinator.complete(obj.upload_id)
    if result.key and result.key != obj.key:
        raise VerificationError("Completed Key", obj.key, result.key)
    if not result.etag:
        raise ProtocolError("Completed ETag", "a non-empty ETag", result.etag)
    obj.etag = result.etag


async def check_multipart_complete(ctx: SuiteContext) -> None:
    """Complete every upload; afterwards the upload ID is gone."""
    await run_concurrently([lambda obj=obj: _complete(ctx, obj) for obj in ctx.multipart_objects])
    await run_concurrently(
        [
            lambda obj=obj: ctx.coordinator.verify_upload_absent(obj.upload_id)
            for obj in ctx.multipart_objects
        ]
    )


async def check_multipart_abort(ctx: SuiteContext) -> None:
    """Abort an upload with a part uploaded; ListParts then answers NoSuchUpload."""
    key = _unique_key("aborted")
    upload_id = await ctx.coordinator.initiate(ctx.bucket, key)
    await ctx.coordinator.upload_part(upload_id, 1, os.urandom(LAST_PART_SIZE))
    await ctx.coordinator.abort(upload_id)
    await ctx.coordinator.verify_upload_absent(upload_id)


async def check_multipart_invalid_part_order(ctx: SuiteContext) -> None:
    """The server rejects a completion whose parts are out of order.

    The request is built directly so the coordinator's own ordering check
    does not intercept it.
    """
    coordinator = ctx.coordinator
    key = _unique_key("unordered")
    upload_id = await coordinator.initiate(ctx.bucket, key)
    try:
        for number, data in enumerate(_part_payloads(), start=1):
            await coordinator.upload_part(upload_id, number, data)
        reversed_parts = list(reversed(coordinator.parts(upload_id)))
        request = new_complete_multipart_upload_request(
            ctx.endpoint, ctx.bucket, key, upload_id, CompleteMultipartUpload(parts=reversed_parts)
        )
        response = await ctx.send(request)
        if response.status_code == 200:
            # The server assembled the object anyway; make sure cleanup removes it.
            ctx.stray_keys.append(key)
        verify_response(response, Expectation(status=400, error_code="InvalidPartOrder"))
    finally:
        await coordinator.abort(upload_id, missing_ok=True)


# -- Cleanup ---------------------------------------------------------------------


async def cleanup(ctx: SuiteContext) -> None:
    """Best-effort removal of everything the run created.

    Open uploads are aborted, objects and the bucket deleted.  Missing
    uploads, keys and buckets count as already cleaned.

    Raises:
        CleanupError: Listing every removal that failed.
    """
    if not ctx.bucket_created:
        return
    problems: list[str] = []

    for upload_id in ctx.coordinator.open_uploads():
        try:
            await ctx.coordinator.abort(upload_id, missing_ok=True)
        except UploadStateError:
            continue
        except S3VerifyError as exc:
            problems.append(f"abort {upload_id}: {exc}")

    for key in [obj.key for obj in ctx.all_objects()] + ctx.stray_keys:
        try:
            response = await ctx.send(new_remove_object_request(ctx.endpoint, ctx.bucket, key))
            _verify_removed(response, "NoSuchKey")
        except S3VerifyError as exc:
            problems.append(f"remove {key}: {exc}")

    try:
        response = await ctx.send(new_remove_bucket_request(ctx.endpoint, ctx.bucket))
        _verify_removed(response, "NoSuchBucket")
        ctx.bucket_created = False
    except S3VerifyError as exc:
        problems.append(f"remove bucket {ctx.bucket}: {exc}")

    if problems:
        raise CleanupError("; ".join(problems))
    logger.info("Removed bucket %s", ctx.bucket)


def _verify_removed(response: httpx.Response, missing_code: str) -> None:
    if response.status_code == 204:
        return
    if response.status_code == 404:
        verify_error(response, missing_code)
        return
    raise VerificationError("Status", 204, response.status_code)
