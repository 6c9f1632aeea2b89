"""The ordered s3verify test table and the entry point that runs it."""

import logging

import httpx

from s3verify import checks
from s3verify.checks import SuiteContext
from s3verify.config import S3VerifyConfig
from s3verify.orchestrator import ApiTest, ConsoleReporter, Reporter, RunSummary, describe, run_tests
from s3verify.transport import S3Session, Transport, new_http_client

logger = logging.getLogger(__name__)

# Order matters: later tests use fixtures created by earlier ones.
APITESTS: list[ApiTest[SuiteContext]] = [
    ApiTest("PutBucket", checks.check_make_bucket, critical=True),
    ApiTest("PutObject", checks.check_put_objects, critical=True),
    ApiTest("InitiateMultipartUpload", checks.check_multipart_initiate, critical=True),
    ApiTest("UploadPart", checks.check_multipart_upload_parts, critical=True),
    ApiTest("ListParts", checks.check_multipart_list_parts),
    ApiTest("CompleteMultipartUpload", checks.check_multipart_complete, critical=True),
    ApiTest("AbortMultipartUpload", checks.check_multipart_abort),
    ApiTest("CompleteMultipartUpload (InvalidPartOrder)", checks.check_multipart_invalid_part_order, extended=True),
    ApiTest("HeadObject", checks.check_head_objects),
    ApiTest("HeadObject (If-Modified-Since)", checks.check_head_object_if_modified_since, extended=True),
    ApiTest("CopyObject", checks.check_copy_object),
    ApiTest("CopyObject (If-None-Match)", checks.check_copy_object_if_none_match),
    ApiTest("CopyObject (If-Match)", checks.check_copy_object_if_match, extended=True),
    ApiTest("GetObject", checks.check_get_objects),
    ApiTest("GetObject (If-Unmodified-Since)", checks.check_get_object_if_unmodified_since),
    ApiTest("GetObject (If-Match, If-None-Match)", checks.check_get_object_if_match, extended=True),
    ApiTest("GetObject (Range)", checks.check_get_object_range, extended=True),
    ApiTest("ListBuckets", checks.check_list_buckets),
    ApiTest("ListObjects", checks.check_list_objects_v1),
    ApiTest("ListObjectsV2", checks.check_list_objects_v2, extended=True),
    ApiTest("RemoveObject", checks.check_remove_objects, critical=True),
    ApiTest("RemoveBucket", checks.check_remove_bucket),
]


async def run_suite(
    config: S3VerifyConfig,
    transport: httpx.AsyncBaseTransport | None = None,
    reporter: Reporter | None = None,
) -> RunSummary:
    """Run the whole table against the configured endpoint.

    Args:
        config: The run configuration.
        transport: Optional httpx transport, e.g. an in-process server.
        reporter: Progress observer; defaults to the console.

    Returns:
        The run summary. ``summary.ok`` is False on any failure.
    """
    credentials = config.credentials()
    async with new_http_client(
        transport=transport, max_connections=max(config.run.request_pool_size, 10)
    ) as client:
        session = S3Session(credentials, Transport(client))
        context = checks.new_context(
            session,
            bucket_prefix=config.run.bucket_prefix,
            object_count=config.run.object_count,
            request_pool_size=config.run.request_pool_size,
        )
        logger.info("Testing %s with bucket %s", credentials.endpoint, context.bucket)
        summary = await run_tests(
            APITESTS,
            context,
            reporter if reporter is not None else ConsoleReporter(),
            extended=config.run.extended,
            cleanup=checks.cleanup,
        )
    logger.info("Run finished: %s", describe(summary))
    return summary
