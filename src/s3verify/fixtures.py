"""Fixture preparation and cleanup through boto3.

``--prepare`` creates a bucket full of small objects ahead of a run and
``--clean`` removes one afterwards.  Both go through the AWS SDK rather than
the harness's own signer, so a signer bug cannot leave an endpoint in a
state the harness cannot recover from.
"""

import logging
import os
import uuid

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from s3verify.config import DEFAULT_REGION, Credentials
from s3verify.errors import CleanupError, InvalidNameError, PrepareError
from s3verify.validation import validate_bucket_name

logger = logging.getLogger(__name__)

FIXTURE_PREFIX = "s3verify"
FIXTURE_OBJECT_PREFIX = "s3verify-object-"
FIXTURE_OBJECT_SIZE = 60

# Cleanup treats these as "already gone".
MISSING_CODES = frozenset({"NoSuchBucket", "NoSuchKey", "NoSuchUpload"})


def new_s3_client(credentials: Credentials):
    """Create a boto3 S3 client for the run's endpoint (path style, no retries)."""
    return boto3.client(
        "s3",
        endpoint_url=credentials.endpoint,
        aws_access_key_id=credentials.access_key,
        aws_secret_access_key=credentials.secret_key,
        region_name=credentials.region,
        config=Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
            retries={"max_attempts": 1, "mode": "standard"},
        ),
    )


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def check_fixture_bucket(bucket: str) -> None:
    """Refuse to touch buckets s3verify did not create.

    Raises:
        InvalidNameError: If the name lacks the ``s3verify-`` prefix or is
            not a valid bucket name.
    """
    validate_bucket_name(bucket)
    if bucket.split("-", 1)[0] != FIXTURE_PREFIX:
        raise InvalidNameError("bucket", bucket, "not created by s3verify")


def prepare(client, region: str = DEFAULT_REGION, object_count: int = 10) -> str:
    """Create a fixture bucket holding ``object_count`` 60-byte objects.

    Returns:
        The new bucket's name.

    Raises:
        PrepareError: If the bucket or any object cannot be created.
    """
    bucket = f"{FIXTURE_PREFIX}-{uuid.uuid4().hex[:12]}"
    kwargs = {"Bucket": bucket}
    if region != DEFAULT_REGION:
        kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
    try:
        client.create_bucket(**kwargs)
        logger.info("Created fixture bucket %s", bucket)

        for i in range(object_count):
            client.put_object(
                Bucket=bucket,
                Key=f"{FIXTURE_OBJECT_PREFIX}{i}",
                Body=os.urandom(FIXTURE_OBJECT_SIZE),
                ContentType="application/octet-stream",
            )
    except (ClientError, BotoCoreError) as exc:
        raise PrepareError(f"Preparing {bucket} failed: {exc}") from exc
    logger.info("Uploaded %d fixture objects to %s", object_count, bucket)
    return bucket


def clean(client, bucket: str) -> None:
    """Remove s3verify objects, open uploads and finally the bucket itself.

    Missing buckets, keys and uploads count as already cleaned.

    Raises:
        InvalidNameError: If ``bucket`` was not created by s3verify.
        CleanupError: On any other failure.
    """
    check_fixture_bucket(bucket)
    try:
        _remove_objects(client, bucket)
        _abort_uploads(client, bucket)
        client.delete_bucket(Bucket=bucket)
    except ClientError as exc:
        if _error_code(exc) not in MISSING_CODES:
            raise CleanupError(f"Cleaning {bucket} failed: {exc}") from exc
        logger.info("Bucket %s already gone (%s)", bucket, _error_code(exc))
        return
    except BotoCoreError as exc:
        raise CleanupError(f"Cleaning {bucket} failed: {exc}") from exc
    logger.info("Removed fixture bucket %s", bucket)


def _remove_objects(client, bucket: str) -> None:
    paginator = client.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=bucket, Prefix=FIXTURE_PREFIX):
        for entry in page.get("Contents", []):
            try:
                client.delete_object(Bucket=bucket, Key=entry["Key"])
            except ClientError as exc:
                if _error_code(exc) not in MISSING_CODES:
                    raise


def _abort_uploads(client, bucket: str) -> None:
    response = client.list_multipart_uploads(Bucket=bucket, Prefix=FIXTURE_PREFIX)
    for upload in response.get("Uploads", []):
        try:
            client.abort_multipart_upload(
                Bucket=bucket, Key=upload["Key"], UploadId=upload["UploadId"]
            )
        except ClientError as exc:
            if _error_code(exc) not in MISSING_CODES:
                raise
