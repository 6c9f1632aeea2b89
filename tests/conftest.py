"""Shared pytest fixtures for s3verify tests.

Network-free: every HTTP request goes to an in-process ``FakeS3`` FastAPI
app through ``httpx.ASGITransport``.  The fake checks each request's SigV4
signature, so any test that reaches it also exercises the signer.
"""

import pytest
from httpx import ASGITransport

from fake_s3 import FakeS3
from s3verify.config import AuthConfig, Credentials, RunConfig, S3VerifyConfig, ServerConfig
from s3verify.multipart import MultipartUploadCoordinator
from s3verify.transport import S3Session, Transport, new_http_client

ACCESS_KEY = "s3verify-test"
SECRET_KEY = "s3verify-test-secret"
ENDPOINT = "http://s3.test"


@pytest.fixture
def credentials() -> Credentials:
    """Credentials matching the fake server's."""
    return Credentials(
        access_key=ACCESS_KEY,
        secret_key=SECRET_KEY,
        region="us-east-1",
        endpoint=ENDPOINT,
    )


@pytest.fixture
def config() -> S3VerifyConfig:
    """A run configuration pointed at the fake server, kept small."""
    return S3VerifyConfig(
        server=ServerConfig(endpoint=ENDPOINT, region="us-east-1"),
        auth=AuthConfig(access_key=ACCESS_KEY, secret_key=SECRET_KEY),
        run=RunConfig(object_count=3, request_pool_size=2),
    )


@pytest.fixture
def fake_s3() -> FakeS3:
    """A fresh, empty fake S3 endpoint."""
    return FakeS3(ACCESS_KEY, SECRET_KEY)


@pytest.fixture
def asgi_transport(fake_s3: FakeS3) -> ASGITransport:
    return ASGITransport(app=fake_s3.app)


@pytest.fixture
async def session(credentials, asgi_transport):
    """A signing session whose requests land on the fake server."""
    async with new_http_client(transport=asgi_transport) as client:
        yield S3Session(credentials, Transport(client))


@pytest.fixture
def coordinator(session) -> MultipartUploadCoordinator:
    return MultipartUploadCoordinator(session)


@pytest.fixture
def bucket(fake_s3: FakeS3) -> str:
    """A bucket that already exists on the fake server."""
    fake_s3.create_bucket("s3verify-fixture")
    return "s3verify-fixture"
