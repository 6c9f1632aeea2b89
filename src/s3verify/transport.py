"""HTTP transport for s3verify.

``Transport`` executes already-signed requests over a shared
``httpx.AsyncClient``; connection pooling is the client's job.
``S3Session`` puts a signer in front of it so callers can hand over unsigned
requests.  Neither retries: a transport failure is terminal for the check
that caused it.
"""

import logging
import time
from datetime import datetime

import httpx

from s3verify import metrics
from s3verify.config import Credentials
from s3verify.errors import ProtocolError, TransportError
from s3verify.models import Request
from s3verify.signer import RequestSigner

logger = logging.getLogger(__name__)

USER_AGENT = "s3verify/0.1.0"


def new_http_client(
    transport: httpx.AsyncBaseTransport | None = None,
    timeout: float = 60.0,
    max_connections: int = 100,
) -> httpx.AsyncClient:
    """Create the AsyncClient shared by every concurrent check.

    Args:
        transport: Optional httpx transport (e.g. ``ASGITransport`` in tests).
        timeout: Per-request timeout in seconds.
        max_connections: Connection pool size.
    """
    return httpx.AsyncClient(
        transport=transport,
        timeout=timeout,
        limits=httpx.Limits(max_connections=max_connections),
        headers={"User-Agent": USER_AGENT},
        follow_redirects=False,
    )


class Transport:
    """Executes signed requests.

    Attributes:
        client: The shared async HTTP client.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def execute(self, request: Request) -> httpx.Response:
        """Send a signed request and read the full response.

        Args:
            request: A signed request.

        Returns:
            The response with its body already loaded.

        Raises:
            TransportError: On connection, DNS, protocol or timeout failure.
            ProtocolError: If the response body cannot be decoded.
        """
        start = time.monotonic()
        try:
            response = await self.client.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                content=request.body if request.body else None,
            )
        except httpx.DecodingError as exc:
            logger.error(
                "Undecodable response body: %s %s: %s",
                request.method,
                request.url,
                exc,
                extra={"method": request.method, "url": request.url},
            )
            raise ProtocolError("Body", "decodable content", str(exc)) from exc
        except httpx.RequestError as exc:
            logger.error(
                "Transport failure: %s %s: %s",
                request.method,
                request.url,
                exc,
                extra={"method": request.method, "url": request.url},
            )
            raise TransportError(request.method, request.url, str(exc) or type(exc).__name__) from exc

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        metrics.record_request(request.method, response.status_code, len(request.body))
        logger.debug(
            "%s %s -> %d (%.2f ms)",
            request.method,
            request.url,
            response.status_code,
            duration_ms,
            extra={
                "method": request.method,
                "url": request.url,
                "status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response


class S3Session:
    """Signs and executes requests for one set of credentials.

    Attributes:
        credentials: The run credentials.
        signer: The SigV4 signer built from ``credentials``.
        transport: The transport requests are executed on.
    """

    def __init__(self, credentials: Credentials, transport: Transport) -> None:
        self.credentials = credentials
        self.signer = RequestSigner(credentials)
        self.transport = transport

    @property
    def endpoint(self) -> str:
        return self.credentials.endpoint

    async def send(self, request: Request, now: datetime | None = None) -> httpx.Response:
        """Sign ``request`` and execute it."""
        signed = self.signer.sign(request, now=now)
        return await self.transport.execute(signed)
