"""
HTTP transport for the service under test.

Purpose:
- Defines the HttpClient capability the Dispatcher depends on
- Provides HttpxClient, the default implementation on top of httpx.AsyncClient

Implementation notes:
- Transport failures are normalized to TransportError, timeouts to RequestTimeout
- Any HTTP status is a response, never an error; judging it is the Orchestrator's job
- Keep this module as the ONLY place where httpx is used for outbound calls.
"""

import logging
from typing import Mapping, Optional, Protocol

import httpx

from contract_tester.constants import DEFAULT_USER_AGENT
from contract_tester.errors import RequestTimeout, TransportError
from contract_tester.models.plan import HttpResponse

logger = logging.getLogger(__name__)


class HttpClient(Protocol):
    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes],
        timeout: float,
    ) -> HttpResponse:
        ...


class HttpxClient:
    """HttpClient backed by a shared httpx.AsyncClient connection pool."""

    def __init__(
        self,
        verify: bool = True,
        follow_redirects: bool = False,
        max_connections: int = 100,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            verify=verify,
            follow_redirects=follow_redirects,
            headers={"User-Agent": DEFAULT_USER_AGENT},
            limits=httpx.Limits(max_connections=max_connections),
            transport=transport,
        )

    async def __aenter__(self) -> "HttpxClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes],
        timeout: float,
    ) -> HttpResponse:
        try:
            response = await self._client.request(
                method,
                url,
                headers=dict(headers),
                content=body,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            logger.debug(f"{method} {url} timed out: {e!r}")
            raise RequestTimeout(timeout) from e
        except httpx.HTTPError as e:
            logger.debug(f"{method} {url} failed: {e!r}")
            raise TransportError(
                f"{type(e).__name__}: {e}" if str(e) else type(e).__name__,
                details={"url": url},
            ) from e

        return HttpResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.content,
        )
