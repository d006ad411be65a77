"""Thin HTTP client used by readiness checks and test suites."""

import asyncio
import json
import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class HttpResponse:
    """Status, headers and body of a completed request."""

    status: int
    body: str = ""
    headers: CIMultiDictProxy[str] = field(
        default_factory=lambda: CIMultiDictProxy(CIMultiDict())
    )
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON

        """
        return json.loads(self.body)

    def header(self, name: str) -> str | None:
        """First value of a header, looked up case-insensitively."""
        return self.headers.get(name)


@dataclass(frozen=True, kw_only=True)
class HttpClient:
    """HTTP client with a per-request deadline on every call."""

    session: aiohttp.ClientSession = field(repr=False)
    default_timeout: float = 5.0

    @classmethod
    @asynccontextmanager
    async def create(
        cls, default_timeout: float = 5.0
    ) -> AsyncGenerator["HttpClient", None]:
        """Create a client with managed session lifecycle."""
        async with aiohttp.ClientSession() as session:
            yield cls(session=session, default_timeout=default_timeout)

    async def get(
        self, url: str, timeout: float | None = None, **kwargs: Any
    ) -> HttpResponse:
        return await self.request("GET", url, timeout=timeout, **kwargs)

    async def post(
        self, url: str, timeout: float | None = None, **kwargs: Any
    ) -> HttpResponse:
        return await self.request("POST", url, timeout=timeout, **kwargs)

    async def request(
        self,
        method: str,
        url: str,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> HttpResponse:
        """Perform a request and read the whole body.

        Raises:
            aiohttp.ClientError: On connection failures
            TimeoutError: If the request outlives the timeout

        """
        client_timeout = aiohttp.ClientTimeout(
            total=timeout if timeout is not None else self.default_timeout
        )
        started = time.monotonic()
        async with self.session.request(
            method, url, timeout=client_timeout, **kwargs
        ) as response:
            body = await response.text(errors="replace")
            elapsed = time.monotonic() - started
            log.debug("%s %s -> %d (%.3fs)", method, url, response.status, elapsed)
            return HttpResponse(
                status=response.status,
                body=body,
                headers=CIMultiDictProxy(CIMultiDict(response.headers)),
                elapsed=elapsed,
            )

    async def websocket_handshake(self, url: str, timeout: float | None = None) -> None:
        """Open a WebSocket connection to ``url`` and close it again.

        Raises:
            aiohttp.WSServerHandshakeError: If the server refused the upgrade
            aiohttp.ClientError: On connection failures
            TimeoutError: If the handshake outlives the timeout

        """
        async with asyncio.timeout(
            timeout if timeout is not None else self.default_timeout
        ):
            async with self.session.ws_connect(url) as ws:
                log.debug("WebSocket handshake with %s succeeded", url)
                await ws.close()
