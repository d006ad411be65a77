"""Socket.io transport checks, directly and through the reverse proxy."""

import asyncio

import aiohttp

from compose_test_harness.errors import CaseFailure
from compose_test_harness.suites.checks import expect, soft_expect
from compose_test_harness.suites.manifest import SuiteManifest
from compose_test_harness.suites.runner import CaseContext, TestCase

CONCURRENT_CONNECTIONS = 5
DISCONNECT_LIMIT_SECONDS = 5.0


def _polling_url(base_url: str, query: str = "transport=polling") -> str:
    return f"{base_url}/socket.io/?{query}"


async def _poll(context: CaseContext, query: str = "transport=polling") -> str:
    response = await context.http.get(
        _polling_url(context.config.endpoints.api_url, query)
    )
    return response.body


async def endpoint_structure(context: CaseContext) -> None:
    response = await context.http.get(
        f"{context.config.endpoints.api_url}/socket.io/"
    )
    expect(
        response.status in {200, 400, 426},
        f"Socket.io endpoint returned {response.status}",
    )


async def connection_established(context: CaseContext) -> None:
    body = await _poll(context)
    expect(bool(body.strip()), "Socket.io polling returned an empty body")


async def polling_mechanism(context: CaseContext) -> None:
    loop = asyncio.get_running_loop()
    body = await _poll(context, f"transport=polling&EIO=4&t={int(loop.time())}")
    expect(bool(body.strip()), "Socket.io EIO=4 polling returned an empty body")


async def upgrade_through_proxy(context: CaseContext) -> None:
    proxy_url = context.config.endpoints.proxy_url
    url = _polling_url(
        "ws" + proxy_url.removeprefix("http"), "EIO=4&transport=websocket"
    )
    try:
        await context.http.websocket_handshake(url)
    except aiohttp.WSServerHandshakeError as e:
        raise CaseFailure(
            f"WebSocket upgrade through Nginx refused with HTTP {e.status}"
        ) from e


async def proxy_upgrade_headers(context: CaseContext) -> None:
    response = await context.http.get(
        f"{context.config.endpoints.proxy_url}/socket.io/"
    )
    soft_expect(
        response.header("Upgrade") is not None
        or response.header("Connection") is not None,
        "WebSocket upgrade headers not detected (may be expected)",
    )


async def connection_persists(context: CaseContext) -> None:
    first = await _poll(context)
    expect(bool(first.strip()), "initial Socket.io poll returned an empty body")
    await asyncio.sleep(2)
    second = await _poll(context)
    expect(bool(second.strip()), "Socket.io poll after 2s returned an empty body")


async def graceful_disconnect(context: CaseContext) -> None:
    loop = asyncio.get_running_loop()
    start = loop.time()
    task = asyncio.create_task(_poll_succeeds(context))
    await asyncio.sleep(1)
    task.cancel()
    await asyncio.wait([task])
    elapsed = loop.time() - start
    expect(
        elapsed < DISCONNECT_LIMIT_SECONDS,
        f"disconnect took {elapsed:.1f}s (limit {DISCONNECT_LIMIT_SECONDS:.0f}s)",
    )


async def _poll_succeeds(context: CaseContext) -> bool:
    try:
        await _poll(context)
    except (aiohttp.ClientError, TimeoutError):
        return False
    return True


async def concurrent_connections(context: CaseContext) -> None:
    outcomes = await asyncio.gather(
        *(_poll_succeeds(context) for _ in range(CONCURRENT_CONNECTIONS))
    )
    succeeded = sum(outcomes)
    expect(
        succeeded >= CONCURRENT_CONNECTIONS - 1,
        f"only {succeeded}/{CONCURRENT_CONNECTIONS} concurrent connections succeeded",
    )


websocket_suite = SuiteManifest(
    key="websocket",
    title="WebSocket Tests",
    cases=(
        TestCase(name="Socket.io endpoint exists", func=endpoint_structure),
        TestCase(
            name="Socket.io connection can be established",
            func=connection_established,
        ),
        TestCase(name="Socket.io polling mechanism works", func=polling_mechanism),
        TestCase(name="WebSocket upgrade through Nginx", func=upgrade_through_proxy),
        TestCase(name="Nginx WebSocket upgrade headers", func=proxy_upgrade_headers),
        TestCase(name="Connection persists over time", func=connection_persists),
        TestCase(name="Graceful connection disconnect", func=graceful_disconnect),
        TestCase(name="Multiple concurrent connections", func=concurrent_connections),
    ),
)
