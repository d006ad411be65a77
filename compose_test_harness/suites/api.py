"""API contract checks: health, content types, auth, errors, metrics."""

import aiohttp

from compose_test_harness.errors import CaseSkipped
from compose_test_harness.suites.checks import expect, soft_expect
from compose_test_harness.suites.manifest import SuiteManifest
from compose_test_harness.suites.runner import CaseContext, TestCase

SLOW_RESPONSE_SECONDS = 1.0


def _api(context: CaseContext, path: str) -> str:
    return f"{context.config.endpoints.api_url}{path}"


async def health_responds(context: CaseContext) -> None:
    response = await context.http.get(_api(context, "/health"))
    expect(response.status == 200, f"health returned {response.status}")
    expect(bool(response.body.strip()), "health endpoint returned an empty body")


async def health_returns_json(context: CaseContext) -> None:
    response = await context.http.get(_api(context, "/health"))
    try:
        response.json()
    except ValueError as e:
        raise AssertionError(f"health endpoint did not return valid JSON: {e}") from e


async def health_through_proxy(context: CaseContext) -> None:
    response = await context.http.get(f"{context.config.endpoints.proxy_url}/health")
    expect(response.status == 200, f"health through proxy returned {response.status}")


async def cors_headers(context: CaseContext) -> None:
    response = await context.http.request("OPTIONS", _api(context, "/health"))
    soft_expect(
        response.header("Access-Control-Allow-Origin") is not None,
        "CORS headers not found (this may be expected)",
    )


async def accepts_json(context: CaseContext) -> None:
    response = await context.http.post(_api(context, "/health"), json={})
    expect(
        response.status in {200, 404, 405},
        f"API did not accept JSON request: {response.status}",
    )


async def rejects_invalid_json(context: CaseContext) -> None:
    response = await context.http.post(
        _api(context, "/health"),
        data="{invalid json}",
        headers={"Content-Type": "application/json"},
    )
    soft_expect(
        response.status in {400, 404},
        f"API responded with {response.status} for invalid JSON (expected 400 or 404)",
    )


async def has_content_type(context: CaseContext) -> None:
    response = await context.http.get(_api(context, "/health"))
    expect(response.header("Content-Type") is not None, "response has no Content-Type")


async def responds_to_get(context: CaseContext) -> None:
    response = await context.http.get(_api(context, "/health"))
    expect(response.status == 200, f"GET request returned {response.status}")


async def auth_request_endpoint(context: CaseContext) -> None:
    response = await context.http.post(
        _api(context, "/v1/auth/request"),
        json={"deviceType": "cli", "deviceModel": "test"},
    )
    expect(
        response.status in {200, 201, 400, 422},
        f"auth request endpoint returned {response.status}",
    )


async def sessions_require_auth(context: CaseContext) -> None:
    response = await context.http.get(_api(context, "/v1/sessions"))
    expect(
        response.status in {401, 403},
        f"sessions endpoint without auth returned {response.status} (expected 401/403)",
    )


async def unknown_endpoint_404(context: CaseContext) -> None:
    response = await context.http.get(
        _api(context, "/non-existent-endpoint-that-should-not-exist")
    )
    expect(response.status == 404, f"unknown endpoint returned {response.status}")


async def health_response_time(context: CaseContext) -> None:
    response = await context.http.get(_api(context, "/health"))
    soft_expect(
        response.elapsed < SLOW_RESPONSE_SECONDS,
        f"health response time is slow: {response.elapsed * 1000:.0f}ms",
    )


async def _metrics(context: CaseContext) -> str:
    url = f"{context.config.endpoints.metrics_url}/metrics"
    try:
        response = await context.http.get(url)
    except (aiohttp.ClientError, TimeoutError) as e:
        raise CaseSkipped(f"metrics endpoint not reachable: {e}") from e
    if response.status != 200:
        raise CaseSkipped(f"metrics endpoint returned {response.status}")
    return response.body


async def metrics_accessible(context: CaseContext) -> None:
    await _metrics(context)


async def metrics_prometheus_format(context: CaseContext) -> None:
    body = await _metrics(context)
    expect("# HELP" in body or "# TYPE" in body, "metrics not in Prometheus format")


api_suite = SuiteManifest(
    key="api",
    title="API Tests",
    cases=(
        TestCase(name="Health endpoint responds", func=health_responds),
        TestCase(name="Health returns valid JSON", func=health_returns_json),
        TestCase(name="Health accessible through Nginx", func=health_through_proxy),
        TestCase(name="CORS headers are present", func=cors_headers),
        TestCase(name="API accepts JSON requests", func=accepts_json),
        TestCase(name="API rejects invalid JSON", func=rejects_invalid_json),
        TestCase(name="Response has Content-Type header", func=has_content_type),
        TestCase(name="API responds to GET requests", func=responds_to_get),
        TestCase(name="Auth request endpoint exists", func=auth_request_endpoint),
        TestCase(
            name="Sessions endpoint requires authentication",
            func=sessions_require_auth,
        ),
        TestCase(
            name="Non-existent endpoint returns 404", func=unknown_endpoint_404
        ),
        TestCase(
            name="Health endpoint response time acceptable",
            func=health_response_time,
        ),
        TestCase(name="Metrics port is accessible", func=metrics_accessible),
        TestCase(name="Metrics in Prometheus format", func=metrics_prometheus_format),
    ),
)
