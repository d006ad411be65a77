"""End-to-end workflows across the application, database and cache."""

import asyncio
import json
import logging
import uuid
from pathlib import Path

import aiohttp

from compose_test_harness.errors import CaseSkipped
from compose_test_harness.suites.checks import (
    exec_ok,
    expect,
    service_of_kind,
    soft_expect,
)
from compose_test_harness.suites.manifest import SuiteManifest
from compose_test_harness.suites.runner import CaseContext, TestCase

log = logging.getLogger(__name__)

FIXTURE_FILES = ("users.json", "sessions.json", "machines.json")
CONCURRENT_OPERATIONS = 5

AUTH_REQUEST_KEY = "auth_request"


def _api(context: CaseContext, path: str) -> str:
    return f"{context.config.endpoints.api_url}{path}"


def _fixtures(context: CaseContext) -> list[Path]:
    fixtures_dir = context.config.fixtures_dir
    if fixtures_dir is None:
        raise CaseSkipped("no fixtures directory configured")
    return [fixtures_dir / name for name in FIXTURE_FILES]


async def fixtures_exist(context: CaseContext) -> None:
    missing = [path.name for path in _fixtures(context) if not path.is_file()]
    expect(not missing, f"fixture files not found: {', '.join(missing)}")


async def fixtures_valid_json(context: CaseContext) -> None:
    for path in _fixtures(context):
        try:
            json.loads(path.read_text())
        except (OSError, ValueError) as e:
            raise AssertionError(f"{path.name} is not valid JSON: {e}") from e


async def auth_request_created(context: CaseContext) -> None:
    response = await context.http.post(
        _api(context, "/v1/auth/request"),
        json={"deviceType": "cli", "deviceModel": "test-integration"},
    )
    try:
        payload = response.json()
    except ValueError as e:
        raise AssertionError(
            f"auth request returned non-JSON ({response.status})"
        ) from e
    expect(
        isinstance(payload, dict) and "code" in payload,
        f"auth request response has no code ({response.status})",
    )
    context.state[AUTH_REQUEST_KEY] = payload


async def auth_request_code_valid(context: CaseContext) -> None:
    payload = context.state.get(AUTH_REQUEST_KEY)
    if payload is None:
        raise CaseSkipped("no auth request was created")
    code = payload.get("code")
    expect(bool(code), f"auth request code is invalid: {code!r}")


async def session_created(context: CaseContext) -> None:
    response = await context.http.post(
        _api(context, "/v1/sessions"), json={"tag": "integration-test-session"}
    )
    try:
        payload = response.json()
    except ValueError:
        payload = None
    soft_expect(
        isinstance(payload, dict) and "id" in payload,
        f"session creation without auth returned no session ({response.status})",
    )


async def session_tagging(context: CaseContext) -> None:
    first = await context.http.post(
        _api(context, "/v1/sessions"), json={"tag": "dedup-test"}
    )
    await asyncio.sleep(1)
    second = await context.http.post(
        _api(context, "/v1/sessions"), json={"tag": "dedup-test"}
    )
    soft_expect(
        bool(first.body) and bool(second.body),
        "session tagging test inconclusive",
    )


async def _psql(context: CaseContext, sql: str) -> str:
    container = service_of_kind(context, "database").container
    result = await exec_ok(
        context, container, "psql", "-U", "postgres", "-d", "postgres", "-t", "-c", sql
    )
    return result.stdout.strip()


async def database_accessible(context: CaseContext) -> None:
    container = service_of_kind(context, "database").container
    await exec_ok(context, container, "pg_isready", "-U", "postgres")


async def database_tables_exist(context: CaseContext) -> None:
    count = await _psql(
        context,
        "SELECT COUNT(*) FROM information_schema.tables "
        "WHERE table_schema='public';",
    )
    soft_expect(count.isdigit() and int(count) > 0, "no tables found in public schema")


async def database_persistence(context: CaseContext) -> None:
    record_id = f"integration_test_{uuid.uuid4().hex}"
    await _psql(
        context,
        "CREATE TABLE IF NOT EXISTS test_persistence "
        "(id TEXT PRIMARY KEY, created_at TIMESTAMP DEFAULT NOW());",
    )
    await _psql(
        context,
        f"INSERT INTO test_persistence (id) VALUES ('{record_id}') "
        "ON CONFLICT DO NOTHING;",
    )
    await asyncio.sleep(1)
    found = await _psql(
        context, f"SELECT id FROM test_persistence WHERE id='{record_id}';"
    )
    expect(found == record_id, f"record {record_id} was not persisted")


async def _redis(context: CaseContext, *argv: str) -> str:
    container = service_of_kind(context, "cache").container
    result = await exec_ok(context, container, "redis-cli", *argv)
    return result.stdout.strip()


async def redis_accessible(context: CaseContext) -> None:
    reply = await _redis(context, "PING")
    expect(reply == "PONG", f"unexpected PING reply {reply!r}")


async def redis_set_get(context: CaseContext) -> None:
    key = f"integration_test_key_{uuid.uuid4().hex}"
    await _redis(context, "SET", key, "test_value")
    value = await _redis(context, "GET", key)
    expect(value == "test_value", f"GET {key} returned {value!r}")
    await _redis(context, "DEL", key)


async def redis_expiration(context: CaseContext) -> None:
    key = f"integration_test_expiry_{uuid.uuid4().hex}"
    await _redis(context, "SET", key, "expiring", "EX", "2")
    await asyncio.sleep(3)
    exists = await _redis(context, "EXISTS", key)
    expect(exists == "0", f"key {key} did not expire")


async def _create_tagged_session(context: CaseContext, index: int) -> bool:
    try:
        await context.http.post(
            _api(context, "/v1/sessions"), json={"tag": f"concurrent-{index}"}
        )
    except (aiohttp.ClientError, TimeoutError) as e:
        log.debug("Concurrent session request %d failed: %s", index, e)
        return False
    return True


async def concurrent_operations(context: CaseContext) -> None:
    outcomes = await asyncio.gather(
        *(_create_tagged_session(context, i) for i in range(CONCURRENT_OPERATIONS))
    )
    succeeded = sum(outcomes)
    soft_expect(
        succeeded >= CONCURRENT_OPERATIONS - 1,
        f"only {succeeded}/{CONCURRENT_OPERATIONS} concurrent operations succeeded",
    )


async def recovery_after_restart(context: CaseContext) -> None:
    cache = service_of_kind(context, "cache")
    key = f"recovery_test_{uuid.uuid4().hex}"
    await _redis(context, "SET", key, "before_restart")
    expect(
        await context.runtime.restart(cache.container),
        f"could not restart {cache.container}",
    )
    await context.ports.await_open(cache.host, cache.port, cache.timeout)
    await asyncio.sleep(2)
    value = await _redis(context, "GET", key)
    soft_expect(
        value == "before_restart", f"service recovery test inconclusive: {value!r}"
    )
    await _redis(context, "DEL", key)


async def _metrics_body(context: CaseContext) -> str:
    try:
        response = await context.http.get(
            f"{context.config.endpoints.metrics_url}/metrics"
        )
    except (aiohttp.ClientError, TimeoutError) as e:
        raise CaseSkipped(f"metrics endpoint not reachable: {e}") from e
    return response.body


async def metrics_functional(context: CaseContext) -> None:
    body = await _metrics_body(context)
    soft_expect(bool(body.strip()), "metrics endpoint not responding")


async def metrics_contain_requests(context: CaseContext) -> None:
    body = await _metrics_body(context)
    soft_expect("http_" in body, "metrics may not contain HTTP metrics")


async def health_reports_services(context: CaseContext) -> None:
    response = await context.http.get(_api(context, "/health"))
    try:
        response.json()
    except ValueError as e:
        raise AssertionError(f"health endpoint response is not JSON: {e}") from e


integration_suite = SuiteManifest(
    key="integration",
    title="Integration Tests",
    cases=(
        TestCase(name="Fixture files exist", func=fixtures_exist),
        TestCase(name="Fixture files have valid JSON", func=fixtures_valid_json),
        TestCase(name="Auth request can be created", func=auth_request_created),
        TestCase(
            name="Auth request includes valid code", func=auth_request_code_valid
        ),
        TestCase(name="Session can be created", func=session_created),
        TestCase(name="Sessions support tag-based operations", func=session_tagging),
        TestCase(name="Database is accessible", func=database_accessible),
        TestCase(name="Database tables are created", func=database_tables_exist),
        TestCase(name="Data persists in database", func=database_persistence),
        TestCase(name="Redis is accessible", func=redis_accessible),
        TestCase(name="Redis set/get operations work", func=redis_set_get),
        TestCase(name="Redis key expiration works", func=redis_expiration),
        TestCase(name="Concurrent session operations", func=concurrent_operations),
        TestCase(name="Services recover after restart", func=recovery_after_restart),
        TestCase(name="Metrics endpoint functional", func=metrics_functional),
        TestCase(name="Metrics contain request data", func=metrics_contain_requests),
        TestCase(
            name="Health check includes service status",
            func=health_reports_services,
        ),
    ),
)
