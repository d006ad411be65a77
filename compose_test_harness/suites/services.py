"""Service validation: containers, ports, protocol health and networking."""

from compose_test_harness.models.config import ServiceKind
from compose_test_harness.models.result import ContainerState
from compose_test_harness.suites.checks import (
    exec_ok,
    expect,
    expect_port,
    expect_running,
    service_of_kind,
)
from compose_test_harness.suites.manifest import SuiteManifest
from compose_test_harness.suites.runner import CaseContext, TestCase

POSTGRES_EXTENSIONS = ("uuid-ossp", "pgcrypto", "citext")


def _container_running(kind: ServiceKind, label: str) -> TestCase:
    async def check(context: CaseContext) -> None:
        await expect_running(context, service_of_kind(context, kind).container)

    return TestCase(name=f"{label} container is running", func=check)


def _port_accessible(kind: ServiceKind, label: str) -> TestCase:
    async def check(context: CaseContext) -> None:
        service = service_of_kind(context, kind)
        await expect_port(context, service.host, service.port)

    return TestCase(name=f"{label} port is accessible", func=check)


async def postgres_ready(context: CaseContext) -> None:
    container = service_of_kind(context, "database").container
    await exec_ok(context, container, "pg_isready", "-U", "postgres")


def _postgres_extension(extension: str) -> TestCase:
    async def check(context: CaseContext) -> None:
        container = service_of_kind(context, "database").container
        await exec_ok(
            context,
            container,
            "psql",
            "-U",
            "postgres",
            "-d",
            "postgres",
            "-c",
            f'CREATE EXTENSION IF NOT EXISTS "{extension}";',
        )

    return TestCase(name=f"PostgreSQL {extension} extension available", func=check)


async def redis_ping(context: CaseContext) -> None:
    container = service_of_kind(context, "cache").container
    result = await exec_ok(context, container, "redis-cli", "PING")
    expect(result.stdout.strip() == "PONG", f"unexpected PING reply {result.stdout!r}")


async def redis_pubsub(context: CaseContext) -> None:
    container = service_of_kind(context, "cache").container
    result = await exec_ok(
        context, container, "redis-cli", "PUBLISH", "test-channel", "test-message"
    )
    expect(result.stdout.strip().isdigit(), f"PUBLISH returned {result.stdout!r}")


async def minio_health(context: CaseContext) -> None:
    url = f"{context.config.endpoints.minio_url}/minio/health/live"
    response = await context.http.get(url)
    expect(response.status == 200, f"MinIO health endpoint returned {response.status}")


async def nginx_proxies_to_app(context: CaseContext) -> None:
    response = await context.http.get(f"{context.config.endpoints.proxy_url}/health")
    expect(response.status in {200, 404}, f"Nginx proxy returned {response.status}")


async def app_health(context: CaseContext) -> None:
    response = await context.http.get(f"{context.config.endpoints.api_url}/health")
    expect(response.status == 200, f"App health endpoint returned {response.status}")


async def app_metrics_port(context: CaseContext) -> None:
    app = service_of_kind(context, "application")
    await expect_port(context, app.host, 9090)


async def app_reaches_redis(context: CaseContext) -> None:
    app = service_of_kind(context, "application").container
    cache = service_of_kind(context, "cache")
    await exec_ok(
        context,
        app,
        "sh",
        "-c",
        f"echo PING | timeout 5 nc {cache.container} {cache.port}",
    )


async def service_networking(context: CaseContext) -> None:
    app = service_of_kind(context, "application").container
    database = service_of_kind(context, "database").container
    await exec_ok(context, app, "getent", "hosts", database)


async def all_services_healthy(context: CaseContext) -> None:
    unhealthy = []
    for service in context.config.services:
        if not service.mandatory:
            continue
        state = await context.runtime.container_state(service.container)
        if state is not ContainerState.HEALTHY:
            unhealthy.append(f"{service.container}={state or 'missing'}")
    expect(not unhealthy, f"unhealthy services: {', '.join(unhealthy)}")


services_suite = SuiteManifest(
    key="services",
    title="Services Tests",
    cases=(
        _container_running("database", "PostgreSQL"),
        _port_accessible("database", "PostgreSQL"),
        TestCase(name="PostgreSQL pg_isready succeeds", func=postgres_ready),
        *(_postgres_extension(extension) for extension in POSTGRES_EXTENSIONS),
        _container_running("cache", "Redis"),
        _port_accessible("cache", "Redis"),
        TestCase(name="Redis PING response successful", func=redis_ping),
        TestCase(name="Redis pub/sub is functional", func=redis_pubsub),
        _container_running("object-store", "MinIO"),
        _port_accessible("object-store", "MinIO"),
        TestCase(name="MinIO health endpoint responds", func=minio_health),
        _container_running("reverse-proxy", "Nginx"),
        _port_accessible("reverse-proxy", "Nginx"),
        TestCase(name="Nginx proxies requests to app", func=nginx_proxies_to_app),
        _container_running("application", "App"),
        _port_accessible("application", "App"),
        TestCase(name="App health endpoint responds", func=app_health),
        TestCase(name="App metrics port 9090 is accessible", func=app_metrics_port),
        TestCase(name="App can reach Redis", func=app_reaches_redis),
        TestCase(
            name="Service-to-service networking functional", func=service_networking
        ),
        TestCase(name="All services are in healthy state", func=all_services_healthy),
    ),
)
