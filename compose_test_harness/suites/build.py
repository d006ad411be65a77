"""Image build validation: size, binaries, user, ports and build artifacts."""

from compose_test_harness.errors import CaseSkipped
from compose_test_harness.suites.checks import expect
from compose_test_harness.suites.manifest import SuiteManifest
from compose_test_harness.suites.runner import CaseContext, TestCase

MAX_IMAGE_SIZE = 800 * 1024 * 1024


def _image(context: CaseContext) -> str:
    if context.state.get("image_missing"):
        raise CaseSkipped(f"image {context.config.compose.image} was not built")
    return context.config.compose.image


async def dockerfile_valid(context: CaseContext) -> None:
    dockerfile = context.config.compose.project_dir / context.config.compose.dockerfile
    expect(dockerfile.is_file(), f"{dockerfile} not found")
    instructions = [
        line.split(maxsplit=1)[0].upper()
        for line in dockerfile.read_text().splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    ]
    expect("FROM" in instructions, "Dockerfile has no FROM instruction")
    expect(instructions.count("FROM") >= 2, "Dockerfile is not a multi-stage build")


async def image_exists(context: CaseContext) -> None:
    image = context.config.compose.image
    image_id = await context.runtime.inspect(image, "{{.Id}}")
    if not image_id:
        context.state["image_missing"] = True
    expect(bool(image_id), f"image {image} does not exist")


async def image_size(context: CaseContext) -> None:
    image = _image(context)
    raw = await context.runtime.inspect(image, "{{.Size}}")
    size = int(raw) if raw and raw.isdigit() else 0
    expect(0 < size < MAX_IMAGE_SIZE, f"image size {size} bytes (max {MAX_IMAGE_SIZE})")


def _binary_check(binary: str) -> TestCase:
    async def check(context: CaseContext) -> None:
        result = await context.runtime.run(_image(context), "which", binary)
        expect(result.ok, f"{binary} not found in image")

    return TestCase(name=f"{binary} binary exists", func=check)


async def non_root_user(context: CaseContext) -> None:
    result = await context.runtime.run(_image(context), "id", "-u", "appuser")
    uid = result.stdout.strip()
    expect(result.ok and uid == "1000", f"appuser missing or wrong uid: {uid!r}")


async def no_npm_lockfile(context: CaseContext) -> None:
    result = await context.runtime.run(
        _image(context), "test", "!", "-f", "/app/package-lock.json"
    )
    expect(result.ok, "package-lock.json present, npm was used instead of yarn")


async def healthcheck_configured(context: CaseContext) -> None:
    healthcheck = await context.runtime.inspect(
        _image(context), "{{json .Config.Healthcheck}}"
    )
    expect(healthcheck not in (None, "", "null"), "healthcheck not configured")


def _port_exposed(port: int, label: str) -> TestCase:
    async def check(context: CaseContext) -> None:
        exposed = await context.runtime.inspect(
            _image(context), "{{json .Config.ExposedPorts}}"
        )
        expect(
            exposed is not None and f"{port}/" in exposed, f"port {port} not exposed"
        )

    return TestCase(name=f"{label} port {port} is exposed", func=check)


async def working_directory(context: CaseContext) -> None:
    workdir = await context.runtime.inspect(_image(context), "{{.Config.WorkingDir}}")
    expect(workdir == "/app", f"working directory is {workdir!r}, expected /app")


async def node_env_production(context: CaseContext) -> None:
    result = await context.runtime.run(
        _image(context), "sh", "-c", 'test "$NODE_ENV" = "production"'
    )
    expect(result.ok, "NODE_ENV is not production")


async def prisma_client_generated(context: CaseContext) -> None:
    result = await context.runtime.run(
        _image(context), "test", "-d", "/app/node_modules/.prisma/client"
    )
    expect(result.ok, "Prisma client not generated")


build_suite = SuiteManifest(
    key="build",
    title="Build Tests",
    cases=(
        TestCase(name="Dockerfile syntax validation", func=dockerfile_valid),
        TestCase(name="Docker image exists after build", func=image_exists),
        TestCase(name="Docker image size is reasonable", func=image_size),
        *(
            _binary_check(binary)
            for binary in ("node", "yarn", "curl", "ffmpeg", "python3")
        ),
        TestCase(name="Non-root appuser exists with uid 1000", func=non_root_user),
        TestCase(name="npm not used (only yarn)", func=no_npm_lockfile),
        TestCase(name="Healthcheck is configured", func=healthcheck_configured),
        _port_exposed(3000, "Application"),
        _port_exposed(9090, "Metrics"),
        TestCase(name="Working directory is /app", func=working_directory),
        TestCase(name="NODE_ENV set to production", func=node_env_production),
        TestCase(name="Prisma client is generated", func=prisma_client_generated),
    ),
)
