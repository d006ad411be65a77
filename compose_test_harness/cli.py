"""CLI entry point for the compose test harness."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Literal

from compose_test_harness.config_loader import (
    default_harness_config,
    load_harness_config,
)
from compose_test_harness.errors import ConfigurationError
from compose_test_harness.http import HttpClient
from compose_test_harness.models.config import HarnessConfig
from compose_test_harness.models.result import ExitStatus
from compose_test_harness.orchestrator import Orchestrator
from compose_test_harness.probes.container import ContainerStatusProbe
from compose_test_harness.probes.port import PortProbe
from compose_test_harness.readiness.checkers import create_checkers
from compose_test_harness.readiness.sequencer import ReadinessSequencer
from compose_test_harness.runtime.compose import ComposeRuntime


def resolve_config(
    config_path: Path | None, project_dir: Path | None, timeout: float | None
) -> HarnessConfig:
    """Load the harness configuration and apply command line overrides.

    Without a configuration file the defaults apply, rooted at ``project_dir``
    or the current directory.

    Raises:
        ConfigurationError: If the configuration file is missing or invalid

    """
    if config_path is None:
        config = default_harness_config(project_dir or Path("."))
    else:
        config = load_harness_config(config_path, project_dir)
    if timeout is not None:
        config = config.model_copy(update={"readiness_timeout": timeout})
    return config


async def run(
    config: HarnessConfig,
    mode: Literal["dev", "prod"] = "dev",
    quick: bool = False,
    keep: bool = False,
    clean: bool = False,
    results_dir: Path | None = None,
) -> int:
    """Run the harness and return the exit code."""
    log = logging.getLogger("compose_test_harness")
    log.info(
        "Running %s tests against %s (mode=%s)",
        "quick" if quick else "full",
        config.compose.project_dir,
        mode,
    )

    runtime = ComposeRuntime(config=config.compose, mode=mode)
    probes = config.probes
    ports = PortProbe(
        interval=probes.port_interval,
        attempt_timeout=probes.port_attempt_timeout,
        progress_interval=probes.progress_interval,
    )
    containers = ContainerStatusProbe(
        runtime=runtime, query_timeout=probes.container_query_timeout
    )

    async with HttpClient.create(default_timeout=probes.http_timeout) as http:
        checkers = create_checkers(
            containers=containers,
            ports=ports,
            runtime=runtime,
            http=http,
            progress_interval=probes.progress_interval,
        )
        orchestrator = Orchestrator(
            runtime=runtime,
            http=http,
            ports=ports,
            config=config,
            sequencer=ReadinessSequencer(checkers=checkers),
            mode=mode,
            quick=quick,
            keep=keep,
            clean=clean,
            results_dir=results_dir,
        )
        report = await orchestrator.run()

    return int(report.status)


def positive_float(value: str) -> float:
    """Argparse type for a strictly positive number of seconds."""
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Build, start and test a docker compose service group"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dev",
        dest="mode",
        action="store_const",
        const="dev",
        help="Target the development compose configuration (default)",
    )
    mode.add_argument(
        "--prod",
        dest="mode",
        action="store_const",
        const="prod",
        help="Target the production compose configuration",
    )
    parser.set_defaults(mode="dev")
    parser.add_argument(
        "--quick",
        action="store_true",
        help="Run only the build, services and api suites",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--keep",
        action="store_true",
        help="Leave containers running after the tests",
    )
    parser.add_argument(
        "--clean",
        action="store_true",
        help="Remove existing containers and volumes before starting",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a harness YAML configuration",
    )
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=None,
        help="Directory containing the compose and env files (default: .)",
    )
    parser.add_argument(
        "--results-dir",
        type=Path,
        default=None,
        help="Directory to write the JSON run report to",
    )
    parser.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help="Total seconds to wait for all services to become ready",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        config = resolve_config(args.config, args.project_dir, args.timeout)
    except ConfigurationError as e:
        logging.getLogger("compose_test_harness").error("%s", e)
        sys.exit(ExitStatus.CONFIG_ERROR)

    try:
        exit_code = asyncio.run(
            run(
                config=config,
                mode=args.mode,
                quick=args.quick,
                keep=args.keep,
                clean=args.clean,
                results_dir=args.results_dir,
            )
        )
    except KeyboardInterrupt:
        exit_code = ExitStatus.INTERRUPTED
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
