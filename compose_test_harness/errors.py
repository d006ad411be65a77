"""Exceptions raised across the harness."""


class HarnessError(Exception):
    """Base class for harness errors."""


class ConfigurationError(HarnessError):
    """Raised when harness or compose configuration is missing or invalid."""


class MissingToolError(HarnessError):
    """Raised when a required external tool is not installed."""

    def __init__(self, tools: list[str]) -> None:
        self.tools = tools
        super().__init__(f"Required tool(s) not found: {', '.join(tools)}")


class RuntimeCommandError(HarnessError):
    """Raised when a container runtime command fails where output is required."""

    def __init__(self, argv: list[str], returncode: int, stderr: str) -> None:
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"Command {' '.join(argv)!r} failed with exit code {returncode}: {stderr}"
        )


class CaseFailure(AssertionError):
    """Raised by a test case to report a failed check."""


class CaseSkipped(Exception):
    """Raised by a test case that cannot run in the current environment."""
