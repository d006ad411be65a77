"""Suite lookup through the ``compose_test_harness.suites`` entry point group."""

from collections.abc import Sequence
from importlib.metadata import entry_points

from compose_test_harness.errors import HarnessError
from compose_test_harness.suites.manifest import SuiteManifest

ENTRY_POINT_GROUP = "compose_test_harness.suites"


class SuiteNotFoundError(HarnessError):
    """No usable suite is registered under the requested key."""


def available_suites() -> Sequence[str]:
    """Keys of every registered suite, sorted."""
    return sorted(entry.name for entry in entry_points(group=ENTRY_POINT_GROUP))


def load_suite_manifest(key: str) -> SuiteManifest:
    """Resolve a suite key to its manifest.

    The entry point must point at a SuiteManifest whose ``key`` matches the
    name it is registered under.

    Raises:
        SuiteNotFoundError: If nothing is registered under ``key`` or the
            registered object is not a matching manifest

    """
    matches = entry_points(group=ENTRY_POINT_GROUP, name=key)
    if not matches:
        raise SuiteNotFoundError(
            f"Suite {key!r} is not registered. "
            f"Available suites: {', '.join(available_suites())}"
        )

    entry = next(iter(matches))
    manifest = entry.load()
    if not isinstance(manifest, SuiteManifest) or manifest.key != key:
        raise SuiteNotFoundError(
            f"Entry point {entry.value!r} does not provide the {key!r} suite"
        )
    return manifest
