"""
Build environment registry — maps BUILD_ENVIRONMENT names to classes.

Environments hold the handle of the build they are running, so the agent
gets a fresh instance per job instead of sharing one.
"""

from buildenv.base import AbstractBuildEnvironment
from buildenv.command import CommandBuildEnvironment
from buildenv.simulated import SimulatedBuildEnvironment
from models.enums import BuildEnvironmentKind

_REGISTRY: dict[str, type[AbstractBuildEnvironment]] = {
    BuildEnvironmentKind.COMMAND.value: CommandBuildEnvironment,
    BuildEnvironmentKind.SIMULATED.value: SimulatedBuildEnvironment,
}


def create_build_environment(kind: str) -> AbstractBuildEnvironment:
    """Instantiate a build environment by kind. Raises ValueError if unknown."""
    cls = _REGISTRY.get(kind)
    if cls is None:
        raise ValueError(
            f"Unknown build environment: '{kind}'. Available: {list(_REGISTRY.keys())}"
        )
    return cls()
