"""
Base recipe interface and common helpers.

A recipe turns a ``RuntimeProfile`` (plus the local working copy, when there is
one) into a ``ProvisioningActions`` bundle: what to install on the host, how to
install the application's dependencies, how to start it and how to remove it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Type, Union
import logging

from ..analyzer.profile import RuntimeKind, RuntimeProfile
from ..analyzer.walk import has_file
from ..supervisor import Supervisor, supervisor_class

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class InstallPlan:
    """Check-then-install plan for one system package."""
    binary: str                              # what must end up on PATH
    steps: Dict[str, Tuple[str, ...]]        # package manager ("apt" | "yum") -> install steps
    version_command: Optional[str] = None    # reported after the check/install
    probe: Optional[str] = None              # defaults to `command -v <binary>`

    @property
    def probe_command(self) -> str:
        return self.probe or f"command -v {self.binary} >/dev/null 2>&1"

    def steps_for(self, package_manager: Optional[str]) -> Optional[Tuple[str, ...]]:
        if package_manager is None:
            return None
        return self.steps.get(package_manager)


@dataclass(frozen=True)
class StartCommand:
    """Command that runs the application, and where it came from."""
    command: Optional[str]
    source: str

    @property
    def runnable(self) -> bool:
        return bool(self.command)


NOTHING_TO_START = StartCommand(None, "static files are served by nginx")
MANUAL_STEP_REQUIRED = StartCommand(None, "no start command could be derived")


@dataclass(frozen=True)
class ProvisioningActions:
    """Everything the pipeline needs to know about a runtime."""
    runtime: RuntimeKind
    install_packages: Optional[InstallPlan]
    install_dependencies: Tuple[str, ...]
    start_command: StartCommand
    teardown: Tuple[str, ...]
    supervisor: Optional[Type[Supervisor]] = None
    notes: Tuple[str, ...] = field(default_factory=tuple)


class Recipe(ABC):
    """Abstract base class for runtime recipes."""

    runtime: RuntimeKind

    @abstractmethod
    def install_plan(self, profile: RuntimeProfile) -> Optional[InstallPlan]:
        """System packages the runtime needs, or None."""
        pass

    @abstractmethod
    def dependency_steps(self, project_root: Optional[PathLike], profile: RuntimeProfile) -> List[str]:
        """
        Commands (run in the remote project directory) that install the
        application's own dependencies, chosen from the manifests present in
        the local working copy.
        """
        pass

    @abstractmethod
    def start_command(self, project_root: Optional[PathLike], port: Optional[int]) -> StartCommand:
        pass

    def notes(self, project_root: Optional[PathLike]) -> List[str]:
        return []

    def actions(
        self,
        profile: RuntimeProfile,
        project_root: Optional[PathLike] = None,
        port: Optional[int] = None,
        app_id: str = "app",
    ) -> ProvisioningActions:
        supervisor = supervisor_class(self.runtime)
        teardown = tuple(supervisor.teardown_commands(app_id)) if supervisor else ()
        return ProvisioningActions(
            runtime=self.runtime,
            install_packages=self.install_plan(profile),
            install_dependencies=tuple(self.dependency_steps(project_root, profile)),
            start_command=self.start_command(project_root, port),
            teardown=teardown,
            supervisor=supervisor,
            notes=tuple(self.notes(project_root)),
        )


def first_candidate(project_root: Optional[PathLike], candidates: Sequence[Tuple[str, str]]) -> StartCommand:
    """
    Pick the first ``(file, command)`` pair whose file exists locally.

    Returns MANUAL_STEP_REQUIRED when none matches.
    """
    for filename, command in candidates:
        if has_file(project_root, filename):
            logger.debug(f"Start command from {filename}: {command}")
            return StartCommand(command, filename)
    return MANUAL_STEP_REQUIRED


def apt_steps(*packages: str, update: bool = True) -> Tuple[str, ...]:
    steps = ["sudo apt-get update -y"] if update else []
    steps.append(f"sudo DEBIAN_FRONTEND=noninteractive apt-get install -y {' '.join(packages)}")
    return tuple(steps)


def yum_steps(*packages: str) -> Tuple[str, ...]:
    return (f"sudo yum install -y {' '.join(packages)}",)
