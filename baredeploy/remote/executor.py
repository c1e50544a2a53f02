"""
Remote executor contract.

A ``RemoteExecutor`` runs shell command lines on the remote host and copies a
local directory to it. Nothing here holds a connection open: every call is an
independent round trip, so a failed call never poisons the next one.
"""

import logging
import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..exceptions import ProvisioningFailure

logger = logging.getLogger(__name__)

# output kept in error messages
_OUTPUT_TAIL = 20


@dataclass(frozen=True)
class RemoteSession:
    """Connection parameters for the remote host."""
    host: str
    user: str
    key_path: str
    ssh_port: int = 22
    workdir: Optional[str] = None
    connect_timeout: int = 10

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}"

    @property
    def home(self) -> str:
        return "/root" if self.user == "root" else f"/home/{self.user}"


@dataclass(frozen=True)
class CommandResult:
    command: str
    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def tail(self, lines: int = _OUTPUT_TAIL) -> str:
        return "\n".join(self.output.strip().splitlines()[-lines:])


class RemoteExecutor(ABC):
    """Runs commands on one remote host."""

    def __init__(self, session: RemoteSession):
        self.session = session

    @abstractmethod
    def run(
        self,
        command: str,
        *,
        cwd: Optional[str] = None,
        input_text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """
        Run a shell command line remotely.

        Args:
            command: Command line, interpreted by the remote login shell
            cwd: Remote directory to run in (defaults to ``session.workdir``)
            input_text: Data written to the command's stdin
            timeout: Seconds before giving up (exit code 124)

        Returns:
            CommandResult with exit code and combined stdout/stderr
        """

    @abstractmethod
    def sync_directory(self, local_dir: str, remote_dir: str, excludes: Sequence[str] = ()) -> CommandResult:
        """Mirror ``local_dir`` into ``remote_dir`` (which must exist)."""

    def ping(self) -> CommandResult:
        return self.run("echo connected", timeout=self.session.connect_timeout + 20)

    def check(
        self,
        command: str,
        *,
        cwd: Optional[str] = None,
        input_text: Optional[str] = None,
        timeout: Optional[float] = None,
        what: Optional[str] = None,
    ) -> CommandResult:
        """
        Run a command and raise ``ProvisioningFailure`` when it exits non-zero.
        """
        result = self.run(command, cwd=cwd, input_text=input_text, timeout=timeout)
        if not result.ok:
            label = what or command
            raise ProvisioningFailure(
                f"{label} failed with exit code {result.exit_code}\n{result.tail()}".rstrip()
            )
        return result

    def run_script(self, steps: Iterable[str], *, cwd: Optional[str] = None, what: Optional[str] = None) -> None:
        """Run steps in order, stopping at the first failure."""
        for step in steps:
            self.check(step, cwd=cwd, what=what)

    def write_file(self, path: str, content: str, *, sudo: bool = True) -> CommandResult:
        """Replace a remote file's content."""
        prefix = "sudo " if sudo else ""
        return self.check(
            f"{prefix}tee {shlex.quote(path)} >/dev/null",
            input_text=content,
            what=f"writing {path}",
        )

    def exists(self, path: str) -> bool:
        return self.run(f"test -e {shlex.quote(path)}").ok

    def has_command(self, binary: str) -> bool:
        return self.run(f"command -v {shlex.quote(binary)} >/dev/null 2>&1").ok

    def detect_package_manager(self) -> Optional[str]:
        """
        Return ``"apt"`` or ``"yum"`` depending on what the host has, else None.
        """
        if self.has_command("apt-get"):
            return "apt"
        if self.has_command("yum"):
            return "yum"
        logger.warning(f"No supported package manager found on {self.session.host}")
        return None
