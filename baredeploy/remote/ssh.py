"""
SSH/rsync implementation of ``RemoteExecutor``.

Each command is a separate ``ssh`` process in batch mode, so authentication
never prompts and an unreachable host fails within the connect timeout.
"""

import logging
import shlex
import shutil
import subprocess
from typing import List, Optional, Sequence

from ..exceptions import LocalToolMissing
from .executor import CommandResult, RemoteExecutor, RemoteSession

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124


class SSHExecutor(RemoteExecutor):
    """Runs commands through the local ``ssh`` client."""

    def __init__(self, session: RemoteSession, ssh_binary: str = "ssh"):
        super().__init__(session)
        self.ssh_binary = ssh_binary

    def _ssh_options(self) -> List[str]:
        return [
            "-i", self.session.key_path,
            "-p", str(self.session.ssh_port),
            "-o", "BatchMode=yes",
            "-o", f"ConnectTimeout={self.session.connect_timeout}",
            "-o", "StrictHostKeyChecking=no",
        ]

    def _ssh_cmd(self, command: str) -> List[str]:
        """Build the ssh argv for a remote command line."""
        return [self.ssh_binary, *self._ssh_options(), self.session.target, command]

    def run(
        self,
        command: str,
        *,
        cwd: Optional[str] = None,
        input_text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        workdir = cwd or self.session.workdir
        line = f"cd {shlex.quote(workdir)} && {command}" if workdir else command
        logger.debug(f"ssh {self.session.target}: {line}")

        try:
            proc = subprocess.run(
                self._ssh_cmd(line),
                input=input_text,
                stdin=None if input_text is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            raise LocalToolMissing(f"'{self.ssh_binary}' is not installed locally")
        except subprocess.TimeoutExpired as e:
            output = e.output if isinstance(e.output, str) else ""
            logger.debug(f"ssh command timed out after {timeout}s: {line}")
            return CommandResult(command=command, exit_code=TIMEOUT_EXIT_CODE, output=output or "")

        output = proc.stdout or ""
        if output.strip():
            logger.debug(output.rstrip())
        logger.debug(f"exit code {proc.returncode}")
        return CommandResult(command=command, exit_code=proc.returncode, output=output)

    def sync_directory(self, local_dir: str, remote_dir: str, excludes: Sequence[str] = ()) -> CommandResult:
        """
        Mirror a directory with rsync, falling back to a tar stream over ssh.

        The tar fallback adds and overwrites files but does not delete remote
        files that vanished locally.
        """
        if shutil.which("rsync"):
            result = self._rsync(local_dir, remote_dir, excludes)
            if result.ok:
                return result
            logger.warning(f"rsync failed (exit {result.exit_code}), falling back to tar over ssh")
        return self._tar_stream(local_dir, remote_dir, excludes)

    def _rsync(self, local_dir: str, remote_dir: str, excludes: Sequence[str]) -> CommandResult:
        ssh_transport = " ".join(shlex.quote(part) for part in [self.ssh_binary, *self._ssh_options()])
        cmd = ["rsync", "-az", "--delete"]
        for pattern in excludes:
            cmd.extend(["--exclude", pattern])
        cmd.extend([
            "-e", ssh_transport,
            f"{local_dir.rstrip('/')}/",
            f"{self.session.target}:{remote_dir.rstrip('/')}/",
        ])
        logger.debug(f"rsync: {' '.join(cmd)}")
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
        if proc.stdout and proc.stdout.strip():
            logger.debug(proc.stdout.rstrip())
        return CommandResult(command="rsync", exit_code=proc.returncode, output=proc.stdout or "")

    def _tar_stream(self, local_dir: str, remote_dir: str, excludes: Sequence[str]) -> CommandResult:
        if not shutil.which("tar"):
            raise LocalToolMissing("Neither rsync nor tar is available locally")

        tar_cmd = ["tar", "-C", local_dir]
        for pattern in excludes:
            tar_cmd.append(f"--exclude={pattern}")
        tar_cmd.extend(["-czf", "-", "."])
        remote = f"tar -xzf - -C {shlex.quote(remote_dir)}"
        logger.debug(f"tar stream: {' '.join(tar_cmd)} | ssh {self.session.target} {remote}")

        with subprocess.Popen(tar_cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE) as producer:
            consumer = subprocess.run(
                self._ssh_cmd(remote),
                stdin=producer.stdout,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
            producer.stdout.close()
            producer_err = producer.stderr.read().decode(errors="replace")
            producer.wait()

        output = (consumer.stdout or b"").decode(errors="replace") + producer_err
        exit_code = consumer.returncode or producer.returncode
        return CommandResult(command="tar stream", exit_code=exit_code, output=output)
