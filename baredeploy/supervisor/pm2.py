"""
pm2 process-manager variant, used for Node.js applications.
"""

import json
import logging
import shlex
from typing import Dict, List, Optional

from .base import RunningState, Supervisor

logger = logging.getLogger(__name__)


class ProcessManagerSupervisor(Supervisor):
    name = "pm2"

    def ensure_installed(self) -> None:
        if self.executor.has_command("pm2"):
            return
        logger.info("Installing pm2")
        self.executor.check("sudo npm install -g pm2", what="pm2 install")

    def enable_boot(self) -> None:
        """Hook pm2 into systemd so saved processes come back after reboot."""
        session = self.executor.session
        self.executor.check(
            f"sudo env PATH=$PATH:/usr/bin $(command -v pm2) startup systemd "
            f"-u {shlex.quote(session.user)} --hp {shlex.quote(session.home)}",
            what="pm2 startup",
        )

    def register(self, app_id: str, start_command: str, working_dir: str, env: Optional[Dict[str, str]] = None) -> None:
        self.ensure_installed()
        self.enable_boot()

        # delete-then-create so a changed start command replaces the old entry
        self.executor.run(f"pm2 delete {shlex.quote(app_id)}")

        env_prefix = " ".join(f"{k}={shlex.quote(str(v))}" for k, v in (env or {}).items())
        start = f"pm2 start {shlex.quote(start_command)} --name {shlex.quote(app_id)} --cwd {shlex.quote(working_dir)}"
        if env_prefix:
            start = f"{env_prefix} {start}"
        self.executor.check(start, cwd=working_dir, what="pm2 start")
        self.executor.check("pm2 save", what="pm2 save")

    def start(self, app_id: str) -> None:
        self.executor.check(f"pm2 restart {shlex.quote(app_id)}", what="pm2 restart")
        self.executor.check("pm2 save", what="pm2 save")

    def stop(self, app_id: str) -> None:
        result = self.executor.run(f"pm2 stop {shlex.quote(app_id)}")
        if not result.ok:
            logger.info(f"pm2 has no running process named {app_id}")

    def status(self, app_id: str) -> RunningState:
        result = self.executor.run("pm2 jlist")
        if not result.ok:
            return RunningState.UNKNOWN
        try:
            processes = parse_jlist(result.output)
        except ValueError:
            logger.warning("Could not parse pm2 jlist output")
            return RunningState.UNKNOWN

        for proc in processes:
            if proc.get("name") == app_id:
                status = (proc.get("pm2_env") or {}).get("status")
                return RunningState.ACTIVE if status == "online" else RunningState.INACTIVE
        return RunningState.INACTIVE

    @staticmethod
    def teardown_commands(app_id: str) -> List[str]:
        return [
            f"pm2 delete {shlex.quote(app_id)}",
            "pm2 save",
        ]


def parse_jlist(output: str) -> List[dict]:
    """
    Parse ``pm2 jlist`` output, skipping any banner printed before the JSON.

    Raises:
        ValueError: If no JSON list can be found
    """
    start = output.find("[")
    if start < 0:
        raise ValueError("no JSON list in pm2 output")
    data = json.loads(output[start:])
    if not isinstance(data, list):
        raise ValueError("pm2 jlist did not return a list")
    return [p for p in data if isinstance(p, dict)]
