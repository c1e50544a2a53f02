"""
systemd service-manager variant, used for Python, Ruby and PHP applications.
"""

from __future__ import annotations

import logging
import shlex
from typing import Dict, List, Optional

from .base import RunningState, Supervisor

logger = logging.getLogger(__name__)

UNIT_DIR = "/etc/systemd/system"


def unit_path(app_id: str) -> str:
    return f"{UNIT_DIR}/{app_id}.service"


def _exec_quote(command: str) -> str:
    """Quote a shell line for an ExecStart argument (no systemd expansion)."""
    escaped = (
        command.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("%", "%%")
        .replace("$", "$$")
    )
    return f'"{escaped}"'


def render_unit(app_id: str, start_command: str, working_dir: str, user: str, env: Optional[Dict[str, str]] = None) -> str:
    environment = {"PYTHONUNBUFFERED": "1"}
    environment.update(env or {})
    env_lines = "\n".join(f'Environment="{k}={v}"' for k, v in environment.items())

    return f"""
[Unit]
Description={app_id} (managed by baredeploy)
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
User={user}
WorkingDirectory={working_dir}
{env_lines}
ExecStart=/bin/bash -c {_exec_quote(start_command)}
Restart=always
RestartSec=5

[Install]
WantedBy=multi-user.target
""".strip() + "\n"


class ServiceManagerSupervisor(Supervisor):
    name = "systemd"

    def register(self, app_id: str, start_command: str, working_dir: str, env: Optional[Dict[str, str]] = None) -> None:
        unit = render_unit(app_id, start_command, working_dir, self.executor.session.user, env)
        self.executor.write_file(unit_path(app_id), unit)
        self.executor.check("sudo systemctl daemon-reload", what="systemctl daemon-reload")
        self.executor.check(f"sudo systemctl enable {shlex.quote(app_id)}", what=f"enabling {app_id}")

    def start(self, app_id: str) -> None:
        self.executor.check(f"sudo systemctl restart {shlex.quote(app_id)}", what=f"starting {app_id}")

    def stop(self, app_id: str) -> None:
        result = self.executor.run(f"sudo systemctl stop {shlex.quote(app_id)}")
        if not result.ok:
            logger.info(f"systemd unit {app_id} was not loaded")

    def status(self, app_id: str) -> RunningState:
        result = self.executor.run(f"systemctl is-active {shlex.quote(app_id)}")
        state = result.output.strip().splitlines()[-1].strip() if result.output.strip() else ""
        if state == "active":
            return RunningState.ACTIVE
        if state in ("inactive", "failed", "activating", "deactivating", "unknown"):
            return RunningState.INACTIVE
        return RunningState.UNKNOWN

    @staticmethod
    def teardown_commands(app_id: str) -> List[str]:
        quoted = shlex.quote(app_id)
        return [
            f"sudo systemctl stop {quoted}",
            f"sudo systemctl disable {quoted}",
            f"sudo rm -f {unit_path(app_id)}",
            "sudo systemctl daemon-reload",
        ]
