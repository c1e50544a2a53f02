"""
Shared fixtures: an in-memory remote host and sample working copies.
"""

import json
import re
import shlex
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from baredeploy.config import DeploymentConfig
from baredeploy.remote.executor import CommandResult, RemoteExecutor, RemoteSession

UNIT_DIR = "/etc/systemd/system"


class FakeHost(RemoteExecutor):
    """
    Interprets the command vocabulary baredeploy sends to a host.

    Tracks installed binaries, files, pm2 processes, systemd units and nginx
    state so tests can assert on the resulting host, not only on the commands.
    Unknown commands succeed with no output.
    """

    def __init__(
        self,
        session: Optional[RemoteSession] = None,
        binaries: Sequence[str] = (),
        package_manager: Optional[str] = "apt",
        reachable: bool = True,
    ):
        super().__init__(session or RemoteSession(host="203.0.113.10", user="deploy", key_path="/keys/id_ed25519"))
        self.binaries = set(binaries)
        if package_manager == "apt":
            self.binaries.add("apt-get")
        elif package_manager == "yum":
            self.binaries.add("yum")
        self.reachable = reachable
        self.unreachable_output = "ssh: connect to host 203.0.113.10 port 22: Connection refused"
        self.files: Dict[str, str] = {}
        self.dirs = set()
        self.pm2: Dict[str, dict] = {}
        self.units: Dict[str, dict] = {}
        self.nginx_active = False
        self.nginx_valid = True
        self.app_crashes = False
        self.loopback_code = "200"
        self.failures: Dict[str, tuple] = {}
        self.commands: List[str] = []
        self.syncs: List[tuple] = []
        self.sync_exit_code = 0

    # helpers for assertions

    def fail_on(self, fragment: str, exit_code: int = 1, output: str = "boom") -> None:
        self.failures[fragment] = (exit_code, output)

    def ran(self, fragment: str) -> bool:
        return any(fragment in c for c in self.commands)

    def count(self, fragment: str) -> int:
        return sum(1 for c in self.commands if fragment in c)

    def index_of(self, fragment: str) -> int:
        for i, c in enumerate(self.commands):
            if fragment in c:
                return i
        raise AssertionError(f"{fragment!r} never ran")

    # RemoteExecutor

    def run(self, command, *, cwd=None, input_text=None, timeout=None) -> CommandResult:
        self.commands.append(command)
        if not self.reachable:
            return CommandResult(command, 255, self.unreachable_output)
        for fragment, (code, output) in self.failures.items():
            if fragment in command:
                return CommandResult(command, code, output)
        code, output = self._interpret(command, input_text)
        return CommandResult(command, code, output)

    def sync_directory(self, local_dir, remote_dir, excludes=()) -> CommandResult:
        self.syncs.append((local_dir, remote_dir, tuple(excludes)))
        if self.sync_exit_code == 0:
            self.dirs.add(remote_dir)
        return CommandResult("sync", self.sync_exit_code, "" if self.sync_exit_code == 0 else "rsync error")

    # interpretation

    def _interpret(self, command: str, input_text: Optional[str]):
        if command == "echo connected":
            return 0, "connected\n"

        if command.startswith("command -v") and "||" not in command:
            needed = re.findall(r"command -v (\S+)", command) + re.findall(r"(\S+) -m venv", command)
            return (0, "") if all(b in self.binaries for b in needed) else (1, "")

        if "--version" in command or command.startswith("nginx -v"):
            return 0, f"{command.split()[0]} 1.0.0\n"

        if "apt-get install" in command or "yum install" in command:
            packages = command.split("-y", 1)[1].split()
            self._install_packages(packages)
            return 0, ""

        if "gem install bundler" in command:
            self.binaries.add("bundle")
            return 0, ""

        if "npm install -g pm2" in command:
            self.binaries.add("pm2")
            return 0, ""

        if " tee " in f" {command}":
            tokens = shlex.split(command)
            path = tokens[tokens.index("tee") + 1]
            self.files[path] = input_text or ""
            return 0, ""

        if command.startswith("test -e"):
            path = shlex.split(command)[2]
            return (0, "") if path in self.files or path in self.dirs else (1, "")

        if command.startswith("sudo rm -rf"):
            target = shlex.split(command)[3]
            self.dirs = {d for d in self.dirs if not (d == target or d.startswith(target + "/"))}
            self.files = {f: c for f, c in self.files.items() if not f.startswith(target + "/")}
            return 0, ""

        if command.startswith("sudo rm -f"):
            for path in shlex.split(command)[3:]:
                self.files.pop(path, None)
            return 0, ""

        if command.startswith("sudo ln -sf"):
            _, _, _, src, dst = shlex.split(command)
            self.files[dst] = self.files.get(src, "")
            return 0, ""

        if command.startswith("sudo mkdir -p"):
            first = command.split("&&")[0]
            for path in shlex.split(first)[3:]:
                self.dirs.add(path)
            return 0, ""

        if command == "sudo nginx -t":
            if self.nginx_valid:
                return 0, "nginx: configuration file /etc/nginx/nginx.conf test is successful\n"
            return 1, "nginx: configuration file /etc/nginx/nginx.conf test failed\n"

        if command.startswith("curl -s -o /dev/null"):
            return (7, "000") if self.loopback_code == "000" else (0, self.loopback_code)

        tokens = command.split()
        if "systemctl" in tokens:
            return self._systemctl(tokens[tokens.index("systemctl") + 1:])
        if "pm2" in tokens and not command.startswith("sudo env"):
            if "pm2" not in self.binaries:
                return 127, "bash: pm2: command not found"
            return self._pm2(shlex.split(command))

        return 0, ""

    def _install_packages(self, packages: List[str]) -> None:
        for pkg in packages:
            self.binaries.add(pkg)
            if pkg == "nodejs":
                self.binaries.update({"node", "npm"})
            elif pkg.startswith("ruby"):
                self.binaries.add("ruby")
            elif pkg == "php" or (pkg.startswith("php") and pkg.endswith("-cli")):
                self.binaries.add("php")

    def _systemctl(self, args: List[str]):
        verb = args[0] if args else ""
        name = args[-1] if len(args) > 1 else ""
        unit_known = f"{UNIT_DIR}/{name}.service" in self.files

        if verb == "daemon-reload":
            self.units = {n: u for n, u in self.units.items() if f"{UNIT_DIR}/{n}.service" in self.files}
            for n in [f[len(UNIT_DIR) + 1:-len(".service")] for f in self.files if f.startswith(UNIT_DIR + "/")]:
                self.units.setdefault(n, {"enabled": False, "active": False})
            return 0, ""
        if name == "nginx":
            if verb == "enable" and "--now" in args:
                if "nginx" not in self.binaries:
                    return 1, "Failed to enable unit: Unit file nginx.service does not exist."
                self.nginx_active = True
                return 0, ""
            if verb == "is-active":
                return (0, "active\n") if self.nginx_active else (3, "inactive\n")
            if verb == "reload":
                return (0, "") if self.nginx_active else (1, "nginx.service is not active, cannot reload.")
            return 0, ""
        if verb == "enable" and "--now" in args:
            return 0, ""

        unit = self.units.get(name)
        if verb == "enable":
            if not unit_known or unit is None:
                return 1, f"Failed to enable unit: Unit file {name}.service does not exist."
            unit["enabled"] = True
            return 0, ""
        if verb == "disable":
            if unit is None:
                return 1, f"Failed to disable unit: Unit file {name}.service does not exist."
            unit["enabled"] = False
            return 0, ""
        if verb == "restart":
            if unit is None:
                return 5, f"Failed to restart {name}.service: Unit {name}.service not found."
            unit["active"] = not self.app_crashes
            return 0, ""
        if verb == "stop":
            if unit is None:
                return 5, f"Failed to stop {name}.service: Unit {name}.service not loaded."
            unit["active"] = False
            return 0, ""
        if verb == "is-active":
            if unit is not None and unit["active"]:
                return 0, "active\n"
            if unit is not None and self.app_crashes:
                return 3, "activating\n"
            return 3, "inactive\n"
        return 0, ""

    def _pm2(self, tokens: List[str]):
        i = tokens.index("pm2")
        verb = tokens[i + 1] if len(tokens) > i + 1 else ""
        status = "errored" if self.app_crashes else "online"

        if verb == "start":
            name = tokens[tokens.index("--name") + 1]
            cwd = tokens[tokens.index("--cwd") + 1] if "--cwd" in tokens else None
            env = dict(t.split("=", 1) for t in tokens[:i])
            self.pm2[name] = {"status": status, "command": tokens[i + 2], "cwd": cwd, "env": env}
            return 0, ""
        if verb in ("delete", "restart", "stop"):
            name = tokens[i + 2]
            if name not in self.pm2:
                return 1, f"[PM2][ERROR] Process or Namespace {name} not found"
            if verb == "delete":
                del self.pm2[name]
            elif verb == "restart":
                self.pm2[name]["status"] = status
            else:
                self.pm2[name]["status"] = "stopped"
            return 0, ""
        if verb == "jlist":
            return 0, json.dumps([{"name": n, "pm2_env": {"status": p["status"]}} for n, p in self.pm2.items()])
        return 0, ""


@pytest.fixture
def fake_host():
    return FakeHost()


def make_config(**overrides) -> DeploymentConfig:
    values = dict(
        repo_url="https://github.com/acme/shop.git",
        remote_user="deploy",
        remote_host="203.0.113.10",
        ssh_key="/keys/id_ed25519",
        app_port=3000,
    )
    values.update(overrides)
    return DeploymentConfig(**values)


def write_files(root: Path, files: Dict[str, str]) -> Path:
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


def syncer_for(working_copy: Path):
    """A SyncLocalRepo stand-in returning an already prepared working copy."""
    def _sync(config, dest):
        return working_copy, "abc1234"
    return _sync


def no_tools_check(**kwargs):
    return ["git", "ssh", "rsync"]


@pytest.fixture
def node_app(tmp_path):
    return write_files(tmp_path / "node_app", {
        "package.json": json.dumps({"name": "shop", "scripts": {"start": "node server.js"}}),
        "package-lock.json": "{}",
        "server.js": "require('http').createServer((q, s) => s.end('ok')).listen(process.env.PORT)",
    })


@pytest.fixture
def python_app(tmp_path):
    return write_files(tmp_path / "python_app", {
        "requirements.txt": "flask==3.0.0\n",
        "app.py": "from flask import Flask\napp = Flask(__name__)\n",
    })


@pytest.fixture
def static_app(tmp_path):
    return write_files(tmp_path / "static_app", {
        "index.html": "<h1>hello</h1>",
        "css/site.css": "body {}",
    })
