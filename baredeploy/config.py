"""
Deployment configuration.

A ``DeploymentConfig`` is built once per run from, in increasing precedence,
a YAML file, environment variables and command-line options (the last two are
merged by the CLI before they reach ``load_config``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .exceptions import ConfigurationError
from .ids import app_id, repo_name

RUNTIME_CHOICES = ("auto", "node", "python", "ruby", "php", "static", "other")

_VERSION_PATTERN = re.compile(r"^\d+(\.\d+){0,2}$")


@dataclass(frozen=True)
class DeploymentConfig:
    """Immutable inputs of a deployment or teardown run."""
    repo_url: str = ""
    remote_user: str = ""
    remote_host: str = ""
    ssh_key: str = ""
    app_port: Any = None
    branch: str = "main"
    access_token: Optional[str] = field(default=None, repr=False)
    project_dir: Optional[str] = None
    runtime: str = "auto"
    runtime_version: Optional[str] = None
    ssh_port: int = 22

    @property
    def repo_name(self) -> str:
        return repo_name(self.repo_url)

    @property
    def app_id(self) -> str:
        return app_id(self.repo_url)

    @property
    def remote_project_dir(self) -> str:
        if self.project_dir:
            return self.project_dir.rstrip("/") or "/"
        return f"/home/{self.remote_user}/apps/{self.repo_name}"

    @property
    def port(self) -> int:
        """Application port as an int (only meaningful after ``validate``)."""
        return int(self.app_port)

    def validate(self) -> "DeploymentConfig":
        """
        Check every field needed before touching the remote host.

        Returns:
            self, so calls can be chained

        Raises:
            ConfigurationError: On the first problem found
        """
        required = {
            "repo_url": "repository URL",
            "remote_user": "remote user",
            "remote_host": "remote host",
            "ssh_key": "SSH key path",
        }
        for name, label in required.items():
            value = getattr(self, name)
            if not value or not str(value).strip():
                raise ConfigurationError(f"Missing {label}", hint=f"set '{name}' or pass the matching option")

        if not self.repo_name:
            raise ConfigurationError(f"Cannot derive a repository name from {self.repo_url!r}")

        _check_port(self.app_port, "application port")
        _check_port(self.ssh_port, "SSH port")

        if self.runtime not in RUNTIME_CHOICES:
            raise ConfigurationError(
                f"Unknown runtime {self.runtime!r}",
                hint=f"choose one of: {', '.join(RUNTIME_CHOICES)}",
            )

        if self.runtime_version and not _VERSION_PATTERN.match(str(self.runtime_version)):
            raise ConfigurationError(
                f"Invalid runtime version {self.runtime_version!r}",
                hint="use a numeric version such as 18, 3.11 or 8.1",
            )

        if not self.branch or not self.branch.strip():
            raise ConfigurationError("Branch must not be empty")

        if self.project_dir is not None and not self.project_dir.startswith("/"):
            raise ConfigurationError(f"Remote project directory must be absolute: {self.project_dir!r}")

        return self


def _check_port(value: Any, label: str) -> None:
    if value is None or value == "":
        raise ConfigurationError(f"Missing {label}")
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid {label}: {value!r} is not a number")
    if isinstance(value, bool) or str(port) != str(value).strip():
        raise ConfigurationError(f"Invalid {label}: {value!r} is not a number")
    if not 1 <= port <= 65535:
        raise ConfigurationError(f"Invalid {label}: {port} is outside 1-65535")


def read_config_file(path: str | Path) -> Dict[str, Any]:
    """
    Read a YAML config file whose keys are ``DeploymentConfig`` field names.

    Raises:
        ConfigurationError: If the file is missing, unparsable, not a mapping,
            or names unknown keys
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Config file {config_path} is not valid YAML: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    known = {f.name for f in fields(DeploymentConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown config keys in {config_path}: {', '.join(unknown)}")
    return data


def load_config(config_file: Optional[str | Path] = None, overrides: Optional[Dict[str, Any]] = None) -> DeploymentConfig:
    """
    Build a ``DeploymentConfig``.

    Args:
        config_file: Optional YAML file
        overrides: Values from environment/command line; ``None`` values are ignored

    Returns:
        DeploymentConfig (not yet validated)
    """
    values: Dict[str, Any] = {}
    if config_file:
        values.update(read_config_file(config_file))
    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    for key in ("runtime_version", "branch", "runtime"):
        if key in values and values[key] is not None:
            values[key] = str(values[key])

    return DeploymentConfig(**values)
