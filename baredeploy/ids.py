"""
Application identifier and run id helpers.
"""

import re
from datetime import datetime, timezone

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def repo_name(repo_url: str) -> str:
    """
    Derive the repository name from a git URL.

    ``https://github.com/acme/shop.git`` -> ``shop``;
    ``git@github.com:acme/shop`` -> ``shop``.
    """
    name = repo_url.strip().rstrip("/")
    name = re.split(r"[/:]", name)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name


def app_id(repo_url: str) -> str:
    """
    Application identifier used as the pm2 process name and systemd unit name.

    Characters outside ``[A-Za-z0-9_.-]`` are collapsed to ``-``.
    """
    name = _UNSAFE_CHARS.sub("-", repo_name(repo_url)).strip("-.")
    return name[:64] or "app"


def new_run_id(now: datetime = None) -> str:
    """
    Generate a run id in format: YYYYmmdd_HHMMSS (UTC).

    The run id names the per-run log file.
    """
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y%m%d_%H%M%S")
