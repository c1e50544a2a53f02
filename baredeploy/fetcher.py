"""
Local working copy management and local prerequisite checks.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .exceptions import LocalToolMissing, ProvisioningFailure
from .redact import authenticated_url, redact_string

logger = logging.getLogger(__name__)

TRANSFER_TOOLS = ("rsync", "tar")


def check_local_tools(required: Sequence[str] = ("git", "ssh"), transfer: bool = True) -> List[str]:
    """
    Make sure the local tools a run needs are on PATH.

    Args:
        required: Tools that must all be present
        transfer: Also require rsync or tar for the source transfer

    Returns:
        The tools found, in check order

    Raises:
        LocalToolMissing: Naming the first missing tool
    """
    found: List[str] = []
    for tool in required:
        if not shutil.which(tool):
            raise LocalToolMissing(f"Required local tool '{tool}' is not installed", hint=f"install {tool} and retry")
        found.append(tool)

    if transfer:
        available = [tool for tool in TRANSFER_TOOLS if shutil.which(tool)]
        if not available:
            raise LocalToolMissing("Neither rsync nor tar is installed locally", hint="install rsync")
        if "rsync" not in available:
            logger.warning("rsync not found locally, source will be transferred with tar over ssh")
        found.extend(available)
    return found


def _git(args: List[str], cwd: Optional[Path] = None, secrets: Sequence[Optional[str]] = ()) -> str:
    env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
    display = redact_string(" ".join(["git", *args]), secrets)
    logger.debug(f"{display} (cwd={cwd or '.'})")
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=str(cwd) if cwd else None,
            env=env,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except FileNotFoundError:
        raise LocalToolMissing("Required local tool 'git' is not installed")
    except subprocess.CalledProcessError as e:
        detail = redact_string((e.stderr or e.stdout or "").strip(), secrets)
        raise ProvisioningFailure(f"{display} failed: {detail}")
    return proc.stdout


def sync_local_repo(repo_url: str, branch: str, dest: Path, token: Optional[str] = None) -> Tuple[Path, str]:
    """
    Bring the local working copy at ``dest`` to the tip of ``branch``.

    An existing clone is fetched, checked out and pulled; otherwise the branch
    is cloned fresh. The token is only ever passed to git inside the URL.

    Returns:
        (working copy path, short commit sha)

    Raises:
        ProvisioningFailure: If any git command fails
    """
    url = authenticated_url(repo_url, token)
    secrets = [token]

    if (dest / ".git").is_dir():
        logger.info(f"Updating existing working copy at {dest}")
        _git(["remote", "set-url", "origin", url], cwd=dest, secrets=secrets)
        _git(["fetch", "--all", "--prune"], cwd=dest, secrets=secrets)
        _git(["checkout", branch], cwd=dest, secrets=secrets)
        _git(["pull", "origin", branch], cwd=dest, secrets=secrets)
    else:
        if dest.exists():
            raise ProvisioningFailure(f"{dest} exists but is not a git working copy", hint="remove it and retry")
        logger.info(f"Cloning {redact_string(repo_url, secrets)} ({branch}) into {dest}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        _git(["clone", "--branch", branch, url, str(dest)], secrets=secrets)

    sha = _git(["rev-parse", "--short", "HEAD"], cwd=dest, secrets=secrets).strip()
    return dest, sha
