"""
Local state locations for baredeploy runs.

Everything lives under ``$BAREDEPLOY_HOME`` (default ``.baredeploy``):

    logs/deploy_<run id>.log   per-run log
    workspace/<repo name>/     local working copy
"""

import os
from pathlib import Path


def get_baredeploy_home() -> Path:
    """
    Get the baredeploy home directory.

    Returns:
        Path: baredeploy home directory
    """
    home = os.environ.get("BAREDEPLOY_HOME", ".baredeploy")
    return Path(home).resolve()


def get_logs_dir() -> Path:
    logs_dir = get_baredeploy_home() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def get_run_log_path(run_id: str) -> Path:
    """
    Path of the log file for a run.

    Args:
        run_id: Run id from ``ids.new_run_id``

    Returns:
        Path: ``logs/deploy_<run id>.log``
    """
    return get_logs_dir() / f"deploy_{run_id}.log"


def get_workspace_dir(repo_name: str) -> Path:
    """
    Directory holding the local working copy of a repository.

    Raises:
        ValueError: If the repository name would escape the workspace
    """
    if not repo_name or repo_name in (".", "..") or "/" in repo_name or "\\" in repo_name:
        raise ValueError(f"Invalid repository name: {repo_name!r}")
    workspace = get_baredeploy_home() / "workspace"
    workspace.mkdir(parents=True, exist_ok=True)
    return workspace / repo_name
