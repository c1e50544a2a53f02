"""
Python recipe: interpreter + venv from the distribution, pip/pipenv
dependencies inside ./venv, systemd supervision.
"""

from typing import List, Optional

from ..analyzer.profile import RuntimeKind, RuntimeProfile
from ..analyzer.walk import has_file, procfile_web
from .base import InstallPlan, PathLike, Recipe, StartCommand, apt_steps, first_candidate, yum_steps

VENV_PYTHON = "./venv/bin/python"


def interpreter(profile: RuntimeProfile) -> str:
    """``python3`` unless a specific version was requested."""
    if profile.version:
        return f"python{profile.version}"
    return "python3"


class PythonRecipe(Recipe):
    runtime = RuntimeKind.PYTHON

    def install_plan(self, profile: RuntimeProfile) -> InstallPlan:
        py = interpreter(profile)
        return InstallPlan(
            binary=py,
            version_command=f"{py} --version",
            # the venv module is packaged separately on Debian/Ubuntu
            probe=f"command -v {py} >/dev/null 2>&1 && {py} -m venv --help >/dev/null 2>&1",
            steps={
                "apt": apt_steps(py, f"{py}-venv", "python3-pip"),
                "yum": yum_steps(py, "python3-pip"),
            },
        )

    def dependency_steps(self, project_root: Optional[PathLike], profile: RuntimeProfile) -> List[str]:
        py = interpreter(profile)
        venv = [
            f"{py} -m venv venv",
            "./venv/bin/pip install --upgrade pip",
        ]
        # the start command runs from ./venv even without a manifest
        if has_file(project_root, "requirements.txt"):
            return venv + ["./venv/bin/pip install -r requirements.txt"]
        if has_file(project_root, "Pipfile"):
            # --system targets the interpreter on PATH, which is the activated venv
            return venv + [
                "./venv/bin/pip install pipenv",
                ". venv/bin/activate && pipenv install --deploy --system",
            ]
        if has_file(project_root, "pyproject.toml"):
            return venv + ["./venv/bin/pip install ."]
        return venv

    def start_command(self, project_root: Optional[PathLike], port: Optional[int]) -> StartCommand:
        web = procfile_web(project_root) if project_root else None
        if web:
            return StartCommand(web, "Procfile web")
        return first_candidate(project_root, [
            ("app.py", f"{VENV_PYTHON} app.py"),
            ("main.py", f"{VENV_PYTHON} main.py"),
            ("manage.py", f"{VENV_PYTHON} manage.py runserver 0.0.0.0:{port}"),
        ])
