"""
Node.js recipe: NodeSource packages, npm dependencies, pm2 supervision.
"""

from typing import List, Optional

from ..analyzer.profile import DEFAULT_VERSIONS, RuntimeKind, RuntimeProfile
from ..analyzer.walk import has_file, package_scripts
from .base import InstallPlan, PathLike, Recipe, StartCommand, first_candidate

LOCKFILES = ("package-lock.json", "npm-shrinkwrap.json")
ENTRY_FILES = ("app.js", "index.js", "server.js")


class NodeRecipe(Recipe):
    runtime = RuntimeKind.NODE

    def install_plan(self, profile: RuntimeProfile) -> InstallPlan:
        version = profile.version or DEFAULT_VERSIONS[RuntimeKind.NODE]
        major = version.split(".")[0]
        return InstallPlan(
            binary="node",
            version_command="node --version && npm --version",
            probe="command -v node >/dev/null 2>&1 && command -v npm >/dev/null 2>&1",
            steps={
                "apt": (
                    f"curl -fsSL https://deb.nodesource.com/setup_{major}.x | sudo -E bash -",
                    "sudo DEBIAN_FRONTEND=noninteractive apt-get install -y nodejs",
                ),
                "yum": (
                    f"curl -fsSL https://rpm.nodesource.com/setup_{major}.x | sudo bash -",
                    "sudo yum install -y nodejs",
                ),
            },
        )

    def dependency_steps(self, project_root: Optional[PathLike], profile: RuntimeProfile) -> List[str]:
        if not has_file(project_root, "package.json"):
            return []
        if any(has_file(project_root, name) for name in LOCKFILES):
            return ["npm ci --production"]
        return ["npm install --production"]

    def start_command(self, project_root: Optional[PathLike], port: Optional[int]) -> StartCommand:
        if has_file(project_root, "package.json"):
            scripts = package_scripts(project_root)
            if "start" in scripts:
                return StartCommand("npm start", "package.json scripts.start")
            if "dev" in scripts:
                return StartCommand("npm run dev", "package.json scripts.dev")

        return first_candidate(project_root, [(name, f"node {name}") for name in ENTRY_FILES])

    def notes(self, project_root: Optional[PathLike]) -> List[str]:
        scripts = package_scripts(project_root) if project_root else {}
        if "start" not in scripts and "dev" in scripts:
            return ["Running the 'dev' script in production; add a 'start' script if one exists"]
        return []
