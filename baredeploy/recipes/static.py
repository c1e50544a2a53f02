"""
Static sites: nginx serves the project directory, nothing else runs.
"""

from typing import List, Optional

from ..analyzer.profile import RuntimeKind, RuntimeProfile
from ..analyzer.walk import has_file
from .base import NOTHING_TO_START, InstallPlan, PathLike, Recipe, StartCommand


class StaticRecipe(Recipe):
    runtime = RuntimeKind.STATIC

    def install_plan(self, profile: RuntimeProfile) -> Optional[InstallPlan]:
        return None

    def dependency_steps(self, project_root: Optional[PathLike], profile: RuntimeProfile) -> List[str]:
        return []

    def start_command(self, project_root: Optional[PathLike], port: Optional[int]) -> StartCommand:
        return NOTHING_TO_START

    def notes(self, project_root: Optional[PathLike]) -> List[str]:
        if project_root and not has_file(project_root, "index.html"):
            return ["No index.html at the project root; nginx will answer 404 for /"]
        return []
