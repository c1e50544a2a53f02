"""
Unrecognized applications: the source is transferred and proxied, but
starting it is left to the operator.
"""

from typing import List, Optional

from ..analyzer.profile import RuntimeKind, RuntimeProfile
from .base import MANUAL_STEP_REQUIRED, InstallPlan, PathLike, Recipe, StartCommand


class OtherRecipe(Recipe):
    runtime = RuntimeKind.OTHER

    def install_plan(self, profile: RuntimeProfile) -> Optional[InstallPlan]:
        return None

    def dependency_steps(self, project_root: Optional[PathLike], profile: RuntimeProfile) -> List[str]:
        return []

    def start_command(self, project_root: Optional[PathLike], port: Optional[int]) -> StartCommand:
        return MANUAL_STEP_REQUIRED

    def notes(self, project_root: Optional[PathLike]) -> List[str]:
        return ["Runtime not recognized: start the application manually on the configured port"]
