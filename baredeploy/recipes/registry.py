"""
Recipe registry: one recipe per runtime kind.
"""

from typing import Dict, Optional
import logging

from ..analyzer.profile import RuntimeKind, RuntimeProfile
from .base import PathLike, ProvisioningActions, Recipe
from .node import NodeRecipe
from .other import OtherRecipe
from .php import PhpRecipe
from .python import PythonRecipe
from .ruby import RubyRecipe
from .static import StaticRecipe

logger = logging.getLogger(__name__)


# Registry of all available recipes, keyed by the runtime they handle
AVAILABLE_RECIPES: Dict[RuntimeKind, Recipe] = {
    RuntimeKind.NODE: NodeRecipe(),
    RuntimeKind.PYTHON: PythonRecipe(),
    RuntimeKind.RUBY: RubyRecipe(),
    RuntimeKind.PHP: PhpRecipe(),
    RuntimeKind.STATIC: StaticRecipe(),
    RuntimeKind.OTHER: OtherRecipe(),
}


def recipe_for(kind: RuntimeKind) -> Recipe:
    """
    Raises:
        KeyError: If a runtime kind has no recipe (a programming error)
    """
    return AVAILABLE_RECIPES[kind]


def actions_for(
    profile: RuntimeProfile,
    project_root: Optional[PathLike] = None,
    port: Optional[int] = None,
    app_id: str = "app",
) -> ProvisioningActions:
    """
    Derive the provisioning actions for a runtime profile.

    Args:
        profile: Classified runtime
        project_root: Local working copy, used to pick dependency and start commands
        port: Application port, substituted into start commands that take one
        app_id: Name used for the pm2 process / systemd unit

    Returns:
        ProvisioningActions for the profile's runtime
    """
    recipe = recipe_for(profile.kind)
    actions = recipe.actions(profile, project_root=project_root, port=port, app_id=app_id)
    logger.debug(
        f"{profile.kind.value}: start={actions.start_command.command!r} "
        f"({actions.start_command.source}), {len(actions.install_dependencies)} dependency step(s)"
    )
    return actions
