"""
Runtime recipes: provisioning actions for each runtime kind.
"""

from .base import (
    MANUAL_STEP_REQUIRED,
    NOTHING_TO_START,
    InstallPlan,
    ProvisioningActions,
    Recipe,
    StartCommand,
)
from .registry import AVAILABLE_RECIPES, actions_for, recipe_for
from .smoke import SmokeTestResult, probe_loopback, probe_public_url

__all__ = [
    "AVAILABLE_RECIPES",
    "InstallPlan",
    "MANUAL_STEP_REQUIRED",
    "NOTHING_TO_START",
    "ProvisioningActions",
    "Recipe",
    "SmokeTestResult",
    "StartCommand",
    "actions_for",
    "probe_loopback",
    "probe_public_url",
    "recipe_for",
]
