"""
Process supervision contract.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional

from ..remote.executor import RemoteExecutor


class RunningState(str, Enum):
    UNKNOWN = "unknown"
    INACTIVE = "inactive"
    ACTIVE = "active"


class Supervisor(ABC):
    """Keeps one application process alive across crashes and reboots."""

    name: str = "supervisor"

    def __init__(self, executor: RemoteExecutor):
        self.executor = executor

    @abstractmethod
    def register(self, app_id: str, start_command: str, working_dir: str, env: Optional[Dict[str, str]] = None) -> None:
        """
        Make ``app_id`` known to the supervisor, replacing any previous registration.

        Raises:
            ProvisioningFailure: If any step exits non-zero
        """

    @abstractmethod
    def start(self, app_id: str) -> None:
        """Start (or restart) the process. Calling twice is harmless."""

    @abstractmethod
    def stop(self, app_id: str) -> None:
        """Stop the process. An unknown ``app_id`` counts as stopped."""

    @abstractmethod
    def status(self, app_id: str) -> RunningState:
        pass

    @staticmethod
    @abstractmethod
    def teardown_commands(app_id: str) -> List[str]:
        """Commands that remove every trace of ``app_id``; each tolerates absence."""
