"""
Supervisor selection.

node -> pm2; python, ruby, php -> systemd; static and other run no process.
"""

from typing import Dict, List, Optional, Type

from ..analyzer.profile import RuntimeKind
from ..remote.executor import RemoteExecutor
from .base import RunningState, Supervisor
from .pm2 import ProcessManagerSupervisor
from .systemd import ServiceManagerSupervisor

SUPERVISOR_BY_RUNTIME: Dict[RuntimeKind, Type[Supervisor]] = {
    RuntimeKind.NODE: ProcessManagerSupervisor,
    RuntimeKind.PYTHON: ServiceManagerSupervisor,
    RuntimeKind.RUBY: ServiceManagerSupervisor,
    RuntimeKind.PHP: ServiceManagerSupervisor,
}

ALL_VARIANTS: List[Type[Supervisor]] = [ProcessManagerSupervisor, ServiceManagerSupervisor]


def supervisor_class(kind: RuntimeKind) -> Optional[Type[Supervisor]]:
    return SUPERVISOR_BY_RUNTIME.get(kind)


def supervisor_for(kind: RuntimeKind, executor: RemoteExecutor) -> Optional[Supervisor]:
    cls = supervisor_class(kind)
    return cls(executor) if cls else None


__all__ = [
    "ALL_VARIANTS",
    "ProcessManagerSupervisor",
    "RunningState",
    "ServiceManagerSupervisor",
    "Supervisor",
    "supervisor_class",
    "supervisor_for",
]
