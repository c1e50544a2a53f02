"""
Remote command execution.
"""

from .executor import CommandResult, RemoteExecutor, RemoteSession
from .ssh import SSHExecutor

__all__ = ["CommandResult", "RemoteExecutor", "RemoteSession", "SSHExecutor"]
