"""
Error taxonomy for deployment and teardown runs.

Every fatal condition raised by a stage is a ``DeployError``. The pipeline tags
the error with the stage it happened in before re-raising, so callers can report
where a run stopped.
"""

from typing import Optional


class DeployError(Exception):
    """Base class for all fatal deployment errors."""

    def __init__(self, message: str, stage: Optional[str] = None, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.hint = hint

    def __str__(self) -> str:
        return self.message


class ConfigurationError(DeployError):
    """Configuration is missing or malformed."""


class LocalToolMissing(DeployError):
    """A required local tool (git, ssh, rsync/tar) is not installed."""


class RemoteUnreachable(DeployError):
    """The remote host cannot be reached or rejects key authentication."""


class ProvisioningFailure(DeployError):
    """A remote provisioning command exited non-zero."""


class ValidationFailure(DeployError):
    """Post-deployment validation did not pass."""
