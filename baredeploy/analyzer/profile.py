from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RuntimeKind(str, Enum):
    NODE = "node"
    PYTHON = "python"
    RUBY = "ruby"
    PHP = "php"
    STATIC = "static"
    OTHER = "other"


# Versions used when the caller does not ask for one. Python uses the
# distribution's python3.
DEFAULT_VERSIONS = {
    RuntimeKind.NODE: "18",
    RuntimeKind.PHP: "8.1",
}

# Runtimes whose interpreter and dependencies are installed automatically.
AUTO_PROVISIONED = frozenset({RuntimeKind.NODE, RuntimeKind.PYTHON, RuntimeKind.RUBY, RuntimeKind.PHP})


@dataclass(frozen=True)
class RuntimeProfile:
    """Classification result for one application."""
    kind: RuntimeKind
    version: Optional[str] = None
    evidence: Optional[str] = None   # matched file/dir, or "explicit"

    @property
    def auto_provisioned(self) -> bool:
        return self.kind in AUTO_PROVISIONED

    @property
    def supervised(self) -> bool:
        """Whether a long-running process must be kept alive for this runtime."""
        return self.auto_provisioned

    def describe(self) -> str:
        text = self.kind.value
        if self.version:
            text += f" {self.version}"
        if self.evidence and self.evidence != "explicit":
            text += f" (found {self.evidence})"
        return text
