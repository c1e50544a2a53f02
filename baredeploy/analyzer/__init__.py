from __future__ import annotations

from .heuristics import EVIDENCE, classify, probe_runtime
from .profile import DEFAULT_VERSIONS, RuntimeKind, RuntimeProfile

__all__ = ["EVIDENCE", "DEFAULT_VERSIONS", "RuntimeKind", "RuntimeProfile", "classify", "probe_runtime"]
