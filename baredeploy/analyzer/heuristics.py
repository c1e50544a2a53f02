from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple

from .profile import DEFAULT_VERSIONS, RuntimeKind, RuntimeProfile
from .walk import has_dir, has_file

logger = logging.getLogger(__name__)

# Evidence checked in order; the first match wins. ("file", name) or ("dir", name).
EVIDENCE: List[Tuple[str, str, RuntimeKind]] = [
    ("file", "package.json", RuntimeKind.NODE),
    ("file", "requirements.txt", RuntimeKind.PYTHON),
    ("file", "Pipfile", RuntimeKind.PYTHON),
    ("file", "pyproject.toml", RuntimeKind.PYTHON),
    ("file", "Gemfile", RuntimeKind.RUBY),
    ("file", "composer.json", RuntimeKind.PHP),
    ("file", "index.php", RuntimeKind.PHP),
    ("file", "index.html", RuntimeKind.STATIC),
    ("dir", "static", RuntimeKind.STATIC),
    ("dir", "public", RuntimeKind.STATIC),
]

# Selectors that mean "look at the files".
PROBING_SELECTORS = {"auto", "other", ""}


def probe_runtime(project_root: Optional[str | Path]) -> Tuple[RuntimeKind, Optional[str]]:
    """Return the first matching runtime and the evidence that matched."""
    if project_root is None or not Path(project_root).is_dir():
        return RuntimeKind.OTHER, None

    for kind_of_entry, name, runtime in EVIDENCE:
        found = has_file(project_root, name) if kind_of_entry == "file" else has_dir(project_root, name)
        if found:
            return runtime, f"{name}/" if kind_of_entry == "dir" else name
    return RuntimeKind.OTHER, None


def classify(explicit_choice: Optional[str], project_root: Optional[str | Path], version: Optional[str] = None) -> RuntimeProfile:
    """
    Map a runtime selector and a working copy to a RuntimeProfile.

    An explicit concrete runtime wins as-is. ``auto`` (and ``other``) probe the
    working copy. Never raises: anything unrecognizable is ``other``.
    """
    choice = (explicit_choice or "auto").strip().lower()

    if choice in PROBING_SELECTORS:
        kind, evidence = probe_runtime(project_root)
        if evidence:
            logger.info(f"Detected {kind.value} runtime from {evidence}")
        else:
            logger.info("No runtime evidence found, treating application as 'other'")
    else:
        try:
            kind = RuntimeKind(choice)
        except ValueError:
            logger.warning(f"Unknown runtime selector {explicit_choice!r}, treating as 'other'")
            kind = RuntimeKind.OTHER
        evidence = "explicit"

    return RuntimeProfile(kind=kind, version=version or DEFAULT_VERSIONS.get(kind), evidence=evidence)
