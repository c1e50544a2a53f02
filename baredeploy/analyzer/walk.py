from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional


def read_text(path: str | Path, limit_bytes: int = 1_000_000) -> str:
    p = Path(path)
    try:
        if p.stat().st_size > limit_bytes:
            return ""  # too large, skip content
    except OSError:
        return ""

    for enc in ("utf-8", "utf-8-sig", "latin-1"):
        try:
            with open(p, "r", encoding=enc) as f:
                return f.read()
        except UnicodeDecodeError:
            continue
        except OSError:
            return ""
    return ""


def read_package_json(root: str | Path) -> Dict[str, Any]:
    """Parsed package.json, or {} when missing or malformed."""
    text = read_text(Path(root) / "package.json")
    if not text:
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def package_scripts(root: str | Path) -> Dict[str, str]:
    scripts = read_package_json(root).get("scripts") or {}
    if not isinstance(scripts, dict):
        return {}
    return {k: v for k, v in scripts.items() if isinstance(v, str) and v.strip()}


def procfile_web(root: str | Path) -> Optional[str]:
    """Command of the ``web:`` process in a Procfile, if any."""
    for line in read_text(Path(root) / "Procfile").splitlines():
        line = line.strip()
        if line.startswith("web:"):
            command = line[len("web:"):].strip()
            return command or None
    return None


def has_file(root: Optional[str | Path], name: str) -> bool:
    if root is None:
        return False
    return (Path(root) / name).is_file()


def has_dir(root: Optional[str | Path], name: str) -> bool:
    if root is None:
        return False
    return (Path(root) / name).is_dir()
