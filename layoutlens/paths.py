# layoutlens/paths.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional


def _normalize(p: str) -> str:
    return os.path.normpath(p).rstrip(os.sep) or os.sep


def is_path_inside(parent: str, child: str) -> bool:
    """Lexical containment: ``child`` is ``parent`` or lives below it."""
    a = _normalize(parent)
    b = _normalize(child)
    if a == os.sep:
        return b.startswith(os.sep)
    return b == a or b.startswith(a + os.sep)


def resolve_servable(run_dir: str | Path, requested: str) -> Optional[Path]:
    """Return the requested path if it may be served from ``run_dir``.

    The lexical check runs before anything touches the filesystem. A second
    check on resolved paths stops symlinks that point out of the run.
    """
    if not requested or "\0" in requested or not os.path.isabs(requested):
        return None
    root = os.path.abspath(str(run_dir))
    if not is_path_inside(root, requested):
        return None
    if not is_path_inside(os.path.realpath(root), os.path.realpath(requested)):
        return None
    return Path(_normalize(requested))
