"""Logging helpers for LayoutLens."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional


def configure_logging(level: int | str = logging.INFO, log_path: Optional[str] = None) -> None:
    """Configure default logging if no handlers are present."""
    root = logging.getLogger()
    if root.handlers:
        return
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_path:
        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )
