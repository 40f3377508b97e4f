# layoutlens/slices.py
from __future__ import annotations

import hashlib
import logging
import os
import uuid
from pathlib import Path
from typing import Optional

from layoutlens.imaging import Toolchain

logger = logging.getLogger("layoutlens.slices")

MAX_SLICE_HEIGHT = 4096
CACHE_DIR_NAME = ".cache"


def _as_int(raw: Optional[str]) -> int:
    try:
        return int(float(raw)) if raw else 0
    except (TypeError, ValueError, OverflowError):
        return 0


def clamp_slice(top_raw: Optional[str], height_raw: Optional[str]) -> tuple[int, int]:
    top = max(0, _as_int(top_raw))
    height = max(1, min(MAX_SLICE_HEIGHT, _as_int(height_raw)))
    return top, height


def slice_cache_key(abs_path: str, top: int, height: int) -> str:
    return hashlib.sha1(f"{abs_path}_{top}_{height}".encode("utf-8")).hexdigest()


class SliceCache:
    """Derived slices under ``<run_dir>/.cache``; append-only, no locking."""

    def __init__(self, run_dir: str | Path, toolchain: Toolchain) -> None:
        self.root = Path(run_dir) / CACHE_DIR_NAME
        self.toolchain = toolchain

    def path_for(self, abs_path: str, top: int, height: int) -> Path:
        return self.root / f"{slice_cache_key(abs_path, top, height)}_slice.jpg"

    async def get_or_build(self, src: Path, top: int, height: int) -> Optional[Path]:
        out = self.path_for(str(src), top, height)
        if out.exists():
            return out

        image = await self.toolchain.size(src)
        if image is None:
            logger.warning("No dimensions for %s; serving original", src)
            return None

        self.root.mkdir(parents=True, exist_ok=True)
        # racing builders each write their own temp file; the last rename wins
        tmp = out.with_name(f"{out.stem}.{uuid.uuid4().hex}.tmp.jpg")
        try:
            if not await self.toolchain.crop(src, tmp, top=top, height=height, image=image):
                logger.warning("All crop tools failed for %s (top=%d height=%d)", src, top, height)
                return None
            os.replace(tmp, out)
        finally:
            tmp.unlink(missing_ok=True)
        logger.info("Built slice %s top=%d height=%d -> %s", src.name, top, height, out.name)
        return out
