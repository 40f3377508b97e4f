# layoutlens/jobs.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from layoutlens.capture import run_capture
from layoutlens.config import CaptureConfig, ConfigError
from layoutlens.manifest import RunManifest, new_run_id

logger = logging.getLogger("layoutlens.jobs")

CONFIG_NAME = "config.json"


def prepare_job(runs_root: str | Path, request: dict[str, Any], run_id: Optional[str] = None) -> CaptureConfig:
    """Create ``<runs_root>/<run_id>/`` and write its config.json.

    ``request`` carries every capture field except ``outDir``, which always
    points at the fresh run directory.
    """
    if not isinstance(request, dict):
        raise ConfigError("job request must be a JSON object")
    out_dir = Path(runs_root).expanduser().absolute() / (run_id or new_run_id())
    config = CaptureConfig.from_mapping({**request, "outDir": str(out_dir)})
    out_dir.mkdir(parents=True, exist_ok=True)
    (out_dir / CONFIG_NAME).write_text(json.dumps(config.to_json_dict(), indent=2), encoding="utf-8")
    logger.info("Prepared run directory %s", out_dir)
    return config


async def run_job(
    runs_root: str | Path, request: dict[str, Any], playwright_factory: Optional[Callable] = None
) -> RunManifest:
    config = prepare_job(runs_root, request)
    return await run_capture(config, playwright_factory)
