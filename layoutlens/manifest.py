# layoutlens/manifest.py
from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

from pydantic import BaseModel

from layoutlens.config import CaptureConfig

MANIFEST_NAME = "manifest.json"


class Shot(BaseModel):
    locale: str
    breakpoint: int
    path: str
    width: int
    # real height comes from /meta; the orchestrator never measures it
    height: int = 0
    ok: bool
    error: Optional[str] = None


class RunManifest(BaseModel):
    id: str
    url: str
    breakpoints: list[int]
    locales: list[str]
    cookie: dict[str, Any]
    behavior: dict[str, Any]
    out_dir: str
    shots: list[Shot] = []

    @classmethod
    def for_config(cls, config: CaptureConfig, run_id: Optional[str] = None) -> "RunManifest":
        raw = config.to_json_dict()
        return cls(
            id=run_id or new_run_id(),
            url=config.url,
            breakpoints=list(config.breakpoints),
            locales=list(config.locales),
            cookie=raw["cookie"],
            behavior=raw.get("behavior", {}),
            out_dir=config.out_dir,
        )


def new_run_id() -> str:
    return str(time.time_ns() // 1_000_000)


def manifest_path(out_dir: str | Path) -> Path:
    return Path(out_dir) / MANIFEST_NAME


def write_manifest(manifest: RunManifest, out_dir: str | Path | None = None) -> Path:
    path = manifest_path(out_dir or manifest.out_dir)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(manifest.model_dump_json(indent=2, exclude_none=True), encoding="utf-8")
    os.replace(tmp, path)
    return path


def read_manifest(out_dir: str | Path) -> RunManifest:
    return RunManifest.model_validate_json(manifest_path(out_dir).read_text(encoding="utf-8"))


def file_ref(abs_path: str) -> str:
    """Server-relative reference for a captured file."""
    return f"/file?abs={quote(abs_path, safe='')}"


def rewrite_for_serving(raw: dict[str, Any], port: int) -> dict[str, Any]:
    """Point every shot at /file on this server and stamp _servedBy."""
    rewritten = dict(raw)
    rewritten["_servedBy"] = f"http://localhost:{port}"
    rewritten["shots"] = [{**shot, "path": file_ref(str(shot.get("path", "")))} for shot in raw.get("shots", [])]
    return rewritten
