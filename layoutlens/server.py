# layoutlens/server.py
"""Read-only HTTP view of a finished run directory."""

from __future__ import annotations

import json
import logging
import mimetypes
import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response

from layoutlens.config import DEFAULT_PORT
from layoutlens.imaging import Toolchain, default_toolchain
from layoutlens.manifest import manifest_path, rewrite_for_serving
from layoutlens.paths import resolve_servable
from layoutlens.slices import SliceCache, clamp_slice

logger = logging.getLogger("layoutlens.server")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

LANDING_HTML = (
    '<!doctype html><html><head><meta charset="utf-8"/><title>LayoutLens Run Server</title></head>'
    "<body><h1>LayoutLens Run Server</h1>"
    "<p>Use <code>/manifest</code> to fetch the manifest, <code>/meta?abs=</code> for image size "
    "and <code>/file?abs=</code> to fetch files.</p></body></html>"
)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def create_app(run_dir: str | Path, port: int = DEFAULT_PORT, toolchain: Optional[Toolchain] = None) -> FastAPI:
    run_dir = Path(os.path.abspath(str(run_dir)))
    toolchain = toolchain or default_toolchain()
    cache = SliceCache(run_dir, toolchain)

    app = FastAPI(title="LayoutLens run server")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET", "OPTIONS"], allow_headers=["Content-Type"])

    @app.middleware("http")
    async def answer_options(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        return await call_next(request)

    def _servable(abs_param: Optional[str]):
        if not abs_param:
            return None, _error("Missing abs parameter.", 400)
        path = resolve_servable(run_dir, abs_param)
        if path is None:
            logger.warning("Refused path outside run dir: %s", abs_param)
            return None, _error("Forbidden.", 403)
        return path, None

    @app.get("/", response_class=HTMLResponse)
    @app.get("/index.html", response_class=HTMLResponse)
    async def index():
        return HTMLResponse(LANDING_HTML)

    @app.get("/manifest")
    @app.get("/manifest.json")
    async def manifest():
        path = manifest_path(run_dir)
        if not os.path.isfile(path):
            return _error("No manifest in run directory.", 404)
        raw = json.loads(path.read_text(encoding="utf-8"))
        return JSONResponse(rewrite_for_serving(raw, port))

    @app.get("/meta")
    async def meta(abs: Optional[str] = None):
        path, err = _servable(abs)
        if err is not None:
            return err
        if not os.path.isfile(path):
            return _error("Not found.", 404)
        size = await toolchain.size(path)
        if size is None:
            return _error("Could not read image dimensions.", 404)
        return {"width": size.width, "height": size.height}

    @app.get("/file")
    async def file(abs: Optional[str] = None, sliceTop: Optional[str] = None, sliceHeight: Optional[str] = None):
        path, err = _servable(abs)
        if err is not None:
            return err
        if not os.path.isfile(path):
            return _error("Not found.", 404)

        if sliceTop or sliceHeight:
            top, height = clamp_slice(sliceTop, sliceHeight)
            try:
                sliced = await cache.get_or_build(path, top, height)
            except OSError as e:
                logger.warning("Slicing %s failed, serving original: %s", path, e)
                sliced = None
            if sliced is not None:
                return FileResponse(sliced, media_type="image/jpeg")
        media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return FileResponse(path, media_type=media_type)

    return app
