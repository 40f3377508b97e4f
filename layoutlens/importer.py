# layoutlens/importer.py
"""Client side of the run server: manifest, sizes, and sliced downloads."""

from __future__ import annotations

import logging
from collections import OrderedDict
from pathlib import Path
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

import httpx

from layoutlens.slices import MAX_SLICE_HEIGHT

logger = logging.getLogger("layoutlens.importer")


class ImporterError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def plan_slices(height: int, max_height: int = MAX_SLICE_HEIGHT) -> list[tuple[int, int]]:
    """(top, height) bands covering an image; a single band when it fits."""
    if height <= max_height:
        return [(0, max(1, height))]
    bands = []
    top = 0
    while top < height:
        h = min(max_height, height - top)
        bands.append((top, h))
        top += h
    return bands


def group_shots(shots: list[dict[str, Any]], by: str = "locale") -> "OrderedDict[Any, list[dict[str, Any]]]":
    """Group shots by locale (columns of breakpoints) or by breakpoint.

    Groups are sorted by key and each group is sorted by the other axis, so
    the result does not depend on the manifest's shot order.
    """
    if by not in ("locale", "breakpoint"):
        raise ValueError(f"cannot group by {by!r}")
    other = "breakpoint" if by == "locale" else "locale"
    groups: dict[Any, list[dict[str, Any]]] = {}
    for shot in shots:
        groups.setdefault(shot[by], []).append(shot)
    return OrderedDict((k, sorted(groups[k], key=lambda s: s[other])) for k in sorted(groups))


def abs_from_ref(ref: str) -> str:
    """Recover the absolute path from a ``/file?abs=...`` reference."""
    values = parse_qs(urlsplit(ref).query).get("abs")
    return values[0] if values else ""


class RunServerClient:
    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=60)

    async def __aenter__(self) -> "RunServerClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self._client.aclose()

    async def _get(self, url: str, params: Optional[dict] = None) -> httpx.Response:
        r = await self._client.get(url, params=params)
        try:
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ImporterError(f"Failed to fetch {url}: {e.response.status_code}", e.response.status_code) from e
        return r

    async def manifest(self) -> dict[str, Any]:
        return (await self._get(f"{self.base_url}/manifest")).json()

    async def meta(self, shot: dict[str, Any]) -> dict[str, int]:
        r = await self._get(f"{self.base_url}/meta", params={"abs": abs_from_ref(shot["path"])})
        data = r.json()
        return {"width": int(data["width"]), "height": int(data["height"])}

    async def image_parts(self, shot: dict[str, Any], height: int) -> list[bytes]:
        """Raw bytes of a shot, as successive slices when it is too tall."""
        url = f"{self.base_url}{shot['path']}"
        if height <= MAX_SLICE_HEIGHT:
            return [(await self._get(url)).content]
        parts = []
        for top, h in plan_slices(height):
            r = await self._get(url, params={"sliceTop": top, "sliceHeight": h})
            parts.append(r.content)
        return parts

    async def pull(self, dest: str | Path, by: str = "locale") -> list[Path]:
        """Mirror every captured shot of the served run into ``dest``."""
        dest = Path(dest)
        manifest = await self.manifest()
        written: list[Path] = []
        shots = [s for s in manifest.get("shots", []) if s.get("ok", True)]
        for key, group in group_shots(shots, by=by).items():
            group_dir = dest / str(key)
            group_dir.mkdir(parents=True, exist_ok=True)
            for shot in group:
                meta = await self.meta(shot)
                parts = await self.image_parts(shot, meta["height"])
                stem = f"{shot['locale']}_{shot['breakpoint']}"
                for i, data in enumerate(parts):
                    suffix = ".png" if len(parts) == 1 else f"_{i:02d}.jpg"
                    out = group_dir / f"{stem}{suffix}"
                    out.write_bytes(data)
                    written.append(out)
                logger.info("Pulled %s (%dx%d, %d part(s))", stem, meta["width"], meta["height"], len(parts))
        return written
