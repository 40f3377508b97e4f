# layoutlens/imaging.py
"""External image tools behind uniform probe/crop interfaces.

Each capability is a list of providers tried in order; the first one that
answers wins. Providers shell out through ``run_tool`` and treat a missing
binary or a non-zero exit the same way: they report failure and the next
provider gets a turn.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol, Sequence

from layoutlens.config import Settings

logger = logging.getLogger("layoutlens.imaging")

SIPS_BINS = ["/usr/bin/sips"]
FFMPEG_BINS = ["/opt/homebrew/bin/ffmpeg", "/usr/local/bin/ffmpeg", "/usr/bin/ffmpeg", "ffmpeg"]
FFPROBE_BINS = ["/opt/homebrew/bin/ffprobe", "/usr/local/bin/ffprobe", "/usr/bin/ffprobe", "ffprobe"]

_SIPS_WIDTH = re.compile(r"pixelWidth:\s*(\d+)")
_SIPS_HEIGHT = re.compile(r"pixelHeight:\s*(\d+)")
_FFPROBE_SIZE = re.compile(r"^\s*(\d+)x(\d+)\s*$", re.MULTILINE)


@dataclass(frozen=True)
class ImageSize:
    width: int
    height: int


@dataclass
class ToolResult:
    returncode: int
    stdout: str


async def run_tool(argv: Sequence[str]) -> Optional[ToolResult]:
    """Run an external tool; None when it cannot be started at all."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
        )
    except OSError as e:
        logger.debug("Cannot start %s: %s", argv[0], e)
        return None
    try:
        out, err = await proc.communicate()
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.kill()
        await proc.wait()
        raise
    if proc.returncode != 0:
        logger.debug("%s exited %s: %s", argv[0], proc.returncode, err.decode(errors="replace").strip()[:300])
    return ToolResult(proc.returncode, out.decode(errors="replace"))


def parse_sips_size(text: str) -> Optional[ImageSize]:
    w = _SIPS_WIDTH.search(text)
    h = _SIPS_HEIGHT.search(text)
    if not w or not h:
        return None
    return ImageSize(int(w.group(1)), int(h.group(1)))


def parse_ffprobe_size(text: str) -> Optional[ImageSize]:
    m = _FFPROBE_SIZE.search(text)
    if not m:
        return None
    return ImageSize(int(m.group(1)), int(m.group(2)))


class SizeProbe(Protocol):
    async def size(self, path: Path) -> Optional[ImageSize]: ...


class Cropper(Protocol):
    async def crop(self, src: Path, dest: Path, *, top: int, height: int, image: ImageSize) -> bool: ...


class SipsProbe:
    def __init__(self, bins: Sequence[str] = SIPS_BINS) -> None:
        self.bins = list(bins)

    async def size(self, path: Path) -> Optional[ImageSize]:
        for b in self.bins:
            res = await run_tool([b, "-g", "pixelWidth", "-g", "pixelHeight", str(path)])
            if res is None:
                continue
            parsed = parse_sips_size(res.stdout)
            if parsed:
                return parsed
        return None


class FfprobeProbe:
    def __init__(self, bins: Sequence[str] = FFPROBE_BINS) -> None:
        self.bins = list(bins)

    async def size(self, path: Path) -> Optional[ImageSize]:
        for b in self.bins:
            res = await run_tool([
                b, "-v", "error", "-select_streams", "v:0",
                "-show_entries", "stream=width,height", "-of", "csv=s=x:p=0", str(path),
            ])
            if res is None or res.returncode != 0:
                continue
            parsed = parse_ffprobe_size(res.stdout)
            if parsed:
                return parsed
        return None


class FfmpegCropper:
    """Top-left origin crop of a full-width band."""

    def __init__(self, bins: Sequence[str] = FFMPEG_BINS) -> None:
        self.bins = list(bins)

    async def crop(self, src: Path, dest: Path, *, top: int, height: int, image: ImageSize) -> bool:
        for b in self.bins:
            res = await run_tool([
                b, "-y", "-i", str(src),
                "-vf", f"crop={image.width}:{height}:0:{top}",
                "-frames:v", "1", "-q:v", "2", str(dest),
            ])
            if res is not None and res.returncode == 0:
                return True
        return False


class SipsCropper:
    """sips measures the crop offset from the bottom-left corner."""

    def __init__(self, bins: Sequence[str] = SIPS_BINS) -> None:
        self.bins = list(bins)

    async def crop(self, src: Path, dest: Path, *, top: int, height: int, image: ImageSize) -> bool:
        y_offset = max(0, image.height - top - height)
        for b in self.bins:
            res = await run_tool([
                b, str(src),
                "--cropOffset", "0", str(y_offset),
                "-c", str(height), str(image.width),
                "-s", "format", "jpeg", "-s", "formatOptions", "100",
                "--out", str(dest),
            ])
            if res is not None and res.returncode == 0:
                return True
        return False


@dataclass
class Toolchain:
    probes: list[SizeProbe] = field(default_factory=list)
    croppers: list[Cropper] = field(default_factory=list)

    async def size(self, path: Path) -> Optional[ImageSize]:
        for probe in self.probes:
            found = await probe.size(path)
            if found is not None:
                return found
        return None

    async def crop(self, src: Path, dest: Path, *, top: int, height: int, image: ImageSize) -> bool:
        for cropper in self.croppers:
            if await cropper.crop(src, dest, top=top, height=height, image=image) and dest.exists():
                return True
            logger.debug("%s could not crop %s", type(cropper).__name__, src)
        return False


def default_toolchain(settings: Optional[Settings] = None) -> Toolchain:
    sips = [settings.SIPS_BIN] if settings and settings.SIPS_BIN else SIPS_BINS
    ffmpeg = [settings.FFMPEG_BIN] if settings and settings.FFMPEG_BIN else FFMPEG_BINS
    ffprobe = [settings.FFPROBE_BIN] if settings and settings.FFPROBE_BIN else FFPROBE_BINS
    return Toolchain(
        probes=[SipsProbe(sips), FfprobeProbe(ffprobe)],
        croppers=[FfmpegCropper(ffmpeg), SipsCropper(sips)],
    )
