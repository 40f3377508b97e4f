from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

import layoutlens.imaging as imaging
from layoutlens.imaging import (
    FfmpegCropper,
    FfprobeProbe,
    ImageSize,
    SipsCropper,
    SipsProbe,
    Toolchain,
    ToolResult,
    default_toolchain,
    parse_ffprobe_size,
    parse_sips_size,
    run_tool,
)
from layoutlens.config import Settings

SIPS_OUTPUT = """/tmp/run1/en/400.png
  pixelWidth: 400
  pixelHeight: 9123
"""


def test_parse_sips_size() -> None:
    assert parse_sips_size(SIPS_OUTPUT) == ImageSize(400, 9123)
    assert parse_sips_size("Error: file not found") is None
    assert parse_sips_size("  pixelWidth: 400\n") is None


def test_parse_ffprobe_size() -> None:
    assert parse_ffprobe_size("1200x5000\n") == ImageSize(1200, 5000)
    assert parse_ffprobe_size("") is None
    assert parse_ffprobe_size("N/A") is None


def test_run_tool_returns_none_for_missing_binary(tmp_path: Path) -> None:
    assert asyncio.run(run_tool([str(tmp_path / "no-such-tool"), "--version"])) is None


def _record_calls(monkeypatch, results: dict[str, ToolResult | None]) -> list[list[str]]:
    calls: list[list[str]] = []

    async def fake_run_tool(argv):
        calls.append(list(argv))
        return results.get(argv[0])

    monkeypatch.setattr(imaging, "run_tool", fake_run_tool)
    return calls


def test_ffmpeg_cropper_tries_each_location_in_order(monkeypatch, tmp_path: Path) -> None:
    calls = _record_calls(monkeypatch, {"/b/ffmpeg": ToolResult(0, "")})
    cropper = FfmpegCropper(["/a/ffmpeg", "/b/ffmpeg", "/c/ffmpeg"])
    ok = asyncio.run(
        cropper.crop(tmp_path / "in.png", tmp_path / "out.jpg", top=4096, height=2000, image=ImageSize(1200, 6096))
    )
    assert ok
    assert [c[0] for c in calls] == ["/a/ffmpeg", "/b/ffmpeg"]
    assert "crop=1200:2000:0:4096" in calls[1]


def test_sips_cropper_measures_offset_from_bottom(monkeypatch, tmp_path: Path) -> None:
    calls = _record_calls(monkeypatch, {"/usr/bin/sips": ToolResult(0, "")})
    ok = asyncio.run(
        SipsCropper().crop(tmp_path / "in.png", tmp_path / "out.jpg", top=1000, height=4096, image=ImageSize(800, 9000))
    )
    assert ok
    argv = calls[0]
    offset = argv.index("--cropOffset")
    assert argv[offset + 1 : offset + 3] == ["0", str(9000 - 1000 - 4096)]
    size = argv.index("-c")
    assert argv[size + 1 : size + 3] == ["4096", "800"]


def test_sips_cropper_offset_never_negative(monkeypatch, tmp_path: Path) -> None:
    calls = _record_calls(monkeypatch, {"/usr/bin/sips": ToolResult(0, "")})
    asyncio.run(SipsCropper().crop(tmp_path / "a.png", tmp_path / "b.jpg", top=8000, height=4096, image=ImageSize(800, 9000)))
    offset = calls[0].index("--cropOffset")
    assert calls[0][offset + 2] == "0"


def test_probe_falls_back_to_ffprobe(monkeypatch, tmp_path: Path) -> None:
    _record_calls(monkeypatch, {"/usr/bin/sips": None, "ffprobe": ToolResult(0, "640x4800\n")})
    chain = Toolchain(probes=[SipsProbe(), FfprobeProbe(["ffprobe"])])
    assert asyncio.run(chain.size(tmp_path / "x.png")) == ImageSize(640, 4800)


def test_probe_returns_none_when_nothing_parses(monkeypatch, tmp_path: Path) -> None:
    _record_calls(monkeypatch, {"/usr/bin/sips": ToolResult(1, "garbage"), "ffprobe": ToolResult(1, "")})
    chain = Toolchain(probes=[SipsProbe(), FfprobeProbe(["ffprobe"])])
    assert asyncio.run(chain.size(tmp_path / "x.png")) is None


class _Cropper:
    def __init__(self, ok: bool, writes: bool) -> None:
        self.ok = ok
        self.writes = writes
        self.called = False

    async def crop(self, src, dest, *, top, height, image):
        self.called = True
        if self.writes:
            dest.write_bytes(b"jpeg")
        return self.ok


def test_toolchain_crop_moves_on_when_first_tool_fails(tmp_path: Path) -> None:
    first, second = _Cropper(ok=False, writes=False), _Cropper(ok=True, writes=True)
    chain = Toolchain(croppers=[first, second])
    dest = tmp_path / "out.jpg"
    assert asyncio.run(chain.crop(tmp_path / "in.png", dest, top=0, height=10, image=ImageSize(10, 20)))
    assert first.called and second.called


def test_toolchain_crop_requires_output_file(tmp_path: Path) -> None:
    chain = Toolchain(croppers=[_Cropper(ok=True, writes=False)])
    assert not asyncio.run(chain.crop(tmp_path / "in.png", tmp_path / "o.jpg", top=0, height=10, image=ImageSize(10, 20)))


def test_default_toolchain_honours_overrides() -> None:
    settings = Settings(
        HOST="127.0.0.1", PORT=7777, LOG_LEVEL="INFO", SERVER_URL="http://localhost:7777",
        SIPS_BIN=None, FFMPEG_BIN="/opt/ffmpeg", FFPROBE_BIN=None,
    )
    chain = default_toolchain(settings)
    assert [type(p).__name__ for p in chain.probes] == ["SipsProbe", "FfprobeProbe"]
    assert [type(c).__name__ for c in chain.croppers] == ["FfmpegCropper", "SipsCropper"]
    assert chain.croppers[0].bins == ["/opt/ffmpeg"]
    assert chain.croppers[1].bins == imaging.SIPS_BINS


def test_cancelled_tool_run_kills_the_child(monkeypatch) -> None:
    started = []
    real_exec = asyncio.create_subprocess_exec

    async def tracking_exec(*argv, **kwargs):
        proc = await real_exec(*argv, **kwargs)
        started.append(proc)
        return proc

    monkeypatch.setattr(imaging.asyncio, "create_subprocess_exec", tracking_exec)

    async def go():
        task = asyncio.create_task(run_tool([sys.executable, "-c", "import time; time.sleep(30)"]))
        while not started:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return started[0].returncode

    assert asyncio.run(go()) is not None
