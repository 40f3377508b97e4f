from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import pytest

from layoutlens.imaging import ImageSize, Toolchain

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class FakePage:
    def __init__(self, context: "FakeContext") -> None:
        self.context = context
        self.width: Optional[int] = None
        self.closed = False

    async def set_viewport_size(self, size: dict) -> None:
        self.width = size["width"]
        self.context.viewports.append(size)

    async def goto(self, url: str, wait_until: str = "load", timeout: int = 30000) -> None:
        self.context.navigations.append((url, wait_until, timeout))
        for _ in range(3):
            await asyncio.sleep(0)
        if self.width in self.context.fail_widths:
            raise RuntimeError(f"Timeout {timeout}ms exceeded")

    async def evaluate(self, script: str) -> None:
        self.context.scripts.append(script)

    async def screenshot(self, path: str, full_page: bool = False) -> None:
        assert full_page
        cookie_values = [c["value"] for c in self.context.cookies]
        self.context.captured.append((self.width, cookie_values))
        Path(path).write_bytes(PNG_BYTES)

    async def close(self) -> None:
        self.closed = True
        self.context.open_pages -= 1


class FakeContext:
    def __init__(self, fail_widths: set[int]) -> None:
        self.fail_widths = fail_widths
        self.events: list[tuple] = []
        self.cookies: list[dict] = []
        self.headers: dict = {}
        self.viewports: list[dict] = []
        self.navigations: list[tuple] = []
        self.scripts: list[str] = []
        self.captured: list[tuple] = []
        self.pages: list[FakePage] = []
        self.open_pages = 0
        self.max_open_pages = 0
        self.closed = False

    async def set_extra_http_headers(self, headers: dict) -> None:
        self.headers = dict(headers)
        self.events.append(("headers", dict(headers)))

    async def clear_cookies(self) -> None:
        self.cookies = []
        self.events.append(("clear_cookies",))

    async def add_cookies(self, cookies: list[dict]) -> None:
        self.cookies.extend(cookies)
        self.events.append(("add_cookies", [dict(c) for c in cookies]))

    async def new_page(self) -> FakePage:
        page = FakePage(self)
        self.pages.append(page)
        self.open_pages += 1
        self.max_open_pages = max(self.max_open_pages, self.open_pages)
        return page

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, engine: "FakeBrowserType") -> None:
        self.engine = engine
        self.closed = False

    async def new_context(self) -> FakeContext:
        ctx = FakeContext(self.engine.fail_widths)
        self.engine.contexts.append(ctx)
        return ctx

    async def close(self) -> None:
        self.closed = True


class FakeBrowserType:
    def __init__(self, name: str, fail_widths: set[int]) -> None:
        self.name = name
        self.fail_widths = fail_widths
        self.browsers: list[FakeBrowser] = []
        self.contexts: list[FakeContext] = []
        self.persistent_dirs: list[str] = []

    async def launch(self) -> FakeBrowser:
        browser = FakeBrowser(self)
        self.browsers.append(browser)
        return browser

    async def launch_persistent_context(self, user_data_dir: str) -> FakeContext:
        self.persistent_dirs.append(user_data_dir)
        ctx = FakeContext(self.fail_widths)
        self.contexts.append(ctx)
        return ctx


class FakePlaywright:
    def __init__(self) -> None:
        self.fail_widths: set[int] = set()
        self.chromium = FakeBrowserType("chromium", self.fail_widths)
        self.webkit = FakeBrowserType("webkit", self.fail_widths)
        self.firefox = FakeBrowserType("firefox", self.fail_widths)

    def factory(self):
        @asynccontextmanager
        async def _factory():
            yield self

        return _factory


@pytest.fixture
def fake_playwright() -> FakePlaywright:
    return FakePlaywright()


class FakeProbe:
    def __init__(self, size: Optional[ImageSize]) -> None:
        self.result = size
        self.calls = 0

    async def size(self, path: Path) -> Optional[ImageSize]:
        self.calls += 1
        if not path.exists():
            return None
        return self.result


class FakeCropper:
    """Writes a deterministic fake JPEG describing the requested band."""

    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.calls: list[tuple] = []

    async def crop(self, src: Path, dest: Path, *, top: int, height: int, image: ImageSize) -> bool:
        self.calls.append((src, top, height, image))
        if not self.ok:
            return False
        dest.write_bytes(b"\xff\xd8\xff" + f"{src.name}:{top}:{height}:{image.width}".encode())
        return True


@pytest.fixture
def fake_toolchain_factory():
    def make(size: Optional[ImageSize] = ImageSize(400, 9000), crop_ok: bool = True) -> Toolchain:
        return Toolchain(probes=[FakeProbe(size)], croppers=[FakeCropper(crop_ok)])

    return make
