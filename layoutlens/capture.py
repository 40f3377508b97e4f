# layoutlens/capture.py
"""Capture orchestrator: one engine, one context, locales in sequence."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Optional

from playwright.async_api import BrowserContext, async_playwright

from layoutlens.browser import capture_full_page, open_context
from layoutlens.config import CaptureConfig
from layoutlens.locale_switch import build_locale_cookie, build_url, locale_headers
from layoutlens.manifest import RunManifest, Shot, write_manifest

logger = logging.getLogger("layoutlens.capture")


class CaptureOrchestrator:
    def __init__(self, config: CaptureConfig, playwright_factory: Optional[Callable] = None) -> None:
        self.config = config
        self._playwright_factory = playwright_factory or async_playwright

    async def run(self) -> RunManifest:
        cfg = self.config
        out_dir = Path(os.path.abspath(cfg.out_dir))
        out_dir.mkdir(parents=True, exist_ok=True)
        manifest = RunManifest.for_config(cfg)

        async with self._playwright_factory() as p:
            browser, context = await open_context(p, cfg.engine, cfg.profile_dir)
            logger.info(
                "Run %s: engine=%s persistent=%s locales=%d breakpoints=%d concurrency=%d",
                manifest.id, cfg.engine, browser is None, len(cfg.locales), len(cfg.breakpoints), cfg.concurrency,
            )
            try:
                # sequential: the cookie jar is shared by every page in the context
                for locale in cfg.locales:
                    manifest.shots.extend(await self._capture_locale(context, locale, out_dir))
            finally:
                await context.close()
                if browser is not None:
                    await browser.close()

        path = write_manifest(manifest, out_dir)
        failed = sum(1 for shot in manifest.shots if not shot.ok)
        logger.info("Run %s done: %d shots (%d failed), manifest at %s", manifest.id, len(manifest.shots), failed, path)
        return manifest

    async def switch_locale(self, context: BrowserContext, locale: str) -> None:
        cfg = self.config
        await context.set_extra_http_headers(locale_headers(cfg.behavior, locale))
        await context.clear_cookies()
        await context.add_cookies([build_locale_cookie(cfg.cookie, cfg.url, locale)])

    async def _capture_locale(self, context: BrowserContext, locale: str, out_dir: Path) -> list[Shot]:
        cfg = self.config
        logger.info("Locale %s: switching cookie %s", locale, cfg.cookie.name)
        await self.switch_locale(context, locale)

        locale_dir = out_dir / locale
        locale_dir.mkdir(parents=True, exist_ok=True)
        url = build_url(cfg.url, cfg.behavior, locale)
        sem = asyncio.Semaphore(cfg.concurrency)

        tasks = [self._capture_shot(sem, context, url, locale, bp, locale_dir) for bp in cfg.breakpoints]
        return list(await asyncio.gather(*tasks))

    async def _capture_shot(
        self, sem: asyncio.Semaphore, context: BrowserContext, url: str, locale: str, breakpoint: int, locale_dir: Path
    ) -> Shot:
        out = locale_dir / f"{breakpoint}.png"
        async with sem:
            try:
                await capture_full_page(context, url, breakpoint, out)
            except Exception as e:
                logger.warning("Shot %s@%d failed: %s", locale, breakpoint, e)
                return Shot(locale=locale, breakpoint=breakpoint, path=str(out), width=breakpoint, ok=False, error=str(e))
        logger.info("Shot %s@%d -> %s", locale, breakpoint, out)
        return Shot(locale=locale, breakpoint=breakpoint, path=str(out), width=breakpoint, ok=True)


async def run_capture(config: CaptureConfig, playwright_factory: Optional[Callable] = None) -> RunManifest:
    return await CaptureOrchestrator(config, playwright_factory).run()
