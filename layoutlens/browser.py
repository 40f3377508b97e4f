# layoutlens/browser.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright

NAVIGATION_TIMEOUT_MS = 60_000
VIEWPORT_HEIGHT = 1000

AUTO_SCROLL_JS = """
async () => {
  const delay = (ms) => new Promise((r) => setTimeout(r, ms));
  const getMaxScroll = () =>
    Math.max(document.body.scrollHeight, document.documentElement.scrollHeight);
  const viewport = window.innerHeight || 800;
  const step = Math.max(Math.floor(viewport * 0.8), 200);
  let prev = -1;
  for (let y = 0; y < getMaxScroll(); y += step) {
    window.scrollTo(0, y);
    await delay(120);
    const cur = getMaxScroll();
    if (cur === prev) continue;
    prev = cur;
  }
  window.scrollTo(0, getMaxScroll());
  await delay(200);
  window.scrollTo(0, 0);
  await delay(100);
}
"""

# resolves once every <img> has loaded or errored; unbounded
WAIT_FOR_IMAGES_JS = """
async () => {
  const imgs = Array.from(document.images);
  await Promise.all(
    imgs.map((img) => {
      if (img.complete) return Promise.resolve();
      return new Promise((resolve) => {
        img.addEventListener("load", () => resolve(), { once: true });
        img.addEventListener("error", () => resolve(), { once: true });
      });
    })
  );
}
"""


async def open_context(
    p: Playwright, engine: str, profile_dir: Optional[str] = None
) -> tuple[Optional[Browser], BrowserContext]:
    """Launch ``engine`` and return ``(browser, context)``.

    With a profile directory the context is persistent and ``browser`` is None;
    closing the context then shuts the engine down.
    """
    browser_type = getattr(p, engine)
    if profile_dir:
        context = await browser_type.launch_persistent_context(str(profile_dir))
        return None, context
    browser = await browser_type.launch()
    context = await browser.new_context()
    return browser, context


async def auto_scroll(page: Page) -> None:
    await page.evaluate(AUTO_SCROLL_JS)


async def wait_for_images(page: Page) -> None:
    await page.evaluate(WAIT_FOR_IMAGES_JS)


async def capture_full_page(context: BrowserContext, url: str, width: int, out_path: Path) -> None:
    page = await context.new_page()
    try:
        await page.set_viewport_size({"width": width, "height": VIEWPORT_HEIGHT})
        await page.goto(url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)
        await auto_scroll(page)
        await wait_for_images(page)
        await page.screenshot(path=str(out_path), full_page=True)
    finally:
        await page.close()
