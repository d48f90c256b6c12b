"""
Headless browser rendering for JavaScript-built pages.

Uses Playwright to render a page the way the page context sees it: the
final DOM after scripts ran, its visible text, and the script-injected
globals the tech-stack detectors read (Shopify, React, jQuery.fn.jquery...).

Design:
- Optional layer; plain HTTP fetching works without it
- Activated when HEADLESS_ENABLED=true in environment
- Falls back gracefully if Playwright is not installed
"""

import time
import logging
from typing import Any, Dict, Optional

from .config import HEADLESS_ENABLED, HEADLESS_TIMEOUT_MS
from .detection import PageContent
from .detectors import CAPTURED_GLOBALS

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

SETTLE_MS = 2000

# Reads each dotted path off window. Objects become true; scalars are kept.
_CAPTURE_GLOBALS_JS = """
(paths) => {
  const out = {};
  for (const path of paths) {
    let value = window;
    for (const key of path.split('.')) {
      if (value === undefined || value === null) break;
      value = value[key];
    }
    if (value === undefined || value === null) continue;
    const t = typeof value;
    out[path] = (t === 'string' || t === 'number' || t === 'boolean') ? value : true;
  }
  return out;
}
"""

_playwright_available: Optional[bool] = None


def _check_playwright() -> bool:
    """Lazy-check whether Playwright is importable."""
    global _playwright_available
    if _playwright_available is not None:
        return _playwright_available
    try:
        from playwright.sync_api import sync_playwright  # noqa: F401
        _playwright_available = True
    except ImportError:
        _playwright_available = False
        logger.info("Playwright not installed, headless rendering disabled")
    return _playwright_available


def is_headless_available(enabled: bool = HEADLESS_ENABLED) -> bool:
    """Return True if headless rendering is both enabled and importable."""
    return enabled and _check_playwright()


def render_page(url: str, timeout_ms: int = HEADLESS_TIMEOUT_MS) -> Optional[PageContent]:
    """
    Render url in headless Chromium and capture it as PageContent.

    Returns:
        PageContent with rendered markup, visible text and captured
        globals, or None when rendering is unavailable or failed
    """
    if not _check_playwright():
        return None

    from playwright.sync_api import sync_playwright

    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True)
            try:
                context = browser.new_context(
                    user_agent=USER_AGENT,
                    viewport={"width": 1280, "height": 720},
                    java_script_enabled=True,
                )
                page = context.new_page()

                start = time.time()
                page.goto(url, wait_until="networkidle", timeout=timeout_ms)
                page.wait_for_timeout(SETTLE_MS)
                load_ms = int((time.time() - start) * 1000)

                html = page.content()
                text = page.inner_text("body")
                captured: Dict[str, Any] = page.evaluate(_CAPTURE_GLOBALS_JS, list(CAPTURED_GLOBALS))
                final_url = page.url
            finally:
                browser.close()
    except Exception as exc:
        logger.warning("Headless render failed for %s: %s", url, exc)
        return None

    logger.info(f"Rendered {final_url} in {load_ms}ms ({len(captured)} globals)")
    return PageContent(url=final_url, html=html, text=text, globals=captured)
