"""
Page fetching: load a live URL into PageContent for detection.

Rendered through the headless browser when it is enabled, otherwise a plain
GET with the SSL fallback small-business sites often need.
"""

import time
import logging
from typing import Dict, Optional, Tuple

import requests

from .config import WEBSITE_TIMEOUT
from .detection import PageContent
from .headless_browser import is_headless_available, render_page

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


def normalize_url(url: str) -> str:
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = "https://" + url
    return url


def _get(url: str, headers: Dict, timeout: int) -> Tuple[Optional[str], int, str]:
    started = time.monotonic()
    response = requests.get(url, headers=headers, timeout=timeout, allow_redirects=True)
    elapsed_ms = int((time.monotonic() - started) * 1000)
    if response.status_code != 200:
        logger.debug(f"{url} answered {response.status_code}")
        return None, elapsed_ms, url
    return response.text, elapsed_ms, response.url


def fetch_html(url: str, headers: Optional[Dict] = None, timeout: int = WEBSITE_TIMEOUT) -> Tuple[Optional[str], int, str]:
    """
    GET a page, downgrading to plain HTTP once when the TLS handshake fails.

    Returns (html, load_time_ms, final_url); html is None when nothing loaded.
    """
    url = normalize_url(url)
    candidates = [url]
    if url.startswith("https://"):
        candidates.append("http://" + url[len("https://"):])

    for candidate in candidates:
        try:
            return _get(candidate, headers or DEFAULT_HEADERS, timeout)
        except requests.exceptions.SSLError:
            logger.debug(f"TLS failed for {candidate}")
        except requests.exceptions.Timeout:
            logger.debug(f"Timed out loading {candidate}")
            return None, timeout * 1000, url
        except requests.exceptions.RequestException as e:
            logger.debug(f"Could not load {candidate}: {e}")
            return None, 0, url
    return None, 0, url


def load_page(url: str, render: Optional[bool] = None) -> Optional[PageContent]:
    """
    Load url as PageContent.

    Args:
        url: Page to load (scheme optional)
        render: Force (True) or skip (False) headless rendering; None
                renders when HEADLESS_ENABLED is set

    Returns:
        PageContent, or None if the page could not be loaded
    """
    url = normalize_url(url)
    use_headless = is_headless_available() if render is None else (render and is_headless_available(True))
    if use_headless:
        rendered = render_page(url)
        if rendered is not None:
            return rendered
        logger.info(f"Falling back to plain fetch for {url}")

    html, load_ms, final_url = fetch_html(url)
    if html is None:
        logger.warning(f"Could not load {url}")
        return None
    logger.info(f"Fetched {final_url} in {load_ms}ms")
    return PageContent(url=final_url, html=html)
