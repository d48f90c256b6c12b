"""
Context host: the process-wide registry behind the HTTP bridge.

Holds one LocalTransport with the relay registered under "relay", page
contexts created per request, and at most one portal context. Started and
stopped by the app lifespan.
"""

import logging
import threading
from typing import Dict, Optional

from signal_pipeline.bridge import (
    PORTAL_CONTEXT_ID,
    RELAY_CONTEXT_ID,
    LocalTransport,
    PageContext,
    PortalContext,
    RelayContext,
)
from signal_pipeline.detection import PageContent
from signal_pipeline.fetch import load_page
from signal_pipeline.store import LocalStore

logger = logging.getLogger(__name__)

_transport: Optional[LocalTransport] = None
_store: Optional[LocalStore] = None
_portal_session: Dict = {}
_lock = threading.Lock()


def start_host(store: Optional[LocalStore] = None) -> LocalTransport:
    """Create the transport and register the relay. Idempotent."""
    global _transport, _store
    with _lock:
        if _transport is not None:
            return _transport
        _store = store or LocalStore()
        _transport = LocalTransport()
        _transport.register(RelayContext(_transport, store=_store), RELAY_CONTEXT_ID)
    logger.info("Context host started")
    return _transport


def stop_host() -> None:
    global _transport, _store
    with _lock:
        transport = _transport
        _transport = None
        _store = None
        _portal_session.clear()
    if transport is not None:
        transport.close()
        logger.info("Context host stopped")


def get_transport() -> LocalTransport:
    return _transport if _transport is not None else start_host()


def create_page_context(
    url: str,
    html: Optional[str] = None,
    text: Optional[str] = None,
    globals_: Optional[Dict] = None,
    fetch: bool = False,
    context_id: Optional[str] = None,
) -> str:
    """
    Register a page context and return its id.

    Raises:
        ValueError: neither markup nor fetch was requested
        LookupError: fetch was requested and the page could not be loaded
    """
    if html is None:
        if not fetch:
            raise ValueError("Provide the page html or set fetch")
        content = load_page(url)
        if content is None:
            raise LookupError(f"Could not load {url}")
    else:
        content = PageContent(url=url, html=html, text=text, globals=dict(globals_ or {}))

    context_id = get_transport().register(PageContext(content), context_id)
    logger.info(f"Page context {context_id} for {content.url}")
    return context_id


def set_portal_session(token: Optional[str], user: Optional[Dict] = None) -> str:
    """Register (or update) the portal context with its current session."""
    with _lock:
        _portal_session.clear()
        if token:
            _portal_session.update({"token": token, "user": user})

    transport = get_transport()
    if not transport.has(PORTAL_CONTEXT_ID):
        transport.register(PortalContext(lambda: dict(_portal_session)), PORTAL_CONTEXT_ID)
    return PORTAL_CONTEXT_ID


def remove_context(context_id: str) -> bool:
    transport = get_transport()
    if context_id == RELAY_CONTEXT_ID or not transport.has(context_id):
        return False
    transport.unregister(context_id)
    return True
