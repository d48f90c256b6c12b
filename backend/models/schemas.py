"""
Pydantic schemas for the context host API.
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Contexts
# ---------------------------------------------------------------------------

class PageContextRequest(BaseModel):
    """Request body for POST /contexts (kind=page).

    Either supply the captured page (html, optional text and globals) or
    set fetch=true to have the service load the URL itself.
    """

    url: str
    html: Optional[str] = None
    text: Optional[str] = None
    globals: Dict[str, Any] = {}
    fetch: bool = False
    context_id: Optional[str] = None


class PortalContextRequest(BaseModel):
    """Request body for POST /contexts/portal: the portal's signed-in session."""

    token: Optional[str] = None
    user: Optional[Dict[str, Any]] = None


class ContextResponse(BaseModel):
    context_id: str
    kind: str
    url: Optional[str] = None


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class MessageRequest(BaseModel):
    """One bridge message, in its wire shape."""

    action: str
    correlationId: Optional[str] = None
    payload: Dict[str, Any] = {}
