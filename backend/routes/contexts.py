"""
Context routes:

POST   /contexts                      register a page context
POST   /contexts/portal               register/update the portal session
DELETE /contexts/{context_id}         drop a page context
POST   /contexts/{context_id}/messages deliver one bridge message
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request

from backend.models.schemas import ContextResponse, MessageRequest, PageContextRequest, PortalContextRequest
from backend.services.context_host import (
    create_page_context,
    get_transport,
    remove_context,
    set_portal_session,
)
from signal_pipeline.bridge import Message
from signal_pipeline.errors import BridgeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contexts", tags=["contexts"])


def deliver(context_id: str, body: MessageRequest, request: Request) -> Dict[str, Any]:
    """Deliver body to context_id; map bridge failures onto HTTP errors."""
    transport = get_transport()
    if not transport.has(context_id):
        raise HTTPException(status_code=404, detail="Receiving end does not exist")

    caller = getattr(request.state, "caller_context_id", "surface")
    try:
        message = Message.from_dict(body.model_dump(exclude_none=True))
        logger.debug(f"{caller} -> {context_id}: {message.action} [{message.correlation_id}]")
        return transport.deliver(context_id, message)
    except BridgeError as e:
        logger.warning(f"Delivery to {context_id} failed: {e}")
        raise HTTPException(status_code=504, detail=str(e))


@router.post("", response_model=ContextResponse)
def post_page_context(body: PageContextRequest):
    try:
        context_id = create_page_context(
            url=body.url,
            html=body.html,
            text=body.text,
            globals_=body.globals,
            fetch=body.fetch,
            context_id=body.context_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return ContextResponse(context_id=context_id, kind="page", url=body.url)


@router.post("/portal", response_model=ContextResponse)
def post_portal_context(body: PortalContextRequest):
    context_id = set_portal_session(body.token, body.user)
    return ContextResponse(context_id=context_id, kind="portal")


@router.delete("/{context_id}")
def delete_context(context_id: str):
    if not remove_context(context_id):
        raise HTTPException(status_code=404, detail="Context not found")
    return {"deleted": context_id}


@router.post("/{context_id}/messages")
def post_message(context_id: str, body: MessageRequest, request: Request):
    return deliver(context_id, body, request)
