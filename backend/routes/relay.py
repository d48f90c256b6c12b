"""
POST /relay: deliver a message to the relay context.
"""

from fastapi import APIRouter, Request

from backend.models.schemas import MessageRequest
from backend.routes.contexts import deliver
from signal_pipeline.bridge import RELAY_CONTEXT_ID

router = APIRouter(prefix="/relay", tags=["relay"])


@router.post("")
def post_relay(body: MessageRequest, request: Request):
    return deliver(RELAY_CONTEXT_ID, body, request)
