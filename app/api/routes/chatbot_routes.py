"""
Chatbot Routes

POST /chatbot/message - Ask the portal assistant
"""

import logging

from fastapi import APIRouter, Depends

from app.core.auth import get_current_user
from app.services.chatbot_service import get_reply
from app.schemas.schemas import APIResponse, ChatMessage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chatbot", tags=["Chatbot"])


@router.post("/message", response_model=APIResponse)
async def chatbot_message(request: ChatMessage, user: dict = Depends(get_current_user)):
    """Answer a portal question; falls back to keyword replies without an AI key."""
    context = {
        "name": user.get("name"),
        "role": user.get("role"),
        "department": (user.get("profile") or {}).get("department"),
        **(request.context or {}),
    }
    reply = get_reply(request.message, context)
    logger.info(f"Chatbot reply for {user['email']} via {reply['source']}")
    return APIResponse(data=reply)
