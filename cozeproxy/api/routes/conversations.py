"""Conversation session management endpoints."""

import logging

from ...core.registry import get_service

logger = logging.getLogger("coze-proxy")


async def list_conversations() -> dict:
    return {"conversations": get_service().conversations.list_conversations()}


async def get_conversation_history(conversation_id: str) -> dict:
    history = await get_service().conversations.get_history(conversation_id)
    return {"conversation_id": conversation_id, "messages": history}


async def clear_conversation(conversation_id: str) -> dict:
    await get_service().conversations.clear_conversation(conversation_id)
    return {"success": True, "conversation_id": conversation_id}
