"""Endpoints to inspect and manage the cached backend access token."""

import logging

from ...core.registry import get_service

logger = logging.getLogger("coze-proxy")


async def get_jwt() -> dict:
    """GET /get_jwt: current bearer token, refreshing it if needed."""
    manager = get_service().token_manager
    token = await manager.get_token()
    return {"success": True, "token": token, "info": manager.token_info()}


async def refresh_jwt() -> dict:
    """POST /refresh_jwt: force a token exchange."""
    token = await get_service().token_manager.refresh_token()
    return {"success": True, **token.to_dict()}


async def clear_jwt() -> dict:
    """DELETE /clear_jwt"""
    get_service().token_manager.clear_token()
    return {"success": True, "message": "JWT token cleared successfully"}
