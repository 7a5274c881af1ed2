"""Health check endpoint."""

from datetime import datetime, timezone

from ...core.registry import get_service


async def health() -> dict:
    service = get_service()
    settings = service.settings
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "config": {
            "has_api_key": bool(settings.coze.api_key),
            "has_jwt_config": settings.coze.jwt is not None,
            "default_model_type": settings.default_model_type.value,
            "has_bot_id": bool(settings.coze.bot_id),
            "has_workflow_id": bool(settings.coze.workflow_id),
        },
        "jwt": service.token_manager.token_info(),
    }
