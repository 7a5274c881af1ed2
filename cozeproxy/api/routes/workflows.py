"""Workflow session endpoints and interrupt resumption."""

import json
import logging
from typing import Any, Mapping

from fastapi import Request
from fastapi.responses import StreamingResponse

from ...core.exceptions import InvalidRequestError
from ...core.registry import get_service
from .chat import STREAM_HEADERS

logger = logging.getLogger("coze-proxy")


async def list_workflow_sessions() -> dict:
    return {"sessions": get_service().workflows.list_sessions()}


async def get_workflow_session(session_id: str) -> dict:
    return {"session": get_service().workflows.get_session(session_id)}


def _require_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidRequestError(f"'{key}' is required", code="missing_parameter")
    return value


async def resume_workflow(request: Request) -> StreamingResponse:
    """POST /v1/workflows/resume

    Body: ``{"event_id", "resume_data", "interrupt_type", "workflow_id"?, "model"?}``.
    The reply is streamed with the same chunk framing as chat completions.
    """
    try:
        payload = json.loads(await request.body() or b"{}")
    except json.JSONDecodeError as exc:
        raise InvalidRequestError("Invalid JSON payload", code="invalid_json") from exc
    if not isinstance(payload, Mapping):
        raise InvalidRequestError(
            "Request body must be a JSON object", code="invalid_json_shape"
        )

    event_id = _require_str(payload, "event_id")
    resume_data = payload.get("resume_data")
    if not isinstance(resume_data, str):
        resume_data = json.dumps(resume_data, ensure_ascii=False) if resume_data is not None else ""
    try:
        interrupt_type = int(payload.get("interrupt_type"))
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(
            "'interrupt_type' must be an integer", code="invalid_parameter"
        ) from exc

    workflow_id = payload.get("workflow_id") or request.headers.get("x-workflow-id")
    model = payload.get("model") if isinstance(payload.get("model"), str) else "coze"
    logger.info(f"Resuming workflow event {event_id} (interrupt_type={interrupt_type})")

    frames = await get_service().workflows.resume(
        model=model,
        event_id=event_id,
        resume_data=resume_data,
        interrupt_type=interrupt_type,
        workflow_id=workflow_id,
    )
    return StreamingResponse(frames, media_type="text/event-stream", headers=STREAM_HEADERS)
