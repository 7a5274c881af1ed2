"""OpenAI-compatible chat completions endpoint."""

import json
import logging
from typing import Mapping

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ...core.exceptions import InvalidRequestError
from ...core.registry import get_service
from ...handlers import CompletionRequest

logger = logging.getLogger("coze-proxy")

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def chat_completions(request: Request) -> Response:
    """Handle POST /v1/chat/completions.

    The backend invocation mode is resolved once per request and the matching
    handler produces either a buffered completion or an SSE stream.

    Args:
        request: The FastAPI request object.

    Returns:
        A JSONResponse, or a StreamingResponse of ``text/event-stream`` frames.
    """
    body = await request.body()
    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        logger.error(f"Invalid JSON payload: {exc}")
        raise InvalidRequestError("Invalid JSON payload", code="invalid_json") from exc

    if not isinstance(payload, Mapping):
        logger.error("Payload must be a JSON object")
        raise InvalidRequestError(
            "Request body must be a JSON object", code="invalid_json_shape"
        )

    service = get_service()
    completion = CompletionRequest.from_payload(payload, request.headers, service.settings)
    handler = service.handlers.for_request(completion)
    logger.info(
        f"Chat completion: mode={completion.model_type.value} model={completion.model} "
        f"stream={completion.stream} messages={len(completion.messages)}"
    )

    if completion.stream:
        frames = await handler.stream(completion)
        return StreamingResponse(
            frames, media_type="text/event-stream", headers=STREAM_HEADERS
        )

    result = await handler.complete(completion)
    return JSONResponse(content=result.body, headers=result.headers)
