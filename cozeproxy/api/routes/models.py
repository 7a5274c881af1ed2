"""Models listing endpoint - OpenAI compatible."""

import logging
import time

logger = logging.getLogger("coze-proxy")

ADVERTISED_MODELS = ("gpt-3.5-turbo", "gpt-4")


async def list_models() -> dict:
    """List the model names clients may send, in OpenAI API format.

    GET /v1/models

    The proxy routes by mode, not by model, so the list is static.
    """
    logger.info("Received models list request")
    created = int(time.time())
    return {
        "object": "list",
        "data": [
            {
                "id": model_id,
                "object": "model",
                "created": created,
                "owned_by": "coze-proxy",
                "permission": [],
                "root": model_id,
                "parent": None,
            }
            for model_id in ADVERTISED_MODELS
        ],
    }
