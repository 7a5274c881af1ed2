"""HTTP client for the Coze open API.

Every call fetches a bearer token from the token provider, so JWT refreshes
happen transparently. Non-streaming endpoints return the ``data`` member of
the ``{"code", "msg", "data"}`` envelope; streaming endpoints yield decoded
``BackendEvent`` objects as they arrive.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional

import httpx

from ..core.exceptions import BackendStatusError, PollingTimeoutError
from ..core.sse import SSEDecoder, SSEEvent, describe_stream_error
from ..settings import CozeSettings, PollingSettings
from .types import BackendEvent, ChatResult, ChatStatus, ExecuteStatus, WorkflowRunResult

logger = logging.getLogger("coze-proxy")

TokenProvider = Callable[[], Awaitable[str]]


def format_httpx_error(exc: httpx.HTTPError, url: Optional[str] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)
    try:
        request = exc.request
    except RuntimeError:
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")
    return "; ".join(parts)


def _to_backend_event(sse: SSEEvent) -> BackendEvent:
    return BackendEvent(event=sse.event or "message", data=sse.json())


class CozeClient:
    """Thin async wrapper over the Coze REST and event-stream endpoints."""

    def __init__(
        self,
        settings: CozeSettings,
        token_provider: TokenProvider,
        *,
        polling: Optional[PollingSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.polling = polling or PollingSettings()
        self._token_provider = token_provider
        self._transport = transport

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=self.settings.timeout,
            transport=self._transport,
        )

    async def _headers(self) -> dict[str, str]:
        token = await self._token_provider()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    @staticmethod
    def _unwrap(resp: httpx.Response, path: str) -> dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 400:
            detail = describe_stream_error(body) if body is not None else resp.text[:200]
            raise BackendStatusError(
                f"Backend request {path} failed with HTTP {resp.status_code}: {detail}",
                http_status=resp.status_code,
            )
        if not isinstance(body, dict):
            raise BackendStatusError(f"Backend request {path} returned a non-JSON body")

        code = body.get("code", 0)
        if code not in (0, None):
            raise BackendStatusError(
                f"Backend request {path} failed: {body.get('msg') or 'unknown error'} (code={code})",
                code=str(code),
            )
        return body

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> dict[str, Any]:
        headers = await self._headers()
        logger.debug(f"Backend request {method} {path}")
        try:
            async with self._client() as client:
                resp = await client.request(
                    method, path, json=json_body, params=params, headers=headers
                )
        except httpx.HTTPError as exc:
            raise BackendStatusError(
                f"Backend request {path} failed: {format_httpx_error(exc, path)}"
            ) from exc
        return self._unwrap(resp, path)

    @asynccontextmanager
    async def _open_stream(
        self, path: str, json_body: Mapping[str, Any]
    ) -> AsyncIterator[httpx.Response]:
        headers = await self._headers()
        headers["Accept"] = "text/event-stream"
        async with self._client() as client:
            try:
                async with client.stream("POST", path, json=json_body, headers=headers) as resp:
                    if resp.status_code >= 400:
                        await resp.aread()
                        self._unwrap(resp, path)
                    content_type = resp.headers.get("content-type", "")
                    if "application/json" in content_type:
                        # Errors on stream endpoints come back as a plain JSON envelope
                        await resp.aread()
                        self._unwrap(resp, path)
                        raise BackendStatusError(
                            f"Backend request {path} returned JSON instead of an event stream"
                        )
                    yield resp
            except httpx.HTTPError as exc:
                raise BackendStatusError(
                    f"Backend stream {path} failed: {format_httpx_error(exc, path)}"
                ) from exc

    async def _stream_events(
        self, path: str, json_body: Mapping[str, Any]
    ) -> AsyncIterator[BackendEvent]:
        async with self._open_stream(path, json_body) as resp:
            decoder = SSEDecoder()
            async for chunk in resp.aiter_bytes():
                for sse in decoder.feed(chunk):
                    yield _to_backend_event(sse)
            for sse in decoder.flush():
                yield _to_backend_event(sse)

    # ------------------------------------------------------------------
    # Chat (v3)
    # ------------------------------------------------------------------

    def _chat_body(
        self,
        bot_id: str,
        user_id: str,
        messages: list[Mapping[str, Any]],
        stream: bool,
    ) -> dict[str, Any]:
        return {
            "bot_id": bot_id,
            "user_id": user_id,
            "additional_messages": list(messages),
            "stream": stream,
            # Polling needs the chat saved server side; streams do not
            "auto_save_history": not stream,
        }

    async def create_chat(
        self, bot_id: str, user_id: str, messages: list[Mapping[str, Any]]
    ) -> dict[str, Any]:
        body = await self._request(
            "POST", "/v3/chat", json_body=self._chat_body(bot_id, user_id, messages, False)
        )
        return body.get("data") or {}

    async def retrieve_chat(self, conversation_id: str, chat_id: str) -> dict[str, Any]:
        body = await self._request(
            "GET",
            "/v3/chat/retrieve",
            params={"conversation_id": conversation_id, "chat_id": chat_id},
        )
        return body.get("data") or {}

    async def list_chat_messages(
        self, conversation_id: str, chat_id: str
    ) -> list[dict[str, Any]]:
        body = await self._request(
            "GET",
            "/v3/chat/message/list",
            params={"conversation_id": conversation_id, "chat_id": chat_id},
        )
        return list(body.get("data") or [])

    async def create_and_poll_chat(
        self, bot_id: str, user_id: str, messages: list[Mapping[str, Any]]
    ) -> ChatResult:
        """Create a chat and poll it until it leaves the running states.

        Raises:
            PollingTimeoutError: If the chat is still running after max_attempts polls.
        """
        chat = await self.create_chat(bot_id, user_id, messages)
        chat_id = str(chat.get("id") or "")
        conversation_id = str(chat.get("conversation_id") or "")

        attempts = 0
        while self._chat_running(chat):
            if attempts >= self.polling.max_attempts:
                raise PollingTimeoutError(
                    f"Chat {chat_id} still running after {attempts} polls", attempts
                )
            await asyncio.sleep(self.polling.interval_seconds)
            attempts += 1
            chat = await self.retrieve_chat(conversation_id, chat_id)

        messages_out: list[dict[str, Any]] = []
        if chat.get("status") == ChatStatus.COMPLETED.value:
            messages_out = await self.list_chat_messages(conversation_id, chat_id)
        logger.debug(f"Chat {chat_id} finished with status {chat.get('status')} after {attempts} polls")
        return ChatResult(chat=chat, messages=messages_out)

    @staticmethod
    def _chat_running(chat: Mapping[str, Any]) -> bool:
        try:
            return ChatStatus(str(chat.get("status"))).is_running
        except ValueError:
            return False

    def stream_chat(
        self, bot_id: str, user_id: str, messages: list[Mapping[str, Any]]
    ) -> AsyncIterator[BackendEvent]:
        return self._stream_events(
            "/v3/chat", self._chat_body(bot_id, user_id, messages, True)
        )

    # ------------------------------------------------------------------
    # Conversations (v1)
    # ------------------------------------------------------------------

    async def create_conversation(
        self,
        bot_id: Optional[str],
        messages: list[Mapping[str, Any]],
        meta_data: Optional[Mapping[str, str]] = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"messages": list(messages)}
        if bot_id:
            payload["bot_id"] = bot_id
        if meta_data:
            payload["meta_data"] = dict(meta_data)
        body = await self._request("POST", "/v1/conversation/create", json_body=payload)
        return body.get("data") or {}

    async def create_message(
        self, conversation_id: str, message: Mapping[str, Any]
    ) -> dict[str, Any]:
        body = await self._request(
            "POST",
            "/v1/conversation/message/create",
            params={"conversation_id": conversation_id},
            json_body={
                "role": message["role"],
                "content": message["content"],
                "content_type": message["content_type"],
            },
        )
        return body.get("data") or {}

    async def list_messages(
        self, conversation_id: str, *, order: str = "desc", limit: int = 50
    ) -> list[dict[str, Any]]:
        """List conversation messages, newest first by default."""
        body = await self._request(
            "POST",
            "/v1/conversation/message/list",
            params={"conversation_id": conversation_id},
            json_body={"order": order, "limit": limit},
        )
        return list(body.get("data") or [])

    async def clear_conversation(self, conversation_id: str) -> dict[str, Any]:
        body = await self._request("POST", f"/v1/conversations/{conversation_id}/clear")
        return body.get("data") or {}

    # ------------------------------------------------------------------
    # Workflows (v1)
    # ------------------------------------------------------------------

    async def run_workflow(
        self,
        workflow_id: str,
        parameters: Mapping[str, Any],
        *,
        bot_id: Optional[str] = None,
        is_async: bool = False,
    ) -> WorkflowRunResult:
        payload: dict[str, Any] = {
            "workflow_id": workflow_id,
            "parameters": dict(parameters),
            "is_async": is_async,
        }
        if bot_id:
            payload["bot_id"] = bot_id
        body = await self._request("POST", "/v1/workflow/run", json_body=payload)
        execute_id = str(body.get("execute_id") or "")
        # Synchronous runs return their output directly
        status = ExecuteStatus.RUNNING.value if is_async else ExecuteStatus.SUCCESS.value
        return WorkflowRunResult(
            execute_id=execute_id,
            status=str(body.get("execute_status") or status),
            output=body.get("data"),
            debug_url=body.get("debug_url"),
        )

    async def workflow_history(
        self, workflow_id: str, execute_id: str
    ) -> list[WorkflowRunResult]:
        body = await self._request(
            "GET", f"/v1/workflows/{workflow_id}/run_histories/{execute_id}"
        )
        results: list[WorkflowRunResult] = []
        for item in body.get("data") or []:
            if not isinstance(item, dict):
                continue
            results.append(
                WorkflowRunResult(
                    execute_id=str(item.get("execute_id") or execute_id),
                    status=str(item.get("execute_status") or ""),
                    output=item.get("output"),
                    error_message=item.get("error_message"),
                    debug_url=item.get("debug_url"),
                )
            )
        return results

    async def poll_workflow(
        self, workflow_id: str, execute_id: str
    ) -> WorkflowRunResult:
        """Poll run history until the execution leaves the Running state.

        Raises:
            PollingTimeoutError: After ``polling.max_attempts`` unsuccessful polls.
        """
        for attempt in range(1, self.polling.max_attempts + 1):
            # One interval passes before every history read
            await asyncio.sleep(self.polling.interval_seconds)
            history = await self.workflow_history(workflow_id, execute_id)
            if history and not history[0].is_running:
                logger.debug(
                    f"Workflow run {execute_id} reached {history[0].status} after {attempt} polls"
                )
                return history[0]
        raise PollingTimeoutError(
            f"Workflow polling timeout for execute_id {execute_id}",
            self.polling.max_attempts,
        )

    def stream_workflow(
        self,
        workflow_id: str,
        parameters: Mapping[str, Any],
        *,
        bot_id: Optional[str] = None,
    ) -> AsyncIterator[BackendEvent]:
        payload: dict[str, Any] = {
            "workflow_id": workflow_id,
            "parameters": dict(parameters),
        }
        if bot_id:
            payload["bot_id"] = bot_id
        return self._stream_events("/v1/workflow/stream_run", payload)

    def resume_workflow(
        self,
        workflow_id: str,
        event_id: str,
        resume_data: str,
        interrupt_type: int,
    ) -> AsyncIterator[BackendEvent]:
        return self._stream_events(
            "/v1/workflow/stream_resume",
            {
                "workflow_id": workflow_id,
                "event_id": event_id,
                "resume_data": resume_data,
                "interrupt_type": interrupt_type,
            },
        )


__all__ = ["CozeClient", "TokenProvider", "format_httpx_error"]
