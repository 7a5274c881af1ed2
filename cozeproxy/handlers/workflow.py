"""Workflow mode: the final message becomes the workflow's ``input`` parameter."""

from __future__ import annotations

import json
import logging
import uuid
from contextlib import aclosing
from typing import Any, AsyncIterator, Optional

from ..backend.client import CozeClient
from ..backend.types import BackendEvent, ExecuteStatus, WorkflowEventType
from ..core.exceptions import BackendStatusError, ConfigurationError, SessionNotFoundError
from ..core.sse import describe_stream_error
from ..messages.stream_adapter import ChunkEmitter, terminate_stream
from ..messages.translator import build_chat_completion, content_to_text
from ..sessions.store import SessionStore, WorkflowSession
from ..settings import ProxySettings
from ..types.chat import ModelType
from .base import CompletionHandler, CompletionRequest, CompletionResult

logger = logging.getLogger("coze-proxy")


def _render_output(output: Any) -> str:
    # Synchronous runs already return the output serialised as a string
    if isinstance(output, str):
        return output
    return json.dumps(output or {}, ensure_ascii=False)


def interrupt_notice(payload: dict[str, Any]) -> str:
    """Describe an Interrupt event so the caller can resume the run."""
    data = payload.get("interrupt_data")
    data = data if isinstance(data, dict) else {}
    event_id = data.get("event_id", "")
    interrupt_type = data.get("type", "")
    node = payload.get("node_title")
    where = f" at node {node}" if node else ""
    return (
        f"Workflow requires user input{where} "
        f"(event_id={event_id}, interrupt_type={interrupt_type})"
    )


class WorkflowHandler(CompletionHandler):
    model_type = ModelType.WORKFLOW

    def __init__(
        self,
        client: CozeClient,
        settings: ProxySettings,
        store: SessionStore[WorkflowSession],
    ) -> None:
        self.client = client
        self.settings = settings
        self.store = store

    def _workflow_id(self, request: CompletionRequest) -> str:
        if not request.workflow_id:
            raise ConfigurationError("Workflow ID is required for workflow completion")
        return request.workflow_id

    def _parameters(self, request: CompletionRequest) -> dict[str, Any]:
        parameters = dict(self.settings.workflow.parameters)
        parameters["input"] = content_to_text(request.messages[-1]["content"])
        return parameters

    def _register(
        self, execute_id: Optional[str], workflow_id: str, parameters: dict[str, Any]
    ) -> WorkflowSession:
        session = WorkflowSession(
            id=execute_id or str(uuid.uuid4()),
            workflow_id=workflow_id,
            parameters=parameters,
        )
        self.store.put(session)
        return session

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        workflow_id = self._workflow_id(request)
        parameters = self._parameters(request)

        result = await self.client.run_workflow(
            workflow_id, parameters, is_async=self.settings.workflow.is_async
        )
        self._register(result.execute_id, workflow_id, parameters)

        if result.is_running:
            if not result.execute_id:
                raise BackendStatusError("Asynchronous workflow run returned no execute_id")
            result = await self.client.poll_workflow(workflow_id, result.execute_id)

        if result.status == ExecuteStatus.SUCCESS.value:
            content = _render_output(result.output)
        else:
            logger.warning(
                f"Workflow {workflow_id} run {result.execute_id} ended with status "
                f"{result.status}: {result.error_message or 'no error message'}"
            )
            content = f"Workflow failed with status: {result.status}"

        return CompletionResult(body=build_chat_completion(request.model, content))

    async def stream(self, request: CompletionRequest) -> AsyncIterator[str]:
        workflow_id = self._workflow_id(request)
        parameters = self._parameters(request)
        emitter = ChunkEmitter(request.model)
        events = self.client.stream_workflow(workflow_id, parameters)
        return terminate_stream(
            self._relay(events, emitter, workflow_id, parameters), emitter
        )

    async def resume(
        self,
        *,
        model: str,
        event_id: str,
        resume_data: str,
        interrupt_type: int,
        workflow_id: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """Resume an interrupted run; returns the same SSE framing as ``stream``."""
        workflow_id = workflow_id or self.settings.coze.workflow_id
        if not workflow_id:
            raise ConfigurationError("Workflow ID is required to resume a workflow")
        emitter = ChunkEmitter(model)
        events = self.client.resume_workflow(
            workflow_id, event_id, resume_data, interrupt_type
        )
        return terminate_stream(self._relay(events, emitter, workflow_id, None), emitter)

    async def _relay(
        self,
        events: AsyncIterator[BackendEvent],
        emitter: ChunkEmitter,
        workflow_id: str,
        parameters: Optional[dict[str, Any]],
    ) -> AsyncIterator[str]:
        registered = parameters is None
        async with aclosing(events) as stream:
            async for event in stream:
                payload = event.payload
                if not registered and payload.get("execute_id"):
                    self._register(str(payload["execute_id"]), workflow_id, parameters or {})
                    registered = True

                if event.event == WorkflowEventType.MESSAGE.value:
                    content = payload.get("content")
                    if content:
                        yield emitter.content(str(content))
                elif event.event == WorkflowEventType.DONE.value:
                    yield emitter.finish()
                    yield emitter.done()
                    return
                elif event.event == WorkflowEventType.ERROR.value:
                    raise BackendStatusError(
                        f"Workflow error: {describe_stream_error(event.data)}"
                    )
                elif event.event == WorkflowEventType.INTERRUPT.value:
                    logger.info(f"Workflow {workflow_id} interrupted: {payload}")
                    yield emitter.content(interrupt_notice(payload))
                    yield emitter.finish()
                    yield emitter.done()
                    return

    def list_sessions(self) -> list[dict[str, Any]]:
        return [session.to_dict() for session in self.store.values()]

    def get_session(self, session_id: str) -> dict[str, Any]:
        session = self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Workflow session not found: {session_id}")
        return session.to_dict()
