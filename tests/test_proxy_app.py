"""End-to-end tests: HTTP requests through the proxy app to the fake backend."""

import pytest

from cozeproxy.testing import (
    assert_openai_chat_valid,
    assert_stream_terminated,
    parse_sse_frames,
    stream_text,
)

USER_HI = [{"role": "user", "content": "Hi"}]


def _queue_completed_chat(backend, answer: str = "Hello!") -> None:
    backend.enqueue_json(
        "/v3/chat",
        {"id": "chat-1", "conversation_id": "c-1", "status": "completed",
         "usage": {"token_count": 5, "input_count": 2, "output_count": 3}},
    )
    backend.enqueue_json(
        "/v3/chat/message/list",
        [
            {"role": "assistant", "type": "verbose", "content": "{}"},
            {"role": "assistant", "type": "answer", "content": answer},
        ],
    )


class TestInfoEndpoints:
    """models / health / jwt"""

    @pytest.mark.asyncio
    async def test_models(self, proxy):
        async with proxy.make_async_client() as client:
            response = await client.get("/v1/models")
        assert response.status_code == 200
        payload = response.json()
        assert payload["object"] == "list"
        assert [entry["id"] for entry in payload["data"]] == ["gpt-3.5-turbo", "gpt-4"]
        assert all(entry["owned_by"] == "coze-proxy" for entry in payload["data"])

    @pytest.mark.asyncio
    async def test_health(self, proxy):
        async with proxy.make_async_client() as client:
            response = await client.get("/health")
        payload = response.json()
        assert payload["status"] == "ok"
        assert payload["config"] == {
            "has_api_key": True,
            "has_jwt_config": False,
            "default_model_type": "chat",
            "has_bot_id": True,
            "has_workflow_id": True,
        }
        assert payload["jwt"]["has_token"] is False

    @pytest.mark.asyncio
    async def test_jwt_routes_with_static_key(self, proxy):
        async with proxy.make_async_client() as client:
            current = await client.get("/get_jwt")
            refreshed = await client.post("/refresh_jwt")
            cleared = await client.delete("/clear_jwt")

        assert current.json()["token"] == "test-api-key"
        assert refreshed.status_code == 500
        assert refreshed.json()["error"]["code"] == "configuration_error"
        assert cleared.json() == {"success": True, "message": "JWT token cleared successfully"}


class TestRequestValidation:
    """Malformed requests never reach the backend"""

    @pytest.mark.asyncio
    async def test_invalid_json(self, proxy):
        async with proxy.make_async_client() as client:
            response = await client.post(
                "/v1/chat/completions",
                content=b"{not json",
                headers={"content-type": "application/json"},
            )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_json"
        assert proxy.backend.received == []

    @pytest.mark.asyncio
    async def test_missing_messages(self, proxy):
        async with proxy.make_async_client() as client:
            response = await client.post("/v1/chat/completions", json={"model": "gpt-4"})
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["type"] == "invalid_request_error"
        assert error["code"] == "missing_messages"

    @pytest.mark.asyncio
    async def test_invalid_model_type(self, proxy):
        async with proxy.make_async_client() as client:
            response = await client.post(
                "/v1/chat/completions",
                json={"messages": USER_HI},
                headers={"x-model-type": "telepathy"},
            )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "invalid_model_type"

    @pytest.mark.asyncio
    async def test_unknown_route(self, proxy):
        async with proxy.make_async_client() as client:
            response = await client.get("/v1/nowhere")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_conversation_stream_rejected(self, proxy):
        async with proxy.make_async_client() as client:
            response = await client.post(
                "/v1/chat/completions",
                json={"messages": USER_HI, "stream": True, "x-model-type": "conversation"},
            )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "streaming_not_supported"
        assert proxy.backend.received == []

    @pytest.mark.asyncio
    async def test_missing_workflow_id(self, backend, harness_factory):
        proxy = harness_factory(coze={"workflow_id": ""})
        async with proxy.make_async_client() as client:
            response = await client.post(
                "/v1/chat/completions",
                json={"messages": USER_HI, "stream": True},
                headers={"x-model-type": "workflow"},
            )
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "configuration_error"
        assert backend.received == []


class TestChatMode:
    """Default chat mode over HTTP"""

    @pytest.mark.asyncio
    async def test_buffered(self, proxy):
        _queue_completed_chat(proxy.backend)
        async with proxy.make_async_client() as client:
            response = await client.post(
                "/v1/chat/completions", json={"model": "gpt-4", "messages": USER_HI}
            )

        assert response.status_code == 200
        body = response.json()
        assert_openai_chat_valid(body)
        assert body["id"] == "chatcmpl-chat-1"
        assert body["choices"][0]["message"]["content"] == "Hello!"
        assert body["usage"] == {"prompt_tokens": 2, "completion_tokens": 3, "total_tokens": 5}
        assert proxy.backend.received[0]["headers"]["authorization"] == "Bearer test-api-key"

    @pytest.mark.asyncio
    async def test_streaming(self, proxy):
        proxy.backend.enqueue_events(
            "/v3/chat",
            [
                ("conversation.chat.created", {"id": "chat-9", "status": "created"}),
                ("conversation.message.delta", {"type": "answer", "content": "Hel"}),
                ("conversation.message.delta", {"type": "answer", "content": "lo"}),
                ("conversation.chat.completed", {"id": "chat-9", "status": "completed"}),
                ("done", "[DONE]"),
            ],
        )
        async with proxy.make_async_client() as client:
            response = await client.post(
                "/v1/chat/completions",
                json={"model": "gpt-4", "messages": USER_HI, "stream": True},
            )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        frames = parse_sse_frames(response.text)
        assert_stream_terminated(frames)
        assert stream_text(frames) == "Hello"
        assert frames[0]["id"] == "chatcmpl-chat-9"

    @pytest.mark.asyncio
    async def test_backend_failure_is_an_error_envelope(self, proxy):
        proxy.backend.enqueue_json("/v3/chat", code=4101, msg="token invalid")
        async with proxy.make_async_client() as client:
            response = await client.post("/v1/chat/completions", json={"messages": USER_HI})

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["type"] == "server_error"
        assert "token invalid" in error["message"]


class TestModeRouting:
    """x-model-type selects the handler"""

    @pytest.mark.asyncio
    async def test_workflow_header_routes_to_workflow(self, proxy):
        proxy.backend.enqueue_json("/v1/workflow/run", "42", execute_id="exec-1")
        async with proxy.make_async_client() as client:
            response = await client.post(
                "/v1/chat/completions",
                json={"messages": USER_HI},
                headers={"x-model-type": "workflow"},
            )

        assert response.json()["choices"][0]["message"]["content"] == "42"
        assert [r["path"] for r in proxy.backend.received] == ["/v1/workflow/run"]

    @pytest.mark.asyncio
    async def test_body_field_beats_header(self, proxy):
        _queue_completed_chat(proxy.backend)
        async with proxy.make_async_client() as client:
            response = await client.post(
                "/v1/chat/completions",
                json={"messages": USER_HI, "x-model-type": "chat"},
                headers={"x-model-type": "workflow"},
            )

        assert response.status_code == 200
        assert proxy.backend.received[0]["path"] == "/v3/chat"

    @pytest.mark.asyncio
    async def test_configured_default_mode(self, backend, harness_factory):
        proxy = harness_factory(proxy_settings={"default_model_type": "workflow"})
        backend.enqueue_json("/v1/workflow/run", "ok", execute_id="exec-1")
        async with proxy.make_async_client() as client:
            response = await client.post("/v1/chat/completions", json={"messages": USER_HI})

        assert response.json()["choices"][0]["message"]["content"] == "ok"

    @pytest.mark.asyncio
    async def test_workflow_failure_is_http_200(self, backend, harness_factory):
        proxy = harness_factory(workflow={"is_async": True})
        backend.enqueue_json("/v1/workflow/run", execute_id="exec-1")
        backend.enqueue_json(
            "/v1/workflows/wf-123/run_histories/exec-1", [{"execute_status": "Fail"}]
        )
        async with proxy.make_async_client() as client:
            response = await client.post(
                "/v1/chat/completions",
                json={"messages": USER_HI},
                headers={"x-model-type": "workflow"},
            )

        assert response.status_code == 200
        assert response.json()["choices"][0]["message"]["content"] == "Workflow failed with status: Fail"


class TestConversationEndpoints:
    """/v1/conversations"""

    @pytest.mark.asyncio
    async def test_lifecycle(self, proxy):
        backend = proxy.backend
        backend.enqueue_json("/v1/conversation/create", {"id": "conv-1"})
        backend.enqueue_json("/v1/conversation/message/create", {"id": "m1"})
        backend.enqueue_json(
            "/v1/conversation/message/list",
            [{"id": "m2", "role": "assistant", "content": "Hey", "content_type": "text"}],
        )

        async with proxy.make_async_client() as client:
            response = await client.post(
                "/v1/chat/completions",
                json={"messages": USER_HI},
                headers={"x-model-type": "conversation"},
            )
            assert response.headers["x-conversation-id"] == "conv-1"
            assert response.json()["choices"][0]["message"]["content"] == "Hey"

            listed = await client.get("/v1/conversations")
            assert [c["id"] for c in listed.json()["conversations"]] == ["conv-1"]

            backend.enqueue_json(
                "/v1/conversation/message/list",
                [
                    {"id": "m1", "role": "user", "content": "Hi", "content_type": "text"},
                    {"id": "m2", "role": "assistant", "content": "Hey", "content_type": "text"},
                ],
            )
            history = await client.get("/v1/conversations/conv-1/history")
            assert history.json() == {
                "conversation_id": "conv-1",
                "messages": [
                    {"role": "user", "content": "Hi"},
                    {"role": "assistant", "content": "Hey"},
                ],
            }

            backend.enqueue_json("/v1/conversations/conv-1/clear", {})
            cleared = await client.delete("/v1/conversations/conv-1")
            assert cleared.json() == {"success": True, "conversation_id": "conv-1"}

            missing = await client.get("/v1/conversations/conv-1/history")
            assert missing.status_code == 404
            assert missing.json()["error"]["code"] == "session_not_found"


class TestWorkflowEndpoints:
    """/v1/workflows"""

    @pytest.mark.asyncio
    async def test_sessions(self, proxy):
        proxy.backend.enqueue_json("/v1/workflow/run", "done", execute_id="exec-7")
        async with proxy.make_async_client() as client:
            await client.post(
                "/v1/chat/completions",
                json={"messages": USER_HI, "x-model-type": "workflow"},
            )
            listed = await client.get("/v1/workflows/sessions")
            single = await client.get("/v1/workflows/sessions/exec-7")
            missing = await client.get("/v1/workflows/sessions/nope")

        assert [s["id"] for s in listed.json()["sessions"]] == ["exec-7"]
        assert single.json()["session"]["parameters"] == {"input": "Hi"}
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_resume(self, proxy):
        proxy.backend.enqueue_events(
            "/v1/workflow/stream_resume",
            [("Message", {"content": "Resumed"}), ("Done", {})],
        )
        async with proxy.make_async_client() as client:
            response = await client.post(
                "/v1/workflows/resume",
                json={"event_id": "evt-1", "resume_data": {"city": "Paris"}, "interrupt_type": 2},
            )

        frames = parse_sse_frames(response.text)
        assert_stream_terminated(frames)
        assert stream_text(frames) == "Resumed"
        sent = proxy.backend.received[0]["json"]
        assert sent == {
            "workflow_id": "wf-123",
            "event_id": "evt-1",
            "resume_data": '{"city": "Paris"}',
            "interrupt_type": 2,
        }

    @pytest.mark.asyncio
    async def test_resume_requires_event_id(self, proxy):
        async with proxy.make_async_client() as client:
            response = await client.post("/v1/workflows/resume", json={"interrupt_type": 2})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "missing_parameter"


class TestMiddleware:
    """Access log and CORS are opt-in"""

    @pytest.mark.asyncio
    async def test_access_log(self, harness_factory, caplog):
        proxy = harness_factory(proxy_settings={"logging": {"enabled": True, "level": "INFO"}})
        with caplog.at_level("INFO", logger="coze-proxy"):
            async with proxy.make_async_client() as client:
                await client.get("/v1/models")

        assert any(
            "GET /v1/models -> 200" in record.getMessage() for record in caplog.records
        )

    @pytest.mark.asyncio
    async def test_cors_exposes_conversation_header(self, harness_factory):
        proxy = harness_factory(proxy_settings={"cors": {"enabled": True}})
        async with proxy.make_async_client() as client:
            response = await client.get("/health", headers={"origin": "http://app.local"})

        assert response.headers["access-control-allow-origin"] == "*"
        assert "x-conversation-id" in response.headers["access-control-expose-headers"]
