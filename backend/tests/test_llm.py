"""
Unit tests for the LLM module.
Tests LLMMessage, LLMResponse, providers, SSE framing and factory.
"""

import pytest
import json
import httpx
from unittest.mock import AsyncMock, patch, MagicMock

from companion.llm.base import LLMMessage, LLMResponse, LLMDelta
from companion.llm.openai_provider import OpenAIProvider, OpenAIAssistantsProvider
from companion.llm.volcengine_provider import VolcEngineProvider
from companion.llm.factory import create_llm_provider, create_assistant_provider
from companion.llm.streaming import iter_sse_frames

RealAsyncClient = httpx.AsyncClient


def mock_transport_client(handler):
    """Patch target factory: real AsyncClient wired to a MockTransport."""
    def factory(*args, **kwargs):
        return RealAsyncClient(*args, transport=httpx.MockTransport(handler), **kwargs)
    return factory


async def lines(*items):
    for item in items:
        yield item


class TestLLMMessage:
    """Tests for LLMMessage dataclass."""

    def test_text_message(self):
        msg = LLMMessage.text("user", "Hello")
        assert msg.role == "user"
        assert msg.content == "Hello"

    def test_system_message(self):
        msg = LLMMessage.text("system", "You are a helpful assistant")
        assert msg.role == "system"
        assert msg.content == "You are a helpful assistant"


class TestLLMResponse:
    """Tests for LLMResponse dataclass."""

    def test_basic_response(self):
        resp = LLMResponse(content="Hello!", model="gpt-4")
        assert resp.content == "Hello!"
        assert resp.model == "gpt-4"
        assert resp.usage == {}
        assert resp.raw is None

    def test_response_with_usage(self):
        resp = LLMResponse(
            content="Hi",
            model="test",
            usage={"prompt_tokens": 10, "completion_tokens": 5}
        )
        assert resp.usage["prompt_tokens"] == 10


class TestSseFrames:

    @pytest.mark.asyncio
    async def test_groups_event_and_data(self):
        frames = [f async for f in iter_sse_frames(lines(
            "event: thread.message.delta",
            'data: {"a": 1}',
            "",
            "data: first",
            "data: second",
            "",
            "data: [DONE]",
        ))]
        assert frames == [
            ("thread.message.delta", '{"a": 1}'),
            (None, "first\nsecond"),
            (None, "[DONE]"),
        ]


class TestOpenAIProvider:
    """Tests for OpenAI-compatible provider."""

    def test_init_defaults(self):
        provider = OpenAIProvider(api_key="test-key")
        assert provider.api_key == "test-key"
        assert provider.model == "gpt-4o-mini"
        assert provider.base_url == "https://api.openai.com/v1"

    def test_init_custom(self):
        provider = OpenAIProvider(
            api_key="key",
            model="gpt-3.5-turbo",
            base_url="https://custom.api.com/v1"
        )
        assert provider.model == "gpt-3.5-turbo"
        assert provider.base_url == "https://custom.api.com/v1"

    def test_format_messages(self):
        provider = OpenAIProvider(api_key="test")
        messages = [
            LLMMessage.text("system", "sys prompt"),
            LLMMessage.text("user", "hello")
        ]
        formatted = provider._format_messages(messages)
        assert len(formatted) == 2
        assert formatted[0] == {"role": "system", "content": "sys prompt"}
        assert formatted[1] == {"role": "user", "content": "hello"}

    def test_headers(self):
        provider = OpenAIProvider(api_key="sk-test123")
        headers = provider._get_headers()
        assert headers["Authorization"] == "Bearer sk-test123"
        assert headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_chat_completion_success(self):
        provider = OpenAIProvider(api_key="test-key")
        mock_response = MagicMock()
        mock_response.json.return_value = {
            "choices": [{"message": {"content": "Test response"}}],
            "model": "gpt-4o-mini",
            "usage": {"prompt_tokens": 10, "completion_tokens": 5}
        }
        mock_response.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.post.return_value = mock_response
            mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_instance.__aexit__ = AsyncMock(return_value=False)
            mock_client.return_value = mock_instance

            result = await provider.chat_completion(
                [LLMMessage.text("user", "Hello")]
            )

            assert result.content == "Test response"
            assert result.model == "gpt-4o-mini"
            assert result.usage["completion_tokens"] == 5

    @pytest.mark.asyncio
    async def test_chat_completion_model_override(self):
        provider = OpenAIProvider(api_key="test-key")
        mock_response = MagicMock()
        mock_response.json.return_value = {"choices": [{"message": {"content": "Title"}}]}
        mock_response.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.post.return_value = mock_response
            mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_instance.__aexit__ = AsyncMock(return_value=False)
            mock_client.return_value = mock_instance

            await provider.chat_completion([LLMMessage.text("user", "Hi")], model="gpt-4.1-nano", max_tokens=20)

            payload = mock_instance.post.call_args.kwargs["json"]
            assert payload["model"] == "gpt-4.1-nano"
            assert payload["max_tokens"] == 20

    @pytest.mark.asyncio
    async def test_chat_completion_stream(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["stream"] is True
            assert body["stream_options"] == {"include_usage": True}
            chunks = [
                {"choices": [{"delta": {"role": "assistant"}}]},
                {"choices": [{"delta": {"content": "Hel"}}]},
                {"choices": [{"delta": {"content": "lo"}}]},
                {"choices": [], "usage": {"prompt_tokens": 7, "completion_tokens": 2}},
            ]
            text = "".join(f"data: {json.dumps(c)}\n\n" for c in chunks) + "data: [DONE]\n\n"
            return httpx.Response(200, content=text.encode(), headers={"content-type": "text/event-stream"})

        provider = OpenAIProvider(api_key="test-key")
        with patch("httpx.AsyncClient", side_effect=mock_transport_client(handler)):
            deltas = [d async for d in provider.chat_completion_stream([LLMMessage.text("user", "Hi")])]

        assert deltas == [
            LLMDelta(text="Hel"),
            LLMDelta(text="lo"),
            LLMDelta(text="", usage={"prompt_tokens": 7, "completion_tokens": 2}),
        ]

    @pytest.mark.asyncio
    async def test_chat_completion_stream_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"message": "bad key"}})

        provider = OpenAIProvider(api_key="bad")
        with patch("httpx.AsyncClient", side_effect=mock_transport_client(handler)):
            with pytest.raises(httpx.HTTPStatusError):
                async for _ in provider.chat_completion_stream([LLMMessage.text("user", "Hi")]):
                    pass


class TestOpenAIAssistantsProvider:

    def test_headers(self):
        headers = OpenAIAssistantsProvider(api_key="sk-1")._get_headers()
        assert headers["OpenAI-Beta"] == "assistants=v2"
        assert headers["Authorization"] == "Bearer sk-1"

    @pytest.mark.asyncio
    async def test_thread_message_and_run(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, json.loads(request.content or b"{}")))
            if request.url.path == "/v1/threads":
                return httpx.Response(200, json={"id": "thread_abc"})
            if request.url.path == "/v1/threads/thread_abc/messages":
                return httpx.Response(200, json={"id": "msg_1"})
            if request.url.path == "/v1/threads/thread_abc/runs":
                text = (
                    "event: thread.run.created\n"
                    'data: {"id": "run_1"}\n\n'
                    "event: thread.message.delta\n"
                    'data: {"delta": {"content": [{"type": "text", "text": {"value": "Hi"}}]}}\n\n'
                    "event: thread.run.completed\n"
                    'data: {"id": "run_1", "usage": {"prompt_tokens": 3, "completion_tokens": 1}}\n\n'
                    "event: done\n"
                    "data: [DONE]\n\n"
                )
                return httpx.Response(200, content=text.encode(), headers={"content-type": "text/event-stream"})
            return httpx.Response(404)

        provider = OpenAIAssistantsProvider(api_key="sk-1")
        with patch("httpx.AsyncClient", side_effect=mock_transport_client(handler)):
            thread_id = await provider.create_thread()
            await provider.post_message(thread_id, "hello")
            events = [e async for e in provider.run_stream(thread_id, "asst_1")]

        assert thread_id == "thread_abc"
        assert seen[1] == ("POST", "/v1/threads/thread_abc/messages", {"role": "user", "content": "hello"})
        assert seen[2][2] == {"assistant_id": "asst_1", "stream": True}
        assert [e.event for e in events] == ["thread.run.created", "thread.message.delta", "thread.run.completed"]
        assert events[2].data["usage"]["prompt_tokens"] == 3


class TestVolcEngineProvider:
    """Tests for Volcano Engine provider."""

    def test_init_defaults(self):
        provider = VolcEngineProvider(api_key="test-key")
        assert provider.api_key == "test-key"
        assert provider.model == "doubao-1-5-pro-256k-250115"
        assert "volces.com" in provider.base_url

    def test_init_custom(self):
        provider = VolcEngineProvider(
            api_key="key",
            model="custom-model",
            base_url="https://custom.volces.com/api/v3"
        )
        assert provider.model == "custom-model"

    @pytest.mark.asyncio
    async def test_chat_completion_success(self):
        provider = VolcEngineProvider(api_key="test-key")
        mock_response = MagicMock()
        mock_response.json.return_value = {
            "choices": [{"message": {"content": "Xin chào"}}],
            "model": "doubao-1-5-pro-256k-250115",
            "usage": {}
        }
        mock_response.raise_for_status = MagicMock()

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_instance.post.return_value = mock_response
            mock_instance.__aenter__ = AsyncMock(return_value=mock_instance)
            mock_instance.__aexit__ = AsyncMock(return_value=False)
            mock_client.return_value = mock_instance

            result = await provider.chat_completion(
                [LLMMessage.text("user", "Xin chào")]
            )

            assert result.content == "Xin chào"


class TestLLMFactory:
    """Tests for LLM provider factory."""

    def test_create_openai_provider(self):
        provider = create_llm_provider(
            provider="openai",
            api_key="test-key",
            model="gpt-4o"
        )
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o"

    def test_create_volcengine_provider(self):
        provider = create_llm_provider(
            provider="volcengine",
            api_key="test-key"
        )
        assert isinstance(provider, VolcEngineProvider)

    def test_no_api_key_returns_none(self):
        provider = create_llm_provider(provider="openai", api_key="")
        assert provider is None

    def test_unsupported_provider_raises(self):
        with pytest.raises(ValueError, match="Unsupported"):
            create_llm_provider(provider="unsupported", api_key="key")

    def test_custom_base_url(self):
        provider = create_llm_provider(
            provider="openai",
            api_key="key",
            base_url="https://custom.api.com/v1"
        )
        assert provider.base_url == "https://custom.api.com/v1"

    def test_assistant_provider(self):
        assert create_assistant_provider(api_key="") is None
        provider = create_assistant_provider(api_key="key", base_url="https://proxy.example.com/v1")
        assert isinstance(provider, OpenAIAssistantsProvider)
        assert provider.base_url == "https://proxy.example.com/v1"
