"""
Tests for the streaming chat client and SSE decoding.
"""

import json
import pytest
import httpx

from companion.client import ChatStreamClient, ConversationView, SessionList, ViewState, iter_sse_events


async def lines(*items):
    for item in items:
        yield item


def sse_body(*events) -> bytes:
    return "".join(f"data: {json.dumps(e)}\n\n" for e in events).encode("utf-8")


def message(message_id, role, content, ts):
    return {
        "message_id": message_id, "session_id": "s1", "role": role, "content": content,
        "token_count": 1, "metadata": {}, "timestamp": ts, "deleted_at": None,
    }


USER = message("m-user", "user", "hello", "2026-01-01T00:00:01+00:00")
ASSISTANT = message("m-assistant", "assistant", "Hi there", "2026-01-01T00:00:02+00:00")

DONE = {"type": "done", "userMessage": USER, "assistantMessage": ASSISTANT, "tokensUsed": 4, "threadId": "thread_1"}


class Server:
    """MockTransport handler recording requests."""

    def __init__(self, stream_response: httpx.Response):
        self.stream_response = stream_response
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/chat/stream":
            return self.stream_response
        if request.url.path == "/chat/sessions/s1/messages":
            return httpx.Response(200, json=[USER, ASSISTANT])
        if request.url.path == "/chat/sessions":
            return httpx.Response(200, json=[{"session_id": "s1", "title": "Hello"}])
        if request.url.path == "/chat/anonymous-token":
            return httpx.Response(200, json={"token": "minted"})
        return httpx.Response(404, json={"error": "not found"})


def make_client(server, **kwargs) -> ChatStreamClient:
    return ChatStreamClient("http://testserver", transport=httpx.MockTransport(server), **kwargs)


class TestIterSseEvents:

    @pytest.mark.asyncio
    async def test_decodes_frames(self):
        events = [e async for e in iter_sse_events(lines(
            'data: {"type": "token", "content": "a"}', "",
            ": keep-alive", "",
            "data: not json", "",
            'data: {"type": "done"}', "",
        ))]
        assert events == [{"type": "token", "content": "a"}, {"type": "done"}]

    @pytest.mark.asyncio
    async def test_ignores_frames_without_type(self):
        events = [e async for e in iter_sse_events(lines('data: {"content": "x"}', ""))]
        assert events == []


class TestChatStreamClient:

    @pytest.mark.asyncio
    async def test_successful_turn_reconciles_and_refetches(self):
        server = Server(httpx.Response(
            200,
            content=sse_body(
                {"type": "token", "content": "Hi"},
                {"type": "token", "content": " there"},
                DONE,
                {"type": "title_updated", "sessionId": "s1", "title": "Hello"},
            ),
            headers={"content-type": "text/event-stream"},
        ))
        sessions = SessionList()
        view = ConversationView("s1", session_list=sessions)

        await make_client(server, access_token="jwt").send(view, "hello", is_first_message=True)

        assert view.state is ViewState.RECONCILED
        assert [m.message_id for m in view.messages] == ["m-user", "m-assistant"]
        assert not view.invalidated
        assert sessions.sessions == [{"session_id": "s1", "title": "Hello"}]
        assert sessions.skeletons == {}

        stream_request = server.requests[0]
        assert json.loads(stream_request.content) == {
            "sessionId": "s1", "userMessage": "hello", "isFirstMessage": True,
        }
        assert stream_request.headers["authorization"] == "Bearer jwt"

    @pytest.mark.asyncio
    async def test_anonymous_token_header(self):
        server = Server(httpx.Response(200, content=sse_body(DONE)))
        client = make_client(server)

        assert await client.request_anonymous_token() == "minted"
        await client.send(ConversationView("s1"), "hello")

        assert server.requests[1].headers["x-anonymous-token"] == "minted"
        assert "authorization" not in server.requests[1].headers

    @pytest.mark.asyncio
    async def test_error_event_fails_turn(self):
        server = Server(httpx.Response(200, content=sse_body(
            {"type": "token", "content": "one"},
            {"type": "token", "content": "two"},
            {"type": "error", "error": "Assistant API error: boom"},
        )))
        view = ConversationView("s1")

        await make_client(server).send(view, "hello")

        assert view.state is ViewState.IDLE
        assert view.error == "Assistant API error: boom"
        assert view.messages == []
        assert len(server.requests) == 1

    @pytest.mark.asyncio
    async def test_http_error_fails_turn(self):
        server = Server(httpx.Response(404, json={"error": "Session not found"}))
        view = ConversationView("s1")

        await make_client(server).send(view, "hello")

        assert view.state is ViewState.IDLE
        assert view.error == "Session not found"
        assert view.optimistic == []

    @pytest.mark.asyncio
    async def test_truncated_stream_fails_turn(self):
        server = Server(httpx.Response(200, content=sse_body({"type": "token", "content": "par"})))
        view = ConversationView("s1")

        await make_client(server).send(view, "hello")

        assert view.state is ViewState.IDLE
        assert view.error
        assert view.messages == []

    @pytest.mark.asyncio
    async def test_transport_error_fails_turn(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        sessions = SessionList()
        view = ConversationView("s1", session_list=sessions)

        await ChatStreamClient("http://testserver", transport=httpx.MockTransport(handler)).send(
            view, "hello", is_first_message=True
        )

        assert view.state is ViewState.IDLE
        assert view.error
        assert view.messages == []
        assert sessions.skeletons == {}
