"""
Tests for the Conversation Relay.
"""

import pytest
import httpx

from companion.llm import LLMDelta, ProviderEvent
from companion.services import ConversationRelay, estimate_tokens
from companion.services.prompts import FALLBACK_SYSTEM_PROMPT

from conftest import FakeAssistants, FakeLLM, completed, delta


async def collect(relay, *args, **kwargs):
    return [event async for event in relay.stream(*args, **kwargs)]


class TestEstimateTokens:

    def test_ceil_of_quarter_length(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2


class TestAssistantMode:

    @pytest.mark.asyncio
    async def test_tokens_forwarded_in_order(self, store):
        assistants = FakeAssistants([delta("Hel"), delta("lo"), delta(" there"), completed(12, 3)])

        events = await collect(ConversationRelay(store, assistants), "asst_1", None, "hello")

        tokens = [e["content"] for e in events if e["type"] == "token"]
        assert tokens == ["Hel", "lo", " there"]
        done = events[-1]
        assert done["type"] == "done"
        assert done["content"] == "".join(tokens)
        assert done["promptTokens"] == 12
        assert done["completionTokens"] == 3
        assert done["threadId"] == "thread_new"
        assert done["mode"] == "assistant"

    @pytest.mark.asyncio
    async def test_new_thread_when_absent(self, store):
        assistants = FakeAssistants([completed()])
        await collect(ConversationRelay(store, assistants), "asst_1", None, "hi")

        assert assistants.created_threads == 1
        assert assistants.posted == [("thread_new", "hi")]
        assert assistants.runs == [("thread_new", "asst_1")]

    @pytest.mark.asyncio
    async def test_existing_thread_reused(self, store):
        assistants = FakeAssistants([completed()])
        events = await collect(ConversationRelay(store, assistants), "asst_1", "thread_old", "hi")

        assert assistants.created_threads == 0
        assert assistants.posted == [("thread_old", "hi")]
        assert events[-1]["threadId"] == "thread_old"

    @pytest.mark.asyncio
    async def test_malformed_thread_replaced(self, store):
        assistants = FakeAssistants([completed()])
        events = await collect(ConversationRelay(store, assistants), "asst_1", "bogus", "hi")

        assert assistants.created_threads == 1
        assert events[-1]["threadId"] == "thread_new"

    @pytest.mark.asyncio
    async def test_usage_estimated_when_missing(self, store):
        assistants = FakeAssistants([delta("12345"), completed()])
        events = await collect(ConversationRelay(store, assistants), "asst_1", None, "123456789")

        done = events[-1]
        assert done["promptTokens"] == 3
        assert done["completionTokens"] == 2

    @pytest.mark.asyncio
    async def test_non_text_deltas_ignored(self, store):
        image = ProviderEvent(event="thread.message.delta", data={"delta": {"content": [{"type": "image_file"}]}})
        assistants = FakeAssistants([image, delta("ok"), completed()])
        events = await collect(ConversationRelay(store, assistants), "asst_1", None, "hi")

        assert [e["type"] for e in events] == ["token", "done"]

    @pytest.mark.asyncio
    async def test_invalid_assistant_id(self, store):
        assistants = FakeAssistants([completed()])
        events = await collect(ConversationRelay(store, assistants), "not-an-assistant", None, "hi")

        assert events == [{"type": "error", "error": 'Invalid assistant ID. Must start with "asst_"'}]
        assert assistants.runs == []

    @pytest.mark.asyncio
    async def test_empty_message(self, store):
        assistants = FakeAssistants()
        events = await collect(ConversationRelay(store, assistants), "asst_1", None, "   ")
        assert events[0]["type"] == "error"
        assert assistants.posted == []

    @pytest.mark.asyncio
    async def test_failed_run_becomes_error(self, store):
        failed = ProviderEvent(
            event="thread.run.failed",
            data={"last_error": {"code": "rate_limit_exceeded", "message": "Rate limit reached"}},
        )
        assistants = FakeAssistants([delta("partial"), failed, delta("never")])
        events = await collect(ConversationRelay(store, assistants), "asst_1", None, "hi")

        assert [e["type"] for e in events] == ["token", "error"]
        assert "Rate limit reached" in events[-1]["error"]

    @pytest.mark.asyncio
    async def test_provider_failure_after_two_tokens(self, store):
        request = httpx.Request("POST", "https://api.openai.com/v1/threads/thread_new/runs")
        assistants = FakeAssistants(
            [delta("one"), delta("two")],
            fail_after=httpx.ReadError("connection reset", request=request),
        )
        events = await collect(ConversationRelay(store, assistants), "asst_1", None, "hi")

        assert events[0] == {"type": "token", "content": "one"}
        assert events[1] == {"type": "token", "content": "two"}
        assert events[2]["type"] == "error"
        assert events[2]["error"].startswith("Assistant API error")
        assert len(events) == 3

    @pytest.mark.asyncio
    async def test_no_provider(self, store):
        events = await collect(ConversationRelay(store), "asst_1", None, "hi")
        assert events == [{"type": "error", "error": "No LLM provider configured"}]


class TestChatMode:

    @pytest.mark.asyncio
    async def test_streams_with_history_and_system_prompt(self, store):
        await store.insert("system_prompts", {
            "content": "Be kind.", "is_active": True, "is_default": True, "version": "v2",
        })
        await store.insert("messages", {
            "session_id": "s1", "role": "user", "content": "earlier question",
            "timestamp": "2026-01-01T00:00:00+00:00",
        })
        await store.insert("messages", {
            "session_id": "s1", "role": "assistant", "content": "earlier answer",
            "timestamp": "2026-01-01T00:00:01+00:00",
        })
        await store.insert("messages", {
            "session_id": "s1", "role": "user", "content": "deleted",
            "timestamp": "2026-01-01T00:00:02+00:00", "deleted_at": "2026-01-02T00:00:00+00:00",
        })
        llm = FakeLLM(chunks=["Sure", ", go on"], usage={"prompt_tokens": 40, "completion_tokens": 4})

        events = await collect(ConversationRelay(store, llm=llm), None, None, "new question", session_id="s1")

        prompt = llm.calls[0]
        assert [(m.role, m.content) for m in prompt] == [
            ("system", "Be kind."),
            ("user", "earlier question"),
            ("assistant", "earlier answer"),
            ("user", "new question"),
        ]
        assert [e["content"] for e in events if e["type"] == "token"] == ["Sure", ", go on"]
        done = events[-1]
        assert done["content"] == "Sure, go on"
        assert done["mode"] == "chat"
        assert done["threadId"] is None
        assert done["promptTokens"] == 40

    @pytest.mark.asyncio
    async def test_history_limited_to_most_recent(self, store):
        for i in range(5):
            await store.insert("messages", {
                "session_id": "s1", "role": "user", "content": f"m{i}",
                "timestamp": f"2026-01-01T00:00:0{i}+00:00",
            })
        llm = FakeLLM(chunks=["ok"])

        await collect(ConversationRelay(store, llm=llm, history_limit=2), None, None, "now", session_id="s1")

        assert [m.content for m in llm.calls[0]] == [FALLBACK_SYSTEM_PROMPT, "m3", "m4", "now"]

    @pytest.mark.asyncio
    async def test_prompt_estimate_covers_whole_prompt(self, store):
        llm = FakeLLM(chunks=["abcd"])
        events = await collect(ConversationRelay(store, llm=llm), None, None, "1234")

        expected = -(-(len(FALLBACK_SYSTEM_PROMPT) + 4) // 4)
        assert events[-1]["promptTokens"] == expected
        assert events[-1]["completionTokens"] == 1

    @pytest.mark.asyncio
    async def test_stream_failure(self, store):
        class BrokenLLM(FakeLLM):
            async def chat_completion_stream(self, messages, temperature=None, max_tokens=None, **kwargs):
                yield LLMDelta(text="partial")
                raise httpx.ConnectError("down")

        events = await collect(ConversationRelay(store, llm=BrokenLLM()), None, None, "hi")
        assert [e["type"] for e in events] == ["token", "error"]
