"""
Shared test fixtures and configuration.
"""

import pytest
import os
import tempfile
from typing import Any, Dict, List, Optional

# Set test environment variables before importing app modules
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOCAL_STORAGE_PATH", os.path.join(tempfile.gettempdir(), "companion_test_data"))
os.environ.setdefault("LOG_FILE_ENABLED", "false")
os.environ.setdefault("ANONYMOUS_TOKEN_HASH_ROUNDS", "4")
os.environ["LLM_API_KEY"] = ""
os.environ["ASSISTANT_ID"] = ""

from companion.llm import AssistantProvider, LLMDelta, LLMProvider, LLMResponse, ProviderEvent  # noqa: E402
from companion.storage import LocalStorage, LocalTableStore  # noqa: E402


class FakeAssistants(AssistantProvider):
    """Scripted hosted assistant: yields ``events`` and optionally fails afterwards."""

    def __init__(self, events: Optional[List[ProviderEvent]] = None, fail_after: Optional[Exception] = None,
                 thread_id: str = "thread_new"):
        self.events = events or []
        self.fail_after = fail_after
        self.thread_id = thread_id
        self.created_threads = 0
        self.posted: List[tuple] = []
        self.runs: List[tuple] = []

    async def create_thread(self) -> str:
        self.created_threads += 1
        return self.thread_id

    async def post_message(self, thread_id: str, text: str) -> None:
        self.posted.append((thread_id, text))

    async def run_stream(self, thread_id: str, assistant_id: str):
        self.runs.append((thread_id, assistant_id))
        for event in self.events:
            yield event
        if self.fail_after is not None:
            raise self.fail_after

    async def retrieve_assistant(self, assistant_id: str) -> Dict[str, Any]:
        return {"id": assistant_id}

    async def create_assistant(self, **params) -> Dict[str, Any]:
        return {"id": "asst_created", **params}

    async def update_assistant(self, assistant_id: str, **params) -> Dict[str, Any]:
        return {"id": assistant_id, **params}


class FakeLLM(LLMProvider):
    """Chat-completions provider returning canned text."""

    def __init__(self, chunks: Optional[List[str]] = None, usage: Optional[Dict[str, int]] = None,
                 reply: str = "Calm Conversation"):
        super().__init__(api_key="test", model="fake-model")
        self.chunks = chunks or []
        self.usage = usage
        self.reply = reply
        self.calls: List[list] = []

    async def chat_completion(self, messages, temperature=None, max_tokens=None, **kwargs) -> LLMResponse:
        self.calls.append(messages)
        return LLMResponse(content=self.reply, model=self.model)

    async def chat_completion_stream(self, messages, temperature=None, max_tokens=None, **kwargs):
        self.calls.append(messages)
        for chunk in self.chunks:
            yield LLMDelta(text=chunk)
        if self.usage:
            yield LLMDelta(usage=self.usage)


def delta(text: str) -> ProviderEvent:
    return ProviderEvent(
        event="thread.message.delta",
        data={"delta": {"content": [{"index": 0, "type": "text", "text": {"value": text}}]}},
    )


def completed(prompt_tokens: Optional[int] = None, completion_tokens: Optional[int] = None) -> ProviderEvent:
    usage = None
    if prompt_tokens is not None:
        usage = {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens}
    return ProviderEvent(event="thread.run.completed", data={"id": "run_1", "usage": usage})


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store(tmp_path):
    """Empty local table store in a per-test directory."""
    return LocalTableStore(LocalStorage(str(tmp_path / "data")))
