"""
Conversation Relay - forwards a user message to the hosted LLM and re-emits
its output as application stream events.

Events (plain dicts, serialized by the HTTP layer):
    {"type": "token", "content": str}
    {"type": "done", "content": str, "promptTokens": int, "completionTokens": int,
     "threadId": str | None, "mode": "assistant" | "chat"}
    {"type": "error", "error": str}

Tokens are forwarded as they arrive; nothing is buffered. The relay never
retries: the first provider failure becomes an ``error`` event and the
stream ends.
"""

import logging
import math
from typing import Any, AsyncGenerator, Dict, List, Optional

from ..llm import AssistantProvider, LLMMessage, LLMProvider, ProviderEvent
from ..storage import StorageError, TableStore
from .prompts import get_system_instructions

logger = logging.getLogger(__name__)

StreamEvent = Dict[str, Any]


def estimate_tokens(text: str) -> int:
    """
    Rough token count (about 4 characters per token).

    Only used when the provider reports no usage; not suitable for billing.
    """
    return math.ceil(len(text) / 4)


def _delta_text(event: ProviderEvent) -> str:
    """Extract incremental text from a ``thread.message.delta`` payload."""
    parts = []
    for block in event.data.get("delta", {}).get("content", []) or []:
        if block.get("type") == "text":
            parts.append(block.get("text", {}).get("value") or "")
    return "".join(parts)


def _run_error(event: ProviderEvent) -> str:
    data = event.data
    last_error = data.get("last_error") or {}
    if last_error.get("message"):
        return last_error["message"]
    if isinstance(data.get("error"), dict) and data["error"].get("message"):
        return data["error"]["message"]
    return data.get("message") or f"Assistant run ended with {event.event}"


class ConversationRelay:
    """
    Streams one chat turn from the hosted assistant (or the chat-completions
    fallback with recent history when no assistant is configured).
    """

    def __init__(
        self,
        store: TableStore,
        assistants: Optional[AssistantProvider] = None,
        llm: Optional[LLMProvider] = None,
        history_limit: int = 20,
    ):
        self.store = store
        self.assistants = assistants
        self.llm = llm
        self.history_limit = history_limit

    async def stream(
        self,
        assistant_id: Optional[str],
        thread_id: Optional[str],
        message: str,
        session_id: Optional[str] = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        if not message or not message.strip():
            yield {"type": "error", "error": "Message cannot be empty"}
            return

        if assistant_id and self.assistants is not None:
            async for event in self._stream_assistant(assistant_id, thread_id, message):
                yield event
        elif self.llm is not None:
            async for event in self._stream_chat(message, session_id):
                yield event
        else:
            yield {"type": "error", "error": "No LLM provider configured"}

    async def _stream_assistant(
        self,
        assistant_id: str,
        thread_id: Optional[str],
        message: str,
    ) -> AsyncGenerator[StreamEvent, None]:
        if not assistant_id.startswith("asst_"):
            yield {"type": "error", "error": 'Invalid assistant ID. Must start with "asst_"'}
            return

        content = ""
        usage: Dict[str, int] = {}
        try:
            if thread_id and not thread_id.startswith("thread_"):
                logger.warning(f"Discarding malformed thread id {thread_id!r}")
                thread_id = None
            if not thread_id:
                thread_id = await self.assistants.create_thread()

            await self.assistants.post_message(thread_id, message)

            async for event in self.assistants.run_stream(thread_id, assistant_id):
                if event.event == "thread.message.delta":
                    text = _delta_text(event)
                    if text:
                        content += text
                        yield {"type": "token", "content": text}
                elif event.event == "thread.run.completed":
                    usage = event.data.get("usage") or {}
                elif event.event in ("thread.run.failed", "thread.run.cancelled", "thread.run.expired", "error"):
                    yield {"type": "error", "error": f"Assistant API error: {_run_error(event)}"}
                    return
        except Exception as e:
            logger.error(f"Assistant stream failed: {e}", exc_info=True)
            yield {"type": "error", "error": f"Assistant API error: {e}"}
            return

        yield {
            "type": "done",
            "content": content,
            "promptTokens": usage.get("prompt_tokens") or estimate_tokens(message),
            "completionTokens": usage.get("completion_tokens") or estimate_tokens(content),
            "threadId": thread_id,
            "mode": "assistant",
        }

    async def _history(self, session_id: Optional[str]) -> List[LLMMessage]:
        if not session_id:
            return []
        try:
            rows = await self.store.select(
                "messages",
                {"session_id": session_id, "deleted_at": None},
                order_by="timestamp",
                descending=True,
                limit=self.history_limit,
            )
        except StorageError as e:
            logger.warning(f"Could not load history for {session_id}: {e}")
            return []
        return [
            LLMMessage.text(row["role"], row["content"])
            for row in reversed(rows)
            if row.get("role") in ("user", "assistant")
        ]

    async def _stream_chat(self, message: str, session_id: Optional[str]) -> AsyncGenerator[StreamEvent, None]:
        messages = [LLMMessage.text("system", await get_system_instructions(self.store))]
        messages.extend(await self._history(session_id))
        messages.append(LLMMessage.text("user", message))

        content = ""
        usage: Dict[str, int] = {}
        try:
            async for delta in self.llm.chat_completion_stream(messages):
                if delta.text:
                    content += delta.text
                    yield {"type": "token", "content": delta.text}
                if delta.usage:
                    usage = delta.usage
        except Exception as e:
            logger.error(f"Chat completion stream failed: {e}", exc_info=True)
            yield {"type": "error", "error": f"Chat completion error: {e}"}
            return

        prompt_length = sum(len(m.content) for m in messages)
        yield {
            "type": "done",
            "content": content,
            "promptTokens": usage.get("prompt_tokens") or math.ceil(prompt_length / 4),
            "completionTokens": usage.get("completion_tokens") or estimate_tokens(content),
            "threadId": None,
            "mode": "chat",
        }
