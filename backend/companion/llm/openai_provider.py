"""
OpenAI Providers.
Chat Completions (history fallback mode, titles) and the Assistants API
(threads + streaming runs), both over plain httpx.
"""

import httpx
import json
import logging
import time
from typing import Optional, List, Dict, Any, AsyncGenerator

from .base import AssistantProvider, LLMDelta, LLMMessage, LLMProvider, LLMResponse, ProviderEvent
from .streaming import iter_sse_frames

logger = logging.getLogger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"


class OpenAIProvider(LLMProvider):
    """
    Provider for OpenAI-compatible chat/completions endpoints.
    """

    provider_name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = OPENAI_BASE_URL,
        default_temperature: float = 0.7,
        default_max_tokens: int = 1000,
        timeout: float = 120.0,
    ):
        super().__init__(api_key, model, base_url, default_temperature, default_max_tokens)
        self.timeout = timeout

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _payload(self, messages, temperature, max_tokens, **kwargs) -> Dict[str, Any]:
        return {
            "model": kwargs.get("model", self.model),
            "messages": self._format_messages(messages),
            "temperature": temperature if temperature is not None else self.default_temperature,
            "max_tokens": max_tokens or self.default_max_tokens,
        }

    async def chat_completion(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> LLMResponse:
        """Send request to the Chat Completions endpoint."""
        start_time = time.time()
        payload = self._payload(messages, temperature, max_tokens, **kwargs)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions", json=payload, headers=self._get_headers()
                )
                resp.raise_for_status()
                data = resp.json()

            usage = data.get("usage") or {}
            logger.info(
                "LLM API call completed",
                extra={"extra_fields": {
                    "provider": self.provider_name,
                    "model": data.get("model", payload["model"]),
                    "prompt_tokens": usage.get("prompt_tokens", 0),
                    "completion_tokens": usage.get("completion_tokens", 0),
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                }}
            )

            return LLMResponse(
                content=data["choices"][0]["message"].get("content") or "",
                model=data.get("model", payload["model"]),
                usage=usage,
                raw=data,
            )
        except Exception as e:
            logger.error(
                f"LLM API call failed: {str(e)}",
                extra={"extra_fields": {
                    "provider": self.provider_name,
                    "model": payload["model"],
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                    "error": str(e),
                }}
            )
            raise

    async def chat_completion_stream(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> AsyncGenerator[LLMDelta, None]:
        """Stream chat completion chunks from the Chat Completions endpoint."""
        start_time = time.time()
        payload = self._payload(messages, temperature, max_tokens, **kwargs)
        payload["stream"] = True
        payload["stream_options"] = {"include_usage": True}

        content_length = 0
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream(
                    "POST", f"{self.base_url}/chat/completions", json=payload, headers=self._get_headers()
                ) as response:
                    response.raise_for_status()

                    async for _, data_str in iter_sse_frames(response.aiter_lines()):
                        if data_str.strip() == "[DONE]":
                            break
                        try:
                            chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            # Skip malformed chunks
                            continue

                        text = ""
                        if chunk.get("choices"):
                            text = chunk["choices"][0].get("delta", {}).get("content") or ""
                        usage = chunk.get("usage")
                        if text or usage:
                            content_length += len(text)
                            yield LLMDelta(text=text, usage=usage)

            logger.info(
                "LLM API stream completed",
                extra={"extra_fields": {
                    "provider": self.provider_name,
                    "model": payload["model"],
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                    "content_length": content_length,
                }}
            )
        except Exception as e:
            logger.error(
                f"LLM API stream failed: {str(e)}",
                extra={"extra_fields": {
                    "provider": self.provider_name,
                    "model": payload["model"],
                    "duration_ms": round((time.time() - start_time) * 1000, 2),
                    "error": str(e),
                }}
            )
            raise


class OpenAIAssistantsProvider(AssistantProvider):
    """
    Hosted assistants (threads, messages, streaming runs).
    """

    def __init__(self, api_key: str, base_url: str = OPENAI_BASE_URL, timeout: float = 120.0):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": "assistants=v2",
        }

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(f"{self.base_url}{path}", json=payload, headers=self._get_headers())
            resp.raise_for_status()
            return resp.json()

    async def create_thread(self) -> str:
        data = await self._post("/threads", {})
        logger.debug(f"Created thread {data['id']}")
        return data["id"]

    async def post_message(self, thread_id: str, text: str) -> None:
        await self._post(f"/threads/{thread_id}/messages", {"role": "user", "content": text})

    async def run_stream(self, thread_id: str, assistant_id: str) -> AsyncGenerator[ProviderEvent, None]:
        """Create a run with ``stream: true`` and yield each decoded event."""
        start_time = time.time()
        payload = {"assistant_id": assistant_id, "stream": True}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            async with client.stream(
                "POST", f"{self.base_url}/threads/{thread_id}/runs", json=payload, headers=self._get_headers()
            ) as response:
                response.raise_for_status()

                async for event, data_str in iter_sse_frames(response.aiter_lines()):
                    if data_str.strip() == "[DONE]":
                        break
                    try:
                        data = json.loads(data_str)
                    except json.JSONDecodeError:
                        continue
                    yield ProviderEvent(event=event or "message", data=data)

        logger.info(
            "Assistant run stream closed",
            extra={"extra_fields": {
                "provider": "openai-assistants",
                "thread_id": thread_id,
                "duration_ms": round((time.time() - start_time) * 1000, 2),
            }}
        )

    async def retrieve_assistant(self, assistant_id: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(f"{self.base_url}/assistants/{assistant_id}", headers=self._get_headers())
            resp.raise_for_status()
            return resp.json()

    async def create_assistant(self, **params) -> Dict[str, Any]:
        return await self._post("/assistants", params)

    async def update_assistant(self, assistant_id: str, **params) -> Dict[str, Any]:
        return await self._post(f"/assistants/{assistant_id}", params)
