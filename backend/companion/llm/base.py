"""
LLM Provider Base - Abstract bases for the hosted LLM capability.

``LLMProvider`` covers stateless chat completions (used for the history
fallback mode and for session titles). ``AssistantProvider`` covers the
hosted assistant API where the provider keeps the conversation in a thread.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List, AsyncGenerator
from dataclasses import dataclass, field


@dataclass
class LLMMessage:
    """A message in a chat-completions conversation."""
    role: str  # "system", "user", "assistant"
    content: str

    @staticmethod
    def text(role: str, text: str) -> "LLMMessage":
        return LLMMessage(role=role, content=text)


@dataclass
class LLMResponse:
    """Response from a non-streaming LLM API call."""
    content: str
    model: str = ""
    usage: Dict[str, int] = field(default_factory=dict)
    raw: Optional[Dict[str, Any]] = None


@dataclass
class LLMDelta:
    """One chunk of a streamed completion: incremental text and/or final usage."""
    text: str = ""
    usage: Optional[Dict[str, int]] = None


@dataclass
class ProviderEvent:
    """One server-sent event from the assistant run stream."""
    event: str
    data: Dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    """
    Abstract base class for chat-completions providers.
    """

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None,
                 default_temperature: float = 0.7, default_max_tokens: int = 1000):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.default_temperature = default_temperature
        self.default_max_tokens = default_max_tokens

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: Conversation messages
            temperature: Sampling temperature override
            max_tokens: Max tokens override
            **kwargs: Additional provider-specific parameters (e.g. model)

        Returns:
            LLMResponse with the generated content
        """
        pass

    @abstractmethod
    def chat_completion_stream(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> AsyncGenerator[LLMDelta, None]:
        """
        Stream chat completion chunks.

        Yields:
            LLMDelta: incremental text as it arrives; the last chunk may carry usage
        """
        pass

    def _format_messages(self, messages: List[LLMMessage]) -> List[Dict[str, Any]]:
        """Convert LLMMessage list to API-compatible format."""
        return [{"role": m.role, "content": m.content} for m in messages]


class AssistantProvider(ABC):
    """
    Abstract base for a hosted assistant with provider-side threads.
    """

    @abstractmethod
    async def create_thread(self) -> str:
        """Create an empty conversation thread and return its id."""
        pass

    @abstractmethod
    async def post_message(self, thread_id: str, text: str) -> None:
        """Append a user message to a thread."""
        pass

    @abstractmethod
    def run_stream(self, thread_id: str, assistant_id: str) -> AsyncGenerator[ProviderEvent, None]:
        """Start a streaming run of ``assistant_id`` on ``thread_id``."""
        pass

    @abstractmethod
    async def retrieve_assistant(self, assistant_id: str) -> Dict[str, Any]:
        """Fetch the assistant definition; raises if it does not exist."""
        pass

    @abstractmethod
    async def create_assistant(self, **params) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def update_assistant(self, assistant_id: str, **params) -> Dict[str, Any]:
        pass
