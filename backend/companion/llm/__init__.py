"""LLM module - unified interface to the hosted LLM capability."""

from .base import LLMProvider, AssistantProvider, LLMMessage, LLMResponse, LLMDelta, ProviderEvent
from .openai_provider import OpenAIProvider, OpenAIAssistantsProvider
from .volcengine_provider import VolcEngineProvider
from .factory import create_llm_provider, create_assistant_provider

__all__ = [
    'LLMProvider',
    'AssistantProvider',
    'LLMMessage',
    'LLMResponse',
    'LLMDelta',
    'ProviderEvent',
    'OpenAIProvider',
    'OpenAIAssistantsProvider',
    'VolcEngineProvider',
    'create_llm_provider',
    'create_assistant_provider',
]
