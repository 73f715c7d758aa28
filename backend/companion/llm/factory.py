"""
LLM Provider Factory - Creates the configured LLM provider instances.
"""

from typing import Optional
from .base import AssistantProvider, LLMProvider
from .openai_provider import OpenAIAssistantsProvider, OpenAIProvider
from .volcengine_provider import VolcEngineProvider


def create_llm_provider(
    provider: str = "openai",
    api_key: str = "",
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    **kwargs
) -> Optional[LLMProvider]:
    """
    Create a chat-completions provider based on configuration.

    Args:
        provider: Provider name ("openai" or "volcengine")
        api_key: API key for the provider
        model: Model name (uses provider default if not specified)
        base_url: Custom base URL (uses provider default if not specified)
        **kwargs: Additional provider-specific parameters

    Returns:
        LLMProvider instance, or None if api_key is not configured
    """
    if not api_key:
        return None

    params = {"api_key": api_key}
    if model:
        params["model"] = model
    if base_url:
        params["base_url"] = base_url
    params.update(kwargs)

    if provider == "openai":
        return OpenAIProvider(**params)

    elif provider == "volcengine":
        return VolcEngineProvider(**params)

    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")


def create_assistant_provider(api_key: str = "", base_url: Optional[str] = None) -> Optional[AssistantProvider]:
    """Create the hosted-assistant provider, or None without an API key."""
    if not api_key:
        return None
    if base_url:
        return OpenAIAssistantsProvider(api_key=api_key, base_url=base_url)
    return OpenAIAssistantsProvider(api_key=api_key)
