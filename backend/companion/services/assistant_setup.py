"""
Assistant setup - pushes the active system prompt to the hosted assistant.

Run once after changing the default prompt:

    python -m companion.services.assistant_setup
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..config import settings
from ..llm import AssistantProvider, create_assistant_provider
from ..storage import TableStore, create_table_store
from .prompts import get_system_instructions

logger = logging.getLogger(__name__)

DEFAULT_ASSISTANT_NAME = "Companion"


async def setup_assistant(
    provider: AssistantProvider,
    store: TableStore,
    assistant_id: Optional[str] = None,
    name: str = DEFAULT_ASSISTANT_NAME,
    model: str = "gpt-4o-mini",
    temperature: float = 0.7,
) -> str:
    """
    Create or update the hosted assistant with the current system prompt.

    Args:
        provider: Hosted assistant capability
        store: Table store holding ``system_prompts``
        assistant_id: Existing assistant to update; a new one is created if absent or unknown
        name: Assistant display name
        model: Model the assistant runs on
        temperature: Sampling temperature

    Returns:
        str: The assistant id
    """
    instructions = await get_system_instructions(store)
    params = {"name": name, "instructions": instructions, "model": model, "temperature": temperature}

    if assistant_id:
        try:
            assistant = await provider.update_assistant(assistant_id, **params)
            logger.info(f"Updated assistant {assistant['id']}")
            return assistant["id"]
        except httpx.HTTPStatusError as e:
            if e.response.status_code != 404:
                raise
            logger.warning(f"Assistant {assistant_id} not found, creating a new one")

    assistant = await provider.create_assistant(**params)
    logger.info(f"Created assistant {assistant['id']}")
    return assistant["id"]


async def main(config: Any = settings) -> str:
    from ..core import setup_logging

    setup_logging(config)
    provider = create_assistant_provider(config.llm_api_key or "", config.llm_base_url)
    if provider is None:
        raise SystemExit("LLM_API_KEY is required")

    assistant_id = await setup_assistant(
        provider,
        create_table_store(config),
        assistant_id=config.assistant_id,
        model=config.llm_model,
    )
    info = await provider.retrieve_assistant(assistant_id)
    print(f"ASSISTANT_ID={info['id']}")
    return assistant_id


if __name__ == "__main__":
    asyncio.run(main())
