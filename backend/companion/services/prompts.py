"""
System prompt lookup.
"""

import logging
from typing import Any, Dict, Optional

from ..storage import StorageError, TableStore

logger = logging.getLogger(__name__)

FALLBACK_SYSTEM_PROMPT = "You are a compassionate, supportive assistant. Listen carefully and respond with care."


async def get_default_system_prompt(store: TableStore) -> Optional[Dict[str, Any]]:
    """Return the newest active default row from ``system_prompts``, if any."""
    try:
        rows = await store.select(
            "system_prompts",
            {"is_active": True, "is_default": True},
            order_by="created_at",
            descending=True,
            limit=1,
        )
    except StorageError as e:
        logger.error(f"Error fetching system prompt: {e}")
        return None
    return rows[0] if rows else None


async def get_system_instructions(store: TableStore) -> str:
    """Text of the default system prompt, or a built-in fallback."""
    prompt = await get_default_system_prompt(store)
    if prompt and prompt.get("content"):
        return prompt["content"]
    return FALLBACK_SYSTEM_PROMPT
