"""
Client-side parsing of the chat event stream.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict

from ..llm.streaming import iter_sse_frames

logger = logging.getLogger(__name__)


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[Dict[str, Any]]:
    """Decode ``data: <json>`` frames into event dicts, skipping malformed ones."""
    async for _, data in iter_sse_frames(lines):
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Skipping malformed stream frame: {data[:100]}")
            continue
        if isinstance(event, dict) and "type" in event:
            yield event
