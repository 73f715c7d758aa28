"""
Session title generation.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..llm import LLMMessage, LLMProvider
from ..models import SessionConfig

logger = logging.getLogger(__name__)

TITLE_PROMPT = """You are a title generator for a mental health support chat.
Your goal is to create a short, calm, and general title (max 8 words) for this conversation.
Message: "{message}"
Rules:
1. The title must be neutral and non-triggering.
2. NEVER repeat any specific negative, crisis, or sensitive words (like 'suicide', 'die', 'depressed', 'self-harm', etc.).
3. DO NOT summarize the problem using negative or sensitive language.
4. Reply with the title only."""

MAX_TITLE_LENGTH = 120


def fallback_title(config: Optional[SessionConfig] = None, now: Optional[datetime] = None) -> str:
    """Timestamp title rendered in the session's timezone (UTC if unknown)."""
    now = now or datetime.now(timezone.utc)
    tz = timezone.utc
    if config and config.timezone:
        try:
            tz = ZoneInfo(config.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone {config.timezone!r}; using UTC")
    return f"Conversation at {now.astimezone(tz).strftime('%Y-%m-%d %H:%M')}"


class TitleGenerator:
    """Asks the chat model for a short neutral title, falling back to a timestamp."""

    def __init__(self, llm: Optional[LLMProvider] = None, model: Optional[str] = None):
        self.llm = llm
        self.model = model

    async def generate(
        self,
        user_message: str,
        config: Optional[SessionConfig] = None,
        now: Optional[datetime] = None,
    ) -> str:
        if self.llm is not None:
            kwargs = {"model": self.model} if self.model else {}
            try:
                response = await self.llm.chat_completion(
                    [LLMMessage.text("user", TITLE_PROMPT.format(message=user_message))],
                    temperature=0.7,
                    max_tokens=20,
                    **kwargs,
                )
                title = response.content.strip().strip('"').strip()
                if title:
                    return title[:MAX_TITLE_LENGTH]
            except Exception as e:
                logger.warning(f"Error generating title: {e}")
        return fallback_title(config, now)
