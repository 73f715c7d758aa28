"""
Risk screening - keyword check for crisis language plus support resources.

A full classifier is an external service; this screen only decides whether
to raise a crisis alert and which resource cards to show.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..errors import NotFound, PersistenceError
from ..storage import StorageError, TableStore

logger = logging.getLogger(__name__)

CRISIS_KEYWORDS = [
    'tự tử',
    'muốn chết',
    'kết thúc cuộc đời',
    'không muốn sống',
    'suicide',
    'kill myself',
    'end my life',
    'want to die',
    'knife',
    'gun',
    'weapon',
]

CRISIS_ALERT_MESSAGE = "Detecting potential crisis indicators..."


def contains_crisis_keywords(message: str) -> bool:
    lowered = message.lower()
    return any(keyword in lowered for keyword in CRISIS_KEYWORDS)


@dataclass
class RiskScreenResult:
    crisis: bool = False
    risk_level: Optional[str] = None
    resources: List[Dict[str, Any]] = field(default_factory=list)


class RiskScreen:
    """Screens a user message and looks up resource cards for it."""

    def __init__(self, store: TableStore, resource_limit: int = 3):
        self.store = store
        self.resource_limit = resource_limit

    async def screen(self, message: str) -> RiskScreenResult:
        if not contains_crisis_keywords(message):
            return RiskScreenResult()

        try:
            resources = await self.store.select(
                "resources",
                {"is_active": True, "display_as_card": True},
                limit=self.resource_limit,
            )
        except StorageError as e:
            logger.warning(f"Failed to fetch resources: {e}")
            resources = []

        return RiskScreenResult(crisis=True, risk_level="high", resources=resources)

    async def log_displays(self, session_id: str, message_id: str, resources: List[Dict[str, Any]]) -> None:
        """Record which cards were shown. Failures are non-critical."""
        for resource in resources:
            try:
                await self.store.insert("resource_displays", {
                    "session_id": session_id,
                    "message_id": message_id,
                    "resource_id": resource.get("resource_id"),
                    "display_type": "card",
                    "clicked": False,
                })
            except StorageError as e:
                logger.warning(f"Failed to log resource display (non-critical): {e}")

    async def track_click(self, session_id: str, resource_id: str) -> Dict[str, Any]:
        """
        Mark the most recent unclicked display of ``resource_id`` in ``session_id`` as clicked.

        Raises:
            NotFound: no pending display for that resource and session
            PersistenceError: lookup or update failed
        """
        try:
            latest = await self.store.select(
                "resource_displays",
                {"resource_id": resource_id, "session_id": session_id, "clicked_at": None},
                order_by="displayed_at",
                descending=True,
                limit=1,
            )
        except StorageError as e:
            logger.error(f"Resource display lookup failed: {e}")
            raise PersistenceError("Lookup failed")
        if not latest:
            raise NotFound("No pending click found")

        try:
            rows = await self.store.update(
                "resource_displays",
                {"display_id": latest[0]["display_id"]},
                {"clicked": True, "clicked_at": datetime.now(timezone.utc).isoformat()},
            )
        except StorageError as e:
            logger.error(
                f"Failed to track click: {e}",
                extra={"extra_fields": {"session_id": session_id, "resource_id": resource_id}}
            )
            raise PersistenceError("Failed to track click")
        return rows[0] if rows else latest[0]
