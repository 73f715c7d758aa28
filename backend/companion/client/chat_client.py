"""
HTTP client for the chat service - drives a ConversationView from the
``POST /chat/stream`` event stream.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .reconcile import ConfirmedMessage, ConversationView, ViewState
from .sse import iter_sse_events

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Failed to send message"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"{GENERIC_FAILURE} ({response.status_code})"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"{GENERIC_FAILURE} ({response.status_code})"


class ChatStreamClient:
    """
    Sends chat turns and keeps a view in sync with the server.

    Any ``error`` event, non-2xx response or transport failure is handled
    the same way: the turn's optimistic entries are discarded and the view
    returns to idle with ``view.error`` set.
    """

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        anonymous_token: Optional[str] = None,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.anonymous_token = anonymous_token
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "text/event-stream"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        if self.anonymous_token:
            headers["X-Anonymous-Token"] = self.anonymous_token
        return headers

    async def request_anonymous_token(self) -> str:
        """Ask the server to mint a token and keep it for later requests."""
        async with self._client() as client:
            response = await client.post("/chat/anonymous-token")
            response.raise_for_status()
            self.anonymous_token = response.json()["token"]
        return self.anonymous_token

    async def send(self, view: ConversationView, text: str, is_first_message: bool = False) -> ConversationView:
        """Submit ``text`` and stream the reply into ``view``."""
        view.submit(text, is_first_message)
        payload = {"sessionId": view.session_id, "userMessage": text, "isFirstMessage": is_first_message}

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", "/chat/stream", json=payload, headers=self._get_headers()
                ) as response:
                    if response.status_code >= 400:
                        await response.aread()
                        view.fail(_error_message(response))
                        return view

                    async for event in iter_sse_events(response.aiter_lines()):
                        view.apply_event(event)
                        if view.state is ViewState.IDLE:
                            break

                if view.in_flight:
                    view.fail("Stream ended before the reply was complete")
                elif view.invalidated:
                    await self._refresh(client, view)

        except httpx.HTTPError as e:
            logger.warning(f"Chat stream transport error: {e}")
            if view.in_flight:
                view.fail(GENERIC_FAILURE)

        return view

    async def fetch_messages(self, client: httpx.AsyncClient, session_id: str) -> List[ConfirmedMessage]:
        response = await client.get(f"/chat/sessions/{session_id}/messages", headers=self._get_headers())
        response.raise_for_status()
        return [ConfirmedMessage.from_dict(row) for row in response.json()]

    async def fetch_sessions(self, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        response = await client.get("/chat/sessions", headers=self._get_headers())
        response.raise_for_status()
        return response.json()

    async def _refresh(self, client: httpx.AsyncClient, view: ConversationView) -> None:
        """Refetch the authoritative message and session lists after a turn."""
        try:
            view.replace_confirmed(await self.fetch_messages(client, view.session_id))
            if view.session_list is not None and self.access_token:
                view.session_list.refresh(await self.fetch_sessions(client))
        except httpx.HTTPError as e:
            # The confirmed messages from the done event are already shown
            logger.warning(f"Refetch after chat turn failed: {e}")
