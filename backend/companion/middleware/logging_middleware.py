"""
FastAPI middleware for logging API requests and responses.

Uses pure ASGI middleware (not BaseHTTPMiddleware) so streamed chat
responses pass through untouched.

This middleware logs:
- Request: method, path, query params, client, body (sensitive keys filtered)
- Response: status code, processing time, body for regular responses
- Event streams: number of chunks sent instead of the body
"""

import json
import logging
import time
from typing import Optional
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.logging_config import filter_sensitive_data, truncate_large_data

logger = logging.getLogger(__name__)

EVENT_STREAM = "text/event-stream"


def _sanitize_text_or_json(raw: bytes, max_length: int = 5000) -> str:
    """Filter sensitive data if payload is JSON, fallback to plain text."""
    text = raw.decode("utf-8", errors="ignore")
    try:
        payload = json.loads(text)
        filtered_payload = filter_sensitive_data(payload)
        return truncate_large_data(json.dumps(filtered_payload, ensure_ascii=False), max_length=max_length)
    except json.JSONDecodeError:
        return truncate_large_data(text, max_length=max_length)


def _extract_error_reason(response_text: str) -> Optional[str]:
    """Extract a concise error reason from response body."""
    try:
        payload = json.loads(response_text)
    except json.JSONDecodeError:
        return truncate_large_data(response_text, max_length=500) if response_text else None
    if isinstance(payload, dict):
        for key in ("error", "detail", "message", "reason"):
            value = payload.get(key)
            if value:
                return str(value)
    return truncate_large_data(response_text, max_length=500)


class RequestLoggingMiddleware:
    """Pure ASGI middleware to log all API requests and responses."""

    def __init__(self, app: ASGIApp, exclude_paths: Optional[list] = None):
        """
        Initialize the logging middleware.

        Args:
            app: The ASGI application
            exclude_paths: Paths to skip entirely (e.g., ["/health"])
        """
        self.app = app
        self.exclude_paths = exclude_paths or ["/health", "/"]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path", "") in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        start_time = time.time()
        path = scope.get("path", "")
        method = scope.get("method", "UNKNOWN")
        request_id = id(scope)
        client = scope.get("client")
        client_host = client[0] if client else None

        body_chunks = []

        async def logging_receive() -> Message:
            message = await receive()
            if message["type"] == "http.request":
                body_chunks.append(message.get("body", b""))
            return message

        status_code = 0
        streaming = False
        stream_chunks = 0
        response_chunks = []

        async def logging_send(message: Message) -> None:
            nonlocal status_code, streaming, stream_chunks
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
                for key, value in message.get("headers", []):
                    if key.lower() == b"content-type" and value.decode("latin-1").startswith(EVENT_STREAM):
                        streaming = True
            elif message["type"] == "http.response.body":
                if streaming:
                    if message.get("body"):
                        stream_chunks += 1
                else:
                    response_chunks.append(message.get("body", b""))
            await send(message)

        logger.info(
            f"Request started: {method} {path}",
            extra={"extra_fields": {
                "request_id": request_id,
                "method": method,
                "path": path,
                "client": client_host,
            }}
        )

        try:
            await self.app(scope, logging_receive, logging_send)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {method} {path} - {str(e)}",
                exc_info=True,
                extra={"extra_fields": {
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "duration_ms": duration_ms,
                    "error": str(e),
                }}
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        request_body = b"".join(body_chunks)
        request_body_text = _sanitize_text_or_json(request_body) if request_body else None
        response_body_text = None
        if not streaming:
            response_body = b"".join(response_chunks)
            response_body_text = _sanitize_text_or_json(response_body) if response_body else None

        error_reason = _extract_error_reason(response_body_text or "") if status_code >= 400 else None

        if status_code < 400:
            log_level = logging.INFO
        elif status_code < 500:
            log_level = logging.WARNING
        else:
            log_level = logging.ERROR

        completion_message = f"Request completed: {method} {path} - {status_code} ({duration_ms:.2f}ms)"
        if streaming:
            completion_message += f" | streamed_chunks={stream_chunks}"
        if error_reason:
            completion_message += f" | error_reason={error_reason}"

        logger.log(
            log_level,
            completion_message,
            extra={"extra_fields": {
                "request_id": request_id,
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "request_body": request_body_text,
                "response_body": response_body_text,
                "streamed_chunks": stream_chunks if streaming else None,
                "error_reason": error_reason,
            }}
        )
