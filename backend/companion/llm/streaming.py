"""
Server-Sent Events frame parsing shared by the streaming providers.
"""

from typing import AsyncIterator, Optional, Tuple


async def iter_sse_frames(lines: AsyncIterator[str]) -> AsyncIterator[Tuple[Optional[str], str]]:
    """
    Group raw SSE lines into ``(event, data)`` frames.

    ``event`` is None when the frame has no ``event:`` field. Multiple
    ``data:`` lines in one frame are joined with newlines, per the SSE format.
    """
    event: Optional[str] = None
    data_lines = []

    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data_lines:
                yield event, "\n".join(data_lines)
            event, data_lines = None, []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data_lines.append(value)

    if data_lines:
        yield event, "\n".join(data_lines)
