"""Server-Sent Events parsing."""

from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, List, Optional

DONE_MARKER = "[DONE]"


@dataclass
class SSEEvent:
    """A single dispatched SSE event."""

    data: str
    event: str = "message"
    id: Optional[str] = None
    retry: Optional[int] = None

    @property
    def is_done(self) -> bool:
        return self.data.strip() == DONE_MARKER


async def parse_sse(lines: AsyncIterable[str]) -> AsyncIterator[SSEEvent]:
    """
    Parse a stream of text lines into SSE events.

    Follows the event-stream rules used by chat-completion endpoints:
    ``data`` lines of one event are joined with newlines, lines starting
    with ``:`` are comments, unknown fields are ignored and a blank line
    dispatches the event. An event without data is dropped. A trailing
    event without its blank line is still dispatched at end of input.
    """
    data_lines: List[str] = []
    event_type = ""
    event_id: Optional[str] = None
    retry: Optional[int] = None

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")

        if not line:
            if data_lines:
                yield SSEEvent(
                    data="\n".join(data_lines),
                    event=event_type or "message",
                    id=event_id,
                    retry=retry,
                )
            data_lines = []
            event_type = ""
            retry = None
            continue

        if line.startswith(":"):
            continue

        field, sep, value = line.partition(":")
        if not sep:
            value = ""
        elif value.startswith(" "):
            value = value[1:]

        if field == "data":
            data_lines.append(value)
        elif field == "event":
            event_type = value
        elif field == "id":
            event_id = value
        elif field == "retry":
            if value.isdigit():
                retry = int(value)

    if data_lines:
        yield SSEEvent(
            data="\n".join(data_lines),
            event=event_type or "message",
            id=event_id,
            retry=retry,
        )
