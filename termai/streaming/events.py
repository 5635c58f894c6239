"""Chunk and state types for streaming responses."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class StreamState(str, Enum):
    """Lifecycle of a single stream."""

    CONNECTING = "connecting"
    EMITTING = "emitting"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_final(self) -> bool:
        return self in (StreamState.COMPLETED, StreamState.FAILED, StreamState.CANCELLED)


@dataclass(frozen=True)
class StreamChunk:
    """
    One item delivered to a stream consumer.

    A content chunk carries a text fragment. A terminal chunk has
    ``done=True`` and, when the stream did not finish cleanly, the
    ``error`` that ended it. Exactly one terminal chunk ends every stream.
    """

    content: str = ""
    error: Optional[Exception] = None
    done: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.done or self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = {"content": self.content, "done": self.done}
        if self.error is not None:
            data["error"] = str(self.error)
        return data
