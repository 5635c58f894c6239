"""Request and response types for chat completions."""

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional

from .exceptions import InvalidResponseError

VALID_ROLES = ("system", "user", "assistant")


@dataclass
class Message:
    """A single chat message."""

    role: str
    content: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        """Wire form. Unknown roles are sent as "user"."""
        data = {
            "role": self.role if self.role in VALID_ROLES else "user",
            "content": self.content,
        }
        if self.name:
            data["name"] = self.name
        return data


@dataclass
class ChatOptions:
    """Generation options. Zero and empty values mean "not set"."""

    model: str = ""
    temperature: float = 0.0
    max_tokens: int = 0
    top_p: float = 0.0
    n: int = 0
    stop: List[str] = field(default_factory=list)
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0
    user: str = ""
    reasoning_effort: str = ""

    def copy(self, **changes: Any) -> "ChatOptions":
        """Return a copy with the given fields replaced."""
        changes.setdefault("stop", list(self.stop))
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Usage:
    """Token accounting for one completion."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Usage":
        data = data or {}
        return cls(
            prompt_tokens=int(data.get("prompt_tokens") or 0),
            completion_tokens=int(data.get("completion_tokens") or 0),
            total_tokens=int(data.get("total_tokens") or 0),
        )


@dataclass
class ChatResponse:
    """A completed chat response."""

    content: str
    model: str = ""
    usage: Usage = field(default_factory=Usage)
    finish_reason: str = ""
    created: int = 0
    id: str = ""
    object: str = "chat.completion"

    @classmethod
    def from_api(cls, data: Any) -> "ChatResponse":
        """
        Build a response from a chat-completions JSON body.

        Only the first choice is used.

        Raises:
            InvalidResponseError: if the body carries no choices or is not
                shaped like a chat completion
        """
        if not isinstance(data, dict):
            raise InvalidResponseError("Response body is not an object")

        choices = data.get("choices") or []
        if not isinstance(choices, list):
            raise InvalidResponseError("Response choices is not a list")
        if not choices:
            raise InvalidResponseError("No response choices returned")

        choice = choices[0]
        if not isinstance(choice, dict):
            raise InvalidResponseError("Response choice is not an object")

        message = choice.get("message") or {}
        if not isinstance(message, dict):
            raise InvalidResponseError("Response message is not an object")

        content = message.get("content") or ""
        if not isinstance(content, str):
            raise InvalidResponseError("Response content is not a string")

        usage = data.get("usage")
        if usage is not None and not isinstance(usage, dict):
            raise InvalidResponseError("Response usage is not an object")

        return cls(
            content=content,
            model=data.get("model", ""),
            usage=Usage.from_dict(usage),
            finish_reason=choice.get("finish_reason") or "",
            created=int(data.get("created") or 0),
            id=data.get("id", ""),
            object=data.get("object", "chat.completion"),
        )
