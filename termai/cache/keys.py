"""Cache key fingerprints."""

import hashlib
import json
from typing import Sequence

from ..llm.types import ChatOptions, Message


def generate_key(prompt: str) -> str:
    """
    Fingerprint a single prompt.

    The prompt is hashed as-is; callers that want whitespace or case
    folding must normalize before calling.
    """
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()


def generate_chat_key(messages: Sequence[Message], options: ChatOptions) -> str:
    """
    Fingerprint a full chat request.

    Every message field and every option field participates, so changing
    any of them yields a different key.
    """
    key_data = {
        "messages": [
            {"role": m.role, "content": m.content, "name": m.name or ""}
            for m in messages
        ],
        "options": options.to_dict(),
    }
    key_string = json.dumps(key_data, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(key_string.encode("utf-8")).hexdigest()
