"""Translation of messages and options into the chat-completions payload."""

import logging
from typing import Any, Dict, List, Sequence

from .config import REASONING_EFFORTS, STANDARD_TEMPERATURE, ClientConfig, is_reasoning_model
from .exceptions import ValidationError
from .types import ChatOptions, Message

logger = logging.getLogger(__name__)


def apply_defaults(options: ChatOptions, config: ClientConfig) -> ChatOptions:
    """
    Fill unset options from the client defaults.

    Model and n are always filled. The sampling defaults (temperature,
    max_tokens, top_p, stop, reasoning_effort) are filled only where the
    caller left them unset. The result is what the cache key is computed
    from, so two calls that send the same request share a key.

    A temperature the caller sets is sent as given, except for reasoning
    models, which only accept 1.0.
    """
    opts = options.copy()

    if not opts.model:
        opts.model = config.model
    if opts.n <= 0:
        opts.n = config.n or 1
    if opts.temperature <= 0:
        opts.temperature = default_temperature(config.temperature, opts.model)
    if opts.max_tokens <= 0:
        opts.max_tokens = config.max_tokens
    if opts.top_p <= 0:
        opts.top_p = config.top_p
    if not opts.stop:
        opts.stop = list(config.stop)
    if not opts.reasoning_effort:
        opts.reasoning_effort = config.reasoning_effort

    return adjust_for_model(opts)


def default_temperature(temperature: float, model: str) -> float:
    """
    Normalize a configured default temperature for ``model``.

    A default of 1.0 is what reasoning models force; ordinary models get
    the standard 0.7 instead.
    """
    if temperature == 1.0 and not is_reasoning_model(model):
        return STANDARD_TEMPERATURE
    return temperature


def adjust_for_model(options: ChatOptions) -> ChatOptions:
    """Force the temperature and reasoning_effort a reasoning model requires."""
    if is_reasoning_model(options.model):
        # Reasoning models only accept the default temperature
        options.temperature = 1.0
        if not options.reasoning_effort:
            options.reasoning_effort = "low"
    else:
        options.reasoning_effort = ""
    return options


def validate_messages(messages: Sequence[Message]) -> None:
    """Reject message lists that cannot produce a request."""
    if not messages:
        raise ValidationError("At least one message is required", field="messages")
    for index, message in enumerate(messages):
        if not isinstance(message, Message):
            raise ValidationError(
                f"Message {index} is not a Message instance", field="messages"
            )


def convert_messages(messages: Sequence[Message]) -> List[Dict[str, str]]:
    """Convert messages to their wire form."""
    return [message.to_dict() for message in messages]


def build_payload(
    messages: Sequence[Message],
    options: ChatOptions,
    stream: bool = False,
) -> Dict[str, Any]:
    """
    Build the JSON body for ``POST /chat/completions``.

    Zero-valued optional fields are omitted. A single stop sequence is sent
    as a string, several as a list. ``reasoning_effort`` is only sent to
    reasoning models and unknown values are sent as "minimal".
    """
    payload: Dict[str, Any] = {
        "model": options.model,
        "messages": convert_messages(messages),
    }

    if options.temperature > 0:
        payload["temperature"] = options.temperature
    if options.max_tokens > 0:
        payload["max_completion_tokens"] = options.max_tokens
    if options.top_p > 0:
        payload["top_p"] = options.top_p
    if options.n > 0:
        payload["n"] = options.n

    if len(options.stop) == 1:
        payload["stop"] = options.stop[0]
    elif len(options.stop) > 1:
        payload["stop"] = list(options.stop)

    if options.presence_penalty != 0:
        payload["presence_penalty"] = options.presence_penalty
    if options.frequency_penalty != 0:
        payload["frequency_penalty"] = options.frequency_penalty
    if options.user:
        payload["user"] = options.user

    if options.reasoning_effort and is_reasoning_model(options.model):
        effort = options.reasoning_effort
        if effort not in REASONING_EFFORTS:
            logger.debug(f"Unknown reasoning effort {effort!r}, sending 'minimal'")
            effort = "minimal"
        payload["reasoning_effort"] = effort

    if stream:
        payload["stream"] = True

    return payload
