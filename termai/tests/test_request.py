"""Tests for cache keys and request payload building."""

import pytest

from termai.cache import generate_chat_key, generate_key
from termai.llm import ChatOptions, ClientConfig, Message, ValidationError
from termai.llm.request import apply_defaults, build_payload, validate_messages

MESSAGES = [
    Message(role="system", content="You are a shell expert."),
    Message(role="user", content="How do I find large files?"),
]


class TestCacheKeys:
    """Tests for fingerprint generation."""

    def test_prompt_key_deterministic(self):
        """Same prompt, same key."""
        assert generate_key("list files") == generate_key("list files")

    def test_prompt_key_is_sha256_hex(self):
        """Keys are 64 hex characters."""
        key = generate_key("list files")
        assert len(key) == 64
        int(key, 16)

    def test_prompt_key_is_exact(self):
        """Whitespace and case are significant."""
        assert generate_key("list files") != generate_key("List files ")

    def test_chat_key_deterministic(self):
        """Equal messages and options give equal keys."""
        options = ChatOptions(model="gpt-4o", temperature=0.5)
        assert generate_chat_key(MESSAGES, options) == generate_chat_key(list(MESSAGES), options.copy())

    @pytest.mark.parametrize("change", [
        {"model": "gpt-4o-mini"},
        {"temperature": 0.2},
        {"max_tokens": 100},
        {"top_p": 0.9},
        {"n": 2},
        {"stop": ["END"]},
        {"presence_penalty": 0.5},
        {"frequency_penalty": 0.5},
        {"user": "alice"},
        {"reasoning_effort": "high"},
    ])
    def test_chat_key_changes_with_any_option(self, change):
        """Changing any option changes the key."""
        base = ChatOptions(model="gpt-4o", temperature=0.5)
        assert generate_chat_key(MESSAGES, base) != generate_chat_key(MESSAGES, base.copy(**change))

    def test_chat_key_changes_with_messages(self):
        """Changing any message changes the key."""
        options = ChatOptions(model="gpt-4o")
        other = MESSAGES[:1] + [Message(role="user", content="How do I find small files?")]
        assert generate_chat_key(MESSAGES, options) != generate_chat_key(other, options)


class TestBuildPayload:
    """Tests for the chat-completions request body."""

    def test_zero_values_omitted(self):
        """Unset optional fields are not sent."""
        payload = build_payload(MESSAGES, ChatOptions(model="gpt-4o"))
        assert payload == {
            "model": "gpt-4o",
            "messages": [
                {"role": "system", "content": "You are a shell expert."},
                {"role": "user", "content": "How do I find large files?"},
            ],
        }

    def test_all_fields_sent(self):
        """Set fields are translated to wire names."""
        options = ChatOptions(
            model="gpt-4o",
            temperature=0.3,
            max_tokens=256,
            top_p=0.9,
            n=2,
            stop=["END", "STOP"],
            presence_penalty=0.1,
            frequency_penalty=-0.2,
            user="alice",
        )
        payload = build_payload(MESSAGES, options, stream=True)

        assert payload["temperature"] == 0.3
        assert payload["max_completion_tokens"] == 256
        assert payload["top_p"] == 0.9
        assert payload["n"] == 2
        assert payload["stop"] == ["END", "STOP"]
        assert payload["presence_penalty"] == 0.1
        assert payload["frequency_penalty"] == -0.2
        assert payload["user"] == "alice"
        assert payload["stream"] is True
        assert "max_tokens" not in payload

    def test_single_stop_is_string(self):
        """One stop sequence is sent as a plain string."""
        payload = build_payload(MESSAGES, ChatOptions(model="gpt-4o", stop=["END"]))
        assert payload["stop"] == "END"

    def test_unknown_role_sent_as_user(self):
        """Roles outside system/user/assistant become user."""
        payload = build_payload([Message(role="tool", content="output")], ChatOptions(model="gpt-4o"))
        assert payload["messages"][0]["role"] == "user"

    def test_message_name_included(self):
        """Message names are passed through."""
        payload = build_payload([Message(role="user", content="hi", name="bob")], ChatOptions(model="gpt-4o"))
        assert payload["messages"][0]["name"] == "bob"

    def test_reasoning_effort_only_for_reasoning_models(self):
        """reasoning_effort is dropped for ordinary models."""
        plain = build_payload(MESSAGES, ChatOptions(model="gpt-4o", reasoning_effort="high"))
        reasoning = build_payload(MESSAGES, ChatOptions(model="o3-mini", reasoning_effort="high"))

        assert "reasoning_effort" not in plain
        assert reasoning["reasoning_effort"] == "high"

    def test_unknown_reasoning_effort_becomes_minimal(self):
        """Unrecognized effort levels are sent as minimal."""
        payload = build_payload(MESSAGES, ChatOptions(model="gpt-5", reasoning_effort="extreme"))
        assert payload["reasoning_effort"] == "minimal"


class TestApplyDefaults:
    """Tests for filling options from client defaults."""

    def test_fills_unset_fields(self):
        """Model, n and sampling defaults come from the config."""
        config = ClientConfig(api_key="k", model="gpt-4o", temperature=0.4, max_tokens=512, stop=("END",))
        opts = apply_defaults(ChatOptions(), config)

        assert opts.model == "gpt-4o"
        assert opts.n == 1
        assert opts.temperature == 0.4
        assert opts.max_tokens == 512
        assert opts.stop == ["END"]

    def test_caller_values_win(self):
        """Explicit options are kept."""
        config = ClientConfig(api_key="k", model="gpt-4o")
        opts = apply_defaults(ChatOptions(model="gpt-4.1", temperature=0.2, n=3), config)

        assert opts.model == "gpt-4.1"
        assert opts.temperature == 0.2
        assert opts.n == 3

    def test_does_not_mutate_input(self):
        """The caller's options object is left alone."""
        options = ChatOptions()
        apply_defaults(options, ClientConfig(api_key="k"))
        assert options.model == ""

    def test_reasoning_model_adjustment(self):
        """Reasoning models get temperature 1.0 and a default effort."""
        opts = apply_defaults(ChatOptions(model="o4-mini", temperature=0.3), ClientConfig(api_key="k"))
        assert opts.temperature == 1.0
        assert opts.reasoning_effort == "low"

    def test_plain_model_adjustment(self):
        """Ordinary models drop the effort and keep an explicit temperature."""
        opts = apply_defaults(
            ChatOptions(model="gpt-4o", temperature=1.0, reasoning_effort="high"),
            ClientConfig(api_key="k"),
        )
        assert opts.reasoning_effort == ""
        assert opts.temperature == 1.0

    def test_explicit_temperature_sent_as_given(self):
        """A caller's temperature of 1.0 reaches the payload unchanged."""
        opts = apply_defaults(ChatOptions(model="gpt-4o", temperature=1.0), ClientConfig(api_key="k"))
        assert build_payload(MESSAGES, opts)["temperature"] == 1.0

    def test_distinct_temperatures_distinct_keys(self):
        """Temperatures 1.0 and 0.7 are different requests."""
        config = ClientConfig(api_key="k")
        hot = apply_defaults(ChatOptions(model="gpt-4o", temperature=1.0), config)
        warm = apply_defaults(ChatOptions(model="gpt-4o", temperature=0.7), config)
        assert generate_chat_key(MESSAGES, hot) != generate_chat_key(MESSAGES, warm)

    def test_default_temperature_normalized(self):
        """A configured default of 1.0 becomes 0.7 for an ordinary model."""
        config = ClientConfig(api_key="k", model="o3-mini", temperature=1.0)
        opts = apply_defaults(ChatOptions(model="gpt-4o"), config)
        assert opts.temperature == 0.7


class TestValidateMessages:
    """Tests for message validation."""

    def test_empty_list_rejected(self):
        """At least one message is required."""
        with pytest.raises(ValidationError):
            validate_messages([])

    def test_non_message_rejected(self):
        """Plain dicts are rejected."""
        with pytest.raises(ValidationError):
            validate_messages([{"role": "user", "content": "hi"}])
