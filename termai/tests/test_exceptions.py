"""Tests for error classification."""

import httpx
import pytest

from termai.llm import (
    AuthenticationError,
    CacheCapacityError,
    ErrorKind,
    InvalidRequestError,
    LLMConnectionError,
    LLMError,
    LLMTimeoutError,
    ModelNotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ServerError,
    StreamCancelledError,
    ValidationError,
)
from termai.llm.exceptions import map_transport_error, raise_for_response


def _response(status, json=None, text=None, headers=None):
    request = httpx.Request("POST", "https://api.test/v1/chat/completions")
    if json is not None:
        return httpx.Response(status, json=json, headers=headers, request=request)
    return httpx.Response(status, text=text or "", headers=headers, request=request)


class TestErrorTags:
    """Every error carries its kind and retryability from construction."""

    @pytest.mark.parametrize("error, kind, retryable", [
        (RateLimitError(5), ErrorKind.RATE_LIMIT, True),
        (ServerError("boom", 502), ErrorKind.SERVER, True),
        (LLMConnectionError(), ErrorKind.NETWORK, True),
        (LLMTimeoutError(30), ErrorKind.TIMEOUT, True),
        (AuthenticationError(), ErrorKind.AUTH, False),
        (PermissionDeniedError(), ErrorKind.PERMISSION, False),
        (ModelNotFoundError("gpt-9"), ErrorKind.NOT_FOUND, False),
        (InvalidRequestError("bad"), ErrorKind.INVALID_REQUEST, False),
        (ValidationError("empty", field="prompt"), ErrorKind.VALIDATION, False),
        (StreamCancelledError(), ErrorKind.CANCELLED, False),
    ])
    def test_kind_and_retryable(self, error, kind, retryable):
        """Kind and retryable flag match the error class."""
        assert error.kind == kind
        assert error.retryable is retryable
        assert isinstance(error, LLMError)

    def test_rate_limit_carries_retry_after(self):
        """Rate limit errors keep the server's Retry-After value."""
        error = RateLimitError(12)
        assert error.status_code == 429
        assert error.retry_after == 12
        assert "12" in str(error)

    def test_capacity_error_is_cache_error(self):
        """Capacity errors are cache errors with sizes attached."""
        error = CacheCapacityError(2048, 1024)
        assert error.kind == ErrorKind.CACHE
        assert error.size_bytes == 2048
        assert error.max_size_bytes == 1024


class TestUserMessage:
    """Tests for terminal-friendly messages."""

    def test_known_kinds_have_friendly_text(self):
        """Rate limit and auth errors map to canned messages."""
        assert "too many requests" in RateLimitError().user_message
        assert "API key" in AuthenticationError().user_message

    def test_validation_includes_detail(self):
        """Validation errors include the error detail."""
        assert ValidationError("prompt is empty").user_message == "Invalid input: prompt is empty"

    def test_fallback_to_message(self):
        """Other kinds fall back to the error message."""
        assert InvalidRequestError("context too long").user_message == "context too long"


class TestRaiseForResponse:
    """Tests for HTTP status mapping."""

    def test_success_does_not_raise(self):
        """2xx responses pass through."""
        raise_for_response(_response(200, json={"ok": True}))

    def test_rate_limit_with_retry_after(self):
        """429 maps to RateLimitError with Retry-After."""
        with pytest.raises(RateLimitError) as exc_info:
            raise_for_response(_response(429, json={}, headers={"Retry-After": "7"}))
        assert exc_info.value.retry_after == 7.0

    def test_rate_limit_without_retry_after(self):
        """A missing or invalid Retry-After leaves retry_after unset."""
        with pytest.raises(RateLimitError) as exc_info:
            raise_for_response(_response(429, text="slow down", headers={"Retry-After": "soon"}))
        assert exc_info.value.retry_after is None

    @pytest.mark.parametrize("status, error_class", [
        (401, AuthenticationError),
        (403, PermissionDeniedError),
        (404, ModelNotFoundError),
        (400, InvalidRequestError),
        (422, InvalidRequestError),
        (500, ServerError),
        (503, ServerError),
    ])
    def test_status_mapping(self, status, error_class):
        """Status codes map to the matching error class."""
        with pytest.raises(error_class) as exc_info:
            raise_for_response(_response(status, json={"error": {"message": "nope"}}), model="gpt-4o")
        assert exc_info.value.status_code == status

    def test_error_message_extracted(self):
        """The API error message is used when present."""
        with pytest.raises(InvalidRequestError, match="max_tokens is too large"):
            raise_for_response(_response(400, json={"error": {"message": "max_tokens is too large"}}))

    def test_non_json_body(self):
        """Plain-text bodies become the message."""
        with pytest.raises(ServerError, match="Bad Gateway"):
            raise_for_response(_response(502, text="Bad Gateway"))

    def test_not_found_names_model(self):
        """404 reports the requested model."""
        with pytest.raises(ModelNotFoundError) as exc_info:
            raise_for_response(_response(404, json={}), model="gpt-9")
        assert exc_info.value.model == "gpt-9"


class TestTransportErrors:
    """Tests for wrapping httpx failures."""

    def test_timeout(self):
        """httpx timeouts become LLMTimeoutError."""
        error = map_transport_error(httpx.ReadTimeout("slow"), timeout=30)
        assert isinstance(error, LLMTimeoutError)
        assert error.timeout == 30

    def test_connect_error(self):
        """Other transport failures become LLMConnectionError."""
        error = map_transport_error(httpx.ConnectError("refused"))
        assert isinstance(error, LLMConnectionError)
        assert "refused" in str(error)
