"""Pytest configuration and shared fixtures."""

import json

import httpx
import pytest

from termai.cache import ResponseCache
from termai.client import LLMClient
from termai.llm import CacheConfig, ClientConfig, RateLimitConfig, RetryConfig
from termai.metrics import MetricsCollector

from .fixtures.responses import make_completion


@pytest.fixture
def fast_retry():
    """Retry policy with millisecond delays."""
    return RetryConfig(max_retries=3, initial_delay=0.001, max_delay=0.01)


@pytest.fixture
def client_config(fast_retry):
    """Client config that never sleeps and never starts the sweep thread."""
    return ClientConfig(
        api_key="sk-test-0123456789abcdefghij",
        base_url="https://api.test/v1",
        retry=fast_retry,
        rate_limit=RateLimitConfig(min_interval=0.0),
        cache=CacheConfig(cleanup_interval=0),
    )


@pytest.fixture
def metrics():
    """Fresh metrics collector with its own registry."""
    return MetricsCollector()


@pytest.fixture
def cache():
    """Cache without background sweep; closed after the test."""
    cache = ResponseCache(CacheConfig(cleanup_interval=0))
    yield cache
    cache.close()


class RecordingHandler:
    """
    MockTransport handler that replays queued responses and records requests.

    Each queued item is a response template, an exception to raise, or a
    callable taking the request. The last item repeats forever.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            response = self.responses.pop(0)
        else:
            response = self.responses[0]

        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            # Fresh copy so a template can be served more than once
            return httpx.Response(
                response.status_code,
                headers=response.headers,
                content=response.content,
            )
        return response(request)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def json_body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def ok_handler():
    """Handler that always answers with a sample completion."""
    return RecordingHandler(httpx.Response(200, json=make_completion()))


@pytest.fixture
def make_client(client_config):
    """Factory building an LLMClient on a mock transport."""

    def _make(handler, config=None, **kwargs):
        return LLMClient(
            config or client_config,
            transport=httpx.MockTransport(handler),
            **kwargs,
        )

    return _make
