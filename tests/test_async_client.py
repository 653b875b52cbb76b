"""Tests for the async provider clients."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from homearchive.async_client import AsyncOpenLibraryClient, AsyncGoogleBooksClient
from homearchive.resilience import CircuitBreaker


def make_response(status_code=200, payload=None):
    response = MagicMock(status_code=status_code)
    response.json.return_value = payload if payload is not None else {}
    return response


@pytest.fixture
def http_client():
    client = MagicMock()
    client.get = AsyncMock()
    client.aclose = AsyncMock()
    return client


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr("homearchive.async_client.asyncio.sleep", AsyncMock())


def test_async_search(http_client, google_payload):
    http_client.get.return_value = make_response(payload=google_payload)
    client = AsyncGoogleBooksClient(client=http_client)

    books = asyncio.run(client.search_by_title("Python", limit=5))

    assert books[0].title == "Python Crash Course"
    params = http_client.get.call_args.kwargs["params"]
    assert params["q"] == "intitle:Python"
    assert params["maxResults"] == 5


def test_async_isbn_search(http_client, openlibrary_payload):
    http_client.get.return_value = make_response(payload=openlibrary_payload)
    client = AsyncOpenLibraryClient(client=http_client)

    books = asyncio.run(client.search_by_isbn("0-618-64015-0"))

    assert books[0].isbn == "9780618640157"
    assert http_client.get.call_args.kwargs["params"]["isbn"] == "0618640150"


def test_async_retry_then_success(http_client, openlibrary_payload):
    http_client.get.side_effect = [
        httpx.ConnectError("refused"),
        make_response(payload=openlibrary_payload)
    ]
    client = AsyncOpenLibraryClient(client=http_client)

    books = asyncio.run(client.search("tolkien"))

    assert len(books) == 2
    assert http_client.get.call_count == 2


def test_async_fallback_after_timeouts(http_client):
    http_client.get.side_effect = httpx.ReadTimeout("slow")
    client = AsyncGoogleBooksClient(client=http_client, max_retries=3)

    assert asyncio.run(client.search("python")) == []
    assert http_client.get.call_count == 3


def test_async_retry_budget_stops_retries(http_client):
    http_client.get.side_effect = httpx.ReadTimeout("slow")
    client = AsyncGoogleBooksClient(client=http_client, max_retries=3, retry_budget=0)

    assert asyncio.run(client.search("python")) == []
    assert http_client.get.call_count == 1


def test_async_client_error_not_retried(http_client):
    http_client.get.return_value = make_response(400)
    client = AsyncGoogleBooksClient(client=http_client)

    assert asyncio.run(client.search("python")) == []
    assert http_client.get.call_count == 1


def test_async_open_breaker_skips_network(http_client):
    breaker = CircuitBreaker("googlebooks", minimum_calls=1)
    breaker.record_failure()
    client = AsyncGoogleBooksClient(client=http_client, breaker=breaker)

    assert asyncio.run(client.search("python")) == []
    http_client.get.assert_not_called()


def test_async_check_health(http_client):
    http_client.get.return_value = make_response(502)
    client = AsyncOpenLibraryClient(client=http_client)

    health = asyncio.run(client.check_health())

    assert not health.healthy
    assert http_client.get.call_count == 1


def test_async_close(http_client):
    async def run():
        async with AsyncOpenLibraryClient(client=http_client):
            pass

    asyncio.run(run())

    http_client.aclose.assert_awaited_once()
