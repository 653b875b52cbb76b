"""Tests for the synchronous provider clients."""
from unittest.mock import MagicMock

import pytest
import requests

from homearchive.client import OpenLibraryClient, GoogleBooksClient
from homearchive.providers import USER_AGENT
from homearchive.resilience import CircuitBreaker, CircuitState


def make_response(status_code=200, payload=None):
    response = MagicMock(status_code=status_code)
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload if payload is not None else {}
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def sleeps(monkeypatch):
    calls = []
    monkeypatch.setattr("homearchive.client.time.sleep", calls.append)
    return calls


def test_session_headers(session):
    OpenLibraryClient(session=session)

    headers = session.headers.update.call_args[0][0]
    assert headers["User-Agent"] == USER_AGENT


def test_openlibrary_search_params(session, openlibrary_payload):
    session.get.return_value = make_response(payload=openlibrary_payload)
    client = OpenLibraryClient(session=session, timeout=7)

    books = client.search(" tolkien ", limit=5)

    assert [b.title for b in books] == ["The Lord of the Rings", "The Hobbit"]
    url = session.get.call_args[0][0]
    params = session.get.call_args.kwargs["params"]
    assert url == "https://openlibrary.org/search.json"
    assert params["q"] == "tolkien"
    assert params["limit"] == 5
    assert params["offset"] == 0
    assert "author_name" in params["fields"]
    assert session.get.call_args.kwargs["timeout"] == 7


def test_openlibrary_field_searches(session):
    session.get.return_value = make_response(payload={"docs": []})
    client = OpenLibraryClient(session=session)

    client.search_by_title("Dune", limit=500)
    assert session.get.call_args.kwargs["params"]["title"] == "Dune"
    assert session.get.call_args.kwargs["params"]["limit"] == 100

    client.search_by_author("Herbert")
    assert session.get.call_args.kwargs["params"]["author"] == "Herbert"

    client.search_by_isbn("978-0-14-303943-3")
    params = session.get.call_args.kwargs["params"]
    assert params["isbn"] == "9780143039433"
    assert params["limit"] == 10


def test_google_search_params(session, google_payload):
    session.get.return_value = make_response(payload=google_payload)
    client = GoogleBooksClient(session=session)

    books = client.search_by_title("Python", limit=50)

    assert books[0].isbn == "9781593279288"
    url = session.get.call_args[0][0]
    params = session.get.call_args.kwargs["params"]
    assert url == "https://www.googleapis.com/books/v1/volumes"
    assert params["q"] == "intitle:Python"
    assert params["maxResults"] == 20
    assert "key" not in params


def test_google_isbn_and_key(session):
    session.get.return_value = make_response(payload={"totalItems": 0})
    client = GoogleBooksClient(api_key="secret", session=session)

    assert client.search_by_isbn("9780143039433") == []

    params = session.get.call_args.kwargs["params"]
    assert params["q"] == "isbn:9780143039433"
    assert params["maxResults"] == 1
    assert params["key"] == "secret"


def test_google_author_and_query(session):
    session.get.return_value = make_response(payload={})
    client = GoogleBooksClient(session=session)

    client.search_by_author("Matthes", limit=3)
    assert session.get.call_args.kwargs["params"]["q"] == "inauthor:Matthes"
    assert session.get.call_args.kwargs["params"]["maxResults"] == 3

    client.search("python crash course")
    assert session.get.call_args.kwargs["params"]["q"] == "python crash course"


@pytest.mark.parametrize("query", ["", "   ", None])
def test_blank_query_skips_network(session, query):
    client = OpenLibraryClient(session=session)

    assert client.search(query) == []
    session.get.assert_not_called()


def test_retries_server_error(session, sleeps, google_payload):
    session.get.side_effect = [make_response(503), make_response(payload=google_payload)]
    client = GoogleBooksClient(session=session)

    books = client.search("python")

    assert len(books) == 1
    assert session.get.call_count == 2
    assert len(sleeps) == 1


def test_retries_rate_limit_until_exhausted(session, sleeps):
    session.get.return_value = make_response(429)
    client = GoogleBooksClient(session=session, max_retries=3)

    assert client.search("python") == []
    assert session.get.call_count == 3
    assert len(sleeps) == 2


def test_retry_budget_stops_retries(session, sleeps):
    """No further attempt is started once the next backoff would pass the budget."""
    session.get.return_value = make_response(503)
    client = GoogleBooksClient(session=session, max_retries=3, retry_budget=0)

    assert client.search("python") == []
    assert session.get.call_count == 1
    assert sleeps == []


def test_retry_budget_allows_retries_inside_it(session, sleeps):
    session.get.return_value = make_response(503)
    client = GoogleBooksClient(session=session, max_retries=3, retry_budget=600)

    assert client.search("python") == []
    assert session.get.call_count == 3
    assert len(sleeps) == 2


def test_timeout_falls_back_to_empty(session, sleeps):
    session.get.side_effect = requests.exceptions.Timeout()
    client = OpenLibraryClient(session=session)

    assert client.search("tolkien") == []
    assert session.get.call_count == 2


def test_connection_error_is_retried(session, sleeps, openlibrary_payload):
    session.get.side_effect = [
        requests.exceptions.ConnectionError("reset"),
        make_response(payload=openlibrary_payload)
    ]
    client = OpenLibraryClient(session=session)

    assert len(client.search("tolkien")) == 2


def test_client_error_not_retried(session, sleeps):
    session.get.return_value = make_response(404)
    client = GoogleBooksClient(session=session)

    assert client.search("python") == []
    assert session.get.call_count == 1
    assert sleeps == []


def test_invalid_json_falls_back(session, sleeps):
    session.get.return_value = make_response(payload=ValueError("not json"))
    client = OpenLibraryClient(session=session)

    assert client.search("tolkien") == []
    assert session.get.call_count == 1


def test_open_breaker_skips_network(session, sleeps):
    session.get.return_value = make_response(500)
    breaker = CircuitBreaker("googlebooks", minimum_calls=1, failure_rate_threshold=50)
    client = GoogleBooksClient(session=session, breaker=breaker, max_retries=1)

    assert client.search("python") == []
    assert breaker.state is CircuitState.OPEN
    session.get.reset_mock()

    assert client.search("python") == []
    session.get.assert_not_called()


def test_breaker_records_one_outcome_per_call(session, sleeps):
    session.get.side_effect = [make_response(503), make_response(503), make_response(payload={})]
    breaker = CircuitBreaker("googlebooks")
    client = GoogleBooksClient(session=session, breaker=breaker)

    client.search("python")

    assert breaker.failure_rate == 0.0


def test_check_health(session):
    session.get.return_value = make_response(payload={"docs": []})
    client = OpenLibraryClient(session=session)

    health = client.check_health()

    assert health.healthy
    assert health.message == "Service operational"


def test_check_health_failure_not_retried(session, sleeps):
    session.get.return_value = make_response(503)
    client = OpenLibraryClient(session=session)

    health = client.check_health()

    assert not health.healthy
    assert health.message.startswith("Service unavailable:")
    assert session.get.call_count == 1


def test_check_health_open_breaker(session):
    breaker = CircuitBreaker("openlibrary", minimum_calls=1)
    breaker.record_failure()
    client = OpenLibraryClient(session=session, breaker=breaker)

    health = client.check_health()

    assert not health.healthy
    session.get.assert_not_called()


def test_close_and_context_manager(session):
    with OpenLibraryClient(session=session) as client:
        assert client.name == "openlibrary"

    session.close.assert_called_once()
