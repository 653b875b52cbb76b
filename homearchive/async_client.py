"""Async HTTP clients for the book provider APIs."""
import asyncio
import time
import httpx
from typing import List, Optional, Dict, Any
import logging

from homearchive.exceptions import ProviderError, CircuitOpenError
from homearchive.models import BookCandidate, ProviderHealth
from homearchive.providers import ProviderApi, OpenLibraryApi, GoogleBooksApi, QUERY, ISBN, TITLE, AUTHOR
from homearchive.resilience import CircuitBreaker, CircuitState, backoff_delay

logger = logging.getLogger(__name__)


class AsyncProviderClient:
    """Async client for one provider API."""

    def __init__(
        self,
        api: ProviderApi,
        timeout: float = 10,
        max_retries: int = 3,
        base_backoff: float = 1.0,
        breaker: Optional[CircuitBreaker] = None,
        retry_budget: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize async client.

        Args:
            api: Provider request/response conventions
            timeout: Request timeout
            max_retries: Maximum number of attempts per call
            base_backoff: Base delay for exponential backoff
            breaker: Circuit breaker (one is created if omitted)
            retry_budget: Seconds after which no further attempt is started
            client: Optional preconfigured httpx client
        """
        self.api = api
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_backoff = base_backoff
        self.breaker = breaker or CircuitBreaker(api.name)
        self.retry_budget = retry_budget

        # Create async HTTP client
        self.client = client or httpx.AsyncClient(timeout=timeout, headers=api.headers)

    @property
    def name(self) -> str:
        return self.api.name

    async def search(self, query: str, limit: int = 10) -> List[BookCandidate]:
        """Search for books with a free-text query."""
        return await self._search(QUERY, query, limit)

    async def search_by_isbn(self, isbn: str) -> List[BookCandidate]:
        """Search for books by ISBN."""
        return await self._search(ISBN, isbn, 1)

    async def search_by_title(self, title: str, limit: int = 10) -> List[BookCandidate]:
        """Search for books by title."""
        return await self._search(TITLE, title, limit)

    async def search_by_author(self, author: str, limit: int = 10) -> List[BookCandidate]:
        """Search for books by author."""
        return await self._search(AUTHOR, author, limit)

    async def _search(self, kind: str, value: str, limit: int) -> List[BookCandidate]:
        if not value or not value.strip():
            return []

        url, params = self.api.build_request(kind, value, limit)

        try:
            with self.breaker:
                payload = await self._make_request_with_retry(url, params)
        except CircuitOpenError:
            logger.warning(f"{self.name} circuit open, skipping async {kind} search for '{value}'")
            return []
        except ProviderError as e:
            logger.warning(f"{self.name} async {kind} search fallback triggered for '{value}': {e}")
            return []

        return self.api.parse_response(payload)

    async def _request(self, url: str, params: Dict[str, Any]) -> Any:
        try:
            logger.info(f"Async request: {self.name} {params}")
            response = await self.client.get(url, params=params)
        except httpx.TimeoutException:
            raise ProviderError(self.name, "request timed out", retryable=True)
        except httpx.TransportError as e:
            raise ProviderError(self.name, f"transport error: {e}", retryable=True)
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e}")

        if response.status_code == 429 or response.status_code >= 500:
            raise ProviderError(self.name, f"status {response.status_code}",
                                retryable=True, status_code=response.status_code)
        if response.status_code >= 400:
            raise ProviderError(self.name, f"client error ({response.status_code})",
                                status_code=response.status_code)

        try:
            return response.json()
        except ValueError:
            raise ProviderError(self.name, "response body is not valid JSON")

    async def _make_request_with_retry(self, url: str, params: Dict[str, Any]) -> Any:
        started = time.monotonic()
        for attempt in range(self.max_retries):
            try:
                return await self._request(url, params)
            except ProviderError as e:
                if not e.retryable or attempt == self.max_retries - 1:
                    raise
                delay = backoff_delay(attempt, self.base_backoff)
                if self.retry_budget is not None and time.monotonic() - started + delay >= self.retry_budget:
                    logger.error(f"{self.name} retry budget of {self.retry_budget}s spent after {attempt + 1} attempts")
                    raise
                logger.warning(f"{e} on attempt {attempt + 1}, retrying in {delay:.2f}s")
                await asyncio.sleep(delay)

    async def check_health(self) -> ProviderHealth:
        """Probe the provider once, without retries."""
        if self.breaker.state is CircuitState.OPEN:
            return ProviderHealth(self.name, False, "Circuit breaker open")

        url, params = self.api.build_request(QUERY, "test", 1)
        try:
            await self._request(url, params)
        except ProviderError as e:
            return ProviderHealth(self.name, False, f"Service unavailable: {e}")
        return ProviderHealth(self.name, True, "Service operational")

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()


class AsyncOpenLibraryClient(AsyncProviderClient):
    """Async OpenLibrary search client."""

    def __init__(
        self,
        search_url: str = "https://openlibrary.org/search.json",
        covers_url: str = "https://covers.openlibrary.org/b",
        fields: Optional[str] = None,
        timeout: float = 10,
        max_retries: int = 2,
        base_backoff: float = 1.5,
        breaker: Optional[CircuitBreaker] = None,
        retry_budget: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(
            OpenLibraryApi(search_url, covers_url, fields),
            timeout=timeout,
            max_retries=max_retries,
            base_backoff=base_backoff,
            breaker=breaker,
            retry_budget=retry_budget,
            client=client
        )


class AsyncGoogleBooksClient(AsyncProviderClient):
    """Async Google Books volumes client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://www.googleapis.com/books/v1",
        max_results: int = 20,
        timeout: float = 10,
        max_retries: int = 3,
        base_backoff: float = 1.0,
        breaker: Optional[CircuitBreaker] = None,
        retry_budget: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(
            GoogleBooksApi(base_url, api_key, max_results),
            timeout=timeout,
            max_retries=max_retries,
            base_backoff=base_backoff,
            breaker=breaker,
            retry_budget=retry_budget,
            client=client
        )
