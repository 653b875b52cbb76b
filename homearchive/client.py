"""HTTP clients for the book provider APIs with resilience patterns."""
import time
import requests
from typing import Optional, Dict, Any, List
import logging

from homearchive.exceptions import ProviderError, CircuitOpenError
from homearchive.models import BookCandidate, ProviderHealth
from homearchive.providers import ProviderApi, OpenLibraryApi, GoogleBooksApi, QUERY, ISBN, TITLE, AUTHOR
from homearchive.resilience import CircuitBreaker, CircuitState, backoff_delay

logger = logging.getLogger(__name__)


class ProviderClient:
    """Client for one provider API with timeouts, retries, backoff and a circuit breaker."""

    def __init__(
        self,
        api: ProviderApi,
        timeout: float = 10,
        max_retries: int = 3,
        base_backoff: float = 1.0,
        breaker: Optional[CircuitBreaker] = None,
        retry_budget: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize a provider client.

        Args:
            api: Provider request/response conventions
            timeout: Request timeout in seconds
            max_retries: Maximum number of attempts per call
            base_backoff: Base delay for exponential backoff
            breaker: Circuit breaker (one is created if omitted)
            retry_budget: Seconds after which no further attempt is started
                (None for no limit)
            session: Optional requests session (for connection pooling)
        """
        self.api = api
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_backoff = base_backoff
        self.breaker = breaker or CircuitBreaker(api.name)
        self.retry_budget = retry_budget

        # Create session for connection pooling
        self.session = session or requests.Session()
        self.session.headers.update(api.headers)

    @property
    def name(self) -> str:
        return self.api.name

    def search(self, query: str, limit: int = 10) -> List[BookCandidate]:
        """
        Search for books with a free-text query.

        Returns:
            Candidates in provider order; empty on blank input or failure
        """
        return self._search(QUERY, query, limit)

    def search_by_isbn(self, isbn: str) -> List[BookCandidate]:
        """Search for books by ISBN (usually 0 or 1 result)."""
        return self._search(ISBN, isbn, 1)

    def search_by_title(self, title: str, limit: int = 10) -> List[BookCandidate]:
        """Search for books by title."""
        return self._search(TITLE, title, limit)

    def search_by_author(self, author: str, limit: int = 10) -> List[BookCandidate]:
        """Search for books by author."""
        return self._search(AUTHOR, author, limit)

    def _search(self, kind: str, value: str, limit: int) -> List[BookCandidate]:
        if not value or not value.strip():
            logger.warning(f"Empty {kind} provided to {self.name} search")
            return []

        url, params = self.api.build_request(kind, value, limit)

        try:
            with self.breaker:
                payload = self._make_request_with_retry(url, params)
        except CircuitOpenError:
            logger.warning(f"{self.name} circuit open, skipping {kind} search for '{value}'")
            return []
        except ProviderError as e:
            logger.warning(f"{self.name} {kind} search fallback triggered for '{value}': {e}")
            return []

        books = self.api.parse_response(payload)
        logger.debug(f"{self.name} {kind} search for '{value}': {len(books)} results")
        return books

    def _request(self, url: str, params: Dict[str, Any]) -> Any:
        """
        Make a single HTTP request.

        Raises:
            ProviderError: with ``retryable`` set for timeouts, connection
                errors, 429 and 5xx responses
        """
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise ProviderError(self.name, "request timed out", retryable=True)
        except requests.exceptions.ConnectionError as e:
            raise ProviderError(self.name, f"connection error: {e}", retryable=True)
        except requests.exceptions.RequestException as e:
            raise ProviderError(self.name, f"request failed: {e}")

        # Handle different status codes
        if response.status_code == 429:
            # Rate limited - must retry with backoff
            raise ProviderError(self.name, "rate limited (429)", retryable=True, status_code=429)
        if response.status_code >= 500:
            # Server error - retryable
            raise ProviderError(self.name, f"server error ({response.status_code})",
                                retryable=True, status_code=response.status_code)
        if response.status_code >= 400:
            # Client error - don't retry
            raise ProviderError(self.name, f"client error ({response.status_code})",
                                status_code=response.status_code)

        try:
            return response.json()
        except ValueError:
            raise ProviderError(self.name, "response body is not valid JSON")

    def _make_request_with_retry(self, url: str, params: Dict[str, Any]) -> Any:
        """
        Make HTTP request with retry logic.

        Args:
            url: Request URL
            params: Query parameters

        Returns:
            Decoded JSON payload

        Raises:
            ProviderError: non-retryable failure or all retries exhausted
        """
        started = time.monotonic()
        for attempt in range(self.max_retries):
            try:
                logger.info(f"{self.name} request attempt {attempt + 1}/{self.max_retries}: {url}")
                return self._request(url, params)
            except ProviderError as e:
                if not e.retryable:
                    logger.error(f"{self.name} non-retryable failure: {e}")
                    raise
                logger.warning(f"{e} on attempt {attempt + 1}")
                if attempt < self.max_retries - 1:
                    delay = backoff_delay(attempt, self.base_backoff)
                    if self._budget_spent(started, delay):
                        logger.error(f"{self.name} retry budget of {self.retry_budget}s spent after {attempt + 1} attempts")
                        raise
                    self._backoff(delay)
                    continue
                logger.error(f"All {self.max_retries} attempts to {self.name} failed")
                raise

    def _budget_spent(self, started: float, delay: float) -> bool:
        """True when waiting ``delay`` more seconds would pass the retry budget."""
        if self.retry_budget is None:
            return False
        return time.monotonic() - started + delay >= self.retry_budget

    def _backoff(self, delay: float):
        """
        Sleep between attempts.

        Args:
            delay: Seconds to wait, from backoff_delay (exponential with jitter)
        """
        logger.info(f"Backing off for {delay:.2f} seconds")
        time.sleep(delay)

    def check_health(self) -> ProviderHealth:
        """Probe the provider once, without retries."""
        if self.breaker.state is CircuitState.OPEN:
            return ProviderHealth(self.name, False, "Circuit breaker open")

        url, params = self.api.build_request(QUERY, "test", 1)
        try:
            self._request(url, params)
        except ProviderError as e:
            return ProviderHealth(self.name, False, f"Service unavailable: {e}")
        return ProviderHealth(self.name, True, "Service operational")

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class OpenLibraryClient(ProviderClient):
    """OpenLibrary search client."""

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
        session: Optional[requests.Session] = None
    ):
        super().__init__(
            OpenLibraryApi(search_url, covers_url, fields),
            timeout=timeout,
            max_retries=max_retries,
            base_backoff=base_backoff,
            breaker=breaker,
            retry_budget=retry_budget,
            session=session
        )


class GoogleBooksClient(ProviderClient):
    """Google Books volumes client."""

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
        session: Optional[requests.Session] = None
    ):
        super().__init__(
            GoogleBooksApi(base_url, api_key, max_results),
            timeout=timeout,
            max_retries=max_retries,
            base_backoff=base_backoff,
            breaker=breaker,
            retry_budget=retry_budget,
            session=session
        )
