"""Fan a search out to every provider and merge the answers."""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import List, Optional, Sequence

from homearchive.merge import merge_candidates
from homearchive.models import BookCandidate, HealthStatus, ProviderHealth

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = ("openlibrary", "googlebooks")
DEFAULT_TIMEOUT = 10
DEFAULT_MAX_RESULTS_PER_API = 20


def order_by_priority(providers: Sequence, priority: Optional[Sequence[str]] = None) -> List:
    """
    Order providers by an explicit priority list.

    Providers not named in ``priority`` keep their registration order and go last.
    """
    priority = list(priority if priority is not None else DEFAULT_PRIORITY)
    rank = {name: index for index, name in enumerate(priority)}
    indexed = list(enumerate(providers))
    indexed.sort(key=lambda pair: (rank.get(pair[1].name, len(rank)), pair[0]))
    return [provider for _, provider in indexed]


class BookSearchAggregator:
    """
    Queries all providers in parallel and merges their results.

    Merge order is fixed by provider priority, never by completion time.

    Calls still running at the deadline are abandoned, not interrupted, and keep
    a worker busy until they finish. Give the provider clients a ``retry_budget``
    no larger than ``timeout`` so an abandoned call stops retrying; it can then
    outlive the deadline by at most one request timeout.
    """

    def __init__(
        self,
        providers: Sequence,
        priority: Optional[Sequence[str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_results_per_api: int = DEFAULT_MAX_RESULTS_PER_API,
        max_workers: int = 4
    ):
        """
        Args:
            providers: Provider clients exposing the search_* methods
            priority: Provider names, highest priority first
            timeout: Overall deadline in seconds for one aggregation
            max_results_per_api: Cap on the limit passed to each provider
            max_workers: Size of the shared worker pool
        """
        self.providers = order_by_priority(providers, priority)
        self.timeout = timeout
        self.max_results_per_api = max_results_per_api
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="book-search")

    def search(self, query: str, limit: int = 10) -> List[BookCandidate]:
        """Free-text search across all providers."""
        return self._search_all("search", query, limit)

    def search_by_title(self, title: str, limit: int = 10) -> List[BookCandidate]:
        """Title search across all providers."""
        return self._search_all("search_by_title", title, limit)

    def search_by_author(self, author: str, limit: int = 10) -> List[BookCandidate]:
        """Author search across all providers."""
        return self._search_all("search_by_author", author, limit)

    def search_by_isbn(self, isbn: str) -> List[BookCandidate]:
        """
        ISBN search, one provider at a time in priority order.

        Returns:
            Results of the first provider that finds anything
        """
        if not isbn or not isbn.strip():
            return []

        logger.info(f"Starting external ISBN search for: {isbn}")
        for provider in self.providers:
            results = self._call_safely(provider, "search_by_isbn", isbn)
            if results:
                logger.debug(f"Found book by ISBN in {provider.name}: {isbn}")
                return results

        logger.debug(f"No book found by ISBN in any provider: {isbn}")
        return []

    def _call_safely(self, provider, method: str, *args) -> List[BookCandidate]:
        try:
            return list(getattr(provider, method)(*args))
        except Exception as e:
            logger.warning(f"{provider.name} {method} failed for {args[0]!r}: {e}")
            return []

    def _search_all(self, method: str, value: str, limit: int) -> List[BookCandidate]:
        if not value or not value.strip():
            return []

        logger.info(f"Starting external {method} for '{value}', limit: {limit}")
        per_api = min(limit, self.max_results_per_api)

        futures = [
            self.executor.submit(self._call_safely, provider, method, value, per_api)
            for provider in self.providers
        ]
        done, not_done = wait(futures, timeout=self.timeout)

        result_lists = []
        for provider, future in zip(self.providers, futures):
            if future in not_done:
                future.cancel()
                logger.warning(f"{provider.name} did not answer within {self.timeout}s, dropping its results")
                result_lists.append([])
                continue
            results = future.result()
            logger.debug(f"{provider.name} returned {len(results)} results")
            result_lists.append(results)

        # Truncate only after merging so lower-priority uniques are not lost
        merged = merge_candidates(result_lists)[:limit]
        logger.info(f"External {method} for '{value}' completed: {len(merged)} results")
        return merged

    def get_health_status(self) -> HealthStatus:
        """Per-provider health plus derived any/all flags."""
        status = HealthStatus()
        for provider in self.providers:
            try:
                health = provider.check_health()
            except Exception as e:
                health = ProviderHealth(provider.name, False, f"Service unavailable: {e}")
            status.providers[provider.name] = health
        return status

    def close(self):
        """Shut down the worker pool and close provider sessions."""
        self.executor.shutdown(wait=False, cancel_futures=True)
        for provider in self.providers:
            close = getattr(provider, "close", None)
            if close:
                close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class AsyncBookSearchAggregator:
    """Async counterpart of BookSearchAggregator for AsyncProviderClient instances."""

    def __init__(
        self,
        providers: Sequence,
        priority: Optional[Sequence[str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_results_per_api: int = DEFAULT_MAX_RESULTS_PER_API
    ):
        self.providers = order_by_priority(providers, priority)
        self.timeout = timeout
        self.max_results_per_api = max_results_per_api

    async def search(self, query: str, limit: int = 10) -> List[BookCandidate]:
        return await self._search_all("search", query, limit)

    async def search_by_title(self, title: str, limit: int = 10) -> List[BookCandidate]:
        return await self._search_all("search_by_title", title, limit)

    async def search_by_author(self, author: str, limit: int = 10) -> List[BookCandidate]:
        return await self._search_all("search_by_author", author, limit)

    async def search_by_isbn(self, isbn: str) -> List[BookCandidate]:
        if not isbn or not isbn.strip():
            return []
        for provider in self.providers:
            results = await self._call_safely(provider, "search_by_isbn", isbn)
            if results:
                return results
        return []

    async def _call_safely(self, provider, method: str, *args) -> List[BookCandidate]:
        try:
            return list(await getattr(provider, method)(*args))
        except Exception as e:
            logger.warning(f"{provider.name} async {method} failed for {args[0]!r}: {e}")
            return []

    async def _search_all(self, method: str, value: str, limit: int) -> List[BookCandidate]:
        if not value or not value.strip() or not self.providers:
            return []

        per_api = min(limit, self.max_results_per_api)
        tasks = [
            asyncio.ensure_future(self._call_safely(provider, method, value, per_api))
            for provider in self.providers
        ]
        done, pending = await asyncio.wait(tasks, timeout=self.timeout)

        result_lists = []
        for provider, task in zip(self.providers, tasks):
            if task in pending:
                task.cancel()
                logger.warning(f"{provider.name} did not answer within {self.timeout}s, dropping its results")
                result_lists.append([])
            else:
                result_lists.append(task.result())

        return merge_candidates(result_lists)[:limit]

    async def get_health_status(self) -> HealthStatus:
        checks = await asyncio.gather(
            *(provider.check_health() for provider in self.providers),
            return_exceptions=True
        )
        status = HealthStatus()
        for provider, health in zip(self.providers, checks):
            if isinstance(health, BaseException):
                health = ProviderHealth(provider.name, False, f"Service unavailable: {health}")
            status.providers[provider.name] = health
        return status

    async def close(self):
        for provider in self.providers:
            await provider.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
