"""Exception hierarchy for the metadata services."""
from typing import Optional


class HomeArchiveError(Exception):
    """Base class for all errors raised by this package."""
    pass


class ValidationError(HomeArchiveError, ValueError):
    """Caller supplied input that can never succeed."""
    pass


class InvalidIsbnError(ValidationError):
    """ISBN is not a 10 or 13 character ISBN after normalization."""
    
    def __init__(self, isbn: str):
        super().__init__(f"Invalid ISBN format: {isbn!r}")
        self.isbn = isbn


class ProviderError(HomeArchiveError):
    """A provider request failed (transport, remote status or payload)."""
    
    def __init__(self, provider: str, message: str, retryable: bool = False,
                 status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.retryable = retryable
        self.status_code = status_code


class CircuitOpenError(ProviderError):
    """Call rejected because the provider's circuit breaker is open."""
    
    def __init__(self, provider: str):
        super().__init__(provider, "circuit breaker is open")


class StorageError(HomeArchiveError):
    """Persistence layer failure."""
    pass


class DuplicateRecordError(StorageError):
    """A unique constraint (ISBN, title/author, category name or slug) was violated."""
    pass
