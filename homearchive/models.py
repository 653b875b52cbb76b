"""Data models for book candidates, catalog records and provider health."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Dict


@dataclass(frozen=True)
class BookCandidate:
    """Provider-agnostic search result. Never persisted directly."""
    title: str
    author: Optional[str] = None
    isbn: Optional[str] = None
    publication_year: Optional[int] = None
    publisher: Optional[str] = None
    page_count: Optional[int] = None
    description: Optional[str] = None
    cover_image_url: Optional[str] = None
    category_name: Optional[str] = None
    average_rating: Optional[float] = None
    rating_count: Optional[int] = None
    source: Optional[str] = None
    
    @property
    def author_str(self) -> str:
        """Author for display."""
        return self.author or "Unknown"


@dataclass
class Category:
    """Catalog category."""
    name: str
    slug: str
    description: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None


@dataclass
class Book:
    """Canonical catalog book."""
    title: str
    author: str
    isbn: Optional[str] = None
    description: Optional[str] = None
    publication_year: Optional[int] = None
    publisher: Optional[str] = None
    page_count: Optional[int] = None
    cover_image_url: Optional[str] = None
    category: Optional[Category] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    
    @property
    def category_str(self) -> str:
        """Category name for display."""
        return self.category.name if self.category else "None"


@dataclass
class ProviderHealth:
    """Health of a single provider."""
    name: str
    healthy: bool
    message: str


@dataclass
class HealthStatus:
    """Health of every registered provider."""
    providers: Dict[str, ProviderHealth] = field(default_factory=dict)
    
    @property
    def any_healthy(self) -> bool:
        return any(p.healthy for p in self.providers.values())
    
    @property
    def all_healthy(self) -> bool:
        return bool(self.providers) and all(p.healthy for p in self.providers.values())
