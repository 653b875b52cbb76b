import time
from datetime import datetime

import pytest

from homearchive.exceptions import DuplicateRecordError
from homearchive.models import Book, BookCandidate, Category, ProviderHealth


class FakeProvider:
    """Stands in for a provider client; records every call."""

    def __init__(self, name, results=None, isbn_results=None, delay=0.0, error=None, healthy=True):
        self.name = name
        self.results = list(results or [])
        self.isbn_results = list(isbn_results or [])
        self.delay = delay
        self.error = error
        self.healthy = healthy
        self.calls = []
        self.closed = False

    def _answer(self, method, value, limit, results):
        self.calls.append((method, value, limit))
        if self.delay:
            time.sleep(self.delay)
        if self.error:
            raise self.error
        return results[:limit]

    def search(self, query, limit=10):
        return self._answer("search", query, limit, self.results)

    def search_by_title(self, title, limit=10):
        return self._answer("search_by_title", title, limit, self.results)

    def search_by_author(self, author, limit=10):
        return self._answer("search_by_author", author, limit, self.results)

    def search_by_isbn(self, isbn):
        return self._answer("search_by_isbn", isbn, 1, self.isbn_results)

    def check_health(self):
        if self.error:
            raise self.error
        message = "Service operational" if self.healthy else "Service unavailable: down"
        return ProviderHealth(self.name, self.healthy, message)

    def close(self):
        self.closed = True


class InMemoryStore:
    """Catalog store with the same contract and unique constraints as Database."""

    def __init__(self):
        self.books = []
        self.categories = []
        self.fail_category_saves = 0

    def find_book_by_isbn(self, isbn):
        return next((b for b in self.books if b.isbn == isbn), None)

    def find_books_by_title(self, title, limit=50):
        return [b for b in self.books if title.lower() in b.title.lower()][:limit]

    def find_books_by_author(self, author, limit=50):
        return [b for b in self.books if author.lower() in b.author.lower()][:limit]

    def find_book_by_title_and_author(self, title, author):
        return next(
            (b for b in self.books
             if b.title.lower() == title.lower() and b.author.lower() == author.lower()),
            None
        )

    def save_book(self, book):
        for other in self.books:
            if other.id == book.id:
                continue
            if book.isbn and other.isbn == book.isbn:
                raise DuplicateRecordError(f"isbn {book.isbn} taken")
            if other.title == book.title and other.author == book.author:
                raise DuplicateRecordError(f"{book.title} by {book.author} taken")

        now = datetime.now()
        if book.id is None:
            book.id = len(self.books) + 1
            book.created_at = now
            self.books.append(book)
        book.updated_at = now
        return book

    def find_category_by_name(self, name):
        return next((c for c in self.categories if c.name.lower() == name.lower()), None)

    def category_slug_exists(self, slug):
        return any(c.slug == slug for c in self.categories)

    def save_category(self, category):
        if self.fail_category_saves:
            self.fail_category_saves -= 1
            raise DuplicateRecordError(f"category {category.name} taken")
        if any(c.name.lower() == category.name.lower() or c.slug == category.slug for c in self.categories):
            raise DuplicateRecordError(f"category {category.name} taken")
        category.id = len(self.categories) + 1
        category.created_at = datetime.now()
        self.categories.append(category)
        return category

    def get_stats(self):
        return {
            "total_books": len(self.books),
            "total_categories": len(self.categories),
            "books_without_isbn": sum(1 for b in self.books if not b.isbn)
        }

    def close(self):
        self.closed = True


def make_candidate(title, isbn=None, author="Someone", source="openlibrary", **kwargs):
    return BookCandidate(title=title, author=author, isbn=isbn, source=source, **kwargs)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def candidate_factory():
    return make_candidate


@pytest.fixture
def provider_factory():
    return FakeProvider


@pytest.fixture
def stored_book(store):
    category = store.save_category(Category(name="Classics", slug="classics"))
    return store.save_book(Book(
        title="The Great Gatsby",
        author="F. Scott Fitzgerald",
        isbn="9780743273565",
        publisher="Scribner",
        category=category
    ))


@pytest.fixture
def openlibrary_payload():
    return {
        "numFound": 2,
        "docs": [
            {
                "key": "/works/OL27448W",
                "title": "The Lord of the Rings",
                "author_name": ["J.R.R. Tolkien"],
                "first_publish_year": 1954,
                "isbn": ["0618640150", "9780618640157"],
                "publisher": ["Houghton Mifflin", "Allen & Unwin"],
                "cover_i": 12345,
                "number_of_pages_median": 1193,
                "subject": ["Fantasy"]
            },
            {
                "key": "/works/OL262758W",
                "title": "The Hobbit",
                "author_name": ["J.R.R. Tolkien"],
                "first_publish_year": 1937
            }
        ]
    }


@pytest.fixture
def google_payload():
    return {
        "totalItems": 1,
        "items": [
            {
                "id": "abc123",
                "volumeInfo": {
                    "title": "Python Crash Course",
                    "authors": ["Eric Matthes"],
                    "publisher": "No Starch Press",
                    "publishedDate": "2019-05-03",
                    "description": "A hands-on introduction",
                    "industryIdentifiers": [
                        {"type": "ISBN_10", "identifier": "1593279280"},
                        {"type": "ISBN_13", "identifier": "9781593279288"}
                    ],
                    "pageCount": 544,
                    "categories": ["Computers", "Programming"],
                    "averageRating": 4.5,
                    "ratingsCount": 120,
                    "imageLinks": {
                        "smallThumbnail": "http://books.google.com/small.jpg",
                        "thumbnail": "http://books.google.com/thumb.jpg"
                    }
                }
            }
        ]
    }
