"""Create and refresh catalog books from external metadata."""
import logging
import re
import time
from typing import List, Optional

from homearchive.exceptions import DuplicateRecordError, StorageError
from homearchive.models import Book, BookCandidate, Category
from homearchive.normalize import isbn_variants, normalize_isbn, validate_isbn

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 10
DEFAULT_CATEGORY = "Fiction"
UNCATEGORIZED = "Uncategorized"
UNKNOWN_AUTHOR = "Unknown"
MAX_SLUG_ATTEMPTS = 100
AUTO_CATEGORY_DESCRIPTION = "Auto-generated category from book metadata enrichment"


def generate_slug(name: str) -> str:
    """
    URL-friendly slug for a category name.

    >>> generate_slug("Science Fiction")
    'science-fiction'
    """
    slug = name.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def _has_text(value: Optional[str]) -> bool:
    return bool(value and value.strip())


def _author_or_unknown(author: Optional[str]) -> str:
    return author.strip() if _has_text(author) else UNKNOWN_AUTHOR


class BookMetadataService:
    """
    Enriches the catalog from the aggregated provider search.

    The store is anything implementing the catalog contract of
    ``homearchive.database.Database``.
    """

    def __init__(self, aggregator, store, search_limit: int = DEFAULT_SEARCH_LIMIT):
        self.aggregator = aggregator
        self.store = store
        self.search_limit = search_limit

    def enrich_by_isbn(self, isbn: str) -> Optional[Book]:
        """
        Return the stored book for an ISBN, fetching and saving it if needed.

        Args:
            isbn: ISBN-10 or ISBN-13, hyphens and spaces allowed

        Returns:
            The stored book, or None when no provider knows the ISBN

        Raises:
            InvalidIsbnError: non-blank input that is not an ISBN
        """
        if not _has_text(isbn):
            logger.debug("ISBN is empty, cannot enrich metadata")
            return None

        clean = validate_isbn(isbn)
        logger.info(f"Enriching book metadata for ISBN: {clean}")

        existing = self.find_by_isbn(clean)
        if existing:
            logger.debug(f"Book with ISBN {clean} already exists in database")
            return existing

        candidates = self.aggregator.search_by_isbn(clean)
        if not candidates:
            logger.warning(f"No results found for ISBN: {clean}")
            return None

        saved = self._store_candidate(candidates[0], requested_isbn=clean)
        logger.info(f"Enriched and saved book: {saved.title} by {saved.author}")
        return saved

    def enrich_by_title(self, title: str) -> List[Book]:
        """Stored books matching ``title`` plus newly fetched ones."""
        if not _has_text(title):
            return []

        logger.info(f"Enriching books by title: {title}")
        books = list(self.store.find_books_by_title(title.strip()))
        candidates = self.aggregator.search_by_title(title, self.search_limit)
        return self._merge_into(books, candidates, f"title '{title}'")

    def enrich_by_author(self, author: str) -> List[Book]:
        """Stored books matching ``author`` plus newly fetched ones."""
        if not _has_text(author):
            return []

        logger.info(f"Enriching books by author: {author}")
        books = list(self.store.find_books_by_author(author.strip()))
        candidates = self.aggregator.search_by_author(author, self.search_limit)
        return self._merge_into(books, candidates, f"author '{author}'")

    def update_from_source(self, book: Book) -> Optional[Book]:
        """
        Refresh a stored book from its ISBN.

        Only fields the source supplies are overwritten; the ISBN is kept.

        Returns:
            The updated book, or None when it has no ISBN or nothing was found
        """
        if book is None or not _has_text(book.isbn):
            logger.debug("Book or ISBN is empty, cannot update from source")
            return None

        logger.info(f"Updating book from source: {book.title} (ISBN: {book.isbn})")
        candidates = self.aggregator.search_by_isbn(normalize_isbn(book.isbn))
        if not candidates:
            logger.warning(f"No source results found for ISBN: {book.isbn}")
            return None

        # The lookup key stays; the candidate may carry another edition's ISBN
        isbn = book.isbn
        self._apply_candidate(book, candidates[0])
        book.isbn = isbn
        updated = self.store.save_book(book)
        logger.info(f"Updated book from source: {updated.title}")
        return updated

    def create_category_if_not_exists(self, name: Optional[str]) -> Category:
        """
        Find a category by name (case-insensitive) or create it.

        A blank name resolves to "Uncategorized". If creation loses a race
        the name is looked up again; failing that, "Fiction" is used.
        """
        if not _has_text(name):
            return self.create_category_if_not_exists(UNCATEGORIZED)
        name = name.strip()

        existing = self.store.find_category_by_name(name)
        if existing:
            return existing

        category = Category(
            name=name,
            slug=self._unique_slug(generate_slug(name) or "category"),
            description=AUTO_CATEGORY_DESCRIPTION
        )
        try:
            saved = self.store.save_category(category)
            logger.info(f"Created new category: {saved.name}")
            return saved
        except StorageError as e:
            logger.warning(f"Failed to create category '{name}', looking it up again: {e}")
            retry = self.store.find_category_by_name(name)
            if retry:
                return retry
            if name.lower() == DEFAULT_CATEGORY.lower():
                raise
            logger.error(f"Failed to create or find category '{name}', using default")
            return self.create_category_if_not_exists(DEFAULT_CATEGORY)

    def _unique_slug(self, base_slug: str) -> str:
        slug = base_slug
        counter = 1
        while self.store.category_slug_exists(slug):
            if counter > MAX_SLUG_ATTEMPTS:
                return f"{base_slug}-{int(time.time() * 1000)}"
            slug = f"{base_slug}-{counter}"
            counter += 1
        return slug

    def find_by_isbn(self, isbn: str) -> Optional[Book]:
        """Stored book under either the ISBN-10 or ISBN-13 form of ``isbn``."""
        for variant in isbn_variants(isbn):
            book = self.store.find_book_by_isbn(variant)
            if book:
                return book
        return None

    def _merge_into(self, books: List[Book], candidates: List[BookCandidate], label: str) -> List[Book]:
        listed_ids = {book.id for book in books if book.id is not None}
        for candidate in candidates:
            if self._already_listed(candidate, books):
                continue
            try:
                book = self._store_candidate(candidate)
            except Exception as e:
                logger.warning(f"Failed to create book from candidate '{candidate.title}': {e}")
                continue

            # Matched a stored row under another ISBN form or author spelling
            if book.id is not None and book.id in listed_ids:
                continue
            if book.id is not None:
                listed_ids.add(book.id)
            books.append(book)
            logger.debug(f"Added new book: {candidate.title} by {candidate.author_str}")

        logger.info(f"Enrichment complete. Found {len(books)} books for {label}")
        return books

    @staticmethod
    def _already_listed(candidate: BookCandidate, books: List[Book]) -> bool:
        variants = set(isbn_variants(candidate.isbn))
        if variants and any(normalize_isbn(book.isbn) in variants for book in books):
            return True

        if not _has_text(candidate.title):
            return False
        title = candidate.title.strip().lower()
        author = _author_or_unknown(candidate.author).lower()
        return any(
            book.title.strip().lower() == title and (book.author or "").strip().lower() == author
            for book in books
        )

    def _store_candidate(self, candidate: BookCandidate, requested_isbn: Optional[str] = None) -> Book:
        """
        Persist a candidate, reusing a stored book that already matches it.

        Args:
            candidate: Provider result to store
            requested_isbn: Normalized ISBN the caller looked up; it is stored
                in place of the candidate's ISBN, which may belong to another edition
        """
        isbn = requested_isbn or normalize_isbn(candidate.isbn)
        if isbn:
            existing = self.find_by_isbn(isbn)
            if existing:
                return existing

        author = _author_or_unknown(candidate.author)
        existing = self.store.find_book_by_title_and_author(candidate.title.strip(), author)
        if existing:
            logger.debug(f"Reusing stored book '{existing.title}' by {existing.author}")
            if requested_isbn and not _has_text(existing.isbn):
                existing.isbn = requested_isbn
                return self.store.save_book(existing)
            return existing

        book = Book(title=candidate.title.strip(), author=author)
        self._apply_candidate(book, candidate)
        if requested_isbn:
            book.isbn = requested_isbn

        try:
            return self.store.save_book(book)
        except DuplicateRecordError:
            # Lost an insert race; the winner is now visible
            existing = self.store.find_book_by_title_and_author(book.title, book.author)
            if existing is None and book.isbn:
                existing = self.find_by_isbn(book.isbn)
            if existing is None:
                raise
            return existing

    def _apply_candidate(self, book: Book, candidate: BookCandidate):
        """Copy every non-blank candidate field onto ``book``."""
        if _has_text(candidate.title):
            book.title = candidate.title.strip()
        if _has_text(candidate.author):
            book.author = candidate.author.strip()
        if _has_text(candidate.isbn):
            book.isbn = normalize_isbn(candidate.isbn)
        if _has_text(candidate.description):
            book.description = candidate.description
        if candidate.publication_year is not None:
            book.publication_year = candidate.publication_year
        if _has_text(candidate.publisher):
            book.publisher = candidate.publisher
        if candidate.page_count is not None:
            book.page_count = candidate.page_count
        if _has_text(candidate.cover_image_url):
            book.cover_image_url = candidate.cover_image_url

        if _has_text(candidate.category_name):
            book.category = self.create_category_if_not_exists(candidate.category_name)
        elif book.category is None:
            book.category = self.create_category_if_not_exists(DEFAULT_CATEGORY)
