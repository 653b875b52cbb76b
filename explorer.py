#!/usr/bin/env python3
"""Home Archive Explorer CLI - external book search and catalog enrichment."""
import argparse
import asyncio
import sys
import json
import logging
from dataclasses import asdict
from tabulate import tabulate
from homearchive.aggregator import BookSearchAggregator, AsyncBookSearchAggregator
from homearchive.async_client import AsyncOpenLibraryClient, AsyncGoogleBooksClient
from homearchive.client import OpenLibraryClient, GoogleBooksClient
from homearchive.config import Config
from homearchive.database import Database
from homearchive.enrichment import BookMetadataService
from homearchive.exceptions import ValidationError
from homearchive.resilience import CircuitBreaker

logger = logging.getLogger(__name__)


def _breakers(config: Config):
    """One breaker per provider, shared by the sync and async clients."""
    return {
        "openlibrary": CircuitBreaker(
            "openlibrary",
            failure_rate_threshold=config.OPENLIBRARY_FAILURE_RATE,
            sliding_window_size=config.OPENLIBRARY_WINDOW_SIZE,
            minimum_calls=config.OPENLIBRARY_MINIMUM_CALLS,
            open_state_wait=config.OPENLIBRARY_OPEN_WAIT,
            half_open_max_calls=config.OPENLIBRARY_HALF_OPEN_CALLS
        ),
        "googlebooks": CircuitBreaker(
            "googlebooks",
            failure_rate_threshold=config.GOOGLE_BOOKS_FAILURE_RATE,
            sliding_window_size=config.GOOGLE_BOOKS_WINDOW_SIZE,
            minimum_calls=config.GOOGLE_BOOKS_MINIMUM_CALLS,
            open_state_wait=config.GOOGLE_BOOKS_OPEN_WAIT,
            half_open_max_calls=config.GOOGLE_BOOKS_HALF_OPEN_CALLS
        ),
    }


def build_aggregator(config: Config) -> BookSearchAggregator:
    """Wire the synchronous provider clients into an aggregator."""
    breakers = _breakers(config)
    providers = [
        OpenLibraryClient(
            search_url=config.OPENLIBRARY_SEARCH_URL,
            covers_url=config.OPENLIBRARY_COVERS_URL,
            fields=config.OPENLIBRARY_FIELDS,
            timeout=config.OPENLIBRARY_TIMEOUT,
            max_retries=config.OPENLIBRARY_MAX_RETRIES,
            base_backoff=config.OPENLIBRARY_RETRY_BACKOFF,
            breaker=breakers["openlibrary"],
            retry_budget=config.AGGREGATION_TIMEOUT
        ),
        GoogleBooksClient(
            api_key=config.GOOGLE_BOOKS_API_KEY,
            base_url=config.GOOGLE_BOOKS_BASE_URL,
            max_results=config.GOOGLE_BOOKS_MAX_RESULTS,
            timeout=config.GOOGLE_BOOKS_TIMEOUT,
            max_retries=config.GOOGLE_BOOKS_MAX_RETRIES,
            base_backoff=config.GOOGLE_BOOKS_RETRY_BACKOFF,
            breaker=breakers["googlebooks"],
            retry_budget=config.AGGREGATION_TIMEOUT
        ),
    ]
    return BookSearchAggregator(
        providers,
        priority=config.PROVIDER_PRIORITY,
        timeout=config.AGGREGATION_TIMEOUT,
        max_results_per_api=config.MAX_RESULTS_PER_API,
        max_workers=config.AGGREGATION_WORKERS
    )


def build_async_aggregator(config: Config) -> AsyncBookSearchAggregator:
    """Wire the async provider clients into an aggregator."""
    breakers = _breakers(config)
    providers = [
        AsyncOpenLibraryClient(
            search_url=config.OPENLIBRARY_SEARCH_URL,
            covers_url=config.OPENLIBRARY_COVERS_URL,
            fields=config.OPENLIBRARY_FIELDS,
            timeout=config.OPENLIBRARY_TIMEOUT,
            max_retries=config.OPENLIBRARY_MAX_RETRIES,
            base_backoff=config.OPENLIBRARY_RETRY_BACKOFF,
            breaker=breakers["openlibrary"],
            retry_budget=config.AGGREGATION_TIMEOUT
        ),
        AsyncGoogleBooksClient(
            api_key=config.GOOGLE_BOOKS_API_KEY,
            base_url=config.GOOGLE_BOOKS_BASE_URL,
            max_results=config.GOOGLE_BOOKS_MAX_RESULTS,
            timeout=config.GOOGLE_BOOKS_TIMEOUT,
            max_retries=config.GOOGLE_BOOKS_MAX_RETRIES,
            base_backoff=config.GOOGLE_BOOKS_RETRY_BACKOFF,
            breaker=breakers["googlebooks"],
            retry_budget=config.AGGREGATION_TIMEOUT
        ),
    ]
    return AsyncBookSearchAggregator(
        providers,
        priority=config.PROVIDER_PRIORITY,
        timeout=config.AGGREGATION_TIMEOUT,
        max_results_per_api=config.MAX_RESULTS_PER_API
    )


def setup_database(config: Config) -> Database:
    """Initialize database."""
    db = Database(config.DATABASE_URL)
    db.init_schema()
    return db


def _truncate(text, width: int) -> str:
    text = str(text or "")
    return text[:width] + "..." if len(text) > width else text


def run_search(aggregator, by: str, query: str, limit: int):
    """Dispatch a search to the matching aggregator method."""
    if by == "isbn":
        return aggregator.search_by_isbn(query)
    if by == "title":
        return aggregator.search_by_title(query, limit)
    if by == "author":
        return aggregator.search_by_author(query, limit)
    return aggregator.search(query, limit)


async def search_books_async(args, config: Config):
    """Search for books using the async clients."""
    async with build_async_aggregator(config) as aggregator:
        logger.info(f"Searching ({args.by}) for: {args.query}")
        candidates = await run_search(aggregator, args.by, args.query, args.limit)
    display_candidates(candidates, args.format)


def search_books_sync(args, config: Config):
    """Search for books using the sync clients."""
    with build_aggregator(config) as aggregator:
        logger.info(f"Searching ({args.by}) for: {args.query}")
        candidates = run_search(aggregator, args.by, args.query, args.limit)
    display_candidates(candidates, args.format)


def display_candidates(candidates, format_type: str):
    """Display search candidates in specified format."""
    if not candidates:
        print("No books found.")
        return

    if format_type == "table":
        headers = ["Title", "Author", "ISBN", "Year", "Publisher", "Source"]
        rows = [
            [
                _truncate(c.title, 50),
                _truncate(c.author_str, 30),
                c.isbn or "N/A",
                c.publication_year or "Unknown",
                _truncate(c.publisher, 25),
                c.source or ""
            ]
            for c in candidates
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        print(json.dumps([asdict(c) for c in candidates], indent=2))

    elif format_type == "compact":
        for i, c in enumerate(candidates, 1):
            print(f"{i}. {c.title} - {c.author_str}")


def display_books(books, format_type: str):
    """Display catalog books in specified format."""
    if not books:
        print("No books found.")
        return

    if format_type == "table":
        headers = ["ID", "Title", "Author", "ISBN", "Year", "Category"]
        rows = [
            [
                book.id,
                _truncate(book.title, 50),
                _truncate(book.author, 30),
                book.isbn or "N/A",
                book.publication_year or "Unknown",
                _truncate(book.category_str, 25)
            ]
            for book in books
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        print(json.dumps([asdict(book) for book in books], indent=2, default=str))

    elif format_type == "compact":
        for book in books:
            print(f"[{book.id}] {book.title} - {book.author}")


def enrich_books(args, config: Config):
    """Enrich the catalog by ISBN, title or author."""
    db = setup_database(config)

    try:
        with build_aggregator(config) as aggregator:
            service = BookMetadataService(aggregator, db, config.ENRICHMENT_SEARCH_LIMIT)

            if args.isbn:
                book = service.enrich_by_isbn(args.isbn)
                books = [book] if book else []
            elif args.title:
                books = service.enrich_by_title(args.title)
            else:
                books = service.enrich_by_author(args.author)

        display_books(books, args.format)

    finally:
        db.close()


def refresh_book(args, config: Config):
    """Re-fetch metadata for a stored book."""
    db = setup_database(config)

    try:
        with build_aggregator(config) as aggregator:
            service = BookMetadataService(aggregator, db, config.ENRICHMENT_SEARCH_LIMIT)
            book = service.find_by_isbn(args.isbn)
            if not book:
                logger.error(f"No stored book with ISBN {args.isbn}")
                return 1

            updated = service.update_from_source(book)
            if not updated:
                logger.warning(f"No source metadata found for ISBN {args.isbn}")
                return 1

        display_books([updated], "table")
        return 0

    finally:
        db.close()


def show_health(args, config: Config):
    """Show provider health."""
    with build_aggregator(config) as aggregator:
        status = aggregator.get_health_status()

    rows = [
        [health.name, "UP" if health.healthy else "DOWN", health.message]
        for health in status.providers.values()
    ]
    print("\n" + tabulate(rows, headers=["Provider", "Status", "Message"], tablefmt="grid"))
    print(f"\nAny healthy: {status.any_healthy}   All healthy: {status.all_healthy}\n")
    return 0 if status.any_healthy else 1


def show_stats(args, config: Config):
    """Show database statistics."""
    db = setup_database(config)

    try:
        stats = db.get_stats()

        print("\n" + "=" * 50)
        print("CATALOG STATISTICS")
        print("=" * 50)
        print(f"Total books stored: {stats['total_books']}")
        print(f"Total categories: {stats['total_categories']}")
        print(f"Books without ISBN: {stats['books_without_isbn']}")
        print("=" * 50 + "\n")

    finally:
        db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Home Archive Explorer - book search & catalog enrichment CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Search all providers
  %(prog)s search "tolkien" --limit 5

  # ISBN lookup with the async clients
  %(prog)s search 978-0-14-303943-3 --by isbn --async

  # Add books to the catalog
  %(prog)s enrich --author "Ursula K. Le Guin"

  # Provider health
  %(prog)s health
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    formats = ["table", "json", "compact"]

    # Search command
    search_parser = subparsers.add_parser("search", help="Search external providers")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--by", choices=["any", "isbn", "title", "author"], default="any",
                               help="Search field (default: any)")
    search_parser.add_argument("--limit", type=int, default=10, help="Max results (default: 10)")
    search_parser.add_argument("--format", choices=formats, default="table", help="Output format")
    search_parser.add_argument("--async", dest="use_async", action="store_true", help="Use async clients")

    # Enrich command
    enrich_parser = subparsers.add_parser("enrich", help="Add books to the catalog from providers")
    target = enrich_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--isbn", help="ISBN to look up")
    target.add_argument("--title", help="Title to search")
    target.add_argument("--author", help="Author to search")
    enrich_parser.add_argument("--format", choices=formats, default="table", help="Output format")

    # Refresh command
    refresh_parser = subparsers.add_parser("refresh", help="Refresh a stored book from providers")
    refresh_parser.add_argument("isbn", help="ISBN of the stored book")

    # Health command
    subparsers.add_parser("health", help="Check provider health")

    # Stats command
    subparsers.add_parser("stats", help="Show catalog statistics")

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config()

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        exit_code = 0
        if args.command == "search":
            if args.use_async:
                asyncio.run(search_books_async(args, config))
            else:
                search_books_sync(args, config)

        elif args.command == "enrich":
            enrich_books(args, config)

        elif args.command == "refresh":
            exit_code = refresh_book(args, config)

        elif args.command == "health":
            exit_code = show_health(args, config)

        elif args.command == "stats":
            show_stats(args, config)

        sys.exit(exit_code)

    except KeyboardInterrupt:
        logger.info("\nInterrupted by user")
        sys.exit(0)
    except ValidationError as e:
        logger.error(f"Invalid input: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
