"""Database layer for the book catalog and its categories."""
import psycopg2
from psycopg2 import errors, pool
from typing import Optional, List, Dict, Any
import logging

from homearchive.exceptions import DuplicateRecordError, StorageError
from homearchive.models import Book, Category

logger = logging.getLogger(__name__)

_BOOK_COLUMNS = """
    b.id, b.title, b.author, b.isbn, b.description, b.publication_year,
    b.publisher, b.page_count, b.cover_image_url, b.created_at, b.updated_at,
    c.id, c.name, c.slug, c.description, c.created_at
"""

_BOOK_SELECT = f"""
    SELECT {_BOOK_COLUMNS}
    FROM books b
    LEFT JOIN categories c ON c.id = b.category_id
"""


def _row_to_book(row) -> Book:
    category = None
    if row[11] is not None:
        category = Category(id=row[11], name=row[12], slug=row[13],
                            description=row[14], created_at=row[15])
    return Book(
        id=row[0], title=row[1], author=row[2], isbn=row[3], description=row[4],
        publication_year=row[5], publisher=row[6], page_count=row[7],
        cover_image_url=row[8], created_at=row[9], updated_at=row[10],
        category=category
    )


def _row_to_category(row) -> Category:
    return Category(id=row[0], name=row[1], slug=row[2], description=row[3], created_at=row[4])


class Database:
    """PostgreSQL catalog store with connection pooling."""

    def __init__(self, connection_string: str, min_conn: int = 1, max_conn: int = 10):
        """
        Initialize database connection pool.

        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        try:
            self.connection_pool = psycopg2.pool.SimpleConnectionPool(
                min_conn,
                max_conn,
                connection_string
            )
        except psycopg2.Error as e:
            raise StorageError(f"Failed to create connection pool: {e}") from e

        logger.info("Database connection pool created successfully")

    def init_schema(self):
        """Create database tables if they don't exist."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS categories (
                        id SERIAL PRIMARY KEY,
                        name VARCHAR(100) NOT NULL,
                        slug VARCHAR(100) NOT NULL UNIQUE,
                        description TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                cur.execute("""
                    CREATE UNIQUE INDEX IF NOT EXISTS idx_categories_name_lower
                    ON categories (LOWER(name))
                """)

                cur.execute("""
                    CREATE TABLE IF NOT EXISTS books (
                        id SERIAL PRIMARY KEY,
                        title VARCHAR(500) NOT NULL,
                        author VARCHAR(300) NOT NULL,
                        isbn VARCHAR(20) UNIQUE,
                        description TEXT,
                        publication_year INTEGER,
                        publisher VARCHAR(200),
                        page_count INTEGER,
                        cover_image_url TEXT,
                        category_id INTEGER REFERENCES categories(id),
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE (title, author)
                    )
                """)

                # Indexes for the case-insensitive lookups
                cur.execute("""
                    CREATE INDEX IF NOT EXISTS idx_books_title_lower
                    ON books (LOWER(title))
                """)

                cur.execute("""
                    CREATE INDEX IF NOT EXISTS idx_books_author_lower
                    ON books (LOWER(author))
                """)

                conn.commit()
                logger.info("Database schema initialized successfully")

        finally:
            self.connection_pool.putconn(conn)

    def _fetch_books(self, query: str, params: tuple) -> List[Book]:
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return [_row_to_book(row) for row in cur.fetchall()]
        finally:
            self.connection_pool.putconn(conn)

    def find_book_by_isbn(self, isbn: str) -> Optional[Book]:
        """Get a book by its stored ISBN."""
        books = self._fetch_books(_BOOK_SELECT + " WHERE b.isbn = %s", (isbn,))
        return books[0] if books else None

    def find_books_by_title(self, title: str, limit: int = 50) -> List[Book]:
        """Books whose title contains ``title``, case-insensitively."""
        return self._fetch_books(
            _BOOK_SELECT + " WHERE b.title ILIKE %s ORDER BY b.created_at DESC LIMIT %s",
            (f"%{title}%", limit)
        )

    def find_books_by_author(self, author: str, limit: int = 50) -> List[Book]:
        """Books whose author contains ``author``, case-insensitively."""
        return self._fetch_books(
            _BOOK_SELECT + " WHERE b.author ILIKE %s ORDER BY b.created_at DESC LIMIT %s",
            (f"%{author}%", limit)
        )

    def find_book_by_title_and_author(self, title: str, author: str) -> Optional[Book]:
        """Exact (case-insensitive) title and author match."""
        books = self._fetch_books(
            _BOOK_SELECT + " WHERE LOWER(b.title) = LOWER(%s) AND LOWER(b.author) = LOWER(%s)",
            (title, author)
        )
        return books[0] if books else None

    def exists_book_by_title_and_author(self, title: str, author: str) -> bool:
        return self.find_book_by_title_and_author(title, author) is not None

    def save_book(self, book: Book) -> Book:
        """
        Insert a new book or update an existing one.

        Args:
            book: Book to store; ``id`` None means insert

        Returns:
            The stored book with id and timestamps filled in

        Raises:
            DuplicateRecordError: ISBN or title/author already taken
        """
        category_id = book.category.id if book.category else None
        values = (
            book.title, book.author, book.isbn, book.description,
            book.publication_year, book.publisher, book.page_count,
            book.cover_image_url, category_id
        )

        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                if book.id is None:
                    cur.execute("""
                        INSERT INTO books (
                            title, author, isbn, description, publication_year,
                            publisher, page_count, cover_image_url, category_id
                        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING id, created_at, updated_at
                    """, values)
                else:
                    cur.execute("""
                        UPDATE books SET
                            title = %s, author = %s, isbn = %s, description = %s,
                            publication_year = %s, publisher = %s, page_count = %s,
                            cover_image_url = %s, category_id = %s,
                            updated_at = CURRENT_TIMESTAMP
                        WHERE id = %s
                        RETURNING id, created_at, updated_at
                    """, values + (book.id,))

                row = cur.fetchone()
                if row is None:
                    raise StorageError(f"Book {book.id} no longer exists")
                conn.commit()
                book.id, book.created_at, book.updated_at = row
                return book
        except errors.UniqueViolation as e:
            conn.rollback()
            logger.warning(f"Duplicate book '{book.title}' by {book.author}: {e}")
            raise DuplicateRecordError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            self.connection_pool.putconn(conn)

    def find_category_by_name(self, name: str) -> Optional[Category]:
        """Case-insensitive category lookup."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    SELECT id, name, slug, description, created_at
                    FROM categories WHERE LOWER(name) = LOWER(%s)
                """, (name,))
                row = cur.fetchone()
                return _row_to_category(row) if row else None
        finally:
            self.connection_pool.putconn(conn)

    def category_slug_exists(self, slug: str) -> bool:
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 FROM categories WHERE slug = %s", (slug,))
                return cur.fetchone() is not None
        finally:
            self.connection_pool.putconn(conn)

    def save_category(self, category: Category) -> Category:
        """
        Insert a new category.

        Raises:
            DuplicateRecordError: name or slug already taken
        """
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO categories (name, slug, description)
                    VALUES (%s, %s, %s)
                    RETURNING id, created_at
                """, (category.name, category.slug, category.description))
                category.id, category.created_at = cur.fetchone()
                conn.commit()
                return category
        except errors.UniqueViolation as e:
            conn.rollback()
            raise DuplicateRecordError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            self.connection_pool.putconn(conn)

    def get_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) FROM books")
                book_count = cur.fetchone()[0]

                cur.execute("SELECT COUNT(*) FROM categories")
                category_count = cur.fetchone()[0]

                cur.execute("SELECT COUNT(*) FROM books WHERE isbn IS NULL")
                missing_isbn = cur.fetchone()[0]

                return {
                    "total_books": book_count,
                    "total_categories": category_count,
                    "books_without_isbn": missing_isbn
                }
        finally:
            self.connection_pool.putconn(conn)

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
