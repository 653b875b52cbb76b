"""Configuration management."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _get_list(name: str, default: str):
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    """Application configuration."""
    
    # Database
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "homearchive")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    
    @property
    def DATABASE_URL(self):
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
    
    # OpenLibrary
    OPENLIBRARY_SEARCH_URL = os.getenv("OPENLIBRARY_SEARCH_URL", "https://openlibrary.org/search.json")
    OPENLIBRARY_COVERS_URL = os.getenv("OPENLIBRARY_COVERS_URL", "https://covers.openlibrary.org/b")
    OPENLIBRARY_TIMEOUT = float(os.getenv("OPENLIBRARY_TIMEOUT", "10"))
    OPENLIBRARY_FIELDS = os.getenv(
        "OPENLIBRARY_FIELDS",
        "key,title,author_name,first_publish_year,isbn,publisher,language,"
        "subject,cover_i,cover_edition_key,number_of_pages_median"
    )
    OPENLIBRARY_MAX_RETRIES = int(os.getenv("OPENLIBRARY_MAX_RETRIES", "2"))
    OPENLIBRARY_RETRY_BACKOFF = float(os.getenv("OPENLIBRARY_RETRY_BACKOFF", "1.5"))
    OPENLIBRARY_FAILURE_RATE = float(os.getenv("OPENLIBRARY_FAILURE_RATE", "60"))
    OPENLIBRARY_WINDOW_SIZE = int(os.getenv("OPENLIBRARY_WINDOW_SIZE", "8"))
    OPENLIBRARY_MINIMUM_CALLS = int(os.getenv("OPENLIBRARY_MINIMUM_CALLS", "4"))
    OPENLIBRARY_OPEN_WAIT = float(os.getenv("OPENLIBRARY_OPEN_WAIT", "45"))
    OPENLIBRARY_HALF_OPEN_CALLS = int(os.getenv("OPENLIBRARY_HALF_OPEN_CALLS", "2"))
    
    # Google Books
    GOOGLE_BOOKS_BASE_URL = os.getenv("GOOGLE_BOOKS_BASE_URL", "https://www.googleapis.com/books/v1")
    GOOGLE_BOOKS_API_KEY = os.getenv("GOOGLE_BOOKS_API_KEY")
    GOOGLE_BOOKS_TIMEOUT = float(os.getenv("GOOGLE_BOOKS_TIMEOUT", "10"))
    GOOGLE_BOOKS_MAX_RESULTS = int(os.getenv("GOOGLE_BOOKS_MAX_RESULTS", "20"))
    GOOGLE_BOOKS_MAX_RETRIES = int(os.getenv("GOOGLE_BOOKS_MAX_RETRIES", "3"))
    GOOGLE_BOOKS_RETRY_BACKOFF = float(os.getenv("GOOGLE_BOOKS_RETRY_BACKOFF", "1.0"))
    GOOGLE_BOOKS_FAILURE_RATE = float(os.getenv("GOOGLE_BOOKS_FAILURE_RATE", "50"))
    GOOGLE_BOOKS_WINDOW_SIZE = int(os.getenv("GOOGLE_BOOKS_WINDOW_SIZE", "10"))
    GOOGLE_BOOKS_MINIMUM_CALLS = int(os.getenv("GOOGLE_BOOKS_MINIMUM_CALLS", "5"))
    GOOGLE_BOOKS_OPEN_WAIT = float(os.getenv("GOOGLE_BOOKS_OPEN_WAIT", "30"))
    GOOGLE_BOOKS_HALF_OPEN_CALLS = int(os.getenv("GOOGLE_BOOKS_HALF_OPEN_CALLS", "3"))
    
    # Aggregation
    AGGREGATION_TIMEOUT = float(os.getenv("AGGREGATION_TIMEOUT", "10"))
    MAX_RESULTS_PER_API = int(os.getenv("MAX_RESULTS_PER_API", "20"))
    AGGREGATION_WORKERS = int(os.getenv("AGGREGATION_WORKERS", "4"))
    PROVIDER_PRIORITY = _get_list("PROVIDER_PRIORITY", "openlibrary,googlebooks")
    
    # Enrichment
    ENRICHMENT_SEARCH_LIMIT = int(os.getenv("ENRICHMENT_SEARCH_LIMIT", "10"))
    
    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
