"""Configuration management."""
import os
import re
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _csv(value: str):
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _int_set(value: str):
    return frozenset(int(v) for v in _csv(value) if re.fullmatch(r"-?[0-9]+", v))


class Config:
    """Application configuration."""

    # Database
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "booksdb")
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")

    @property
    def DATABASE_URL(self):
        """Build PostgreSQL connection string."""
        return f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Google Books
    GOOGLE_BOOKS_API_KEY = os.getenv("GOOGLE_BOOKS_API_KEY")

    # Open Library
    OPEN_LIBRARY_BASE_URL = os.getenv("OPEN_LIBRARY_BASE_URL", "https://openlibrary.org")
    OPEN_LIBRARY_COVERS_URL = os.getenv("OPEN_LIBRARY_COVERS_URL", "https://covers.openlibrary.org/b")
    # Result-count field names, highest priority first
    OPEN_LIBRARY_COUNT_FIELDS = _csv(os.getenv("OPEN_LIBRARY_COUNT_FIELDS", "numFound,num_found"))
    # Cover ids that mean "no cover"
    OPEN_LIBRARY_INVALID_COVER_IDS = _int_set(os.getenv("OPEN_LIBRARY_INVALID_COVER_IDS", "0"))

    # Defaults
    DEFAULT_TIMEOUT = int(os.getenv("DEFAULT_TIMEOUT", "10"))
    DEFAULT_MAX_RETRIES = int(os.getenv("DEFAULT_MAX_RETRIES", "3"))
    DEFAULT_CACHE_TTL = int(os.getenv("DEFAULT_CACHE_TTL", "3600"))
