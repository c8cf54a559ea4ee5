"""PostgreSQL book store and API response cache."""
import json
import logging
from contextlib import contextmanager
from dataclasses import fields
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

import psycopg2
from psycopg2 import pool

from keeper.models import Book

logger = logging.getLogger(__name__)

# Column order matches the Book dataclass so rows map with Book(*row)
BOOK_COLUMNS = [f.name for f in fields(Book)]
_SELECT_BOOK = f"SELECT {', '.join(BOOK_COLUMNS)} FROM books"

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS books (
        id VARCHAR(255) NOT NULL,
        title TEXT NOT NULL,
        authors TEXT[],
        published_date VARCHAR(50),
        description TEXT,
        page_count INTEGER,
        categories TEXT[],
        thumbnail TEXT,
        language VARCHAR(10),
        publisher TEXT,
        isbn10 VARCHAR(10),
        isbn13 VARCHAR(13),
        small_thumbnail TEXT,
        large_thumbnail TEXT,
        cover_id BIGINT,
        info_link TEXT,
        source VARCHAR(32) NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (source, id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS api_cache (
        cache_key VARCHAR(512) PRIMARY KEY,
        response_data JSONB NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        expires_at TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_books_title ON books USING gin(to_tsvector('english', title))",
    "CREATE INDEX IF NOT EXISTS idx_books_isbn13 ON books (isbn13)",
    "CREATE INDEX IF NOT EXISTS idx_books_created ON books (created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_cache_expires ON api_cache (expires_at)",
]

_UPSERT_BOOK = f"""
    INSERT INTO books ({', '.join(BOOK_COLUMNS)}, updated_at)
    VALUES ({', '.join(['%s'] * len(BOOK_COLUMNS))}, CURRENT_TIMESTAMP)
    ON CONFLICT (source, id) DO UPDATE SET
        {', '.join(f'{col} = EXCLUDED.{col}' for col in BOOK_COLUMNS if col not in ('id', 'source'))},
        updated_at = CURRENT_TIMESTAMP
"""


class Database:
    """Book store and response cache on a psycopg2 connection pool."""

    def __init__(self, connection_string: str, min_conn: int = 1, max_conn: int = 10):
        """
        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        self.connection_pool = psycopg2.pool.SimpleConnectionPool(
            min_conn,
            max_conn,
            connection_string
        )

        if not self.connection_pool:
            raise psycopg2.OperationalError("Failed to create connection pool")
        logger.info("Database connection pool created successfully")

    @contextmanager
    def _cursor(self):
        """
        Borrow a pooled connection for one unit of work.

        Commits when the block exits cleanly, rolls back when it raises.
        The connection always goes back to the pool.
        """
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.connection_pool.putconn(conn)

    def _fetch_one(self, query: str, params: tuple = ()):
        with self._cursor() as cur:
            cur.execute(query, params)
            return cur.fetchone()

    def _fetch_all(self, query: str, params: tuple = ()) -> List[tuple]:
        with self._cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def init_schema(self):
        """Create tables and indexes if they don't exist."""
        with self._cursor() as cur:
            for statement in SCHEMA:
                cur.execute(statement)
        logger.info("Database schema initialized successfully")

    def insert_book(self, book: Book) -> bool:
        """
        Insert or update a book, keyed on (source, id).

        Returns:
            True if stored, False if the book has no id or the write failed
        """
        if not book.id:
            logger.warning(f"Skipping {book.source} book without an id: {book.title}")
            return False

        values = tuple(getattr(book, col) for col in BOOK_COLUMNS)
        try:
            with self._cursor() as cur:
                cur.execute(_UPSERT_BOOK, values)
            return True
        except psycopg2.Error as e:
            logger.error(f"Failed to store {book.source}/{book.id}: {e}")
            return False

    def insert_books(self, books: Iterable[Book]) -> int:
        """Store several books; returns how many were written."""
        return sum(1 for book in books if self.insert_book(book))

    def get_book(self, book_id: str, source: str = "google-books") -> Optional[Book]:
        """Get a book by source and ID."""
        row = self._fetch_one(f"{_SELECT_BOOK} WHERE id = %s AND source = %s", (book_id, source))
        return Book(*row) if row else None

    def find_by_isbn(self, isbn: str) -> List[Book]:
        """All stored editions carrying the given ISBN-10 or ISBN-13."""
        rows = self._fetch_all(
            f"{_SELECT_BOOK} WHERE isbn10 = %s OR isbn13 = %s ORDER BY source",
            (isbn, isbn),
        )
        return [Book(*row) for row in rows]

    def search_books(self, query: str, limit: int = 10) -> List[Book]:
        """
        Search stored books by title.

        Args:
            query: Full-text query; empty returns the most recent books
            limit: Maximum results

        Returns:
            List of Book objects
        """
        if query:
            rows = self._fetch_all(
                f"{_SELECT_BOOK} "
                "WHERE to_tsvector('english', title) @@ plainto_tsquery('english', %s) "
                "ORDER BY created_at DESC LIMIT %s",
                (query, limit),
            )
        else:
            rows = self._fetch_all(f"{_SELECT_BOOK} ORDER BY created_at DESC LIMIT %s", (limit,))
        return [Book(*row) for row in rows]

    def cache_get(self, cache_key: str) -> Optional[Dict[str, Any]]:
        """Return the cached response for a key unless it has expired."""
        row = self._fetch_one(
            "SELECT response_data FROM api_cache "
            "WHERE cache_key = %s AND expires_at > CURRENT_TIMESTAMP",
            (cache_key,),
        )
        if row:
            logger.info(f"Cache hit: {cache_key}")
            return row[0]  # JSONB comes back deserialized

        logger.info(f"Cache miss: {cache_key}")
        return None

    def cache_set(
        self,
        cache_key: str,
        response_data: Dict[str, Any],
        ttl_seconds: int = 3600
    ) -> bool:
        """
        Cache a raw API response.

        Args:
            cache_key: Cache key
            response_data: Response JSON
            ttl_seconds: Time to live in seconds

        Returns:
            True if stored, False if the write failed
        """
        expires_at = datetime.now() + timedelta(seconds=ttl_seconds)
        try:
            with self._cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO api_cache (cache_key, response_data, expires_at)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (cache_key) DO UPDATE SET
                        response_data = EXCLUDED.response_data,
                        expires_at = EXCLUDED.expires_at,
                        created_at = CURRENT_TIMESTAMP
                    """,
                    (cache_key, json.dumps(response_data), expires_at),
                )
            logger.info(f"Cached response: {cache_key} (TTL: {ttl_seconds}s)")
            return True
        except psycopg2.Error as e:
            logger.error(f"Failed to cache {cache_key}: {e}")
            return False

    def get_stats(self) -> Dict[str, Any]:
        """Book counts per catalog and cache occupancy."""
        with self._cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM books")
            total = cur.fetchone()[0]

            cur.execute("SELECT source, COUNT(*) FROM books GROUP BY source ORDER BY source")
            by_source = dict(cur.fetchall())

            cur.execute("SELECT COUNT(*) FROM api_cache WHERE expires_at > CURRENT_TIMESTAMP")
            live = cur.fetchone()[0]

            cur.execute("SELECT COUNT(*) FROM api_cache WHERE expires_at <= CURRENT_TIMESTAMP")
            expired = cur.fetchone()[0]

        return {
            "total_books": total,
            "books_by_source": by_source,
            "cached_responses": live,
            "expired_cache_entries": expired
        }

    def cleanup_expired_cache(self) -> int:
        """Delete expired cache rows; returns how many were removed."""
        with self._cursor() as cur:
            cur.execute("DELETE FROM api_cache WHERE expires_at <= CURRENT_TIMESTAMP")
            deleted = cur.rowcount
        logger.info(f"Cleaned up {deleted} expired cache entries")
        return deleted

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
