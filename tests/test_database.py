"""Tests for the database layer with a mocked connection pool."""
from unittest.mock import MagicMock, patch

import psycopg2

from keeper.database import BOOK_COLUMNS, Database
from keeper.models import Book


def make_db():
    conn = MagicMock()
    cursor = conn.cursor.return_value.__enter__.return_value
    pool = MagicMock()
    pool.getconn.return_value = conn
    with patch("psycopg2.pool.SimpleConnectionPool", return_value=pool):
        db = Database("postgresql://test")
    return db, pool, conn, cursor


def sample_book():
    return Book(
        "OL1W", "Dune", ["Frank Herbert"], "1965", None, 604, ["Science fiction"],
        None, "eng", publisher="Ace Books", isbn13="9780441013593", source="open-library"
    )


def test_insert_book_upserts_on_source_and_id():
    db, pool, conn, cursor = make_db()

    assert db.insert_book(sample_book()) is True

    sql, values = cursor.execute.call_args[0]
    assert "ON CONFLICT (source, id)" in sql
    assert values[BOOK_COLUMNS.index("id")] == "OL1W"
    assert values[BOOK_COLUMNS.index("source")] == "open-library"
    conn.commit.assert_called_once()
    pool.putconn.assert_called_once_with(conn)


def test_insert_book_failure_rolls_back():
    db, pool, conn, cursor = make_db()
    cursor.execute.side_effect = psycopg2.Error("boom")

    assert db.insert_book(sample_book()) is False
    conn.rollback.assert_called_once()
    pool.putconn.assert_called_once_with(conn)


def test_get_book_maps_row_to_book():
    db, _, _, cursor = make_db()
    book = sample_book()
    cursor.fetchone.return_value = tuple(getattr(book, col) for col in BOOK_COLUMNS)

    assert db.get_book("OL1W", source="open-library") == book
    assert cursor.execute.call_args[0][1] == ("OL1W", "open-library")


def test_get_book_missing():
    db, _, _, cursor = make_db()
    cursor.fetchone.return_value = None

    assert db.get_book("nope") is None


def test_cache_get_and_set():
    db, _, conn, cursor = make_db()
    cursor.fetchone.return_value = ({"numFound": 1},)

    assert db.cache_get("open-library:search:dune:10:0:") == {"numFound": 1}

    assert db.cache_set("key", {"numFound": 1}, ttl_seconds=60) is True
    key, payload, _ = cursor.execute.call_args[0][1]
    assert key == "key"
    assert payload == '{"numFound": 1}'
    conn.commit.assert_called()


def test_get_stats():
    db, _, _, cursor = make_db()
    cursor.fetchone.side_effect = [(3,), (2,), (1,)]
    cursor.fetchall.return_value = [("google-books", 1), ("open-library", 2)]

    stats = db.get_stats()

    assert stats == {
        "total_books": 3,
        "books_by_source": {"google-books": 1, "open-library": 2},
        "cached_responses": 2,
        "expired_cache_entries": 1,
    }


def test_close_releases_pool():
    db, pool, _, _ = make_db()
    with db:
        pass
    pool.closeall.assert_called_once()


def test_find_by_isbn():
    db, _, _, cursor = make_db()
    book = sample_book()
    cursor.fetchall.return_value = [tuple(getattr(book, col) for col in BOOK_COLUMNS)]

    assert db.find_by_isbn("9780441013593") == [book]
    assert cursor.execute.call_args[0][1] == ("9780441013593", "9780441013593")


def test_insert_books_counts_successes():
    db, _, _, cursor = make_db()
    cursor.execute.side_effect = [None, psycopg2.Error("duplicate"), None]

    assert db.insert_books([sample_book(), sample_book(), sample_book()]) == 2


def test_book_without_id_is_not_stored():
    db, _, _, cursor = make_db()
    nameless = Book("", "Unknown", [], None, None, None, [], None, None)

    assert db.insert_book(nameless) is False
    cursor.execute.assert_not_called()

    assert db.insert_books([nameless, sample_book()]) == 1
    assert cursor.execute.call_count == 1
