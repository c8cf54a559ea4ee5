"""Tests for the command-line explorer."""
import asyncio
import json

import httpx
import pytest

import explorer
from keeper.async_client import AsyncGoogleBooksClient, AsyncOpenLibraryClient
from keeper.config import Config
from keeper.models import Book, SearchResult


def make_book(**overrides):
    book = Book("OL1W", "Dune", ["Frank Herbert"], "1965", None, None, [], None, "eng",
                source="open-library")
    for name, value in overrides.items():
        setattr(book, name, value)
    return book


def test_search_arguments():
    args = explorer.build_parser().parse_args(
        ["search", "dune", "--source", "openlibrary", "--limit", "120", "--async", "--language", "fre"]
    )

    assert args.command == "search"
    assert args.source == "openlibrary"
    assert explorer.SOURCE_CHOICES[args.source] == ("open-library",)
    assert args.limit == 120
    assert args.use_async is True
    assert args.language == "fre"
    assert args.no_cache is False


def test_auto_source_tries_google_first():
    args = explorer.build_parser().parse_args(["search", "dune"])
    assert explorer.SOURCE_CHOICES[args.source] == ("google-books", "open-library")


def test_display_json(capsys):
    result = SearchResult(total_items=5, books=[make_book()], source="open-library")

    explorer.display_books(result, "json")

    data = json.loads(capsys.readouterr().out)
    assert data["totalItems"] == 5
    assert data["books"][0]["id"] == "OL1W"


def test_display_compact(capsys):
    result = SearchResult(total_items=1, books=[make_book(authors=[])], source="open-library")

    explorer.display_books(result, "compact")

    assert capsys.readouterr().out.strip() == "1. Dune - Unknown"


def test_export_row_flattens_lists_and_blanks_none():
    row = explorer._export_row(make_book(categories=["Fiction", "Classics"]))

    assert list(row) == explorer.EXPORT_FIELDS
    assert row["authors"] == "Frank Herbert"
    assert row["categories"] == "Fiction, Classics"
    assert row["isbn13"] == ""
    assert row["page_count"] == ""


def test_lookup_rejects_invalid_isbn():
    args = explorer.build_parser().parse_args(["lookup", "1234567890"])

    with pytest.raises(SystemExit):
        explorer.lookup_isbn(args, Config())


def test_openlibrary_options_from_config():
    options = explorer.openlibrary_options(Config())

    assert options["count_fields"] == Config.OPEN_LIBRARY_COUNT_FIELDS
    assert options["invalid_cover_ids"] == Config.OPEN_LIBRARY_INVALID_COVER_IDS


@pytest.mark.parametrize("value", ["0", "-2", "many"])
def test_search_counts_must_be_positive(value):
    parser = explorer.build_parser()

    with pytest.raises(SystemExit):
        parser.parse_args(["search", "dune", "--parallel", value])
    with pytest.raises(SystemExit):
        parser.parse_args(["search", "dune", "--limit", value])


def test_details_arguments():
    args = explorer.build_parser().parse_args(["details", "openlibrary", "/works/OL1W", "--format", "json"])

    assert explorer.COMMANDS[args.command] is explorer.show_details
    assert explorer.SOURCE_CHOICES[args.source] == ("open-library",)
    assert args.book_id == "/works/OL1W"


def test_async_search_goes_through_book_search(monkeypatch):
    def google(request):
        return httpx.Response(200, json={"totalItems": 1, "items": [{"id": "g1", "volumeInfo": {"title": "Dune"}}]})

    def ol(request):
        raise AssertionError("Open Library should not be queried")

    monkeypatch.setattr(
        explorer, "AsyncGoogleBooksClient",
        lambda **kw: AsyncGoogleBooksClient(transport=httpx.MockTransport(google), **kw),
    )
    monkeypatch.setattr(
        explorer, "AsyncOpenLibraryClient",
        lambda **kw: AsyncOpenLibraryClient(transport=httpx.MockTransport(ol), **kw),
    )
    args = explorer.build_parser().parse_args(["search", "dune", "--async", "--no-cache", "--parallel", "2"])

    result = asyncio.run(explorer.search_books_async(args, Config(), db=None))

    assert result.source == "google-books"
    assert result.query == "dune"
    assert [book.id for book in result.books] == ["g1"]
