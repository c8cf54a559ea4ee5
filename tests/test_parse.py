"""Tests for parsing functions."""
from keeper.parse import (
    clean_description,
    clean_url,
    deduplicate_books,
    parse_book,
    parse_books_response,
)
from keeper.models import Book


def test_parse_book_complete():
    """Test parsing a book with all fields present."""
    item = {
        "id": "abc123",
        "volumeInfo": {
            "title": "Python Crash Course",
            "authors": ["Eric Matthes"],
            "publisher": "No Starch Press",
            "publishedDate": "2019-05-03",
            "description": "A <b>great</b> book &amp; more",
            "industryIdentifiers": [
                {"type": "ISBN_10", "identifier": "1593279280"},
                {"type": "ISBN_13", "identifier": "9781593279288"}
            ],
            "pageCount": 544,
            "categories": ["Programming"],
            "language": "en",
            "imageLinks": {
                "smallThumbnail": "http://example.com/small.jpg",
                "thumbnail": "http://example.com/thumb.jpg"
            },
            "infoLink": "http://books.google.com/books?id=abc123"
        }
    }

    book = parse_book(item)

    assert book.id == "abc123"
    assert book.title == "Python Crash Course"
    assert book.authors == ["Eric Matthes"]
    assert book.publisher == "No Starch Press"
    assert book.published_date == "2019-05-03"
    assert book.description == "A great book & more"
    assert book.page_count == 544
    assert book.categories == ["Programming"]
    assert book.language == "en"
    assert book.isbn10 == "1593279280"
    assert book.isbn13 == "9781593279288"
    assert book.thumbnail == "https://example.com/thumb.jpg"
    assert book.small_thumbnail == "https://example.com/small.jpg"
    assert book.info_link == "https://books.google.com/books?id=abc123"
    assert book.source == "google-books"


def test_parse_book_missing_fields():
    """Test parsing a book with missing optional fields."""
    item = {
        "id": "xyz789",
        "volumeInfo": {
            "title": "Mystery Book"
        }
    }

    book = parse_book(item)

    assert book.id == "xyz789"
    assert book.title == "Mystery Book"
    assert book.authors == []
    assert book.description is None
    assert book.page_count is None
    assert book.thumbnail is None
    assert book.isbn10 is None
    assert book.isbn13 is None


def test_parse_book_no_id():
    """Test that a book without an ID still parses."""
    item = {
        "volumeInfo": {
            "title": "No ID Book"
        }
    }

    book = parse_book(item)
    assert book.id == ""
    assert book.title == "No ID Book"


def test_parse_book_without_volume_info():
    book = parse_book({"id": "v1"})

    assert book.title == "Untitled"
    assert book.authors == []
    assert book.categories == []

    book = parse_book("not an item")
    assert book.id == ""
    assert book.title == "Untitled"


def test_parse_book_title_rules():
    assert parse_book({"volumeInfo": {"title": " "}}).title == " "
    assert parse_book({"volumeInfo": {"title": ""}}).title == "Untitled"
    assert parse_book({"volumeInfo": {"title": ["Dune"]}}).title == "Untitled"


def test_parse_book_rejects_malformed_typed_isbns():
    item = {
        "id": "a",
        "volumeInfo": {
            "industryIdentifiers": [
                {"type": "ISBN_10", "identifier": "n/a"},
                {"type": "ISBN_13", "identifier": "12"}
            ]
        }
    }

    book = parse_book(item)

    assert book.isbn10 is None
    assert book.isbn13 is None


def test_parse_book_typed_isbn_with_bad_check_digit():
    item = {
        "id": "b",
        "volumeInfo": {
            "industryIdentifiers": [
                {"type": "ISBN_13", "identifier": "9780441013594"},
                {"type": "ISBN_13", "identifier": "978-0-441-01359-3"},
                {"type": "ISBN_10", "identifier": "04410135971"}
            ]
        }
    }

    book = parse_book(item)

    assert book.isbn13 == "9780441013593"
    assert book.isbn10 is None


def test_parse_book_untyped_isbn_identifiers():
    item = {
        "id": "v2",
        "volumeInfo": {
            "title": "Other identifiers",
            "industryIdentifiers": [
                {"type": "OTHER", "identifier": "UOM:39015058578498"},
                {"type": "OTHER", "identifier": "978-0-441-01359-3"}
            ]
        }
    }

    book = parse_book(item)

    assert book.isbn13 == "9780441013593"
    assert book.isbn10 is None


def test_parse_book_language_and_publisher_lists():
    item = {
        "id": "v3",
        "volumeInfo": {
            "title": "Lists",
            "language": ["fr", "en"],
            "publisher": ["", "Gallimard"]
        }
    }

    book = parse_book(item)

    assert book.language == "fr"
    assert book.publisher == "Gallimard"


def test_parse_books_response():
    """Test parsing complete API response."""
    response = {
        "totalItems": 57,
        "items": [
            {
                "id": "1",
                "volumeInfo": {"title": "Book 1"}
            },
            {
                "id": "2",
                "volumeInfo": {"title": "Book 2"}
            }
        ]
    }

    result = parse_books_response(response)

    assert result.total_items == 57
    assert result.source == "google-books"
    assert len(result.books) == 2
    assert result.books[0].title == "Book 1"
    assert result.books[1].title == "Book 2"


def test_parse_books_response_without_items():
    result = parse_books_response({"kind": "books#volumes", "totalItems": 0})
    assert result.total_items == 0
    assert result.books == []

    result = parse_books_response(None)
    assert result.total_items == 0
    assert result.books == []


def test_parse_books_response_count_falls_back_to_items():
    response = {"items": [{"id": "1"}, {"id": "2"}, {"id": "3"}]}
    assert parse_books_response(response).total_items == 3


def test_deduplicate_books():
    """Test deduplication by book ID."""
    books = [
        Book("1", "Book A", [], None, None, None, [], None, "en"),
        Book("2", "Book B", [], None, None, None, [], None, "en"),
        Book("1", "Book A Duplicate", [], None, None, None, [], None, "en"),
    ]

    unique = deduplicate_books(books)

    assert len(unique) == 2
    assert unique[0].id == "1"
    assert unique[0].title == "Book A"
    assert unique[1].id == "2"


def test_deduplicate_books_keeps_sources_apart():
    books = [
        Book("1", "Google", [], None, None, None, [], None, None, source="google-books"),
        Book("1", "Open Library", [], None, None, None, [], None, None, source="open-library"),
        Book("", "Unknown A", [], None, None, None, [], None, None),
        Book("", "Unknown B", [], None, None, None, [], None, None),
    ]

    unique = deduplicate_books(books)

    assert [book.title for book in unique] == ["Google", "Open Library", "Unknown A", "Unknown B"]


def test_clean_description_and_url():
    assert clean_description("<p>Hello&nbsp;world</p>") == "Hello world"
    assert clean_description("   ") is None
    assert clean_description(None) is None
    assert clean_url("http://books.google.com/x") == "https://books.google.com/x"
    assert clean_url("https://already.secure") == "https://already.secure"
    assert clean_url("") is None
