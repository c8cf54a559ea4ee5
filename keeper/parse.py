"""Parse and normalize Google Books API responses."""
import html
import logging
import re
from typing import Dict, Any, Iterable, List, Optional

from keeper.fields import (
    classify_isbns,
    first_string,
    is_int,
    resolve_count,
    string_list,
)
from keeper.models import UNTITLED, Book, SearchResult

logger = logging.getLogger(__name__)

SOURCE = "google-books"
COUNT_FIELDS = ("totalItems",)


def clean_description(description: Any) -> Optional[str]:
    """Strip HTML tags and entities from a description."""
    if not isinstance(description, str):
        return None
    cleaned = html.unescape(re.sub(r"<[^>]*>", "", description)).replace("\xa0", " ").strip()
    return cleaned or None


def clean_url(url: Any) -> Optional[str]:
    """Upgrade ``http:`` links to ``https:``."""
    if not isinstance(url, str) or not url.strip():
        return None
    return re.sub(r"^http:", "https:", url.strip())


def _isbns(volume_info: Dict[str, Any]):
    identifiers = volume_info.get("industryIdentifiers")
    if not isinstance(identifiers, list):
        return None, None

    found = {"ISBN_10": None, "ISBN_13": None}
    untyped = []
    for entry in identifiers:
        if not isinstance(entry, dict):
            continue
        value = entry.get("identifier")
        if value is None:
            continue
        kind = entry.get("type")
        # Typed values still have to pass the length and check-digit rules
        if kind in found and found[kind] is None:
            isbn10, isbn13 = classify_isbns(value)
            found[kind] = isbn10 if kind == "ISBN_10" else isbn13
        untyped.append(value)

    # Some volumes only carry OTHER-typed identifiers that are still ISBNs
    guessed10, guessed13 = classify_isbns(untyped)
    isbn10 = found["ISBN_10"] if found["ISBN_10"] is not None else guessed10
    isbn13 = found["ISBN_13"] if found["ISBN_13"] is not None else guessed13
    return isbn10, isbn13


def parse_book(item: Any) -> Book:
    """
    Parse a single book item from Google Books API.

    Args:
        item: Single item from Google Books API response

    Returns:
        Book object; missing fields degrade to defaults
    """
    if not isinstance(item, dict):
        logger.debug(f"Non-mapping Google Books item: {type(item).__name__}")
        item = {}

    volume_info = item.get("volumeInfo")
    if not isinstance(volume_info, dict):
        volume_info = {}

    book_id = item.get("id")
    if not isinstance(book_id, str):
        book_id = ""

    title = volume_info.get("title")
    if not isinstance(title, str) or not title:
        title = UNTITLED

    page_count = volume_info.get("pageCount")
    isbn10, isbn13 = _isbns(volume_info)

    # Extract thumbnail (prefer higher quality)
    image_links = volume_info.get("imageLinks")
    if not isinstance(image_links, dict):
        image_links = {}
    thumbnail = clean_url(image_links.get("thumbnail") or image_links.get("smallThumbnail"))

    return Book(
        id=book_id,
        title=title,
        authors=string_list(volume_info.get("authors")),
        published_date=first_string(volume_info.get("publishedDate")),
        description=clean_description(volume_info.get("description")),
        page_count=page_count if is_int(page_count) else None,
        categories=string_list(volume_info.get("categories")),
        thumbnail=thumbnail,
        language=first_string(volume_info.get("language")),
        publisher=first_string(volume_info.get("publisher")),
        isbn10=isbn10,
        isbn13=isbn13,
        small_thumbnail=clean_url(image_links.get("smallThumbnail")),
        large_thumbnail=clean_url(
            image_links.get("large") or image_links.get("extraLarge") or image_links.get("medium")
        ),
        info_link=clean_url(volume_info.get("infoLink")),
        source=SOURCE,
    )


def parse_books_response(
    response_json: Any,
    count_fields: Iterable[str] = COUNT_FIELDS,
) -> SearchResult:
    """
    Parse full Google Books API response.

    Args:
        response_json: Complete API response JSON
        count_fields: Result-count field names, highest priority first

    Returns:
        SearchResult (no books if no items found)
    """
    items = response_json.get("items") if isinstance(response_json, dict) else None
    if not isinstance(items, list):
        items = []

    books = [parse_book(item) for item in items]
    total = resolve_count(response_json, count_fields, len(items))

    return SearchResult(total_items=total, books=books, source=SOURCE)


def deduplicate_books(books: List[Book]) -> List[Book]:
    """
    Remove duplicate books by source and ID.

    Args:
        books: List of Book objects

    Returns:
        Deduplicated list of books
    """
    seen_ids = set()
    unique_books = []

    for book in books:
        key = (book.source, book.id)
        if not book.id:
            unique_books.append(book)
        elif key not in seen_ids:
            seen_ids.add(key)
            unique_books.append(book)

    return unique_books
