"""Normalize Open Library search responses.

Open Library search documents are loosely typed: ``num_found`` and
``numFound`` both appear, ``language`` and ``publisher`` may be a string
or a list, ``isbn`` mixes strings and numbers, and ``cover_i`` is ``0``
when there is no cover. ``normalize_search_response`` never raises; every
document becomes a ``Book`` with defaulted fields.
"""
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from keeper.fields import (
    as_int,
    classify_isbns,
    cover_id as parse_cover_id,
    first_string,
    is_int,
    resolve_count,
    string_list,
)
from keeper.models import UNTITLED, Book, SearchResult

logger = logging.getLogger(__name__)

SOURCE = "open-library"

BASE_URL = "https://openlibrary.org"
COVERS_URL = "https://covers.openlibrary.org/b"

# Canonical name first
COUNT_FIELDS = ("numFound", "num_found")
INVALID_COVER_IDS = frozenset({0})
START_FIELDS = ("start", "offset")


def _clean_key(doc: Dict[str, Any]) -> str:
    key = doc.get("key")
    if isinstance(key, str) and key.strip():
        return key.strip().rstrip("/").rsplit("/", 1)[-1]
    edition = first_string(doc.get("edition_key"))
    return edition or ""


def _cover_links(cover: Optional[int], covers_url: str):
    """Small, medium and large cover URLs for a cover id."""
    if cover is None:
        return None, None, None
    return tuple(f"{covers_url}/id/{cover}-{size}.jpg" for size in "SML")


def _work_description(value: Any) -> Optional[str]:
    # Works carry either a plain string or a typed {"type": ..., "value": ...} block
    if isinstance(value, dict):
        value = value.get("value")
    if not isinstance(value, str):
        return None
    text = re.sub(r"\r\n?", "\n", value)
    text = re.sub(r"\n{3,}", "\n\n", text).strip()
    return text or None


def _published_date(doc: Dict[str, Any]) -> Optional[str]:
    year = as_int(doc.get("first_publish_year"))
    if year is None:
        years = doc.get("publish_year")
        if isinstance(years, (list, tuple)):
            year = next((as_int(y) for y in years if as_int(y) is not None), None)
        else:
            year = as_int(years)
    return str(year) if year is not None else None


def normalize_doc(
    doc: Any,
    invalid_cover_ids: Iterable[int] = INVALID_COVER_IDS,
    covers_url: str = COVERS_URL,
    base_url: str = BASE_URL,
) -> Book:
    """
    Convert one Open Library search document into a Book.

    Args:
        doc: Raw search document (anything; non-mappings become empty)
        invalid_cover_ids: Cover ids that mean "no cover"
        covers_url: Base URL of the covers service
        base_url: Base URL of the catalog, used for the info link

    Returns:
        Book with every required field populated
    """
    if not isinstance(doc, dict):
        logger.debug(f"Non-mapping Open Library document: {type(doc).__name__}")
        doc = {}

    book_id = _clean_key(doc)

    title = doc.get("title")
    if not isinstance(title, str) or not title:
        title = UNTITLED

    isbn10, isbn13 = classify_isbns(doc.get("isbn"))

    cover = parse_cover_id(doc.get("cover_i") or doc.get("cover_id"), invalid_cover_ids)
    small, thumbnail, large = _cover_links(cover, covers_url)

    pages = doc.get("number_of_pages_median")

    return Book(
        id=book_id,
        title=title,
        authors=string_list(doc.get("author_name")),
        published_date=_published_date(doc),
        description=None,
        page_count=pages if is_int(pages) else None,
        categories=string_list(doc.get("subject")),
        thumbnail=thumbnail,
        language=first_string(doc.get("language")),
        publisher=first_string(doc.get("publisher")),
        isbn10=isbn10,
        isbn13=isbn13,
        small_thumbnail=small,
        large_thumbnail=large,
        cover_id=cover,
        info_link=f"{base_url}/works/{book_id}" if book_id else None,
        source=SOURCE,
    )


def author_keys(work: Any) -> List[str]:
    """Author keys (``OL23919A``) referenced by a work record, in order."""
    refs = work.get("authors") if isinstance(work, dict) else None
    if not isinstance(refs, list):
        return []

    keys = []
    for ref in refs:
        author = ref.get("author") if isinstance(ref, dict) else None
        if isinstance(author, dict):
            key = _clean_key(author)
            if key:
                keys.append(key)
    return keys


def normalize_work(
    work: Any,
    authors: Optional[List[str]] = None,
    invalid_cover_ids: Iterable[int] = INVALID_COVER_IDS,
    covers_url: str = COVERS_URL,
    base_url: str = BASE_URL,
) -> Optional[Book]:
    """
    Convert an Open Library work record (``/works/OL...W.json``) into a Book.

    Work records differ from search documents: ``description`` may be a
    string or a ``{"value": ...}`` block, covers come as a ``covers`` list,
    and authors are references that have to be resolved separately.

    Args:
        work: Raw work JSON
        authors: Resolved author names, if the caller looked them up
        invalid_cover_ids: Cover ids that mean "no cover"
        covers_url: Base URL of the covers service
        base_url: Base URL of the catalog

    Returns:
        Book, or None when the record is not a mapping
    """
    if not isinstance(work, dict):
        logger.debug(f"Non-mapping Open Library work: {type(work).__name__}")
        return None

    book_id = _clean_key(work)

    title = work.get("title")
    if not isinstance(title, str) or not title:
        title = UNTITLED

    # First usable entry; the covers list can hold -1 placeholders
    cover = None
    covers = work.get("covers")
    if isinstance(covers, list):
        invalid = frozenset(invalid_cover_ids)
        for value in covers:
            cover = parse_cover_id(value, invalid)
            if cover is not None:
                break
    small, thumbnail, large = _cover_links(cover, covers_url)

    return Book(
        id=book_id,
        title=title,
        authors=string_list(authors),
        published_date=first_string(work.get("first_publish_date")),
        description=_work_description(work.get("description")),
        page_count=None,
        categories=string_list(work.get("subjects")),
        thumbnail=thumbnail,
        language=None,
        small_thumbnail=small,
        large_thumbnail=large,
        cover_id=cover,
        info_link=f"{base_url}/works/{book_id}" if book_id else None,
        source=SOURCE,
    )


def normalize_search_response(
    raw: Any,
    count_fields: Iterable[str] = COUNT_FIELDS,
    invalid_cover_ids: Iterable[int] = INVALID_COVER_IDS,
    covers_url: str = COVERS_URL,
    base_url: str = BASE_URL,
) -> SearchResult:
    """
    Normalize a full Open Library ``search.json`` response.

    Args:
        raw: Response JSON (partial or malformed input is tolerated)
        count_fields: Result-count field names, highest priority first
        invalid_cover_ids: Cover ids that mean "no cover"
        covers_url: Base URL of the covers service
        base_url: Base URL of the catalog

    Returns:
        SearchResult with source ``"open-library"``
    """
    docs = raw.get("docs") if isinstance(raw, dict) else None
    if not isinstance(docs, list):
        docs = []

    invalid = frozenset(invalid_cover_ids)
    books: List[Book] = [
        normalize_doc(doc, invalid, covers_url, base_url) for doc in docs
    ]
    total = resolve_count(raw, count_fields, len(docs))
    start = resolve_count(raw, START_FIELDS, 0)

    return SearchResult(
        total_items=total, books=books, source=SOURCE, start_index=max(start, 0)
    )
