"""Search orchestration across book catalogs.

Google Books is the primary catalog. When it fails or returns nothing,
Open Library is queried instead. Both responses are normalized into a
``SearchResult`` and deduplicated.
"""
import logging
from typing import Any, Dict, Iterable, Optional

from keeper import openlibrary
from keeper import parse
from keeper.client import search_cache_key
from keeper.models import Book, SearchResult

logger = logging.getLogger(__name__)

SOURCES = (parse.SOURCE, openlibrary.SOURCE)


def normalize_response(source: str, raw: Any, **options) -> SearchResult:
    """
    Normalize a raw response from the named catalog.

    Args:
        source: ``"google-books"`` or ``"open-library"``
        raw: Response JSON
        **options: Passed to the catalog's normalizer

    Returns:
        SearchResult
    """
    if source == openlibrary.SOURCE:
        return openlibrary.normalize_search_response(raw, **options)
    if source == parse.SOURCE:
        return parse.parse_books_response(raw, **options)
    raise ValueError(f"Unknown catalog source: {source}")


def merge_responses(source: str, responses: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Merge paginated raw responses into one raw response.

    The count is taken from the first page that carries one.
    """
    list_key = "docs" if source == openlibrary.SOURCE else "items"
    merged: Dict[str, Any] = {list_key: []}
    for response in responses:
        if not isinstance(response, dict):
            continue
        entries = response.get(list_key)
        if isinstance(entries, list):
            merged[list_key].extend(entries)
        for key, value in response.items():
            if key != list_key and key not in merged:
                merged[key] = value
    return merged


class _Fallback:
    """
    Chooses the result of a multi-catalog search.

    The first catalog with books wins. Otherwise the first catalog that
    answered with no books is kept. If none answered, the result is empty
    with source ``"none"``.
    """

    def __init__(self, query: str, limit: int):
        self.query = query
        self.limit = limit
        self.found: Optional[SearchResult] = None
        self.empty: Optional[SearchResult] = None

    def offer(self, source: str, result: Optional[SearchResult]) -> bool:
        """Consider one catalog's result; returns True once the search can stop."""
        if result is None:
            return False

        result.query = self.query
        if result.books:
            result.books = parse.deduplicate_books(result.books)[:self.limit]
            logger.info(f"Found {len(result.books)} books via {source}")
            self.found = result
            return True

        logger.info(f"{source} returned no books for: {self.query}")
        if self.empty is None:
            self.empty = result
        return False

    @property
    def result(self) -> SearchResult:
        if self.found is not None:
            return self.found
        if self.empty is not None:
            return self.empty
        return SearchResult(total_items=0, books=[], source="none", query=self.query)


class BookSearch:
    """
    Search Google Books with Open Library as the fallback catalog.

    ``search`` and ``get_details`` work with the sync clients from
    ``keeper.client``; ``search_async`` works with the clients from
    ``keeper.async_client``. Both searches share the same fallback rules.
    """

    def __init__(
        self,
        google=None,
        openlibrary_client=None,
        cache_db=None,
        cache_ttl: int = 3600,
        openlibrary_options: Optional[Dict[str, Any]] = None
    ):
        """
        Args:
            google: Google Books client, sync or async (optional)
            openlibrary_client: Open Library client, sync or async (optional)
            cache_db: Object with ``cache_get``/``cache_set`` (optional)
            cache_ttl: Cache TTL in seconds
            openlibrary_options: Extra options for the Open Library normalizer
        """
        self.clients = {
            parse.SOURCE: google,
            openlibrary.SOURCE: openlibrary_client,
        }
        self.cache_db = cache_db
        self.cache_ttl = cache_ttl
        self.options = {
            parse.SOURCE: {},
            openlibrary.SOURCE: dict(openlibrary_options or {}),
        }

    def _normalize(self, source: str, query: str, raw: Any) -> Optional[SearchResult]:
        if raw is None:
            logger.warning(f"No response from {source} for: {query}")
            return None
        return normalize_response(source, raw, **self.options[source])

    def search_source(
        self,
        source: str,
        query: str,
        limit: int = 10,
        language: Optional[str] = None
    ) -> Optional[SearchResult]:
        """
        Query a single catalog.

        Returns:
            Normalized results, or None if the catalog is unavailable
        """
        client = self.clients.get(source)
        if client is None:
            return None

        raw = client.search_with_cache(
            query,
            max_results=limit,
            cache_db=self.cache_db,
            cache_ttl=self.cache_ttl,
            language=language,
        )
        return self._normalize(source, query, raw)

    def search(
        self,
        query: str,
        limit: int = 10,
        language: Optional[str] = None,
        sources: Iterable[str] = SOURCES
    ) -> SearchResult:
        """
        Search catalogs in order until one returns books.

        Args:
            query: Search query
            limit: Maximum books to return
            language: Optional language restriction
            sources: Catalogs to try, in order

        Returns:
            SearchResult from the first catalog with books; an empty
            result with source ``"none"`` when every catalog fails
        """
        picker = _Fallback(query, limit)
        for source in sources:
            if picker.offer(source, self.search_source(source, query, limit, language)):
                break
        return picker.result

    async def search_source_async(
        self,
        source: str,
        query: str,
        limit: int = 10,
        language: Optional[str] = None
    ) -> Optional[SearchResult]:
        """
        Query a single catalog with an async client.

        Requests above the catalog's page size are split into pages that
        are fetched concurrently and merged before normalizing.
        """
        client = self.clients.get(source)
        if client is None:
            return None

        key = search_cache_key(client.NAME, query, limit, 0, language)
        raw = self.cache_db.cache_get(key) if self.cache_db else None
        if not raw:
            if limit <= client.PAGE_SIZE:
                raw = await client.search(query, limit, language=language)
            else:
                pages = await client.paginated_search(query, total_results=limit, language=language)
                raw = merge_responses(source, pages) if pages else None
            if raw and self.cache_db:
                self.cache_db.cache_set(key, raw, self.cache_ttl)

        return self._normalize(source, query, raw)

    async def search_async(
        self,
        query: str,
        limit: int = 10,
        language: Optional[str] = None,
        sources: Iterable[str] = SOURCES
    ) -> SearchResult:
        """Async counterpart of ``search``; same arguments and fallback rules."""
        picker = _Fallback(query, limit)
        for source in sources:
            result = await self.search_source_async(source, query, limit, language)
            if picker.offer(source, result):
                break
        return picker.result

    def get_details(self, source: str, book_id: str) -> Optional[Book]:
        """
        Look up the full record for one book.

        Args:
            source: ``"google-books"`` or ``"open-library"``
            book_id: Volume ID or work key

        Returns:
            Book, or None if the catalog has no such record
        """
        client = self.clients.get(source)
        if client is None or not book_id:
            return None

        if source == parse.SOURCE:
            raw = client.get_volume(book_id)
            return parse.parse_book(raw) if raw is not None else None

        if source == openlibrary.SOURCE:
            work = client.get_work(book_id)
            if work is None:
                return None
            names = client.get_author_names(openlibrary.author_keys(work))
            options = {
                k: v for k, v in self.options[source].items()
                if k in ("invalid_cover_ids", "covers_url", "base_url")
            }
            return openlibrary.normalize_work(work, authors=names, **options)

        raise ValueError(f"Unknown catalog source: {source}")
