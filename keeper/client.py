"""HTTP clients for book catalog APIs with resilience patterns."""
import time
import random
import requests
from typing import Optional, Dict, Any, List
from urllib.parse import quote
import logging

logger = logging.getLogger(__name__)

USER_AGENT = "keeper-book-explorer/0.1 (+https://openlibrary.org/developers/api)"

GOOGLE_BOOKS_PAGE_SIZE = 40
OPEN_LIBRARY_PAGE_SIZE = 100

# Rate limiting and server-side failures; everything else 4xx is final
RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


def google_books_params(
    query: str,
    max_results: int,
    start_index: int,
    language: Optional[str] = None,
    api_key: Optional[str] = None
) -> Dict[str, Any]:
    """Build query parameters for the Google Books volumes endpoint."""
    params = {
        "q": query,
        "maxResults": min(max_results, GOOGLE_BOOKS_PAGE_SIZE),
        "startIndex": start_index,
        "printType": "books",
    }
    if language:
        params["langRestrict"] = language
    if api_key:
        params["key"] = api_key
    return params


def open_library_params(
    query: str,
    max_results: int,
    start_index: int,
    language: Optional[str] = None
) -> Dict[str, Any]:
    """Build query parameters for Open Library search.json."""
    params = {
        "q": query,
        "limit": min(max_results, OPEN_LIBRARY_PAGE_SIZE),
        "offset": start_index,
    }
    if language:
        params["language"] = language
    return params


def search_cache_key(
    source: str,
    query: str,
    max_results: int,
    start_index: int = 0,
    language: Optional[str] = None
) -> str:
    """Cache key for one page of raw search results."""
    return f"{source}:search:{query}:{max_results}:{start_index}:{language or ''}"


def _retry_after(response) -> Optional[float]:
    """Seconds requested by a ``Retry-After`` header, if any."""
    value = response.headers.get("Retry-After")
    if isinstance(value, str) and value.strip().isdecimal():
        return float(value.strip())
    return None


class CatalogClient:
    """
    Base client for a catalog search endpoint.

    Subclasses set ``NAME`` and ``BASE_URL`` and build their own query
    parameters. Requests go through one ``requests.Session`` with a
    timeout, and transient failures are retried with exponential backoff.
    """

    BASE_URL = ""
    # Short label used in cache keys and log lines
    NAME = "catalog"

    def __init__(
        self,
        timeout: int = 10,
        max_retries: int = 3,
        base_backoff: float = 1.0,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            timeout: Request timeout in seconds
            max_retries: Total attempts per request
            base_backoff: Base delay for exponential backoff
            session: Optional pre-built session
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_backoff = base_backoff

        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json", "User-Agent": USER_AGENT})

    @property
    def search_url(self) -> str:
        return self.BASE_URL

    def build_params(
        self,
        query: str,
        max_results: int,
        start_index: int,
        language: Optional[str] = None
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def search(
        self,
        query: str,
        max_results: int = 10,
        start_index: int = 0,
        language: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Search the catalog.

        Args:
            query: Search query string
            max_results: Maximum results to return (capped per API)
            start_index: Pagination offset
            language: Optional language restriction

        Returns:
            Raw response JSON, or None when the request failed
        """
        params = self.build_params(query, max_results, start_index, language)
        return self._get_json(self.search_url, params)

    def _get_json(self, url: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """GET with retries; returns decoded JSON or None."""
        for attempt in range(1, self.max_retries + 1):
            retry = attempt < self.max_retries
            logger.info(f"{self.NAME} request {attempt}/{self.max_retries}: {url}")

            try:
                response = self.session.get(url, params=params, timeout=self.timeout)
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                logger.warning(f"{self.NAME} {type(e).__name__} on attempt {attempt}: {e}")
                if retry:
                    self._backoff(attempt)
                continue
            except requests.exceptions.RequestException as e:
                logger.error(f"{self.NAME} request failed: {e}")
                return None

            status = response.status_code
            if status == 200:
                try:
                    return response.json()
                except ValueError as e:
                    logger.error(f"{self.NAME} returned invalid JSON: {e}")
                    return None

            if status == 404:
                logger.info(f"{self.NAME} has no record at {url}")
                return None

            if status in RETRYABLE_STATUS:
                logger.warning(f"{self.NAME} returned {status} on attempt {attempt}")
                if retry:
                    self._backoff(attempt, _retry_after(response))
                continue

            logger.error(f"{self.NAME} returned {status}: {response.text[:200]}")
            return None

        logger.error(f"{self.NAME}: all {self.max_retries} attempts failed")
        return None

    def _backoff(self, attempt: int, minimum: Optional[float] = None):
        """
        Sleep before the next attempt.

        Args:
            attempt: Attempt that just failed (1-indexed)
            minimum: Server-requested delay, from ``Retry-After``
        """
        delay = self.base_backoff * (2 ** (attempt - 1))
        delay += random.uniform(0, delay)
        if minimum is not None:
            delay = max(delay, minimum)

        logger.info(f"Backing off for {delay:.2f} seconds")
        time.sleep(delay)

    def search_with_cache(
        self,
        query: str,
        max_results: int = 10,
        start_index: int = 0,
        cache_db=None,
        cache_ttl: int = 3600,
        language: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Search, consulting a response cache first.

        Args:
            query: Search query
            max_results: Max results
            start_index: Pagination offset
            cache_db: Object with ``cache_get``/``cache_set`` (optional)
            cache_ttl: Cache TTL in seconds
            language: Optional language restriction

        Returns:
            Raw response JSON or None
        """
        key = search_cache_key(self.NAME, query, max_results, start_index, language)

        if cache_db:
            cached = cache_db.cache_get(key)
            if cached:
                return cached

        response = self.search(query, max_results, start_index, language)
        if response and cache_db:
            cache_db.cache_set(key, response, cache_ttl)
        return response

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class GoogleBooksClient(CatalogClient):
    """Client for the Google Books volumes API."""

    BASE_URL = "https://www.googleapis.com/books/v1/volumes"
    NAME = "google-books"

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        """
        Args:
            api_key: Optional API key (increases rate limits)
            **kwargs: Passed to CatalogClient
        """
        super().__init__(**kwargs)
        self.api_key = api_key

    def build_params(self, query, max_results, start_index, language=None):
        return google_books_params(query, max_results, start_index, language, self.api_key)

    def get_volume(self, volume_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch the full record of one volume.

        Args:
            volume_id: Google Books volume ID

        Returns:
            Raw volume JSON, or None if it does not exist or the request failed
        """
        params = {"projection": "full"}
        if self.api_key:
            params["key"] = self.api_key
        return self._get_json(f"{self.BASE_URL}/{quote(volume_id, safe='')}", params)


class OpenLibraryClient(CatalogClient):
    """Client for the Open Library search API (no key required)."""

    NAME = "open-library"

    def __init__(self, base_url: str = "https://openlibrary.org", **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")

    @property
    def search_url(self) -> str:
        return f"{self.base_url}/search.json"

    def build_params(self, query, max_results, start_index, language=None):
        return open_library_params(query, max_results, start_index, language)

    def get_work(self, work_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch a work record.

        Args:
            work_id: Work key, bare (``OL45804W``) or with its path (``/works/OL45804W``)

        Returns:
            Raw work JSON, or None if it does not exist or the request failed
        """
        key = work_id.strip().rstrip("/").rsplit("/", 1)[-1]
        return self._get_json(f"{self.base_url}/works/{quote(key, safe='')}.json", {})

    def get_author_names(self, author_keys: List[str], limit: int = 3) -> List[str]:
        """Resolve author keys to display names, skipping any that fail."""
        names = []
        for key in author_keys[:limit]:
            author = self._get_json(f"{self.base_url}/authors/{quote(key, safe='')}.json", {})
            name = author.get("name") if isinstance(author, dict) else None
            if isinstance(name, str) and name:
                names.append(name)
        return names
