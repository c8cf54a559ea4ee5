"""Async HTTP clients for parallel catalog requests."""
import asyncio
import random
import httpx
from typing import List, Optional, Dict, Any
import logging

from keeper.client import (
    GOOGLE_BOOKS_PAGE_SIZE,
    OPEN_LIBRARY_PAGE_SIZE,
    RETRYABLE_STATUS,
    USER_AGENT,
    GoogleBooksClient,
    google_books_params,
    open_library_params,
)

logger = logging.getLogger(__name__)


class AsyncCatalogClient:
    """
    Async catalog client.

    A semaphore caps in-flight requests so page fan-out stays polite.
    Retryable statuses and transport errors are retried with backoff,
    and failures come back as ``None``.
    """

    BASE_URL = ""
    NAME = "catalog"
    PAGE_SIZE = 40

    def __init__(
        self,
        timeout: int = 10,
        max_concurrent: int = 5,
        max_retries: int = 2,
        base_backoff: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            timeout: Request timeout in seconds
            max_concurrent: Maximum concurrent requests
            max_retries: Total attempts per request
            base_backoff: Base delay for exponential backoff
            transport: Optional httpx transport
        """
        self.max_retries = max_retries
        self.base_backoff = base_backoff
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")
        self.semaphore = asyncio.Semaphore(max_concurrent)

        self.client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )

    @property
    def search_url(self) -> str:
        return self.BASE_URL

    def build_params(self, query, max_results, start_index, language=None) -> Dict[str, Any]:
        raise NotImplementedError

    async def search(
        self,
        query: str,
        max_results: int = 10,
        start_index: int = 0,
        language: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Fetch one page of results.

        Args:
            query: Search query
            max_results: Max results
            start_index: Pagination offset
            language: Optional language restriction

        Returns:
            Raw response JSON or None
        """
        params = self.build_params(query, max_results, start_index, language)

        async with self.semaphore:
            for attempt in range(1, self.max_retries + 1):
                retry = attempt < self.max_retries
                try:
                    logger.info(f"{self.NAME} async request: {query} (offset={start_index})")
                    response = await self.client.get(self.search_url, params=params)
                except httpx.TransportError as e:
                    logger.warning(f"{self.NAME} {type(e).__name__} on attempt {attempt}: {e}")
                    if retry:
                        await self._backoff(attempt)
                    continue

                if response.status_code == 200:
                    try:
                        return response.json()
                    except ValueError as e:
                        logger.error(f"{self.NAME} returned invalid JSON: {e}")
                        return None

                logger.warning(f"{self.NAME} returned {response.status_code} for query: {query}")
                if response.status_code not in RETRYABLE_STATUS:
                    return None
                if retry:
                    await self._backoff(attempt)

        return None

    async def _backoff(self, attempt: int):
        delay = self.base_backoff * (2 ** (attempt - 1))
        await asyncio.sleep(delay + random.uniform(0, delay))

    async def search_multiple(
        self,
        queries: List[str],
        max_results: int = 10
    ) -> List[Dict[str, Any]]:
        """Run several queries concurrently; failed ones are dropped."""
        results = await asyncio.gather(*(self.search(q, max_results) for q in queries))
        return [r for r in results if r is not None]

    async def paginated_search(
        self,
        query: str,
        total_results: int = 40,
        results_per_page: Optional[int] = None,
        language: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch consecutive pages concurrently.

        Args:
            query: Search query
            total_results: Total results wanted
            results_per_page: Page size (defaults to the API maximum)
            language: Optional language restriction

        Returns:
            Successful page responses, in page order
        """
        per_page = results_per_page or self.PAGE_SIZE
        offsets = range(0, total_results, per_page)

        pages = await asyncio.gather(
            *(self.search(query, per_page, offset, language) for offset in offsets)
        )
        return [page for page in pages if page is not None]

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class AsyncGoogleBooksClient(AsyncCatalogClient):
    """Async Google Books client."""

    BASE_URL = GoogleBooksClient.BASE_URL
    NAME = GoogleBooksClient.NAME
    PAGE_SIZE = GOOGLE_BOOKS_PAGE_SIZE

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    def build_params(self, query, max_results, start_index, language=None):
        return google_books_params(query, max_results, start_index, language, self.api_key)


class AsyncOpenLibraryClient(AsyncCatalogClient):
    """Async Open Library client."""

    NAME = "open-library"
    PAGE_SIZE = OPEN_LIBRARY_PAGE_SIZE

    def __init__(self, base_url: str = "https://openlibrary.org", **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")

    @property
    def search_url(self) -> str:
        return f"{self.base_url}/search.json"

    def build_params(self, query, max_results, start_index, language=None):
        return open_library_params(query, max_results, start_index, language)
