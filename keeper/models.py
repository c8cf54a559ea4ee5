"""Data models for books."""
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any

# Placeholder title for documents without a usable one
UNTITLED = "Untitled"


@dataclass
class Book:
    """Normalized book representation."""
    id: str
    title: str
    authors: List[str]
    published_date: Optional[str]
    description: Optional[str]
    page_count: Optional[int]
    categories: List[str]
    thumbnail: Optional[str]
    language: Optional[str]
    publisher: Optional[str] = None
    isbn10: Optional[str] = None
    isbn13: Optional[str] = None
    small_thumbnail: Optional[str] = None
    large_thumbnail: Optional[str] = None
    cover_id: Optional[int] = None
    info_link: Optional[str] = None
    source: str = "google-books"

    @property
    def authors_str(self) -> str:
        """Format authors as comma-separated string."""
        return ", ".join(self.authors) if self.authors else "Unknown"

    @property
    def categories_str(self) -> str:
        """Format categories as comma-separated string."""
        return ", ".join(self.categories) if self.categories else "None"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_document(self) -> Dict[str, Any]:
        """
        Render the book back into Open Library search-document field names.

        Feeding the result to ``normalize_doc`` yields an equal book.
        """
        doc: Dict[str, Any] = {
            "key": self.id,
            "title": self.title,
            "author_name": list(self.authors),
            "subject": list(self.categories),
            "isbn": [isbn for isbn in (self.isbn10, self.isbn13) if isbn],
        }
        if self.publisher:
            doc["publisher"] = [self.publisher]
        if self.language:
            doc["language"] = [self.language]
        if self.cover_id:
            doc["cover_i"] = self.cover_id
        if self.page_count is not None:
            doc["number_of_pages_median"] = self.page_count
        if self.published_date and self.published_date.isdecimal():
            doc["first_publish_year"] = int(self.published_date)
        return doc


@dataclass
class SearchResult:
    """Normalized search response from one catalog."""
    total_items: int
    books: List[Book] = field(default_factory=list)
    source: str = "none"
    start_index: int = 0
    query: str = ""

    @property
    def has_more(self) -> bool:
        """True when the catalog holds results past this page."""
        return self.start_index + len(self.books) < self.total_items

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the camelCase keys the front-end expects."""
        return {
            "totalItems": self.total_items,
            "books": [book.to_dict() for book in self.books],
            "source": self.source,
            "startIndex": self.start_index,
            "hasMore": self.has_more,
            "query": self.query,
        }
