#!/usr/bin/env python3
"""Book Explorer CLI - catalog search, normalization and storage."""
import argparse
import asyncio
import csv
import sys
import json
from typing import List
from tabulate import tabulate
from keeper import openlibrary, parse
from keeper.client import GoogleBooksClient, OpenLibraryClient
from keeper.async_client import AsyncGoogleBooksClient, AsyncOpenLibraryClient
from keeper.database import Database
from keeper.fields import classify_isbns
from keeper.models import Book, SearchResult
from keeper.search import BookSearch, SOURCES
from keeper.config import Config
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

SOURCE_CHOICES = {
    "auto": SOURCES,
    "google": (parse.SOURCE,),
    "openlibrary": (openlibrary.SOURCE,),
}

EXPORT_FIELDS = [
    "id", "source", "title", "authors", "published_date", "publisher",
    "isbn10", "isbn13", "categories", "language", "page_count", "thumbnail",
]


def setup_database(config: Config) -> Database:
    db = Database(config.DATABASE_URL)
    db.init_schema()
    return db


def openlibrary_options(config: Config) -> dict:
    """Normalizer settings for Open Library taken from configuration."""
    return {
        "count_fields": config.OPEN_LIBRARY_COUNT_FIELDS,
        "invalid_cover_ids": config.OPEN_LIBRARY_INVALID_COVER_IDS,
        "covers_url": config.OPEN_LIBRARY_COVERS_URL,
        "base_url": config.OPEN_LIBRARY_BASE_URL,
    }


async def search_books_async(args, config: Config, db: Database) -> SearchResult:
    """Try each catalog in turn with the async clients."""
    async with AsyncGoogleBooksClient(
        api_key=config.GOOGLE_BOOKS_API_KEY,
        timeout=config.DEFAULT_TIMEOUT,
        max_concurrent=args.parallel
    ) as google, AsyncOpenLibraryClient(
        base_url=config.OPEN_LIBRARY_BASE_URL,
        timeout=config.DEFAULT_TIMEOUT,
        max_concurrent=args.parallel
    ) as ol:
        logger.info(f"Parallel requests: {args.parallel}")
        searcher = BookSearch(
            google=google,
            openlibrary_client=ol,
            cache_db=None if args.no_cache else db,
            cache_ttl=args.cache_ttl,
            openlibrary_options=openlibrary_options(config),
        )
        return await searcher.search_async(
            args.query,
            limit=args.limit,
            language=args.language,
            sources=SOURCE_CHOICES[args.source],
        )


def search_books_sync(args, config: Config, db: Database) -> SearchResult:
    """Try each catalog in turn with the sync clients."""
    with GoogleBooksClient(
        api_key=config.GOOGLE_BOOKS_API_KEY,
        timeout=config.DEFAULT_TIMEOUT,
        max_retries=config.DEFAULT_MAX_RETRIES
    ) as google, OpenLibraryClient(
        base_url=config.OPEN_LIBRARY_BASE_URL,
        timeout=config.DEFAULT_TIMEOUT,
        max_retries=config.DEFAULT_MAX_RETRIES
    ) as ol:
        searcher = BookSearch(
            google=google,
            openlibrary_client=ol,
            cache_db=None if args.no_cache else db,
            cache_ttl=args.cache_ttl,
            openlibrary_options=openlibrary_options(config),
        )
        return searcher.search(
            args.query,
            limit=args.limit,
            language=args.language,
            sources=SOURCE_CHOICES[args.source],
        )


def run_search(args, config: Config):
    db = setup_database(config)
    try:
        logger.info(f"Searching for: {args.query}")
        if args.use_async:
            result = asyncio.run(search_books_async(args, config, db))
        else:
            result = search_books_sync(args, config, db)

        if result.source == "none":
            logger.error("❌ No catalog could be reached")
            return

        stored = db.insert_books(result.books)
        logger.info(f"Stored {stored}/{len(result.books)} books from {result.source}")
        display_books(result, args.format)
    finally:
        db.close()


def _truncate(text: str, width: int) -> str:
    return text[:width] + "..." if len(text) > width else text


def _table(books: List[Book]) -> str:
    rows = [
        [
            _truncate(book.title, 50),
            _truncate(book.authors_str, 30),
            book.published_date or "Unknown",
            _truncate(book.publisher or "N/A", 25),
            book.isbn13 or book.isbn10 or "N/A",
            book.source,
        ]
        for book in books
    ]
    headers = ["Title", "Authors", "Published", "Publisher", "ISBN", "Source"]
    return tabulate(rows, headers=headers, tablefmt="grid")


def display_books(result: SearchResult, format_type: str):
    """Print a search result as a table, JSON, or one line per book."""
    if format_type == "json":
        print(json.dumps(result.to_dict(), indent=2))
    elif format_type == "compact":
        for i, book in enumerate(result.books, 1):
            print(f"{i}. {book.title} - {book.authors_str}")
    else:
        print("\n" + _table(result.books))
        print(f"{len(result.books)} of {result.total_items} results from {result.source}")


def show_details(args, config: Config):
    """Fetch and store the full record of one book."""
    source = SOURCE_CHOICES[args.source][0]
    db = setup_database(config)
    try:
        with GoogleBooksClient(
            api_key=config.GOOGLE_BOOKS_API_KEY,
            timeout=config.DEFAULT_TIMEOUT,
            max_retries=config.DEFAULT_MAX_RETRIES
        ) as google, OpenLibraryClient(
            base_url=config.OPEN_LIBRARY_BASE_URL,
            timeout=config.DEFAULT_TIMEOUT,
            max_retries=config.DEFAULT_MAX_RETRIES
        ) as ol:
            searcher = BookSearch(
                google=google,
                openlibrary_client=ol,
                openlibrary_options=openlibrary_options(config),
            )
            book = searcher.get_details(source, args.book_id)

        if book is None:
            logger.error(f"❌ No {source} record for {args.book_id}")
            sys.exit(1)

        db.insert_book(book)
        if args.format == "json":
            print(json.dumps(book.to_dict(), indent=2))
        else:
            print("\n" + _table([book]))
            if book.description:
                print("\n" + book.description)
    finally:
        db.close()


def lookup_isbn(args, config: Config):
    """Show stored editions for an ISBN."""
    isbn10, isbn13 = classify_isbns(args.isbn)
    isbn = isbn13 or isbn10
    if isbn is None:
        logger.error(f"❌ Not a valid ISBN: {args.isbn}")
        sys.exit(1)

    db = setup_database(config)
    try:
        books = db.find_by_isbn(isbn)
        if not books:
            print(f"No stored books with ISBN {isbn}")
            return
        print("\n" + _table(books))
    finally:
        db.close()


def show_stats(args, config: Config):
    """Show database statistics."""
    db = setup_database(config)
    try:
        stats = db.get_stats()

        rows = [["Total books stored", stats["total_books"]]]
        rows += [[f"  {source}", count] for source, count in stats["books_by_source"].items()]
        rows += [
            ["Cached API responses", stats["cached_responses"]],
            ["Expired cache entries", stats["expired_cache_entries"]],
        ]
        print("\n" + tabulate(rows, headers=["DATABASE STATISTICS", ""], tablefmt="simple") + "\n")

        if args.cleanup:
            deleted = db.cleanup_expired_cache()
            print(f"✅ Cleaned up {deleted} expired cache entries\n")
    finally:
        db.close()


def _export_row(book: Book) -> dict:
    row = {name: getattr(book, name) for name in EXPORT_FIELDS}
    row["authors"] = book.authors_str
    row["categories"] = book.categories_str
    return {key: "" if value is None else value for key, value in row.items()}


def export_data(args, config: Config):
    """Export stored books as JSON or CSV."""
    db = setup_database(config)
    try:
        books = db.search_books("", limit=args.limit or 1000)

        if args.format == "csv":
            output_file = args.output or "books_export.csv"
            with open(output_file, "w", newline="", encoding="utf-8") as f:
                writer = csv.DictWriter(f, fieldnames=EXPORT_FIELDS)
                writer.writeheader()
                writer.writerows(_export_row(book) for book in books)
            logger.info(f"✅ Exported {len(books)} books to {output_file}")
            return

        data = json.dumps([book.to_dict() for book in books], indent=2)
        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(data)
            logger.info(f"✅ Exported {len(books)} books to {args.output}")
        else:
            print(data)
    finally:
        db.close()


def positive_int(value: str) -> int:
    """argparse type for counts that must be at least 1."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Book Explorer - catalog search, normalization and storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Google Books first, Open Library when it has nothing
  %(prog)s search "python programming"

  # Open Library only, JSON output
  %(prog)s search "dune" --source openlibrary --format json

  # Fetch several pages in parallel
  %(prog)s search "machine learning" --limit 120 --async --parallel 5 --cache-ttl 7200

  # Full record of one Open Library work
  %(prog)s details openlibrary OL893415W

  # Stored editions of an ISBN
  %(prog)s lookup 978-0-441-01359-3

  # Export data
  %(prog)s export --format csv --output books.csv

  # Show statistics
  %(prog)s stats --cleanup
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    search_parser = subparsers.add_parser("search", help="Search book catalogs")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--limit", type=positive_int, default=10, help="Max results (default: 10)")
    search_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")
    search_parser.add_argument("--source", choices=sorted(SOURCE_CHOICES), default="auto", help="Catalog to query (default: auto)")
    search_parser.add_argument("--language", help="Restrict results to a language code")
    search_parser.add_argument("--parallel", type=positive_int, default=5, help="Concurrent requests (default: 5)")
    search_parser.add_argument("--cache-ttl", type=int, default=Config.DEFAULT_CACHE_TTL, help="Cache TTL in seconds")
    search_parser.add_argument("--no-cache", action="store_true", help="Disable caching")
    search_parser.add_argument("--async", dest="use_async", action="store_true", help="Use async clients")

    details_parser = subparsers.add_parser("details", help="Fetch the full record of one book")
    details_parser.add_argument("source", choices=["google", "openlibrary"], help="Catalog holding the book")
    details_parser.add_argument("book_id", help="Google Books volume ID or Open Library work key")
    details_parser.add_argument("--format", choices=["table", "json"], default="table", help="Output format")

    lookup_parser = subparsers.add_parser("lookup", help="Find stored books by ISBN")
    lookup_parser.add_argument("isbn", help="ISBN-10 or ISBN-13, hyphens allowed")

    stats_parser = subparsers.add_parser("stats", help="Show database statistics")
    stats_parser.add_argument("--cleanup", action="store_true", help="Clean up expired cache")

    export_parser = subparsers.add_parser("export", help="Export stored books")
    export_parser.add_argument("--format", choices=["json", "csv"], default="json", help="Export format")
    export_parser.add_argument("--output", help="Output file (default: stdout for JSON)")
    export_parser.add_argument("--limit", type=int, help="Limit results")

    return parser


COMMANDS = {
    "search": run_search,
    "details": show_details,
    "lookup": lookup_isbn,
    "stats": show_stats,
    "export": export_data,
}


def main():
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        COMMANDS[args.command](args, Config())
    except KeyboardInterrupt:
        logger.info("\n⚠️  Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.error(f"❌ Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
