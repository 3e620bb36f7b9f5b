# Scrape orchestrator: listing pages -> extracted, assembled, persisted books
#
# Entries are handled one at a time: the listing fields are overlaid with the
# entry's detail page, then written (book upsert + snapshot insert) before the
# next entry is parsed. A failing entry never aborts its page.

import argparse
import logging
import signal
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Protocol, Tuple

from bs4 import BeautifulSoup

from .assembler import assemble_book, merge_books
from .errors import SkippedEntry, TransportError
from .extractor import extract_detail, extract_entry, extract_total_pages, find_entries
from .models import Book, BookRecord, BookStats
from .normalizer import merge_stats, normalize_stats
from .transport import Transport

logger = logging.getLogger("rrbooks.scraper")

BASE = "https://www.royalroad.com"
LISTING_PATH = "/fictions/best-rated"


class BookStore(Protocol):
    def save_scrape(self, book: Book, stats: BookStats) -> BookRecord: ...


@dataclass
class PageResult:
    books: List[BookRecord]
    total_pages: int
    current_page: int
    skipped: int = 0
    errors: int = 0


@dataclass
class PopulationResult:
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    pages: int = 0
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class BookScraper:
    """Write-path driver. The store is injected; nothing here holds global state."""

    def __init__(
        self,
        transport: Transport,
        store: BookStore,
        base_url: str = BASE,
        min_followers: int = 0,
        page_delay: float = 0.0,
        fetch_details: bool = True,
    ):
        self.transport = transport
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.min_followers = min_followers
        self.page_delay = page_delay
        self.fetch_details = fetch_details

    def listing_url(self, page: int) -> str:
        return f"{self.base_url}{LISTING_PATH}?page={page}"

    def detail_url(self, book_id: str) -> str:
        return f"{self.base_url}/fiction/{book_id}"

    def _get_soup(self, url: str) -> BeautifulSoup:
        return BeautifulSoup(self.transport.fetch(url), "html.parser")

    def scrape_page(self, page: int = 1, stop: Optional[threading.Event] = None) -> PageResult:
        """Scrape one listing page. TransportError for the page itself propagates."""
        soup = self._get_soup(self.listing_url(page))
        result = PageResult(books=[], total_pages=extract_total_pages(soup), current_page=page)

        entries = find_entries(soup)
        logger.info("page %d: %d entries", page, len(entries))
        for idx, node in enumerate(entries, start=1):
            if stop is not None and stop.is_set():
                logger.info("page %d: cancelled after %d entries", page, idx - 1)
                break
            try:
                fields = extract_entry(node)
                book = assemble_book(fields, self.base_url)
                stats = normalize_stats(fields.raw_stats)
                if self.fetch_details:
                    book, stats = self._with_details(book, stats)
                if stats.followers < self.min_followers:
                    logger.info("skipping %s (%s): %d followers < %d",
                                book.id, book.title, stats.followers, self.min_followers)
                    result.skipped += 1
                    continue
                result.books.append(self.store.save_scrape(book, stats))
            except SkippedEntry as exc:
                logger.warning("page %d entry %d skipped: %s", page, idx, exc)
                result.skipped += 1
            except Exception:
                logger.exception("page %d entry %d failed, continuing", page, idx)
                result.errors += 1

        logger.info("page %d: saved=%d skipped=%d errors=%d",
                    page, len(result.books), result.skipped, result.errors)
        return result

    def iter_pages(
        self,
        max_pages: Optional[int] = None,
        stop: Optional[threading.Event] = None,
        start_page: int = 1,
    ) -> Iterator[PageResult]:
        """Sequential page loop, bounded by the listing's own page count and ``max_pages``."""
        page, last_page = start_page, None
        while last_page is None or page <= last_page:
            if stop is not None and stop.is_set():
                logger.info("scrape cancelled before page %d", page)
                return
            if max_pages is not None and page >= start_page + max_pages:
                return
            result = self.scrape_page(page, stop=stop)
            last_page = result.total_pages
            yield result
            page += 1
            if self.page_delay and page <= last_page:
                time.sleep(self.page_delay)

    def scrape_all(
        self,
        max_pages: Optional[int] = None,
        stop: Optional[threading.Event] = None,
    ) -> Iterator[BookRecord]:
        for result in self.iter_pages(max_pages=max_pages, stop=stop):
            yield from result.books

    def populate(self, max_pages: Optional[int] = None, stop: Optional[threading.Event] = None) -> PopulationResult:
        summary = PopulationResult()
        for result in self.iter_pages(max_pages=max_pages, stop=stop):
            summary.pages += 1
            summary.processed += len(result.books)
            summary.skipped += result.skipped
            summary.errors += result.errors
        logger.info("population done: pages=%d processed=%d skipped=%d errors=%d",
                    summary.pages, summary.processed, summary.skipped, summary.errors)
        return summary

    def _scrape_detail(self, book_id: str) -> Tuple[Book, BookStats]:
        fields = extract_detail(self._get_soup(self.detail_url(book_id)), book_id)
        return assemble_book(fields, self.base_url), normalize_stats(fields.raw_stats)

    def _with_details(self, book: Book, stats: BookStats) -> Tuple[Book, BookStats]:
        """Overlay the detail page (author, description, warnings, full stats); listing values on failure."""
        try:
            detail, detail_stats = self._scrape_detail(book.id)
        except TransportError as exc:
            logger.warning("details for %s unavailable, keeping listing values: %s", book.id, exc)
            return book, stats
        return merge_books(detail, book), merge_stats(detail_stats, stats)

    def fetch_book_details(self, book_id: str) -> BookRecord:
        """Scrape one /fiction/<id> page and persist it."""
        book, stats = self._scrape_detail(book_id)
        logger.info("fetched details for %s (%s)", book.id, book.title)
        return self.store.save_scrape(book, stats)


# Main scraper function
def run(argv: Optional[List[str]] = None) -> PopulationResult:
    from api.repository import SQLBookRepository
    from api.settings import settings

    parser = argparse.ArgumentParser(description="Scrape Royal Road best-rated listings into the book store.")
    parser.add_argument("--pages", type=int, default=settings.SCRAPE_MAX_PAGES, help="Max listing pages to scrape")
    parser.add_argument("--min-followers", type=int, default=settings.MIN_FOLLOWERS, help="Skip books below this")
    parser.add_argument("--delay", type=float, default=1.0, help="Seconds to wait between pages")
    parser.add_argument("--listing-only", action="store_true", help="Do not fetch each book's detail page")
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)-8s %(name)s %(message)s")

    repo = SQLBookRepository.from_url(settings.DATABASE_URL)
    stop = threading.Event()
    # SIGTERM finishes the current entry, then stops the page loop
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    with Transport(user_agent=settings.USER_AGENT or None) as transport:
        scraper = BookScraper(
            transport,
            repo,
            base_url=settings.SOURCE_BASE_URL,
            min_followers=args.min_followers,
            page_delay=args.delay,
            fetch_details=not args.listing_only,
        )
        try:
            summary = scraper.populate(max_pages=args.pages, stop=stop)
        finally:
            repo.close()

    print(f"[scraper] Completed! {summary.processed} books saved, {summary.skipped} skipped, {summary.errors} errors")
    return summary


def main(argv: Optional[List[str]] = None) -> int:
    run(argv)
    return 0


# Entry point
if __name__ == "__main__":
    raise SystemExit(main())
