# Query/search service: read path over the book store
# Rating/page predicates are not pushed down to the store: filtering,
# ordering and paging run on a DataFrame after retrieval.

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence
import logging

import pandas as pd

from scraper.errors import TransportError
from scraper.models import BookRecord

logger = logging.getLogger("rrbooks.service")

DEFAULT_LIMIT = 50

# Canonical tag set used to classify books into the target genre family
LITRPG_RELATED_TAGS = [
    "litrpg",
    "gamelit",
    "progression",
    "xianxia",
    "cultivation",
    "portal fantasy",
    "isekai",
    "dungeon",
    "system",
    "apocalypse",
]

# sort_by -> DataFrame column, all descending
SORT_COLUMNS = {
    "rating": "rating",
    "followers": "followers",
    "views": "views",
    "pages": "pages",
    "latest": "created_at",
}


class NotFoundError(Exception):
    """A specific book or author has no stored rows."""


class BadRequestError(Exception):
    """Caller input that cannot name anything, e.g. a blank author."""


class BookReader(Protocol):
    def find_book(self, book_id: str) -> Optional[BookRecord]: ...
    def list_books(self) -> List[BookRecord]: ...
    def find_books_by_tag_overlap(self, tags: Sequence[str]) -> List[BookRecord]: ...
    def find_books_by_author(self, author_name: str) -> List[BookRecord]: ...


class LiveFetcher(Protocol):
    def fetch_book_details(self, book_id: str) -> BookRecord: ...


@dataclass
class BookSearchParams:
    tags: List[str] = field(default_factory=list)
    min_rating: Optional[float] = None
    min_pages: Optional[int] = None
    only_completed: bool = False
    sort_by: Optional[str] = None
    limit: Optional[int] = None
    offset: int = 0


def _frame(records: Sequence[BookRecord]) -> pd.DataFrame:
    """One row per record, in retrieval order; 'record' carries the object through."""
    rows = []
    for rec in records:
        stats = rec.latest_stats
        rows.append({
            "record": rec,
            "has_stats": rec.stats is not None,
            "rating": float(stats.rating),
            "followers": int(stats.followers),
            "views": int(stats.views.total),
            "pages": int(stats.pages),
            "created_at": pd.Timestamp(rec.created_at) if rec.created_at else pd.Timestamp.min,
            "snapshots": int(rec.snapshot_count),
            "status": rec.book.status,
        })
    columns = ["record", "has_stats", "rating", "followers", "views",
               "pages", "created_at", "snapshots", "status"]
    return pd.DataFrame(rows, columns=columns)


def _records(df: pd.DataFrame) -> List[BookRecord]:
    return df["record"].tolist()


class BookQueryService:
    """
    Read-path driver.
    - The store and the optional live fetcher are injected.
    - Sorting is stable: ties keep retrieval order.
    """

    def __init__(self, repository: BookReader, fetcher: Optional[LiveFetcher] = None, default_limit: int = DEFAULT_LIMIT):
        self.repo = repository
        self.fetcher = fetcher
        self.default_limit = default_limit

    # ---------- Core search ----------

    def search(self, params: BookSearchParams) -> List[BookRecord]:
        """Tag overlap fetch, then rating/pages/status post-filter, stable sort and paging."""
        tags = [t for t in (params.tags or []) if t and t.strip()]
        records = self.repo.find_books_by_tag_overlap(tags) if tags else self.repo.list_books()
        if not records:
            return []
        df = _frame(records)

        if params.min_rating is not None or params.min_pages is not None:
            df = df[df["has_stats"]]
        if params.min_rating is not None:
            df = df[df["rating"] >= params.min_rating]
        if params.min_pages is not None:
            df = df[df["pages"] >= params.min_pages]
        if params.only_completed:
            df = df[df["status"] == "COMPLETED"]

        column = SORT_COLUMNS.get(params.sort_by or "")
        if column:
            df = df.sort_values(column, ascending=False, kind="stable")

        limit = params.limit if params.limit is not None else self.default_limit
        offset = max(params.offset or 0, 0)
        df = df.iloc[offset : offset + max(limit, 0)]
        return _records(df)

    # ---------- Derived queries ----------

    def litrpg_books(self) -> List[BookRecord]:
        return self.repo.find_books_by_tag_overlap(LITRPG_RELATED_TAGS)

    def trending(self, limit: int = 10) -> List[BookRecord]:
        """Canonical-tag books with the most snapshots first."""
        records = self.litrpg_books()
        if not records:
            return []
        df = _frame(records)
        df = df.sort_values("snapshots", ascending=False, kind="stable").head(max(limit, 0))
        return _records(df)

    def similar_books(self, book_id: str, limit: int = 5) -> List[BookRecord]:
        """Books sharing any tag with ``book_id``, best rated first. The book itself is not excluded."""
        target = self.repo.find_book(book_id)
        if target is None:
            raise NotFoundError(f"Book {book_id} not found")
        return self.search(BookSearchParams(tags=list(target.book.tags), sort_by="rating", limit=limit))

    def author_books(self, author_name: str) -> List[BookRecord]:
        if not author_name or not author_name.strip():
            raise BadRequestError("Author name is required")
        books = self.repo.find_books_by_author(author_name)
        if not books:
            raise NotFoundError(f"No books found for author {author_name!r}")
        return books

    def get_book(self, book_id: str) -> BookRecord:
        """Stored book with its latest snapshot; scraped live (and persisted) when not stored yet."""
        cached = self.repo.find_book(book_id)
        if cached is not None:
            return cached
        if self.fetcher is None:
            raise NotFoundError(f"Book {book_id} not found")
        logger.info("book %s not stored, fetching from source", book_id)
        try:
            return self.fetcher.fetch_book_details(book_id)
        except TransportError as exc:
            if exc.status_code == 404:
                raise NotFoundError(f"Book {book_id} not found") from exc
            raise
