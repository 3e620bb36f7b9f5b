# Book assembler: extracted fields + base URL -> canonical Book

from urllib.parse import urljoin

from .errors import SkippedEntry
from .extractor import EntryFields
from .models import UNKNOWN_AUTHOR, Book, Source


def fiction_url(base_url: str, book_id: str) -> str:
    """Deterministic source URL; no double slash whatever the base ends with."""
    return f"{base_url.rstrip('/')}/fiction/{book_id}"


def assemble_book(fields: EntryFields, base_url: str) -> Book:
    book_id = (fields.id or "").strip()
    if not book_id:
        raise SkippedEntry(f"entry without identifier (title={fields.title!r})")

    cover = (fields.cover_url or "").strip()
    return Book(
        id=book_id,
        title=fields.title or "",
        author_name=fields.author_name or UNKNOWN_AUTHOR,
        description=fields.description or "",
        tags=list(fields.tags),
        cover_url=urljoin(base_url.rstrip("/") + "/", cover) if cover else "",
        source_url=fiction_url(base_url, book_id),
        source=Source.ROYAL_ROAD,
        content_warnings=list(fields.content_warnings),
        status=fields.status or "",
    )


def merge_books(detail: Book, listing: Book) -> Book:
    """Detail-page values win; whatever the detail page lacks comes from the listing entry."""
    return Book(
        id=listing.id,
        title=detail.title or listing.title,
        author_name=detail.author_name if detail.author_name != UNKNOWN_AUTHOR else listing.author_name,
        description=detail.description or listing.description,
        tags=list(detail.tags or listing.tags),
        cover_url=detail.cover_url or listing.cover_url,
        source_url=listing.source_url,
        source=listing.source,
        content_warnings=list(detail.content_warnings or listing.content_warnings),
        status=detail.status or listing.status,
    )
