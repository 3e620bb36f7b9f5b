# Royal Road Books API
# Purpose: JSON read API over scraped Royal Road fiction metadata
# Layers: endpoints delegate to api/service.py (read path) and scraper/books_scraper.py (live scrapes)
# Docs: interactive Swagger UI at /docs

from functools import lru_cache
from typing import List, Optional

import logging
import time
import uuid

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException

from scraper.books_scraper import BookScraper
from scraper.errors import TransportError
from scraper.models import BookRecord
from scraper.transport import Transport

from .repository import PersistenceError, SQLBookRepository
from .service import (
    LITRPG_RELATED_TAGS,
    BadRequestError,
    BookQueryService,
    BookSearchParams,
    NotFoundError,
)
from .settings import settings

# --------------------------- OpenAPI metadata --------------------------- #
TAGS_METADATA = [
    {"name": "health", "description": "Service health and store status."},
    {"name": "books", "description": "List, retrieve, search and recommend books."},
    {"name": "tags", "description": "Canonical genre tags."},
]

app = FastAPI(
    title="Royal Road Books API",
    version="1.0.0",
    description="Browse, search and sort fiction scraped from royalroad.com",
    openapi_tags=TAGS_METADATA,
)

# ----------------------- Structured request logging --------------------- #
logger = logging.getLogger("rrbooks")
logging.basicConfig(level=settings.LOG_LEVEL)

@app.middleware("http")
async def log_requests(request, call_next):
    """Lightweight structured log per request + X-Request-ID header."""
    rid = uuid.uuid4().hex[:8]
    start = time.perf_counter()
    response = await call_next(request)
    dur_ms = (time.perf_counter() - start) * 1000.0
    logger.info(
        "rid=%s method=%s path=%s status=%s duration_ms=%.2f",
        rid, request.method, request.url.path, response.status_code, dur_ms,
    )
    response.headers["X-Request-ID"] = rid
    return response

# ---------------------- Prometheus metrics endpoint --------------------- #
# Exposes /metrics (not in OpenAPI schema)
Instrumentator().instrument(app).expose(app, include_in_schema=False, endpoint="/metrics")

# ---------------------------- Error mapping ----------------------------- #
# Body is always {"error": <message>}; only the status code tells the kinds apart.
def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, str(exc))

@app.exception_handler(TransportError)
async def transport_handler(request: Request, exc: TransportError):
    logger.error("upstream failure on %s: %s", request.url.path, exc)
    return _error(502, "Failed to fetch from Royal Road")

@app.exception_handler(PersistenceError)
async def persistence_handler(request: Request, exc: PersistenceError):
    logger.error("store failure on %s: %s", request.url.path, exc)
    return _error(500, "Failed to access the book store")

@app.exception_handler(BadRequestError)
async def bad_request_handler(request: Request, exc: BadRequestError):
    return _error(400, str(exc))

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return _error(exc.status_code, str(exc.detail))

@app.exception_handler(Exception)
async def unhandled_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s", request.url.path)
    return _error(500, "Internal server error")

# --------------------------- OpenAPI schemas ---------------------------- #
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class Views(CamelModel):
    total: int = 0
    average: int = 0

class Stats(CamelModel):
    rating: float = 0.0
    followers: int = 0
    pages: int = 0
    views: Views = Field(default_factory=Views)
    favorites: int = 0
    ratings_count: int = 0
    overall_score: float = 0.0
    style_score: float = 0.0
    story_score: float = 0.0
    grammar_score: float = 0.0
    character_score: float = 0.0
    created_at: Optional[str] = None

class Book(CamelModel):
    id: str
    title: str
    author_name: str
    description: str
    tags: List[str]
    cover_url: str
    source_url: str
    source: str
    content_warnings: List[str]
    status: str
    rating: float
    stats: Stats

class BookPage(CamelModel):
    books: List[Book]
    total_pages: int
    current_page: int

class HealthResponse(BaseModel):
    status: str
    books: int = Field(..., ge=0)
    snapshots: int = Field(..., ge=0)
    last_scraped: Optional[str] = None


def to_book(record: BookRecord) -> Book:
    """Project a record with its latest snapshot; missing stats become zeros."""
    b, s = record.book, record.latest_stats
    return Book(
        id=b.id,
        title=b.title,
        author_name=b.author_name,
        description=b.description,
        tags=b.tags,
        cover_url=b.cover_url,
        source_url=b.source_url,
        source=b.source.value,
        content_warnings=b.content_warnings,
        status=b.status,
        rating=s.rating,
        stats=Stats(
            rating=s.rating,
            followers=s.followers,
            pages=s.pages,
            views=Views(total=s.views.total, average=s.views.average),
            favorites=s.favorites,
            ratings_count=s.ratings_count,
            overall_score=s.overall_score,
            style_score=s.style_score,
            story_score=s.story_score,
            grammar_score=s.grammar_score,
            character_score=s.character_score,
            created_at=s.created_at.isoformat() if s.created_at else None,
        ),
    )

# ------------------------------ DI / repo ------------------------------- #
@lru_cache(maxsize=1)
def get_repo() -> SQLBookRepository:
    """Shared store handle (one engine / connection pool per process)."""
    return SQLBookRepository.from_url(settings.DATABASE_URL)

@lru_cache(maxsize=1)
def get_transport() -> Transport:
    return Transport(user_agent=settings.USER_AGENT or None)

def get_scraper(
    repo: SQLBookRepository = Depends(get_repo),
    transport: Transport = Depends(get_transport),
) -> BookScraper:
    return BookScraper(transport, repo, base_url=settings.SOURCE_BASE_URL, min_followers=settings.MIN_FOLLOWERS)

def get_service(
    repo: SQLBookRepository = Depends(get_repo),
    scraper: BookScraper = Depends(get_scraper),
) -> BookQueryService:
    return BookQueryService(repo, fetcher=scraper, default_limit=settings.DEFAULT_LIMIT)

# -------------------------------- Routes -------------------------------- #
@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health probe",
    response_model_exclude_none=True,
)
def health(repo: SQLBookRepository = Depends(get_repo)):
    """Store readiness + row counts."""
    return repo.health()

@app.get("/books", response_model=BookPage, tags=["books"], summary="Scrape one best-rated listing page")
def list_books(
    page: int = Query(1, ge=1, description="Listing page on Royal Road."),
    scraper: BookScraper = Depends(get_scraper),
):
    """Live scrape; each book is persisted as it is parsed. Upstream failure yields an empty page."""
    try:
        result = scraper.scrape_page(page)
    except TransportError as exc:
        logger.error("listing page %d unavailable: %s", page, exc)
        return BookPage(books=[], total_pages=0, current_page=page)
    return BookPage(
        books=[to_book(r) for r in result.books],
        total_pages=result.total_pages,
        current_page=result.current_page,
    )

@app.get("/books/tags", response_model=List[str], tags=["tags"], summary="Canonical genre tags")
def list_tags():
    return LITRPG_RELATED_TAGS

@app.get("/books/litrpg", response_model=List[Book], tags=["books"], summary="Books in the canonical genres")
def litrpg_books(service: BookQueryService = Depends(get_service)):
    return [to_book(r) for r in service.litrpg_books()]

@app.get("/books/trending", response_model=List[Book], tags=["books"], summary="Most tracked books")
def trending_books(
    limit: int = Query(10, ge=1, le=100, description="How many items to return."),
    service: BookQueryService = Depends(get_service),
):
    """Canonical-genre books ordered by number of stats snapshots."""
    return [to_book(r) for r in service.trending(limit=limit)]

@app.get("/books/search", response_model=List[Book], tags=["books"], summary="Filter and sort books")
def search_books(
    tags: Optional[List[str]] = Query(None, description="Any-of tag match, case-insensitive."),
    min_rating: Optional[float] = Query(None, alias="minRating", ge=0),
    min_pages: Optional[int] = Query(None, alias="minPages", ge=0),
    only_completed: bool = Query(False, alias="onlyCompleted"),
    sort_by: Optional[str] = Query(None, alias="sortBy", description="rating | followers | views | pages | latest"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: BookQueryService = Depends(get_service),
):
    params = BookSearchParams(
        tags=tags or [],
        min_rating=min_rating,
        min_pages=min_pages,
        only_completed=only_completed,
        sort_by=sort_by,
        limit=limit,
        offset=offset,
    )
    return [to_book(r) for r in service.search(params)]

@app.get(
    "/books/author/{author_name}",
    response_model=List[Book],
    tags=["books"],
    summary="Books by one author",
    responses={404: {"description": "No books for this author"}},
)
def author_books(author_name: str, service: BookQueryService = Depends(get_service)):
    """Case-insensitive exact author match, sorted by title."""
    return [to_book(r) for r in service.author_books(author_name)]

@app.get(
    "/books/{book_id}/similar",
    response_model=List[Book],
    tags=["books"],
    summary="Books sharing tags with one book",
    responses={404: {"description": "Book not found"}},
)
def similar_books(
    book_id: str,
    limit: int = Query(5, ge=1, le=100),
    service: BookQueryService = Depends(get_service),
):
    return [to_book(r) for r in service.similar_books(book_id, limit=limit)]

@app.get(
    "/books/{book_id}",
    response_model=Book,
    tags=["books"],
    summary="Get a single book by ID",
    responses={404: {"description": "Book not found"}, 502: {"description": "Royal Road unavailable"}},
)
def get_book(book_id: str, service: BookQueryService = Depends(get_service)):
    """Stored copy when available, otherwise scraped live and persisted."""
    return to_book(service.get_book(book_id))

# ------------------------------- Root redirect -------------------------- #
@app.get("/", include_in_schema=False)
def root():
    """Redirect to Swagger UI."""
    return RedirectResponse(url="/docs")
