# Repository: SQL-backed data-access layer for books and their stats snapshots
# Responsibilities: schema, atomic scrape writes (book upsert + snapshot insert), latest-snapshot reads

from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence
import datetime as dt
import logging

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from scraper.models import Book, BookRecord, BookStats, Source, ViewStats

logger = logging.getLogger("rrbooks.repository")

Base = declarative_base()


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class PersistenceError(Exception):
    """Store read/write failure. Not retried."""


class BookRow(Base):
    __tablename__ = "books"

    id = Column(String(64), primary_key=True)
    title = Column(Text, nullable=False, default="")
    author_name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False)
    cover_url = Column(Text, nullable=False, default="")
    source_url = Column(Text, nullable=False, default="")
    source = Column(String(32), nullable=False, default=Source.ROYAL_ROAD.value)
    content_warnings = Column(JSON, nullable=False)
    status = Column(String(32), nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    stats = relationship(
        "BookStatsRow",
        back_populates="book",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class BookStatsRow(Base):
    __tablename__ = "book_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(String(64), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Float, nullable=False, default=0.0)
    followers = Column(Integer, nullable=False, default=0)
    pages = Column(Integer, nullable=False, default=0)
    views = Column(Integer, nullable=False, default=0)
    average_views = Column(Integer, nullable=False, default=0)
    favorites = Column(Integer, nullable=False, default=0)
    ratings_count = Column(Integer, nullable=False, default=0)
    overall_score = Column(Float, nullable=False, default=0.0)
    style_score = Column(Float, nullable=False, default=0.0)
    story_score = Column(Float, nullable=False, default=0.0)
    grammar_score = Column(Float, nullable=False, default=0.0)
    character_score = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False, default=_utcnow, index=True)

    book = relationship("BookRow", back_populates="stats")


# ---------- Row <-> record mapping ----------

def _to_book(row: BookRow) -> Book:
    return Book(
        id=row.id,
        title=row.title or "",
        author_name=row.author_name,
        description=row.description or "",
        tags=list(row.tags or []),
        cover_url=row.cover_url or "",
        source_url=row.source_url or "",
        source=Source(row.source),
        content_warnings=list(row.content_warnings or []),
        status=row.status or "",
    )


def _to_stats(row: BookStatsRow) -> BookStats:
    return BookStats(
        rating=row.rating,
        followers=row.followers,
        pages=row.pages,
        views=ViewStats(total=row.views, average=row.average_views),
        favorites=row.favorites,
        ratings_count=row.ratings_count,
        overall_score=row.overall_score,
        style_score=row.style_score,
        story_score=row.story_score,
        grammar_score=row.grammar_score,
        character_score=row.character_score,
        created_at=row.created_at,
    )


def _stats_row(book_id: str, stats: BookStats) -> BookStatsRow:
    return BookStatsRow(
        book_id=book_id,
        rating=float(stats.rating or 0),
        followers=int(stats.followers or 0),
        pages=int(stats.pages or 0),
        views=int(stats.views.total or 0),
        average_views=int(stats.views.average or 0),
        favorites=int(stats.favorites or 0),
        ratings_count=int(stats.ratings_count or 0),
        overall_score=float(stats.overall_score or 0),
        style_score=float(stats.style_score or 0),
        story_score=float(stats.story_score or 0),
        grammar_score=float(stats.grammar_score or 0),
        character_score=float(stats.character_score or 0),
        created_at=stats.created_at or _utcnow(),
    )


def create_store_engine(url: str) -> Engine:
    """Engine for ``url``; in-memory SQLite shares one connection so every session sees the same data."""
    if url.startswith("sqlite"):
        database = make_url(url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

        return engine
    return create_engine(url, pool_pre_ping=True)


class SQLBookRepository:
    """
    Store for the canonical Book shape.
    - Books are upserted by id (last write wins, no field merge).
    - Stats snapshots are append-only; reads project the latest one per book.
    - Every public method is atomic on its own.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False, class_=Session)

    @classmethod
    def from_url(cls, url: str) -> "SQLBookRepository":
        repo = cls(create_store_engine(url))
        repo.init_schema()
        return repo

    def init_schema(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"schema creation failed: {exc}") from exc
        logger.info("book store schema ready (%s)", self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceError(str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ---------- Writes ----------

    def _upsert(self, session: Session, book: Book) -> BookRow:
        row = session.get(BookRow, book.id)
        if row is None:
            row = BookRow(id=book.id)
            session.add(row)
        row.title = book.title
        row.author_name = book.author_name
        row.description = book.description
        row.tags = list(book.tags)
        row.cover_url = book.cover_url
        row.source_url = book.source_url
        row.source = Source(book.source).value
        row.content_warnings = list(book.content_warnings)
        row.status = book.status
        row.updated_at = _utcnow()
        return row

    def _insert_stats(self, session: Session, book_id: str, stats: BookStats) -> BookStats:
        row = _stats_row(book_id, stats)
        session.add(row)
        session.flush()
        return _to_stats(row)

    def upsert_book(self, book: Book) -> None:
        with self._transaction() as s:
            self._upsert(s, book)

    def insert_stats(self, book_id: str, stats: BookStats) -> BookStats:
        with self._transaction() as s:
            return self._insert_stats(s, book_id, stats)

    def save_scrape(self, book: Book, stats: BookStats) -> BookRecord:
        """Upsert the book and append one snapshot in a single transaction."""
        with self._transaction() as s:
            row = self._upsert(s, book)
            saved = self._insert_stats(s, book.id, stats)
            count = s.scalar(select(func.count(BookStatsRow.id)).where(BookStatsRow.book_id == book.id))
            return BookRecord(book=book, stats=saved, created_at=row.created_at, snapshot_count=int(count or 0))

    # ---------- Reads ----------

    def _records(self, session: Session, rows: Sequence[BookRow]) -> List[BookRecord]:
        ids = [r.id for r in rows]
        if not ids:
            return []

        ranked = (
            select(
                BookStatsRow.id.label("id"),
                func.row_number()
                .over(
                    partition_by=BookStatsRow.book_id,
                    order_by=(BookStatsRow.created_at.desc(), BookStatsRow.id.desc()),
                )
                .label("rn"),
            )
            .where(BookStatsRow.book_id.in_(ids))
            .subquery()
        )
        latest: Dict[str, BookStats] = {
            row.book_id: _to_stats(row)
            for row in session.scalars(
                select(BookStatsRow).join(ranked, ranked.c.id == BookStatsRow.id).where(ranked.c.rn == 1)
            )
        }
        counts: Dict[str, int] = dict(
            session.execute(
                select(BookStatsRow.book_id, func.count(BookStatsRow.id))
                .where(BookStatsRow.book_id.in_(ids))
                .group_by(BookStatsRow.book_id)
            ).all()
        )
        return [
            BookRecord(
                book=_to_book(r),
                stats=latest.get(r.id),
                created_at=r.created_at,
                snapshot_count=int(counts.get(r.id, 0)),
            )
            for r in rows
        ]

    def find_book(self, book_id: str) -> Optional[BookRecord]:
        with self._transaction() as s:
            row = s.get(BookRow, book_id)
            if row is None:
                return None
            return self._records(s, [row])[0]

    def list_books(self) -> List[BookRecord]:
        """All books in insertion order."""
        with self._transaction() as s:
            rows = s.scalars(select(BookRow).order_by(BookRow.created_at, BookRow.id)).all()
            return self._records(s, rows)

    def find_books_by_tag_overlap(self, tags: Sequence[str]) -> List[BookRecord]:
        """Books sharing at least one tag with ``tags``, compared case-insensitively."""
        wanted = {t.strip().lower() for t in tags if t and t.strip()}
        if not wanted:
            return []
        with self._transaction() as s:
            rows = s.scalars(select(BookRow).order_by(BookRow.created_at, BookRow.id)).all()
            matching = [r for r in rows if any(str(t).lower() in wanted for t in (r.tags or []))]
            return self._records(s, matching)

    def find_books_by_author(self, author_name: str) -> List[BookRecord]:
        """Case-insensitive exact author match, title ascending."""
        with self._transaction() as s:
            rows = s.scalars(
                select(BookRow)
                .where(func.lower(BookRow.author_name) == author_name.strip().lower())
                .order_by(BookRow.title, BookRow.id)
            ).all()
            return self._records(s, rows)

    def snapshots(self, book_id: str) -> List[BookStats]:
        """Full snapshot history, oldest first."""
        with self._transaction() as s:
            rows = s.scalars(
                select(BookStatsRow)
                .where(BookStatsRow.book_id == book_id)
                .order_by(BookStatsRow.created_at, BookStatsRow.id)
            ).all()
            return [_to_stats(r) for r in rows]

    def health(self) -> dict:
        """Basic store status for health checks."""
        with self._transaction() as s:
            books = s.scalar(select(func.count(BookRow.id))) or 0
            snapshots = s.scalar(select(func.count(BookStatsRow.id))) or 0
            last = s.scalar(select(func.max(BookStatsRow.created_at)))
        return {
            "status": "ok",
            "books": int(books),
            "snapshots": int(snapshots),
            "last_scraped": last.isoformat() if last else None,
        }

    def close(self) -> None:
        self.engine.dispose()
