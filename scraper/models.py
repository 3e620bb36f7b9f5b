# Canonical records shared by the scraper (write path) and the API (read path)

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

UNKNOWN_AUTHOR = "Unknown Author"


class Source(str, Enum):
    ROYAL_ROAD = "ROYAL_ROAD"


@dataclass
class ViewStats:
    total: int = 0
    average: int = 0


# One immutable stats snapshot; every numeric field is always concrete
@dataclass
class BookStats:
    rating: float = 0.0
    followers: int = 0
    pages: int = 0
    views: ViewStats = field(default_factory=ViewStats)
    favorites: int = 0
    ratings_count: int = 0
    overall_score: float = 0.0
    style_score: float = 0.0
    story_score: float = 0.0
    grammar_score: float = 0.0
    character_score: float = 0.0
    created_at: Optional[datetime] = None


@dataclass
class Book:
    id: str
    title: str = ""
    author_name: str = UNKNOWN_AUTHOR
    description: str = ""
    tags: List[str] = field(default_factory=list)
    cover_url: str = ""
    source_url: str = ""
    source: Source = Source.ROYAL_ROAD
    content_warnings: List[str] = field(default_factory=list)
    status: str = ""


# A book together with its latest snapshot, as produced by a scrape or read back from the store
@dataclass
class BookRecord:
    book: Book
    stats: Optional[BookStats] = None
    created_at: Optional[datetime] = None
    snapshot_count: int = 0

    @property
    def latest_stats(self) -> BookStats:
        """Latest snapshot, or an all-zero one when the book has none."""
        return self.stats if self.stats is not None else BookStats()
