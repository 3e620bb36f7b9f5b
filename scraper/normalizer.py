# Stat normalizer: raw label/value text and stats blobs -> typed BookStats

import re
from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional, Tuple

from .models import BookStats

NUMBER_RE = re.compile(r"\d[\d,]*(?:\.\d+)?")
RATING_RE = re.compile(r"\d+(?:\.\d+)?")

# Search-result style: "<number> Followers" inside one block of text
BLOB_PATTERNS = {
    "followers": re.compile(r"([\d,.]+)\s*followers", re.I),
    "views": re.compile(r"([\d,.]+)\s*views", re.I),
    "pages": re.compile(r"([\d,.]+)\s*pages", re.I),
    "favorites": re.compile(r"([\d,.]+)\s*favorites", re.I),
    "ratings_count": re.compile(r"([\d,.]+)\s*ratings", re.I),
}

# Lower-cased label -> stats field; checked in order, first keyword contained in the label wins
LABEL_RULES: List[Tuple[str, str]] = [
    ("average views", "average_views"),
    ("total views", "views"),
    ("views", "views"),
    ("follow", "followers"),
    ("favorite", "favorites"),
    ("page", "pages"),
    ("ratings", "ratings_count"),
    ("rating", "rating"),
]

SCORE_FIELDS = {
    "overall": "overall_score",
    "style": "style_score",
    "story": "story_score",
    "grammar": "grammar_score",
    "character": "character_score",
}


@dataclass
class RawStats:
    """Unparsed stats text exactly as found in one entry."""

    labels: Dict[str, str] = field(default_factory=dict)
    text: str = ""
    rating_text: str = ""
    scores: Dict[str, str] = field(default_factory=dict)


def parse_number(text: Optional[str], default: float = 0.0) -> float:
    """Keep digits and decimal points only, then parse; ``default`` on empty or garbage input."""
    if not text:
        return default
    cleaned = re.sub(r"[^0-9.]", "", text)
    try:
        return float(cleaned)
    except ValueError:
        return default


def parse_rating(text: Optional[str]) -> float:
    """Leading numeric token of strings like "4.5 out of 5" or "4.25/5"."""
    if not text:
        return 0.0
    m = RATING_RE.search(text)
    return float(m.group(0)) if m else 0.0


def pair_labels_with_numbers(text: str) -> Dict[str, str]:
    """Split "Total Views : 1,234 Followers : 56" into {"total views": "1,234", "followers": "56"}."""
    pairs: Dict[str, str] = {}
    labels = NUMBER_RE.split(text)
    for i, num in enumerate(NUMBER_RE.findall(text)):
        label = labels[i].strip(" :\n\t").lower()
        if label:
            pairs[label] = num
    return pairs


def _field_for_label(label: str) -> Optional[str]:
    for keyword, name in LABEL_RULES:
        if keyword in label:
            return name
    return None


def _apply(stats: BookStats, name: str, raw: str) -> None:
    if name == "rating":
        stats.rating = parse_rating(raw)
    elif name == "views":
        stats.views.total = int(parse_number(raw))
    elif name == "average_views":
        stats.views.average = int(parse_number(raw))
    else:
        setattr(stats, name, int(parse_number(raw)))


def normalize_labeled(labels: Dict[str, str], stats: Optional[BookStats] = None) -> BookStats:
    """Label/value style; unknown labels are ignored."""
    stats = stats or BookStats()
    for label, raw in labels.items():
        name = _field_for_label(label.strip().lower())
        if name:
            _apply(stats, name, raw)
    return stats


def normalize_text(text: str, stats: Optional[BookStats] = None) -> BookStats:
    """Text-blob style: regex matches of "<number> Followers" and friends."""
    stats = stats or BookStats()
    for name, pattern in BLOB_PATTERNS.items():
        m = pattern.search(text or "")
        if m:
            _apply(stats, name, m.group(1))
    return stats


def normalize_scores(scores: Dict[str, str], stats: BookStats) -> BookStats:
    for label, raw in scores.items():
        for keyword, name in SCORE_FIELDS.items():
            if keyword in label.lower():
                setattr(stats, name, parse_rating(raw))
                break
    return stats


def normalize_stats(raw: RawStats) -> BookStats:
    """Merge every encoding found in one entry; labeled values win over the text blob."""
    stats = normalize_text(raw.text)
    normalize_labeled(raw.labels, stats)
    normalize_scores(raw.scores, stats)
    if raw.rating_text:
        stats.rating = parse_rating(raw.rating_text)
    elif not stats.rating and stats.overall_score:
        stats.rating = stats.overall_score
    return stats


def merge_stats(primary: BookStats, fallback: BookStats) -> BookStats:
    """Field-wise merge: non-zero values of ``primary`` win."""
    merged = BookStats()
    for f in fields(BookStats):
        if f.name in ("views", "created_at"):
            continue
        setattr(merged, f.name, getattr(primary, f.name) or getattr(fallback, f.name))
    merged.views.total = primary.views.total or fallback.views.total
    merged.views.average = primary.views.average or fallback.views.average
    return merged
