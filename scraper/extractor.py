# HTML field extractor: one listing/detail entry -> best-effort raw fields
#
# Every field goes through extract_or_default() with an ordered tuple of
# strategies (node -> Optional[str]); the first non-empty trimmed value wins.

import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from bs4 import BeautifulSoup, Tag

from .models import UNKNOWN_AUTHOR
from .normalizer import RawStats, pair_labels_with_numbers

Strategy = Callable[[Tag], Optional[str]]

FICTION_PATH_RE = re.compile(r"/fiction/([^/?#]+)")
PAGE_PARAM_RE = re.compile(r"[?&]page=(\d+)")
STATUS_LABELS = {"ONGOING", "COMPLETED", "HIATUS", "STUB", "DROPPED", "INACTIVE"}
DESCRIPTION_NOISE_RE = re.compile(r"SHOW MORE|SHOW LESS", re.I)


@dataclass
class EntryFields:
    id: str = ""
    title: str = ""
    author_name: str = UNKNOWN_AUTHOR
    description: str = ""
    tags: List[str] = field(default_factory=list)
    cover_url: str = ""
    content_warnings: List[str] = field(default_factory=list)
    status: str = ""
    raw_stats: RawStats = field(default_factory=RawStats)


# ---------- Strategy builders ----------

def text_of(selector: str) -> Strategy:
    def strategy(node: Tag) -> Optional[str]:
        el = node.select_one(selector)
        return el.get_text(" ", strip=True) if el else None
    return strategy


def attr_of(selector: str, attr: str) -> Strategy:
    def strategy(node: Tag) -> Optional[str]:
        el = node.select_one(selector)
        value = el.get(attr) if el else None
        return value if isinstance(value, str) else None
    return strategy


def own_attr(attr: str) -> Strategy:
    def strategy(node: Tag) -> Optional[str]:
        value = node.get(attr)
        return value if isinstance(value, str) else None
    return strategy


def fiction_id_from(inner: Strategy) -> Strategy:
    """Wrap a strategy that yields a URL into one that yields the segment after /fiction/."""
    def strategy(node: Tag) -> Optional[str]:
        m = FICTION_PATH_RE.search(inner(node) or "")
        return m.group(1) if m else None
    return strategy


def extract_or_default(node: Tag, strategies: Sequence[Strategy], default: str = "") -> str:
    for strategy in strategies:
        value = strategy(node)
        if value and value.strip():
            return value.strip()
    return default


# ---------- Ordered fallback chains ----------

# Structural author markup first; bare profile links last because an entry
# may link to other profiles (reviewers, co-authors) elsewhere.
AUTHOR_STRATEGIES = (
    text_of(".author-name-container a"),
    text_of(".author-name a"),
    text_of(".profile-info a"),
    text_of('.fic-header span[property="name"]'),
    text_of(".author a"),
    text_of('.fiction-info a[href^="/profile/"]'),
    text_of('a[href^="/profile/"]'),
)

TITLE_STRATEGIES = (
    text_of(".fiction-title a"),
    text_of(".fiction-title"),
    text_of(".fic-title h1"),
    text_of("h1"),
)

ID_STRATEGIES = (
    own_attr("data-id"),
    fiction_id_from(attr_of(".fiction-title a", "href")),
)

COVER_STRATEGIES = (
    attr_of("img[data-type='cover']", "src"),
    attr_of(".cover-art-container img", "src"),
    attr_of("img", "src"),
)

DESCRIPTION_STRATEGIES = (
    text_of(".description"),
    text_of(".hidden-content"),
)

RATING_STRATEGIES = (
    attr_of(".star[title]", "title"),
    attr_of(".star[aria-label]", "aria-label"),
    attr_of('[property="ratingValue"]', "content"),
)


# ---------- Field helpers ----------

def extract_tags(node: Tag) -> List[str]:
    """Tag link texts in markup order; duplicates are kept."""
    tags = (a.get_text(strip=True) for a in node.select(".tags a"))
    return [t for t in tags if t]


def extract_description(node: Tag) -> str:
    text = extract_or_default(node, DESCRIPTION_STRATEGIES)
    return DESCRIPTION_NOISE_RE.sub("", text).strip()


def extract_status(node: Tag) -> str:
    for label in node.select(".label, .fiction-status"):
        text = label.get_text(strip=True).upper()
        if text in STATUS_LABELS:
            return text
    return ""


def extract_content_warnings(node: Tag) -> List[str]:
    marker = node.find(string=re.compile(r"This fiction contains", re.I))
    if marker is None:
        return []
    container = marker.find_parent(["div", "section"]) or marker.parent
    return [li.get_text(strip=True) for li in container.select("li") if li.get_text(strip=True)]


def extract_raw_stats(node: Tag) -> RawStats:
    raw = RawStats()

    texts = []
    blocks = node.select(".stats .col-sm-6")
    for block in blocks:
        label_el = block.find("label")
        if label_el is not None:
            label = label_el.get_text(strip=True).lower()
            value = block.get_text(" ", strip=True).replace(label_el.get_text(strip=True), "", 1).strip()
            if label and value:
                raw.labels[label] = value
        else:
            texts.append(block.get_text(" ", strip=True))

    stats_el = node.select_one(".stats")
    if not blocks and stats_el is not None:
        texts.append(stats_el.get_text(" ", strip=True))
    raw.text = " ".join(texts)

    # Detail pages print "Total Views : 1,234" with the label before the number
    for info in node.select(".fiction-info .col-sm-6, .fiction-stats .stats-content"):
        for label, value in pair_labels_with_numbers(info.get_text(" ", strip=True)).items():
            raw.labels.setdefault(label, value)

    for star in node.select(".star[data-original-title]"):
        label = star.get("data-original-title", "").strip().lower()
        score = star.get("aria-label") or star.get("data-content") or ""
        if label and score:
            raw.scores[label] = score

    raw.rating_text = extract_or_default(node, RATING_STRATEGIES)
    return raw


# ---------- Entry / page level ----------

def find_entries(soup: BeautifulSoup) -> List[Tag]:
    entries = soup.select(".fiction-list-item")
    return entries or soup.select(".fiction-list > .row")


def extract_entry(node: Tag) -> EntryFields:
    """Pure transformation of one entry; missing fields degrade to defaults."""
    return EntryFields(
        id=extract_or_default(node, ID_STRATEGIES),
        title=extract_or_default(node, TITLE_STRATEGIES),
        author_name=extract_or_default(node, AUTHOR_STRATEGIES, UNKNOWN_AUTHOR),
        description=extract_description(node),
        tags=extract_tags(node),
        cover_url=extract_or_default(node, COVER_STRATEGIES),
        content_warnings=extract_content_warnings(node),
        status=extract_status(node),
        raw_stats=extract_raw_stats(node),
    )


def extract_detail(soup: BeautifulSoup, book_id: str) -> EntryFields:
    """Detail page: the id is the path segment of the requested /fiction/<id> URL."""
    fields = extract_entry(soup)
    fields.id = book_id
    return fields


def extract_total_pages(soup: BeautifulSoup) -> int:
    last = soup.select_one(".pagination li:last-child a")
    if last is None:
        return 1
    page = last.get("data-page")
    if not page:
        m = PAGE_PARAM_RE.search(last.get("href", ""))
        page = m.group(1) if m else None
    try:
        return max(int(page), 1) if page else 1
    except ValueError:
        return 1
