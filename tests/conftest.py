"""Shared fixtures: in-memory book store, canned Royal Road HTML and a fake transport."""
from typing import Dict, List, Optional, Sequence, Union

import pytest

from api.repository import SQLBookRepository
from scraper.errors import TransportError

BASE = "https://www.royalroad.com"


def listing_url(page: int) -> str:
    return f"{BASE}/fictions/best-rated?page={page}"


def entry_html(
    book_id: Optional[str] = "1234",
    title: str = "Re: Zero-Sum",
    tags: Sequence[str] = ("LitRPG", "LitRPG"),
    followers: str = "1,200",
    views: str = "50,000",
    pages: str = "345",
    rating: Optional[str] = "4.5",
    status: str = "",
    author: str = "",
    cover: str = "/covers/full/1234.jpg",
    description: str = "A story about numbers. SHOW MORE",
) -> str:
    """One listing entry in the markup served by /fictions/best-rated."""
    data_id = f' data-id="{book_id}"' if book_id else ""
    href = f' href="/fiction/{book_id}/some-slug"' if book_id else ""
    tag_links = "".join(f'<a class="fiction-tag" href="/fictions/search?tagsAdd={t}">{t}</a>' for t in tags)
    status_html = f'<span class="label label-default">{status}</span>' if status else ""
    author_html = f'<span class="author"><a href="/profile/7">{author}</a></span>' if author else ""
    star = f'<span class="star" title="{rating}"></span>' if rating else ""
    return f"""
    <div class="fiction-list-item row"{data_id}>
      <figure><img data-type="cover" src="{cover}" alt="{title}"></figure>
      <div class="col-sm-10">
        <h2 class="fiction-title"><a{href}>{title}</a></h2>
        {author_html}
        <div class="tags">{tag_links}</div>
        {status_html}
        <div class="row stats">
          <div class="col-sm-6"><span>{followers} Followers</span></div>
          <div class="col-sm-6"><span>{views} Views</span></div>
          <div class="col-sm-6"><span>{pages} Pages</span></div>
          <div class="col-sm-6">{star}</div>
        </div>
        <div class="hidden-content">{description}</div>
      </div>
    </div>
    """


def listing_html(entries: List[str], last_page: Optional[int] = None) -> str:
    pagination = ""
    if last_page is not None:
        pagination = f"""
        <ul class="pagination">
          <li><a data-page="2" href="/fictions/best-rated?page=2">2</a></li>
          <li><a data-page="{last_page}" href="/fictions/best-rated?page={last_page}">Last &raquo;</a></li>
        </ul>
        """
    return f"<html><body><div class='fiction-list'>{''.join(entries)}</div>{pagination}</body></html>"


DETAIL_HTML = """
<html><body>
  <div class="fic-header">
    <div class="cover-art-container"><img data-type="cover" src="https://cdn.example.com/covers/55.jpg"></div>
    <div class="fic-title">
      <h1>The Last Dungeon</h1>
      <h4><span property="author"><span property="name"><a href="/profile/42">Mira Vale</a></span></span></h4>
    </div>
  </div>
  <div class="fiction-info">
    <span class="label label-default">ONGOING</span>
    <div class="tags"><a class="fiction-tag">Progression</a><a class="fiction-tag">Dungeon</a></div>
    <div class="description"><div class="hidden-content">Floors all the way down.</div></div>
    <div class="text-center font-red-sunglo">
      <strong>This fiction contains:</strong>
      <ul class="list-inline"><li>Gore</li><li>Profanity</li></ul>
    </div>
    <div class="fiction-stats">
      <div class="col-sm-6">
        <span class="star" data-original-title="Overall Score" aria-label="4.6 stars"></span>
        <span class="star" data-original-title="Style Score" data-content="4.2"></span>
        <span class="star" data-original-title="Story Score" data-content="4.4"></span>
      </div>
      <div class="col-sm-6 stats-content">
        Total Views : 10,000 Average Views : 500 Followers : 300 Favorites : 40 Ratings : 25 Pages : 120
      </div>
    </div>
  </div>
</body></html>
"""


class FakeTransport:
    """Serves canned bodies by URL; anything else fails like an exhausted retry."""

    def __init__(self, pages: Optional[Dict[str, Union[str, Exception]]] = None, missing_status: Optional[int] = 404):
        self.pages = dict(pages or {})
        self.missing_status = missing_status
        self.calls: List[str] = []

    def fetch(self, url: str) -> str:
        self.calls.append(url)
        body = self.pages.get(url)
        if isinstance(body, Exception):
            raise body
        if body is None:
            raise TransportError(url, 3, status_code=self.missing_status, reason="timeout")
        return body

    def close(self):
        pass


@pytest.fixture
def repo():
    store = SQLBookRepository.from_url("sqlite://")
    yield store
    store.close()

