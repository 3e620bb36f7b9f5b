"""Tests for HTML field extraction."""
from bs4 import BeautifulSoup

from conftest import DETAIL_HTML, entry_html, listing_html
from scraper.extractor import (
    extract_detail,
    extract_entry,
    extract_or_default,
    extract_tags,
    extract_total_pages,
    find_entries,
    text_of,
)
from scraper.models import UNKNOWN_AUTHOR


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _entry(**kwargs):
    return find_entries(_soup(listing_html([entry_html(**kwargs)])))[0]


def test_extract_or_default_first_non_empty_wins():
    node = _soup('<div><p class="a">  </p><p class="b">second</p><p class="c">third</p></div>')
    assert extract_or_default(node, (text_of(".a"), text_of(".b"), text_of(".c"))) == "second"


def test_extract_or_default_returns_default():
    node = _soup("<div></div>")
    assert extract_or_default(node, (text_of(".missing"),), "fallback") == "fallback"
    assert extract_or_default(node, ()) == ""


def test_extract_entry_listing_fields():
    fields = extract_entry(_entry(status="COMPLETED", author="Jane Roe"))
    assert fields.id == "1234"
    assert fields.title == "Re: Zero-Sum"
    assert fields.author_name == "Jane Roe"
    assert fields.tags == ["LitRPG", "LitRPG"]
    assert fields.cover_url == "/covers/full/1234.jpg"
    assert fields.description == "A story about numbers."
    assert fields.status == "COMPLETED"
    assert "1,200 Followers" in fields.raw_stats.text
    assert fields.raw_stats.rating_text == "4.5"


def test_extract_entry_without_author_uses_placeholder():
    fields = extract_entry(_entry())
    assert fields.author_name == UNKNOWN_AUTHOR


def test_extract_entry_id_from_title_link():
    """Without data-id the id comes from the /fiction/<id>/ link."""
    node = _soup('<div class="fiction-list-item"><h2 class="fiction-title">'
                 '<a href="/fiction/987/slug">T</a></h2></div>').select_one(".fiction-list-item")
    assert extract_entry(node).id == "987"


def test_extract_entry_without_anything():
    node = _soup('<div class="fiction-list-item"></div>').select_one(".fiction-list-item")
    fields = extract_entry(node)
    assert fields.id == ""
    assert fields.title == ""
    assert fields.author_name == UNKNOWN_AUTHOR
    assert fields.tags == []
    assert fields.content_warnings == []


def test_extract_tags_keeps_duplicates_and_drops_blanks():
    node = _soup('<div class="tags"><a> Fantasy </a><a></a><a>Fantasy</a></div>')
    assert extract_tags(node) == ["Fantasy", "Fantasy"]


def test_find_entries_falls_back_to_rows():
    soup = _soup('<div class="fiction-list"><div class="row">a</div><div class="row">b</div></div>')
    assert len(find_entries(soup)) == 2


def test_extract_total_pages():
    assert extract_total_pages(_soup(listing_html([], last_page=7))) == 7
    assert extract_total_pages(_soup(listing_html([]))) == 1
    href_only = '<ul class="pagination"><li><a href="/fictions/best-rated?page=12">Last</a></li></ul>'
    assert extract_total_pages(_soup(href_only)) == 12


def test_extract_detail_page():
    fields = extract_detail(_soup(DETAIL_HTML), "55")
    assert fields.id == "55"
    assert fields.title == "The Last Dungeon"
    assert fields.author_name == "Mira Vale"
    assert fields.description == "Floors all the way down."
    assert fields.tags == ["Progression", "Dungeon"]
    assert fields.status == "ONGOING"
    assert fields.content_warnings == ["Gore", "Profanity"]
    assert fields.cover_url == "https://cdn.example.com/covers/55.jpg"
    assert fields.raw_stats.labels["total views"] == "10,000"
    assert fields.raw_stats.labels["followers"] == "300"
    assert fields.raw_stats.scores["overall score"] == "4.6 stars"


def test_structural_author_wins_over_earlier_profile_link():
    """A reviewer's profile link ahead of the author block must not be taken for the author."""
    node = _soup(
        '<div class="fiction-list-item" data-id="1">'
        '<div class="review"><a href="/profile/99">Some Reviewer</a></div>'
        '<div class="author-name"><a href="/profile/7">Real Author</a></div>'
        "</div>"
    ).select_one(".fiction-list-item")
    assert extract_entry(node).author_name == "Real Author"


def test_generic_profile_link_is_last_resort():
    node = _soup(
        '<div class="fiction-list-item" data-id="1"><a href="/profile/7">Only Link</a></div>'
    ).select_one(".fiction-list-item")
    assert extract_entry(node).author_name == "Only Link"
