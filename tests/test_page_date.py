"""Tests for Video Created Date extraction.

Each heuristic is exercised on its own with a parsed tree, then the
ordered extractor is exercised on whole pages, and finally the scraper
is run against the evidence server.
"""

import pytest
from lxml import html

from summons_enrichment.common.exceptions import PageScrapeException
from summons_enrichment.extractors.page_date import (
    DATE_HEURISTICS,
    DateHeuristic,
    class_marker,
    extract_video_created_date,
    id_marker,
    label_sibling,
    scrape_video_page,
    table_cell_sibling,
)
from tests.mock_server import (
    CLASS_LAYOUT_HTML,
    ID_LAYOUT_HTML,
    LABEL_LAYOUT_HTML,
    NO_DATE_HTML,
    TABLE_LAYOUT_HTML,
    XHTML_LAYOUT_HTML,
)


class TestHeuristics:
    """Each heuristic shall locate candidate text independently."""

    def test_label_sibling_skips_comments(self):
        """The label heuristic shall return the next element's text."""
        tree = html.fromstring(LABEL_LAYOUT_HTML)

        assert label_sibling(tree) == ["2025-11-05 14:30:00"]

    def test_table_cell_sibling(self):
        """The table heuristic shall return the neighbouring cell's text."""
        tree = html.fromstring(TABLE_LAYOUT_HTML)

        assert table_cell_sibling(tree) == ["01/10/2025"]

    def test_id_marker(self):
        """The id heuristic shall match ids containing videoCreated."""
        tree = html.fromstring(ID_LAYOUT_HTML)

        assert id_marker(tree) == ["November 5, 2025"]

    def test_class_marker(self):
        """The class heuristic shall match classes containing video-created."""
        tree = html.fromstring(CLASS_LAYOUT_HTML)

        assert class_marker(tree) == ["Jan 15, 2025"]

    def test_heuristics_find_nothing_on_plain_page(self):
        """No heuristic shall match a page without the caption or markers."""
        tree = html.fromstring(NO_DATE_HTML)

        for heuristic in DATE_HEURISTICS:
            assert heuristic.locate(tree) == []

    def test_heuristic_order(self):
        """Heuristics shall be tried label, table cell, id, then class."""
        assert [h.name for h in DATE_HEURISTICS] == [
            "label_sibling",
            "table_cell_sibling",
            "id_marker",
            "class_marker",
        ]


class TestExtractVideoCreatedDate:
    """Tests for extract_video_created_date()."""

    @pytest.mark.parametrize(
        "markup, expected",
        [
            (LABEL_LAYOUT_HTML, "2025-11-05T14:30:00.000Z"),
            (TABLE_LAYOUT_HTML, "2025-01-10T00:00:00.000Z"),
            (ID_LAYOUT_HTML, "2025-11-05T00:00:00.000Z"),
            (CLASS_LAYOUT_HTML, "2025-01-15T00:00:00.000Z"),
        ],
    )
    def test_each_layout(self, markup, expected):
        """Every known page layout shall yield its normalized date."""
        assert extract_video_created_date(markup) == expected

    def test_no_date(self):
        """A page without a date shall yield None."""
        assert extract_video_created_date(NO_DATE_HTML) is None

    @pytest.mark.parametrize(
        "markup", [XHTML_LAYOUT_HTML, XHTML_LAYOUT_HTML.encode("utf-8")]
    )
    def test_xml_declared_page(self, markup):
        """A page starting with an XML encoding declaration shall parse."""
        assert extract_video_created_date(markup) == "2025-01-15T00:00:00.000Z"

    @pytest.mark.parametrize("markup", ["", "   ", b""])
    def test_empty_markup(self, markup):
        """Empty markup shall yield None."""
        assert extract_video_created_date(markup) is None

    def test_unparseable_match_falls_through(self):
        """A heuristic whose text is not a date shall not stop the search."""
        markup = """<html><body>
            <label>Video Created</label><span>pending review</span>
            <div class="video-created">03/04/2025</div>
        </body></html>"""

        assert extract_video_created_date(markup) == "2025-03-04T00:00:00.000Z"

    def test_first_matching_heuristic_wins(self):
        """When two heuristics match, the earlier one shall win."""
        markup = """<html><body>
            <table><tr><td>Video Created</td><td>02/02/2025</td></tr></table>
            <label>Video Created</label><b>01/01/2025</b>
        </body></html>"""

        assert extract_video_created_date(markup) == "2025-01-01T00:00:00.000Z"

    def test_custom_heuristics(self):
        """Callers shall be able to supply their own ordered heuristics."""
        heading = DateHeuristic(
            "heading", lambda tree: [tree.findtext(".//h2") or ""]
        )
        markup = "<html><body><h2>12/25/2024</h2></body></html>"

        assert (
            extract_video_created_date(markup, heuristics=(heading,))
            == "2024-12-25T00:00:00.000Z"
        )
        assert extract_video_created_date(markup) is None


class TestScrapeVideoPage:
    """Tests for scrape_video_page() against the evidence server."""

    async def test_scrape(self, request_manager, server_url):
        """The scraper shall fetch the page and extract its date."""
        page = await scrape_video_page(
            f"{server_url}/video/label", request_manager
        )

        assert page.video_created_date == "2025-11-05T14:30:00.000Z"

    async def test_scrape_page_without_date(self, request_manager, server_url):
        """A reachable page without a date shall give an empty extraction."""
        page = await scrape_video_page(
            f"{server_url}/video/no-date", request_manager
        )

        assert page.video_created_date is None

    async def test_fetch_failure_raises_page_scrape_exception(
        self, request_manager, server_url
    ):
        """A failed fetch shall raise PageScrapeException with context."""
        with pytest.raises(PageScrapeException) as exc_info:
            await scrape_video_page(
                f"{server_url}/error/404", request_manager, summons_id="s1"
            )

        assert exc_info.value.summons_id == "s1"
        assert exc_info.value.context["stage"] == "page"
        assert exc_info.value.context["url"].endswith("/error/404")

    async def test_scrape_xml_declared_page(self, request_manager, server_url):
        """An XHTML page with an encoding declaration shall yield its date."""
        page = await scrape_video_page(
            f"{server_url}/video/xhtml", request_manager
        )

        assert page.video_created_date == "2025-01-15T00:00:00.000Z"

    async def test_redirect_loop_raises_page_scrape_exception(
        self, request_manager, server_url
    ):
        """Too many redirects shall surface as PageScrapeException."""
        with pytest.raises(PageScrapeException):
            await scrape_video_page(f"{server_url}/loop", request_manager)
