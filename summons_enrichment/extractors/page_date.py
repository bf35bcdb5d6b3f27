"""Video Created Date extraction from the video evidence page.

The evidence site has changed its markup over time, so the date is found by
an ordered list of heuristics. Each heuristic is a pure function from the
parsed tree to candidate text; the first candidate that parses as a date
wins. A heuristic whose text does not parse is treated as "no match" and
the next one is tried.

Example::

    tree = lxml.html.fromstring(html)
    extract_video_created_date(html)  # "2025-11-05T14:30:00.000Z" or None
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from lxml import etree, html
from lxml.html import HtmlElement

from summons_enrichment.common.dates import parse_date_string
from summons_enrichment.common.exceptions import (
    PageScrapeException,
    TerminalRequestException,
    TransientException,
)
from summons_enrichment.common.request_manager import AsyncRequestManager
from summons_enrichment.data_types import PageExtraction

logger = logging.getLogger(__name__)

CAPTION = "Video Created"


@dataclass(frozen=True)
class DateHeuristic:
    """A named strategy for locating the date text in a page.

    Attributes:
        name: Short identifier used in logs.
        locate: Returns candidate texts in document order.
    """

    name: str
    locate: Callable[[HtmlElement], list[str]]


def _clean(text: str | None) -> str:
    return " ".join((text or "").split())


def _next_sibling_texts(tree: HtmlElement, xpath: str) -> list[str]:
    texts = []
    for element in tree.xpath(xpath):
        sibling = element.getnext()
        # getnext() can return comments and processing instructions.
        while sibling is not None and not isinstance(sibling.tag, str):
            sibling = sibling.getnext()
        if sibling is not None:
            texts.append(_clean(sibling.text_content()))
    return texts


def label_sibling(tree: HtmlElement) -> list[str]:
    """``<label>Video Created</label><span>DATE</span>``."""
    return _next_sibling_texts(
        tree, f"//label[contains(normalize-space(.), '{CAPTION}')]"
    )


def table_cell_sibling(tree: HtmlElement) -> list[str]:
    """``<td>Video Created Date:</td><td>DATE</td>``."""
    return _next_sibling_texts(
        tree, f"//td[contains(normalize-space(.), '{CAPTION}')]"
    )


def id_marker(tree: HtmlElement) -> list[str]:
    """Any element whose id contains ``videoCreated``."""
    return [
        _clean(element.text_content())
        for element in tree.xpath("//*[contains(@id, 'videoCreated')]")
    ]


def class_marker(tree: HtmlElement) -> list[str]:
    """Any element whose class contains ``video-created``."""
    return [
        _clean(element.text_content())
        for element in tree.xpath("//*[contains(@class, 'video-created')]")
    ]


DATE_HEURISTICS: tuple[DateHeuristic, ...] = (
    DateHeuristic("label_sibling", label_sibling),
    DateHeuristic("table_cell_sibling", table_cell_sibling),
    DateHeuristic("id_marker", id_marker),
    DateHeuristic("class_marker", class_marker),
)


def parse_page(markup: str | bytes) -> HtmlElement | None:
    """Parse page markup, returning None for empty or unparseable input.

    Text is encoded to UTF-8 first; lxml refuses str input that carries an
    XML encoding declaration.
    """
    if not markup or not markup.strip():
        return None
    if isinstance(markup, str):
        markup = markup.encode("utf-8")
        parser = html.HTMLParser(encoding="utf-8")
    else:
        parser = None
    try:
        return html.fromstring(markup, parser=parser)
    except (etree.ParserError, ValueError) as e:
        logger.debug(f"Could not parse page markup: {e}")
        return None


def extract_video_created_date(
    markup: str | bytes,
    heuristics: tuple[DateHeuristic, ...] = DATE_HEURISTICS,
) -> str | None:
    """Recover the Video Created Date from page markup.

    Args:
        markup: The page HTML.
        heuristics: Strategies to try, in order.

    Returns:
        The normalized ISO timestamp, or None if no heuristic produced a
        parseable date.
    """
    tree = parse_page(markup)
    if tree is None:
        return None

    for heuristic in heuristics:
        for text in heuristic.locate(tree):
            if not text:
                continue
            parsed = parse_date_string(text)
            if parsed is not None:
                logger.debug(
                    f"Video Created Date {parsed!r} found by {heuristic.name}"
                )
                return parsed
            logger.debug(
                f"Heuristic {heuristic.name} matched unparseable text {text!r}"
            )

    return None


async def scrape_video_page(
    url: str,
    request_manager: AsyncRequestManager,
    summons_id: str | None = None,
) -> PageExtraction:
    """Fetch the video evidence page and extract its creation date.

    Args:
        url: The video page URL.
        request_manager: Request manager used for the fetch.
        summons_id: Record being enriched, for error context.

    Returns:
        PageExtraction whose date is None if no heuristic matched.

    Raises:
        PageScrapeException: If the page could not be fetched.
    """
    try:
        response = await request_manager.fetch(url)
    except (TransientException, TerminalRequestException) as e:
        raise PageScrapeException(
            f"Video scraping failed: {e}",
            summons_id=summons_id,
            context={"stage": "page", "url": url},
        ) from e

    return PageExtraction(
        video_created_date=extract_video_created_date(response.content)
    )
