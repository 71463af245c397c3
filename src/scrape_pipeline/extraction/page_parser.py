"""
HTML parsing and DOM search helpers.

Thin layer over BeautifulSoup: builds the tree, tells real text nodes
apart from comments and doctypes and pulls links out of a page for the
crawler.
"""

from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup, NavigableString, PageElement
from bs4.element import PreformattedString

from scrape_pipeline.core.exceptions import ContentExtractionError
from scrape_pipeline.utils.logging import get_logger

logger = get_logger(__name__)

PARSER = "html.parser"


def parse_html(html: str | bytes, url: str = "") -> BeautifulSoup:
    """
    Parse HTML text into a tree.

    Bytes are accepted if they decode as UTF-8.

    Args:
        html: Page markup
        url: Page URL, used in error reports

    Returns:
        Parsed document

    Raises:
        ContentExtractionError: If the input is not text or cannot be parsed
    """
    if isinstance(html, bytes):
        try:
            html = html.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ContentExtractionError(
                "HTML is not valid UTF-8",
                url=url,
                details={"position": e.start},
            ) from e

    if not isinstance(html, str):
        raise ContentExtractionError(
            f"Expected HTML text, got {type(html).__name__}",
            url=url,
        )

    try:
        return BeautifulSoup(html, PARSER)
    except Exception as e:
        raise ContentExtractionError(
            f"Failed to parse HTML: {e}", url=url) from e


def is_text_node(node: PageElement) -> bool:
    """True for character data; comments, doctypes, CDATA and the like are not text."""
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


def extract_links(html: str, base_url: str) -> list[str]:
    """
    Absolute http(s) links found in ``a[href]`` elements.

    Fragments are dropped and duplicates removed, keeping first-seen order.
    Unparseable markup yields no links; malformed hrefs are skipped.
    """
    try:
        soup = parse_html(html, base_url)
    except ContentExtractionError as e:
        logger.debug(f"Skipping link discovery for {base_url}: {e}")
        return []

    links: list[str] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith(("javascript:", "mailto:", "tel:", "#")):
            continue

        try:
            absolute, _ = urldefrag(urljoin(base_url, href))
            scheme = urlparse(absolute).scheme
        except ValueError:
            logger.debug(f"Skipping malformed link on {base_url}: {href!r}")
            continue
        if scheme not in ("http", "https"):
            continue
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)

    return links
