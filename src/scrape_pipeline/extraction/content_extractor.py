"""
Main content extraction.

Turns a fetched page into ExtractedContent: title, metadata, the text
of the main content element serialized with light structure, image
references and a word count. Extraction is a pure function of the HTML
and the ExtractionSettings, and keeps no state between calls, so one
extractor may be shared across threads.
"""

from bs4 import BeautifulSoup, PageElement, Tag

from scrape_pipeline.config.settings import ExtractionSettings
from scrape_pipeline.core.exceptions import ContentExtractionError
from scrape_pipeline.core.models import ExtractedContent, ImageRef, RawPage
from scrape_pipeline.extraction.metadata_extractor import MetadataExtractor
from scrape_pipeline.extraction.page_parser import (
    is_text_node,
    parse_html,
)
from scrape_pipeline.utils.logging import get_logger

logger = get_logger(__name__)

# Subtrees never serialized
SKIP_TAGS = frozenset({"script", "style", "nav", "footer"})

HEADING_TAGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})

MAIN_CONTENT_TAGS = ("main", "article")


def find_main_element(soup: BeautifulSoup) -> Tag | None:
    """First ``main`` or ``article`` element in document order."""
    main = soup.find(list(MAIN_CONTENT_TAGS))
    if main is None:
        main = soup.find("article")
    return main


def serialize_text(node: PageElement, preserve_headings: bool = True, is_root: bool = True) -> str:
    """
    Serialize a subtree to text.

    Text nodes are trimmed and followed by one space. Paragraphs open
    with a blank line (except at the root) and close with a newline,
    list items start with ``"\\n- "``, ``br`` becomes a newline, and
    headings are a blank line, their direct text and a newline.

    Args:
        node: Subtree root
        preserve_headings: Keep h1-h6 text (dropped entirely when False)
        is_root: Whether ``node`` is where serialization started

    Returns:
        Serialized text
    """
    if is_text_node(node):
        text = node.strip()
        return f"{text} " if text else ""

    if not isinstance(node, Tag):
        return ""

    name = node.name
    if name in SKIP_TAGS:
        return ""

    if name in HEADING_TAGS:
        if not preserve_headings:
            return ""
        heading = "".join(
            f"{text} "
            for text in (child.strip() for child in node.children if is_text_node(child))
            if text
        )
        return f"\n\n{heading}\n"

    if name == "br":
        return "\n"

    inner = "".join(
        serialize_text(child, preserve_headings, is_root=False)
        for child in node.children
    )

    if name == "p":
        return ("" if is_root else "\n\n") + inner + "\n"
    if name == "li":
        return "\n- " + inner
    return inner


def collect_images(soup: BeautifulSoup) -> list[ImageRef]:
    """Every ``img`` with a non-empty ``src``, in document order."""
    images = []
    for img in soup.find_all("img"):
        src = img.get("src") or ""
        if src:
            images.append(ImageRef(url=src, alt=img.get("alt") or ""))
    return images


class DOMExtractor:
    """
    Extracts article content from HTML.

    Example:
        >>> extractor = DOMExtractor(ExtractionSettings(preserve_headings=True))
        >>> content = extractor.extract(page)
        >>> print(content.title, content.word_count)
    """

    def __init__(self, settings: ExtractionSettings | None = None) -> None:
        """
        Initialize DOM extractor.

        Args:
            settings: Heading, image and metadata switches
        """
        self.settings = settings or ExtractionSettings()
        self.metadata_extractor = MetadataExtractor(
            extract_metadata=self.settings.extract_metadata)

    def extract(self, page: RawPage) -> ExtractedContent:
        """
        Extract content from a fetched page.

        Raises:
            ContentExtractionError: If the HTML cannot be parsed
        """
        return self.extract_html(page.html, url=page.url)

    def extract_html(self, html: str | bytes, url: str = "") -> ExtractedContent:
        """
        Extract content from HTML text.

        A page without ``main`` or ``article`` gives empty text; that is
        not an error.

        Args:
            html: Page markup
            url: Page URL recorded on the result

        Returns:
            ExtractedContent for the page

        Raises:
            ContentExtractionError: If the HTML cannot be parsed
        """
        soup = parse_html(html, url)

        try:
            title, metadata = self.metadata_extractor.extract(soup)

            main = find_main_element(soup)
            if main is None:
                logger.debug(f"No main content element: {url}")
                text = ""
            else:
                text = serialize_text(main, self.settings.preserve_headings)

            images = collect_images(soup) if self.settings.extract_images else []
        except RecursionError as e:
            raise ContentExtractionError(
                "Document is nested too deeply to extract", url=url) from e

        return ExtractedContent(
            url=url,
            title=title,
            text=text,
            metadata=metadata,
            images=tuple(images),
            word_count=len(text.split()),
        )
