"""
Title and meta tag extraction.

Rules:
- Title: text of the first ``title`` element, verbatim; also stored as
  ``metadata["title"]``
- ``<meta name=... content=...>``: stored under the name, last one wins
- ``<meta property="og:..." content=...>``: stored under the property
- ``<meta property="article:published_time">``: stored as ``published_time``
"""

from bs4 import BeautifulSoup, Tag

from scrape_pipeline.extraction.page_parser import is_text_node
from scrape_pipeline.utils.logging import get_logger

logger = get_logger(__name__)

OPEN_GRAPH_PREFIX = "og:"

# Property-only meta tags kept under a different key
PROPERTY_ALIASES = {
    "article:published_time": "published_time",
}


class MetadataExtractor:
    """
    Extracts the page title and meta tags.

    Example:
        >>> extractor = MetadataExtractor()
        >>> title, metadata = extractor.extract(soup)
        >>> metadata.get("og:title")
    """

    def __init__(self, extract_metadata: bool = True) -> None:
        """
        Initialize metadata extractor.

        Args:
            extract_metadata: Read meta tags (the title entry is always kept)
        """
        self.extract_metadata = extract_metadata

    def extract(self, soup: BeautifulSoup) -> tuple[str, dict[str, str]]:
        """
        Extract title and metadata from a parsed document.

        Returns:
            (title, metadata) where title is "" if the page has none
        """
        metadata: dict[str, str] = {}

        title = self.extract_title(soup)
        if title is not None:
            metadata["title"] = title

        if self.extract_metadata:
            for meta in soup.find_all("meta"):
                self._apply_meta(meta, metadata)

        return title or "", metadata

    @staticmethod
    def extract_title(soup: BeautifulSoup) -> str | None:
        """Text of the first ``title`` element, or None if there is none."""
        title_tag = soup.find("title")
        if title_tag is None or not title_tag.contents:
            return None

        first = title_tag.contents[0]
        if not is_text_node(first):
            return None
        return str(first)

    @staticmethod
    def _apply_meta(meta: Tag, metadata: dict[str, str]) -> None:
        content = meta.get("content") or ""
        name = meta.get("name") or ""

        if name and content:
            metadata[name] = content
            return

        prop = meta.get("property") or ""
        if not prop or not content:
            return

        if prop.startswith(OPEN_GRAPH_PREFIX):
            metadata[prop] = content
        elif prop in PROPERTY_ALIASES:
            metadata[PROPERTY_ALIASES[prop]] = content
