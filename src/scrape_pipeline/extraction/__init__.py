"""
Extraction module for Scrape Pipeline.

Provides article extraction from fetched pages:
- HTML parsing and link discovery
- Title and meta tag rules
- Main content serialization, images and word count
"""

from scrape_pipeline.extraction.page_parser import (
    parse_html,
    is_text_node,
    extract_links,
)
from scrape_pipeline.extraction.metadata_extractor import MetadataExtractor
from scrape_pipeline.extraction.content_extractor import (
    DOMExtractor,
    collect_images,
    find_main_element,
    serialize_text,
)

__all__ = [
    # Parsing
    "parse_html",
    "is_text_node",
    "extract_links",
    # Metadata
    "MetadataExtractor",
    # Content extraction
    "DOMExtractor",
    "collect_images",
    "find_main_element",
    "serialize_text",
]
