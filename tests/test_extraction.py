"""
Tests for extraction module.

Tests HTML parsing helpers, title and meta rules, main content
serialization, image collection and word counts.
"""

import pytest
from bs4 import BeautifulSoup

from scrape_pipeline.config import ExtractionSettings
from scrape_pipeline.core.exceptions import ContentExtractionError, ExtractionError
from scrape_pipeline.core.models import ImageRef, RawPage
from scrape_pipeline.core.protocols import Extractor
from scrape_pipeline.extraction import (
    DOMExtractor,
    MetadataExtractor,
    extract_links,
    find_main_element,
    is_text_node,
    parse_html,
    serialize_text,
)


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


class TestPageParser:
    """Tests for parsing helpers."""

    def test_parse_html_returns_tree(self):
        """parse_html should build a searchable tree."""
        soup = parse_html("<html><body><p>Hi</p></body></html>")

        assert soup.find("p").get_text() == "Hi"

    def test_parse_html_accepts_utf8_bytes(self):
        """UTF-8 bytes should be decoded before parsing."""
        soup = parse_html("<p>café</p>".encode("utf-8"))

        assert soup.find("p").get_text() == "café"

    def test_parse_html_rejects_undecodable_bytes(self):
        """Bytes that are not UTF-8 should raise ContentExtractionError."""
        with pytest.raises(ContentExtractionError) as exc_info:
            parse_html(b"<p>\xff\xfe\xfa</p>", url="https://example.com/bad")

        assert exc_info.value.url == "https://example.com/bad"

    def test_parse_html_rejects_non_text(self):
        """Non-text input should raise ContentExtractionError."""
        with pytest.raises(ContentExtractionError):
            parse_html(None)

        with pytest.raises(ContentExtractionError):
            parse_html(12345)

    def test_is_text_node(self):
        """Comments and doctypes are not text nodes."""
        soup = _soup("<!DOCTYPE html><p>text<!-- note --></p>")
        p = soup.find("p")

        assert is_text_node(p.contents[0])
        assert not is_text_node(p.contents[1])
        assert not is_text_node(soup.contents[0])
        assert not is_text_node(p)

    def test_main_element_any_of_names(self):
        """The earliest main or article element wins, in document order."""
        soup = _soup("<div><article id='a'></article><main id='m'></main></div>")

        assert find_main_element(soup)["id"] == "a"
        assert find_main_element(_soup("<section></section>")) is None

    def test_extract_links_skips_malformed_href(self):
        """A malformed href is skipped and the other links survive."""
        html = '<a href="http://[oops/">Bad</a><a href="/ok">OK</a>'

        links = extract_links(html, "https://example.com/")

        assert links == ["https://example.com/ok"]

    def test_extract_links(self):
        """Links should be absolute, deduplicated and without fragments."""
        html = """
        <a href="/a">A</a>
        <a href="b#section">B</a>
        <a href="/a">A again</a>
        <a href="https://other.com/x">X</a>
        <a href="mailto:me@example.com">Mail</a>
        <a href="#top">Top</a>
        <a>No href</a>
        """

        links = extract_links(html, "https://example.com/dir/page")

        assert links == [
            "https://example.com/a",
            "https://example.com/dir/b",
            "https://other.com/x",
        ]


class TestMetadataExtractor:
    """Tests for title and meta rules."""

    def test_title_verbatim(self):
        """Title text should be kept exactly, whitespace included."""
        title, metadata = MetadataExtractor().extract(
            _soup("<title>  Spaced Title </title>"))

        assert title == "  Spaced Title "
        assert metadata["title"] == "  Spaced Title "

    def test_first_title_wins(self):
        """Only the first title element is used."""
        title, _ = MetadataExtractor().extract(
            _soup("<title>First</title><svg><title>Second</title></svg>"))

        assert title == "First"

    def test_missing_title(self):
        """No title element means empty title and no metadata entry."""
        title, metadata = MetadataExtractor().extract(_soup("<p>No title</p>"))

        assert title == ""
        assert "title" not in metadata

    def test_name_content_last_wins(self):
        """Repeated meta names keep the last value."""
        _, metadata = MetadataExtractor().extract(_soup(
            '<meta name="author" content="First">'
            '<meta name="author" content="Second">'
        ))

        assert metadata["author"] == "Second"

    def test_empty_name_or_content_ignored(self):
        """name/content pairs need both values present."""
        _, metadata = MetadataExtractor().extract(_soup(
            '<meta name="keywords" content="">'
            '<meta name="" content="orphan">'
            '<meta charset="utf-8">'
        ))

        assert metadata == {}

    def test_open_graph_properties(self):
        """og: properties are stored under the literal property name."""
        _, metadata = MetadataExtractor().extract(_soup(
            '<meta property="og:description" content="Desc">'
            '<meta property="og:image" content="/img.png">'
        ))

        assert metadata == {"og:description": "Desc", "og:image": "/img.png"}

    def test_published_time_remapped(self):
        """article:published_time is stored as published_time."""
        _, metadata = MetadataExtractor().extract(_soup(
            '<meta property="article:published_time" content="2024-01-15">'))

        assert metadata == {"published_time": "2024-01-15"}

    def test_other_properties_ignored(self):
        """Property-only tags without og: prefix are dropped."""
        _, metadata = MetadataExtractor().extract(_soup(
            '<meta property="article:author" content="Someone">'
            '<meta property="fb:app_id" content="123">'
        ))

        assert metadata == {}

    def test_og_title_and_name_title_independent(self):
        """og:title and name=title are separate keys."""
        _, metadata = MetadataExtractor().extract(_soup(
            '<meta property="og:title" content="X">'
            '<meta name="title" content="Y">'
        ))

        assert metadata["og:title"] == "X"
        assert metadata["title"] == "Y"

    def test_meta_name_overrides_title_entry(self):
        """A later meta name=title replaces the entry from the title element."""
        title, metadata = MetadataExtractor().extract(_soup(
            '<title>Page</title><meta name="title" content="Meta Title">'))

        assert title == "Page"
        assert metadata["title"] == "Meta Title"

    def test_metadata_switch_keeps_title(self):
        """With meta extraction off only the title entry remains."""
        title, metadata = MetadataExtractor(extract_metadata=False).extract(_soup(
            '<title>Page</title><meta name="author" content="A">'))

        assert title == "Page"
        assert metadata == {"title": "Page"}


class TestSerializeText:
    """Tests for the text serialization rules."""

    def test_structured_output(self):
        """Headings, paragraphs, list items and breaks follow the format rules."""
        soup = _soup(
            "<article><h1>Title</h1><p>One <b>two</b></p>"
            "<ul><li>A</li><li>B</li></ul>line<br>next</article>"
        )

        text = serialize_text(soup.find("article"), preserve_headings=True)

        assert text == "\n\nTitle \n\n\nOne two \n\n- A \n- B line \nnext "

    def test_root_paragraph_has_no_leading_blank_line(self):
        """A paragraph at the root is not preceded by a blank line."""
        soup = _soup("<p>Only <i>this</i></p>")

        assert serialize_text(soup.find("p")) == "Only this \n"

    def test_heading_uses_direct_text_only(self):
        """Heading text comes from direct text children, joined by spaces."""
        soup = _soup("<main><h2>Intro <span>nested</span> tail</h2></main>")

        assert serialize_text(soup.find("main")) == "\n\nIntro tail \n"

    def test_headings_skipped_when_not_preserved(self):
        """Headings produce nothing when preservation is off."""
        soup = _soup("<main><h1>Heading</h1><p>Body</p></main>")

        text = serialize_text(soup.find("main"), preserve_headings=False)

        assert "Heading" not in text
        assert text == "\n\nBody \n"

    def test_skipped_subtrees(self):
        """script, style, nav and footer subtrees are not serialized."""
        soup = _soup(
            "<main>keep<script>s()</script><style>.a{}</style>"
            "<nav>menu</nav><footer>foot</footer></main>"
        )

        assert serialize_text(soup.find("main")) == "keep "

    def test_whitespace_only_text_ignored(self):
        """Whitespace-only text nodes add nothing."""
        soup = _soup("<main>\n   <span>  word  </span>\n</main>")

        assert serialize_text(soup.find("main")) == "word "


class TestDOMExtractor:
    """Tests for DOMExtractor."""

    @pytest.fixture
    def extractor(self) -> DOMExtractor:
        """Provide an extractor with default settings."""
        return DOMExtractor(ExtractionSettings())

    def test_satisfies_extractor_role(self, extractor: DOMExtractor):
        """DOMExtractor should satisfy the Extractor protocol."""
        assert isinstance(extractor, Extractor)

    def test_test_article_scenario(self, extractor: DOMExtractor, article_html: str):
        """Title, paragraphs, heading and image come out of a simple article."""
        content = extractor.extract_html(article_html, url="https://example.com/a")

        assert content.url == "https://example.com/a"
        assert content.title == "Test Article"
        assert "This is the first paragraph." in content.text
        assert "This is the second paragraph." in content.text
        assert "Main Heading" in content.text
        assert content.images == (ImageRef(url="/images/test.jpg", alt="Test Image"),)
        assert content.metadata["title"] == "Test Article"
        assert content.metadata["description"] == "A test page"

    def test_extract_from_raw_page(self, extractor: DOMExtractor, article_html: str):
        """extract() should use the page's URL and HTML."""
        page = RawPage(url="https://example.com/p", html=article_html, status_code=200)

        content = extractor.extract(page)

        assert content.url == "https://example.com/p"
        assert content.title == "Test Article"

    def test_nav_footer_script_excluded(self, extractor: DOMExtractor, sample_html: str):
        """Navigation, footer, script, style and comment text never reaches the body."""
        content = extractor.extract_html(sample_html)

        assert "Welcome to Our Website" in content.text
        assert "main content of our test page" in content.text
        assert "- Product A" in content.text
        assert "Email: contact@example.com" in content.text
        for excluded in ("Inline navigation", "Home", "Copyright",
                         "script text", "display", "editorial comment"):
            assert excluded not in content.text

    def test_sample_metadata(self, extractor: DOMExtractor, sample_html: str):
        """Meta tags of the sample page are mapped by the rules."""
        content = extractor.extract_html(sample_html)

        assert content.metadata == {
            "title": "Test Page Title",
            "author": "Jane Writer",
            "og:title": "Welcome OG",
            "published_time": "2024-01-15T10:00:00Z",
        }

    def test_images_without_src_skipped(self, extractor: DOMExtractor, sample_html: str):
        """Only img elements with a src become image references."""
        content = extractor.extract_html(sample_html)

        assert content.images == (ImageRef(url="/img/logo.png", alt=""),)

    def test_images_disabled(self, article_html: str):
        """No images are collected when image extraction is off."""
        extractor = DOMExtractor(ExtractionSettings(extract_images=False))

        assert extractor.extract_html(article_html).images == ()

    @pytest.mark.parametrize("preserve", [True, False])
    def test_headings_iff_preserved(self, article_html: str, preserve: bool):
        """Heading text appears exactly when preservation is on."""
        extractor = DOMExtractor(ExtractionSettings(preserve_headings=preserve))

        content = extractor.extract_html(article_html)

        assert ("Main Heading" in content.text) is preserve
        assert "This is the first paragraph." in content.text

    def test_main_preferred_in_document_order(self, extractor: DOMExtractor):
        """The first of main/article in document order is the content root."""
        html = "<article>First article</article><main>Main area</main>"

        content = extractor.extract_html(html)

        assert content.text == "First article "

    def test_no_main_content_is_empty_not_error(self, extractor: DOMExtractor):
        """Pages without main or article give empty text."""
        content = extractor.extract_html(
            "<html><head><title>T</title></head><body><div>Loose text</div></body></html>")

        assert content.title == "T"
        assert content.text == ""
        assert content.word_count == 0

    def test_find_main_element_none(self):
        """find_main_element returns None when nothing qualifies."""
        assert find_main_element(_soup("<div>x</div>")) is None

    def test_word_count(self, extractor: DOMExtractor):
        """Word count is the number of whitespace-separated tokens."""
        content = extractor.extract_html(
            "<main><p>one two three</p><ul><li>four</li></ul></main>")

        assert content.word_count == 5

    def test_extraction_idempotent(self, extractor: DOMExtractor, sample_html: str):
        """Same HTML and settings yield identical results."""
        first = extractor.extract_html(sample_html, url="https://example.com/")
        second = extractor.extract_html(sample_html, url="https://example.com/")

        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_unparseable_input_raises(self, extractor: DOMExtractor):
        """Non-text HTML is a ContentExtractionError."""
        with pytest.raises(ExtractionError):
            extractor.extract_html(b"\xff\xfe\xfa", url="https://example.com/bin")

    def test_to_dict(self, extractor: DOMExtractor, article_html: str):
        """to_dict should be JSON-friendly."""
        data = extractor.extract_html(article_html, url="u").to_dict()

        assert data["title"] == "Test Article"
        assert data["images"] == [{"url": "/images/test.jpg", "alt": "Test Image"}]
        assert isinstance(data["metadata"], dict)
        assert data["word_count"] == len(data["text"].split())
