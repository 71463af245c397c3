"""
Shared pytest fixtures for Scrape Pipeline tests.

Provides reusable fixtures for:
- Configuration and settings
- A mock site served through httpx.MockTransport
- Sample HTML
- Temporary resources
"""

import inspect
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Generator

import httpx
import pytest

from scrape_pipeline.config import ScraperSettings, Settings
from scrape_pipeline.utils.logging import reset_logging
from scrape_pipeline.utils.metrics import Metrics


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset process-wide metrics and logging around each test."""
    Metrics.reset()
    reset_logging()
    yield
    Metrics.reset()
    reset_logging()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class MockSite:
    """
    In-process stand-in for one or more web servers.

    Routes map absolute URLs to a (status, body) pair, a ready-made
    response factory, or a handler (sync or async) taking the request.
    Unknown URLs answer 404. Every request and every client build is
    recorded.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Any] = {}
        self.requests: list[httpx.Request] = []
        self.request_times: list[float] = []
        self.proxies: list[str | None] = []

    def add(self, url: str, route: Any) -> None:
        self.routes[url] = route

    def add_page(self, url: str, html: str, status: int = 200) -> None:
        self.routes[url] = (status, html)

    def calls_to(self, url: str) -> int:
        return sum(1 for request in self.requests if str(request.url) == url)

    @property
    def request_count(self) -> int:
        return len(self.requests)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.request_times.append(time.monotonic())

        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, text="not found")

        if isinstance(route, tuple):
            status, body = route
            return httpx.Response(status, html=body)

        result = route(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def client_factory(self, proxy: str | None) -> httpx.AsyncClient:
        self.proxies.append(proxy)
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))


@pytest.fixture
def mock_site() -> MockSite:
    """Provide an empty mock site."""
    return MockSite()


class RecordingObserver:
    """Observer that keeps every call for assertions."""

    def __init__(self) -> None:
        self.metrics: list[tuple[str, float, dict]] = []
        self.spans: list[str] = []
        self.ended: list[str] = []
        self.logs: list[tuple[str, str, dict]] = []

    def record_metric(self, name: str, value: float, labels: dict | None = None) -> None:
        self.metrics.append((name, value, dict(labels or {})))

    def start_span(self, name: str) -> Callable[[], None]:
        self.spans.append(name)
        return lambda: self.ended.append(name)

    def log(self, level: str, message: str, fields: dict | None = None) -> None:
        self.logs.append((level, message, dict(fields or {})))

    def total(self, name: str) -> float:
        return sum(value for metric, value, _ in self.metrics if metric == name)

    def messages(self, level: str) -> list[str]:
        return [message for lvl, message, _ in self.logs if lvl == level]


@pytest.fixture
def observer() -> RecordingObserver:
    """Provide a recording observer."""
    return RecordingObserver()


@pytest.fixture
def make_scraper_settings() -> Callable[..., ScraperSettings]:
    """
    Factory for scraper settings tuned for fast tests.

    High rate limit, no jitter and no retry delay unless overridden.
    """
    def factory(**overrides: Any) -> ScraperSettings:
        values = {
            "name": "Test Scraper",
            "url": "https://example.com",
            "rate_limit": 1000,
            "jitter_ratio": 0.0,
            "retry_count": 2,
            "retry_delay_seconds": 0.0,
            "timeout_seconds": 5.0,
        }
        values.update(overrides)
        return ScraperSettings(**values)

    return factory


@pytest.fixture
def test_settings(make_scraper_settings) -> Settings:
    """Provide a full configuration with one fast scraper."""
    return Settings(scrapers=[make_scraper_settings()])


@pytest.fixture
def article_html() -> str:
    """HTML with a title, one article, a heading, two paragraphs and an image."""
    return """<!DOCTYPE html>
<html>
<head>
    <title>Test Article</title>
    <meta name="description" content="A test page">
</head>
<body>
    <article>
        <h1>Main Heading</h1>
        <p>This is the first paragraph.</p>
        <p>This is the second paragraph.</p>
        <img src="/images/test.jpg" alt="Test Image">
    </article>
</body>
</html>"""


@pytest.fixture
def sample_html() -> str:
    """Provide a page with navigation, footer and scripts around the content."""
    return """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="author" content="Jane Writer">
    <meta property="og:title" content="Welcome OG">
    <meta property="article:published_time" content="2024-01-15T10:00:00Z">
    <title>Test Page Title</title>
    <script>var tracking = "script text";</script>
</head>
<body>
    <header>
        <nav>
            <a href="/home">Home</a>
            <a href="/products">Products</a>
        </nav>
    </header>
    <main>
        <h1>Welcome to Our Website</h1>
        <p>This is the main content of our test page.</p>
        <nav><a href="/inline">Inline navigation</a></nav>
        <h2>Our Products</h2>
        <ul>
            <li>Product A</li>
            <li>Product B</li>
        </ul>
        <style>.hidden { display: none; }</style>
        <!-- editorial comment -->
        <p>Email: contact@example.com</p>
        <img src="/img/logo.png">
        <img alt="no source">
    </main>
    <footer>
        <p>Copyright Test Company</p>
    </footer>
</body>
</html>"""
