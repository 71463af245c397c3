"""
URL filtering for web crawling.

Provides allow/deny pattern filtering, domain boundary enforcement,
and robots exclusions (configured prefixes plus robots.txt rules).
"""

import re
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import httpx

from scrape_pipeline.core.exceptions import RobotsBlockedError
from scrape_pipeline.utils.logging import get_logger

logger = get_logger(__name__)


class URLFilter:
    """
    Filter URLs based on patterns and rules.

    Supports:
    - Allow/deny regex patterns
    - Domain boundary enforcement

    Example:
        >>> url_filter = URLFilter(
        ...     deny_patterns=[r"\\.pdf$", r"/login"],
        ...     allowed_domains=["example.com"],
        ... )
        >>> url_filter.is_allowed("https://example.com/page")
        True
        >>> url_filter.is_allowed("https://example.com/file.pdf")
        False
    """

    def __init__(
        self,
        allow_patterns: list[str] | None = None,
        deny_patterns: list[str] | None = None,
        allowed_domains: list[str] | None = None,
    ) -> None:
        """
        Initialize URL filter.

        Args:
            allow_patterns: Regex patterns URLs must match (empty = all)
            deny_patterns: Regex patterns to reject
            allowed_domains: Domains to allow, subdomains included (empty = all)
        """
        self.allow_patterns = allow_patterns or []
        self.deny_patterns = deny_patterns or []
        self.allowed_domains = set(d.lower() for d in (allowed_domains or []))

        # Compile once
        self._allow_compiled = [re.compile(p) for p in self.allow_patterns]
        self._deny_compiled = [re.compile(p) for p in self.deny_patterns]

    def is_allowed(self, url: str) -> bool:
        """Check if URL passes all filters."""
        return self.get_rejection_reason(url) is None

    def _domain_matches(self, domain: str) -> bool:
        """Check if domain is in allowed list (including subdomains)."""
        host = domain.split(":", 1)[0]
        for allowed in self.allowed_domains:
            if host == allowed or host.endswith("." + allowed):
                return True
        return False

    def filter_urls(self, urls: list[str]) -> list[str]:
        return [url for url in urls if self.is_allowed(url)]

    @staticmethod
    def validate(url: str) -> str | None:
        """
        Check that ``url`` is a fetchable absolute http(s) URL.

        Returns:
            Problem description or None if the URL is well formed
        """
        try:
            parsed = urlparse(url)
        except ValueError as e:
            return f"Unparseable URL: {e}"

        if parsed.scheme not in ("http", "https"):
            return f"Invalid scheme: {parsed.scheme}"

        if not parsed.netloc:
            return "No host in URL"

        return None

    def get_rejection_reason(self, url: str) -> str | None:
        """
        Get reason why URL was rejected.

        Malformed URLs are rejected first, then domain boundaries apply.
        Deny patterns are checked before allow patterns.

        Returns:
            Rejection reason or None if allowed
        """
        invalid = self.validate(url)
        if invalid is not None:
            return invalid

        # Domain boundary
        domain = urlparse(url).netloc.lower()
        if self.allowed_domains and not self._domain_matches(domain):
            return f"Domain not allowed: {domain}"

        # Deny wins over allow
        for pattern in self._deny_compiled:
            if pattern.search(url):
                return f"Matched deny pattern: {pattern.pattern}"

        # Must match at least one allow pattern, if any are defined
        if self._allow_compiled:
            if not any(p.search(url) for p in self._allow_compiled):
                return "No allow pattern matched"

        return None


class RobotsRules:
    """
    Robots exclusions recorded per domain.

    Two sources are combined: configured path prefixes, and the rules of a
    fetched ``/robots.txt`` evaluated with ``RobotFileParser``. Checking
    never touches the network.

    Example:
        >>> rules = RobotsRules(respect_robots=True)
        >>> rules.add_disallowed("example.com", ["/private/"])
        >>> rules.is_allowed("https://example.com/private/data")
        False
    """

    def __init__(
        self,
        respect_robots: bool = True,
        user_agent: str = "Scrape-Pipeline/1.0",
    ) -> None:
        """
        Initialize robots rules.

        Args:
            respect_robots: If False, allows all URLs (disabled mode)
            user_agent: User agent string for robots.txt matching
        """
        self.respect_robots = respect_robots
        self.user_agent = user_agent
        self._disallowed: dict[str, list[str]] = {}
        self._parsers: dict[str, RobotFileParser] = {}
        self._loaded: set[str] = set()

    def add_disallowed(self, domain: str, prefixes: list[str]) -> None:
        """Record disallowed prefixes for ``domain``."""
        recorded = self._disallowed.setdefault(domain.lower(), [])
        for prefix in prefixes:
            if prefix and prefix not in recorded:
                recorded.append(prefix)

    def disallowed_for(self, domain: str) -> list[str]:
        return list(self._disallowed.get(domain.lower(), []))

    def matching_prefix(self, url: str) -> str | None:
        """Configured prefix that ``url`` falls under, if any."""
        if not self.respect_robots:
            return None

        parsed = urlparse(url)
        path = parsed.path or "/"
        for prefix in self._disallowed.get(parsed.netloc.lower(), []):
            if path.startswith(prefix):
                return prefix
        return None

    def _blocked_by_robots_txt(self, url: str) -> bool:
        parser = self._parsers.get(urlparse(url).netloc.lower())
        # No robots.txt = allow all
        if parser is None:
            return False
        return not parser.can_fetch(self.user_agent, url)

    def is_allowed(self, url: str) -> bool:
        if not self.respect_robots:
            return True
        return self.matching_prefix(url) is None and not self._blocked_by_robots_txt(url)

    def check_or_raise(self, url: str) -> None:
        """
        Check URL and raise exception if blocked.

        Raises:
            RobotsBlockedError: If a configured prefix or robots.txt blocks the URL
        """
        if not self.respect_robots:
            return

        # Configured prefixes first, then the fetched robots.txt
        prefix = self.matching_prefix(url)
        if prefix is not None:
            raise RobotsBlockedError(
                "URL is disallowed by robots.txt",
                url=url,
                prefix=prefix,
            )
        if self._blocked_by_robots_txt(url):
            raise RobotsBlockedError("URL blocked by robots.txt", url=url)

    def is_loaded(self, domain: str) -> bool:
        return domain.lower() in self._loaded

    async def load(self, base_url: str, client: httpx.AsyncClient) -> bool:
        """
        Fetch ``/robots.txt`` for the URL's domain and keep its rules.

        Missing or unreadable robots.txt records nothing (allow all).
        Each domain is fetched at most once.

        Returns:
            True if rules were loaded for the domain
        """
        parsed = urlparse(base_url)
        domain = parsed.netloc.lower()
        if domain in self._loaded:
            return False
        self._loaded.add(domain)

        robots_url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"
        try:
            response = await client.get(robots_url)
        except httpx.HTTPError as e:
            logger.warning(f"Error fetching robots.txt from {robots_url}: {e}")
            return False

        if response.status_code != 200:
            # No robots.txt or forbidden = allow all
            logger.debug(
                f"No robots.txt at {robots_url} ({response.status_code})")
            return False

        parser = RobotFileParser(robots_url)
        parser.parse(response.text.splitlines())
        self._parsers[domain] = parser
        logger.debug(f"Loaded robots.txt from {robots_url}")
        return True
