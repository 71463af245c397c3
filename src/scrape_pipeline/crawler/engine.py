"""
Streaming crawl engine.

Turns a URL list into two channels, one of RawPage and one of
FetchError, while enforcing per-domain pacing and concurrency, bounded
retries, round-robin proxies, robots prefix exclusions and cooperative
cancellation.
"""

import asyncio
import random
from contextlib import aclosing
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Sequence

import httpx

from scrape_pipeline.config.settings import DEFAULT_RATE_LIMIT, ScraperSettings
from scrape_pipeline.core.cancellation import CancellationToken
from scrape_pipeline.core.exceptions import (
    CrawlCancelledError,
    HTTPStatusError,
    RateLimitError,
    RobotsBlockedError,
    TransportError,
    URLFilteredError,
)
from scrape_pipeline.core.models import FetchError, RawPage, RetryState, domain_of
from scrape_pipeline.core.protocols import Observer
from scrape_pipeline.crawler.channel import Channel
from scrape_pipeline.crawler.filters import RobotsRules, URLFilter
from scrape_pipeline.crawler.policy import ProxyRotator, RetryPolicy
from scrape_pipeline.crawler.queue import QueuedURL, URLPriority, URLQueue
from scrape_pipeline.crawler.rate_limiter import DomainRateLimiter
from scrape_pipeline.extraction.page_parser import extract_links
from scrape_pipeline.utils.logging import get_logger, get_logger_with_context
from scrape_pipeline.utils.metrics import as_observer

logger = get_logger(__name__)

ACCEPT_HEADER = "text/html,application/xhtml+xml,application/xml"

# Builds the HTTP client for a proxy URL (None = direct connection)
ClientFactory = Callable[[str | None], httpx.AsyncClient]


@dataclass
class CrawlStats:
    """Counters for one crawl run."""

    dispatched: int = 0
    fetched: int = 0
    failed: int = 0
    filtered: int = 0
    robots_blocked: int = 0
    retried: int = 0
    discovered: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class CrawlRun:
    """
    Handle on a running crawl.

    Both channels are closed when the run completes or is cancelled.
    Records arrive in no particular order; key them by URL.
    """

    def __init__(self, token: CancellationToken) -> None:
        self.token = token
        self.pages: Channel[RawPage] = Channel("pages")
        self.errors: Channel[FetchError] = Channel("errors")
        self.stats = CrawlStats()
        self.started_at = datetime.now(timezone.utc)
        self.completed_at: datetime | None = None
        self._task: asyncio.Task | None = None
        self._state: _RunState | None = None
        self._aborted = False

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled or self._aborted

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation of the run."""
        self.token.cancel(reason)

    def abort(self) -> None:
        """Stop this run only; the shared token is left untouched."""
        if self._task is not None and not self._task.done():
            self._aborted = True
            self._task.cancel()

    async def add_urls(self, urls: Sequence[str]) -> int:
        """
        Queue more input URLs on the running crawl.

        They are handled like the initial URLs (depth 0, one record each).
        Work is spread over the workers started for the initial domains.

        Returns:
            Number of URLs queued; 0 once the run no longer accepts work
        """
        state = self._state
        if state is None or not state.accepting or self.token.cancelled:
            logger.debug(f"Run no longer accepts URLs; ignored {len(urls)}")
            return 0
        return await state.frontier.put_many(
            list(urls), priority=URLPriority.SEED, depth=0, exact=True)

    async def wait(self) -> CrawlStats:
        """Wait for the run to finish (both channels closed)."""
        if self._task is not None:
            await self._task
        return self.stats


class _RunState:
    """Resources owned by a single run."""

    def __init__(
        self,
        engine: "CrawlEngine",
        frontier: URLQueue,
        limiter: DomainRateLimiter,
        proxies: ProxyRotator,
    ) -> None:
        self.engine = engine
        self.frontier = frontier
        self.limiter = limiter
        self.proxies = proxies
        self.clients: dict[str | None, httpx.AsyncClient] = {}
        self.semaphores: dict[str, asyncio.Semaphore] = {}
        self.robots_locks: dict[str, asyncio.Lock] = {}
        # URLs that already produced a page; they never get an error record
        self.emitted: set[str] = set()
        self.accepting = True

    def client_for(self, proxy: str | None) -> httpx.AsyncClient:
        client = self.clients.get(proxy)
        if client is None:
            client = self.clients[proxy] = self.engine.client_factory(proxy)
        return client

    def semaphore_for(self, domain: str) -> asyncio.Semaphore:
        semaphore = self.semaphores.get(domain)
        if semaphore is None:
            semaphore = self.semaphores[domain] = asyncio.Semaphore(
                self.engine.settings.concurrency)
        return semaphore

    def robots_lock_for(self, domain: str) -> asyncio.Lock:
        return self.robots_locks.setdefault(domain, asyncio.Lock())

    async def aclose(self) -> None:
        for client in self.clients.values():
            await client.aclose()
        self.clients.clear()


class CrawlEngine:
    """
    Concurrent fetcher for the URLs of one configured scraper.

    Example:
        >>> engine = CrawlEngine(scraper_settings)
        >>> token = CancellationToken()
        >>> run = engine.start(["https://example.com/a"], token)
        >>> async for page in run.pages:
        ...     print(page.url, page.status_code)
        >>> await run.wait()
    """

    def __init__(
        self,
        settings: ScraperSettings,
        *,
        client_factory: ClientFactory | None = None,
        observer: Observer | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize crawl engine.

        Args:
            settings: Crawl policy for the scraper
            client_factory: Builds an httpx.AsyncClient per proxy
            observer: Receives metrics, spans and logs
            rng: Random source for rate-limit jitter
        """
        self.settings = settings
        self.client_factory = client_factory or self._default_client
        self.observer = as_observer(observer)
        self._rng = rng
        self._rate_limit = settings.rate_limit

        self.url_filter = URLFilter(
            allow_patterns=settings.allow_url_patterns,
            deny_patterns=settings.deny_url_patterns,
            allowed_domains=settings.allowed_domains,
        )
        self.robots = RobotsRules(
            respect_robots=settings.respect_robots_txt,
            user_agent=settings.user_agent,
        )
        self.robots.add_disallowed(
            domain_of(settings.url), settings.disallowed_paths)
        self.retry_policy = RetryPolicy(
            max_retries=settings.retry_count,
            delay_seconds=settings.retry_delay_seconds,
            backoff_factor=settings.backoff_factor,
        )

    def _default_client(self, proxy: str | None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            proxy=proxy,
            timeout=httpx.Timeout(self.settings.timeout_seconds),
            follow_redirects=True,
        )

    def set_rate_limit(self, requests_per_second: float) -> None:
        """Change the default per-domain rate for runs started afterwards."""
        self._rate_limit = (
            requests_per_second if requests_per_second > 0 else DEFAULT_RATE_LIMIT
        )

    def rate_for(self, domain: str) -> float:
        return self.settings.rate_limit_rules.get(domain.lower(), self._rate_limit)

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def start(
        self,
        urls: Sequence[str],
        cancel_token: CancellationToken | None = None,
        max_depth: int | None = None,
    ) -> CrawlRun:
        """
        Schedule a crawl on the running event loop.

        Args:
            urls: Seed URLs, in dispatch order
            cancel_token: Shared cancellation signal (a new one if None)
            max_depth: Override for the configured link depth

        Returns:
            CrawlRun exposing the page and error channels
        """
        run = CrawlRun(cancel_token or CancellationToken())
        depth = self.settings.max_depth if max_depth is None else max_depth
        # Created up front so add_urls() works before the task first runs
        run._state = _RunState(
            engine=self,
            frontier=URLQueue(max_depth=depth, policy=self.settings),
            limiter=DomainRateLimiter(
                rate_for=self.rate_for,
                jitter_ratio=self.settings.jitter_ratio,
                rng=self._rng,
            ),
            proxies=ProxyRotator(self.settings.proxy_urls),
        )
        run._task = asyncio.get_running_loop().create_task(
            self._run(list(urls), run, run._state))
        return run

    async def crawl(
        self,
        urls: Sequence[str],
        cancel_token: CancellationToken | None = None,
    ) -> AsyncIterator[RawPage | FetchError]:
        """
        Crawl ``urls`` and yield pages and errors as they arrive.

        Stopping iteration early cancels the run.
        """
        run = self.start(urls, cancel_token)
        async with aclosing(self._records(run)) as records:
            async for record in records:
                yield record

    async def scrape_one(
        self,
        url: str,
        cancel_token: CancellationToken | None = None,
    ) -> RawPage:
        """
        Fetch a single URL through the full policy, without link following.

        Raises:
            URLFilteredError: If the URL is dropped by the URL filter
            RobotsBlockedError: If a robots prefix disallows the URL
            TransportError: If the fetch fails after retries
            CrawlCancelledError: If the token fires first
        """
        run = self.start([url], cancel_token, max_depth=0)
        records = [record async for record in self._records(run)]

        for record in records:
            if isinstance(record, RawPage):
                return record
        for record in records:
            raise record.cause
        if run.cancelled:
            raise CrawlCancelledError("Crawl cancelled", url=url)
        raise URLFilteredError(
            self.url_filter.get_rejection_reason(url) or "URL filtered",
            url=url,
        )

    async def _records(self, run: CrawlRun) -> AsyncIterator[RawPage | FetchError]:
        """Merge both channels of ``run`` into one stream."""
        merged: Channel[RawPage | FetchError] = Channel("records")

        async def pump(channel: Channel) -> None:
            async for item in channel:
                merged.send(item)

        async def forward() -> None:
            try:
                await asyncio.gather(pump(run.pages), pump(run.errors))
            finally:
                merged.close()

        forwarder = asyncio.ensure_future(forward())
        try:
            async for record in merged:
                yield record
        finally:
            if not run.done:
                run.abort()
            # The run task may have been aborted; settle without raising
            await asyncio.wait({run._task, forwarder})
            if not run._aborted:
                await run.wait()

    # ------------------------------------------------------------------
    # Run supervision
    # ------------------------------------------------------------------

    async def _run(self, urls: list[str], run: CrawlRun, state: _RunState) -> None:
        token = run.token
        end_span = self.observer.start_span("crawl_run")

        logger.info(
            f"Starting crawl '{self.settings.name}': {len(urls)} URLs, "
            f"concurrency={self.settings.concurrency}, "
            f"max_depth={state.frontier.max_depth}"
        )

        try:
            # Exact duplicates collapse; '/a' and '/a/' are distinct inputs
            await state.frontier.put_many(
                list(dict.fromkeys(urls)),
                priority=URLPriority.SEED,
                depth=0,
                exact=True,
            )

            seed_domains = {domain_of(url) for url in urls} or {""}
            worker_count = self.settings.concurrency * len(seed_domains)
            workers = [
                asyncio.create_task(self._worker(state, run))
                for _ in range(worker_count)
            ]

            try:
                await self._supervise(state, token)
            finally:
                state.accepting = False
                # Abandons in-flight requests when cancelled
                for worker in workers:
                    worker.cancel()
                await asyncio.gather(*workers, return_exceptions=True)

        finally:
            state.accepting = False
            run.pages.close()
            run.errors.close()
            await state.aclose()
            run.completed_at = datetime.now(timezone.utc)
            end_span()

            if token.cancelled:
                logger.info(
                    f"Crawl '{self.settings.name}' cancelled: "
                    f"{state.frontier.pending_count} targets not dispatched"
                )
            logger.info(
                f"Crawl '{self.settings.name}' finished: "
                f"{run.stats.fetched} pages, {run.stats.failed} errors, "
                f"{run.stats.filtered} filtered, {run.stats.retried} retries"
            )
            self.observer.log(
                "info",
                "Crawl cancelled" if run.cancelled else "Crawl finished",
                {"scraper": self.settings.name, **run.stats.to_dict()},
            )

    @staticmethod
    async def _supervise(state: _RunState, token: CancellationToken) -> None:
        """Return once the frontier drains or the token fires."""
        while not token.cancelled:
            finished = asyncio.ensure_future(state.frontier.join())
            cancelled = asyncio.ensure_future(token.wait())
            try:
                await asyncio.wait(
                    {finished, cancelled},
                    return_when=asyncio.FIRST_COMPLETED,
                )
            finally:
                finished.cancel()
                cancelled.cancel()
            # add_urls() may have refilled the frontier in the meantime
            if state.frontier.is_idle:
                return

    async def _worker(self, state: _RunState, run: CrawlRun) -> None:
        """Take targets from the frontier until the run is torn down."""
        while True:
            entry = await state.frontier.get()
            try:
                if run.token.cancelled:
                    continue
                await self._process(entry, state, run)
            except CrawlCancelledError:
                logger.debug(f"Abandoned on cancellation: {entry.url}")
            except Exception as e:
                # Isolated per target: report it and keep the run going
                logger.exception(f"Unexpected error crawling {entry.url}")
                if entry.url not in state.emitted:
                    self._emit_error(run, FetchError(entry.url, e, 0))
            finally:
                state.frontier.task_done()

    # ------------------------------------------------------------------
    # Per-target processing
    # ------------------------------------------------------------------

    async def _process(self, entry: QueuedURL, state: _RunState, run: CrawlRun) -> None:
        url = entry.url
        domain = entry.domain
        log = get_logger_with_context(__name__, url=url)

        # Malformed URLs get an error record; rule-based filtering is silent
        invalid = URLFilter.validate(url)
        if invalid is not None:
            log.warning(f"Rejected: {invalid}")
            self._emit_error(run, FetchError(
                url, URLFilteredError(invalid, url=url), 0))
            return

        reason = self.url_filter.get_rejection_reason(url)
        if reason is not None:
            run.stats.filtered += 1
            self.observer.record_metric(
                "crawl_filtered_total", 1, {"domain": domain})
            log.debug(f"Filtered out: {reason}")
            return

        # Robots rules
        self.robots.add_disallowed(domain, self.settings.disallowed_paths)
        if self.settings.fetch_robots_txt and self.robots.respect_robots:
            await self._ensure_robots(url, domain, state, run.token)

        try:
            self.robots.check_or_raise(url)
        except RobotsBlockedError as e:
            run.stats.robots_blocked += 1
            log.info(f"Blocked by robots rules: {e}")
            self.observer.log(
                "info", "Blocked by robots rules",
                {"url": url, "prefix": e.prefix})
            self._emit_error(run, FetchError(url, e, 0))
            return

        # Fetch
        record = await self._fetch_with_retry(entry, state, run)

        if isinstance(record, FetchError):
            self._emit_error(run, record)
            return

        if not self._emit(run, run.pages, record):
            return
        state.emitted.add(url)
        run.stats.fetched += 1
        self.observer.record_metric(
            "crawl_pages_total", 1, {"domain": domain})

        # Queue discovered links
        if entry.depth < state.frontier.max_depth and record.is_html:
            try:
                await self._discover_links(record, entry, state, run)
            except CrawlCancelledError:
                raise
            except Exception:
                # The page record stands; only its links are lost
                log.exception("Link discovery failed")

    async def _ensure_robots(
        self,
        url: str,
        domain: str,
        state: _RunState,
        token: CancellationToken,
    ) -> None:
        async with state.robots_lock_for(domain):
            if self.robots.is_loaded(domain):
                return
            proxy = await state.proxies.next()
            if await token.guard(self.robots.load(url, state.client_for(proxy))):
                logger.info(f"Loaded robots.txt for {domain}")

    async def _fetch_with_retry(
        self,
        entry: QueuedURL,
        state: _RunState,
        run: CrawlRun,
    ) -> RawPage | FetchError:
        """
        Fetch ``entry`` until it succeeds, fails terminally or runs out of retries.

        Raises:
            CrawlCancelledError: If the token fires at any suspension point
        """
        url = entry.url
        token = run.token
        retry = RetryState(domain=entry.domain)
        log = get_logger_with_context(__name__, url=url)

        while True:
            token.raise_if_cancelled()
            if retry.remaining_delay > 0:
                await token.sleep(retry.remaining_delay)

            failure = None
            response = None
            semaphore = state.semaphore_for(retry.domain)
            await token.guard(semaphore.acquire())
            try:
                await state.limiter.acquire(url, token)
                proxy = await state.proxies.next()
                client = state.client_for(proxy)

                token.raise_if_cancelled()
                retry.record_attempt()
                run.stats.dispatched += 1
                self.observer.record_metric(
                    "crawl_requests_total", 1, {"domain": retry.domain})

                loop = asyncio.get_running_loop()
                started = loop.time()
                try:
                    response = await token.guard(asyncio.wait_for(
                        client.get(url, headers=self._request_headers()),
                        timeout=self.settings.timeout_seconds,
                    ))
                except (asyncio.TimeoutError, httpx.TimeoutException):
                    failure = TransportError(
                        f"Request timed out after {self.settings.timeout_seconds}s",
                        url=url,
                    )
                except httpx.HTTPError as e:
                    failure = TransportError(
                        f"Request failed: {e}", url=url)
                finally:
                    self.observer.record_metric(
                        "crawl_fetch_latency_ms",
                        (loop.time() - started) * 1000,
                        {"domain": retry.domain},
                    )
            finally:
                semaphore.release()

            if response is not None:
                if response.status_code < 400:
                    return self._build_page(url, response, entry.depth)
                failure = self._status_failure(url, response)

            if isinstance(failure, HTTPStatusError) and not failure.retryable:
                log.warning(f"Giving up: HTTP {failure.status_code}")
                self._log_give_up(url, failure, retry.attempts)
                return FetchError(url, failure, retry.attempts)

            if self.retry_policy.should_retry(failure.status_code, retry.attempts):
                delay = self.retry_policy.delay_for(
                    retry.attempts, failure.retry_after)
                retry.schedule(delay)
                run.stats.retried += 1
                self.observer.record_metric(
                    "crawl_retries_total", 1, {"domain": retry.domain})
                log.warning(
                    f"Will retry in {delay:.1f}s "
                    f"({retry.attempts}/{self.retry_policy.max_retries + 1}): {failure}"
                )
                continue

            log.warning(
                f"Giving up after {retry.attempts} attempts: {failure}")
            self._log_give_up(url, failure, retry.attempts)
            return FetchError(url, failure, retry.attempts)

    def _log_give_up(self, url: str, failure: Exception, attempts: int) -> None:
        self.observer.log("warning", "Giving up", {
            "url": url,
            "attempts": attempts,
            "error": str(failure),
        })

    def _request_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.settings.user_agent,
            "Accept": ACCEPT_HEADER,
        }

    @staticmethod
    def _status_failure(url: str, response: httpx.Response) -> HTTPStatusError:
        status = response.status_code
        if status == 429:
            return RateLimitError(
                "Too many requests",
                url=url,
                retry_after=_parse_retry_after(
                    response.headers.get("Retry-After")),
            )
        return HTTPStatusError(f"HTTP {status}", url=url, status_code=status)

    @staticmethod
    def _build_page(url: str, response: httpx.Response, depth: int) -> RawPage:
        headers: dict[str, str] = {}
        for name, value in response.headers.multi_items():
            headers.setdefault(name, value)

        return RawPage(
            url=url,
            html=response.text,
            status_code=response.status_code,
            content_type=response.headers.get("content-type", ""),
            headers=headers,
            fetched_at=datetime.now(timezone.utc),
            depth=depth,
        )

    async def _discover_links(
        self,
        page: RawPage,
        entry: QueuedURL,
        state: _RunState,
        run: CrawlRun,
    ) -> None:
        if run.token.cancelled:
            return

        # CPU-bound; runs off the event loop
        found = await run.token.guard(
            asyncio.to_thread(extract_links, page.html, page.url))
        links = [link for link in found if self.url_filter.is_allowed(link)]
        added = await state.frontier.put_many(
            links,
            priority=URLPriority.DISCOVERED,
            depth=entry.depth + 1,
            parent_url=page.url,
        )
        if added:
            run.stats.discovered += added
            logger.debug(f"Discovered {added} new links from {page.url}")

    # ------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------

    def _emit(self, run: CrawlRun, channel: Channel, record: RawPage | FetchError) -> bool:
        """Send ``record`` unless cancellation has been observed."""
        if run.token.cancelled:
            logger.debug(f"Dropping record after cancellation: {record.url}")
            return False
        return channel.send(record)

    def _emit_error(self, run: CrawlRun, error: FetchError) -> None:
        if self._emit(run, run.errors, error):
            run.stats.failed += 1
            self.observer.record_metric(
                "crawl_errors_total",
                1,
                {"domain": domain_of(error.url),
                 "kind": type(error.cause).__name__},
            )


def _parse_retry_after(value: str | None) -> float | None:
    """Retry-After in seconds; HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None
