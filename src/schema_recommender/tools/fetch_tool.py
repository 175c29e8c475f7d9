"""Fetch tool - retrieve page content through a chain of transports."""

import logging
import time
from typing import Callable, Optional
from urllib.parse import quote

import httpx
from playwright.sync_api import Error as PlaywrightError

from ..config.loader import Config, FetchConfig
from ..errors import (
    BotProtectionError,
    BrowserAutomationError,
    FetchAttemptError,
    FetchError,
    FetchTimeoutError,
    PageNotFoundError,
    PageUnavailableError,
    RateLimitedError,
)
from ..models.page_content import PageContent
from .extract_tool import extract_page_content
from .rate_limiter import RateLimiter, get_retry_after, is_rate_limit_response
from .render_tool import BrowserFallback, build_browser_fallback
from .retry import Deadline, with_retry

logger = logging.getLogger(__name__)


# Delay between transports after a failure: min(1 * 2^i, 5) seconds
TRANSPORT_BACKOFF_SECONDS = 1.0
MAX_TRANSPORT_BACKOFF_SECONDS = 5.0


def browser_headers(config: FetchConfig, user_agent: str) -> dict[str, str]:
    """Request headers that look like a real browser navigation."""
    return {
        "Accept": (
            "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,"
            "image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
        ),
        "Accept-Language": config.accept_language,
        "Accept-Encoding": "gzip, deflate, br",
        "User-Agent": user_agent,
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
        "Upgrade-Insecure-Requests": "1",
        "DNT": "1",
        "Referer": config.referrer,
    }


def transport_url(template: str, url: str) -> str:
    """Fill a transport template. The bare "{url}" template is a direct request."""
    if template == "{url}":
        return url
    return template.replace("{url}", quote(url, safe=""))


def classify_fetch_error(url: str, last_error: Optional[BaseException]) -> FetchError:
    """Map the last underlying failure to one of the user-facing fetch errors."""
    message = str(last_error or "")
    lowered = message.lower()
    if isinstance(last_error, httpx.TimeoutException) or "timeout" in lowered or "timed out" in lowered:
        return FetchTimeoutError(url, last_error)
    if "404" in message or "not found" in lowered:
        return PageNotFoundError(url, last_error)
    if "403" in message or "forbidden" in lowered:
        return BotProtectionError(url, last_error)
    return PageUnavailableError(url, last_error)


class ContentFetcher:
    """
    Retrieves PageContent for a URL.
    Transports are tried in order, each retried on network errors, then the
    browser fallback is tried once per request. Every sleep and timeout is
    bounded by the caller's deadline.
    """

    def __init__(
        self,
        config: FetchConfig,
        rate_limiter: Optional[RateLimiter] = None,
        client: Optional[httpx.Client] = None,
        browser: Optional[BrowserFallback] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.rate_limiter = rate_limiter or RateLimiter()
        self._client = client or httpx.Client(follow_redirects=True, trust_env=False)
        self.browser = browser
        self._sleep = sleep

    def _pause(self, seconds: float, deadline: Deadline) -> None:
        seconds = deadline.bound(seconds)
        if seconds > 0:
            self._sleep(seconds)

    def _request(self, target: str, headers: dict[str, str], deadline: Deadline) -> httpx.Response:
        return self._client.get(
            target,
            headers=headers,
            timeout=deadline.bound(self.config.attempt_timeout_seconds),
        )

    def _try_transport(self, url: str, target: str, user_agent: str, deadline: Deadline) -> PageContent:
        headers = browser_headers(self.config, user_agent)
        response = with_retry(
            self.config.retry_policy,
            lambda: self._request(target, headers, deadline),
            retry_on=(httpx.TransportError,),
            deadline=deadline,
            sleep=self._sleep,
        )

        if not response.is_success:
            if is_rate_limit_response(response):
                self.rate_limiter.record_rate_limited(url, get_retry_after(response))
                raise RateLimitedError(
                    f"Rate limited by transport. Status: {response.status_code} {response.reason_phrase}",
                    status_code=response.status_code,
                )
            raise FetchAttemptError(
                f"Transport returned status: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        html = response.text
        if not html.strip():
            raise FetchAttemptError("Transport returned empty content", status_code=response.status_code)

        content = extract_page_content(url, html)
        self.rate_limiter.record_success(url)
        return content

    def fetch_page_content(self, url: str, deadline: Optional[Deadline] = None) -> PageContent:
        """Fetch and extract url, raising a classified FetchError when every path failed."""
        deadline = deadline or Deadline.never()
        logger.info("Fetching content for %s", url)

        if self.rate_limiter.is_rate_limited(url):
            delay = self.rate_limiter.get_delay(url)
            logger.warning("Rate limited for %s, waiting %.1fs before first attempt", url, delay)
            self._pause(delay, deadline)

        last_error: Optional[BaseException] = None
        transports = self.config.transports
        agents = self.config.user_agents

        for i, template in enumerate(transports):
            if deadline.expired():
                logger.warning("Deadline reached after %d transports for %s", i, url)
                break
            if i > 0:
                self._pause(self.rate_limiter.get_delay(url), deadline)

            target = transport_url(template, url)
            logger.debug("Transport %d/%d: %s", i + 1, len(transports), target.split("?")[0])
            try:
                content = self._try_transport(url, target, agents[i % len(agents)], deadline)
                logger.info("Fetched %s via transport %d", url, i + 1)
                return content
            except (httpx.HTTPError, httpx.InvalidURL, FetchAttemptError) as e:
                logger.warning("Transport %d failed for %s: %s", i + 1, url, e)
                last_error = e
                if i < len(transports) - 1:
                    self._pause(
                        min(TRANSPORT_BACKOFF_SECONDS * 2 ** i, MAX_TRANSPORT_BACKOFF_SECONDS),
                        deadline,
                    )

        if self.browser is not None and not deadline.expired():
            logger.info("All transports failed for %s, trying browser fallback", url)
            try:
                return self.browser.fetch_page(url, deadline)
            except (
                httpx.HTTPError,
                httpx.InvalidURL,
                ValueError,
                PlaywrightError,
                FetchAttemptError,
                BrowserAutomationError,
            ) as e:
                logger.warning("Browser fallback failed for %s: %s", url, e)

        error = classify_fetch_error(url, last_error)
        logger.error("Could not fetch %s (%s)", url, error.kind)
        raise error


def build_fetcher(config: Config, rate_limiter: Optional[RateLimiter] = None) -> ContentFetcher:
    """Fetcher wired with one shared HTTP client and the configured browser fallback."""
    client = httpx.Client(follow_redirects=True, trust_env=False)
    return ContentFetcher(
        config.fetch,
        rate_limiter=rate_limiter,
        client=client,
        browser=build_browser_fallback(config.browser, client=client),
    )


def fetch_page_content(url: str, config: Optional[Config] = None) -> PageContent:
    """Fetch entry point: PageContent for url or a classified FetchError."""
    return build_fetcher(config or Config()).fetch_page_content(url)
