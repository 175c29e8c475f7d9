"""Render tool - headless-browser fallback for pages the transports cannot reach."""

import logging
import time
from typing import Callable, Optional, Protocol

import httpx
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..config.loader import BrowserConfig, DEFAULT_USER_AGENTS
from ..errors import BrowserAutomationError, FetchAttemptError
from ..models.page_content import STRUCTURED_DATA_SEPARATOR, BreadcrumbItem, PageContent
from .extract_tool import clean_text, extract_page_content
from .retry import Deadline, with_retry

logger = logging.getLogger(__name__)


CHALLENGE_CHECK_JS = """() => {
    const body = document.body ? document.body.textContent || '' : '';
    return document.title.includes('Just a moment')
        || body.includes('Checking your browser')
        || body.includes('Verifying you are human');
}"""

CHALLENGE_CLEARED_JS = f"() => !({CHALLENGE_CHECK_JS})()"


class BrowserFallback(Protocol):
    """Last-resort page retrieval with full JS rendering."""

    def fetch_page(self, url: str, deadline: Optional[Deadline] = None) -> PageContent: ...


class EndpointBrowserFallback:
    """
    Client for the scraping helper process.
    POSTs {url} and expects {success, pageText, existingSchemaText,
    breadcrumbs, pageTitle} or {success: false, error}. A success=false
    answer is final; transport errors and non-2xx statuses are retried.
    """

    def __init__(
        self,
        config: BrowserConfig,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self._client = client or httpx.Client(trust_env=False)
        self._sleep = sleep

    def _post(self, url: str, deadline: Deadline) -> dict:
        response = self._client.post(
            self.config.endpoint_url,
            json={"url": url},
            timeout=deadline.bound(self.config.timeout_seconds),
        )
        if response.status_code >= 400:
            raise FetchAttemptError(
                f"Browser automation API returned status: {response.status_code}",
                status_code=response.status_code,
            )
        data = response.json()
        if not isinstance(data, dict):
            raise BrowserAutomationError("Browser automation API returned a non-object reply")
        return data

    def fetch_page(self, url: str, deadline: Optional[Deadline] = None) -> PageContent:
        deadline = deadline or Deadline.never()
        data = with_retry(
            self.config.retry_policy,
            lambda: self._post(url, deadline),
            retry_on=(httpx.HTTPError, FetchAttemptError),
            deadline=deadline,
            sleep=self._sleep,
        )

        page_text = data.get("pageText")
        if not data.get("success") or not isinstance(page_text, str) or not page_text:
            raise BrowserAutomationError(data.get("error") or "Browser automation returned no content")

        schema_text = data.get("existingSchemaText") or ""
        blocks = [b.strip() for b in schema_text.split(STRUCTURED_DATA_SEPARATOR) if b.strip()]
        breadcrumbs = [
            BreadcrumbItem(name=b["name"], url=b["url"])
            for b in data.get("breadcrumbs") or []
            if isinstance(b, dict) and b.get("name") and b.get("url")
        ]
        return PageContent(
            url=url,
            page_title=data.get("pageTitle") or url,
            main_text=clean_text(page_text),
            existing_structured_data=blocks,
            breadcrumbs=breadcrumbs,
        )


class PlaywrightBrowserFallback:
    """Renders the page in a local headless Chromium and extracts it like fetched HTML."""

    def __init__(self, config: BrowserConfig, sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self._sleep = sleep

    def _wait_for_challenge(self, page) -> None:
        if not page.evaluate(CHALLENGE_CHECK_JS):
            return
        logger.info("Bot challenge detected, waiting up to %.0fs", self.config.challenge_timeout_seconds)
        try:
            page.wait_for_function(
                CHALLENGE_CLEARED_JS,
                timeout=self.config.challenge_timeout_seconds * 1000,
            )
        except PlaywrightTimeoutError:
            logger.warning("Bot challenge did not clear in time, extracting anyway")

    def _render(self, url: str, deadline: Deadline) -> str:
        timeout_ms = deadline.bound(self.config.timeout_seconds) * 1000
        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True)
            try:
                context = browser.new_context(user_agent=DEFAULT_USER_AGENTS[0])
                page = context.new_page()
                page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
                self._wait_for_challenge(page)
                return page.content()
            finally:
                browser.close()

    def fetch_page(self, url: str, deadline: Optional[Deadline] = None) -> PageContent:
        deadline = deadline or Deadline.never()
        html = with_retry(
            self.config.retry_policy,
            lambda: self._render(url, deadline),
            retry_on=(PlaywrightError,),
            deadline=deadline,
            sleep=self._sleep,
        )
        content = extract_page_content(url, html)
        if not content.main_text:
            raise BrowserAutomationError("Rendered page has no text content")
        return content


def build_browser_fallback(
    config: BrowserConfig,
    client: Optional[httpx.Client] = None,
) -> Optional[BrowserFallback]:
    """Browser fallback for the configured mode, or None when disabled."""
    if config.mode == "endpoint":
        return EndpointBrowserFallback(config, client=client)
    if config.mode == "local":
        return PlaywrightBrowserFallback(config)
    return None
