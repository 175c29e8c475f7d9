"""Unit tests for the local headless-browser fallback in schema_recommender.tools.render_tool."""

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from schema_recommender.config.loader import BrowserConfig, RetryPolicy
from schema_recommender.errors import BrowserAutomationError
from schema_recommender.tools import render_tool
from schema_recommender.tools.render_tool import (
    CHALLENGE_CHECK_JS,
    CHALLENGE_CLEARED_JS,
    EndpointBrowserFallback,
    PlaywrightBrowserFallback,
    build_browser_fallback,
)

URL = "https://garden.test/guides/tomatoes"


class FakePage:
    """Records the calls the fallback makes on a Playwright page."""

    def __init__(self, html: str = "", challenged: bool = False, clears: bool = True):
        self.html = html
        self.challenged = challenged
        self.clears = clears
        self.evaluated: list[str] = []
        self.waited: list[tuple[str, float]] = []
        self.visited: list[tuple[str, str, float]] = []

    def goto(self, url: str, wait_until: str, timeout: float) -> None:
        self.visited.append((url, wait_until, timeout))

    def evaluate(self, script: str) -> bool:
        self.evaluated.append(script)
        return self.challenged

    def wait_for_function(self, script: str, timeout: float) -> None:
        self.waited.append((script, timeout))
        if not self.clears:
            raise PlaywrightTimeoutError("Timeout exceeded")

    def content(self) -> str:
        return self.html


class FakeBrowser:
    def __init__(self, page: FakePage):
        self.page = page
        self.user_agent = None
        self.closed = False

    def new_context(self, user_agent: str):
        self.user_agent = user_agent
        return self

    def new_page(self) -> FakePage:
        return self.page

    def close(self) -> None:
        self.closed = True


class FakePlaywright:
    def __init__(self, browser: FakeBrowser):
        self.chromium = self
        self.browser = browser

    def launch(self, headless: bool) -> FakeBrowser:
        assert headless is True
        return self.browser

    def __enter__(self) -> "FakePlaywright":
        return self

    def __exit__(self, *exc) -> None:
        return None


@pytest.fixture()
def browser_config() -> BrowserConfig:
    return BrowserConfig(
        mode="local",
        timeout_seconds=20.0,
        challenge_timeout_seconds=5.0,
        retry_policy=RetryPolicy(max_attempts=2, backoff_seconds=0.01, max_backoff_seconds=0.05),
    )


@pytest.fixture()
def fallback(browser_config, sleep) -> PlaywrightBrowserFallback:
    return PlaywrightBrowserFallback(browser_config, sleep=sleep)


# ---------------------------------------------------------------------------
# Challenge polling
# ---------------------------------------------------------------------------


class TestWaitForChallenge:
    def test_no_challenge_returns_immediately(self, fallback) -> None:
        page = FakePage()
        fallback._wait_for_challenge(page)

        assert page.evaluated == [CHALLENGE_CHECK_JS]
        assert page.waited == []

    def test_waits_for_challenge_to_clear(self, fallback) -> None:
        page = FakePage(challenged=True)
        fallback._wait_for_challenge(page)

        assert page.waited == [(CHALLENGE_CLEARED_JS, 5000.0)]

    def test_uncleared_challenge_is_tolerated(self, fallback) -> None:
        page = FakePage(challenged=True, clears=False)
        fallback._wait_for_challenge(page)

        assert len(page.waited) == 1


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestPlaywrightFetchPage:
    def test_renders_and_extracts(self, fallback, article_html, monkeypatch) -> None:
        page = FakePage(html=article_html, challenged=True)
        browser = FakeBrowser(page)
        monkeypatch.setattr(render_tool, "sync_playwright", lambda: FakePlaywright(browser))

        content = fallback.fetch_page(URL)

        assert content.page_title == "Growing Tomatoes at Home"
        assert "Tomatoes need sun." in content.main_text
        assert page.visited == [(URL, "domcontentloaded", 20000.0)]
        assert page.waited
        assert browser.user_agent.startswith("Mozilla/5.0")
        assert browser.closed is True

    def test_browser_closed_when_navigation_fails(self, fallback, monkeypatch) -> None:
        page = FakePage()
        browser = FakeBrowser(page)

        def fail(url, wait_until, timeout):
            raise PlaywrightError("net::ERR_NAME_NOT_RESOLVED")

        page.goto = fail
        monkeypatch.setattr(render_tool, "sync_playwright", lambda: FakePlaywright(browser))

        with pytest.raises(PlaywrightError):
            fallback.fetch_page(URL)
        assert browser.closed is True

    def test_playwright_error_retried(self, fallback, article_html, sleep, monkeypatch) -> None:
        outcomes = [PlaywrightError("Target closed"), article_html]

        def render(url, deadline):
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        monkeypatch.setattr(fallback, "_render", render)

        content = fallback.fetch_page(URL)

        assert content.page_title == "Growing Tomatoes at Home"
        assert outcomes == []
        assert len(sleep.calls) == 1

    def test_retries_exhausted(self, fallback, monkeypatch) -> None:
        calls = []

        def render(url, deadline):
            calls.append(url)
            raise PlaywrightError("Target closed")

        monkeypatch.setattr(fallback, "_render", render)

        with pytest.raises(PlaywrightError):
            fallback.fetch_page(URL)
        assert len(calls) == 2

    def test_empty_render_raises(self, fallback, monkeypatch) -> None:
        monkeypatch.setattr(fallback, "_render", lambda url, deadline: "<html><body></body></html>")

        with pytest.raises(BrowserAutomationError):
            fallback.fetch_page(URL)


class TestBuildBrowserFallback:
    @pytest.mark.parametrize(
        "mode, expected",
        [
            ("endpoint", EndpointBrowserFallback),
            ("local", PlaywrightBrowserFallback),
        ],
    )
    def test_mode_selects_fallback(self, mode, expected) -> None:
        assert isinstance(build_browser_fallback(BrowserConfig(mode=mode)), expected)

    def test_disabled(self) -> None:
        assert build_browser_fallback(BrowserConfig(mode="disabled")) is None
