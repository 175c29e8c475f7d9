"""Error taxonomy for schema recommender."""

from typing import Optional


MANUAL_INPUT_HINT = "Please use the manual content input option and paste the page text instead."


class SchemaRecommenderError(Exception):
    """Base error for schema recommender."""


# Fetching


class FetchError(SchemaRecommenderError):
    """Page content could not be fetched through any transport."""

    kind = "unavailable"
    user_message = (
        "Failed to fetch content from the URL. The page might be down, blocking requests, "
        "or all services could be temporarily unavailable. " + MANUAL_INPUT_HINT
    )

    def __init__(self, url: str, cause: Optional[BaseException] = None):
        self.url = url
        self.cause = cause
        detail = f" (last error: {cause})" if cause else ""
        super().__init__(f"{self.user_message}{detail}")


class FetchTimeoutError(FetchError):
    kind = "timeout"
    user_message = (
        "Request timed out. The website might be slow to respond or blocking automated "
        "requests. " + MANUAL_INPUT_HINT
    )


class PageNotFoundError(FetchError):
    kind = "not_found"
    user_message = (
        "The URL could not be found. Please check that the URL is correct and the page exists."
    )


class BotProtectionError(FetchError):
    kind = "forbidden"
    user_message = (
        "This website is protected by Cloudflare or similar security measures. "
        + MANUAL_INPUT_HINT
    )


class PageUnavailableError(FetchError):
    kind = "unavailable"


class FetchAttemptError(SchemaRecommenderError):
    """A single transport attempt produced an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RateLimitedError(FetchAttemptError):
    """Transport answered with a rate-limit signal."""


class BrowserAutomationError(SchemaRecommenderError):
    """Browser automation responded but could not scrape the page."""


# Generation


class ProviderError(SchemaRecommenderError):
    """A schema provider failed for this request."""


class ProviderTimeoutError(ProviderError):
    """A schema provider did not answer within its timeout."""


class ProviderNotConfiguredError(ProviderError):
    """A schema provider is missing credentials or is disabled."""


class SynthesisError(SchemaRecommenderError):
    """Fallback schema could not be built from the page text."""


class SchemaGenerationError(SchemaRecommenderError):
    """Every provider and the fallback synthesis failed."""

    def __init__(self, last_error: Optional[BaseException] = None):
        self.last_error = last_error
        reason = str(last_error) if last_error else "Unknown error"
        super().__init__(
            f"All schema generation methods failed. Last error: {reason}. " + MANUAL_INPUT_HINT
        )
