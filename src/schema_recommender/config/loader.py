"""Configuration loader for schema recommender."""

import json
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field
from tenacity import wait_exponential


DEFAULT_USER_AGENTS = [
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

# {url} is replaced with the URL-encoded target
DEFAULT_TRANSPORTS = [
    "{url}",
    "https://api.allorigins.win/raw?url={url}",
    "https://corsproxy.io/?{url}",
    "https://thingproxy.freeboard.io/fetch/{url}",
]


class RetryPolicy(BaseModel):
    """Retry configuration for transient failures."""

    max_attempts: int = Field(default=2, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0)
    max_backoff_seconds: float = Field(default=5.0, ge=0)

    def backoff(self) -> wait_exponential:
        """Wait strategy: backoff_seconds * 2^(attempt-1), capped."""
        return wait_exponential(
            multiplier=self.backoff_seconds,
            max=self.max_backoff_seconds,
        )


class FetchConfig(BaseModel):
    """Transport chain used to retrieve page HTML."""

    transports: list[str] = Field(default_factory=lambda: list(DEFAULT_TRANSPORTS))
    user_agents: list[str] = Field(default_factory=lambda: list(DEFAULT_USER_AGENTS))
    attempt_timeout_seconds: float = Field(default=8.0, gt=0)
    referrer: str = Field(default="https://www.google.com/")
    accept_language: str = Field(default="en-US,en;q=0.9")
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)


class BrowserConfig(BaseModel):
    """Headless-browser fallback used after every transport failed."""

    mode: Literal["endpoint", "local", "disabled"] = Field(default="endpoint")
    endpoint_url: str = Field(default="http://localhost:3001/api/scrape")
    timeout_seconds: float = Field(default=30.0, gt=0)
    challenge_timeout_seconds: float = Field(default=15.0, ge=0)
    retry_policy: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(
            max_attempts=2, backoff_seconds=2.0, max_backoff_seconds=8.0
        )
    )


class ProviderConfig(BaseModel):
    """Schema generation provider configuration."""

    name: str
    kind: Literal["openai", "templates"] = Field(default="openai")
    enabled: bool = Field(default=True)
    priority: int = Field(default=1)
    timeout_seconds: float = Field(default=10.0, gt=0)
    retries: int = Field(default=1, ge=1)
    model: str = Field(default="gpt-4o-mini")
    api_key_env: Optional[str] = Field(default="OPENAI_API_KEY")
    base_url: Optional[str] = None
    temperature: float = Field(default=0.1, ge=0, le=2)
    max_tokens: int = Field(default=800, ge=1)
    max_content_chars: int = Field(default=2000, ge=100)
    extra_headers: dict[str, str] = Field(default_factory=dict)


def _default_providers() -> list[ProviderConfig]:
    return [
        ProviderConfig(
            name="OpenRouter Gemini Flash",
            kind="openai",
            priority=1,
            model="google/gemini-2.0-flash-exp:free",
            api_key_env="OPENROUTER_API_KEY",
            base_url="https://openrouter.ai/api/v1",
            extra_headers={
                "HTTP-Referer": "https://seo-schema-generator.app",
                "X-Title": "SEO Schema Generator",
            },
        ),
        ProviderConfig(
            name="OpenAI",
            kind="openai",
            priority=2,
            model="gpt-4o-mini",
            api_key_env="OPENAI_API_KEY",
        ),
        ProviderConfig(
            name="Template-based Generation",
            kind="templates",
            enabled=False,
            priority=3,
            timeout_seconds=5.0,
            api_key_env=None,
        ),
    ]


class TemplateApiConfig(BaseModel):
    """External schema-template API used by the template path."""

    url: Optional[str] = None
    timeout_seconds: float = Field(default=10.0, gt=0)


class GenerationConfig(BaseModel):
    """Orchestrator settings."""

    max_schemas: int = Field(default=2, ge=1)
    cache_ttl_seconds: float = Field(default=300.0, ge=0)
    fingerprint_text_chars: int = Field(default=1000, ge=1)
    overall_deadline_seconds: float = Field(default=25.0, gt=0)
    enable_fallback: bool = Field(default=True)


class Config(BaseModel):
    """Full system configuration."""

    fetch: FetchConfig = Field(default_factory=FetchConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    providers: list[ProviderConfig] = Field(default_factory=_default_providers)
    template_api: TemplateApiConfig = Field(default_factory=TemplateApiConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load config from YAML file."""
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Load config from dictionary."""
        return cls(**data)


def load_config(path: str | Path) -> Config:
    """Load configuration from file (YAML or JSON)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        content = f.read()

    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(content) or {}
    else:
        data = json.loads(content)

    return Config.from_dict(data)
