"""Tools for schema recommender."""

from .rate_limiter import RateLimiter, InMemoryRateLimitStore
from .fetch_tool import ContentFetcher, fetch_page_content
from .render_tool import EndpointBrowserFallback, PlaywrightBrowserFallback
from .extract_tool import extract_page_content
from .classify_tool import classify_content
from .validate_tool import validate_schema, review_draft
from .template_tool import (
    extract_content_for_template,
    extract_recipe_data,
    generate_schema_from_template,
    generate_schemas_from_templates,
    synthesize_fallback_schema,
    synthesize_last_resort,
)
from .providers import (
    OpenAICompatibleProvider,
    TemplateSchemaProvider,
    build_provider_registry,
)

__all__ = [
    "RateLimiter",
    "InMemoryRateLimitStore",
    "ContentFetcher",
    "fetch_page_content",
    "EndpointBrowserFallback",
    "PlaywrightBrowserFallback",
    "extract_page_content",
    "classify_content",
    "validate_schema",
    "review_draft",
    "extract_content_for_template",
    "extract_recipe_data",
    "generate_schema_from_template",
    "generate_schemas_from_templates",
    "synthesize_fallback_schema",
    "synthesize_last_resort",
    "OpenAICompatibleProvider",
    "TemplateSchemaProvider",
    "build_provider_registry",
]
