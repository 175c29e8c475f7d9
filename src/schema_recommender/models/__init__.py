"""Data models for schema recommender."""

from .page_content import BreadcrumbItem, PageContent, WebsiteProfile
from .rate_limit import RateLimitState
from .schema_result import (
    CacheEntry,
    GeneratedSchema,
    GenerationRequest,
    GenerationResult,
    ProviderStatus,
    SchemaDraft,
    ValidationResult,
    ValidationStatus,
    MAX_TYPES_PER_REQUEST,
)

__all__ = [
    "BreadcrumbItem",
    "PageContent",
    "WebsiteProfile",
    "RateLimitState",
    "CacheEntry",
    "GeneratedSchema",
    "GenerationRequest",
    "GenerationResult",
    "ProviderStatus",
    "SchemaDraft",
    "ValidationResult",
    "ValidationStatus",
    "MAX_TYPES_PER_REQUEST",
]
