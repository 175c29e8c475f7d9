"""Schema generation requests, drafts and results."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .page_content import WebsiteProfile


MAX_TYPES_PER_REQUEST = 3


class ValidationStatus(str, Enum):
    """Final status of a generated schema."""

    VALID = "valid"
    INVALID = "invalid"


class GenerationRequest(BaseModel):
    """Input handed to every schema provider."""

    model_config = ConfigDict(frozen=True)

    url: str
    website_profile: WebsiteProfile = Field(default_factory=WebsiteProfile)
    main_text: str = ""
    existing_structured_data: list[str] = Field(default_factory=list)
    candidate_types: list[str] = Field(default_factory=list)

    @property
    def expected_count(self) -> int:
        """Number of schemas a provider must return."""
        return min(len(self.candidate_types), MAX_TYPES_PER_REQUEST)

    @property
    def target_types(self) -> list[str]:
        return self.candidate_types[: self.expected_count]


class SchemaDraft(BaseModel):
    """Raw provider output, before validation."""

    schema_type: str
    description: str = ""
    json_ld: str


class ValidationResult(BaseModel):
    """Outcome of checking one schema against schema.org rules."""

    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class GeneratedSchema(BaseModel):
    """Validated schema returned to the caller."""

    schema_type: str
    description: str = ""
    json_ld: str
    validation_status: ValidationStatus
    validation_error: Optional[str] = None
    validation_warnings: list[str] = Field(default_factory=list)
    validation_suggestions: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.validation_status is ValidationStatus.VALID


class GenerationResult(BaseModel):
    """Result of one generate_schemas call."""

    schemas: list[GeneratedSchema] = Field(default_factory=list)
    provider: str = ""
    processing_time_ms: int = 0
    validation_results: list[ValidationResult] = Field(default_factory=list)
    candidate_types: list[str] = Field(default_factory=list)
    cached: bool = False


class ProviderStatus(BaseModel):
    """Outcome of probing one provider."""

    name: str
    priority: int
    available: bool
    working: bool = False
    error: Optional[str] = None


class CacheEntry(BaseModel):
    """Orchestrator cache entry. Treated as absent once older than the TTL."""

    model_config = ConfigDict(frozen=True)

    schemas: list[GeneratedSchema]
    provider: str
    processing_time_ms: int
    validation_results: list[ValidationResult]
    candidate_types: list[str] = Field(default_factory=list)
    timestamp: float
