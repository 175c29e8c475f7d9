"""Page content extracted by the fetcher."""

from pydantic import BaseModel, ConfigDict, Field

# Joins JSON-LD blocks in prompts, template lookups and scraper replies
STRUCTURED_DATA_SEPARATOR = "\n---\n"


class BreadcrumbItem(BaseModel):
    """Single breadcrumb anchor."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str


class PageContent(BaseModel):
    """
    Normalized page data produced by the fetcher.
    Created fresh per request and never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    page_title: str = ""
    main_text: str = ""
    existing_structured_data: list[str] = Field(default_factory=list)
    breadcrumbs: list[BreadcrumbItem] = Field(default_factory=list)


class WebsiteProfile(BaseModel):
    """Optional enrichment data about the site owner. Never fabricated."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    company_name: str = Field(default="", alias="companyName")
    founder_name: str = Field(default="", alias="founderName")
    company_logo_url: str = Field(default="", alias="companyLogoUrl")
