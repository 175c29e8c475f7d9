"""Schema providers - LLM and template backends behind one interface."""

import json
import logging
import os
import re
import time
from typing import Optional, Protocol

import httpx
from openai import OpenAI, OpenAIError

from ..config.loader import Config, ProviderConfig
from ..errors import ProviderError, ProviderNotConfiguredError
from ..models.page_content import STRUCTURED_DATA_SEPARATOR
from ..models.schema_result import GenerationRequest, SchemaDraft
from .template_tool import TemplateApiClient, generate_schemas_from_templates

logger = logging.getLogger(__name__)


class SchemaProvider(Protocol):
    """A schema generation backend. generate() raises ProviderError on failure."""

    name: str
    priority: int
    timeout_seconds: float
    retries: int

    def is_available(self) -> bool: ...

    def generate(self, request: GenerationRequest) -> list[SchemaDraft]: ...


SYSTEM_PROMPT = (
    "You are an expert SEO specialist who generates valid JSON-LD structured data. "
    "Always return valid JSON with the exact structure requested."
)

USER_PROMPT_TEMPLATE = """Generate schema.org JSON-LD for the page below.

Website information:
- Company name: {company_name}
- Founder/main author name: {founder_name}
- Company logo URL: {logo_url}

{existing_context}

URL: {url}

Content analysis found these schema types relevant, most relevant first: {types}

Page content:
---
{content}
---

Rules:
1. Generate EXACTLY {count} schemas, one for each of: {target_types}
2. Keep this order: {order}
3. For each schema extract the title/headline, a description (first 150-200 characters of the main content), author and publication date when present, and any other property the content states.
4. Do not invent, assume or guess anything. If a value is not explicitly in the content or website information, omit the property.
5. Every schema must have "@context": "https://schema.org" and "@type" equal to its schema type.

Type guidance:
- BlogPosting/Article: headline, description, author, publisher, datePublished
- Product: name, description, brand, offers (only if a price is given)
- FAQPage: mainEntity array of Question/Answer pairs
- HowTo: name, description, step array
- LocalBusiness: name, description, address (if given)
- Event: name, description, startDate, location (if given)
- Review: itemReviewed, reviewRating, author
- Testimonial: reviewBody, author (with name), datePublished (if given)
- Recipe: name, description, recipeIngredient, recipeInstructions

Return ONLY a JSON object with this structure:
{{
  "schemas": [
    {{
      "schemaType": "SchemaType",
      "description": "Why this schema is recommended",
      "jsonLd": "Complete JSON-LD object as a string"
    }}
  ]
}}"""


def build_prompt(request: GenerationRequest, max_content_chars: int) -> str:
    profile = request.website_profile
    if request.existing_structured_data:
        existing_context = (
            "The page already contains these JSON-LD blocks. Use them for context and to avoid "
            "duplication; base new schemas on the page text."
            + STRUCTURED_DATA_SEPARATOR
            + STRUCTURED_DATA_SEPARATOR.join(request.existing_structured_data)
            + "\n---"
        )
    else:
        existing_context = "The page has no existing JSON-LD."

    content = re.sub(r"\s+", " ", request.main_text[:max_content_chars]).strip()
    return USER_PROMPT_TEMPLATE.format(
        company_name=profile.company_name or "Not provided",
        founder_name=profile.founder_name or "Not provided",
        logo_url=profile.company_logo_url or "Not provided",
        existing_context=existing_context,
        url=request.url,
        types=", ".join(request.candidate_types),
        content=content,
        count=request.expected_count,
        target_types=", ".join(request.target_types),
        order=" > ".join(request.target_types),
    )


def extract_json_object(raw: str) -> str:
    """Strip markdown fences; if the rest is not JSON, cut out the first balanced {...} block."""
    raw = raw.strip()
    if raw.startswith("```"):
        raw = raw.split("\n", 1)[1] if "\n" in raw else raw[3:]
    if raw.endswith("```"):
        raw = raw.rsplit("```", 1)[0].strip()
    try:
        json.loads(raw)
        return raw
    except json.JSONDecodeError:
        pass

    start_idx = raw.find("{")
    if start_idx >= 0:
        depth = 0
        for i in range(start_idx, len(raw)):
            if raw[i] == "{":
                depth += 1
            elif raw[i] == "}":
                depth -= 1
                if depth == 0:
                    return raw[start_idx : i + 1]
    return raw


def parse_schema_response(content: str) -> list[SchemaDraft]:
    """Drafts from a {"schemas": [...]} response body."""
    try:
        data = json.loads(extract_json_object(content))
    except json.JSONDecodeError as e:
        raise ProviderError(f"Invalid JSON from provider: {str(e)[:100]}") from e

    items = data.get("schemas") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise ProviderError('Provider response has no "schemas" list')

    drafts: list[SchemaDraft] = []
    for item in items:
        if not isinstance(item, dict) or not item.get("schemaType"):
            continue
        json_ld = item.get("jsonLd", "")
        if not isinstance(json_ld, str):
            json_ld = json.dumps(json_ld, ensure_ascii=False)
        drafts.append(
            SchemaDraft(
                schema_type=str(item["schemaType"]),
                description=str(item.get("description") or ""),
                json_ld=json_ld,
            )
        )
    return drafts


class OpenAICompatibleProvider:
    """
    Chat-completions provider.
    Works with OpenAI and with compatible gateways (OpenRouter) through base_url.
    """

    def __init__(self, config: ProviderConfig, client: Optional[OpenAI] = None):
        self.config = config
        self.name = config.name
        self.priority = config.priority
        self.timeout_seconds = config.timeout_seconds
        self.retries = config.retries
        self._client = client

    def _api_key(self) -> str:
        if not self.config.api_key_env:
            return ""
        return os.environ.get(self.config.api_key_env, "")

    def is_available(self) -> bool:
        return self.config.enabled and (self._client is not None or bool(self._api_key()))

    def client(self) -> OpenAI:
        if self._client is None:
            api_key = self._api_key()
            if not api_key:
                raise ProviderNotConfiguredError(
                    f"{self.name}: {self.config.api_key_env} is not set"
                )
            # Disable proxy usage for the client (trust_env=False)
            self._client = OpenAI(
                api_key=api_key,
                base_url=self.config.base_url,
                default_headers=self.config.extra_headers or None,
                max_retries=0,
                http_client=httpx.Client(trust_env=False, timeout=self.timeout_seconds),
            )
        return self._client

    def generate(self, request: GenerationRequest) -> list[SchemaDraft]:
        prompt = build_prompt(request, self.config.max_content_chars)
        start_time = time.time()
        logger.debug("Calling %s (%s) for %s", self.name, self.config.model, request.url)
        try:
            response = self.client().chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
                response_format={"type": "json_object"},
                timeout=self.timeout_seconds,
            )
        except OpenAIError as e:
            raise ProviderError(f"{self.name} failed: {type(e).__name__}: {e}") from e

        elapsed = time.time() - start_time
        usage = response.usage
        if usage is not None:
            logger.info(
                "%s completed in %.2fs for %s - prompt: %d tokens, completion: %d tokens",
                self.name, elapsed, request.url, usage.prompt_tokens, usage.completion_tokens,
            )

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ProviderError(f"{self.name} returned empty response")
        return parse_schema_response(content)


class TemplateSchemaProvider:
    """Deterministic provider: fields extracted straight from the page text."""

    def __init__(self, config: ProviderConfig, api: Optional[TemplateApiClient] = None):
        self.config = config
        self.name = config.name
        self.priority = config.priority
        self.timeout_seconds = config.timeout_seconds
        self.retries = config.retries
        self.api = api

    def is_available(self) -> bool:
        return self.config.enabled

    def generate(self, request: GenerationRequest) -> list[SchemaDraft]:
        return generate_schemas_from_templates(
            request.target_types,
            request.main_text,
            request.url,
            existing=request.existing_structured_data,
            profile=request.website_profile,
            api=self.api,
        )


def build_provider_registry(
    config: Config, template_api: Optional[TemplateApiClient] = None
) -> list[SchemaProvider]:
    """Providers from config, ascending priority. Built once at startup."""
    if template_api is None:
        template_api = TemplateApiClient(config.template_api)

    providers: list[SchemaProvider] = []
    for pc in config.providers:
        if pc.kind == "templates":
            providers.append(TemplateSchemaProvider(pc, api=template_api))
        else:
            providers.append(OpenAICompatibleProvider(pc))
    return sorted(providers, key=lambda p: p.priority)
