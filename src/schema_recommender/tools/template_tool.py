"""Template tool - build schemas deterministically from page text."""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from ..config.loader import TemplateApiConfig
from ..errors import SynthesisError
from ..models.page_content import STRUCTURED_DATA_SEPARATOR, WebsiteProfile
from ..models.schema_result import MAX_TYPES_PER_REQUEST, SchemaDraft
from .validate_tool import canonical_json

logger = logging.getLogger(__name__)


SCHEMA_CONTEXT = "https://schema.org"
MAX_DESCRIPTION_CHARS = 200
ARTICLE_TYPES = {"Article", "BlogPosting", "NewsArticle"}
REVIEW_TYPES = {"Review", "Testimonial"}
BUSINESS_TYPES = {"LocalBusiness", "Restaurant", "Store"}

_SECTION_WORDS = r"method|instructions?|directions?|steps?|preparation|how to"

INGREDIENTS_RE = re.compile(
    rf"^[ \t]*ingredients?[ \t]*(?::|$)[ \t]*(.*?)(?=^[ \t]*(?:{_SECTION_WORDS})[ \t]*(?::|$)|\Z)",
    re.I | re.M | re.S,
)
INSTRUCTIONS_RE = re.compile(
    rf"^[ \t]*(?:{_SECTION_WORDS})[ \t]*(?::|$)[ \t]*(.*?)"
    r"(?=^[ \t]*(?:(?:ingredients?|notes?|nutrition)[ \t]*(?::|$)"
    r"|(?:serves|yield|makes)\b|(?:prep|preparation|cook|cooking|total)\s+time\b)|\Z)",
    re.I | re.M | re.S,
)
SECTION_HEADER_RE = re.compile(
    rf"^(?:ingredients?|{_SECTION_WORDS}|serves|yield|prep|cook|total)\b[ \t]*:?$", re.I
)
BULLET_RE = re.compile(r"^[-•*·]\s*")
NUMBERED_RE = re.compile(r"^(?:\d+[.)]|step\s*\d+[:.)]?)\s*", re.I)
STEP_LINE_RE = re.compile(r"^(?:step\s*\d+[:.)]?|\d+[.)])\s*(.+)$", re.I)

AUTHOR_RE = re.compile(
    r"\b(?i:by|from|author)\b:?[ \t]+([A-Z][\w.'-]*(?:[ \t]+[A-Z][\w.'-]*){0,3})"
)
DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2}|\d{1,2}[/-]\d{1,2}[/-]\d{2,4})\b")
PRICE_RE = re.compile(r"\$(\d+(?:\.\d{2})?)")
RATING_RE = re.compile(r"(?<![\d/])(\d+(?:\.\d+)?)\s*(?:out of|/)\s*5(?![\d/])", re.I)
PHONE_RE = re.compile(r"(?:phone|tel|telephone|call)\s*:?\s*(\+?\d[\d\s().-]{5,}\d)", re.I)
LABELLED_LINE_RE = r"^[ \t]*{label}[ \t]*:[ \t]*(.+)$"

TIME_RES = {
    "prep_time": re.compile(r"(?:prep|preparation) time:?\s*(\d+)\s*(minutes?|mins?|hours?|hrs?)", re.I),
    "cook_time": re.compile(r"(?:cook|cooking) time:?\s*(\d+)\s*(minutes?|mins?|hours?|hrs?)", re.I),
    "total_time": re.compile(r"total(?: time)?:?\s*(\d+)\s*(minutes?|mins?|hours?|hrs?)", re.I),
}
SERVINGS_RE = re.compile(r"\b(?:serves?|servings?|yield|makes?):?\s*(\d+)", re.I)

NAMED_CUISINE_RE = re.compile(
    r"\b(indian|italian|chinese|mexican|thai|french|japanese|korean|mediterranean|american|asian|european)"
    r"\s+(?:cuisine|food|recipe|dish)",
    re.I,
)
DISH_CUISINES = {
    "curry": "Indian",
    "pasta": "Italian",
    "sushi": "Japanese",
    "tacos": "Mexican",
    "pad thai": "Thai",
}
CATEGORY_WORDS = [
    "main course", "appetizer", "dessert", "side dish", "soup", "salad",
    "breakfast", "lunch", "dinner", "snack",
]

NUTRITION_RES = {
    "calories": (re.compile(r"calories?:?\s*(\d+)", re.I), "{} calories"),
    "fatContent": (re.compile(r"\bfat:?\s*(\d+(?:\.\d+)?)\s*(?:g|grams?)\b", re.I), "{}g"),
    "proteinContent": (re.compile(r"protein:?\s*(\d+(?:\.\d+)?)\s*(?:g|grams?)\b", re.I), "{}g"),
    "carbohydrateContent": (
        re.compile(r"(?:carbs?|carbohydrates?):?\s*(\d+(?:\.\d+)?)\s*(?:g|grams?)\b", re.I),
        "{}g",
    ),
}
IMAGE_RE = re.compile(r"(?:image|photo|picture):?\s*(\S+\.(?:jpg|jpeg|png|gif|webp))\b", re.I)
VIDEO_RE = re.compile(r"(?:video|youtube|vimeo):\s*(https?://\S+)", re.I)
KEYWORDS_RE = re.compile(r"(?:tags?|keywords?):\s*([^.\n]+)", re.I)


@dataclass
class RecipeData:
    """Recipe fields found in page text. Absent fields stay empty."""

    ingredients: list[str] = field(default_factory=list)
    instructions: list[str] = field(default_factory=list)
    prep_time: Optional[str] = None
    cook_time: Optional[str] = None
    total_time: Optional[str] = None
    servings: Optional[str] = None
    cuisine: Optional[str] = None
    category: Optional[str] = None
    keywords: list[str] = field(default_factory=list)
    nutrition: dict[str, str] = field(default_factory=dict)
    images: list[str] = field(default_factory=list)
    video_url: Optional[str] = None


@dataclass
class TemplateContent:
    """Everything the local templates may use, all taken from the page."""

    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None
    date_published: Optional[str] = None
    price: Optional[str] = None
    rating: Optional[float] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    opening_hours: Optional[str] = None
    venue: Optional[str] = None
    faqs: list[dict[str, Any]] = field(default_factory=list)
    steps: list[str] = field(default_factory=list)
    recipe: RecipeData = field(default_factory=RecipeData)
    existing: dict[str, Any] = field(default_factory=dict)

    def to_api_payload(self) -> dict[str, Any]:
        return _compact(
            {
                "title": self.title,
                "description": self.description,
                "url": self.url,
                "author": self.author,
                "datePublished": self.date_published,
                "price": self.price,
                "rating": self.rating,
                "faqs": self.faqs,
                "steps": self.steps,
                "ingredients": self.recipe.ingredients,
                "instructions": self.recipe.instructions,
            }
        ) or {}


def _compact(value: Any) -> Any:
    """Drop None/empty values recursively; objects left with only @-keys are dropped too."""
    if isinstance(value, dict):
        out = {k: _compact(v) for k, v in value.items()}
        out = {k: v for k, v in out.items() if v is not None}
        if not any(not k.startswith("@") for k in out):
            return None
        return out
    if isinstance(value, list):
        items = [v for v in (_compact(v) for v in value) if v is not None]
        return items or None
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _lines(text: str) -> list[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def _title_and_description(text: str) -> tuple[Optional[str], Optional[str]]:
    lines = _lines(text)
    if not lines:
        return None, None
    description = " ".join(lines[1:3])[:MAX_DESCRIPTION_CHARS].strip()
    return lines[0], description or None


def _labelled(text: str, *labels: str) -> Optional[str]:
    for label in labels:
        m = re.search(LABELLED_LINE_RE.format(label=label), text, re.I | re.M)
        if m:
            return m.group(1).strip()
    return None


def _iso_duration(m: re.Match) -> str:
    unit = "H" if m.group(2).lower().startswith("h") else "M"
    return f"PT{int(m.group(1))}{unit}"


def _split_steps(block: str) -> list[str]:
    lines = _lines(block)
    if any(NUMBERED_RE.match(line) for line in lines):
        steps: list[str] = []
        for line in lines:
            if NUMBERED_RE.match(line):
                steps.append(NUMBERED_RE.sub("", line).strip())
            elif steps:
                steps[-1] = f"{steps[-1]} {line}"
        return [s for s in steps if s]
    return [line for line in lines if not SECTION_HEADER_RE.match(line)]


def _ingredients(text: str) -> list[str]:
    m = INGREDIENTS_RE.search(text)
    if not m:
        return []
    items = []
    for line in _lines(m.group(1)):
        if SECTION_HEADER_RE.match(line):
            continue
        line = BULLET_RE.sub("", line).strip()
        if line:
            items.append(line)
    return items


def _cuisine(text: str) -> Optional[str]:
    labelled = _labelled(text, "cuisine")
    if labelled:
        return labelled
    m = NAMED_CUISINE_RE.search(text)
    if m:
        return m.group(1).capitalize()
    lowered = text.lower()
    for dish, cuisine in DISH_CUISINES.items():
        if dish in lowered:
            return cuisine
    return None


def _category(text: str) -> Optional[str]:
    labelled = _labelled(text, "category")
    if labelled:
        return labelled
    lowered = text.lower()
    for word in CATEGORY_WORDS:
        if word in lowered:
            return word.title()
    return None


def extract_recipe_data(text: str) -> RecipeData:
    """Recipe fields found in text. Durations become ISO-8601 (PT15M, PT1H)."""
    data = RecipeData()
    data.ingredients = _ingredients(text)

    m = INSTRUCTIONS_RE.search(text)
    if m:
        data.instructions = _split_steps(m.group(1))

    for attr, pattern in TIME_RES.items():
        tm = pattern.search(text)
        if tm:
            setattr(data, attr, _iso_duration(tm))

    sm = SERVINGS_RE.search(text)
    if sm:
        data.servings = sm.group(1)

    data.cuisine = _cuisine(text)
    data.category = _category(text)

    km = KEYWORDS_RE.search(text)
    if km:
        data.keywords = [k.strip() for k in km.group(1).split(",") if k.strip()]

    for prop, (pattern, fmt) in NUTRITION_RES.items():
        nm = pattern.search(text)
        if nm:
            data.nutrition[prop] = fmt.format(nm.group(1))

    data.images = IMAGE_RE.findall(text)
    vm = VIDEO_RE.search(text)
    if vm:
        data.video_url = vm.group(1)
    return data


def _faqs(text: str) -> list[dict[str, Any]]:
    """Q:/A: pairs; answers may continue over following lines."""
    faqs: list[dict[str, Any]] = []
    question: Optional[str] = None
    answer: list[str] = []

    def flush():
        if question and answer:
            faqs.append(
                {
                    "@type": "Question",
                    "name": question,
                    "acceptedAnswer": {"@type": "Answer", "text": " ".join(answer)},
                }
            )

    for line in _lines(text):
        qm = re.match(r"^(?:Q|Question)\s*[:.]\s*(.+)$", line, re.I)
        am = re.match(r"^(?:A|Answer)\s*[:.]\s*(.+)$", line, re.I)
        if qm:
            flush()
            question, answer = qm.group(1), []
            inline = re.split(r"\s+(?:A|Answer):\s*", question, maxsplit=1)
            if len(inline) == 2:
                question, answer = inline[0], [inline[1]]
        elif am and question:
            answer = [am.group(1)]
        elif question and answer:
            answer.append(line)
    flush()
    return faqs


def _steps(text: str) -> list[str]:
    return [m.group(1).strip() for m in map(STEP_LINE_RE.match, _lines(text)) if m]


def _merge_existing(existing: list[str]) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for block in existing:
        for part in block.split(STRUCTURED_DATA_SEPARATOR):
            try:
                parsed = json.loads(part)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                merged.update(parsed)
    return merged


def extract_content_for_template(
    text: str, url: str, existing: Optional[list[str]] = None
) -> TemplateContent:
    """Collect template fields from page text, filling gaps from on-page JSON-LD."""
    title, description = _title_and_description(text)
    existing_data = _merge_existing(existing or [])

    author_m = AUTHOR_RE.search(text or "")
    date_m = DATE_RE.search(text or "")
    price_m = PRICE_RE.search(text or "")
    rating_m = RATING_RE.search(text or "")
    phone_m = PHONE_RE.search(text or "")

    existing_author = existing_data.get("author")
    if isinstance(existing_author, dict):
        existing_author = existing_author.get("name")

    return TemplateContent(
        url=url,
        title=title or existing_data.get("headline") or existing_data.get("name"),
        description=description or existing_data.get("description"),
        author=author_m.group(1).strip() if author_m else existing_author or None,
        date_published=date_m.group(1) if date_m else existing_data.get("datePublished"),
        price=price_m.group(1) if price_m else None,
        rating=float(rating_m.group(1)) if rating_m else None,
        phone=phone_m.group(1).strip() if phone_m else None,
        address=_labelled(text or "", "address"),
        opening_hours=_labelled(text or "", "hours", "opening hours"),
        venue=_labelled(text or "", "venue", "location"),
        faqs=_faqs(text or ""),
        steps=_steps(text or ""),
        recipe=extract_recipe_data(text or ""),
        existing=existing_data,
    )


# Local templates


def _person(name: Optional[str]) -> Optional[dict[str, Any]]:
    return {"@type": "Person", "name": name} if name else None


def _image(url: Optional[str]) -> Optional[dict[str, Any]]:
    return {"@type": "ImageObject", "url": url} if url else None


def _publisher(profile: WebsiteProfile) -> Optional[dict[str, Any]]:
    if not profile.company_name:
        return None
    return {
        "@type": "Organization",
        "name": profile.company_name,
        "logo": _image(profile.company_logo_url or None),
    }


def _first_image(content: TemplateContent) -> Optional[str]:
    return content.recipe.images[0] if content.recipe.images else None


def _article(schema_type: str, c: TemplateContent, profile: WebsiteProfile) -> dict[str, Any]:
    return {
        "@context": SCHEMA_CONTEXT,
        "@type": schema_type,
        "headline": c.title,
        "description": c.description,
        "url": c.url,
        "image": _image(_first_image(c)),
        "author": _person(c.author or profile.founder_name),
        "publisher": _publisher(profile),
        "datePublished": c.date_published,
    }


def _product(schema_type: str, c: TemplateContent, profile: WebsiteProfile) -> dict[str, Any]:
    return {
        "@context": SCHEMA_CONTEXT,
        "@type": schema_type,
        "name": c.title,
        "description": c.description,
        "image": _image(_first_image(c)),
        "brand": {"@type": "Brand", "name": profile.company_name or None},
        "offers": {"@type": "Offer", "price": c.price, "priceCurrency": "USD"} if c.price else None,
        "aggregateRating": (
            {"@type": "AggregateRating", "ratingValue": c.rating, "bestRating": 5}
            if c.rating is not None
            else None
        ),
    }


def _faq_page(schema_type: str, c: TemplateContent, profile: WebsiteProfile) -> dict[str, Any]:
    return {
        "@context": SCHEMA_CONTEXT,
        "@type": schema_type,
        "name": c.title,
        "description": c.description,
        "mainEntity": c.faqs,
    }


def _how_to(schema_type: str, c: TemplateContent, profile: WebsiteProfile) -> dict[str, Any]:
    steps = c.steps or c.recipe.instructions
    return {
        "@context": SCHEMA_CONTEXT,
        "@type": schema_type,
        "name": c.title,
        "description": c.description,
        "image": _image(_first_image(c)),
        "totalTime": c.recipe.total_time,
        "step": [{"@type": "HowToStep", "text": s} for s in steps],
    }


def _local_business(schema_type: str, c: TemplateContent, profile: WebsiteProfile) -> dict[str, Any]:
    return {
        "@context": SCHEMA_CONTEXT,
        "@type": schema_type,
        "name": c.title or profile.company_name or None,
        "description": c.description,
        "url": c.url,
        "telephone": c.phone,
        "address": {"@type": "PostalAddress", "streetAddress": c.address} if c.address else None,
        "openingHours": c.opening_hours,
        "image": _image(_first_image(c)),
    }


def _event(schema_type: str, c: TemplateContent, profile: WebsiteProfile) -> dict[str, Any]:
    return {
        "@context": SCHEMA_CONTEXT,
        "@type": schema_type,
        "name": c.title,
        "description": c.description,
        "startDate": c.date_published,
        "location": {"@type": "Place", "name": c.venue} if c.venue else None,
        "organizer": {"@type": "Organization", "name": profile.company_name or None},
        "image": _image(_first_image(c)),
        "offers": {"@type": "Offer", "price": c.price, "priceCurrency": "USD"} if c.price else None,
    }


def _review(schema_type: str, c: TemplateContent, profile: WebsiteProfile) -> dict[str, Any]:
    return {
        "@context": SCHEMA_CONTEXT,
        "@type": schema_type,
        "itemReviewed": {"@type": "Organization", "name": profile.company_name or c.title},
        "reviewRating": (
            {"@type": "Rating", "ratingValue": c.rating, "bestRating": 5}
            if c.rating is not None
            else None
        ),
        "author": _person(c.author),
        "reviewBody": c.description,
        "datePublished": c.date_published,
    }


def _recipe(schema_type: str, c: TemplateContent, profile: WebsiteProfile) -> dict[str, Any]:
    r = c.recipe
    return {
        "@context": SCHEMA_CONTEXT,
        "@type": schema_type,
        "name": c.title,
        "description": c.description,
        "image": [_image(url) for url in r.images],
        "author": _person(c.author or profile.founder_name),
        "publisher": _publisher(profile),
        "datePublished": c.date_published,
        "prepTime": r.prep_time,
        "cookTime": r.cook_time,
        "totalTime": r.total_time,
        "recipeYield": r.servings,
        "recipeCategory": r.category,
        "recipeCuisine": r.cuisine,
        "recipeIngredient": r.ingredients,
        "recipeInstructions": [{"@type": "HowToStep", "text": s} for s in r.instructions],
        "nutrition": {"@type": "NutritionInformation", **r.nutrition} if r.nutrition else None,
        "video": (
            {"@type": "VideoObject", "name": c.title, "contentUrl": r.video_url, "embedUrl": r.video_url}
            if r.video_url
            else None
        ),
        "keywords": ", ".join(r.keywords) or None,
        "aggregateRating": (
            {"@type": "AggregateRating", "ratingValue": c.rating, "bestRating": 5, "worstRating": 1}
            if c.rating is not None
            else None
        ),
    }


TEMPLATES = {
    "Article": _article,
    "BlogPosting": _article,
    "NewsArticle": _article,
    "Product": _product,
    "FAQPage": _faq_page,
    "HowTo": _how_to,
    "LocalBusiness": _local_business,
    "Restaurant": _local_business,
    "Store": _local_business,
    "Event": _event,
    "Review": _review,
    "Testimonial": _review,
    "Recipe": _recipe,
}


def render_local_template(
    schema_type: str, content: TemplateContent, profile: Optional[WebsiteProfile] = None
) -> Optional[dict[str, Any]]:
    """Local template output, or None when schema_type has no template."""
    template = TEMPLATES.get(schema_type)
    if template is None:
        return None
    return _compact(template(schema_type, content, profile or WebsiteProfile()))


# Fallback synthesis


def synthesize_fallback_schema(
    schema_type: str, text: str, profile: Optional[WebsiteProfile] = None
) -> dict[str, Any]:
    """
    Minimal schema of schema_type built from raw text.
    name/headline come from the first non-blank line, description from the
    next two lines. Raises SynthesisError when the text has no content.
    """
    profile = profile or WebsiteProfile()
    title, description = _title_and_description(text)
    if not title:
        raise SynthesisError(f"No page text to build a {schema_type} schema from")

    schema: dict[str, Any] = {
        "@context": SCHEMA_CONTEXT,
        "@type": schema_type,
        "name": title,
        "description": description,
    }

    if schema_type in ARTICLE_TYPES:
        schema["headline"] = title
        schema["publisher"] = _publisher(profile)
        schema["author"] = _person(profile.founder_name or None)
    elif schema_type == "Product":
        schema["brand"] = {"@type": "Brand", "name": profile.company_name or None}
    elif schema_type in REVIEW_TYPES:
        schema["reviewBody"] = description
        schema["itemReviewed"] = {"@type": "Organization", "name": profile.company_name or title}
        author_m = AUTHOR_RE.search(text)
        schema["author"] = _person(author_m.group(1).strip() if author_m else None)
    elif schema_type == "Recipe":
        recipe = extract_recipe_data(text)
        schema["recipeIngredient"] = recipe.ingredients
        schema["recipeInstructions"] = [{"@type": "HowToStep", "text": s} for s in recipe.instructions]
    elif schema_type == "HowTo":
        steps = _steps(text) or extract_recipe_data(text).instructions
        schema["step"] = [{"@type": "HowToStep", "text": s} for s in steps]
    elif schema_type == "FAQPage":
        schema["mainEntity"] = _faqs(text)

    return _compact(schema)


def synthesize_last_resort(text: str, profile: Optional[WebsiteProfile] = None) -> dict[str, Any]:
    """BlogPosting built from raw text, used when every provider failed."""
    return synthesize_fallback_schema("BlogPosting", text, profile)


# Template path


class TemplateApiClient:
    """
    Client for an external schema-template service.
    Every failure is logged and reported as None so callers fall back to
    the local templates.
    """

    def __init__(self, config: TemplateApiConfig, client: Optional[httpx.Client] = None):
        self.config = config
        self._client = client or httpx.Client(trust_env=False)

    @property
    def enabled(self) -> bool:
        return bool(self.config.url)

    def generate(
        self, schema_type: str, content: TemplateContent, profile: WebsiteProfile
    ) -> Optional[dict[str, Any]]:
        if not self.enabled:
            return None
        company = _compact(
            {
                "company": profile.company_name,
                "logo": profile.company_logo_url,
                "founder": profile.founder_name,
            }
        )
        payload = {
            "schemaType": schema_type,
            "content": {**content.to_api_payload(), **(company or {})},
        }
        try:
            response = self._client.post(
                f"{self.config.url.rstrip('/')}/generate",
                json=payload,
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Template API failed for %s: %s", schema_type, e)
            return None

        if not isinstance(data, dict):
            data = {}
        schema = data.get("schema")
        if data.get("success") and isinstance(schema, dict):
            return schema
        logger.warning("Template API returned no schema for %s", schema_type)
        return None


def generate_schema_from_template(
    schema_type: str,
    content: TemplateContent,
    profile: Optional[WebsiteProfile] = None,
    api: Optional[TemplateApiClient] = None,
) -> Optional[SchemaDraft]:
    """Draft from the template API when configured, else from the local template."""
    profile = profile or WebsiteProfile()
    if api is not None:
        schema = api.generate(schema_type, content, profile)
        if schema is not None:
            return SchemaDraft(
                schema_type=schema_type,
                description=f"Template-based {schema_type} schema generated by the template API",
                json_ld=canonical_json(schema),
            )

    schema = render_local_template(schema_type, content, profile)
    if schema is None:
        return None
    return SchemaDraft(
        schema_type=schema_type,
        description=f"Template-based {schema_type} schema built from the page text",
        json_ld=canonical_json(schema),
    )


def generate_schemas_from_templates(
    schema_types: list[str],
    text: str,
    url: str,
    existing: Optional[list[str]] = None,
    profile: Optional[WebsiteProfile] = None,
    api: Optional[TemplateApiClient] = None,
) -> list[SchemaDraft]:
    """
    One draft per requested type (at most three), in order.
    Types without a template get the minimal synthesized schema.
    """
    profile = profile or WebsiteProfile()
    content = extract_content_for_template(text, url, existing)
    drafts: list[SchemaDraft] = []
    for schema_type in schema_types[:MAX_TYPES_PER_REQUEST]:
        draft = generate_schema_from_template(schema_type, content, profile, api)
        if draft is None:
            logger.debug("No template for %s, synthesizing", schema_type)
            draft = SchemaDraft(
                schema_type=schema_type,
                description=f"Minimal {schema_type} schema built from the page text",
                json_ld=canonical_json(synthesize_fallback_schema(schema_type, text, profile)),
            )
        drafts.append(draft)
    return drafts
