"""Validate tool - check generated JSON-LD against schema.org rules."""

import json
import logging
import re
from typing import Any

from ..models.schema_result import (
    GeneratedSchema,
    SchemaDraft,
    ValidationResult,
    ValidationStatus,
)

logger = logging.getLogger(__name__)


_ARTICLE_RULES = {
    "required": ["headline", "author", "datePublished"],
    "recommended": ["publisher", "description", "image"],
}

TYPE_RULES: dict[str, dict[str, list[str]]] = {
    "Article": _ARTICLE_RULES,
    "BlogPosting": _ARTICLE_RULES,
    "NewsArticle": _ARTICLE_RULES,
    "Product": {
        "required": ["name", "description"],
        "recommended": ["brand", "offers", "image"],
    },
    "Recipe": {
        "required": ["name", "description", "recipeIngredient", "recipeInstructions"],
        "recommended": [
            "image", "author", "datePublished", "prepTime", "cookTime", "totalTime",
            "recipeYield", "nutrition", "video", "keywords", "aggregateRating",
            "recipeCategory", "recipeCuisine",
        ],
    },
    "FAQPage": {
        "required": ["mainEntity"],
        "recommended": ["name", "description"],
    },
    "HowTo": {
        "required": ["name", "step"],
        "recommended": ["description", "totalTime", "supply"],
    },
    "LocalBusiness": {
        "required": ["name", "address"],
        "recommended": ["telephone", "url", "openingHours"],
    },
    "Event": {
        "required": ["name", "startDate"],
        "recommended": ["location", "description", "organizer"],
    },
    "Review": {
        "required": ["itemReviewed", "reviewRating"],
        "recommended": ["author", "reviewBody", "datePublished"],
    },
    "Testimonial": {
        "required": ["reviewBody", "author"],
        "recommended": ["datePublished", "itemReviewed"],
    },
}

IMAGE_SUGGESTION_TYPES = {"Article", "Product"}

INVALID_JSON_MESSAGE = "The AI returned invalid JSON for this schema."


def has_schema_org_context(context: Any) -> bool:
    if not context:
        return False
    if isinstance(context, str):
        return "schema.org" in context
    return "schema.org" in json.dumps(context)


def type_matches(declared: Any, schema_type: str) -> bool:
    """Scalar @type must equal schema_type, an array @type must contain it."""
    if isinstance(declared, list):
        return schema_type in declared
    return declared == schema_type


def validate_schema(schema: Any, schema_type: str) -> ValidationResult:
    """
    Best-effort schema.org check.
    Errors make the schema invalid; warnings and suggestions never do.
    """
    result = ValidationResult()

    if not isinstance(schema, dict):
        result.is_valid = False
        result.errors.append("Schema must be a valid JSON object")
        return result

    if not has_schema_org_context(schema.get("@context")):
        result.is_valid = False
        result.errors.append("Missing or invalid @context property")

    if not schema.get("@type"):
        result.is_valid = False
        result.errors.append("Missing @type property")

    rules = TYPE_RULES.get(schema_type)
    if rules:
        for field in rules["required"]:
            if not schema.get(field):
                result.is_valid = False
                result.errors.append(f"Missing required field: {field}")
        for field in rules["recommended"]:
            if not schema.get(field):
                result.warnings.append(f"Missing recommended field: {field}")

    name = schema.get("name")
    if name and not isinstance(name, str):
        result.warnings.append("Name should be a string")
    description = schema.get("description")
    if description and not isinstance(description, str):
        result.warnings.append("Description should be a string")
    url = schema.get("url")
    if url and not (isinstance(url, str) and url.startswith("http")):
        result.warnings.append("URL should be a valid HTTP/HTTPS URL")

    if not description and name:
        result.suggestions.append("Consider adding a description field")
    if not schema.get("image") and schema_type in IMAGE_SUGGESTION_TYPES:
        result.suggestions.append("Consider adding an image for better rich results")

    return result


def strip_code_fences(raw: str) -> str:
    text = raw.strip()
    text = re.sub(r"^```(?:json)?\s*", "", text)
    text = re.sub(r"```\s*$", "", text)
    return text.strip()


def canonical_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2)


def structural_error(parsed: Any, schema_type: str) -> str | None:
    """First structural problem of a parsed schema, or None."""
    if not isinstance(parsed, dict):
        return "Schema must be a single JSON object."
    if not has_schema_org_context(parsed.get("@context")):
        return 'Missing or invalid "@context" property. It should contain "schema.org".'
    declared = parsed.get("@type")
    if not declared or not type_matches(declared, schema_type):
        found = declared if declared else "nothing"
        return f'Mismatched "@type" property. Expected "{schema_type}", but found "{found}".'
    return None


def _invalid(
    draft: SchemaDraft, json_ld: str, reason: str, result: ValidationResult | None = None
) -> tuple[GeneratedSchema, ValidationResult]:
    result = result or ValidationResult(is_valid=False, errors=[reason])
    schema = GeneratedSchema(
        schema_type=draft.schema_type,
        description=draft.description,
        json_ld=json_ld,
        validation_status=ValidationStatus.INVALID,
        validation_error=reason,
        validation_warnings=result.warnings,
        validation_suggestions=result.suggestions,
    )
    return schema, result


def review_draft(
    draft: SchemaDraft, candidate_types: list[str]
) -> tuple[GeneratedSchema, ValidationResult]:
    """
    Turn a provider draft into a GeneratedSchema.
    Unparseable JSON is kept as a diagnostic wrapper, never dropped. Parsed
    JSON is re-serialized pretty-printed whatever its status.
    """
    cleaned = strip_code_fences(draft.json_ld)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON-LD for %s: %s", draft.schema_type, e)
        wrapper = canonical_json(
            {"error": INVALID_JSON_MESSAGE, "details": str(e), "originalString": draft.json_ld}
        )
        return _invalid(draft, wrapper, f"Invalid JSON format: {e}")

    formatted = canonical_json(parsed)

    if draft.schema_type not in candidate_types:
        return _invalid(
            draft,
            formatted,
            f'Schema type "{draft.schema_type}" was not among the requested types: '
            f"{', '.join(candidate_types)}.",
        )

    problem = structural_error(parsed, draft.schema_type)
    if problem:
        return _invalid(draft, formatted, problem)

    result = validate_schema(parsed, draft.schema_type)
    if not result.is_valid:
        return _invalid(draft, formatted, "; ".join(result.errors), result)

    return (
        GeneratedSchema(
            schema_type=draft.schema_type,
            description=draft.description,
            json_ld=formatted,
            validation_status=ValidationStatus.VALID,
            validation_warnings=result.warnings,
            validation_suggestions=result.suggestions,
        ),
        result,
    )


def accept_synthesized(
    schema_type: str, schema: dict[str, Any], description: str
) -> tuple[GeneratedSchema, ValidationResult]:
    """
    Wrap a locally synthesized schema.
    Synthesized schemas only carry what the text supports, so missing
    type-specific fields are reported as warnings rather than errors.
    """
    problem = structural_error(schema, schema_type)
    if problem:
        raise ValueError(f"Synthesized {schema_type} schema is malformed: {problem}")

    checked = validate_schema(schema, schema_type)
    result = ValidationResult(
        is_valid=True,
        warnings=checked.errors + checked.warnings,
        suggestions=checked.suggestions,
    )
    return (
        GeneratedSchema(
            schema_type=schema_type,
            description=description,
            json_ld=canonical_json(schema),
            validation_status=ValidationStatus.VALID,
            validation_warnings=result.warnings,
            validation_suggestions=result.suggestions,
        ),
        result,
    )
