"""Unit tests for schema_recommender.tools.template_tool."""

import json

import httpx
import pytest
import respx

from schema_recommender.config.loader import TemplateApiConfig
from schema_recommender.errors import SynthesisError
from schema_recommender.models.page_content import WebsiteProfile
from schema_recommender.tools.template_tool import (
    TEMPLATES,
    TemplateApiClient,
    extract_content_for_template,
    extract_recipe_data,
    generate_schemas_from_templates,
    render_local_template,
    synthesize_fallback_schema,
    synthesize_last_resort,
)

URL = "https://site.test/page"
TEMPLATE_API = "http://templates.test"

FAQ_TEXT = (
    "Plant Care FAQ\n"
    "Q: How often should I water?\n"
    "A: Twice a week.\n"
    "More in summer.\n"
    "Q: Do they need sun?\n"
    "A: Yes."
)

HOWTO_TEXT = "Repot a Plant\nStep 1: Choose a pot\nStep 2: Add soil\n3. Water it"

REVIEW_TEXT = "Great Mug\nReviewed by Jane Smith on 2024-01-05\nPrice $19.99\nRated 4.5 out of 5"


@pytest.fixture()
def profile() -> WebsiteProfile:
    return WebsiteProfile(companyName="Acme", founderName="Ann Lee", companyLogoUrl="https://acme.test/logo.png")


# ---------------------------------------------------------------------------
# Text extraction
# ---------------------------------------------------------------------------


class TestExtractRecipeData:
    def test_ingredients_and_instructions(self, recipe_text: str) -> None:
        data = extract_recipe_data(recipe_text)
        assert data.ingredients == ["2 cups rice", "1 tbsp oil"]
        assert data.instructions == ["Boil rice", "Add oil"]

    def test_absent_fields_stay_empty(self, recipe_text: str) -> None:
        data = extract_recipe_data(recipe_text)
        assert data.prep_time is None
        assert data.servings is None
        assert data.nutrition == {}
        assert data.images == []
        assert data.video_url is None

    def test_durations_and_details(self) -> None:
        text = (
            "Chicken Curry\n"
            "Prep time: 15 minutes\n"
            "Cook time: 1 hour\n"
            "Serves 4\n"
            "Calories: 450\n"
            "Protein: 30g\n"
            "Tags: spicy, dinner\n"
            "Video: https://video.test/curry\n"
        )
        data = extract_recipe_data(text)
        assert data.prep_time == "PT15M"
        assert data.cook_time == "PT1H"
        assert data.servings == "4"
        assert data.cuisine == "Indian"
        assert data.category == "Dinner"
        assert data.nutrition == {"calories": "450 calories", "proteinContent": "30g"}
        assert data.keywords == ["spicy", "dinner"]
        assert data.video_url == "https://video.test/curry"


class TestExtractContentForTemplate:
    def test_review_details(self) -> None:
        content = extract_content_for_template(REVIEW_TEXT, URL)
        assert content.title == "Great Mug"
        assert content.author == "Jane Smith"
        assert content.date_published == "2024-01-05"
        assert content.price == "19.99"
        assert content.rating == 4.5

    def test_faqs(self) -> None:
        faqs = extract_content_for_template(FAQ_TEXT, URL).faqs
        assert [f["name"] for f in faqs] == ["How often should I water?", "Do they need sun?"]
        assert faqs[0]["acceptedAnswer"]["text"] == "Twice a week. More in summer."

    def test_steps(self) -> None:
        assert extract_content_for_template(HOWTO_TEXT, URL).steps == [
            "Choose a pot",
            "Add soil",
            "Water it",
        ]

    def test_existing_json_ld_fills_gaps(self) -> None:
        existing = ['{"@type": "Article", "headline": "Old", "author": {"name": "Bob"}, "datePublished": "2020-01-01"}']
        content = extract_content_for_template("", URL, existing)
        assert content.title == "Old"
        assert content.author == "Bob"
        assert content.date_published == "2020-01-01"

    def test_page_text_wins_over_existing(self) -> None:
        existing = ['{"headline": "Old", "author": {"name": "Bob"}}', "{broken"]
        content = extract_content_for_template("New Title\nWritten by Carl Diaz", URL, existing)
        assert content.title == "New Title"
        assert content.author == "Carl Diaz"


# ---------------------------------------------------------------------------
# Local templates
# ---------------------------------------------------------------------------


class TestRenderLocalTemplate:
    def test_recipe(self, recipe_text: str) -> None:
        content = extract_content_for_template(recipe_text, URL)
        schema = render_local_template("Recipe", content)
        assert schema["@type"] == "Recipe"
        assert schema["name"] == "Simple Rice Recipe"
        assert schema["recipeIngredient"] == ["2 cups rice", "1 tbsp oil"]
        assert schema["recipeInstructions"] == [
            {"@type": "HowToStep", "text": "Boil rice"},
            {"@type": "HowToStep", "text": "Add oil"},
        ]

    def test_nothing_invented(self, recipe_text: str) -> None:
        content = extract_content_for_template(recipe_text, URL)
        schema = render_local_template("Recipe", content)
        for absent in ("author", "datePublished", "image", "nutrition", "aggregateRating", "video", "publisher"):
            assert absent not in schema

    def test_article_uses_profile(self, profile: WebsiteProfile) -> None:
        content = extract_content_for_template("Tomato Guide\nAll about tomatoes.", URL)
        schema = render_local_template("BlogPosting", content, profile)
        assert schema["@type"] == "BlogPosting"
        assert schema["author"] == {"@type": "Person", "name": "Ann Lee"}
        assert schema["publisher"]["logo"]["url"] == "https://acme.test/logo.png"

    def test_article_without_profile(self) -> None:
        content = extract_content_for_template("Tomato Guide\nAll about tomatoes.", URL)
        schema = render_local_template("Article", content)
        assert "author" not in schema
        assert "publisher" not in schema
        assert "datePublished" not in schema

    def test_faq_page(self) -> None:
        schema = render_local_template("FAQPage", extract_content_for_template(FAQ_TEXT, URL))
        assert len(schema["mainEntity"]) == 2

    def test_how_to_steps_carry_only_text(self) -> None:
        schema = render_local_template("HowTo", extract_content_for_template(HOWTO_TEXT, URL))
        assert schema["step"][0] == {"@type": "HowToStep", "text": "Choose a pot"}

    def test_testimonial_keeps_requested_type(self) -> None:
        schema = render_local_template("Testimonial", extract_content_for_template(REVIEW_TEXT, URL))
        assert schema["@type"] == "Testimonial"
        assert schema["reviewRating"]["ratingValue"] == 4.5

    def test_unknown_type(self) -> None:
        assert render_local_template("Thing", extract_content_for_template("x", URL)) is None


def _leaves(value, key=None):
    if isinstance(value, dict):
        for k, v in value.items():
            yield from _leaves(v, k)
    elif isinstance(value, list):
        for v in value:
            yield from _leaves(v, key)
    else:
        yield key, value


# Values a template may emit without finding them in the input
STRUCTURAL_VALUES = {"https://schema.org", "USD", 5, 1}


class TestNonFabrication:
    @pytest.mark.parametrize("text_name", ["recipe", "faq", "howto", "review"])
    @pytest.mark.parametrize("schema_type", sorted(TEMPLATES))
    def test_every_value_comes_from_the_input(self, schema_type, text_name, recipe_text, profile) -> None:
        text = {"recipe": recipe_text, "faq": FAQ_TEXT, "howto": HOWTO_TEXT, "review": REVIEW_TEXT}[text_name]
        sources = " ".join([" ".join(text.split()), URL, profile.company_name, profile.founder_name, profile.company_logo_url]).lower()

        rendered = render_local_template(schema_type, extract_content_for_template(text, URL), profile)
        synthesized = synthesize_fallback_schema(schema_type, text, profile)

        for schema in (rendered, synthesized):
            for key, value in _leaves(schema):
                if key == "@type" or value in STRUCTURAL_VALUES:
                    continue
                assert str(value).lower() in sources, f"{schema_type}.{key}={value!r}"


# ---------------------------------------------------------------------------
# Fallback synthesis
# ---------------------------------------------------------------------------


class TestSynthesizeFallbackSchema:
    def test_recipe(self, recipe_text: str) -> None:
        schema = synthesize_fallback_schema("Recipe", recipe_text)
        assert schema["@context"] == "https://schema.org"
        assert schema["name"] == "Simple Rice Recipe"
        assert schema["recipeIngredient"] == ["2 cups rice", "1 tbsp oil"]
        assert len(schema["recipeInstructions"]) == 2

    def test_product_without_brand(self) -> None:
        schema = synthesize_fallback_schema("Product", "Blue Mug\nA sturdy mug.")
        assert "brand" not in schema

    def test_review_author_from_text(self) -> None:
        schema = synthesize_fallback_schema("Review", REVIEW_TEXT)
        assert schema["author"]["name"] == "Jane Smith"
        assert schema["itemReviewed"]["name"] == "Great Mug"

    def test_empty_text_raises(self) -> None:
        with pytest.raises(SynthesisError):
            synthesize_fallback_schema("Article", "  \n ")

    def test_last_resort_is_blog_posting(self, profile: WebsiteProfile) -> None:
        schema = synthesize_last_resort("Hello\nWorld", profile)
        assert schema["@type"] == "BlogPosting"
        assert schema["headline"] == "Hello"
        assert schema["publisher"]["name"] == "Acme"


# ---------------------------------------------------------------------------
# Template path
# ---------------------------------------------------------------------------


class TestGenerateSchemasFromTemplates:
    def test_one_draft_per_type_capped(self, recipe_text: str) -> None:
        drafts = generate_schemas_from_templates(
            ["Recipe", "HowTo", "Thing", "Article"], recipe_text, URL
        )
        assert [d.schema_type for d in drafts] == ["Recipe", "HowTo", "Thing"]
        assert json.loads(drafts[2].json_ld)["@type"] == "Thing"

    def test_template_api_used_when_configured(self, recipe_text: str) -> None:
        api = TemplateApiClient(TemplateApiConfig(url=TEMPLATE_API), client=httpx.Client())
        remote = {"@context": "https://schema.org", "@type": "Recipe", "name": "Remote"}
        with respx.mock:
            route = respx.post(f"{TEMPLATE_API}/generate").mock(
                return_value=httpx.Response(200, json={"success": True, "schema": remote})
            )
            drafts = generate_schemas_from_templates(["Recipe"], recipe_text, URL, api=api)

        sent = json.loads(route.calls.last.request.content)
        assert sent["schemaType"] == "Recipe"
        assert sent["content"]["ingredients"] == ["2 cups rice", "1 tbsp oil"]
        assert json.loads(drafts[0].json_ld)["name"] == "Remote"
        assert "company" not in sent["content"]

    def test_template_api_receives_profile(self, recipe_text: str) -> None:
        api = TemplateApiClient(TemplateApiConfig(url=TEMPLATE_API), client=httpx.Client())
        profile = WebsiteProfile(companyName="Acme", founderName="Ann Lee")
        with respx.mock:
            route = respx.post(f"{TEMPLATE_API}/generate").mock(return_value=httpx.Response(500))
            generate_schemas_from_templates(["Recipe"], recipe_text, URL, profile=profile, api=api)

        sent = json.loads(route.calls.last.request.content)["content"]
        assert sent["company"] == "Acme"
        assert sent["founder"] == "Ann Lee"
        assert "logo" not in sent
        assert sent["title"] == "Simple Rice Recipe"

    def test_template_api_failure_falls_back_to_local(self, recipe_text: str) -> None:
        api = TemplateApiClient(TemplateApiConfig(url=TEMPLATE_API), client=httpx.Client())
        with respx.mock:
            respx.post(f"{TEMPLATE_API}/generate").mock(return_value=httpx.Response(500))
            drafts = generate_schemas_from_templates(["Recipe"], recipe_text, URL, api=api)

        assert json.loads(drafts[0].json_ld)["name"] == "Simple Rice Recipe"

    def test_template_api_disabled_without_url(self) -> None:
        api = TemplateApiClient(TemplateApiConfig(), client=httpx.Client())
        assert api.enabled is False
