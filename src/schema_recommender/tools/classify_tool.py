"""Classify tool - map page text and URL to candidate schema.org types."""

CONTENT_PATTERNS: dict[str, dict[str, list[str]]] = {
    "testimonial": {
        "keywords": [
            "testimonial", "testimonials", "client says", "customer says",
            "what our clients say", "check what our clients say", "client feedback",
            "customer feedback", "client review", "customer review",
        ],
        "schema_types": ["Review", "Testimonial"],
    },
    "article": {
        "keywords": ["article", "blog", "post", "news", "story", "opinion", "tutorial", "guide"],
        "schema_types": ["BlogPosting", "NewsArticle", "Article"],
    },
    "product": {
        "keywords": ["buy", "price", "product", "shop", "cart", "order", "purchase", "$", "€", "£", "₹"],
        "schema_types": ["Product", "Offer"],
    },
    "recipe": {
        "keywords": ["recipe", "ingredients", "cook", "bake", "prep time", "servings", "cooking time"],
        "schema_types": ["Recipe"],
    },
    "faq": {
        "keywords": ["faq", "question", "answer", "how to", "what is", "why", "when", "where"],
        "schema_types": ["FAQPage"],
    },
    "howto": {
        "keywords": ["step", "instructions", "tutorial", "how to", "guide", "process", "method"],
        "schema_types": ["HowTo"],
    },
    "localBusiness": {
        "keywords": ["address", "phone", "location", "hours", "contact", "visit", "store", "restaurant"],
        "schema_types": ["LocalBusiness", "Restaurant", "Store"],
    },
    "event": {
        "keywords": ["event", "date", "time", "venue", "ticket", "register", "conference", "meeting"],
        "schema_types": ["Event"],
    },
    "review": {
        "keywords": ["review", "rating", "stars", "opinion", "feedback"],
        "schema_types": ["Review", "AggregateRating"],
    },
}

# Evaluation order, not table order. Keep verbatim: results depend on it.
PRIORITY_ORDER = [
    "testimonial", "review", "product", "recipe", "faq", "howto", "event", "localBusiness", "article",
]

HIGH_CONFIDENCE = {"product", "recipe", "article"}

# Article keywords that overlap with reviews do not count as an article signal
WEAK_ARTICLE_KEYWORDS = {"review", "opinion"}

MIN_FALLBACK_TEXT_LENGTH = 200
MAX_TYPES = 3
HIGH_CONFIDENCE_MAX_TYPES = 2


def _dedupe(types: list[str]) -> list[str]:
    return list(dict.fromkeys(types))


def _matches(keywords: list[str], text: str, url: str) -> bool:
    return any(kw in text or kw in url for kw in keywords)


def _has_strong_article_signal(text: str) -> bool:
    return any(
        kw in text
        for kw in CONTENT_PATTERNS["article"]["keywords"]
        if kw not in WEAK_ARTICLE_KEYWORDS
    )


def classify_content(text: str, url: str) -> list[str]:
    """
    Ordered, de-duplicated candidate schema types for (text, url).
    Pure and deterministic. Keywords match case-insensitively against both
    the text and the URL. Blank text yields no candidates.
    """
    if not text or not text.strip():
        return []

    lowered = text.lower()
    url_lower = (url or "").lower()
    detected: list[str] = []

    for category in PRIORITY_ORDER:
        pattern = CONTENT_PATTERNS[category]
        if not _matches(pattern["keywords"], lowered, url_lower):
            continue

        detected.extend(pattern["schema_types"])

        if category == "testimonial":
            if _has_strong_article_signal(lowered):
                detected.extend(CONTENT_PATTERNS["article"]["schema_types"])
                return _dedupe(detected)[:MAX_TYPES]
            return _dedupe(detected)

        if category in HIGH_CONFIDENCE:
            return _dedupe(detected)[:HIGH_CONFIDENCE_MAX_TYPES]

        if len(_dedupe(detected)) >= 2:
            return _dedupe(detected)[:MAX_TYPES]

    if not detected and len(lowered) > MIN_FALLBACK_TEXT_LENGTH:
        detected.append("BlogPosting")

    return _dedupe(detected)[:MAX_TYPES]
