"""Extract tool - build PageContent from HTML."""

import json
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup, NavigableString, Tag

from ..models.page_content import BreadcrumbItem, PageContent


# First selector with any match wins; matches are never merged across selectors
BREADCRUMB_SELECTORS = [
    'nav[aria-label="breadcrumb"] ol li a',
    ".breadcrumb a",
    ".breadcrumbs a",
    ".crumbs a",
]

CHROME_SELECTORS = [
    "header", "footer", "nav", "aside", "form", "script", "style",
    '[role="navigation"]', '[role="search"]', '[role="banner"]', '[role="contentinfo"]',
    "noscript", "iframe", "embed", "object", "video", "audio",
    ".advertisement", ".ads", ".ad", ".sidebar", ".widget", ".social-share",
    ".comments", ".comment", ".related-posts", ".tags", ".categories",
]

METADATA_SELECTOR = '[class*="meta"], [class*="metadata"], [class*="info"]'
METADATA_WORDS = ("image", "photo", "banner")
GENERIC_ALT_WORDS = ("image", "photo", "picture", "banner", "logo")

BLOCK_TAGS = [
    "p", "div", "section", "article", "main", "li", "ul", "ol", "dl", "dt", "dd",
    "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "pre", "table", "tr",
    "figure", "figcaption",
]

_MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|November|December"
)

BOILERPLATE_PATTERNS = [
    re.compile(r'"Image"\s+'),
    re.compile(r"Read More\s*»"),
    re.compile(r"\d{1,2}/\d{1,2}/\d{4}\s+No Comments"),
    re.compile(rf"(?:{_MONTHS}) \d{{1,2}}, \d{{4}}\s+No Comments"),
]


def _extract_json_ld(soup: BeautifulSoup) -> list[str]:
    """JSON-LD blocks, pretty-printed when parseable, raw otherwise."""
    blocks: list[str] = []
    for script in soup.find_all("script", attrs={"type": re.compile(r"application/ld\+json", re.I)}):
        raw = script.get_text()
        if not raw.strip():
            continue
        try:
            blocks.append(json.dumps(json.loads(raw), ensure_ascii=False, indent=2))
        except json.JSONDecodeError:
            blocks.append(raw)
    return blocks


def _extract_breadcrumbs(soup: BeautifulSoup, base_url: str) -> list[BreadcrumbItem]:
    anchors: list[Tag] = []
    for selector in BREADCRUMB_SELECTORS:
        anchors = soup.select(selector)
        if anchors:
            break

    items: list[BreadcrumbItem] = []
    for a in anchors:
        name = a.get_text(strip=True)
        href = (a.get("href") or "").strip()
        if name and href:
            items.append(BreadcrumbItem(name=name, url=urljoin(base_url, href)))
    return items


def _is_generic_alt(alt: str) -> bool:
    lowered = alt.lower()
    return len(alt) < 3 or any(word in lowered for word in GENERIC_ALT_WORDS)


def _strip_noise(soup: BeautifulSoup) -> None:
    """Remove page chrome, metadata blocks and image noise in place."""
    for el in soup.select(", ".join(CHROME_SELECTORS)):
        if not el.decomposed:
            el.decompose()

    for el in soup.select(METADATA_SELECTOR):
        if el.decomposed:
            continue
        text = el.get_text(" ").lower()
        if any(word in text for word in METADATA_WORDS):
            el.decompose()

    # Meaningful alt text stays inline with the surrounding text
    for img in soup.find_all("img"):
        alt = (img.get("alt") or "").strip()
        if alt and not _is_generic_alt(alt):
            img.replace_with(NavigableString(f" {alt} "))
        else:
            img.decompose()


def _block_text(root: Tag) -> str:
    """Text of root with one line per block element."""
    for br in root.find_all("br"):
        br.replace_with(NavigableString("\n"))
    for block in root.find_all(BLOCK_TAGS):
        block.insert_before(NavigableString("\n"))
        block.insert_after(NavigableString("\n"))
    return root.get_text()


def clean_text(text: str) -> str:
    """
    Normalize extracted text.
    Whitespace runs collapse to one space, blank lines are dropped and known
    boilerplate fragments are removed.
    """
    lines = [re.sub(r"\s+", " ", line).strip() for line in text.splitlines()]
    cleaned = "\n".join(line for line in lines if line)
    for pattern in BOILERPLATE_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    lines = [line.strip() for line in cleaned.splitlines()]
    return "\n".join(line for line in lines if line)


def extract_page_content(url: str, html: str) -> PageContent:
    """
    Build PageContent from raw HTML.
    Extracts title, existing JSON-LD and breadcrumbs before stripping page
    chrome, then reads the main text from <main>, <article> or <body>.
    """
    soup = BeautifulSoup(html, "lxml")

    title = soup.title.get_text(strip=True) if soup.title else ""
    structured = _extract_json_ld(soup)
    breadcrumbs = _extract_breadcrumbs(soup, url)

    _strip_noise(soup)
    main = soup.find("main") or soup.find("article") or soup.body or soup

    return PageContent(
        url=url,
        page_title=title or url,
        main_text=clean_text(_block_text(main)),
        existing_structured_data=structured,
        breadcrumbs=breadcrumbs,
    )
