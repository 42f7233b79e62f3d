"""Markup-to-text strategies used by every channel.

Site-specific selector tables are data; the strategies only rank candidate
content areas and keep the longest qualifying block.
"""

from __future__ import annotations

import logging
from typing import Protocol

from bs4 import BeautifulSoup
from newspaper import Article as NewspaperArticle

logger = logging.getLogger(__name__)


# Ranked content-area selectors, most specific first
CONTENT_SELECTORS = [
    "article .entry-content",
    "article .post-content",
    "article .article-body",
    "article .content",
    '[data-testid="article-body"]',
    "[itemprop='articleBody']",
    ".article-body",
    ".story-body",
    ".entry-content",
    ".post-content",
    ".review-content",
    ".article__body",
    ".article-content",
    ".rich-text",
    '[class*="ArticleBody"]',
    '[class*="article-body"]',
    '[class*="review-body"]',
    '[class*="story-body"]',
    "main article",
    ".story-content",
    "article",
    '[role="main"]',
    "main",
]

# Nodes that are never part of the article: chrome, ads, overlays, paywalls
NOISE_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside", "form"]
OVERLAY_SELECTORS = [
    ".ad",
    ".advertisement",
    "[data-ad]",
    ".social-share",
    ".related-articles",
    ".newsletter-signup",
    ".comments",
    ".sidebar",
    ".breadcrumb",
    ".author-bio",
    "[class*='paywall']",
    "[id*='paywall']",
    "[class*='piano']",
    "[class*='subscribe-modal']",
    ".registration-wall",
    ".subscriber-wall",
    "[class*='cookie']",
    "[class*='newsletter']",
    "[role='dialog']",
    ".modal",
    ".tp-modal",
    ".tp-backdrop",
]

MIN_BLOCK_CHARS = 100
MIN_PARAGRAPH_CHARS = 50
MIN_PARAGRAPHS = 4
BODY_FALLBACK_CHARS = 500


class ExtractionStrategy(Protocol):
    def extract(self, html: str, url: str = "") -> str: ...


def strip_noise(soup: BeautifulSoup) -> None:
    for element in soup(NOISE_TAGS):
        if not element.decomposed:
            element.decompose()
    for selector in OVERLAY_SELECTORS:
        for element in soup.select(selector):
            # Already gone with a removed ancestor
            if element.decomposed:
                continue
            element.decompose()


def _block_text(element) -> str:
    paragraphs = [
        p.get_text(" ", strip=True)
        for p in element.find_all("p")
        if len(p.get_text(" ", strip=True)) > 30
    ]
    if paragraphs:
        return "\n\n".join(paragraphs)
    return element.get_text("\n", strip=True)


class SelectorExtractionStrategy:
    """Longest qualifying block among the ranked selectors wins."""

    def __init__(self, selectors: list[str] | None = None):
        self.selectors = selectors or CONTENT_SELECTORS

    def extract(self, html: str, url: str = "") -> str:
        if not html:
            return ""
        soup = BeautifulSoup(html, "html.parser")
        strip_noise(soup)

        best = ""
        for selector in self.selectors:
            element = soup.select_one(selector)
            if element is None:
                continue
            text = _block_text(element)
            if len(text) >= MIN_BLOCK_CHARS and len(text) > len(best):
                best = text

        # Pages without semantic containers: gather substantial paragraphs
        paragraphs = [
            p.get_text(" ", strip=True)
            for p in soup.find_all("p")
            if len(p.get_text(" ", strip=True)) > MIN_PARAGRAPH_CHARS
        ]
        paragraphs = [
            p for p in paragraphs if "cookie" not in p.lower() and "subscribe" not in p.lower()
        ]
        if len(paragraphs) >= MIN_PARAGRAPHS:
            joined = "\n\n".join(paragraphs)
            if len(joined) > len(best):
                best = joined

        if len(best) < BODY_FALLBACK_CHARS:
            body = soup.find("body")
            if body is not None:
                body_text = body.get_text("\n", strip=True)
                if len(body_text) > len(best):
                    best = body_text

        if url:
            logger.debug(f"Selector extraction produced {len(best)} chars for {url}")
        return best


class NewspaperExtractionStrategy:
    """newspaper4k article parser, with selector extraction as the fallback."""

    def __init__(self, fallback: ExtractionStrategy | None = None):
        self.fallback = fallback or SelectorExtractionStrategy()

    def extract(self, html: str, url: str = "") -> str:
        if not html:
            return ""
        text = ""
        try:
            article = NewspaperArticle(url or "http://localhost/", fetch_images=False)
            article.download(input_html=html)
            article.parse()
            text = (article.text or "").strip()
        except Exception as e:
            logger.debug(f"newspaper4k parse failed for {url}: {e}")

        if len(text) >= MIN_BLOCK_CHARS:
            return text
        return self.fallback.extract(html, url)
