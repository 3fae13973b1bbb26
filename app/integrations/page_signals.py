"""Deterministic page markup signals detected from raw HTML."""

import json
import logging
import re
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_FAQ_PATTERN = re.compile(r"\b(faq|frequently asked questions)\b", re.IGNORECASE)
_AUTHOR_PATTERN = re.compile(r"\bauthor\b", re.IGNORECASE)


class PageSignals(BaseModel):
    """Machine-readability markers found in a page's HTML."""

    schema_types: list[str] = Field(default_factory=list)
    has_table_tags: bool = False
    has_faq_markup: bool = False
    has_lists: bool = False
    has_author_markup: bool = False
    has_date_markup: bool = False
    external_link_count: int = 0

    @property
    def has_schema(self) -> bool:
        return bool(self.schema_types)


def detect_page_signals(html: str, page_url: str | None = None) -> PageSignals:
    """Parse HTML and report structured-data and content markup signals."""
    if not html:
        return PageSignals()

    soup = BeautifulSoup(html, "lxml")

    schema_types = _collect_schema_types(soup)
    has_faq = "FAQPage" in schema_types or any(
        _FAQ_PATTERN.search(heading.get_text(" ", strip=True))
        for heading in soup.find_all(["h1", "h2", "h3", "h4"])
    )

    has_author = bool(
        soup.find("meta", attrs={"name": "author"})
        or soup.find(attrs={"rel": "author"})
        or soup.find(attrs={"itemprop": "author"})
        or soup.find(class_=_AUTHOR_PATTERN)
    )
    has_date = bool(
        soup.find("time")
        or soup.find("meta", attrs={"property": "article:published_time"})
        or soup.find("meta", attrs={"property": "article:modified_time"})
        or soup.find(attrs={"itemprop": re.compile(r"date(Published|Modified)")})
    )

    signals = PageSignals(
        schema_types=schema_types,
        has_table_tags=soup.find("table") is not None,
        has_faq_markup=has_faq,
        has_lists=soup.find(["ol", "ul"]) is not None,
        has_author_markup=has_author,
        has_date_markup=has_date,
        external_link_count=_count_external_links(soup, page_url),
    )
    logger.info(
        "Page signals detected",
        extra={
            "url": page_url,
            "schema_types": signals.schema_types,
            "has_faq_markup": signals.has_faq_markup,
            "external_link_count": signals.external_link_count,
        },
    )
    return signals


def _collect_schema_types(soup: BeautifulSoup) -> list[str]:
    found: list[str] = []

    def _record(value: Any) -> None:
        if isinstance(value, str):
            name = value.rsplit("/", 1)[-1].strip()
            if name and name not in found:
                found.append(name)
        elif isinstance(value, list):
            for item in value:
                _record(item)

    def _walk(node: Any) -> None:
        if isinstance(node, dict):
            if "@type" in node:
                _record(node["@type"])
            for child in node.values():
                _walk(child)
        elif isinstance(node, list):
            for child in node:
                _walk(child)

    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            _walk(json.loads(raw))
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON-LD block")

    for element in soup.find_all(attrs={"itemtype": True}):
        itemtype = element.get("itemtype")
        if isinstance(itemtype, str):
            for value in itemtype.split():
                _record(value)

    return found


def _count_external_links(soup: BeautifulSoup, page_url: str | None) -> int:
    own_host = urlparse(page_url).netloc.lower().removeprefix("www.") if page_url else ""
    count = 0
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if not isinstance(href, str):
            continue
        parsed = urlparse(href)
        if parsed.scheme not in {"http", "https"}:
            continue
        host = parsed.netloc.lower().removeprefix("www.")
        if host and host != own_host:
            count += 1
    return count
