"""Pattern-based HTML extractor: CSS-selector and regex heuristics over raw markup.

Tiers, first with results wins:
  1. Company-supplied custom selectors
  2. Generic job-card selector library
  3. Regex role-name matching over visible text
Heuristic tiers (2, 3) are capped to suppress false-positive floods.
"""

import logging
from typing import Any

from bs4 import BeautifulSoup, Tag

from harvester.core.errors import NoJobsFoundError, ParseError
from harvester.core.normalize import build_job, resolve_url
from harvester.core.schemas import CompanyConfig, ScrapedJob, ScrapeMethod, SelectorConfig
from harvester.strategies.base import ExtractionStrategy, FetchContext
from harvester.strategies.selectors import (
    CARD_DESCRIPTION_SELECTORS,
    CARD_LOCATION_SELECTORS,
    CARD_TITLE_SELECTORS,
    JOB_CARD_SELECTORS,
    JOB_TITLE_PATTERNS,
    MAX_TITLE_LENGTH,
    MIN_TITLE_LENGTH,
    NOISE_TITLE_RE,
)

logger = logging.getLogger(__name__)

MAX_HEURISTIC_JOBS = 20


def is_role_title(text: str) -> bool:
    return any(p.search(text) for p in JOB_TITLE_PATTERNS)


def is_plausible_title(text: str) -> bool:
    """Reject short strings and navigation chrome ("Apply", "Login", "Menu")."""
    text = " ".join(text.split())
    if not MIN_TITLE_LENGTH <= len(text) <= MAX_TITLE_LENGTH:
        return False
    return not NOISE_TITLE_RE.search(text)


def _text(el: Tag | None) -> str:
    return " ".join(el.get_text(" ").split()) if el is not None else ""


def _first_text(card: Tag, selectors: tuple[str, ...]) -> str:
    for selector in selectors:
        el = card.select_one(selector)
        text = _text(el)
        if text:
            return text
    return ""


def _link(card: Tag, *candidates: Tag | None) -> str | None:
    for el in (*candidates, card):
        if el is None:
            continue
        if el.name == "a" and el.get("href"):
            return str(el["href"])
        parent = el.find_parent("a")
        if parent is not None and parent.get("href"):
            return str(parent["href"])
    anchor = card.find("a", href=True)
    return str(anchor["href"]) if anchor is not None else None


class HtmlParsingStrategy(ExtractionStrategy):
    """Least reliable of the cheap strategies; runs after the structured ones."""

    def __init__(self, *, max_heuristic_jobs: int = MAX_HEURISTIC_JOBS) -> None:
        self._max_jobs = max_heuristic_jobs

    @property
    def method(self) -> ScrapeMethod:
        return "html_parsing"

    async def extract(self, company: CompanyConfig, ctx: FetchContext) -> list[ScrapedJob]:
        page = await ctx.career_page()
        return self.parse(company, page.text, base_url=page.url)

    def parse(self, company: CompanyConfig, html: str, *, base_url: str = "") -> list[ScrapedJob]:
        base_url = base_url or company.career_page_url
        soup = BeautifulSoup(html, "html.parser")

        selectors = company.scrape_config.selectors
        if selectors is not None:
            rows = self._custom(soup, selectors)
            if rows:
                logger.debug("Custom selectors: %d jobs for %s", len(rows), company.id)
                return self._build(company, rows, base_url)
            logger.debug("Custom selectors matched nothing for %s", company.id)

        rows = self._generic(soup)
        if rows:
            return self._build(company, rows[: self._max_jobs], base_url)

        rows = self._patterns(soup)
        if rows:
            return self._build(company, rows[: self._max_jobs], base_url)

        msg = f"No job-like markup on {base_url}"
        raise NoJobsFoundError(msg)

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def _custom(self, soup: BeautifulSoup, selectors: SelectorConfig) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for card in soup.select(selectors.job_container):
            title_el = card.select_one(selectors.title)
            title = _text(title_el)
            if not is_plausible_title(title):
                continue
            link_el = card.select_one(selectors.link) if selectors.link else None
            rows.append({
                "title": title,
                "location": _text(card.select_one(selectors.location)) if selectors.location else "",
                "description": (
                    _text(card.select_one(selectors.description)) if selectors.description else ""
                ),
                "url": _link(card, link_el, title_el),
            })
        return _unique(rows)

    def _generic(self, soup: BeautifulSoup) -> list[dict[str, Any]]:
        for selector in JOB_CARD_SELECTORS:
            rows: list[dict[str, Any]] = []
            for card in soup.select(selector):
                title = _first_text(card, CARD_TITLE_SELECTORS) or _text(card)
                if not is_plausible_title(title) or not is_role_title(title):
                    continue
                url = _link(card)
                if url is None:
                    continue
                rows.append({
                    "title": title,
                    "location": _first_text(card, CARD_LOCATION_SELECTORS),
                    "description": _first_text(card, CARD_DESCRIPTION_SELECTORS),
                    "url": url,
                })
            rows = _unique(rows)
            if rows:
                logger.debug("Generic selector %r matched %d cards", selector, len(rows))
                return rows
        return []

    def _patterns(self, soup: BeautifulSoup) -> list[dict[str, Any]]:
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()
        text = soup.get_text("\n")
        rows: list[dict[str, Any]] = []
        for pattern in JOB_TITLE_PATTERNS:
            for match in pattern.finditer(text):
                title = " ".join(match.group(0).split())
                if is_plausible_title(title):
                    rows.append({"title": title, "location": "", "description": "", "url": None})
        return _unique(rows)

    def _build(
        self,
        company: CompanyConfig,
        rows: list[dict[str, Any]],
        base_url: str,
    ) -> list[ScrapedJob]:
        jobs: list[ScrapedJob] = []
        for row in rows:
            try:
                jobs.append(build_job(
                    company,
                    self.method,
                    title=row["title"],
                    location=row["location"],
                    description=row["description"],
                    external_url=resolve_url(base_url, row["url"]),
                ))
            except ParseError as e:
                logger.debug("Skipping card for %s: %s", company.id, e)
        if not jobs:
            msg = f"Matched cards on {base_url} had no usable titles"
            raise NoJobsFoundError(msg)
        return jobs


def _unique(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    seen: set[tuple[str, str]] = set()
    result = []
    for row in rows:
        key = (row["title"].lower(), row["location"].lower())
        if key not in seen:
            seen.add(key)
            result.append(row)
    return result
