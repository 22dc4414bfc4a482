"""Structured-data extractor: schema.org JobPosting blocks in JSON-LD scripts."""

import json
import logging
import re
from typing import Any

from bs4 import BeautifulSoup

from harvester.core.errors import NoJobsFoundError, ParseError
from harvester.core.normalize import build_job, normalize_salary, resolve_url, split_list
from harvester.core.schemas import CompanyConfig, SalaryInfo, ScrapedJob, ScrapeMethod
from harvester.strategies.base import ExtractionStrategy, FetchContext

logger = logging.getLogger(__name__)

_RESPONSIBILITY_SPLIT = re.compile(r"\n+|\s*[•·;]\s*|(?<=\.)\s+(?=[A-Z])")
_SKILL_SPLIT = re.compile(r"\s*[,;]\s*")


def iter_json_ld(html: str) -> list[Any]:
    """Decode every ld+json script independently; malformed blocks are skipped."""
    soup = BeautifulSoup(html, "html.parser")
    blocks: list[Any] = []
    for script in soup.find_all("script", attrs={"type": re.compile(r"application/ld\+json", re.I)}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            blocks.append(json.loads(raw))
        except json.JSONDecodeError as e:
            logger.debug("Skipping malformed JSON-LD block: %s", e)
    return blocks


def _flatten(data: Any) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    if isinstance(data, list):
        for entry in data:
            items.extend(_flatten(entry))
    elif isinstance(data, dict):
        if isinstance(data.get("@graph"), list):
            items.extend(_flatten(data["@graph"]))
        elif isinstance(data.get("itemListElement"), list):
            for element in data["itemListElement"]:
                if isinstance(element, dict) and isinstance(element.get("item"), dict):
                    items.append(element["item"])
        else:
            items.append(data)
    return items


def is_job_posting(item: dict[str, Any]) -> bool:
    item_type = item.get("@type", "")
    if isinstance(item_type, list):
        return any("JobPosting" in str(t) for t in item_type)
    return "JobPosting" in str(item_type)


def _text(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("name") or value.get("@value") or "")
    if isinstance(value, list):
        return ", ".join(_text(v) for v in value if v)
    return "" if value is None else str(value)


def _location(posting: dict[str, Any]) -> tuple[str, bool]:
    remote = str(posting.get("jobLocationType", "")).upper() == "TELECOMMUTE"
    locations = posting.get("jobLocation")
    if isinstance(locations, dict):
        locations = [locations]
    names: list[str] = []
    for loc in locations or []:
        if not isinstance(loc, dict):
            continue
        address = loc.get("address", loc)
        if isinstance(address, str):
            names.append(address)
            continue
        if not isinstance(address, dict):
            continue
        parts = [
            _text(address.get("addressLocality")),
            _text(address.get("addressRegion")),
            _text(address.get("addressCountry")),
        ]
        name = ", ".join(p for p in parts if p)
        if name:
            names.append(name)
    if not names and remote:
        names.append("Remote")
    return "; ".join(names), remote


def _salary(posting: dict[str, Any]) -> SalaryInfo:
    base = posting.get("baseSalary") or posting.get("estimatedSalary")
    if isinstance(base, list):
        base = base[0] if base else None
    if not isinstance(base, dict):
        return SalaryInfo()
    value = base.get("value")
    currency = base.get("currency") or base.get("salaryCurrency")
    if isinstance(value, dict):
        low = value.get("minValue", value.get("value"))
        high = value.get("maxValue", value.get("value"))
        return normalize_salary(low, high, currency=currency, period=value.get("unitText"))
    return normalize_salary(value, value, currency=currency, period=base.get("unitText"))


def _requirements(posting: dict[str, Any]) -> list[str]:
    found: list[str] = []
    for key in ("qualifications", "educationRequirements", "experienceRequirements"):
        value = posting.get(key)
        if isinstance(value, dict):
            value = value.get("description") or value.get("credentialCategory") or _text(value)
        found.extend(split_list(value, min_length=3))
    return found


def _employment_hint(value: Any) -> str | None:
    if isinstance(value, list):
        return str(value[0]) if value else None
    return str(value) if value else None


class JsonLdStrategy(ExtractionStrategy):
    """Reads schema.org JobPosting markup from the career page."""

    @property
    def method(self) -> ScrapeMethod:
        return "json_ld"

    async def extract(self, company: CompanyConfig, ctx: FetchContext) -> list[ScrapedJob]:
        page = await ctx.career_page()
        return self.parse(company, page.text, base_url=page.url)

    def parse(self, company: CompanyConfig, html: str, *, base_url: str = "") -> list[ScrapedJob]:
        base_url = base_url or company.career_page_url
        jobs: list[ScrapedJob] = []
        for block in iter_json_ld(html):
            for item in _flatten(block):
                if not is_job_posting(item):
                    continue
                try:
                    jobs.append(self._to_job(company, item, base_url))
                except (ParseError, AttributeError, TypeError, KeyError) as e:
                    logger.debug("Skipping JobPosting for %s: %s", company.id, e)

        if not jobs:
            msg = f"No JSON-LD JobPosting blocks on {base_url}"
            raise NoJobsFoundError(msg)
        logger.debug("JSON-LD: %d postings for %s", len(jobs), company.id)
        return jobs

    def _to_job(self, company: CompanyConfig, posting: dict[str, Any], base_url: str) -> ScrapedJob:
        location, remote = _location(posting)
        org = posting.get("hiringOrganization")
        department = org.get("department", "") if isinstance(org, dict) else ""
        return build_job(
            company,
            self.method,
            title=_text(posting.get("title") or posting.get("name")),
            location=location,
            remote_hint=remote,
            description=_text(posting.get("description")),
            requirements=_requirements(posting),
            responsibilities=split_list(
                posting.get("responsibilities"), min_length=10, pattern=_RESPONSIBILITY_SPLIT,
            ),
            skills=split_list(posting.get("skills"), min_length=1, pattern=_SKILL_SPLIT),
            employment_type_hint=_employment_hint(posting.get("employmentType")),
            experience_hint=_text(posting.get("experienceRequirements")) or None,
            salary=_salary(posting),
            external_url=resolve_url(base_url, _text(posting.get("url"))),
            posted_date=posting.get("datePosted"),
            department=_text(department),
        )
