"""Embedded-state extractor: job arrays serialized into page scripts by client frameworks.

Locators are tried in order. Each locator finds the start of a JSON value, which
is decoded with ``JSONDecoder.raw_decode`` so nested brackets and strings are
handled by the JSON parser rather than by the regex. The first locator that
yields at least one job wins.
"""

import json
import logging
import re
from collections.abc import Iterator
from typing import Any

from harvester.core.errors import NoJobsFoundError, ParseError
from harvester.core.normalize import build_job, parse_salary_text, resolve_url, split_list
from harvester.core.schemas import CompanyConfig, ScrapedJob, ScrapeMethod
from harvester.strategies.base import ExtractionStrategy, FetchContext

logger = logging.getLogger(__name__)

MAX_WALK_DEPTH = 8
MAX_JOB_OBJECTS = 500

# --- Locators: each match ends right before the JSON value to decode ---
STATE_LOCATORS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("next_data", re.compile(r'<script[^>]+id=["\']__NEXT_DATA__["\'][^>]*>\s*')),
    (
        "window_state",
        re.compile(r"window\.(?:__INITIAL_STATE__|__DATA__|__JOBS__|__APP_STATE__)\s*=\s*"),
    ),
    ("jobs_variable", re.compile(r"\b(?:var|let|const)\s+jobs\s*=\s*")),
    (
        "jobs_key",
        re.compile(
            r'"(?:jobs|positions|openings|listings|careers|vacancies|opportunities)"\s*:\s*(?=\[)',
        ),
    ),
)

# --- "Looks like a job" predicate ---
TITLE_FIELDS: tuple[str, ...] = (
    "title", "name", "position", "role", "jobTitle", "job_title", "displayName",
)
JOB_FIELDS: frozenset[str] = frozenset({
    "description", "location", "department", "team", "requirements",
    "responsibilities", "url", "applyUrl", "externalUrl", "absolute_url",
    "postedDate", "createdAt", "id",
})

_URL_FIELDS = ("url", "applyUrl", "externalUrl", "absolute_url", "hostedUrl", "jobUrl", "link")
_DATE_FIELDS = ("postedDate", "datePosted", "publishedAt", "createdAt", "updatedAt")


def looks_like_job(obj: Any) -> bool:
    """A dict with a string title field and at least one job-related field."""
    if not isinstance(obj, dict):
        return False
    has_title = any(isinstance(obj.get(f), str) and obj[f].strip() for f in TITLE_FIELDS)
    return has_title and not JOB_FIELDS.isdisjoint(obj.keys())


def find_job_objects(data: Any, max_depth: int = MAX_WALK_DEPTH) -> list[dict[str, Any]]:
    """Depth-bounded walk collecting job-like dicts. Accepted jobs are not descended into."""
    found: list[dict[str, Any]] = []

    def walk(node: Any, depth: int) -> None:
        if depth > max_depth or len(found) >= MAX_JOB_OBJECTS:
            return
        if isinstance(node, dict):
            if looks_like_job(node):
                found.append(node)
                return
            children: Any = node.values()
        elif isinstance(node, list):
            children = node
        else:
            return
        for child in children:
            walk(child, depth + 1)

    walk(data, 0)
    return found


def iter_state_blocks(html: str) -> Iterator[tuple[str, Any]]:
    """Yield (locator name, decoded value) in locator order. Undecodable candidates are skipped."""
    decoder = json.JSONDecoder()
    for name, pattern in STATE_LOCATORS:
        for match in pattern.finditer(html):
            try:
                value, _ = decoder.raw_decode(html, match.end())
            except json.JSONDecodeError as e:
                logger.debug("Locator %s at %d did not decode: %s", name, match.end(), e)
                continue
            yield name, value


def _first(obj: dict[str, Any], fields: tuple[str, ...]) -> Any:
    for field in fields:
        value = obj.get(field)
        if value not in (None, "", [], {}):
            return value
    return None


def _location_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "; ".join(t for t in (_location_text(v) for v in value) if t)
    if isinstance(value, dict):
        if value.get("name"):
            return str(value["name"])
        parts = [value.get(k) for k in ("city", "state", "region", "country")]
        return ", ".join(str(p) for p in parts if p)
    return ""


def _label(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("name") or value.get("label") or "")
    return "" if value is None else str(value)


def job_from_state(
    company: CompanyConfig,
    method: ScrapeMethod,
    obj: dict[str, Any],
    base_url: str,
) -> ScrapedJob:
    """Map one job-like state object to a ScrapedJob."""
    title = _first(obj, TITLE_FIELDS)
    location = obj.get("location") or obj.get("locations") or obj.get("locationName")
    remote = obj.get("remote", obj.get("isRemote"))
    salary_text = obj.get("salary") or obj.get("compensation")
    return build_job(
        company,
        method,
        title=str(title or ""),
        location=_location_text(location),
        remote_hint=remote if isinstance(remote, bool) else None,
        description=str(obj.get("description") or obj.get("summary") or ""),
        requirements=split_list(obj.get("requirements"), min_length=3),
        responsibilities=split_list(obj.get("responsibilities"), min_length=10),
        skills=split_list(obj.get("skills") or obj.get("tags"), min_length=0),
        employment_type_hint=_label(obj.get("employmentType") or obj.get("type")) or None,
        work_type_hint=_label(obj.get("workplaceType") or obj.get("workType")) or None,
        salary=parse_salary_text(salary_text) if isinstance(salary_text, str) else None,
        external_url=resolve_url(base_url, str(_first(obj, _URL_FIELDS) or "")),
        posted_date=_first(obj, _DATE_FIELDS),
        department=_label(obj.get("department")),
        team=_label(obj.get("team")),
    )


def jobs_from_objects(
    company: CompanyConfig,
    method: ScrapeMethod,
    objects: list[dict[str, Any]],
    base_url: str,
) -> list[ScrapedJob]:
    jobs: list[ScrapedJob] = []
    for obj in objects:
        try:
            jobs.append(job_from_state(company, method, obj, base_url))
        except ParseError as e:
            logger.debug("Skipping state object for %s: %s", company.id, e)
    return jobs


class DataIslandStrategy(ExtractionStrategy):
    """Recovers job arrays from framework state blobs in the career page."""

    @property
    def method(self) -> ScrapeMethod:
        return "data_island"

    async def extract(self, company: CompanyConfig, ctx: FetchContext) -> list[ScrapedJob]:
        page = await ctx.career_page()
        return self.parse(company, page.text, base_url=page.url)

    def parse(self, company: CompanyConfig, html: str, *, base_url: str = "") -> list[ScrapedJob]:
        base_url = base_url or company.career_page_url
        for locator, value in iter_state_blocks(html):
            objects = find_job_objects(value)
            if not objects:
                continue
            jobs = jobs_from_objects(company, self.method, objects, base_url)
            if jobs:
                logger.debug("Data island locator %s: %d jobs for %s", locator, len(jobs), company.id)
                return jobs

        msg = f"No embedded job state on {base_url}"
        raise NoJobsFoundError(msg)
