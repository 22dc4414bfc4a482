"""ATS API client: public job-board APIs of known applicant tracking systems.

One parser per supported vendor. Unknown vendors raise UnsupportedATSError
instead of guessing at a response shape.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from harvester.core.errors import NoJobsFoundError, ParseError, UnsupportedATSError
from harvester.core.normalize import build_job, normalize_salary, parse_salary_text, split_list
from harvester.core.schemas import CompanyConfig, ScrapedJob, ScrapeMethod
from harvester.strategies.base import ExtractionStrategy, FetchContext

logger = logging.getLogger(__name__)

WORKDAY_PAGE_SIZE = 20
WORKDAY_MAX_PAGES = 5

_LOCALE_RE = re.compile(r"^[a-z]{2}-[A-Z]{2}$")

Parser = Callable[[CompanyConfig, Any], list[ScrapedJob]]


@dataclass(frozen=True)
class ATSVendor:
    name: str
    endpoint: Callable[[str], str]
    parse: Parser


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _label(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("label") or value.get("name") or "")
    return "" if value is None else str(value)


def _lever_interval(value: Any) -> str | None:
    """"per-hour-wage" -> "hour"."""
    parts = str(value or "").split("-")
    return parts[1] if len(parts) > 1 and parts[0] == "per" else None


# ---------------------------------------------------------------------------
# Vendor parsers
# ---------------------------------------------------------------------------


def parse_greenhouse(company: CompanyConfig, data: Any) -> list[ScrapedJob]:
    jobs: list[ScrapedJob] = []
    for job in _dict(data).get("jobs", []):
        if not isinstance(job, dict) or not job.get("title"):
            continue
        departments = job.get("departments") or []
        jobs.append(build_job(
            company,
            "api",
            title=job["title"],
            location=_label(job.get("location")),
            description=job.get("content", ""),
            external_url=job.get("absolute_url", ""),
            posted_date=job.get("first_published") or job.get("updated_at"),
            department=_label(departments[0]) if departments else "",
            ats="greenhouse",
        ))
    return jobs


def parse_lever(company: CompanyConfig, data: Any) -> list[ScrapedJob]:
    if not isinstance(data, list):
        msg = "Lever response is not a list of postings"
        raise ParseError(msg)
    jobs: list[ScrapedJob] = []
    for posting in data:
        if not isinstance(posting, dict) or not posting.get("text"):
            continue
        categories = _dict(posting.get("categories"))
        requirements: list[str] = []
        for section in posting.get("lists") or []:
            if isinstance(section, dict):
                requirements.extend(split_list(section.get("content"), min_length=3))
        salary_range = _dict(posting.get("salaryRange"))
        salary = (
            normalize_salary(
                salary_range.get("min"),
                salary_range.get("max"),
                currency=salary_range.get("currency"),
                period=_lever_interval(salary_range.get("interval")),
            )
            if salary_range
            else None
        )
        jobs.append(build_job(
            company,
            "api",
            title=posting["text"],
            location=_label(categories.get("location")),
            description=posting.get("descriptionPlain") or posting.get("description", ""),
            requirements=requirements,
            employment_type_hint=_label(categories.get("commitment")) or None,
            work_type_hint=posting.get("workplaceType") or None,
            salary=salary,
            external_url=posting.get("hostedUrl") or posting.get("applyUrl", ""),
            posted_date=posting.get("createdAt"),
            department=_label(categories.get("department")),
            team=_label(categories.get("team")),
            ats="lever",
        ))
    return jobs


def parse_ashby(company: CompanyConfig, data: Any) -> list[ScrapedJob]:
    jobs: list[ScrapedJob] = []
    for job in _dict(data).get("jobs", []):
        if not isinstance(job, dict) or not job.get("title"):
            continue
        if job.get("isListed") is False:
            continue
        compensation = _dict(job.get("compensation"))
        jobs.append(build_job(
            company,
            "api",
            title=job["title"],
            location=_label(job.get("location")),
            remote_hint=bool(job.get("isRemote")),
            description=job.get("descriptionPlain") or job.get("descriptionHtml") or job.get("description", ""),
            employment_type_hint=job.get("employmentType") or None,
            work_type_hint=job.get("workplaceType") or None,
            salary=parse_salary_text(compensation.get("compensationTierSummary")),
            external_url=job.get("jobUrl") or job.get("applyUrl", ""),
            posted_date=job.get("publishedAt"),
            department=_label(job.get("department")),
            team=_label(job.get("team")),
            ats="ashby",
        ))
    return jobs


def parse_smartrecruiters(company: CompanyConfig, data: Any, board_id: str = "") -> list[ScrapedJob]:
    jobs: list[ScrapedJob] = []
    for posting in _dict(data).get("content", []):
        if not isinstance(posting, dict) or not posting.get("name"):
            continue
        loc = _dict(posting.get("location"))
        location = ", ".join(
            str(loc[key]) for key in ("city", "region", "country") if loc.get(key)
        )
        external_url = posting.get("postingUrl") or (
            f"https://jobs.smartrecruiters.com/{board_id}/{posting['id']}"
            if board_id and posting.get("id")
            else ""
        )
        jobs.append(build_job(
            company,
            "api",
            title=posting["name"],
            location=location,
            remote_hint=bool(loc.get("remote")),
            employment_type_hint=_label(posting.get("typeOfEmployment")) or None,
            experience_hint=_label(posting.get("experienceLevel")) or None,
            external_url=external_url,
            posted_date=posting.get("releasedDate"),
            department=_label(posting.get("department")),
            ats="smartrecruiters",
        ))
    return jobs


def parse_workday(company: CompanyConfig, data: Any, site_url: str = "") -> list[ScrapedJob]:
    jobs: list[ScrapedJob] = []
    for posting in _dict(data).get("jobPostings", []):
        if not isinstance(posting, dict) or not posting.get("title"):
            continue
        path = posting.get("externalPath") or ""
        jobs.append(build_job(
            company,
            "api",
            title=posting["title"],
            location=posting.get("locationsText") or "",
            work_type_hint=posting.get("remoteType") or None,
            external_url=f"{site_url.rstrip('/')}{path}" if path and site_url else path,
            posted_date=posting.get("postedOn"),
            ats="workday",
        ))
    return jobs


ATS_VENDORS: dict[str, ATSVendor] = {
    "greenhouse": ATSVendor(
        "greenhouse",
        lambda board: f"https://boards-api.greenhouse.io/v1/boards/{board}/jobs?content=true",
        parse_greenhouse,
    ),
    "lever": ATSVendor(
        "lever",
        lambda board: f"https://api.lever.co/v0/postings/{board}?mode=json",
        parse_lever,
    ),
    "ashby": ATSVendor(
        "ashby",
        lambda board: f"https://api.ashbyhq.com/posting-api/job-board/{board}?includeCompensation=true",
        parse_ashby,
    ),
    "smartrecruiters": ATSVendor(
        "smartrecruiters",
        lambda board: f"https://api.smartrecruiters.com/v1/companies/{board}/postings",
        lambda company, data: parse_smartrecruiters(
            company, data, company.ats.board_id if company.ats else "",
        ),
    ),
}


# ---------------------------------------------------------------------------
# Workday (tenant-hosted, POST-based)
# ---------------------------------------------------------------------------


def derive_workday_endpoint(careers_url: str) -> tuple[str, str] | None:
    """Map a public Workday careers URL to its CxS jobs endpoint.

    https://acme.wd5.myworkdayjobs.com/en-US/External ->
    (https://acme.wd5.myworkdayjobs.com/wday/cxs/acme/External/jobs,
     https://acme.wd5.myworkdayjobs.com/External)

    Returns (api_url, site_url) or None when the URL has no site segment.
    """
    parts = urlsplit(careers_url)
    host = parts.netloc
    segments = [s for s in parts.path.strip("/").split("/") if s]
    if segments and _LOCALE_RE.match(segments[0]):
        segments = segments[1:]
    if not host or not segments:
        return None
    tenant = host.split(".")[0]
    site = segments[0]
    return f"https://{host}/wday/cxs/{tenant}/{site}/jobs", f"https://{host}/{site}"


def _workday_site_from_api(api_url: str) -> str:
    match = re.search(r"^(https?://[^/]+)/wday/cxs/[^/]+/([^/]+)/jobs", api_url)
    return f"{match.group(1)}/{match.group(2)}" if match else ""


class ATSApiStrategy(ExtractionStrategy):
    """Calls the company's ATS vendor API directly."""

    def __init__(
        self,
        *,
        workday_page_size: int = WORKDAY_PAGE_SIZE,
        workday_max_pages: int = WORKDAY_MAX_PAGES,
    ) -> None:
        self._workday_page_size = workday_page_size
        self._workday_max_pages = workday_max_pages

    @property
    def method(self) -> ScrapeMethod:
        return "api"

    def supports(self, company: CompanyConfig) -> bool:
        return company.ats is not None

    async def extract(self, company: CompanyConfig, ctx: FetchContext) -> list[ScrapedJob]:
        ats = company.ats
        if ats is None:
            msg = f"{company.id} has no ATS configured"
            raise UnsupportedATSError(msg)

        if ats.type == "workday":
            jobs = await self._extract_workday(company, ctx)
        else:
            vendor = ATS_VENDORS.get(ats.type)
            if vendor is None:
                supported = ", ".join(sorted([*ATS_VENDORS, "workday"]))
                msg = f"Unsupported ATS '{ats.type}' for {company.id}. Supported: {supported}"
                raise UnsupportedATSError(msg)
            if ats.api_url:
                url = ats.api_url
            elif ats.board_id:
                url = vendor.endpoint(ats.board_id)
            else:
                msg = f"ATS '{ats.type}' for {company.id} needs board_id or api_url"
                raise UnsupportedATSError(msg)
            logger.debug("Fetching %s postings for %s from %s", vendor.name, company.id, url)
            data = await ctx.fetcher.get_json(url)
            jobs = vendor.parse(company, data)

        if not jobs:
            msg = f"{ats.type} API returned no postings for {company.id}"
            raise NoJobsFoundError(msg)
        logger.info("ATS %s: %d postings for %s", ats.type, len(jobs), company.id)
        return jobs

    async def _extract_workday(self, company: CompanyConfig, ctx: FetchContext) -> list[ScrapedJob]:
        ats = company.ats
        if ats is not None and ats.api_url:
            api_url, site_url = ats.api_url, _workday_site_from_api(ats.api_url)
        else:
            derived = derive_workday_endpoint(company.career_page_url)
            if derived is None:
                msg = f"Cannot derive Workday endpoint from {company.career_page_url}"
                raise UnsupportedATSError(msg)
            api_url, site_url = derived

        jobs: list[ScrapedJob] = []
        total: int | None = None
        for page in range(self._workday_max_pages):
            payload = {
                "appliedFacets": {},
                "limit": self._workday_page_size,
                "offset": page * self._workday_page_size,
                "searchText": "",
            }
            data = await ctx.fetcher.post_json(api_url, payload)
            page_jobs = parse_workday(company, data, site_url)
            jobs.extend(page_jobs)
            if total is None and isinstance(data, dict) and isinstance(data.get("total"), int):
                total = data["total"]
            if len(page_jobs) < self._workday_page_size or (total is not None and len(jobs) >= total):
                break
        return jobs
