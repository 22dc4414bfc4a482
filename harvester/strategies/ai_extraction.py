"""LLM-assisted extractor: cleaned career-page HTML in, strict JSON job list out.

Used when the structural strategies fail. Output is validated before use and
the strategy fails closed (raises ParseError) on anything malformed.
"""

import asyncio
import json
import logging

from bs4 import BeautifulSoup, Comment
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from harvester.core.config import LLMConfig
from harvester.core.errors import NoJobsFoundError, ParseError, StrategyUnavailableError
from harvester.core.normalize import build_job, parse_salary_text, resolve_url
from harvester.core.schemas import CompanyConfig, ScrapedJob, ScrapeMethod
from harvester.llm import FailoverLLMClient, strip_code_fences
from harvester.strategies.base import ExtractionStrategy, FetchContext

logger = logging.getLogger(__name__)

_STRIPPED_TAGS = ("script", "style", "noscript", "svg", "nav", "footer", "header", "iframe")

EXTRACTION_PROMPT = (
    "You extract job postings from career page HTML.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation) with this shape:\n"
    '{"jobs": [...], "confidence": <number 0-1>, "totalFound": <int>}\n\n'
    "Each element of jobs has:\n"
    "- title (string, required)\n"
    "- location (string or null)\n"
    "- description (string or null): a short summary\n"
    "- requirements (list[str])\n"
    "- responsibilities (list[str])\n"
    "- skills (list[str])\n"
    "- salary (string or null): as written on the page\n"
    "- url (string or null): link to the posting, as found in href\n"
    "- department (string or null)\n"
    '- employmentType (string or null): "full-time", "part-time", "contract", '
    '"internship" or "freelance"\n'
    '- workType (string or null): "remote", "onsite" or "hybrid"\n\n'
    "Rules: include only real open positions, never navigation, blog posts or "
    "benefits. Return at most 20 jobs. If there are none, return an empty jobs "
    "list. confidence is how sure you are the list is complete and correct."
)


class LLMJob(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str
    location: str | None = None
    description: str | None = None
    requirements: list[str] | None = None
    responsibilities: list[str] | None = None
    skills: list[str] | None = None
    salary: str | None = None
    url: str | None = None
    department: str | None = None
    employment_type: str | None = Field(default=None, alias="employmentType")
    work_type: str | None = Field(default=None, alias="workType")


class LLMExtraction(BaseModel):
    """The strict response envelope. ``jobs`` is required and must be a list."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    jobs: list[LLMJob]
    confidence: float = 0.5
    total_found: int | None = Field(default=None, alias="totalFound")

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: object) -> float:
        try:
            value = float(v)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.5
        return max(0.0, min(1.0, value))


def clean_html_for_llm(html: str, max_chars: int = 25000) -> str:
    """Shrink HTML before submission: drop chrome and scripts, attributes and whitespace."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(list(_STRIPPED_TAGS)):
        tag.decompose()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    for tag in soup.find_all(True):
        href = tag.get("href")
        tag.attrs = {"href": href} if href else {}
    return " ".join(str(soup).split())[:max_chars]


def parse_llm_response(raw_text: str) -> LLMExtraction:
    """Validate the model output. Raises ParseError on any deviation from the envelope."""
    try:
        data = json.loads(strip_code_fences(raw_text))
    except json.JSONDecodeError as e:
        msg = f"LLM response is not valid JSON: {e}"
        raise ParseError(msg) from e
    if not isinstance(data, dict):
        msg = f"LLM response must be a JSON object, got {type(data).__name__}"
        raise ParseError(msg)
    try:
        return LLMExtraction.model_validate(data)
    except ValidationError as e:
        msg = f"LLM response failed validation: {e.error_count()} error(s), first: {e.errors()[0]['msg']}"
        raise ParseError(msg) from e


class AIExtractionStrategy(ExtractionStrategy):
    """Delegates extraction to an LLM with preferred/alternate backend failover."""

    def __init__(
        self,
        client: FailoverLLMClient,
        config: LLMConfig | None = None,
        *,
        enabled: bool = True,
    ) -> None:
        self._client = client
        self._config = config or LLMConfig()
        self._enabled = enabled

    @property
    def method(self) -> ScrapeMethod:
        return "ai_extraction"

    def supports(self, company: CompanyConfig) -> bool:
        return self._enabled and company.scrape_config.use_ai

    async def extract(self, company: CompanyConfig, ctx: FetchContext) -> list[ScrapedJob]:
        if not self._client.is_available():
            env_var = self._client.preferred.env_var or self._client.preferred.provider_id
            msg = f"LLM backend {self._client.preferred.provider_id} not configured ({env_var})"
            raise StrategyUnavailableError(msg)

        page = await ctx.career_page()
        cleaned = clean_html_for_llm(page.text, self._config.max_html_chars)
        if not cleaned:
            msg = f"Nothing left to send to the LLM after cleaning {page.url}"
            raise NoJobsFoundError(msg)

        prompt = f"Company: {company.name}\nCareer page: {page.url}\n\nHTML:\n{cleaned}"
        raw = await asyncio.to_thread(
            self._client.complete,
            prompt,
            system=EXTRACTION_PROMPT,
            json_mode=True,
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
        )
        extraction = parse_llm_response(raw)
        return self._to_jobs(company, extraction, page.url)

    def _to_jobs(
        self,
        company: CompanyConfig,
        extraction: LLMExtraction,
        base_url: str,
    ) -> list[ScrapedJob]:
        jobs: list[ScrapedJob] = []
        for item in extraction.jobs[: self._config.max_jobs]:
            try:
                jobs.append(build_job(
                    company,
                    self.method,
                    title=item.title,
                    location=item.location or "",
                    description=item.description or "",
                    requirements=item.requirements or (),
                    responsibilities=item.responsibilities or (),
                    skills=item.skills or (),
                    salary=parse_salary_text(item.salary),
                    external_url=resolve_url(base_url, item.url),
                    department=item.department or "",
                    employment_type_hint=item.employment_type,
                    work_type_hint=item.work_type,
                    confidence=extraction.confidence,
                ))
            except ParseError as e:
                logger.debug("Skipping LLM job for %s: %s", company.id, e)

        if not jobs:
            msg = f"LLM found no jobs on {base_url}"
            raise NoJobsFoundError(msg)
        logger.info(
            "LLM extraction: %d jobs for %s (confidence %.2f)",
            len(jobs), company.id, extraction.confidence,
        )
        return jobs
