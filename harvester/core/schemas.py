"""Core data models for the career-page harvester."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

WorkType = Literal["remote", "onsite", "hybrid"]
EmploymentType = Literal["full-time", "part-time", "contract", "internship", "freelance"]
ExperienceLevel = Literal["entry", "mid", "senior", "staff", "principal", "executive"]
JobStatus = Literal["active", "filled", "expired", "paused"]
SalaryPeriod = Literal["hourly", "daily", "weekly", "monthly", "yearly"]
ScrapeMethod = Literal[
    "api",
    "json_ld",
    "data_island",
    "html_parsing",
    "ai_extraction",
    "browser_automation",
]
ErrorKind = Literal[
    "network",
    "timeout",
    "blocked",
    "oversized",
    "parse",
    "rate_limit",
    "no_jobs",
    "unsupported",
    "unavailable",
    "unknown",
]
HealthStatus = Literal["healthy", "degraded", "down"]

SCRAPE_METHODS: tuple[ScrapeMethod, ...] = (
    "api",
    "json_ld",
    "data_island",
    "html_parsing",
    "ai_extraction",
    "browser_automation",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Input: company configuration
# ---------------------------------------------------------------------------


class ATSConfig(BaseModel):
    """Applicant tracking system descriptor for a company."""

    model_config = ConfigDict(frozen=True)

    type: str
    board_id: str | None = None
    api_url: str | None = None

    @field_validator("type")
    @classmethod
    def lowercase_vendor(cls, v: str) -> str:
        return v.strip().lower()


class SelectorConfig(BaseModel):
    """Company-supplied CSS selectors for the pattern-based HTML extractor."""

    model_config = ConfigDict(frozen=True)

    job_container: str
    title: str
    location: str | None = None
    description: str | None = None
    link: str | None = None


class BrowserHints(BaseModel):
    """How long to wait for a client-rendered career page to settle."""

    model_config = ConfigDict(frozen=True)

    wait_for_selector: str | None = None
    wait_time_ms: int = Field(default=2000, ge=0, le=60000)
    scroll_to_bottom: bool = False


class ScrapeConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    selectors: SelectorConfig | None = None
    browser: BrowserHints = Field(default_factory=BrowserHints)
    use_ai: bool = True
    use_browser: bool = True
    strategies: list[ScrapeMethod] | None = None


class CompanyConfig(BaseModel):
    """One scrape target. Immutable for the duration of a run."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    career_page_url: str
    ats: ATSConfig | None = None
    scrape_config: ScrapeConfig = Field(default_factory=ScrapeConfig)
    enabled: bool = True

    @field_validator("id", "name", "career_page_url")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            msg = "company id, name and career_page_url must not be empty"
            raise ValueError(msg)
        return v.strip()


# ---------------------------------------------------------------------------
# Output: canonical job record
# ---------------------------------------------------------------------------


class JobLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    raw: str = ""
    normalized: str = ""
    is_remote: bool = False
    city: str = ""
    state: str = ""
    country: str = ""


class SalaryInfo(BaseModel):
    """Salary range normalized to ``period`` (yearly whenever a conversion was possible)."""

    model_config = ConfigDict(frozen=True)

    min: float | None = None
    max: float | None = None
    currency: str = "USD"
    period: SalaryPeriod = "yearly"
    is_disclosed: bool = False


class JobSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["career_page", "ats"]
    url: str
    scrape_method: ScrapeMethod
    ats: str | None = None


class ScrapedJob(BaseModel):
    """Canonical job record produced by every extraction strategy.

    Frozen: duplicates are dropped by the deduplicator, never merged in place.
    Every field has an explicit default so consumers can rely on shape.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    normalized_title: str
    company: str
    company_id: str
    location: JobLocation = Field(default_factory=JobLocation)
    description: str = ""
    requirements: list[str] = Field(default_factory=list)
    responsibilities: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    work_type: WorkType = "onsite"
    employment_type: EmploymentType = "full-time"
    experience_level: ExperienceLevel = "mid"
    salary: SalaryInfo = Field(default_factory=SalaryInfo)
    external_url: str = ""
    source: JobSource
    department: str = ""
    team: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    posted_date: datetime | None = None
    scraped_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    status: JobStatus = "active"

    @property
    def is_remote(self) -> bool:
        return self.location.is_remote or self.work_type == "remote"


# ---------------------------------------------------------------------------
# Run results, metrics and health
# ---------------------------------------------------------------------------


class ScrapingError(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    retryable: bool = False
    strategy_errors: dict[str, str] = Field(default_factory=dict)


class ScrapingResult(BaseModel):
    """Per-company outcome of one engine run."""

    model_config = ConfigDict(frozen=True)

    company_id: str
    company_name: str
    success: bool
    jobs: list[ScrapedJob] = Field(default_factory=list)
    error: ScrapingError | None = None
    strategy_used: ScrapeMethod | None = None
    strategies_tried: list[ScrapeMethod] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    duration_ms: float = 0.0


class SourceCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    count: int


class ScrapingMetrics(BaseModel):
    """Aggregate over a single batch. Recomputed every batch, never persisted."""

    model_config = ConfigDict(frozen=True)

    total_jobs_scraped: int = 0
    success_rate: float = 1.0
    average_latency_ms: float = 0.0
    errors_by_type: dict[str, int] = Field(default_factory=dict)
    top_sources: list[SourceCount] = Field(default_factory=list)
    companies_scraped: int = 0
    active_jobs: int = 0
    new_jobs: int = 0
    generated_at: datetime = Field(default_factory=utcnow)


class HealthChecks(BaseModel):
    model_config = ConfigDict(frozen=True)

    database: bool = True
    queue: bool = True
    api_keys: bool = False
    ai_service: bool = False
    browser: bool = False


class HealthCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: HealthStatus
    checks: HealthChecks
    queue_depth: int = 0
    last_success_rate: float | None = None
    last_successful_scrape: datetime | None = None
    uptime_seconds: float = 0.0
    checked_at: datetime = Field(default_factory=utcnow)


class JobFilter(BaseModel):
    """Criteria for ``filter_jobs``. Unset fields do not constrain."""

    work_type: WorkType | None = None
    experience_level: ExperienceLevel | None = None
    location: str | None = None
    is_remote: bool | None = None
    skills: list[str] = Field(default_factory=list)
