"""Configuration models and YAML loader for the harvester."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from harvester.core.schemas import SCRAPE_METHODS, CompanyConfig, ScrapeMethod

DEFAULT_STRATEGY_ORDER: list[ScrapeMethod] = list(SCRAPE_METHODS)


class RateLimitConfig(BaseModel):
    """Shared token bucket: sustained requests per minute plus a burst allowance."""

    requests_per_minute: int = Field(default=60, ge=1)
    burst_size: int = Field(default=10, ge=1)
    per_host: bool = True


class EngineConfig(BaseModel):
    """Scraper engine limits."""

    max_concurrent: int = Field(default=10, ge=1)
    batch_size: int = Field(default=5, ge=1)
    batch_delay_s: float = Field(default=1.0, ge=0.0)
    request_timeout_s: float = Field(default=30.0, gt=0.0)
    total_timeout_s: float = Field(default=120.0, gt=0.0)
    max_retries: int = Field(default=3, ge=0, le=10)
    retry_delay_s: float = Field(default=1.0, ge=0.0)
    retry_max_delay_s: float = Field(default=30.0, ge=0.0)
    max_response_bytes: int = Field(default=5 * 1024 * 1024, ge=1024)
    enable_ai: bool = True
    enable_browser: bool = True
    strategy_order: list[ScrapeMethod] = Field(
        default_factory=lambda: list(DEFAULT_STRATEGY_ORDER),
    )
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)

    @field_validator("strategy_order")
    @classmethod
    def order_not_empty(cls, v: list[ScrapeMethod]) -> list[ScrapeMethod]:
        if not v:
            msg = "strategy_order must list at least one strategy"
            raise ValueError(msg)
        if len(set(v)) != len(v):
            msg = "strategy_order must not repeat a strategy"
            raise ValueError(msg)
        return v


class DedupConfig(BaseModel):
    """Fuzzy deduplication tuning."""

    fuzzy_threshold: float = Field(default=0.85, gt=0.0, le=1.0)
    time_window_hours: float = Field(default=168.0, gt=0.0)
    match_location: bool = True


class LLMConfig(BaseModel):
    """LLM-assisted extraction backends."""

    preferred: str = "groq"
    alternate: str | None = "ollama"
    model: str | None = None
    alternate_model: str | None = None
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4000, ge=256)
    max_html_chars: int = Field(default=25000, ge=1000)
    max_jobs: int = Field(default=20, ge=1, le=100)
    timeout_s: float = Field(default=60.0, gt=0.0)


class BrowserConfig(BaseModel):
    """Headless browser pool configuration."""

    headless: bool = True
    timeout_ms: int = Field(default=30000, ge=1000)
    selector_timeout_ms: int = Field(default=10000, ge=500)
    viewport_width: int = 1920
    viewport_height: int = 1080
    max_scroll_attempts: int = Field(default=5, ge=1, le=20)


class HealthConfig(BaseModel):
    """Success-rate thresholds for the three-state health status."""

    healthy_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    degraded_threshold: float = Field(default=0.5, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def ordered_thresholds(self) -> "HealthConfig":
        if self.degraded_threshold > self.healthy_threshold:
            msg = "degraded_threshold must not exceed healthy_threshold"
            raise ValueError(msg)
        return self


class StoreConfig(BaseModel):
    """In-memory job cache. ``max_jobs`` of None means unbounded."""

    max_jobs: int | None = Field(default=None, ge=1)


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    engine: EngineConfig = Field(default_factory=EngineConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    companies: list[CompanyConfig] = Field(default_factory=list)

    @field_validator("companies")
    @classmethod
    def unique_company_ids(cls, v: list[CompanyConfig]) -> list[CompanyConfig]:
        seen: set[str] = set()
        for company in v:
            if company.id in seen:
                msg = f"duplicate company id: {company.id}"
                raise ValueError(msg)
            seen.add(company.id)
        return v

    @model_validator(mode="after")
    def llm_timeout_within_company_budget(self) -> "Settings":
        if self.llm.timeout_s >= self.engine.total_timeout_s:
            msg = "llm.timeout_s must be below engine.total_timeout_s"
            raise ValueError(msg)
        return self

    def company(self, company_id: str) -> CompanyConfig:
        """Look up a configured company by id."""
        for company in self.companies:
            if company.id == company_id:
                return company
        msg = f"Unknown company id: {company_id}"
        raise KeyError(msg)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
