"""Orchestrator: wires engine, deduplicator, job store and metrics.

Data flow per batch:
  1. Busy gate (one batch at a time)
  2. Engine run -> one ScrapingResult per company
  3. Dedup the union of jobs against the cross-run index
  4. Upsert unique jobs into the store
  5. Metrics for the batch, kept for health checks
"""

import json
import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from harvester.core.config import Settings
from harvester.core.errors import BatchInProgressError
from harvester.core.schemas import (
    CompanyConfig,
    HealthCheck,
    HealthChecks,
    JobFilter,
    ScrapedJob,
    ScrapingMetrics,
    ScrapingResult,
)
from harvester.core.store import JobStore
from harvester.llm import FailoverLLMClient
from harvester.pipeline.dedup import DeduplicationEngine
from harvester.pipeline.engine import ScraperEngine, build_engine
from harvester.pipeline.metrics import compute_metrics, evaluate_health

logger = logging.getLogger(__name__)


def component_checks(settings: Settings, llm: FailoverLLMClient, *, in_flight: int = 0) -> HealthChecks:
    """Configuration-level checks; needs no open connections."""
    engine_cfg = settings.engine
    preferred = llm.preferred
    return HealthChecks(
        database=True,
        queue=in_flight <= engine_cfg.max_concurrent,
        api_keys=preferred.env_var is not None and preferred.is_configured(),
        ai_service=engine_cfg.enable_ai and llm.is_available(),
        browser=engine_cfg.enable_browser,
    )


@dataclass
class BatchResult:
    """Outcome of one orchestrated batch."""

    results: list[ScrapingResult]
    jobs: list[ScrapedJob] = field(default_factory=list)
    metrics: ScrapingMetrics = field(default_factory=ScrapingMetrics)

    @property
    def duplicates(self) -> int:
        return sum(len(r.jobs) for r in self.results) - len(self.jobs)


class ScraperOrchestrator:
    def __init__(
        self,
        settings: Settings,
        engine: ScraperEngine | None = None,
        deduplicator: DeduplicationEngine | None = None,
        store: JobStore | None = None,
        llm: FailoverLLMClient | None = None,
    ) -> None:
        self.settings = settings
        self.llm = llm or FailoverLLMClient.from_config(settings.llm)
        self.engine = engine or build_engine(settings, llm_client=self.llm)
        self.deduplicator = deduplicator or DeduplicationEngine(settings.dedup)
        self.store = store if store is not None else JobStore(settings.store.max_jobs)
        self._running = False
        self._last_metrics: ScrapingMetrics | None = None
        self._last_successful_scrape: datetime | None = None
        self._started = time.monotonic()

    @property
    def is_running(self) -> bool:
        return self._running

    async def __aenter__(self) -> "ScraperOrchestrator":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self.engine.aclose()

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    async def scrape_companies(
        self, companies: Iterable[CompanyConfig] | None = None,
    ) -> BatchResult:
        """Scrape the given companies (default: all configured), dedup and store the jobs.

        Raises:
            BatchInProgressError: Another batch is still running on this orchestrator.
        """
        if self._running:
            msg = "A scraping batch is already in progress"
            raise BatchInProgressError(msg)
        self._running = True
        try:
            targets = list(self.settings.companies if companies is None else companies)
            logger.info("Starting batch of %d companies", len(targets))
            results = await self.engine.scrape_companies(targets)
            return self._absorb(results)
        finally:
            self._running = False

    async def scrape_company(self, company: CompanyConfig) -> BatchResult:
        return await self.scrape_companies([company])

    def _absorb(self, results: list[ScrapingResult]) -> BatchResult:
        scraped = [job for r in results if r.success for job in r.jobs]
        dedup = self.deduplicator.deduplicate(scraped)

        new_jobs = 0
        for job in dedup.unique:
            if self.store.upsert(job):
                new_jobs += 1

        if any(r.success for r in results):
            self._last_successful_scrape = max(r.started_at for r in results if r.success)

        metrics = compute_metrics(results, active_jobs=len(self.store), new_jobs=new_jobs)
        self._last_metrics = metrics
        logger.info(
            "Batch done: %d scraped, %d unique, %d duplicates, %d new (success rate %.0f%%)",
            len(scraped), len(dedup.unique), len(dedup.duplicates), new_jobs,
            metrics.success_rate * 100,
        )
        return BatchResult(results=results, jobs=dedup.unique, metrics=metrics)

    # ------------------------------------------------------------------
    # Read-only projections
    # ------------------------------------------------------------------

    def get_all_jobs(self) -> list[ScrapedJob]:
        return self.store.all()

    def get_jobs_by_company(self, company_id: str) -> list[ScrapedJob]:
        return self.store.by_company(company_id)

    def filter_jobs(self, criteria: JobFilter) -> list[ScrapedJob]:
        return self.store.filter(criteria)

    def search_jobs(self, text: str) -> list[ScrapedJob]:
        return self.store.search(text)

    def get_metrics(self) -> ScrapingMetrics | None:
        return self._last_metrics

    def get_health_check(self) -> HealthCheck:
        checks = component_checks(self.settings, self.llm, in_flight=self.engine.in_flight)
        return evaluate_health(
            self.settings.health,
            checks,
            last_metrics=self._last_metrics,
            queue_depth=self.engine.in_flight,
            last_successful_scrape=self._last_successful_scrape,
            uptime_seconds=time.monotonic() - self._started,
        )

    def clear_jobs(self) -> None:
        self.store.clear()
        self.deduplicator.clear()
        logger.info("Cleared job store and dedup index")


def export_jobs_json(jobs: Iterable[ScrapedJob]) -> str:
    """Export jobs as a JSON array string."""
    data: list[dict[str, Any]] = [job.model_dump(mode="json") for job in jobs]
    return json.dumps(data, indent=2)
