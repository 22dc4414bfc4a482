"""Batch metrics and health status derived from engine results."""

from collections import Counter
from collections.abc import Sequence
from datetime import datetime

from harvester.core.config import HealthConfig
from harvester.core.schemas import (
    HealthCheck,
    HealthChecks,
    HealthStatus,
    ScrapedJob,
    ScrapingMetrics,
    ScrapingResult,
    SourceCount,
)

TOP_SOURCES = 5


def source_label(job: ScrapedJob) -> str:
    return job.source.ats or job.source.scrape_method


def compute_metrics(
    results: Sequence[ScrapingResult],
    active_jobs: int = 0,
    new_jobs: int = 0,
) -> ScrapingMetrics:
    """Summarize one batch. An empty batch counts as fully successful."""
    if not results:
        return ScrapingMetrics(active_jobs=active_jobs, new_jobs=new_jobs)

    succeeded = sum(1 for r in results if r.success)
    errors: Counter[str] = Counter(
        r.error.kind if r.error is not None else "unknown"
        for r in results if not r.success
    )
    sources: Counter[str] = Counter(
        source_label(job) for r in results if r.success for job in r.jobs
    )

    return ScrapingMetrics(
        total_jobs_scraped=sum(len(r.jobs) for r in results),
        success_rate=succeeded / len(results),
        average_latency_ms=sum(r.duration_ms for r in results) / len(results),
        errors_by_type=dict(errors),
        top_sources=[
            SourceCount(source=name, count=count)
            for name, count in sources.most_common(TOP_SOURCES)
        ],
        companies_scraped=len(results),
        active_jobs=active_jobs,
        new_jobs=new_jobs,
    )


def health_status(success_rate: float | None, config: HealthConfig) -> HealthStatus:
    if success_rate is None or success_rate >= config.healthy_threshold:
        return "healthy"
    if success_rate >= config.degraded_threshold:
        return "degraded"
    return "down"


def evaluate_health(
    config: HealthConfig,
    checks: HealthChecks,
    *,
    last_metrics: ScrapingMetrics | None = None,
    queue_depth: int = 0,
    last_successful_scrape: datetime | None = None,
    uptime_seconds: float = 0.0,
) -> HealthCheck:
    """Three-state status from the last batch's success rate plus component checks.

    With no batch run yet the status is ``healthy``.
    """
    rate = last_metrics.success_rate if last_metrics is not None else None
    return HealthCheck(
        status=health_status(rate, config),
        checks=checks,
        queue_depth=queue_depth,
        last_success_rate=rate,
        last_successful_scrape=last_successful_scrape,
        uptime_seconds=uptime_seconds,
    )
