"""Scraper engine: runs the strategy cascade per company under concurrency and time limits.

Data flow per company:
  1. Order strategies (company override, else engine default)
  2. Skip strategies that do not apply (no ATS, AI/browser disabled)
  3. Run the rest sequentially; first one returning >= 1 job wins
  4. Any strategy error is logged and the cascade moves on
  5. Exhausted cascade -> ScrapingResult(success=False) with aggregated error
The whole cascade is bounded by ``total_timeout_s``.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence

from harvester.browser.session import BrowserPool
from harvester.core.config import EngineConfig, Settings
from harvester.core.errors import SOFT_ERROR_KINDS, NoJobsFoundError, ScrapeError
from harvester.core.http import HttpFetcher
from harvester.core.rate_limiter import RateLimiter
from harvester.core.schemas import (
    CompanyConfig,
    ErrorKind,
    ScrapedJob,
    ScrapeMethod,
    ScrapingError,
    ScrapingResult,
    utcnow,
)
from harvester.llm import FailoverLLMClient
from harvester.strategies.ai_extraction import AIExtractionStrategy
from harvester.strategies.ats_api import ATSApiStrategy
from harvester.strategies.base import ExtractionStrategy, FetchContext
from harvester.strategies.browser import BrowserStrategy
from harvester.strategies.data_island import DataIslandStrategy
from harvester.strategies.html_parsing import HtmlParsingStrategy
from harvester.strategies.json_ld import JsonLdStrategy

logger = logging.getLogger(__name__)

CascadeOutcome = tuple[ScrapeMethod, list[ScrapedJob]]


def _kind(error: BaseException) -> ErrorKind:
    return error.kind if isinstance(error, ScrapeError) else "unknown"


def aggregate_error(errors: dict[ScrapeMethod, BaseException]) -> ScrapingError:
    """Fold per-strategy failures into one company-level error.

    The kind is that of the last hard failure; a cascade of only soft
    outcomes (nothing found, strategy unavailable) reports ``no_jobs``.
    """
    if not errors:
        return ScrapingError(kind="unavailable", message="No applicable extraction strategies")
    hard = [e for e in errors.values() if _kind(e) not in SOFT_ERROR_KINDS]
    kind: ErrorKind = _kind(hard[-1]) if hard else "no_jobs"
    return ScrapingError(
        kind=kind,
        message="; ".join(f"{method}: {error}" for method, error in errors.items()),
        retryable=any(getattr(e, "retryable", False) for e in hard),
        strategy_errors={method: f"[{_kind(e)}] {e}" for method, e in errors.items()},
    )


class ScraperEngine:
    """Bounded-concurrency fan-out over companies, sequential cascade within one."""

    def __init__(
        self,
        config: EngineConfig,
        strategies: Sequence[ExtractionStrategy],
        fetcher: HttpFetcher,
        *,
        browser_pool: BrowserPool | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._strategies: dict[ScrapeMethod, ExtractionStrategy] = {s.method: s for s in strategies}
        self._fetcher = fetcher
        self._browser_pool = browser_pool
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(config.max_concurrent)
        self._in_flight = 0
        self._peak_in_flight = 0

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak_in_flight(self) -> int:
        return self._peak_in_flight

    def strategy_order(self, company: CompanyConfig) -> list[ExtractionStrategy]:
        return plan_strategies(self._config, self._strategies.values(), company)

    async def aclose(self) -> None:
        await self._fetcher.aclose()
        if self._browser_pool is not None:
            await self._browser_pool.shutdown()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def scrape_company(self, company: CompanyConfig) -> ScrapingResult:
        """Scrape one company. Never raises for strategy or network failures."""
        if not company.enabled:
            return ScrapingResult(
                company_id=company.id,
                company_name=company.name,
                success=False,
                error=ScrapingError(kind="unavailable", message="Company disabled in config"),
            )

        async with self._semaphore:
            self._in_flight += 1
            self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
            try:
                return await self._scrape_bounded(company)
            finally:
                self._in_flight -= 1

    async def scrape_companies(self, companies: Iterable[CompanyConfig]) -> list[ScrapingResult]:
        """Scrape many companies in fixed-size batches. One result per input, in input order."""
        targets = list(companies)
        results: list[ScrapingResult] = []
        batch_size = self._config.batch_size

        for start in range(0, len(targets), batch_size):
            if start and self._config.batch_delay_s:
                await self._sleep(self._config.batch_delay_s)
            batch = targets[start:start + batch_size]
            logger.debug(
                "Batch %d: %d companies (%d-%d of %d)",
                start // batch_size + 1, len(batch), start + 1, start + len(batch), len(targets),
            )
            outcomes = await asyncio.gather(
                *(self.scrape_company(c) for c in batch), return_exceptions=True,
            )
            for company, outcome in zip(batch, outcomes):
                if isinstance(outcome, ScrapingResult):
                    results.append(outcome)
                elif isinstance(outcome, Exception):
                    logger.error("Unexpected failure scraping %s: %r", company.id, outcome)
                    results.append(ScrapingResult(
                        company_id=company.id,
                        company_name=company.name,
                        success=False,
                        error=ScrapingError(kind="unknown", message=str(outcome) or repr(outcome)),
                    ))
                else:
                    raise outcome

        succeeded = sum(1 for r in results if r.success)
        logger.info("Scraped %d companies: %d succeeded, %d failed",
                    len(results), succeeded, len(results) - succeeded)
        return results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _scrape_bounded(self, company: CompanyConfig) -> ScrapingResult:
        started_at = utcnow()
        t0 = time.perf_counter()
        tried: list[ScrapeMethod] = []
        errors: dict[ScrapeMethod, BaseException] = {}

        def elapsed_ms() -> float:
            return (time.perf_counter() - t0) * 1000

        try:
            outcome = await asyncio.wait_for(
                self._run_cascade(company, tried, errors),
                timeout=self._config.total_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "%s: cascade exceeded %.0fs after trying %s",
                company.id, self._config.total_timeout_s, ", ".join(tried) or "nothing",
            )
            aggregated = aggregate_error(errors)
            error = ScrapingError(
                kind="timeout",
                message=f"Company scrape exceeded {self._config.total_timeout_s:.0f}s",
                retryable=True,
                strategy_errors=aggregated.strategy_errors,
            )
            return ScrapingResult(
                company_id=company.id,
                company_name=company.name,
                success=False,
                error=error,
                strategies_tried=tried,
                started_at=started_at,
                duration_ms=elapsed_ms(),
            )

        if outcome is None:
            error = aggregate_error(errors)
            logger.warning("%s: all strategies exhausted [%s]", company.id, error.kind)
            return ScrapingResult(
                company_id=company.id,
                company_name=company.name,
                success=False,
                error=error,
                strategies_tried=tried,
                started_at=started_at,
                duration_ms=elapsed_ms(),
            )

        method, jobs = outcome
        return ScrapingResult(
            company_id=company.id,
            company_name=company.name,
            success=True,
            jobs=jobs,
            strategy_used=method,
            strategies_tried=tried,
            started_at=started_at,
            duration_ms=elapsed_ms(),
        )

    async def _run_cascade(
        self,
        company: CompanyConfig,
        tried: list[ScrapeMethod],
        errors: dict[ScrapeMethod, BaseException],
    ) -> CascadeOutcome | None:
        ctx = FetchContext(company, self._fetcher)
        for strategy in self.strategy_order(company):
            method = strategy.method
            if not strategy.supports(company):
                logger.debug("%s: %s not applicable, skipping", company.id, method)
                continue

            tried.append(method)
            try:
                jobs = await strategy.extract(company, ctx)
            except ScrapeError as e:
                errors[method] = e
                if e.kind in SOFT_ERROR_KINDS:
                    logger.info("%s: %s found nothing (%s)", company.id, method, e)
                else:
                    logger.warning("%s: %s failed [%s]: %s", company.id, method, e.kind, e)
                continue
            except Exception as e:
                errors[method] = e
                logger.warning(
                    "%s: %s raised %s: %s", company.id, method, type(e).__name__, e,
                )
                continue

            if jobs:
                logger.info("%s: %d jobs via %s", company.id, len(jobs), method)
                return method, jobs
            errors[method] = NoJobsFoundError(f"{method} returned no jobs")
        return None


def plan_strategies(
    config: EngineConfig,
    strategies: Iterable[ExtractionStrategy],
    company: CompanyConfig,
) -> list[ExtractionStrategy]:
    """Strategies in cascade order for ``company`` (company override, else engine default)."""
    by_method = {s.method: s for s in strategies}
    order = company.scrape_config.strategies or config.strategy_order
    return [by_method[m] for m in order if m in by_method]


def build_strategies(
    settings: Settings,
    *,
    llm_client: FailoverLLMClient | None = None,
    browser_pool: BrowserPool | None = None,
    rate_limiter: RateLimiter | None = None,
) -> list[ExtractionStrategy]:
    """The default strategy cascade. Opens no connections."""
    engine_cfg = settings.engine
    limiter = rate_limiter or RateLimiter(engine_cfg.rate_limit)
    pool = browser_pool or BrowserPool(settings.browser)
    llm = llm_client or FailoverLLMClient.from_config(settings.llm)
    return [
        ATSApiStrategy(),
        JsonLdStrategy(),
        DataIslandStrategy(),
        HtmlParsingStrategy(),
        AIExtractionStrategy(llm, settings.llm, enabled=engine_cfg.enable_ai),
        BrowserStrategy(
            pool,
            settings.browser,
            rate_limiter=limiter,
            enabled=engine_cfg.enable_browser,
        ),
    ]


def build_engine(
    settings: Settings,
    *,
    llm_client: FailoverLLMClient | None = None,
    browser_pool: BrowserPool | None = None,
    rate_limiter: RateLimiter | None = None,
    fetcher: HttpFetcher | None = None,
) -> ScraperEngine:
    """Wire the default strategy cascade from settings."""
    engine_cfg = settings.engine
    limiter = rate_limiter or RateLimiter(engine_cfg.rate_limit)
    fetcher = fetcher or HttpFetcher.from_config(engine_cfg, rate_limiter=limiter)
    pool = browser_pool or BrowserPool(settings.browser)
    strategies = build_strategies(settings, llm_client=llm_client, browser_pool=pool, rate_limiter=limiter)
    return ScraperEngine(engine_cfg, strategies, fetcher, browser_pool=pool)
