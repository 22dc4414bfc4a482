"""Headless-browser extractor for client-rendered career pages.

Most expensive strategy; runs last. Uses the shared BrowserPool, never a
browser of its own.
"""

import logging
from typing import Any

from patchright.async_api import Error as PlaywrightError
from patchright.async_api import TimeoutError as PlaywrightTimeoutError

from harvester.browser.actions import scroll_to_load
from harvester.browser.session import BrowserPool
from harvester.core.config import BrowserConfig
from harvester.core.errors import FetchTimeoutError, NetworkError, NoJobsFoundError, ParseError
from harvester.core.http import host_of
from harvester.core.normalize import build_job, resolve_url
from harvester.core.rate_limiter import RateLimiter
from harvester.core.schemas import CompanyConfig, ScrapedJob, ScrapeMethod
from harvester.strategies.base import ExtractionStrategy, FetchContext
from harvester.strategies.data_island import find_job_objects, jobs_from_objects
from harvester.strategies.html_parsing import MAX_HEURISTIC_JOBS, is_plausible_title
from harvester.strategies.selectors import JOB_CARD_SELECTORS

logger = logging.getLogger(__name__)

# Runs in the page: global state object plus job-card DOM heuristics.
EXTRACT_JS = """
(selectors) => {
  const state = window.__INITIAL_STATE__ || window.__DATA__ || window.__JOBS__
    || window.__NEXT_DATA__ || null;
  let stateJson = null;
  try { stateJson = state ? JSON.parse(JSON.stringify(state)) : null; } catch (e) { stateJson = null; }

  const cards = [];
  const seen = new Set();
  for (const selector of selectors) {
    for (const el of document.querySelectorAll(selector)) {
      if (seen.has(el)) continue;
      seen.add(el);
      const titleEl = el.querySelector('h1, h2, h3, h4, [class*="title"], a');
      const locationEl = el.querySelector('[class*="location"], [data-testid*="location"]');
      const descriptionEl = el.querySelector('[class*="description"], [class*="summary"], p');
      const link = el.tagName === 'A' ? el : el.querySelector('a[href]');
      const title = ((titleEl ? titleEl.innerText : el.innerText) || '').trim().split('\\n')[0];
      cards.push({
        title: title,
        location: locationEl ? locationEl.innerText.trim() : '',
        description: descriptionEl ? descriptionEl.innerText.trim().slice(0, 2000) : '',
        url: link ? link.getAttribute('href') : null,
      });
    }
    if (cards.length) break;
  }
  return { state: stateJson, cards: cards };
}
"""


class BrowserStrategy(ExtractionStrategy):
    """Renders the page in the shared browser and reads state + DOM cards."""

    def __init__(
        self,
        pool: BrowserPool,
        config: BrowserConfig | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
        enabled: bool = True,
        max_cards: int = MAX_HEURISTIC_JOBS,
    ) -> None:
        self._pool = pool
        self._config = config or BrowserConfig()
        self._rate_limiter = rate_limiter
        self._enabled = enabled
        self._max_cards = max_cards

    @property
    def method(self) -> ScrapeMethod:
        return "browser_automation"

    def supports(self, company: CompanyConfig) -> bool:
        return self._enabled and company.scrape_config.use_browser

    async def extract(self, company: CompanyConfig, ctx: FetchContext) -> list[ScrapedJob]:
        url = company.career_page_url
        hints = company.scrape_config.browser
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire(host_of(url))

        async with self._pool.page() as page:
            try:
                await page.goto(url, wait_until="networkidle", timeout=self._config.timeout_ms)
            except PlaywrightTimeoutError as e:
                msg = f"Browser navigation to {url} timed out"
                raise FetchTimeoutError(url, msg) from e
            except PlaywrightError as e:
                msg = f"Browser navigation to {url} failed: {e}"
                raise NetworkError(url, msg) from e

            if hints.wait_for_selector:
                try:
                    await page.wait_for_selector(
                        hints.wait_for_selector, timeout=self._config.selector_timeout_ms,
                    )
                except PlaywrightTimeoutError:
                    logger.debug("Selector %r never appeared on %s", hints.wait_for_selector, url)
            elif hints.wait_time_ms:
                await page.wait_for_timeout(hints.wait_time_ms)

            if hints.scroll_to_bottom:
                await scroll_to_load(
                    page,
                    card_selectors=JOB_CARD_SELECTORS,
                    max_attempts=self._config.max_scroll_attempts,
                )

            try:
                payload = await page.evaluate(EXTRACT_JS, list(JOB_CARD_SELECTORS))
            except PlaywrightError as e:
                msg = f"In-page extraction failed on {url}: {e}"
                raise ParseError(msg) from e
            base_url = page.url or url

        return self.parse_payload(company, payload, base_url)

    def parse_payload(self, company: CompanyConfig, payload: Any, base_url: str) -> list[ScrapedJob]:
        if not isinstance(payload, dict):
            msg = f"Unexpected in-page payload type {type(payload).__name__}"
            raise ParseError(msg)

        objects = find_job_objects(payload.get("state"))
        if objects:
            state_jobs = jobs_from_objects(company, self.method, objects, base_url)
            if state_jobs:
                logger.debug("Browser state: %d jobs for %s", len(state_jobs), company.id)
                return state_jobs

        jobs: list[ScrapedJob] = []
        seen: set[str] = set()
        for card in payload.get("cards") or []:
            if len(jobs) >= self._max_cards:
                break
            if not isinstance(card, dict):
                continue
            title = " ".join(str(card.get("title") or "").split())
            if not is_plausible_title(title) or title.lower() in seen:
                continue
            seen.add(title.lower())
            try:
                jobs.append(build_job(
                    company,
                    self.method,
                    title=title,
                    location=str(card.get("location") or ""),
                    description=str(card.get("description") or ""),
                    external_url=resolve_url(base_url, card.get("url")),
                ))
            except ParseError as e:
                logger.debug("Skipping rendered card for %s: %s", company.id, e)

        if not jobs:
            msg = f"Rendered page {base_url} had no job state or job cards"
            raise NoJobsFoundError(msg)
        logger.debug("Browser cards: %d jobs for %s", len(jobs), company.id)
        return jobs
