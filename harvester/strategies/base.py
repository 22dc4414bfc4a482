"""Abstract base class for extraction strategies and the per-company fetch context."""

import asyncio
from abc import ABC, abstractmethod

from harvester.core.http import FetchResult, HttpFetcher
from harvester.core.schemas import CompanyConfig, ScrapedJob, ScrapeMethod


class FetchContext:
    """Fetch options for one company run.

    Memoizes the career page so the HTML-based strategies in a cascade
    download it at most once. A failed download is not cached.
    """

    def __init__(self, company: CompanyConfig, fetcher: HttpFetcher) -> None:
        self.company = company
        self.fetcher = fetcher
        self._page: FetchResult | None = None
        self._lock = asyncio.Lock()

    async def career_page(self) -> FetchResult:
        async with self._lock:
            if self._page is None:
                self._page = await self.fetcher.get_text(self.company.career_page_url)
            return self._page


class ExtractionStrategy(ABC):
    """Base class that every extraction strategy must implement.

    ``extract`` returns at least one job or raises: NoJobsFoundError when the
    technique ran cleanly but found nothing, any other ScrapeError on failure.
    """

    @property
    @abstractmethod
    def method(self) -> ScrapeMethod:
        """Identifier recorded in ``ScrapedJob.source.scrape_method``."""

    def supports(self, company: CompanyConfig) -> bool:
        """Whether this strategy applies to the company at all (cheap, no I/O)."""
        return True

    @abstractmethod
    async def extract(self, company: CompanyConfig, ctx: FetchContext) -> list[ScrapedJob]:
        """Run the technique and return canonical job records."""
