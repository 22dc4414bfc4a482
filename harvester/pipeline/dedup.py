"""Three-tier job deduplication across runs.

Tiers:
  1. Exact: content-hash id, O(1) dict lookup
  2. URL:   normalized posting URL, O(1) dict lookup (career-page fallback
               URLs are never indexed)
  3. Fuzzy: SequenceMatcher ratio of "normalized title|company" against
               records inside the trailing time window (same location only,
               unless ``match_location`` is off)
Records not seen within the window are evicted lazily at the start of every
call, from every tier. A match refreshes the canonical record's last-seen time,
so a posting that keeps being scraped stays known.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from difflib import SequenceMatcher
from typing import Literal

from harvester.core.config import DedupConfig
from harvester.core.normalize import normalize_company, normalize_url
from harvester.core.schemas import ScrapedJob, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DuplicateMatch:
    """A rejected job and the already-accepted record it duplicates."""

    job: ScrapedJob
    canonical_id: str
    reason: Literal["exact", "url", "fuzzy"]
    similarity: float


@dataclass
class DeduplicationResult:
    unique: list[ScrapedJob] = field(default_factory=list)
    duplicates: list[DuplicateMatch] = field(default_factory=list)


@dataclass
class _Record:
    job_id: str
    fingerprint: str
    location: str
    timestamp: datetime
    url: str
    seen_at: datetime


def fingerprint(job: ScrapedJob) -> str:
    return f"{job.normalized_title}|{normalize_company(job.company)}"


def posting_url(job: ScrapedJob) -> str:
    """Normalized external URL, or "" when it is only the career-page fallback."""
    url = normalize_url(job.external_url)
    if not url or url == normalize_url(job.source.url):
        return ""
    return url


def _timestamp(job: ScrapedJob) -> datetime:
    return job.posted_date or job.scraped_at


class DeduplicationEngine:
    """Stateful across calls: the index remembers every job seen within the window."""

    def __init__(
        self,
        config: DedupConfig | None = None,
        *,
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or DedupConfig()
        self._window = timedelta(hours=self._config.time_window_hours)
        self._now = now
        self._exact: dict[str, _Record] = {}
        self._urls: dict[str, _Record] = {}
        self._lock = threading.Lock()

    @property
    def index_size(self) -> int:
        return len(self._exact)

    @property
    def url_index_size(self) -> int:
        return len(self._urls)

    def clear(self) -> None:
        with self._lock:
            self._exact.clear()
            self._urls.clear()

    def deduplicate(self, jobs: Iterable[ScrapedJob]) -> DeduplicationResult:
        result = DeduplicationResult()
        with self._lock:
            now = self._now()
            self._evict(now)
            for job in jobs:
                match = self._find_match(job, now)
                if match is not None:
                    result.duplicates.append(match)
                    continue
                self._index(job, now)
                result.unique.append(job)

        if result.duplicates:
            fuzzy = sum(1 for d in result.duplicates if d.reason == "fuzzy")
            by_url = sum(1 for d in result.duplicates if d.reason == "url")
            logger.debug(
                "Deduplication: %d unique, %d duplicates (%d by url, %d fuzzy)",
                len(result.unique), len(result.duplicates), by_url, fuzzy,
            )
        return result

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _evict(self, now: datetime) -> None:
        cutoff = now - self._window
        stale = [job_id for job_id, r in self._exact.items() if r.seen_at < cutoff]
        if not stale:
            return
        for job_id in stale:
            record = self._exact.pop(job_id)
            if record.url and self._urls.get(record.url) is record:
                del self._urls[record.url]
        logger.debug("Deduplication: evicted %d records not seen since %s", len(stale), cutoff)

    def _find_match(self, job: ScrapedJob, now: datetime) -> DuplicateMatch | None:
        existing = self._exact.get(job.id)
        if existing is not None:
            existing.seen_at = now
            return DuplicateMatch(job=job, canonical_id=existing.job_id, reason="exact", similarity=1.0)

        url = posting_url(job)
        by_url = self._urls.get(url) if url else None
        if by_url is not None:
            by_url.seen_at = now
            return DuplicateMatch(job=job, canonical_id=by_url.job_id, reason="url", similarity=1.0)

        threshold = self._config.fuzzy_threshold
        candidate = fingerprint(job)
        location = job.location.normalized
        when = _timestamp(job)
        matcher = SequenceMatcher(None, b=candidate, autojunk=False)

        best: tuple[float, _Record] | None = None
        for record in self._exact.values():
            if abs(when - record.timestamp) > self._window:
                continue
            if (
                self._config.match_location
                and location
                and record.location
                and location != record.location
            ):
                continue
            matcher.set_seq1(record.fingerprint)
            if matcher.real_quick_ratio() < threshold or matcher.quick_ratio() < threshold:
                continue
            ratio = matcher.ratio()
            if ratio >= threshold and (best is None or ratio > best[0]):
                best = (ratio, record)

        if best is None:
            return None
        best[1].seen_at = now
        return DuplicateMatch(job=job, canonical_id=best[1].job_id, reason="fuzzy", similarity=best[0])

    def _index(self, job: ScrapedJob, now: datetime) -> None:
        record = _Record(
            job_id=job.id,
            fingerprint=fingerprint(job),
            location=job.location.normalized,
            timestamp=_timestamp(job),
            url=posting_url(job),
            seen_at=now,
        )
        self._exact[job.id] = record
        if record.url:
            self._urls.setdefault(record.url, record)
