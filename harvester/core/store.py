"""In-memory job cache keyed by job id.

A cache, not a system of record: persistence belongs to the downstream
consumer. Optionally bounded, evicting the oldest inserted jobs first.
"""

import logging
from collections import OrderedDict

from harvester.core.schemas import JobFilter, ScrapedJob

logger = logging.getLogger(__name__)


class JobStore:
    def __init__(self, max_jobs: int | None = None) -> None:
        self._jobs: OrderedDict[str, ScrapedJob] = OrderedDict()
        self._max_jobs = max_jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def upsert(self, job: ScrapedJob) -> bool:
        """Insert or replace a job. Returns True if the id was not stored yet."""
        is_new = job.id not in self._jobs
        self._jobs[job.id] = job
        if self._max_jobs is not None:
            while len(self._jobs) > self._max_jobs:
                evicted_id, _ = self._jobs.popitem(last=False)
                logger.debug("JobStore full (%d): evicted %s", self._max_jobs, evicted_id)
        return is_new

    def get(self, job_id: str) -> ScrapedJob | None:
        return self._jobs.get(job_id)

    def all(self) -> list[ScrapedJob]:
        return list(self._jobs.values())

    def by_company(self, company_id: str) -> list[ScrapedJob]:
        return [j for j in self._jobs.values() if j.company_id == company_id]

    def filter(self, criteria: JobFilter) -> list[ScrapedJob]:
        return [j for j in self._jobs.values() if _matches(j, criteria)]

    def search(self, text: str) -> list[ScrapedJob]:
        """Case-insensitive substring search over title, description, skills and company."""
        needle = text.strip().lower()
        if not needle:
            return self.all()
        return [j for j in self._jobs.values() if needle in _haystack(j)]

    def clear(self) -> None:
        self._jobs.clear()


def _haystack(job: ScrapedJob) -> str:
    return " ".join([job.title, job.description, " ".join(job.skills), job.company]).lower()


def _matches(job: ScrapedJob, criteria: JobFilter) -> bool:
    if criteria.work_type is not None and job.work_type != criteria.work_type:
        return False
    if criteria.experience_level is not None and job.experience_level != criteria.experience_level:
        return False
    if criteria.is_remote is not None and job.is_remote != criteria.is_remote:
        return False
    if criteria.location:
        wanted = criteria.location.strip().lower()
        if wanted not in job.location.raw.lower():
            return False
    if criteria.skills:
        wanted_skills = {s.strip().lower() for s in criteria.skills if s.strip()}
        if wanted_skills and not wanted_skills & {s.lower() for s in job.skills}:
            return False
    return True
