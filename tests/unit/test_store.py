"""Tests for the in-memory JobStore: upsert, projections, filters and FIFO eviction."""

from harvester.core.normalize import build_job
from harvester.core.schemas import CompanyConfig, JobFilter, ScrapedJob
from harvester.core.store import JobStore

ACME = CompanyConfig(id="acme", name="Acme Corp", career_page_url="https://acme.example.com/careers")
GLOBEX = CompanyConfig(id="globex", name="Globex", career_page_url="https://globex.example.com/jobs")


def _job(
    title: str = "Senior Python Engineer",
    *,
    company: CompanyConfig = ACME,
    location: str = "Berlin, Germany",
    description: str = "",
) -> ScrapedJob:
    return build_job(company, "json_ld", title=title, location=location, description=description)


class TestUpsert:
    def test_new_then_existing(self) -> None:
        store = JobStore()
        job = _job()
        assert store.upsert(job) is True
        assert store.upsert(job) is False
        assert len(store) == 1
        assert job.id in store
        assert store.get(job.id) == job

    def test_get_missing(self) -> None:
        assert JobStore().get("nope") is None

    def test_fifo_eviction(self) -> None:
        store = JobStore(max_jobs=2)
        first, second, third = _job("Engineer One"), _job("Engineer Two"), _job("Engineer Three")
        for job in (first, second, third):
            store.upsert(job)
        assert len(store) == 2
        assert first.id not in store
        assert [j.id for j in store.all()] == [second.id, third.id]

    def test_clear(self) -> None:
        store = JobStore()
        store.upsert(_job())
        store.clear()
        assert len(store) == 0


class TestProjections:
    def _store(self) -> JobStore:
        store = JobStore()
        store.upsert(_job("Senior Python Engineer", location="Remote", description="Django and AWS"))
        store.upsert(_job("Junior Frontend Developer", location="Berlin, Germany", description="React"))
        store.upsert(_job("Data Engineer", company=GLOBEX, location="New York, NY", description="Spark"))
        return store

    def test_by_company(self) -> None:
        jobs = self._store().by_company("globex")
        assert [j.title for j in jobs] == ["Data Engineer"]

    def test_filter_work_type(self) -> None:
        jobs = self._store().filter(JobFilter(work_type="remote"))
        assert [j.title for j in jobs] == ["Senior Python Engineer"]

    def test_filter_experience(self) -> None:
        jobs = self._store().filter(JobFilter(experience_level="entry"))
        assert [j.title for j in jobs] == ["Junior Frontend Developer"]

    def test_filter_location_substring_case_insensitive(self) -> None:
        jobs = self._store().filter(JobFilter(location="berlin"))
        assert [j.title for j in jobs] == ["Junior Frontend Developer"]

    def test_filter_remote_flag(self) -> None:
        jobs = self._store().filter(JobFilter(is_remote=False))
        assert {j.title for j in jobs} == {"Junior Frontend Developer", "Data Engineer"}

    def test_filter_skills_any_of(self) -> None:
        jobs = self._store().filter(JobFilter(skills=["react", "spark"]))
        assert {j.title for j in jobs} == {"Junior Frontend Developer", "Data Engineer"}

    def test_empty_filter_returns_all(self) -> None:
        assert len(self._store().filter(JobFilter())) == 3

    def test_search(self) -> None:
        store = self._store()
        assert [j.title for j in store.search("DJANGO")] == ["Senior Python Engineer"]
        assert [j.title for j in store.search("globex")] == ["Data Engineer"]
        assert store.search("cobol") == []

    def test_empty_search_returns_all(self) -> None:
        assert len(self._store().search("  ")) == 3
