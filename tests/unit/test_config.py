"""Tests for configuration models and YAML loading."""

from pathlib import Path
from textwrap import dedent

import pytest
from pydantic import ValidationError

from harvester.core.config import (
    BrowserConfig,
    DedupConfig,
    EngineConfig,
    HealthConfig,
    LLMConfig,
    RateLimitConfig,
    Settings,
    StoreConfig,
)


class TestEngineConfig:
    def test_defaults(self) -> None:
        e = EngineConfig()
        assert e.max_concurrent == 10
        assert e.batch_size == 5
        assert e.total_timeout_s == 120.0
        assert e.max_response_bytes == 5 * 1024 * 1024
        assert e.strategy_order == [
            "api", "json_ld", "data_island", "html_parsing", "ai_extraction", "browser_automation",
        ]

    def test_max_concurrent_min_one(self) -> None:
        with pytest.raises(ValidationError):
            EngineConfig(max_concurrent=0)

    def test_empty_strategy_order_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least one strategy"):
            EngineConfig(strategy_order=[])

    def test_repeated_strategy_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must not repeat"):
            EngineConfig(strategy_order=["api", "api"])

    def test_unknown_strategy_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EngineConfig(strategy_order=["carrier_pigeon"])

    def test_rate_limit_nested_defaults(self) -> None:
        assert EngineConfig().rate_limit == RateLimitConfig()
        assert RateLimitConfig().requests_per_minute == 60
        assert RateLimitConfig().burst_size == 10


class TestDedupConfig:
    def test_defaults(self) -> None:
        d = DedupConfig()
        assert d.fuzzy_threshold == 0.85
        assert d.time_window_hours == 168.0
        assert d.match_location is True

    def test_threshold_bounds(self) -> None:
        with pytest.raises(ValidationError):
            DedupConfig(fuzzy_threshold=0.0)
        with pytest.raises(ValidationError):
            DedupConfig(fuzzy_threshold=1.5)


class TestLLMConfig:
    def test_defaults(self) -> None:
        c = LLMConfig()
        assert c.preferred == "groq"
        assert c.alternate == "ollama"
        assert c.model is None
        assert c.timeout_s == 60.0

    def test_temperature_bounds(self) -> None:
        with pytest.raises(ValidationError):
            LLMConfig(temperature=3.0)

    def test_timeout_positive(self) -> None:
        with pytest.raises(ValidationError):
            LLMConfig(timeout_s=0)


class TestBrowserConfig:
    def test_defaults(self) -> None:
        b = BrowserConfig()
        assert b.headless is True
        assert b.timeout_ms == 30000

    def test_timeout_min(self) -> None:
        with pytest.raises(ValidationError):
            BrowserConfig(timeout_ms=500)


class TestHealthConfig:
    def test_defaults(self) -> None:
        h = HealthConfig()
        assert h.healthy_threshold == 0.8
        assert h.degraded_threshold == 0.5

    def test_degraded_above_healthy_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must not exceed"):
            HealthConfig(healthy_threshold=0.4, degraded_threshold=0.6)


class TestStoreConfig:
    def test_unbounded_by_default(self) -> None:
        assert StoreConfig().max_jobs is None

    def test_max_jobs_positive(self) -> None:
        with pytest.raises(ValidationError):
            StoreConfig(max_jobs=0)


class TestSettings:
    def test_load_from_yaml(self, tmp_path: Path) -> None:
        yaml_content = dedent("""\
            engine:
              max_concurrent: 4
              enable_browser: false
              rate_limit:
                requests_per_minute: 30
            dedup:
              fuzzy_threshold: 0.9
            llm:
              preferred: openai
              alternate: null
            companies:
              - id: acme
                name: Acme Corp
                career_page_url: https://boards.greenhouse.io/acme
                ats:
                  type: Greenhouse
                  board_id: acme
              - id: hooli
                name: Hooli
                career_page_url: https://hooli.example.com/careers
                scrape_config:
                  use_ai: false
                  strategies: [json_ld, html_parsing]
        """)
        p = tmp_path / "settings.yaml"
        p.write_text(yaml_content)

        s = Settings.from_yaml(p)
        assert s.engine.max_concurrent == 4
        assert s.engine.enable_browser is False
        assert s.engine.rate_limit.requests_per_minute == 30
        assert s.dedup.fuzzy_threshold == 0.9
        assert s.llm.preferred == "openai"
        assert s.llm.alternate is None
        assert len(s.companies) == 2
        assert s.companies[0].ats is not None
        assert s.companies[0].ats.type == "greenhouse"
        assert s.companies[1].scrape_config.strategies == ["json_ld", "html_parsing"]
        assert s.companies[1].scrape_config.use_ai is False

    def test_missing_file_raises(self) -> None:
        with pytest.raises(FileNotFoundError):
            Settings.from_yaml("/nonexistent/settings.yaml")

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        p = tmp_path / "empty.yaml"
        p.write_text("")
        s = Settings.from_yaml(p)
        assert s.companies == []
        assert s.engine == EngineConfig()

    def test_duplicate_company_ids_rejected(self) -> None:
        company = {"id": "acme", "name": "Acme", "career_page_url": "https://acme.example.com/jobs"}
        with pytest.raises(ValidationError, match="duplicate company id"):
            Settings.model_validate({"companies": [company, company]})

    def test_llm_timeout_must_fit_company_timeout(self) -> None:
        with pytest.raises(ValidationError, match="llm.timeout_s must be below"):
            Settings(engine=EngineConfig(total_timeout_s=30), llm=LLMConfig(timeout_s=45))
        settings = Settings(engine=EngineConfig(total_timeout_s=30), llm=LLMConfig(timeout_s=20))
        assert settings.llm.timeout_s == 20

    def test_company_lookup(self) -> None:
        s = Settings.model_validate({"companies": [
            {"id": "acme", "name": "Acme", "career_page_url": "https://acme.example.com/jobs"},
        ]})
        assert s.company("acme").name == "Acme"
        with pytest.raises(KeyError, match="Unknown company id"):
            s.company("globex")

    def test_example_config_loads(self) -> None:
        example = Path(__file__).parent.parent.parent / "config" / "settings.example.yaml"
        s = Settings.from_yaml(example)
        assert {c.id for c in s.companies} == {"acme", "globex", "initech", "hooli"}
