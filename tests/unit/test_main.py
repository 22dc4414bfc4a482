"""Tests for the CLI: dry-run planning and the health subcommand."""

from pathlib import Path
from textwrap import dedent
from unittest.mock import patch

import pytest

from harvester.core.config import EngineConfig, HealthConfig, Settings
from harvester.core.schemas import ATSConfig, CompanyConfig, HealthChecks, ScrapingMetrics
from harvester.pipeline.metrics import evaluate_health
from main import cmd_health, dry_run, format_health, main

ACME = CompanyConfig(
    id="acme",
    name="Acme Corp",
    career_page_url="https://acme.example.com/careers",
    ats=ATSConfig(type="greenhouse", board_id="acme"),
)
INITECH = CompanyConfig(id="initech", name="Initech", career_page_url="https://initech.example.com/careers")
HOOLI = CompanyConfig(
    id="hooli", name="Hooli", career_page_url="https://hooli.example.com/jobs", enabled=False,
)


# ---------------------------------------------------------------------------
# Dry run
# ---------------------------------------------------------------------------


class TestDryRun:
    def test_prints_plan_per_company(self, capsys: pytest.CaptureFixture[str]) -> None:
        settings = Settings(engine=EngineConfig(enable_browser=False), companies=[ACME, INITECH, HOOLI])
        dry_run(settings, list(settings.companies))

        out = capsys.readouterr().out
        assert "[DRY RUN] 3 companies selected" in out
        assert "Strategies: api, json_ld, data_island, html_parsing, ai_extraction\n" in out
        assert "Strategies: json_ld, data_island, html_parsing, ai_extraction\n" in out
        assert "ATS: greenhouse" in out
        assert "[DRY RUN] hooli: disabled" in out

    def test_opens_no_http_client(self, capsys: pytest.CaptureFixture[str]) -> None:
        with (
            patch("harvester.core.http.httpx.AsyncClient") as client_cls,
            patch("main.ScraperOrchestrator") as orchestrator_cls,
        ):
            dry_run(Settings(companies=[ACME]), [ACME])

        client_cls.assert_not_called()
        orchestrator_cls.assert_not_called()
        assert "Would fetch 0 pages" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_before_any_batch_says_so(
        self, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        with patch("harvester.core.http.httpx.AsyncClient") as client_cls:
            cmd_health(Settings())

        lines = capsys.readouterr().out.splitlines()
        assert lines[0].startswith("Status: unknown (no batch has run yet")
        assert "  api_keys: MISSING" in lines
        assert "  database: OK" in lines
        client_cls.assert_not_called()

    def test_after_batch_shows_status_and_rate(self) -> None:
        health = evaluate_health(
            HealthConfig(),
            HealthChecks(api_keys=True),
            last_metrics=ScrapingMetrics(success_rate=0.6),
        )
        lines = format_health(health)
        assert lines[0] == "Status: degraded"
        assert lines[1] == "Last success rate: 60%"
        assert "  api_keys: OK" in lines

    def test_main_health_command(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("GROQ_API_KEY", "gsk-test")
        config = tmp_path / "settings.yaml"
        config.write_text(dedent("""\
            engine:
              enable_browser: false
        """))

        main(["health", "--config", str(config)])

        lines = capsys.readouterr().out.splitlines()
        assert lines[0].startswith("Status: unknown")
        assert "  api_keys: OK" in lines
        assert "  browser: MISSING" in lines

    def test_main_bad_config_exits(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["health", "--config", str(tmp_path / "missing.yaml")])
        assert exc_info.value.code == 1
