"""CLI entry point for the career-page harvester."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from harvester.core.config import Settings
from harvester.core.schemas import CompanyConfig, HealthCheck
from harvester.llm import FailoverLLMClient
from harvester.pipeline.engine import build_strategies, plan_strategies
from harvester.pipeline.metrics import evaluate_health
from harvester.pipeline.orchestrator import ScraperOrchestrator, component_checks, export_jobs_json


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Career-page harvester - extract job postings from company career pages",
    )
    subparsers = parser.add_subparsers(dest="command")

    # --- scrape subcommand (default) ---
    scrape_parser = subparsers.add_parser("scrape", help="Scrape configured companies")
    scrape_parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    scrape_parser.add_argument(
        "--company",
        action="append",
        dest="companies",
        metavar="ID",
        help="Only scrape this company id (repeatable)",
    )
    scrape_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the strategy plan per company without fetching anything",
    )
    scrape_parser.add_argument(
        "--export",
        choices=["json"],
        help="Export scraped jobs to format (json)",
    )
    scrape_parser.add_argument(
        "--output",
        help="Write the export to this file instead of stdout",
    )
    scrape_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    # --- health subcommand ---
    health_parser = subparsers.add_parser("health", help="Show component health checks")
    health_parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    health_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args(argv)

    # Default to scrape when no subcommand given
    if args.command is None:
        args = parser.parse_args(["scrape", *(argv if argv is not None else sys.argv[1:])])

    return args


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def select_companies(settings: Settings, ids: list[str] | None) -> list[CompanyConfig]:
    """Resolve ``--company`` ids; raises KeyError on an unknown id."""
    if not ids:
        return list(settings.companies)
    return [settings.company(company_id) for company_id in ids]


def dry_run(settings: Settings, companies: list[CompanyConfig]) -> None:
    """Print the strategy plan without touching the network."""
    strategies = build_strategies(settings)

    print(f"[DRY RUN] {len(companies)} companies selected")
    for company in companies:
        if not company.enabled:
            print(f"[DRY RUN] {company.id}: disabled")
            continue
        ordered = plan_strategies(settings.engine, strategies, company)
        plan = [s.method for s in ordered if s.supports(company)]
        ats = company.ats.type if company.ats else "none"
        print(f"[DRY RUN] {company.id} ({company.career_page_url})")
        print(f"  ATS: {ats}")
        print(f"  Strategies: {', '.join(plan) or 'none applicable'}")

    print("[DRY RUN] Would fetch 0 pages (no network in dry-run)")


async def run(
    settings: Settings,
    companies: list[CompanyConfig],
    export_format: str | None,
    output: str | None,
) -> None:
    """Run one scraping batch and print the summary."""
    async with ScraperOrchestrator(settings) as orchestrator:
        batch = await orchestrator.scrape_companies(companies)

    metrics = batch.metrics
    print(f"\nScrape complete: {metrics.companies_scraped} companies, "
          f"{metrics.total_jobs_scraped} jobs scraped, {len(batch.jobs)} unique, "
          f"success rate {metrics.success_rate:.0%}.")

    for r in batch.results:
        if r.success:
            print(f"  {r.company_id}: {len(r.jobs)} jobs via {r.strategy_used} "
                  f"({r.duration_ms:.0f} ms)")
        else:
            kind = r.error.kind if r.error else "unknown"
            print(f"  {r.company_id}: FAILED [{kind}] after {', '.join(r.strategies_tried) or 'nothing'}")

    if metrics.errors_by_type:
        print(f"  Errors by type: {metrics.errors_by_type}")

    if export_format == "json":
        data = export_jobs_json(batch.jobs)
        if output:
            Path(output).write_text(data)
            print(f"\nExported {len(batch.jobs)} jobs to {output}")
        else:
            print(f"\n{data}")


def format_health(health: HealthCheck) -> list[str]:
    if health.last_success_rate is None:
        lines = ["Status: unknown (no batch has run yet; only configuration was checked)"]
    else:
        lines = [
            f"Status: {health.status}",
            f"Last success rate: {health.last_success_rate:.0%}",
        ]
    lines.extend(f"  {name}: {'OK' if ok else 'MISSING'}" for name, ok in health.checks.model_dump().items())
    return lines


def cmd_health(settings: Settings) -> None:
    """Handle health subcommand."""
    checks = component_checks(settings, FailoverLLMClient.from_config(settings.llm))
    for line in format_health(evaluate_health(settings.health, checks)):
        print(line)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValidationError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "health":
        cmd_health(settings)
        return

    try:
        companies = select_companies(settings, args.companies)
    except KeyError as e:
        print(f"Error: {e.args[0]}", file=sys.stderr)
        sys.exit(1)

    if args.dry_run:
        dry_run(settings, companies)
    else:
        asyncio.run(run(settings, companies, args.export, args.output))


if __name__ == "__main__":
    main()
