"""Command line interface for the site auditor, built on Typer."""

import asyncio
import logging
from dataclasses import asdict
from enum import IntEnum
from pathlib import Path
from typing import List, Optional

import typer
from typing_extensions import Annotated

from .. import __version__
from ..audit.capture import FetcherLaunchError, create_fetcher
from ..audit.config import AuditConfig, ConfigLoadError, build_audit_config, load_audit_config
from ..audit.crawler import AuditCrawler
from ..audit.models import AuditOptions, AuditResult, AuditStatus, CrawlSettings, IssueSeverity
from ..audit.ranking import BingSerpParser, GoogleSerpParser, Keyword, RankTracker
from .summary import dump_json, format_rankings, format_summary, write_json


class ExitCode(IntEnum):
    """Process exit codes, usable as CI quality gates."""
    SUCCESS = 0
    ISSUES_FOUND = 1      # --fail-on matched at least one issue
    AUDIT_FAILED = 2      # Fetcher could not be launched or no seeds
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4


app = typer.Typer(
    name="site-auditor",
    help="Crawl a website and report technical SEO, performance and accessibility issues",
    add_completion=False,
)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


def _load_config(config_file: Optional[Path], env: Optional[str], settings_overrides: dict) -> AuditConfig:
    overrides = {"settings": settings_overrides} if settings_overrides else None
    try:
        if config_file is not None:
            return load_audit_config(config_file, environment=env, overrides=overrides)
        return build_audit_config({}, environment=env, overrides=overrides)
    except ConfigLoadError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)


def _print_progress(percent: int, discovered: int, processed: int) -> None:
    typer.echo(f"[{percent:3d}%] {processed}/{discovered} pages", err=True)


@app.command(name="version")
def show_version():
    """Show version information."""
    typer.echo(f"site-auditor {__version__}")


@app.command()
def audit(
    url: Annotated[str, typer.Argument(help="Site URL to audit")],

    # Crawl scope
    max_pages: Annotated[
        Optional[int],
        typer.Option("--max-pages", help="Maximum pages to analyze")
    ] = None,

    max_depth: Annotated[
        Optional[int],
        typer.Option("--max-depth", help="Maximum link depth from the seeds")
    ] = None,

    sitemap: Annotated[
        Optional[bool],
        typer.Option("--sitemap/--no-sitemap", help="Seed the crawl from sitemaps")
    ] = None,

    robots: Annotated[
        Optional[bool],
        typer.Option("--robots/--no-robots", help="Honour robots.txt")
    ] = None,

    single: Annotated[
        bool,
        typer.Option("--single", help="Audit only the given URL")
    ] = False,

    follow: Annotated[
        Optional[List[str]],
        typer.Option("--follow", help="Only follow links matching this glob (repeatable)")
    ] = None,

    ignore: Annotated[
        Optional[List[str]],
        typer.Option("--ignore", help="Never crawl URLs matching this glob (repeatable)")
    ] = None,

    header: Annotated[
        Optional[List[str]],
        typer.Option("--header", "-H", help="Extra request header as 'Name: value' (repeatable)")
    ] = None,

    cookie: Annotated[
        Optional[List[str]],
        typer.Option("--cookie", help="Cookie sent with every page as 'name=value' (repeatable)")
    ] = None,

    # Checks
    javascript: Annotated[
        Optional[bool],
        typer.Option("--js/--no-js", help="Load every sub-resource instead of blocking heavy ones")
    ] = None,

    performance: Annotated[
        Optional[bool],
        typer.Option("--performance/--no-performance", help="Collect performance metrics")
    ] = None,

    accessibility: Annotated[
        Optional[bool],
        typer.Option("--accessibility/--no-accessibility", help="Run the accessibility checks")
    ] = None,

    broken_links: Annotated[
        Optional[bool],
        typer.Option("--broken-links/--no-broken-links", help="Report broken internal links")
    ] = None,

    # Engine
    fetcher: Annotated[
        Optional[str],
        typer.Option("--fetcher", help="Fetch path: browser or static")
    ] = None,

    browser: Annotated[
        Optional[str],
        typer.Option("--browser", help="Browser engine: chromium, firefox or webkit")
    ] = None,

    concurrency: Annotated[
        Optional[int],
        typer.Option("--concurrency", help="Maximum parallel pages")
    ] = None,

    headful: Annotated[
        bool,
        typer.Option("--headful", help="Show the browser window")
    ] = False,

    config_file: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="YAML configuration file")
    ] = None,

    env: Annotated[
        Optional[str],
        typer.Option("--env", "-e", help="Environment section of the configuration file")
    ] = None,

    # Output
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write the full result as JSON to this file")
    ] = None,

    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the full result as JSON instead of a summary")
    ] = False,

    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Do not print progress")
    ] = False,

    fail_on: Annotated[
        Optional[str],
        typer.Option("--fail-on", help="Exit with code 1 when an issue of this severity or worse is found")
    ] = None,

    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Logging level")
    ] = "WARNING",
):
    """
    Audit a website.

    Examples:

        # Quick audit without a browser
        site-auditor audit https://example.com --fetcher static --max-pages 20

        # CI gate on critical issues
        site-auditor audit https://example.com -c config/audit.yaml --fail-on critical
    """
    _configure_logging(log_level)

    settings_overrides = {}
    if fetcher is not None:
        settings_overrides["fetcher"] = fetcher.lower()
    if browser is not None:
        settings_overrides["browser_engine"] = browser.lower()
    if concurrency is not None:
        settings_overrides["max_concurrency"] = concurrency
        settings_overrides["desired_concurrency"] = concurrency
        settings_overrides["min_concurrency"] = min(concurrency, 2)
    if headful:
        settings_overrides["headless"] = False
    config = _load_config(config_file, env, settings_overrides)

    extra_headers = _parse_pairs(header, ":", "--header")
    cookies = _parse_pairs(cookie, "=", "--cookie")

    try:
        options = config.audit_options(
            url,
            max_pages=max_pages,
            max_depth=max_depth,
            include_sitemap=sitemap,
            include_robots=robots,
            crawl_single_url=True if single else None,
            follow_patterns=follow or None,
            ignore_patterns=ignore or None,
            use_javascript=javascript,
            check_performance=performance,
            check_accessibility=accessibility,
            check_broken_links=broken_links,
            extra_headers=extra_headers,
            cookies=cookies,
        )
    except ConfigLoadError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    threshold = None
    if fail_on is not None:
        threshold = _parse_severity(fail_on)

    try:
        result = asyncio.run(_run_audit(options, config.settings, None if quiet else _print_progress))
    except KeyboardInterrupt:
        typer.echo("Interrupted", err=True)
        raise typer.Exit(code=ExitCode.RUNTIME_ERROR.value)

    if output is not None:
        write_json(result, output)
    if json_output:
        typer.echo(result.model_dump_json(indent=2))
    else:
        typer.echo(format_summary(result))

    raise typer.Exit(code=_exit_code(result, threshold).value)


@app.command()
def rank(
    url: Annotated[str, typer.Argument(help="Site whose domain is searched for")],
    keywords: Annotated[List[str], typer.Argument(help="Keywords to check")],
    engine: Annotated[
        str,
        typer.Option("--engine", help="Search engine: google or bing")
    ] = "google",
    pages: Annotated[
        int,
        typer.Option("--pages", help="Result pages checked per keyword")
    ] = 2,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print records as JSON")
    ] = False,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Logging level")
    ] = "WARNING",
):
    """Check where a site ranks for keywords."""
    _configure_logging(log_level)
    engines = {"google": GoogleSerpParser, "bing": BingSerpParser}
    if engine.lower() not in engines:
        typer.echo(f"❌ Unknown search engine '{engine}'. Valid values: google, bing", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)
    parser = engines[engine.lower()]()

    items = [Keyword(id=str(i), keyword=k) for i, k in enumerate(keywords, start=1)]
    try:
        records = asyncio.run(_run_rank_check(url, items, parser, pages))
    except FetcherLaunchError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.AUDIT_FAILED.value)
    except ValueError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)

    if json_output:
        typer.echo(dump_json([asdict(record) for record in records]))
    else:
        typer.echo(format_rankings(records))


async def _run_audit(options: AuditOptions, settings: CrawlSettings, progress) -> AuditResult:
    crawler = AuditCrawler(settings=settings)
    return await crawler.run(options, progress_callback=progress)


async def _run_rank_check(url: str, keywords: List[Keyword], parser, pages: int):
    fetcher = create_fetcher(CrawlSettings())
    await fetcher.start()
    try:
        tracker = RankTracker(fetcher, parser, max_result_pages=pages)
        return await tracker.check(url, keywords)
    finally:
        await fetcher.close()


def _parse_pairs(values: Optional[List[str]], separator: str, flag: str) -> Optional[dict]:
    if not values:
        return None
    pairs = {}
    for value in values:
        name, found, content = value.partition(separator)
        if not found or not name.strip():
            typer.echo(f"❌ Invalid {flag} value '{value}', expected 'name{separator}value'", err=True)
            raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)
        pairs[name.strip()] = content.strip()
    return pairs


def _parse_severity(value: str) -> IssueSeverity:
    try:
        return IssueSeverity(value.lower().strip())
    except ValueError:
        valid = ", ".join(severity.value for severity in IssueSeverity)
        typer.echo(f"❌ Invalid severity '{value}'. Valid values: {valid}", err=True)
        raise typer.Exit(code=ExitCode.CONFIG_ERROR.value)


def _exit_code(result: AuditResult, threshold) -> ExitCode:
    if result.status == AuditStatus.FAILED:
        return ExitCode.AUDIT_FAILED
    if threshold is not None and any(issue.severity.rank <= threshold.rank for issue in result.all_issues):
        return ExitCode.ISSUES_FOUND
    return ExitCode.SUCCESS


if __name__ == "__main__":
    app()
