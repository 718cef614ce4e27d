"""Crawl orchestrator: seeds -> frontier -> worker pool -> AuditResult.

Each worker takes a task from the frontier, marks it visited, and runs the
whole pipeline for it (fetch, extract, detect duplicates, analyze, record)
before enqueueing the links it found. Per-page failures become
``processing_error`` results; only a fetcher that cannot be launched fails
the run.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .capture import create_fetcher
from .capture.page import FetcherLaunchError, FetchOptions, PageFetcher
from .crawl_state import CrawlState
from .detectors.duplicate_content import DuplicateContentDetector
from .extractors.accessibility import extract_accessibility_data
from .extractors.performance import extract_performance_data
from .extractors.seo import extract_seo_data
from .input.seed_discovery import SeedDiscovery
from .models.crawl import AuditOptions, CrawlSettings, CrawlStats, CrawlTask, SkipReason, TaskLabel
from .models.issues import IssuesSummary
from .models.results import AuditResult, AuditStatus, Headings, ImageRef, PageResult
from .progress import ProgressCallback, ProgressTracker
from .queue.frontier_queue import FrontierQueue
from .queue.governor import ConcurrencyGovernor
from .queue.rate_limiter import PerHostRateLimiter
from .rules.analyzer import IssueAnalyzer, PageSnapshot, processing_error_issue
from .rules.broken_links import find_broken_internal_links
from .utils.scope_matcher import ScopeMatcher, create_scope_matcher_from_options


logger = logging.getLogger(__name__)


class CrawlerError(Exception):
    """Raised when the crawler is misused (for example, two concurrent runs)."""
    pass


@dataclass
class _Run:
    """Everything that lives exactly as long as one ``run`` call."""
    options: AuditOptions
    scope: ScopeMatcher
    state: CrawlState
    frontier: FrontierQueue
    governor: ConcurrencyGovernor
    limiter: PerHostRateLimiter
    tracker: ProgressTracker
    fetch_options: FetchOptions
    stats: CrawlStats
    stopping: bool = False
    failure_reason: Optional[str] = None
    worker_errors: List[str] = field(default_factory=list)


class AuditCrawler:
    """Runs site audits.

    Components:
    - Seed discovery (site URL, robots.txt, sitemaps)
    - Scope matcher (depth, host, ignore/follow patterns, robots)
    - Frontier queue with de-duplication
    - Adaptive worker pool under a hard concurrency ceiling
    - Per-host politeness limiter
    - Extractors, duplicate detector and issue analyzer
    """

    def __init__(
        self,
        fetcher: Optional[PageFetcher] = None,
        settings: Optional[CrawlSettings] = None,
        analyzer: Optional[IssueAnalyzer] = None,
        seed_discovery: Optional[SeedDiscovery] = None
    ):
        """Initialize the crawler.

        Args:
            fetcher: Fetch path to use; created from settings (and closed after
                each run) when omitted
            settings: Engine tuning
            analyzer: Issue analyzer, default thresholds when omitted
            seed_discovery: Seed resolver, built from settings when omitted
        """
        self.settings = settings or CrawlSettings()
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher
        self.analyzer = analyzer or IssueAnalyzer()
        self.seed_discovery = seed_discovery or SeedDiscovery(
            user_agent=self.settings.user_agent,
            robots_agent=self.settings.robots_agent,
            sitemap_timeout=self.settings.seed_timeout_seconds,
            robots_timeout=self.settings.robots_timeout_seconds,
        )
        self._run: Optional[_Run] = None

    async def run(self, options: AuditOptions, progress_callback: Optional[ProgressCallback] = None) -> AuditResult:
        """Audit a site.

        Args:
            options: What to audit
            progress_callback: Optional ``(percent, discovered, processed)``
                callable, sync or async; errors it raises are logged and ignored

        Returns:
            AuditResult; ``status`` is FAILED with ``failure_reason`` set when the
            fetcher could not be launched or no seed could be resolved

        Raises:
            CrawlerError: If this crawler is already running
        """
        if self._run is not None:
            raise CrawlerError("A crawl is already running on this crawler")

        start_time = datetime.now(timezone.utc)
        stats = CrawlStats(start_time=start_time)
        tracker = ProgressTracker(
            progress_callback,
            step=self.settings.progress_step,
            interval_seconds=self.settings.progress_interval_seconds,
        )
        logger.info(f"Starting audit of {options.site_url} (max_pages={options.max_pages}, max_depth={options.max_depth})")

        if self.fetcher is None:
            self.fetcher = create_fetcher(self.settings)
        try:
            await self.fetcher.start()
        except FetcherLaunchError as e:
            logger.error(f"Fetcher launch failed, aborting audit: {e}")
            await self._release_fetcher()
            return self._failed_result(options, start_time, stats, str(e))

        try:
            resolution = await self.seed_discovery.resolve_seeds(options.site_url, options)
            if not resolution.seeds:
                return self._failed_result(options, start_time, stats, "No seed URL could be resolved")

            run = self._run = self._create_run(options, resolution.robots, tracker, stats)
            tracker.start()
            self._enqueue_seeds(run, resolution.seeds)
            await self._crawl(run)

            site_issues = []
            if options.check_broken_links:
                site_issues = find_broken_internal_links(run.state.results(), run.state.declined())

            processed, discovered = run.state.progress_counters()
            await tracker.finish(processed, discovered)
            return self._build_result(run, start_time, site_issues)
        finally:
            self._run = None
            await tracker.close()
            await self._release_fetcher()

    def stop(self) -> None:
        """Stop admitting new tasks; in-flight tasks finish and the result is returned."""
        if self._run is not None:
            logger.info("Stop requested, draining in-flight tasks")
            self._run.stopping = True

    async def _release_fetcher(self) -> None:
        if self._owns_fetcher and self.fetcher is not None:
            try:
                await self.fetcher.close()
            finally:
                self.fetcher = None

    def _create_run(self, options: AuditOptions, robots, tracker: ProgressTracker, stats: CrawlStats) -> _Run:
        s = self.settings
        detector = DuplicateContentDetector(
            min_length=s.duplicate_min_length,
            prefilter_threshold=s.duplicate_prefilter_threshold,
            similarity_threshold=s.duplicate_similarity_threshold,
            capacity=s.duplicate_store_capacity,
        )
        scope = create_scope_matcher_from_options(options, robots)
        logger.debug(f"Crawl scope: {scope.get_scope_info()}")
        return _Run(
            options=options,
            scope=scope,
            state=CrawlState(options.max_pages, detector),
            frontier=FrontierQueue(max_size=max(s.frontier_max_size, options.max_pages * 2)),
            governor=ConcurrencyGovernor(
                minimum=s.min_concurrency,
                desired=s.desired_concurrency,
                maximum=s.max_concurrency,
                target_utilization=s.target_utilization,
                step_ratio=s.scale_step_ratio,
            ),
            limiter=PerHostRateLimiter(requests_per_minute=s.max_requests_per_minute),
            tracker=tracker,
            fetch_options=FetchOptions(
                navigation_timeout_ms=s.navigation_timeout_ms,
                block_resources=not options.use_javascript,
                spa_settle_ms=s.spa_settle_ms,
                user_agent=options.user_agent or s.user_agent,
                extra_headers=dict(options.extra_headers),
                cookies=dict(options.cookies),
            ),
            stats=stats,
        )

    def _enqueue_seeds(self, run: _Run, seeds) -> None:
        for seed in seeds:
            decision = run.scope.check(seed.url, depth=0, is_seed=True)
            if not decision.allowed:
                run.stats.record_skip(decision.reason)
                logger.debug(f"Seed {seed.url} skipped: {decision.reason.value}")
                continue
            task = CrawlTask(url=decision.url, depth=0, user_attributes={"label": seed.label.value})
            if run.frontier.put(task):
                run.state.note_discovered()
                run.stats.urls_discovered += 1

    async def _crawl(self, run: _Run) -> None:
        workers = [
            asyncio.create_task(self._worker(run, i), name=f"audit-worker-{i}")
            for i in range(self.settings.max_concurrency)
        ]
        try:
            await run.frontier.join()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            run.frontier.close()

    async def _worker(self, run: _Run, worker_id: int) -> None:
        while True:
            task = await run.frontier.get()
            try:
                if run.stopping:
                    run.state.decline([task.url])
                    run.stats.urls_discarded += 1
                    continue
                if not await run.state.admit(task.url):
                    if run.state.budget_spent:
                        run.stats.urls_discarded += 1
                    continue

                await run.governor.acquire()
                success = False
                try:
                    success = await self._process_task(run, task)
                finally:
                    await run.governor.release(success)
            except Exception as e:
                # Keeps the worker alive so the frontier can still drain
                logger.exception(f"Worker {worker_id} failed on {task.url}: {e}")
                run.worker_errors.append(f"{task.url}: {e}")
            finally:
                run.frontier.task_done()

    async def _process_task(self, run: _Run, task: CrawlTask) -> bool:
        """Run the pipeline for one admitted task and record its result.

        Returns:
            True when the page was processed without a processing error
        """
        links: List[str] = []
        await run.limiter.acquire(task.url)
        try:
            result, links = await asyncio.wait_for(
                self._run_pipeline(run, task),
                timeout=self.settings.task_timeout_seconds,
            )
        except FetcherLaunchError as e:
            logger.error(f"Fetcher can no longer be launched, stopping crawl: {e}")
            run.stopping = True
            run.failure_reason = str(e)
            result = self._error_result(task, str(e))
        except asyncio.TimeoutError:
            message = f"Task timed out after {self.settings.task_timeout_seconds:g}s"
            logger.warning(f"{message}: {task.url}")
            result = self._error_result(task, message)
        except Exception as e:
            logger.warning(f"Failed to process {task.url}: {e}")
            result = self._error_result(task, str(e) or type(e).__name__)

        processed = await run.state.record(result)
        if result.error:
            run.stats.urls_failed += 1
        run.stats.urls_processed = processed
        run.tracker.update(*run.state.progress_counters())
        logger.debug(f"Processed {task.url} ({processed}/{run.options.max_pages}, depth {task.depth})")

        if links:
            if run.options.crawl_single_url or run.stopping:
                run.state.decline(links)
                if run.options.crawl_single_url:
                    run.stats.record_skip(SkipReason.SINGLE_URL)
            else:
                self._enqueue_links(run, task, links)
        return result.error is None

    async def _run_pipeline(self, run: _Run, task: CrawlTask) -> Tuple[PageResult, List[str]]:
        options = run.options
        async with self.fetcher.fetch(task.url, run.fetch_options) as page:
            run.limiter.record_response(task.url, page.status_code, page.headers)
            seo = extract_seo_data(page)
            performance = await extract_performance_data(page) if options.check_performance else None
            accessibility = (
                await extract_accessibility_data(page, self.settings.axe_script_url)
                if options.check_accessibility else None
            )

        if 200 <= page.status_code < 400:
            context = await run.state.register_content(task.url, seo)
        else:
            context = None
        snapshot = PageSnapshot(url=task.url, status_code=page.status_code, load_time_ms=page.load_time_ms)
        issues = self.analyzer.analyze(snapshot, seo, performance, accessibility, context)

        result = PageResult(
            url=task.url,
            title=seo.title,
            description=seo.meta_description,
            status_code=page.status_code,
            load_time_ms=page.load_time_ms,
            content_length=page.content_length,
            headings=Headings(h1=seo.h1, h2=seo.h2, h3=seo.h3),
            internal_links=[link.url for link in seo.internal_links],
            external_links=[link.url for link in seo.external_links],
            images=[ImageRef(src=image.src, alt=image.alt) for image in seo.images],
            canonical_url=seo.canonical_url,
            meta_robots=seo.meta_robots,
            has_structured_data=seo.has_structured_data,
            is_mobile_friendly=seo.is_mobile_friendly,
            duplicate_of=context.duplicate_of if context else None,
            issues=issues,
            depth=task.depth,
            word_count=seo.word_count,
            score=self.analyzer.score(issues),
            performance=performance,
            accessibility=accessibility,
        )

        links = list(result.internal_links)
        if not options.skip_external:
            links.extend(result.external_links)
        return result, links

    def _enqueue_links(self, run: _Run, parent: CrawlTask, links: List[str]) -> None:
        depth = parent.depth + 1
        for url in links:
            decision = run.scope.check(url, depth=depth)
            if not decision.allowed:
                run.stats.record_skip(decision.reason)
                if decision.url:
                    run.state.decline([decision.url])
                continue
            task = CrawlTask(
                url=decision.url,
                depth=depth,
                discovered_from=parent.url,
                user_attributes={"label": TaskLabel.LINK.value},
            )
            if run.frontier.put(task):
                run.state.note_discovered()
                run.stats.urls_discovered += 1
            elif run.frontier.has_seen(decision.url):
                run.stats.record_skip(SkipReason.DUPLICATE)
            else:
                # Frontier full
                run.state.decline([decision.url])
                run.stats.record_skip(SkipReason.BUDGET)

    def _error_result(self, task: CrawlTask, message: str) -> PageResult:
        issue = processing_error_issue(task.url, message)
        return PageResult(
            url=task.url,
            status_code=0,
            issues=[issue],
            depth=task.depth,
            score=self.analyzer.score([issue]),
            error=message,
        )

    def _build_result(self, run: _Run, start_time: datetime, site_issues) -> AuditResult:
        end_time = datetime.now(timezone.utc)
        run.stats.end_time = end_time
        pages = run.state.ordered_results()
        all_issues = [issue for page in pages for issue in page.issues] + list(site_issues)
        status = AuditStatus.FAILED if run.failure_reason else AuditStatus.COMPLETED

        result = AuditResult(
            site_url=run.options.site_url,
            status=status,
            failure_reason=run.failure_reason,
            pages_analyzed=len(pages),
            start_time=start_time,
            end_time=end_time,
            issues_summary=IssuesSummary.from_issues(all_issues),
            pages=pages,
            site_issues=list(site_issues),
            stats=run.stats,
        )
        logger.info(
            f"Audit of {run.options.site_url} {status.value}: {result.pages_analyzed} pages, "
            f"{result.issues_summary.total} issues in {result.elapsed}"
        )
        return result

    def _failed_result(self, options: AuditOptions, start_time: datetime, stats: CrawlStats, reason: str) -> AuditResult:
        end_time = datetime.now(timezone.utc)
        stats.end_time = end_time
        return AuditResult(
            site_url=options.site_url,
            status=AuditStatus.FAILED,
            failure_reason=reason,
            pages_analyzed=0,
            start_time=start_time,
            end_time=end_time,
            stats=stats,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Live statistics of the current run (empty when idle)."""
        run = self._run
        if run is None:
            return {}
        return {
            "crawl": run.stats.export_summary(),
            "frontier": run.frontier.get_stats(),
            "concurrency": run.governor.get_stats(),
            "hosts": run.limiter.get_stats(),
            "duplicates": run.state.detector.get_stats(),
            "progress": run.tracker.percent,
            "scope": run.scope.get_scope_info(),
        }


async def run_audit(
    options: AuditOptions,
    settings: Optional[CrawlSettings] = None,
    fetcher: Optional[PageFetcher] = None,
    progress_callback: Optional[ProgressCallback] = None
) -> AuditResult:
    """Convenience wrapper: build a crawler and run one audit."""
    crawler = AuditCrawler(fetcher=fetcher, settings=settings)
    return await crawler.run(options, progress_callback)
