"""
Crawl engine: serial breadth-first and unbounded-parallel traversal of a catalog.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from .fetcher import PageFetcher
from .parser import CatalogParser
from .url_frontier import URLFrontier, resolve_url
from ..storage.aggregator import Aggregator
from ..storage.ledger import VisitationLedger
from ..utils.logger import CrawlerLogAdapter, get_crawler_logger
from ..utils.monitoring import CrawlerMonitor

SERIAL = 'serial'
PARALLEL = 'parallel'


@dataclass
class CrawlStats:
    """Counters for one crawl run."""
    strategy: str
    start_time: float
    end_time: Optional[float] = None
    pages_fetched: int = 0
    fetch_failures: int = 0
    page_errors: int = 0
    duplicate_claims: int = 0
    records_aggregated: int = 0
    links_discovered: int = 0

    @property
    def elapsed_time(self) -> float:
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time


class CrawlEngine:
    """
    Runs fetch, parse, aggregate and expand over a link graph.

    Both strategies share the ledger and the aggregator handed in by the
    caller, so the caller must ``reset()`` between runs. The serial strategy
    is kept as the reference result for the parallel one.
    """

    def __init__(self, fetcher: PageFetcher, parser: CatalogParser,
                 ledger: VisitationLedger, aggregator: Aggregator,
                 monitor: Optional[CrawlerMonitor] = None):
        self.fetcher = fetcher
        self.parser = parser
        self.ledger = ledger
        self.aggregator = aggregator
        self.monitor = monitor or CrawlerMonitor()
        self.logger = logging.getLogger(__name__)

    async def crawl_parallel(self, start_url: str) -> CrawlStats:
        """
        Crawl with one task per discovered link and no cap on fan-out.

        Every task spawns its children into the same task group, so leaving
        the group waits for the whole transitive task tree, not just the root.
        """
        stats = CrawlStats(strategy=PARALLEL, start_time=time.perf_counter())
        log = get_crawler_logger(__name__, strategy=PARALLEL)
        log.info(f"Starting parallel crawl from {start_url}")

        async with asyncio.TaskGroup() as group:
            group.create_task(self._visit(start_url, group, stats, log))

        return self._finish(stats, log)

    async def _visit(self, url: str, group: asyncio.TaskGroup,
                     stats: CrawlStats, log: CrawlerLogAdapter):
        if not self._claim(url, stats, log):
            return

        for link in await self._expand(url, stats, log):
            group.create_task(self._visit(link, group, stats, log))

    async def crawl_serial(self, start_url: str) -> CrawlStats:
        """Crawl breadth-first from a FIFO queue, one fetch at a time."""
        stats = CrawlStats(strategy=SERIAL, start_time=time.perf_counter())
        log = get_crawler_logger(__name__, strategy=SERIAL)
        log.info(f"Starting serial crawl from {start_url}")

        frontier = URLFrontier([start_url])
        while not frontier.is_empty():
            url = frontier.get_next_url()
            if not self._claim(url, stats, log):
                continue
            frontier.add_urls(await self._expand(url, stats, log))

        log.debug(f"Frontier stats: {frontier.get_stats()}")
        return self._finish(stats, log)

    def _claim(self, url: str, stats: CrawlStats, log: CrawlerLogAdapter) -> bool:
        if self.ledger.claim(url):
            log.log_url_event(logging.DEBUG, url, 'claimed')
            return True
        stats.duplicate_claims += 1
        self.monitor.record_duplicate_claim(stats.strategy)
        return False

    async def _expand(self, url: str, stats: CrawlStats, log: CrawlerLogAdapter) -> List[str]:
        """Process one claimed URL. Returns the resolved outbound links, empty on any failure."""
        fetch_result = await self.fetcher.fetch(url)
        if not fetch_result.ok:
            stats.fetch_failures += 1
            self.monitor.record_fetch_failure(stats.strategy)
            log.log_url_event(logging.WARNING, url, 'failed', f"({fetch_result.error})")
            return []

        stats.pages_fetched += 1
        self.monitor.record_page_fetched(stats.strategy)
        log.log_url_event(logging.DEBUG, url, 'fetched')

        try:
            return self._process_page(url, fetch_result.content, stats, log)
        except Exception as e:
            stats.page_errors += 1
            self.monitor.record_page_error(stats.strategy)
            log.log_url_event(logging.ERROR, url, 'failed', f"(error processing page: {e})")
            return []

    def _process_page(self, url: str, content: str, stats: CrawlStats,
                      log: CrawlerLogAdapter) -> List[str]:
        page = self.parser.parse(url, content)
        if page.category:
            self.aggregator.record_category(page.category)

        count = self.aggregator.record(page.records)
        stats.records_aggregated += count
        self.monitor.record_records_aggregated(stats.strategy, count)
        log.log_url_event(logging.DEBUG, url, 'aggregated', f"({count} records)")

        links = []
        for link in page.links:
            absolute_url = resolve_url(link, url)
            if absolute_url:
                links.append(absolute_url)
        stats.links_discovered += len(links)
        log.log_url_event(logging.DEBUG, url, 'expanded', f"({len(links)} links)")
        return links

    def _finish(self, stats: CrawlStats, log: CrawlerLogAdapter) -> CrawlStats:
        stats.end_time = time.perf_counter()
        self.monitor.record_crawl_duration(stats.strategy, stats.elapsed_time)
        log.info(
            f"Crawl completed: "
            f"Fetched={stats.pages_fetched}, "
            f"Failed={stats.fetch_failures}, "
            f"Errors={stats.page_errors}, "
            f"Duplicates={stats.duplicate_claims}, "
            f"Records={stats.records_aggregated}, "
            f"Time={stats.elapsed_time:.5f}s"
        )
        log.log_crawler_stat("ledger", self.ledger.get_stats())
        return stats

    def reset(self):
        """Clear the ledger and the aggregator so the next run starts fresh."""
        self.ledger.reset()
        self.aggregator.reset()
        reset_stats = getattr(self.fetcher, 'reset_stats', None)
        if reset_stats:
            reset_stats()
        self.logger.info("Crawl state reset")
