#!/usr/bin/env python3
"""
Main entry point: crawl the catalog serially, then in parallel, and report.
"""

import asyncio
import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from catalog_crawler import __version__
from catalog_crawler.crawler.engine import CrawlEngine
from catalog_crawler.crawler.fetcher import PageFetcher
from catalog_crawler.crawler.parser import CatalogParser
from catalog_crawler.storage.aggregator import Aggregator
from catalog_crawler.storage.ledger import VisitationLedger
from catalog_crawler.storage.report import CrawlReport, FileReportSink, publish_report
from catalog_crawler.utils.config import Config, load_config
from catalog_crawler.utils.logger import setup_logging
from catalog_crawler.utils.monitoring import initialize_monitoring


class CrawlerApp:
    """Main application class: runs both strategies and publishes the report."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def setup_logging(self, config: Config):
        """Setup logging configuration."""
        setup_logging(
            {
                'level': config.logging.level,
                'file': config.logging.file,
                'format': config.logging.format,
            },
            enable_json=config.logging.json
        )

    async def run(self, config: Config, output: Optional[str] = None) -> int:
        """Run the serial crawl, reset, run the parallel crawl, then report."""
        start_url = config.crawler.start_url

        self.logger.info("=== CATALOG CRAWLER STARTING ===")
        self.logger.info(f"Start URL: {start_url}")
        self.logger.info(f"Request timeout: {config.crawler.request_timeout}s, "
                         f"retries: {config.crawler.retry_attempts}")
        self.logger.info(f"Max concurrent requests: "
                         f"{config.crawler.max_concurrent_requests or 'unbounded'}")

        monitor = initialize_monitoring(
            config.monitoring.metrics_enabled,
            config.monitoring.prometheus_port
        )

        async with PageFetcher(
            user_agent=config.crawler.user_agent,
            request_timeout=config.crawler.request_timeout,
            retry_attempts=config.crawler.retry_attempts,
            max_concurrent_requests=config.crawler.max_concurrent_requests
        ) as fetcher:
            engine = CrawlEngine(
                fetcher=fetcher,
                parser=CatalogParser(),
                ledger=VisitationLedger(),
                aggregator=Aggregator(),
                monitor=monitor
            )

            serial_start = time.perf_counter()
            await engine.crawl_serial(start_url)
            serial_time = time.perf_counter() - serial_start
            serial_state = engine.aggregator.snapshot()
            serial_unique_urls = engine.ledger.size()
            self.logger.info(f"Fetcher stats after serial run: {fetcher.get_stats()}")

            engine.reset()

            parallel_start = time.perf_counter()
            parallel_stats = await engine.crawl_parallel(start_url)
            parallel_time = time.perf_counter() - parallel_start
            self.logger.info(f"Fetcher stats after parallel run: {fetcher.get_stats()}")

        # Every parallel task has joined here, so the snapshot is quiescent
        report = CrawlReport(
            pages_downloaded=parallel_stats.pages_fetched,
            unique_urls=len(engine.ledger.urls()),
            serial_time=serial_time,
            parallel_time=parallel_time,
            state=engine.aggregator.snapshot(),
            serial_state=serial_state,
            serial_unique_urls=serial_unique_urls
        )
        if report.strategies_agree is False:
            self.logger.warning("Serial and parallel crawls produced different results")

        publish_report(report, FileReportSink(output or config.report.file))
        self.logger.info("=== CATALOG CRAWLER FINISHED ===")
        return 0

    async def dry_run(self, config: Config) -> int:
        """Fetch the start page only, to check configuration and connectivity."""
        async with PageFetcher(
            user_agent=config.crawler.user_agent,
            request_timeout=config.crawler.request_timeout,
            retry_attempts=0
        ) as fetcher:
            result = await fetcher.fetch(config.crawler.start_url)
        if result.ok:
            self.logger.info(f"Test fetch successful: {result.status_code}")
        else:
            self.logger.warning(f"Test fetch failed: {result.error}")
        self.logger.info("Dry run completed")
        return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Serial versus parallel catalog crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                   # Run with default config.yaml
  python main.py --config my_config.yaml          # Run with custom config
  python main.py --start-url https://host/a.html  # Override the start page
  python main.py --output report.txt              # Override the report file
  python main.py --dry-run                        # Test configuration only
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '--start-url',
        help='Page to start crawling from (overrides the config)'
    )

    parser.add_argument(
        '--output',
        help='Report file (overrides the config)'
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Fetch the start page only'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Catalog Crawler {__version__}'
    )

    args = parser.parse_args()

    if not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.", file=sys.stderr)
        print("Please create a config.yaml file or specify a different path with --config",
              file=sys.stderr)
        return 1

    try:
        config = load_config(args.config)
    except (ValueError, TypeError) as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return 1

    if args.start_url:
        config.crawler.start_url = args.start_url

    app = CrawlerApp()
    app.setup_logging(config)
    try:
        if args.dry_run:
            return asyncio.run(app.dry_run(config))
        return asyncio.run(app.run(config, output=args.output))
    except KeyboardInterrupt:
        print("\nInterrupted by user", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
