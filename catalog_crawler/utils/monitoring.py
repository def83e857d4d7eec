"""
Prometheus metrics for crawl runs.
"""

import logging
from typing import Dict, Optional, Tuple

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest
from prometheus_client import start_http_server


class MetricsCollector:
    """Owns a private registry so several collectors can coexist in one process."""

    def __init__(self, enable_server: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.enable_server = enable_server
        self.prometheus_port = prometheus_port
        self.registry = CollectorRegistry()

        # Plain mirror of every counter/gauge, keyed by (name, strategy)
        self._values: Dict[Tuple[str, str], float] = {}

        self.prometheus_metrics = {
            'pages_fetched_total': Counter(
                'crawler_pages_fetched_total',
                'Pages fetched successfully',
                ['strategy'],
                registry=self.registry
            ),
            'fetch_failures_total': Counter(
                'crawler_fetch_failures_total',
                'Pages abandoned after the fetch retry budget was exhausted',
                ['strategy'],
                registry=self.registry
            ),
            'page_errors_total': Counter(
                'crawler_page_errors_total',
                'Fetched pages dropped because processing them raised',
                ['strategy'],
                registry=self.registry
            ),
            'duplicate_claims_total': Counter(
                'crawler_duplicate_claims_total',
                'Discovered URLs dropped because they were already claimed',
                ['strategy'],
                registry=self.registry
            ),
            'records_aggregated_total': Counter(
                'crawler_records_aggregated_total',
                'Records handed to the aggregator',
                ['strategy'],
                registry=self.registry
            ),
            'crawl_duration_seconds': Gauge(
                'crawler_crawl_duration_seconds',
                'Wall-clock duration of the last crawl',
                ['strategy'],
                registry=self.registry
            ),
        }

    def start_server(self):
        """Start the Prometheus exposition HTTP server."""
        if not self.enable_server:
            return

        try:
            start_http_server(self.prometheus_port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def increment_counter(self, name: str, strategy: str, amount: float = 1):
        """Increment a labelled counter."""
        self.prometheus_metrics[name].labels(strategy=strategy).inc(amount)
        key = (name, strategy)
        self._values[key] = self._values.get(key, 0) + amount

    def set_gauge(self, name: str, strategy: str, value: float):
        """Set a labelled gauge."""
        self.prometheus_metrics[name].labels(strategy=strategy).set(value)
        self._values[(name, strategy)] = value

    def get_value(self, name: str, strategy: str) -> float:
        return self._values.get((name, strategy), 0)

    def export_text(self) -> bytes:
        """Render the registry in the Prometheus text format."""
        return generate_latest(self.registry)


class CrawlerMonitor:
    """High-level monitoring interface used by the crawl engine."""

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        self.metrics = metrics_collector or MetricsCollector()
        self.logger = logging.getLogger(__name__)

    def record_page_fetched(self, strategy: str):
        self.metrics.increment_counter('pages_fetched_total', strategy)

    def record_fetch_failure(self, strategy: str):
        self.metrics.increment_counter('fetch_failures_total', strategy)

    def record_page_error(self, strategy: str):
        self.metrics.increment_counter('page_errors_total', strategy)

    def record_duplicate_claim(self, strategy: str):
        self.metrics.increment_counter('duplicate_claims_total', strategy)

    def record_records_aggregated(self, strategy: str, count: int):
        if count:
            self.metrics.increment_counter('records_aggregated_total', strategy, count)

    def record_crawl_duration(self, strategy: str, seconds: float):
        self.metrics.set_gauge('crawl_duration_seconds', strategy, seconds)

    def get_summary(self, strategy: str) -> Dict[str, float]:
        """Get a summary of the metrics recorded for one strategy."""
        return {
            name: self.metrics.get_value(name, strategy)
            for name in self.metrics.prometheus_metrics
        }


def initialize_monitoring(enable_server: bool = False, prometheus_port: int = 8000) -> CrawlerMonitor:
    """Build a monitor and expose it over HTTP when enabled."""
    metrics_collector = MetricsCollector(enable_server, prometheus_port)
    metrics_collector.start_server()
    return CrawlerMonitor(metrics_collector)
