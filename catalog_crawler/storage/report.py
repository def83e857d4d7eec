"""
Run report rendering and the sinks it is written to.
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, TextIO

from .aggregator import RATING_BUCKETS, AggregateState, ExtremumRecord


class ReportSinkError(Exception):
    """Raised when a report sink cannot be opened or written."""
    pass


@dataclass
class CrawlReport:
    """Everything the harness reports about one serial + parallel run pair."""
    pages_downloaded: int
    unique_urls: int
    serial_time: float
    parallel_time: float
    state: AggregateState
    serial_state: Optional[AggregateState] = None
    serial_unique_urls: Optional[int] = None

    @property
    def time_per_book(self) -> float:
        total = self.state.total_count
        return self.parallel_time / total if total > 0 else 0.0

    @property
    def time_per_page(self) -> float:
        return self.parallel_time / self.pages_downloaded if self.pages_downloaded > 0 else 0.0

    @property
    def speedup_seconds(self) -> float:
        return self.serial_time - self.parallel_time

    @property
    def strategies_agree(self) -> Optional[bool]:
        if self.serial_state is None:
            return None
        return (self.serial_state == self.state
                and self.serial_unique_urls == self.unique_urls)


def _render_extremum(heading: str, record: Optional[ExtremumRecord]) -> List[str]:
    if record is None:
        return [heading, "Title: n/a", "Price: n/a", "Stars: n/a", ""]
    return [
        heading,
        f"Title: {record.title}",
        f"Price: {record.price:.2f}",
        f"Stars: {record.rating}",
        ""
    ]


def render_report(report: CrawlReport) -> str:
    """Render the report as plain text. Timings and averages use 5 decimals, prices 2."""
    state = report.state
    lines = [
        "Parallel fetching results.",
        f"Number of downloaded pages: {report.pages_downloaded}",
        f"Number of unique URLs: {report.unique_urls}",
        f"Number of categories: {len(state.categories)}",
        f"Calculations took {report.parallel_time:.5f} seconds.",
        f"Time per book: {report.time_per_book:.5f} seconds.",
        f"Time per page: {report.time_per_page:.5f} seconds.",
        "",
        "Star Rating Analytics:",
    ]
    for rating in RATING_BUCKETS:
        lines.append(f"Number of books with {rating} star(s): {state.bucket_count(rating)}")
    lines += [
        f"Average rating: {state.average_rating:.5f} stars.",
        "",
        f"Average price of book: {state.average_price:.5f} GBP.",
        "",
    ]
    lines += _render_extremum("The cheapest book:", state.min_record)
    lines += _render_extremum("The most expensive book:", state.max_record)
    lines += [
        f"Serial calculations took {report.serial_time:.5f} seconds.",
        f"Parallel is {report.speedup_seconds:.5f} seconds faster than serial.",
    ]

    agree = report.strategies_agree
    if agree is not None:
        lines.append(f"Serial and parallel results match: {'yes' if agree else 'NO'}")

    return "\n".join(lines) + "\n"


class ReportSink:
    """Destination for a rendered report."""

    name = "sink"

    def write(self, text: str):
        raise NotImplementedError


class StreamReportSink(ReportSink):
    """Writes to an already-open text stream (stdout by default)."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream if stream is not None else sys.stdout
        self.name = getattr(self.stream, 'name', 'stream')

    def write(self, text: str):
        self.stream.write(text)
        self.stream.flush()


class FileReportSink(ReportSink):
    """Writes the report to a file, replacing any previous content."""

    def __init__(self, file_path: str):
        self.file_path = Path(file_path)
        self.name = str(self.file_path)

    def write(self, text: str):
        try:
            with open(self.file_path, 'w', encoding='utf-8') as f:
                f.write(text)
        except OSError as e:
            raise ReportSinkError(f"Failed to open {self.file_path}: {e}") from e


def publish_report(report: CrawlReport, primary: ReportSink,
                   fallback: Optional[ReportSink] = None) -> List[str]:
    """
    Write the report to ``primary`` and to ``fallback``.

    A failing primary sink is logged and never fatal; the fallback sink
    (stdout unless given) always receives the report.

    Returns:
        Names of the sinks that received the report
    """
    logger = logging.getLogger(__name__)
    fallback = fallback or StreamReportSink()
    text = render_report(report)
    written = []

    try:
        primary.write(text)
        written.append(primary.name)
        logger.info(f"Report written to {primary.name}")
    except ReportSinkError as e:
        logger.error(f"{e}; reporting to {fallback.name} only")

    fallback.write(text)
    written.append(fallback.name)
    return written
