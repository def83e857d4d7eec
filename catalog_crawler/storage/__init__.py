"""
Shared crawl state and report output.
"""

from .ledger import VisitationLedger
from .aggregator import Aggregator, AggregateState, ExtremumRecord
from .report import CrawlReport, ReportSinkError, FileReportSink, StreamReportSink, publish_report

__all__ = [
    'VisitationLedger',
    'Aggregator', 'AggregateState', 'ExtremumRecord',
    'CrawlReport', 'ReportSinkError', 'FileReportSink', 'StreamReportSink', 'publish_report'
]
