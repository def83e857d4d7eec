"""
Logging utilities for the catalog crawler.
"""

import logging
import logging.handlers
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Marks handlers installed by setup_logging
_OWNED = "_catalog_crawler_handler"


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        # Context attached by CrawlerLogAdapter
        if hasattr(record, 'extra_fields'):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, ensure_ascii=False)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Logger adapter that adds crawl-specific context such as the strategy."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        """Merge adapter context and call-site context into ``extra_fields``."""
        fields = dict(self.extra)
        fields.update(kwargs.pop('extra', {}) or {})
        kwargs['extra'] = {'extra_fields': fields}
        return msg, kwargs

    def log_url_event(self, level: int, url: str, state: str, message: str = "", **kwargs):
        """Log a per-URL state transition (claimed, fetched, failed, expanded...)."""
        extra = kwargs.pop('extra', {}) or {}
        extra['url'] = url
        extra['state'] = state
        extra['event_type'] = 'url_event'
        self.log(level, f"[{state}] {url} {message}".rstrip(), extra=extra, **kwargs)

    def log_crawler_stat(self, stat_name: str, value: Any, **kwargs):
        """Log crawler statistics."""
        extra = kwargs.pop('extra', {}) or {}
        extra['stat_name'] = stat_name
        extra['stat_value'] = value
        extra['event_type'] = 'crawler_stat'
        self.info(f"Stat: {stat_name} = {value}", extra=extra, **kwargs)


class PerformanceFilter(logging.Filter):
    """Drop per-request chatter from aiohttp so crawl events stay readable."""

    def __init__(self, suppress_modules: Optional[list] = None):
        super().__init__()
        self.suppress_modules = suppress_modules or ['aiohttp.access', 'aiohttp.client']

    def filter(self, record: logging.LogRecord) -> bool:
        return not any(record.name.startswith(module) for module in self.suppress_modules)


def _build_handlers(log_file: Path, formatter: logging.Formatter,
                    filtered: bool) -> List[logging.Handler]:
    # Console goes to stderr; stdout carries the report
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.INFO)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=50 * 1024 * 1024,  # 50MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)

    error_handler = logging.handlers.RotatingFileHandler(
        log_file.parent / 'errors.log',
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=3,
        encoding='utf-8'
    )
    error_handler.setLevel(logging.ERROR)

    handlers = [console_handler, file_handler, error_handler]
    for handler in handlers:
        handler.setFormatter(formatter)
        if filtered:
            handler.addFilter(PerformanceFilter())
    return handlers


def setup_logging(config: Dict[str, Any],
                  enable_json: bool = False,
                  enable_performance_filtering: bool = True) -> logging.Logger:
    """
    Install the crawler's console, log-file and error-file handlers on the root logger.

    Calling it again replaces the handlers installed by the previous call and
    leaves any other root handlers in place.

    Args:
        config: Logging configuration dictionary (level, file, format)
        enable_json: Emit one JSON object per line instead of plain text
        enable_performance_filtering: Drop aiohttp's per-request records

    Returns:
        Configured root logger
    """
    log_file = Path(config.get('file', 'logs/crawler.log'))
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.get('level', 'INFO').upper()))
    for handler in list(root_logger.handlers):
        if getattr(handler, _OWNED, False):
            root_logger.removeHandler(handler)
            handler.close()

    if enable_json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(config.get('format', DEFAULT_FORMAT))

    for handler in _build_handlers(log_file, formatter, enable_performance_filtering):
        setattr(handler, _OWNED, True)
        root_logger.addHandler(handler)

    logging.getLogger('aiohttp').setLevel(logging.WARNING)

    root_logger.info(f"Logging to {log_file} at {config.get('level', 'INFO')} (json={enable_json})")
    return root_logger


def get_crawler_logger(name: str, **extra_context) -> CrawlerLogAdapter:
    """
    Get a crawler-specific logger with additional context.

    Args:
        name: Logger name
        **extra_context: Additional context fields to include in all log messages

    Returns:
        CrawlerLogAdapter instance
    """
    logger = logging.getLogger(name)
    return CrawlerLogAdapter(logger, extra_context)
