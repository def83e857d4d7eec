"""
Utility modules for the catalog crawler.
"""

from .config import Config, ConfigManager, load_config, get_config
from .logger import setup_logging, get_crawler_logger
from .monitoring import CrawlerMonitor, MetricsCollector, initialize_monitoring

__all__ = [
    'Config', 'ConfigManager', 'load_config', 'get_config',
    'setup_logging', 'get_crawler_logger',
    'CrawlerMonitor', 'MetricsCollector', 'initialize_monitoring'
]
