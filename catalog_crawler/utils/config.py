"""
Configuration management for the catalog crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Any, Dict, Optional
from dataclasses import dataclass, field


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    start_url: str
    request_timeout: float = 10.0
    retry_attempts: int = 3
    user_agent: str = "CatalogCrawler/1.0"
    max_concurrent_requests: int = 0  # 0 means unbounded


@dataclass
class ReportConfig:
    """Configuration for the run report."""
    file: str = "results.txt"


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/crawler.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig
    report: ReportConfig = field(default_factory=ReportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            config_data = yaml.safe_load(file) or {}

        self._config = self.from_dict(config_data)
        self._validate_config()
        return self._config

    @staticmethod
    def from_dict(config_data: Dict[str, Any]) -> Config:
        """Build a Config from already-parsed YAML data."""
        if 'crawler' not in config_data:
            raise ValueError("Configuration must contain a 'crawler' section")

        return Config(
            crawler=CrawlerConfig(**config_data['crawler']),
            report=ReportConfig(**(config_data.get('report') or {})),
            logging=LoggingConfig(**(config_data.get('logging') or {})),
            monitoring=MonitoringConfig(**(config_data.get('monitoring') or {}))
        )

    def _validate_config(self):
        """Validate configuration values."""
        if not self._config:
            raise ValueError("Configuration not loaded")

        crawler = self._config.crawler
        if not crawler.start_url:
            raise ValueError("A start_url must be provided")

        if "://" not in crawler.start_url:
            raise ValueError(f"start_url must be absolute: {crawler.start_url}")

        if crawler.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")

        if crawler.retry_attempts < 0:
            raise ValueError("retry_attempts must be non-negative")

        if crawler.max_concurrent_requests < 0:
            raise ValueError("max_concurrent_requests must be non-negative (0 = unbounded)")

        if not self._config.report.file:
            raise ValueError("report.file must be provided")

        logging.info("Configuration validation passed")

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
