"""
Page fetcher with a bounded retry policy.
"""

import asyncio
import aiohttp
import logging
import time
from typing import Optional, Dict
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    error: Optional[str] = None
    fetch_time: float = 0.0
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None


class TransientFetchError(Exception):
    """A fetch attempt failed in a way that may succeed on retry."""
    pass


class _PermanentFetchError(Exception):
    """A failure that retrying will not fix (4xx, wrong content type)."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class PageFetcher:
    """
    Fetches pages over one shared aiohttp session.

    Each fetch makes one attempt plus up to ``retry_attempts`` retries on
    timeouts, connection errors and 5xx responses. Failures are returned as
    ``FetchResult.error``; ``fetch`` never raises for network problems.
    ``max_concurrent_requests`` of 0 leaves in-flight fetches uncapped.
    """

    TEXT_TYPES = (
        'text/html',
        'text/plain',
        'application/xhtml+xml',
    )

    def __init__(self, user_agent: str = "CatalogCrawler/1.0", request_timeout: float = 10.0,
                 retry_attempts: int = 3, max_concurrent_requests: int = 0):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.retry_attempts = retry_attempts
        self.max_concurrent_requests = max_concurrent_requests

        self.logger = logging.getLogger(__name__)

        self.session: Optional[ClientSession] = None
        self.semaphore = (asyncio.Semaphore(max_concurrent_requests)
                          if max_concurrent_requests > 0 else None)

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'retries': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_concurrent_requests,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("PageFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("PageFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL, retrying transient failures.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult with the body, or with ``error`` set once the retry budget is spent
        """
        if self.semaphore is None:
            return await self._fetch_with_retries(url)
        async with self.semaphore:
            return await self._fetch_with_retries(url)

    async def _fetch_with_retries(self, url: str) -> FetchResult:
        if self.session is None:
            await self.start()

        start_time = time.perf_counter()
        max_attempts = 1 + self.retry_attempts
        status_code = 0
        error_msg = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                self.stats['retries'] += 1
            self.stats['total_requests'] += 1

            try:
                status_code, content = await self._attempt(url)
                self.stats['successful_requests'] += 1
                self.stats['total_bytes_downloaded'] += len(content)
                self.logger.debug(f"Fetched {url}: {status_code} ({len(content)} chars)")
                return FetchResult(
                    url=url,
                    status_code=status_code,
                    content=content,
                    fetch_time=time.perf_counter() - start_time,
                    attempts=attempt
                )

            except TransientFetchError as e:
                error_msg = str(e)
                self.logger.debug(f"Attempt {attempt}/{max_attempts} for {url} failed: {e}")

            except _PermanentFetchError as e:
                status_code = e.status_code
                error_msg = str(e)
                break

        self.stats['failed_requests'] += 1
        self.logger.warning(f"Giving up on {url}: {error_msg}")
        return FetchResult(
            url=url,
            status_code=status_code,
            error=error_msg,
            fetch_time=time.perf_counter() - start_time,
            attempts=attempt
        )

    async def _attempt(self, url: str):
        """One GET. Returns (status, text) or raises a fetch error."""
        try:
            async with self.session.get(url) as response:
                if response.status >= 500:
                    raise TransientFetchError(f"Server error {response.status}")
                if response.status >= 400:
                    raise _PermanentFetchError(response.status, f"Client error {response.status}")

                content_type = response.headers.get('content-type', '').lower()
                if content_type and not self._is_text_content(content_type):
                    raise _PermanentFetchError(response.status, f"Non-text content type {content_type}")

                content = await response.text(errors='replace')
                return response.status, content

        except asyncio.TimeoutError:
            raise TransientFetchError("Request timeout")
        except ClientError as e:
            raise TransientFetchError(f"Client error: {e}")

    def _is_text_content(self, content_type: str) -> bool:
        """Check if content type is text-based."""
        return any(text_type in content_type for text_type in self.TEXT_TYPES)

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()

    def reset_stats(self):
        """Reset statistics counters."""
        for key in self.stats:
            self.stats[key] = 0
