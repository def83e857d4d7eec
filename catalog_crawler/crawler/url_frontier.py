"""
URL resolution and the FIFO frontier used by the serial crawl.
"""

import logging
import re
from collections import deque
from typing import Deque, Dict, Iterable, Optional
from urllib.parse import urlsplit


_SCHEME_PATTERN = re.compile(r'^[A-Za-z][A-Za-z0-9+.-]*://')


def resolve_url(link: str, origin_url: str) -> str:
    """
    Turn a link found on ``origin_url`` into an absolute URL.

    Absolute links are returned unchanged, root-relative links are appended
    to the origin's ``scheme://authority``, anything else is appended to the
    origin's directory (everything up to its last ``/``). The result is a
    pure function of the two strings, which is what lets the visitation
    ledger dedupe different spellings of the same page.
    """
    link = link.strip()
    if not link:
        return ""

    if _SCHEME_PATTERN.match(link):
        return link

    parts = urlsplit(origin_url)
    authority = f"{parts.scheme}://{parts.netloc}"

    if link.startswith('/'):
        return authority + link

    if not parts.path:
        return authority + '/' + link

    return origin_url[:origin_url.rfind('/') + 1] + link


class URLFrontier:
    """
    First-in first-out queue of discovered URLs for the serial crawl.

    Duplicates are accepted: they fail the ledger claim when popped.
    """

    def __init__(self, seed_urls: Optional[Iterable[str]] = None):
        self.logger = logging.getLogger(__name__)
        self._queue: Deque[str] = deque()
        self.stats = {
            'total_queued': 0,
            'total_popped': 0
        }
        for url in seed_urls or ():
            self.add_url(url)

    def add_url(self, url: str):
        self._queue.append(url)
        self.stats['total_queued'] += 1

    def add_urls(self, urls: Iterable[str]) -> int:
        """Add multiple URLs. Returns count of added URLs."""
        added_count = 0
        for url in urls:
            self.add_url(url)
            added_count += 1
        return added_count

    def get_next_url(self) -> Optional[str]:
        """Pop the oldest queued URL, or None when the frontier is empty."""
        if not self._queue:
            return None
        self.stats['total_popped'] += 1
        return self._queue.popleft()

    def is_empty(self) -> bool:
        return not self._queue

    def __len__(self) -> int:
        return len(self._queue)

    def get_stats(self) -> Dict[str, int]:
        return {**self.stats, 'pending': len(self._queue)}
