"""
Visitation ledger: the set of URLs already claimed during a crawl run.
"""

import logging
import threading
from typing import Dict, FrozenSet, Set


class VisitationLedger:
    """
    Concurrency-safe set of claimed URLs.

    ``claim`` is an atomic insert-if-absent and is the only deduplication gate
    of the crawl engine: whoever gets ``True`` owns the URL for this run, every
    other caller must drop it. The lock section is a single set lookup and
    insert, so neither asyncio tasks nor OS threads can starve each other.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._claimed: Set[str] = set()
        self.stats = {
            'claims': 0,
            'duplicate_claims': 0
        }

    def claim(self, url: str) -> bool:
        """Return True iff this call is the first to claim ``url`` in the current run."""
        with self._lock:
            if url in self._claimed:
                self.stats['duplicate_claims'] += 1
                return False
            self._claimed.add(url)
            self.stats['claims'] += 1
            return True

    def reset(self):
        """Forget every claim. Only call between runs, never while one is in flight."""
        with self._lock:
            cleared = len(self._claimed)
            self._claimed.clear()
            for key in self.stats:
                self.stats[key] = 0
        self.logger.debug(f"Visitation ledger reset ({cleared} URLs cleared)")

    def size(self) -> int:
        with self._lock:
            return len(self._claimed)

    def urls(self) -> FrozenSet[str]:
        """Point-in-time copy of the claimed URLs."""
        with self._lock:
            return frozenset(self._claimed)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._claimed

    def get_stats(self) -> Dict[str, int]:
        """Get claim statistics."""
        with self._lock:
            return {**self.stats, 'unique_urls': len(self._claimed)}
