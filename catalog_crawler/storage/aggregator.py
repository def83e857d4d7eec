"""
Concurrency-safe statistics over every record seen during a crawl.
"""

import logging
import math
import threading
from dataclasses import dataclass
from fractions import Fraction
from typing import FrozenSet, Iterable, Optional, Set, Tuple

from ..crawler.parser import Record

RATING_BUCKETS = (1, 2, 3, 4, 5)


@dataclass(frozen=True)
class ExtremumRecord:
    """The record currently holding the minimum or maximum price."""
    title: str
    rating: int
    price: float


@dataclass(frozen=True)
class AggregateState:
    """Point-in-time copy of the aggregator, taken at quiescence."""
    total_count: int = 0
    price_sum: float = 0.0
    rating_sum: int = 0
    bucket_counts: Tuple[int, ...] = (0,) * len(RATING_BUCKETS)
    unrated_count: int = 0
    min_price: float = 0.0
    max_price: float = 0.0
    min_record: Optional[ExtremumRecord] = None
    max_record: Optional[ExtremumRecord] = None
    categories: FrozenSet[str] = frozenset()

    def bucket_count(self, rating: int) -> int:
        """Number of records with the given star rating, 0 outside 1..5."""
        if rating not in RATING_BUCKETS:
            return 0
        return self.bucket_counts[RATING_BUCKETS.index(rating)]

    @property
    def average_price(self) -> float:
        return self.price_sum / self.total_count if self.total_count else 0.0

    @property
    def average_rating(self) -> float:
        return self.rating_sum / self.total_count if self.total_count else 0.0


def _beats(candidate: ExtremumRecord, current: Optional[ExtremumRecord],
           current_price: float, lower: bool) -> bool:
    """Whether ``candidate`` should replace ``current`` as the min (lower) or max extremum."""
    if current is None:
        return True
    if candidate.price != current_price:
        return candidate.price < current_price if lower else candidate.price > current_price
    # Equal prices: fixed tie-break so the winner does not depend on arrival order
    return (candidate.title, candidate.rating) < (current.title, current.rating)


class Aggregator:
    """
    Running sums, rating buckets and min/max price records.

    Counters and sums are order-independent and share one lock. The scalar
    extremum price and the record carrying it are replaced together under a
    second lock, so a reader can never see a price paired with another
    record's title. ``record`` never holds both locks at once.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._counter_lock = threading.Lock()
        self._extremum_lock = threading.Lock()
        self._clear()

    def _clear(self):
        self._total_count = 0
        self._price_sum = Fraction(0)
        self._rating_sum = 0
        self._bucket_counts = {rating: 0 for rating in RATING_BUCKETS}
        self._unrated_count = 0
        self._categories: Set[str] = set()

        self._min_price = math.inf
        self._max_price = -math.inf
        self._min_record: Optional[ExtremumRecord] = None
        self._max_record: Optional[ExtremumRecord] = None

    def record(self, batch: Iterable[Record]) -> int:
        """Fold a batch of records into the running statistics. Returns the batch size."""
        count = 0
        for item in batch:
            self._accumulate(item)
            self._offer_extremum(item)
            count += 1
        return count

    def _accumulate(self, item: Record):
        # Exact sum: float addition would make the total depend on arrival order.
        # Converted before locking so a bad price leaves the counters untouched.
        price = Fraction(item.price)
        with self._counter_lock:
            self._total_count += 1
            self._price_sum += price
            self._rating_sum += item.rating
            if item.rating in self._bucket_counts:
                self._bucket_counts[item.rating] += 1
            else:
                self._unrated_count += 1

    def _offer_extremum(self, item: Record):
        candidate = ExtremumRecord(title=item.title, rating=item.rating, price=item.price)
        with self._extremum_lock:
            if _beats(candidate, self._min_record, self._min_price, lower=True):
                self._min_price = candidate.price
                self._min_record = candidate
            if _beats(candidate, self._max_record, self._max_price, lower=False):
                self._max_price = candidate.price
                self._max_record = candidate

    def record_category(self, label: str):
        """Remember a category label seen on a page."""
        if not label:
            return
        with self._counter_lock:
            self._categories.add(label)

    def snapshot(self) -> AggregateState:
        """Copy the current state. Only meaningful when no crawl worker is in flight."""
        with self._counter_lock, self._extremum_lock:
            if self._total_count == 0:
                return AggregateState(categories=frozenset(self._categories))

            return AggregateState(
                total_count=self._total_count,
                price_sum=float(self._price_sum),
                rating_sum=self._rating_sum,
                bucket_counts=tuple(self._bucket_counts[rating] for rating in RATING_BUCKETS),
                unrated_count=self._unrated_count,
                min_price=self._min_price,
                max_price=self._max_price,
                min_record=self._min_record,
                max_record=self._max_record,
                categories=frozenset(self._categories)
            )

    def reset(self):
        """Zero every field. Only call between runs."""
        with self._counter_lock, self._extremum_lock:
            self._clear()
        self.logger.debug("Aggregator reset")
