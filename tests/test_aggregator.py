import dataclasses
import random
import sys
from concurrent.futures import ThreadPoolExecutor

import pytest

from catalog_crawler.crawler.parser import Record
from catalog_crawler.storage.aggregator import Aggregator, AggregateState, ExtremumRecord


@pytest.fixture
def aggregator():
    return Aggregator()


@pytest.fixture
def fast_thread_switching():
    """Switch threads as often as possible to shake out interleavings."""
    previous = sys.getswitchinterval()
    sys.setswitchinterval(1e-6)
    yield
    sys.setswitchinterval(previous)


def make_records(count: int, seed: int = 1):
    rng = random.Random(seed)
    return [
        Record(title=f"Book {i}", price=round(rng.uniform(1, 100), 2), rating=rng.randint(0, 5))
        for i in range(count)
    ]


def expected_extrema(records):
    cheapest = min(records, key=lambda r: (r.price, r.title, r.rating))
    dearest = min(records, key=lambda r: (-r.price, r.title, r.rating))
    return cheapest, dearest


def test_empty_snapshot_is_all_zero(aggregator):
    state = aggregator.snapshot()
    assert state == AggregateState()
    assert state.total_count == 0
    assert state.min_record is None and state.max_record is None
    assert state.average_price == 0.0
    assert state.average_rating == 0.0


def test_record_batch(aggregator):
    count = aggregator.record([
        Record("Mid", 10.0, 3),
        Record("Dear", 20.0, 5),
        Record("Cheap", 5.0, 1),
    ])
    state = aggregator.snapshot()

    assert count == 3
    assert state.total_count == 3
    assert state.bucket_counts == (1, 0, 1, 0, 1)
    assert state.unrated_count == 0
    assert state.rating_sum == 9
    assert state.price_sum == pytest.approx(35.0)
    assert f"{state.average_price:.5f}" == "11.66667"
    assert state.average_rating == pytest.approx(3.0)
    assert state.min_record == ExtremumRecord("Cheap", 1, 5.0)
    assert state.max_record == ExtremumRecord("Dear", 5, 20.0)
    assert state.min_price == 5.0 and state.max_price == 20.0


def test_unrated_records_are_counted_outside_buckets(aggregator):
    aggregator.record([Record("A", 1.0, 0), Record("B", 2.0, 4), Record("C", 3.0, 9)])
    state = aggregator.snapshot()

    assert state.total_count == 3
    assert state.unrated_count == 2
    assert state.total_count == sum(state.bucket_counts) + state.unrated_count


def test_snapshot_is_immutable(aggregator):
    aggregator.record([Record("A", 1.0, 2), Record("B", 2.0, 2)])
    state = aggregator.snapshot()

    assert state.bucket_count(2) == 2
    assert state.bucket_count(0) == 0
    with pytest.raises(TypeError):
        state.bucket_counts[1] = 99
    with pytest.raises(dataclasses.FrozenInstanceError):
        state.total_count = 0
    assert hash(state) == hash(aggregator.snapshot())


def test_price_ties_do_not_depend_on_order():
    records = [Record("Zeta", 7.0, 2), Record("Alpha", 7.0, 4), Record("Mid", 7.0, 1)]
    first, second = Aggregator(), Aggregator()
    first.record(records)
    second.record(reversed(records))

    assert first.snapshot() == second.snapshot()
    assert first.snapshot().min_record.title == "Alpha"
    assert first.snapshot().max_record.title == "Alpha"


def test_categories(aggregator):
    aggregator.record_category("Travel")
    aggregator.record_category("Travel")
    aggregator.record_category("")
    aggregator.record_category("Poetry")
    assert aggregator.snapshot().categories == frozenset({"Travel", "Poetry"})


def test_reset(aggregator):
    aggregator.record(make_records(20))
    aggregator.record_category("Travel")
    aggregator.reset()
    assert aggregator.snapshot() == AggregateState()


def test_commutativity():
    records = make_records(200, seed=3)
    # Prices that do not sum exactly in binary floating point
    records += [Record(f"Fraction {i}", 0.1 * (i % 3 + 1), 2) for i in range(30)]

    reference = Aggregator()
    reference.record(records)
    expected = reference.snapshot()

    rng = random.Random(11)
    for _ in range(5):
        shuffled = records[:]
        rng.shuffle(shuffled)
        other = Aggregator()
        other.record(shuffled)
        assert other.snapshot() == expected


def test_extremum_consistency_under_thread_stress(fast_thread_switching):
    records = make_records(4000, seed=5)
    # Adversarial ordering: prices march downwards and upwards at the same time
    records.sort(key=lambda r: r.price)
    interleaved = [r for pair in zip(records, reversed(records)) for r in pair]
    chunks = [interleaved[i:i + 7] for i in range(0, len(interleaved), 7)]

    aggregator = Aggregator()
    with ThreadPoolExecutor(max_workers=32) as pool:
        list(pool.map(aggregator.record, chunks))

    state = aggregator.snapshot()
    cheapest, dearest = expected_extrema(records)

    assert state.total_count == len(interleaved)
    assert state.total_count == sum(state.bucket_counts) + state.unrated_count
    assert state.min_record.price == state.min_price
    assert state.max_record.price == state.max_price
    assert state.min_record == ExtremumRecord(cheapest.title, cheapest.rating, cheapest.price)
    assert state.max_record == ExtremumRecord(dearest.title, dearest.rating, dearest.price)

    serial = Aggregator()
    serial.record(interleaved)
    assert state == serial.snapshot()
