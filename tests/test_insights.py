"""
Percentile ranking, recommendation tiers and benchmark storage tests.
"""

import threading
from datetime import datetime, timedelta

import pytest

from core.errors import PersistenceError, RequestTimeoutError
from engine.insights import InsightGenerator, percentile_rank, recommend
from queries.memory import InMemoryDataStore
from schema.records import AggregatedBenchmark, ConversionInsight
from schema.segment import SegmentDescriptor
from writer.benchmark_store import BenchmarkStore
from writer.retry import call_with_retry


def _benchmark(value, minutes=0, segment_key="device:mobile"):
    return AggregatedBenchmark(
        segment_key=segment_key,
        value=value,
        participant_count=5,
        confidence_level=0.6,
        created_at=datetime(2026, 1, 1) + timedelta(minutes=minutes),
    )


@pytest.mark.parametrize("value", [0.0, 0.03, 1.0])
def test_percentile_rank_empty_history_is_neutral(value):
    assert percentile_rank(value, []) == 50.0


def test_percentile_rank_counts_strictly_lower():
    history = [0.1, 0.2, 0.5, 0.6]
    assert percentile_rank(0.5, history) == 50.0
    assert percentile_rank(0.05, history) == 0.0
    assert percentile_rank(0.7, history) == 100.0


def test_recommendation_tiers():
    low = recommend(0.03, 10, SegmentDescriptor(device_type="mobile", traffic_source="social"))
    assert low[:2] == [
        'Consider A/B testing different call-to-action buttons',
        'Optimize page loading speed and mobile experience',
    ]
    assert 'Implement mobile-specific checkout optimization' in low
    assert 'Review social media ad targeting and creative' in low

    assert recommend(0.03, 30) == [
        'Test different product presentation formats',
        'Implement exit-intent popups with offers',
    ]
    assert recommend(0.03, 60)[0] == 'Focus on increasing average order value'
    assert recommend(0.03, 75)[0] == 'Maintain current high-performing strategies'


def test_low_rate_always_warns():
    for percentile in (0, 40, 60, 90):
        recs = recommend(0.015, percentile)
        assert recs[-1] == 'Conversion rate below 2% - review fundamental user experience'


def test_store_history_newest_first():
    store = BenchmarkStore(InMemoryDataStore())
    for i, value in enumerate([0.01, 0.02, 0.03]):
        store.store(_benchmark(value, minutes=i))

    assert store.values("device:mobile") == [0.03, 0.02, 0.01]
    assert store.values("device:mobile", limit=2) == [0.03, 0.02]
    assert store.latest("device:mobile").value == 0.03
    assert store.latest("general") is None


def test_history_frame():
    store = BenchmarkStore(InMemoryDataStore())
    store.store(_benchmark(0.02))
    store.store(_benchmark(0.04, minutes=5))

    df = store.history_frame("device:mobile")
    assert list(df.columns) == ["segment_key", "value", "participant_count", "confidence_level", "created_at"]
    assert df["value"].tolist() == [0.04, 0.02]
    assert store.history_frame("general").empty


def test_generate_ranks_against_prior_history():
    """A new benchmark is ranked before it is appended."""
    store = BenchmarkStore(InMemoryDataStore())
    store.store(_benchmark(0.01))
    store.store(_benchmark(0.02, minutes=1))

    generator = InsightGenerator(store)
    new = _benchmark(0.03, minutes=2)
    report = generator.generate(ConversionInsight(benchmark=new, noise_magnitude=0.01, total_sample_size=500))

    assert report.percentile_rank == 100.0
    assert report.privacy_preserved
    assert report.recommendations[0] == 'Maintain current high-performing strategies'
    assert store.values("device:mobile") == [0.03, 0.02, 0.01]
    assert report.to_dict()["benchmark"]["value"] == 0.03


def test_first_benchmark_is_neutral():
    generator = InsightGenerator(BenchmarkStore(InMemoryDataStore()))
    report = generator.generate(ConversionInsight(_benchmark(0.05), 0.0, 100))
    assert report.percentile_rank == 50.0


def test_cancelled_generate_stores_nothing():
    store = BenchmarkStore(InMemoryDataStore())
    cancelled = threading.Event()
    cancelled.set()

    with pytest.raises(RequestTimeoutError):
        InsightGenerator(store).generate(ConversionInsight(_benchmark(0.05), 0.0, 100), cancelled=cancelled)
    assert store.values("device:mobile") == []


class FlakyRepository(InMemoryDataStore):
    """Fails the first `failures` writes."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.calls = 0

    def persist_benchmark(self, benchmark):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("store unavailable")
        super().persist_benchmark(benchmark)


def test_single_failure_is_retried():
    repo = FlakyRepository(failures=1)
    BenchmarkStore(repo).store(_benchmark(0.02))
    assert repo.calls == 2
    assert len(repo.query_benchmark_history("device:mobile", 10)) == 1


def test_repeated_failure_raises_persistence_error():
    repo = FlakyRepository(failures=2)
    with pytest.raises(PersistenceError) as excinfo:
        BenchmarkStore(repo).store(_benchmark(0.02))
    assert repo.calls == 2
    assert isinstance(excinfo.value.__cause__, ConnectionError)


def test_retry_disabled():
    calls = []

    def failing():
        calls.append(1)
        raise OSError("disk full")

    with pytest.raises(PersistenceError):
        call_with_retry(failing, "write", retries=0)
    assert len(calls) == 1
