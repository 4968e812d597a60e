"""
Benchmark Store.

Append-only history of released benchmarks per segment. Stored values are
already noise-protected, so reads are free post-processing: ranking a tenant
against history consumes no privacy budget.
"""

import logging
from typing import List, Optional

from queries.interfaces import BenchmarkRepository
from schema.records import AggregatedBenchmark
from writer.retry import call_with_retry


logger = logging.getLogger(__name__)


class BenchmarkStore:
    """Persists and reads released benchmarks through a BenchmarkRepository."""

    def __init__(self, repository: BenchmarkRepository, history_limit: int = 100, retries: int = 1):
        """
        Initialize store.

        Args:
            repository: Backing repository
            history_limit: Default number of benchmarks returned by history()
            retries: Local retries before PersistenceError
        """
        self.repository = repository
        self.history_limit = history_limit
        self.retries = retries

    def store(self, benchmark: AggregatedBenchmark) -> None:
        """Append a benchmark. Existing rows are never updated or deleted."""
        call_with_retry(
            lambda: self.repository.persist_benchmark(benchmark),
            f"persist benchmark for {benchmark.segment_key}",
            self.retries,
        )
        logger.info(
            f"Stored benchmark {benchmark.segment_key}: value={benchmark.value:.4f} "
            f"participants={benchmark.participant_count}"
        )

    def history(self, segment_key: str, limit: Optional[int] = None) -> List[AggregatedBenchmark]:
        """Benchmarks for a segment, newest first."""
        limit = self.history_limit if limit is None else limit
        return call_with_retry(
            lambda: self.repository.query_benchmark_history(segment_key, limit),
            f"query benchmark history for {segment_key}",
            self.retries,
        )

    def latest(self, segment_key: str) -> Optional[AggregatedBenchmark]:
        """Most recent benchmark for a segment, or None."""
        history = self.history(segment_key, limit=1)
        return history[0] if history else None

    def values(self, segment_key: str, limit: Optional[int] = None) -> List[float]:
        """Released values for a segment, newest first."""
        return [b.value for b in self.history(segment_key, limit)]

    def history_frame(self, segment_key: str, limit: Optional[int] = None):
        """
        Benchmark history as a pandas DataFrame.

        Columns: segment_key, value, participant_count, confidence_level, created_at
        """
        import pandas as pd

        rows = [b.to_dict() for b in self.history(segment_key, limit)]
        columns = ["segment_key", "value", "participant_count", "confidence_level", "created_at"]
        df = pd.DataFrame(rows, columns=columns)
        if not df.empty:
            df["created_at"] = pd.to_datetime(df["created_at"])
        return df
