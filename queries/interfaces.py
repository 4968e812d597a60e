"""
Data-access interfaces implemented by external collaborators.

The core performs no I/O of its own; every fetch and persist goes through
one of these abstract classes.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from schema.profile import HistoricalTenant, Prediction, TenantProfile
from schema.records import AggregatedBenchmark, ConversionRecord
from schema.segment import SegmentDescriptor


class ConversionDataSource(ABC):
    """Source of raw per-tenant conversion records."""

    @abstractmethod
    def query_conversion_records(
        self,
        segment: SegmentDescriptor,
        start: datetime,
        end: datetime,
        tenant_id: Optional[str] = None
    ) -> List[ConversionRecord]:
        """
        Records whose segment matches and whose timestamp is in [start, end].

        Args:
            segment: Query descriptor; records match when every present field is equal
            start: Window start (inclusive)
            end: Window end (inclusive)
            tenant_id: Restrict to one tenant
        """


class TenantDataSource(ABC):
    """Source of historical tenant profiles and outcomes."""

    @abstractmethod
    def query_tenant_history(self, tenant_id: Optional[str] = None) -> List[HistoricalTenant]:
        """One tenant's history, or every tenant when tenant_id is None."""

    @abstractmethod
    def query_category_tenant_count(self, category: str) -> int:
        """Number of existing tenants in a category."""


class BenchmarkRepository(ABC):
    """Append-only storage of released benchmarks."""

    @abstractmethod
    def persist_benchmark(self, benchmark: AggregatedBenchmark) -> None:
        """Insert a benchmark. Never updates or deletes."""

    @abstractmethod
    def query_benchmark_history(self, segment_key: str, limit: int) -> List[AggregatedBenchmark]:
        """Up to limit benchmarks for a segment, newest first."""


class PredictionRepository(ABC):
    """Storage of issued predictions."""

    @abstractmethod
    def persist_prediction(self, profile: TenantProfile, prediction: Prediction) -> str:
        """Persist a prediction with its input profile and return its id."""
