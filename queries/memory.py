"""
In-memory implementation of every data-access interface.

Used by the CLI (loaded from a JSON fixture) and by tests.

Fixture layout:

    {
      "conversion_records": [
        {"tenant_id": "t1", "segment": "device:mobile|page:product",
         "conversion_rate": 0.021, "sample_size": 140,
         "timestamp": "2026-01-10T12:00:00"}
      ],
      "tenants": [
        {"tenant_id": "t1", "created_at": "2025-03-01T00:00:00",
         "profile": {"category": "tech", ...},
         "history": [{"type": "revenue", "value": 120.0, "timestamp": "..."}]}
      ],
      "category_counts": {"tech": 12},
      "benchmarks": [ ... AggregatedBenchmark.to_dict() ... ]
    }
"""

import json
import logging
import os
import threading
import uuid
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from queries.interfaces import (
    BenchmarkRepository,
    ConversionDataSource,
    PredictionRepository,
    TenantDataSource,
)
from schema.profile import HistoricalTenant, Prediction, TenantProfile
from schema.records import AggregatedBenchmark, ConversionRecord
from schema.segment import SegmentDescriptor


logger = logging.getLogger(__name__)


class InMemoryDataStore(ConversionDataSource, TenantDataSource, BenchmarkRepository, PredictionRepository):
    """Thread-safe store backing all four interfaces."""

    def __init__(
        self,
        conversion_records: Optional[List[ConversionRecord]] = None,
        tenants: Optional[List[HistoricalTenant]] = None,
        category_counts: Optional[Dict[str, int]] = None,
        benchmarks: Optional[List[AggregatedBenchmark]] = None
    ):
        self._lock = threading.Lock()
        self._records: List[ConversionRecord] = list(conversion_records or [])
        self._tenants: Dict[str, HistoricalTenant] = {t.tenant_id: t for t in (tenants or [])}
        self._category_counts: Optional[Dict[str, int]] = (
            dict(category_counts) if category_counts is not None else None
        )
        self._benchmarks: Dict[str, List[AggregatedBenchmark]] = {}
        self._predictions: Dict[str, Tuple[TenantProfile, Prediction]] = {}

        for benchmark in benchmarks or []:
            self._benchmarks.setdefault(benchmark.segment_key, []).append(benchmark)

    @classmethod
    def from_json(cls, path: str) -> "InMemoryDataStore":
        """Load a JSON fixture file."""
        if not os.path.exists(path):
            raise FileNotFoundError(f"Data file not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        store = cls(
            conversion_records=[ConversionRecord.from_dict(r) for r in data.get("conversion_records", [])],
            tenants=[HistoricalTenant.from_dict(t) for t in data.get("tenants", [])],
            category_counts=data.get("category_counts"),
            benchmarks=[AggregatedBenchmark.from_dict(b) for b in data.get("benchmarks", [])],
        )
        logger.info(
            f"Loaded {len(store._records):,} conversion records and "
            f"{len(store._tenants):,} tenants from {path}"
        )
        return store

    # ------------------------------------------------------------------
    # Writes used to seed data
    # ------------------------------------------------------------------

    def add_records(self, records: List[ConversionRecord]) -> None:
        with self._lock:
            self._records.extend(records)

    def add_tenant(self, tenant: HistoricalTenant) -> None:
        with self._lock:
            self._tenants[tenant.tenant_id] = tenant

    # ------------------------------------------------------------------
    # ConversionDataSource
    # ------------------------------------------------------------------

    def query_conversion_records(
        self,
        segment: SegmentDescriptor,
        start: datetime,
        end: datetime,
        tenant_id: Optional[str] = None
    ) -> List[ConversionRecord]:
        with self._lock:
            records = list(self._records)
        return [
            r for r in records
            if start <= r.timestamp <= end
            and segment.matches(r.segment)
            and (tenant_id is None or r.tenant_id == tenant_id)
        ]

    # ------------------------------------------------------------------
    # TenantDataSource
    # ------------------------------------------------------------------

    def query_tenant_history(self, tenant_id: Optional[str] = None) -> List[HistoricalTenant]:
        with self._lock:
            if tenant_id is None:
                return list(self._tenants.values())
            tenant = self._tenants.get(tenant_id)
            return [tenant] if tenant is not None else []

    def query_category_tenant_count(self, category: str) -> int:
        with self._lock:
            if self._category_counts is not None:
                return int(self._category_counts.get(category, 0))
            counts = Counter(t.profile.category for t in self._tenants.values())
        return counts.get(category, 0)

    # ------------------------------------------------------------------
    # BenchmarkRepository
    # ------------------------------------------------------------------

    def persist_benchmark(self, benchmark: AggregatedBenchmark) -> None:
        with self._lock:
            self._benchmarks.setdefault(benchmark.segment_key, []).append(benchmark)

    def query_benchmark_history(self, segment_key: str, limit: int) -> List[AggregatedBenchmark]:
        with self._lock:
            benchmarks = list(self._benchmarks.get(segment_key, []))
        # Newest first; later inserts win timestamp ties
        indexed = sorted(enumerate(benchmarks), key=lambda item: (item[1].created_at, item[0]), reverse=True)
        return [b for _, b in indexed[:limit]]

    # ------------------------------------------------------------------
    # PredictionRepository
    # ------------------------------------------------------------------

    def persist_prediction(self, profile: TenantProfile, prediction: Prediction) -> str:
        prediction_id = uuid.uuid4().hex
        with self._lock:
            self._predictions[prediction_id] = (profile, prediction)
        return prediction_id

    def get_prediction(self, prediction_id: str) -> Optional[Tuple[TenantProfile, Prediction]]:
        with self._lock:
            return self._predictions.get(prediction_id)
