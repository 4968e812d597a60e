"""
Shared fixtures for the tenant intelligence tests.

All tests run against a fixed clock so windows and tenant ages are exact.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import pytest

from core.config import Config
from queries.memory import InMemoryDataStore
from schema.profile import HistoricalTenant, TenantHistoryRecord, TenantProfile
from schema.records import ConversionRecord
from schema.segment import SegmentDescriptor


NOW = datetime(2026, 6, 1, 12, 0, 0)

SCENARIO_RATES = [0.02, 0.03, 0.025, 0.018, 0.04]
SCENARIO_SAMPLE_SIZES = [100, 150, 80, 120, 90]


def fixed_clock():
    return NOW


def make_records(
    rates: Sequence[float],
    sample_sizes: Sequence[int],
    per_tenant: int = 10,
    segment: Optional[SegmentDescriptor] = None,
    days_ago: float = 1.0,
    prefix: str = "tenant"
) -> List[ConversionRecord]:
    """per_tenant identical records for each (rate, sample size) pair."""
    segment = segment or SegmentDescriptor(device_type="mobile")
    records = []
    for i, (rate, size) in enumerate(zip(rates, sample_sizes)):
        for j in range(per_tenant):
            records.append(ConversionRecord(
                tenant_id=f"{prefix}_{i}",
                segment=segment,
                conversion_rate=rate,
                sample_size=size,
                timestamp=NOW - timedelta(days=days_ago, minutes=j),
            ))
    return records


def strong_history(start: datetime) -> List[TenantHistoryRecord]:
    """12 records over 6 months: 2000 revenue and 4% conversion per month."""
    history = []
    for month in range(6):
        ts = start + timedelta(days=30 * month + 1)
        history.append(TenantHistoryRecord(type="revenue", value=2000.0, timestamp=ts))
        history.append(TenantHistoryRecord(type="conversion", value=0.04, timestamp=ts + timedelta(hours=1)))
    return history


def weak_history(start: datetime, n: int = 12) -> List[TenantHistoryRecord]:
    return [
        TenantHistoryRecord(type="conversion", value=0.001, timestamp=start + timedelta(days=i + 1))
        for i in range(n)
    ]


def make_tenant(
    tenant_id: str,
    profile: TenantProfile,
    age_days: int = 200,
    history: Optional[List[TenantHistoryRecord]] = None
) -> HistoricalTenant:
    created_at = NOW - timedelta(days=age_days)
    if history is None:
        history = strong_history(created_at)
    return HistoricalTenant(
        tenant_id=tenant_id,
        profile=profile,
        created_at=created_at,
        history=tuple(history),
    )


@pytest.fixture
def config():
    """Default configuration with a seeded noise generator."""
    cfg = Config()
    cfg.privacy.noise_seed = 42
    cfg.runtime.request_timeout_seconds = 10.0
    return cfg


@pytest.fixture
def candidate_profile():
    return TenantProfile(
        category="tech",
        target_audience="young professionals",
        geographic_focus="global",
        content_strategy="blog",
        team_size=5,
        marketing_budget=5000.0,
        initial_products=("p1", "p2", "p3"),
        technical_expertise="intermediate",
    )


@pytest.fixture
def peer_profile():
    return TenantProfile(
        category="tech",
        target_audience="young professionals",
        geographic_focus="global",
        team_size=5,
        marketing_budget=5000.0,
    )


@pytest.fixture
def scenario_store():
    """Five tenants from the reference aggregation scenario, 50 records."""
    return InMemoryDataStore(conversion_records=make_records(SCENARIO_RATES, SCENARIO_SAMPLE_SIZES))


@pytest.fixture
def peer_store(peer_profile):
    """Three qualifying successful peers plus non-qualifying tenants."""
    tenants = [
        make_tenant("peer_a", peer_profile),
        make_tenant("peer_b", peer_profile),
        make_tenant("peer_c", peer_profile),
        # Too young
        make_tenant("young", peer_profile, age_days=30),
        # Too little history
        make_tenant("sparse", peer_profile, history=weak_history(NOW - timedelta(days=200), n=5)),
        # Dissimilar
        make_tenant("other", TenantProfile(category="pets", target_audience="seniors",
                                           geographic_focus="local", team_size=40,
                                           marketing_budget=90000.0)),
    ]
    return InMemoryDataStore(tenants=tenants, category_counts={"tech": 10})
