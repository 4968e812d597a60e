"""
Privacy-Preserving Conversion Aggregator.

Releases one cross-tenant benchmark per (segment, window) request.

ALGORITHM:
1. Fetch raw records for [now - window_days, now].
2. Fail closed with InsufficientData below min_data_points records.
3. Per tenant:  m_t = sum(rate_i * n_i) / sum(n_i)   (sample-size weighted)
   Tenants without budget are excluded entirely. Every included tenant's
   budget is consumed atomically with the eligibility check.
4. Fail closed with InsufficientParticipants below the participant floor.
5. Release  clamp01(mean_t(m_t) + Laplace(0, sensitivity / epsilon)).

PRIVACY GUARANTEE:
- Each tenant contributes one value in [0, 1] to an unweighted mean, so the
  tenant-level sensitivity of the mean is bounded by `sensitivity`.
- The release satisfies epsilon-DP per request; the per-tenant ledger bounds
  cumulative exposure between resets.
- Budget spent in step 3 is not refunded when step 4 fails.
"""

import logging
import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from core.budget import PrivacyBudgetLedger
from core.config import MIN_PARTICIPANT_FLOOR
from core.errors import (
    InsufficientData,
    InsufficientParticipants,
    ValidationError,
    raise_if_cancelled,
)
from core.primitives import NoiseInjector, confidence_level
from queries.interfaces import ConversionDataSource
from schema.records import AggregatedBenchmark, ConversionInsight, ConversionRecord
from schema.segment import SegmentDescriptor
from writer.retry import call_with_retry


logger = logging.getLogger(__name__)


def tenant_weighted_means(records: List[ConversionRecord]) -> Dict[str, float]:
    """Sample-size weighted mean conversion rate per tenant."""
    weighted_sum: Dict[str, float] = defaultdict(float)
    sample_total: Dict[str, int] = defaultdict(int)
    for record in records:
        weighted_sum[record.tenant_id] += record.conversion_rate * record.sample_size
        sample_total[record.tenant_id] += record.sample_size
    return {tenant: weighted_sum[tenant] / sample_total[tenant] for tenant in weighted_sum}


class ConversionAggregator:
    """
    Aggregates per-tenant conversion rates into a noisy benchmark.

    Stateless apart from the shared ledger; safe to call concurrently.
    """

    def __init__(
        self,
        data_source: ConversionDataSource,
        ledger: PrivacyBudgetLedger,
        noise: NoiseInjector,
        epsilon: float = 0.1,
        sensitivity: float = 1.0,
        min_data_points: int = 50,
        min_participants: int = MIN_PARTICIPANT_FLOOR,
        retries: int = 1,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize aggregator.

        Args:
            data_source: Source of raw conversion records
            ledger: Shared per-tenant privacy budget ledger
            noise: Laplace noise injector
            epsilon: Privacy parameter per release (also the budget consumed)
            sensitivity: Tenant-level sensitivity of the mean
            min_data_points: Minimum raw records per request
            min_participants: Participant floor, never below MIN_PARTICIPANT_FLOOR
            retries: Local retries for the data-source fetch
            clock: Optional callable returning "now" (for tests)
        """
        if min_participants < MIN_PARTICIPANT_FLOOR:
            raise ValueError(
                f"min_participants must be >= {MIN_PARTICIPANT_FLOOR}, got {min_participants}"
            )
        if epsilon <= 0:
            raise ValueError(f"epsilon must be > 0, got {epsilon}")

        self.data_source = data_source
        self.ledger = ledger
        self.noise = noise
        self.epsilon = epsilon
        self.sensitivity = sensitivity
        self.min_data_points = min_data_points
        self.min_participants = min_participants
        self.retries = retries
        self._clock = clock or datetime.now

    @classmethod
    def from_config(cls, config, data_source, ledger, noise, clock=None) -> "ConversionAggregator":
        return cls(
            data_source=data_source,
            ledger=ledger,
            noise=noise,
            epsilon=config.privacy.noise_level,
            sensitivity=config.privacy.sensitivity,
            min_data_points=config.aggregation.min_data_points,
            min_participants=config.privacy.min_participants,
            retries=config.runtime.persistence_retries,
            clock=clock,
        )

    def fetch(self, segment: SegmentDescriptor, window_days: int) -> List[ConversionRecord]:
        """Records for the trailing window ending now."""
        if window_days < 1:
            raise ValidationError(f"window_days must be >= 1, got {window_days}")

        end = self._clock()
        start = end - timedelta(days=window_days)
        return call_with_retry(
            lambda: self.data_source.query_conversion_records(segment, start, end),
            f"query conversion records for {segment.canonical_key()}",
            self.retries,
        )

    def collect(
        self,
        segment: SegmentDescriptor,
        window_days: int,
        cancelled: Optional[threading.Event] = None
    ) -> ConversionInsight:
        """
        Build one noise-protected benchmark.

        Args:
            segment: Segment to aggregate
            window_days: Trailing window length in days
            cancelled: Set by the caller on timeout; checked before any budget is spent

        Returns:
            ConversionInsight with the released benchmark

        Raises:
            InsufficientData: Fewer than min_data_points records
            InsufficientParticipants: Fewer than min_participants tenants with budget
            PersistenceError: Data source failed after retry
            RequestTimeoutError: Cancelled before budget gating
        """
        segment_key = segment.canonical_key()
        logger.info(f"Aggregating {segment_key} over {window_days} days")

        records = self.fetch(segment, window_days)
        if len(records) < self.min_data_points:
            raise InsufficientData(
                f"Insufficient data for {segment_key}: {len(records)} records, "
                f"need {self.min_data_points}",
                context={"segment": segment_key, "records": len(records), "required": self.min_data_points},
            )

        by_tenant: Dict[str, List[ConversionRecord]] = defaultdict(list)
        for record in records:
            by_tenant[record.tenant_id].append(record)

        raise_if_cancelled(cancelled, f"budget gating for {segment_key}")

        tenant_means = tenant_weighted_means(records)
        participant_means: List[float] = []
        total_sample_size = 0
        excluded = 0

        # Sorted so concurrent requests touch shards in the same order
        for tenant_id in sorted(by_tenant):
            if not self.ledger.try_consume(tenant_id, self.epsilon):
                excluded += 1
                continue
            participant_means.append(tenant_means[tenant_id])
            total_sample_size += sum(r.sample_size for r in by_tenant[tenant_id])

        participant_count = len(participant_means)
        logger.info(
            f"  Tenants: {len(by_tenant)} seen, {participant_count} eligible, "
            f"{excluded} excluded (budget)"
        )

        if participant_count < self.min_participants:
            raise InsufficientParticipants(
                f"Insufficient participants for {segment_key}: {participant_count}, "
                f"need {self.min_participants}",
                context={"segment": segment_key, "participants": participant_count,
                         "required": self.min_participants},
            )

        true_mean = sum(participant_means) / participant_count
        noisy, noise = self.noise.laplace_mechanism(true_mean, self.epsilon, self.sensitivity)

        benchmark = AggregatedBenchmark(
            segment_key=segment_key,
            value=noisy,
            participant_count=participant_count,
            confidence_level=confidence_level(participant_count, total_sample_size, noise),
            created_at=self._clock(),
        )

        logger.info(
            f"  Released {segment_key}: value={benchmark.value:.4f} "
            f"confidence={benchmark.confidence_level:.2f}"
        )
        return ConversionInsight(
            benchmark=benchmark,
            noise_magnitude=abs(noise),
            total_sample_size=total_sample_size,
        )
