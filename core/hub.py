"""
Intelligence Hub Orchestration.

Public entry point of the core. Wires the privacy ledger, aggregation,
benchmark storage, insights and prediction together:

    records -> ConversionAggregator (ledger + Laplace noise)
            -> InsightGenerator (rank against history) -> BenchmarkStore
    profile -> PredictionEngine (peers, features, backend) -> Prediction

Every request runs under request_timeout_seconds. A timed-out request raises
RequestTimeoutError, returns nothing partial, and is cancelled before it
spends budget or persists.
"""

import logging
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from core.budget import PrivacyBudgetLedger
from core.config import Config
from core.errors import RequestTimeoutError
from core.primitives import NoiseInjector
from engine.aggregator import ConversionAggregator
from engine.backends import PredictionBackend, build_backend
from engine.features import FeatureBuilder
from engine.insights import InsightGenerator, percentile_rank, recommend
from engine.predictor import PredictionEngine
from queries.interfaces import (
    BenchmarkRepository,
    ConversionDataSource,
    PredictionRepository,
    TenantDataSource,
)
from schema.profile import AccuracyReport, Prediction, TenantHistoryRecord, TenantProfile, TrainingReport
from schema.records import ConversionRecord, InsightReport, OptimizationOpportunity, priority_for_improvement
from schema.segment import SegmentDescriptor
from schema.vocabulary import FeatureVocabulary
from writer.benchmark_store import BenchmarkStore
from writer.retry import call_with_retry


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Minimum improvement (percent) for an optimization opportunity
MIN_IMPROVEMENT_PERCENT = 10.0

# Relative deviation from the benchmark that raises an alert
DEVIATION_ALERT_THRESHOLD = 0.2
DEVIATION_HIGH_PRIORITY = 0.5


class IntelligenceHub:
    """
    Orchestrates benchmark and prediction requests.

    Compute components are stateless; the ledger is the only shared mutable
    state and is safe for concurrent requests.
    """

    def __init__(
        self,
        config: Config,
        conversion_source: ConversionDataSource,
        tenant_source: TenantDataSource,
        benchmark_repository: BenchmarkRepository,
        prediction_repository: PredictionRepository,
        ledger: Optional[PrivacyBudgetLedger] = None,
        noise: Optional[NoiseInjector] = None,
        backend: Optional[PredictionBackend] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_workers: int = 8
    ):
        """
        Initialize hub.

        Args:
            config: Validated configuration
            conversion_source: Raw conversion records
            tenant_source: Historical tenants and category counts
            benchmark_repository: Append-only benchmark storage
            prediction_repository: Prediction storage
            ledger: Shared budget ledger (built from config if None)
            noise: Noise injector (seeded from config if None)
            backend: Prediction backend (selected from config if None)
            clock: Optional callable returning "now" (for tests)
            max_workers: Worker threads executing requests under the timeout
        """
        self.config = config
        self._clock = clock or datetime.now
        self.conversion_source = conversion_source

        self.ledger = ledger or PrivacyBudgetLedger.from_config(config.privacy, clock=self._clock)
        self.noise = noise or NoiseInjector(seed=config.privacy.noise_seed)
        retries = config.runtime.persistence_retries

        self.aggregator = ConversionAggregator.from_config(
            config, conversion_source, self.ledger, self.noise, clock=self._clock
        )
        self.store = BenchmarkStore(
            benchmark_repository, history_limit=config.aggregation.history_limit, retries=retries
        )
        self.insights = InsightGenerator(self.store, history_limit=config.aggregation.history_limit)

        vocabulary = FeatureVocabulary.load(config.prediction.vocabulary_path or None)
        self.predictor = PredictionEngine.from_config(
            config,
            tenant_source,
            prediction_repository,
            backend or build_backend(config.prediction),
            feature_builder=FeatureBuilder(vocabulary),
            clock=self._clock,
        )

        self.timeout = config.runtime.request_timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="intelligence")

        logger.info("=" * 60)
        logger.info("Intelligence hub initialized")
        logger.info(f"  Epsilon per release:  {config.privacy.noise_level}")
        logger.info(f"  Participant floor:    {config.privacy.min_participants}")
        logger.info(f"  Backend:              {self.predictor.backend.name}")
        logger.info(f"  Vocabulary:           {vocabulary.version}")
        logger.info("=" * 60)

    @classmethod
    def from_config(cls, config: Config, data_store, **kwargs) -> "IntelligenceHub":
        """Build a hub over one store implementing all four data interfaces."""
        config.validate()
        return cls(config, data_store, data_store, data_store, data_store, **kwargs)

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def __enter__(self) -> "IntelligenceHub":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Request execution
    # ------------------------------------------------------------------

    def _run(self, name: str, fn: Callable[[threading.Event], T]) -> T:
        """
        Run a request under the configured timeout.

        fn receives a cancellation event that is set on timeout. Stages that
        spend budget or persist check it first, so a request the caller was
        told failed commits nothing afterwards.
        """
        cancelled = threading.Event()
        future = self._executor.submit(fn, cancelled)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as e:
            cancelled.set()
            future.cancel()
            logger.error(f"{name} exceeded {self.timeout}s timeout")
            raise RequestTimeoutError(
                f"{name} exceeded {self.timeout}s timeout",
                context={"operation": name, "timeout_seconds": self.timeout},
            ) from e

    def _window(self, window_days: Optional[int]) -> int:
        return self.config.aggregation.default_window_days if window_days is None else window_days

    # ------------------------------------------------------------------
    # Benchmarks
    # ------------------------------------------------------------------

    def get_conversion_insights(
        self,
        segment: SegmentDescriptor,
        window_days: Optional[int] = None
    ) -> InsightReport:
        """
        Release a benchmark for a segment and rank it against history.

        Raises:
            InsufficientData / InsufficientParticipants: Fails closed
        """
        window = self._window(window_days)

        def run(cancelled: threading.Event) -> InsightReport:
            insight = self.aggregator.collect(segment, window, cancelled)
            return self.insights.generate(insight, segment, cancelled)

        return self._run("get_conversion_insights", run)

    def get_optimization_opportunities(
        self,
        tenant_id: str,
        window_days: Optional[int] = None
    ) -> List[OptimizationOpportunity]:
        """
        Segments where the tenant trails the latest benchmark by more than 10%.

        Sorted by improvement, largest first. Reads released benchmarks only,
        so no privacy budget is consumed.
        """
        window = self._window(window_days)
        return self._run(
            "get_optimization_opportunities",
            lambda _: self._optimization_opportunities(tenant_id, window),
        )

    def _optimization_opportunities(self, tenant_id: str, window_days: int) -> List[OptimizationOpportunity]:
        end = self._clock()
        start = end - timedelta(days=window_days)
        records: List[ConversionRecord] = call_with_retry(
            lambda: self.conversion_source.query_conversion_records(SegmentDescriptor(), start, end, tenant_id),
            f"query conversion records for tenant {tenant_id}",
            self.config.runtime.persistence_retries,
        )

        by_segment: Dict[str, List[ConversionRecord]] = defaultdict(list)
        for record in records:
            by_segment[record.segment.canonical_key()].append(record)

        opportunities: List[OptimizationOpportunity] = []
        for segment_key, segment_records in by_segment.items():
            rate = sum(r.conversion_rate for r in segment_records) / len(segment_records)
            if rate <= 0:
                continue

            benchmark = self.store.latest(segment_key)
            if benchmark is None:
                continue

            improvement = (benchmark.value - rate) / rate * 100.0
            if improvement <= MIN_IMPROVEMENT_PERCENT:
                continue

            segment = segment_records[0].segment
            opportunities.append(OptimizationOpportunity(
                segment=segment_key,
                current_rate=rate,
                benchmark_rate=benchmark.value,
                improvement=improvement,
                priority=priority_for_improvement(improvement),
                recommendations=recommend(rate, percentile_rank(rate, [benchmark.value]), segment),
            ))

        opportunities.sort(key=lambda o: o.improvement, reverse=True)
        logger.info(f"Tenant {tenant_id}: {len(opportunities)} optimization opportunities")
        return opportunities

    def check_conversion_deviation(self, record: ConversionRecord) -> Optional[Dict[str, Any]]:
        """Alert when an incoming record deviates from the latest benchmark by more than 20%."""
        return self._run("check_conversion_deviation", lambda _: self._conversion_deviation(record))

    def _conversion_deviation(self, record: ConversionRecord) -> Optional[Dict[str, Any]]:
        segment_key = record.segment.canonical_key()
        benchmark = self.store.latest(segment_key)
        if benchmark is None or benchmark.value <= 0:
            return None

        deviation = (record.conversion_rate - benchmark.value) / benchmark.value
        if abs(deviation) <= DEVIATION_ALERT_THRESHOLD:
            return None

        direction = "above" if deviation > 0 else "below"
        alert = {
            "type": "conversion",
            "tenant_id": record.tenant_id,
            "segment": segment_key,
            "current_rate": record.conversion_rate,
            "benchmark_rate": benchmark.value,
            "deviation": deviation,
            "message": f"Conversion rate {direction} benchmark by {abs(deviation) * 100:.1f}%",
            "priority": "high" if abs(deviation) > DEVIATION_HIGH_PRIORITY else "medium",
        }
        logger.info(f"Deviation alert for {record.tenant_id} on {segment_key}: {alert['message']}")
        return alert

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def predict_site_success(self, profile: TenantProfile) -> Prediction:
        return self._run(
            "predict_site_success",
            lambda cancelled: self.predictor.predict_site_success(profile, cancelled),
        )

    def train_models(self) -> TrainingReport:
        return self._run("train_models", lambda _: self.predictor.train())

    def evaluate_prediction_accuracy(
        self,
        prediction: Prediction,
        realized_history: Sequence[TenantHistoryRecord]
    ) -> AccuracyReport:
        return self._run(
            "evaluate_prediction_accuracy",
            lambda _: self.predictor.evaluate_accuracy(prediction, realized_history),
        )

    # ------------------------------------------------------------------
    # Privacy budget administration
    # ------------------------------------------------------------------

    def privacy_budget_status(self) -> Dict[str, float]:
        """Snapshot of remaining budget per tracked tenant."""
        return self.ledger.status()

    def reset_privacy_budgets(self) -> Dict[str, float]:
        """Administrative reset. Returns the pre-reset snapshot."""
        return self.ledger.reset()

    def run_scheduled_maintenance(self, now: Optional[datetime] = None) -> bool:
        """Reset the ledger if the reset interval has elapsed. Returns whether it ran."""
        ran = self.ledger.reset_if_due(now or self._clock())
        if ran:
            logger.info("Scheduled privacy budget reset completed")
        return ran
