"""
Similarity-Based Success Prediction Engine.

Predicts revenue, traffic and success probability for a prospective tenant
from the outcomes of similar historical tenants.

PIPELINE:
1. Validate the candidate profile.
2. Select peers: similarity > threshold, age > min_tenant_age_days,
   >= min_history_records records; top max_similar_tenants by similarity.
   Fewer than min_similar_tenants peers fails with InsufficientSimilarTenants.
3. Build the 11-dim feature vector and run the configured backend.
4. Confidence intervals around the month-12 estimates from the dispersion of
   peer outcome totals. Peers without records count as 0; the relative
   fallback applies only when no peer has outcomes.
5. Apply rule sets and persist the prediction.

TRAINING DATA:
Historical tenants older than min_tenant_age_days, with more than
training_min_history_records records, created within training_lookback_days.
Targets are cumulative revenue and views at 30/90/180/365 days after the
first record (model-space scaled) and success = score > 0.5.
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from core.confidence import ConfidenceCalculator
from core.config import MIN_PARTICIPANT_FLOOR
from core.errors import InsufficientSimilarTenants, ModelError, raise_if_cancelled
from engine.backends import REVENUE_SCALE, TRAFFIC_SCALE, PredictionBackend, TrainingSample
from engine.features import FeatureBuilder, market_competitiveness
from engine.rules import (
    PeerMatch,
    identify_growth_opportunities,
    identify_risk_factors,
    recommend_strategies,
    successful_peer_ids,
)
from engine.similarity import SimilarityMatcher
from engine.success import SuccessScorer
from queries.interfaces import PredictionRepository, TenantDataSource
from schema.profile import (
    AccuracyReport,
    HistoricalTenant,
    Prediction,
    TenantHistoryRecord,
    TenantProfile,
    TrainingReport,
)
from writer.retry import call_with_retry


logger = logging.getLogger(__name__)


# Horizon (days after first record) of each cumulative target
TARGET_HORIZON_DAYS = (30, 90, 180, 365)

TRAFFIC_RECORD_TYPE = "view"
REVENUE_RECORD_TYPE = "revenue"

SUCCESS_LABEL_THRESHOLD = 0.5

# Defaults applied to sparse historical profiles when building training rows
TRAINING_PROFILE_DEFAULTS = {
    "category": "general",
    "target_audience": "general",
    "geographic_focus": "us",
    "content_strategy": "mixed",
    "initial_products": ("product1",),
    "marketing_budget": 1000.0,
    "team_size": 1,
    "technical_expertise": "intermediate",
}


def cumulative_outcomes(
    history: Sequence[TenantHistoryRecord],
    record_type: str,
    horizons_days: Sequence[int] = TARGET_HORIZON_DAYS
) -> List[float]:
    """Cumulative value of one record type at each horizon after the first record."""
    records = sorted((r for r in history if r.type == record_type), key=lambda r: r.timestamp)
    if not records:
        return [0.0] * len(horizons_days)

    start = records[0].timestamp
    return [
        sum(r.value for r in records if r.timestamp <= start + timedelta(days=days))
        for days in horizons_days
    ]


def peer_outcome_totals(tenants: Sequence[HistoricalTenant], record_type: str) -> List[float]:
    """
    Total of one record type per peer, for interval dispersion.

    Peers without records count as 0 once any peer has data; an empty list
    (no peer has data) selects the relative fallback interval.
    """
    totals = [sum(t.values_of(record_type)) for t in tenants]
    if not any(t.values_of(record_type) for t in tenants):
        return []
    return totals


def prediction_accuracy(predicted: float, actual: float) -> float:
    """1 - relative error, floored at 0. Exact zero-on-zero counts as 1."""
    if actual == 0:
        return 1.0 if predicted == 0 else 0.0
    return max(0.0, 1.0 - abs(predicted - actual) / abs(actual))


def training_profile(profile: TenantProfile) -> TenantProfile:
    """Fill missing profile fields with training defaults."""
    updates = {
        name: default for name, default in TRAINING_PROFILE_DEFAULTS.items()
        if not getattr(profile, name)
    }
    return replace(profile, **updates) if updates else profile


class PredictionEngine:
    """
    Produces Predictions for candidate profiles.

    Holds no mutable state apart from the backend's fitted model.
    """

    def __init__(
        self,
        tenant_source: TenantDataSource,
        prediction_repository: PredictionRepository,
        backend: PredictionBackend,
        feature_builder: Optional[FeatureBuilder] = None,
        matcher: Optional[SimilarityMatcher] = None,
        scorer: Optional[SuccessScorer] = None,
        similarity_threshold: float = 0.3,
        min_tenant_age_days: int = 90,
        min_history_records: int = 10,
        min_similar_tenants: int = MIN_PARTICIPANT_FLOOR,
        max_similar_tenants: int = 20,
        confidence_level: float = 0.95,
        min_training_samples: int = 25,
        training_min_history_records: int = 20,
        training_lookback_days: int = 365,
        retries: int = 1,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.tenant_source = tenant_source
        self.prediction_repository = prediction_repository
        self.backend = backend
        self.feature_builder = feature_builder or FeatureBuilder()
        self.matcher = matcher or SimilarityMatcher()
        self.scorer = scorer or SuccessScorer()
        self.confidence = ConfidenceCalculator(default_confidence_level=confidence_level)

        self.similarity_threshold = similarity_threshold
        self.min_tenant_age_days = min_tenant_age_days
        self.min_history_records = min_history_records
        self.min_similar_tenants = max(MIN_PARTICIPANT_FLOOR, min_similar_tenants)
        self.max_similar_tenants = max_similar_tenants
        self.min_training_samples = min_training_samples
        self.training_min_history_records = training_min_history_records
        self.training_lookback_days = training_lookback_days
        self.retries = retries
        self._clock = clock or datetime.now

    @classmethod
    def from_config(cls, config, tenant_source, prediction_repository, backend,
                    feature_builder=None, clock=None) -> "PredictionEngine":
        p = config.prediction
        return cls(
            tenant_source=tenant_source,
            prediction_repository=prediction_repository,
            backend=backend,
            feature_builder=feature_builder,
            similarity_threshold=p.similarity_threshold,
            min_tenant_age_days=p.min_tenant_age_days,
            min_history_records=p.min_history_records,
            min_similar_tenants=p.min_similar_tenants,
            max_similar_tenants=p.max_similar_tenants,
            confidence_level=p.confidence_level,
            min_training_samples=p.min_training_samples,
            training_min_history_records=p.training_min_history_records,
            training_lookback_days=p.training_lookback_days,
            retries=config.runtime.persistence_retries,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    def _all_tenants(self) -> List[HistoricalTenant]:
        return call_with_retry(
            lambda: self.tenant_source.query_tenant_history(None),
            "query tenant history",
            self.retries,
        )

    def _category_count(self, category: str) -> int:
        return call_with_retry(
            lambda: self.tenant_source.query_category_tenant_count(category),
            f"query category tenant count for {category}",
            self.retries,
        )

    # ------------------------------------------------------------------
    # Peers
    # ------------------------------------------------------------------

    def find_similar_tenants(
        self,
        profile: TenantProfile,
        tenants: Optional[List[HistoricalTenant]] = None
    ) -> List[PeerMatch]:
        """Qualifying peers, most similar first, at most max_similar_tenants."""
        now = self._clock()
        tenants = self._all_tenants() if tenants is None else tenants

        peers: List[PeerMatch] = []
        for tenant in tenants:
            if tenant.age_days(now) <= self.min_tenant_age_days:
                continue
            if len(tenant.history) < self.min_history_records:
                continue
            similarity = self.matcher.score(profile, tenant.profile)
            if similarity <= self.similarity_threshold:
                continue
            peers.append(PeerMatch(
                tenant_id=tenant.tenant_id,
                profile=tenant.profile,
                similarity=similarity,
                success_score=self.scorer.compute_success_score(tenant.history),
            ))

        peers.sort(key=lambda p: p.similarity, reverse=True)
        return peers[:self.max_similar_tenants]

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def predict_site_success(
        self,
        profile: TenantProfile,
        cancelled: Optional[threading.Event] = None
    ) -> Prediction:
        """
        Predict outcomes for a candidate tenant.

        Args:
            profile: Candidate profile
            cancelled: Set by the caller on timeout; checked before persisting

        Raises:
            ValidationError: Malformed profile
            InsufficientSimilarTenants: Fewer than min_similar_tenants peers
            ModelError: The backend (and its fallback, if any) failed
            PersistenceError: Store access failed after retry
            RequestTimeoutError: Cancelled before the prediction was persisted
        """
        profile.validate()

        tenants = self._all_tenants()
        peers = self.find_similar_tenants(profile, tenants)
        if len(peers) < self.min_similar_tenants:
            raise InsufficientSimilarTenants(
                f"Found {len(peers)} similar tenants, need {self.min_similar_tenants}",
                context={"similar_tenants": len(peers), "required": self.min_similar_tenants},
            )

        category_count = self._category_count(profile.category)
        competitiveness = market_competitiveness(category_count)
        features = self.feature_builder.build(profile, category_count, [p.success_score for p in peers])
        output = self.backend.predict(features)

        by_id = {t.tenant_id: t for t in tenants}
        peer_tenants = [by_id[p.tenant_id] for p in peers]
        revenue_totals = peer_outcome_totals(peer_tenants, REVENUE_RECORD_TYPE)
        traffic_totals = peer_outcome_totals(peer_tenants, TRAFFIC_RECORD_TYPE)

        intervals = {
            "revenue": self.confidence.interval_from_peers(output.revenue["month_12"], revenue_totals),
            "traffic": self.confidence.interval_from_peers(output.traffic["month_12"], traffic_totals),
        }

        prediction = Prediction(
            predicted_revenue=output.revenue,
            predicted_traffic=output.traffic,
            success_probability=output.success_probability,
            risk_factors=identify_risk_factors(profile, peers, competitiveness),
            growth_opportunities=identify_growth_opportunities(profile, peers),
            recommended_strategies=recommend_strategies(profile, peers),
            similar_successful_tenants=successful_peer_ids(peers),
            confidence_intervals=intervals,
            backend=output.backend,
            created_at=self._clock(),
        )

        raise_if_cancelled(cancelled, "persisting prediction")
        prediction_id = call_with_retry(
            lambda: self.prediction_repository.persist_prediction(profile, prediction),
            "persist prediction",
            self.retries,
        )
        logger.info(
            f"Prediction {prediction_id}: {len(peers)} peers, backend={output.backend}, "
            f"success={prediction.success_probability:.2f}"
        )
        return prediction

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def collect_training_samples(self) -> List[TrainingSample]:
        """Supervised examples from eligible historical tenants."""
        now = self._clock()
        cutoff = now - timedelta(days=self.training_lookback_days)
        category_counts: Dict[str, int] = {}
        samples: List[TrainingSample] = []

        for tenant in self._all_tenants():
            if tenant.created_at < cutoff:
                continue
            if len(tenant.history) <= self.training_min_history_records:
                continue
            if tenant.age_days(now) <= self.min_tenant_age_days:
                continue

            profile = training_profile(tenant.profile)
            if profile.category not in category_counts:
                category_counts[profile.category] = self._category_count(profile.category)

            features = self.feature_builder.build(profile, category_counts[profile.category], ())
            revenue = np.asarray(cumulative_outcomes(tenant.history, REVENUE_RECORD_TYPE)) / REVENUE_SCALE
            traffic = np.asarray(cumulative_outcomes(tenant.history, TRAFFIC_RECORD_TYPE)) / TRAFFIC_SCALE
            score = self.scorer.compute_success_score(tenant.history)

            samples.append(TrainingSample(
                tenant_id=tenant.tenant_id,
                features=features,
                revenue=revenue,
                traffic=traffic,
                success=1.0 if score > SUCCESS_LABEL_THRESHOLD else 0.0,
            ))

        logger.info(f"Collected {len(samples)} training samples")
        return samples

    def train(self) -> TrainingReport:
        """Train the backend when it is trainable."""
        if not self.backend.trainable:
            logger.info(f"Backend '{self.backend.name}' is not trainable")
            return TrainingReport(accuracy_by_metric={}, training_sample_count=0, status="not_applicable")

        samples = self.collect_training_samples()
        if len(samples) < self.min_training_samples:
            logger.warning(
                f"Only {len(samples)} training samples, need {self.min_training_samples}; "
                f"model not trained"
            )
            return TrainingReport(
                accuracy_by_metric={}, training_sample_count=len(samples), status="insufficient_data"
            )

        accuracy = self.backend.train(samples)
        return TrainingReport(accuracy_by_metric=accuracy, training_sample_count=len(samples), status="trained")

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate_accuracy(
        self,
        prediction: Prediction,
        realized_history: Sequence[TenantHistoryRecord]
    ) -> AccuracyReport:
        """
        Compare a past prediction with the tenant's realized outcomes.

        Only records at or after the prediction time are used. Month-12
        estimates are compared with cumulative outcomes 365 days after the
        first realized record.
        """
        realized = [r for r in realized_history if r.timestamp >= prediction.created_at]
        if len(realized) < self.min_history_records:
            raise ModelError(
                f"Insufficient realized data for evaluation: {len(realized)} records, "
                f"need {self.min_history_records}",
                context={"records": len(realized)},
            )

        actual_revenue = cumulative_outcomes(realized, REVENUE_RECORD_TYPE)[-1]
        actual_traffic = cumulative_outcomes(realized, TRAFFIC_RECORD_TYPE)[-1]
        actual_success = self.scorer.compute_success_score(realized)

        return AccuracyReport(
            revenue_accuracy=prediction_accuracy(prediction.predicted_revenue["month_12"], actual_revenue),
            traffic_accuracy=prediction_accuracy(prediction.predicted_traffic["month_12"], actual_traffic),
            success_accuracy=1.0 - abs(prediction.success_probability - actual_success),
        )
