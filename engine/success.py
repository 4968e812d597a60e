"""
Historical success score of a tenant.

    score = 0.4 * revenue + 0.3 * conversion + 0.2 * growth + 0.1 * consistency

    revenue      min(1, total revenue / 10000)
    conversion   min(1, mean conversion / 0.03)
    growth       (g + 0.5) / 1.5 clamped to [0, 1], where g compares the mean
                 of the last 3 revenue points with the 3 before them
    consistency  max(0, 1 - CV of monthly totals over all records)

Histories with fewer than MIN_RECORDS records score exactly 0.
"""

from collections import defaultdict
from typing import Dict, Sequence

from core.confidence import population_std
from schema.profile import TenantHistoryRecord


MIN_RECORDS = 10

REVENUE_NORMALIZER = 10000.0
CONVERSION_NORMALIZER = 0.03

WEIGHTS = {
    "revenue": 0.4,
    "conversion": 0.3,
    "growth": 0.2,
    "consistency": 0.1,
}


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def growth_trend(revenue_values: Sequence[float]) -> float:
    """Normalized growth of the last 3 revenue points over the 3 before them."""
    if len(revenue_values) < 4:
        return 0.0

    recent = revenue_values[-3:]
    older = revenue_values[-6:-3]

    recent_avg = _mean(recent)
    older_avg = _mean(older)
    if older_avg == 0:
        return 1.0 if recent_avg > 0 else 0.0

    growth = (recent_avg - older_avg) / older_avg
    return _clamp01((growth + 0.5) / 1.5)


def consistency(history: Sequence[TenantHistoryRecord]) -> float:
    """1 - coefficient of variation of per-month value totals."""
    monthly: Dict[str, float] = defaultdict(float)
    for record in history:
        monthly[record.timestamp.strftime("%Y-%m")] += record.value

    totals = list(monthly.values())
    if len(totals) < 3:
        return 0.0

    mean = _mean(totals)
    cv = population_std(totals) / mean if mean > 0 else 1.0
    return max(0.0, 1.0 - cv)


class SuccessScorer:
    """Pure scorer for a tenant's observed history."""

    def component_scores(self, history: Sequence[TenantHistoryRecord]) -> Dict[str, float]:
        ordered = sorted(history, key=lambda r: r.timestamp)
        revenue = [r.value for r in ordered if r.type == "revenue"]
        conversion = [r.value for r in ordered if r.type == "conversion"]

        return {
            "revenue": min(1.0, sum(revenue) / REVENUE_NORMALIZER) if revenue else 0.0,
            "conversion": min(1.0, _mean(conversion) / CONVERSION_NORMALIZER),
            "growth": growth_trend(revenue),
            "consistency": consistency(ordered),
        }

    def compute_success_score(self, history: Sequence[TenantHistoryRecord]) -> float:
        """Success score in [0, 1]; 0 for fewer than MIN_RECORDS records."""
        if len(history) < MIN_RECORDS:
            return 0.0

        components = self.component_scores(history)
        score = sum(WEIGHTS[name] * components[name] for name in WEIGHTS)
        return _clamp01(score)
