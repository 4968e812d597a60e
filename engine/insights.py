"""
Insight generation from released benchmarks.

Ranking and recommendations are post-processing of already-released values
and consume no privacy budget.
"""

import logging
import threading
from typing import List, Optional, Sequence

from core.errors import raise_if_cancelled
from schema.records import ConversionInsight, InsightReport
from schema.segment import SegmentDescriptor
from writer.benchmark_store import BenchmarkStore


logger = logging.getLogger(__name__)


# Conversion rate below which the fundamentals warning is always added
LOW_CONVERSION_RATE = 0.02


def percentile_rank(value: float, history: Sequence[float]) -> float:
    """
    Percentage of historical values strictly below value.

    Returns 50 (neutral) for an empty history.
    """
    if not history:
        return 50.0
    below = sum(1 for h in history if h < value)
    return below / len(history) * 100.0


def recommend(rate: float, percentile: float, segment: Optional[SegmentDescriptor] = None) -> List[str]:
    """
    Tiered recommendations for a conversion rate and its percentile rank.

    Args:
        rate: Conversion rate being assessed
        percentile: Percentile rank in [0, 100]
        segment: Segment context for device/source specific advice

    Returns:
        Ordered list of recommendation strings
    """
    segment = segment or SegmentDescriptor()
    recommendations: List[str] = []

    if percentile < 25:
        recommendations.append('Consider A/B testing different call-to-action buttons')
        recommendations.append('Optimize page loading speed and mobile experience')
        if segment.device_type == 'mobile':
            recommendations.append('Implement mobile-specific checkout optimization')
        if segment.traffic_source == 'social':
            recommendations.append('Review social media ad targeting and creative')
    elif percentile < 50:
        recommendations.append('Test different product presentation formats')
        recommendations.append('Implement exit-intent popups with offers')
    elif percentile < 75:
        recommendations.append('Focus on increasing average order value')
        recommendations.append('Implement personalized product recommendations')
    else:
        recommendations.append('Maintain current high-performing strategies')
        recommendations.append('Consider expanding successful tactics to other segments')

    if rate < LOW_CONVERSION_RATE:
        recommendations.append('Conversion rate below 2% - review fundamental user experience')

    return recommendations


class InsightGenerator:
    """Turns a fresh aggregation into a stored benchmark plus a ranked report."""

    def __init__(self, store: BenchmarkStore, history_limit: int = 100):
        self.store = store
        self.history_limit = history_limit

    def generate(
        self,
        insight: ConversionInsight,
        segment: Optional[SegmentDescriptor] = None,
        cancelled: Optional[threading.Event] = None
    ) -> InsightReport:
        """
        Rank a new benchmark against prior history, then store it.

        History is read before the new benchmark is appended so a value is
        never ranked against itself.
        A cancelled request raises RequestTimeoutError without storing.
        """
        benchmark = insight.benchmark
        segment = segment or SegmentDescriptor.parse(benchmark.segment_key)

        history = self.store.values(benchmark.segment_key, self.history_limit)
        rank = percentile_rank(benchmark.value, history)
        recommendations = recommend(benchmark.value, rank, segment)

        raise_if_cancelled(cancelled, f"storing benchmark for {benchmark.segment_key}")
        self.store.store(benchmark)

        logger.info(
            f"Insight {benchmark.segment_key}: percentile={rank:.1f} "
            f"against {len(history)} prior benchmarks"
        )
        return InsightReport(
            segment_key=benchmark.segment_key,
            benchmark=benchmark,
            percentile_rank=rank,
            recommendations=recommendations,
        )
