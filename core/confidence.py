"""
Confidence Interval Calculator for Peer-Derived Predictions.

Provides margins of error and intervals around point predictions from the
spread of outcomes observed among similar historical tenants.

Note: These intervals reflect peer outcome dispersion only. They are not
sampling-error intervals for the backend's estimate.
"""

import math
import logging
from typing import Optional, Sequence, Tuple

from scipy.stats import norm


logger = logging.getLogger(__name__)


# Z-scores for common confidence levels
Z_SCORES = {
    0.80: 1.282,
    0.90: 1.645,
    0.95: 1.960,
    0.99: 2.576,
}


def population_std(values: Sequence[float]) -> float:
    """
    Population standard deviation.

    Returns 0 for fewer than two values.
    """
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    variance = sum((value - mean) ** 2 for value in values) / len(values)
    return math.sqrt(variance)


class ConfidenceCalculator:
    """
    Calculates non-negative confidence intervals.

    - Margin of Error at confidence level c = z_c * sigma
    - Confidence Interval = [max(0, value - MOE), value + MOE]
    - Without dispersion data: [value * (1 - f), value * (1 + f)]
      with f = fallback_fraction
    """

    def __init__(self, default_confidence_level: float = 0.95, fallback_fraction: float = 0.5):
        """
        Initialize the ConfidenceCalculator.

        Args:
            default_confidence_level: Default confidence level (e.g., 0.95 for 95% CI).
            fallback_fraction: Relative half-width used when no dispersion data exists.
        """
        if not 0 < default_confidence_level < 1:
            raise ValueError("Confidence level must be between 0 and 1")
        if fallback_fraction < 0:
            raise ValueError("fallback_fraction must be non-negative")

        self.default_confidence_level = default_confidence_level
        self.fallback_fraction = fallback_fraction

    def get_z_score(self, confidence_level: Optional[float] = None) -> float:
        """
        Get z-score for a given confidence level.

        Args:
            confidence_level: Confidence level (e.g., 0.95). Uses default if None.

        Returns:
            Z-score for the confidence level.
        """
        if confidence_level is None:
            confidence_level = self.default_confidence_level

        if confidence_level in Z_SCORES:
            return Z_SCORES[confidence_level]

        return float(norm.ppf((1 + confidence_level) / 2))

    def compute_margin_of_error(
        self,
        sigma: float,
        confidence_level: Optional[float] = None
    ) -> float:
        """Margin of error z * sigma."""
        return self.get_z_score(confidence_level) * sigma

    def compute_confidence_interval(
        self,
        value: float,
        sigma: float,
        confidence_level: Optional[float] = None
    ) -> Tuple[float, float]:
        """
        Compute a confidence interval around a point estimate.

        Args:
            value: The point prediction.
            sigma: Standard deviation of peer outcomes.
            confidence_level: Confidence level. Uses default if None.

        Returns:
            Tuple of (lower_bound, upper_bound); lower bound floored at 0.
        """
        moe = self.compute_margin_of_error(sigma, confidence_level)
        return (max(0.0, value - moe), value + moe)

    def fallback_interval(self, value: float) -> Tuple[float, float]:
        """Relative interval used when no peer outcome data exists."""
        return (
            max(0.0, value * (1.0 - self.fallback_fraction)),
            value * (1.0 + self.fallback_fraction),
        )

    def interval_from_peers(
        self,
        value: float,
        peer_outcomes: Sequence[float],
        confidence_level: Optional[float] = None
    ) -> Tuple[float, float]:
        """
        Interval from peer outcome dispersion, or the relative fallback when
        there are no peer outcomes at all.
        """
        if not peer_outcomes:
            logger.debug("No peer outcome data; using relative fallback interval")
            return self.fallback_interval(value)

        sigma = population_std(list(peer_outcomes))
        return self.compute_confidence_interval(value, sigma, confidence_level)
