"""
Differential Privacy Primitives: the Laplace Mechanism.

For a query with L1-sensitivity Delta and privacy parameter epsilon, adding
noise drawn from Laplace(0, b) with b = Delta / epsilon satisfies
epsilon-differential privacy.

    Var[Laplace(0, b)] = 2 * b^2

Noise is sampled by inverting the Laplace CDF:
    u ~ Uniform(-1/2, 1/2)
    x = -b * sign(u) * ln(1 - 2|u|)

BOUNDARY BIAS:
==============
Released conversion rates are clamped to [0, 1] after noise is added. The
clamp is post-processing (no privacy cost) but it biases released values
toward the interior when the true mean sits near 0 or 1. This is an accepted
imprecision and is kept for compatibility with previously released benchmarks.
"""

import math
import logging
from typing import Optional, Tuple

import numpy as np


logger = logging.getLogger(__name__)


# ============================================================================
# Helper Functions
# ============================================================================

def clamp01(value: float) -> float:
    """Clamp a value to the closed unit interval."""
    return max(0.0, min(1.0, value))


def laplace_scale(epsilon: float, sensitivity: float = 1.0) -> float:
    """
    Compute the Laplace scale b = sensitivity / epsilon.

    Args:
        epsilon: Privacy parameter (> 0)
        sensitivity: L1 sensitivity of the query (>= 0)

    Returns:
        Scale parameter of the Laplace distribution
    """
    if epsilon <= 0:
        raise ValueError(f"epsilon must be > 0, got {epsilon}")
    if sensitivity < 0:
        raise ValueError(f"sensitivity must be >= 0, got {sensitivity}")
    return sensitivity / epsilon


def laplace_variance(epsilon: float, sensitivity: float = 1.0) -> float:
    """Variance of the (unclamped) Laplace noise: 2 * (sensitivity/epsilon)^2."""
    scale = laplace_scale(epsilon, sensitivity)
    return 2.0 * scale * scale


# ============================================================================
# Noise Injector
# ============================================================================

class NoiseInjector:
    """
    Laplace-mechanism noise generator.

    Stateless apart from its random generator; one instance can be shared by
    concurrent aggregations.
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[np.random.Generator] = None):
        """
        Initialize the injector.

        Args:
            seed: Optional seed for reproducible noise (tests only)
            rng: Optional pre-built numpy Generator; takes precedence over seed
        """
        self._rng = rng if rng is not None else np.random.default_rng(seed)

    def sample_laplace(self, scale: float) -> float:
        """
        Draw one Laplace(0, scale) sample by inverse-CDF sampling.

        Args:
            scale: Laplace scale b (> 0)

        Returns:
            Noise sample
        """
        if scale <= 0:
            raise ValueError(f"scale must be > 0, got {scale}")

        while True:
            u = float(self._rng.uniform(-0.5, 0.5))
            tail = 1.0 - 2.0 * abs(u)
            # u == -0.5 would give ln(0)
            if tail > 0.0:
                return -scale * math.copysign(1.0, u) * math.log(tail)

    def sample_laplace_vector(self, scale: float, size: int) -> np.ndarray:
        """Vectorized variant of sample_laplace for statistical checks."""
        if scale <= 0:
            raise ValueError(f"scale must be > 0, got {scale}")
        u = self._rng.uniform(-0.5, 0.5, size)
        tail = np.clip(1.0 - 2.0 * np.abs(u), np.finfo(float).tiny, None)
        return -scale * np.sign(u) * np.log(tail)

    def laplace_mechanism(
        self,
        true_mean: float,
        epsilon: float,
        sensitivity: float = 1.0
    ) -> Tuple[float, float]:
        """
        Perturb a mean with Laplace noise and clamp to [0, 1].

        Args:
            true_mean: Exact aggregate in [0, 1]
            epsilon: Privacy parameter
            sensitivity: L1 sensitivity (max change one participant can cause)

        Returns:
            Tuple of (clamped noisy value, raw noise added)
        """
        scale = laplace_scale(epsilon, sensitivity)
        noise = self.sample_laplace(scale)
        noisy = clamp01(true_mean + noise)

        logger.debug(
            f"Laplace mechanism: eps={epsilon}, sens={sensitivity}, b={scale:.4f}, "
            f"|noise|={abs(noise):.4f}"
        )
        return noisy, noise

    def apply_privacy(
        self,
        true_mean: float,
        epsilon: float,
        sensitivity: float = 1.0
    ) -> float:
        """Return the clamped noisy value for a true mean."""
        noisy, _ = self.laplace_mechanism(true_mean, epsilon, sensitivity)
        return noisy


# ============================================================================
# Release Confidence Heuristic
# ============================================================================

def confidence_level(
    participant_count: int,
    total_sample_size: int,
    noise_magnitude: float
) -> float:
    """
    Heuristic confidence in a released aggregate.

    Equal-weight mean of three normalized sub-scores:
    - participants, saturating at 10
    - pooled sample size, saturating at 1000
    - inverse noise magnitude, reaching 0 at |noise| >= 0.1

    Returns:
        Confidence in [0, 1]
    """
    participant_score = min(1.0, max(0, participant_count) / 10.0)
    sample_score = min(1.0, max(0, total_sample_size) / 1000.0)
    noise_score = max(0.0, 1.0 - abs(noise_magnitude) * 10.0)

    return clamp01((participant_score + sample_score + noise_score) / 3.0)
