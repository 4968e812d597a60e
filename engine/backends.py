"""
Prediction Backends.

A PredictionBackend maps a feature vector to revenue, traffic and success
estimates. The backend is chosen once, from configuration, by build_backend().

- HeuristicBackend: deterministic cold-start formulas, always available.
- TrainedBackend: per-output non-negative least squares over the features
  plus an intercept, fitted from historical tenants.
- FallbackBackend: explicit wrapper that uses a secondary backend when the
  primary raises.

HEURISTIC FORMULAS (f = feature vector):
    revenue_12 = 1000 * f6 * (1 + 0.5 f5) * (1 + 0.3 f4) * (1 - 0.2 f8)
    revenue_m  = revenue_12 * {1: 0.1, 3: 0.3, 6: 0.6, 12: 1.0}[m]
    traffic    = 1000 * f7 * (1 + 2 f6) * (1 + 0.5 f4) * {1: 0.2, 3: 0.5, 6: 0.8, 12: 1.2}[m]
    success    = clamp(0.15 f0 + 0.25 f4 + 0.15 f5 + 0.20 f6 + 0.15 (1 - f8) + 0.10 f9,
                       0.1, 0.95)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np
from scipy.optimize import nnls

from core.errors import BackendError, ModelError
from engine.features import IDX, NUM_FEATURES
from schema.profile import HORIZONS


logger = logging.getLogger(__name__)


# Target scaling between model space and reported units
REVENUE_SCALE = 1000.0
TRAFFIC_SCALE = 10000.0

REVENUE_HORIZON_FACTORS = {"month_1": 0.1, "month_3": 0.3, "month_6": 0.6, "month_12": 1.0}
TRAFFIC_HORIZON_FACTORS = {"month_1": 0.2, "month_3": 0.5, "month_6": 0.8, "month_12": 1.2}

SUCCESS_FLOOR = 0.1
SUCCESS_CEILING = 0.95


@dataclass(frozen=True)
class BackendOutput:
    """Raw numeric prediction of a backend."""
    revenue: Dict[str, float]
    traffic: Dict[str, float]
    success_probability: float
    backend: str


@dataclass(frozen=True)
class TrainingSample:
    """
    One historical tenant as a supervised example.

    Targets are in model space: revenue / REVENUE_SCALE and
    traffic / TRAFFIC_SCALE, cumulative at each horizon.
    """
    tenant_id: str
    features: np.ndarray
    revenue: np.ndarray  # shape (4,)
    traffic: np.ndarray  # shape (4,)
    success: float  # 1.0 or 0.0


def _check_features(features: np.ndarray) -> np.ndarray:
    features = np.asarray(features, dtype=float)
    if features.shape != (NUM_FEATURES,):
        raise ModelError(
            f"Expected feature vector of shape ({NUM_FEATURES},), got {features.shape}"
        )
    if not np.all(np.isfinite(features)):
        raise ModelError("Feature vector contains non-finite values")
    return features


# ============================================================================
# Interface
# ============================================================================

class PredictionBackend(ABC):
    """Strategy interface for numeric prediction."""

    name = "backend"
    trainable = False

    @abstractmethod
    def predict(self, features: np.ndarray) -> BackendOutput:
        """Predict revenue, traffic and success probability."""

    def train(self, samples: Sequence[TrainingSample]) -> Dict[str, float]:
        """Fit the backend and return validation accuracy per metric."""
        raise ModelError(f"Backend '{self.name}' is not trainable")


# ============================================================================
# Heuristic
# ============================================================================

class HeuristicBackend(PredictionBackend):
    """Deterministic cold-start formulas."""

    name = "heuristic"

    def predict(self, features: np.ndarray) -> BackendOutput:
        f = _check_features(features)

        expertise = f[IDX["technical_expertise"]]
        team = f[IDX["team_size"]]
        budget = f[IDX["marketing_budget"]]
        products = f[IDX["product_count"]]
        market = f[IDX["market_competitiveness"]]

        base_revenue = budget * 1000.0
        revenue_multiplier = (1 + team * 0.5) * (1 + expertise * 0.3) * (1 - market * 0.2)
        revenue_12 = base_revenue * revenue_multiplier

        base_traffic = products * 1000.0
        traffic_multiplier = (1 + budget * 2) * (1 + expertise * 0.5)
        traffic_base = base_traffic * traffic_multiplier

        success = (
            f[IDX["category"]] * 0.15
            + expertise * 0.25
            + team * 0.15
            + budget * 0.20
            + (1 - market) * 0.15
            + f[IDX["peer_success"]] * 0.10
        )

        return BackendOutput(
            revenue={h: float(revenue_12 * REVENUE_HORIZON_FACTORS[h]) for h in HORIZONS},
            traffic={h: float(traffic_base * TRAFFIC_HORIZON_FACTORS[h]) for h in HORIZONS},
            success_probability=float(min(SUCCESS_CEILING, max(SUCCESS_FLOOR, success))),
            backend=self.name,
        )


# ============================================================================
# Trained (NNLS)
# ============================================================================

class TrainedBackend(PredictionBackend):
    """
    Linear model fitted with non-negative least squares.

    One weight vector per output column:
        revenue month_1..month_12, traffic month_1..month_12, success
    Inputs are the feature vector with an appended intercept term.
    """

    name = "trained"
    trainable = True

    OUTPUTS = tuple(f"revenue_{h}" for h in HORIZONS) + tuple(f"traffic_{h}" for h in HORIZONS) + ("success",)

    def __init__(self, validation_fraction: float = 0.2, seed: int = 0):
        """
        Initialize backend.

        Args:
            validation_fraction: Share of samples held out for validation
            seed: Seed for the train/validation split
        """
        if not 0 < validation_fraction < 1:
            raise ValueError(f"validation_fraction must be in (0, 1), got {validation_fraction}")
        self.validation_fraction = validation_fraction
        self.seed = seed
        self._weights: Optional[np.ndarray] = None  # (NUM_FEATURES + 1, len(OUTPUTS))

    @property
    def is_trained(self) -> bool:
        return self._weights is not None

    @staticmethod
    def _design(features: np.ndarray) -> np.ndarray:
        features = np.atleast_2d(features)
        return np.hstack([features, np.ones((features.shape[0], 1))])

    @staticmethod
    def _targets(samples: Sequence[TrainingSample]) -> np.ndarray:
        return np.array([
            np.concatenate([s.revenue, s.traffic, [s.success]]) for s in samples
        ], dtype=float)

    def _fit(self, X: np.ndarray, Y: np.ndarray) -> np.ndarray:
        weights = np.zeros((X.shape[1], Y.shape[1]))
        for j in range(Y.shape[1]):
            weights[:, j], _ = nnls(X, Y[:, j])
        return weights

    def train(self, samples: Sequence[TrainingSample]) -> Dict[str, float]:
        """
        Fit on (1 - validation_fraction) of the samples and score the rest.

        Returns:
            {'revenue', 'traffic', 'success'}: max(0, 1 - validation MSE)
        """
        if len(samples) < 2:
            raise ModelError(f"Need at least 2 training samples, got {len(samples)}")

        X = self._design(np.array([s.features for s in samples], dtype=float))
        Y = self._targets(samples)

        rng = np.random.default_rng(self.seed)
        order = rng.permutation(len(samples))
        n_val = min(len(samples) - 1, max(1, int(round(len(samples) * self.validation_fraction))))
        val_idx, train_idx = order[:n_val], order[n_val:]

        logger.info(f"Training NNLS backend: {len(train_idx)} train, {len(val_idx)} validation samples")

        try:
            weights = self._fit(X[train_idx], Y[train_idx])
        except (ValueError, RuntimeError) as e:
            raise BackendError(f"NNLS fit failed: {e}") from e

        residual = X[val_idx] @ weights - Y[val_idx]
        n_h = len(HORIZONS)
        accuracy = {
            "revenue": max(0.0, 1.0 - float(np.mean(residual[:, :n_h] ** 2))),
            "traffic": max(0.0, 1.0 - float(np.mean(residual[:, n_h:2 * n_h] ** 2))),
            "success": max(0.0, 1.0 - float(np.mean(residual[:, -1] ** 2))),
        }

        self._weights = weights
        for metric, value in accuracy.items():
            logger.info(f"  {metric:8s} accuracy: {value:.4f}")
        return accuracy

    def predict(self, features: np.ndarray) -> BackendOutput:
        if self._weights is None:
            raise ModelError("Trained backend has no fitted model")

        f = _check_features(features)
        out = (self._design(f) @ self._weights)[0]
        n_h = len(HORIZONS)

        return BackendOutput(
            revenue={h: float(max(0.0, out[i]) * REVENUE_SCALE) for i, h in enumerate(HORIZONS)},
            traffic={h: float(max(0.0, out[n_h + i]) * TRAFFIC_SCALE) for i, h in enumerate(HORIZONS)},
            success_probability=float(min(1.0, max(0.0, out[-1]))),
            backend=self.name,
        )


# ============================================================================
# Fallback wrapper
# ============================================================================

class FallbackBackend(PredictionBackend):
    """
    Uses `fallback` whenever `primary` raises.

    A failure of the fallback itself propagates.
    """

    def __init__(self, primary: PredictionBackend, fallback: PredictionBackend):
        self.primary = primary
        self.fallback = fallback
        self.name = f"{primary.name}+{fallback.name}"
        self.trainable = primary.trainable

    def predict(self, features: np.ndarray) -> BackendOutput:
        try:
            return self.primary.predict(features)
        except Exception as e:
            logger.warning(
                f"Backend '{self.primary.name}' failed ({type(e).__name__}: {e}); "
                f"using '{self.fallback.name}'"
            )
        return self.fallback.predict(features)

    def train(self, samples: Sequence[TrainingSample]) -> Dict[str, float]:
        return self.primary.train(samples)


def build_backend(prediction_config) -> PredictionBackend:
    """Select the backend once from a PredictionConfig."""
    if prediction_config.backend == "heuristic":
        backend: PredictionBackend = HeuristicBackend()
    elif prediction_config.backend == "trained":
        backend = TrainedBackend()
        if prediction_config.fallback_enabled:
            backend = FallbackBackend(backend, HeuristicBackend())
    else:
        raise ValueError(f"Unknown prediction backend: {prediction_config.backend}")

    logger.info(f"Prediction backend: {backend.name}")
    return backend
