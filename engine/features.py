"""
Feature vector construction for success prediction.

Layout (11 dimensions, all in [0, 1]):

    0  category            vocabulary encoding
    1  target_audience     vocabulary encoding
    2  geographic_focus    vocabulary encoding
    3  content_strategy    vocabulary encoding
    4  technical_expertise beginner 0.2 / intermediate 0.6 / advanced 1.0
    5  team_size           min-max over [1, 50]
    6  marketing_budget    min-max over [0, 100000]
    7  initial products    min-max over [1, 100]
    8  market competitiveness  min(1, category tenant count / 50)
    9  mean peer success score
    10 peer count          min(1, n / 10)
"""

from typing import Optional, Sequence

import numpy as np

from schema.profile import TenantProfile
from schema.vocabulary import FeatureVocabulary


FEATURE_NAMES = (
    "category",
    "target_audience",
    "geographic_focus",
    "content_strategy",
    "technical_expertise",
    "team_size",
    "marketing_budget",
    "product_count",
    "market_competitiveness",
    "peer_success",
    "peer_count",
)
NUM_FEATURES = len(FEATURE_NAMES)

# Column indices used by the heuristic formulas and rule sets
IDX = {name: i for i, name in enumerate(FEATURE_NAMES)}

EXPERTISE_ENCODING = {"beginner": 0.2, "intermediate": 0.6, "advanced": 1.0}

# (min, max) for min-max scaling
NUMERIC_RANGES = {
    "team_size": (1.0, 50.0),
    "marketing_budget": (0.0, 100000.0),
    "product_count": (1.0, 100.0),
}

COMPETITIVENESS_SATURATION = 50.0
PEER_COUNT_SATURATION = 10.0


def normalize(name: str, value: Optional[float]) -> float:
    """Min-max scale to [0, 1]; missing values map to 0."""
    if value is None:
        return 0.0
    low, high = NUMERIC_RANGES[name]
    return max(0.0, min(1.0, (value - low) / (high - low)))


def market_competitiveness(category_tenant_count: int) -> float:
    return min(1.0, max(0, category_tenant_count) / COMPETITIVENESS_SATURATION)


class FeatureBuilder:
    """Builds reproducible feature vectors from a fixed vocabulary."""

    def __init__(self, vocabulary: Optional[FeatureVocabulary] = None):
        self.vocabulary = vocabulary or FeatureVocabulary.default()

    def build(
        self,
        profile: TenantProfile,
        category_tenant_count: int,
        peer_success_scores: Sequence[float] = ()
    ) -> np.ndarray:
        """
        Build the feature vector for a profile.

        Args:
            profile: Candidate or historical tenant profile
            category_tenant_count: Existing tenants in the profile's category
            peer_success_scores: Success scores of the selected peers

        Returns:
            Array of shape (NUM_FEATURES,)
        """
        peers = list(peer_success_scores)
        peer_success = sum(peers) / len(peers) if peers else 0.0

        vector = [
            self.vocabulary.encode("category", profile.category),
            self.vocabulary.encode("target_audience", profile.target_audience),
            self.vocabulary.encode("geographic_focus", profile.geographic_focus),
            self.vocabulary.encode("content_strategy", profile.content_strategy),
            EXPERTISE_ENCODING.get(profile.technical_expertise, 0.0),
            normalize("team_size", profile.team_size),
            normalize("marketing_budget", profile.marketing_budget),
            normalize("product_count", len(profile.initial_products)),
            market_competitiveness(category_tenant_count),
            peer_success,
            min(1.0, len(peers) / PEER_COUNT_SATURATION),
        ]
        return np.asarray(vector, dtype=float)
