"""
Profile similarity between a candidate and a historical tenant.

score = mean over comparable factors of:
    category          1 if equal else 0
    target_audience   Jaccard(tokens_a, tokens_b)
    geographic_focus  1 if equal else 0
    team_size         max(0, 1 - |a - b| / 10)
    marketing_budget  min(a / b, b / a)           (both budgets > 0)

A factor is comparable only when both profiles provide it. With no
comparable factor the score is 0.
"""

from typing import List, Optional, Set

from schema.profile import TenantProfile


def _present(text: Optional[str]) -> bool:
    return bool(text and text.strip())


def tokenize(text: str) -> Set[str]:
    return set(text.lower().split())


def text_similarity(a: str, b: str) -> float:
    """Token-set Jaccard similarity."""
    tokens_a, tokens_b = tokenize(a), tokenize(b)
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


class SimilarityMatcher:
    """Pure, stateless profile comparison."""

    TEAM_SIZE_SPAN = 10.0

    def factors(self, candidate: TenantProfile, historical: TenantProfile) -> List[float]:
        """Per-factor scores for every factor comparable on both sides."""
        scores: List[float] = []

        if _present(candidate.category) and _present(historical.category):
            scores.append(1.0 if candidate.category == historical.category else 0.0)

        if _present(candidate.target_audience) and _present(historical.target_audience):
            scores.append(text_similarity(candidate.target_audience, historical.target_audience))

        if _present(candidate.geographic_focus) and _present(historical.geographic_focus):
            scores.append(1.0 if candidate.geographic_focus == historical.geographic_focus else 0.0)

        if candidate.team_size is not None and historical.team_size is not None:
            diff = abs(candidate.team_size - historical.team_size)
            scores.append(max(0.0, 1.0 - diff / self.TEAM_SIZE_SPAN))

        a, b = candidate.marketing_budget, historical.marketing_budget
        if a is not None and b is not None and a > 0 and b > 0:
            scores.append(min(a / b, b / a))

        return scores

    def score(self, candidate: TenantProfile, historical: TenantProfile) -> float:
        """Similarity in [0, 1]."""
        scores = self.factors(candidate, historical)
        if not scores:
            return 0.0
        return sum(scores) / len(scores)
