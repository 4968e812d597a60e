"""
Similarity and success score tests.
"""

from datetime import datetime, timedelta

import pytest

from engine.similarity import SimilarityMatcher, text_similarity
from engine.success import SuccessScorer, consistency, growth_trend
from schema.profile import TenantHistoryRecord, TenantProfile

from conftest import NOW, strong_history


matcher = SimilarityMatcher()
scorer = SuccessScorer()


# ----------------------------------------------------------------------
# Similarity
# ----------------------------------------------------------------------

def test_identical_profiles_score_one():
    profile = TenantProfile(category="tech", team_size=5, marketing_budget=5000)
    assert matcher.score(profile, profile) == pytest.approx(1.0)


def test_no_comparable_fields_score_zero():
    candidate = TenantProfile(category="tech", team_size=5)
    historical = TenantProfile(geographic_focus="global", marketing_budget=100)
    assert matcher.score(candidate, historical) == 0.0
    assert matcher.score(TenantProfile(), TenantProfile()) == 0.0


def test_factor_values():
    candidate = TenantProfile(category="tech", team_size=10, marketing_budget=1000)
    historical = TenantProfile(category="food", team_size=5, marketing_budget=4000)
    # category 0, team 0.5, budget 0.25
    assert matcher.factors(candidate, historical) == pytest.approx([0.0, 0.5, 0.25])
    assert matcher.score(candidate, historical) == pytest.approx(0.25)


def test_audience_uses_token_jaccard():
    assert text_similarity("young adults", "young professionals") == pytest.approx(1 / 3)
    assert text_similarity("Young Adults", "young adults") == 1.0
    candidate = TenantProfile(target_audience="young adults")
    historical = TenantProfile(target_audience="young professionals")
    assert matcher.score(candidate, historical) == pytest.approx(1 / 3)


def test_zero_budgets_are_not_comparable():
    candidate = TenantProfile(category="tech", marketing_budget=0.0)
    historical = TenantProfile(category="tech", marketing_budget=5000.0)
    assert matcher.factors(candidate, historical) == [1.0]


def test_team_factor_floors_at_zero():
    assert matcher.score(TenantProfile(team_size=1), TenantProfile(team_size=40)) == 0.0


def test_score_is_bounded():
    profiles = [
        TenantProfile(category="tech", target_audience="students", team_size=3, marketing_budget=100),
        TenantProfile(category="tech", target_audience="students gamers", team_size=30, marketing_budget=90000),
        TenantProfile(geographic_focus="local", team_size=1),
    ]
    for a in profiles:
        for b in profiles:
            assert 0.0 <= matcher.score(a, b) <= 1.0


# ----------------------------------------------------------------------
# Success score
# ----------------------------------------------------------------------

def _records(kind, values, start=datetime(2026, 1, 1), step_days=1):
    return [
        TenantHistoryRecord(type=kind, value=v, timestamp=start + timedelta(days=i * step_days))
        for i, v in enumerate(values)
    ]


@pytest.mark.parametrize("n", [0, 1, 5, 9])
def test_fewer_than_ten_records_score_zero(n):
    history = _records("revenue", [50000.0] * n)
    assert scorer.compute_success_score(history) == 0.0


def test_strong_history_is_successful():
    history = strong_history(NOW - timedelta(days=200))
    components = scorer.component_scores(history)

    assert components["revenue"] == 1.0
    assert components["conversion"] == 1.0
    assert components["growth"] == pytest.approx(1 / 3)
    assert components["consistency"] == pytest.approx(1.0)
    assert scorer.compute_success_score(history) == pytest.approx(0.4 + 0.3 + 0.2 / 3 + 0.1)


def test_conversion_only_history():
    """Ten monthly 3% conversions score 0.3 + 0.1."""
    history = _records("conversion", [0.03] * 10, step_days=31)
    assert scorer.compute_success_score(history) == pytest.approx(0.4)


def test_growth_trend():
    assert growth_trend([100, 100, 100]) == 0.0
    assert growth_trend([100, 100, 100, 150, 150, 150]) == pytest.approx(2 / 3)
    assert growth_trend([0, 0, 0, 5, 5, 5]) == 1.0
    assert growth_trend([0, 0, 0, 0, 0, 0]) == 0.0
    assert growth_trend([100, 100, 100, 10, 10, 10]) == 0.0
    assert growth_trend([100, 400, 400, 400]) == 1.0


def test_consistency_needs_three_months():
    assert consistency(_records("revenue", [10.0] * 10, step_days=1)) == 0.0
    assert consistency(_records("revenue", [10.0] * 6, step_days=31)) == pytest.approx(1.0)
    assert consistency(_records("revenue", [0.0] * 6, step_days=31)) == 0.0


def test_score_bounded():
    history = _records("revenue", [1e9] * 12, step_days=31) + _records("conversion", [1.0] * 12, step_days=31)
    assert 0.0 <= scorer.compute_success_score(history) <= 1.0
