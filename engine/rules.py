"""
Deterministic rule sets over a candidate profile and its peer statistics.
"""

from dataclasses import dataclass
from typing import List, Sequence

from schema.profile import TenantProfile


SUCCESSFUL_PEER_SCORE = 0.7
FAILED_PEER_SCORE = 0.3
HIGH_COMPETITIVENESS = 0.7


@dataclass(frozen=True)
class PeerMatch:
    """A historical tenant selected as a peer of the candidate."""
    tenant_id: str
    profile: TenantProfile
    similarity: float
    success_score: float


def identify_risk_factors(
    profile: TenantProfile,
    peers: Sequence[PeerMatch],
    competitiveness: float
) -> List[str]:
    risks: List[str] = []

    if profile.team_size < 2:
        risks.append('Small team size may limit growth potential')

    if profile.marketing_budget < 1000:
        risks.append('Limited marketing budget may slow customer acquisition')

    if profile.technical_expertise == 'beginner':
        risks.append('Limited technical expertise may impact site optimization')

    if competitiveness > HIGH_COMPETITIVENESS:
        risks.append('High market competition in selected category')

    failed = [p for p in peers if p.success_score < FAILED_PEER_SCORE]
    if len(failed) > len(peers) * 0.5:
        risks.append('Similar tenant profiles show mixed success rates')

    if len(profile.initial_products) < 5:
        risks.append('Limited initial product selection may reduce conversion opportunities')

    return risks


def identify_growth_opportunities(profile: TenantProfile, peers: Sequence[PeerMatch]) -> List[str]:
    opportunities: List[str] = []

    if any(p.success_score > SUCCESSFUL_PEER_SCORE for p in peers):
        opportunities.append('Strong similar tenant success rate indicates good market potential')

    if profile.marketing_budget > 5000:
        opportunities.append('Substantial marketing budget allows for aggressive growth strategies')

    if profile.team_size > 3:
        opportunities.append('Larger team size enables faster content production and optimization')

    if profile.geographic_focus == 'global':
        opportunities.append('Global focus allows access to diverse markets and audiences')

    return opportunities


def recommend_strategies(profile: TenantProfile, peers: Sequence[PeerMatch]) -> List[str]:
    strategies: List[str] = []

    if profile.marketing_budget > 10000:
        strategies.append('Implement paid advertising campaigns for faster customer acquisition')
    else:
        strategies.append('Focus on organic SEO and content marketing for cost-effective growth')

    if profile.team_size > 2:
        strategies.append('Assign specialized roles: content creation, SEO, and conversion optimization')
    else:
        strategies.append('Use automation tools to maximize efficiency with limited team resources')

    if profile.technical_expertise == 'beginner':
        strategies.append('Partner with technical consultants for site optimization')
        strategies.append('Use managed hosting and optimization services')
    else:
        strategies.append('Implement advanced tracking and optimization techniques')

    category_leaders = [
        p for p in peers
        if p.profile.category == profile.category and p.success_score > SUCCESSFUL_PEER_SCORE
    ]
    if category_leaders:
        strategies.append('Study and replicate successful strategies from similar category leaders')

    if len(profile.initial_products) > 20:
        strategies.append('Focus on top-performing products to optimize conversion rates')
    else:
        strategies.append('Gradually expand product catalog based on performance data')

    return strategies


def successful_peer_ids(peers: Sequence[PeerMatch], limit: int = 3) -> List[str]:
    """Up to `limit` peer ids scoring above SUCCESSFUL_PEER_SCORE, in peer order."""
    return [p.tenant_id for p in peers if p.success_score > SUCCESSFUL_PEER_SCORE][:limit]
