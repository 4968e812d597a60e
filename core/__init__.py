"""
Tenant Intelligence Core
========================
Privacy-preserving cross-tenant conversion benchmarks and tenant-success
prediction.

Uses the Laplace mechanism with a per-tenant consumable privacy budget:
- Sharded budget ledger with scheduled reset
- Participant floor of 3 tenants for every released aggregate
- Similarity-based success prediction with peer-derived confidence bounds
"""

__version__ = "1.0.0"
__author__ = "Tenant Intelligence Team"

__all__ = [
    # Config
    "Config", "PrivacyConfig", "AggregationConfig", "PredictionConfig", "RuntimeConfig",
    # Privacy
    "PrivacyBudgetLedger", "NoiseInjector",
    # Orchestration
    "IntelligenceHub",
]


def __getattr__(name):
    if name in ("Config", "PrivacyConfig", "AggregationConfig", "PredictionConfig", "RuntimeConfig"):
        from . import config
        return getattr(config, name)
    elif name == "PrivacyBudgetLedger":
        from .budget import PrivacyBudgetLedger
        return PrivacyBudgetLedger
    elif name == "NoiseInjector":
        from .primitives import NoiseInjector
        return NoiseInjector
    elif name == "IntelligenceHub":
        from .hub import IntelligenceHub
        return IntelligenceHub
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
