"""
Tenant profiles, tenant history, and prediction results.
"""

import math
import numbers
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from core.errors import ValidationError


EXPERTISE_LEVELS = ("beginner", "intermediate", "advanced")
HORIZONS = ("month_1", "month_3", "month_6", "month_12")


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


@dataclass(frozen=True)
class TenantProfile:
    """
    Descriptive profile of a tenant (candidate or historical).

    Every field is optional so sparse historical profiles can be compared;
    validate() enforces the rules for a prediction candidate.
    """
    category: Optional[str] = None
    target_audience: Optional[str] = None
    geographic_focus: Optional[str] = None
    content_strategy: Optional[str] = None
    team_size: Optional[int] = None
    marketing_budget: Optional[float] = None
    initial_products: Tuple[str, ...] = ()
    technical_expertise: Optional[str] = None

    def validate(self) -> None:
        """Raise ValidationError unless this is a complete candidate profile."""
        errors = []
        if not _is_text(self.category):
            errors.append("category is required")
        if not _is_text(self.target_audience):
            errors.append("target_audience is required")
        if not isinstance(self.team_size, numbers.Integral) or isinstance(self.team_size, bool) \
                or self.team_size < 1:
            errors.append("team_size must be an integer >= 1")
        if not _is_number(self.marketing_budget) or not math.isfinite(self.marketing_budget) \
                or self.marketing_budget < 0:
            errors.append("marketing_budget must be a finite number >= 0")
        if not isinstance(self.initial_products, (tuple, list)) or len(self.initial_products) < 1:
            errors.append("at least one initial product is required")
        if self.technical_expertise not in EXPERTISE_LEVELS:
            errors.append(f"technical_expertise must be one of {EXPERTISE_LEVELS}")

        if errors:
            raise ValidationError("Invalid tenant profile: " + "; ".join(errors), context={"errors": errors})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TenantProfile":
        team_size = data.get("team_size")
        budget = data.get("marketing_budget")
        return cls(
            category=data.get("category"),
            target_audience=data.get("target_audience"),
            geographic_focus=data.get("geographic_focus"),
            content_strategy=data.get("content_strategy"),
            team_size=int(team_size) if team_size is not None else None,
            marketing_budget=float(budget) if budget is not None else None,
            initial_products=tuple(data.get("initial_products") or ()),
            technical_expertise=data.get("technical_expertise"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "target_audience": self.target_audience,
            "geographic_focus": self.geographic_focus,
            "content_strategy": self.content_strategy,
            "team_size": self.team_size,
            "marketing_budget": self.marketing_budget,
            "initial_products": list(self.initial_products),
            "technical_expertise": self.technical_expertise,
        }


@dataclass(frozen=True)
class TenantHistoryRecord:
    """One observed metric point (revenue, conversion, view, ...)."""
    type: str
    value: float
    timestamp: datetime

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TenantHistoryRecord":
        timestamp = data["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(type=data["type"], value=float(data["value"]), timestamp=timestamp)


@dataclass(frozen=True)
class HistoricalTenant:
    """A tenant with its profile and observed history."""
    tenant_id: str
    profile: TenantProfile
    created_at: datetime
    history: Tuple[TenantHistoryRecord, ...] = ()

    def age_days(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now()
        return (now - self.created_at).total_seconds() / 86400.0

    def values_of(self, record_type: str) -> List[float]:
        """Values of one record type in timestamp order."""
        records = sorted((r for r in self.history if r.type == record_type), key=lambda r: r.timestamp)
        return [r.value for r in records]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoricalTenant":
        created_at = data["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return cls(
            tenant_id=data["tenant_id"],
            profile=TenantProfile.from_dict(data.get("profile", {})),
            created_at=created_at,
            history=tuple(TenantHistoryRecord.from_dict(r) for r in data.get("history", [])),
        )


@dataclass(frozen=True)
class Prediction:
    """Success prediction for a candidate tenant."""
    predicted_revenue: Dict[str, float]
    predicted_traffic: Dict[str, float]
    success_probability: float
    risk_factors: List[str]
    growth_opportunities: List[str]
    recommended_strategies: List[str]
    similar_successful_tenants: List[str]
    confidence_intervals: Dict[str, Tuple[float, float]]
    backend: str
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predicted_revenue": dict(self.predicted_revenue),
            "predicted_traffic": dict(self.predicted_traffic),
            "success_probability": self.success_probability,
            "risk_factors": list(self.risk_factors),
            "growth_opportunities": list(self.growth_opportunities),
            "recommended_strategies": list(self.recommended_strategies),
            "similar_successful_tenants": list(self.similar_successful_tenants),
            "confidence_intervals": {k: list(v) for k, v in self.confidence_intervals.items()},
            "backend": self.backend,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class TrainingReport:
    """Outcome of a train_models() call."""
    accuracy_by_metric: Dict[str, float]
    training_sample_count: int
    status: str  # 'trained', 'not_applicable', 'insufficient_data'

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accuracy_by_metric": dict(self.accuracy_by_metric),
            "training_sample_count": self.training_sample_count,
            "status": self.status,
        }


@dataclass(frozen=True)
class AccuracyReport:
    """Accuracy of a past prediction against realized outcomes."""
    revenue_accuracy: float
    traffic_accuracy: float
    success_accuracy: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "revenue_accuracy": self.revenue_accuracy,
            "traffic_accuracy": self.traffic_accuracy,
            "success_accuracy": self.success_accuracy,
        }
