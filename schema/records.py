"""
Conversion records, released benchmarks, and insight results.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from core.config import MIN_PARTICIPANT_FLOOR
from core.errors import PrivacyError, ValidationError
from schema.segment import SegmentDescriptor


PRIORITIES = ("high", "medium", "low")


def _check_unit_interval(name: str, value: float) -> None:
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number", context={name: value})
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        raise ValidationError(f"{name} must be in [0, 1], got {value}", context={name: value})


@dataclass(frozen=True)
class ConversionRecord:
    """One tenant's observed conversion rate for a segment."""
    tenant_id: str
    segment: SegmentDescriptor
    conversion_rate: float
    sample_size: int
    timestamp: datetime

    def __post_init__(self):
        if not self.tenant_id:
            raise ValidationError("tenant_id must be non-empty")
        _check_unit_interval("conversion_rate", self.conversion_rate)
        if isinstance(self.sample_size, bool) or not isinstance(self.sample_size, int) or self.sample_size < 1:
            raise ValidationError(
                f"sample_size must be an integer >= 1, got {self.sample_size}",
                context={"tenant_id": self.tenant_id},
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversionRecord":
        segment = data.get("segment", {})
        if isinstance(segment, str):
            segment = SegmentDescriptor.parse(segment)
        elif isinstance(segment, dict):
            segment = SegmentDescriptor(**segment)
        timestamp = data["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
        return cls(
            tenant_id=data["tenant_id"],
            segment=segment,
            conversion_rate=data["conversion_rate"],
            sample_size=data["sample_size"],
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class AggregatedBenchmark:
    """
    Released, noise-protected benchmark for one segment.

    Holds no tenant identifiers. Cannot exist with fewer than
    MIN_PARTICIPANT_FLOOR contributors.
    """
    segment_key: str
    value: float
    participant_count: int
    confidence_level: float
    created_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self):
        if self.participant_count < MIN_PARTICIPANT_FLOOR:
            raise PrivacyError(
                f"Benchmark requires at least {MIN_PARTICIPANT_FLOOR} participants, "
                f"got {self.participant_count}",
                context={"segment": self.segment_key},
            )
        _check_unit_interval("value", self.value)
        _check_unit_interval("confidence_level", self.confidence_level)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segment_key": self.segment_key,
            "value": self.value,
            "participant_count": self.participant_count,
            "confidence_level": self.confidence_level,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AggregatedBenchmark":
        created_at = data.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return cls(
            segment_key=data["segment_key"],
            value=float(data["value"]),
            participant_count=int(data["participant_count"]),
            confidence_level=float(data["confidence_level"]),
            created_at=created_at or datetime.now(),
        )


@dataclass(frozen=True)
class ConversionInsight:
    """Result of one aggregation run."""
    benchmark: AggregatedBenchmark
    noise_magnitude: float
    total_sample_size: int


@dataclass(frozen=True)
class InsightReport:
    """Benchmark plus the caller-facing ranking and recommendations."""
    segment_key: str
    benchmark: AggregatedBenchmark
    percentile_rank: float
    recommendations: List[str]
    privacy_preserved: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segment_key": self.segment_key,
            "benchmark": self.benchmark.to_dict(),
            "percentile_rank": self.percentile_rank,
            "recommendations": list(self.recommendations),
            "privacy_preserved": self.privacy_preserved,
        }


@dataclass(frozen=True)
class OptimizationOpportunity:
    """A segment where a tenant trails the released benchmark."""
    segment: str
    current_rate: float
    benchmark_rate: float
    improvement: float  # Percent
    priority: str
    recommendations: List[str]

    def __post_init__(self):
        if self.priority not in PRIORITIES:
            raise ValidationError(f"priority must be one of {PRIORITIES}, got {self.priority}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segment": self.segment,
            "current_rate": self.current_rate,
            "benchmark_rate": self.benchmark_rate,
            "improvement": self.improvement,
            "priority": self.priority,
            "recommendations": list(self.recommendations),
        }


def priority_for_improvement(improvement: float) -> str:
    """Map an improvement percentage to a priority bucket."""
    if improvement > 50:
        return "high"
    if improvement > 25:
        return "medium"
    return "low"

