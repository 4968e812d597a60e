"""
Segment descriptor for conversion benchmarks.

A segment is a fixed set of optional dimensions. The canonical key is the
storage key of every benchmark, so two descriptors with the same present
fields must always produce the same string:

    SegmentDescriptor(page_type='product', device_type='mobile', category='tech')
        -> 'category:tech|device:mobile|page:product'

An empty descriptor is the 'general' segment.
"""

from dataclasses import dataclass, fields
from typing import Dict, Optional

from core.errors import ValidationError


GENERAL_SEGMENT = "general"

# Attribute name -> key prefix
_PREFIXES = {
    "page_type": "page",
    "traffic_source": "source",
    "device_type": "device",
    "category": "category",
}
_ATTRIBUTES = {prefix: attr for attr, prefix in _PREFIXES.items()}


@dataclass(frozen=True)
class SegmentDescriptor:
    """Typed segment with fixed optional dimensions."""
    page_type: Optional[str] = None
    traffic_source: Optional[str] = None
    device_type: Optional[str] = None
    category: Optional[str] = None

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(
                    f"Segment field {f.name} must be a non-empty string",
                    context={"field": f.name, "value": value},
                )
            if ":" in value or "|" in value:
                raise ValidationError(
                    f"Segment field {f.name} may not contain ':' or '|'",
                    context={"field": f.name, "value": value},
                )

    def present(self) -> Dict[str, str]:
        """Present fields keyed by attribute name."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    @property
    def is_general(self) -> bool:
        return not self.present()

    def canonical_key(self) -> str:
        """Canonical storage key, parts sorted by prefix."""
        parts = sorted(f"{_PREFIXES[attr]}:{value}" for attr, value in self.present().items())
        return "|".join(parts) if parts else GENERAL_SEGMENT

    @classmethod
    def parse(cls, key: str) -> "SegmentDescriptor":
        """Inverse of canonical_key()."""
        if key is None or not key.strip():
            raise ValidationError("Segment key must be non-empty")

        key = key.strip()
        if key == GENERAL_SEGMENT:
            return cls()

        values: Dict[str, str] = {}
        for part in key.split("|"):
            prefix, sep, value = part.partition(":")
            if not sep or prefix not in _ATTRIBUTES:
                raise ValidationError(f"Invalid segment part: {part!r}", context={"key": key})
            attr = _ATTRIBUTES[prefix]
            if attr in values:
                raise ValidationError(f"Duplicate segment dimension: {prefix}", context={"key": key})
            values[attr] = value
        return cls(**values)

    def matches(self, other: "SegmentDescriptor") -> bool:
        """True when every field present here equals the other's field."""
        return all(getattr(other, attr) == value for attr, value in self.present().items())

    def __str__(self) -> str:
        return self.canonical_key()
