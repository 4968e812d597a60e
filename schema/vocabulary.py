"""
Fixed, versioned categorical vocabulary for feature encoding.

Encodings must be identical across restarts and across instances, so terms
are never added at runtime. A term at position i of a field's list of n terms
encodes to (i + 1) / (n + 1); unknown or missing terms encode to 0.0.

Vocabulary JSON layout:

    {
      "version": "v1",
      "fields": {
        "category": ["art", "books", ...],
        "target_audience": [...],
        "geographic_focus": [...],
        "content_strategy": [...]
      }
    }
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


logger = logging.getLogger(__name__)


VOCABULARY_FIELDS = ("category", "target_audience", "geographic_focus", "content_strategy")

DEFAULT_VOCABULARY_VERSION = "v1"

DEFAULT_TERMS: Dict[str, Tuple[str, ...]] = {
    "category": (
        "art", "beauty", "books", "education", "electronics", "fashion", "fitness",
        "food", "gaming", "health", "home", "music", "pets", "sports", "tech", "travel",
    ),
    "target_audience": (
        "businesses", "creators", "developers", "families", "gamers", "general",
        "professionals", "seniors", "students", "young adults",
    ),
    "geographic_focus": ("local", "regional", "national", "international", "global"),
    "content_strategy": ("blog", "video", "social", "newsletter", "podcast", "community", "mixed"),
}


def _normalize(term: Optional[str]) -> str:
    return (term or "").strip().lower()


@dataclass(frozen=True)
class FeatureVocabulary:
    """Immutable term -> index mapping per categorical field."""
    version: str
    terms: Dict[str, Tuple[str, ...]]

    def __post_init__(self):
        missing = [name for name in VOCABULARY_FIELDS if name not in self.terms]
        if missing:
            raise ValueError(f"Vocabulary {self.version} missing fields: {missing}")
        for name, values in self.terms.items():
            normalized = [_normalize(v) for v in values]
            if len(set(normalized)) != len(normalized):
                raise ValueError(f"Vocabulary {self.version} field {name} has duplicate terms")

    def encode(self, field_name: str, term: Optional[str]) -> float:
        """Encode a term to (index + 1) / (n + 1), or 0.0 when unknown."""
        if field_name not in self.terms:
            raise KeyError(f"Unknown vocabulary field: {field_name}")

        normalized = _normalize(term)
        if not normalized:
            return 0.0

        values = [_normalize(v) for v in self.terms[field_name]]
        try:
            index = values.index(normalized)
        except ValueError:
            return 0.0
        return (index + 1) / (len(values) + 1)

    @classmethod
    def default(cls) -> "FeatureVocabulary":
        return cls(version=DEFAULT_VOCABULARY_VERSION, terms=dict(DEFAULT_TERMS))

    @classmethod
    def from_json(cls, path: str) -> "FeatureVocabulary":
        """Load a vocabulary file."""
        if not os.path.exists(path):
            raise FileNotFoundError(f"Vocabulary file not found: {path}")

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        version = data.get("version")
        if not version:
            raise ValueError(f"Vocabulary file {path} has no version")

        terms = {name: tuple(values) for name, values in data.get("fields", {}).items()}
        vocabulary = cls(version=str(version), terms=terms)
        logger.info(f"Loaded vocabulary {vocabulary.version} from {path}")
        return vocabulary

    @classmethod
    def load(cls, path: Optional[str] = None) -> "FeatureVocabulary":
        """Load from path, or the built-in vocabulary when no path is given."""
        if path:
            return cls.from_json(path)
        return cls.default()
