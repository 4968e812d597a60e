"""
Configuration management for the Tenant Intelligence core.
Handles loading, validation, and access to configuration parameters.
"""

import configparser
import os
import logging
from dataclasses import dataclass, field
from typing import Optional


logger = logging.getLogger(__name__)


# Hard privacy floor: no aggregate is ever released from fewer tenants
MIN_PARTICIPANT_FLOOR = 3

BACKENDS = ('heuristic', 'trained')


@dataclass
class PrivacyConfig:
    """Differential privacy and budget configuration."""

    # Laplace mechanism
    noise_level: float = 0.1  # Epsilon per aggregation, also the budget consumed per tenant
    sensitivity: float = 1.0  # Max change one tenant can cause in a mean of rates
    noise_seed: Optional[int] = None  # Seed for reproducible noise (never set in production)

    # Budget ledger
    initial_budget: float = 1.0
    reserve_threshold: float = 0.1  # Tenants at or below this are excluded
    num_shards: int = 16
    reset_interval_hours: float = 24.0

    # Participant floor (can be raised, never lowered below MIN_PARTICIPANT_FLOOR)
    min_participants: int = MIN_PARTICIPANT_FLOOR

    def validate(self) -> None:
        """Validate privacy configuration."""
        if not 0.01 <= self.noise_level <= 0.5:
            raise ValueError(f"noise_level must be in [0.01, 0.5], got {self.noise_level}")

        if self.sensitivity <= 0:
            raise ValueError(f"sensitivity must be > 0, got {self.sensitivity}")

        if not 0 < self.initial_budget <= 1.0:
            raise ValueError(f"initial_budget must be in (0, 1], got {self.initial_budget}")

        if not 0 <= self.reserve_threshold < self.initial_budget:
            raise ValueError(
                f"reserve_threshold must be in [0, initial_budget), got {self.reserve_threshold}"
            )

        if self.num_shards < 1:
            raise ValueError(f"num_shards must be >= 1, got {self.num_shards}")

        if self.reset_interval_hours <= 0:
            raise ValueError(f"reset_interval_hours must be > 0, got {self.reset_interval_hours}")

        if self.min_participants < MIN_PARTICIPANT_FLOOR:
            raise ValueError(
                f"min_participants must be >= {MIN_PARTICIPANT_FLOOR}, got {self.min_participants}"
            )


@dataclass
class AggregationConfig:
    """Benchmark aggregation configuration."""
    min_data_points: int = 50  # Minimum raw records per segment/window
    default_window_days: int = 30
    history_limit: int = 100  # Historical benchmarks used for percentile ranks

    def validate(self) -> None:
        """Validate aggregation configuration."""
        if self.min_data_points < 1:
            raise ValueError(f"min_data_points must be >= 1, got {self.min_data_points}")
        if self.default_window_days < 1:
            raise ValueError(f"default_window_days must be >= 1, got {self.default_window_days}")
        if self.history_limit < 1:
            raise ValueError(f"history_limit must be >= 1, got {self.history_limit}")


@dataclass
class PredictionConfig:
    """Similarity-based prediction configuration."""
    backend: str = "heuristic"  # 'heuristic' or 'trained'
    fallback_enabled: bool = True  # Wrap the trained backend with the heuristic fallback

    # Peer selection
    similarity_threshold: float = 0.3
    min_tenant_age_days: int = 90
    min_history_records: int = 10
    min_similar_tenants: int = 3
    max_similar_tenants: int = 20

    # Confidence intervals
    confidence_level: float = 0.95

    # Fixed categorical vocabulary (JSON); built-in vocabulary when empty
    vocabulary_path: str = ""

    # Training data selection
    min_training_samples: int = 25
    training_min_history_records: int = 20
    training_lookback_days: int = 365

    def validate(self) -> None:
        """Validate prediction configuration."""
        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {BACKENDS}, got {self.backend}")

        if not 0 <= self.similarity_threshold < 1:
            raise ValueError(f"similarity_threshold must be in [0, 1), got {self.similarity_threshold}")

        if self.min_tenant_age_days < 0:
            raise ValueError(f"min_tenant_age_days must be >= 0, got {self.min_tenant_age_days}")

        if self.min_history_records < 1:
            raise ValueError(f"min_history_records must be >= 1, got {self.min_history_records}")

        if self.min_similar_tenants < MIN_PARTICIPANT_FLOOR:
            raise ValueError(
                f"min_similar_tenants must be >= {MIN_PARTICIPANT_FLOOR}, got {self.min_similar_tenants}"
            )

        if self.max_similar_tenants < self.min_similar_tenants:
            raise ValueError(
                f"max_similar_tenants must be >= min_similar_tenants, got {self.max_similar_tenants}"
            )

        if not 0 < self.confidence_level < 1:
            raise ValueError(f"confidence_level must be in (0, 1), got {self.confidence_level}")

        if self.vocabulary_path and not os.path.exists(self.vocabulary_path):
            raise ValueError(f"vocabulary_path not found: {self.vocabulary_path}")

        if self.min_training_samples < 2:
            raise ValueError(f"min_training_samples must be >= 2, got {self.min_training_samples}")


@dataclass
class RuntimeConfig:
    """Request execution configuration."""
    request_timeout_seconds: float = 30.0
    persistence_retries: int = 1  # Local retries before PersistenceError

    def validate(self) -> None:
        """Validate runtime configuration."""
        if self.request_timeout_seconds <= 0:
            raise ValueError(f"request_timeout_seconds must be > 0, got {self.request_timeout_seconds}")
        if not 0 <= self.persistence_retries <= 1:
            raise ValueError(f"persistence_retries must be 0 or 1, got {self.persistence_retries}")


@dataclass
class Config:
    """Main configuration container."""
    privacy: PrivacyConfig = field(default_factory=PrivacyConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    prediction: PredictionConfig = field(default_factory=PredictionConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)

    def validate(self) -> None:
        """Validate entire configuration."""
        self.privacy.validate()
        self.aggregation.validate()
        self.prediction.validate()
        self.runtime.validate()
        logger.info("Configuration validated successfully")

    @classmethod
    def from_ini(cls, config_path: str) -> "Config":
        """Load configuration from INI file."""
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Config file not found: {config_path}")

        parser = configparser.ConfigParser()
        parser.read(config_path, encoding='utf-8')

        config = cls()

        if 'privacy' in parser:
            sec = parser['privacy']
            if 'noise_level' in sec:
                config.privacy.noise_level = float(sec['noise_level'])
            if 'sensitivity' in sec:
                config.privacy.sensitivity = float(sec['sensitivity'])
            if sec.get('noise_seed', '').strip():
                config.privacy.noise_seed = int(sec['noise_seed'])
            if 'initial_budget' in sec:
                config.privacy.initial_budget = float(sec['initial_budget'])
            if 'reserve_threshold' in sec:
                config.privacy.reserve_threshold = float(sec['reserve_threshold'])
            if 'num_shards' in sec:
                config.privacy.num_shards = int(sec['num_shards'])
            if 'reset_interval_hours' in sec:
                config.privacy.reset_interval_hours = float(sec['reset_interval_hours'])
            if 'min_participants' in sec:
                config.privacy.min_participants = int(sec['min_participants'])

        if 'aggregation' in parser:
            sec = parser['aggregation']
            config.aggregation.min_data_points = int(sec.get('min_data_points', '50'))
            config.aggregation.default_window_days = int(sec.get('default_window_days', '30'))
            config.aggregation.history_limit = int(sec.get('history_limit', '100'))

        if 'prediction' in parser:
            sec = parser['prediction']
            config.prediction.backend = sec.get('backend', 'heuristic').strip()
            config.prediction.fallback_enabled = sec.getboolean('fallback_enabled', True)
            config.prediction.similarity_threshold = float(sec.get('similarity_threshold', '0.3'))
            config.prediction.min_tenant_age_days = int(sec.get('min_tenant_age_days', '90'))
            config.prediction.min_history_records = int(sec.get('min_history_records', '10'))
            config.prediction.min_similar_tenants = int(sec.get('min_similar_tenants', '3'))
            config.prediction.max_similar_tenants = int(sec.get('max_similar_tenants', '20'))
            config.prediction.confidence_level = float(sec.get('confidence_level', '0.95'))
            config.prediction.vocabulary_path = sec.get('vocabulary_path', '').strip()
            config.prediction.min_training_samples = int(sec.get('min_training_samples', '25'))
            config.prediction.training_min_history_records = int(
                sec.get('training_min_history_records', '20')
            )
            config.prediction.training_lookback_days = int(sec.get('training_lookback_days', '365'))

        if 'runtime' in parser:
            sec = parser['runtime']
            config.runtime.request_timeout_seconds = float(sec.get('request_timeout_seconds', '30'))
            config.runtime.persistence_retries = int(sec.get('persistence_retries', '1'))

        logger.info(f"Configuration loaded from {config_path}")
        return config

    def to_ini(self, config_path: str) -> None:
        """Save configuration to INI file."""
        parser = configparser.ConfigParser()

        parser['privacy'] = {
            'noise_level': str(self.privacy.noise_level),
            'sensitivity': str(self.privacy.sensitivity),
            'noise_seed': '' if self.privacy.noise_seed is None else str(self.privacy.noise_seed),
            'initial_budget': str(self.privacy.initial_budget),
            'reserve_threshold': str(self.privacy.reserve_threshold),
            'num_shards': str(self.privacy.num_shards),
            'reset_interval_hours': str(self.privacy.reset_interval_hours),
            'min_participants': str(self.privacy.min_participants),
        }

        parser['aggregation'] = {
            'min_data_points': str(self.aggregation.min_data_points),
            'default_window_days': str(self.aggregation.default_window_days),
            'history_limit': str(self.aggregation.history_limit),
        }

        parser['prediction'] = {
            'backend': self.prediction.backend,
            'fallback_enabled': str(self.prediction.fallback_enabled).lower(),
            'similarity_threshold': str(self.prediction.similarity_threshold),
            'min_tenant_age_days': str(self.prediction.min_tenant_age_days),
            'min_history_records': str(self.prediction.min_history_records),
            'min_similar_tenants': str(self.prediction.min_similar_tenants),
            'max_similar_tenants': str(self.prediction.max_similar_tenants),
            'confidence_level': str(self.prediction.confidence_level),
            'vocabulary_path': self.prediction.vocabulary_path,
            'min_training_samples': str(self.prediction.min_training_samples),
            'training_min_history_records': str(self.prediction.training_min_history_records),
            'training_lookback_days': str(self.prediction.training_lookback_days),
        }

        parser['runtime'] = {
            'request_timeout_seconds': str(self.runtime.request_timeout_seconds),
            'persistence_retries': str(self.runtime.persistence_retries),
        }

        with open(config_path, 'w', encoding='utf-8') as f:
            parser.write(f)

        logger.info(f"Configuration saved to {config_path}")
