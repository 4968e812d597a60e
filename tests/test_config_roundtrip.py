"""
Test script to verify configuration is properly saved, loaded and validated.
"""
import os
import tempfile

import pytest

from core.config import MIN_PARTICIPANT_FLOOR, Config


DEFAULT_INI = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "configs", "default.ini")


def test_config_roundtrip():
    """Test that every section survives a save/load cycle."""

    config1 = Config()
    config1.privacy.noise_level = 0.25
    config1.privacy.noise_seed = 12345
    config1.privacy.min_participants = 5
    config1.aggregation.min_data_points = 80
    config1.prediction.backend = "trained"
    config1.prediction.fallback_enabled = False
    config1.prediction.similarity_threshold = 0.4
    config1.runtime.request_timeout_seconds = 12.5
    config1.runtime.persistence_retries = 0

    with tempfile.NamedTemporaryFile(mode='w', suffix='.ini', delete=False) as f:
        temp_path = f.name

    try:
        config1.to_ini(temp_path)
        config2 = Config.from_ini(temp_path)

        assert config2.privacy.noise_level == 0.25, \
            f"noise_level mismatch: expected 0.25, got {config2.privacy.noise_level}"
        assert config2.privacy.noise_seed == 12345, \
            f"noise_seed mismatch: expected 12345, got {config2.privacy.noise_seed}"
        assert config2.privacy.min_participants == 5
        assert config2.aggregation.min_data_points == 80
        assert config2.prediction.backend == "trained"
        assert config2.prediction.fallback_enabled is False
        assert config2.prediction.similarity_threshold == 0.4
        assert config2.runtime.request_timeout_seconds == 12.5
        assert config2.runtime.persistence_retries == 0
        assert config2 == config1

        config2.validate()
        print("✓ Config roundtrip successful")

    finally:
        if os.path.exists(temp_path):
            os.unlink(temp_path)


def test_unset_seed_roundtrip(tmp_path):
    path = str(tmp_path / "config.ini")
    Config().to_ini(path)
    assert Config.from_ini(path).privacy.noise_seed is None


def test_default_ini_matches_defaults():
    """configs/default.ini carries the built-in defaults."""
    config = Config.from_ini(DEFAULT_INI)
    config.validate()
    assert config == Config()


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        Config.from_ini("/nonexistent/config.ini")


@pytest.mark.parametrize("section,name,value", [
    ("privacy", "noise_level", 0.005),
    ("privacy", "noise_level", 0.6),
    ("privacy", "reserve_threshold", 1.0),
    ("privacy", "num_shards", 0),
    ("privacy", "min_participants", MIN_PARTICIPANT_FLOOR - 1),
    ("aggregation", "min_data_points", 0),
    ("prediction", "backend", "neural"),
    ("prediction", "min_similar_tenants", 2),
    ("prediction", "similarity_threshold", 1.0),
    ("prediction", "vocabulary_path", "/nonexistent/vocabulary.json"),
    ("runtime", "request_timeout_seconds", 0),
    ("runtime", "persistence_retries", 3),
])
def test_validation_rejects(section, name, value):
    config = Config()
    setattr(getattr(config, section), name, value)
    with pytest.raises(ValueError):
        config.validate()


def test_partial_ini_keeps_defaults(tmp_path):
    path = tmp_path / "partial.ini"
    path.write_text("[privacy]\nnoise_level = 0.2\n")

    config = Config.from_ini(str(path))
    assert config.privacy.noise_level == 0.2
    assert config.privacy.reserve_threshold == 0.1
    assert config.prediction.backend == "heuristic"


if __name__ == '__main__':
    test_config_roundtrip()
