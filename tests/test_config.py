"""
Configuration Tests
===================

YAML loading and environment variable overrides.
"""

import pytest
from pydantic import ValidationError

from crowd_fusion.config import Settings, load_config
from crowd_fusion.models.estimate import KIND_ORDER, EstimatorKind


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every override variable for the test."""
    for name in (
        "CROWD_FUSION_BACKEND",
        "CROWD_FUSION_LOAD_TIMEOUT",
        "CROWD_FUSION_ENABLED",
        "CROWD_FUSION_SCORE_THRESHOLD",
        "CROWD_FUSION_DENSITY_MODEL_PATH",
        "CROWD_FUSION_ZERO_SHOT_MAX_SAMPLES",
        "CROWD_FUSION_DENSE_RATIO",
        "CROWD_FUSION_PORT",
        "CROWD_FUSION_LOG_LEVEL",
        "PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        settings = Settings()

        assert settings.estimators.backend == "mock"
        assert settings.estimators.detection.score_threshold == 0.7
        assert settings.estimators.zero_shot.max_samples == 20
        assert settings.estimators.enabled == list(KIND_ORDER)
        assert settings.fusion.dense_crowd_ratio == 2.0
        assert "giraffe" in settings.display.animal_labels

    def test_ratio_must_exceed_one(self):
        with pytest.raises(ValidationError):
            Settings.model_validate({"fusion": {"dense_crowd_ratio": 0.5}})


class TestLoading:
    """Tests for YAML and environment sources."""

    def test_yaml_file(self, tmp_path, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text(
            "estimators:\n"
            "  backend: transformers\n"
            "  detection:\n"
            "    score_threshold: 0.5\n"
            "fusion:\n"
            "  dense_crowd_ratio: 3\n"
        )
        settings = load_config(str(path))

        assert settings.estimators.backend == "transformers"
        assert settings.estimators.detection.score_threshold == 0.5
        assert settings.fusion.dense_crowd_ratio == 3.0

    def test_env_overrides_yaml(self, tmp_path, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text("estimators:\n  backend: transformers\n")
        clean_env.setenv("CROWD_FUSION_BACKEND", "mock")
        clean_env.setenv("CROWD_FUSION_ZERO_SHOT_MAX_SAMPLES", "7")
        clean_env.setenv("CROWD_FUSION_ENABLED", "direct_detection, density_regression")
        clean_env.setenv("PORT", "9000")

        settings = load_config(str(path))

        assert settings.estimators.backend == "mock"
        assert settings.estimators.zero_shot.max_samples == 7
        assert settings.estimators.enabled == [
            EstimatorKind.DIRECT_DETECTION,
            EstimatorKind.DENSITY_REGRESSION,
        ]
        assert settings.server.port == 9000

    def test_unknown_kind_rejected(self, tmp_path, clean_env):
        clean_env.setenv("CROWD_FUSION_ENABLED", "crystal_ball")
        with pytest.raises(ValidationError):
            load_config(str(tmp_path / "missing.yaml"))
