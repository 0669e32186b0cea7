"""
Estimator Tests
===============

Estimators over the deterministic mock backend, and the loader factory.
"""

import asyncio

import pytest

from crowd_fusion.config import EstimatorsConfig
from crowd_fusion.estimators import (
    DensityEstimator,
    DetectionEstimator,
    EstimatorRegistry,
    FaceEstimator,
    MockDensityModel,
    MockDetectionModel,
    MockFaceModel,
    MockZeroShotModel,
    ZeroShotEstimator,
    create_loaders,
)
from crowd_fusion.models.availability import EstimatorAvailability
from crowd_fusion.models.estimate import KIND_ORDER, EstimatorKind


class TestMockEstimators:
    """Tests for each estimator kind on the mock backend."""

    def test_detection(self, sample_image):
        estimator = DetectionEstimator(MockDetectionModel(person_count=6), score_threshold=0.7)
        estimate = asyncio.run(estimator.estimate(sample_image))

        assert estimate.person_count == 6
        # The low-score dog is filtered out
        assert estimate.category_counts == {"person": 6}

    def test_detection_threshold_validated(self):
        with pytest.raises(ValueError):
            DetectionEstimator(MockDetectionModel(), score_threshold=1.5)

    def test_density(self, sample_image):
        estimator = DensityEstimator(MockDensityModel(total=12.4))
        estimate = asyncio.run(estimator.estimate(sample_image))

        assert estimate.person_count == 12
        assert estimate.density_map.height == 96
        assert estimate.density_map.width == 128

    def test_faces(self, sample_image):
        estimator = FaceEstimator(MockFaceModel(face_count=4))
        estimate = asyncio.run(estimator.estimate(sample_image))

        assert estimate.person_count == 4
        assert estimate.demographics.men == 2
        assert estimate.demographics.women == 1
        assert estimate.demographics.children == 1

    def test_zero_shot_caps_samples(self, sample_image):
        detection = asyncio.run(
            DetectionEstimator(MockDetectionModel(person_count=9)).estimate(sample_image)
        )
        estimator = ZeroShotEstimator(MockZeroShotModel(), max_samples=5)
        estimate = asyncio.run(estimator.estimate(sample_image, detection))

        assert estimate.kind is EstimatorKind.ZERO_SHOT_CROP
        assert estimate.zero_shot.sampled_total == 5
        breakdown = estimate.zero_shot
        assert breakdown.men + breakdown.women + breakdown.child == 5

    def test_zero_shot_needs_detection(self, sample_image):
        with pytest.raises(ValueError):
            asyncio.run(ZeroShotEstimator(MockZeroShotModel()).estimate(sample_image))


class TestFactory:
    """Tests for backend loaders."""

    def test_mock_loaders_cover_every_kind(self):
        loaders = create_loaders(EstimatorsConfig(backend="mock"))
        assert set(loaders) == set(KIND_ORDER)
        for kind, loader in loaders.items():
            assert loader().kind is kind

    def test_unknown_backend_fails_fast(self):
        with pytest.raises(ValueError):
            create_loaders(EstimatorsConfig(backend="telepathy"))

    def test_mock_backend_end_to_end(self, sample_image):
        """All four mock estimators load and run in one registry."""
        config = EstimatorsConfig(backend="mock")

        async def scenario():
            registry = EstimatorRegistry()
            registry.start_loading(create_loaders(config))
            snapshot = await registry.wait_all_ready(timeout=10.0)
            return snapshot, await registry.analyze(sample_image, config.enabled)

        snapshot, outcome = asyncio.run(scenario())

        assert all(state is EstimatorAvailability.LOADED for state in snapshot.values())
        assert [e.kind for e in outcome.estimates] == list(KIND_ORDER)
        assert outcome.failures == ()


class TestLabelParsing:
    """Tests for classifier label parsing in the transformers backend."""

    def test_age_ranges(self):
        from crowd_fusion.estimators.transformers_backend import parse_age_label

        assert parse_age_label("20-29") == 24.5
        assert parse_age_label("more than 70") == 70.0
        assert parse_age_label("42") == 42.0

    def test_age_without_number(self):
        from crowd_fusion.estimators.transformers_backend import parse_age_label

        with pytest.raises(ValueError):
            parse_age_label("adult")

    def test_gender_labels(self):
        from crowd_fusion.estimators.transformers_backend import parse_gender_label

        assert parse_gender_label("Female") == "female"
        assert parse_gender_label(" man ") == "male"
        with pytest.raises(ValueError):
            parse_gender_label("unknown")

    def test_missing_density_weights_fail_load(self, tmp_path):
        from crowd_fusion.estimators.transformers_backend import TorchScriptDensityModel

        with pytest.raises(FileNotFoundError):
            TorchScriptDensityModel(str(tmp_path / "absent.pt"))
