"""
Presentation Projector Tests
============================

Render model shaping and display toggles.
"""

import numpy as np

from conftest import make_estimate
from crowd_fusion.estimators.adapters import (
    adapt_density,
    adapt_detections,
    adapt_faces,
    adapt_zero_shot,
)
from crowd_fusion.fusion import FusionEngine
from crowd_fusion.models.availability import FailureReason, FailureRecord
from crowd_fusion.models.estimate import EstimatorKind
from crowd_fusion.models.fusion import RegistryOutcome, RunStatus
from crowd_fusion.observability import DisplayOptions, describe_failure, project


def render(outcome, display=None):
    return project(outcome, FusionEngine().fuse(outcome.estimates), display)


class TestProjection:
    """Tests for the render model."""

    def test_counts_and_note(self, sample_detections):
        detection = adapt_detections(sample_detections, 0.7)
        density = adapt_density({"density": np.full((2, 2), 1.0)})
        response = render(RegistryOutcome(estimates=(detection, density)))

        assert response.final_count == 4
        assert response.reason.value == "AVERAGED"
        assert response.note == "averaging both methods"
        assert response.status is RunStatus.FULL
        assert response.estimators == {"direct_detection": 3, "density_regression": 4}

    def test_categories_and_animals(self, sample_detections):
        response = render(RegistryOutcome(estimates=(adapt_detections(sample_detections, 0.7),)))

        assert response.categories == {"chair": 1, "dog": 1, "person": 3}
        assert response.animal_count == 1
        assert {b.source for b in response.boxes} == {"direct_detection"}

    def test_density_grid_passed_through(self):
        grid = np.array([[0.5, 1.5], [2.0, 0.0]], dtype=np.float32)
        response = render(RegistryOutcome(estimates=(adapt_density({"density": grid}),)))

        assert response.density.grid == [[0.5, 1.5], [2.0, 0.0]]
        assert response.density.max_value == 2.0
        assert response.density.total == 4.0
        assert (response.density.height, response.density.width) == (2, 2)

    def test_zero_shot_kept_apart_from_demographics(self, sample_faces):
        faces = adapt_faces(sample_faces)
        crops = adapt_zero_shot(["woman", "woman"])
        response = render(RegistryOutcome(estimates=(faces, crops)))

        assert response.demographics.children == 1
        assert response.zero_shot.women == 2
        assert response.zero_shot.sampled_total == 2
        # Faces only: crops never count
        assert response.final_count == 3
        assert {b.source for b in response.boxes} == {"face_demographic"}

    def test_zero_shot_not_listed_as_estimator(self):
        detection = make_estimate(EstimatorKind.DIRECT_DETECTION, 40)
        crops = adapt_zero_shot(["man"] * 12 + ["woman"] * 8)
        response = render(RegistryOutcome(estimates=(detection, crops)))

        assert response.estimators == {"direct_detection": 40}
        assert "zero_shot_crop" not in response.estimators
        assert response.zero_shot.sampled_total == 20
        assert response.final_count == 40

    def test_failures_name_the_capability(self):
        failure = FailureRecord(
            kind=EstimatorKind.DENSITY_REGRESSION,
            reason=FailureReason.INFERENCE_ERROR,
            message="CUDA out of memory",
        )
        response = render(RegistryOutcome(failures=(failure,)))

        assert response.final_count == 0
        assert response.reason.value == "NO_DATA"
        assert response.status is RunStatus.FAILED
        assert response.failures[0].message == "crowd density unavailable: CUDA out of memory"

    def test_describe_failure(self):
        message = describe_failure(EstimatorKind.DIRECT_DETECTION, "timeout")
        assert message == "object detection unavailable: timeout"

    def test_serializes_to_json(self, sample_detections):
        response = render(RegistryOutcome(estimates=(adapt_detections(sample_detections, 0.7),)))
        data = response.model_dump(mode="json")

        assert data["reason"] == "DIRECT_DETECTION"
        assert data["status"] == "full"
        assert data["demographics"] is None


class TestDisplayToggles:
    """Display toggles hide output but never change the count."""

    def test_hide_people(self, sample_detections):
        outcome = RegistryOutcome(estimates=(adapt_detections(sample_detections, 0.7),))
        shown = render(outcome)
        hidden = render(outcome, DisplayOptions(show_people=False))

        assert "person" not in hidden.categories
        assert all(b.label != "person" for b in hidden.boxes)
        assert hidden.final_count == shown.final_count == 3

    def test_hide_animals(self, sample_detections):
        outcome = RegistryOutcome(estimates=(adapt_detections(sample_detections, 0.7),))
        response = render(outcome, DisplayOptions(show_animals=False))

        assert response.categories == {"chair": 1, "person": 3}
        assert response.animal_count is None
        assert all(b.label != "dog" for b in response.boxes)

    def test_hide_people_hides_face_boxes(self, sample_faces):
        outcome = RegistryOutcome(estimates=(adapt_faces(sample_faces),))
        shown = render(outcome)
        hidden = render(outcome, DisplayOptions(show_people=False))

        assert len(shown.boxes) == 3
        assert hidden.boxes == []
        assert hidden.demographics == shown.demographics
        assert hidden.final_count == shown.final_count == 3

    def test_is_hidden(self):
        display = DisplayOptions(show_people=True, show_animals=False)
        assert display.is_hidden("cat")
        assert not display.is_hidden("person")
        assert not display.is_hidden("car")
