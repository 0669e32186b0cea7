"""
Presentation Projector
======================

Shape fusion output and raw estimates into the render model.

This module makes NO decisions. It formats already-computed data:
    - Final count + note from the FusionResult
    - Category counts from detection, filtered by display toggles
    - Face demographics, and zero-shot crops as a separate block
    - Density grid passed through unmodified for heatmap rendering
    - Boxes for overlay drawing

Display toggles only hide categories and boxes. `show_people` hides
person detections and face boxes alike. They never change the fused
count.

Zero-shot crops are reported only in their own block: their count is a
sample size, so it is kept out of the per-estimator counts.
"""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional

from crowd_fusion.models.estimate import Estimate, EstimatorKind
from crowd_fusion.models.fusion import FusionResult, RegistryOutcome
from crowd_fusion.models.output import (
    AnalysisResponse,
    DemographicSummary,
    DensityOverlay,
    FailureMessage,
    OverlayBox,
    ZeroShotSummary,
)


logger = logging.getLogger(__name__)


DEFAULT_ANIMAL_LABELS = frozenset({
    "bird", "cat", "dog", "horse", "sheep",
    "cow", "elephant", "bear", "zebra", "giraffe",
})

_CAPABILITY_NAMES = {
    EstimatorKind.DIRECT_DETECTION: "object detection",
    EstimatorKind.DENSITY_REGRESSION: "crowd density",
    EstimatorKind.FACE_DEMOGRAPHIC: "face analysis",
    EstimatorKind.ZERO_SHOT_CROP: "zero-shot classification",
}


@dataclass(frozen=True)
class DisplayOptions:
    """
    What the viewer chose to see.

    Attributes:
        show_people: Include the person category, person boxes and face boxes
        show_animals: Include animal categories and the animal count
        animal_labels: Detection labels grouped as animals
    """

    show_people: bool = True
    show_animals: bool = True
    animal_labels: FrozenSet[str] = field(default=DEFAULT_ANIMAL_LABELS)

    def is_hidden(self, label: str) -> bool:
        if label == "person":
            return not self.show_people
        if label in self.animal_labels:
            return not self.show_animals
        return False


def describe_failure(kind: EstimatorKind, message: str) -> str:
    """Status message naming the failing capability."""
    return f"{_CAPABILITY_NAMES[kind]} unavailable: {message}"


def _demographics(face: Optional[Estimate]) -> Optional[DemographicSummary]:
    if face is None or face.demographics is None:
        return None
    d = face.demographics
    return DemographicSummary(
        men=d.men,
        women=d.women,
        children=d.children,
        average_age=d.average_age,
    )


def _zero_shot(crops: Optional[Estimate]) -> Optional[ZeroShotSummary]:
    if crops is None or crops.zero_shot is None:
        return None
    z = crops.zero_shot
    return ZeroShotSummary(men=z.men, women=z.women, child=z.child, sampled_total=z.sampled_total)


def _density(density: Optional[Estimate]) -> Optional[DensityOverlay]:
    if density is None or density.density_map is None:
        return None
    dm = density.density_map
    return DensityOverlay(
        height=dm.height,
        width=dm.width,
        max_value=float(dm.grid.max()) if dm.grid.size else 0.0,
        total=dm.total,
        grid=dm.grid.tolist(),
    )


def _boxes(estimates: List[Estimate], display: DisplayOptions) -> List[OverlayBox]:
    boxes = []
    for estimate in estimates:
        for box in estimate.boxes:
            if estimate.kind is EstimatorKind.FACE_DEMOGRAPHIC and not display.show_people:
                continue
            if estimate.kind is EstimatorKind.DIRECT_DETECTION and display.is_hidden(box.label):
                continue
            boxes.append(OverlayBox(source=estimate.kind.value, **box.to_dict()))
    return boxes


def project(
    outcome: RegistryOutcome,
    fusion: FusionResult,
    display: Optional[DisplayOptions] = None,
) -> AnalysisResponse:
    """
    Build the render model for one analyzed image.

    Args:
        outcome: Settled registry run
        fusion: Fusion result computed from `outcome.estimates`
        display: Display toggles (defaults show everything)

    Returns:
        AnalysisResponse ready for JSON serialization
    """
    display = display or DisplayOptions()

    detection = outcome.get(EstimatorKind.DIRECT_DETECTION)
    categories = {}
    animal_count = None
    if detection is not None:
        categories = {
            label: count
            for label, count in sorted(detection.category_counts.items())
            if not display.is_hidden(label)
        }
        if display.show_animals:
            animal_count = sum(
                count for label, count in detection.category_counts.items()
                if label in display.animal_labels
            )

    return AnalysisResponse(
        final_count=fusion.final_count,
        reason=fusion.reason,
        note=fusion.note,
        status=outcome.status,
        categories=categories,
        animal_count=animal_count,
        demographics=_demographics(outcome.get(EstimatorKind.FACE_DEMOGRAPHIC)),
        zero_shot=_zero_shot(outcome.get(EstimatorKind.ZERO_SHOT_CROP)),
        density=_density(outcome.get(EstimatorKind.DENSITY_REGRESSION)),
        boxes=_boxes(list(outcome.estimates), display),
        estimators={
            e.kind.value: e.person_count
            for e in outcome.estimates
            if e.kind is not EstimatorKind.ZERO_SHOT_CROP
        },
        failures=[
            FailureMessage(
                kind=f.kind.value,
                reason=f.reason.value,
                message=describe_failure(f.kind, f.message),
            )
            for f in outcome.failures
        ],
    )
