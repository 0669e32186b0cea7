"""
Estimate Models
===============

Normalized output of one estimator run.

Every estimator kind produces the same `Estimate` shape so the fusion
engine can reason over detection, density, face and zero-shot output
without knowing which model produced it.

Design Rules:
    - Estimates are immutable once produced
    - One adapter invocation creates exactly one Estimate
    - person_count is never negative
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

import numpy as np


class EstimatorKind(str, Enum):
    """
    Kinds of estimators that can contribute to a people count.

    Attributes:
        DIRECT_DETECTION: Object detector, counts `person` boxes
        DENSITY_REGRESSION: Density map regressor, summed for a count
        FACE_DEMOGRAPHIC: Face detector with age/gender classification
        ZERO_SHOT_CROP: Zero-shot classifier over sampled person crops
    """

    DIRECT_DETECTION = "direct_detection"
    DENSITY_REGRESSION = "density_regression"
    FACE_DEMOGRAPHIC = "face_demographic"
    ZERO_SHOT_CROP = "zero_shot_crop"


# Canonical ordering used for dispatch and for reporting results
KIND_ORDER: Tuple[EstimatorKind, ...] = (
    EstimatorKind.DIRECT_DETECTION,
    EstimatorKind.DENSITY_REGRESSION,
    EstimatorKind.FACE_DEMOGRAPHIC,
    EstimatorKind.ZERO_SHOT_CROP,
)


@dataclass(frozen=True, slots=True)
class Box:
    """
    Labelled bounding box in image pixel coordinates (origin top-left).

    Attributes:
        label: Class label (e.g. "person", "dog") or face gender
        score: Detection confidence in [0, 1]
        xmin, ymin, xmax, ymax: Box corners in pixels
    """

    label: str
    score: float
    xmin: float
    ymin: float
    xmax: float
    ymax: float

    @property
    def width(self) -> float:
        return max(0.0, self.xmax - self.xmin)

    @property
    def height(self) -> float:
        return max(0.0, self.ymax - self.ymin)

    def to_dict(self) -> dict:
        """Export as dictionary for serialization."""
        return {
            "label": self.label,
            "score": round(self.score, 4),
            "xmin": round(self.xmin, 1),
            "ymin": round(self.ymin, 1),
            "xmax": round(self.xmax, 1),
            "ymax": round(self.ymax, 1),
        }


@dataclass(frozen=True, slots=True)
class Demographics:
    """
    Demographic split from face analysis.

    Attributes:
        men: Adult faces classified male
        women: Adult faces classified female
        children: Faces with age below the child threshold
        average_age: Mean estimated age, None when no faces were found
    """

    men: int
    women: int
    children: int
    average_age: Optional[float]


@dataclass(frozen=True, slots=True)
class ZeroShotBreakdown:
    """
    Tally of zero-shot labels over the sampled person crops.

    `sampled_total` is the number of crops classified, which may be less
    than the number of people detected.
    """

    men: int
    women: int
    child: int
    sampled_total: int


@dataclass(frozen=True, slots=True, eq=False)
class DensityMap:
    """
    Raw density grid retained for heatmap rendering.

    Attributes:
        grid: 2-D float array (height, width), read-only
        height: Grid rows
        width: Grid columns
        total: Unrounded sum of all cells
    """

    grid: np.ndarray
    height: int
    width: int
    total: float

    def __post_init__(self) -> None:
        self.grid.setflags(write=False)

    def __repr__(self) -> str:
        return f"DensityMap({self.height}x{self.width}, total={self.total:.2f})"


@dataclass(frozen=True, slots=True)
class Estimate:
    """
    Normalized output of one estimator run.

    Attributes:
        kind: Which estimator produced this
        person_count: This estimator's opinion of how many people are present.
            For ZERO_SHOT_CROP this is the sample size, not a scene count.
        category_counts: Label -> count (DIRECT_DETECTION only)
        demographics: Face-based split (FACE_DEMOGRAPHIC only)
        zero_shot: Crop classification tally (ZERO_SHOT_CROP only)
        boxes: Boxes for drawing (DIRECT_DETECTION and FACE_DEMOGRAPHIC only)
        density_map: Raw grid (DENSITY_REGRESSION only), not compared
    """

    kind: EstimatorKind
    person_count: int
    category_counts: Mapping[str, int] = field(default_factory=dict)
    demographics: Optional[Demographics] = None
    zero_shot: Optional[ZeroShotBreakdown] = None
    boxes: Tuple[Box, ...] = ()
    density_map: Optional[DensityMap] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.person_count < 0:
            raise ValueError("person_count must be non-negative")
        # Read-only view over a private copy
        object.__setattr__(self, "category_counts", MappingProxyType(dict(self.category_counts)))

    def __repr__(self) -> str:
        return (
            f"Estimate(kind={self.kind.value}, "
            f"person_count={self.person_count}, "
            f"boxes={len(self.boxes)})"
        )

    @property
    def person_boxes(self) -> Tuple[Box, ...]:
        """Boxes labelled `person`."""
        return tuple(b for b in self.boxes if b.label == "person")
