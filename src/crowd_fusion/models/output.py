"""
Analysis Output Models
======================

This module defines the complete output contract returned for one analyzed image.

The output is structured into tiers:
    1. Count: Fused people count and its justification (primary result)
    2. Breakdown: Categories, demographics, zero-shot sample (descriptive)
    3. Overlay: Boxes and density grid (for drawing only)
    4. Diagnostics: Per-estimator counts and failures

Output Contract:
    {
        "final_count": 13,
        "reason": "AVERAGED",
        "note": "averaging both methods",
        "status": "partial",
        "categories": {"person": 10, "dog": 1},
        "animal_count": 1,
        "demographics": {"men": 4, "women": 3, "children": 1, "average_age": 31.5},
        "zero_shot": {"men": 5, "women": 4, "child": 1, "sampled_total": 10},
        "density": {"height": 96, "width": 128, "max_value": 0.08, "total": 15.2, "grid": [[...]]},
        "boxes": [{"source": "direct_detection", "label": "person", ...}],
        "estimators": {"direct_detection": 10, "density_regression": 15},
        "failures": [{"kind": "face_demographic", "reason": "inference_error", "message": "..."}]
    }

Design Rules:
    - Everything here is derived; nothing in this contract feeds back into fusion
    - zero_shot is kept apart from demographics because it covers a sample only
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from crowd_fusion.models.reason_codes import FusionReason
from crowd_fusion.models.fusion import RunStatus


class DemographicSummary(BaseModel):
    """Face-based demographic split."""

    men: int = Field(..., ge=0, description="Adult male faces")
    women: int = Field(..., ge=0, description="Adult female faces")
    children: int = Field(..., ge=0, description="Faces under the child age threshold")
    average_age: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Mean estimated age across faces",
    )


class ZeroShotSummary(BaseModel):
    """
    Supplementary breakdown over sampled person crops.

    Counts cover `sampled_total` crops only, never the whole scene.
    """

    men: int = Field(..., ge=0)
    women: int = Field(..., ge=0)
    child: int = Field(..., ge=0)
    sampled_total: int = Field(..., ge=0, description="Crops actually classified")


class DensityOverlay(BaseModel):
    """Density grid passed through for heatmap rendering."""

    height: int = Field(..., ge=0, description="Grid rows")
    width: int = Field(..., ge=0, description="Grid columns")
    max_value: float = Field(..., ge=0.0, description="Largest cell value")
    total: float = Field(..., ge=0.0, description="Unrounded grid sum")
    grid: List[List[float]] = Field(default_factory=list, description="Row-major cell values")


class OverlayBox(BaseModel):
    """Bounding box for drawing."""

    source: str = Field(..., description="Estimator kind that produced the box")
    label: str
    score: float = Field(..., ge=0.0, le=1.0)
    xmin: float
    ymin: float
    xmax: float
    ymax: float


class FailureMessage(BaseModel):
    """Status message naming a failing capability."""

    kind: str
    reason: str
    message: str


class AnalysisResponse(BaseModel):
    """
    Complete render model for one analyzed image.

    Attributes:
        final_count: Fused people count
        reason: Machine-readable fusion reason
        note: Human-readable justification
        status: Registry run status
        categories: Label -> count from detection, filtered by display toggles
        animal_count: Animals among retained detections (None if hidden)
        demographics: Face-based split (None if face analysis absent)
        zero_shot: Supplementary crop tally (None if not run)
        density: Density overlay (None if density absent)
        boxes: Detection and face boxes
        estimators: Scene-count person counts per estimator (zero-shot excluded)
        failures: Estimators that failed this run
    """

    final_count: int = Field(..., ge=0, description="Fused people count")
    reason: FusionReason = Field(..., description="Which signal was trusted")
    note: str = Field(..., description="Human-readable justification")
    status: RunStatus = Field(..., description="Registry run status")

    categories: Dict[str, int] = Field(default_factory=dict)
    animal_count: Optional[int] = Field(default=None, ge=0)
    demographics: Optional[DemographicSummary] = None
    zero_shot: Optional[ZeroShotSummary] = None
    density: Optional[DensityOverlay] = None
    boxes: List[OverlayBox] = Field(default_factory=list)

    estimators: Dict[str, int] = Field(default_factory=dict)
    failures: List[FailureMessage] = Field(default_factory=list)

    class Config:
        """Pydantic model configuration."""

        json_schema_extra = {
            "example": {
                "final_count": 13,
                "reason": "AVERAGED",
                "note": "averaging both methods",
                "status": "full",
                "categories": {"person": 10, "dog": 1},
                "animal_count": 1,
                "demographics": None,
                "zero_shot": None,
                "density": None,
                "boxes": [],
                "estimators": {"direct_detection": 10, "density_regression": 15},
                "failures": [],
            }
        }


class EstimatorStatus(BaseModel):
    """Availability of one estimator kind."""

    kind: str
    availability: str
    detail: Optional[str] = None
