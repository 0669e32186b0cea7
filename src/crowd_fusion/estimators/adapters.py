"""
Estimator Adapters
==================

Normalize raw model output into Estimates.

One adapter per estimator kind. Adapters are pure functions: they never
call a model, they only validate and reshape what a model returned.

Raw contracts:
    detection:  [{"label": str, "score": float, "box": {xmin, ymin, xmax, ymax}}]
    density:    {"density": 2-D grid of non-negative floats}
    face:       [{"age": float, "gender": "male"|"female", "box": {...}}]
    zero-shot:  per crop, [{"label": str, "score": float}] ranked or not

Malformed output raises EstimatorFailure(INVALID_OUTPUT).
"""

import logging
from collections import Counter
from typing import Any, List, Mapping, Sequence, Tuple

import numpy as np

from crowd_fusion.fusion.engine import round_half_up
from crowd_fusion.models.availability import EstimatorFailure, FailureReason
from crowd_fusion.models.estimate import (
    Box,
    Demographics,
    DensityMap,
    Estimate,
    EstimatorKind,
    ZeroShotBreakdown,
)


logger = logging.getLogger(__name__)

PERSON_LABEL = "person"
GENDERS = ("male", "female")


def _invalid(kind: EstimatorKind, message: str) -> EstimatorFailure:
    return EstimatorFailure(kind, FailureReason.INVALID_OUTPUT, message)


def _parse_box(kind: EstimatorKind, raw: Any, label: str, score: float) -> Box:
    if not isinstance(raw, Mapping):
        raise _invalid(kind, f"box must be a mapping, got {type(raw).__name__}")
    try:
        return Box(
            label=label,
            score=score,
            xmin=float(raw["xmin"]),
            ymin=float(raw["ymin"]),
            xmax=float(raw["xmax"]),
            ymax=float(raw["ymax"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise _invalid(kind, f"malformed box {raw!r}: {e}")


# =============================================================================
# Direct detection
# =============================================================================

def adapt_detections(raw: Sequence[Mapping[str, Any]], score_threshold: float) -> Estimate:
    """
    Normalize object detections.

    Keeps detections scoring at least `score_threshold`, counts `person`
    boxes and tallies every retained label.

    Args:
        raw: Detections from the object detection model
        score_threshold: Minimum score kept

    Returns:
        DIRECT_DETECTION estimate
    """
    kind = EstimatorKind.DIRECT_DETECTION
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        raise _invalid(kind, f"expected a list of detections, got {type(raw).__name__}")

    boxes: List[Box] = []
    for item in raw:
        if not isinstance(item, Mapping):
            raise _invalid(kind, f"detection must be a mapping, got {type(item).__name__}")
        try:
            label = str(item["label"])
            score = float(item["score"])
        except (KeyError, TypeError, ValueError) as e:
            raise _invalid(kind, f"malformed detection {item!r}: {e}")
        if score < score_threshold:
            continue
        boxes.append(_parse_box(kind, item.get("box"), label, score))

    category_counts = dict(Counter(b.label for b in boxes))
    return Estimate(
        kind=kind,
        person_count=category_counts.get(PERSON_LABEL, 0),
        category_counts=category_counts,
        boxes=tuple(boxes),
    )


# =============================================================================
# Density regression
# =============================================================================

def adapt_density(raw: Mapping[str, Any]) -> Estimate:
    """
    Normalize a density map.

    The count is the grid sum rounded half-up. Small negative cells (model
    noise) are clamped to zero before summing.

    Args:
        raw: Mapping with a "density" 2-D grid

    Returns:
        DENSITY_REGRESSION estimate with the grid retained
    """
    kind = EstimatorKind.DENSITY_REGRESSION
    if not isinstance(raw, Mapping) or "density" not in raw:
        raise _invalid(kind, "density output is missing the 'density' grid")

    try:
        grid = np.asarray(raw["density"], dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise _invalid(kind, f"density grid is not numeric: {e}")

    # Tolerate leading singleton axes, e.g. [1, 1, H, W]
    while grid.ndim > 2 and grid.shape[0] == 1:
        grid = grid[0]
    if grid.ndim != 2:
        raise _invalid(kind, f"density grid must be 2-D, got shape {grid.shape}")
    if not np.all(np.isfinite(grid)):
        raise _invalid(kind, "density grid contains non-finite values")

    grid = np.clip(grid, 0.0, None)
    total = float(grid.sum())
    height, width = grid.shape

    return Estimate(
        kind=kind,
        person_count=round_half_up(total),
        density_map=DensityMap(grid=grid, height=int(height), width=int(width), total=total),
    )


# =============================================================================
# Face demographics
# =============================================================================

def adapt_faces(raw: Sequence[Mapping[str, Any]], child_age: float = 18.0) -> Estimate:
    """
    Normalize face detections with age and gender.

    Faces younger than `child_age` count as children, all others as men or
    women by gender.

    Args:
        raw: Faces from the face analysis model
        child_age: Age threshold for children

    Returns:
        FACE_DEMOGRAPHIC estimate with demographics and face boxes
    """
    kind = EstimatorKind.FACE_DEMOGRAPHIC
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        raise _invalid(kind, f"expected a list of faces, got {type(raw).__name__}")

    men = women = children = 0
    ages: List[float] = []
    boxes: List[Box] = []

    for item in raw:
        if not isinstance(item, Mapping):
            raise _invalid(kind, f"face must be a mapping, got {type(item).__name__}")
        try:
            age = float(item["age"])
            gender = str(item["gender"]).lower()
        except (KeyError, TypeError, ValueError) as e:
            raise _invalid(kind, f"malformed face {item!r}: {e}")
        if age < 0 or not np.isfinite(age):
            raise _invalid(kind, f"invalid age {age}")
        if gender not in GENDERS:
            raise _invalid(kind, f"unknown gender {gender!r}")

        if age < child_age:
            children += 1
        elif gender == "male":
            men += 1
        else:
            women += 1

        ages.append(age)
        score = float(item.get("score", 1.0))
        boxes.append(_parse_box(kind, item.get("box"), gender, score))

    average_age = round(sum(ages) / len(ages), 1) if ages else None

    return Estimate(
        kind=kind,
        person_count=len(boxes),
        demographics=Demographics(
            men=men,
            women=women,
            children=children,
            average_age=average_age,
        ),
        boxes=tuple(boxes),
    )


# =============================================================================
# Zero-shot crops
# =============================================================================

def select_person_samples(detection: Estimate, max_samples: int) -> Tuple[Box, ...]:
    """
    Pick the person boxes to classify, highest score first.

    Args:
        detection: DIRECT_DETECTION estimate of the same run
        max_samples: Sampling cap

    Returns:
        At most `max_samples` person boxes
    """
    if detection.kind is not EstimatorKind.DIRECT_DETECTION:
        raise ValueError("Person samples must come from a direct detection estimate")
    people = sorted(detection.person_boxes, key=lambda b: b.score, reverse=True)
    return tuple(people[:max(0, max_samples)])


def best_label(ranked: Sequence[Mapping[str, Any]], labels: Sequence[str]) -> str:
    """
    Return the candidate label with the highest score.

    Raises:
        EstimatorFailure: If no candidate label was scored
    """
    kind = EstimatorKind.ZERO_SHOT_CROP
    best, best_score = None, float("-inf")
    for item in ranked:
        try:
            label = str(item["label"])
            score = float(item["score"])
        except (KeyError, TypeError, ValueError) as e:
            raise _invalid(kind, f"malformed zero-shot score {item!r}: {e}")
        if label in labels and score > best_score:
            best, best_score = label, score
    if best is None:
        raise _invalid(kind, "zero-shot output scored none of the candidate labels")
    return best


def adapt_zero_shot(
    crop_labels: Sequence[str],
    labels: Sequence[str] = ("man", "woman", "child"),
) -> Estimate:
    """
    Tally the best label of each classified crop.

    person_count is the number of crops classified (sampled_total), NOT a
    scene-wide count.

    Args:
        crop_labels: Best label per classified crop
        labels: Candidate labels, in (man, woman, child) order

    Returns:
        ZERO_SHOT_CROP estimate
    """
    kind = EstimatorKind.ZERO_SHOT_CROP
    if len(labels) != 3:
        raise ValueError("Zero-shot labels must be (man, woman, child)")
    man, woman, child = labels

    tally = Counter(crop_labels)
    unknown = set(tally) - set(labels)
    if unknown:
        raise _invalid(kind, f"unexpected zero-shot labels {sorted(unknown)}")

    sampled_total = len(crop_labels)
    return Estimate(
        kind=kind,
        person_count=sampled_total,
        zero_shot=ZeroShotBreakdown(
            men=tally[man],
            women=tally[woman],
            child=tally[child],
            sampled_total=sampled_total,
        ),
    )
