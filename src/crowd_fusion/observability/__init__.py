"""
Observability Module
====================

Presentation of analysis results.

This module provides:
    - project: Fusion output + estimates -> AnalysisResponse
    - DisplayOptions: People/animal display toggles

DESIGN RULES:
    - Does NOT influence the fused count
    - Pure functions of already-computed data
"""

from crowd_fusion.observability.projection import (
    DEFAULT_ANIMAL_LABELS,
    DisplayOptions,
    describe_failure,
    project,
)


__all__ = [
    "DEFAULT_ANIMAL_LABELS",
    "DisplayOptions",
    "describe_failure",
    "project",
]
