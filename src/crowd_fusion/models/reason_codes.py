"""
Reason Codes
============

Fixed set of machine-readable reasons for a fused people count.

Each fusion result has exactly ONE reason code that names the signal
that was trusted. Every code maps to a fixed human-readable note.

Rules:
    - One clear cause per code
    - Notes are fixed strings, never generated
"""

from enum import Enum


class FusionReason(str, Enum):
    """
    Machine-readable explanation of which signal set the final count.

    Attributes:
        DIRECT_DETECTION: Only detection available, its count is used
        DENSE_SCENE: Density count exceeds the dense-crowd ratio of detection
        PEOPLE_VISIBLE: Detection found more people than density
        AVERAGED: Detection and density agree within the ratio, averaged
        DENSITY_ONLY: Detection absent, density count is used
        FACE_OVERRIDE: More faces than the body-based count
        NO_PEOPLE: Estimators ran and found nobody
        NO_DATA: No estimator produced a usable count
    """

    DIRECT_DETECTION = "DIRECT_DETECTION"
    DENSE_SCENE = "DENSE_SCENE"
    PEOPLE_VISIBLE = "PEOPLE_VISIBLE"
    AVERAGED = "AVERAGED"
    DENSITY_ONLY = "DENSITY_ONLY"
    FACE_OVERRIDE = "FACE_OVERRIDE"
    NO_PEOPLE = "NO_PEOPLE"
    NO_DATA = "NO_DATA"

    @property
    def note(self) -> str:
        """Human-readable justification for this reason."""
        return _NOTES[self]


_NOTES = {
    FusionReason.DIRECT_DETECTION: "using direct detection",
    FusionReason.DENSE_SCENE: "dense scene: using density estimate",
    FusionReason.PEOPLE_VISIBLE: "people visible: using direct detection",
    FusionReason.AVERAGED: "averaging both methods",
    FusionReason.DENSITY_ONLY: "density estimate only",
    FusionReason.FACE_OVERRIDE: "using face detection: more faces than bodies found",
    FusionReason.NO_PEOPLE: "no people detected",
    FusionReason.NO_DATA: "no analysis could complete",
}
