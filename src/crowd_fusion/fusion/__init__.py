"""
Fusion Module
=============

Multi-signal count reconciliation.

Components:
    - FusionEngine: Tie-break policy over detection, density and face counts
    - FusionPolicy: Tunable policy constants
    - round_half_up: Rounding used by fusion and adapters
"""

from crowd_fusion.fusion.engine import FusionEngine, FusionPolicy, round_half_up

__all__ = [
    "FusionEngine",
    "FusionPolicy",
    "round_half_up",
]
