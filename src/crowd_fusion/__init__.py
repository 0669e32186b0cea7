"""
CrowdCountFusion
================

Multi-estimator people counting with fusion and provenance.

An uploaded image is run through up to four independent, failure-prone
estimators (object detection, crowd density regression, face demographics,
zero-shot crop classification). Their counts are reconciled into one
number with a human-readable note explaining which signal was trusted.

Components:
    - imaging: Image decoding and model input preparation
    - estimators: Adapters, model backends and the estimator registry
    - fusion: Count reconciliation policy
    - observability: Presentation projection to the render model
    - pipeline: Per-image analysis and upload supersession

Example:
    from crowd_fusion.fusion import FusionEngine

    result = FusionEngine().fuse(outcome.estimates)
    print(result.final_count, result.note)
"""

__version__ = "0.1.0"
__author__ = "CrowdCountFusion Project"

__all__ = [
    "__version__",
]
