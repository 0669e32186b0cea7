"""
Fusion Engine Tests
===================

Tie-break policy, rounding and the invariants of the fused count.
"""

import pytest

from conftest import make_estimate
from crowd_fusion.fusion import FusionEngine, FusionPolicy, round_half_up
from crowd_fusion.models.estimate import EstimatorKind
from crowd_fusion.models.reason_codes import FusionReason


D = EstimatorKind.DIRECT_DETECTION
C = EstimatorKind.DENSITY_REGRESSION
F = EstimatorKind.FACE_DEMOGRAPHIC
Z = EstimatorKind.ZERO_SHOT_CROP


def fuse(**counts):
    """Fuse estimates given as d=, c=, f=, z= keyword counts."""
    kinds = {"d": D, "c": C, "f": F, "z": Z}
    estimates = [make_estimate(kinds[key], value) for key, value in counts.items()]
    return FusionEngine().fuse(estimates)


class TestRounding:
    """Tests for half-up rounding."""

    def test_halves_round_up(self):
        assert round_half_up(7.5) == 8
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1

    def test_below_half_rounds_down(self):
        assert round_half_up(7.49) == 7
        assert round_half_up(0.0) == 0


class TestTieBreakPolicy:
    """Tests for the reconciliation rules."""

    def test_detection_only(self):
        """Detection alone is trusted as-is."""
        result = fuse(d=12)
        assert result.final_count == 12
        assert result.reason is FusionReason.DIRECT_DETECTION
        assert result.note == "using direct detection"

    def test_dense_scene_trusts_density(self):
        """Density far above detection marks a dense crowd."""
        result = fuse(d=10, c=45)
        assert result.final_count == 45
        assert result.reason is FusionReason.DENSE_SCENE
        assert result.note == "dense scene: using density estimate"

    def test_more_people_visible_than_density(self):
        result = fuse(d=14, c=9)
        assert result.final_count == 14
        assert result.reason is FusionReason.PEOPLE_VISIBLE

    def test_close_counts_are_averaged(self):
        """(10 + 15) / 2 = 12.5 rounds half-up to 13."""
        result = fuse(d=10, c=15)
        assert result.final_count == 13
        assert result.reason is FusionReason.AVERAGED
        assert result.note == "averaging both methods"

    def test_ratio_boundary_is_averaged(self):
        """C == 2D is not a dense scene."""
        result = fuse(d=10, c=20)
        assert result.final_count == 15
        assert result.reason is FusionReason.AVERAGED

    def test_density_only(self):
        result = fuse(c=30)
        assert result.final_count == 30
        assert result.reason is FusionReason.DENSITY_ONLY

    def test_faces_override_lower_body_count(self):
        """More faces than bodies: faces are a lower bound."""
        result = fuse(d=3, f=5)
        assert result.final_count == 5
        assert result.reason is FusionReason.FACE_OVERRIDE
        assert result.note == "using face detection: more faces than bodies found"

    def test_faces_do_not_override_higher_count(self):
        result = fuse(d=10, c=15, f=4)
        assert result.final_count == 13
        assert result.reason is FusionReason.AVERAGED

    def test_faces_only(self):
        """Without body counts the base is 0, so any face overrides."""
        result = fuse(f=4)
        assert result.final_count == 4
        assert result.reason is FusionReason.FACE_OVERRIDE

    def test_custom_dense_ratio(self):
        engine = FusionEngine(FusionPolicy(dense_crowd_ratio=3.0))
        result = engine.fuse([make_estimate(D, 10), make_estimate(C, 25)])
        assert result.final_count == 18
        assert result.reason is FusionReason.AVERAGED

    def test_policy_rejects_ratio_at_or_below_one(self):
        with pytest.raises(ValueError):
            FusionPolicy(dense_crowd_ratio=1.0)


class TestEmptyAndZero:
    """Tests for runs with nothing to count."""

    def test_no_estimates(self):
        result = FusionEngine().fuse([])
        assert result.final_count == 0
        assert result.reason is FusionReason.NO_DATA
        assert result.note == "no analysis could complete"
        assert not result.has_data

    def test_zero_shot_alone_is_no_data(self):
        """Crop samples are not a scene count."""
        result = fuse(z=7)
        assert result.final_count == 0
        assert result.reason is FusionReason.NO_DATA

    def test_all_zero_is_no_people(self):
        result = fuse(d=0, c=0, f=0)
        assert result.final_count == 0
        assert result.reason is FusionReason.NO_PEOPLE
        assert result.has_data

    def test_duplicate_kind_rejected(self):
        with pytest.raises(ValueError):
            FusionEngine().fuse([make_estimate(D, 1), make_estimate(D, 2)])


class TestFusionProperties:
    """Invariants over a grid of counts."""

    COUNTS = (0, 1, 2, 3, 5, 8, 13, 21, 40)

    def test_final_never_below_faces(self):
        for d in self.COUNTS:
            for c in self.COUNTS:
                for f in self.COUNTS:
                    assert fuse(d=d, c=c, f=f).final_count >= f

    def test_final_within_bounds(self):
        """Without faces the result lies between min(D, C) and max(D, C)."""
        for d in self.COUNTS:
            for c in self.COUNTS:
                final = fuse(d=d, c=c).final_count
                assert min(d, c) <= final <= max(d, c)

    def test_monotone_in_faces(self):
        for d in self.COUNTS:
            for c in self.COUNTS:
                finals = [fuse(d=d, c=c, f=f).final_count for f in self.COUNTS]
                assert finals == sorted(finals)

    def test_zero_shot_never_changes_result(self):
        for d in self.COUNTS:
            for c in self.COUNTS:
                base = fuse(d=d, c=c)
                with_crops = fuse(d=d, c=c, z=d + 50)
                assert with_crops.final_count == base.final_count
                assert with_crops.reason is base.reason

    def test_deterministic(self):
        """Fusing the same estimates twice gives the same result."""
        estimates = [make_estimate(D, 10), make_estimate(C, 15), make_estimate(F, 6)]
        engine = FusionEngine()
        first = engine.fuse(estimates)
        second = engine.fuse(estimates)
        assert first.final_count == second.final_count
        assert first.reason is second.reason

    def test_order_independent(self):
        engine = FusionEngine()
        estimates = [make_estimate(F, 6), make_estimate(C, 15), make_estimate(D, 10)]
        assert engine.fuse(estimates).final_count == engine.fuse(reversed(estimates)).final_count


class TestReferenceScenarios:
    """Worked examples of the policy."""

    def test_detection_above_density(self):
        result = fuse(d=10, c=8)
        assert result.final_count == 10
        assert "direct detection" in result.note

    def test_dense_crowd(self):
        result = fuse(d=5, c=30)
        assert result.final_count == 30
        assert "dense scene" in result.note

    def test_average(self):
        assert fuse(d=10, c=15).final_count == 13

    def test_nobody(self):
        result = fuse(d=0, c=0, f=0)
        assert result.final_count == 0
        assert result.note == "no people detected"

    def test_faces_above_detection(self):
        result = fuse(d=8, f=12)
        assert result.final_count == 12
        assert result.reason is FusionReason.FACE_OVERRIDE

    def test_detection_zero_density_positive(self):
        """C > 2 * 0 takes the dense branch."""
        result = fuse(d=0, c=4)
        assert result.final_count == 4
        assert result.reason is FusionReason.DENSE_SCENE
