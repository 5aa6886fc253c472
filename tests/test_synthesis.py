"""
Tests for the path synthesis objective.

Tests verify that:
- The normalized code of the target's own linkage scores (near) zero
- The placed linkage returned by fitness() traces the target curve
- Infeasible codes score INFEASIBLE_ERROR with a placeholder, never raise
- Bounds follow the linkage type and mode (window dimensions in partial mode)
- Origin/scale constraints penalize misplaced solutions
"""
from __future__ import annotations

import math

import numpy as np
import pytest

from fourbar_tools.efd import GeoVar
from fourbar_tools.linkage import FourBar
from fourbar_tools.linkage import MFourBar
from fourbar_tools.linkage import MNormFourBar
from fourbar_tools.linkage import NormFourBar
from fourbar_tools.linkage import SFourBar
from fourbar_tools.stat import Stat
from fourbar_tools.synthesis import INFEASIBLE_ERROR
from fourbar_tools.synthesis import Mode
from fourbar_tools.synthesis import MotionSyn
from fourbar_tools.synthesis import PathSyn

# l1 = 6 with a unit driver and two tiny links cannot close
INVALID_CODE = [6.0, 1.0 / 6.0, 1.0 / 6.0, 1.0, 0.0]


@pytest.fixture
def crank_rocker():
    return FourBar.example()


@pytest.fixture
def triple_rocker():
    return FourBar(0.0, 0.0, 0.0, 100.0, 160.0, 120.0, 105.0, 50.0, 0.3)


@pytest.fixture
def closed_syn(crank_rocker):
    return PathSyn.from_linkage(crank_rocker, Mode.CLOSED)


def _code(fb) -> np.ndarray:
    return fb.normalize().to_vectorized()[0]


class TestMode:
    def test_openness(self):
        assert not Mode.CLOSED.is_target_open
        assert Mode.PARTIAL.is_target_open and not Mode.PARTIAL.is_result_open
        assert Mode.OPEN.is_target_open and Mode.OPEN.is_result_open

    def test_from_value(self):
        assert Mode('partial') is Mode.PARTIAL


class TestConstruction:
    def test_too_few_points(self):
        with pytest.raises(ValueError):
            PathSyn.from_curve([[0.0, 0.0], [1.0, 1.0]])

    def test_non_finite_points_are_cut(self, crank_rocker):
        curve = crank_rocker.curve(90)
        curve[10] = np.nan
        syn = PathSyn.from_curve(curve, Mode.PARTIAL)
        assert syn.efd.is_open

    def test_dimension_mismatch(self, crank_rocker):
        with pytest.raises(ValueError):
            PathSyn.from_curve(crank_rocker.curve(90), linkage_type='spherical')

    def test_bad_res(self, crank_rocker):
        with pytest.raises(ValueError):
            PathSyn.from_curve(crank_rocker.curve(90), res=0)

    def test_explicit_harmonic(self, crank_rocker):
        syn = PathSyn.from_curve(crank_rocker.curve(90), harmonic=7)
        assert syn.harmonic() == 7


class TestBounds:
    def test_planar(self, closed_syn):
        assert closed_syn.n_dims == NormFourBar.CODE_WIDTH
        lower, upper = closed_syn.bounds_array()
        assert np.all(lower < upper)

    def test_partial_adds_window(self, crank_rocker):
        syn = PathSyn.from_curve(crank_rocker.curve_in(0.5, 3.0, 90), Mode.PARTIAL)
        assert syn.n_dims == 7
        assert syn.bound()[-2:] == ((0.0, 2 * math.pi), (0.0, 2 * math.pi))

    def test_spherical(self):
        syn = PathSyn.from_linkage(SFourBar.example())
        assert syn.n_dims == 6

    def test_motion(self):
        syn = MotionSyn.from_linkage(MFourBar.example())
        assert syn.linkage_cls is MNormFourBar
        assert syn.n_dims == 6

    def test_path_rejects_motion_linkage(self, crank_rocker):
        with pytest.raises(ValueError):
            PathSyn.from_curve(crank_rocker.curve(90), linkage_type='motion')


class TestFitness:
    def test_true_code_scores_zero(self, closed_syn, crank_rocker):
        err, placed = closed_syn.fitness(_code(crank_rocker))
        assert err < 1e-6, f'Own linkage should match its curve, got {err}'
        assert placed.stat is Stat.C1B1
        assert np.allclose(placed.curve(180), crank_rocker.curve(180), atol=1e-4)

    def test_other_circuit_is_found(self, crank_rocker):
        target = crank_rocker.with_stat(Stat.C2B1)
        syn = PathSyn.from_linkage(target)
        err, placed = syn.fitness(_code(crank_rocker))
        assert err < 1e-6
        assert placed.stat is Stat.C2B1

    def test_evaluate_is_scalar(self, closed_syn, crank_rocker):
        assert isinstance(closed_syn.evaluate(_code(crank_rocker)), float)

    def test_invalid_code_is_infeasible(self, closed_syn):
        err, placed = closed_syn.fitness(INVALID_CODE)
        assert err == INFEASIBLE_ERROR
        assert placed == FourBar.zero()

    def test_open_linkage_rejected_in_closed_mode(self, closed_syn, triple_rocker):
        err, _ = closed_syn.fitness(_code(triple_rocker))
        assert err == INFEASIBLE_ERROR

    def test_wrong_length(self, closed_syn):
        with pytest.raises(ValueError):
            closed_syn.fitness([1.0, 2.0, 3.0])

    def test_open_mode(self, triple_rocker):
        norm = triple_rocker.normalize()
        syn = PathSyn.from_curve(norm.curve(180), Mode.OPEN)
        err, placed = syn.fitness(_code(triple_rocker))
        assert err < 1e-6, f'Open target should be matched by its own linkage, got {err}'
        assert placed.angle_bound().is_open

    def test_open_mode_reversed_target(self, triple_rocker):
        norm = triple_rocker.normalize()
        syn = PathSyn.from_curve(norm.curve(180)[::-1], Mode.OPEN)
        err, placed = syn.fitness(_code(triple_rocker))
        assert err < 1e-6, f'Reversed open target should match the reversed trace, got {err}'
        assert placed.angle_bound().is_open

    def test_open_mode_rejects_crank(self, triple_rocker, crank_rocker):
        syn = PathSyn.from_linkage(triple_rocker, Mode.OPEN)
        err, _ = syn.fitness(_code(crank_rocker))
        assert err == INFEASIBLE_ERROR

    def test_partial_window(self, crank_rocker):
        syn = PathSyn.from_curve(crank_rocker.curve_in(0.5, 3.0, 90), Mode.PARTIAL, res=90)
        err, _ = syn.fitness(np.concatenate([_code(crank_rocker), [0.5, 3.0]]))
        assert err < 1e-6, f'Matching window should score zero, got {err}'

    def test_partial_window_order_ignored(self, crank_rocker):
        syn = PathSyn.from_curve(crank_rocker.curve_in(0.5, 3.0, 90), Mode.PARTIAL, res=90)
        err, _ = syn.fitness(np.concatenate([_code(crank_rocker), [3.0, 0.5]]))
        assert err < 1e-6, 'Both window directions are tried'

    def test_spherical_true_code(self):
        target = SFourBar.example()
        syn = PathSyn.from_linkage(target)
        err, placed = syn.fitness(_code(target))
        assert err < 1e-5, f'Got {err}'
        assert isinstance(placed, SFourBar)

    def test_parallel_candidates(self, crank_rocker):
        syn = PathSyn.from_linkage(crank_rocker, n_workers=2)
        err, _ = syn.fitness(_code(crank_rocker))
        assert err < 1e-6


class TestConstraints:
    def test_origin_kept(self, closed_syn, crank_rocker):
        closed_syn.set_origin([0.0, 0.0])
        err, _ = closed_syn.fitness(_code(crank_rocker))
        assert err < 1e-6

    def test_scale_kept(self, closed_syn, crank_rocker):
        closed_syn.set_scale(35.0)
        err, _ = closed_syn.fitness(_code(crank_rocker))
        assert err < 1e-6

    def test_on_unit_penalizes(self, closed_syn, crank_rocker):
        closed_syn.on_unit()
        err, _ = closed_syn.fitness(_code(crank_rocker))
        assert err == pytest.approx(34.0, rel=1e-4), 'Driver length 35 is far from unit scale'

    def test_bad_constraints(self, closed_syn):
        with pytest.raises(ValueError):
            closed_syn.set_scale(0.0)
        with pytest.raises(ValueError):
            closed_syn.set_origin([0.0, 0.0, 0.0])


class TestEvaluatePopulation:
    def test_rows(self, closed_syn, crank_rocker):
        pop = np.array([_code(crank_rocker), INVALID_CODE])
        values = closed_syn.evaluate_population(pop)
        assert values.shape == (2,)
        assert values[0] < 1e-6
        assert values[1] == INFEASIBLE_ERROR

    def test_parallel_matches_serial(self, closed_syn):
        rng = np.random.default_rng(0)
        lower, upper = closed_syn.bounds_array()
        pop = rng.uniform(lower, upper, size=(12, closed_syn.n_dims))
        serial = closed_syn.evaluate_population(pop)
        threaded = closed_syn.evaluate_population(pop, n_workers=4)
        assert np.array_equal(serial, threaded)


class TestMotionSyn:
    @pytest.fixture
    def motion(self):
        return MFourBar.example()

    def test_true_code_scores_zero(self, motion):
        syn = MotionSyn.from_linkage(motion)
        err, placed = syn.fitness(_code(motion))
        assert err < 1e-6, f'Own linkage should match its motion, got {err}'
        assert isinstance(placed, MFourBar)
        curve, vectors = placed.pose(180)
        target_curve, target_vectors = motion.pose(180)
        assert np.allclose(curve, target_curve, atol=1e-4)
        assert np.allclose(vectors, target_vectors, atol=1e-4)

    def test_line_angle_matters(self, motion):
        syn = MotionSyn.from_linkage(motion)
        code = _code(motion)
        code[5] += 0.5
        err, _ = syn.fitness(code)
        assert err > 1e-3, f'A different motion line must not match, got {err}'

    def test_moved_target(self, motion):
        geo = GeoVar.from_planar([3.0, -7.0], 1.1, 0.25)
        curve, vectors = motion.pose(180)
        syn = MotionSyn.from_uvec(geo.apply(curve), vectors @ geo.rot.T)
        err, placed = syn.fitness(_code(motion))
        assert err < 1e-6
        assert np.allclose(placed.curve(180), geo.apply(curve), atol=1e-4)

    def test_from_series(self, motion):
        curve, vectors = motion.pose(180)
        syn = MotionSyn.from_series(curve, curve + 12.0 * vectors)
        err, _ = syn.fitness(_code(motion))
        assert err < 1e-6

    def test_partial_window(self, motion):
        curve, vectors = motion.pose_in(0.5, 3.0, 90)
        syn = MotionSyn.from_uvec(curve, vectors, Mode.PARTIAL, res=90)
        err, _ = syn.fitness(np.concatenate([_code(motion), [0.5, 3.0]]))
        assert err < 1e-6, f'Matching window should score zero, got {err}'

    def test_constraints(self, motion):
        syn = MotionSyn.from_linkage(motion).on_unit()
        err, _ = syn.fitness(_code(motion))
        assert err == pytest.approx(34.0, rel=1e-4)

    def test_rejects_plain_linkage(self, crank_rocker):
        curve = crank_rocker.curve(90)
        with pytest.raises(ValueError):
            MotionSyn.from_uvec(curve, np.ones_like(curve), linkage_type='planar')

    def test_shape_mismatch(self, motion):
        curve, vectors = motion.pose(90)
        with pytest.raises(ValueError):
            MotionSyn.from_uvec(curve, vectors[:-1])
