"""Tests for fourbar_tools/kinematics.py and linkage.py - joint positions and traced curves."""
from __future__ import annotations

import math

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from fourbar_tools.efd import GeoVar
from fourbar_tools.kinematics import linspace
from fourbar_tools.kinematics import rotation_between
from fourbar_tools.linkage import FourBar
from fourbar_tools.linkage import get_linkage_type
from fourbar_tools.linkage import MFourBar
from fourbar_tools.linkage import MNormFourBar
from fourbar_tools.linkage import NormFourBar
from fourbar_tools.linkage import SFourBar
from fourbar_tools.linkage import SNormFourBar
from fourbar_tools.stat import Stat
from fourbar_tools.stat import TAU


@pytest.fixture
def crank_rocker():
    return FourBar.example()


@pytest.fixture
def triple_rocker():
    """Non-Grashof loop [100, 160, 120, 105]: the driver only rocks."""
    return FourBar(0.0, 0.0, 0.0, 100.0, 160.0, 120.0, 105.0, 50.0, 0.3)


@pytest.fixture
def spherical():
    return SFourBar.example()


def _arc(p, q, center, r):
    cos_t = np.sum((p - center) * (q - center), axis=-1) / (r * r)
    return np.arccos(np.clip(cos_t, -1.0, 1.0))


class TestLinspace:
    def test_full_turn(self):
        angles = linspace(0.0, TAU, 4)
        assert np.allclose(angles, [0.0, math.pi / 2, math.pi, 3 * math.pi / 2])

    def test_wraps_when_end_before_start(self):
        angles = linspace(5.0, 1.0, 3)
        step = (1.0 + TAU - 5.0) / 3
        assert np.allclose(angles, [5.0, 5.0 + step, 5.0 + 2 * step])

    def test_empty(self):
        assert len(linspace(0.0, 1.0, 0)) == 0

    def test_negative_res(self):
        with pytest.raises(ValueError):
            linspace(0.0, 1.0, -1)


class TestPlanarPositions:
    def test_loop_closure(self, crank_rocker):
        joints = crank_rocker.pos_array(linspace(0.0, TAU, 60), crank_rocker.inv)
        assert np.all(np.isfinite(joints)), 'Crank-rocker should close at every angle'
        p1, p2, p3, p4 = joints[:, 0], joints[:, 1], joints[:, 2], joints[:, 3]
        assert np.allclose(np.linalg.norm(p2 - p1, axis=1), 90.0)
        assert np.allclose(np.linalg.norm(p3 - p1, axis=1), 35.0)
        assert np.allclose(np.linalg.norm(p4 - p3, axis=1), 70.0)
        assert np.allclose(np.linalg.norm(p4 - p2, axis=1), 70.0)

    def test_traced_point_extension(self, crank_rocker):
        joints = crank_rocker.pos_array([0.3], False)[0]
        assert np.isclose(np.linalg.norm(joints[4] - joints[2]), 45.0)

    def test_circuits_mirror_about_ground(self, crank_rocker):
        c1 = crank_rocker.pos(0.0)
        c2 = crank_rocker.with_stat(Stat.C2B1).pos(0.0)
        assert c1 is not None and c2 is not None
        assert np.isclose(c1[3, 1], -c2[3, 1]), 'At t=0 the circuits mirror p4 across the ground line'

    def test_pos_s_selects_root(self, crank_rocker):
        c2 = crank_rocker.with_stat(Stat.C2B1)
        assert np.allclose(crank_rocker.pos_s(0.7, c2.inv), c2.pos(0.7))
        assert np.allclose(crank_rocker.pos_s(0.7, crank_rocker.inv), crank_rocker.pos(0.7))

    def test_pos_outside_domain(self, triple_rocker):
        assert triple_rocker.pos(math.pi) is None, 'Driver cannot point away from the ground pivot'

    def test_parallelogram(self):
        fb = FourBar(0.0, 0.0, 0.0, 2.0, 1.0, 2.0, 1.0, 0.5, 0.0)
        joints = fb.pos_array(linspace(0.0, TAU, 24), False)
        assert np.all(np.isfinite(joints))
        assert np.allclose(joints[:, 3] - joints[:, 2], joints[:, 1] - joints[:, 0])


class TestCurves:
    def test_closed_curve_is_finite(self, crank_rocker):
        curve = crank_rocker.curve(180)
        assert curve.shape == (180, 2), f'Got shape {curve.shape}'
        assert np.all(np.isfinite(curve))

    def test_open_curve_is_finite(self, triple_rocker):
        curve = triple_rocker.curve(90)
        assert len(curve) > 2
        assert np.all(np.isfinite(curve))

    def test_curve_in_never_non_finite(self):
        rng = np.random.default_rng(3)
        bound = np.asarray(NormFourBar.BOUND)
        for code in rng.uniform(bound[:, 0], bound[:, 1], size=(60, 5)):
            for stat in Stat:
                fb = NormFourBar.from_vectorized(code, stat)
                curve = fb.curve_in(0.0, TAU, 72)
                assert np.all(np.isfinite(curve)), f'Non-finite point for {fb}'

    def test_curve_in_is_contiguous(self, triple_rocker):
        """The longest finite run keeps consecutive samples of one sweep."""
        curve = triple_rocker.curve_in(0.0, TAU, 360)
        steps = np.linalg.norm(np.diff(curve, axis=0), axis=1)
        assert len(curve) > 2
        assert steps.max() < 40.0, f'Curve jumps by {steps.max()}'

    def test_invalid_linkage_has_empty_curve(self):
        fb = FourBar(0.0, 0.0, 0.0, 10.0, 1.0, 1.0, 1.0, 1.0, 0.0)
        assert fb.curve(30).shape == (0, 2)
        assert not fb.is_valid

    def test_curves_joint_slice(self, crank_rocker):
        curves = crank_rocker.curves(36)
        assert curves.shape == (36, 3, 2)
        assert np.allclose(curves[:, 2], crank_rocker.curve(36))

    def test_curve_by_drops_infeasible(self, triple_rocker):
        curve = triple_rocker.curve_by([0.0, math.pi])
        assert len(curve) == 1


class TestNormalization:
    def test_normalize_round_trip(self, crank_rocker):
        norm = crank_rocker.normalize()
        assert norm.planar_loop()[1] == 1.0
        geo = GeoVar.from_planar(crank_rocker.origin, crank_rocker.a, crank_rocker.scale)
        placed = norm.trans_denorm(geo)
        assert np.allclose(placed.curve(90), crank_rocker.curve(90))

    def test_planar_transform_moves_curve(self, crank_rocker):
        geo = GeoVar.from_planar([3.0, -2.0], 0.7, 1.5)
        moved = crank_rocker.transform(geo)
        assert np.allclose(moved.curve(90), geo.apply(crank_rocker.curve(90)))

    def test_vectorized_round_trip(self):
        norm = NormFourBar(2.0, 1.5, 1.8, 0.7, 0.4, Stat.C2B1)
        code, stat = norm.to_vectorized()
        assert NormFourBar.from_vectorized(code, stat) == norm

    def test_vectorized_width(self):
        with pytest.raises(ValueError):
            NormFourBar.from_vectorized([1.0, 2.0, 3.0])
        with pytest.raises(ValueError):
            SNormFourBar.from_vectorized([1.0] * 5)

    def test_linkage_registry(self):
        assert get_linkage_type('planar') is NormFourBar
        assert get_linkage_type('spherical') is SNormFourBar
        assert get_linkage_type(MNormFourBar) is MNormFourBar
        with pytest.raises(ValueError):
            get_linkage_type('hexapod')


class TestSpherical:
    def test_points_on_sphere(self, spherical):
        curves = spherical.curves(90)
        assert len(curves) > 0
        dist = np.linalg.norm(curves - spherical.center, axis=-1)
        assert np.allclose(dist, spherical.r), 'All joints should lie on the sphere'

    def test_arc_lengths(self, spherical):
        joints = spherical.pos_array(linspace(0.0, TAU, 36), spherical.inv)
        joints = joints[np.all(np.isfinite(joints), axis=(1, 2))]
        c, r = spherical.center, spherical.r
        assert np.allclose(_arc(joints[:, 0], joints[:, 2], c, r), spherical.l2)
        assert np.allclose(_arc(joints[:, 1], joints[:, 3], c, r), spherical.l4)
        assert np.allclose(_arc(joints[:, 2], joints[:, 3], c, r), spherical.l3, atol=1e-6)

    def test_transform_moves_curve(self, spherical):
        geo = GeoVar.from_rotation([1.0, 2.0, 3.0], Rotation.from_rotvec([0.3, -0.2, 0.5]), 2.0)
        moved = spherical.transform(geo)
        assert moved.r == pytest.approx(180.0)
        assert np.allclose(moved.curve(60), geo.apply(spherical.curve(60)), atol=1e-6)

    def test_normalize_round_trip(self, spherical):
        geo = GeoVar.from_rotation(spherical.center, Rotation.identity(), spherical.r)
        placed = spherical.normalize().trans_denorm(geo)
        assert np.allclose(placed.curve(60), spherical.curve(60), atol=1e-6)

    def test_rotation_between(self):
        a = np.array([1.0, 0.0, 0.0])
        for b in ([0.0, 1.0, 0.0], [-1.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.2, -0.5, 0.8]):
            b = np.asarray(b) / np.linalg.norm(b)
            assert np.allclose(rotation_between(a, b).apply(a), b)


class TestMotion:
    def test_unit_directions(self):
        mfb = MFourBar.example()
        curve, vecs = mfb.pose(72)
        assert curve.shape == vecs.shape
        assert np.allclose(np.linalg.norm(vecs, axis=1), 1.0)

    def test_extension_curve(self):
        mfb = MFourBar.example()
        curve, ext = mfb.ext_curve(10.0, 72)
        assert np.allclose(np.linalg.norm(ext - curve, axis=1), 10.0)

    def test_pose_in_window(self):
        mfb = MFourBar.example()
        curve, vecs = mfb.pose_in(0.2, 1.4, 30)
        assert np.allclose(curve, mfb.curve_in(0.2, 1.4, 30))
        ext = mfb.ext_curve_in(4.0, 0.2, 1.4, 30)
        assert np.allclose(ext, curve + 4.0 * vecs)

    def test_into_fb_keeps_curve(self):
        mfb = MFourBar.example()
        assert np.allclose(mfb.into_fb().curve(72), mfb.curve(72))

    def test_normalize(self):
        norm = MFourBar.example().normalize()
        assert isinstance(norm, MNormFourBar)
        code, _ = norm.to_vectorized()
        assert len(code) == MNormFourBar.CODE_WIDTH
        assert isinstance(norm.denormalize(), MFourBar)
