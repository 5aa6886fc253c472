"""
kinematics.py - Closed-form position solver for four-bar linkages.

Joint order of every solution is [p1, p2, p3, p4, p5]:
  p1 driver pivot, p2 follower pivot (ground link p1-p2), p3 driver/coupler
  joint, p4 coupler/follower joint, p5 traced (coupler) point.

Two solvers share one pipeline:
  - planar_positions(): points on the plane, p4 from a circle-circle
    intersection (radii coupler and follower)
  - spherical_positions(): points on a sphere, every placement is a rotation
    of a unit vector; p4 from a spherical trigonometric identity

Both are vectorized over the input angle and mark infeasible angles with
NaN rows. CurveGen turns them into curves: only the longest contiguous run of
finite samples is returned, so a curve never carries a NaN.

Design notes:
  - CurveGen.inv picks the mirrored root: circuit 2 on a full turn, branch 2 on an open arc
  - linspace() excludes its endpoint and wraps end below start by a full turn
"""
from __future__ import annotations

import math
from abc import ABC
from abc import abstractmethod
from typing import ClassVar
from typing import TYPE_CHECKING

import numpy as np
from scipy.spatial.transform import Rotation

from fourbar_tools.curve_utils import get_valid_part
from fourbar_tools.stat import AngleBound
from fourbar_tools.stat import FourBarTy
from fourbar_tools.stat import TAU

if TYPE_CHECKING:
    from fourbar_tools.stat import Stat

_K = np.array([0.0, 0.0, 1.0])

# Equality tolerance for the parallelogram special case
_PARALLEL_EPS = float(np.finfo(np.float64).eps)


def linspace(start: float, end: float, res: int) -> np.ndarray:
    """`res` input angles from start towards end, endpoint excluded."""
    if res < 0:
        raise ValueError(f'res must not be negative, got {res}')
    if end <= start:
        end += TAU
    step = (end - start) / res if res else 0.0
    return start + np.arange(res) * step


# =============================================================================
# Per-dimension primitives
# =============================================================================

def rotation_between(a: np.ndarray, b: np.ndarray) -> Rotation:
    """Shortest-arc rotation carrying direction `a` onto direction `b`."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    a = a / np.linalg.norm(a)
    b = b / np.linalg.norm(b)
    axis = np.cross(a, b)
    sin_t = np.linalg.norm(axis)
    cos_t = float(a @ b)
    if sin_t < 1e-12:
        if cos_t > 0.0:
            return Rotation.identity()
        # Antiparallel: half turn about any perpendicular axis
        helper = np.eye(3)[np.argmin(np.abs(a))]
        perp = np.cross(a, helper)
        return Rotation.from_rotvec(perp / np.linalg.norm(perp) * math.pi)
    return Rotation.from_rotvec(axis / sin_t * math.atan2(sin_t, cos_t))


def to_sc(x: float, y: float, z: float) -> tuple[float, float]:
    """Cartesian direction to spherical (polar, azimuth); radius dropped."""
    return math.atan2(math.hypot(x, y), z), math.atan2(y, x)


def to_cc(p1i: float, p1j: float, r: float = 1.0) -> np.ndarray:
    """Spherical (polar, azimuth, radius) to Cartesian."""
    return np.array([
        r * math.sin(p1i) * math.cos(p1j),
        r * math.sin(p1i) * math.sin(p1j),
        r * math.cos(p1i),
    ])


def sphere_rotation(p1i: float, p1j: float, a: float) -> np.ndarray:
    """Rotation taking the +z pole to the driver pivot (p1i, p1j), then turning by a about it."""
    p1_axis = to_cc(p1i, p1j, 1.0)
    return (Rotation.from_rotvec(p1_axis * a) * rotation_between(_K, p1_axis)).as_matrix()


def _polar(origin: np.ndarray, length: float, angle: np.ndarray) -> np.ndarray:
    """Planar point at `length` from origin along `angle` (vectorized)."""
    return origin + length * np.stack([np.cos(angle), np.sin(angle)], axis=-1)


def _rodrigues(axis: np.ndarray, vec: np.ndarray, angle: np.ndarray) -> np.ndarray:
    """Rotate `vec` about unit `axis` by each entry of `angle`."""
    cos_a = np.cos(angle)[:, None]
    sin_a = np.sin(angle)[:, None]
    return vec * cos_a + np.cross(axis, vec) * sin_a + axis * (axis @ vec) * (1.0 - cos_a)


def _nan_rows(joints: np.ndarray) -> np.ndarray:
    """Blank out every sample where any joint is non-finite."""
    bad = ~np.all(np.isfinite(joints), axis=(1, 2))
    joints[bad] = np.nan
    return joints


# =============================================================================
# Solvers
# =============================================================================

def planar_positions(
    p1x: float,
    p1y: float,
    a: float,
    l1: float,
    l2: float,
    l3: float,
    l4: float,
    l5: float,
    g: float,
    angles,
    inv: bool,
) -> np.ndarray:
    """
    Solve a placed planar four-bar at each driver angle.

    Args:
        p1x, p1y: Driver pivot
        a: Ground link angle
        l1..l5: Ground, driver, coupler, follower, extension lengths
        g: Extension angle relative to the coupler p3-p4
        angles: Driver angles relative to the ground link
        inv: Take the mirrored circle intersection

    Returns:
        Array (n, 5, 2); rows are NaN where the loop cannot close
    """
    b = np.atleast_1d(np.asarray(angles, dtype=np.float64))
    n = len(b)
    p1 = np.tile([p1x, p1y], (n, 1)).astype(np.float64)
    p2 = _polar(p1, l1, np.full(n, a))
    p3 = _polar(p1, l2, a + b)
    with np.errstate(invalid='ignore', divide='ignore'):
        if abs(l1 - l3) < _PARALLEL_EPS and abs(l2 - l4) < _PARALLEL_EPS:
            p4 = p2 + (p3 - p1)
        else:
            p23 = p2 - p3
            r = np.hypot(p23[:, 0], p23[:, 1])
            bad = (r > l3 + l4) | (r < abs(l3 - l4)) | (r < _PARALLEL_EPS)
            c = (l3 * l3 - l4 * l4 + r * r) / (2.0 * r)
            s = np.sqrt(l3 * l3 - c * c)
            if inv:
                s = -s
            ux = p23[:, 0] / r
            uy = p23[:, 1] / r
            p4 = p3 + np.stack([c * ux - s * uy, c * uy + s * ux], axis=-1)
            p4[bad] = np.nan
        p43 = p4 - p3
        p5 = _polar(p3, l5, g + np.arctan2(p43[:, 1], p43[:, 0]))
    return _nan_rows(np.stack([p1, p2, p3, p4, p5], axis=1))


def spherical_positions(
    center,
    r: float,
    p1i: float,
    p1j: float,
    a: float,
    l1: float,
    l2: float,
    l3: float,
    l4: float,
    l5: float,
    g: float,
    angles,
    inv: bool,
) -> np.ndarray:
    """
    Solve a placed spherical four-bar at each driver angle.

    The mechanism is built around the +z pole of a sphere of radius r and
    then rotated so the driver pivot sits at (p1i, p1j) with ground angle a.
    Link lengths are arcs in radians.

    Returns:
        Array (n, 5, 3); rows are NaN where the loop cannot close
    """
    b = np.atleast_1d(np.asarray(angles, dtype=np.float64))
    n = len(b)
    origin = np.asarray(center, dtype=np.float64)
    with np.errstate(invalid='ignore', divide='ignore'):
        h1 = (math.cos(l2) * math.cos(l4) * math.cos(l1) - math.cos(l3)
              + math.sin(l2) * math.cos(l4) * math.sin(l1) * np.cos(b))
        h2 = (-math.cos(l2) * math.sin(l4) * math.sin(l1)
              + math.sin(l2) * math.sin(l4) * math.cos(l1) * np.cos(b))
        h3 = math.sin(l2) * math.sin(l4) * np.sin(b)
        h = np.sqrt(h3 * h3 - h1 * h1 + h2 * h2)
        if inv:
            h = -h
        d = 2.0 * np.arctan2(-h3 + h, h1 - h2)

        op1 = r * _K
        op2 = r * np.array([math.sin(l1), 0.0, math.cos(l1)])
        op3 = r * np.stack([
            math.sin(l2) * np.cos(b),
            math.sin(l2) * np.sin(b),
            np.full(n, math.cos(l2)),
        ], axis=-1)
        follower = r * np.array([math.sin(l1 + l4), 0.0, math.cos(l1 + l4)])
        op4 = _rodrigues(op2 / np.linalg.norm(op2), follower, d)

        rot_sphere = sphere_rotation(p1i, p1j, a)
        op3 = op3 @ rot_sphere.T
        op4 = op4 @ rot_sphere.T

        # Coupler frame: i along p3, k normal to the great circle p3-p4
        i_ax = op3 / np.linalg.norm(op3, axis=1, keepdims=True)
        k_ax = np.cross(op3, op4)
        k_ax = k_ax / np.linalg.norm(k_ax, axis=1, keepdims=True)
        j_ax = np.cross(k_ax, i_ax)
        local = r * np.array([math.sin(l5) * math.cos(g), math.sin(l5) * math.sin(g), math.cos(l5)])
        op5 = i_ax * local[0] + j_ax * local[1] + k_ax * local[2]

    joints = np.stack([
        np.tile(origin + rot_sphere @ op1, (n, 1)),
        np.tile(origin + rot_sphere @ op2, (n, 1)),
        origin + op3,
        origin + op4,
        origin + op5,
    ], axis=1)
    return _nan_rows(joints)


# =============================================================================
# Curve generation interface
# =============================================================================

class CurveGen(ABC):
    """
    Curve generation shared by every linkage type.

    Subclasses provide their loop lengths, their circuit/branch tag and a
    vectorized solver; everything else (angle domain, sampling, curve
    extraction) lives here and does not depend on the dimension.
    """
    DIM: ClassVar[int]
    stat: Stat

    @abstractmethod
    def planar_loop(self) -> list[float]:
        """Loop [ground, driver, coupler, follower] used for classification."""

    @abstractmethod
    def pos_array(self, angles, inv: bool) -> np.ndarray:
        """Joint positions (n, 5, DIM) for every angle, NaN where infeasible."""

    def ty(self) -> FourBarTy:
        return FourBarTy.from_loop(self.planar_loop())

    def angle_bound(self) -> AngleBound:
        return AngleBound.from_planar_loop(self.planar_loop(), self.stat)

    @property
    def is_valid(self) -> bool:
        return self.ty().is_valid

    @property
    def is_open(self) -> bool:
        return self.angle_bound().is_open

    def get_states(self):
        return self.angle_bound().get_states()

    @property
    def inv(self) -> bool:
        """Solver root selected by the circuit/branch tag."""
        return self.angle_bound().inv(self.stat)

    def pos_s(self, t: float, inv: bool) -> np.ndarray | None:
        """All 5 joints at driver angle t, None if any is non-finite."""
        joints = self.pos_array([t], inv)[0]
        if not np.all(np.isfinite(joints)):
            return None
        return joints

    def pos(self, t: float) -> np.ndarray | None:
        return self.pos_s(t, self.inv)

    def _run_in(self, start: float, end: float, res: int) -> np.ndarray:
        joints = self.pos_array(linspace(start, end, res), self.inv)
        flat = get_valid_part(joints.reshape(len(joints), 5 * self.DIM))
        return flat.reshape(len(flat), 5, self.DIM)

    def curves_in(self, start: float, end: float, res: int) -> np.ndarray:
        """Joints p3, p4, p5 over [start, end), shape (n, 3, DIM)."""
        return self._run_in(start, end, res)[:, 2:]

    def curve_in(self, start: float, end: float, res: int) -> np.ndarray:
        """Traced point over [start, end), longest finite run, shape (n, DIM)."""
        return self._run_in(start, end, res)[:, 4]

    def curves(self, res: int) -> np.ndarray:
        bound = self.angle_bound().to_value()
        if bound is None:
            return np.empty((0, 3, self.DIM))
        return self.curves_in(bound[0], bound[1], res)

    def curve(self, res: int) -> np.ndarray:
        """Traced curve over the linkage's own angle domain."""
        bound = self.angle_bound().to_value()
        if bound is None:
            return np.empty((0, self.DIM))
        return self.curve_in(bound[0], bound[1], res)

    def curve_by(self, angles) -> np.ndarray:
        """Traced point at explicit angles; infeasible angles are dropped."""
        joints = self.pos_array(angles, self.inv)
        keep = np.all(np.isfinite(joints), axis=(1, 2))
        return joints[keep, 4]


class PoseGen(CurveGen):
    """Curve generation plus a unit direction attached to the coupler."""

    @abstractmethod
    def uvec_array(self, joints: np.ndarray) -> np.ndarray:
        """Unit vectors (n, DIM) from joint positions (n, 5, DIM)."""

    def pose_in(self, start: float, end: float, res: int) -> tuple[np.ndarray, np.ndarray]:
        joints = self._run_in(start, end, res)
        return joints[:, 4], self.uvec_array(joints)

    def pose(self, res: int) -> tuple[np.ndarray, np.ndarray]:
        bound = self.angle_bound().to_value()
        if bound is None:
            return np.empty((0, self.DIM)), np.empty((0, self.DIM))
        return self.pose_in(bound[0], bound[1], res)

    def ext_curve_in(self, length: float, start: float, end: float, res: int) -> np.ndarray:
        """Point `length` along the motion line from the traced point."""
        curve, vecs = self.pose_in(start, end, res)
        return curve + length * vecs

    def ext_curve(self, length: float, res: int) -> tuple[np.ndarray, np.ndarray]:
        """Traced curve and its extension curve over the angle domain."""
        curve, vecs = self.pose(res)
        return curve, curve + length * vecs
