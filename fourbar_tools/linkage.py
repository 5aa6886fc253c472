"""
linkage.py - Parameter structures for planar, spherical and motion four-bars.

Every linkage exists in two forms:
  - Normalized (intrinsic): shape-only parameters, driver length 1 for planar
    linkages, unit sphere for spherical ones. This is the space searched by
    synthesis and stored in the atlas.
  - Placed: the same shape plus origin, orientation and scale.

Key components:
  - NormFourBar / FourBar: planar linkage (code width 5)
  - SNormFourBar / SFourBar: spherical linkage (code width 6)
  - MNormFourBar / MFourBar: planar linkage with a motion line angle (code width 6)
  - LINKAGE_TYPES: name -> normalized class, for atlas and synthesis setup

Normalized classes expose the vectorization contract used by the atlas and
the synthesis engine:
  - CODE_WIDTH, DIM, BOUND, BOUND_PARTIAL class attributes
  - from_vectorized(code, stat), to_vectorized()
  - denormalize(), trans_denorm(geo)

Example:
    >>> fb = FourBar.example()
    >>> curve = fb.curve(res=360)
    >>> norm = fb.normalize()
    >>> code, stat = norm.to_vectorized()
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from dataclasses import replace
from typing import ClassVar
from typing import TYPE_CHECKING

import numpy as np

from fourbar_tools.kinematics import CurveGen
from fourbar_tools.kinematics import planar_positions
from fourbar_tools.kinematics import PoseGen
from fourbar_tools.kinematics import rotation_between
from fourbar_tools.kinematics import sphere_rotation
from fourbar_tools.kinematics import spherical_positions
from fourbar_tools.kinematics import to_sc
from fourbar_tools.stat import spherical_planar_loop
from fourbar_tools.stat import Stat
from fourbar_tools.stat import TAU

if TYPE_CHECKING:
    from fourbar_tools.efd import GeoVar

# Planar length ratio bound: every normalized length lies in [1/F, F]
BOUND_F = 6.0

_PLANAR_BOUND = ((1.0 / BOUND_F, BOUND_F),) * 4 + ((0.0, TAU),)
_SPHERICAL_BOUND = ((0.0, math.pi),) * 5 + ((0.0, TAU),)
_MOTION_BOUND = _PLANAR_BOUND + ((0.0, TAU),)
_WINDOW_BOUND = ((0.0, TAU), (0.0, TAU))


def _check_code(cls, code) -> np.ndarray:
    arr = np.asarray(code, dtype=np.float64).reshape(-1)
    if len(arr) != cls.CODE_WIDTH:
        raise ValueError(f'{cls.__name__} expects {cls.CODE_WIDTH} values, got {len(arr)}')
    return arr


# =============================================================================
# Planar
# =============================================================================

@dataclass
class NormFourBar(CurveGen):
    """
    Normalized planar four-bar linkage (driver length fixed to 1).

    Attributes:
        l1: Ground link
        l3: Coupler link
        l4: Follower link
        l5: Extension from p3 to the traced point
        g: Extension angle measured from the coupler p3-p4
        stat: Circuit/branch tag
    """
    l1: float
    l3: float
    l4: float
    l5: float
    g: float
    stat: Stat = Stat.C1B1

    DIM: ClassVar[int] = 2
    CODE_WIDTH: ClassVar[int] = 5
    BOUND: ClassVar[tuple] = _PLANAR_BOUND
    BOUND_PARTIAL: ClassVar[tuple] = _PLANAR_BOUND + _WINDOW_BOUND

    @classmethod
    def from_vectorized(cls, code, stat: Stat | int = Stat.C1B1) -> NormFourBar:
        l1, l3, l4, l5, g = _check_code(cls, code)
        return cls(float(l1), float(l3), float(l4), float(l5), float(g), Stat(int(stat)))

    def to_vectorized(self) -> tuple[np.ndarray, Stat]:
        return np.array([self.l1, self.l3, self.l4, self.l5, self.g]), self.stat

    def planar_loop(self) -> list[float]:
        return [self.l1, 1.0, self.l3, self.l4]

    def with_stat(self, stat: Stat):
        return replace(self, stat=stat)

    @classmethod
    def placeholder(cls) -> FourBar:
        """Zero linkage reported alongside infeasible fitness values."""
        return FourBar.zero()

    def denormalize(self) -> FourBar:
        return FourBar(0.0, 0.0, 0.0, self.l1, 1.0, self.l3, self.l4, self.l5, self.g, self.stat)

    def trans_denorm(self, geo: GeoVar) -> FourBar:
        return self.denormalize().transform(geo)

    def pos_array(self, angles, inv: bool) -> np.ndarray:
        return planar_positions(
            0.0, 0.0, 0.0, self.l1, 1.0, self.l3, self.l4, self.l5, self.g, angles, inv,
        )


@dataclass
class FourBar(CurveGen):
    """
    Placed planar four-bar linkage.

    Attributes:
        p1x, p1y: Driver pivot
        a: Ground link angle
        l1..l5: Ground, driver, coupler, follower and extension lengths
        g: Extension angle
        stat: Circuit/branch tag
    """
    p1x: float
    p1y: float
    a: float
    l1: float
    l2: float
    l3: float
    l4: float
    l5: float
    g: float
    stat: Stat = Stat.C1B1

    DIM: ClassVar[int] = 2

    @classmethod
    def example(cls) -> FourBar:
        """Crank rocker: ground 90, driver 35, coupler 70, follower 70."""
        return cls(0.0, 0.0, 0.0, 90.0, 35.0, 70.0, 70.0, 45.0, math.pi / 6.0)

    @classmethod
    def zero(cls) -> FourBar:
        return cls(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    @property
    def origin(self) -> np.ndarray:
        return np.array([self.p1x, self.p1y])

    @property
    def scale(self) -> float:
        return self.l2

    def planar_loop(self) -> list[float]:
        return [self.l1, self.l2, self.l3, self.l4]

    def with_stat(self, stat: Stat):
        return replace(self, stat=stat)

    def normalize(self) -> NormFourBar:
        s = self.l2
        return NormFourBar(self.l1 / s, self.l3 / s, self.l4 / s, self.l5 / s, self.g, self.stat)

    def transform(self, geo: GeoVar) -> FourBar:
        """Apply a similarity transform to the placement and lengths."""
        p1 = geo.apply(self.origin)
        s = geo.scale
        return replace(
            self,
            p1x=float(p1[0]),
            p1y=float(p1[1]),
            a=self.a + geo.angle,
            l1=self.l1 * s,
            l2=self.l2 * s,
            l3=self.l3 * s,
            l4=self.l4 * s,
            l5=self.l5 * s,
        )

    def pos_array(self, angles, inv: bool) -> np.ndarray:
        return planar_positions(
            self.p1x, self.p1y, self.a,
            self.l1, self.l2, self.l3, self.l4, self.l5, self.g, angles, inv,
        )


# =============================================================================
# Spherical
# =============================================================================

@dataclass
class SNormFourBar(CurveGen):
    """
    Normalized spherical four-bar linkage on the unit sphere.

    Link lengths l1..l5 are arc angles in radians; g is the extension angle.
    """
    l1: float
    l2: float
    l3: float
    l4: float
    l5: float
    g: float
    stat: Stat = Stat.C1B1

    DIM: ClassVar[int] = 3
    CODE_WIDTH: ClassVar[int] = 6
    BOUND: ClassVar[tuple] = _SPHERICAL_BOUND
    BOUND_PARTIAL: ClassVar[tuple] = _SPHERICAL_BOUND + _WINDOW_BOUND

    @classmethod
    def from_vectorized(cls, code, stat: Stat | int = Stat.C1B1) -> SNormFourBar:
        l1, l2, l3, l4, l5, g = (float(v) for v in _check_code(cls, code))
        return cls(l1, l2, l3, l4, l5, g, Stat(int(stat)))

    def to_vectorized(self) -> tuple[np.ndarray, Stat]:
        return np.array([self.l1, self.l2, self.l3, self.l4, self.l5, self.g]), self.stat

    def planar_loop(self) -> list[float]:
        return spherical_planar_loop([self.l1, self.l2, self.l3, self.l4])

    def with_stat(self, stat: Stat):
        return replace(self, stat=stat)

    @classmethod
    def placeholder(cls) -> SFourBar:
        return SFourBar.zero()

    def denormalize(self) -> SFourBar:
        return SFourBar(
            0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0,
            self.l1, self.l2, self.l3, self.l4, self.l5, self.g, self.stat,
        )

    def trans_denorm(self, geo: GeoVar) -> SFourBar:
        return self.denormalize().transform(geo)

    def pos_array(self, angles, inv: bool) -> np.ndarray:
        return spherical_positions(
            (0.0, 0.0, 0.0), 1.0, 0.0, 0.0, 0.0,
            self.l1, self.l2, self.l3, self.l4, self.l5, self.g, angles, inv,
        )


@dataclass
class SFourBar(CurveGen):
    """
    Placed spherical four-bar linkage.

    Attributes:
        ox, oy, oz: Sphere center
        r: Sphere radius (overall scale)
        p1i, p1j: Polar and azimuth angle of the driver pivot
        a: Ground link angle about the driver pivot axis
        l1..l5, g: Arc lengths and extension angle, as in SNormFourBar
        stat: Circuit/branch tag
    """
    ox: float
    oy: float
    oz: float
    r: float
    p1i: float
    p1j: float
    a: float
    l1: float
    l2: float
    l3: float
    l4: float
    l5: float
    g: float
    stat: Stat = Stat.C1B1

    DIM: ClassVar[int] = 3

    @classmethod
    def example(cls) -> SFourBar:
        """Spherical crank rocker on a sphere of radius 90."""
        return cls(
            0.0, 0.0, 0.0, 90.0, 0.0, 0.0, 0.0,
            math.pi / 2.0, 0.6108652381980153, 1.2217304763960306, 1.2217304763960306,
            math.pi / 4.0, 0.5235987755982988,
        )

    @classmethod
    def zero(cls) -> SFourBar:
        return cls(*([0.0] * 13))

    @property
    def center(self) -> np.ndarray:
        return np.array([self.ox, self.oy, self.oz])

    @property
    def scale(self) -> float:
        return self.r

    def planar_loop(self) -> list[float]:
        return spherical_planar_loop([self.l1, self.l2, self.l3, self.l4])

    def with_stat(self, stat: Stat):
        return replace(self, stat=stat)

    def normalize(self) -> SNormFourBar:
        return SNormFourBar(self.l1, self.l2, self.l3, self.l4, self.l5, self.g, self.stat)

    def rot_sphere(self) -> np.ndarray:
        return sphere_rotation(self.p1i, self.p1j, self.a)

    def transform(self, geo: GeoVar) -> SFourBar:
        """Move the sphere and rotate the mechanism on it; arc lengths are kept."""
        center = geo.apply(self.center)
        rot = geo.rot @ self.rot_sphere()
        p1_axis = rot[:, 2]
        p1i, p1j = to_sc(*p1_axis)
        # rot = rotation_between(+z, p1) @ Rz(a)
        local = rotation_between(np.array([0.0, 0.0, 1.0]), p1_axis).as_matrix().T @ rot
        return replace(
            self,
            ox=float(center[0]),
            oy=float(center[1]),
            oz=float(center[2]),
            r=self.r * geo.scale,
            p1i=p1i,
            p1j=p1j,
            a=math.atan2(local[1, 0], local[0, 0]),
        )

    def pos_array(self, angles, inv: bool) -> np.ndarray:
        return spherical_positions(
            self.center, self.r, self.p1i, self.p1j, self.a,
            self.l1, self.l2, self.l3, self.l4, self.l5, self.g, angles, inv,
        )


# =============================================================================
# Motion (planar with a motion line)
# =============================================================================

def _motion_uvec(e: float, joints: np.ndarray) -> np.ndarray:
    p43 = joints[:, 3] - joints[:, 2]
    angle = e + np.arctan2(p43[:, 1], p43[:, 0])
    return np.stack([np.cos(angle), np.sin(angle)], axis=-1)


@dataclass
class MNormFourBar(NormFourBar, PoseGen):
    """Normalized planar four-bar with a motion line at angle `e` to the coupler."""
    e: float = 0.0

    CODE_WIDTH: ClassVar[int] = 6
    BOUND: ClassVar[tuple] = _MOTION_BOUND
    BOUND_PARTIAL: ClassVar[tuple] = _MOTION_BOUND + _WINDOW_BOUND

    @classmethod
    def from_vectorized(cls, code, stat: Stat | int = Stat.C1B1) -> MNormFourBar:
        l1, l3, l4, l5, g, e = (float(v) for v in _check_code(cls, code))
        return cls(l1, l3, l4, l5, g, Stat(int(stat)), e)

    def to_vectorized(self) -> tuple[np.ndarray, Stat]:
        return np.array([self.l1, self.l3, self.l4, self.l5, self.g, self.e]), self.stat

    @classmethod
    def placeholder(cls) -> MFourBar:
        return MFourBar.zero()

    def denormalize(self) -> MFourBar:
        return MFourBar(
            0.0, 0.0, 0.0, self.l1, 1.0, self.l3, self.l4, self.l5, self.g, self.stat, self.e,
        )

    def uvec_array(self, joints: np.ndarray) -> np.ndarray:
        return _motion_uvec(self.e, joints)


@dataclass
class MFourBar(FourBar, PoseGen):
    """Placed planar four-bar with a motion line."""
    e: float = 0.0

    @classmethod
    def example(cls) -> MFourBar:
        return cls.from_fb_angle(FourBar.example(), math.pi / 6.0)

    @classmethod
    def zero(cls) -> MFourBar:
        return cls.from_fb_angle(FourBar.zero(), 0.0)

    @classmethod
    def from_fb_angle(cls, fb: FourBar, e: float) -> MFourBar:
        return cls(fb.p1x, fb.p1y, fb.a, fb.l1, fb.l2, fb.l3, fb.l4, fb.l5, fb.g, fb.stat, e)

    def into_fb(self) -> FourBar:
        return FourBar(
            self.p1x, self.p1y, self.a, self.l1, self.l2, self.l3, self.l4, self.l5, self.g, self.stat,
        )

    def normalize(self) -> MNormFourBar:
        s = self.l2
        return MNormFourBar(
            self.l1 / s, self.l3 / s, self.l4 / s, self.l5 / s, self.g, self.stat, self.e,
        )

    def uvec_array(self, joints: np.ndarray) -> np.ndarray:
        return _motion_uvec(self.e, joints)


# =============================================================================
# Registry
# =============================================================================

LINKAGE_TYPES = {
    'planar': NormFourBar,
    'spherical': SNormFourBar,
    'motion': MNormFourBar,
}


def get_linkage_type(kind: str | type) -> type:
    """Resolve a linkage name (or pass a normalized class through)."""
    if isinstance(kind, type):
        return kind
    try:
        return LINKAGE_TYPES[kind]
    except KeyError:
        raise ValueError(
            f'Unknown linkage type {kind!r}; expected one of {sorted(LINKAGE_TYPES)}',
        ) from None

