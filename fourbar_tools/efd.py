"""
efd.py - Elliptic Fourier descriptors for planar and spatial curves.

Shape descriptor used for curve matching: a curve is decomposed into
harmonics (Kuhl & Giardina, 1982), then normalized so the coefficients no
longer depend on the starting point, rotation, scale or position of the
curve. The removed pose is kept as a GeoVar so any match can be placed back
onto the original curve.

Key components:
  - GeoVar: similarity transform (translation, rotation matrix, uniform scale)
  - Efd: normalized coefficients plus the GeoVar of the fitted curve
  - MotionSig: curve descriptor paired with a traced unit direction

Coefficient layout:
    coeffs has shape (harmonic, 2 * dim). For each coordinate axis d the
    columns (2d, 2d + 1) hold the cosine and sine amplitudes. Open curves are
    fitted after closing them by reversal, which makes every sine column zero.

Example:
    >>> efd = Efd.fit(curve, harmonic=10)
    >>> other = Efd.fit(other_curve, harmonic=10)
    >>> err = efd.distance(other)
    >>> geo = efd.geo.to(other.geo)  # maps curve's pose onto other_curve's pose
"""
from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from scipy.spatial.transform import Rotation

from fourbar_tools.curve_utils import as_curve
from fourbar_tools.curve_utils import closed_lin
from fourbar_tools.curve_utils import closed_rev

# Segments shorter than this are treated as repeated points
_EPS = 1e-12

# Cumulative Fourier power kept when the harmonic count is chosen automatically
POWER_THRESHOLD = 0.9999


# =============================================================================
# Similarity transform
# =============================================================================

@dataclass
class GeoVar:
    """
    Similarity transform p -> trans + scale * rot @ p.

    Attributes:
        trans: Translation, shape (dim,)
        rot: Proper rotation matrix, shape (dim, dim)
        scale: Uniform scale factor
    """
    trans: np.ndarray
    rot: np.ndarray
    scale: float = 1.0

    def __post_init__(self):
        self.trans = np.asarray(self.trans, dtype=np.float64).reshape(-1)
        self.rot = np.asarray(self.rot, dtype=np.float64)
        self.scale = float(self.scale)

    @classmethod
    def identity(cls, dim: int) -> GeoVar:
        return cls(np.zeros(dim), np.eye(dim), 1.0)

    @classmethod
    def from_planar(cls, trans, angle: float, scale: float = 1.0) -> GeoVar:
        c, s = math.cos(angle), math.sin(angle)
        return cls(trans, np.array([[c, -s], [s, c]]), scale)

    @classmethod
    def from_rotation(cls, trans, rotation: Rotation, scale: float = 1.0) -> GeoVar:
        return cls(trans, rotation.as_matrix(), scale)

    @property
    def dim(self) -> int:
        return len(self.trans)

    @property
    def angle(self) -> float:
        """Rotation angle of a planar transform."""
        if self.dim != 2:
            raise ValueError('angle is only defined for planar transforms')
        return math.atan2(self.rot[1, 0], self.rot[0, 0])

    @property
    def rotation(self) -> Rotation:
        """scipy Rotation of a spatial transform."""
        if self.dim != 3:
            raise ValueError('rotation is only defined for spatial transforms')
        return Rotation.from_matrix(self.rot)

    def apply(self, points) -> np.ndarray:
        """Transform a point (dim,) or points (n, dim)."""
        pts = np.asarray(points, dtype=np.float64)
        return self.trans + self.scale * pts @ self.rot.T

    def compose(self, other: GeoVar) -> GeoVar:
        """Transform applying `other` first, then `self`."""
        return GeoVar(
            self.trans + self.scale * self.rot @ other.trans,
            self.rot @ other.rot,
            self.scale * other.scale,
        )

    def inverse(self) -> GeoVar:
        rot_t = self.rot.T
        return GeoVar(-rot_t @ self.trans / self.scale, rot_t, 1.0 / self.scale)

    def to(self, other: GeoVar) -> GeoVar:
        """Transform carrying this pose onto `other`'s pose."""
        return other.compose(self.inverse())

    def copy(self) -> GeoVar:
        return GeoVar(self.trans.copy(), self.rot.copy(), self.scale)


# =============================================================================
# Descriptor
# =============================================================================

@dataclass
class Efd:
    """
    Normalized elliptic Fourier descriptor.

    Attributes:
        coeffs: Normalized coefficients, shape (harmonic, 2 * dim)
        geo: Pose of the fitted curve (normalized shape -> original curve)
    """
    coeffs: np.ndarray
    geo: GeoVar

    def __post_init__(self):
        self.coeffs = np.asarray(self.coeffs, dtype=np.float64)

    @classmethod
    def from_coeffs(cls, coeffs) -> Efd:
        """Wrap stored coefficients; the pose is unknown and left as identity."""
        coeffs = np.asarray(coeffs, dtype=np.float64)
        return cls(coeffs, GeoVar.identity(coeffs.shape[1] // 2))

    @classmethod
    def fit(cls, curve, harmonic: int | None = None, is_open: bool = False) -> Efd:
        """
        Fit a descriptor to a sampled curve.

        Args:
            curve: Points, shape (n, dim), dim in (2, 3)
            harmonic: Number of harmonics, chosen by Fourier power when None
            is_open: Treat the curve as open (closed by reversal before fitting)

        Returns:
            Fitted Efd

        Raises:
            ValueError: Curve is too short or has no extent
        """
        efd = cls.try_fit(curve, harmonic, is_open)
        if efd is None:
            raise ValueError('Curve is degenerate: need at least 2 distinct points')
        return efd

    @classmethod
    def try_fit(cls, curve, harmonic: int | None = None, is_open: bool = False) -> Efd | None:
        """Same as fit() but returns None for degenerate curves."""
        pts = as_curve(curve)
        if pts.shape[1] not in (2, 3):
            raise ValueError(f'Only planar or spatial curves are supported, got dim={pts.shape[1]}')
        if harmonic is not None and harmonic < 1:
            raise ValueError(f'harmonic must be positive, got {harmonic}')
        if len(pts) < 2:
            return None
        pts = closed_rev(pts) if is_open else closed_lin(pts)

        if harmonic is None:
            raw = _kuhl_giardina(pts, _max_harmonic(pts))
            if raw is None:
                return None
            harmonic = _harmonic_by_power(raw[0], raw[1])
            raw = (raw[0][:harmonic], raw[1][:harmonic], raw[2])
        else:
            raw = _kuhl_giardina(pts, harmonic)
            if raw is None:
                return None

        a, b, center = raw
        normalized = _normalize(a, b)
        if normalized is None:
            return None
        a_norm, b_norm, rot, scale = normalized
        if is_open:
            b_norm = np.zeros_like(b_norm)
        coeffs = np.empty((harmonic, 2 * pts.shape[1]))
        coeffs[:, 0::2] = a_norm
        coeffs[:, 1::2] = b_norm
        return cls(coeffs, GeoVar(center, rot, scale))

    @property
    def harmonic(self) -> int:
        return self.coeffs.shape[0]

    @property
    def dim(self) -> int:
        return self.coeffs.shape[1] // 2

    @property
    def is_open(self) -> bool:
        """Open-curve descriptors carry no sine terms."""
        return bool(np.all(self.coeffs[:, 1::2] == 0.0))

    def distance(self, other: Efd) -> float:
        """L2 distance between coefficient sets, zero-padding the shorter one."""
        return coeffs_distance(self.coeffs, other.coeffs)

    def generate_norm(self, res: int) -> np.ndarray:
        """Sample the normalized shape (unit scale, no pose)."""
        if res < 1:
            raise ValueError(f'res must be positive, got {res}')
        if self.is_open:
            t = np.linspace(0.0, math.pi, res)
        else:
            t = np.linspace(0.0, 2.0 * math.pi, res, endpoint=False)
        n = np.arange(1, self.harmonic + 1)[:, None]
        cos_nt = np.cos(n * t)
        sin_nt = np.sin(n * t)
        a = self.coeffs[:, 0::2]
        b = self.coeffs[:, 1::2]
        return cos_nt.T @ a + sin_nt.T @ b

    def generate(self, res: int) -> np.ndarray:
        """Sample the shape placed back at the fitted pose."""
        return self.geo.apply(self.generate_norm(res))


@dataclass
class MotionSig:
    """
    Shape signature of a curve traced together with a unit direction.

    The direction field is turned into a second curve, the line trace
    `curve + s * vectors` where s is the fitted scale of the curve, so both
    curves scale together. The line trace is kept as its own descriptor
    plus its pose relative to the curve's normalized frame.

    Attributes:
        curve: Descriptor of the traced curve
        line: Descriptor of the line trace
        rel: Pose of the line trace in the curve's normalized frame
    """
    curve: Efd
    line: Efd
    rel: GeoVar

    @classmethod
    def fit(cls, curve, vectors, harmonic: int | None = None, is_open: bool = False) -> MotionSig:
        """
        Fit a signature to sampled points and their unit directions.

        Raises:
            ValueError: Shapes differ, or either trace is degenerate
        """
        sig = cls.try_fit(curve, vectors, harmonic, is_open)
        if sig is None:
            raise ValueError('Motion is degenerate: need at least 2 distinct points')
        return sig

    @classmethod
    def try_fit(cls, curve, vectors, harmonic: int | None = None, is_open: bool = False) -> MotionSig | None:
        pts = as_curve(curve)
        vecs = as_curve(vectors)
        if pts.shape != vecs.shape:
            raise ValueError(f'Curve {pts.shape} and vectors {vecs.shape} must have the same shape')
        curve_efd = Efd.try_fit(pts, harmonic, is_open)
        if curve_efd is None:
            return None
        line_efd = Efd.try_fit(pts + curve_efd.geo.scale * vecs, curve_efd.harmonic, is_open)
        if line_efd is None:
            return None
        return cls(curve_efd, line_efd, curve_efd.geo.inverse().compose(line_efd.geo))

    @property
    def harmonic(self) -> int:
        return self.curve.harmonic

    def distance(self, other: MotionSig) -> float:
        """Largest of the curve, line-trace and relative-pose discrepancies."""
        pose = (
            np.linalg.norm(self.rel.trans - other.rel.trans)
            + np.linalg.norm(self.rel.rot - other.rel.rot)
            + abs(math.log(self.rel.scale / other.rel.scale))
        )
        return max(self.curve.distance(other.curve), self.line.distance(other.line), float(pose))


def coeffs_distance(a: np.ndarray, b: np.ndarray) -> float:
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape[1] != b.shape[1]:
        raise ValueError(f'Coefficient widths differ: {a.shape[1]} vs {b.shape[1]}')
    h = max(a.shape[0], b.shape[0])
    diff = np.zeros((h, a.shape[1]))
    diff[:a.shape[0]] += a
    diff[:b.shape[0]] -= b
    return float(np.linalg.norm(diff))


def is_open_coeffs(coeffs: np.ndarray) -> np.ndarray:
    """Per-row open flag for a stack of coefficient arrays (n, harmonic, 2 * dim)."""
    return np.all(np.asarray(coeffs)[..., 1::2] == 0.0, axis=(-2, -1))


# =============================================================================
# Internals
# =============================================================================

def _max_harmonic(pts: np.ndarray) -> int:
    # Nyquist limit of the closed polygon, capped to keep auto fitting cheap
    return int(max(1, min(len(pts) // 2, 128)))


def _kuhl_giardina(pts: np.ndarray, harmonic: int):
    """Raw cosine/sine amplitudes (harmonic, dim) of a closed polygon plus its centroid."""
    seg = np.diff(pts, axis=0)
    dt = np.linalg.norm(seg, axis=1)
    keep = dt > _EPS
    if not np.any(keep):
        return None
    starts = pts[:-1][keep]
    ends = pts[1:][keep]
    seg = seg[keep]
    dt = dt[keep]
    t = np.concatenate([[0.0], np.cumsum(dt)])
    period = t[-1]

    n = np.arange(1, harmonic + 1)[:, None]
    phi = 2.0 * np.pi * n * t / period
    cos_diff = np.cos(phi[:, 1:]) - np.cos(phi[:, :-1])
    sin_diff = np.sin(phi[:, 1:]) - np.sin(phi[:, :-1])
    factor = period / (2.0 * n * n * np.pi * np.pi)
    slope = seg / dt[:, None]
    a = factor * (cos_diff @ slope)
    b = factor * (sin_diff @ slope)
    center = ((starts + ends) * 0.5 * dt[:, None]).sum(axis=0) / period
    return a, b, center


def _harmonic_by_power(a: np.ndarray, b: np.ndarray) -> int:
    power = (a * a).sum(axis=1) + (b * b).sum(axis=1)
    total = power.sum()
    if total <= 0.0:
        return 1
    cumulative = np.cumsum(power) / total
    return int(np.searchsorted(cumulative, POWER_THRESHOLD) + 1)


def _phase_shift(a: np.ndarray, b: np.ndarray, theta: float):
    n = np.arange(1, a.shape[0] + 1)[:, None]
    c = np.cos(n * theta)
    s = np.sin(n * theta)
    return a * c + b * s, -a * s + b * c


def _frame(a: np.ndarray, b: np.ndarray) -> np.ndarray | None:
    """Rotation whose first axis follows the major semi-axis of the first ellipse."""
    major = a[0]
    length = np.linalg.norm(major)
    if length <= _EPS:
        return None
    e1 = major / length
    if len(e1) == 2:
        return np.array([[e1[0], -e1[1]], [e1[1], e1[0]]])

    e2 = None
    for vec in np.vstack([b[0:1], np.column_stack([a[1:], b[1:]]).reshape(-1, 3)]):
        ortho = vec - (vec @ e1) * e1
        norm = np.linalg.norm(ortho)
        if norm > 1e-9 * length:
            e2 = ortho / norm
            break
    if e2 is None:
        # Straight-line shape, any perpendicular works
        helper = np.eye(3)[np.argmin(np.abs(e1))]
        ortho = helper - (helper @ e1) * e1
        e2 = ortho / np.linalg.norm(ortho)
    e3 = np.cross(e1, e2)
    return np.column_stack([e1, e2, e3])


def _normalize(a: np.ndarray, b: np.ndarray):
    """Remove starting point, rotation and scale. Returns (a, b, rot, scale) or None."""
    a1, b1 = a[0], b[0]
    theta = 0.5 * math.atan2(2.0 * float(a1 @ b1), float(a1 @ a1 - b1 @ b1))

    candidates = []
    for shift in (theta, theta + math.pi):
        a_s, b_s = _phase_shift(a, b, shift)
        rot = _frame(a_s, b_s)
        if rot is None:
            return None
        scale = float(np.linalg.norm(a_s[0]))
        candidates.append((a_s @ rot / scale, b_s @ rot / scale, rot, scale))

    if a.shape[0] < 2:
        return candidates[0]
    # theta and theta + pi both maximize the first semi-axis; keep the one
    # that is positive on the entry where the two candidates disagree most
    first = np.hstack([candidates[0][0][1:], candidates[0][1][1:]])
    second = np.hstack([candidates[1][0][1:], candidates[1][1][1:]])
    idx = np.unravel_index(np.argmax(np.abs(first - second)), first.shape)
    return candidates[0] if first[idx] >= second[idx] else candidates[1]
