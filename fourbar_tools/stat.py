"""
stat.py - Circuit/branch states, input-angle domains and linkage classification.

Everything here is a pure function of the four loop lengths (and, for the
angle domain, the circuit/branch tag). No geometry is solved here; the
position solver reads these results to know which angles to sample.

Key components:
  - Stat: circuit/branch tag (C1B1, C1B2, C2B1, C2B2)
  - AngleBound: legal input-angle domain (closed, open sub-arc, invalid)
  - FourBarTy: Grashof / non-Grashof type tagged by shortest/longest link
  - classify(), angle_bound(): functional entry points over a length 4-tuple
  - spherical_planar_loop(): fold spherical arc lengths to an equivalent planar loop

Loop order is always [ground, driver, coupler, follower] = [l1, l2, l3, l4].

Example:
    >>> classify([90.0, 35.0, 70.0, 70.0])
    <FourBarTy.GCRR: 'GCRR'>
    >>> angle_bound([90.0, 35.0, 70.0, 70.0]).is_closed
    True
"""
from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from enum import IntEnum

TAU = 2.0 * math.pi


# =============================================================================
# Circuit / branch tag
# =============================================================================

class Stat(IntEnum):
    """
    Circuit/branch tag of a four-bar linkage.

    The tag never changes link lengths; it only selects which root of the
    loop-closure equation is used (see AngleBound.inv).
    """
    C1B1 = 1
    C1B2 = 2
    C2B1 = 3
    C2B2 = 4

    @property
    def is_c1(self) -> bool:
        return self in (Stat.C1B1, Stat.C1B2)

    @property
    def is_b1(self) -> bool:
        return self in (Stat.C1B1, Stat.C2B1)

    def switch_circuit(self) -> Stat:
        return {
            Stat.C1B1: Stat.C2B1,
            Stat.C1B2: Stat.C2B2,
            Stat.C2B1: Stat.C1B1,
            Stat.C2B2: Stat.C1B2,
        }[self]

    def switch_branch(self) -> Stat:
        return {
            Stat.C1B1: Stat.C1B2,
            Stat.C1B2: Stat.C1B1,
            Stat.C2B1: Stat.C2B2,
            Stat.C2B2: Stat.C2B1,
        }[self]

    @property
    def label(self) -> str:
        circuit = 1 if self.is_c1 else 2
        branch = 1 if self.is_b1 else 2
        return f'Circuit {circuit}-{branch}'


# =============================================================================
# Angle domain
# =============================================================================

class BoundKind(Enum):
    CLOSED = 'closed'
    OPEN_C1B2 = 'open_c1b2'
    OPEN_C2B2 = 'open_c2b2'
    INVALID = 'invalid'


@dataclass(frozen=True)
class AngleBound:
    """
    Legal input-angle domain of a driver link.

    Attributes:
        kind: CLOSED (full turn), OPEN_C1B2 (one circuit, two branches),
              OPEN_C2B2 (two circuits, two branches) or INVALID
        start: Start of the open arc (radians), unused when closed/invalid
        end: End of the open arc, may be below start (the arc wraps)
    """
    kind: BoundKind
    start: float = 0.0
    end: float = 0.0

    # Smallest open arc considered usable by check_min()
    MIN_ANGLE = math.pi / 2.0

    @classmethod
    def closed(cls) -> AngleBound:
        return cls(BoundKind.CLOSED)

    @classmethod
    def invalid(cls) -> AngleBound:
        return cls(BoundKind.INVALID)

    @classmethod
    def from_planar_loop(cls, planar_loop: Sequence[float], stat: Stat = Stat.C1B1) -> AngleBound:
        """
        Derive the domain from the loop [l1, l2, l3, l4] with the law of cosines.

        The driver sweeps until the coupler and follower become collinear,
        stretched (l3 + l4) or folded (|l3 - l4|). In the two-circuit case the
        tag decides which of the two mirrored arcs applies.
        """
        l1, l2, l3, l4 = (float(v) for v in planar_loop)
        ordered = sorted((l1, l2, l3, l4))
        if ordered[3] > sum(ordered[:3]):
            return cls.invalid()

        reach_ok = l1 + l2 <= l3 + l4
        fold_ok = abs(l1 - l2) >= abs(l3 - l4)
        if reach_ok and fold_ok:
            return cls.closed()

        denominator = 2.0 * l1 * l2
        if reach_ok:
            d = _clamp_cos((l1 * l1 + l2 * l2 - (l3 - l4) ** 2) / denominator)
            return cls(BoundKind.OPEN_C1B2, math.acos(d), TAU - math.acos(d))
        if fold_ok:
            d = _clamp_cos((l1 * l1 + l2 * l2 - (l3 + l4) ** 2) / denominator)
            return cls(BoundKind.OPEN_C1B2, -math.acos(d), math.acos(d))

        d1 = _clamp_cos((l1 * l1 + l2 * l2 - (l3 - l4) ** 2) / denominator)
        d2 = _clamp_cos((l1 * l1 + l2 * l2 - (l3 + l4) ** 2) / denominator)
        if stat.is_c1:
            return cls(BoundKind.OPEN_C2B2, math.acos(d1), math.acos(d2))
        return cls(BoundKind.OPEN_C2B2, TAU - math.acos(d2), TAU - math.acos(d1))

    @classmethod
    def open_and_rev_at(cls, a: float, b: float) -> tuple[AngleBound, AngleBound]:
        """An open arc [a, b] and its time-reversal [b, a]."""
        return cls(BoundKind.OPEN_C1B2, a, b), cls(BoundKind.OPEN_C1B2, b, a)

    @property
    def is_valid(self) -> bool:
        return self.kind is not BoundKind.INVALID

    @property
    def is_closed(self) -> bool:
        return self.kind is BoundKind.CLOSED

    @property
    def is_open(self) -> bool:
        return self.kind in (BoundKind.OPEN_C1B2, BoundKind.OPEN_C2B2)

    @property
    def span(self) -> float:
        """Swept angle of the domain, 0 when invalid."""
        if self.kind is BoundKind.CLOSED:
            return TAU
        if not self.is_open:
            return 0.0
        end = self.end if self.end > self.start else self.end + TAU
        return end - self.start

    def check_mode(self, is_open: bool) -> AngleBound:
        """Keep the bound only if its openness matches `is_open`."""
        if self.is_valid and self.is_open == is_open:
            return self
        return AngleBound.invalid()

    def check_min(self, min_angle: float | None = None) -> AngleBound:
        """Invalidate open arcs not wider than `min_angle` (default MIN_ANGLE)."""
        if min_angle is None:
            min_angle = self.MIN_ANGLE
        if self.is_open and self.span <= min_angle:
            return AngleBound.invalid()
        return self

    def to_value(self) -> tuple[float, float] | None:
        """Return (start, end) of the sampled range, None when invalid."""
        if self.kind is BoundKind.CLOSED:
            return 0.0, TAU
        if self.is_open:
            return self.start, self.end
        return None

    def inv(self, stat: Stat) -> bool:
        """
        True when `stat` takes the second intersection root under this domain.

        A full turn separates the circuits, an open arc separates the branches.
        """
        if self.is_open:
            return not stat.is_b1
        return not stat.is_c1

    def get_states(self) -> list[Stat]:
        """Circuit/branch tags reachable under this domain."""
        if self.kind is BoundKind.CLOSED:
            return [Stat.C1B1, Stat.C2B1]
        if self.kind is BoundKind.OPEN_C1B2:
            return [Stat.C1B1, Stat.C1B2]
        if self.kind is BoundKind.OPEN_C2B2:
            return [Stat.C1B1, Stat.C1B2, Stat.C2B1, Stat.C2B2]
        return [Stat.C1B1]


def _clamp_cos(d: float) -> float:
    # Round-off at the change points can push the cosine just past +-1
    return min(1.0, max(-1.0, d))


# =============================================================================
# Linkage type
# =============================================================================

class FourBarTy(Enum):
    """Grashof subtypes are tagged by the shortest link, non-Grashof by the longest."""
    GCCC = 'GCCC'
    GCRR = 'GCRR'
    GRCR = 'GRCR'
    GRRC = 'GRRC'
    RRR1 = 'RRR1'
    RRR2 = 'RRR2'
    RRR3 = 'RRR3'
    RRR4 = 'RRR4'
    INVALID = 'INVALID'

    @classmethod
    def from_loop(cls, planar_loop: Sequence[float]) -> FourBarTy:
        lengths = [float(v) for v in planar_loop]
        s, p, q, longest = sorted(lengths)
        if longest > s + p + q:
            return cls.INVALID
        if s + longest <= p + q:
            grashof = (cls.GCCC, cls.GCRR, cls.GRCR, cls.GRRC)
            return grashof[lengths.index(s)]
        non_grashof = (cls.RRR1, cls.RRR2, cls.RRR3, cls.RRR4)
        return non_grashof[lengths.index(longest)]

    @property
    def is_valid(self) -> bool:
        return self is not FourBarTy.INVALID

    @property
    def is_grashof(self) -> bool:
        return self in (FourBarTy.GCCC, FourBarTy.GCRR, FourBarTy.GRCR, FourBarTy.GRRC)

    @property
    def is_closed_curve(self) -> bool:
        """The driver turns fully, so the traced curve closes."""
        return self in (FourBarTy.GCCC, FourBarTy.GCRR)

    @property
    def is_open_curve(self) -> bool:
        return self.is_valid and not self.is_closed_curve

    @property
    def tagged_link(self) -> int | None:
        """Loop index (0 = ground ... 3 = follower) named by the type tag."""
        if not self.is_valid:
            return None
        order = (
            (FourBarTy.GCCC, FourBarTy.RRR1),
            (FourBarTy.GCRR, FourBarTy.RRR2),
            (FourBarTy.GRCR, FourBarTy.RRR3),
            (FourBarTy.GRRC, FourBarTy.RRR4),
        )
        for idx, pair in enumerate(order):
            if self in pair:
                return idx
        return None

    @property
    def full_name(self) -> str:
        return {
            FourBarTy.GCCC: 'Grashof double crank (Drag-link, GCCC)',
            FourBarTy.GCRR: 'Grashof crank rocker (GCRR)',
            FourBarTy.GRCR: 'Grashof double rocker (GRCR)',
            FourBarTy.GRRC: 'Grashof rocker crank (GRRC)',
            FourBarTy.RRR1: 'Non-Grashof triple rocker (RRR1)',
            FourBarTy.RRR2: 'Non-Grashof triple rocker (RRR2)',
            FourBarTy.RRR3: 'Non-Grashof triple rocker (RRR3)',
            FourBarTy.RRR4: 'Non-Grashof triple rocker (RRR4)',
            FourBarTy.INVALID: 'Invalid',
        }[self]


# =============================================================================
# Functional entry points
# =============================================================================

def classify(lengths: Sequence[float]) -> FourBarTy:
    """Classify a loop [ground, driver, coupler, follower]."""
    return FourBarTy.from_loop(lengths)


def angle_bound(lengths: Sequence[float], stat: Stat = Stat.C1B1) -> AngleBound:
    """Input-angle domain of the loop [ground, driver, coupler, follower]."""
    return AngleBound.from_planar_loop(lengths, stat)


def spherical_planar_loop(arcs: Sequence[float]) -> list[float]:
    """
    Fold spherical arc lengths [l1, l2, l3, l4] into an equivalent planar loop.

    Arcs are first reduced into [0, pi]. Arcs longer than pi/2 are then
    complemented (pi - x) following Chiang's classification of spherical
    four-bars, so the planar Grashof rules apply to the result.

    Args:
        arcs: Angular link lengths in radians

    Returns:
        Planar-equivalent loop, same order as the input
    """
    ls = []
    for d in arcs:
        d = math.fmod(float(d), TAU)
        if d < 0.0:
            d += TAU
        ls.append(TAU - d if d > math.pi else d)

    longer = [i for i, d in enumerate(ls) if d > math.pi / 2.0]
    shorter = [i for i, d in enumerate(ls) if d <= math.pi / 2.0]
    if len(longer) == 1:
        longest = longer[0]
        idx = max(shorter, key=lambda i: ls[i])
        changed = math.pi - ls[idx]
        if changed < ls[longest]:
            ls[idx] = changed
            ls[longest] = math.pi - ls[longest]
    elif len(longer) == 3 and ls[shorter[0]] != math.pi / 2.0:
        for i in sorted(longer, key=lambda i: ls[i])[1:]:
            ls[i] = math.pi - ls[i]
    else:
        for i in longer:
            ls[i] = math.pi - ls[i]
    return ls
