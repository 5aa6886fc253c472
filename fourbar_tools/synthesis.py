"""
synthesis.py - Dimensional (path) synthesis objective for four-bar linkages.

PathSyn turns a target curve into an optimization problem that any
population-based optimizer can consume: a box of per-dimension bounds and a
fitness function over trial vectors. The optimizer never sees linkages.
MotionSyn does the same for a motion target: the traced curve plus the
direction of the linkage's motion line at every point.

Trial vector layout:
    [intrinsic code (CODE_WIDTH values), window start, window end]
    The two window values only exist in Mode.PARTIAL.

Fitness evaluation of one trial vector:
  1. Build the normalized linkage from the code
  2. Reject it if its angle domain does not match the mode (closed/open)
  3. Enumerate every reachable circuit/branch tag, and in partial mode both
     window directions; open mode also tries the reversed curve
  4. Sample each candidate curve, fit a descriptor at the target's harmonic
     count, align it to the target and score the descriptor distance
  5. Keep the minimum, together with the placed (target-aligned) linkage

Infeasible candidates are scored with INFEASIBLE_ERROR, never raised: the
optimizer has to keep evaluating even the worst regions of the search space.

Example:
    >>> syn = PathSyn.from_curve(target_curve, Mode.CLOSED, 'planar')
    >>> err, fb = syn.fitness(trial_vector)
    >>> motion = MotionSyn.from_uvec(target_curve, target_vectors, Mode.OPEN)
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum

import numpy as np

from fourbar_tools.curve_utils import get_valid_part
from fourbar_tools.efd import Efd
from fourbar_tools.efd import MotionSig
from fourbar_tools.kinematics import PoseGen
from fourbar_tools.linkage import get_linkage_type
from fourbar_tools.parallel import parallel_map
from fourbar_tools.stat import Stat
from fourbar_tools.stat import TAU

logger = logging.getLogger(__name__)

# Smallest usable input-angle window (pi/16)
MIN_ANGLE = math.pi / 16.0

INFEASIBLE_ERROR = 1e10

DEFAULT_RES = 180


class Mode(Enum):
    """
    Synthesis mode.

    CLOSED: closed target matched by a full-turn linkage
    PARTIAL: open target matched by a window of a full-turn linkage
    OPEN: open target matched by a rocking (open-domain) linkage
    """
    CLOSED = 'closed'
    PARTIAL = 'partial'
    OPEN = 'open'

    @property
    def is_target_open(self) -> bool:
        return self is not Mode.CLOSED

    @property
    def is_result_open(self) -> bool:
        return self is Mode.OPEN


@dataclass(frozen=True)
class _Candidate:
    stat: Stat
    start: float
    end: float
    reverse: bool = False

class _Synthesis:
    """
    Mode, bounds, constraints and candidate enumeration shared by the objectives.

    Subclasses trace and score one circuit/branch candidate in _score().
    """

    # Objectives over linkages carrying a motion line set this
    POSED = False

    def __init__(
        self,
        target: Efd,
        mode: Mode = Mode.CLOSED,
        linkage_type: str | type = 'planar',
        res: int = DEFAULT_RES,
        n_workers: int | None = None,
    ):
        self.linkage_cls = get_linkage_type(linkage_type)
        if issubclass(self.linkage_cls, PoseGen) != self.POSED:
            if self.POSED:
                raise ValueError(f'{self.linkage_cls.__name__} has no motion line; use PathSyn')
            raise ValueError(f'{self.linkage_cls.__name__} carries a motion line; use MotionSyn')
        if target.dim != self.linkage_cls.DIM:
            raise ValueError(
                f'Target is {target.dim}-D but {self.linkage_cls.__name__} traces {self.linkage_cls.DIM}-D curves',
            )
        if res < 1:
            raise ValueError(f'res must be positive, got {res}')
        self.efd = target
        self.mode = Mode(mode)
        self.res = res
        self.n_workers = n_workers
        self.origin: np.ndarray | None = None
        self.scale: float | None = None

    # -------------------------------------------------------------------------
    # Constraints
    # -------------------------------------------------------------------------

    def set_origin(self, origin):
        """Penalize solutions whose pivot/sphere center moves away from `origin`."""
        origin = np.asarray(origin, dtype=np.float64).reshape(-1)
        if len(origin) != self.linkage_cls.DIM:
            raise ValueError(f'origin must have {self.linkage_cls.DIM} values')
        self.origin = origin
        return self

    def set_scale(self, scale: float):
        """Penalize solutions whose driver length/sphere radius differs from `scale`."""
        if scale <= 0:
            raise ValueError(f'scale must be positive, got {scale}')
        self.scale = float(scale)
        return self

    def on_unit(self):
        """Constrain the solution to the origin at unit scale."""
        return self.set_origin(np.zeros(self.linkage_cls.DIM)).set_scale(1.0)

    def unit_err(self, geo) -> float:
        """Largest violation of the origin/scale constraints by a placement."""
        err = 0.0
        if self.origin is not None:
            err = max(err, float(np.linalg.norm(geo.trans - self.origin)))
        if self.scale is not None:
            err = max(err, abs(geo.scale - self.scale))
        return err

    # -------------------------------------------------------------------------
    # Optimizer interface
    # -------------------------------------------------------------------------

    def harmonic(self) -> int:
        return self.efd.harmonic

    def bound(self) -> tuple[tuple[float, float], ...]:
        """Per-dimension [low, high] of the trial vector."""
        if self.mode is Mode.PARTIAL:
            return self.linkage_cls.BOUND_PARTIAL
        return self.linkage_cls.BOUND

    def bounds_array(self) -> tuple[np.ndarray, np.ndarray]:
        """Lower and upper bounds as arrays."""
        bound = np.asarray(self.bound(), dtype=np.float64)
        return bound[:, 0].copy(), bound[:, 1].copy()

    @property
    def n_dims(self) -> int:
        return len(self.bound())

    def infeasible(self):
        return INFEASIBLE_ERROR, self.linkage_cls.placeholder()

    def fitness(self, xs):
        """
        Score a trial vector.

        Returns:
            (error, placed linkage); (INFEASIBLE_ERROR, placeholder) when no
            circuit/branch candidate produces a usable curve
        """
        xs = np.asarray(xs, dtype=np.float64).reshape(-1)
        if len(xs) != self.n_dims:
            raise ValueError(f'Trial vector must have {self.n_dims} values, got {len(xs)}')
        width = self.linkage_cls.CODE_WIDTH
        fb = self.linkage_cls.from_vectorized(xs[:width], Stat.C1B1)
        bound = fb.angle_bound().check_mode(self.mode.is_result_open)
        if not bound.is_valid:
            return self.infeasible()

        candidates = self._candidates(fb, bound, xs[width:])
        scored = parallel_map(lambda cand: self._score(fb, cand), candidates, self.n_workers)
        scored = [item for item in scored if item is not None]
        if not scored:
            return self.infeasible()
        return min(scored, key=lambda item: item[0])

    def evaluate(self, xs) -> float:
        """Scalar view of fitness() for optimizers."""
        return float(self.fitness(xs)[0])

    def evaluate_population(self, population, n_workers: int | None = None) -> np.ndarray:
        """Evaluate every row of a population, optionally in parallel."""
        rows = np.atleast_2d(np.asarray(population, dtype=np.float64))
        return np.array(parallel_map(self.evaluate, list(rows), n_workers), dtype=np.float64)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _candidates(self, fb, bound, window) -> list[_Candidate]:
        states = bound.get_states()
        if self.mode is Mode.CLOSED:
            return [_Candidate(stat, 0.0, TAU) for stat in states]

        if self.mode is Mode.OPEN:
            candidates = []
            for stat in states:
                value = fb.with_stat(stat).angle_bound().check_min(MIN_ANGLE).to_value()
                if value is None:
                    continue
                candidates.append(_Candidate(stat, value[0], value[1]))
                candidates.append(_Candidate(stat, value[0], value[1], reverse=True))
            return candidates

        candidates = []
        for start, end in ((window[0], window[1]), (window[1], window[0])):
            if end <= start:
                end += TAU
            if end - start <= MIN_ANGLE:
                continue
            candidates.extend(_Candidate(stat, float(start), float(end)) for stat in states)
        return candidates

    def _score(self, fb, cand: _Candidate):
        raise NotImplementedError


class PathSyn(_Synthesis):
    """
    Path-generation objective.

    Args:
        target: Descriptor of the target curve
        mode: Synthesis mode
        linkage_type: 'planar', 'spherical' or a normalized class without a motion line
        res: Samples per candidate curve
        n_workers: Threads used for the candidate enumeration inside fitness()
    """

    @classmethod
    def from_curve(
        cls,
        curve,
        mode: Mode = Mode.CLOSED,
        linkage_type: str | type = 'planar',
        harmonic: int | None = None,
        **kwargs,
    ) -> PathSyn:
        """
        Build the objective from a sampled target curve.

        Non-finite points are cut away (longest finite run is kept) and the
        harmonic count is picked from the curve's Fourier power when None.

        Raises:
            ValueError: Fewer than 3 usable points
        """
        mode = Mode(mode)
        valid = get_valid_part(curve)
        if len(valid) < 3:
            raise ValueError(f'Target curve needs at least 3 finite points, got {len(valid)}')
        target = Efd.fit(valid, harmonic, is_open=mode.is_target_open)
        logger.debug(f'Target descriptor: harmonic={target.harmonic}, points={len(valid)}')
        return cls(target, mode, linkage_type, **kwargs)

    @classmethod
    def from_linkage(cls, linkage, mode: Mode = Mode.CLOSED, res: int = DEFAULT_RES, **kwargs) -> PathSyn:
        """Use the traced curve of a placed linkage as the target."""
        norm = linkage.normalize()
        return cls.from_curve(linkage.curve(res), mode, type(norm), res=res, **kwargs)

    def _score(self, fb, cand: _Candidate):
        linkage = fb.with_stat(cand.stat)
        curve = linkage.curve_in(cand.start, cand.end, self.res)
        if len(curve) <= 2:
            return None
        if cand.reverse:
            curve = curve[::-1]
        efd = Efd.try_fit(curve, self.harmonic(), is_open=self.mode.is_target_open)
        if efd is None:
            return None
        geo = efd.geo.to(self.efd.geo)
        err = max(efd.distance(self.efd), self.unit_err(geo))
        return err, linkage.trans_denorm(geo)


class MotionSyn(_Synthesis):
    """
    Motion-generation objective: a traced curve plus the direction of the
    motion line at every point.

    The error of a candidate is the largest of its curve, line-trace and
    relative-pose discrepancies (see MotionSig.distance) and the origin/scale
    constraint violations.

    Args:
        target: Signature of the target motion
        mode: Synthesis mode
        linkage_type: 'motion' or a normalized class with a motion line
        res: Samples per candidate curve
        n_workers: Threads used for the candidate enumeration inside fitness()
    """

    POSED = True

    def __init__(
        self,
        target: MotionSig,
        mode: Mode = Mode.CLOSED,
        linkage_type: str | type = 'motion',
        res: int = DEFAULT_RES,
        n_workers: int | None = None,
    ):
        super().__init__(target.curve, mode, linkage_type, res, n_workers)
        self.sig = target

    @classmethod
    def from_uvec(
        cls,
        curve,
        vectors,
        mode: Mode = Mode.CLOSED,
        linkage_type: str | type = 'motion',
        harmonic: int | None = None,
        **kwargs,
    ) -> MotionSyn:
        """
        Build the objective from target points and their unit directions.

        Rows where either array is non-finite are cut away (longest finite
        run is kept).

        Raises:
            ValueError: Shapes differ, or fewer than 3 usable points
        """
        mode = Mode(mode)
        pts = np.asarray(curve, dtype=np.float64)
        vecs = np.asarray(vectors, dtype=np.float64)
        if pts.shape != vecs.shape or pts.ndim != 2:
            raise ValueError(f'Curve {pts.shape} and vectors {vecs.shape} must have the same (n, dim) shape')
        dim = pts.shape[1]
        valid = get_valid_part(np.hstack([pts, vecs]))
        if len(valid) < 3:
            raise ValueError(f'Target motion needs at least 3 finite points, got {len(valid)}')
        target = MotionSig.fit(valid[:, :dim], valid[:, dim:], harmonic, is_open=mode.is_target_open)
        logger.debug(f'Target motion signature: harmonic={target.harmonic}, points={len(valid)}')
        return cls(target, mode, linkage_type, **kwargs)

    @classmethod
    def from_series(cls, curve1, curve2, mode: Mode = Mode.CLOSED, **kwargs) -> MotionSyn:
        """Build the objective from two point series; directions point from curve1 to curve2."""
        pts = np.asarray(curve1, dtype=np.float64)
        diff = np.asarray(curve2, dtype=np.float64) - pts
        with np.errstate(invalid='ignore', divide='ignore'):
            vectors = diff / np.linalg.norm(diff, axis=-1, keepdims=True)
        return cls.from_uvec(pts, vectors, mode, **kwargs)

    @classmethod
    def from_linkage(cls, linkage, mode: Mode = Mode.CLOSED, res: int = DEFAULT_RES, **kwargs) -> MotionSyn:
        """Use the traced pose of a placed motion linkage as the target."""
        norm = linkage.normalize()
        curve, vectors = linkage.pose(res)
        return cls.from_uvec(curve, vectors, mode, type(norm), res=res, **kwargs)

    def _score(self, fb, cand: _Candidate):
        linkage = fb.with_stat(cand.stat)
        curve, vectors = linkage.pose_in(cand.start, cand.end, self.res)
        if len(curve) <= 2:
            return None
        if cand.reverse:
            curve, vectors = curve[::-1], vectors[::-1]
        sig = MotionSig.try_fit(curve, vectors, self.harmonic(), is_open=self.mode.is_target_open)
        if sig is None:
            return None
        geo = sig.curve.geo.to(self.efd.geo)
        err = max(sig.distance(self.sig), self.unit_err(geo))
        return err, linkage.trans_denorm(geo)
