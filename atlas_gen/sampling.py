"""
sampling.py - Rejection sampling of intrinsic linkage codes for atlas generation.

Draws uniform random codes inside a linkage type's synthesis bounds, expands
each draw into every circuit/branch tag its angle domain allows, and keeps
the candidates whose traced curve matches the requested kind (open or
closed) and has enough points to fit a descriptor.

Main functions:
    - sample_codes(): uniform codes inside the (non-window) bounds
    - evaluate_code(): accepted (code, stat, coefficients) entries of one draw
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from fourbar_tools.efd import Efd
from fourbar_tools.stat import Stat

logger = logging.getLogger(__name__)


@dataclass
class AtlasConfig:
    """
    Configuration for atlas generation.

    Attributes:
        size: Number of entries to keep
        res: Samples per generated curve
        harmonic: Harmonics of every stored descriptor
        is_open: Generate open-curve (rocking) linkages instead of full-turn ones
        seed: Seed for reproducible draws (single-threaded)
        max_draws: Give up after this many draws; defaults to 100 * size
    """
    size: int = 102400
    res: int = 720
    harmonic: int = 20
    is_open: bool = False
    seed: int | None = None
    max_draws: int | None = None

    def __post_init__(self):
        if self.size < 1:
            raise ValueError(f'size must be positive, got {self.size}')
        if self.res < 2:
            raise ValueError(f'res must be at least 2, got {self.res}')
        if self.harmonic < 1:
            raise ValueError(f'harmonic must be positive, got {self.harmonic}')
        if self.max_draws is None:
            self.max_draws = 100 * self.size


@dataclass
class AtlasEntry:
    code: np.ndarray
    stat: Stat
    coeffs: np.ndarray


def sample_codes(rng: np.random.Generator, linkage_cls: type, n: int) -> np.ndarray:
    """Draw `n` codes uniformly inside linkage_cls.BOUND, shape (n, CODE_WIDTH)."""
    bound = np.asarray(linkage_cls.BOUND, dtype=np.float64)
    return rng.uniform(bound[:, 0], bound[:, 1], size=(n, len(bound)))


def evaluate_code(linkage_cls: type, code, config: AtlasConfig) -> list[AtlasEntry]:
    """
    Expand one draw into its accepted atlas entries.

    Every reachable circuit/branch tag is tried; a tag is accepted when its
    angle domain has the requested openness, the curve keeps more than one
    finite point, and a descriptor can be fitted.
    """
    base = linkage_cls.from_vectorized(code, Stat.C1B1)
    entries = []
    for stat in base.angle_bound().get_states():
        fb = base.with_stat(stat)
        value = fb.angle_bound().check_mode(config.is_open).to_value()
        if value is None:
            continue
        curve = fb.curve_in(value[0], value[1], config.res)
        if len(curve) <= 1:
            continue
        efd = Efd.try_fit(curve, config.harmonic, is_open=config.is_open)
        if efd is None:
            continue
        entries.append(AtlasEntry(np.asarray(code, dtype=np.float64), stat, efd.coeffs))
    return entries
