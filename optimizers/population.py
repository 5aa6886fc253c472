"""
population.py - Shared pieces of the synthesis optimizer adapters.

Contains:
  - random_population(): uniform members inside a PathSyn's bounds
  - initial_population(): atlas-seeded population padded with random members
  - ProgressTracker: per-generation history, stop predicate and progress callback
  - finish_result(): builds the SynthesisResult from the best trial vector
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from typing import TYPE_CHECKING

import numpy as np

from fourbar_tools.synthesis import INFEASIBLE_ERROR
from fourbar_tools.synthesis_types import GenerationReport
from fourbar_tools.synthesis_types import SynthesisResult

if TYPE_CHECKING:
    from atlas_gen.atlas import Atlas
    from fourbar_tools.synthesis import PathSyn

logger = logging.getLogger(__name__)

StopPredicate = Callable[[GenerationReport], bool]
ProgressCallback = Callable[[GenerationReport], None]


# =============================================================================
# Initial population
# =============================================================================


def random_population(syn: PathSyn, n: int, rng: np.random.Generator) -> np.ndarray:
    """Draw `n` trial vectors uniformly inside the synthesis bounds."""
    lower, upper = syn.bounds_array()
    return rng.uniform(lower, upper, size=(n, syn.n_dims))


def initial_population(
    syn: PathSyn,
    pop_size: int,
    rng: np.random.Generator,
    atlas: Atlas | None = None,
    target_curve=None,
) -> tuple[np.ndarray, int]:
    """
    Build the starting population.

    With an atlas, the nearest stored codes to the target come first; in
    partial mode their window values are drawn at random. The rest of the
    population is uniform random.

    Returns:
        (population of shape (pop_size, n_dims), number of atlas-seeded members)

    Raises:
        ValueError: Atlas holds a different linkage type than the objective
    """
    if pop_size < 1:
        raise ValueError(f'pop_size must be positive, got {pop_size}')
    population = random_population(syn, pop_size, rng)
    if atlas is None or atlas.is_empty:
        return population, 0
    if atlas.linkage_cls is not syn.linkage_cls:
        raise ValueError(
            f'Atlas holds {atlas.linkage_cls.__name__} but the objective uses {syn.linkage_cls.__name__}',
        )

    target = syn.efd if target_curve is None else target_curve
    _, pool = atlas.fetch_raw(target, is_open=syn.mode.is_target_open, size=pop_size)
    width = syn.linkage_cls.CODE_WIDTH
    for i, (_, norm) in enumerate(pool):
        code, _ = norm.to_vectorized()
        population[i, :width] = code

    lower, upper = syn.bounds_array()
    np.clip(population, lower, upper, out=population)
    logger.info(f'  Seeded {len(pool)}/{pop_size} members from atlas')
    return population, len(pool)


# =============================================================================
# Progress tracking
# =============================================================================


@dataclass
class ProgressTracker:
    """
    Records the best value of every generation and decides when to stop.

    Attributes:
        max_gen: Generation limit
        stop: Optional predicate; returning True ends the run early
        callback: Optional progress hook, called before the stop predicate
        log_every: Log the running best every this many generations
    """
    max_gen: int
    stop: StopPredicate | None = None
    callback: ProgressCallback | None = None
    log_every: int = 10
    history: list[float] = field(default_factory=list)
    stopped_early: bool = False

    def report(self, generation: int, best_error: float, n_evaluations: int) -> bool:
        """Record one generation; returns True when the run should end."""
        self.history.append(float(best_error))
        report = GenerationReport(generation, float(best_error), n_evaluations)
        if self.log_every and generation % self.log_every == 0:
            logger.info(f'  Generation {generation}/{self.max_gen}: best={best_error:.6f}')
        if self.callback is not None:
            self.callback(report)
        if generation >= self.max_gen:
            return True
        if self.stop is not None and self.stop(report):
            logger.info(f'  Stop condition met at generation {generation}')
            self.stopped_early = True
            return True
        return False

    @property
    def generations(self) -> int:
        return len(self.history)


def finish_result(
    syn: PathSyn,
    method: str,
    best_code,
    tracker: ProgressTracker,
    n_evaluations: int,
    n_seeded: int = 0,
) -> SynthesisResult:
    """Re-score the best trial vector and package the run's outcome."""
    best_code = np.asarray(best_code, dtype=np.float64)
    best_error, linkage = syn.fitness(best_code)
    feasible = best_error < INFEASIBLE_ERROR
    logger.info(f'{method} finished: best={best_error:.6f}, generations={tracker.generations}')
    return SynthesisResult(
        success=feasible,
        method=method,
        best_error=float(best_error),
        best_code=best_code,
        linkage=linkage,
        history=list(tracker.history),
        generations=tracker.generations,
        n_evaluations=n_evaluations,
        n_seeded=n_seeded,
        error=None if feasible else 'No feasible linkage found',
    )
