"""
Teaching-learning-based optimization adapter for four-bar path synthesis.

Each generation has two phases, both with greedy acceptance:
  - Teacher phase: learners move from the class mean toward the best member
  - Learner phase: each learner steps toward a better random peer, or away
    from a worse one

The algorithm has no tuning parameters beyond population size and
generation count.

Reference: R. V. Rao et al., "Teaching-learning-based optimization", 2011
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from fourbar_tools.synthesis_types import SynthesisResult
from optimizers.population import finish_result
from optimizers.population import ProgressCallback
from optimizers.population import ProgressTracker
from optimizers.population import StopPredicate

if TYPE_CHECKING:
    from fourbar_tools.synthesis import PathSyn

logger = logging.getLogger(__name__)


@dataclass
class TLBOConfig:
    """
    Configuration for teaching-learning-based optimization.

    Attributes:
        pop_size: Number of learners
        max_gen: Maximum generations
        seed: Random seed
    """
    pop_size: int = 64
    max_gen: int = 100
    seed: int | None = None


def _peers(n: int, rng: np.random.Generator) -> np.ndarray:
    """A random partner for every learner, never the learner itself."""
    if n < 2:
        return np.zeros(n, dtype=int)
    offset = rng.integers(1, n, size=n)
    return (np.arange(n) + offset) % n


def run_tlbo(
    syn: PathSyn,
    config: TLBOConfig | None = None,
    init_pop: np.ndarray | None = None,
    n_seeded: int = 0,
    stop: StopPredicate | None = None,
    callback: ProgressCallback | None = None,
    n_workers: int | None = None,
    **kwargs,
) -> SynthesisResult:
    """
    Run teaching-learning-based optimization on a synthesis objective.

    Args:
        syn: Synthesis objective
        config: TLBO configuration (uses defaults if not provided)
        init_pop: Starting learners (pop_size, n_dims); random if None
        n_seeded: How many init_pop rows came from an atlas (reported only)
        stop: Predicate over GenerationReport; True ends the run
        callback: Called with every GenerationReport
        n_workers: Threads used to evaluate each phase
        **kwargs: Override config fields (pop_size, max_gen, seed)

    Returns:
        SynthesisResult; success=False with `error` set if the loop raised
    """
    if config is None:
        config = TLBOConfig()
    pop_size = kwargs.get('pop_size', config.pop_size)
    max_gen = kwargs.get('max_gen', config.max_gen)
    seed = kwargs.get('seed', config.seed)

    rng = np.random.default_rng(seed)
    lower, upper = syn.bounds_array()
    if init_pop is None:
        init_pop = rng.uniform(lower, upper, size=(pop_size, syn.n_dims))
    pop = np.array(init_pop, dtype=np.float64)
    n, dims = pop.shape

    logger.info('Starting teaching-learning-based optimization')
    logger.info(f'  Dimensions: {dims}, learners: {n}, generations: {max_gen}')

    tracker = ProgressTracker(max_gen=max_gen, stop=stop, callback=callback)
    n_evaluations = 0

    def accept(trial: np.ndarray) -> None:
        nonlocal n_evaluations
        trial = np.clip(trial, lower, upper)
        trial_cost = syn.evaluate_population(trial, n_workers)
        n_evaluations += len(trial)
        better = trial_cost < cost
        pop[better] = trial[better]
        cost[better] = trial_cost[better]

    try:
        cost = syn.evaluate_population(pop, n_workers)
        n_evaluations += n
        for generation in range(1, max_gen + 1):
            # Teacher phase
            teacher = pop[np.argmin(cost)]
            factor = rng.integers(1, 3, size=(n, 1))
            accept(pop + rng.random((n, dims)) * (teacher - factor * pop.mean(axis=0)))

            # Learner phase
            peer = _peers(n, rng)
            toward = np.where((cost[peer] < cost)[:, None], pop[peer] - pop, pop - pop[peer])
            accept(pop + rng.random((n, dims)) * toward)

            if tracker.report(generation, float(cost.min()), n_evaluations):
                break
    except Exception as e:
        logger.error(f'Teaching-learning-based optimization failed: {e}')
        return SynthesisResult(
            success=False,
            method='tlbo',
            history=list(tracker.history),
            generations=tracker.generations,
            n_evaluations=n_evaluations,
            n_seeded=n_seeded,
            error=str(e),
        )

    return finish_result(syn, 'tlbo', pop[np.argmin(cost)], tracker, n_evaluations, n_seeded)
