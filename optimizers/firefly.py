"""
Firefly algorithm adapter for four-bar path synthesis.

Every firefly moves toward each brighter (lower error) one with an
attraction that decays with squared distance, plus a random walk that
shrinks every generation. Distances are measured in bound-normalized
coordinates so wide and narrow dimensions attract alike. The best vector
seen so far is kept apart from the swarm.

Reference: X.-S. Yang, "Firefly algorithms for multimodal optimization", 2009
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
class FireflyConfig:
    """
    Configuration for the firefly algorithm.

    Attributes:
        pop_size: Number of fireflies
        max_gen: Maximum generations
        alpha: Random step, as a fraction of each dimension's bound width
        alpha_decay: Multiplier applied to alpha after every generation
        beta0: Attraction at zero distance
        gamma: Light absorption (in bound-normalized units)
        seed: Random seed
    """
    pop_size: int = 64
    max_gen: int = 100
    alpha: float = 0.05
    alpha_decay: float = 0.97
    beta0: float = 1.0
    gamma: float = 1.0
    seed: int | None = None


def _move(pos, cost, span, alpha, beta0, gamma, rng) -> np.ndarray:
    """One sweep: each firefly moves toward every brighter one, then walks."""
    unit = pos / span
    moved = pos.copy()
    for i in range(len(pos)):
        brighter = np.flatnonzero(cost < cost[i])
        for j in brighter:
            r2 = float(np.sum((unit[j] - moved[i] / span) ** 2))
            moved[i] += beta0 * np.exp(-gamma * r2) * (pos[j] - moved[i])
        moved[i] += alpha * (rng.random(pos.shape[1]) - 0.5) * span
    return moved


def run_firefly(
    syn: PathSyn,
    config: FireflyConfig | None = None,
    init_pop: np.ndarray | None = None,
    n_seeded: int = 0,
    stop: StopPredicate | None = None,
    callback: ProgressCallback | None = None,
    n_workers: int | None = None,
    **kwargs,
) -> SynthesisResult:
    """
    Run the firefly algorithm on a synthesis objective.

    Args:
        syn: Synthesis objective
        config: Firefly configuration (uses defaults if not provided)
        init_pop: Starting positions (pop_size, n_dims); random if None
        n_seeded: How many init_pop rows came from an atlas (reported only)
        stop: Predicate over GenerationReport; True ends the run
        callback: Called with every GenerationReport
        n_workers: Threads used to evaluate the swarm
        **kwargs: Override config fields (pop_size, max_gen, alpha, alpha_decay, beta0, gamma, seed)

    Returns:
        SynthesisResult; success=False with `error` set if the loop raised
    """
    if config is None:
        config = FireflyConfig()
    pop_size = kwargs.get('pop_size', config.pop_size)
    max_gen = kwargs.get('max_gen', config.max_gen)
    alpha = kwargs.get('alpha', config.alpha)
    alpha_decay = kwargs.get('alpha_decay', config.alpha_decay)
    beta0 = kwargs.get('beta0', config.beta0)
    gamma = kwargs.get('gamma', config.gamma)
    seed = kwargs.get('seed', config.seed)

    rng = np.random.default_rng(seed)
    lower, upper = syn.bounds_array()
    span = upper - lower
    if init_pop is None:
        init_pop = rng.uniform(lower, upper, size=(pop_size, syn.n_dims))
    pos = np.array(init_pop, dtype=np.float64)

    logger.info('Starting firefly algorithm')
    logger.info(f'  Dimensions: {syn.n_dims}, fireflies: {len(pos)}, generations: {max_gen}')

    tracker = ProgressTracker(max_gen=max_gen, stop=stop, callback=callback)
    n_evaluations = 0
    best_pos = pos[0].copy()
    best_cost = np.inf

    try:
        for generation in range(1, max_gen + 1):
            cost = syn.evaluate_population(pos, n_workers)
            n_evaluations += len(pos)
            i = int(np.argmin(cost))
            if cost[i] < best_cost:
                best_pos, best_cost = pos[i].copy(), float(cost[i])

            if tracker.report(generation, best_cost, n_evaluations):
                break

            pos = np.clip(_move(pos, cost, span, alpha, beta0, gamma, rng), lower, upper)
            alpha *= alpha_decay
    except Exception as e:
        logger.error(f'Firefly algorithm failed: {e}')
        return SynthesisResult(
            success=False,
            method='firefly',
            history=list(tracker.history),
            generations=tracker.generations,
            n_evaluations=n_evaluations,
            n_seeded=n_seeded,
            error=str(e),
        )

    return finish_result(syn, 'firefly', best_pos, tracker, n_evaluations, n_seeded)
