"""
Differential evolution adapter for four-bar path synthesis.

Wraps scipy.optimize.differential_evolution around a PathSyn objective.
The initial population (optionally atlas-seeded) is passed through `init`,
and the per-generation callback feeds the shared ProgressTracker so the
caller's stop predicate can end the run early.

Reference: https://docs.scipy.org/doc/scipy/reference/generated/scipy.optimize.differential_evolution.html
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from scipy.optimize import differential_evolution

from fourbar_tools.parallel import parallel_map
from fourbar_tools.synthesis_types import SynthesisResult
from optimizers.population import finish_result
from optimizers.population import ProgressTracker
from optimizers.population import ProgressCallback
from optimizers.population import StopPredicate

if TYPE_CHECKING:
    from fourbar_tools.synthesis import PathSyn

logger = logging.getLogger(__name__)

# scipy needs at least five members to mutate
MIN_POPULATION = 5


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class DEConfig:
    """
    Configuration for differential evolution.

    Attributes:
        pop_size: Population members
        max_gen: Maximum generations
        strategy: scipy mutation/crossover strategy
        mutation: Differential weight, or a (min, max) dithering range
        recombination: Crossover probability
        seed: Random seed
    """
    pop_size: int = 100
    max_gen: int = 50
    strategy: str = 'best1bin'
    mutation: float | tuple[float, float] = (0.5, 1.0)
    recombination: float = 0.7
    seed: int | None = None


# =============================================================================
# Main Interface
# =============================================================================


def run_de(
    syn: PathSyn,
    config: DEConfig | None = None,
    init_pop: np.ndarray | None = None,
    n_seeded: int = 0,
    stop: StopPredicate | None = None,
    callback: ProgressCallback | None = None,
    n_workers: int | None = None,
    **kwargs,
) -> SynthesisResult:
    """
    Run differential evolution on a synthesis objective.

    Args:
        syn: Synthesis objective
        config: DE configuration (uses defaults if not provided)
        init_pop: Starting population (pop_size, n_dims); random if None
        n_seeded: How many init_pop rows came from an atlas (reported only)
        stop: Predicate over GenerationReport; True ends the run
        callback: Called with every GenerationReport
        n_workers: Threads used to evaluate each generation
        **kwargs: Override config fields (pop_size, max_gen, strategy, ...)

    Returns:
        SynthesisResult; success=False with `error` set if scipy raised
    """
    if config is None:
        config = DEConfig()
    pop_size = kwargs.get('pop_size', config.pop_size)
    max_gen = kwargs.get('max_gen', config.max_gen)
    strategy = kwargs.get('strategy', config.strategy)
    mutation = kwargs.get('mutation', config.mutation)
    recombination = kwargs.get('recombination', config.recombination)
    seed = kwargs.get('seed', config.seed)

    lower, upper = syn.bounds_array()
    if init_pop is None:
        rng = np.random.default_rng(seed)
        init_pop = rng.uniform(lower, upper, size=(max(pop_size, MIN_POPULATION), syn.n_dims))
    elif len(init_pop) < MIN_POPULATION:
        rng = np.random.default_rng(seed)
        extra = rng.uniform(lower, upper, size=(MIN_POPULATION - len(init_pop), syn.n_dims))
        init_pop = np.vstack([init_pop, extra])

    logger.info('Starting differential evolution')
    logger.info(f'  Dimensions: {syn.n_dims}, population: {len(init_pop)}, generations: {max_gen}')

    tracker = ProgressTracker(max_gen=max_gen, stop=stop, callback=callback)

    def on_generation(intermediate_result) -> bool:
        n_eval = int(getattr(intermediate_result, 'nfev', 0))
        return tracker.report(tracker.generations + 1, float(intermediate_result.fun), n_eval)

    def workers(fn, items):
        return parallel_map(fn, items, n_workers)

    try:
        result = differential_evolution(
            syn.evaluate,
            bounds=list(zip(lower, upper)),
            strategy=strategy,
            maxiter=max_gen,
            init=np.asarray(init_pop, dtype=np.float64),
            mutation=mutation,
            recombination=recombination,
            seed=seed,
            callback=on_generation,
            polish=False,
            updating='deferred',
            workers=workers,
        )
    except Exception as e:
        logger.error(f'Differential evolution failed: {e}')
        return SynthesisResult(
            success=False,
            method='de',
            history=list(tracker.history),
            generations=tracker.generations,
            n_seeded=n_seeded,
            error=str(e),
        )

    return finish_result(syn, 'de', result.x, tracker, int(result.nfev), n_seeded)
