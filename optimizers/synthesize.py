"""
synthesize.py - Single entry point for running path synthesis.

Routes a PathSyn objective to one of the registered optimizers, building
the (optionally atlas-seeded) starting population first.

Example:
    >>> syn = PathSyn.from_curve(target, Mode.CLOSED, 'planar')
    >>> result = run_synthesis(syn, method='de', pop_size=40, max_gen=30, atlas=atlas)
    >>> if result.success:
    ...     print(result.best_error, result.linkage)
"""
from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from configs.logging_config import get_logger
from fourbar_tools.synthesis_types import SynthesisResult
from optimizers.population import initial_population
from optimizers.population import ProgressCallback
from optimizers.population import StopPredicate

if TYPE_CHECKING:
    from atlas_gen.atlas import Atlas
    from fourbar_tools.synthesis import PathSyn

# Module logger
logger = get_logger(__name__)


def run_synthesis(
    syn: PathSyn,
    method: str = 'de',
    pop_size: int = 100,
    max_gen: int = 50,
    stop: StopPredicate | None = None,
    seed: int | None = None,
    atlas: Atlas | None = None,
    target_curve=None,
    n_workers: int | None = None,
    callback: ProgressCallback | None = None,
    **kwargs,
) -> SynthesisResult:
    """
    Run dimensional synthesis with the named optimizer.

    Args:
        syn: Synthesis objective
        method: Key of AVAILABLE_OPTIMIZERS ('de', 'pso', 'ga', 'firefly', 'tlbo')
        pop_size: Population size
        max_gen: Generation limit
        stop: Predicate over GenerationReport; True ends the run early
        seed: Random seed for the population and the optimizer
        atlas: Atlas used to seed the starting population
        target_curve: Curve to look up in the atlas; the objective's own
            descriptor is used when None
        n_workers: Threads used for population evaluation
        callback: Called with every GenerationReport
        **kwargs: Forwarded to the optimizer (config overrides)

    Returns:
        SynthesisResult from the optimizer

    Raises:
        ValueError: Unknown method, non-positive pop_size/max_gen, or an atlas
            of a different linkage type
    """
    from optimizers import AVAILABLE_OPTIMIZERS

    if method not in AVAILABLE_OPTIMIZERS:
        raise ValueError(f'Unknown optimizer {method!r}; available: {sorted(AVAILABLE_OPTIMIZERS)}')
    if max_gen < 1:
        raise ValueError(f'max_gen must be positive, got {max_gen}')

    rng = np.random.default_rng(seed)
    init_pop, n_seeded = initial_population(syn, pop_size, rng, atlas, target_curve)

    logger.info(f'Synthesis: method={method}, mode={syn.mode.value}, linkage={syn.linkage_cls.__name__}')
    run = AVAILABLE_OPTIMIZERS[method]['function']
    return run(
        syn,
        init_pop=init_pop,
        n_seeded=n_seeded,
        stop=stop,
        callback=callback,
        n_workers=n_workers,
        pop_size=pop_size,
        max_gen=max_gen,
        seed=seed,
        **kwargs,
    )
