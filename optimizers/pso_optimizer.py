"""
Particle swarm adapter for four-bar path synthesis.

Drives the pyswarms backend directly (swarm creation, personal/global best
updates, velocity and position steps) so every iteration can be reported
to the caller and cut short by a stop predicate.

Reference: https://pyswarms.readthedocs.io/en/latest/examples/tutorials/custom_optimization_loop.html
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import pyswarms.backend as P
from pyswarms.backend.handlers import BoundaryHandler
from pyswarms.backend.handlers import VelocityHandler
from pyswarms.backend.topology import Star

from fourbar_tools.synthesis_types import SynthesisResult
from optimizers.population import finish_result
from optimizers.population import ProgressCallback
from optimizers.population import ProgressTracker
from optimizers.population import StopPredicate

if TYPE_CHECKING:
    from fourbar_tools.synthesis import PathSyn

logger = logging.getLogger(__name__)


@dataclass
class PSOConfig:
    """
    Configuration for particle swarm optimization.

    Attributes:
        pop_size: Number of particles
        max_gen: Maximum iterations
        w: Inertia weight
        c1: Cognitive coefficient (pull toward personal best)
        c2: Social coefficient (pull toward global best)
        seed: Random seed
    """
    pop_size: int = 64
    max_gen: int = 100
    w: float = 0.7
    c1: float = 1.5
    c2: float = 1.5
    seed: int | None = None


def run_pso(
    syn: PathSyn,
    config: PSOConfig | None = None,
    init_pop: np.ndarray | None = None,
    n_seeded: int = 0,
    stop: StopPredicate | None = None,
    callback: ProgressCallback | None = None,
    n_workers: int | None = None,
    **kwargs,
) -> SynthesisResult:
    """
    Run particle swarm optimization on a synthesis objective.

    Args:
        syn: Synthesis objective
        config: PSO configuration (uses defaults if not provided)
        init_pop: Starting particle positions (pop_size, n_dims); random if None
        n_seeded: How many init_pop rows came from an atlas (reported only)
        stop: Predicate over GenerationReport; True ends the run
        callback: Called with every GenerationReport
        n_workers: Threads used to evaluate the swarm
        **kwargs: Override config fields (pop_size, max_gen, w, c1, c2, seed)

    Returns:
        SynthesisResult; success=False with `error` set if the loop raised
    """
    if config is None:
        config = PSOConfig()
    pop_size = kwargs.get('pop_size', config.pop_size)
    max_gen = kwargs.get('max_gen', config.max_gen)
    w = kwargs.get('w', config.w)
    c1 = kwargs.get('c1', config.c1)
    c2 = kwargs.get('c2', config.c2)
    seed = kwargs.get('seed', config.seed)

    # pyswarms draws its coefficients from the global numpy state
    if seed is not None:
        np.random.seed(seed)

    lower, upper = syn.bounds_array()
    bounds = (lower, upper)
    if init_pop is None:
        init_pop = np.random.default_rng(seed).uniform(lower, upper, size=(pop_size, syn.n_dims))
    init_pop = np.asarray(init_pop, dtype=np.float64)

    logger.info('Starting particle swarm optimization')
    logger.info(f'  Dimensions: {syn.n_dims}, particles: {len(init_pop)}, iterations: {max_gen}')

    tracker = ProgressTracker(max_gen=max_gen, stop=stop, callback=callback)
    n_evaluations = 0

    try:
        swarm = P.create_swarm(
            n_particles=len(init_pop),
            dimensions=syn.n_dims,
            options={'c1': c1, 'c2': c2, 'w': w},
            bounds=bounds,
            init_pos=init_pop,
        )
        swarm.pbest_cost = np.full(len(init_pop), np.inf)
        topology = Star()
        vh = VelocityHandler(strategy='unmodified')
        bh = BoundaryHandler(strategy='periodic')

        for iteration in range(1, max_gen + 1):
            swarm.current_cost = syn.evaluate_population(swarm.position, n_workers)
            n_evaluations += len(swarm.position)
            swarm.pbest_pos, swarm.pbest_cost = P.compute_pbest(swarm)
            swarm.best_pos, swarm.best_cost = topology.compute_gbest(swarm)

            if tracker.report(iteration, float(swarm.best_cost), n_evaluations):
                break

            swarm.velocity = topology.compute_velocity(swarm, vh=vh, bounds=bounds)
            swarm.position = topology.compute_position(swarm, bounds=bounds, bh=bh)
    except Exception as e:
        logger.error(f'Particle swarm optimization failed: {e}')
        return SynthesisResult(
            success=False,
            method='pso',
            history=list(tracker.history),
            generations=tracker.generations,
            n_evaluations=n_evaluations,
            n_seeded=n_seeded,
            error=str(e),
        )

    return finish_result(syn, 'pso', swarm.best_pos, tracker, n_evaluations, n_seeded)
