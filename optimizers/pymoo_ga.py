"""
Genetic algorithm adapter for four-bar path synthesis.

Wraps pymoo's single-objective GA. The objective is exposed as a vectorized
pymoo Problem, the starting population is passed as the sampling array, and
the generations are stepped with pymoo's ask/tell interface so the shared
ProgressTracker can stop the run between generations.

Reference: https://pymoo.org/algorithms/soo/ga.html
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from pymoo.algorithms.soo.nonconvex.ga import GA
from pymoo.core.problem import Problem
from pymoo.operators.crossover.sbx import SBX
from pymoo.operators.mutation.pm import PolynomialMutation

from fourbar_tools.synthesis_types import SynthesisResult
from optimizers.population import finish_result
from optimizers.population import ProgressCallback
from optimizers.population import ProgressTracker
from optimizers.population import StopPredicate

if TYPE_CHECKING:
    from fourbar_tools.synthesis import PathSyn

logger = logging.getLogger(__name__)


@dataclass
class GAConfig:
    """
    Configuration for the genetic algorithm.

    Attributes:
        pop_size: Population members
        max_gen: Maximum generations
        crossover_prob: SBX crossover probability
        crossover_eta: SBX distribution index
        mutation_eta: Polynomial mutation distribution index
        seed: Random seed
    """
    pop_size: int = 100
    max_gen: int = 50
    crossover_prob: float = 0.9
    crossover_eta: float = 15.0
    mutation_eta: float = 20.0
    seed: int | None = None


class SynthesisProblem(Problem):
    """Single-objective pymoo problem over a PathSyn's trial vectors."""

    def __init__(self, syn: PathSyn, n_workers: int | None = None):
        lower, upper = syn.bounds_array()
        super().__init__(n_var=syn.n_dims, n_obj=1, xl=lower, xu=upper)
        self.syn = syn
        self.n_workers = n_workers

    def _evaluate(self, x, out, *args, **kwargs):
        out['F'] = self.syn.evaluate_population(x, self.n_workers).reshape(-1, 1)


def run_ga(
    syn: PathSyn,
    config: GAConfig | None = None,
    init_pop: np.ndarray | None = None,
    n_seeded: int = 0,
    stop: StopPredicate | None = None,
    callback: ProgressCallback | None = None,
    n_workers: int | None = None,
    **kwargs,
) -> SynthesisResult:
    """
    Run a genetic algorithm on a synthesis objective.

    Args:
        syn: Synthesis objective
        config: GA configuration (uses defaults if not provided)
        init_pop: Starting population (pop_size, n_dims); random if None
        n_seeded: How many init_pop rows came from an atlas (reported only)
        stop: Predicate over GenerationReport; True ends the run
        callback: Called with every GenerationReport
        n_workers: Threads used to evaluate each generation
        **kwargs: Override config fields (pop_size, max_gen, crossover_prob, ...)

    Returns:
        SynthesisResult; success=False with `error` set if pymoo raised
    """
    if config is None:
        config = GAConfig()
    pop_size = kwargs.get('pop_size', config.pop_size)
    max_gen = kwargs.get('max_gen', config.max_gen)
    crossover_prob = kwargs.get('crossover_prob', config.crossover_prob)
    crossover_eta = kwargs.get('crossover_eta', config.crossover_eta)
    mutation_eta = kwargs.get('mutation_eta', config.mutation_eta)
    seed = kwargs.get('seed', config.seed)

    if init_pop is None:
        lower, upper = syn.bounds_array()
        init_pop = np.random.default_rng(seed).uniform(lower, upper, size=(pop_size, syn.n_dims))
    init_pop = np.asarray(init_pop, dtype=np.float64)

    logger.info('Starting genetic algorithm')
    logger.info(f'  Dimensions: {syn.n_dims}, population: {len(init_pop)}, generations: {max_gen}')

    tracker = ProgressTracker(max_gen=max_gen, stop=stop, callback=callback)
    problem = SynthesisProblem(syn, n_workers)
    algorithm = GA(
        pop_size=len(init_pop),
        sampling=init_pop,
        crossover=SBX(prob=crossover_prob, eta=crossover_eta),
        mutation=PolynomialMutation(eta=mutation_eta),
        eliminate_duplicates=True,
    )

    try:
        algorithm.setup(problem, termination=('n_gen', max_gen), seed=seed, verbose=False)
        while algorithm.has_next():
            pop = algorithm.ask()
            algorithm.evaluator.eval(problem, pop)
            algorithm.tell(infills=pop)
            best = algorithm.opt[0]
            if tracker.report(tracker.generations + 1, float(best.F[0]), algorithm.evaluator.n_eval):
                break
    except Exception as e:
        logger.error(f'Genetic algorithm failed: {e}')
        return SynthesisResult(
            success=False,
            method='ga',
            history=list(tracker.history),
            generations=tracker.generations,
            n_seeded=n_seeded,
            error=str(e),
        )

    best = algorithm.opt[0]
    return finish_result(syn, 'ga', best.X, tracker, algorithm.evaluator.n_eval, n_seeded)
