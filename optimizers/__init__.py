"""
Optimizer adapters for four-bar path synthesis.

Each optimizer follows a consistent interface:
- Takes a PathSyn objective and an optional starting population
- Reports every generation to a stop predicate / progress callback
- Returns SynthesisResult

Available optimizers:
- de: Differential evolution (scipy)
- pso: Particle swarm optimization (pyswarms)
- ga: Genetic algorithm (pymoo)
- firefly: Firefly algorithm (numpy)
- tlbo: Teaching-learning-based optimization (numpy)
"""
from __future__ import annotations

from optimizers.firefly import FireflyConfig
from optimizers.firefly import run_firefly
from optimizers.pso_optimizer import PSOConfig
from optimizers.pso_optimizer import run_pso
from optimizers.pymoo_ga import GAConfig
from optimizers.pymoo_ga import run_ga
from optimizers.scipy_de import DEConfig
from optimizers.scipy_de import run_de
from optimizers.synthesize import run_synthesis
from optimizers.tlbo import run_tlbo
from optimizers.tlbo import TLBOConfig

# Registry of available optimizers for run_synthesis
AVAILABLE_OPTIMIZERS = {
    'de': {
        'function': run_de,
        'config': DEConfig,
        'description': 'Differential evolution with deferred updating',
        'package': 'scipy',
    },
    'pso': {
        'function': run_pso,
        'config': PSOConfig,
        'description': 'Global-best particle swarm',
        'package': 'pyswarms',
    },
    'ga': {
        'function': run_ga,
        'config': GAConfig,
        'description': 'Real-coded genetic algorithm (SBX + polynomial mutation)',
        'package': 'pymoo',
    },
    'firefly': {
        'function': run_firefly,
        'config': FireflyConfig,
        'description': 'Firefly algorithm with decaying random walk',
        'package': 'numpy',
    },
    'tlbo': {
        'function': run_tlbo,
        'config': TLBOConfig,
        'description': 'Teaching-learning-based optimization',
        'package': 'numpy',
    },
}

__all__ = [
    'run_de',
    'DEConfig',
    'run_pso',
    'PSOConfig',
    'run_ga',
    'GAConfig',
    'run_firefly',
    'FireflyConfig',
    'run_tlbo',
    'TLBOConfig',
    'run_synthesis',
    'AVAILABLE_OPTIMIZERS',
]
