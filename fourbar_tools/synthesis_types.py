"""
synthesis_types.py - Result containers for dimensional synthesis runs.

Contains:
  - GenerationReport: best value of one optimizer generation
  - SynthesisResult: outcome of a complete run (best linkage, history, errors)

Failures inside an optimizer are reported through SynthesisResult.error
instead of being raised, so batch drivers can keep going.
"""
from __future__ import annotations

from dataclasses import asdict
from dataclasses import dataclass
from dataclasses import field
from typing import Any

import numpy as np


@dataclass
class GenerationReport:
    """
    Progress of one optimizer generation.

    Passed to the caller's stop predicate and progress callback.
    """
    generation: int
    best_error: float
    n_evaluations: int


@dataclass
class SynthesisResult:
    """
    Result of a synthesis run.

    Attributes:
        success: True if the run finished and found a feasible linkage
        method: Optimizer name ('de', 'pso', 'ga')
        best_error: Best fitness value found
        best_code: Trial vector of the best candidate (intrinsic code + windows)
        linkage: Placed linkage aligned to the target curve
        history: Best error after each generation
        generations: Generations executed
        n_evaluations: Fitness evaluations performed
        n_seeded: Initial population members taken from an atlas
        error: Error message if the run failed
    """
    success: bool
    method: str
    best_error: float = float('inf')
    best_code: np.ndarray | None = None
    linkage: Any = None
    history: list[float] = field(default_factory=list)
    generations: int = 0
    n_evaluations: int = 0
    n_seeded: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        """JSON-friendly summary."""
        linkage = None
        if self.linkage is not None:
            linkage = {k: (int(v) if k == 'stat' else float(v)) for k, v in asdict(self.linkage).items()}
        return {
            'success': self.success,
            'method': self.method,
            'best_error': float(self.best_error),
            'best_code': None if self.best_code is None else [float(v) for v in self.best_code],
            'linkage': linkage,
            'history': [float(v) for v in self.history],
            'generations': self.generations,
            'n_evaluations': self.n_evaluations,
            'n_seeded': self.n_seeded,
            'error': self.error,
        }
