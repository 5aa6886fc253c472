"""
test_optimizers.py - Tests for the synthesis optimizer adapters.

Tests cover:
  1. Every registered optimizer keeps a seeded known solution (elitism)
  2. Generation history, stop predicate and progress callback
  3. Atlas-seeded starting populations
  4. Failures inside the objective reported through SynthesisResult.error
  5. Result serialization
"""
from __future__ import annotations

import json
from dataclasses import is_dataclass

import numpy as np
import pytest

from atlas_gen.atlas import Atlas
from atlas_gen.sampling import AtlasConfig
from fourbar_tools.efd import GeoVar
from fourbar_tools.linkage import FourBar
from fourbar_tools.linkage import MFourBar
from fourbar_tools.synthesis import INFEASIBLE_ERROR
from fourbar_tools.synthesis import Mode
from fourbar_tools.synthesis import MotionSyn
from fourbar_tools.synthesis import PathSyn
from fourbar_tools.synthesis_types import GenerationReport
from optimizers import AVAILABLE_OPTIMIZERS
from optimizers.firefly import _move
from optimizers.population import initial_population
from optimizers.population import ProgressTracker
from optimizers.synthesize import run_synthesis
from optimizers.tlbo import _peers

METHODS = sorted(AVAILABLE_OPTIMIZERS)


@pytest.fixture
def crank_rocker():
    return FourBar.example()


@pytest.fixture
def syn(crank_rocker):
    return PathSyn.from_linkage(crank_rocker, Mode.CLOSED, res=90)


@pytest.fixture
def seeded_pop(syn, crank_rocker):
    """Random population whose first member is the target's own code."""
    rng = np.random.default_rng(7)
    lower, upper = syn.bounds_array()
    pop = rng.uniform(lower, upper, size=(10, syn.n_dims))
    pop[0] = crank_rocker.normalize().to_vectorized()[0]
    return pop


@pytest.fixture(scope='module')
def tiny_atlas():
    return Atlas.generate(AtlasConfig(size=8, res=60, harmonic=6, seed=1))


class TestRegistry:
    def test_methods(self):
        assert set(AVAILABLE_OPTIMIZERS) == {'de', 'pso', 'ga', 'firefly', 'tlbo'}

    def test_entries(self):
        for name, entry in AVAILABLE_OPTIMIZERS.items():
            assert callable(entry['function']), f'{name} has no runner'
            assert is_dataclass(entry['config'])
            assert entry['package'] in ('scipy', 'pyswarms', 'pymoo', 'numpy')


class TestProgressTracker:
    def test_stops_at_max_gen(self):
        tracker = ProgressTracker(max_gen=3)
        assert not tracker.report(1, 5.0, 10)
        assert not tracker.report(2, 4.0, 20)
        assert tracker.report(3, 3.0, 30)
        assert tracker.history == [5.0, 4.0, 3.0]
        assert not tracker.stopped_early

    def test_stop_predicate(self):
        tracker = ProgressTracker(max_gen=10, stop=lambda r: r.best_error < 1.0)
        assert not tracker.report(1, 2.0, 4)
        assert tracker.report(2, 0.5, 8)
        assert tracker.stopped_early
        assert tracker.generations == 2

    def test_callback_sees_reports(self):
        seen = []
        tracker = ProgressTracker(max_gen=5, callback=seen.append)
        tracker.report(1, 1.5, 3)
        assert seen == [GenerationReport(1, 1.5, 3)]


class TestInitialPopulation:
    def test_random_inside_bounds(self, syn):
        pop, n_seeded = initial_population(syn, 20, np.random.default_rng(0))
        lower, upper = syn.bounds_array()
        assert pop.shape == (20, syn.n_dims)
        assert n_seeded == 0
        assert np.all(pop >= lower) and np.all(pop <= upper)

    def test_bad_size(self, syn):
        with pytest.raises(ValueError):
            initial_population(syn, 0, np.random.default_rng(0))

    def test_atlas_seeding(self, syn, tiny_atlas):
        pop, n_seeded = initial_population(syn, 12, np.random.default_rng(0), tiny_atlas)
        assert n_seeded == len(tiny_atlas)
        _, pool = tiny_atlas.fetch_raw(syn.efd, is_open=False, size=12)
        assert np.allclose(pop[0], pool[0][1].to_vectorized()[0])

    def test_partial_keeps_random_window(self, crank_rocker, tiny_atlas):
        partial = PathSyn.from_curve(crank_rocker.curve_in(0.5, 3.0, 60), Mode.PARTIAL)
        pop, n_seeded = initial_population(partial, 6, np.random.default_rng(0), tiny_atlas)
        lower, upper = partial.bounds_array()
        assert pop.shape == (6, 7)
        assert n_seeded == 6
        assert np.all(pop[:, 5:] >= lower[5:]) and np.all(pop[:, 5:] <= upper[5:])
        assert not np.array_equal(pop[0, 5:], pop[1, 5:]), 'Window values are drawn per member'

    def test_empty_atlas_ignored(self, syn):
        pop, n_seeded = initial_population(syn, 4, np.random.default_rng(0), Atlas('planar'))
        assert pop.shape == (4, 5)
        assert n_seeded == 0

    def test_atlas_type_mismatch(self, syn):
        spherical = Atlas('spherical', np.ones((2, 6)), [1, 1], np.zeros((2, 4, 6)))
        with pytest.raises(ValueError):
            initial_population(syn, 5, np.random.default_rng(0), spherical)


class TestRuns:
    @pytest.mark.parametrize('method', METHODS)
    def test_keeps_known_solution(self, method, syn, seeded_pop):
        run = AVAILABLE_OPTIMIZERS[method]['function']
        result = run(syn, init_pop=seeded_pop, max_gen=3, seed=1)
        assert result.success, f'{method} failed: {result.error}'
        assert result.method == method
        assert result.best_error < 1e-6, f'{method} lost the seeded solution: {result.best_error}'
        assert isinstance(result.linkage, FourBar)

    @pytest.mark.parametrize('method', METHODS)
    def test_history(self, method, syn, seeded_pop):
        run = AVAILABLE_OPTIMIZERS[method]['function']
        result = run(syn, init_pop=seeded_pop, max_gen=3, seed=2)
        assert 1 <= result.generations <= 3
        assert len(result.history) == result.generations
        assert all(b <= a for a, b in zip(result.history, result.history[1:])), \
            f'{method} best value went up: {result.history}'
        assert result.n_evaluations >= len(seeded_pop)

    @pytest.mark.parametrize('method', METHODS)
    def test_objective_failure_reported(self, method, syn, seeded_pop, monkeypatch):
        def boom(xs):
            raise RuntimeError('objective exploded')

        monkeypatch.setattr(syn, 'evaluate', boom)
        run = AVAILABLE_OPTIMIZERS[method]['function']
        result = run(syn, init_pop=seeded_pop, max_gen=2, seed=0)
        assert not result.success
        assert 'objective exploded' in result.error

    def test_stop_predicate_ends_run(self, syn, seeded_pop):
        run = AVAILABLE_OPTIMIZERS['pso']['function']
        result = run(syn, init_pop=seeded_pop, max_gen=10, seed=0, stop=lambda r: r.generation >= 2)
        assert result.generations == 2

    def test_callback_generations_are_consecutive(self, syn, seeded_pop):
        seen = []
        run = AVAILABLE_OPTIMIZERS['ga']['function']
        run(syn, init_pop=seeded_pop, max_gen=3, seed=0, callback=seen.append)
        assert [r.generation for r in seen] == list(range(1, len(seen) + 1))

    def test_small_population_padded_for_de(self, syn, seeded_pop):
        run = AVAILABLE_OPTIMIZERS['de']['function']
        result = run(syn, init_pop=seeded_pop[:2], max_gen=2, seed=0)
        assert result.success
        assert result.best_error < 1e-6


class TestStrategies:
    def test_firefly_moves_toward_brighter(self):
        pos = np.array([[0.0, 0.0], [4.0, 2.0]])
        span = np.ones(2)
        moved = _move(pos, np.array([1.0, 5.0]), span, 0.0, 1.0, 0.1, np.random.default_rng(0))
        assert np.array_equal(moved[0], pos[0]), 'The brightest firefly only walks'
        assert np.linalg.norm(moved[1] - pos[0]) < np.linalg.norm(pos[1] - pos[0])

    def test_tlbo_peers_never_self(self):
        peers = _peers(9, np.random.default_rng(4))
        assert peers.shape == (9,)
        assert np.all(peers != np.arange(9))

    @pytest.mark.parametrize('method', ['firefly', 'tlbo'])
    def test_stays_inside_bounds(self, method, syn):
        result = run_synthesis(syn, method=method, pop_size=6, max_gen=2, seed=5)
        lower, upper = syn.bounds_array()
        assert np.all(result.best_code >= lower) and np.all(result.best_code <= upper)


class TestRunSynthesis:
    def test_unknown_method(self, syn):
        with pytest.raises(ValueError):
            run_synthesis(syn, method='annealing')

    def test_bad_max_gen(self, syn):
        with pytest.raises(ValueError):
            run_synthesis(syn, max_gen=0)

    @pytest.mark.parametrize('method', METHODS)
    def test_dispatch(self, method, syn):
        result = run_synthesis(syn, method=method, pop_size=10, max_gen=2, seed=3)
        assert result.method == method
        assert result.generations <= 2
        assert result.success == (result.best_error < INFEASIBLE_ERROR)

    def test_atlas_seeded_run(self, syn, tiny_atlas):
        result = run_synthesis(syn, method='de', pop_size=10, max_gen=2, seed=0, atlas=tiny_atlas)
        assert result.n_seeded == len(tiny_atlas)
        assert result.success, 'Atlas entries are feasible closed-curve linkages'

    def test_motion_objective(self):
        motion = MFourBar.example()
        syn = MotionSyn.from_linkage(motion, res=90)
        lower, upper = syn.bounds_array()
        pop = np.random.default_rng(3).uniform(lower, upper, size=(8, syn.n_dims))
        pop[0] = motion.normalize().to_vectorized()[0]
        result = AVAILABLE_OPTIMIZERS['de']['function'](syn, init_pop=pop, max_gen=2, seed=0)
        assert result.best_error < 1e-6, f'Seeded motion code was lost: {result.best_error}'
        assert isinstance(result.linkage, MFourBar)

    def test_to_dict_is_json(self, syn, seeded_pop):
        run = AVAILABLE_OPTIMIZERS['pso']['function']
        result = run(syn, init_pop=seeded_pop, max_gen=2, seed=0)
        data = json.loads(json.dumps(result.to_dict()))
        assert data['method'] == 'pso'
        assert data['linkage']['stat'] == 1
        assert len(data['history']) == data['generations']

    def test_recovers_atlas_linkage(self, tiny_atlas):
        """A moved atlas curve is synthesized back onto its own pose."""
        geo = GeoVar.from_planar([5.0, 2.0], -0.6, 3.0)
        target = geo.apply(tiny_atlas.fb_norm(3).curve(90))
        syn = PathSyn.from_curve(target, Mode.CLOSED, harmonic=6, res=90)
        result = run_synthesis(syn, method='de', pop_size=10, max_gen=3, seed=0, atlas=tiny_atlas)
        assert result.best_error < 1e-6, f'Seeded entry should match exactly, got {result.best_error}'
        assert np.allclose(result.linkage.curve(90), target, atol=1e-5)
