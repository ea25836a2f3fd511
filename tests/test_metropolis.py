"""
tests/test_metropolis.py - Tests for metropolis.py

Pass accounting, retry policy for unavailable moves, acceptance and determinism.
"""

import logging

import numpy as np
import pytest

from conftest import MINIMAL_CELLS, MINIMAL_LABELS, cell_sets
from cdt3.action import make_evaluator
from cdt3.config import SimulationConfig, CouplingConfig
from cdt3.errors import MalformedInitialComplex
from cdt3.foliation import FoliationIndex
from cdt3.invariants import check_invariants
from cdt3.metropolis import ACCEPTED, REJECTED, UNAVAILABLE, MetropolisEngine, SimulationContext
from cdt3.moves import MoveType
from cdt3.seeds import make_foliated_sphere
from cdt3.simulation import run_simulation
from cdt3.store import SimplexStore


def _engine(store, evaluator, seed=0, **kw):
    return MetropolisEngine(store, evaluator, context=SimulationContext.from_seed(seed), **kw)


class TestIngestion:
    def test_malformed_complex_rejected_before_any_pass(self):
        """A cell spanning two time steps aborts construction."""
        store = SimplexStore.build({0: 0, 1: 0, 2: 0, 3: 2}, [(0, 1, 2, 3)])
        with pytest.raises(MalformedInitialComplex):
            _engine(store, make_evaluator(), closed=False)

    def test_open_complex_needs_closed_false(self):
        store = SimplexStore.build(MINIMAL_LABELS, MINIMAL_CELLS)
        with pytest.raises(MalformedInitialComplex):
            _engine(store, make_evaluator())
        _engine(store, make_evaluator(), closed=False)

    def test_bad_weights(self):
        with pytest.raises(ValueError):
            _engine(make_foliated_sphere(3), make_evaluator(), move_weights={"(2,3)": -1.0})
        with pytest.raises(ValueError):
            _engine(make_foliated_sphere(3), make_evaluator(), move_weights={"(2,3)": 0.0})

    def test_given_index_is_reused(self, monkeypatch):
        """An index built by the caller is checked against the store, not rebuilt."""
        store = make_foliated_sphere(4)
        index = FoliationIndex(store)

        def no_rebuild(*args, **kwargs):
            raise AssertionError("second index built")

        monkeypatch.setattr("cdt3.metropolis.validate_initial_complex", no_rebuild)
        monkeypatch.setattr("cdt3.metropolis.FoliationIndex", no_rebuild)
        engine = _engine(store, make_evaluator(), timeslices=4, index=index)
        assert engine.index is index
        assert engine.catalog.index is index

    def test_given_index_still_gates_malformed_complex(self):
        store = SimplexStore.build(MINIMAL_LABELS, MINIMAL_CELLS)
        index = FoliationIndex(store)
        with pytest.raises(MalformedInitialComplex):
            _engine(store, make_evaluator(), index=index)
        with pytest.raises(ValueError):
            _engine(make_foliated_sphere(3), make_evaluator(), index=index)


class TestAttempt:
    def test_accepted_attempt_commits(self, always_accept):
        engine = _engine(make_foliated_sphere(3), always_accept, move_weights={"(2,6)": 1.0})
        outcome = engine.attempt()
        assert outcome.status == ACCEPTED
        assert outcome.move is MoveType.TWO_SIX
        assert engine.store.num_cells == 12
        assert engine.context.stats.accepted[MoveType.TWO_SIX] == 1

    def test_rejected_attempt_leaves_complex(self, always_reject):
        store = make_foliated_sphere(3)
        cells0 = cell_sets(store)
        engine = _engine(store, always_reject, move_weights={"(2,6)": 1.0})
        outcome = engine.attempt()
        assert outcome.status == REJECTED
        assert cell_sets(store) == cells0
        assert engine.context.stats.rejected[MoveType.TWO_SIX] == 1

    def test_unavailable_type_is_resampled(self, always_accept):
        """(3,2) has no site on the smallest sphere; the attempt falls through to (2,6)."""
        fell_through = 0
        for seed in range(20):
            engine = _engine(make_foliated_sphere(3), always_accept, seed=seed,
                             move_weights={"(3,2)": 1.0, "(2,6)": 1.0})
            outcome = engine.attempt()
            assert outcome.status == ACCEPTED
            assert outcome.move is MoveType.TWO_SIX
            assert outcome.skipped in ((), (MoveType.THREE_TWO,))
            fell_through += len(outcome.skipped)
        assert fell_through > 0

    def test_nothing_available(self, always_accept):
        engine = _engine(make_foliated_sphere(3), always_accept, move_weights={"(3,2)": 1.0})
        outcome = engine.attempt()
        assert outcome.status == UNAVAILABLE
        assert outcome.skipped == (MoveType.THREE_TWO,)
        assert engine.context.stats.unavailable_attempts == 1


class TestPass:
    def test_attempts_equal_cells_at_pass_start(self, always_reject):
        engine = _engine(make_foliated_sphere(4), always_reject)
        report = engine.run_pass()
        assert report.attempts == 20
        assert report.accepted == 0
        assert report.rejected + report.unavailable == 20
        assert engine.context.passes_completed == 1

    def test_unavailable_pass_logs_warning(self, always_accept, caplog):
        engine = _engine(make_foliated_sphere(3), always_accept, move_weights={"(3,2)": 1.0})
        with caplog.at_level(logging.WARNING, logger="cdt3.metropolis"):
            report = engine.run_pass()
        assert report.unavailable == 8
        assert "no move had a valid site" in caplog.text

    def test_invariants_hold_after_every_commit(self, always_accept):
        """check_invariants=True verifies each accepted move locally."""
        engine = _engine(make_foliated_sphere(4), always_accept, seed=9, check_invariants=True, timeslices=4)
        engine.run(2)
        check_invariants(engine.store, engine.index, num_slices=4)

    def test_should_stop_checked_between_passes(self, always_reject):
        engine = _engine(make_foliated_sphere(3), always_reject)
        seen = []
        reports = engine.run(5, should_stop=lambda: len(seen) >= 2, on_pass=seen.append)
        assert len(reports) == 2
        assert [r.index for r in seen] == [0, 1]

    def test_negative_passes(self, always_reject):
        engine = _engine(make_foliated_sphere(3), always_reject)
        with pytest.raises(ValueError):
            engine.run(-1)


class TestDeterminism:
    def test_same_seed_same_statistics(self, always_accept):
        """Accept-always runs with one seed and one initial complex are identical."""
        def once():
            engine = _engine(make_foliated_sphere(4), always_accept, seed=123)
            engine.run(2)
            return engine.summary(), cell_sets(engine.store)

        assert once() == once()

    def test_different_seeds_diverge(self, always_accept):
        def once(seed):
            engine = _engine(make_foliated_sphere(4), always_accept, seed=seed)
            engine.run(2)
            return cell_sets(engine.store)

        assert once(1) != once(2)

    def test_run_simulation_repeatable(self):
        cfg = SimulationConfig(
            timeslices=4,
            target_simplices=40,
            passes=1,
            couplings=CouplingConfig(k=1.0, lam=0.5, alpha=0.6),
            rng_seed=11,
        )
        a = run_simulation(cfg).summary()
        b = run_simulation(cfg).summary()
        assert a == b
        assert a["seed"] == 11


class TestSummary:
    def test_summary_keys(self, always_reject):
        engine = _engine(make_foliated_sphere(5), always_reject)
        s = engine.summary()
        assert set(s) == {
            "N3_31", "N3_22", "N1_TL", "N1_SL", "total_cells", "total_vertices", "accepted_moves_per_type",
        }
        assert s["N3_31"] == 24
        assert s["N3_22"] == 8
        assert s["total_cells"] == 32
        assert s["accepted_moves_per_type"] == {m.value: 0 for m in MoveType}

    def test_statistics_as_dict(self, always_accept):
        engine = _engine(make_foliated_sphere(3), always_accept, move_weights={"(2,6)": 1.0})
        engine.attempt()
        stats = engine.context.stats.as_dict()
        assert stats["accepted"]["(2,6)"] == 1
        assert stats["attempted"]["(2,6)"] == 1


class TestContext:
    def test_chains_do_not_share_state(self, always_accept):
        """Two engines over copies of one complex evolve independently."""
        base = make_foliated_sphere(4)
        a = _engine(base.copy(), always_accept, seed=5)
        b = _engine(base.copy(), always_accept, seed=5)
        a.run(1)
        assert b.context.attempts_completed == 0
        assert cell_sets(b.store) == cell_sets(base)
        assert np.random.default_rng(5).random() == b.context.rng.random()
