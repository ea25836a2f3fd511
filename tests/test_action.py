"""
tests/test_action.py - Tests for action.py

Action forms, delta_action symmetry and the acceptance rule.
"""

import math

import pytest

from cdt3.action import (
    ActionEvaluator,
    Couplings,
    accept,
    acceptance_probability,
    bulk_action,
    make_evaluator,
    resolve_action,
    vertex_action,
)
from cdt3.foliation import SimplexCounts
from cdt3.moves import FacetSite, MoveCatalog, MoveType


COUNTS = SimplexCounts(n0=10, n1_tl=30, n1_sl=20, n3_31=12, n3_22=8, n3_13=12)


class TestActionForms:
    def test_bulk(self):
        c = Couplings(k=2.0, lam=0.5, alpha=1.0)
        assert bulk_action(COUNTS, c) == pytest.approx(0.5 * 32 - 2.0 * 30)

    def test_vertex(self):
        c = Couplings(k=2.0, lam=0.5, alpha=1.0)
        assert vertex_action(COUNTS, c) == pytest.approx(0.5 * 32 - 2.0 * 10)

    def test_resolve_by_name_and_callable(self):
        assert resolve_action("bulk") is bulk_action
        custom = lambda counts, couplings: 0.0  # noqa: E731
        assert resolve_action(custom) is custom
        with pytest.raises(ValueError):
            resolve_action("regge")

    def test_custom_action_plugs_in(self):
        """Any (counts, couplings) -> float works without touching the engine."""
        ev = ActionEvaluator(Couplings(), lambda counts, couplings: float(counts.n0) ** 2)
        assert ev.action(COUNTS) == 100.0
        assert ev.name == "<lambda>"


class TestCouplings:
    def test_alpha_below_half_rejected(self):
        """3D triangle inequalities need |alpha| >= 1/2."""
        with pytest.raises(ValueError):
            Couplings(alpha=0.3).validate()
        with pytest.raises(ValueError):
            make_evaluator(alpha=-0.4)

    def test_negative_alpha_allowed(self):
        Couplings(alpha=-0.6).validate()

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError):
            Couplings(k=math.inf).validate()


class TestDeltaAction:
    def test_delta_is_difference_of_actions(self):
        ev = make_evaluator(k=1.1, lam=0.7, alpha=0.6)
        after = COUNTS + SimplexCounts(n1_tl=1, n3_22=1)
        d = ev.delta_action(MoveType.TWO_THREE, None, COUNTS, after)
        assert d == pytest.approx(0.7 - 1.1)

    def test_inverse_moves_have_opposite_delta(self, minimal_seed):
        """delta((2,3) at S) == -delta((3,2) at the resulting edge)."""
        store, index = minimal_seed
        catalog = MoveCatalog(store, index, closed=False)
        ev = make_evaluator(k=1.3, lam=0.4, alpha=0.8)

        p1 = catalog.propose(MoveType.TWO_THREE, FacetSite(1, (0, 1, 3)))
        before = index.counts()
        d1 = ev.delta_action(p1.move, p1.site, before, before + p1.delta)
        result = catalog.commit(p1)

        p2 = catalog.propose(MoveType.THREE_TWO, catalog.inverse_site(result))
        mid = index.counts()
        d2 = ev.delta_action(p2.move, p2.site, mid, mid + p2.delta)

        assert p2.delta == -p1.delta
        assert d2 == -d1


class TestAcceptance:
    def test_downhill_always_accepted(self):
        assert acceptance_probability(-3.0) == 1.0
        assert acceptance_probability(0.0) == 1.0
        assert acceptance_probability(-math.inf) == 1.0

    def test_uphill(self):
        assert acceptance_probability(1.0) == pytest.approx(math.exp(-1.0))
        assert acceptance_probability(math.inf) == 0.0

    def test_nan_rejected(self):
        with pytest.raises(ValueError):
            acceptance_probability(float("nan"))

    def test_accept_uses_strict_comparison(self):
        d = math.log(2.0)
        assert accept(d, 0.49)
        assert not accept(d, 0.51)
        assert not accept(math.inf, 0.0)
        assert accept(-math.inf, 0.999999)
