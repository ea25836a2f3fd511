"""
tests/conftest.py - shared complexes for the cdt3 tests.

Vertex ids of the minimal open seed: a=0, b=1, c=2 in slice 0; d=3, e=4 in slice 1.
Cell 0 = {a,b,c,d} is (3,1), cell 1 = {a,b,d,e} is (2,2); they share triangle {a,b,d}.
"""

import os

os.environ.setdefault("MPLBACKEND", "Agg")

import math

import pytest

from cdt3.action import ActionEvaluator, Couplings
from cdt3.invariants import validate_initial_complex
from cdt3.seeds import ingest, make_foliated_sphere, make_triangulation
from cdt3.store import SimplexStore


MINIMAL_LABELS = {0: 0, 1: 0, 2: 0, 3: 1, 4: 1}
MINIMAL_CELLS = [(0, 1, 2, 3), (0, 1, 3, 4)]


class ConstantDeltaEvaluator(ActionEvaluator):
    """Evaluator whose action difference is fixed (e.g. -inf to accept every move)."""

    def __init__(self, delta: float):
        super().__init__(Couplings())
        self.delta = float(delta)

    def delta_action(self, move_type, site, before_counts, after_counts) -> float:
        return self.delta


@pytest.fixture
def minimal_seed():
    store = SimplexStore.build(MINIMAL_LABELS, MINIMAL_CELLS)
    index = validate_initial_complex(store, closed=False)
    return store, index


@pytest.fixture
def sphere3():
    store = make_foliated_sphere(3)
    return store, ingest(store, 3)


@pytest.fixture
def sphere4():
    store = make_foliated_sphere(4)
    return store, ingest(store, 4)


@pytest.fixture
def sphere5():
    store = make_foliated_sphere(5)
    return store, ingest(store, 5)


@pytest.fixture
def grown():
    return make_triangulation(5, 200, seed=7)


@pytest.fixture
def always_accept():
    return ConstantDeltaEvaluator(-math.inf)


@pytest.fixture
def always_reject():
    return ConstantDeltaEvaluator(math.inf)


def cell_sets(store: SimplexStore):
    """Multiset-free view of the complex: sorted list of cell vertex tuples."""
    return sorted(store.cell_vertices(c) for c in store.cell_ids())
