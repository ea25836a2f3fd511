"""
tests/test_store.py - Tests for store.py

SimplexStore: handles, reference counting, neighbor links and transactions.
"""

import pytest

from cdt3.errors import DanglingReferenceError, MalformedInitialComplex
from cdt3.store import Cell, SimplexStore


class TestCell:
    """Tests for the Cell record."""

    def test_facet_is_opposite_vertex(self):
        """facet(i) drops vertices[i]."""
        cell = Cell(vertices=(1, 4, 6, 9))
        assert cell.facet(0) == (4, 6, 9)
        assert cell.facet(3) == (1, 4, 6)

    def test_facet_index_and_apex(self):
        """facet_index finds the opposite vertex regardless of facet order."""
        cell = Cell(vertices=(1, 4, 6, 9))
        assert cell.facet_index((9, 1, 4)) == 2
        assert cell.apex([6, 4, 1]) == 9

    def test_facet_index_rejects_foreign_facet(self):
        """A triangle that is not on the cell raises KeyError."""
        cell = Cell(vertices=(1, 4, 6, 9))
        with pytest.raises(KeyError):
            cell.facet_index((1, 4, 5))


class TestMutation:
    """Tests for add/remove of vertices and cells."""

    def test_add_vertex_and_cell(self):
        """Cells are stored sorted and count references."""
        store = SimplexStore()
        vs = [store.add_vertex(t) for t in (0, 0, 0, 1)]
        cid = store.add_cell(vs[3], vs[0], vs[2], vs[1])
        assert store.cell_vertices(cid) == tuple(sorted(vs))
        assert all(store.references(v) == 1 for v in vs)
        assert store.num_cells == 1 and store.num_vertices == 4

    def test_add_cell_rejects_repeated_vertex(self):
        store = SimplexStore()
        vs = [store.add_vertex(0) for _ in range(3)]
        with pytest.raises(ValueError):
            store.add_cell(vs[0], vs[0], vs[1], vs[2])

    def test_add_cell_rejects_unknown_vertex(self):
        store = SimplexStore()
        vs = [store.add_vertex(0) for _ in range(3)]
        with pytest.raises(KeyError):
            store.add_cell(vs[0], vs[1], vs[2], 99)

    def test_remove_referenced_vertex_raises(self):
        """A vertex still used by a cell cannot be removed."""
        store = SimplexStore()
        vs = [store.add_vertex(t) for t in (0, 0, 0, 1)]
        cid = store.add_cell(*vs)
        with pytest.raises(DanglingReferenceError):
            store.remove_vertex(vs[0])
        store.remove_cell(cid)
        store.remove_vertex(vs[0])
        assert not store.has_vertex(vs[0])

    def test_handles_are_never_reused(self):
        """Removing the newest cell does not make its handle available again."""
        store = SimplexStore()
        vs = [store.add_vertex(t) for t in (0, 0, 0, 1)]
        first = store.add_cell(*vs)
        store.remove_cell(first)
        second = store.add_cell(*vs)
        assert second > first

    def test_set_neighbor_requires_shared_facet(self):
        """The other cell must contain the facet being linked."""
        store = SimplexStore.build({0: 0, 1: 0, 2: 0, 3: 1, 4: 1, 5: 1}, [(0, 1, 2, 3)])
        other = store.add_cell(3, 4, 5, 0)
        with pytest.raises(ValueError):
            store.set_neighbor(0, 0, other)


class TestBuild:
    """Tests for SimplexStore.build."""

    def test_build_glues_shared_facets(self, minimal_seed):
        """Neighbors across the shared triangle point at each other."""
        store, _ = minimal_seed
        a, b = store.cell(0), store.cell(1)
        i = a.facet_index((0, 1, 3))
        j = b.facet_index((0, 1, 3))
        assert a.neighbors[i] == 1
        assert b.neighbors[j] == 0
        assert sum(nb is not None for nb in a.neighbors) == 1

    def test_build_rejects_overfull_facet(self):
        """Three cells on one triangle is not a manifold."""
        labels = {0: 0, 1: 0, 2: 0, 3: 1, 4: 1, 5: 1}
        with pytest.raises(MalformedInitialComplex) as info:
            SimplexStore.build(labels, [(0, 1, 2, 3), (0, 1, 2, 4), (0, 1, 2, 5)])
        assert "shared by 3 cells" in str(info.value)

    def test_build_collects_bad_cells(self):
        """Every bad cell is reported, not just the first."""
        with pytest.raises(MalformedInitialComplex) as info:
            SimplexStore.build({0: 0, 1: 0, 2: 0}, [(0, 1, 2, 7), (0, 0, 1, 2)])
        assert len(info.value.problems) == 2


class TestTransactions:
    """Tests for journaled rollback."""

    def test_rollback_restores_everything(self, minimal_seed):
        """An exception inside the block undoes adds, removes and relinks."""
        store, _ = minimal_seed
        before_cells = {c: store.cell_vertices(c) for c in store.cell_ids()}
        before_links = {c: list(store.cell(c).neighbors) for c in store.cell_ids()}
        before_vertices = store.timeslices()

        with pytest.raises(RuntimeError, match="boom"):
            with store.transaction():
                v = store.add_vertex(1)
                store.remove_cell(1)
                cid = store.add_cell(0, 1, 3, v)
                store.set_neighbor(0, store.cell(0).facet_index((0, 1, 3)), cid)
                raise RuntimeError("boom")

        assert {c: store.cell_vertices(c) for c in store.cell_ids()} == before_cells
        assert {c: list(store.cell(c).neighbors) for c in store.cell_ids()} == before_links
        assert store.timeslices() == before_vertices
        assert not store.in_transaction

    def test_commit_keeps_changes(self):
        store = SimplexStore()
        with store.transaction():
            v = store.add_vertex(2)
        assert store.has_vertex(v)
        assert store.timeslice(v) == 2

    def test_nested_transaction_rejected(self):
        store = SimplexStore()
        with store.transaction():
            with pytest.raises(RuntimeError):
                with store.transaction():
                    pass

    def test_on_rollback_runs_extra_undo(self):
        """Registered undo callbacks run in reverse order with the journal."""
        store = SimplexStore()
        calls = []
        with pytest.raises(ValueError):
            with store.transaction():
                store.on_rollback(lambda: calls.append("first"))
                store.on_rollback(lambda: calls.append("second"))
                raise ValueError("stop")
        assert calls == ["second", "first"]


class TestCopy:
    def test_copy_is_independent(self, sphere3):
        store, _ = sphere3
        dup = store.copy()
        dup.remove_cell(0)
        assert store.has_cell(0)
        assert dup.num_cells == store.num_cells - 1
