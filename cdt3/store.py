from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import DanglingReferenceError, MalformedInitialComplex

logger = logging.getLogger(__name__)

VertexId = int
CellId = int
Facet = Tuple[int, int, int]


@dataclass
class Cell:
    """Tetrahedron of the triangulation.

    ``vertices`` is sorted. ``neighbors[i]`` is the handle of the cell across the facet
    opposite ``vertices[i]`` (``None`` only on the boundary of an open complex).
    Neighbor links are plain handles into the owning store, never owning references.
    """

    vertices: Tuple[int, int, int, int]
    neighbors: List[Optional[int]] = field(default_factory=lambda: [None, None, None, None])

    def facet(self, i: int) -> Facet:
        """Triangle opposite ``vertices[i]`` (sorted)."""
        return tuple(v for j, v in enumerate(self.vertices) if j != i)  # type: ignore[return-value]

    def facets(self) -> List[Facet]:
        return [self.facet(i) for i in range(4)]

    def facet_index(self, facet: Iterable[int]) -> int:
        """Index of the vertex opposite ``facet``; KeyError if the cell does not contain it."""
        fs = set(int(v) for v in facet)
        missing = [i for i, v in enumerate(self.vertices) if v not in fs]
        if len(fs) != 3 or len(missing) != 1:
            raise KeyError(f"facet {sorted(fs)} is not a facet of cell {self.vertices}")
        return missing[0]

    def apex(self, facet: Iterable[int]) -> int:
        """Vertex of the cell not on ``facet``."""
        return self.vertices[self.facet_index(facet)]


class SimplexStore:
    """Arena of vertices and tetrahedra addressed by stable integer handles.

    Handles are never reused, so a stale handle can never alias a newer simplex.
    Time labels live on vertices; everything derived from them (cell types, edge
    classes, incidence) is kept by :class:`cdt3.foliation.FoliationIndex`.

    Mutations can be grouped with :meth:`transaction`: every operation performed inside
    the block is journaled and undone in reverse order if the block raises.
    """

    def __init__(self) -> None:
        self._timeslice: Dict[int, int] = {}
        self._cells: Dict[int, Cell] = {}
        self._refs: Dict[int, int] = {}
        self._next_vertex = 0
        self._next_cell = 0
        self._journal: Optional[List[Callable[[], None]]] = None

    @classmethod
    def build(
        cls,
        timeslices: Mapping[int, int],
        cells: Iterable[Sequence[int]],
    ) -> "SimplexStore":
        """Build a store from ``vertex -> timeslice`` labels and cell vertex lists.

        Neighbor links are glued from shared facets. Raises MalformedInitialComplex if a
        cell is degenerate, references an unknown vertex, or a facet has more than two cells.
        """
        store = cls()
        for v in sorted(int(x) for x in timeslices):
            store._insert_vertex(v, int(timeslices[v]))

        problems: List[str] = []
        for verts in cells:
            try:
                store.add_cell(*(int(v) for v in verts))
            except (KeyError, ValueError, TypeError) as exc:
                problems.append(f"cell {tuple(verts)!r}: {exc}")
        if problems:
            raise MalformedInitialComplex(problems)

        problems = store.glue()
        if problems:
            raise MalformedInitialComplex(problems)
        logger.debug("built store with %d vertices and %d cells", store.num_vertices, store.num_cells)
        return store

    # ------------------------------------------------------------------
    # mutation
    # ------------------------------------------------------------------

    def _insert_vertex(self, vid: int, timeslice: int) -> None:
        if vid in self._timeslice:
            raise ValueError(f"vertex {vid} already exists")
        self._timeslice[vid] = int(timeslice)
        self._refs[vid] = 0
        self._next_vertex = max(self._next_vertex, vid + 1)

    def add_vertex(self, timeslice: int) -> VertexId:
        vid = self._next_vertex
        self._insert_vertex(vid, timeslice)
        self._record(lambda: self._drop_vertex(vid))
        return vid

    def _drop_vertex(self, vid: int) -> None:
        del self._timeslice[vid]
        del self._refs[vid]

    def remove_vertex(self, vid: VertexId) -> None:
        if vid not in self._timeslice:
            raise KeyError(f"unknown vertex {vid}")
        if self._refs[vid] > 0:
            raise DanglingReferenceError(f"vertex {vid} is still referenced by {self._refs[vid]} cell(s)")
        t = self._timeslice[vid]
        self._drop_vertex(vid)
        self._record(lambda: self._insert_vertex(vid, t))

    def add_cell(self, v0: int, v1: int, v2: int, v3: int) -> CellId:
        verts = tuple(sorted((int(v0), int(v1), int(v2), int(v3))))
        if len(set(verts)) != 4:
            raise ValueError(f"cell vertices must be distinct, got {verts}")
        for v in verts:
            if v not in self._timeslice:
                raise KeyError(f"unknown vertex {v}")
        cid = self._next_cell
        self._next_cell += 1
        self._cells[cid] = Cell(vertices=verts)  # type: ignore[arg-type]
        for v in verts:
            self._refs[v] += 1
        self._record(lambda: self._drop_cell(cid))
        return cid

    def _drop_cell(self, cid: int) -> Cell:
        cell = self._cells.pop(cid)
        for v in cell.vertices:
            self._refs[v] -= 1
        return cell

    def _restore_cell(self, cid: int, cell: Cell) -> None:
        self._cells[cid] = cell
        for v in cell.vertices:
            self._refs[v] += 1

    def remove_cell(self, cid: CellId) -> None:
        """Remove a cell. Neighbors still pointing at it must be rewired by the caller."""
        if cid not in self._cells:
            raise KeyError(f"unknown cell {cid}")
        cell = self._drop_cell(cid)
        snapshot = Cell(vertices=cell.vertices, neighbors=list(cell.neighbors))
        self._record(lambda: self._restore_cell(cid, snapshot))

    def set_neighbor(self, cell: CellId, facet_index: int, other: Optional[CellId]) -> None:
        c = self._cells[cell]
        if other is not None:
            o = self._cells[other]
            facet = c.facet(facet_index)
            if not set(facet) <= set(o.vertices):
                raise ValueError(f"cell {other} does not contain facet {facet} of cell {cell}")
        old = c.neighbors[facet_index]
        c.neighbors[facet_index] = other

        def undo() -> None:
            # the cell may have been replaced by a snapshot during rollback
            self._cells[cell].neighbors[facet_index] = old

        self._record(undo)

    def glue(self) -> List[str]:
        """(Re)derive every neighbor link from shared facets. Returns problems found."""
        by_facet: Dict[Facet, List[Tuple[int, int]]] = {}
        for cid in sorted(self._cells):
            cell = self._cells[cid]
            for i in range(4):
                by_facet.setdefault(cell.facet(i), []).append((cid, i))

        problems: List[str] = []
        for facet, uses in by_facet.items():
            if len(uses) > 2:
                problems.append(f"facet {facet} shared by {len(uses)} cells")
                continue
            if len(uses) == 2:
                (a, i), (b, j) = uses
                self._cells[a].neighbors[i] = b
                self._cells[b].neighbors[j] = a
            else:
                a, i = uses[0]
                self._cells[a].neighbors[i] = None
        return problems

    # ------------------------------------------------------------------
    # transactions
    # ------------------------------------------------------------------

    def _record(self, undo: Callable[[], None]) -> None:
        if self._journal is not None:
            self._journal.append(undo)

    def on_rollback(self, undo: Callable[[], None]) -> None:
        """Register an extra undo step (e.g. for derived indices) in the open transaction."""
        self._record(undo)

    @property
    def in_transaction(self) -> bool:
        return self._journal is not None

    @contextmanager
    def transaction(self) -> Iterator["SimplexStore"]:
        if self._journal is not None:
            raise RuntimeError("nested transactions are not supported")
        self._journal = []
        try:
            yield self
        except BaseException:
            journal, self._journal = self._journal, None
            logger.warning("rolling back %d journaled operation(s)", len(journal))
            for undo in reversed(journal):
                undo()
            raise
        self._journal = None

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    @property
    def num_vertices(self) -> int:
        return len(self._timeslice)

    @property
    def num_cells(self) -> int:
        return len(self._cells)

    def vertex_ids(self) -> List[int]:
        return sorted(self._timeslice)

    def cell_ids(self) -> List[int]:
        return sorted(self._cells)

    def has_vertex(self, vid: int) -> bool:
        return vid in self._timeslice

    def has_cell(self, cid: int) -> bool:
        return cid in self._cells

    def timeslice(self, vid: VertexId) -> int:
        return self._timeslice[vid]

    def timeslices(self) -> Dict[int, int]:
        return dict(self._timeslice)

    def references(self, vid: VertexId) -> int:
        """Number of cells referencing ``vid``."""
        return self._refs[vid]

    def cell(self, cid: CellId) -> Cell:
        return self._cells[cid]

    def cell_vertices(self, cid: CellId) -> Tuple[int, int, int, int]:
        return self._cells[cid].vertices

    def neighbor(self, cid: CellId, facet_index: int) -> Optional[CellId]:
        return self._cells[cid].neighbors[facet_index]

    def cell_timeslices(self, cid: CellId) -> Tuple[int, ...]:
        return tuple(self._timeslice[v] for v in self._cells[cid].vertices)

    def copy(self) -> "SimplexStore":
        """Independent deep copy (same handles), e.g. to start a second chain."""
        out = SimplexStore()
        out._timeslice = dict(self._timeslice)
        out._refs = dict(self._refs)
        out._cells = {
            cid: Cell(vertices=c.vertices, neighbors=list(c.neighbors)) for cid, c in self._cells.items()
        }
        out._next_vertex = self._next_vertex
        out._next_cell = self._next_cell
        return out
