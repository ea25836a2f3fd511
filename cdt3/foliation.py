from __future__ import annotations

"""cdt3.foliation

Derived indices over a :class:`~cdt3.store.SimplexStore`.

The index answers, in O(1) or O(link size):
  - cell type of every tetrahedron: (3,1), (2,2), (1,3)
  - edge class of every edge: timelike / spacelike
  - global counts (N0, N1_TL, N1_SL, N3 by type)
  - per-slice counts (vertices, spacelike edges, cells per slab)
  - incidence: vertex -> cells, edge -> cells, cyclic edge link
  - degree and type buckets with O(1) random access, used to sample move sites

It is updated by the move mutators through register_/unregister_ calls, one per
touched cell or vertex; ``update_calls`` counts them. The only full scan happens at
construction time (ingestion) and in the debug-only :meth:`FoliationIndex.check_consistency`.
"""

from collections import Counter
from dataclasses import dataclass, fields
from enum import Enum
from itertools import combinations
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Union

from .errors import DanglingReferenceError, InvariantViolation
from .store import SimplexStore

Edge = Tuple[int, int]


class CellType(Enum):
    THREE_ONE = "(3,1)"
    TWO_TWO = "(2,2)"
    ONE_THREE = "(1,3)"


class EdgeClass(Enum):
    TIMELIKE = "timelike"
    SPACELIKE = "spacelike"


_TYPE_BY_LOWER_COUNT = {3: CellType.THREE_ONE, 2: CellType.TWO_TWO, 1: CellType.ONE_THREE}


def cell_type_of(slices: Sequence[int]) -> CellType:
    """Type of a tetrahedron from the time labels of its four vertices.

    Raises InvariantViolation unless the labels take exactly two consecutive values.
    """
    lo = min(slices)
    hi = max(slices)
    if hi - lo != 1:
        raise InvariantViolation([f"cell with timeslices {tuple(slices)} does not span two adjacent slices"])
    return _TYPE_BY_LOWER_COUNT[sum(1 for t in slices if t == lo)]


def edge_key(u: int, v: int) -> Edge:
    return (u, v) if u < v else (v, u)


@dataclass(frozen=True)
class SimplexCounts:
    """Global simplex counts. Also used for signed deltas produced by a move."""

    n0: int = 0
    n1_tl: int = 0
    n1_sl: int = 0
    n3_31: int = 0
    n3_22: int = 0
    n3_13: int = 0

    @property
    def n1(self) -> int:
        return self.n1_tl + self.n1_sl

    @property
    def n3(self) -> int:
        return self.n3_31 + self.n3_22 + self.n3_13

    @property
    def n3_31_13(self) -> int:
        return self.n3_31 + self.n3_13

    def __add__(self, other: "SimplexCounts") -> "SimplexCounts":
        return SimplexCounts(**{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)})

    def __sub__(self, other: "SimplexCounts") -> "SimplexCounts":
        return SimplexCounts(**{f.name: getattr(self, f.name) - getattr(other, f.name) for f in fields(self)})

    def __neg__(self) -> "SimplexCounts":
        return SimplexCounts(**{f.name: -getattr(self, f.name) for f in fields(self)})

    def as_dict(self) -> Dict[str, int]:
        return {f.name: int(getattr(self, f.name)) for f in fields(self)}


class IndexedBucket:
    """Set with O(1) add, discard and random access by position.

    Items live in a list with a position map; discard swaps the last item into the
    hole. Positions are therefore not stable, but they are a deterministic function
    of the sequence of updates.
    """

    __slots__ = ("_items", "_pos")

    def __init__(self, items: Iterable = ()):
        self._items: List = []
        self._pos: Dict = {}
        for item in items:
            self.add(item)

    def add(self, item) -> None:
        if item in self._pos:
            return
        self._pos[item] = len(self._items)
        self._items.append(item)

    def discard(self, item) -> None:
        i = self._pos.pop(item, None)
        if i is None:
            return
        last = self._items.pop()
        if i < len(self._items):
            self._items[i] = last
            self._pos[last] = i

    def __getitem__(self, i: int):
        return self._items[i]

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item) -> bool:
        return item in self._pos

    def __iter__(self) -> Iterator:
        return iter(self._items)


_EMPTY_BUCKET = IndexedBucket()


@dataclass(frozen=True)
class EdgeLink:
    """Cells around an edge in cyclic (or, on a boundary, path) order.

    Cell ``cells[i]`` contains link vertices ``vertices[i]`` and ``vertices[i + 1]``
    (indices mod ``len(cells)`` when ``closed``).
    """

    edge: Edge
    cells: Tuple[int, ...]
    vertices: Tuple[int, ...]
    closed: bool


class FoliationIndex:
    def __init__(self, store: SimplexStore):
        self.store = store
        self.update_calls = 0

        self._vertex_slice: Dict[int, int] = {}
        self._vertex_cells: Dict[int, Set[int]] = {}
        self._vertices_by_degree: Dict[int, IndexedBucket] = {}

        self._cell_vertices: Dict[int, Tuple[int, int, int, int]] = {}
        self._cell_type: Dict[int, CellType] = {}
        self._cells_by_type: Dict[CellType, IndexedBucket] = {t: IndexedBucket() for t in CellType}

        self._edge_cells: Dict[Edge, Set[int]] = {}
        self._edges_by_degree: Dict[int, IndexedBucket] = {}
        self._edge_class_counts: Counter = Counter()

        self._slice_vertices: Counter = Counter()
        self._slice_spacelike_edges: Counter = Counter()
        self._slab_cells: Counter = Counter()  # (lower slice, CellType) -> count

        for v in store.vertex_ids():
            self.register_vertex(v)
        for cid in store.cell_ids():
            self.register_cell(cid)
        # the ingestion scan is not an incremental update
        self.update_calls = 0

    # ------------------------------------------------------------------
    # incremental maintenance
    # ------------------------------------------------------------------

    @staticmethod
    def _move_bucket(buckets: Dict[int, IndexedBucket], item, old: Optional[int], new: Optional[int]) -> None:
        if old is not None:
            bucket = buckets[old]
            bucket.discard(item)
            if not bucket:
                del buckets[old]
        if new is not None:
            buckets.setdefault(new, IndexedBucket()).add(item)

    def register_vertex(self, v: int) -> None:
        if v in self._vertex_slice:
            raise ValueError(f"vertex {v} already indexed")
        self.update_calls += 1
        t = self.store.timeslice(v)
        self._vertex_slice[v] = t
        self._vertex_cells[v] = set()
        self._move_bucket(self._vertices_by_degree, v, None, 0)
        self._slice_vertices[t] += 1

    def unregister_vertex(self, v: int) -> None:
        cells = self._vertex_cells[v]
        if cells:
            raise DanglingReferenceError(f"vertex {v} still has {len(cells)} incident cell(s) in the index")
        self.update_calls += 1
        t = self._vertex_slice.pop(v)
        del self._vertex_cells[v]
        self._move_bucket(self._vertices_by_degree, v, 0, None)
        self._slice_vertices[t] -= 1
        if self._slice_vertices[t] == 0:
            del self._slice_vertices[t]

    def register_cell(self, cid: int) -> None:
        if cid in self._cell_vertices:
            raise ValueError(f"cell {cid} already indexed")
        self.update_calls += 1
        verts = self.store.cell_vertices(cid)
        slices = [self._vertex_slice[v] for v in verts]
        ctype = cell_type_of(slices)

        self._cell_vertices[cid] = verts
        self._cell_type[cid] = ctype
        self._cells_by_type[ctype].add(cid)
        self._slab_cells[(min(slices), ctype)] += 1

        for v in verts:
            cells = self._vertex_cells[v]
            cells.add(cid)
            self._move_bucket(self._vertices_by_degree, v, len(cells) - 1, len(cells))

        for u, w in combinations(verts, 2):
            e = (u, w)
            cells = self._edge_cells.get(e)
            if cells is None:
                cells = self._edge_cells[e] = set()
                self._count_edge(e, +1)
            cells.add(cid)
            self._move_bucket(self._edges_by_degree, e, len(cells) - 1 or None, len(cells))

    def unregister_cell(self, cid: int) -> None:
        self.update_calls += 1
        verts = self._cell_vertices.pop(cid)
        ctype = self._cell_type.pop(cid)
        self._cells_by_type[ctype].discard(cid)
        key = (min(self._vertex_slice[v] for v in verts), ctype)
        self._slab_cells[key] -= 1
        if self._slab_cells[key] == 0:
            del self._slab_cells[key]

        for v in verts:
            cells = self._vertex_cells[v]
            cells.discard(cid)
            self._move_bucket(self._vertices_by_degree, v, len(cells) + 1, len(cells))

        for u, w in combinations(verts, 2):
            e = (u, w)
            cells = self._edge_cells[e]
            cells.discard(cid)
            self._move_bucket(self._edges_by_degree, e, len(cells) + 1, len(cells) or None)
            if not cells:
                del self._edge_cells[e]
                self._count_edge(e, -1)

    def _count_edge(self, e: Edge, sign: int) -> None:
        tu = self._vertex_slice[e[0]]
        tw = self._vertex_slice[e[1]]
        if tu == tw:
            self._edge_class_counts[EdgeClass.SPACELIKE] += sign
            self._slice_spacelike_edges[tu] += sign
            if self._slice_spacelike_edges[tu] == 0:
                del self._slice_spacelike_edges[tu]
        else:
            self._edge_class_counts[EdgeClass.TIMELIKE] += sign

    # ------------------------------------------------------------------
    # classification and counts
    # ------------------------------------------------------------------

    def classify_cell(self, cid: int) -> CellType:
        return self._cell_type[cid]

    def classify_edge(self, u: int, v: int) -> EdgeClass:
        if self.store.timeslice(u) == self.store.timeslice(v):
            return EdgeClass.SPACELIKE
        return EdgeClass.TIMELIKE

    def count(self, kind: Union[CellType, EdgeClass]) -> int:
        if isinstance(kind, CellType):
            return len(self._cells_by_type[kind])
        if isinstance(kind, EdgeClass):
            return int(self._edge_class_counts[kind])
        raise TypeError(f"cannot count {kind!r}")

    def counts(self) -> SimplexCounts:
        return SimplexCounts(
            n0=len(self._vertex_slice),
            n1_tl=int(self._edge_class_counts[EdgeClass.TIMELIKE]),
            n1_sl=int(self._edge_class_counts[EdgeClass.SPACELIKE]),
            n3_31=len(self._cells_by_type[CellType.THREE_ONE]),
            n3_22=len(self._cells_by_type[CellType.TWO_TWO]),
            n3_13=len(self._cells_by_type[CellType.ONE_THREE]),
        )

    # ------------------------------------------------------------------
    # incidence
    # ------------------------------------------------------------------

    def cells_incident_to(self, v: int) -> FrozenSet[int]:
        return frozenset(self._vertex_cells[v])

    def vertex_degree(self, v: int) -> int:
        return len(self._vertex_cells[v])

    def has_edge(self, u: int, v: int) -> bool:
        return edge_key(u, v) in self._edge_cells

    def edge_cells(self, u: int, v: int) -> FrozenSet[int]:
        return frozenset(self._edge_cells.get(edge_key(u, v), ()))

    def edge_degree(self, u: int, v: int) -> int:
        return len(self._edge_cells.get(edge_key(u, v), ()))

    def cells_containing(self, vertices: Iterable[int]) -> Set[int]:
        """Cells whose vertex set includes all of ``vertices`` (intersection of incidence sets)."""
        sets = sorted((self._vertex_cells.get(v, set()) for v in vertices), key=len)
        if not sets:
            return set()
        out = set(sets[0])
        for s in sets[1:]:
            out &= s
            if not out:
                break
        return out

    def cells_of_type(self, ctype: CellType) -> List[int]:
        return sorted(self._cells_by_type[ctype])

    def edges_with_degree(self, degree: int) -> List[Edge]:
        return sorted(self._edges_by_degree.get(int(degree), ()))

    def vertices_with_degree(self, degree: int) -> List[int]:
        return sorted(self._vertices_by_degree.get(int(degree), ()))

    # random-access views for site sampling; read-only for callers

    def cell_bucket(self, ctype: CellType) -> IndexedBucket:
        return self._cells_by_type[ctype]

    def edge_bucket(self, degree: int) -> IndexedBucket:
        return self._edges_by_degree.get(int(degree), _EMPTY_BUCKET)

    def vertex_bucket(self, degree: int) -> IndexedBucket:
        return self._vertices_by_degree.get(int(degree), _EMPTY_BUCKET)

    def cells_sharing_edge(self, u: int, v: int) -> List[int]:
        """Cells around edge (u, v), ordered cyclically around it."""
        return list(self.edge_link(u, v).cells)

    def edge_link(self, u: int, v: int) -> EdgeLink:
        e = edge_key(u, v)
        incident = self._edge_cells.get(e)
        if not incident:
            raise KeyError(f"no edge {e}")
        start = min(incident)
        others = [p for p in self.store.cell_vertices(start) if p not in e]

        forward, closed = self._walk(e, start, others[0], len(incident))
        if closed:
            cells = forward
        else:
            backward, _ = self._walk(e, start, others[1], len(incident))
            cells = list(reversed(backward[1:])) + forward
        if len(cells) != len(incident):
            raise InvariantViolation([f"edge {e}: link walk reached {len(cells)} of {len(incident)} cells"])
        return EdgeLink(edge=e, cells=tuple(cells), vertices=self._link_vertices(e, cells, closed), closed=closed)

    def _walk(self, e: Edge, start: int, exit_vertex: int, limit: int) -> Tuple[List[int], bool]:
        cells = [start]
        current = start
        while True:
            cell = self.store.cell(current)
            nxt = cell.neighbors[cell.vertices.index(exit_vertex)]
            if nxt is None:
                return cells, False
            if nxt == start:
                return cells, True
            if len(cells) >= limit:
                raise InvariantViolation([f"edge {e}: link walk does not close"])
            hinge = next(p for p in cell.vertices if p not in e and p != exit_vertex)
            cells.append(nxt)
            current = nxt
            exit_vertex = hinge

    def _link_vertices(self, e: Edge, cells: List[int], closed: bool) -> Tuple[int, ...]:
        others = [set(self.store.cell_vertices(c)) - set(e) for c in cells]
        k = len(others)
        if k == 1:
            return tuple(sorted(others[0]))
        shared = [next(iter(others[i] & others[i + 1])) for i in range(k - 1)]
        if closed:
            last = next(iter(others[-1] & others[0]))
            return (last, *shared)
        first = next(iter(others[0] - {shared[0]}))
        end = next(iter(others[-1] - {shared[-1]}))
        return (first, *shared, end)

    # ------------------------------------------------------------------
    # foliation observables
    # ------------------------------------------------------------------

    def timeslice_labels(self) -> List[int]:
        return sorted(self._slice_vertices)

    def slice_vertex_count(self, t: int) -> int:
        return int(self._slice_vertices.get(t, 0))

    def slice_spacelike_edge_count(self, t: int) -> int:
        return int(self._slice_spacelike_edges.get(t, 0))

    def slab_cell_count(self, t: int, ctype: CellType) -> int:
        """Cells of ``ctype`` in the slab between slices t and t+1."""
        return int(self._slab_cells.get((t, ctype), 0))

    def spatial_volume(self, t: int) -> int:
        """Spacelike triangles in slice t; each is the base of exactly one (3,1) cell above it."""
        return self.slab_cell_count(t, CellType.THREE_ONE)

    def volume_profile(self) -> Dict[int, int]:
        return {t: self.spatial_volume(t) for t in self.timeslice_labels()}

    # ------------------------------------------------------------------
    # debug
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, object]:
        return {
            "vertex_cells": {v: frozenset(c) for v, c in self._vertex_cells.items()},
            "edge_cells": {e: frozenset(c) for e, c in self._edge_cells.items()},
            "cell_type": dict(self._cell_type),
            "edges_by_degree": {d: frozenset(s) for d, s in self._edges_by_degree.items()},
            "vertices_by_degree": {d: frozenset(s) for d, s in self._vertices_by_degree.items()},
            "counts": self.counts(),
            "slice_vertices": dict(self._slice_vertices),
            "slice_spacelike_edges": dict(self._slice_spacelike_edges),
            "slab_cells": dict(self._slab_cells),
        }

    def check_consistency(self) -> List[str]:
        """Rebuild from the store and diff against the incremental state (tests/debug only)."""
        fresh = FoliationIndex(self.store).snapshot()
        mine = self.snapshot()
        return [f"index field {key!r} drifted from a full recount" for key in mine if mine[key] != fresh[key]]
