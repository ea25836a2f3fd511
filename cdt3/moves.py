from __future__ import annotations

"""cdt3.moves

Foliation-preserving ergodic moves on a 3D causal triangulation.

Each move type has a matcher (enumerate candidate sites, check one site) and a
mutator (commit the rewrite). Matching is read-only and produces a :class:`Proposal`;
the proposal carries the complete rewrite plan plus the signed change of the global
simplex counts, so the action difference can be computed before anything is touched.

All move types share one validator, :meth:`MoveCatalog._plan`. Given the cells to
remove and the cells to add it checks that the added patch has the same boundary as
the removed one, introduces no duplicate facets or edges, keeps every cell within two
adjacent slices, and keeps every spacelike triangle between a cell above and a cell
below. The move-specific code only has to say which cells go and which come in.

Sites:
  (2,3)  FacetSite(cell, facet)             a timelike triangle of a (2,2) cell
  (3,2)  EdgeSite(edge)                     an edge with three cells around it
  (2,6)  InsertionSite(cell, facet, slice)  the spacelike base of a (3,1) cell
  (6,2)  VertexSite(vertex)                 a vertex with six cells around it
  (4,4)  FlipSite(edge, diagonal)           an edge with four cells around it and the
                                            opposite diagonal of its octahedron
"""

import logging
from dataclasses import dataclass
from enum import Enum
from itertools import combinations
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union

import numpy as np

from .errors import InvariantViolation, NoValidSite
from .foliation import CellType, FoliationIndex, IndexedBucket, SimplexCounts, cell_type_of, edge_key
from .invariants import check_local
from .store import SimplexStore

logger = logging.getLogger(__name__)

# Placeholder handle for the vertex a (2,6) move inserts; replaced at commit time.
NEW_VERTEX = -1


class MoveType(Enum):
    TWO_THREE = "(2,3)"
    THREE_TWO = "(3,2)"
    TWO_SIX = "(2,6)"
    SIX_TWO = "(6,2)"
    FOUR_FOUR = "(4,4)"

    @classmethod
    def parse(cls, name: Union[str, "MoveType"]) -> "MoveType":
        """Accept "(2,3)", "2,3", "23", "2-3", "TWO_THREE" and the like."""
        if isinstance(name, MoveType):
            return name
        s = str(name).strip()
        if s.upper() in cls.__members__:
            return cls[s.upper()]
        digits = "".join(ch for ch in s if ch.isdigit())
        for m in cls:
            if "".join(ch for ch in m.value if ch.isdigit()) == digits:
                return m
        raise ValueError(f"Unknown move type {name!r} (use one of {[m.value for m in cls]})")

    @property
    def inverse(self) -> "MoveType":
        return _INVERSE[self]

    @property
    def cell_delta(self) -> int:
        return _CELL_DELTA[self]


_INVERSE = {
    MoveType.TWO_THREE: MoveType.THREE_TWO,
    MoveType.THREE_TWO: MoveType.TWO_THREE,
    MoveType.TWO_SIX: MoveType.SIX_TWO,
    MoveType.SIX_TWO: MoveType.TWO_SIX,
    MoveType.FOUR_FOUR: MoveType.FOUR_FOUR,
}

_CELL_DELTA = {
    MoveType.TWO_THREE: +1,
    MoveType.THREE_TWO: -1,
    MoveType.TWO_SIX: +4,
    MoveType.SIX_TWO: -4,
    MoveType.FOUR_FOUR: 0,
}


@dataclass(frozen=True)
class FacetSite:
    cell: int
    facet: Tuple[int, int, int]


@dataclass(frozen=True)
class EdgeSite:
    edge: Tuple[int, int]


@dataclass(frozen=True)
class FlipSite:
    edge: Tuple[int, int]
    diagonal: Tuple[int, int]


@dataclass(frozen=True)
class InsertionSite:
    cell: int
    facet: Tuple[int, int, int]
    timeslice: int


@dataclass(frozen=True)
class VertexSite:
    vertex: int


Site = Union[FacetSite, EdgeSite, FlipSite, InsertionSite, VertexSite]

# Where an added cell's facet gets glued: None (open boundary), ("new", k) another
# added cell, or ("old", cell) a surviving cell outside the rewritten region.
GlueTarget = Optional[Tuple]


@dataclass(frozen=True)
class Proposal:
    """A validated, not yet applied rewrite."""

    move: MoveType
    site: Site
    removed_cells: Tuple[int, ...]
    added_cells: Tuple[Tuple[int, int, int, int], ...]
    gluing: Tuple[Tuple[int, Tuple[int, int, int], GlueTarget], ...]
    delta: SimplexCounts
    new_vertex_slice: Optional[int] = None
    removed_vertex: Optional[int] = None


@dataclass(frozen=True)
class CommitResult:
    move: MoveType
    site: Site
    added_cells: Tuple[int, ...]
    removed_cells: Tuple[int, ...]
    delta: SimplexCounts
    new_vertex: Optional[int] = None
    removed_vertex: Optional[int] = None


def _facets_of(verts: Sequence[int]) -> List[Tuple[int, int, int]]:
    return [tuple(sorted(f)) for f in combinations(verts, 3)]  # type: ignore[misc]


def _edges_of(verts: Sequence[int]) -> List[Tuple[int, int]]:
    return [edge_key(a, b) for a, b in combinations(verts, 2)]


def _sorted4(verts: Sequence[int]) -> Tuple[int, int, int, int]:
    return tuple(sorted(int(v) for v in verts))  # type: ignore[return-value]


# Candidate slots per bucket item: facets of a (2,2) cell, diagonals of a (4,4)
# octahedron, one site otherwise.
_FAN_OUT = {
    MoveType.TWO_THREE: 4,
    MoveType.THREE_TWO: 1,
    MoveType.FOUR_FOUR: 2,
    MoveType.TWO_SIX: 1,
    MoveType.SIX_TWO: 1,
}


def _draw_without_replacement(n: int, rng: np.random.Generator) -> Iterator[int]:
    """Lazy random permutation of range(n); costs O(1) per value drawn."""
    swapped: Dict[int, int] = {}
    for i in range(n):
        j = int(rng.integers(i, n))
        picked = swapped.get(j, j)
        swapped[j] = swapped.get(i, i)
        yield picked


class MoveCatalog:
    """Matchers and mutators for the five 3D moves over one store/index pair."""

    def __init__(self, store: SimplexStore, index: FoliationIndex, closed: bool = True):
        self.store = store
        self.index = index
        self.closed = closed

    # ------------------------------------------------------------------
    # site enumeration
    # ------------------------------------------------------------------

    def _bucket(self, move: MoveType) -> IndexedBucket:
        """Index bucket whose items the sites of ``move`` are built from."""
        index = self.index
        if move is MoveType.TWO_THREE:
            return index.cell_bucket(CellType.TWO_TWO)
        if move is MoveType.THREE_TWO:
            return index.edge_bucket(3)
        if move is MoveType.FOUR_FOUR:
            return index.edge_bucket(4)
        if move is MoveType.TWO_SIX:
            return index.cell_bucket(CellType.THREE_ONE)
        if move is MoveType.SIX_TWO:
            return index.vertex_bucket(6)
        raise ValueError(f"Unhandled move {move!r}")

    def _site_at(self, move: MoveType, item, slot: int) -> Optional[Site]:
        """Site number ``slot`` of one bucket item, or None if that slot holds no candidate."""
        if move is MoveType.TWO_THREE:
            cell = self.store.cell(item)
            nb = cell.neighbors[slot]
            if nb is None:
                return None
            # a facet between two (2,2) cells belongs to the lower handle only
            if nb < item and self.index.classify_cell(nb) is CellType.TWO_TWO:
                return None
            return FacetSite(item, cell.facet(slot))
        if move is MoveType.THREE_TWO:
            return EdgeSite(item)
        if move is MoveType.FOUR_FOUR:
            link = self.index.edge_link(*item)
            if not link.closed:
                return None
            x = link.vertices
            return FlipSite(item, edge_key(x[slot], x[slot + 2]))
        if move is MoveType.TWO_SIX:
            verts = self.store.cell_vertices(item)
            t = min(self.store.timeslice(v) for v in verts)
            base = tuple(v for v in verts if self.store.timeslice(v) == t)
            return InsertionSite(item, base, t)  # type: ignore[arg-type]
        if move is MoveType.SIX_TWO:
            return VertexSite(item)
        raise ValueError(f"Unhandled move {move!r}")

    def candidates(self, move: MoveType) -> List[Site]:
        """All candidate sites in a deterministic order.

        Each potentially valid rewrite appears exactly once; candidates may still fail
        their precondition. This walks the whole bucket; sampling goes through
        :meth:`find_site` instead.
        """
        move = MoveType.parse(move)
        fan_out = _FAN_OUT[move]
        out: List[Site] = []
        for item in sorted(self._bucket(move)):
            for slot in range(fan_out):
                site = self._site_at(move, item, slot)
                if site is not None:
                    out.append(site)
        return out

    def valid_sites(self, move: MoveType) -> List[Site]:
        out = []
        for site in self.candidates(move):
            try:
                self.propose(move, site)
            except NoValidSite:
                continue
            out.append(site)
        return out

    def find_site(self, move: MoveType, rng: np.random.Generator) -> Proposal:
        """Uniformly random valid site of ``move``, already planned.

        Every bucket item owns a fixed number of slots. Slots are drawn without
        replacement and only the drawn one is turned into a site and checked; the first
        site passing its precondition wins, which is uniform over the valid sites.
        Raises NoValidSite.
        """
        move = MoveType.parse(move)
        bucket = self._bucket(move)
        if not bucket:
            raise NoValidSite(move, "no candidate sites")
        fan_out = _FAN_OUT[move]
        tried = 0
        for j in _draw_without_replacement(len(bucket) * fan_out, rng):
            site = self._site_at(move, bucket[j // fan_out], j % fan_out)
            if site is None:
                continue
            tried += 1
            try:
                return self.propose(move, site)
            except NoValidSite:
                continue
        if not tried:
            raise NoValidSite(move, "no candidate sites")
        raise NoValidSite(move, f"none of {tried} candidate site(s) passed the precondition")

    # ------------------------------------------------------------------
    # matchers
    # ------------------------------------------------------------------

    def propose(self, move: MoveType, site: Site) -> Proposal:
        """Check ``site`` for ``move`` and plan the rewrite. Read-only; raises NoValidSite."""
        move = MoveType.parse(move)
        handler = {
            MoveType.TWO_THREE: self._propose_23,
            MoveType.THREE_TWO: self._propose_32,
            MoveType.TWO_SIX: self._propose_26,
            MoveType.SIX_TWO: self._propose_62,
            MoveType.FOUR_FOUR: self._propose_44,
        }[move]
        return handler(site)

    def _require_cell(self, move: MoveType, site: Site, cid: int) -> None:
        if not self.store.has_cell(cid):
            raise NoValidSite(move, f"cell {cid} does not exist", site)

    def _propose_23(self, site: Site) -> Proposal:
        move = MoveType.TWO_THREE
        if not isinstance(site, FacetSite):
            raise TypeError(f"{move.value} expects a FacetSite, got {site!r}")
        self._require_cell(move, site, site.cell)
        cell = self.store.cell(site.cell)
        try:
            i = cell.facet_index(site.facet)
        except KeyError:
            raise NoValidSite(move, "facet is not on the cell", site)
        nb = cell.neighbors[i]
        if nb is None:
            raise NoValidSite(move, "facet is on the boundary", site)
        other = self.store.cell(nb)
        facet = cell.facet(i)
        u = cell.vertices[i]
        v = other.apex(facet)
        if self.index.has_edge(u, v):
            raise NoValidSite(move, f"edge {edge_key(u, v)} already exists", site)
        added = [_sorted4((a, b, u, v)) for a, b in combinations(facet, 2)]
        return self._plan(move, site, (site.cell, nb), added)

    def _closed_link(self, move: MoveType, site: Site, edge: Tuple[int, int], size: int):
        u, v = edge
        if not self.index.has_edge(u, v):
            raise NoValidSite(move, f"edge {edge_key(u, v)} does not exist", site)
        if self.index.edge_degree(u, v) != size:
            raise NoValidSite(move, f"edge has {self.index.edge_degree(u, v)} cells around it, need {size}", site)
        link = self.index.edge_link(u, v)
        if not link.closed:
            raise NoValidSite(move, "edge is on the boundary", site)
        return link

    def _propose_32(self, site: Site) -> Proposal:
        move = MoveType.THREE_TWO
        if not isinstance(site, EdgeSite):
            raise TypeError(f"{move.value} expects an EdgeSite, got {site!r}")
        u, v = site.edge
        link = self._closed_link(move, site, site.edge, 3)
        x, y, z = link.vertices
        added = [_sorted4((x, y, z, u)), _sorted4((x, y, z, v))]
        return self._plan(move, site, link.cells, added)

    def _propose_44(self, site: Site) -> Proposal:
        move = MoveType.FOUR_FOUR
        if not isinstance(site, FlipSite):
            raise TypeError(f"{move.value} expects a FlipSite, got {site!r}")
        u, v = site.edge
        link = self._closed_link(move, site, site.edge, 4)
        x = link.vertices
        diagonals = {edge_key(x[0], x[2]): (x[1], x[3]), edge_key(x[1], x[3]): (x[0], x[2])}
        target = edge_key(*site.diagonal)
        if target not in diagonals:
            raise NoValidSite(move, f"{target} is not a diagonal of the link of {site.edge}", site)
        a, b = target
        p, q = diagonals[target]
        added = [_sorted4((a, b, u, p)), _sorted4((a, b, p, v)), _sorted4((a, b, v, q)), _sorted4((a, b, q, u))]
        return self._plan(move, site, link.cells, added)

    def _propose_26(self, site: Site) -> Proposal:
        move = MoveType.TWO_SIX
        if not isinstance(site, InsertionSite):
            raise TypeError(f"{move.value} expects an InsertionSite, got {site!r}")
        self._require_cell(move, site, site.cell)
        cell = self.store.cell(site.cell)
        try:
            i = cell.facet_index(site.facet)
        except KeyError:
            raise NoValidSite(move, "facet is not on the cell", site)
        facet = cell.facet(i)
        slices = {self.store.timeslice(w) for w in facet}
        if slices != {int(site.timeslice)}:
            raise NoValidSite(move, "facet is not a spacelike triangle in the requested slice", site)
        nb = cell.neighbors[i]
        if nb is None:
            raise NoValidSite(move, "facet is on the boundary", site)
        top = cell.vertices[i]
        bottom = self.store.cell(nb).apex(facet)
        added = []
        for a, b in combinations(facet, 2):
            added.append(_sorted4((a, b, NEW_VERTEX, top)))
            added.append(_sorted4((a, b, NEW_VERTEX, bottom)))
        return self._plan(move, site, (site.cell, nb), added, new_vertex_slice=int(site.timeslice))

    def _propose_62(self, site: Site) -> Proposal:
        move = MoveType.SIX_TWO
        if not isinstance(site, VertexSite):
            raise TypeError(f"{move.value} expects a VertexSite, got {site!r}")
        w = site.vertex
        if not self.store.has_vertex(w):
            raise NoValidSite(move, f"vertex {w} does not exist", site)
        cells = sorted(self.index.cells_incident_to(w))
        if len(cells) != 6:
            raise NoValidSite(move, f"vertex has {len(cells)} cells around it, need 6", site)
        t = self.store.timeslice(w)
        around: Set[int] = set()
        for cid in cells:
            around.update(self.store.cell_vertices(cid))
        around.discard(w)
        same = sorted(x for x in around if self.store.timeslice(x) == t)
        above = [x for x in around if self.store.timeslice(x) == t + 1]
        below = [x for x in around if self.store.timeslice(x) == t - 1]
        if len(same) != 3 or len(above) != 1 or len(below) != 1:
            raise NoValidSite(move, "vertex neighborhood is not a bipyramid over a triangle", site)
        a, b, c = same
        added = [_sorted4((a, b, c, above[0])), _sorted4((a, b, c, below[0]))]
        return self._plan(move, site, cells, added, removed_vertex=w)

    # ------------------------------------------------------------------
    # shared validator
    # ------------------------------------------------------------------

    def _plan(
        self,
        move: MoveType,
        site: Site,
        removed: Sequence[int],
        added: Sequence[Tuple[int, int, int, int]],
        new_vertex_slice: Optional[int] = None,
        removed_vertex: Optional[int] = None,
    ) -> Proposal:
        store, index = self.store, self.index
        removed = tuple(int(c) for c in removed)
        removed_set = set(removed)

        def ts(v: int) -> int:
            return int(new_vertex_slice) if v == NEW_VERTEX else store.timeslice(v)

        def reject(reason: str) -> NoValidSite:
            return NoValidSite(move, reason, site)

        # new cells stay inside two adjacent slices
        added_types: List[CellType] = []
        for verts in added:
            if len(set(verts)) != 4:
                raise reject(f"degenerate cell {verts}")
            try:
                added_types.append(cell_type_of([ts(v) for v in verts]))
            except InvariantViolation:
                raise reject(f"cell {verts} would not span two adjacent slices")
            if NEW_VERTEX not in verts and index.cells_containing(verts) - removed_set:
                raise reject(f"cell {verts} already exists")

        # boundary of the removed region: facet -> outside neighbor (None on an open boundary)
        boundary: Dict[Tuple[int, int, int], Optional[int]] = {}
        region_vertices: Set[int] = set()
        region_edges: Set[Tuple[int, int]] = set()
        for cid in removed:
            cell = store.cell(cid)
            region_vertices.update(cell.vertices)
            region_edges.update(_edges_of(cell.vertices))
            for i, nb in enumerate(cell.neighbors):
                if nb is None or nb not in removed_set:
                    boundary[cell.facet(i)] = nb

        # facets of the new patch: once on the boundary, twice inside
        uses: Dict[Tuple[int, int, int], List[int]] = {}
        for k, verts in enumerate(added):
            for f in _facets_of(verts):
                uses.setdefault(f, []).append(k)
        outer = {f for f, ks in uses.items() if len(ks) == 1}
        if any(len(ks) > 2 for ks in uses.values()):
            raise reject("a new facet would be shared by more than two cells")
        if outer != set(boundary):
            raise reject("new cells do not fill the same boundary")
        for f, ks in uses.items():
            if len(ks) == 2 and NEW_VERTEX not in f and index.cells_containing(f) - removed_set:
                raise reject(f"facet {f} already exists outside the region")

        # every new edge must be new to the whole complex
        added_vertices: Set[int] = set()
        new_edges: Set[Tuple[int, int]] = set()
        for verts in added:
            added_vertices.update(verts)
            for e in _edges_of(verts):
                if e not in region_edges:
                    new_edges.add(e)
        for e in new_edges:
            if NEW_VERTEX not in e and index.has_edge(*e):
                raise reject(f"edge {e} already exists")
        added_vertices.discard(NEW_VERTEX)
        if not added_vertices <= region_vertices:
            raise reject("new cells use vertices outside the region")

        # spacelike triangles keep one cell above and one below
        def above(verts: Sequence[int], f: Tuple[int, int, int]) -> bool:
            apex = next(v for v in verts if v not in f)
            return ts(apex) > ts(f[0])

        for f, ks in uses.items():
            if len({ts(v) for v in f}) != 1:
                continue
            side = above(added[ks[0]], f)
            if len(ks) == 2:
                other_side = above(added[ks[1]], f)
            elif boundary[f] is not None:
                other_side = above(store.cell_vertices(boundary[f]), f)
            else:
                continue
            if side == other_side:
                raise reject(f"spacelike triangle {f} would have both cells on one side")

        # vertices that lose all their cells
        vanished = {
            v for v in region_vertices - added_vertices if index.cells_incident_to(v) <= removed_set
        }
        expected = set() if removed_vertex is None else {removed_vertex}
        if vanished != expected:
            raise reject(f"rewrite would remove vertices {sorted(vanished)}")

        # signed change of the global counts
        tl = sl = 0
        for e in new_edges:
            if ts(e[0]) == ts(e[1]):
                sl += 1
            else:
                tl += 1
        for e in region_edges:
            if e in new_edges or any(set(e) <= set(verts) for verts in added):
                continue
            if index.edge_cells(*e) <= removed_set:
                if ts(e[0]) == ts(e[1]):
                    sl -= 1
                else:
                    tl -= 1
        type_delta = {t: 0 for t in CellType}
        for cid in removed:
            type_delta[index.classify_cell(cid)] -= 1
        for t in added_types:
            type_delta[t] += 1
        delta = SimplexCounts(
            n0=(1 if new_vertex_slice is not None else 0) - (1 if removed_vertex is not None else 0),
            n1_tl=tl,
            n1_sl=sl,
            n3_31=type_delta[CellType.THREE_ONE],
            n3_22=type_delta[CellType.TWO_TWO],
            n3_13=type_delta[CellType.ONE_THREE],
        )

        gluing = []
        for k, verts in enumerate(added):
            for f in _facets_of(verts):
                ks = uses[f]
                if len(ks) == 2:
                    target: GlueTarget = ("new", ks[1] if ks[0] == k else ks[0])
                else:
                    nb = boundary[f]
                    target = None if nb is None else ("old", nb)
                gluing.append((k, f, target))

        return Proposal(
            move=move,
            site=site,
            removed_cells=removed,
            added_cells=tuple(added),
            gluing=tuple(gluing),
            delta=delta,
            new_vertex_slice=new_vertex_slice,
            removed_vertex=removed_vertex,
        )

    # ------------------------------------------------------------------
    # mutators
    # ------------------------------------------------------------------

    def commit(self, proposal: Proposal, check: bool = False) -> CommitResult:
        """Apply a proposal as one transaction, updating the index incrementally.

        With ``check`` the touched region is verified afterwards; a violation rolls the
        move back and raises InvariantViolation.
        """
        store, index = self.store, self.index
        with store.transaction():
            new_vertex: Optional[int] = None
            if proposal.new_vertex_slice is not None:
                new_vertex = store.add_vertex(proposal.new_vertex_slice)
                index.register_vertex(new_vertex)
                store.on_rollback(lambda: index.unregister_vertex(new_vertex))

            for cid in proposal.removed_cells:
                index.unregister_cell(cid)
                store.on_rollback(lambda cid=cid: index.register_cell(cid))
                store.remove_cell(cid)

            def resolve(v: int) -> int:
                return new_vertex if v == NEW_VERTEX else v  # type: ignore[return-value]

            handles: List[int] = []
            for verts in proposal.added_cells:
                cid = store.add_cell(*(resolve(v) for v in verts))
                index.register_cell(cid)
                store.on_rollback(lambda cid=cid: index.unregister_cell(cid))
                handles.append(cid)

            for k, facet, target in proposal.gluing:
                cid = handles[k]
                real = tuple(resolve(v) for v in facet)
                i = store.cell(cid).facet_index(real)
                if target is None:
                    store.set_neighbor(cid, i, None)
                elif target[0] == "new":
                    store.set_neighbor(cid, i, handles[target[1]])
                else:
                    nb = target[1]
                    store.set_neighbor(cid, i, nb)
                    store.set_neighbor(nb, store.cell(nb).facet_index(real), cid)

            if proposal.removed_vertex is not None:
                w = proposal.removed_vertex
                index.unregister_vertex(w)
                store.on_rollback(lambda: index.register_vertex(w))
                store.remove_vertex(w)

            if check:
                check_local(store, index, handles, closed=self.closed)

        logger.debug(
            "%s at %r: -%d +%d cells", proposal.move.value, proposal.site, len(proposal.removed_cells), len(handles)
        )
        return CommitResult(
            move=proposal.move,
            site=proposal.site,
            added_cells=tuple(handles),
            removed_cells=proposal.removed_cells,
            delta=proposal.delta,
            new_vertex=new_vertex,
            removed_vertex=proposal.removed_vertex,
        )

    def apply(self, move: MoveType, site: Site, check: bool = False) -> CommitResult:
        """Propose and commit in one step (raises NoValidSite without touching anything)."""
        return self.commit(self.propose(move, site), check=check)

    def inverse_site(self, result: CommitResult) -> Site:
        """Site at which the inverse move undoes ``result``."""
        move = result.move
        if move is MoveType.TWO_THREE:
            return EdgeSite(edge_key(*self._new_edge(result)))
        if move is MoveType.THREE_TWO:
            a, b = result.added_cells
            shared = tuple(sorted(set(self.store.cell_vertices(a)) & set(self.store.cell_vertices(b))))
            cell = a if self.index.classify_cell(a) is CellType.TWO_TWO else b
            return FacetSite(cell, shared)  # type: ignore[arg-type]
        if move is MoveType.TWO_SIX:
            return VertexSite(int(result.new_vertex))  # type: ignore[arg-type]
        if move is MoveType.SIX_TWO:
            a, b = result.added_cells
            cell = a if self.index.classify_cell(a) is CellType.THREE_ONE else b
            shared = tuple(sorted(set(self.store.cell_vertices(a)) & set(self.store.cell_vertices(b))))
            return InsertionSite(cell, shared, self.store.timeslice(shared[0]))  # type: ignore[arg-type]
        if move is MoveType.FOUR_FOUR:
            site = result.site
            return FlipSite(edge_key(*site.diagonal), edge_key(*site.edge))  # type: ignore[union-attr]
        raise ValueError(f"Unhandled move {move!r}")

    def _new_edge(self, result: CommitResult) -> Tuple[int, int]:
        common = set(self.store.cell_vertices(result.added_cells[0]))
        for cid in result.added_cells[1:]:
            common &= set(self.store.cell_vertices(cid))
        if len(common) != 2:
            raise ValueError("result does not share a single edge")
        return tuple(sorted(common))  # type: ignore[return-value]
