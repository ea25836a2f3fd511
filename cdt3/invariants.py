from __future__ import annotations

"""cdt3.invariants

Manifold and foliation checks.

Global checks (:func:`find_violations`) run once at ingestion and in tests. Local checks
(:func:`check_local`) only look at a handful of cells and the links of their vertices, so
they are cheap enough to run after every committed move in debug runs.

Checked properties:
  1) every cell spans exactly two adjacent slices
  2) neighbor links are symmetric and every facet is shared by at most two cells
     (exactly two when the complex is closed)
  3) every vertex is referenced by at least one cell
  4) the link of every interior vertex is a triangulated 2-sphere
  5) a spacelike triangle separates a cell above it from a cell below it
"""

from typing import Dict, Iterable, List, Optional, Set

import networkx as nx

from .errors import InvariantViolation, MalformedInitialComplex
from .foliation import FoliationIndex, cell_type_of
from .store import SimplexStore


def _incidence(store: SimplexStore) -> Dict[int, Set[int]]:
    out: Dict[int, Set[int]] = {v: set() for v in store.vertex_ids()}
    for cid in store.cell_ids():
        for v in store.cell_vertices(cid):
            out.setdefault(v, set()).add(cid)
    return out


def _cell_problems(store: SimplexStore, cid: int, closed: bool, num_slices: Optional[int] = None) -> List[str]:
    problems: List[str] = []
    cell = store.cell(cid)
    slices = [store.timeslice(v) for v in cell.vertices]
    try:
        cell_type_of(slices)
    except InvariantViolation:
        problems.append(f"cell {cid} {cell.vertices} spans slices {sorted(set(slices))}")
    if num_slices is not None and any(t < 0 or t >= num_slices for t in slices):
        problems.append(f"cell {cid} has a vertex outside slices [0, {num_slices})")

    for i, nb in enumerate(cell.neighbors):
        facet = cell.facet(i)
        if nb is None:
            if closed:
                problems.append(f"cell {cid}: facet {facet} has no neighbor")
            continue
        if not store.has_cell(nb):
            problems.append(f"cell {cid}: neighbor {nb} across {facet} does not exist")
            continue
        other = store.cell(nb)
        try:
            j = other.facet_index(facet)
        except KeyError:
            problems.append(f"cell {cid}: neighbor {nb} does not contain facet {facet}")
            continue
        if other.neighbors[j] != cid:
            problems.append(f"cell {cid}: neighbor link to {nb} across {facet} is not symmetric")
            continue
        facet_slices = {store.timeslice(v) for v in facet}
        if len(facet_slices) == 1:
            t = facet_slices.pop()
            if (store.timeslice(cell.vertices[i]) > t) == (store.timeslice(other.vertices[j]) > t):
                problems.append(f"spacelike triangle {facet} has cells {cid} and {nb} on the same side")
    return problems


def _is_boundary_vertex(store: SimplexStore, v: int, cells: Iterable[int]) -> bool:
    for cid in cells:
        cell = store.cell(cid)
        for i, nb in enumerate(cell.neighbors):
            if nb is None and cell.vertices[i] != v:
                return True
    return False


def vertex_link(store: SimplexStore, v: int, cells: Iterable[int]) -> nx.Graph:
    """Link of ``v`` as a graph; each node/edge carries the link triangles it belongs to."""
    link = nx.Graph()
    for cid in cells:
        tri = tuple(u for u in store.cell_vertices(cid) if u != v)
        link.add_nodes_from(tri)
        for a, b in ((tri[0], tri[1]), (tri[0], tri[2]), (tri[1], tri[2])):
            if link.has_edge(a, b):
                link[a][b]["triangles"] += 1
            else:
                link.add_edge(a, b, triangles=1)
    return link


def _vertex_problems(store: SimplexStore, v: int, cells: Set[int], closed: bool) -> List[str]:
    if not cells:
        return [f"vertex {v} is not referenced by any cell"]
    if not closed and _is_boundary_vertex(store, v, cells):
        return []
    link = vertex_link(store, v, cells)
    problems: List[str] = []
    bad = [(a, b) for a, b, n in link.edges(data="triangles") if n != 2]
    if bad:
        problems.append(f"vertex {v}: link edges {bad[:3]} are not shared by exactly two triangles")
    if not nx.is_connected(link):
        problems.append(f"vertex {v}: link is disconnected")
    euler = link.number_of_nodes() - link.number_of_edges() + len(cells)
    if euler != 2:
        problems.append(f"vertex {v}: link has Euler characteristic {euler}, expected 2")
    return problems


def find_violations(
    store: SimplexStore,
    index: Optional[FoliationIndex] = None,
    closed: bool = True,
    num_slices: Optional[int] = None,
) -> List[str]:
    """Full scan; returns a list of human-readable problems (empty when valid)."""
    problems: List[str] = []
    if store.num_cells == 0:
        return ["complex has no cells"]

    by_facet: Dict[tuple, int] = {}
    for cid in store.cell_ids():
        problems.extend(_cell_problems(store, cid, closed, num_slices))
        for facet in store.cell(cid).facets():
            by_facet[facet] = by_facet.get(facet, 0) + 1
    for facet, n in by_facet.items():
        if n > 2:
            problems.append(f"facet {facet} is shared by {n} cells")

    incidence = _incidence(store)
    for v in sorted(incidence):
        problems.extend(_vertex_problems(store, v, incidence[v], closed))

    if index is not None and not problems:
        problems.extend(index.check_consistency())
    return problems


def check_invariants(
    store: SimplexStore,
    index: Optional[FoliationIndex] = None,
    closed: bool = True,
    num_slices: Optional[int] = None,
) -> None:
    problems = find_violations(store, index, closed=closed, num_slices=num_slices)
    if problems:
        raise InvariantViolation(problems)


def check_local(
    store: SimplexStore,
    index: FoliationIndex,
    cells: Iterable[int],
    closed: bool = True,
) -> None:
    """Check the given cells and the links of all their vertices; raise InvariantViolation."""
    cells = list(cells)
    problems: List[str] = []
    vertices: Set[int] = set()
    for cid in cells:
        problems.extend(_cell_problems(store, cid, closed))
        vertices.update(store.cell_vertices(cid))
    for v in sorted(vertices):
        problems.extend(_vertex_problems(store, v, set(index.cells_incident_to(v)), closed))
    if problems:
        raise InvariantViolation(problems)


def validate_initial_complex(
    store: SimplexStore,
    num_slices: Optional[int] = None,
    closed: bool = True,
) -> FoliationIndex:
    """Ingestion gate: full invariant scan, then build the derived index.

    Raises MalformedInitialComplex listing every violated invariant.
    """
    problems = find_violations(store, closed=closed, num_slices=num_slices)
    if problems:
        raise MalformedInitialComplex(problems)
    return FoliationIndex(store)

