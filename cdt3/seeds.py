from __future__ import annotations

"""
Initial complex providers.

The move engine only consumes an already-foliated complex. This module builds one
combinatorially, without coordinates:

  - make_foliated_sphere(T): S3 foliated by T slices. Slices 0 and T-1 are single pole
    vertices, every slice in between is the boundary of a tetrahedron (the smallest
    triangulated S2). Neighbouring slices are joined by triangular prisms, each split
    into a (3,1), a (2,2) and a (1,3) cell.
  - grow_to_target(...): volume-increasing moves ((2,6) and (2,3)) until the requested
    number of tetrahedra is reached, without changing the foliation.

Diagonal rule for the prism split: on every quadrilateral between slices the diagonal
joins the lower-index vertex of the lower slice to the higher-index vertex of the upper
slice. The rule only depends on the pair of positions, so neighbouring prisms agree.
"""

import logging
from itertools import combinations
from typing import Dict, List, Optional, Tuple

import numpy as np

from .errors import CDTError, NoValidSite
from .foliation import FoliationIndex
from .invariants import validate_initial_complex
from .moves import MoveCatalog, MoveType
from .rng import make_rng
from .store import SimplexStore

logger = logging.getLogger(__name__)

# triangles of the boundary of a tetrahedron on positions 0..3
SLICE_TRIANGLES: List[Tuple[int, int, int]] = list(combinations(range(4), 3))  # type: ignore[arg-type]

GROWTH_MOVES = (MoveType.TWO_SIX, MoveType.TWO_THREE)


def sphere_cells(timeslices: int) -> Tuple[Dict[int, int], List[Tuple[int, int, int, int]]]:
    """Vertex labels and cells of the foliated S3 with ``timeslices`` slices."""
    T = int(timeslices)
    if T < 3:
        raise ValueError(f"a foliated sphere needs at least 3 timeslices (got {T})")

    labels: Dict[int, int] = {0: 0}
    layers: Dict[int, List[int]] = {}
    nxt = 1
    for t in range(1, T - 1):
        layers[t] = list(range(nxt, nxt + 4))
        for v in layers[t]:
            labels[v] = t
        nxt += 4
    south, north = 0, nxt
    labels[north] = T - 1

    cells: List[Tuple[int, int, int, int]] = []
    for i, j, k in SLICE_TRIANGLES:
        lo = layers[1]
        cells.append((south, lo[i], lo[j], lo[k]))
    for t in range(1, T - 2):
        p, q = layers[t], layers[t + 1]
        for i, j, k in SLICE_TRIANGLES:
            cells.append((p[i], p[j], p[k], q[k]))  # (3,1)
            cells.append((p[i], p[j], q[j], q[k]))  # (2,2)
            cells.append((p[i], q[i], q[j], q[k]))  # (1,3)
    for i, j, k in SLICE_TRIANGLES:
        hi = layers[T - 2]
        cells.append((hi[i], hi[j], hi[k], north))
    return labels, cells


def make_foliated_sphere(timeslices: int) -> SimplexStore:
    labels, cells = sphere_cells(timeslices)
    store = SimplexStore.build(labels, cells)
    logger.info("foliated sphere: T=%d, %d vertices, %d cells", int(timeslices), store.num_vertices, store.num_cells)
    return store


def make_foliated_torus(timeslices: int) -> SimplexStore:
    raise NotImplementedError("toroidal topology is not implemented")


def ingest(store: SimplexStore, timeslices: Optional[int] = None, closed: bool = True) -> FoliationIndex:
    """Validate an externally built complex and return its index (MalformedInitialComplex on failure)."""
    index = validate_initial_complex(store, num_slices=timeslices, closed=closed)
    counts = index.counts()
    logger.info(
        "ingested complex: N0=%d N3=%d (N3_31=%d N3_22=%d N3_13=%d)",
        counts.n0,
        counts.n3,
        counts.n3_31,
        counts.n3_22,
        counts.n3_13,
    )
    return index


def grow_to_target(
    store: SimplexStore,
    index: FoliationIndex,
    target: int,
    rng: np.random.Generator,
    *,
    closed: bool = True,
) -> int:
    """Apply random (2,6)/(2,3) moves until the complex has at least ``target`` cells.

    Returns the number of moves applied. Raises CDTError if neither move has a site.
    """
    catalog = MoveCatalog(store, index, closed=closed)
    applied = 0
    while store.num_cells < int(target):
        order = list(GROWTH_MOVES)
        if rng.random() < 0.5:
            order.reverse()
        for move in order:
            try:
                proposal = catalog.find_site(move, rng)
            except NoValidSite:
                continue
            catalog.commit(proposal)
            applied += 1
            break
        else:
            raise CDTError(f"cannot grow past {store.num_cells} cells: no volume-increasing move has a site")
    logger.info("grew complex to %d cells with %d move(s)", store.num_cells, applied)
    return applied


def make_triangulation(
    timeslices: int,
    target_simplices: int,
    seed: Optional[int] = None,
    topology: str = "spherical",
) -> Tuple[SimplexStore, FoliationIndex]:
    if topology == "toroidal":
        store = make_foliated_torus(timeslices)
    elif topology == "spherical":
        store = make_foliated_sphere(timeslices)
    else:
        raise ValueError(f"Unknown topology={topology!r} (use 'spherical' or 'toroidal')")
    index = ingest(store, timeslices)
    grow_to_target(store, index, target_simplices, make_rng(seed))
    return store, index
