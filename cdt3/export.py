from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

import networkx as nx
import pandas as pd

from .errors import MalformedInitialComplex
from .foliation import CellType, FoliationIndex
from .store import SimplexStore

TRIANGULATION_FORMAT = "cdt3-triangulation"
TRIANGULATION_VERSION = 1


def write_json(path: Path, obj: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2, sort_keys=True))


def triangulation_to_dict(store: SimplexStore, meta: Mapping[str, Any] | None = None) -> Dict[str, Any]:
    """Plain-JSON form of the complex: vertex time labels and cell vertex lists.

    Vertex handles are kept; neighbor links are not stored since they follow from the cells.
    """
    return {
        "format": TRIANGULATION_FORMAT,
        "version": TRIANGULATION_VERSION,
        "vertices": [[v, store.timeslice(v)] for v in store.vertex_ids()],
        "cells": [list(store.cell_vertices(c)) for c in store.cell_ids()],
        "meta": dict(meta or {}),
    }


def triangulation_from_dict(data: Mapping[str, Any]) -> SimplexStore:
    if data.get("format") != TRIANGULATION_FORMAT:
        raise ValueError(f"not a {TRIANGULATION_FORMAT} document (format={data.get('format')!r})")
    if int(data.get("version", 0)) != TRIANGULATION_VERSION:
        raise ValueError(f"unsupported triangulation version {data.get('version')!r}")
    labels: Dict[int, int] = {}
    for v, t in data["vertices"]:
        if int(v) in labels:
            raise MalformedInitialComplex([f"vertex {v} listed twice"])
        labels[int(v)] = int(t)
    return SimplexStore.build(labels, [tuple(int(x) for x in c) for c in data["cells"]])


def write_triangulation(path: Path, store: SimplexStore, meta: Mapping[str, Any] | None = None) -> None:
    write_json(path, triangulation_to_dict(store, meta))


def read_triangulation(path: Path) -> SimplexStore:
    return triangulation_from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


def volume_profile_frame(index: FoliationIndex) -> pd.DataFrame:
    """One row per slice t; cell counts are for the slab between t and t+1."""
    rows = []
    for t in index.timeslice_labels():
        rows.append({
            "timeslice": t,
            "spatial_volume": index.spatial_volume(t),
            "vertices": index.slice_vertex_count(t),
            "spacelike_edges": index.slice_spacelike_edge_count(t),
            "n3_31": index.slab_cell_count(t, CellType.THREE_ONE),
            "n3_22": index.slab_cell_count(t, CellType.TWO_TWO),
            "n3_13": index.slab_cell_count(t, CellType.ONE_THREE),
        })
    return pd.DataFrame(rows, columns=[
        "timeslice", "spatial_volume", "vertices", "spacelike_edges", "n3_31", "n3_22", "n3_13",
    ])


def write_volume_profile_csv(path: Path, index: FoliationIndex) -> None:
    df = volume_profile_frame(index)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)


def write_pass_history_csv(path: Path, reports: Sequence[Any]) -> None:
    rows: List[Dict[str, Any]] = []
    for r in reports:
        row = {
            "pass": r.index,
            "attempts": r.attempts,
            "accepted": r.accepted,
            "rejected": r.rejected,
            "unavailable": r.unavailable,
            "acceptance_rate": r.acceptance_rate,
        }
        row.update(r.counts.as_dict())
        rows.append(row)
    df = pd.DataFrame(rows)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)


def to_networkx(store: SimplexStore) -> nx.Graph:
    """1-skeleton with ``timeslice`` on nodes and ``kind`` ("timelike"/"spacelike") on edges."""
    G = nx.Graph()
    for v in store.vertex_ids():
        G.add_node(v, timeslice=store.timeslice(v))
    for cid in store.cell_ids():
        verts = store.cell_vertices(cid)
        for i in range(4):
            for j in range(i + 1, 4):
                a, b = verts[i], verts[j]
                if not G.has_edge(a, b):
                    kind = "spacelike" if store.timeslice(a) == store.timeslice(b) else "timelike"
                    G.add_edge(a, b, kind=kind)
    return G
