from __future__ import annotations

import getpass
import hashlib
import json
import platform
import socket
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import matplotlib
import networkx as nx
import numpy as np
import pandas as pd
import yaml

from .store import SimplexStore


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open('rb') as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b''):
            h.update(chunk)
    return h.hexdigest()


def sha256_tree(root: Path, include_suffixes: Optional[List[str]] = None) -> Dict[str, str]:
    suffixes = [".py"] if include_suffixes is None else list(include_suffixes)
    out: Dict[str, str] = {}
    for p in sorted(root.rglob('*')):
        if p.is_file() and (p.suffix in suffixes):
            rel = str(p.relative_to(root))
            out[rel] = sha256_file(p)
    return out


def current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def environment_stamp() -> Dict[str, Any]:
    return {
        "python": sys.version,
        "platform": platform.platform(),
        "executable": sys.executable,
        "user": current_user(),
        "hostname": socket.gethostname(),
        "versions": {
            "numpy": np.__version__,
            "networkx": nx.__version__,
            "pandas": pd.__version__,
            "matplotlib": matplotlib.__version__,
            "pyyaml": yaml.__version__,
        },
    }


def triangulation_sha256(store: SimplexStore) -> str:
    """Digest of the complex itself (time labels and cell vertex sets), independent of cell handles."""
    h = hashlib.sha256()
    for v in store.vertex_ids():
        h.update(f"v{v}:{store.timeslice(v)};".encode("utf-8"))
    for verts in sorted(store.cell_vertices(c) for c in store.cell_ids()):
        h.update(("c" + ",".join(str(v) for v in verts) + ";").encode("utf-8"))
    return h.hexdigest()


def write_meta(
    path: Path,
    extra: Dict[str, Any],
    project_root: Path,
    store: Optional[SimplexStore] = None,
) -> None:
    meta = {
        "env": environment_stamp(),
        "code_sha256": sha256_tree(project_root / "cdt3", include_suffixes=[".py"]),
        "extra": extra,
    }
    if store is not None:
        meta["triangulation_sha256"] = triangulation_sha256(store)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(meta, indent=2, sort_keys=True, default=str))
