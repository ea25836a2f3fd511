from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Sequence

import matplotlib.pyplot as plt
import numpy as np


def plot_volume_profile(profile: Dict[int, int], out_path: Path, title: str) -> None:
    ts = np.array(sorted(profile), dtype=int)
    vol = np.array([profile[t] for t in ts], dtype=int)
    plt.figure()
    plt.bar(ts, vol)
    plt.xlabel("timeslice t")
    plt.ylabel("spatial volume (spacelike triangles)")
    plt.title(title)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    plt.tight_layout()
    plt.savefig(out_path, dpi=200)
    plt.close()


def plot_pass_history(reports: Sequence[Any], out_path: Path, title: str) -> None:
    if not reports:
        return
    passes = [r.index for r in reports]
    fig, ax1 = plt.subplots()
    ax1.plot(passes, [r.counts.n3 for r in reports], label="N3")
    ax1.set_xlabel("pass")
    ax1.set_ylabel("N3")
    ax2 = ax1.twinx()
    ax2.plot(passes, [r.acceptance_rate for r in reports], color="tab:orange", label="acceptance")
    ax2.set_ylabel("acceptance rate")
    ax2.set_ylim(0.0, 1.0)
    ax1.set_title(title)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(out_path, dpi=200)
    plt.close(fig)
