from __future__ import annotations

import argparse
import json
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from .rng import sweep_seeds


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Run independent CDT chains over seeds, one subprocess per chain")
    ap.add_argument("--seeds", type=int, nargs="+", default=[1, 2, 3])
    ap.add_argument("--base_seed", type=int, default=None,
                    help="Derive chain seeds from this base instead of using --seeds directly")
    ap.add_argument("--config", type=str, default=None)
    ap.add_argument("-n", "--simplices", type=int, default=None)
    ap.add_argument("-t", "--timeslices", type=int, default=None)
    ap.add_argument("-k", type=float, default=None)
    ap.add_argument("-a", "--alpha", type=float, default=None)
    ap.add_argument("-l", "--lambda", dest="lam", type=float, default=None)
    ap.add_argument("-p", "--passes", type=int, default=None)
    ap.add_argument("--out_root", type=str, default="results/cdt3_sweep")
    ap.add_argument("--no_plots", action="store_true")
    args = ap.parse_args(argv)

    out_root = Path(args.out_root)
    out_root.mkdir(parents=True, exist_ok=True)

    seeds = [int(s) for s in args.seeds]
    if args.base_seed is not None:
        seeds = sweep_seeds(int(args.base_seed), len(seeds))

    spec = {
        "seeds": seeds,
        "config": args.config,
        "simplices": args.simplices,
        "timeslices": args.timeslices,
        "k": args.k,
        "alpha": args.alpha,
        "lambda": args.lam,
        "passes": args.passes,
    }
    (out_root / "sweep_spec.json").write_text(json.dumps(spec, indent=2))

    passthrough: List[str] = []
    if args.config:
        passthrough += ["--config", str(args.config)]
    for flag, value in (("-n", args.simplices), ("-t", args.timeslices), ("-k", args.k),
                        ("-a", args.alpha), ("-l", args.lam), ("-p", args.passes)):
        if value is not None:
            passthrough += [flag, str(value)]
    if args.no_plots:
        passthrough.append("--no_plots")

    rows = []
    for seed in seeds:
        out_dir = out_root / f"seed{seed}"
        cmd = [sys.executable, "-m", "cdt3.run", "--seed", str(seed), "--out_dir", str(out_dir), *passthrough]
        print("Running:", " ".join(cmd))
        subprocess.check_call(cmd)
        summary = json.loads((out_dir / "summary.json").read_text())
        row = {"seed": seed}
        row.update({k: v for k, v in summary.items() if not isinstance(v, dict)})
        for move, n in summary.get("accepted_moves_per_type", {}).items():
            row[f"accepted_{move}"] = n
        rows.append(row)

    pd.DataFrame(rows).to_csv(out_root / "sweep_summary.csv", index=False)
    print(f"Sweep complete. Results under: {out_root}")


if __name__ == "__main__":
    main()
