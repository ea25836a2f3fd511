from __future__ import annotations

import argparse
import logging
import signal
import socket
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import CouplingConfig, SimulationConfig, load_simulation_config, validate_config
from .export import write_json, write_pass_history_csv, write_triangulation, write_volume_profile_csv
from .metropolis import MetropolisEngine, PassReport
from .plots import plot_pass_history, plot_volume_profile
from .repro import current_user, write_meta
from .simulation import run_simulation


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Generate a 3D causal dynamical triangulation and evolve it with Metropolis moves",
    )
    topo = ap.add_mutually_exclusive_group()
    topo.add_argument("--spherical", action="store_true", help="S3 topology (default)")
    topo.add_argument("--toroidal", action="store_true", help="T3 topology (not implemented)")
    ap.add_argument("-n", "--simplices", type=int, default=None, help="Approximate number of simplices")
    ap.add_argument("-t", "--timeslices", type=int, default=None, help="Number of timeslices")
    ap.add_argument("-d", "--dimensions", type=int, default=None, help="Dimensionality (only 3)")
    ap.add_argument("-k", type=float, default=None, help="k = 1/(8*pi*G_newton)")
    ap.add_argument("-a", "--alpha", type=float, default=None,
                    help="Negative squared length of timelike edges (|alpha| >= 1/2)")
    ap.add_argument("-l", "--lambda", dest="lam", type=float, default=None,
                    help="K * Lambda (cosmological constant coupling)")
    ap.add_argument("-p", "--passes", type=int, default=None, help="Number of passes (default 10000)")
    ap.add_argument("--action", type=str, default=None, help="Action form: bulk | vertex")
    ap.add_argument("--seed", type=int, default=None)
    ap.add_argument("--config", type=str, default=None, help="YAML config; CLI flags override it")
    ap.add_argument("--out_dir", type=str, default=None)
    ap.add_argument("--check_invariants", action="store_true",
                    help="Verify manifold/foliation invariants around every accepted move")
    ap.add_argument("--no_plots", action="store_true")
    ap.add_argument("--log_level", type=str, default="WARNING")
    return ap


def config_from_args(args: argparse.Namespace, ap: argparse.ArgumentParser) -> SimulationConfig:
    if args.config:
        cfg = load_simulation_config(args.config)
    else:
        missing = [flag for flag, val in (("-n", args.simplices), ("-t", args.timeslices), ("-k", args.k),
                                          ("-a", args.alpha), ("-l", args.lam)) if val is None]
        if missing:
            ap.error(f"missing required option(s) {', '.join(missing)} (or pass --config)")
        cfg = SimulationConfig(timeslices=int(args.timeslices), target_simplices=int(args.simplices), passes=10000)

    couplings = CouplingConfig(
        k=cfg.couplings.k if args.k is None else float(args.k),
        lam=cfg.couplings.lam if args.lam is None else float(args.lam),
        alpha=cfg.couplings.alpha if args.alpha is None else float(args.alpha),
    )
    output = cfg.output
    if args.out_dir is not None:
        output = replace(output, out_dir=str(args.out_dir))
    if args.no_plots:
        output = replace(output, write_plots=False)

    overrides: Dict[str, Any] = {"couplings": couplings, "output": output}
    if args.toroidal:
        overrides["topology"] = "toroidal"
    elif args.spherical:
        overrides["topology"] = "spherical"
    for name, value in (
        ("timeslices", args.timeslices),
        ("target_simplices", args.simplices),
        ("dimensions", args.dimensions),
        ("passes", args.passes),
        ("action", args.action),
        ("rng_seed", args.seed),
    ):
        if value is not None:
            overrides[name] = value
    if args.check_invariants:
        overrides["check_invariants"] = True
    cfg = replace(cfg, **overrides)
    try:
        validate_config(cfg)
    except ValueError as exc:
        ap.error(str(exc))
    return cfg


def _print_parameters(cfg: SimulationConfig) -> None:
    print(f"[cdt3] Topology is {cfg.topology}")
    print(f"[cdt3] Number of dimensions = {cfg.dimensions}")
    print(f"[cdt3] Number of simplices = {cfg.target_simplices}")
    print(f"[cdt3] Number of timeslices = {cfg.timeslices}")
    print(f"[cdt3] Alpha = {cfg.couplings.alpha}")
    print(f"[cdt3] K = {cfg.couplings.k}")
    print(f"[cdt3] Lambda = {cfg.couplings.lam}")
    print(f"[cdt3] Number of passes = {cfg.passes}")
    print(f"[cdt3] User = {current_user()}")
    print(f"[cdt3] Hostname = {socket.gethostname()}")


def triangulation_filename(cfg: SimulationConfig, cells: int) -> str:
    prefix = "S" if cfg.topology == "spherical" else "T"
    return f"{prefix}{cfg.dimensions}-{cfg.timeslices}-{cells}.json"


def main(argv: Optional[List[str]] = None) -> None:
    ap = _build_parser()
    args = ap.parse_args(argv)
    logging.basicConfig(level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    cfg = config_from_args(args, ap)
    if cfg.topology == "toroidal":
        print("[cdt3] make_T3_triangulation not implemented yet.")
        raise SystemExit(1)

    out_dir = Path(cfg.output.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    _print_parameters(cfg)

    # Ctrl-C is honored at the next pass boundary, never mid-move
    stop = {"requested": False}

    def _request_stop(signum: int, frame: Any) -> None:
        if stop["requested"]:
            raise KeyboardInterrupt
        stop["requested"] = True
        print("[cdt3] Interrupt received; stopping after the current pass (press again to abort).")

    previous = signal.signal(signal.SIGINT, _request_stop)

    every = int(cfg.output.checkpoint_every)

    def _checkpoint(engine: MetropolisEngine, report: PassReport) -> None:
        if every > 0 and (report.index + 1) % every == 0:
            write_triangulation(out_dir / "checkpoints" / f"pass_{report.index + 1:06d}.json", engine.store,
                                meta={"pass": report.index + 1})

    t0 = time.perf_counter()
    try:
        result = run_simulation(cfg, should_stop=lambda: stop["requested"], on_pass=_checkpoint)
    finally:
        signal.signal(signal.SIGINT, previous)
    elapsed = time.perf_counter() - t0

    summary = result.summary()
    print(f"[cdt3] Universe has {summary['total_cells']} cells and {summary['total_vertices']} vertices "
          f"after {summary['passes_completed']} pass(es)")
    print(f"[cdt3] N3_31 = {summary['N3_31']}  N3_22 = {summary['N3_22']}  "
          f"N1_TL = {summary['N1_TL']}  N1_SL = {summary['N1_SL']}")
    print(f"[cdt3] Running time is {elapsed:.3f} seconds")

    summary["elapsed_s"] = float(elapsed)
    write_json(out_dir / "summary.json", summary)
    write_json(out_dir / "move_statistics.json", result.engine.context.stats.as_dict())
    write_json(out_dir / "config.json", cfg.to_dict())
    write_volume_profile_csv(out_dir / "volume_profile.csv", result.index)
    write_pass_history_csv(out_dir / "pass_history.csv", result.reports)
    if cfg.output.write_triangulation:
        write_triangulation(out_dir / triangulation_filename(cfg, result.store.num_cells), result.store,
                            meta={"seed": result.base_seed, "passes": summary["passes_completed"]})
    if cfg.output.write_plots:
        plot_volume_profile(result.index.volume_profile(), out_dir / "plots/volume_profile.png",
                            title=f"Spatial volume per slice (N3={summary['total_cells']})")
        plot_pass_history(result.reports, out_dir / "plots/pass_history.png", title="N3 and acceptance per pass")

    write_meta(out_dir / "meta.json", extra={
        "args": vars(args),
        "base_seed": result.base_seed,
        "growth_seed": result.growth_seed,
        "chain_seed": result.chain_seed,
    }, project_root=Path(__file__).resolve().parents[1], store=result.store)

    print(f"[cdt3] Wrote artifacts to: {out_dir}")


if __name__ == "__main__":
    main()
