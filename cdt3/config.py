from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .action import ACTIONS, Couplings
from .moves import MoveType


@dataclass(frozen=True)
class CouplingConfig:
    k: float = 1.0
    lam: float = 1.0  # "lambda" in YAML
    alpha: float = 1.0

    def to_couplings(self) -> Couplings:
        return Couplings(k=float(self.k), lam=float(self.lam), alpha=float(self.alpha))


@dataclass(frozen=True)
class OutputConfig:
    out_dir: str = "out"
    write_triangulation: bool = True
    write_plots: bool = True
    checkpoint_every: int = 0  # passes; 0 disables pass-boundary checkpoints


@dataclass(frozen=True)
class SimulationConfig:
    dimensions: int = 3
    topology: str = "spherical"  # "spherical" | "toroidal" (not implemented)
    timeslices: int = 16
    target_simplices: int = 1000
    passes: int = 10
    couplings: CouplingConfig = field(default_factory=CouplingConfig)
    action: str = "bulk"
    # None: uniform over all moves. Keys are move names such as "(2,3)" or "23".
    move_weights: Optional[Dict[str, float]] = None
    rng_seed: Optional[int] = None
    check_invariants: bool = False
    output: OutputConfig = field(default_factory=OutputConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def weights(self) -> Dict[MoveType, float]:
        """Per-move sampling weights keyed by MoveType (uniform when unset)."""
        if self.move_weights is None:
            return {m: 1.0 for m in MoveType}
        out = {m: 0.0 for m in MoveType}
        for name, w in self.move_weights.items():
            out[MoveType.parse(name)] = float(w)
        return out


def validate_config(cfg: SimulationConfig) -> None:
    if int(cfg.dimensions) != 3:
        raise ValueError(f"only 3 dimensions are supported (got dimensions={cfg.dimensions})")
    if cfg.topology not in ("spherical", "toroidal"):
        raise ValueError(f"Unknown topology={cfg.topology!r} (use 'spherical' or 'toroidal')")
    if cfg.topology == "spherical" and int(cfg.timeslices) < 3:
        raise ValueError(f"a foliated sphere needs at least 3 timeslices (got {cfg.timeslices})")
    if int(cfg.timeslices) <= 0:
        raise ValueError(f"timeslices must be positive (got {cfg.timeslices})")
    if int(cfg.target_simplices) <= 0:
        raise ValueError(f"target_simplices must be positive (got {cfg.target_simplices})")
    if int(cfg.passes) < 0:
        raise ValueError(f"passes must be >= 0 (got {cfg.passes})")
    if cfg.action not in ACTIONS:
        raise ValueError(f"Unknown action={cfg.action!r} (use one of {sorted(ACTIONS)})")
    weights = cfg.weights()
    if any(w < 0 for w in weights.values()):
        raise ValueError("move weights must be non-negative")
    if sum(weights.values()) <= 0:
        raise ValueError("at least one move needs a positive weight")
    if int(cfg.output.checkpoint_every) < 0:
        raise ValueError("checkpoint_every must be >= 0")
    cfg.couplings.to_couplings().validate()


def _require(d: Mapping[str, Any], key: str) -> Any:
    if key not in d:
        raise KeyError(f"Missing required config key: {key}")
    return d[key]


def _get(d: Mapping[str, Any], key: str, default: Any) -> Any:
    return d[key] if key in d else default


def simulation_config_from_dict(data: Mapping[str, Any]) -> SimulationConfig:
    cdict = dict(_get(data, "couplings", {}) or {})
    couplings = CouplingConfig(
        k=float(_get(cdict, "k", 1.0)),
        # accept the YAML-friendly "lambda" and the attribute name "lam"
        lam=float(cdict.get("lambda", cdict.get("lam", 1.0))),
        alpha=float(_get(cdict, "alpha", 1.0)),
    )
    odict = dict(_get(data, "output", {}) or {})
    output = OutputConfig(
        out_dir=str(_get(odict, "out_dir", "out")),
        write_triangulation=bool(_get(odict, "write_triangulation", True)),
        write_plots=bool(_get(odict, "write_plots", True)),
        checkpoint_every=int(_get(odict, "checkpoint_every", 0)),
    )
    weights = _get(data, "move_weights", None)
    seed = _get(data, "rng_seed", None)
    cfg = SimulationConfig(
        dimensions=int(_get(data, "dimensions", 3)),
        topology=str(_get(data, "topology", "spherical")),
        timeslices=int(_require(data, "timeslices")),
        target_simplices=int(_require(data, "target_simplices")),
        passes=int(_require(data, "passes")),
        couplings=couplings,
        action=str(_get(data, "action", "bulk")),
        move_weights=None if weights is None else {str(k): float(v) for k, v in dict(weights).items()},
        rng_seed=None if seed is None else int(seed),
        check_invariants=bool(_get(data, "check_invariants", False)),
        output=output,
    )
    validate_config(cfg)
    return cfg


def load_simulation_config(path: str | Path) -> SimulationConfig:
    path = Path(path)
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("config.yaml must contain a mapping at the top level")
    return simulation_config_from_dict(data)


def load_yaml(path: str | Path) -> Dict[str, Any]:
    path = Path(path)
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"YAML file {path} must contain a mapping at the top level")
    return data
