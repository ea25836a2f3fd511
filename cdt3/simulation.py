from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .config import SimulationConfig, validate_config
from .foliation import FoliationIndex
from .metropolis import MetropolisEngine, PassReport
from .rng import make_rng, run_seeds
from .seeds import make_triangulation
from .store import SimplexStore


@dataclass(frozen=True)
class SimulationResult:
    config: SimulationConfig
    base_seed: int
    growth_seed: int
    chain_seed: int
    engine: MetropolisEngine
    reports: List[PassReport]

    @property
    def store(self) -> SimplexStore:
        return self.engine.store

    @property
    def index(self) -> FoliationIndex:
        return self.engine.index

    def summary(self) -> Dict[str, Any]:
        out = self.engine.summary()
        out["passes_completed"] = self.engine.context.passes_completed
        out["seed"] = int(self.base_seed)
        return out


def resolve_base_seed(seed: Optional[int]) -> int:
    """Fixed seed as given; otherwise draw one from OS entropy so the run can be repeated."""
    if seed is not None:
        return int(seed)
    return int(make_rng(None).integers(0, 2**32 - 1))


def run_simulation(
    config: SimulationConfig,
    *,
    should_stop: Optional[Callable[[], bool]] = None,
    on_pass: Optional[Callable[[MetropolisEngine, PassReport], None]] = None,
) -> SimulationResult:
    """Seed, grow and evolve one chain.

    Growth and the Markov chain use independent generators derived from one base seed.
    """
    validate_config(config)
    base = resolve_base_seed(config.rng_seed)
    seeds = run_seeds(base)
    growth_seed, chain_seed = seeds["seed-growth"], seeds["chain"]

    store, index = make_triangulation(
        int(config.timeslices),
        int(config.target_simplices),
        seed=growth_seed,
        topology=config.topology,
    )
    engine = MetropolisEngine.from_config(store, config, seed=chain_seed, index=index)

    callback = None
    if on_pass is not None:
        def callback(report: PassReport) -> None:
            on_pass(engine, report)

    reports = engine.run(int(config.passes), should_stop=should_stop, on_pass=callback)
    return SimulationResult(
        config=config,
        base_seed=base,
        growth_seed=growth_seed,
        chain_seed=chain_seed,
        engine=engine,
        reports=reports,
    )
