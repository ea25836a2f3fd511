from __future__ import annotations

"""cdt3.metropolis

Metropolis-Hastings loop over the move catalog.

A pass starts with ``attempts_remaining = N3`` (cells at the start of the pass). Each
attempt samples a move type by weight, asks the catalog for a uniformly random valid
site, computes the action difference and accepts with probability min(1, exp(-dS))
using exactly one uniform draw.

Unavailable moves: when the sampled move has no valid site it is dropped from this
attempt's pool and another type is sampled from the remaining weights. The attempt
still costs one unit of ``attempts_remaining``; if no type has a site at all, the
attempt is recorded as unavailable.

All mutable run state (RNG, counters) lives in a :class:`SimulationContext` owned by
the engine, so independent chains never share anything.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np

from .action import ActionEvaluator, Couplings, acceptance_probability
from .errors import MalformedInitialComplex, NoValidSite
from .foliation import FoliationIndex, SimplexCounts
from .invariants import find_violations, validate_initial_complex
from .moves import CommitResult, MoveCatalog, MoveType, Site
from .rng import make_rng
from .store import SimplexStore

logger = logging.getLogger(__name__)

ACCEPTED = "accepted"
REJECTED = "rejected"
UNAVAILABLE = "unavailable"


def _per_move() -> Dict[MoveType, int]:
    return {m: 0 for m in MoveType}


@dataclass
class MoveStatistics:
    attempted: Dict[MoveType, int] = field(default_factory=_per_move)
    accepted: Dict[MoveType, int] = field(default_factory=_per_move)
    rejected: Dict[MoveType, int] = field(default_factory=_per_move)
    unavailable: Dict[MoveType, int] = field(default_factory=_per_move)
    unavailable_attempts: int = 0

    def as_dict(self) -> Dict[str, Any]:
        def named(d: Dict[MoveType, int]) -> Dict[str, int]:
            return {m.value: int(n) for m, n in d.items()}

        return {
            "attempted": named(self.attempted),
            "accepted": named(self.accepted),
            "rejected": named(self.rejected),
            "unavailable": named(self.unavailable),
            "unavailable_attempts": int(self.unavailable_attempts),
        }


@dataclass
class SimulationContext:
    """Owned per-chain state threaded through the engine."""

    rng: np.random.Generator
    stats: MoveStatistics = field(default_factory=MoveStatistics)
    passes_completed: int = 0
    attempts_completed: int = 0

    @classmethod
    def from_seed(cls, seed: Optional[int]) -> "SimulationContext":
        return cls(rng=make_rng(seed))


@dataclass(frozen=True)
class AttemptOutcome:
    status: str  # "accepted" | "rejected" | "unavailable"
    move: Optional[MoveType] = None
    site: Optional[Site] = None
    delta_action: Optional[float] = None
    skipped: Tuple[MoveType, ...] = ()
    result: Optional[CommitResult] = None


@dataclass(frozen=True)
class PassReport:
    index: int
    attempts: int
    accepted: int
    rejected: int
    unavailable: int
    counts: SimplexCounts

    @property
    def acceptance_rate(self) -> float:
        done = self.accepted + self.rejected
        return float(self.accepted) / done if done else 0.0


class MetropolisEngine:
    def __init__(
        self,
        store: SimplexStore,
        evaluator: ActionEvaluator,
        *,
        context: Optional[SimulationContext] = None,
        move_weights: Optional[Mapping[Union[str, MoveType], float]] = None,
        timeslices: Optional[int] = None,
        closed: bool = True,
        check_invariants: bool = False,
        index: Optional[FoliationIndex] = None,
    ):
        # ingestion: raises MalformedInitialComplex before any pass runs
        if index is None:
            index = validate_initial_complex(store, num_slices=timeslices, closed=closed)
        else:
            if index.store is not store:
                raise ValueError("index belongs to a different store")
            problems = find_violations(store, closed=closed, num_slices=timeslices)
            if problems:
                raise MalformedInitialComplex(problems)
        self.store = store
        self.index = index
        self.catalog = MoveCatalog(store, self.index, closed=closed)
        self.evaluator = evaluator
        self.context = context if context is not None else SimulationContext.from_seed(None)
        self.check_invariants = bool(check_invariants)
        self.weights = self._normalize_weights(move_weights)
        logger.info(
            "engine ready: N3=%d N0=%d weights=%s",
            store.num_cells,
            store.num_vertices,
            {m.value: w for m, w in self.weights.items()},
        )

    @staticmethod
    def _normalize_weights(weights: Optional[Mapping[Union[str, MoveType], float]]) -> Dict[MoveType, float]:
        if weights is None:
            return {m: 1.0 for m in MoveType}
        out = {m: 0.0 for m in MoveType}
        for name, w in weights.items():
            w = float(w)
            if w < 0 or not np.isfinite(w):
                raise ValueError(f"move weight for {name} must be finite and >= 0 (got {w})")
            out[MoveType.parse(name)] = w
        if sum(out.values()) <= 0:
            raise ValueError("at least one move needs a positive weight")
        return out

    @classmethod
    def from_config(
        cls,
        store: SimplexStore,
        config: Any,
        *,
        seed: Optional[int] = None,
        index: Optional[FoliationIndex] = None,
    ) -> "MetropolisEngine":
        """Build an engine from a :class:`cdt3.config.SimulationConfig`."""
        couplings: Couplings = config.couplings.to_couplings()
        couplings.validate()
        return cls(
            store,
            ActionEvaluator(couplings, config.action),
            context=SimulationContext.from_seed(config.rng_seed if seed is None else seed),
            move_weights=config.weights(),
            timeslices=int(config.timeslices),
            check_invariants=bool(config.check_invariants),
            index=index,
        )

    # ------------------------------------------------------------------
    # attempts and passes
    # ------------------------------------------------------------------

    def _sample_move(self, pool: Dict[MoveType, float]) -> MoveType:
        moves = [m for m in MoveType if m in pool]
        w = np.array([pool[m] for m in moves], dtype=float)
        k = int(self.context.rng.choice(len(moves), p=w / w.sum()))
        return moves[k]

    def attempt(self) -> AttemptOutcome:
        ctx = self.context
        stats = ctx.stats
        pool = {m: w for m, w in self.weights.items() if w > 0}
        skipped: List[MoveType] = []
        ctx.attempts_completed += 1

        while pool:
            move = self._sample_move(pool)
            try:
                proposal = self.catalog.find_site(move, ctx.rng)
            except NoValidSite as exc:
                logger.debug("%s unavailable: %s", move.value, exc.reason)
                stats.unavailable[move] += 1
                skipped.append(move)
                del pool[move]
                continue

            before = self.index.counts()
            after = before + proposal.delta
            delta = self.evaluator.delta_action(move, proposal.site, before, after)
            p = acceptance_probability(delta)
            u = float(ctx.rng.random())
            stats.attempted[move] += 1

            if u < p:
                result = self.catalog.commit(proposal, check=self.check_invariants)
                stats.accepted[move] += 1
                return AttemptOutcome(ACCEPTED, move, proposal.site, delta, tuple(skipped), result)
            stats.rejected[move] += 1
            return AttemptOutcome(REJECTED, move, proposal.site, delta, tuple(skipped))

        stats.unavailable_attempts += 1
        return AttemptOutcome(UNAVAILABLE, skipped=tuple(skipped))

    def run_pass(self) -> PassReport:
        attempts_remaining = self.store.num_cells
        attempts = accepted = rejected = unavailable = 0
        while attempts_remaining > 0:
            outcome = self.attempt()
            attempts_remaining -= 1
            attempts += 1
            if outcome.status == ACCEPTED:
                accepted += 1
            elif outcome.status == REJECTED:
                rejected += 1
            else:
                unavailable += 1

        report = PassReport(
            index=self.context.passes_completed,
            attempts=attempts,
            accepted=accepted,
            rejected=rejected,
            unavailable=unavailable,
            counts=self.index.counts(),
        )
        self.context.passes_completed += 1
        if attempts and unavailable == attempts:
            logger.warning("pass %d: no move had a valid site in %d attempt(s)", report.index, attempts)
        logger.info(
            "pass %d: %d attempts, %d accepted, %d rejected, N3=%d",
            report.index,
            attempts,
            accepted,
            rejected,
            report.counts.n3,
        )
        return report

    def run(
        self,
        passes: int,
        should_stop: Optional[Callable[[], bool]] = None,
        on_pass: Optional[Callable[[PassReport], None]] = None,
    ) -> List[PassReport]:
        """Run ``passes`` passes. ``should_stop`` is polled and ``on_pass`` called only at pass boundaries."""
        if int(passes) < 0:
            raise ValueError(f"passes must be >= 0 (got {passes})")
        reports: List[PassReport] = []
        for _ in range(int(passes)):
            if should_stop is not None and should_stop():
                logger.info("stopping early after %d pass(es)", len(reports))
                break
            report = self.run_pass()
            reports.append(report)
            if on_pass is not None:
                on_pass(report)
        return reports

    # ------------------------------------------------------------------
    # output
    # ------------------------------------------------------------------

    def summary(self) -> Dict[str, Any]:
        counts = self.index.counts()
        return {
            "N3_31": counts.n3_31_13,
            "N3_22": counts.n3_22,
            "N1_TL": counts.n1_tl,
            "N1_SL": counts.n1_sl,
            "total_cells": self.store.num_cells,
            "total_vertices": self.store.num_vertices,
            "accepted_moves_per_type": {m.value: int(n) for m, n in self.context.stats.accepted.items()},
        }
