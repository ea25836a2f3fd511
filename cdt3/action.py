from __future__ import annotations

"""cdt3.action

Discretized Einstein-Hilbert action for 3D CDT and the Metropolis acceptance rule.

The action is a plain function ``(SimplexCounts, Couplings) -> float`` so alternative
definitions can be swapped in by name or by passing a callable. Two forms ship:

  bulk    S = lambda * N3 - k * N1_TL
  vertex  S = lambda * N3 - k * N0

Both are the linear forms of Ambjorn, Jurkiewicz and Loll, "Non-perturbative 3d
Lorentzian quantum gravity", Phys. Rev. D 64 (2001) 044011 [hep-th/0105267], with
``lambda`` playing k3 and ``k`` playing k0. For a closed foliated 3-manifold the two
forms differ by topological relations between N0, N1_TL and the N3 counts, so either
may be used; they are not numerically identical. ``alpha`` (timelike/spacelike squared
edge length ratio) enters only through the validity range |alpha| >= 1/2 of that paper.
"""

import math
from dataclasses import dataclass
from typing import Callable, Dict, Union

from .foliation import SimplexCounts

ActionFn = Callable[[SimplexCounts, "Couplings"], float]


@dataclass(frozen=True)
class Couplings:
    """Bare couplings: ``k`` (inverse Newton), ``lam`` (cosmological), ``alpha``."""

    k: float = 1.0
    lam: float = 1.0
    alpha: float = 1.0

    def validate(self) -> None:
        for name in ("k", "lam", "alpha"):
            if not math.isfinite(float(getattr(self, name))):
                raise ValueError(f"coupling {name} must be finite")
        if abs(float(self.alpha)) < 0.5:
            raise ValueError(f"|alpha| must be >= 1/2 in 3D (got alpha={self.alpha})")


def bulk_action(counts: SimplexCounts, couplings: Couplings) -> float:
    return float(couplings.lam) * counts.n3 - float(couplings.k) * counts.n1_tl


def vertex_action(counts: SimplexCounts, couplings: Couplings) -> float:
    return float(couplings.lam) * counts.n3 - float(couplings.k) * counts.n0


ACTIONS: Dict[str, ActionFn] = {
    "bulk": bulk_action,
    "vertex": vertex_action,
}


def resolve_action(action: Union[str, ActionFn]) -> ActionFn:
    if callable(action):
        return action
    try:
        return ACTIONS[str(action)]
    except KeyError:
        raise ValueError(f"Unknown action {action!r} (use one of {sorted(ACTIONS)})")


class ActionEvaluator:
    """Action and action differences from O(1) global counts."""

    def __init__(self, couplings: Couplings, action: Union[str, ActionFn] = "bulk"):
        self.couplings = couplings
        self.action_fn = resolve_action(action)
        self.name = action if isinstance(action, str) else getattr(action, "__name__", "custom")

    def action(self, counts: SimplexCounts) -> float:
        return float(self.action_fn(counts, self.couplings))

    def delta_action(
        self,
        move_type: object,
        site: object,
        before_counts: SimplexCounts,
        after_counts: SimplexCounts,
    ) -> float:
        """S(after) - S(before).

        ``move_type`` and ``site`` are accepted so site-dependent actions can override
        this method; the shipped actions only need the counts.
        """
        return self.action(after_counts) - self.action(before_counts)


def acceptance_probability(delta: float) -> float:
    """min(1, exp(-delta)); -inf is always accepted, NaN is an error."""
    delta = float(delta)
    if math.isnan(delta):
        raise ValueError("delta action is NaN")
    if delta <= 0.0:
        return 1.0
    return math.exp(-delta)


def accept(delta: float, u: float) -> bool:
    """Metropolis test for one uniform draw ``u`` in [0, 1)."""
    return float(u) < acceptance_probability(delta)


def make_evaluator(
    k: float = 1.0,
    lam: float = 1.0,
    alpha: float = 1.0,
    action: Union[str, ActionFn] = "bulk",
    validate: bool = True,
) -> ActionEvaluator:
    couplings = Couplings(k=float(k), lam=float(lam), alpha=float(alpha))
    if validate:
        couplings.validate()
    return ActionEvaluator(couplings, action)
