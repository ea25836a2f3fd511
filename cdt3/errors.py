from __future__ import annotations

from typing import Iterable, List, Optional


class CDTError(Exception):
    """Base class for every error raised by the triangulation engine."""


class MalformedInitialComplex(CDTError):
    """The complex handed to the engine violates the manifold/foliation invariants."""

    def __init__(self, problems: Iterable[str]):
        self.problems: List[str] = list(problems)
        head = "; ".join(self.problems[:5])
        more = f" (+{len(self.problems) - 5} more)" if len(self.problems) > 5 else ""
        super().__init__(f"Initial complex rejected: {head}{more}")


class NoValidSite(CDTError):
    """A move has no valid site (or the requested site fails its precondition).

    Expected during a run; the engine recovers from it locally.
    """

    def __init__(self, move: object, reason: str, site: Optional[object] = None):
        self.move = move
        self.reason = reason
        self.site = site
        where = "" if site is None else f" at {site!r}"
        super().__init__(f"{move}: no valid site{where}: {reason}")


class DanglingReferenceError(CDTError):
    """A vertex was removed while cells still reference it."""


class InvariantViolation(CDTError):
    """Manifold or foliation invariant broken after a commit (internal bug)."""

    def __init__(self, problems: Iterable[str]):
        self.problems: List[str] = list(problems)
        head = "; ".join(self.problems[:5])
        more = f" (+{len(self.problems) - 5} more)" if len(self.problems) > 5 else ""
        super().__init__(f"Invariant violated: {head}{more}")
