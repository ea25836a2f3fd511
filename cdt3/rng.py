from __future__ import annotations

import hashlib
from typing import Dict, Iterable, List, Optional, Union

import numpy as np


SeedLike = Union[int, str]

# independent streams of one run, keyed by label
RUN_STREAMS = ("seed-growth", "chain")


def _stable_bytes(items: Iterable[SeedLike]) -> bytes:
    return b"".join(str(it).encode("utf-8") + b"|" for it in items)


def derive_seed(base_seed: int, *components: SeedLike, modulo: int = 2**32 - 1) -> int:
    """Derive a deterministic 32-bit-ish seed for a chain from a base seed and labels."""
    h = hashlib.blake2b(digest_size=8)
    h.update(_stable_bytes((int(base_seed), *components)))
    digest = int.from_bytes(h.digest(), "big", signed=False)
    return int(digest % modulo)


def run_seeds(base_seed: int) -> Dict[str, int]:
    """Seeds for growing the initial complex and for the Markov chain of one run."""
    return {label: derive_seed(base_seed, label) for label in RUN_STREAMS}


def sweep_seeds(base_seed: int, n: int) -> List[int]:
    """Base seeds of ``n`` independent chains."""
    return [derive_seed(base_seed, "sweep", i) for i in range(int(n))]


def make_rng(seed: Optional[int]) -> np.random.Generator:
    """NumPy Generator for one Markov chain. ``None`` draws fresh OS entropy."""
    if seed is None:
        return np.random.default_rng()
    return np.random.default_rng(int(seed))
