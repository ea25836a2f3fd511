"""cdt3: Causal Dynamical Triangulations in 3 dimensions.

Core components:

- **SimplexStore**: arena of vertices and tetrahedra with integer handles and
  journaled, all-or-nothing mutation.
- **FoliationIndex**: incrementally maintained cell types, edge classes, incidence
  and per-slice counts.
- **MoveCatalog**: the (2,3), (3,2), (2,6), (6,2) and (4,4) moves with site matchers
  and transactional mutators.
- **ActionEvaluator**: pluggable discretized action and Metropolis acceptance.
- **MetropolisEngine**: pass/attempt loop over one owned chain.

See:
- `python -m cdt3.run --help`
- `configs/sphere_small.yaml`
"""

__all__ = [
    "action",
    "config",
    "errors",
    "export",
    "foliation",
    "invariants",
    "metropolis",
    "moves",
    "rng",
    "seeds",
    "simulation",
    "store",
]
