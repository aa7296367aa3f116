# quatfold.proteins.sampling: conformational samplers over (φ, ψ) angle space.
#
# Every sampler: (sequence, n_samples, rng, **priors) -> list[SampledConformation].

from .base import SampledConformation, child_seeds, spawn_rngs, start_angles
from .basins import BASINS, Basin, basin_explorer, basin_of
from .diversity import dihedral_distance, ensemble_diversity, select_diverse
from .fragments import FRAGMENT_LIBRARY, Fragment, fragment_assembly
from .monte_carlo import monte_carlo
from .quaternion_search import fibonacci_sphere, quaternion_search

SAMPLERS = {
    "quaternion": quaternion_search,
    "monte_carlo": monte_carlo,
    "fragment": fragment_assembly,
    "basin": basin_explorer,
}

__all__ = [
    "SAMPLERS",
    "SampledConformation",
    "child_seeds",
    "spawn_rngs",
    "start_angles",
    "BASINS",
    "Basin",
    "basin_explorer",
    "basin_of",
    "dihedral_distance",
    "ensemble_diversity",
    "select_diverse",
    "FRAGMENT_LIBRARY",
    "Fragment",
    "fragment_assembly",
    "monte_carlo",
    "fibonacci_sphere",
    "quaternion_search",
]
