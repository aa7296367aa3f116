"""
Ramachandran basin explorer.

Each residue draws a basin by population weight, then (φ, ψ) from that
basin's Gaussian, wrapped to [-180, 180). Glycine up-weights the left-handed
helix; proline up-weights PPII and cannot reach the left-handed or type II
basins. An SS prior pins H residues to alpha_helix and E residues to
beta_sheet.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from .._fold_base import normalize_sequence
from ..quaternion_geometry import wrap_angle_deg
from ..secondary_structure_predictor import ss_basin_names, validate_ss
from .base import SampledConformation

METHOD = "basin"


@dataclass(frozen=True)
class Basin:
    name: str
    phi: float
    psi: float
    sigma_phi: float
    sigma_psi: float
    population: float


BASINS: Tuple[Basin, ...] = (
    Basin("alpha_helix", -60.0, -45.0, 20.0, 20.0, 0.35),
    Basin("beta_sheet", -120.0, 120.0, 30.0, 30.0, 0.25),
    Basin("left_handed_helix", 60.0, 45.0, 25.0, 25.0, 0.05),
    Basin("extended_ppii", -75.0, 145.0, 25.0, 25.0, 0.15),
    Basin("bridge", -90.0, 0.0, 30.0, 40.0, 0.10),
    Basin("turn_type_I", -60.0, -30.0, 20.0, 30.0, 0.05),
    Basin("turn_type_II", 80.0, 0.0, 25.0, 30.0, 0.03),
)
BASIN_INDEX: Dict[str, int] = {b.name: i for i, b in enumerate(BASINS)}

# Multiplicative weight changes per residue type.
RESIDUE_BIAS: Dict[str, Dict[str, float]] = {
    "G": {"left_handed_helix": 6.0, "turn_type_II": 3.0},
    "P": {"extended_ppii": 4.0, "left_handed_helix": 0.0, "turn_type_II": 0.0},
    "N": {"turn_type_II": 2.0},
    "D": {"turn_type_II": 2.0},
}


def basin_weights(aa: str) -> np.ndarray:
    """Normalized basin probabilities for one residue type."""
    w = np.array([b.population for b in BASINS])
    for name, factor in RESIDUE_BIAS.get(aa, {}).items():
        w[BASIN_INDEX[name]] *= factor
    return w / w.sum()


def sample_from_basin(basin: Basin, rng: np.random.Generator) -> Tuple[float, float]:
    phi = basin.phi + rng.normal() * basin.sigma_phi
    psi = basin.psi + rng.normal() * basin.sigma_psi
    return float(wrap_angle_deg(phi)), float(wrap_angle_deg(psi))


def basin_explorer(
    sequence: str,
    n_samples: int,
    rng: np.random.Generator,
    ss: Optional[str] = None,
    **priors,
) -> List[SampledConformation]:
    """n_samples angle sets drawn basin by basin, residue by residue."""
    seq = normalize_sequence(sequence)
    constraint = ss_basin_names(validate_ss(ss, len(seq))) if ss else [None] * len(seq)
    weights = [basin_weights(aa) for aa in seq]
    out = []
    for _ in range(max(0, n_samples)):
        angles = np.empty((len(seq), 2))
        for r, aa in enumerate(seq):
            pinned = constraint[r]
            if pinned is not None:
                idx = BASIN_INDEX[pinned]
            else:
                idx = int(rng.choice(len(BASINS), p=weights[r]))
            angles[r] = sample_from_basin(BASINS[idx], rng)
        out.append(SampledConformation(angles=angles, method=METHOD))
    return out


def basin_of(phi: float, psi: float) -> str:
    """Nearest basin name by σ-scaled distance."""
    d = [
        (float(wrap_angle_deg(phi - b.phi)) / b.sigma_phi) ** 2 + (float(wrap_angle_deg(psi - b.psi)) / b.sigma_psi) ** 2
        for b in BASINS
    ]
    return BASINS[int(np.argmin(d))].name
