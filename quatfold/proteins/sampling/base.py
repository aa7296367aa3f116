"""
Common sampler types: the SampledConformation record, seeded RNG spawning and
starting-angle resolution from priors.

Every sampler has the signature (sequence, n_samples, rng, **priors) and
returns a list of SampledConformation. Recognised priors: ss (SS string),
start ((n, 2) degrees), contacts, heuristic (scorer), heuristic_weight.
Unknown priors are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..backbone_builder import extended_angles
from ..quaternion_geometry import wrap_angle_deg
from ..secondary_structure_predictor import ss_to_angles, validate_ss
from ..structure import Structure


@dataclass
class SampledConformation:
    """One sampler output: (n, 2) (φ, ψ) degrees, the sampler name and, if built, the structure."""

    angles: np.ndarray
    method: str
    structure: Optional[Structure] = None
    score: Optional[float] = None

    def __post_init__(self) -> None:
        self.angles = np.asarray(self.angles, dtype=float).reshape(-1, 2)


def spawn_rngs(seed: int, n: int) -> List[np.random.Generator]:
    """n independent generators derived from one base seed."""
    return [np.random.default_rng(s) for s in np.random.SeedSequence(seed).spawn(n)]


def child_seeds(rng: np.random.Generator, n: int) -> List[int]:
    """n integer seeds drawn from rng (picklable worker inputs)."""
    return [int(s) for s in rng.integers(0, 2**31 - 1, size=n)]


def start_angles(sequence: str, ss: Optional[str] = None, start: Optional[np.ndarray] = None) -> np.ndarray:
    """Reference (n, 2) angles: explicit start > SS basin centres > extended strand."""
    n = len(sequence)
    if start is not None:
        arr = np.asarray(start, dtype=float).reshape(-1, 2)
        if arr.shape[0] != n:
            raise ValueError(f"{arr.shape[0]} start angles for {n} residues")
        return arr.copy()
    if ss:
        return ss_to_angles(validate_ss(ss, n))
    return extended_angles(n)


def wrap_angles(angles: np.ndarray) -> np.ndarray:
    """Wrap every finite angle into [-180, 180); NaN stays NaN."""
    return np.where(np.isnan(angles), angles, wrap_angle_deg(angles))
