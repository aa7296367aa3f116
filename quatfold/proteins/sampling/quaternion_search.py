"""
Quaternion-guided conformational search.

Target directions come from a Fibonacci sphere (golden angle π(3 - √5),
i = k + 0.5, polar acos(1 - 2i/n)). For each target, every residue's reference
quaternion is pushed toward a residue-shifted copy of the target direction
(radius `perturb_radius`) and slerped there in `slerp_steps` steps; one point
of the path, t = s/S with s drawn from the generator, is decoded back to
(φ, ψ). Paths are geodesics on S³ so intermediate conformations change
smoothly.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from .._fold_base import GOLDEN_ANGLE
from ..quaternion_geometry import angles_to_quaternions, normalize_quaternion, quaternions_to_angles, slerp
from .base import SampledConformation, start_angles, wrap_angles

logger = logging.getLogger(__name__)

METHOD = "quaternion"


def fibonacci_sphere(n: int) -> np.ndarray:
    """(n, 2) (polar, azimuth) radians of n near-uniform points on the unit sphere."""
    i = np.arange(n, dtype=float) + 0.5
    polar = np.arccos(1.0 - 2.0 * i / max(n, 1))
    azimuth = np.mod(GOLDEN_ANGLE * i, 2.0 * np.pi)
    return np.stack([polar, azimuth], axis=1)


def perturbed_target(q: np.ndarray, polar: float, azimuth: float, radius: float, res_index: int, sample: int) -> np.ndarray:
    """q pushed along a residue-shifted sphere direction by `radius`, renormalized."""
    shift = 0.1 * res_index
    polar = np.mod(polar + shift, np.pi)
    azimuth = np.mod(azimuth + 2.0 * shift, 2.0 * np.pi)
    direction = np.array([
        np.cos(0.1 * sample),
        np.sin(polar) * np.cos(azimuth),
        np.sin(polar) * np.sin(azimuth),
        np.cos(polar),
    ])
    return normalize_quaternion(q + radius * direction)


def quaternion_search(
    sequence: str,
    n_samples: int,
    rng: np.random.Generator,
    slerp_steps: int = 10,
    perturb_radius: float = 0.5,
    ss: Optional[str] = None,
    start: Optional[np.ndarray] = None,
    **priors,
) -> List[SampledConformation]:
    """n_samples angle sets explored by slerp toward Fibonacci-sphere targets."""
    if n_samples <= 0:
        return []
    ref_angles = start_angles(sequence, ss=ss, start=start)
    ref_q = angles_to_quaternions(ref_angles)
    targets = fibonacci_sphere(n_samples)
    out = []
    for k, (polar, azimuth) in enumerate(targets):
        s = int(rng.integers(1, slerp_steps + 1))
        t = s / slerp_steps
        q = np.array([
            slerp(ref_q[r], perturbed_target(ref_q[r], polar, azimuth, perturb_radius, r, k), t)
            for r in range(len(ref_q))
        ])
        angles = quaternions_to_angles(q)
        # Identity decodes to NaN; the builder falls back to extended there.
        angles = wrap_angles(np.where(np.isnan(angles), ref_angles, angles))
        out.append(SampledConformation(angles=angles, method=METHOD))
    logger.debug("quaternion search: %d samples, %d slerp steps", len(out), slerp_steps)
    return out
