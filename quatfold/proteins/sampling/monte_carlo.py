"""
Metropolis Monte Carlo on Cartesian coordinates.

Each chain builds the starting angles, then repeatedly adds Gaussian noise
(σ = step_size) to the atoms of one randomly chosen residue and accepts by
Metropolis on E - w·1000·heuristic at a temperature cooling exponentially from
500 K to 10 K. A chain stops after `patience` steps without improving its best
score. Angles of the best structure are re-extracted and returned with it.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from .._fold_base import normalize_sequence
from ..backbone_builder import build_backbone, extract_angles
from ..folding_energy import StructureEnergy
from ..simulated_annealing import metropolis_accept, temperature
from .base import SampledConformation, start_angles, wrap_angles

logger = logging.getLogger(__name__)

METHOD = "monte_carlo"
HEURISTIC_SCALE = 1000.0


def _residue_slices(structure) -> List[np.ndarray]:
    index = structure.atom_index()
    return [np.array([index[id(a)] for a in r.atoms.values()], dtype=int) for r in structure.residues]


def monte_carlo_chain(
    sequence: str,
    angles: np.ndarray,
    rng: np.random.Generator,
    n_steps: int = 1000,
    step_size: float = 0.5,
    t_initial: float = 500.0,
    t_final: float = 10.0,
    patience: int = 200,
    heuristic=None,
    heuristic_weight: float = 0.0,
    contacts=None,
) -> SampledConformation:
    """One Metropolis chain from `angles`; returns the best conformation seen."""
    st = build_backbone(sequence, angles)
    model = StructureEnergy(st, contacts=contacts)
    groups = _residue_slices(st)
    x = st.coordinates()

    def score(xyz: np.ndarray) -> float:
        e = model.energy(xyz)
        if heuristic is not None and heuristic_weight:
            st.set_coordinates(xyz)
            e -= heuristic_weight * HEURISTIC_SCALE * heuristic.score(st)
        return e

    current = score(x)
    best_x, best = x.copy(), current
    last_improvement = 0
    accepted = 0
    for step in range(n_steps):
        temp = temperature(step, n_steps, t_initial, t_final, "exponential")
        trial = x.copy()
        idx = groups[int(rng.integers(len(groups)))]
        trial[idx] += rng.normal(0.0, step_size, size=(len(idx), 3))
        s = score(trial)
        if np.isfinite(s) and metropolis_accept(s - current, temp, rng):
            x, current = trial, s
            accepted += 1
            if current < best:
                best_x, best = x.copy(), current
                last_improvement = step
        if step - last_improvement > patience:
            break
    st.set_coordinates(best_x)
    logger.debug("MC chain: best %.3f after %d steps (%d accepted)", best, step + 1 if n_steps else 0, accepted)
    out = extract_angles(st)[:, :2]
    return SampledConformation(
        angles=wrap_angles(np.where(np.isnan(out), angles, out)), method=METHOD, structure=st, score=float(best)
    )


def monte_carlo(
    sequence: str,
    n_samples: int,
    rng: np.random.Generator,
    ss: Optional[str] = None,
    start: Optional[np.ndarray] = None,
    n_steps: int = 1000,
    start_jitter_deg: float = 15.0,
    **priors,
) -> List[SampledConformation]:
    """n_samples independent chains from jittered reference angles."""
    seq = normalize_sequence(sequence)
    ref = start_angles(seq, ss=ss, start=start)
    out = []
    for _ in range(max(0, n_samples)):
        angles = wrap_angles(ref + rng.normal(0.0, start_jitter_deg, size=ref.shape))
        out.append(monte_carlo_chain(
            seq, angles, rng, n_steps=n_steps,
            heuristic=priors.get("heuristic"),
            heuristic_weight=float(priors.get("heuristic_weight", 0.0)),
            contacts=priors.get("contacts"),
        ))
    return out
