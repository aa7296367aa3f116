"""
Gentle relaxation: bounded steepest descent for clash removal.

Small fixed step (0.01 Å largest per-atom move), at most 50 steps, early stop
when |ΔE| stays below 0.1 kcal/mol. An uphill trial step is rejected and the
step halved, so the accepted energy trace never increases; with the step this
small the run cannot diverge. Not a global optimizer.

quick_clash_removal pushes non-bonded atom pairs closer than 2.0 Å apart to
2.5 Å before any gradient work.
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np
from scipy.spatial import cKDTree

from .minimization import ConvergenceMonitor, MinimizationResult, max_atom_displacement
from .structure import Structure

logger = logging.getLogger(__name__)

GENTLE_STEP = 0.01
GENTLE_MAX_STEPS = 50
GENTLE_TOLERANCE = 0.1
MIN_STEP = 1e-6


def gentle_relax_coords(
    x0: np.ndarray,
    model,
    step_size: float = GENTLE_STEP,
    max_steps: int = GENTLE_MAX_STEPS,
    tolerance: float = GENTLE_TOLERANCE,
    patience: int = 1,
) -> Tuple[np.ndarray, MinimizationResult]:
    """
    Steepest descent on flat coordinates with per-atom displacement ≤ step_size.

    model: object with energy(x) and energy_and_gradient(x) (StructureEnergy).
    Returns (x_final, MinimizationResult); the result trace is monotone non-increasing.
    """
    x = np.asarray(x0, dtype=float).ravel().copy()
    res = MinimizationResult(strategy="gentle")
    e, g = model.energy_and_gradient(x)
    res.start(e)
    if not np.isfinite(e):
        return x, res.finish(False, "non-finite starting energy", aborted=True)
    monitor = ConvergenceMonitor(tolerance, patience=patience, budget=max_steps)
    step = float(step_size)
    for it in range(max_steps):
        res.steps = it + 1
        g_max = max_atom_displacement(g)
        if g_max < 1e-12:
            return x, res.finish(True, "zero gradient")
        dx = -(step / g_max) * g
        x_new = x + dx
        e_new, g_new = model.energy_and_gradient(x_new)
        if np.isfinite(e_new) and e_new <= e:
            x, g = x_new, g_new
            delta = e - e_new
            e = e_new
            res.accepted_steps += 1
            res.final_energy = float(e)
            res.trace.append(float(e))
            step = min(step * 1.2, step_size)
            if monitor.update(e) and delta < tolerance:
                return x, res.finish(True, monitor.reason)
        else:
            step *= 0.5
            res.trace.append(float(e))
            if step < MIN_STEP:
                return x, res.finish(True, "step size underflow (local minimum)")
    return x, res.finish(True, f"iteration budget exhausted ({max_steps})")


def gentle_relax(
    structure: Structure,
    step_size: float = GENTLE_STEP,
    max_steps: int = GENTLE_MAX_STEPS,
    tolerance: float = GENTLE_TOLERANCE,
    params=None,
) -> Tuple[Structure, MinimizationResult]:
    """Gentle relaxation of a deep copy of `structure`; returns (relaxed copy, result)."""
    from .folding_energy import StructureEnergy
    from .force_field import AMBER_FF14SB

    work = structure.clone()
    model = StructureEnergy(work, params=params or AMBER_FF14SB)
    x, res = gentle_relax_coords(work.coordinates(), model, step_size, max_steps, tolerance)
    res.evaluations = model.n_evals
    work.set_coordinates(x.reshape(-1, 3))
    return work, res


def quick_clash_removal(
    structure: Structure,
    min_distance: float = 2.0,
    target_distance: float = 2.5,
    max_passes: int = 5,
) -> Tuple[Structure, int]:
    """
    Push apart non-bonded pairs (|Δres| > 1 on one chain, or different chains)
    closer than min_distance until they sit at target_distance, moving both atoms
    symmetrically. Returns (new structure, number of pair moves).
    """
    work = structure.clone()
    xyz = work.coordinates()
    atoms = work.atoms
    moves = 0
    for _ in range(max_passes):
        tree = cKDTree(xyz)
        moved = 0
        for i, j in sorted(tree.query_pairs(min_distance)):
            a, b = atoms[i], atoms[j]
            if a.chain_id == b.chain_id and abs(a.res_seq - b.res_seq) <= 1:
                continue
            d = xyz[j] - xyz[i]
            r = float(np.linalg.norm(d))
            if r >= min_distance:
                continue
            u = d / r if r > 1e-9 else np.array([1.0, 0.0, 0.0])
            shift = 0.5 * (target_distance - r) * u
            xyz[i] -= shift
            xyz[j] += shift
            moved += 1
        moves += moved
        if moved == 0:
            break
    work.set_coordinates(xyz)
    if moves:
        logger.debug("quick clash removal: %d pair moves", moves)
    return work, moves
