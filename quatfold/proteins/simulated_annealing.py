"""
Simulated annealing over Cartesian coordinates, with an optional hybrid finish.

Metropolis acceptance min(1, exp(-ΔE / (kB·T))) with kB = 0.001987 kcal/(mol·K).
Temperature runs from T0 = 1000 K to Tf = 1 K on one of four schedules; the
move size shrinks linearly from 2.0 Å to 0.1 Å. Each move displaces one
randomly chosen atom uniformly within ±size per axis. The best structure seen
is kept and returned.

With hybrid=True the run hands the best structure to an L-BFGS polish once T
drops below the refinement temperature (50 K) and finishes there.

Schedules (t = step, n = steps):
  exponential   T0·(Tf/T0)^(t/n)
  linear        T0 + (Tf - T0)·t/n
  logarithmic   T0 / (1 + a·ln(1 + t)),  a = (T0/Tf - 1) / ln(1 + n)
  golden        heuristic: α = φ^(-t/τ), τ = n / ln φ, T = T0·α + Tf·(1 - α)
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from ._fold_base import BOLTZMANN_KCAL, GOLDEN_RATIO
from .minimization import ConvergenceMonitor, MinimizationResult

logger = logging.getLogger(__name__)

SCHEDULES = ("exponential", "linear", "logarithmic", "golden")
T_INITIAL = 1000.0
T_FINAL = 1.0
REFINEMENT_TEMPERATURE = 50.0
MOVE_START = 2.0
MOVE_END = 0.1


def temperature(step: int, n_steps: int, t0: float = T_INITIAL, tf: float = T_FINAL, schedule: str = "exponential") -> float:
    """Temperature (K) at `step` of `n_steps` under the named cooling schedule."""
    n = max(int(n_steps), 1)
    frac = min(max(step / n, 0.0), 1.0)
    if schedule == "exponential":
        return float(t0 * (tf / t0) ** frac)
    if schedule == "linear":
        return float(t0 + (tf - t0) * frac)
    if schedule == "logarithmic":
        a = (t0 / tf - 1.0) / np.log(1.0 + n)
        return float(t0 / (1.0 + a * np.log(1.0 + frac * n)))
    if schedule == "golden":
        tau = n / np.log(GOLDEN_RATIO)
        alpha = GOLDEN_RATIO ** (-(frac * n) / tau)
        return float(t0 * alpha + tf * (1.0 - alpha))
    raise ValueError(f"unknown cooling schedule: {schedule!r}")


def move_size(step: int, n_steps: int, start: float = MOVE_START, end: float = MOVE_END) -> float:
    frac = min(max(step / max(n_steps, 1), 0.0), 1.0)
    return start + (end - start) * frac


def metropolis_accept(delta_e: float, temp: float, rng: np.random.Generator) -> bool:
    """Always accept downhill; uphill with probability exp(-ΔE / (kB·T))."""
    if delta_e <= 0.0:
        return True
    if temp <= 0.0 or not np.isfinite(delta_e):
        return False
    return bool(rng.random() < np.exp(-delta_e / (BOLTZMANN_KCAL * temp)))


def anneal_coords(
    x0: np.ndarray,
    model,
    rng: np.random.Generator,
    n_steps: int = 1000,
    schedule: str = "exponential",
    t0: float = T_INITIAL,
    tf: float = T_FINAL,
    hybrid: bool = False,
    refine_temperature: float = REFINEMENT_TEMPERATURE,
    polish_iter: Optional[int] = None,
    etol: float = 0.01,
    patience: Optional[int] = None,
) -> Tuple[np.ndarray, MinimizationResult]:
    """
    Anneal flat coordinates x0 under model.energy; returns (best x, result).

    patience defaults to max(3, n_steps // 5) updates of the best energy.
    polish_iter is the L-BFGS budget of the hybrid finish (default n_steps // 2).
    """
    if schedule not in SCHEDULES:
        raise ValueError(f"unknown cooling schedule: {schedule!r}")
    x = np.asarray(x0, dtype=float).ravel().copy()
    n_atoms = x.size // 3
    res = MinimizationResult(strategy="hybrid" if hybrid else "annealing")
    e = model.energy(x)
    res.start(e)
    if not np.isfinite(e):
        return x, res.finish(False, "non-finite starting energy", aborted=True)
    best_x, best_e = x.copy(), float(e)
    monitor = ConvergenceMonitor(etol, patience=patience or max(3, n_steps // 5), budget=n_steps)
    reason = f"iteration budget exhausted ({n_steps})"

    for step in range(n_steps):
        res.steps = step + 1
        temp = temperature(step, n_steps, t0, tf, schedule)
        if hybrid and temp < refine_temperature:
            return _polish(best_x, model, res, polish_iter or max(1, n_steps // 2), etol, temp)
        size = move_size(step, n_steps)
        k = int(rng.integers(n_atoms))
        trial = x.copy()
        trial[3 * k:3 * k + 3] += rng.uniform(-size, size, size=3)
        e_trial = model.energy(trial)
        if np.isfinite(e_trial) and metropolis_accept(e_trial - e, temp, rng):
            x, e = trial, float(e_trial)
            res.accepted_steps += 1
            if e < best_e:
                best_x, best_e = x.copy(), e
        res.trace.append(best_e)
        if monitor.update(best_e):
            reason = monitor.reason
            break

    res.final_energy = best_e
    if hybrid:
        return _polish(best_x, model, res, polish_iter or max(1, n_steps // 2), etol, tf)
    return best_x, res.finish(True, reason)


def _polish(x, model, res: MinimizationResult, max_iter: int, etol: float, temp: float):
    from .gradient_descent_folding import minimize_lbfgs

    logger.debug("annealing reached %.1f K at step %d; L-BFGS polish", temp, res.steps)
    x_p, polish = minimize_lbfgs(x, model, max_iter=max_iter, etol=etol)
    res.steps += polish.steps
    res.trace.extend(polish.trace[1:])
    res.fallback_used = polish.fallback_used
    res.final_energy = polish.final_energy
    res.finish(polish.converged, f"polish below {REFINEMENT_TEMPERATURE:g} K: {polish.reason}")
    res.state = polish.state
    return x_p, res


def anneal(structure, n_steps: int = 1000, seed: int = 0, **kwargs):
    """Anneal a deep copy of `structure`; returns (best structure, result)."""
    from .folding_energy import StructureEnergy

    work = structure.clone()
    model = StructureEnergy(work)
    x, res = anneal_coords(work.coordinates(), model, np.random.default_rng(seed), n_steps=n_steps, **kwargs)
    res.evaluations = model.n_evals
    work.set_coordinates(x.reshape(-1, 3))
    return work, res
