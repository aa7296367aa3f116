"""
Deterministic quasi-Newton minimization (L-BFGS) with a divergence guard.

Two-loop recursion in pure numpy with memory m = 10, a backtracking Armijo line
search (c1 = 1e-4; shrink 0.5, or 1/φ ≈ 0.618 with golden_section=True) and a
per-atom displacement cap on every trial step. No random seeds.

Divergence (non-finite energy, an energy above the cap when the start was
below it, or a line search that only finds higher energies) aborts the run;
gentle relaxation then continues from the last good point and the result is
marked fallback_used. guard=False takes raw steps with no line search and no
checks; it exists only to show why the guard is needed.

MIT License. Python 3.10+. Numpy only.
"""

from __future__ import annotations

import logging
from typing import List, Tuple

import numpy as np

from ._fold_base import GOLDEN_RATIO
from .force_field import AMBER_FF14SB, ForceFieldParameters
from .minimization import ConvergenceMonitor, MinimizationResult, RunState, max_atom_displacement
from .structure import Structure

logger = logging.getLogger(__name__)

ARMIJO_C1 = 1e-4
MAX_BACKTRACKS = 40
DEFAULT_MEMORY = 10
DEFAULT_MAX_STEP = 0.3  # Å per atom per iteration


def _lbfgs_two_loop(
    grad: np.ndarray,
    s_list: List[np.ndarray],
    y_list: List[np.ndarray],
) -> np.ndarray:
    """
    L-BFGS two-loop recursion: search direction -H·grad from the stored pairs.
    s_list, y_list: recent (x_{k+1}-x_k), (grad_{k+1}-grad_k), oldest first.
    """
    n_vec = len(s_list)
    if n_vec == 0:
        return -grad
    q = -grad.copy()
    rhos = [1.0 / (np.dot(y, s) + 1e-14) for s, y in zip(s_list, y_list)]
    alphas = np.zeros(n_vec)
    for i in range(n_vec - 1, -1, -1):
        alphas[i] = rhos[i] * np.dot(s_list[i], q)
        q = q - alphas[i] * y_list[i]
    gamma = np.dot(y_list[-1], s_list[-1]) / (np.dot(y_list[-1], y_list[-1]) + 1e-14)
    r = gamma * q
    for i in range(n_vec):
        beta = rhos[i] * np.dot(y_list[i], r)
        r = r + s_list[i] * (alphas[i] - beta)
    return r


def _cap_displacement(d: np.ndarray, max_step: float) -> np.ndarray:
    biggest = max_atom_displacement(d)
    if biggest > max_step > 0:
        return d * (max_step / biggest)
    return d


def _fallback(x: np.ndarray, model, res: MinimizationResult, why: str) -> Tuple[np.ndarray, MinimizationResult]:
    from .gentle_relaxation import gentle_relax_coords

    logger.warning("L-BFGS diverged (%s) after %d steps; continuing with gentle relaxation", why, res.steps)
    res.finish(False, why, aborted=True)
    x_g, gentle = gentle_relax_coords(x, model)
    res.fallback_used = True
    res.steps += gentle.steps
    res.trace.extend(gentle.trace[1:])
    res.final_energy = gentle.final_energy
    res.reason = f"{why}; gentle fallback: {gentle.reason}"
    res.converged = gentle.converged
    res.state = RunState.CONVERGED if gentle.state == RunState.CONVERGED else RunState.ABORTED
    return x_g, res


def minimize_lbfgs(
    x0: np.ndarray,
    model,
    max_iter: int = 500,
    m: int = DEFAULT_MEMORY,
    etol: float = 0.01,
    gtol: float = 1e-4,
    max_step: float = DEFAULT_MAX_STEP,
    initial_step: float = 1.0,
    golden_section: bool = False,
    guard: bool = True,
    patience: int = 3,
) -> Tuple[np.ndarray, MinimizationResult]:
    """
    Minimize model.energy over flat coordinates x0.

    Args:
        model: object with energy_and_gradient(x) → (E, flat grad) and `cap`.
        etol: |ΔE| tolerance (kcal/mol) of the shared convergence criterion.
        gtol: stop when the gradient norm falls below this.
        max_step: largest per-atom displacement of any trial step (Å).
        golden_section: backtrack by 1/φ instead of 1/2.
        guard: False → raw steps initial_step·d, no line search, no divergence checks.

    Returns:
        (x_final, MinimizationResult).
    """
    x = np.asarray(x0, dtype=float).ravel().copy()
    res = MinimizationResult(strategy="lbfgs")
    e, g = model.energy_and_gradient(x)
    res.start(e)
    cap = getattr(model, "cap", AMBER_FF14SB.energy_cap)
    if not np.isfinite(e):
        return x, res.finish(False, "non-finite starting energy", aborted=True)
    started_below_cap = e <= cap
    shrink = 1.0 / GOLDEN_RATIO if golden_section else 0.5
    monitor = ConvergenceMonitor(etol, patience=patience, budget=max_iter)
    s_list: List[np.ndarray] = []
    y_list: List[np.ndarray] = []

    for it in range(max_iter):
        res.steps = it + 1
        if np.linalg.norm(g) <= gtol:
            return x, res.finish(True, "gradient below tolerance")
        d = _lbfgs_two_loop(g, s_list, y_list)
        slope = float(np.dot(g, d))
        if not np.isfinite(slope) or slope >= 0.0:
            s_list.clear()
            y_list.clear()
            d = -g
            slope = float(np.dot(g, d))

        if not guard:
            x_new = x + initial_step * d
            e_new, g_new = model.energy_and_gradient(x_new)
        else:
            d = _cap_displacement(d, max_step)
            slope = float(np.dot(g, d))
            step = initial_step
            accepted = False
            for _ in range(MAX_BACKTRACKS):
                x_new = x + step * d
                e_new, g_new = model.energy_and_gradient(x_new)
                if np.isfinite(e_new) and e_new <= e + ARMIJO_C1 * step * slope:
                    accepted = True
                    break
                step *= shrink
            if not accepted:
                if not np.isfinite(e_new) or e_new > e:
                    return _fallback(x, model, res, "line search failed with energy growth")
                return x, res.finish(True, "line search stalled at minimum")
            if started_below_cap and e_new > cap:
                return _fallback(x, model, res, "energy crossed the cap")

        s = x_new - x
        y = g_new - g
        x, g = x_new, g_new
        e = float(e_new)
        res.final_energy = e
        res.trace.append(e)
        res.accepted_steps += 1
        if guard and np.dot(s, y) > 1e-10:
            s_list.append(s)
            y_list.append(y)
            if len(s_list) > m:
                s_list.pop(0)
                y_list.pop(0)
        if monitor.update(e):
            return x, res.finish(True, monitor.reason)
    return x, res.finish(True, f"iteration budget exhausted ({max_iter})")


def lbfgs_relax(
    structure: Structure,
    max_iter: int = 500,
    params: ForceFieldParameters = AMBER_FF14SB,
    contacts=None,
    **kwargs,
) -> Tuple[Structure, MinimizationResult]:
    """L-BFGS on a deep copy of `structure`; returns (minimized copy, result)."""
    from .folding_energy import StructureEnergy

    work = structure.clone()
    model = StructureEnergy(work, params=params, contacts=contacts)
    x, res = minimize_lbfgs(work.coordinates(), model, max_iter=max_iter, **kwargs)
    res.evaluations = model.n_evals
    work.set_coordinates(x.reshape(-1, 3))
    return work, res


if __name__ == "__main__":
    from .backbone_builder import build_backbone

    st = build_backbone("ACDEFGHIKL", np.array([[-60.0, -45.0]] * 10))
    out, info = lbfgs_relax(st, max_iter=100)
    print(f"L-BFGS: {info.initial_energy:.3f} → {info.final_energy:.3f} kcal/mol, "
          f"{info.steps} steps, {info.state.value} ({info.reason})")
