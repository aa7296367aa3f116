"""
Shared minimizer machinery: run states, results, the convergence criterion,
size-adaptive budgets and strategy dispatch.

Every strategy (gentle relaxation, L-BFGS, simulated annealing, hybrid) moves
through INITIALIZED → STEPPING → CONVERGED | ABORTED and stops on the same
rule: energy unchanged within tolerance for N consecutive steps, or the
iteration budget exhausted. Budgets scale with √(n_residues) so cost does not
explode on larger chains.

minimize_structure never mutates its input: it works on a deep copy and
returns (new_structure, MinimizationResult).
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .force_field import AMBER_FF14SB, ForceFieldParameters
from .structure import Structure

logger = logging.getLogger(__name__)

STRATEGIES = ("gentle", "lbfgs", "annealing", "hybrid")
REFERENCE_RESIDUES = 76.0  # ubiquitin
DEFAULT_PATIENCE = 3


class RunState(str, enum.Enum):
    INITIALIZED = "initialized"
    STEPPING = "stepping"
    CONVERGED = "converged"
    ABORTED = "aborted"


@dataclass
class MinimizationResult:
    """Outcome of one minimizer run. Energies are the minimized objective (kcal/mol)."""

    strategy: str
    state: RunState = RunState.INITIALIZED
    initial_energy: float = 0.0
    final_energy: float = 0.0
    steps: int = 0
    evaluations: int = 0
    converged: bool = False
    reason: str = ""
    fallback_used: bool = False
    accepted_steps: int = 0
    trace: List[float] = field(default_factory=list)

    @property
    def energy_change(self) -> float:
        return self.final_energy - self.initial_energy

    def start(self, energy: float) -> None:
        self.initial_energy = float(energy)
        self.final_energy = float(energy)
        self.trace = [float(energy)]
        self.state = RunState.STEPPING

    def finish(self, converged: bool, reason: str, aborted: bool = False) -> "MinimizationResult":
        self.converged = converged and not aborted
        self.reason = reason
        self.state = RunState.ABORTED if aborted else RunState.CONVERGED
        return self

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "state": self.state.value,
            "initial_energy": self.initial_energy,
            "final_energy": self.final_energy,
            "energy_change": self.energy_change,
            "steps": self.steps,
            "evaluations": self.evaluations,
            "converged": self.converged,
            "reason": self.reason,
            "fallback_used": self.fallback_used,
        }


class ConvergenceMonitor:
    """
    |ΔE| < tolerance for `patience` consecutive updates, or `budget` updates seen.

    update() returns True once either condition holds; `reason` says which.
    """

    def __init__(self, tolerance: float, patience: int = DEFAULT_PATIENCE, budget: Optional[int] = None) -> None:
        self.tolerance = float(tolerance)
        self.patience = max(1, int(patience))
        self.budget = budget
        self.last: Optional[float] = None
        self.quiet = 0
        self.count = 0
        self.reason = ""

    def update(self, energy: float) -> bool:
        self.count += 1
        if self.last is not None and abs(energy - self.last) < self.tolerance:
            self.quiet += 1
        else:
            self.quiet = 0
        self.last = float(energy)
        if self.quiet >= self.patience:
            self.reason = f"|dE| < {self.tolerance:g} for {self.patience} consecutive steps"
            return True
        if self.budget is not None and self.count >= self.budget:
            self.reason = f"iteration budget exhausted ({self.budget})"
            return True
        return False

    @property
    def energy_stalled(self) -> bool:
        return self.quiet >= self.patience


class FunctionModel:
    """Adapter so plain callables (energy_func, grad_func) look like StructureEnergy."""

    def __init__(
        self,
        energy_func: Callable[[np.ndarray], float],
        grad_func: Callable[[np.ndarray], np.ndarray],
        cap: float = AMBER_FF14SB.energy_cap,
    ) -> None:
        self.energy_func = energy_func
        self.grad_func = grad_func
        self.cap = cap
        self.n_evals = 0

    def energy(self, x: np.ndarray) -> float:
        self.n_evals += 1
        return float(self.energy_func(np.asarray(x, dtype=float).ravel()))

    def energy_and_gradient(self, x: np.ndarray) -> Tuple[float, np.ndarray]:
        x = np.asarray(x, dtype=float).ravel()
        self.n_evals += 1
        return float(self.energy_func(x)), np.asarray(self.grad_func(x), dtype=float).ravel()


def adaptive_budget(
    n_residues: int,
    base_steps: int = 1000,
    min_steps: int = 500,
    max_steps: int = 5000,
) -> int:
    """Iteration budget base·√(n/76), clamped to [min_steps, max_steps]."""
    if n_residues <= 0:
        return int(base_steps)
    steps = int(base_steps * np.sqrt(n_residues / REFERENCE_RESIDUES))
    return int(np.clip(steps, min_steps, max_steps))


def recommended_strategy(n_residues: int) -> str:
    """Small chains: L-BFGS; medium: hybrid SA + L-BFGS; large: simulated annealing."""
    if n_residues < 50:
        return "lbfgs"
    if n_residues < 150:
        return "hybrid"
    return "annealing"


def max_atom_displacement(dx: np.ndarray) -> float:
    d = np.asarray(dx, dtype=float).reshape(-1, 3)
    if d.size == 0:
        return 0.0
    return float(np.max(np.linalg.norm(d, axis=1)))


def minimize_structure(
    structure: Structure,
    strategy: str = "auto",
    budget: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    params: ForceFieldParameters = AMBER_FF14SB,
    contacts: Optional[Sequence[Tuple[int, int]]] = None,
    energy_tolerance: float = 0.01,
    **kwargs,
) -> Tuple[Structure, MinimizationResult]:
    """
    Relax a private copy of `structure` with the chosen strategy.

    Args:
        strategy: "auto" (by size), "gentle", "lbfgs", "annealing" or "hybrid".
        budget: iteration budget; None → adaptive_budget(n_residues).
        rng: generator for stochastic strategies (default seeded 0).
        contacts: residue-index pairs restrained CA-CA (contact prior).

    Returns:
        (relaxed deep copy, MinimizationResult). The input is never modified.
    """
    from .folding_energy import StructureEnergy
    from .gentle_relaxation import gentle_relax_coords
    from .gradient_descent_folding import minimize_lbfgs
    from .simulated_annealing import anneal_coords

    n_res = len(structure.residues)
    if strategy == "auto":
        strategy = recommended_strategy(n_res)
    if strategy not in STRATEGIES:
        raise ValueError(f"unknown minimization strategy: {strategy!r}")
    if budget is None:
        budget = adaptive_budget(n_res)
    rng = rng if rng is not None else np.random.default_rng(0)
    work = structure.clone()
    model = StructureEnergy(work, params=params, contacts=contacts)
    x0 = work.coordinates().ravel()

    if strategy == "gentle":
        x, res = gentle_relax_coords(x0, model, tolerance=kwargs.pop("tolerance", 0.1), **kwargs)
    elif strategy == "lbfgs":
        x, res = minimize_lbfgs(x0, model, max_iter=budget, etol=energy_tolerance, **kwargs)
    elif strategy == "annealing":
        x, res = anneal_coords(x0, model, rng, n_steps=budget, hybrid=False, etol=energy_tolerance, **kwargs)
    else:
        # 70 % annealing, 30 % L-BFGS polish
        sa_steps = max(1, int(0.7 * budget))
        x, res = anneal_coords(
            x0, model, rng, n_steps=sa_steps, hybrid=True,
            polish_iter=max(1, budget - sa_steps), etol=energy_tolerance, **kwargs,
        )
    res.evaluations = model.n_evals
    work.set_coordinates(x.reshape(-1, 3))
    logger.debug(
        "%s: %.3f → %.3f kcal/mol in %d steps (%s)",
        res.strategy, res.initial_energy, res.final_energy, res.steps, res.reason,
    )
    return work, res
