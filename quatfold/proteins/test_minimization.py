"""
Tests for the minimizers: run states, shared convergence, adaptive budgets,
gentle relaxation, L-BFGS divergence guard and fallback, simulated annealing.

Run: pytest quatfold/proteins/test_minimization.py -v
"""

from __future__ import annotations

import numpy as np
import pytest

from .backbone_builder import build_backbone
from .folding_energy import StructureEnergy
from .gentle_relaxation import gentle_relax, gentle_relax_coords, quick_clash_removal
from .gradient_descent_folding import minimize_lbfgs
from .minimization import (
    ConvergenceMonitor,
    FunctionModel,
    RunState,
    adaptive_budget,
    max_atom_displacement,
    minimize_structure,
    recommended_strategy,
)
from .simulated_annealing import SCHEDULES, anneal_coords, metropolis_accept, temperature


def _quadratic(k: float = 10.0) -> FunctionModel:
    return FunctionModel(lambda x: 0.5 * k * float(np.dot(x, x)), lambda x: k * x)


def _helix(seq: str = "ACDEFG"):
    return build_backbone(seq, np.tile((-60.0, -45.0), (len(seq), 1)))


def test_adaptive_budget_and_strategy():
    """Budget scales with √(n/76) inside [500, 5000]; strategy follows chain size."""
    assert adaptive_budget(76) == 1000
    assert adaptive_budget(10) == 500
    assert adaptive_budget(5000) == 5000
    assert adaptive_budget(10, min_steps=50) == int(1000 * np.sqrt(10 / 76))
    assert recommended_strategy(49) == "lbfgs"
    assert recommended_strategy(50) == "hybrid"
    assert recommended_strategy(149) == "hybrid"
    assert recommended_strategy(150) == "annealing"


def test_convergence_monitor():
    """Stops after `patience` consecutive |ΔE| < tol, or at the budget."""
    mon = ConvergenceMonitor(0.1, patience=3)
    assert [mon.update(e) for e in (10.0, 10.05, 10.06, 10.07)] == [False, False, False, True]
    mon = ConvergenceMonitor(0.1, patience=3, budget=2)
    assert [mon.update(e) for e in (10.0, 5.0)] == [False, True]
    assert "budget" in mon.reason


def test_gentle_relaxation_is_monotonic():
    """Energy trace never increases and each step moves an atom at most step_size."""
    st = _helix()
    st.set_coordinates(st.coordinates() + np.random.default_rng(0).normal(0.0, 0.1, size=(len(st.atoms), 3)))
    model = StructureEnergy(st)
    x0 = st.coordinates().ravel()
    x, res = gentle_relax_coords(x0, model, step_size=0.01, max_steps=50)
    assert np.all(np.diff(res.trace) <= 1e-12)
    assert res.final_energy <= res.initial_energy
    assert res.state is RunState.CONVERGED
    assert res.steps <= 50
    assert max_atom_displacement(x - x0) <= 0.01 * res.steps + 1e-9


def test_gentle_relax_does_not_mutate_input():
    """gentle_relax works on a copy."""
    st = _helix()
    before = st.coordinates()
    relaxed, _ = gentle_relax(st, max_steps=5)
    np.testing.assert_allclose(st.coordinates(), before)
    assert relaxed is not st


def test_lbfgs_guard_prevents_divergence():
    """On a stiff quadratic the raw step overshoots uphill; the guarded run goes down."""
    x0 = np.ones(6)
    _, raw = minimize_lbfgs(x0, _quadratic(), max_iter=1, guard=False)
    assert raw.final_energy > raw.initial_energy
    _, guarded = minimize_lbfgs(x0, _quadratic(), max_iter=1)
    assert guarded.final_energy < guarded.initial_energy


def test_gentle_vs_unguarded_lbfgs_on_clash():
    """On a clashed chain gentle relaxation only goes down; raw quasi-Newton steps do not."""
    st = build_backbone("A" * 10)
    st.residues[8].n.position = st.residues[1].ca.position + np.array([0.01, 0.0, 0.0])
    x0 = st.coordinates().ravel()
    assert StructureEnergy(st).energy(x0) > 0.0

    _, gentle = gentle_relax_coords(x0, StructureEnergy(st), max_steps=50)
    assert np.all(np.diff(gentle.trace) <= 0.0)
    assert gentle.final_energy < gentle.initial_energy

    _, raw = minimize_lbfgs(x0, StructureEnergy(st), max_iter=8, guard=False)
    assert np.any(np.diff(raw.trace) > 0.0)
    assert raw.final_energy > gentle.final_energy

    _, guarded = minimize_lbfgs(x0, StructureEnergy(st), max_iter=8)
    assert np.all(np.diff(guarded.trace) <= 0.0)
    assert guarded.final_energy < guarded.initial_energy


def test_lbfgs_minimizes_quadratic():
    """L-BFGS (plain and golden-section backtracking) drives a quadratic to near zero."""
    for golden in (False, True):
        x, res = minimize_lbfgs(np.linspace(-1.0, 1.0, 9), _quadratic(), max_iter=200, golden_section=golden)
        assert res.converged and res.state is RunState.CONVERGED
        assert res.final_energy < 0.05 * res.initial_energy
        assert np.all(np.diff(res.trace) <= 1e-12)


def test_lbfgs_falls_back_to_gentle_on_divergence():
    """A gradient that points uphill makes the line search fail; gentle relaxation takes over."""
    model = FunctionModel(lambda x: 0.5 * float(np.dot(x, x)), lambda x: -x)
    _, res = minimize_lbfgs(np.ones(6), model, max_iter=20)
    assert res.fallback_used
    assert res.final_energy <= res.initial_energy + 1e-12
    assert "gentle fallback" in res.reason


def test_schedules():
    """Every schedule starts at T0; exponential, linear and logarithmic end at Tf."""
    for s in SCHEDULES:
        assert temperature(0, 100, 1000.0, 1.0, s) == pytest.approx(1000.0)
    for s in ("exponential", "linear", "logarithmic"):
        assert temperature(100, 100, 1000.0, 1.0, s) == pytest.approx(1.0)
    temps = [temperature(t, 100) for t in range(101)]
    assert all(a >= b for a, b in zip(temps, temps[1:]))
    with pytest.raises(ValueError):
        temperature(0, 10, schedule="geometric")


def test_metropolis():
    """Downhill always accepted; uphill at T=0 never."""
    rng = np.random.default_rng(0)
    assert metropolis_accept(-1.0, 300.0, rng)
    assert not metropolis_accept(1.0, 0.0, rng)
    assert not metropolis_accept(float("inf"), 300.0, rng)


def test_annealing_keeps_best():
    """Annealing never returns worse than its start; the hybrid run polishes with L-BFGS."""
    st = _helix("ACDEF")
    model = StructureEnergy(st)
    x0 = st.coordinates().ravel()
    _, res = anneal_coords(x0, model, np.random.default_rng(1), n_steps=60)
    assert res.final_energy <= res.initial_energy
    assert res.strategy == "annealing"
    _, hyb = anneal_coords(x0, model, np.random.default_rng(1), n_steps=60, hybrid=True, polish_iter=10)
    assert hyb.strategy == "hybrid" and "polish" in hyb.reason
    assert hyb.final_energy <= hyb.initial_energy


@pytest.mark.parametrize("strategy", ["gentle", "lbfgs", "annealing", "hybrid", "auto"])
def test_minimize_structure(strategy):
    """Every strategy returns a new structure, leaves the input alone and does not go uphill."""
    st = _helix()
    before = st.coordinates()
    out, res = minimize_structure(st, strategy=strategy, budget=40, rng=np.random.default_rng(2))
    np.testing.assert_allclose(st.coordinates(), before)
    assert out is not st and len(out.atoms) == len(st.atoms)
    assert res.final_energy <= res.initial_energy + 1e-9
    assert res.state in (RunState.CONVERGED, RunState.ABORTED)
    assert res.evaluations > 0
    if strategy == "auto":
        assert res.strategy == "lbfgs"


def test_minimize_structure_rejects_unknown_strategy():
    """Unknown strategy names raise ValueError."""
    with pytest.raises(ValueError):
        minimize_structure(_helix(), strategy="newton")


def test_quick_clash_removal():
    """Atoms closer than 2.0 Å on distant residues are pushed apart."""
    st = build_backbone("A" * 10)
    st.residues[8].o.position = st.residues[1].ca.position + np.array([0.5, 0.0, 0.0])
    out, moves = quick_clash_removal(st)
    assert moves >= 1
    d = np.linalg.norm(out.residues[8].o.position - out.residues[1].ca.position)
    assert d > 1.5


if __name__ == "__main__":
    test_adaptive_budget_and_strategy()
    test_convergence_monitor()
    test_gentle_relaxation_is_monotonic()
    test_gentle_relax_does_not_mutate_input()
    test_lbfgs_guard_prevents_divergence()
    test_gentle_vs_unguarded_lbfgs_on_clash()
    test_lbfgs_minimizes_quadratic()
    test_lbfgs_falls_back_to_gentle_on_divergence()
    test_schedules()
    test_metropolis()
    test_annealing_keeps_best()
    for s in ("gentle", "lbfgs", "annealing", "hybrid", "auto"):
        test_minimize_structure(s)
    test_minimize_structure_rejects_unknown_strategy()
    test_quick_clash_removal()
    print("All tests passed.")
