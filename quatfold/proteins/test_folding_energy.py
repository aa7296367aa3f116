"""
Tests for the force field and energy model: finiteness, capping, error sentinel
and analytic gradient vs central differences.

Run: pytest quatfold/proteins/test_folding_energy.py -v
"""

from __future__ import annotations

import dataclasses

import numpy as np

from ._fold_base import ENERGY_CAP
from .backbone_builder import build_backbone
from .ensemble import Candidate, Ensemble
from .folding_energy import COMPONENTS, StructureEnergy, build_topology, compute_energy, numerical_gradient
from .force_field import AMBER_FF14SB, ramachandran_energy, ramachandran_region, ramachandran_statistics
from .hydrogen_bonds import detect_hydrogen_bonds, hbond_energy_and_gradient, hbond_sites, hbond_statistics
from .structure import Structure
from .validation import quality_score


def _peptide(seq: str = "ACDEG", seed: int = 0):
    st = build_backbone(seq, np.tile((-60.0, -45.0), (len(seq), 1)), add_hydrogens=True)
    rng = np.random.default_rng(seed)
    st.set_coordinates(st.coordinates() + rng.normal(0.0, 0.05, size=(len(st.atoms), 3)))
    return st


def test_energy_finite_and_within_cap():
    """A built helix has finite components and |total| ≤ cap, uncapped."""
    bd = compute_energy(build_backbone("ACDEFGHIK", np.tile((-60.0, -45.0), (9, 1))))
    assert bd.error is None
    for name in COMPONENTS + ("total", "raw_total"):
        assert np.isfinite(getattr(bd, name)), name
    assert abs(bd.total) <= ENERGY_CAP
    assert not bd.capped and not bd.non_finite
    np.testing.assert_allclose(bd.total, bd.raw_total, rtol=1e-12)


def test_topology_counts():
    """Bonds: 3 per residue + C-O + peptide links; φ/ψ/ω torsions present."""
    st = build_backbone("AAA")
    topo = build_topology(st)
    # N-CA, CA-C, C-O per residue + 2 peptide bonds
    assert topo.bonds.shape == (3 * 3 + 2, 2)
    assert len(topo.rama) == 1
    assert topo.torsions.shape[0] > 0


def _clashed(offset: float = 0.01):
    st = build_backbone("A" * 10)
    st.residues[8].n.position = st.residues[1].ca.position + np.array([offset, 0.0, 0.0])
    return st


def test_overlap_is_capped_not_infinite():
    """Two atoms 0.005 Å apart give a capped, finite total with the raw sum kept."""
    bd = compute_energy(_clashed(0.005))
    assert bd.capped
    assert abs(bd.total) <= ENERGY_CAP
    assert np.isfinite(bd.raw_total) and bd.raw_total > ENERGY_CAP
    assert all(abs(getattr(bd, c)) <= ENERGY_CAP for c in COMPONENTS)


def test_capped_terms_do_not_cancel():
    """Capped vdW repulsion and capped attraction saturate the total at +cap, not 0."""
    bd = compute_energy(_clashed())
    assert bd.vdw == ENERGY_CAP and bd.electrostatic < -0.5 * ENERGY_CAP
    assert bd.total == ENERGY_CAP
    clean = compute_energy(build_backbone("A" * 10))
    assert bd.total > clean.total


def test_clashed_candidate_ranks_last():
    """A clashed structure never outranks a clean build of the same chain."""
    clean_st = build_backbone("A" * 10)
    bad_st = _clashed()
    angles = np.zeros((10, 2))
    clean = Candidate(angles, clean_st, compute_energy(clean_st), quality_score(clean_st), "basin", 1)
    bad = Candidate(angles, bad_st, compute_energy(bad_st), quality_score(bad_st), "fragment", 2)
    assert bad.rank_score() > clean.rank_score()
    assert Ensemble([bad, clean]).best() is clean


def test_invalid_input_returns_error_sentinel():
    """Non-finite coordinates give an all-zero breakdown with `error` set."""
    st = build_backbone("ACD")
    st.residues[1].ca.position = np.array([np.inf, 0.0, 0.0])
    bd = compute_energy(st)
    assert bd.error
    assert bd.total == 0.0 and bd.raw_total == 0.0
    model = StructureEnergy(build_backbone("ACD"))
    assert model.energy(st.coordinates()) == float("inf")


def test_gradient_matches_finite_difference():
    """Analytic gradient agrees with central differences on a small peptide."""
    st = _peptide()
    model = StructureEnergy(st)
    x = st.coordinates().ravel()
    _, g = model.energy_and_gradient(x)
    g_num = numerical_gradient(model.energy, x, h=1e-5)
    np.testing.assert_allclose(g, g_num, rtol=1e-4, atol=1e-3)


def test_gradient_with_ramachandran_and_restraints():
    """Ramachandran and contact-restraint terms have consistent gradients too."""
    st = _peptide("ACDEFGHIK", seed=1)
    params = dataclasses.replace(AMBER_FF14SB, ramachandran_weight=1.0)
    model = StructureEnergy(st, params=params, contacts=[(0, 8), (1, 7)])
    x = st.coordinates().ravel()
    bd = model.breakdown(x)
    assert bd.ramachandran != 0.0 and bd.restraint > 0.0
    _, g = model.energy_and_gradient(x)
    g_num = numerical_gradient(model.energy, x, h=1e-5)
    np.testing.assert_allclose(g, g_num, rtol=1e-4, atol=1e-3)


def test_hbond_gradient_matches_finite_difference():
    """The H-bond term alone is attractive in a helix and has a consistent gradient."""
    st = _peptide("ACDEFGHIK", seed=2)
    sites = hbond_sites(st)
    assert sites.explicit_h.any()
    x = st.coordinates()
    e, g = hbond_energy_and_gradient(x, sites)
    assert e < 0.0
    g_num = numerical_gradient(lambda flat: hbond_energy_and_gradient(flat.reshape(-1, 3), sites)[0], x.ravel())
    np.testing.assert_allclose(g.ravel(), g_num, rtol=1e-4, atol=1e-4)


def test_hbond_fallback_and_weight():
    """Without amide H, N and CA stand in for the donor; weight 0 switches the term off."""
    st = build_backbone("ACDEFGHIK", np.tile((-60.0, -45.0), (9, 1)))
    sites = hbond_sites(st)
    assert sites.vertex.size == 9 and not sites.explicit_h.any()
    assert compute_energy(st).hbond < 0.0
    off = dataclasses.replace(AMBER_FF14SB, hbond_weight=0.0)
    assert compute_energy(st, params=off).hbond == 0.0


def test_detect_hydrogen_bonds_in_helix():
    """An ideal α-helix shows i → i+4 bonds inside the distance and angle windows."""
    st = build_backbone("A" * 16, np.tile((-57.0, -47.0), (16, 1)), add_hydrogens=True)
    bonds = detect_hydrogen_bonds(st)
    assert bonds
    for b in bonds:
        assert b.separation >= 2 and b.angle >= 120.0 and b.energy < 0.0
    assert any(b.explicit_h and 1.5 <= b.distance <= 2.5 for b in bonds)
    stats = hbond_statistics(st)
    assert stats["n_hbonds"] == len(bonds)
    assert stats["helix"] >= 1
    assert stats["helix"] + stats["sheet"] + stats["loop"] == len(bonds)
    np.testing.assert_allclose(stats["total_energy"], sum(b.energy for b in bonds))
    assert hbond_statistics(Structure())["n_hbonds"] == 0


def test_ramachandran_wells():
    """Basin centres are the energy minima; regions label the classic basins."""
    assert ramachandran_energy(-60.0, -45.0) < ramachandran_energy(0.0, 180.0)
    assert ramachandran_energy(90.0, 0.0, "GLY") < ramachandran_energy(90.0, 0.0, "ALA")
    assert ramachandran_region(-60.0, -45.0) == "alpha-helix"
    assert ramachandran_region(-120.0, 120.0) == "beta-sheet"
    assert ramachandran_region(float("nan"), 0.0) == "undefined"
    stats = ramachandran_statistics(np.tile((-60.0, -45.0), (6, 1)))
    assert stats["alpha_helix"] == 4 and stats["allowed_percent"] == 100.0


if __name__ == "__main__":
    test_energy_finite_and_within_cap()
    test_topology_counts()
    test_overlap_is_capped_not_infinite()
    test_capped_terms_do_not_cancel()
    test_clashed_candidate_ranks_last()
    test_invalid_input_returns_error_sentinel()
    test_gradient_matches_finite_difference()
    test_gradient_with_ramachandran_and_restraints()
    test_hbond_gradient_matches_finite_difference()
    test_hbond_fallback_and_weight()
    test_detect_hydrogen_bonds_in_helix()
    test_ramachandran_wells()
    print("All tests passed.")
