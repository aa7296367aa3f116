"""
Tests for the conformational samplers and ensemble diversity.

Run: pytest quatfold/proteins/sampling/test_samplers.py -v
"""

from __future__ import annotations

import numpy as np
import pytest

from ..quaternion_geometry import wrap_angle_deg
from . import SAMPLERS
from .base import SampledConformation, spawn_rngs, start_angles
from .basins import BASINS, basin_explorer, basin_of, basin_weights
from .diversity import dihedral_distance, ensemble_diversity, select_diverse
from .fragments import FRAGMENT_LIBRARY, fragment_assembly
from .monte_carlo import monte_carlo
from .quaternion_search import fibonacci_sphere, quaternion_search

SEQ = "ACDEFGHIKL"


def _run(name: str, seq: str = SEQ, n: int = 3, seed: int = 0, **priors):
    kwargs = dict(priors)
    if name == "monte_carlo":
        kwargs.setdefault("n_steps", 20)
    return SAMPLERS[name](seq, n, np.random.default_rng(seed), **kwargs)


@pytest.mark.parametrize("name", ["quaternion", "monte_carlo", "fragment", "basin"])
def test_sampler_shapes_and_range(name):
    """Each sampler returns n (len, 2) angle sets in [-180, 180) tagged with its method."""
    out = _run(name)
    assert len(out) == 3
    for conf in out:
        assert isinstance(conf, SampledConformation)
        assert conf.method == name
        assert conf.angles.shape == (len(SEQ), 2)
        finite = conf.angles[np.isfinite(conf.angles)]
        assert np.all(finite >= -180.0) and np.all(finite < 180.0)


@pytest.mark.parametrize("name", ["quaternion", "monte_carlo", "fragment", "basin"])
def test_sampler_is_deterministic(name):
    """Same seed, same samples."""
    a = _run(name, seed=11)
    b = _run(name, seed=11)
    for x, y in zip(a, b):
        np.testing.assert_allclose(x.angles, y.angles)


@pytest.mark.parametrize("name", ["quaternion", "monte_carlo", "fragment", "basin"])
def test_zero_samples(name):
    """n_samples = 0 gives an empty list."""
    assert _run(name, n=0) == []


def test_spawned_rngs_are_independent_and_reproducible():
    """spawn_rngs gives distinct streams that repeat for the same base seed."""
    r1 = [g.random() for g in spawn_rngs(5, 4)]
    r2 = [g.random() for g in spawn_rngs(5, 4)]
    assert r1 == r2
    assert len(set(r1)) == 4


def test_start_angles_priority():
    """Explicit start beats SS; SS beats the extended default."""
    ext = start_angles("AAA")
    np.testing.assert_allclose(ext, np.tile((-120.0, 120.0), (3, 1)))
    np.testing.assert_allclose(start_angles("AAA", ss="HHH")[1], (-60.0, -45.0))
    explicit = np.full((3, 2), 10.0)
    np.testing.assert_allclose(start_angles("AAA", ss="HHH", start=explicit), explicit)
    with pytest.raises(ValueError):
        start_angles("AAA", start=np.zeros((2, 2)))


def test_fibonacci_sphere():
    """Points are spread in polar angle over (0, π) with azimuths in [0, 2π)."""
    pts = fibonacci_sphere(20)
    assert pts.shape == (20, 2)
    assert np.all((pts[:, 0] > 0.0) & (pts[:, 0] < np.pi))
    assert np.all((pts[:, 1] >= 0.0) & (pts[:, 1] < 2.0 * np.pi))
    assert np.all(np.diff(pts[:, 0]) > 0.0)
    xyz = np.stack([
        np.sin(pts[:, 0]) * np.cos(pts[:, 1]),
        np.sin(pts[:, 0]) * np.sin(pts[:, 1]),
        np.cos(pts[:, 0]),
    ], axis=1)
    assert np.linalg.norm(xyz.mean(axis=0)) < 0.2


def test_quaternion_search_stays_near_start():
    """Slerp toward nearby targets keeps samples within reach of the helical start."""
    start = np.tile((-60.0, -45.0), (len(SEQ), 1))
    out = quaternion_search(SEQ, 4, np.random.default_rng(3), start=start)
    for conf in out:
        assert np.all(np.isfinite(conf.angles))
        assert conf.angles.shape == start.shape


def test_basin_explorer_respects_ss():
    """Residues labelled H draw from the α basin, E from the β basin."""
    ss = "HHHHHEEEEE"
    out = basin_explorer(SEQ, 12, np.random.default_rng(4), ss=ss)
    angles = np.stack([c.angles for c in out])
    helix = wrap_angle_deg(angles[:, :5] - np.array([-60.0, -45.0]))
    sheet = wrap_angle_deg(angles[:, 5:] - np.array([-120.0, 120.0]))
    assert np.abs(helix).mean() < 30.0
    assert np.abs(sheet).mean() < 45.0


def test_basin_weights_and_lookup():
    """Weights sum to one; proline never takes the left-handed basin; centres map to themselves."""
    for aa in "AGPND":
        np.testing.assert_allclose(basin_weights(aa).sum(), 1.0)
    names = [b.name for b in BASINS]
    assert basin_weights("P")[names.index("left_handed_helix")] == 0.0
    assert basin_weights("G")[names.index("left_handed_helix")] > basin_weights("A")[names.index("left_handed_helix")]
    assert basin_of(-120.0, 120.0) == "beta_sheet"
    assert basin_of(60.0, 45.0) == "left_handed_helix"


def test_fragment_assembly_short_chains():
    """Chains shorter than a 3-mer and not a multiple of 3 are fully covered."""
    for seq in ("AG", "ACDE", "ACDEFGHIKLMNPQRSTVWY"):
        out = fragment_assembly(seq, 2, np.random.default_rng(5))
        for conf in out:
            assert conf.angles.shape == (len(seq), 2)
            assert np.all(np.isfinite(conf.angles))
    assert {len(f) for f in FRAGMENT_LIBRARY} == {3, 9}


def test_fragment_assembly_follows_ss():
    """An all-helix SS string assembles helical angles."""
    out = fragment_assembly("A" * 12, 3, np.random.default_rng(6), ss="H" * 12)
    for conf in out:
        np.testing.assert_allclose(conf.angles.mean(axis=0), (-60.0, -45.0), atol=15.0)


def test_monte_carlo_keeps_best_structure():
    """MC chains carry their best structure and its score."""
    out = monte_carlo("ACDEFG", 1, np.random.default_rng(7), n_steps=30)
    conf = out[0]
    assert conf.structure is not None and len(conf.structure.residues) == 6
    assert conf.score is not None and np.isfinite(conf.score)


def test_dihedral_distance():
    """Distances wrap across ±180, skip NaN and reject shape mismatches."""
    a = np.array([[179.0, 0.0], [np.nan, 10.0]])
    b = np.array([[-179.0, 0.0], [50.0, 10.0]])
    np.testing.assert_allclose(dihedral_distance(a, b), np.sqrt(4.0 / 3.0))
    assert dihedral_distance(a, a) == 0.0
    with pytest.raises(ValueError):
        dihedral_distance(np.zeros((2, 2)), np.zeros((3, 2)))


def test_ensemble_diversity_and_selection():
    """Near-duplicates collapse in n_unique; greedy selection picks the far-apart sets."""
    base = np.tile((-60.0, -45.0), (5, 1))
    sets = [base, base + 1.0, np.tile((-120.0, 120.0), (5, 1)), np.tile((60.0, 45.0), (5, 1))]
    stats = ensemble_diversity(sets, energies=[1.0, 2.0, 3.0, 4.0])
    assert stats["n_conformations"] == 4
    assert stats["n_unique"] == 3
    assert stats["min_pairwise_deg"] == pytest.approx(1.0)
    assert stats["energy_spread"] == pytest.approx(1.0)
    chosen = select_diverse(sets, 3)
    assert chosen[0] == 0 and 1 not in chosen
    assert ensemble_diversity([base])["n_unique"] == 1


if __name__ == "__main__":
    for name in ("quaternion", "monte_carlo", "fragment", "basin"):
        test_sampler_shapes_and_range(name)
        test_sampler_is_deterministic(name)
        test_zero_samples(name)
    test_spawned_rngs_are_independent_and_reproducible()
    test_start_angles_priority()
    test_fibonacci_sphere()
    test_quaternion_search_stays_near_start()
    test_basin_explorer_respects_ss()
    test_basin_weights_and_lookup()
    test_fragment_assembly_short_chains()
    test_fragment_assembly_follows_ss()
    test_monte_carlo_keeps_best_structure()
    test_dihedral_distance()
    test_ensemble_diversity_and_selection()
    print("All tests passed.")
