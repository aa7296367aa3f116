"""
Unit tests for quaternion geometry: Ramachandran encoding, terminal sentinel,
slerp, rotations and point geometry.

Run: pytest quatfold/proteins/test_quaternion_geometry.py -v
"""

from __future__ import annotations

import numpy as np

from .quaternion_geometry import (
    IDENTITY,
    angles_to_quaternions,
    bond_angle,
    dihedral_angle,
    normalize_quaternion,
    place_atom,
    quaternion_conjugate,
    quaternion_distance,
    quaternion_from_axis_angle,
    quaternion_multiply,
    quaternion_to_matrix,
    quaternion_to_ramachandran,
    quaternions_to_angles,
    ramachandran_to_quaternion,
    random_unit_quaternion,
    rotate_vector,
    slerp,
    wrap_angle_deg,
)


def test_ramachandran_round_trip():
    """Helix, sheet, left-handed and PPII angles survive encode → decode."""
    angles = np.array([[-60.0, -45.0], [-120.0, 120.0], [60.0, 45.0], [-75.0, 145.0]])
    q = angles_to_quaternions(angles)
    np.testing.assert_allclose(np.linalg.norm(q, axis=1), 1.0, atol=1e-12)
    np.testing.assert_allclose(quaternions_to_angles(q), angles, atol=1e-6)


def test_encoding_formula():
    """q = [cφcψ, sφcψ, cφsψ, sφsψ] with half angles."""
    phi, psi = np.deg2rad(-60.0), np.deg2rad(-45.0)
    q = ramachandran_to_quaternion(phi, psi)
    cp, sp, cs, ss = np.cos(phi / 2), np.sin(phi / 2), np.cos(psi / 2), np.sin(psi / 2)
    np.testing.assert_allclose(q, [cp * cs, sp * cs, cp * ss, sp * ss], atol=1e-12)


def test_nan_terminal_sentinel():
    """NaN angle → identity quaternion; identity → (NaN, NaN)."""
    np.testing.assert_allclose(ramachandran_to_quaternion(float("nan"), 0.3), IDENTITY)
    phi, psi = quaternion_to_ramachandran(IDENTITY)
    assert np.isnan(phi) and np.isnan(psi)
    out = quaternions_to_angles(angles_to_quaternions(np.array([[np.nan, -45.0], [-60.0, -45.0]])))
    assert np.all(np.isnan(out[0]))
    np.testing.assert_allclose(out[1], [-60.0, -45.0], atol=1e-6)


def test_zero_norm_normalizes_to_identity():
    """A zero quaternion normalizes to identity instead of dividing by zero."""
    np.testing.assert_allclose(normalize_quaternion(np.zeros(4)), IDENTITY)


def test_slerp_endpoints_and_norm():
    """Slerp hits both endpoints, stays on the unit sphere and clamps t."""
    q1 = ramachandran_to_quaternion(np.deg2rad(-60), np.deg2rad(-45))
    q2 = ramachandran_to_quaternion(np.deg2rad(-120), np.deg2rad(120))
    np.testing.assert_allclose(slerp(q1, q2, 0.0), q1, atol=1e-12)
    np.testing.assert_allclose(slerp(q1, q2, 1.0), q2, atol=1e-12)
    np.testing.assert_allclose(slerp(q1, q2, 2.0), q2, atol=1e-12)
    for t in np.linspace(0, 1, 7):
        assert abs(np.linalg.norm(slerp(q1, q2, t)) - 1.0) < 1e-6
    mid = slerp(q1, q2, 0.5)
    np.testing.assert_allclose(quaternion_distance(q1, mid), quaternion_distance(mid, q2), atol=1e-9)


def test_slerp_takes_shorter_arc():
    """-q2 is the same rotation; slerp toward it matches slerp toward q2."""
    q1 = ramachandran_to_quaternion(0.2, 0.4)
    q2 = ramachandran_to_quaternion(1.5, -2.0)
    np.testing.assert_allclose(slerp(q1, -q2, 0.3), slerp(q1, q2, 0.3), atol=1e-12)


def test_slerp_nearly_identical_inputs():
    """dot > 0.9995 uses normalized lerp and stays unit."""
    q1 = ramachandran_to_quaternion(0.5, 0.5)
    q2 = ramachandran_to_quaternion(0.5001, 0.5)
    q = slerp(q1, q2, 0.5)
    assert abs(np.linalg.norm(q) - 1.0) < 1e-12


def test_rotation_primitives_agree():
    """Axis-angle rotation, matrix form and q v q* agree; q q* is identity."""
    q = quaternion_from_axis_angle(np.array([0.0, 0.0, 1.0]), np.pi / 2)
    np.testing.assert_allclose(rotate_vector(np.array([1.0, 0.0, 0.0]), q), [0.0, 1.0, 0.0], atol=1e-12)
    rng = np.random.default_rng(3)
    r = random_unit_quaternion(rng)
    v = rng.normal(size=3)
    np.testing.assert_allclose(quaternion_to_matrix(r) @ v, rotate_vector(v, r), atol=1e-12)
    np.testing.assert_allclose(quaternion_multiply(r, quaternion_conjugate(r)), IDENTITY, atol=1e-12)


def test_wrap_angle():
    """Angles wrap into [-180, 180)."""
    np.testing.assert_allclose(wrap_angle_deg(np.array([180.0, 190.0, -190.0, 0.0])), [-180.0, -170.0, 170.0, 0.0])


def test_place_atom_matches_dihedral_and_bond_angle():
    """place_atom output reproduces the requested bond length, angle and torsion."""
    a, b, c = np.array([1.0, 1.0, 0.0]), np.array([0.0, 0.0, 0.0]), np.array([1.5, 0.0, 0.0])
    for torsion in (-150.0, -60.0, 0.0, 75.0, 180.0):
        d = place_atom(a, b, c, 1.33, 117.0, torsion)
        assert abs(np.linalg.norm(d - c) - 1.33) < 1e-9
        assert abs(np.rad2deg(bond_angle(b, c, d)) - 117.0) < 1e-6
        got = np.rad2deg(dihedral_angle(a, b, c, d))
        assert abs(wrap_angle_deg(got - torsion)) < 1e-6


if __name__ == "__main__":
    test_ramachandran_round_trip()
    test_encoding_formula()
    test_nan_terminal_sentinel()
    test_zero_norm_normalizes_to_identity()
    test_slerp_endpoints_and_norm()
    test_slerp_takes_shorter_arc()
    test_slerp_nearly_identical_inputs()
    test_rotation_primitives_agree()
    test_wrap_angle()
    test_place_atom_matches_dihedral_and_bond_angle()
    print("All tests passed.")
