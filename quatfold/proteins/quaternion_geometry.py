"""
Quaternion geometry for backbone torsions.

Unit quaternions are (4,) float arrays (w, x, y, z). A Ramachandran pair (φ, ψ)
maps to a point on the unit 3-sphere:

    q = [cos(φ/2)cos(ψ/2), sin(φ/2)cos(ψ/2), cos(φ/2)sin(ψ/2), sin(φ/2)sin(ψ/2)]

and back with φ = 2·atan2(x, w), ψ = 2·atan2(y, w). Undefined terminal angles
(NaN) map to the identity (1, 0, 0, 0); the identity decodes to (NaN, NaN).
Slerp walks the shorter great-circle arc between two such points.

Also: axis-angle rotations, vector rotation, dihedral and bond angles of points.
Angles in radians unless a name ends in _deg. MIT License. Python 3.10+. Numpy only.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

IDENTITY = np.array([1.0, 0.0, 0.0, 0.0])
SLERP_LINEAR_THRESHOLD = 0.9995
_IDENTITY_TOL = 1e-12


def normalize_quaternion(q: np.ndarray) -> np.ndarray:
    """Unit quaternion; a zero (or non-finite) norm returns the identity."""
    q = np.asarray(q, dtype=float)
    n = np.linalg.norm(q)
    if n < 1e-15 or not np.isfinite(n):
        return IDENTITY.copy()
    return q / n


def quaternion_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Hamilton product a * b."""
    w1, x1, y1, z1 = a
    w2, x2, y2, z2 = b
    return np.array([
        w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
        w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
        w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
        w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
    ])


def quaternion_conjugate(q: np.ndarray) -> np.ndarray:
    return np.array([q[0], -q[1], -q[2], -q[3]], dtype=float)


def quaternion_from_axis_angle(axis: np.ndarray, angle: float) -> np.ndarray:
    """Rotation by `angle` (radians) about `axis` (normalized here)."""
    axis = np.asarray(axis, dtype=float)
    n = np.linalg.norm(axis)
    if n < 1e-15:
        return IDENTITY.copy()
    axis = axis / n
    half = 0.5 * angle
    return np.concatenate(([np.cos(half)], np.sin(half) * axis))


def rotate_vector(v: np.ndarray, q: np.ndarray) -> np.ndarray:
    """Rotate 3-vector v by unit quaternion q (v' = q v q*)."""
    q = normalize_quaternion(q)
    w, u = q[0], q[1:]
    v = np.asarray(v, dtype=float)
    t = 2.0 * np.cross(u, v)
    return v + w * t + np.cross(u, t)


def quaternion_to_matrix(q: np.ndarray) -> np.ndarray:
    """3x3 rotation matrix of a unit quaternion."""
    w, x, y, z = normalize_quaternion(q)
    return np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
        [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
        [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
    ])


def quaternion_distance(q1: np.ndarray, q2: np.ndarray) -> float:
    """Geodesic angle (radians) between two unit quaternions, sign-insensitive."""
    d = abs(float(np.dot(normalize_quaternion(q1), normalize_quaternion(q2))))
    return float(2.0 * np.arccos(min(1.0, d)))


def wrap_angle_deg(angle):
    """Wrap degrees into [-180, 180). Works on scalars and arrays; NaN passes through."""
    return (np.asarray(angle, dtype=float) + 180.0) % 360.0 - 180.0


def _wrap_rad(angle: float) -> float:
    """Wrap radians into (-π, π]."""
    a = (angle + np.pi) % (2.0 * np.pi) - np.pi
    if a <= -np.pi:
        a += 2.0 * np.pi
    return float(a)


# --- Ramachandran <-> quaternion ---

def ramachandran_to_quaternion(phi: float, psi: float) -> np.ndarray:
    """
    Encode (φ, ψ) radians as a unit quaternion.

    NaN in either angle (undefined terminal torsion) returns the identity by convention.
    """
    if np.isnan(phi) or np.isnan(psi):
        return IDENTITY.copy()
    cp, sp = np.cos(0.5 * phi), np.sin(0.5 * phi)
    cs, ss = np.cos(0.5 * psi), np.sin(0.5 * psi)
    return normalize_quaternion(np.array([cp * cs, sp * cs, cp * ss, sp * ss]))


def quaternion_to_ramachandran(q: np.ndarray) -> Tuple[float, float]:
    """
    Decode a unit quaternion to (φ, ψ) radians in (-π, π].

    The exact identity (1, 0, 0, 0) decodes to (NaN, NaN): it is the
    undefined-terminal sentinel, not the (0, 0) conformation.
    """
    q = normalize_quaternion(q)
    if abs(q[0] - 1.0) < _IDENTITY_TOL and np.all(np.abs(q[1:]) < _IDENTITY_TOL):
        return float("nan"), float("nan")
    w, x, y = q[0], q[1], q[2]
    phi = 2.0 * np.arctan2(x, w)
    psi = 2.0 * np.arctan2(y, w)
    return _wrap_rad(phi), _wrap_rad(psi)


def slerp(q1: np.ndarray, q2: np.ndarray, t: float) -> np.ndarray:
    """
    Spherical linear interpolation from q1 (t=0) to q2 (t=1) along the shorter arc.

    q2 is negated when the dot product is negative. Nearly coincident inputs
    (dot > 0.9995) use linear interpolation plus renormalization. Output is unit norm.
    """
    q1 = normalize_quaternion(q1)
    q2 = normalize_quaternion(q2)
    t = float(np.clip(t, 0.0, 1.0))
    dot = float(np.dot(q1, q2))
    if dot < 0.0:
        q2 = -q2
        dot = -dot
    if dot > SLERP_LINEAR_THRESHOLD:
        return normalize_quaternion(q1 + t * (q2 - q1))
    theta_0 = np.arccos(min(dot, 1.0))
    sin_0 = np.sin(theta_0)
    theta = theta_0 * t
    s1 = np.sin(theta_0 - theta) / sin_0
    s2 = np.sin(theta) / sin_0
    return normalize_quaternion(s1 * q1 + s2 * q2)


def angles_to_quaternions(angles_deg: np.ndarray) -> np.ndarray:
    """(n, 2) degrees (φ, ψ) → (n, 4) unit quaternions; NaN rows become identity."""
    angles = np.asarray(angles_deg, dtype=float).reshape(-1, 2)
    rad = np.deg2rad(angles)
    return np.array([ramachandran_to_quaternion(p, s) for p, s in rad]).reshape(-1, 4)


def quaternions_to_angles(quats: np.ndarray) -> np.ndarray:
    """(n, 4) quaternions → (n, 2) degrees (φ, ψ); identity rows become NaN."""
    quats = np.asarray(quats, dtype=float).reshape(-1, 4)
    out = np.array([quaternion_to_ramachandran(q) for q in quats]).reshape(-1, 2)
    return np.rad2deg(out)


def random_unit_quaternion(rng: np.random.Generator) -> np.ndarray:
    """Uniform random rotation (Shoemake), drawn from an explicit generator."""
    u1, u2, u3 = rng.random(3)
    a, b = np.sqrt(1.0 - u1), np.sqrt(u1)
    return np.array([
        a * np.sin(2 * np.pi * u2),
        a * np.cos(2 * np.pi * u2),
        b * np.sin(2 * np.pi * u3),
        b * np.cos(2 * np.pi * u3),
    ])


# --- Point geometry ---

def bond_angle(a: np.ndarray, b: np.ndarray, c: np.ndarray) -> float:
    """Angle a-b-c in radians."""
    v1 = np.asarray(a, dtype=float) - b
    v2 = np.asarray(c, dtype=float) - b
    n1, n2 = np.linalg.norm(v1), np.linalg.norm(v2)
    if n1 < 1e-12 or n2 < 1e-12:
        return 0.0
    cos_t = np.clip(np.dot(v1, v2) / (n1 * n2), -1.0, 1.0)
    return float(np.arccos(cos_t))


def dihedral_angle(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray, p3: np.ndarray) -> float:
    """Signed dihedral p0-p1-p2-p3 in radians (IUPAC sign convention)."""
    b0 = np.asarray(p0, dtype=float) - p1
    b1 = np.asarray(p2, dtype=float) - p1
    b2 = np.asarray(p3, dtype=float) - p2
    nb1 = np.linalg.norm(b1)
    if nb1 < 1e-12:
        return float("nan")
    b1 = b1 / nb1
    v = b0 - np.dot(b0, b1) * b1
    w = b2 - np.dot(b2, b1) * b1
    x = np.dot(v, w)
    y = np.dot(np.cross(b1, v), w)
    if abs(x) < 1e-15 and abs(y) < 1e-15:
        return float("nan")
    return float(np.arctan2(y, x))


def place_atom(
    a: np.ndarray,
    b: np.ndarray,
    c: np.ndarray,
    bond_length: float,
    angle_deg: float,
    torsion_deg: float,
) -> np.ndarray:
    """
    Place atom d given a, b, c with |cd| = bond_length, angle b-c-d = angle_deg,
    dihedral a-b-c-d = torsion_deg.

    The bond direction b→c is bent by the bond supplement about the a-b-c plane
    normal, then twisted by the torsion about the b→c axis; both are quaternion
    rotations.
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    c = np.asarray(c, dtype=float)
    bc = c - b
    bc = bc / np.linalg.norm(bc)
    normal = np.cross(b - a, bc)
    if np.linalg.norm(normal) < 1e-8:
        # Collinear frame: any perpendicular works.
        trial = np.array([0.0, 0.0, 1.0]) if abs(bc[2]) < 0.9 else np.array([0.0, 1.0, 0.0])
        normal = np.cross(trial, bc)
    normal = normal / np.linalg.norm(normal)
    bend = quaternion_from_axis_angle(normal, np.pi - np.deg2rad(angle_deg))
    twist = quaternion_from_axis_angle(bc, np.deg2rad(torsion_deg))
    d_dir = rotate_vector(rotate_vector(bc, bend), twist)
    return c + bond_length * d_dir


if __name__ == "__main__":
    q = ramachandran_to_quaternion(np.deg2rad(-60.0), np.deg2rad(-45.0))
    phi, psi = quaternion_to_ramachandran(q)
    print("alpha q =", np.round(q, 4), "→", np.rad2deg(phi), np.rad2deg(psi))
    assert abs(np.rad2deg(phi) + 60.0) < 1e-6 and abs(np.rad2deg(psi) + 45.0) < 1e-6
    mid = slerp(q, ramachandran_to_quaternion(np.deg2rad(-120), np.deg2rad(120)), 0.5)
    print("midpoint |q| =", np.linalg.norm(mid))
