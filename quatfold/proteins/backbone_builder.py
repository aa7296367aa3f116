"""
Backbone coordinate builder: (φ, ψ[, ω]) per residue → N, CA, C, O (+ optional H, HA).

Forward kinematics along the chain. The last three placed atoms are the running
frame; each new atom is placed from a bond length, a bond angle and a torsion,
applied as two quaternion rotations (quaternion_geometry.place_atom):

    N(i+1)  from N(i)-CA(i)-C(i)       torsion ψ(i)
    CA(i+1) from CA(i)-C(i)-N(i+1)     torsion ω(i+1)
    C(i+1)  from C(i)-N(i+1)-CA(i+1)   torsion φ(i+1)
    O(i)    from N(i)-CA(i)-C(i)       torsion ψ(i) + 180

Bond lengths and angles come from a swappable BackboneParameters table
(Engh & Huber style values). Undefined (NaN) or missing angles fall back to the
extended conformation; ω defaults to 180° (trans).

MIT License. Python 3.10+. Numpy only.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ._fold_base import (
    AA_1to3,
    OMEGA_TRANS_DEG,
    PHI_EXTENDED_DEG,
    PSI_EXTENDED_DEG,
    normalize_sequence,
)
from .quaternion_geometry import dihedral_angle, place_atom
from .structure import Residue, Structure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackboneParameters:
    """Literature bond lengths (Å) and bond angles (degrees) for the backbone builder."""

    n_ca: float = 1.458
    ca_c: float = 1.523
    c_n: float = 1.329
    c_o: float = 1.231
    ca_cb: float = 1.530
    n_h: float = 1.01
    ca_ha: float = 1.09
    angle_n_ca_c: float = 111.0
    angle_ca_c_n: float = 117.0
    angle_c_n_ca: float = 121.0
    angle_ca_c_o: float = 120.5
    angle_n_ca_cb: float = 110.5


DEFAULT_BACKBONE = BackboneParameters()

# Tolerances (Å) for idealized hydrogen placement.
N_H_TOLERANCE = 0.14
CA_HA_TOLERANCE = 0.16


def extended_angles(n_res: int) -> np.ndarray:
    """(n, 2) extended-strand angles (φ, ψ) = (-120, 120) in degrees."""
    out = np.empty((n_res, 2))
    out[:, 0] = PHI_EXTENDED_DEG
    out[:, 1] = PSI_EXTENDED_DEG
    return out


def _resolve_angles(
    n_res: int,
    angles: Optional[np.ndarray],
    omega: Optional[np.ndarray],
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Return (phi, psi, omega) arrays of length n_res with NaN / missing filled in."""
    phi = np.full(n_res, PHI_EXTENDED_DEG)
    psi = np.full(n_res, PSI_EXTENDED_DEG)
    om = np.full(n_res, OMEGA_TRANS_DEG)
    if angles is not None:
        arr = np.asarray(angles, dtype=float)
        if arr.ndim == 1:
            arr = arr.reshape(-1, 2)
        if arr.shape[0] > n_res:
            raise ValueError(f"{arr.shape[0]} angle rows for {n_res} residues")
        if arr.shape[1] not in (2, 3):
            raise ValueError("angles must have 2 (phi, psi) or 3 (phi, psi, omega) columns")
        k = arr.shape[0]
        phi[:k] = np.where(np.isnan(arr[:, 0]), PHI_EXTENDED_DEG, arr[:, 0])
        psi[:k] = np.where(np.isnan(arr[:, 1]), PSI_EXTENDED_DEG, arr[:, 1])
        if arr.shape[1] == 3:
            om[:k] = np.where(np.isnan(arr[:, 2]), OMEGA_TRANS_DEG, arr[:, 2])
    if omega is not None:
        w = np.asarray(omega, dtype=float).ravel()
        if w.shape[0] > n_res:
            raise ValueError(f"{w.shape[0]} omega values for {n_res} residues")
        om[: w.shape[0]] = np.where(np.isnan(w), OMEGA_TRANS_DEG, w)
    return phi, psi, om


def build_backbone(
    sequence: str,
    angles: Optional[np.ndarray] = None,
    omega: Optional[np.ndarray] = None,
    params: BackboneParameters = DEFAULT_BACKBONE,
    add_hydrogens: bool = False,
    chain_id: str = "A",
    name: str = "built_from_angles",
) -> Structure:
    """
    Build N, CA, C, O for every residue of `sequence`.

    Args:
        sequence: one-letter amino-acid sequence.
        angles: (n, 2) or (n, 3) degrees (φ, ψ[, ω]); fewer rows than residues
            are padded with the extended conformation.
        omega: optional (n,) ω in degrees; overrides a third angles column.
        params: bond length / angle table.
        add_hydrogens: also place amide H and HA.

    Returns:
        Structure with 4 backbone atoms per residue (+ hydrogens), serials in order.
    """
    seq = normalize_sequence(sequence)
    n_res = len(seq)
    phi, psi, om = _resolve_angles(n_res, angles, omega)
    p = params
    n_xyz = np.zeros((n_res, 3))
    ca_xyz = np.zeros((n_res, 3))
    c_xyz = np.zeros((n_res, 3))
    o_xyz = np.zeros((n_res, 3))

    # First residue: N at origin, CA on +x, C in the xy-plane.
    n_xyz[0] = np.zeros(3)
    ca_xyz[0] = np.array([p.n_ca, 0.0, 0.0])
    t = np.deg2rad(180.0 - p.angle_n_ca_c)
    c_xyz[0] = ca_xyz[0] + p.ca_c * np.array([np.cos(t), np.sin(t), 0.0])

    for i in range(n_res):
        if i + 1 < n_res:
            n_xyz[i + 1] = place_atom(n_xyz[i], ca_xyz[i], c_xyz[i], p.c_n, p.angle_ca_c_n, psi[i])
            ca_xyz[i + 1] = place_atom(ca_xyz[i], c_xyz[i], n_xyz[i + 1], p.n_ca, p.angle_c_n_ca, om[i + 1])
            c_xyz[i + 1] = place_atom(c_xyz[i], n_xyz[i + 1], ca_xyz[i + 1], p.ca_c, p.angle_n_ca_c, phi[i + 1])
        o_xyz[i] = place_atom(n_xyz[i], ca_xyz[i], c_xyz[i], p.c_o, p.angle_ca_c_o, psi[i] + 180.0)

    st = Structure(name=name)
    for i, aa in enumerate(seq):
        res = st.add_residue(AA_1to3[aa], chain_id=chain_id)
        st.add_atom(res, "N", "N", n_xyz[i])
        st.add_atom(res, "CA", "C", ca_xyz[i])
        st.add_atom(res, "C", "C", c_xyz[i])
        st.add_atom(res, "O", "O", o_xyz[i])
    if add_hydrogens:
        add_backbone_hydrogens(st, params=p)
    logger.debug("built %d residues (%d atoms)", n_res, len(st.atoms))
    return st


def _unit(v: np.ndarray) -> np.ndarray:
    n = np.linalg.norm(v)
    return v / n if n > 1e-12 else v


def amide_hydrogen_position(prev_c: np.ndarray, n: np.ndarray, ca: np.ndarray, n_h: float = 1.01) -> np.ndarray:
    """Amide H on the external bisector of C(i-1)-N-CA."""
    d = _unit(_unit(n - prev_c) + _unit(n - ca))
    return n + n_h * d


def alpha_hydrogen_position(n: np.ndarray, ca: np.ndarray, c: np.ndarray, ca_ha: float = 1.09) -> np.ndarray:
    """HA at idealized tetrahedral geometry (mirror of the L-amino-acid CB site)."""
    b = ca - n
    cc = c - ca
    a = np.cross(b, cc)
    d = _unit(0.58273431 * a + 0.56802827 * b - 0.54067466 * cc)
    return ca + ca_ha * d


def add_backbone_hydrogens(structure: Structure, params: BackboneParameters = DEFAULT_BACKBONE) -> Structure:
    """
    Place amide H (not on the first residue, not on proline) and HA on every residue, in place.

    Serials are renumbered in residue order afterwards. Returns the same structure.
    """
    prev: Optional[Residue] = None
    for res in structure.residues:
        if not res.has_backbone():
            prev = res
            continue
        if prev is not None and prev.c is not None and res.name != "PRO" and "H" not in res.atoms:
            h = amide_hydrogen_position(prev.c.position, res.n.position, res.ca.position, params.n_h)
            structure.add_atom(res, "H", "H", h)
        if "HA" not in res.atoms:
            ha = alpha_hydrogen_position(res.n.position, res.ca.position, res.c.position, params.ca_ha)
            structure.add_atom(res, "HA", "H", ha)
        prev = res
    structure.renumber()
    return structure


def validate_hydrogen_geometry(
    structure: Structure,
    params: BackboneParameters = DEFAULT_BACKBONE,
) -> Tuple[bool, str]:
    """Check N-H and CA-HA bond lengths of placed hydrogens against idealized values."""
    n_h = 0
    bad = 0
    for res in structure.residues:
        for h_name, parent_name, ideal, tol in (
            ("H", "N", params.n_h, N_H_TOLERANCE),
            ("HA", "CA", params.ca_ha, CA_HA_TOLERANCE),
        ):
            h = res.atoms.get(h_name)
            parent = res.atoms.get(parent_name)
            if h is None:
                continue
            n_h += 1
            if parent is None or abs(np.linalg.norm(h.position - parent.position) - ideal) > tol:
                bad += 1
    if bad:
        return False, f"{bad}/{n_h} hydrogen bond lengths out of range"
    return True, f"{n_h} hydrogens valid"


def build_and_validate(
    sequence: str,
    angles: Optional[np.ndarray] = None,
    omega: Optional[np.ndarray] = None,
    params: BackboneParameters = DEFAULT_BACKBONE,
    add_hydrogens: bool = False,
) -> Tuple[Structure, bool, str]:
    """Build then validate; never returns geometry without its validation verdict."""
    from .validation import validate_structure

    st = build_backbone(sequence, angles, omega=omega, params=params, add_hydrogens=add_hydrogens)
    ok, reason = validate_structure(st)
    if ok and add_hydrogens:
        ok, reason_h = validate_hydrogen_geometry(st, params)
        if not ok:
            reason = reason_h
    return st, ok, reason


def extract_angles(structure: Structure) -> np.ndarray:
    """
    (n, 3) degrees (φ, ψ, ω) from backbone coordinates.

    φ(0), ψ(n-1) and ω(0) are NaN (undefined at the termini), as is any angle
    whose atoms are missing.
    """
    res = structure.residues
    n = len(res)
    out = np.full((n, 3), np.nan)
    for i, r in enumerate(res):
        if not r.has_backbone():
            continue
        prev = res[i - 1] if i > 0 else None
        nxt = res[i + 1] if i + 1 < n else None
        if prev is not None and prev.c is not None:
            out[i, 0] = np.rad2deg(dihedral_angle(prev.c.position, r.n.position, r.ca.position, r.c.position))
            if prev.ca is not None:
                out[i, 2] = np.rad2deg(dihedral_angle(prev.ca.position, prev.c.position, r.n.position, r.ca.position))
        if nxt is not None and nxt.n is not None:
            out[i, 1] = np.rad2deg(dihedral_angle(r.n.position, r.ca.position, r.c.position, nxt.n.position))
    return out


if __name__ == "__main__":
    st, ok, reason = build_and_validate("GAC", np.array([[-120.0, 120.0]] * 3))
    print("GAC atoms:", len(st.atoms), ok, reason)
    r0 = st.residues[0]
    print("N-CA:", np.linalg.norm(r0.ca.position - r0.n.position))
    print("angles:\n", np.round(extract_angles(st), 2))
