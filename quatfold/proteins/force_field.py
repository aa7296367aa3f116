"""
Force-field parameter table (AMBER ff14SB-like backbone subset) and the
Ramachandran basin potential.

Everything the energy model needs is looked up here, never recomputed inline:
harmonic bond (k, r0) and angle (k, θ0) constants keyed by atom names, periodic
dihedral series (V, n, γ) for φ/ψ/ω, Lennard-Jones (ε, Rmin/2) per element with
Lorentz-Berthelot mixing, partial charges per backbone atom name, the Coulomb
constant, the distance-dependent dielectric slope and the backbone hydrogen
bond potential.

ForceFieldParameters is frozen; pass a modified copy (dataclasses.replace) to
swap constants. Units: Å, degrees, kcal/mol, e.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from ._fold_base import ENERGY_CAP

COULOMB_CONSTANT = 332.06  # kcal·Å/(mol·e²)
_RMIN_TO_SIGMA = 2.0 ** (-1.0 / 6.0)


def _bond_table() -> Dict[str, Tuple[float, float]]:
    return {
        "C-N": (490.0, 1.335),
        "N-CA": (337.0, 1.449),
        "CA-C": (317.0, 1.522),
        "C-O": (570.0, 1.229),
        "N-H": (434.0, 1.010),
        "CA-HA": (340.0, 1.090),
    }


def _angle_table() -> Dict[str, Tuple[float, float]]:
    return {
        "N-CA-C": (63.0, 110.1),
        "CA-C-N": (70.0, 116.6),
        "C-N-CA": (50.0, 121.9),
        "CA-C-O": (80.0, 120.4),
        "O-C-N": (80.0, 122.9),
        "C-N-H": (50.0, 120.0),
        "H-N-CA": (50.0, 118.0),
        "N-CA-HA": (50.0, 109.5),
        "HA-CA-C": (50.0, 109.5),
    }


def _dihedral_table() -> Dict[str, List[Tuple[float, int, float]]]:
    # (V, n, γ) with E = (V/2)(1 + cos(nφ - γ)).
    return {
        "C-N-CA-C": [(0.84, 3, 0.0), (0.54, 2, 0.0)],
        "N-CA-C-N": [(0.90, 1, 180.0), (3.16, 2, 180.0), (1.10, 3, 180.0)],
        "CA-C-N-CA": [(5.0, 2, 180.0)],
    }


def _lj_table() -> Dict[str, Tuple[float, float]]:
    # (ε kcal/mol, Rmin/2 Å)
    return {
        "C": (0.086, 1.908),
        "N": (0.170, 1.824),
        "O": (0.210, 1.661),
        "H": (0.016, 1.487),
        "S": (0.250, 2.000),
    }


def _charge_table() -> Dict[str, float]:
    return {
        "N": -0.4157,
        "CA": 0.0337,
        "C": 0.5973,
        "O": -0.5679,
        "H": 0.2719,
        "HA": 0.0823,
    }


@dataclass(frozen=True)
class ForceFieldParameters:
    """Literature-derived constants for every energy term."""

    bonds: Mapping[str, Tuple[float, float]] = field(default_factory=_bond_table)
    angles: Mapping[str, Tuple[float, float]] = field(default_factory=_angle_table)
    dihedrals: Mapping[str, List[Tuple[float, int, float]]] = field(default_factory=_dihedral_table)
    lennard_jones: Mapping[str, Tuple[float, float]] = field(default_factory=_lj_table)
    charges: Mapping[str, float] = field(default_factory=_charge_table)
    default_bond: Tuple[float, float] = (300.0, 1.5)
    default_angle: Tuple[float, float] = (50.0, 109.5)
    default_lj: Tuple[float, float] = (0.1, 1.8)
    coulomb_constant: float = COULOMB_CONSTANT
    dielectric_slope: float = 4.0  # ε(r) = slope · r
    vdw_cutoff: float = 10.0
    elec_cutoff: float = 12.0
    ramachandran_weight: float = 0.0
    # backbone N-H···O=C term: scale · exp(-(r - d0)² / width) · angular factor
    hbond_weight: float = 1.0
    hbond_scale: float = -5.0
    hbond_width: float = 0.2
    hbond_d0_n: float = 2.9  # N···O, no explicit amide H
    hbond_d0_h: float = 1.9  # H···O
    hbond_range: float = 1.5  # pairs beyond d0 + range are skipped
    energy_cap: float = ENERGY_CAP
    name: str = "amber_ff14sb_backbone"

    def bond(self, a: str, b: str) -> Tuple[float, float]:
        """(k, r0) for the bond between atom names a and b, either order."""
        return self.bonds.get(f"{a}-{b}") or self.bonds.get(f"{b}-{a}") or self.default_bond

    def angle(self, a: str, b: str, c: str) -> Tuple[float, float]:
        """(k, θ0 degrees) for angle a-b-c, either direction."""
        return self.angles.get(f"{a}-{b}-{c}") or self.angles.get(f"{c}-{b}-{a}") or self.default_angle

    def dihedral(self, a: str, b: str, c: str, d: str) -> List[Tuple[float, int, float]]:
        """Fourier series for dihedral a-b-c-d (empty when unparameterized)."""
        return list(self.dihedrals.get(f"{a}-{b}-{c}-{d}") or self.dihedrals.get(f"{d}-{c}-{b}-{a}") or [])

    def lj(self, element: str) -> Tuple[float, float]:
        """(ε, Rmin/2) for an element."""
        return self.lennard_jones.get(element.upper(), self.default_lj)

    def charge(self, atom_name: str) -> float:
        return float(self.charges.get(atom_name.upper(), 0.0))

    def lj_pair(self, el_a: str, el_b: str) -> Tuple[float, float]:
        """Lorentz-Berthelot mixed (ε_ij, σ_ij) for a 4ε[(σ/r)^12 - (σ/r)^6] potential."""
        eps_a, rh_a = self.lj(el_a)
        eps_b, rh_b = self.lj(el_b)
        return float(np.sqrt(eps_a * eps_b)), float((rh_a + rh_b) * _RMIN_TO_SIGMA)


AMBER_FF14SB = ForceFieldParameters()


# --- Ramachandran basin potential (angle space) ---

@dataclass(frozen=True)
class RamachandranWell:
    phi: float
    psi: float
    sigma_phi: float
    sigma_psi: float


# Depth scale per residue class and its wells (degrees).
RAMACHANDRAN_WELLS: Dict[str, Tuple[float, Tuple[RamachandranWell, ...]]] = {
    "general": (15.0, (
        RamachandranWell(-60.0, -45.0, 30.0, 30.0),
        RamachandranWell(-120.0, 120.0, 40.0, 50.0),
        RamachandranWell(60.0, 45.0, 25.0, 25.0),
        RamachandranWell(-75.0, 145.0, 30.0, 30.0),
    )),
    "GLY": (5.0, (
        RamachandranWell(-60.0, -45.0, 50.0, 50.0),
        RamachandranWell(-120.0, 120.0, 60.0, 70.0),
        RamachandranWell(60.0, 45.0, 50.0, 50.0),
        RamachandranWell(-75.0, 145.0, 50.0, 50.0),
    )),
    "PRO": (20.0, (
        RamachandranWell(-60.0, -30.0, 20.0, 40.0),
        RamachandranWell(-60.0, 145.0, 20.0, 30.0),
    )),
}


def angle_diff_deg(a, b):
    """Signed a - b wrapped into [-180, 180)."""
    return (np.asarray(a, dtype=float) - b + 180.0) % 360.0 - 180.0


def _wells_for(res_name: str) -> Tuple[float, Tuple[RamachandranWell, ...]]:
    key = res_name.upper()
    return RAMACHANDRAN_WELLS.get(key, RAMACHANDRAN_WELLS["general"])


def ramachandran_energy_and_derivs(phi_deg: float, psi_deg: float, res_name: str = "ALA") -> Tuple[float, float, float]:
    """
    Basin potential scale·min_k(1 - exp(-½[(Δφ/σφ)² + (Δψ/σψ)²])) and its
    derivatives (dE/dφ, dE/dψ) per degree. NaN angles contribute 0.
    """
    if np.isnan(phi_deg) or np.isnan(psi_deg):
        return 0.0, 0.0, 0.0
    scale, wells = _wells_for(res_name)
    best = None
    for w in wells:
        dphi = float(angle_diff_deg(phi_deg, w.phi))
        dpsi = float(angle_diff_deg(psi_deg, w.psi))
        g = np.exp(-0.5 * ((dphi / w.sigma_phi) ** 2 + (dpsi / w.sigma_psi) ** 2))
        e = 1.0 - g
        if best is None or e < best[0]:
            best = (e, g * dphi / w.sigma_phi ** 2, g * dpsi / w.sigma_psi ** 2)
    e, d_phi, d_psi = best
    return scale * e, scale * d_phi, scale * d_psi


def ramachandran_energy(phi_deg: float, psi_deg: float, res_name: str = "ALA") -> float:
    """Basin potential (kcal/mol) for one residue; 0 at a basin centre, up to the class scale."""
    return ramachandran_energy_and_derivs(phi_deg, psi_deg, res_name)[0]


def ramachandran_region(phi_deg: float, psi_deg: float) -> str:
    """Coarse region label: alpha-helix, beta-sheet, PPII, left-helix or other."""
    if np.isnan(phi_deg) or np.isnan(psi_deg):
        return "undefined"
    for label, p0, s0, dp, ds in (
        ("alpha-helix", -60.0, -45.0, 30.0, 30.0),
        ("beta-sheet", -120.0, 120.0, 40.0, 50.0),
        ("PPII", -75.0, 145.0, 30.0, 30.0),
        ("left-helix", 60.0, 45.0, 25.0, 25.0),
    ):
        if abs(angle_diff_deg(phi_deg, p0)) < dp and abs(angle_diff_deg(psi_deg, s0)) < ds:
            return label
    return "other"


def ramachandran_statistics(angles_deg: np.ndarray, res_names: Optional[List[str]] = None) -> Dict[str, float]:
    """
    Region counts, allowed percentage and basin energy over interior residues.

    angles_deg: (n, 2+) degrees; terminal residues and NaN rows are skipped.
    """
    arr = np.asarray(angles_deg, dtype=float).reshape(len(angles_deg), -1)
    n = arr.shape[0]
    names = res_names or ["ALA"] * n
    counts = {"alpha-helix": 0, "beta-sheet": 0, "PPII": 0, "left-helix": 0, "other": 0}
    total = 0.0
    used = 0
    for i in range(1, n - 1):
        phi, psi = arr[i, 0], arr[i, 1]
        if np.isnan(phi) or np.isnan(psi):
            continue
        used += 1
        counts[ramachandran_region(phi, psi)] += 1
        total += ramachandran_energy(phi, psi, names[i])
    allowed = used - counts["other"]
    return {
        "n_residues": used,
        **{k.replace("-", "_"): v for k, v in counts.items()},
        "allowed_percent": 100.0 * allowed / used if used else 0.0,
        "total_energy": total,
        "mean_energy": total / used if used else 0.0,
    }
