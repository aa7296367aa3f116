"""
Shared thresholds for quatfold: energy cap, clash factor, van der Waals radii,
backbone bond-length sanity ranges and residue code tables.

Every component (validator, energy model, minimizers, samplers) reads these
names instead of re-deriving its own numbers. Units: Å, degrees, kcal/mol, K.
MIT License. Python 3.10+. Numpy only.
"""

from __future__ import annotations

from typing import Dict, Tuple

import numpy as np

# --- Numerical safety ---
# Symmetric clamp for every energy component, every accumulation and the total.
ENERGY_CAP = 10000.0
# Per-atom gradient norm clamp (kcal/mol/Å).
GRADIENT_CAP = 1.0e4
# Distance floor inside non-bonded terms (Å).
R_MIN = 0.01

# --- Steric clashes ---
# Pair is a severe clash when d < CLASH_THRESHOLD_FACTOR * (r_vdw_i + r_vdw_j).
CLASH_THRESHOLD_FACTOR = 0.6
NO_CLASH_DISTANCE = 999.9
# Clash penalty in quality score: one clash costs 1 / CLASH_QUALITY_SCALE.
CLASH_QUALITY_SCALE = 10.0

VDW_RADII: Dict[str, float] = {
    "H": 1.20,
    "C": 1.70,
    "N": 1.55,
    "O": 1.52,
    "S": 1.80,
}
DEFAULT_VDW_RADIUS = 1.70

# --- Backbone sanity ranges (Å) ---
N_CA_RANGE: Tuple[float, float] = (1.0, 2.0)
CA_C_RANGE: Tuple[float, float] = (1.0, 2.0)
PEPTIDE_C_N_RANGE: Tuple[float, float] = (0.8, 2.0)
MAX_COORDINATE = 1000.0

# --- Thermodynamics ---
BOLTZMANN_KCAL = 0.001987  # kcal/(mol·K)

# --- Extended conformation (used for missing / undefined angles) ---
PHI_EXTENDED_DEG = -120.0
PSI_EXTENDED_DEG = 120.0
OMEGA_TRANS_DEG = 180.0

GOLDEN_RATIO = (1.0 + np.sqrt(5.0)) / 2.0
GOLDEN_ANGLE = np.pi * (3.0 - np.sqrt(5.0))

AA_1to3: Dict[str, str] = {
    "A": "ALA", "R": "ARG", "N": "ASN", "D": "ASP", "C": "CYS", "Q": "GLN",
    "E": "GLU", "G": "GLY", "H": "HIS", "I": "ILE", "L": "LEU", "K": "LYS",
    "M": "MET", "F": "PHE", "P": "PRO", "S": "SER", "T": "THR", "W": "TRP",
    "Y": "TYR", "V": "VAL",
}
AA_3to1: Dict[str, str] = {v: k for k, v in AA_1to3.items()}


def vdw_radius(element: str) -> float:
    """Van der Waals radius (Å) for an element symbol; unknown → carbon-like default."""
    return VDW_RADII.get(element.strip().upper()[:1], DEFAULT_VDW_RADIUS)


def clamp_energy(value: float, cap: float = ENERGY_CAP) -> Tuple[float, bool, bool]:
    """
    Clamp one energy value into [-cap, cap].

    Returns (clamped, was_capped, was_non_finite). NaN becomes +cap.
    """
    v = float(value)
    if not np.isfinite(v):
        if np.isnan(v) or v > 0:
            return cap, True, True
        return -cap, True, True
    if v > cap:
        return cap, True, False
    if v < -cap:
        return -cap, True, False
    return v, False, False


def normalize_sequence(sequence: str) -> str:
    """Upper-case one-letter sequence; raises ValueError on empty input or unknown letters."""
    seq = "".join(sequence.split()).upper()
    if not seq:
        raise ValueError("empty sequence")
    bad = sorted({c for c in seq if c not in AA_1to3})
    if bad:
        raise ValueError(f"unknown residue codes: {''.join(bad)}")
    return seq
