"""
Secondary structure prediction from Chou-Fasman propensities (no ML).

Per-residue labels 'H' (helix), 'E' (strand), 'T' (turn), 'C' (coil) and a
confidence in [0, 1]. Helix nucleation: ≥4 of 6 residues with P(α) > 1.0;
strand nucleation: ≥3 of 5 with P(β) > 1.0. Nuclei extend while the primary
propensity beats the competing one, overlapping nuclei merge, and residues
claimed by both a helix and a strand go to whichever region has the higher
mean propensity. Helices shorter than 4 and strands shorter than 3 are
dropped. Remaining interior residues with P(turn) > 1.0 become 'T'.

Labels feed the samplers as basin constraints (H → α, E → β) through
ss_to_angles / ss_basin_names. Deterministic; no random seed.

MIT License. Python 3.10+. Numpy only.
"""

from __future__ import annotations

import numpy as np
from typing import Dict, List, Optional, Tuple

from ._fold_base import normalize_sequence

HELIX_PROPENSITY: Dict[str, float] = {
    "A": 1.42, "E": 1.51, "L": 1.21, "M": 1.45,
    "Q": 1.11, "K": 1.16, "R": 0.98, "H": 1.00,
    "V": 1.06, "I": 1.08, "Y": 0.69, "C": 0.70,
    "W": 1.08, "F": 1.13, "T": 0.83, "S": 0.77,
    "G": 0.57, "P": 0.57, "N": 0.67, "D": 1.01,
}
SHEET_PROPENSITY: Dict[str, float] = {
    "V": 1.70, "I": 1.60, "Y": 1.47, "F": 1.38,
    "W": 1.37, "L": 1.30, "T": 1.19, "C": 1.19,
    "Q": 1.10, "M": 1.05, "R": 0.93, "N": 0.89,
    "H": 0.87, "A": 0.83, "S": 0.75, "K": 0.74,
    "G": 0.75, "P": 0.55, "D": 0.54, "E": 0.37,
}
TURN_PROPENSITY: Dict[str, float] = {
    "G": 1.56, "P": 1.52, "D": 1.46, "N": 1.56,
    "S": 1.43, "C": 1.19, "Y": 1.14, "K": 1.01,
    "T": 0.96, "H": 0.95, "Q": 0.98, "E": 0.74,
    "R": 0.95, "W": 0.96, "A": 0.66, "M": 0.60,
    "F": 0.60, "L": 0.59, "V": 0.50, "I": 0.47,
}

MIN_HELIX_LENGTH = 4
MIN_SHEET_LENGTH = 3

# Basin centre (φ, ψ) in degrees per SS label.
SS_ANGLES: Dict[str, Tuple[float, float]] = {
    "H": (-60.0, -45.0),
    "E": (-120.0, 120.0),
    "T": (-60.0, -30.0),
    "C": (-75.0, 145.0),
}
SS_BASINS: Dict[str, Optional[str]] = {"H": "alpha_helix", "E": "beta_sheet", "T": None, "C": None}

Region = Tuple[int, int]  # [start, end)


def _merge(regions: List[Region]) -> List[Region]:
    if not regions:
        return []
    regions = sorted(regions)
    out = [regions[0]]
    for start, end in regions[1:]:
        if start <= out[-1][1]:
            out[-1] = (out[-1][0], max(out[-1][1], end))
        else:
            out.append((start, end))
    return out


def _nucleate(scores: np.ndarray, window: int, needed: int, threshold: float = 1.0) -> List[Region]:
    n = len(scores)
    hits = []
    for i in range(n - window + 1):
        if int(np.sum(scores[i:i + window] > threshold)) >= needed:
            hits.append((i, i + window))
    return _merge(hits)


def _extend(regions: List[Region], primary: np.ndarray, competing: np.ndarray) -> List[Region]:
    n = len(primary)
    out = []
    for start, end in regions:
        while start > 0 and primary[start - 1] > competing[start - 1]:
            start -= 1
        while end < n and primary[end] > competing[end]:
            end += 1
        out.append((start, end))
    return _merge(out)


def _confidence(primary: float, competing: float) -> float:
    return float(np.clip(0.5 + (primary - competing) / 4.0, 0.0, 1.0))


def propensities(sequence: str) -> Dict[str, np.ndarray]:
    """Per-residue helix / sheet / turn propensity arrays."""
    seq = normalize_sequence(sequence)
    return {
        "helix": np.array([HELIX_PROPENSITY.get(a, 1.0) for a in seq]),
        "sheet": np.array([SHEET_PROPENSITY.get(a, 1.0) for a in seq]),
        "turn": np.array([TURN_PROPENSITY.get(a, 1.0) for a in seq]),
    }


def predict_ss(sequence: str) -> Tuple[str, np.ndarray]:
    """
    Chou-Fasman secondary structure for sequence.

    Returns:
        ss_string: one of 'H', 'E', 'T', 'C' per residue.
        confidence: (n,) in [0, 1].
    """
    props = propensities(sequence)
    p_h, p_e, p_t = props["helix"], props["sheet"], props["turn"]
    n = len(p_h)
    helices = _extend(_nucleate(p_h, 6, 4), p_h, p_e)
    sheets = _extend(_nucleate(p_e, 5, 3), p_e, p_h)
    helices = [r for r in helices if r[1] - r[0] >= MIN_HELIX_LENGTH]
    sheets = [r for r in sheets if r[1] - r[0] >= MIN_SHEET_LENGTH]

    helix_mean = np.zeros(n)
    sheet_mean = np.zeros(n)
    for s, e in helices:
        helix_mean[s:e] = np.mean(p_h[s:e])
    for s, e in sheets:
        sheet_mean[s:e] = np.mean(p_e[s:e])

    labels = []
    conf = np.zeros(n)
    for i in range(n):
        in_h, in_e = helix_mean[i] > 0, sheet_mean[i] > 0
        if in_h and (not in_e or helix_mean[i] >= sheet_mean[i]):
            labels.append("H")
            conf[i] = _confidence(p_h[i], p_e[i])
        elif in_e:
            labels.append("E")
            conf[i] = _confidence(p_e[i], p_h[i])
        elif p_t[i] > 1.0 and 0 < i < n - 1:
            labels.append("T")
            conf[i] = min(1.0, p_t[i] / 2.0)
        else:
            labels.append("C")
            conf[i] = 0.5
    return "".join(labels), conf


def ss_to_angles(ss: str) -> np.ndarray:
    """(n, 2) basin-centre (φ, ψ) degrees for an SS string; unknown labels → coil."""
    return np.array([SS_ANGLES.get(c, SS_ANGLES["C"]) for c in ss.upper()], dtype=float).reshape(-1, 2)


def ss_basin_names(ss: str) -> List[Optional[str]]:
    """Basin constraint per residue: 'alpha_helix' for H, 'beta_sheet' for E, else None."""
    return [SS_BASINS.get(c) for c in ss.upper()]


def predict_ss_with_angles(sequence: str) -> Dict[str, object]:
    """
    SS prediction plus per-residue preferred (φ, ψ) and the raw propensities.
    Returns dict: ss, confidence, phi_pref_deg, psi_pref_deg, helix, sheet, turn.
    """
    ss, conf = predict_ss(sequence)
    ang = ss_to_angles(ss)
    props = propensities(sequence)
    return {
        "ss": ss,
        "confidence": conf,
        "phi_pref_deg": ang[:, 0],
        "psi_pref_deg": ang[:, 1],
        **props,
    }


def validate_ss(ss: str, n_residues: int) -> str:
    """Normalize an externally supplied SS string; raises ValueError on bad input."""
    ss = (ss or "").strip().upper().replace("-", "C")
    if len(ss) != n_residues:
        raise ValueError(f"secondary structure has {len(ss)} labels for {n_residues} residues")
    bad = set(ss) - set(SS_ANGLES)
    if bad:
        raise ValueError(f"unknown secondary structure labels: {''.join(sorted(bad))}")
    return ss


if __name__ == "__main__":
    crambin = "TTCCPSIVARSNFNVCRLPGTPEAIICGDVCDLDCTAKTCFSIICT"
    ss, conf = predict_ss(crambin)
    print("Secondary structure predictor (Chou-Fasman)")
    print(f"  Sequence length: {len(crambin)}")
    print(f"  H={ss.count('H')}, E={ss.count('E')}, T={ss.count('T')}, C={ss.count('C')}")
    print(f"  SS: {ss}")
    print(f"  Mean confidence: {np.mean(conf):.3f}")
    assert len(ss) == len(crambin) and set(ss) <= {"H", "E", "T", "C"}
