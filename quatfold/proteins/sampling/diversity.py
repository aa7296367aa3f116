"""
Ensemble diversity: pairwise distances, summary statistics and greedy
maximally-diverse subset selection.

Two distances are offered: superposed Cα-RMSD (Å) between structures, and the
circular RMS difference of (φ, ψ) in degrees between angle sets. Conformations
closer than UNIQUE_THRESHOLD_DEG in dihedral distance count as duplicates.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import numpy as np

from ..grade_folds import rmsd
from ..quaternion_geometry import wrap_angle_deg

UNIQUE_THRESHOLD_DEG = 10.0


def dihedral_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Circular RMS (φ, ψ) difference in degrees over angles defined in both sets."""
    a = np.asarray(a, dtype=float).reshape(-1, 2)
    b = np.asarray(b, dtype=float).reshape(-1, 2)
    if a.shape != b.shape:
        raise ValueError(f"angle sets differ in shape: {a.shape} vs {b.shape}")
    d = wrap_angle_deg(a - b)
    d = d[np.isfinite(d)]
    if d.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(d * d)))


def ca_distance(st_a, st_b) -> float:
    """Superposed Cα-RMSD between two structures of equal length."""
    return rmsd(st_a.ca_coordinates(), st_b.ca_coordinates())


def pairwise_matrix(items: Sequence, metric) -> np.ndarray:
    n = len(items)
    m = np.zeros((n, n))
    for i in range(n):
        for j in range(i + 1, n):
            m[i, j] = m[j, i] = metric(items[i], items[j])
    return m


def ensemble_diversity(
    angle_sets: Sequence[np.ndarray],
    energies: Optional[Sequence[float]] = None,
    threshold_deg: float = UNIQUE_THRESHOLD_DEG,
) -> Dict[str, float]:
    """Mean / median / min / max pairwise dihedral distance, energy spread and unique count."""
    n = len(angle_sets)
    out = {
        "n_conformations": n,
        "mean_pairwise_deg": 0.0,
        "median_pairwise_deg": 0.0,
        "min_pairwise_deg": 0.0,
        "max_pairwise_deg": 0.0,
        "energy_spread": 0.0,
        "n_unique": n,
    }
    if n <= 1:
        return out
    m = pairwise_matrix(angle_sets, dihedral_distance)
    upper = m[np.triu_indices(n, k=1)]
    out.update(
        mean_pairwise_deg=float(np.mean(upper)),
        median_pairwise_deg=float(np.median(upper)),
        min_pairwise_deg=float(np.min(upper)),
        max_pairwise_deg=float(np.max(upper)),
    )
    if energies is not None and len(energies):
        e = np.asarray(energies, dtype=float)
        out["energy_spread"] = float(np.mean(np.abs(e - e.mean())))
    unique = np.ones(n, dtype=bool)
    for i in range(n):
        if not unique[i]:
            continue
        for j in range(i + 1, n):
            if unique[j] and m[i, j] < threshold_deg:
                unique[j] = False
    out["n_unique"] = int(unique.sum())
    return out


def select_diverse(angle_sets: Sequence[np.ndarray], k: int, first: int = 0) -> List[int]:
    """
    Greedy max-min selection of k indices: start from `first`, then repeatedly
    add the conformation farthest from everything already chosen.
    """
    n = len(angle_sets)
    if k >= n:
        return list(range(n))
    if k <= 0:
        return []
    m = pairwise_matrix(angle_sets, dihedral_distance)
    chosen = [first]
    nearest = m[first].copy()
    while len(chosen) < k:
        nearest[chosen] = -1.0
        nxt = int(np.argmax(nearest))
        chosen.append(nxt)
        nearest = np.minimum(nearest, m[nxt])
    return chosen
