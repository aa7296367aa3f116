"""
Optional heuristic scorers for ranking conformations.

HeuristicScorer is the plug-in interface: score(structure) -> float in [0, 1],
higher meaning "more favoured". The pipeline and the Monte Carlo sampler add
weight·score to their objectives; the weight is 0 by default so nothing here
affects correctness or validation.

HarmonicScorer is a numerological heuristic kept for experimentation, not a
physical model. It combines three sub-scores by harmonic mean:

  golden alignment   0.6·(fraction of residues in helix/sheet regions)
                     + 0.4·(closeness of helical run lengths to φ² + 1 ≈ 3.618)
  digital root       fraction of residues whose (φ, ψ) digital roots are 6
                     or differ by 3 or 6; dr(n) = 1 + (n - 1) mod 9 of int(|deg|·10)
  breathing          closeness of Rg to the compact-globule estimate 2.2·n^0.38 Å

MIT License. Python 3.10+. Numpy only.
"""

from __future__ import annotations

from typing import Dict, List

import numpy as np

from ._fold_base import GOLDEN_RATIO
from .backbone_builder import extract_angles
from .force_field import ramachandran_region
from .structure import Structure

HELIX_PERIOD = GOLDEN_RATIO ** 2 + 1.0
RG_PREFACTOR = 2.2
RG_EXPONENT = 0.38


class HeuristicScorer:
    """Interface: score(structure) in [0, 1]; higher is better."""

    name = "none"

    def score(self, structure: Structure) -> float:
        raise NotImplementedError

    def components(self, structure: Structure) -> Dict[str, float]:
        return {"total": self.score(structure)}


class ZeroScorer(HeuristicScorer):
    """Neutral scorer."""

    name = "zero"

    def score(self, structure: Structure) -> float:
        return 0.0


def digital_root(n: int) -> int:
    n = abs(int(n))
    if n == 0:
        return 0
    return 1 + (n - 1) % 9


def radius_of_gyration(xyz: np.ndarray) -> float:
    xyz = np.asarray(xyz, dtype=float).reshape(-1, 3)
    if xyz.shape[0] == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.sum((xyz - xyz.mean(axis=0)) ** 2, axis=1))))


def _interior(angles: np.ndarray) -> np.ndarray:
    a = np.asarray(angles, dtype=float)[:, :2]
    return a[np.all(np.isfinite(a), axis=1)]


def _runs(labels: List[str], label: str) -> List[int]:
    runs, n = [], 0
    for lab in labels:
        if lab == label:
            n += 1
        elif n:
            runs.append(n)
            n = 0
    if n:
        runs.append(n)
    return runs


def golden_alignment(angles: np.ndarray) -> float:
    a = _interior(angles)
    if a.shape[0] == 0:
        return 0.0
    labels = [ramachandran_region(phi, psi) for phi, psi in a]
    structured = sum(lab in ("alpha-helix", "beta-sheet") for lab in labels) / len(labels)
    runs = _runs(labels, "alpha-helix")
    if runs:
        # run length relative to whole turns of HELIX_PERIOD residues
        frac = [abs(r / HELIX_PERIOD - round(r / HELIX_PERIOD)) for r in runs]
        helix = 1.0 - 2.0 * float(np.mean(frac))
    else:
        helix = 0.0
    return float(np.clip(0.6 * structured + 0.4 * helix, 0.0, 1.0))


def digital_root_score(angles: np.ndarray) -> float:
    a = _interior(angles)
    if a.shape[0] == 0:
        return 0.0
    hits = 0
    for phi, psi in a:
        r1 = digital_root(int(abs(phi) * 10))
        r2 = digital_root(int(abs(psi) * 10))
        if r1 == 6 or r2 == 6 or abs(r1 - r2) in (3, 6):
            hits += 1
    return hits / a.shape[0]


def breathing_score(structure: Structure) -> float:
    ca = structure.ca_coordinates()
    n = ca.shape[0]
    if n < 3:
        return 0.0
    expected = RG_PREFACTOR * n ** RG_EXPONENT
    rel = (radius_of_gyration(ca) - expected) / expected
    return float(np.exp(-rel * rel))


class HarmonicScorer(HeuristicScorer):
    """Golden-ratio / digital-root heuristic (labeled, not physical)."""

    name = "harmonic"

    def components(self, structure: Structure) -> Dict[str, float]:
        angles = extract_angles(structure)
        parts = {
            "golden_alignment": golden_alignment(angles),
            "digital_root": digital_root_score(angles),
            "breathing": breathing_score(structure),
        }
        vals = np.array(list(parts.values()))
        parts["total"] = 0.0 if np.any(vals <= 0) else float(len(vals) / np.sum(1.0 / vals))
        return parts

    def score(self, structure: Structure) -> float:
        return self.components(structure)["total"]


SCORERS = {"zero": ZeroScorer, "harmonic": HarmonicScorer}


def get_scorer(name: str) -> HeuristicScorer:
    try:
        return SCORERS[name]()
    except KeyError:
        raise ValueError(f"unknown heuristic scorer {name!r}; choose from {sorted(SCORERS)}") from None
