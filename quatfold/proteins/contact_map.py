"""
Sequence-only residue contact prior.

Pairs at least `min_separation` apart score by residue chemistry
(hydrophobic pair 0.5, opposite charges 0.7, aromatic pair 0.6, Cys-Cys 0.9)
times 1/√|i - j|; pairs above `min_score` are kept, best first, up to
`max_contacts`. The pipeline turns the top contacts into flat-bottom CA-CA
restraints (see folding_energy.build_topology).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from ._fold_base import normalize_sequence

HYDROPHOBIC = frozenset("AVILMFWP")
POSITIVE = frozenset("KRH")
NEGATIVE = frozenset("DE")
AROMATIC = frozenset("FYW")


@dataclass(frozen=True)
class Contact:
    i: int
    j: int
    score: float

    @property
    def separation(self) -> int:
        return self.j - self.i


def pair_score(a: str, b: str) -> float:
    score = 0.0
    if a in HYDROPHOBIC and b in HYDROPHOBIC:
        score += 0.5
    if (a in POSITIVE and b in NEGATIVE) or (a in NEGATIVE and b in POSITIVE):
        score += 0.7
    if a in AROMATIC and b in AROMATIC:
        score += 0.6
    if a == "C" and b == "C":
        score += 0.9
    return score


def predict_contacts(
    sequence: str,
    min_separation: int = 6,
    max_contacts: int = 100,
    min_score: float = 0.1,
) -> List[Contact]:
    """Scored contact predictions, highest score first (ties by position)."""
    seq = normalize_sequence(sequence)
    n = len(seq)
    out = []
    for i in range(n):
        for j in range(i + min_separation, n):
            s = pair_score(seq[i], seq[j]) / np.sqrt(j - i)
            if s > min_score:
                out.append(Contact(i, j, float(s)))
    out.sort(key=lambda c: (-c.score, c.i, c.j))
    return out[:max_contacts]


def contact_pairs(contacts: Sequence[Contact], top: int = 20) -> List[Tuple[int, int]]:
    """Top residue-index pairs, ready for restraint building."""
    return [(c.i, c.j) for c in list(contacts)[:top]]


def validate_contacts(pairs, n_residues: int) -> List[Tuple[int, int]]:
    """Normalize externally supplied (i, j) pairs; raises ValueError when out of range."""
    out = []
    for pair in pairs or []:
        i, j = int(pair[0]), int(pair[1])
        if not (0 <= i < n_residues and 0 <= j < n_residues) or i == j:
            raise ValueError(f"contact ({i}, {j}) out of range for {n_residues} residues")
        out.append((min(i, j), max(i, j)))
    return out


def contact_map_matrix(contacts: Sequence[Contact], n_residues: int) -> np.ndarray:
    """Symmetric (n, n) score matrix."""
    m = np.zeros((n_residues, n_residues))
    for c in contacts:
        m[c.i, c.j] = m[c.j, c.i] = c.score
    return m
