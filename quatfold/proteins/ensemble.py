"""
Candidates and ensembles.

A Candidate is one conformation carried through a pipeline run: its (φ, ψ)
angles, built Structure, EnergyBreakdown, quality score, provenance and seed.
Candidates are frozen; relaxing one yields a new Candidate (dataclasses.replace)
holding a cloned structure. An Ensemble groups candidates by sampler and
summarizes them.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from .folding_energy import EnergyBreakdown
from .minimization import MinimizationResult
from .sampling.diversity import ensemble_diversity
from .structure import Structure


@dataclass(frozen=True)
class Candidate:
    angles: np.ndarray
    structure: Structure
    energy: EnergyBreakdown
    quality: float
    method: str
    seed: int
    minimization: Optional[MinimizationResult] = None
    heuristic: float = 0.0

    @property
    def total(self) -> float:
        return self.energy.total

    def rank_score(self, quality_weight: float = 1.0, heuristic_weight: float = 0.0) -> float:
        """energy + quality_weight·(1 - quality) - heuristic_weight·heuristic; lower is better."""
        return float(self.energy.total + quality_weight * (1.0 - self.quality) - heuristic_weight * self.heuristic)

    def relaxed(
        self,
        structure: Structure,
        energy: EnergyBreakdown,
        quality: float,
        minimization: Optional[MinimizationResult] = None,
        angles: Optional[np.ndarray] = None,
    ) -> "Candidate":
        """New Candidate for a relaxed conformation; `self` is left untouched."""
        return dataclasses.replace(
            self,
            structure=structure.clone(),
            energy=energy,
            quality=float(quality),
            minimization=minimization,
            angles=self.angles if angles is None else angles,
        )

    def summary(self) -> Dict[str, Any]:
        out = {
            "method": self.method,
            "seed": self.seed,
            "energy": self.energy.total,
            "raw_energy": self.energy.raw_total,
            "capped": self.energy.capped,
            "quality": self.quality,
            "heuristic": self.heuristic,
            "n_residues": len(self.structure),
        }
        if self.minimization is not None:
            out["minimization"] = self.minimization.to_dict()
        return out


@dataclass
class Ensemble:
    candidates: List[Candidate] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.candidates)

    def __iter__(self):
        return iter(self.candidates)

    def add(self, candidate: Candidate) -> None:
        self.candidates.append(candidate)

    def by_method(self) -> Dict[str, List[Candidate]]:
        groups: Dict[str, List[Candidate]] = {}
        for c in self.candidates:
            groups.setdefault(c.method, []).append(c)
        return groups

    def counts(self) -> Dict[str, int]:
        return {m: len(cs) for m, cs in self.by_method().items()}

    def ranked(self, quality_weight: float = 1.0, heuristic_weight: float = 0.0) -> List[Candidate]:
        """Candidates sorted by rank score; ties keep submission order."""
        return sorted(self.candidates, key=lambda c: c.rank_score(quality_weight, heuristic_weight))

    def best(self, quality_weight: float = 1.0, heuristic_weight: float = 0.0) -> Optional[Candidate]:
        ranked = self.ranked(quality_weight, heuristic_weight)
        return ranked[0] if ranked else None

    def stats(self) -> Dict[str, Any]:
        if not self.candidates:
            return {"n_candidates": 0, "by_method": {}}
        energies = np.array([c.energy.total for c in self.candidates])
        qualities = np.array([c.quality for c in self.candidates])
        per_method = {
            m: {
                "count": len(cs),
                "best_energy": float(min(c.energy.total for c in cs)),
                "mean_energy": float(np.mean([c.energy.total for c in cs])),
            }
            for m, cs in self.by_method().items()
        }
        return {
            "n_candidates": len(self.candidates),
            "by_method": per_method,
            "energy_min": float(energies.min()),
            "energy_mean": float(energies.mean()),
            "energy_max": float(energies.max()),
            "quality_mean": float(qualities.mean()),
            "diversity": ensemble_diversity([c.angles for c in self.candidates], energies),
        }
