"""
Structural validation: backbone sanity, steric clashes, and a quality score.

validate_structure never raises on bad geometry; it returns (valid, reason)
with one of a fixed set of reasons. detect_clashes uses a scipy cKDTree for
the neighbor search and skips pairs in the same or adjacent residues of one
chain. quality_score folds both into one ranking scalar in [0, 1] without
touching the energy model.

Usage: python -m quatfold.proteins.validation   (runs the package self-checks)
MIT License. Python 3.10+.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import List, Tuple

import numpy as np
from scipy.spatial import cKDTree

from ._fold_base import (
    CA_C_RANGE,
    CLASH_QUALITY_SCALE,
    CLASH_THRESHOLD_FACTOR,
    DEFAULT_VDW_RADIUS,
    MAX_COORDINATE,
    N_CA_RANGE,
    NO_CLASH_DISTANCE,
    PEPTIDE_C_N_RANGE,
    VDW_RADII,
    vdw_radius,
)
from .structure import Structure

GEOMETRY_VALID = "Geometry valid"
MISSING_BACKBONE = "Missing backbone atoms"
N_CA_OUT_OF_RANGE = "N-CA bond length out of range"
CA_C_OUT_OF_RANGE = "CA-C bond length out of range"
PEPTIDE_OUT_OF_RANGE = "C-N peptide bond length out of range"
NON_FINITE = "Non-finite coordinates"
OUT_OF_BOUNDS = "Coordinates out of bounds"
EMPTY_STRUCTURE = "Empty structure"


def _in_range(d: float, bounds: Tuple[float, float]) -> bool:
    return bounds[0] <= d <= bounds[1]


def check_coordinates(structure: Structure) -> Tuple[bool, str]:
    """All positions finite and within MAX_COORDINATE of the origin."""
    xyz = structure.coordinates()
    if xyz.size == 0:
        return False, EMPTY_STRUCTURE
    if not np.all(np.isfinite(xyz)):
        return False, NON_FINITE
    if np.max(np.linalg.norm(xyz, axis=1)) > MAX_COORDINATE:
        return False, OUT_OF_BOUNDS
    return True, GEOMETRY_VALID


def validate_structure(structure: Structure) -> Tuple[bool, str]:
    """
    Backbone sanity check.

    Fails (False, reason) when any residue lacks N/CA/C, an N-CA or CA-C bond is
    outside [1.0, 2.0] Å, or a consecutive same-chain C(i)-N(i+1) distance is
    outside [0.8, 2.0] Å. Coordinates must be finite and bounded.
    """
    if not structure.residues:
        return False, EMPTY_STRUCTURE
    for res in structure.residues:
        if not res.has_backbone():
            return False, MISSING_BACKBONE
    ok, reason = check_coordinates(structure)
    if not ok:
        return ok, reason
    residues = structure.residues
    for i, res in enumerate(residues):
        if not _in_range(float(np.linalg.norm(res.ca.position - res.n.position)), N_CA_RANGE):
            return False, N_CA_OUT_OF_RANGE
        if not _in_range(float(np.linalg.norm(res.c.position - res.ca.position)), CA_C_RANGE):
            return False, CA_C_OUT_OF_RANGE
        if i + 1 < len(residues):
            nxt = residues[i + 1]
            if nxt.chain_id != res.chain_id:
                continue
            d = float(np.linalg.norm(nxt.n.position - res.c.position))
            if not _in_range(d, PEPTIDE_C_N_RANGE):
                return False, PEPTIDE_OUT_OF_RANGE
    return True, GEOMETRY_VALID


@dataclass
class ClashReport:
    """Severe steric clashes among non-bonded atom pairs."""

    has_clashes: bool = False
    clash_count: int = 0
    worst_clash_distance: float = NO_CLASH_DISTANCE
    pairs: List[Tuple[int, int, float]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "has_clashes": self.has_clashes,
            "clash_count": self.clash_count,
            "worst_clash_distance": self.worst_clash_distance,
        }


def detect_clashes(
    structure: Structure,
    threshold_factor: float = CLASH_THRESHOLD_FACTOR,
) -> ClashReport:
    """
    Flag atom pairs closer than threshold_factor * (r_vdw_i + r_vdw_j).

    Pairs on the same chain whose residue numbers differ by at most 1 are
    treated as bonded neighbors and skipped. Non-finite positions are ignored.
    """
    atoms = structure.atoms
    report = ClashReport()
    if len(atoms) < 2:
        return report
    xyz = structure.coordinates()
    finite = np.all(np.isfinite(xyz), axis=1)
    idx = np.nonzero(finite)[0]
    if idx.size < 2:
        return report
    radii = np.array([vdw_radius(atoms[i].element) for i in idx])
    r_max = threshold_factor * 2.0 * max(max(VDW_RADII.values()), DEFAULT_VDW_RADIUS)
    tree = cKDTree(xyz[idx])
    worst = NO_CLASH_DISTANCE
    for a, b in sorted(tree.query_pairs(r_max)):
        ia, ib = int(idx[a]), int(idx[b])
        at_a, at_b = atoms[ia], atoms[ib]
        if at_a.chain_id == at_b.chain_id and abs(at_a.res_seq - at_b.res_seq) <= 1:
            continue
        d = float(np.linalg.norm(xyz[ia] - xyz[ib]))
        if d < threshold_factor * (radii[a] + radii[b]):
            report.pairs.append((ia, ib, d))
            worst = min(worst, d)
    report.clash_count = len(report.pairs)
    report.has_clashes = report.clash_count > 0
    report.worst_clash_distance = worst
    return report


def quality_score(structure: Structure, threshold_factor: float = CLASH_THRESHOLD_FACTOR) -> float:
    """0 for invalid geometry, else max(0, 1 - clash_count / 10). Always in [0, 1]."""
    ok, _ = validate_structure(structure)
    if not ok:
        return 0.0
    report = detect_clashes(structure, threshold_factor)
    return float(np.clip(1.0 - report.clash_count / CLASH_QUALITY_SCALE, 0.0, 1.0))


def run_validation() -> bool:
    """Run package self-checks end to end. Returns True iff all pass."""
    from .backbone_builder import build_and_validate, extract_angles
    from .folding_energy import compute_energy
    from .gentle_relaxation import gentle_relax
    from .pipeline import PipelineConfig, run_pipeline
    from .quaternion_geometry import quaternion_to_ramachandran, ramachandran_to_quaternion

    q = ramachandran_to_quaternion(np.deg2rad(-60.0), np.deg2rad(-45.0))
    phi, psi = quaternion_to_ramachandran(q)
    assert abs(np.rad2deg(phi) + 60.0) < 1e-4 and abs(np.rad2deg(psi) + 45.0) < 1e-4
    print("Quaternion round trip: (-60, -45) → ({:.4f}, {:.4f}).".format(np.rad2deg(phi), np.rad2deg(psi)))

    st, ok, reason = build_and_validate("GAC", np.array([[-120.0, 120.0]] * 3))
    assert ok and len(st.atoms) == 12, reason
    ang = extract_angles(st)
    print("Backbone GAC: {} atoms, {}; ψ(0) = {:.1f}°.".format(len(st.atoms), reason, ang[0, 1]))

    e = compute_energy(st)
    assert np.isfinite(e.total) and abs(e.total) <= e.cap
    print("Energy GAC: total {:.3f} kcal/mol (raw {:.3f}).".format(e.total, e.raw_total))

    relaxed, info = gentle_relax(st)
    assert info.final_energy <= info.initial_energy + 1e-9
    print("Gentle relaxation: {:.3f} → {:.3f} ({}).".format(info.initial_energy, info.final_energy, info.state.value))

    cfg = PipelineConfig(seed=7, n_quaternion=2, n_monte_carlo=1, n_fragment=2, n_basin=2, budget=20)
    result = run_pipeline("ACDEFG", cfg)
    assert result.success, result.error
    print("Pipeline ACDEFG: best {} energy {:.2f}, quality {:.2f}.".format(
        result.best.method, result.best.energy.total, result.best.quality))
    return True


if __name__ == "__main__":
    sys.exit(0 if run_validation() else 1)
