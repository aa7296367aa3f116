"""
Grade predicted folds against a reference structure (e.g. experimental PDB).

Cα superposition (Kabsch), Cα-RMSD, TM-score and GDT_TS. NumPy only.
Residues are matched by residue number when both sides carry them, else by order.

TM-score: d0 = 1.24·(L - 15)^(1/3) - 1.8 (0.5 for L ≤ 15); the superposition is
refined a few times on the residues within d0 and the best score is kept.
GDT_TS: mean fraction of Cα within 1, 2, 4 and 8 Å after superposition.

Usage:
  python -m quatfold.proteins.grade_folds pred.pdb ref.pdb [--no-resid]
  from quatfold.proteins.grade_folds import ca_rmsd, tm_score, gdt_ts
"""

from __future__ import annotations

import sys
from typing import Dict, List, Optional, Tuple

import numpy as np

from .structure import Structure

GDT_CUTOFFS = (1.0, 2.0, 4.0, 8.0)


def load_ca_from_pdb(path: str) -> Tuple[np.ndarray, List[int]]:
    """
    Load Cα coordinates and residue numbers from a PDB file.

    Returns
    -------
    ca_xyz : (N, 3) float
        Cα positions in Å.
    res_ids : list of int
        Residue sequence number for each Cα.
    """
    from .pdb_io import load_structure_from_pdb

    st = load_structure_from_pdb(path)
    return _ca_with_ids(st)


def _ca_with_ids(structure: Structure) -> Tuple[np.ndarray, List[int]]:
    xyz, ids = [], []
    for r in structure.residues:
        if r.ca is not None:
            xyz.append(r.ca.position)
            ids.append(r.seq_num)
    return np.array(xyz, dtype=np.float64).reshape(-1, 3), ids


def kabsch_superpose(P: np.ndarray, Q: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Find rotation R and translation t so that (R @ Q.T).T + t is best aligned to P (minimize RMSD).

    P, Q: (N, 3) arrays. Returns (R, t, Q_aligned).
    """
    P = np.asarray(P, dtype=np.float64).reshape(-1, 3)
    Q = np.asarray(Q, dtype=np.float64).reshape(-1, 3)
    if P.shape[0] != Q.shape[0]:
        raise ValueError("P and Q must have the same number of points")
    cen_P = P.mean(axis=0)
    cen_Q = Q.mean(axis=0)
    H = (Q - cen_Q).T @ (P - cen_P)
    U, _, Vt = np.linalg.svd(H)
    d = np.sign(np.linalg.det(Vt.T @ U.T))
    D = np.diag([1.0, 1.0, d if d != 0 else 1.0])
    R = Vt.T @ D @ U.T
    t = cen_P - R @ cen_Q
    return R, t, (R @ Q.T).T + t


def rmsd(P: np.ndarray, Q: np.ndarray, superpose: bool = True) -> float:
    """RMSD between matched point sets, after Kabsch superposition by default."""
    P = np.asarray(P, dtype=np.float64).reshape(-1, 3)
    Q = np.asarray(Q, dtype=np.float64).reshape(-1, 3)
    if P.shape[0] == 0:
        return 0.0
    if superpose:
        _, _, Q = kabsch_superpose(P, Q)
    return float(np.sqrt(np.mean(np.sum((P - Q) ** 2, axis=1))))


def tm_d0(n: int) -> float:
    if n <= 15:
        return 0.5
    return float(1.24 * (n - 15) ** (1.0 / 3.0) - 1.8)


def tm_score(pred: np.ndarray, ref: np.ndarray, n_refine: int = 5) -> float:
    """TM-score of pred against ref (normalized by reference length), in (0, 1]."""
    ref = np.asarray(ref, dtype=np.float64).reshape(-1, 3)
    pred = np.asarray(pred, dtype=np.float64).reshape(-1, 3)
    L = ref.shape[0]
    if L == 0:
        return 0.0
    d0 = tm_d0(L)

    def score(aligned: np.ndarray) -> Tuple[float, np.ndarray]:
        d = np.linalg.norm(aligned - ref, axis=1)
        return float(np.sum(1.0 / (1.0 + (d / d0) ** 2)) / L), d

    _, _, aligned = kabsch_superpose(ref, pred)
    best, d = score(aligned)
    for _ in range(n_refine):
        core = d < max(d0, 1.0) * 2.0
        if np.count_nonzero(core) < 3:
            break
        R, t, _ = kabsch_superpose(ref[core], pred[core])
        s, d = score((R @ pred.T).T + t)
        if s <= best + 1e-12:
            break
        best = s
    return min(best, 1.0)


def gdt_ts(pred: np.ndarray, ref: np.ndarray, cutoffs=GDT_CUTOFFS) -> float:
    """GDT_TS in [0, 1]: mean fraction of Cα within each cutoff after superposition."""
    ref = np.asarray(ref, dtype=np.float64).reshape(-1, 3)
    pred = np.asarray(pred, dtype=np.float64).reshape(-1, 3)
    if ref.shape[0] == 0:
        return 0.0
    _, _, aligned = kabsch_superpose(ref, pred)
    d = np.linalg.norm(aligned - ref, axis=1)
    return float(np.mean([np.mean(d <= c) for c in cutoffs]))


def match_ca(pred: Structure, ref: Structure, align_by_resid: bool = True) -> Tuple[np.ndarray, np.ndarray]:
    """Matched (pred_ca, ref_ca) arrays; raises ValueError when nothing can be matched."""
    pred_ca, pred_ids = _ca_with_ids(pred)
    ref_ca, ref_ids = _ca_with_ids(ref)
    if align_by_resid:
        ref_idx = {r: i for i, r in enumerate(ref_ids)}
        pairs = [(i, ref_idx[r]) for i, r in enumerate(pred_ids) if r in ref_idx]
        if not pairs:
            raise ValueError("No common residue IDs between pred and ref.")
        pi, ri = zip(*pairs)
        return pred_ca[list(pi)], ref_ca[list(ri)]
    if len(pred_ca) != len(ref_ca):
        raise ValueError(f"Pred has {len(pred_ca)} Cα, ref has {len(ref_ca)} Cα.")
    return pred_ca, ref_ca


def compare_structures(pred: Structure, ref: Structure, align_by_resid: bool = True) -> Dict[str, float]:
    """{ca_rmsd, tm_score, gdt_ts, n_res} for two structures."""
    p, r = match_ca(pred, ref, align_by_resid)
    return {
        "ca_rmsd": rmsd(r, p),
        "tm_score": tm_score(p, r),
        "gdt_ts": gdt_ts(p, r),
        "n_res": int(len(r)),
    }


def ca_rmsd(
    pred_path: str,
    ref_path: str,
    align_by_resid: bool = True,
) -> Tuple[float, Optional[np.ndarray], np.ndarray, np.ndarray]:
    """
    Cα-RMSD between a predicted PDB and a reference PDB after Kabsch superposition.

    Returns (rmsd, per-residue distance, superposed pred Cα, ref Cα).
    """
    from .pdb_io import load_structure_from_pdb

    pred_ca, ref_ca = match_ca(load_structure_from_pdb(pred_path), load_structure_from_pdb(ref_path), align_by_resid)
    _, _, pred_aligned = kabsch_superpose(ref_ca, pred_ca)
    per_res = np.linalg.norm(pred_aligned - ref_ca, axis=1)
    return float(np.sqrt(np.mean(per_res ** 2))), per_res, pred_aligned, ref_ca


def main() -> None:
    if len(sys.argv) < 3:
        print("Usage: python -m quatfold.proteins.grade_folds <pred.pdb> <ref.pdb> [--no-resid]")
        print("  Cα-RMSD, TM-score and GDT_TS after Kabsch superposition.")
        sys.exit(1)
    from .pdb_io import load_structure_from_pdb

    align_by_resid = "--no-resid" not in sys.argv
    try:
        scores = compare_structures(
            load_structure_from_pdb(sys.argv[1]), load_structure_from_pdb(sys.argv[2]), align_by_resid
        )
    except (OSError, ValueError) as e:
        print("Error:", e)
        sys.exit(1)
    print("Cα-RMSD: {:.3f} Å  TM-score: {:.3f}  GDT_TS: {:.3f}  ({} residues)".format(
        scores["ca_rmsd"], scores["tm_score"], scores["gdt_ts"], scores["n_res"]))


if __name__ == "__main__":
    main()
