"""
Backbone N-H···O=C hydrogen bonds: donor/acceptor sites, the pair potential
with its analytic gradient, detection and per-structure statistics.

  E_pair = scale · exp(-(r - d0)² / width) · a(cos θ),   a(c) = c² for c < 0, else 0

A donor with an explicit amide H uses H as the vertex: r = H···O and θ is the
N-H···O angle. A donor without one (first residue, proline, hydrogen-free
builds) uses N as the vertex with CA as the arm: r = N···O and θ = CA-N···O,
since the N-H bond points away from CA. A linear bond has θ = 180° and
a = 1; at 120° a = 0.25; at or below 90° the pair contributes nothing.

Donor and acceptor on the same chain with residue numbers differing by ≤ 1 never
pair. Detection applies the classic windows on top of the potential: H···O in
[1.5, 2.5] Å or N···O in [2.5, 3.5] Å, and θ ≥ 120°.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .force_field import AMBER_FF14SB, ForceFieldParameters
from .structure import Structure

AMIDE_H_NAMES = ("H", "HN")
H_DISTANCE_WINDOW = (1.5, 2.5)
N_DISTANCE_WINDOW = (2.5, 3.5)
MIN_HBOND_ANGLE = 120.0


@dataclass
class HBondSites:
    """Atom indices of every donor (vertex, arm) and acceptor O in one structure."""

    vertex: np.ndarray
    arm: np.ndarray
    d0: np.ndarray
    explicit_h: np.ndarray
    donor_res: np.ndarray
    donor_seq: np.ndarray
    donor_chain: np.ndarray
    acceptor: np.ndarray
    acceptor_res: np.ndarray
    acceptor_seq: np.ndarray
    acceptor_chain: np.ndarray

    @property
    def empty(self) -> bool:
        return self.vertex.size == 0 or self.acceptor.size == 0


@dataclass
class HydrogenBond:
    donor_residue: int
    acceptor_residue: int
    distance: float
    angle: float
    energy: float
    explicit_h: bool

    @property
    def separation(self) -> int:
        return abs(self.donor_residue - self.acceptor_residue)


def hbond_sites(structure: Structure, params: ForceFieldParameters = AMBER_FF14SB) -> HBondSites:
    """Donors (H or the N/CA fallback) and acceptor O atoms, as atom indices."""
    idx = structure.atom_index()
    chains = {c: k for k, c in enumerate(sorted({r.chain_id for r in structure.residues}))}
    donors: List[Tuple[int, int, float, bool, int, int, int]] = []
    acceptors: List[Tuple[int, int, int, int]] = []
    for r_i, res in enumerate(structure.residues):
        n, ca, o = res.n, res.ca, res.o
        h = next((res.atoms[k] for k in AMIDE_H_NAMES if k in res.atoms), None)
        chain = chains[res.chain_id]
        if n is not None and h is not None:
            donors.append((idx[id(h)], idx[id(n)], params.hbond_d0_h, True, r_i, res.seq_num, chain))
        elif n is not None and ca is not None:
            donors.append((idx[id(n)], idx[id(ca)], params.hbond_d0_n, False, r_i, res.seq_num, chain))
        if o is not None:
            acceptors.append((idx[id(o)], r_i, res.seq_num, chain))

    def col(rows, k, dtype):
        return np.array([row[k] for row in rows], dtype=dtype)

    return HBondSites(
        vertex=col(donors, 0, int),
        arm=col(donors, 1, int),
        d0=col(donors, 2, float),
        explicit_h=col(donors, 3, bool),
        donor_res=col(donors, 4, int),
        donor_seq=col(donors, 5, int),
        donor_chain=col(donors, 6, int),
        acceptor=col(acceptors, 0, int),
        acceptor_res=col(acceptors, 1, int),
        acceptor_seq=col(acceptors, 2, int),
        acceptor_chain=col(acceptors, 3, int),
    )


def _candidate_pairs(x: np.ndarray, sites: HBondSites, params: ForceFieldParameters) -> Tuple[np.ndarray, np.ndarray]:
    """(donor, acceptor) site indices with r < d0 + range, sequence neighbours excluded."""
    empty = np.zeros(0, dtype=int)
    if sites.empty:
        return empty, empty
    radius = max(params.hbond_d0_h, params.hbond_d0_n) + params.hbond_range
    hits = cKDTree(x[sites.acceptor]).query_ball_point(x[sites.vertex], radius)
    d_idx = np.array([d for d, row in enumerate(hits) for _ in row], dtype=int)
    a_idx = np.array([a for row in hits for a in row], dtype=int)
    if d_idx.size == 0:
        return empty, empty
    far = (sites.donor_chain[d_idx] != sites.acceptor_chain[a_idx]) | (
        np.abs(sites.donor_seq[d_idx] - sites.acceptor_seq[a_idx]) > 1
    )
    r = np.linalg.norm(x[sites.acceptor[a_idx]] - x[sites.vertex[d_idx]], axis=1)
    keep = far & (r < sites.d0[d_idx] + params.hbond_range)
    return d_idx[keep], a_idx[keep]


def hbond_pair_terms(
    x: np.ndarray,
    sites: HBondSites,
    d_idx: np.ndarray,
    a_idx: np.ndarray,
    params: ForceFieldParameters = AMBER_FF14SB,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Per-pair (energy, r, cos θ) and the gradients of each pair energy with
    respect to its vertex, arm and acceptor atoms, each (m, 3). Unweighted.
    """
    vtx = x[sites.vertex[d_idx]]
    u = x[sites.arm[d_idx]] - vtx
    v = x[sites.acceptor[a_idx]] - vtx
    nu = np.maximum(np.linalg.norm(u, axis=1), 1e-12)
    nv = np.maximum(np.linalg.norm(v, axis=1), 1e-12)
    uh = u / nu[:, None]
    vh = v / nv[:, None]
    c = np.clip(np.sum(uh * vh, axis=1), -1.0, 1.0)

    dr = nv - sites.d0[d_idx]
    gauss = params.hbond_scale * np.exp(-dr * dr / params.hbond_width)
    ang = np.where(c < 0.0, c * c, 0.0)
    e = gauss * ang

    de_dr = e * (-2.0 * dr / params.hbond_width)
    de_dc = gauss * np.where(c < 0.0, 2.0 * c, 0.0)
    g_arm = de_dc[:, None] * (vh - c[:, None] * uh) / nu[:, None]
    g_acc = de_dc[:, None] * (uh - c[:, None] * vh) / nv[:, None] + de_dr[:, None] * vh
    g_vtx = -(g_arm + g_acc)
    return e, nv, c, g_vtx, g_arm, g_acc


def hbond_energy_and_gradient(
    x: np.ndarray,
    sites: HBondSites,
    params: ForceFieldParameters = AMBER_FF14SB,
) -> Tuple[float, np.ndarray]:
    """Weighted H-bond energy (kcal/mol) and its (n, 3) gradient."""
    g = np.zeros_like(x)
    if params.hbond_weight == 0.0:
        return 0.0, g
    d_idx, a_idx = _candidate_pairs(x, sites, params)
    if d_idx.size == 0:
        return 0.0, g
    e, _, _, g_vtx, g_arm, g_acc = hbond_pair_terms(x, sites, d_idx, a_idx, params)
    w = params.hbond_weight
    np.add.at(g, sites.vertex[d_idx], w * g_vtx)
    np.add.at(g, sites.arm[d_idx], w * g_arm)
    np.add.at(g, sites.acceptor[a_idx], w * g_acc)
    return float(w * np.sum(e)), g


def detect_hydrogen_bonds(structure: Structure, params: ForceFieldParameters = AMBER_FF14SB) -> List[HydrogenBond]:
    """Backbone H-bonds that pass the distance and angle windows, in donor order."""
    if not structure.atoms:
        return []
    x = structure.coordinates()
    sites = hbond_sites(structure, params)
    d_idx, a_idx = _candidate_pairs(x, sites, params)
    if d_idx.size == 0:
        return []
    e, r, c, _, _, _ = hbond_pair_terms(x, sites, d_idx, a_idx, params)
    theta = np.degrees(np.arccos(c))
    explicit = sites.explicit_h[d_idx]
    lo = np.where(explicit, H_DISTANCE_WINDOW[0], N_DISTANCE_WINDOW[0])
    hi = np.where(explicit, H_DISTANCE_WINDOW[1], N_DISTANCE_WINDOW[1])
    ok = (r >= lo) & (r <= hi) & (theta >= MIN_HBOND_ANGLE)
    order = np.lexsort((sites.acceptor_res[a_idx], sites.donor_res[d_idx]))
    return [
        HydrogenBond(
            donor_residue=int(sites.donor_res[d_idx[k]]),
            acceptor_residue=int(sites.acceptor_res[a_idx[k]]),
            distance=float(r[k]),
            angle=float(theta[k]),
            energy=float(e[k]),
            explicit_h=bool(explicit[k]),
        )
        for k in order
        if ok[k]
    ]


def hbond_statistics(structure: Structure, params: ForceFieldParameters = AMBER_FF14SB) -> Dict[str, float]:
    """
    Count and averages of detected H-bonds, split by sequence separation:
    helix (|i - j| = 4), sheet / long range (≥ 5) and loop (everything else).
    """
    bonds = detect_hydrogen_bonds(structure, params)
    stats: Dict[str, float] = {
        "n_hbonds": len(bonds),
        "mean_distance": 0.0,
        "mean_angle": 0.0,
        "mean_energy": 0.0,
        "total_energy": 0.0,
        "helix": 0,
        "sheet": 0,
        "loop": 0,
    }
    if not bonds:
        return stats
    for b in bonds:
        if b.separation == 4:
            stats["helix"] += 1
        elif b.separation >= 5:
            stats["sheet"] += 1
        else:
            stats["loop"] += 1
    stats["mean_distance"] = float(np.mean([b.distance for b in bonds]))
    stats["mean_angle"] = float(np.mean([b.angle for b in bonds]))
    stats["mean_energy"] = float(np.mean([b.energy for b in bonds]))
    stats["total_energy"] = float(np.sum([b.energy for b in bonds]))
    return stats


if __name__ == "__main__":
    from .backbone_builder import build_backbone

    st = build_backbone("A" * 16, np.tile((-57.0, -47.0), (16, 1)), add_hydrogens=True)
    stats = hbond_statistics(st)
    for k, v in stats.items():
        print(f"{k:>14s}: {v}")
