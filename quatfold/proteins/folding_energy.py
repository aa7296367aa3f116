"""
Molecular-mechanics folding energy with capped totals and analytic gradients.

E = Σ_bonds k(r - r0)² + Σ_angles k(θ - θ0)² + Σ_dihedrals (V/2)(1 + cos(nφ - γ))
  + Σ_pairs 4ε[(σ/r)¹² - (σ/r)⁶]  (r < vdW cutoff)
  + Σ_pairs 332.06 qᵢqⱼ / (4r · r)  (r < electrostatic cutoff)
  + backbone N-H···O=C hydrogen bonds (hydrogen_bonds.py)
  [+ w · Ramachandran basin term] [+ contact restraints]

Topology (bonds, angles, backbone dihedrals) comes from residue membership;
non-bonded pairs come from a scipy cKDTree and exclude same-chain pairs whose
residue numbers differ by ≤ 1. All constants come from a ForceFieldParameters
table.

Each reported component is clamped to ±ENERGY_CAP. The total is the clamp of
the raw sum, never a sum of clamped terms, so a capped repulsion cannot be
cancelled by a capped attraction. raw_total keeps the uncapped (finite) sum so
audit output can tell a capped clash from a physical value. Non-finite
intermediates become the cap with non_finite=True.

Returns: EnergyBreakdown (kcal/mol); StructureEnergy for minimizers (flat coords).
MIT License. Python 3.10+.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from ._fold_base import ENERGY_CAP, GRADIENT_CAP, R_MIN, clamp_energy
from .force_field import AMBER_FF14SB, ForceFieldParameters, ramachandran_energy_and_derivs
from .hydrogen_bonds import HBondSites, hbond_energy_and_gradient, hbond_sites
from .structure import Structure

logger = logging.getLogger(__name__)

COMPONENTS = ("bond", "angle", "dihedral", "vdw", "electrostatic", "hbond", "ramachandran", "restraint")


@dataclass
class EnergyBreakdown:
    """Per-term energies (kcal/mol), capped total, raw total and audit flags."""

    bond: float = 0.0
    angle: float = 0.0
    dihedral: float = 0.0
    vdw: float = 0.0
    electrostatic: float = 0.0
    hbond: float = 0.0
    ramachandran: float = 0.0
    restraint: float = 0.0
    total: float = 0.0
    raw_total: float = 0.0
    capped: bool = False
    non_finite: bool = False
    error: Optional[str] = None
    cap: float = ENERGY_CAP

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @classmethod
    def sentinel(cls, error: str, cap: float = ENERGY_CAP) -> "EnergyBreakdown":
        """All-zero result carrying an explicit error (invalid input)."""
        return cls(error=error, cap=cap)


@dataclass
class Topology:
    """Index arrays for every bonded term plus per-atom non-bonded data."""

    n_atoms: int
    names: List[str]
    elements: List[str]
    res_seq: np.ndarray
    chain: np.ndarray
    bonds: np.ndarray
    bond_k: np.ndarray
    bond_r0: np.ndarray
    angles: np.ndarray
    angle_k: np.ndarray
    angle_t0: np.ndarray
    torsions: np.ndarray
    torsion_v: np.ndarray
    torsion_n: np.ndarray
    torsion_gamma: np.ndarray
    rama: List[Tuple[str, Tuple[int, int, int, int], Tuple[int, int, int, int]]]
    charges: np.ndarray
    lj_type: np.ndarray
    lj_eps: np.ndarray
    lj_sigma: np.ndarray
    hbonds: HBondSites
    restraints: np.ndarray
    restraint_d0: np.ndarray
    restraint_k: np.ndarray


def build_topology(
    structure: Structure,
    params: ForceFieldParameters = AMBER_FF14SB,
    contacts: Optional[Sequence[Tuple[int, int]]] = None,
    restraint_distance: float = 8.0,
    restraint_k: float = 1.0,
) -> Topology:
    """
    Derive bonded terms from residue membership.

    Bonds: N-CA, CA-C, C-O, N-H, CA-HA within a residue, C(i)-N(i+1) between
    consecutive same-chain residues. Angles: every bonded triple. Dihedrals:
    φ (C-N-CA-C), ψ (N-CA-C-N), ω (CA-C-N-CA). contacts: optional residue-index
    pairs restrained CA-CA below restraint_distance.
    """
    idx = structure.atom_index()
    atoms = structure.atoms
    n = len(atoms)

    def ix(res, name):
        a = res.atoms.get(name)
        return idx.get(id(a)) if a is not None else None

    bond_pairs: List[Tuple[int, int]] = []
    for r_i, res in enumerate(structure.residues):
        for a, b in (("N", "CA"), ("CA", "C"), ("C", "O"), ("N", "H"), ("CA", "HA")):
            i, j = ix(res, a), ix(res, b)
            if i is not None and j is not None:
                bond_pairs.append((i, j))
        if r_i + 1 < len(structure.residues):
            nxt = structure.residues[r_i + 1]
            if nxt.chain_id == res.chain_id:
                i, j = ix(res, "C"), ix(nxt, "N")
                if i is not None and j is not None:
                    bond_pairs.append((i, j))

    neighbors: List[List[int]] = [[] for _ in range(n)]
    bond_k, bond_r0 = [], []
    for i, j in bond_pairs:
        neighbors[i].append(j)
        neighbors[j].append(i)
        k, r0 = params.bond(atoms[i].name, atoms[j].name)
        bond_k.append(k)
        bond_r0.append(r0)

    angle_triples: List[Tuple[int, int, int]] = []
    angle_k, angle_t0 = [], []
    for b in range(n):
        nb = sorted(neighbors[b])
        for x in range(len(nb)):
            for y in range(x + 1, len(nb)):
                a, c = nb[x], nb[y]
                angle_triples.append((a, b, c))
                k, t0 = params.angle(atoms[a].name, atoms[b].name, atoms[c].name)
                angle_k.append(k)
                angle_t0.append(np.deg2rad(t0))

    quads: List[Tuple[int, int, int, int]] = []
    tv, tn, tg = [], [], []
    rama = []
    residues = structure.residues
    for r_i, res in enumerate(residues):
        prev = residues[r_i - 1] if r_i > 0 and residues[r_i - 1].chain_id == res.chain_id else None
        nxt = residues[r_i + 1] if r_i + 1 < len(residues) and residues[r_i + 1].chain_id == res.chain_id else None
        phi_q = psi_q = None
        if prev is not None:
            q = (ix(prev, "C"), ix(res, "N"), ix(res, "CA"), ix(res, "C"))
            if None not in q:
                phi_q = q
            w = (ix(prev, "CA"), ix(prev, "C"), ix(res, "N"), ix(res, "CA"))
            if None not in w:
                for v, nn, g in params.dihedral("CA", "C", "N", "CA"):
                    quads.append(w)
                    tv.append(v), tn.append(nn), tg.append(np.deg2rad(g))
        if nxt is not None:
            q = (ix(res, "N"), ix(res, "CA"), ix(res, "C"), ix(nxt, "N"))
            if None not in q:
                psi_q = q
        for q, key in ((phi_q, ("C", "N", "CA", "C")), (psi_q, ("N", "CA", "C", "N"))):
            if q is None:
                continue
            for v, nn, g in params.dihedral(*key):
                quads.append(q)
                tv.append(v), tn.append(nn), tg.append(np.deg2rad(g))
        if phi_q is not None and psi_q is not None:
            rama.append((res.name, phi_q, psi_q))

    restr: List[Tuple[int, int]] = []
    if contacts:
        for ri, rj in contacts:
            if 0 <= ri < len(residues) and 0 <= rj < len(residues):
                a, b = ix(residues[ri], "CA"), ix(residues[rj], "CA")
                if a is not None and b is not None:
                    restr.append((a, b))

    chains = {c: k for k, c in enumerate(sorted({a.chain_id for a in atoms}))}
    kinds = sorted({a.element.upper() for a in atoms})
    kind_of = {el: k for k, el in enumerate(kinds)}
    mixed = [[params.lj_pair(a, b) for b in kinds] for a in kinds]
    return Topology(
        n_atoms=n,
        names=[a.name for a in atoms],
        elements=[a.element for a in atoms],
        res_seq=np.array([a.res_seq for a in atoms], dtype=int),
        chain=np.array([chains[a.chain_id] for a in atoms], dtype=int),
        bonds=np.array(bond_pairs, dtype=int).reshape(-1, 2),
        bond_k=np.array(bond_k, dtype=float),
        bond_r0=np.array(bond_r0, dtype=float),
        angles=np.array(angle_triples, dtype=int).reshape(-1, 3),
        angle_k=np.array(angle_k, dtype=float),
        angle_t0=np.array(angle_t0, dtype=float),
        torsions=np.array(quads, dtype=int).reshape(-1, 4),
        torsion_v=np.array(tv, dtype=float),
        torsion_n=np.array(tn, dtype=float),
        torsion_gamma=np.array(tg, dtype=float),
        rama=rama,
        charges=np.array([params.charge(a.name) for a in atoms], dtype=float),
        lj_type=np.array([kind_of[a.element.upper()] for a in atoms], dtype=int),
        lj_eps=np.array([[e for e, _ in row] for row in mixed], dtype=float).reshape(len(kinds), len(kinds)),
        lj_sigma=np.array([[s for _, s in row] for row in mixed], dtype=float).reshape(len(kinds), len(kinds)),
        hbonds=hbond_sites(structure, params),
        restraints=np.array(restr, dtype=int).reshape(-1, 2),
        restraint_d0=np.full(len(restr), float(restraint_distance)),
        restraint_k=np.full(len(restr), float(restraint_k)),
    )


# --- term kernels: each returns (raw energy, gradient (n, 3)) ---

def _bond_terms(x: np.ndarray, topo: Topology) -> Tuple[float, np.ndarray]:
    g = np.zeros_like(x)
    if topo.bonds.size == 0:
        return 0.0, g
    i, j = topo.bonds[:, 0], topo.bonds[:, 1]
    d = x[j] - x[i]
    r = np.linalg.norm(d, axis=1)
    dr = r - topo.bond_r0
    e = float(np.sum(topo.bond_k * dr * dr))
    coef = 2.0 * topo.bond_k * dr / np.maximum(r, 1e-12)
    f = coef[:, None] * d
    np.add.at(g, j, f)
    np.add.at(g, i, -f)
    return e, g


def _angle_terms(x: np.ndarray, topo: Topology) -> Tuple[float, np.ndarray]:
    g = np.zeros_like(x)
    if topo.angles.size == 0:
        return 0.0, g
    a, b, c = topo.angles[:, 0], topo.angles[:, 1], topo.angles[:, 2]
    u = x[a] - x[b]
    v = x[c] - x[b]
    nu = np.maximum(np.linalg.norm(u, axis=1), 1e-12)
    nv = np.maximum(np.linalg.norm(v, axis=1), 1e-12)
    cos_t = np.clip(np.sum(u * v, axis=1) / (nu * nv), -1.0, 1.0)
    theta = np.arccos(cos_t)
    dt = theta - topo.angle_t0
    e = float(np.sum(topo.angle_k * dt * dt))
    sin_t = np.maximum(np.sqrt(1.0 - cos_t * cos_t), 1e-8)
    de = 2.0 * topo.angle_k * dt
    # dθ/da = -(v̂ - cosθ û) / (|u| sinθ), likewise for c
    uh = u / nu[:, None]
    vh = v / nv[:, None]
    ga = -(vh - cos_t[:, None] * uh) / (nu * sin_t)[:, None]
    gc = -(uh - cos_t[:, None] * vh) / (nv * sin_t)[:, None]
    ga *= de[:, None]
    gc *= de[:, None]
    np.add.at(g, a, ga)
    np.add.at(g, c, gc)
    np.add.at(g, b, -(ga + gc))
    return e, g


def _dihedral_geometry(x: np.ndarray, quads: np.ndarray):
    """φ (radians) for each quad and dφ/dx for its four atoms."""
    i, j, k, l = quads[:, 0], quads[:, 1], quads[:, 2], quads[:, 3]
    r_ij = x[i] - x[j]
    r_kj = x[k] - x[j]
    r_kl = x[k] - x[l]
    m = np.cross(r_ij, r_kj)
    nvec = np.cross(r_kj, r_kl)
    m2 = np.sum(m * m, axis=1)
    n2 = np.sum(nvec * nvec, axis=1)
    kj2 = np.sum(r_kj * r_kj, axis=1)
    nkj = np.sqrt(kj2)
    ok = (m2 > 1e-12) & (n2 > 1e-12) & (kj2 > 1e-12)
    m2s = np.where(ok, m2, 1.0)
    n2s = np.where(ok, n2, 1.0)
    kj2s = np.where(ok, kj2, 1.0)
    cos_p = np.clip(np.sum(m * nvec, axis=1) / np.sqrt(m2s * n2s), -1.0, 1.0)
    sign = np.where(np.sum(r_ij * nvec, axis=1) < 0.0, -1.0, 1.0)
    phi = sign * np.arccos(cos_p)
    gi = (nkj / m2s)[:, None] * m
    gl = -(nkj / n2s)[:, None] * nvec
    p = (np.sum(r_ij * r_kj, axis=1) / kj2s)[:, None]
    q = (np.sum(r_kl * r_kj, axis=1) / kj2s)[:, None]
    gj = (p - 1.0) * gi - q * gl
    gk = (q - 1.0) * gl - p * gi
    mask = (~ok)[:, None]
    for arr in (gi, gj, gk, gl):
        arr[np.broadcast_to(mask, arr.shape)] = 0.0
    return phi, gi, gj, gk, gl


def _torsion_terms(x: np.ndarray, topo: Topology) -> Tuple[float, np.ndarray]:
    g = np.zeros_like(x)
    if topo.torsions.size == 0:
        return 0.0, g
    phi, gi, gj, gk, gl = _dihedral_geometry(x, topo.torsions)
    arg = topo.torsion_n * phi - topo.torsion_gamma
    e = float(np.sum(0.5 * topo.torsion_v * (1.0 + np.cos(arg))))
    de = (-0.5 * topo.torsion_v * topo.torsion_n * np.sin(arg))[:, None]
    q = topo.torsions
    np.add.at(g, q[:, 0], de * gi)
    np.add.at(g, q[:, 1], de * gj)
    np.add.at(g, q[:, 2], de * gk)
    np.add.at(g, q[:, 3], de * gl)
    return e, g


def _ramachandran_terms(x: np.ndarray, topo: Topology, weight: float) -> Tuple[float, np.ndarray]:
    g = np.zeros_like(x)
    if weight == 0.0 or not topo.rama:
        return 0.0, g
    quads = np.array([q for _, q, _ in topo.rama] + [q for _, _, q in topo.rama], dtype=int)
    ang, gi, gj, gk, gl = _dihedral_geometry(x, quads)
    nr = len(topo.rama)
    e_tot = 0.0
    to_deg = 180.0 / np.pi
    for r, (res_name, _, _) in enumerate(topo.rama):
        e, d_phi, d_psi = ramachandran_energy_and_derivs(ang[r] * to_deg, ang[nr + r] * to_deg, res_name)
        e_tot += weight * e
        for row, dd in ((r, d_phi), (nr + r, d_psi)):
            s = weight * dd * to_deg
            q = quads[row]
            g[q[0]] += s * gi[row]
            g[q[1]] += s * gj[row]
            g[q[2]] += s * gk[row]
            g[q[3]] += s * gl[row]
    return e_tot, g


def nonbonded_pairs(x: np.ndarray, topo: Topology, cutoff: float) -> np.ndarray:
    """(m, 2) atom pairs within cutoff, excluding same-chain |Δres| ≤ 1."""
    if topo.n_atoms < 2 or cutoff <= 0.0:
        return np.zeros((0, 2), dtype=int)
    pairs = cKDTree(x).query_pairs(cutoff, output_type="ndarray")
    if pairs.size == 0:
        return np.zeros((0, 2), dtype=int)
    i, j = pairs[:, 0], pairs[:, 1]
    keep = (topo.chain[i] != topo.chain[j]) | (np.abs(topo.res_seq[i] - topo.res_seq[j]) > 1)
    return pairs[keep]


def _nonbonded_terms(
    x: np.ndarray,
    topo: Topology,
    params: ForceFieldParameters,
    vdw_cutoff: float,
    elec_cutoff: float,
) -> Tuple[float, float, np.ndarray]:
    g = np.zeros_like(x)
    pairs = nonbonded_pairs(x, topo, max(vdw_cutoff, elec_cutoff))
    if pairs.size == 0:
        return 0.0, 0.0, g
    i, j = pairs[:, 0], pairs[:, 1]
    d = x[j] - x[i]
    r_true = np.linalg.norm(d, axis=1)
    r = np.maximum(r_true, R_MIN)
    unit = d / np.maximum(r_true, 1e-12)[:, None]
    dedr = np.zeros_like(r)

    in_vdw = r_true < vdw_cutoff
    ti, tj = topo.lj_type[i], topo.lj_type[j]
    eps = topo.lj_eps[ti, tj]
    sigma = topo.lj_sigma[ti, tj]
    sr6 = (sigma / r) ** 6
    sr12 = sr6 * sr6
    e_vdw_pair = np.where(in_vdw, 4.0 * eps * (sr12 - sr6), 0.0)
    dedr += np.where(in_vdw, 24.0 * eps * (sr6 - 2.0 * sr12) / r, 0.0)

    in_elec = r_true < elec_cutoff
    qq = topo.charges[i] * topo.charges[j]
    kq = params.coulomb_constant * qq / params.dielectric_slope
    e_elec_pair = np.where(in_elec, kq / (r * r), 0.0)
    dedr += np.where(in_elec, -2.0 * kq / (r * r * r), 0.0)

    f = dedr[:, None] * unit
    np.add.at(g, j, f)
    np.add.at(g, i, -f)
    return float(np.sum(e_vdw_pair)), float(np.sum(e_elec_pair)), g


def _restraint_terms(x: np.ndarray, topo: Topology) -> Tuple[float, np.ndarray]:
    g = np.zeros_like(x)
    if topo.restraints.size == 0:
        return 0.0, g
    i, j = topo.restraints[:, 0], topo.restraints[:, 1]
    d = x[j] - x[i]
    r = np.maximum(np.linalg.norm(d, axis=1), 1e-12)
    over = np.maximum(r - topo.restraint_d0, 0.0)
    e = float(np.sum(topo.restraint_k * over * over))
    f = (2.0 * topo.restraint_k * over / r)[:, None] * d
    np.add.at(g, j, f)
    np.add.at(g, i, -f)
    return e, g


def _clip_gradient(g: np.ndarray, cap: float = GRADIENT_CAP) -> np.ndarray:
    g = np.where(np.isfinite(g), g, 0.0)
    norms = np.linalg.norm(g, axis=1)
    scale = np.where(norms > cap, cap / np.maximum(norms, 1e-300), 1.0)
    return g * scale[:, None]


def evaluate(
    x: np.ndarray,
    topo: Topology,
    params: ForceFieldParameters = AMBER_FF14SB,
    vdw_cutoff: Optional[float] = None,
    elec_cutoff: Optional[float] = None,
    want_gradient: bool = True,
) -> Tuple[EnergyBreakdown, Optional[np.ndarray]]:
    """
    Energy breakdown (and clipped gradient, shape (n, 3)) at coordinates x.

    Non-finite input coordinates return the zero sentinel with an error and a
    zero gradient.
    """
    x = np.asarray(x, dtype=float).reshape(-1, 3)
    cap = params.energy_cap
    if x.shape[0] != topo.n_atoms:
        raise ValueError(f"expected {topo.n_atoms} positions, got {x.shape[0]}")
    if x.shape[0] == 0:
        return EnergyBreakdown.sentinel("empty structure", cap), np.zeros_like(x) if want_gradient else None
    if not np.all(np.isfinite(x)):
        return EnergyBreakdown.sentinel("non-finite coordinates", cap), np.zeros_like(x) if want_gradient else None
    vc = params.vdw_cutoff if vdw_cutoff is None else vdw_cutoff
    ec = params.elec_cutoff if elec_cutoff is None else elec_cutoff

    with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
        e_bond, g_bond = _bond_terms(x, topo)
        e_angle, g_angle = _angle_terms(x, topo)
        e_dih, g_dih = _torsion_terms(x, topo)
        e_vdw, e_elec, g_nb = _nonbonded_terms(x, topo, params, vc, ec)
        e_hb, g_hb = hbond_energy_and_gradient(x, topo.hbonds, params)
        e_rama, g_rama = _ramachandran_terms(x, topo, params.ramachandran_weight)
        e_restr, g_restr = _restraint_terms(x, topo)

    raw = {
        "bond": e_bond,
        "angle": e_angle,
        "dihedral": e_dih,
        "vdw": e_vdw,
        "electrostatic": e_elec,
        "hbond": e_hb,
        "ramachandran": e_rama,
        "restraint": e_restr,
    }
    out = EnergyBreakdown(cap=cap)
    raw_sum = 0.0
    for name in COMPONENTS:
        # clamped per-term values are for display; the sum uses the raw terms
        value, was_capped, was_nf = clamp_energy(raw[name], cap)
        setattr(out, name, value)
        out.capped |= was_capped
        out.non_finite |= was_nf
        raw_sum += value if was_nf else raw[name]
    if not np.isfinite(raw_sum):
        out.non_finite = True
        raw_sum = cap
    total, was_capped, _ = clamp_energy(raw_sum, cap)
    out.capped |= was_capped
    out.raw_total = float(raw_sum)
    out.total = float(total)
    if out.capped:
        logger.debug("energy capped: raw %.4g → %.4g", raw_sum, out.total)

    grad = None
    if want_gradient:
        grad = _clip_gradient(g_bond + g_angle + g_dih + g_nb + g_hb + g_rama + g_restr)
    return out, grad


def compute_energy(
    structure: Structure,
    vdw_cutoff: Optional[float] = None,
    elec_cutoff: Optional[float] = None,
    params: ForceFieldParameters = AMBER_FF14SB,
    contacts: Optional[Sequence[Tuple[int, int]]] = None,
) -> EnergyBreakdown:
    """
    Energy breakdown for a structure; cutoffs default to the parameter table (10 / 12 Å).

    An empty structure or non-finite coordinates give the zero sentinel with `error` set.
    """
    if not structure.atoms:
        return EnergyBreakdown.sentinel("empty structure", params.energy_cap)
    topo = build_topology(structure, params, contacts=contacts)
    bd, _ = evaluate(structure.coordinates(), topo, params, vdw_cutoff, elec_cutoff, want_gradient=False)
    if bd.error:
        logger.warning("energy not evaluated: %s", bd.error)
    return bd


class StructureEnergy:
    """
    Energy/gradient callable on flat coordinates for one structure's topology.

    Minimizers call energy(x), gradient(x) or energy_and_gradient(x) with
    x of shape (3n,) or (n, 3); evaluations are counted in n_evals.
    """

    def __init__(
        self,
        structure: Structure,
        params: ForceFieldParameters = AMBER_FF14SB,
        vdw_cutoff: Optional[float] = None,
        elec_cutoff: Optional[float] = None,
        contacts: Optional[Sequence[Tuple[int, int]]] = None,
    ) -> None:
        self.params = params
        self.vdw_cutoff = params.vdw_cutoff if vdw_cutoff is None else vdw_cutoff
        self.elec_cutoff = params.elec_cutoff if elec_cutoff is None else elec_cutoff
        self.topology = build_topology(structure, params, contacts=contacts)
        self.n_atoms = self.topology.n_atoms
        self.n_evals = 0

    @property
    def cap(self) -> float:
        return self.params.energy_cap

    def breakdown(self, x: np.ndarray) -> EnergyBreakdown:
        self.n_evals += 1
        bd, _ = evaluate(x, self.topology, self.params, self.vdw_cutoff, self.elec_cutoff, want_gradient=False)
        return bd

    @staticmethod
    def objective(bd: EnergyBreakdown) -> float:
        """Minimized quantity: the uncapped finite sum, +inf when evaluation failed."""
        if bd.error:
            return float("inf")
        return bd.raw_total

    def energy(self, x: np.ndarray) -> float:
        return self.objective(self.breakdown(x))

    def energy_and_gradient(self, x: np.ndarray) -> Tuple[float, np.ndarray]:
        self.n_evals += 1
        bd, g = evaluate(x, self.topology, self.params, self.vdw_cutoff, self.elec_cutoff)
        return self.objective(bd), g.ravel()

    def gradient(self, x: np.ndarray) -> np.ndarray:
        return self.energy_and_gradient(x)[1]


def numerical_gradient(func: Callable[[np.ndarray], float], x: np.ndarray, h: float = 1e-5) -> np.ndarray:
    """Central-difference gradient of func at flat x (diagnostics and tests)."""
    x = np.asarray(x, dtype=float).ravel().copy()
    g = np.zeros_like(x)
    for k in range(x.size):
        old = x[k]
        x[k] = old + h
        fp = func(x)
        x[k] = old - h
        fm = func(x)
        x[k] = old
        g[k] = (fp - fm) / (2.0 * h)
    return g


if __name__ == "__main__":
    from .backbone_builder import build_backbone

    st = build_backbone("ACDEFGHIK", np.array([[-60.0, -45.0]] * 9))
    bd = compute_energy(st)
    for k in COMPONENTS + ("total", "raw_total"):
        print(f"{k:>14s}: {getattr(bd, k):12.4f}")
    assert np.isfinite(bd.total) and abs(bd.total) <= bd.cap
