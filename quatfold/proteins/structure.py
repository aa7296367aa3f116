"""
Structure data model: atoms, residues, and one full conformation.

Each Structure owns its Atom objects outright. clone() is a true deep copy:
new Atom instances, residues re-pointed at the copies, nothing shared with the
source. Coordinates move in and out as (n_atoms, 3) arrays so minimizers can
work on flat vectors and write the result back.

The parsed view {sequence, residues[], atoms[]} is the exchange shape used at
the package boundary (PDB reader, server, reference structures).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

import numpy as np

from ._fold_base import AA_1to3, AA_3to1

BACKBONE_NAMES = ("N", "CA", "C", "O")


@dataclass
class Atom:
    """
    One atom. position is a (3,) float array in Å.

    res_index is the 0-based index of the owning residue inside its Structure;
    res_seq is the 1-based residue number written to PDB.
    """

    name: str
    element: str
    position: np.ndarray
    serial: int = 0
    res_index: int = 0
    res_name: str = "GLY"
    res_seq: int = 1
    chain_id: str = "A"

    def __post_init__(self) -> None:
        self.position = np.asarray(self.position, dtype=float).reshape(3)

    def copy(self) -> "Atom":
        return Atom(
            name=self.name,
            element=self.element,
            position=self.position.copy(),
            serial=self.serial,
            res_index=self.res_index,
            res_name=self.res_name,
            res_seq=self.res_seq,
            chain_id=self.chain_id,
        )


@dataclass
class Residue:
    """Residue with named atom references (N, CA, C, O, optional H / HA)."""

    name: str
    index: int
    seq_num: int
    chain_id: str = "A"
    atoms: Dict[str, Atom] = field(default_factory=dict)

    @property
    def one_letter(self) -> str:
        return AA_3to1.get(self.name.upper(), "X")

    @property
    def n(self) -> Optional[Atom]:
        return self.atoms.get("N")

    @property
    def ca(self) -> Optional[Atom]:
        return self.atoms.get("CA")

    @property
    def c(self) -> Optional[Atom]:
        return self.atoms.get("C")

    @property
    def o(self) -> Optional[Atom]:
        return self.atoms.get("O")

    def has_backbone(self) -> bool:
        return self.n is not None and self.ca is not None and self.c is not None


@dataclass
class Structure:
    """Ordered residues plus a flat atom list: one conformation of one chain."""

    residues: List[Residue] = field(default_factory=list)
    atoms: List[Atom] = field(default_factory=list)
    name: str = "model"

    # --- construction ---

    def add_residue(self, res_name: str, chain_id: str = "A", seq_num: Optional[int] = None) -> Residue:
        idx = len(self.residues)
        res = Residue(
            name=res_name,
            index=idx,
            seq_num=idx + 1 if seq_num is None else seq_num,
            chain_id=chain_id,
        )
        self.residues.append(res)
        return res

    def add_atom(self, residue: Residue, name: str, element: str, position: np.ndarray) -> Atom:
        atom = Atom(
            name=name,
            element=element,
            position=position,
            serial=len(self.atoms) + 1,
            res_index=residue.index,
            res_name=residue.name,
            res_seq=residue.seq_num,
            chain_id=residue.chain_id,
        )
        residue.atoms[name] = atom
        self.atoms.append(atom)
        return atom

    def renumber(self) -> None:
        """Reassign serial ids in residue order (N, CA, C, O first, then the rest)."""
        ordered: List[Atom] = []
        for res in self.residues:
            names = [nm for nm in BACKBONE_NAMES if nm in res.atoms]
            names += [nm for nm in res.atoms if nm not in BACKBONE_NAMES]
            ordered.extend(res.atoms[nm] for nm in names)
        for i, atom in enumerate(ordered):
            atom.serial = i + 1
        self.atoms = ordered

    # --- views ---

    @property
    def sequence(self) -> str:
        return "".join(r.one_letter for r in self.residues)

    def __len__(self) -> int:
        return len(self.residues)

    def __iter__(self) -> Iterator[Residue]:
        return iter(self.residues)

    def coordinates(self) -> np.ndarray:
        """(n_atoms, 3) copy of atom positions in atom-list order."""
        if not self.atoms:
            return np.zeros((0, 3))
        return np.array([a.position for a in self.atoms], dtype=float)

    def set_coordinates(self, coords: np.ndarray) -> None:
        """Write (n_atoms, 3) positions back into the atoms (in place)."""
        coords = np.asarray(coords, dtype=float).reshape(-1, 3)
        if coords.shape[0] != len(self.atoms):
            raise ValueError(f"expected {len(self.atoms)} positions, got {coords.shape[0]}")
        for atom, xyz in zip(self.atoms, coords):
            atom.position = xyz.copy()

    def ca_coordinates(self) -> np.ndarray:
        return np.array([r.ca.position for r in self.residues if r.ca is not None], dtype=float).reshape(-1, 3)

    def elements(self) -> List[str]:
        return [a.element for a in self.atoms]

    def atom_index(self) -> Dict[int, int]:
        """id(atom) → position in self.atoms."""
        return {id(a): i for i, a in enumerate(self.atoms)}

    # --- ownership ---

    def clone(self) -> "Structure":
        """Deep copy: new Atom objects; residues reference the copies, never the source."""
        mapping: Dict[int, Atom] = {}
        atoms = []
        for a in self.atoms:
            c = a.copy()
            mapping[id(a)] = c
            atoms.append(c)
        residues = []
        for r in self.residues:
            nr = Residue(name=r.name, index=r.index, seq_num=r.seq_num, chain_id=r.chain_id)
            for nm, a in r.atoms.items():
                nr.atoms[nm] = mapping[id(a)] if id(a) in mapping else a.copy()
            residues.append(nr)
        return Structure(residues=residues, atoms=atoms, name=self.name)

    # --- parsed view ---

    def to_parsed(self) -> Dict[str, Any]:
        """Plain-dict view {sequence, residues[], atoms[]} (JSON-ready)."""
        return {
            "sequence": self.sequence,
            "residues": [
                {"name": r.name, "index": r.index, "seq_num": r.seq_num, "chain_id": r.chain_id}
                for r in self.residues
            ],
            "atoms": [
                {
                    "serial": a.serial,
                    "name": a.name,
                    "element": a.element,
                    "res_index": a.res_index,
                    "res_name": a.res_name,
                    "res_seq": a.res_seq,
                    "chain_id": a.chain_id,
                    "x": float(a.position[0]),
                    "y": float(a.position[1]),
                    "z": float(a.position[2]),
                }
                for a in self.atoms
            ],
        }

    @classmethod
    def from_parsed(cls, parsed: Dict[str, Any], name: str = "model") -> "Structure":
        """
        Build a Structure from a parsed {sequence, residues[], atoms[]} view.

        Atoms attach to residues by res_index when present, else by (chain_id, res_seq).
        Residues missing from `residues` are created from the atoms in order.
        """
        st = cls(name=name)
        by_key: Dict[Any, Residue] = {}
        for r in parsed.get("residues") or []:
            res = st.add_residue(
                str(r.get("name", "GLY")).upper(),
                chain_id=str(r.get("chain_id", "A")),
                seq_num=int(r.get("seq_num", len(st.residues) + 1)),
            )
            by_key[(res.chain_id, res.seq_num)] = res
        for a in parsed.get("atoms") or []:
            chain = str(a.get("chain_id", "A"))
            if "res_index" in a and 0 <= int(a["res_index"]) < len(st.residues):
                res = st.residues[int(a["res_index"])]
            else:
                key = (chain, int(a.get("res_seq", 1)))
                res = by_key.get(key)
                if res is None:
                    res = st.add_residue(str(a.get("res_name", "GLY")).upper(), chain_id=chain, seq_num=key[1])
                    by_key[key] = res
            name_a = str(a.get("name", "")).strip()
            element = str(a.get("element") or name_a[:1]).strip().upper()
            pos = np.array([float(a["x"]), float(a["y"]), float(a["z"])])
            atom = st.add_atom(res, name_a, element, pos)
            if "serial" in a:
                atom.serial = int(a["serial"])
        seq = parsed.get("sequence")
        if seq and not st.residues:
            for ch in seq:
                st.add_residue(AA_1to3.get(ch.upper(), "GLY"))
        return st
