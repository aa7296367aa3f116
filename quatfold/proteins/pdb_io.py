"""
Minimal PDB / FASTA serialization for Structure.

structure_to_pdb writes fixed-column ATOM records (MODEL 1 ... ENDMDL END);
parse_pdb reads ATOM/HETATM records back into the parsed
{sequence, residues[], atoms[]} view that Structure.from_parsed accepts.
Only the first model is read.

Usage:
  from quatfold.proteins.pdb_io import structure_to_pdb, load_structure_from_pdb
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from ._fold_base import AA_3to1
from .structure import Structure


def parse_fasta(fasta: str) -> str:
    """Single sequence from FASTA text (first record only); bare sequences pass through."""
    seq = []
    seen_header = False
    for line in fasta.strip().splitlines():
        line = line.strip()
        if not line:
            continue
        if line.startswith(">"):
            if seen_header and seq:
                break
            seen_header = True
            continue
        seq.append("".join(c for c in line.upper() if not c.isspace() and c != "*"))
    return "".join(seq)


def parse_fasta_records(fasta: str) -> List[Tuple[str, str]]:
    """All (header, sequence) records of a FASTA text."""
    records: List[Tuple[str, str]] = []
    header, chunks = "", []
    for line in fasta.strip().splitlines():
        line = line.strip()
        if line.startswith(">"):
            if chunks:
                records.append((header, "".join(chunks)))
            header, chunks = line[1:].strip(), []
        elif line:
            chunks.append("".join(c for c in line.upper() if not c.isspace() and c != "*"))
    if chunks:
        records.append((header, "".join(chunks)))
    return records


def _atom_name_field(name: str) -> str:
    return name[:4] if len(name) >= 4 else f" {name:<3s}"


def pdb_atom_line(
    serial: int,
    atom_name: str,
    res_name: str,
    chain: str,
    res_seq: int,
    x: float,
    y: float,
    z: float,
    element: str,
    record: str = "ATOM",
) -> str:
    """One fixed-column ATOM/HETATM record (80 columns)."""
    line = (
        f"{record:<6s}{serial % 100000:5d} {_atom_name_field(atom_name)} {res_name:>3s} {chain[:1]}{res_seq:4d}    "
        f"{x:8.3f}{y:8.3f}{z:8.3f}  1.00  0.00          {element[:2]:>2s}"
    )
    return line.ljust(80)


def structure_to_pdb(structure: Structure, remarks: Optional[List[str]] = None) -> str:
    """PDB text for one structure (MODEL 1 ... ENDMDL END)."""
    if not structure.atoms:
        return "MODEL     1\nENDMDL\nEND\n"
    lines = [f"REMARK   {r}" for r in (remarks or [])]
    lines.append("MODEL     1")
    serial = 1
    for res in structure.residues:
        for atom in res.atoms.values():
            x, y, z = (float(v) for v in atom.position)
            lines.append(pdb_atom_line(serial, atom.name, res.name, res.chain_id, res.seq_num, x, y, z, atom.element))
            serial += 1
    lines.append("ENDMDL")
    lines.append("END")
    return "\n".join(lines) + "\n"


def parse_pdb(text: str) -> Dict[str, Any]:
    """ATOM/HETATM records of the first model → parsed {sequence, residues[], atoms[]} view."""
    residues: List[Dict[str, Any]] = []
    atoms: List[Dict[str, Any]] = []
    index: Dict[Tuple[str, int, str], int] = {}
    for line in text.splitlines():
        if line.startswith("ENDMDL"):
            break
        if not (line.startswith("ATOM") or line.startswith("HETATM")):
            continue
        try:
            name = line[12:16].strip()
            res_name = line[17:20].strip().upper()
            chain = line[21:22].strip() or "A"
            res_seq = int(line[22:26])
            icode = line[26:27].strip()
            x, y, z = float(line[30:38]), float(line[38:46]), float(line[46:54])
        except (ValueError, IndexError):
            continue
        element = line[76:78].strip().upper() if len(line) >= 78 else ""
        key = (chain, res_seq, icode)
        if key not in index:
            index[key] = len(residues)
            residues.append({"name": res_name, "index": len(residues), "seq_num": res_seq, "chain_id": chain})
        atoms.append({
            "serial": len(atoms) + 1,
            "name": name,
            "element": element or name[:1],
            "res_index": index[key],
            "res_name": res_name,
            "res_seq": res_seq,
            "chain_id": chain,
            "x": x, "y": y, "z": z,
        })
    sequence = "".join(AA_3to1.get(r["name"], "X") for r in residues)
    return {"sequence": sequence, "residues": residues, "atoms": atoms}


def load_structure_from_pdb(path: str, name: Optional[str] = None) -> Structure:
    """Read a PDB file into a Structure."""
    with open(path) as f:
        parsed = parse_pdb(f.read())
    return Structure.from_parsed(parsed, name=name or path)
