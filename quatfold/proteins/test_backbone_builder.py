"""
Tests for the structure data model, backbone builder, validator and PDB I/O.

Run: pytest quatfold/proteins/test_backbone_builder.py -v
"""

from __future__ import annotations

import numpy as np
import pytest

from .backbone_builder import (
    build_and_validate,
    build_backbone,
    extract_angles,
    validate_hydrogen_geometry,
)
from .pdb_io import parse_fasta, parse_fasta_records, parse_pdb, structure_to_pdb
from .structure import Structure
from .validation import (
    EMPTY_STRUCTURE,
    GEOMETRY_VALID,
    MISSING_BACKBONE,
    N_CA_OUT_OF_RANGE,
    NON_FINITE,
    OUT_OF_BOUNDS,
    detect_clashes,
    quality_score,
    validate_structure,
)

HELIX = (-60.0, -45.0)


def _helix(n: int) -> np.ndarray:
    return np.tile(HELIX, (n, 1))


def test_build_atoms_and_order():
    """N, CA, C, O per residue with ideal N-CA / CA-C / C-N bond lengths."""
    st = build_backbone("GAC")
    assert len(st.atoms) == 12
    assert [a.name for a in st.atoms[:4]] == ["N", "CA", "C", "O"]
    assert st.sequence == "GAC"
    r0, r1 = st.residues[0], st.residues[1]
    np.testing.assert_allclose(np.linalg.norm(r0.ca.position - r0.n.position), 1.458, atol=1e-9)
    np.testing.assert_allclose(np.linalg.norm(r0.c.position - r0.ca.position), 1.523, atol=1e-9)
    np.testing.assert_allclose(np.linalg.norm(r1.n.position - r0.c.position), 1.329, atol=1e-9)
    np.testing.assert_allclose(np.linalg.norm(r0.o.position - r0.c.position), 1.231, atol=1e-9)


def test_bond_lengths_on_every_residue():
    """Ideal N-CA, CA-C, C=O and C-N(i+1) lengths hold along a mixed-angle chain."""
    rng = np.random.default_rng(8)
    angles = np.column_stack([rng.uniform(-180.0, 180.0, 12), rng.uniform(-180.0, 180.0, 12)])
    st = build_backbone("MKTAYIAKQRGP", angles)
    for k, res in enumerate(st.residues):
        np.testing.assert_allclose(np.linalg.norm(res.ca.position - res.n.position), 1.458, atol=1e-9)
        np.testing.assert_allclose(np.linalg.norm(res.c.position - res.ca.position), 1.523, atol=1e-9)
        np.testing.assert_allclose(np.linalg.norm(res.o.position - res.c.position), 1.231, atol=1e-9)
        if k + 1 < len(st.residues):
            nxt = st.residues[k + 1]
            np.testing.assert_allclose(np.linalg.norm(nxt.n.position - res.c.position), 1.329, atol=1e-9)


def test_extract_angles_recovers_input():
    """Built torsions are recovered by extract_angles; termini are NaN."""
    angles = _helix(8)
    angles[3] = (-120.0, 130.0)
    ang = extract_angles(build_backbone("ACDEFGHI", angles))
    assert np.isnan(ang[0, 0]) and np.isnan(ang[-1, 1]) and np.isnan(ang[0, 2])
    np.testing.assert_allclose(ang[1:, 0], angles[1:, 0], atol=1e-6)
    np.testing.assert_allclose(ang[:-1, 1], angles[:-1, 1], atol=1e-6)
    np.testing.assert_allclose(np.abs(ang[1:, 2]), 180.0, atol=1e-6)


def test_missing_and_nan_angles_fall_back_to_extended():
    """Short or NaN angle rows build like the extended strand."""
    ref = build_backbone("AAAA", np.tile((-120.0, 120.0), (4, 1)))
    padded = build_backbone("AAAA", np.array([[np.nan, np.nan], [-120.0, 120.0]]))
    np.testing.assert_allclose(padded.coordinates(), ref.coordinates(), atol=1e-9)
    with pytest.raises(ValueError):
        build_backbone("AA", _helix(3))


def test_invalid_sequence_raises():
    """Empty sequences and unknown letters raise ValueError."""
    with pytest.raises(ValueError):
        build_backbone("")
    with pytest.raises(ValueError):
        build_backbone("AXB")


def test_hydrogens():
    """Amide H skipped on residue 0 and proline; HA everywhere; geometry valid."""
    st, ok, reason = build_and_validate("GPAS", add_hydrogens=True)
    assert ok, reason
    names = [set(r.atoms) for r in st.residues]
    assert "H" not in names[0] and "H" not in names[1]
    assert "H" in names[2] and "H" in names[3]
    assert all("HA" in n for n in names)
    assert len(st.atoms) == 16 + 2 + 4
    assert [a.serial for a in st.atoms] == list(range(1, len(st.atoms) + 1))
    ok, _ = validate_hydrogen_geometry(st)
    assert ok


def test_clone_is_deep():
    """Moving a cloned atom leaves the source untouched; residues point at the copies."""
    st = build_backbone("ACD")
    cp = st.clone()
    cp.residues[1].ca.position += 3.0
    assert cp.atoms[5] is cp.residues[1].ca
    assert not np.allclose(cp.coordinates(), st.coordinates())
    np.testing.assert_allclose(st.residues[1].ca.position, build_backbone("ACD").residues[1].ca.position)


def test_parsed_view_round_trip():
    """to_parsed → from_parsed reproduces sequence and coordinates."""
    st = build_backbone("MKV", _helix(3))
    back = Structure.from_parsed(st.to_parsed())
    assert back.sequence == "MKV"
    np.testing.assert_allclose(back.coordinates(), st.coordinates())


def test_validate_good_structure():
    """An ideal backbone is valid."""
    assert validate_structure(build_backbone("ACDEFG", _helix(6))) == (True, GEOMETRY_VALID)


def test_validate_reasons():
    """Each failure returns its fixed reason and never raises."""
    assert validate_structure(Structure()) == (False, EMPTY_STRUCTURE)

    st = build_backbone("ACD")
    st.residues[1].ca.position = st.residues[1].ca.position + np.array([5.0, 0.0, 0.0])
    assert validate_structure(st) == (False, N_CA_OUT_OF_RANGE)

    st = build_backbone("ACD")
    st.residues[2].o.position = np.array([np.nan, 0.0, 0.0])
    assert validate_structure(st) == (False, NON_FINITE)

    st = build_backbone("ACD")
    st.set_coordinates(st.coordinates() + 2000.0)
    assert validate_structure(st) == (False, OUT_OF_BOUNDS)

    st = build_backbone("ACD")
    del st.residues[0].atoms["CA"]
    assert validate_structure(st) == (False, MISSING_BACKBONE)


def test_clash_detection():
    """Extended chains are clash-free; an atom dropped onto a distant residue clashes."""
    st = build_backbone("A" * 10)
    report = detect_clashes(st)
    assert not report.has_clashes and report.worst_clash_distance == 999.9
    assert quality_score(st) == 1.0

    st.residues[8].o.position = st.residues[1].ca.position + np.array([0.3, 0.0, 0.0])
    report = detect_clashes(st)
    assert report.has_clashes and report.clash_count >= 1
    assert report.worst_clash_distance < 1.0
    assert 0.0 <= quality_score(st) < 1.0


def test_three_close_ca_atoms_clash():
    """Three Cα atoms on distant residues, all < 1 Å apart, give at least two clashes."""
    st = Structure()
    for k, seq_num in enumerate((1, 5, 9)):
        res = st.add_residue("ALA", seq_num=seq_num)
        st.add_atom(res, "CA", "C", np.array([0.4 * k, 0.0, 0.0]))
    report = detect_clashes(st)
    assert report.has_clashes and report.clash_count >= 2


def test_quality_zero_when_invalid():
    """quality_score is 0 for invalid geometry."""
    st = build_backbone("ACD")
    st.residues[1].ca.position = st.residues[1].ca.position + 5.0
    assert quality_score(st) == 0.0


def test_pdb_round_trip():
    """structure_to_pdb → parse_pdb keeps atoms, names and coordinates (3 decimals)."""
    st = build_backbone("GAS", _helix(3), add_hydrogens=True)
    text = structure_to_pdb(st, remarks=["test"])
    assert text.startswith("REMARK") and text.rstrip().endswith("END")
    atom_lines = [l for l in text.splitlines() if l.startswith("ATOM")]
    assert len(atom_lines) == len(st.atoms)
    assert all(len(l) == 80 for l in atom_lines)
    parsed = parse_pdb(text)
    assert parsed["sequence"] == "GAS"
    back = Structure.from_parsed(parsed)
    np.testing.assert_allclose(back.coordinates(), st.coordinates(), atol=1e-3)
    assert [a.name for a in back.atoms] == [a.name for a in st.atoms]


def test_fasta_parsing():
    """Headers, whitespace and stop codons are stripped; only the first record is used."""
    text = ">seq1 test\nACD EF\nGH*\n>seq2\nKLM\n"
    assert parse_fasta(text) == "ACDEFGH"
    assert parse_fasta("acdef") == "ACDEF"
    assert parse_fasta_records(text) == [("seq1 test", "ACDEFGH"), ("seq2", "KLM")]


if __name__ == "__main__":
    test_build_atoms_and_order()
    test_bond_lengths_on_every_residue()
    test_extract_angles_recovers_input()
    test_missing_and_nan_angles_fall_back_to_extended()
    test_invalid_sequence_raises()
    test_hydrogens()
    test_clone_is_deep()
    test_parsed_view_round_trip()
    test_validate_good_structure()
    test_validate_reasons()
    test_clash_detection()
    test_three_close_ca_atoms_clash()
    test_quality_zero_when_invalid()
    test_pdb_round_trip()
    test_fasta_parsing()
    print("All tests passed.")
