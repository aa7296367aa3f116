#!/usr/bin/env python3
"""
Predict a backbone from a sequence or FASTA file and write the best model as PDB.

Optionally grades the model against a reference PDB (Cα-RMSD, TM-score, GDT_TS).

Usage:
  python -m quatfold.proteins.examples.predict_from_fasta crambin.fasta -o crambin_model.pdb
  python -m quatfold.proteins.examples.predict_from_fasta TTCCPSIVARSNFNVCRLPGTPEA -o out.pdb --seed 3 --strategy lbfgs
  python -m quatfold.proteins.examples.predict_from_fasta seq.fasta -o out.pdb --reference 1crn.pdb -v
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

EXAMPLES_DIR = os.path.dirname(os.path.abspath(__file__))
REPO_ROOT = os.path.abspath(os.path.join(EXAMPLES_DIR, "..", "..", ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)


def main() -> int:
    parser = argparse.ArgumentParser(description="Predict a protein backbone from a sequence or FASTA file.")
    parser.add_argument("input", help="FASTA file path or a bare one-letter sequence")
    parser.add_argument("-o", "--output", default=None, help="Output PDB path (default: print summary only)")
    parser.add_argument("--seed", type=int, default=42, help="Base RNG seed")
    parser.add_argument("--samples", type=int, default=4, help="Conformations per sampler")
    parser.add_argument(
        "--strategy",
        default="auto",
        choices=("auto", "gentle", "lbfgs", "annealing", "hybrid"),
        help="Minimizer strategy",
    )
    parser.add_argument("--budget", type=int, default=None, help="Minimizer iteration budget (default: adaptive)")
    parser.add_argument("--workers", type=int, default=1, help="Worker processes")
    parser.add_argument("--reference", default=None, metavar="PDB", help="Reference PDB for RMSD / TM-score / GDT_TS")
    parser.add_argument("--no-ss", action="store_true", help="Skip the secondary-structure prior")
    parser.add_argument("--no-contacts", action="store_true", help="Skip the contact prior")
    parser.add_argument("--hydrogens", action="store_true", help="Place backbone H and HA")
    parser.add_argument("--fast", action="store_true", help="Skip minimization")
    parser.add_argument("--json", action="store_true", help="Print the full JSON summary")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log pipeline progress")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    from quatfold.proteins.pdb_io import load_structure_from_pdb, parse_fasta, structure_to_pdb
    from quatfold.proteins.pipeline import PipelineConfig, run_pipeline

    if os.path.isfile(args.input):
        with open(args.input) as f:
            sequence = parse_fasta(f.read())
    else:
        sequence = parse_fasta(args.input)

    reference = None
    if args.reference:
        if not os.path.isfile(args.reference):
            print(f"Error: not a file: {args.reference}", file=sys.stderr)
            return 1
        reference = load_structure_from_pdb(args.reference)

    config = PipelineConfig(
        seed=args.seed,
        n_quaternion=args.samples,
        n_monte_carlo=max(1, args.samples // 4),
        n_fragment=args.samples,
        n_basin=args.samples,
        strategy=args.strategy,
        budget=args.budget,
        n_workers=args.workers,
        predict_ss=not args.no_ss,
        predict_contacts=not args.no_contacts,
        add_hydrogens=args.hydrogens,
        skip_minimization=args.fast,
    )
    try:
        result = run_pipeline(sequence, config, reference=reference)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if not result.success:
        print(f"Prediction failed: {result.error}", file=sys.stderr)
        return 2

    s = result.summary
    print(f"Sequence: {len(sequence)} residues, SS {s.get('ss') or '-'}")
    print(f"Candidates: {s['counts']}  discarded: {sum(s['discarded'].values())}")
    print(f"Best: {s['best_method']}  energy {s['best_energy']:.3f} kcal/mol  quality {s['best_quality']:.2f}")
    if "metrics" in s:
        m = s["metrics"]
        print(f"vs reference: Cα-RMSD {m['ca_rmsd']:.3f} Å  TM-score {m['tm_score']:.3f}  GDT_TS {m['gdt_ts']:.3f}")
    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    if args.output:
        with open(args.output, "w") as f:
            f.write(structure_to_pdb(result.best.structure, remarks=[f"quatfold seed {args.seed}"]))
        print(f"Wrote {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
