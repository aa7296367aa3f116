# quatfold.proteins: quaternion-guided protein backbone prediction.
# MIT License. Python 3.10+. numpy, scipy.

from .quaternion_geometry import (
    ramachandran_to_quaternion,
    quaternion_to_ramachandran,
    slerp,
    angles_to_quaternions,
    quaternions_to_angles,
    normalize_quaternion,
    dihedral_angle,
)
from .structure import Atom, Residue, Structure
from .backbone_builder import (
    BackboneParameters,
    DEFAULT_BACKBONE,
    build_backbone,
    build_and_validate,
    extract_angles,
    validate_hydrogen_geometry,
)
from .validation import validate_structure, detect_clashes, quality_score, ClashReport
from .force_field import ForceFieldParameters, AMBER_FF14SB, ramachandran_energy
from .folding_energy import EnergyBreakdown, StructureEnergy, compute_energy, numerical_gradient
from .hydrogen_bonds import HydrogenBond, detect_hydrogen_bonds, hbond_statistics
from .minimization import (
    RunState,
    MinimizationResult,
    ConvergenceMonitor,
    adaptive_budget,
    recommended_strategy,
    minimize_structure,
)
from .gentle_relaxation import gentle_relax, quick_clash_removal
from .gradient_descent_folding import minimize_lbfgs, lbfgs_relax
from .simulated_annealing import anneal, anneal_coords
from .secondary_structure_predictor import predict_ss, predict_ss_with_angles
from .contact_map import Contact, predict_contacts
from .harmonic_heuristics import HeuristicScorer, HarmonicScorer
from .ensemble import Candidate, Ensemble
from .grade_folds import ca_rmsd, kabsch_superpose, rmsd, tm_score, gdt_ts, compare_structures
from .pdb_io import parse_fasta, structure_to_pdb, parse_pdb, load_structure_from_pdb
from .pipeline import PipelineConfig, PipelineResult, Phase, advance, run_pipeline

__all__ = [
    "ramachandran_to_quaternion",
    "quaternion_to_ramachandran",
    "slerp",
    "angles_to_quaternions",
    "quaternions_to_angles",
    "normalize_quaternion",
    "dihedral_angle",
    "Atom",
    "Residue",
    "Structure",
    "BackboneParameters",
    "DEFAULT_BACKBONE",
    "build_backbone",
    "build_and_validate",
    "extract_angles",
    "validate_hydrogen_geometry",
    "validate_structure",
    "detect_clashes",
    "quality_score",
    "ClashReport",
    "ForceFieldParameters",
    "AMBER_FF14SB",
    "ramachandran_energy",
    "EnergyBreakdown",
    "StructureEnergy",
    "compute_energy",
    "numerical_gradient",
    "HydrogenBond",
    "detect_hydrogen_bonds",
    "hbond_statistics",
    "RunState",
    "MinimizationResult",
    "ConvergenceMonitor",
    "adaptive_budget",
    "recommended_strategy",
    "minimize_structure",
    "gentle_relax",
    "quick_clash_removal",
    "minimize_lbfgs",
    "lbfgs_relax",
    "anneal",
    "anneal_coords",
    "predict_ss",
    "predict_ss_with_angles",
    "Contact",
    "predict_contacts",
    "HeuristicScorer",
    "HarmonicScorer",
    "Candidate",
    "Ensemble",
    "ca_rmsd",
    "kabsch_superpose",
    "rmsd",
    "tm_score",
    "gdt_ts",
    "compare_structures",
    "parse_fasta",
    "structure_to_pdb",
    "parse_pdb",
    "load_structure_from_pdb",
    "PipelineConfig",
    "PipelineResult",
    "Phase",
    "advance",
    "run_pipeline",
]
