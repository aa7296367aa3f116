"""
Structure-prediction pipeline: sequence → priors → sampled angle sets →
built, validated and relaxed candidates → ranked ensemble.

The run is a tagged-state machine. advance(state) performs one phase and
returns the next state:

  PREDICT   secondary-structure (Chou-Fasman) and contact priors
  SAMPLE    every enabled sampler, each with its own spawned RNG
  OPTIMIZE  build → validate → minimize a private copy → re-validate → score
  SELECT    rank by energy + quality_weight·(1 - quality), reference metrics
  DONE / FAILED

There are no cycles; run_pipeline drives advance until DONE or FAILED. The only
fatal outcome is an empty ensemble ("no valid candidates"). With n_workers > 1
samplers and candidates run in a multiprocessing.Pool; workers are module-level
functions taking picklable inputs, and results come back in submission order.

Usage:
  from quatfold.proteins.pipeline import PipelineConfig, run_pipeline
  result = run_pipeline("MKFLVLLF", PipelineConfig(seed=1))
  print(result.to_dict()["summary"])
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import multiprocessing
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from ._fold_base import normalize_sequence
from .backbone_builder import build_backbone, extract_angles
from .contact_map import contact_pairs, predict_contacts, validate_contacts
from .ensemble import Candidate, Ensemble
from .folding_energy import compute_energy
from .force_field import AMBER_FF14SB, ForceFieldParameters
from .grade_folds import compare_structures
from .harmonic_heuristics import get_scorer
from .hydrogen_bonds import hbond_statistics
from .minimization import STRATEGIES, minimize_structure
from .sampling import SAMPLERS, child_seeds
from .secondary_structure_predictor import predict_ss, validate_ss
from .structure import Structure
from .validation import quality_score, validate_structure

logger = logging.getLogger(__name__)

SAMPLER_ORDER = ("quaternion", "monte_carlo", "fragment", "basin")
NO_CANDIDATES = "no valid candidates"


class Phase(str, enum.Enum):
    PREDICT = "predict"
    SAMPLE = "sample"
    OPTIMIZE = "optimize"
    SELECT = "select"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineConfig:
    """Every pipeline tunable. A sampler with count 0 or enable flag False is skipped."""

    seed: int = 42
    n_quaternion: int = 8
    n_monte_carlo: int = 2
    n_fragment: int = 8
    n_basin: int = 8
    use_quaternion: bool = True
    use_monte_carlo: bool = True
    use_fragment: bool = True
    use_basin: bool = True
    mc_steps: int = 200
    strategy: str = "auto"
    budget: Optional[int] = None
    skip_minimization: bool = False
    params: ForceFieldParameters = AMBER_FF14SB
    predict_ss: bool = True
    predict_contacts: bool = True
    ss: Optional[str] = None
    contacts: Optional[List[Tuple[int, int]]] = None
    n_contacts: int = 20
    n_workers: int = 1
    heuristic: str = "harmonic"
    heuristic_weight: float = 0.0
    quality_weight: float = 1.0
    add_hydrogens: bool = False
    max_candidates: Optional[int] = None

    def sampler_counts(self) -> Dict[str, int]:
        return {
            "quaternion": self.n_quaternion if self.use_quaternion else 0,
            "monte_carlo": self.n_monte_carlo if self.use_monte_carlo else 0,
            "fragment": self.n_fragment if self.use_fragment else 0,
            "basin": self.n_basin if self.use_basin else 0,
        }

    def check(self) -> None:
        if self.strategy != "auto" and self.strategy not in STRATEGIES:
            raise ValueError(f"unknown minimization strategy: {self.strategy!r}")
        if self.budget is not None and self.budget < 1:
            raise ValueError("budget must be positive")
        if self.n_workers < 1:
            raise ValueError("n_workers must be >= 1")
        if any(v < 0 for v in self.sampler_counts().values()):
            raise ValueError("sampler counts must be >= 0")


@dataclass
class PipelineState:
    sequence: str
    config: PipelineConfig
    reference: Optional[Structure] = None
    phase: Phase = Phase.PREDICT
    ss: Optional[str] = None
    contacts: List[Tuple[int, int]] = field(default_factory=list)
    samples: List[Tuple[np.ndarray, str, int]] = field(default_factory=list)
    ensemble: Ensemble = field(default_factory=Ensemble)
    best: Optional[Candidate] = None
    metrics: Optional[Dict[str, float]] = None
    discarded: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None
    history: Tuple[Phase, ...] = (Phase.PREDICT,)
    timings: Dict[str, float] = field(default_factory=dict)


@dataclass
class PipelineResult:
    success: bool
    error: Optional[str]
    best: Optional[Candidate]
    candidates: List[Candidate]
    summary: Dict[str, Any]
    history: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "summary": self.summary,
            "history": self.history,
            "best": self.best.summary() if self.best is not None else None,
            "candidates": [c.summary() for c in self.candidates],
        }


def _goto(state: PipelineState, phase: Phase, **changes) -> PipelineState:
    logger.info("pipeline %s → %s", state.phase.value, phase.value)
    return dataclasses.replace(state, phase=phase, history=state.history + (phase,), **changes)


def _fail(state: PipelineState, error: str) -> PipelineState:
    logger.warning("pipeline failed in %s: %s", state.phase.value, error)
    return _goto(state, Phase.FAILED, error=error)


# ── workers (module-level so multiprocessing can pickle them) ─────────────────


def _sample_worker(
    name: str,
    sequence: str,
    n_samples: int,
    seed_seq: np.random.SeedSequence,
    priors: Dict[str, Any],
) -> List[Tuple[np.ndarray, str, int]]:
    """Run one sampler; returns (angles, method, candidate seed) triples."""
    rng = np.random.default_rng(seed_seq)
    samples = SAMPLERS[name](sequence, n_samples, rng, **priors)
    seeds = child_seeds(rng, len(samples))
    return [(s.angles, s.method, seed) for s, seed in zip(samples, seeds)]


def _optimize_worker(
    sequence: str,
    angles: np.ndarray,
    method: str,
    seed: int,
    config: PipelineConfig,
    contacts: List[Tuple[int, int]],
) -> Tuple[Optional[Candidate], str]:
    """Build, validate, relax and score one angle set. Returns (candidate or None, reason)."""
    st = build_backbone(sequence, angles, add_hydrogens=config.add_hydrogens, name=f"{method}_{seed}")
    ok, reason = validate_structure(st)
    if not ok:
        return None, reason
    cand = Candidate(
        angles=np.asarray(angles, dtype=float),
        structure=st,
        energy=compute_energy(st, params=config.params),
        quality=quality_score(st),
        method=method,
        seed=seed,
    )
    if not config.skip_minimization:
        relaxed, info = minimize_structure(
            st,
            strategy=config.strategy,
            budget=config.budget,
            rng=np.random.default_rng(seed),
            params=config.params,
            contacts=contacts or None,
        )
        ok, reason = validate_structure(relaxed)
        if ok:
            new_angles = extract_angles(relaxed)[:, :2]
            cand = cand.relaxed(
                relaxed,
                energy=compute_energy(relaxed, params=config.params),
                quality=quality_score(relaxed),
                minimization=info,
                angles=np.where(np.isnan(new_angles), cand.angles, new_angles),
            )
        else:
            reason = f"relaxed structure rejected ({reason}); kept unrelaxed"
    if config.heuristic_weight:
        cand = dataclasses.replace(cand, heuristic=get_scorer(config.heuristic).score(cand.structure))
    return cand, reason


def _map(func, jobs: List[tuple], n_workers: int) -> List[Any]:
    if n_workers > 1 and len(jobs) > 1:
        with multiprocessing.Pool(min(n_workers, len(jobs))) as pool:
            return pool.starmap(func, jobs)
    return [func(*job) for job in jobs]


# ── phases ────────────────────────────────────────────────────────────────────


def _predict(state: PipelineState) -> PipelineState:
    cfg = state.config
    n = len(state.sequence)
    ss = None
    if cfg.ss is not None:
        ss = validate_ss(cfg.ss, n)
    elif cfg.predict_ss:
        ss, _ = predict_ss(state.sequence)
    if cfg.contacts is not None:
        contacts = validate_contacts(cfg.contacts, n)
    elif cfg.predict_contacts:
        contacts = contact_pairs(predict_contacts(state.sequence), top=cfg.n_contacts)
    else:
        contacts = []
    logger.info("priors: ss=%s, %d contacts", ss or "-", len(contacts))
    return _goto(state, Phase.SAMPLE, ss=ss, contacts=contacts)


def _sample(state: PipelineState) -> PipelineState:
    cfg = state.config
    priors: Dict[str, Any] = {"ss": state.ss, "contacts": state.contacts or None}
    if cfg.heuristic_weight:
        priors["heuristic"] = get_scorer(cfg.heuristic)
        priors["heuristic_weight"] = cfg.heuristic_weight
    counts = cfg.sampler_counts()
    seed_seqs = np.random.SeedSequence(cfg.seed).spawn(len(SAMPLER_ORDER))
    jobs = []
    planned = 0
    for name, ss_seed in zip(SAMPLER_ORDER, seed_seqs):
        n = counts[name]
        if cfg.max_candidates is not None:
            n = min(n, cfg.max_candidates - planned)
        if n <= 0:
            continue
        p = dict(priors, n_steps=cfg.mc_steps) if name == "monte_carlo" else priors
        jobs.append((name, state.sequence, n, ss_seed, p))
        planned += n
    samples: List[Tuple[np.ndarray, str, int]] = []
    for batch in _map(_sample_worker, jobs, cfg.n_workers):
        samples.extend(batch)
    logger.info("sampled %d conformations from %d samplers", len(samples), len(jobs))
    if not samples:
        return _fail(state, NO_CANDIDATES)
    return _goto(state, Phase.OPTIMIZE, samples=samples)


def _optimize(state: PipelineState) -> PipelineState:
    cfg = state.config
    jobs = [(state.sequence, a, m, s, cfg, state.contacts) for a, m, s in state.samples]
    ensemble = Ensemble()
    discarded: Dict[str, int] = {}
    for (cand, reason), (_, _, method, seed, _, _) in zip(_map(_optimize_worker, jobs, cfg.n_workers), jobs):
        if cand is None:
            logger.warning("discarded %s candidate (seed %d): %s", method, seed, reason)
            discarded[reason] = discarded.get(reason, 0) + 1
            continue
        if cand.energy.capped:
            logger.warning("%s candidate (seed %d) energy capped at %.0f", method, seed, cand.energy.total)
        ensemble.add(cand)
    if not len(ensemble):
        return _fail(dataclasses.replace(state, discarded=discarded), NO_CANDIDATES)
    return _goto(state, Phase.SELECT, ensemble=ensemble, discarded=discarded)


def _reference_metrics(best: Candidate, reference: Structure) -> Optional[Dict[str, float]]:
    try:
        return compare_structures(best.structure, reference, align_by_resid=True)
    except ValueError:
        pass
    try:
        return compare_structures(best.structure, reference, align_by_resid=False)
    except ValueError as e:
        logger.warning("reference metrics skipped: %s", e)
        return None


def _select(state: PipelineState) -> PipelineState:
    cfg = state.config
    best = state.ensemble.best(cfg.quality_weight, cfg.heuristic_weight)
    metrics = _reference_metrics(best, state.reference) if state.reference is not None else None
    logger.info(
        "best: %s (seed %d) energy %.3f quality %.2f of %d candidates",
        best.method, best.seed, best.energy.total, best.quality, len(state.ensemble),
    )
    return _goto(state, Phase.DONE, best=best, metrics=metrics)


PHASES = {
    Phase.PREDICT: _predict,
    Phase.SAMPLE: _sample,
    Phase.OPTIMIZE: _optimize,
    Phase.SELECT: _select,
}


def advance(state: PipelineState) -> PipelineState:
    """Run the current phase and return the next state. DONE and FAILED are terminal."""
    step = PHASES.get(state.phase)
    if step is None:
        return state
    t0 = time.perf_counter()
    new = step(state)
    new.timings = dict(state.timings, **{state.phase.value: time.perf_counter() - t0})
    return new


def _summary(state: PipelineState) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "sequence": state.sequence,
        "n_residues": len(state.sequence),
        "ss": state.ss,
        "n_contacts": len(state.contacts),
        "n_sampled": len(state.samples),
        "discarded": dict(state.discarded),
        "counts": state.ensemble.counts(),
        "timings": dict(state.timings),
        "seed": state.config.seed,
    }
    if state.best is not None:
        out.update(
            best_energy=state.best.energy.total,
            best_raw_energy=state.best.energy.raw_total,
            best_quality=state.best.quality,
            best_method=state.best.method,
            best_hbonds=hbond_statistics(state.best.structure, state.config.params),
        )
        out["ensemble"] = state.ensemble.stats()
    if state.metrics is not None:
        out["metrics"] = state.metrics
    return out


def run_pipeline(
    sequence: Union[str, Dict[str, Any]],
    config: Optional[PipelineConfig] = None,
    reference: Optional[Union[Structure, Dict[str, Any]]] = None,
) -> PipelineResult:
    """
    Predict a backbone for `sequence` (one-letter string or parsed view).

    Raises ValueError for invalid input (empty sequence, unknown residues,
    bad priors, unknown strategy). A run that ends without candidates returns
    PipelineResult(success=False, error="no valid candidates").
    """
    cfg = config or PipelineConfig()
    cfg.check()
    if isinstance(sequence, dict):
        sequence = sequence["sequence"]
    seq = normalize_sequence(sequence)
    if isinstance(reference, dict):
        reference = Structure.from_parsed(reference, name="reference")
    state = PipelineState(sequence=seq, config=cfg, reference=reference)
    logger.info("pipeline start: %d residues, seed %d", len(seq), cfg.seed)
    while state.phase not in (Phase.DONE, Phase.FAILED):
        state = advance(state)
    ranked = state.ensemble.ranked(cfg.quality_weight, cfg.heuristic_weight)
    return PipelineResult(
        success=state.phase is Phase.DONE,
        error=state.error,
        best=state.best,
        candidates=ranked,
        summary=_summary(state),
        history=[p.value for p in state.history],
    )
