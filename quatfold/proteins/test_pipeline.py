"""
End-to-end pipeline tests: phase order, determinism, failure on an empty
ensemble, reference metrics and JSON-ready results.

Run: pytest quatfold/proteins/test_pipeline.py -v
"""

from __future__ import annotations

import dataclasses
import json

import numpy as np
import pytest

from ._fold_base import ENERGY_CAP
from .backbone_builder import build_backbone
from .ensemble import Candidate, Ensemble
from .folding_energy import compute_energy
from .pipeline import NO_CANDIDATES, Phase, PipelineConfig, PipelineState, advance, run_pipeline

SEQ = "ACDEFGHIK"


def _small(**changes) -> PipelineConfig:
    cfg = PipelineConfig(
        seed=3,
        n_quaternion=2,
        n_monte_carlo=1,
        n_fragment=2,
        n_basin=2,
        mc_steps=20,
        budget=20,
    )
    return dataclasses.replace(cfg, **changes)


def test_small_run_succeeds():
    """A short chain with a small config yields a valid, finite, capped best model."""
    result = run_pipeline(SEQ, _small())
    assert result.success and result.error is None
    assert result.history == ["predict", "sample", "optimize", "select", "done"]
    best = result.best
    assert best is result.candidates[0]
    assert np.isfinite(best.energy.total) and abs(best.energy.total) <= ENERGY_CAP
    assert 0.0 <= best.quality <= 1.0
    assert len(best.structure.residues) == len(SEQ)
    assert any(c.minimization is not None for c in result.candidates)
    assert sum(result.summary["counts"].values()) == len(result.candidates)


def test_same_seed_same_result():
    """Runs with the same seed and config pick the same best candidate."""
    a = run_pipeline(SEQ, _small())
    b = run_pipeline(SEQ, _small())
    assert a.best.method == b.best.method and a.best.seed == b.best.seed
    np.testing.assert_allclose(a.best.energy.total, b.best.energy.total)
    np.testing.assert_allclose(a.best.structure.coordinates(), b.best.structure.coordinates())


def test_no_samplers_fails_cleanly():
    """With every sampler disabled the run fails with 'no valid candidates'."""
    cfg = _small(use_quaternion=False, use_monte_carlo=False, use_fragment=False, use_basin=False)
    result = run_pipeline(SEQ, cfg)
    assert not result.success
    assert result.error == NO_CANDIDATES
    assert result.history[-1] == "failed"
    assert result.best is None and result.candidates == []


def test_advance_walks_phases_in_order():
    """advance() moves PREDICT → SAMPLE → OPTIMIZE → SELECT → DONE and records timings."""
    state = PipelineState(sequence=SEQ, config=_small(skip_minimization=True))
    seen = [state.phase]
    while state.phase not in (Phase.DONE, Phase.FAILED):
        state = advance(state)
        seen.append(state.phase)
    assert seen == [Phase.PREDICT, Phase.SAMPLE, Phase.OPTIMIZE, Phase.SELECT, Phase.DONE]
    assert set(state.timings) == {"predict", "sample", "optimize", "select"}
    assert advance(state) is state


def test_priors_can_be_supplied():
    """Explicit SS and contacts replace the predicted ones."""
    cfg = _small(ss="CHHHHHHHC", contacts=[(0, 8)], skip_minimization=True)
    result = run_pipeline(SEQ, cfg)
    assert result.summary["ss"] == "CHHHHHHHC"
    assert result.summary["n_contacts"] == 1
    with pytest.raises(ValueError):
        run_pipeline(SEQ, _small(ss="HHH"))


def test_max_candidates_caps_dispatch():
    """max_candidates limits how many samples are built and scored."""
    result = run_pipeline(SEQ, _small(max_candidates=3, skip_minimization=True))
    assert result.summary["n_sampled"] == 3
    assert len(result.candidates) <= 3


def test_reference_metrics():
    """Passing a reference structure adds Cα-RMSD, TM-score and GDT_TS."""
    ref = build_backbone(SEQ, np.tile((-60.0, -45.0), (len(SEQ), 1)))
    result = run_pipeline(SEQ, _small(skip_minimization=True), reference=ref.to_parsed())
    m = result.summary["metrics"]
    assert m["n_res"] == len(SEQ)
    assert m["ca_rmsd"] >= 0.0 and 0.0 < m["tm_score"] <= 1.0 and 0.0 <= m["gdt_ts"] <= 1.0


def test_result_is_json_ready():
    """to_dict() serializes without custom encoders."""
    result = run_pipeline({"sequence": SEQ}, _small())
    text = json.dumps(result.to_dict())
    back = json.loads(text)
    assert back["success"] is True
    assert back["best"]["method"] in ("quaternion", "monte_carlo", "fragment", "basin")
    assert "diversity" in back["summary"]["ensemble"]
    assert back["summary"]["best_hbonds"]["n_hbonds"] >= 0


def test_invalid_input_raises():
    """Bad sequences and config values raise ValueError before any work."""
    with pytest.raises(ValueError):
        run_pipeline("", _small())
    with pytest.raises(ValueError):
        run_pipeline("ACDXZ", _small())
    with pytest.raises(ValueError):
        run_pipeline(SEQ, _small(strategy="newton"))
    with pytest.raises(ValueError):
        run_pipeline(SEQ, _small(n_workers=0))


def test_ensemble_ranking():
    """Lower energy wins; quality_weight trades energy against quality."""
    st = build_backbone("ACD")
    bd_low = compute_energy(st)
    bd_high = dataclasses.replace(bd_low, total=bd_low.total + 0.5)
    good = Candidate(np.zeros((3, 2)), st, bd_high, 1.0, "basin", 1)
    bad = Candidate(np.zeros((3, 2)), st, bd_low, 0.0, "fragment", 2)
    ens = Ensemble([good, bad])
    assert ens.best(quality_weight=0.0) is bad
    assert ens.best(quality_weight=1.0) is good
    assert ens.counts() == {"basin": 1, "fragment": 1}


if __name__ == "__main__":
    test_small_run_succeeds()
    test_same_seed_same_result()
    test_no_samplers_fails_cleanly()
    test_advance_walks_phases_in_order()
    test_priors_can_be_supplied()
    test_max_candidates_caps_dispatch()
    test_reference_metrics()
    test_result_is_json_ready()
    test_invalid_input_raises()
    test_ensemble_ranking()
    print("All tests passed.")
