"""
Backbone prediction HTTP server: FASTA in → PDB (or JSON summary + PDB) out.

POST /predict with body = FASTA, or JSON / form (sequence=, seed=, samples=, strategy=, format=).
format=pdb returns PDB text; otherwise JSON {success, summary, best, pdb}.
GET /health → 200 OK. GET /help → usage.
Errors: invalid input → 400, no valid candidates → 422, anything else → 500.
Env: QUATFOLD_SEED, QUATFOLD_WORKERS, QUATFOLD_STRATEGY, QUATFOLD_SAMPLES (per sampler),
QUATFOLD_FAST=1 to skip minimization.
Run from repo root: gunicorn -w 1 -b 127.0.0.1:8050 prediction_server:app
"""

from __future__ import annotations

import os
import sys

from flask import Flask, Response, jsonify, request

# Ensure repo root is on path when run via gunicorn
if __name__ != "__main__":
    _root = os.path.dirname(os.path.abspath(__file__))
    if _root not in sys.path:
        sys.path.insert(0, _root)

from quatfold.proteins.pdb_io import parse_fasta, structure_to_pdb
from quatfold.proteins.pipeline import PipelineConfig, run_pipeline

DEFAULT_SEED = int(os.environ.get("QUATFOLD_SEED", "42"))
DEFAULT_WORKERS = int(os.environ.get("QUATFOLD_WORKERS", "1"))
DEFAULT_STRATEGY = os.environ.get("QUATFOLD_STRATEGY", "auto").strip().lower()
DEFAULT_SAMPLES = int(os.environ.get("QUATFOLD_SAMPLES", "4"))
USE_FAST_PREDICT = os.environ.get("QUATFOLD_FAST", "").strip().lower() in ("1", "true", "yes")
MAX_SAMPLES = 50

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = 2 * 1024 * 1024  # 2 MB max FASTA


def _request_params() -> dict:
    """Merge JSON, form and raw-body FASTA into one parameter dict."""
    params: dict = {}
    if request.is_json:
        params.update(request.get_json(silent=True) or {})
    elif request.form:
        params.update({k: request.form.get(k) for k in request.form})
    if not params.get("sequence") and not params.get("fasta"):
        raw = request.get_data(as_text=True)
        if raw and raw.strip():
            params["sequence"] = raw.strip()
    params.update({k: v for k, v in request.args.items() if k not in params})
    return params


def _int_param(params: dict, key: str, default: int) -> int:
    value = params.get(key)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer, got {value!r}") from None


def config_from_params(params: dict) -> PipelineConfig:
    samples = _int_param(params, "samples", DEFAULT_SAMPLES)
    if not 1 <= samples <= MAX_SAMPLES:
        raise ValueError(f"samples must be in [1, {MAX_SAMPLES}]")
    return PipelineConfig(
        seed=_int_param(params, "seed", DEFAULT_SEED),
        n_quaternion=samples,
        n_monte_carlo=max(1, samples // 4),
        n_fragment=samples,
        n_basin=samples,
        strategy=str(params.get("strategy") or DEFAULT_STRATEGY).strip().lower(),
        n_workers=DEFAULT_WORKERS,
        skip_minimization=USE_FAST_PREDICT,
    )


@app.route("/health", methods=["GET"])
def health():
    return Response("OK\n", status=200, mimetype="text/plain")


@app.route("/help", methods=["GET"])
def help_page():
    body = """quatfold prediction server: help

Submit: POST /predict with FASTA in the body, or JSON / form fields:
  sequence= (or fasta=)  one-letter sequence or FASTA text (required)
  seed=                  integer RNG seed (default {seed})
  samples=               conformations per sampler, 1..{max_samples} (default {samples})
  strategy=              auto | gentle | lbfgs | annealing | hybrid (default {strategy})
  format=pdb             return PDB text instead of JSON

Endpoints:
  GET  /help    this message
  GET  /health  liveness
  POST /predict structure prediction
""".format(seed=DEFAULT_SEED, samples=DEFAULT_SAMPLES, max_samples=MAX_SAMPLES, strategy=DEFAULT_STRATEGY)
    return Response(body, status=200, mimetype="text/plain")


@app.route("/predict", methods=["POST"])
def predict():
    """Run the pipeline synchronously and return the best model."""
    params = _request_params()
    text = params.get("sequence") or params.get("fasta")
    if not text:
        return Response("Missing FASTA/sequence in body, JSON, or form 'sequence'/'fasta'\n", status=400, mimetype="text/plain")
    try:
        sequence = parse_fasta(str(text))
        config = config_from_params(params)
        result = run_pipeline(sequence, config)
    except ValueError as e:
        return Response(f"{e}\n", status=400, mimetype="text/plain")
    except Exception:
        app.logger.exception("prediction failed")
        return Response("Internal error during prediction\n", status=500, mimetype="text/plain")

    if not result.success:
        app.logger.warning("prediction for %d residues failed: %s", len(sequence), result.error)
        return jsonify({"success": False, "error": result.error, "summary": result.summary}), 422

    remarks = [
        f"quatfold best of {len(result.candidates)} candidates ({result.best.method})",
        f"energy {result.best.energy.total:.3f} kcal/mol quality {result.best.quality:.2f}",
    ]
    pdb = structure_to_pdb(result.best.structure, remarks=remarks)
    app.logger.info("predicted %d residues: energy %.3f", len(sequence), result.best.energy.total)
    if str(params.get("format", "")).lower() == "pdb":
        return Response(pdb, status=200, mimetype="chemical/x-pdb")
    out = result.to_dict()
    out.pop("candidates", None)
    out["pdb"] = pdb
    return jsonify(out)


if __name__ == "__main__":
    app.run(host="127.0.0.1", port=8050, threaded=True)
