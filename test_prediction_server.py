"""
Tests for the prediction HTTP server using Flask's test client.
Minimization is switched off so each request finishes quickly.

Run: pytest test_prediction_server.py -v
"""

from __future__ import annotations

import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import prediction_server  # noqa: E402

SEQ = "ACDEFGHIK"


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(prediction_server, "USE_FAST_PREDICT", True)
    monkeypatch.setattr(prediction_server, "DEFAULT_SAMPLES", 1)
    prediction_server.app.config["TESTING"] = True
    with prediction_server.app.test_client() as c:
        yield c


def test_health_and_help(client):
    """/health answers OK; /help lists the endpoints."""
    assert client.get("/health").data == b"OK\n"
    body = client.get("/help").get_data(as_text=True)
    assert "/predict" in body and "strategy=" in body


def test_predict_json(client):
    """A JSON request returns the summary and the best model as PDB text."""
    resp = client.post("/predict", json={"sequence": SEQ, "seed": 1, "samples": 1})
    assert resp.status_code == 200
    out = resp.get_json()
    assert out["success"] is True
    assert out["summary"]["n_residues"] == len(SEQ)
    assert "ATOM" in out["pdb"] and "candidates" not in out


def test_predict_fasta_body_as_pdb(client):
    """Raw FASTA in the body with format=pdb returns PDB text."""
    resp = client.post("/predict?format=pdb", data=f">q\n{SEQ}\n", content_type="text/plain")
    assert resp.status_code == 200
    assert resp.mimetype == "chemical/x-pdb"
    text = resp.get_data(as_text=True)
    assert text.startswith("REMARK") and text.rstrip().endswith("END")


def test_predict_bad_input(client):
    """Missing sequence, unknown residues and bad parameters are 400s."""
    assert client.post("/predict", json={}).status_code == 400
    assert client.post("/predict", json={"sequence": "ACDXZ"}).status_code == 400
    assert client.post("/predict", json={"sequence": SEQ, "samples": "many"}).status_code == 400
    assert client.post("/predict", json={"sequence": SEQ, "samples": 500}).status_code == 400
    assert client.post("/predict", json={"sequence": SEQ, "strategy": "newton"}).status_code == 400


def test_config_from_params():
    """Samples fan out to every sampler; Monte Carlo gets a quarter."""
    cfg = prediction_server.config_from_params({"samples": "8", "seed": "5", "strategy": "LBFGS"})
    assert cfg.seed == 5 and cfg.strategy == "lbfgs"
    assert (cfg.n_quaternion, cfg.n_monte_carlo, cfg.n_fragment, cfg.n_basin) == (8, 2, 8, 8)
