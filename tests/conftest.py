"""Shared fixtures: small collections written to a temporary public/ root."""

import json
import os
import sys
from pathlib import Path

import pytest

# Repository root on sys.path so the package imports without an install
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from pair_index.config import default_config


def attrs(**traits):
    """Metadata attribute list from internal-ish names: base='Wojak', face_wear='Visor'."""
    names = {"face_wear": "Face Wear"}
    return [{"trait_type": names.get(k, k.capitalize()), "value": v} for k, v in traits.items()]


def record(item_id, **traits):
    return {"edition": item_id, "image": f"ipfs://img/{item_id}.png", "attributes": attrs(**traits)}


def write_inputs(root: Path, records, ranks, analysis=None):
    root.mkdir(parents=True, exist_ok=True)
    (root / "metadata.json").write_text(json.dumps(records), encoding="utf-8")
    (root / "nftRarityData.json").write_text(
        json.dumps({str(k): [v, "x"] for k, v in ranks.items()}), encoding="utf-8")
    if analysis is not None:
        path = root / "assets" / "BigPulp" / "all_nft_analysis.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(analysis), encoding="utf-8")


@pytest.fixture
def scenario_records():
    return [
        record(1, base="Wojak", head="Crown"),
        record(2, base="Wojak", head="Crown"),
        record(3, base="Soyjak", head="Crown"),
    ]


@pytest.fixture
def scenario_ranks():
    return {1: 10, 2: 50, 3: 5}


@pytest.fixture
def make_cfg(tmp_path):
    def _make(records, ranks, analysis=None, **overrides):
        root = tmp_path / "public"
        write_inputs(root, records, ranks, analysis)
        cfg = default_config(root)
        cfg.workers = 2
        for k, v in overrides.items():
            setattr(cfg, k, v)
        return cfg
    return _make


@pytest.fixture
def scenario_cfg(make_cfg, scenario_records, scenario_ranks):
    return make_cfg(scenario_records, scenario_ranks,
                    categories=("base", "head"), pairing_categories=("base", "head"),
                    collection_size=3)
