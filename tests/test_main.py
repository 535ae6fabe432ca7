import json

from conftest import record, write_inputs
from pair_index.autotest.autotest_index import run_checks
from pair_index.config import default_config
from pair_index.main import main


def _collection():
    recs = []
    for i in range(1, 31):
        recs.append(record(
            i,
            base=["Wojak", "Soyjak", "Alien"][i % 3],
            face=["Smile", "Frown"][i % 2],
            mouth=["Pipe", "Gum", "Grin", "Tongue", "Fang"][i % 5],
            face_wear=["Visor", "Shades"][(i // 2) % 2],
            head=["Crown", "Cap", "Halo", "Horns"][i % 4],
            clothes=["Suit", "Hoodie", "Robe"][(i // 3) % 3],
            background=["Blue", "Red"][(i // 5) % 2],
        ))
    recs[4]["attributes"] = recs[4]["attributes"][:-1]   # item 5: no background
    return recs


def test_end_to_end_run(tmp_path, capsys):
    root = tmp_path / "public"
    ranks = {i: 31 - i for i in range(1, 31) if i != 9}
    analysis = {"3": {"s_tier_traits": [{"category": "Head", "trait": "Horns"}]}}
    write_inputs(root, _collection(), ranks, analysis)

    code = main(["--root", str(root), "--collection-size", "32", "--workers", "2",
                 "--max-pairs-per-group", "500"])
    assert code == 0

    cfg = default_config(root)
    cfg.max_pairs_per_group = 500
    inverted = json.loads((cfg.combo_dir / "inverted_index.json").read_text(encoding="utf-8"))
    # strict policy drops item 5 from the combo artifacts
    assert all(5 not in ids for ids in inverted["traits"].values())

    index = json.loads(cfg.rare_pairings_json.read_text(encoding="utf-8"))
    assert index["schema_version"] == "1.3"
    # background is not a pairing category, so item 5 is complete there; 31 and 32 are filled
    assert index["input_counts"]["total_nfts_processed"] == 32
    assert index["normalization_report"]["missing_traits_filled"] == 2
    assert set(index["views"]["primary"]) == set(cfg.pairing_categories)
    assert any(e["provenance_bonus"] for g in index["views"]["primary"]["head"].values() for e in g["items"])

    assert len(list(cfg.families_dir.glob("*.json"))) == 256

    suite = run_checks(cfg)
    assert suite.summary()[1] == 0
    out = capsys.readouterr().out
    assert "Summary: PASS=" in out


def test_missing_input_exits_non_zero(tmp_path):
    root = tmp_path / "public"
    root.mkdir()
    assert main(["--root", str(root), "--do", "combo"]) == 1


def test_malformed_analysis_is_fatal(tmp_path):
    root = tmp_path / "public"
    write_inputs(root, _collection(), {1: 1})
    path = default_config(root).analysis_json
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("[oops", encoding="utf-8")
    assert main(["--root", str(root), "--do", "pairings", "--no-check"]) == 1


def test_unwritable_output_root_exits_non_zero(tmp_path):
    root = tmp_path / "public"
    write_inputs(root, _collection(), {1: 1})
    (root / "assets").write_text("not a dir", encoding="utf-8")
    assert main(["--root", str(root), "--do", "combo", "--no-check"]) == 1
    assert main(["--root", str(root), "--do", "pairings", "--no-check"]) == 1
