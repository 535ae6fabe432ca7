import json

import pytest

from pair_index.errors import WriteError
from pair_index.writer import prepare_dir, render_json, write_json


def test_header_fields_come_first_and_order_is_kept():
    text = render_json({"zeta": 1, "alpha": {"b": 2, "a": 1}}, "1.0", "2026-10-17T00:00:00.000Z")
    doc = json.loads(text)
    assert list(doc) == ["schema_version", "generated_at", "zeta", "alpha"]
    assert list(doc["alpha"]) == ["b", "a"]
    assert text.endswith("}\n")


def test_write_json_replaces_file_and_leaves_no_temp(tmp_path):
    path = tmp_path / "out" / "doc.json"
    write_json(path, {"v": 1}, "1.0", None)
    size = write_json(path, {"v": 2, "name": "Bob’s"}, "1.0", None)

    assert json.loads(path.read_text(encoding="utf-8")) == {"schema_version": "1.0", "v": 2, "name": "Bob’s"}
    assert size == path.stat().st_size
    assert [p.name for p in path.parent.iterdir()] == ["doc.json"]


def test_write_json_failure_raises_write_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a dir", encoding="utf-8")
    with pytest.raises(WriteError):
        write_json(blocker / "doc.json", {"v": 1}, "1.0", None)


def test_prepare_dir_failure_raises_write_error(tmp_path):
    blocker = tmp_path / "assets"
    blocker.write_text("not a dir", encoding="utf-8")
    with pytest.raises(WriteError) as exc:
        prepare_dir(blocker / "BigPulp" / "combo_index_v1")
    assert exc.value.path == blocker / "BigPulp" / "combo_index_v1"
