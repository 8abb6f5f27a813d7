import json

from subalign.offsets_store import OffsetsFile, load_offsets, record_episode_offset


def test_legacy_layouts_are_normalized():
    raw = {
        "defaultMs": 120,
        "episodes": {"S01E02": 300, "bogus": 5},
        "bySeason": {"season 2": -400},
        "s3e4": "250",
        "s4": 900,
    }

    offsets = OffsetsFile.from_raw(raw)

    assert offsets.default == 120
    assert offsets.by_episode == {"s1e2": 300, "s3e4": 250}
    assert offsets.by_season == {"s2": -400, "s4": 900}


def test_offset_for_falls_back_from_episode_to_season_to_default():
    offsets = OffsetsFile(default=50, by_episode={"s1e1": 700}, by_season={"s2": -300})

    assert offsets.offset_for("s1e1") == 700
    assert offsets.offset_for("s2e9") == -300
    assert offsets.offset_for("s3e1") == 50


def test_non_object_documents_load_as_empty():
    assert OffsetsFile.from_raw(["s1e1", 3]).by_episode == {}


def test_missing_file_loads_empty(tmp_path):
    offsets = load_offsets(str(tmp_path / "sub-offsets.json"))
    assert offsets.default == 0
    assert offsets.by_episode == {}


def test_record_writes_only_the_canonical_layout(tmp_path):
    path = tmp_path / "sub-offsets.json"
    path.write_text(json.dumps({"default": 10, "bySeason": {"s1": 100}, "s2e3": 40}), encoding="utf-8")

    record_episode_offset(str(path), "s1e1", 500)

    written = json.loads(path.read_text(encoding="utf-8"))
    assert set(written) == {"default", "byEpisode", "updatedAt"}
    assert written["default"] == 10
    assert written["byEpisode"] == {"s2e3": 40, "s1e1": 500}
    assert written["updatedAt"].endswith("Z")
    assert [p.name for p in tmp_path.iterdir()] == ["sub-offsets.json"]
