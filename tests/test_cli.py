import json
import logging

import pytest

from subalign.cli import CLIHandler, apply_overrides, search_params_from_config
from subalign.config_loader import DEFAULT_CONFIG, merge_config

SRT_TEXT = """1
00:00:10,500 --> 00:00:12,500
こんにちは

2
00:00:15,500 --> 00:00:17,500
ありがとう

3
00:00:20,500 --> 00:00:22,500
さようなら
"""


@pytest.fixture()
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    yield tmp_path
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()


def _run(argv):
    with pytest.raises(SystemExit) as excinfo:
        CLIHandler().run(argv)
    return excinfo.value.code


def test_estimate_from_whisper_json(workspace):
    (workspace / "ep.srt").write_text(SRT_TEXT, encoding="utf-8")
    segments = [{"start": s, "end": s + 2, "text": t}
                for s, t in [(10.0, "こんにちは"), (15.0, "ありがとう"), (20.0, "さようなら")]]
    (workspace / "asr.json").write_text(json.dumps({"segments": segments}), encoding="utf-8")

    code = _run(["estimate", "--sub-file", "ep.srt", "--asr-json", "asr.json",
                 "--min-offset-ms", "-2000", "--max-offset-ms", "2000", "--verbose"])

    assert code == 0
    assert (workspace / "logs" / "subalign.log").exists()


def test_estimate_with_missing_input_exits_with_one(workspace):
    (workspace / "ep.srt").write_text(SRT_TEXT, encoding="utf-8")

    assert _run(["estimate", "--sub-file", "ep.srt", "--asr-json", "absent.json"]) == 1


def test_invalid_search_range_exits_with_one(workspace):
    (workspace / "ep.srt").write_text(SRT_TEXT, encoding="utf-8")
    (workspace / "asr.json").write_text("[]", encoding="utf-8")

    assert _run(["estimate", "--sub-file", "ep.srt", "--asr-json", "asr.json",
                 "--min-offset-ms", "100", "--max-offset-ms", "100"]) == 1


def test_explicit_missing_config_exits_with_one(workspace):
    assert _run(["--config", "nope.yaml", "estimate", "--sub-file", "a.srt", "--asr-json", "b.json"]) == 1


def test_cli_flags_override_config():
    args = CLIHandler().parser.parse_args([
        "--device", "cpu", "align-episode", "--episode", "s1e1", "--jp-subs-dir", "subs/jp",
        "--sample-sec", "90", "--min-offset-ms", "-8000",
    ])

    config = apply_overrides(merge_config(DEFAULT_CONFIG, {}), args)

    assert config["device"] == "cpu"
    assert config["jp_subs_dir"] == "subs/jp"
    assert config["sample_sec"] == 90
    assert search_params_from_config(config).min_offset_ms == -8000
    assert DEFAULT_CONFIG["search"]["min_offset_ms"] == -5000
