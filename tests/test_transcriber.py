import json

import pytest

from subalign.exceptions import TranscriptionError
from subalign.transcriber import load_asr_segments, segments_from_whisper


def test_whisper_segments_are_converted_to_milliseconds():
    segments = segments_from_whisper([
        {"start": 1.25, "end": 2.5, "text": " ありがとう "},
        {"start_time": "3", "end_time": "4.0004", "text": "こんにちは"},
        {"startTime": 5, "endTime": 6, "text": "さようなら"},
    ])

    assert [(s.start_ms, s.end_ms, s.raw_text) for s in segments] == [
        (1250, 2500, "ありがとう"),
        (3000, 4000, "こんにちは"),
        (5000, 6000, "さようなら"),
    ]


def test_malformed_and_empty_segments_are_skipped():
    segments = segments_from_whisper([
        {"start": "soon", "end": 2, "text": "x"},
        {"start": 1, "text": "no end"},
        {"start": 1, "end": 2, "text": "   "},
        "not a segment",
        {"start": 0, "end": 1, "text": "ok"},
    ])

    assert [s.raw_text for s in segments] == ["ok"]


def test_load_accepts_an_object_with_segments(tmp_path):
    path = tmp_path / "asr.json"
    path.write_text(json.dumps({"text": "...", "segments": [{"start": 0, "end": 1, "text": "はい"}]}),
                    encoding="utf-8")

    assert [s.raw_text for s in load_asr_segments(str(path))] == ["はい"]


def test_load_accepts_a_bare_list(tmp_path):
    path = tmp_path / "asr.json"
    path.write_text(json.dumps([{"start": 0, "end": 1, "text": "はい"}]), encoding="utf-8")

    assert len(load_asr_segments(str(path))) == 1


@pytest.mark.parametrize("content", ['{"segments": "nope"}', "{not json"])
def test_load_rejects_bad_documents(tmp_path, content):
    path = tmp_path / "asr.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(TranscriptionError):
        load_asr_segments(str(path))


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_asr_segments(str(tmp_path / "absent.json"))
