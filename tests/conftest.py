import pytest

from subalign.models import AsrSegment, Cue

DISTINCT_LINES = [
    "こんにちは",
    "ありがとう",
    "さようなら",
    "いただきます",
    "すみません",
    "おやすみ",
    "げんきですか",
    "だいじょうぶ",
    "わかりました",
    "ごめんなさい",
]


@pytest.fixture()
def shifted_pairs():
    """Ten distinct lines, five seconds apart, with the cues 500 ms later than the speech."""
    segments = [AsrSegment(start_ms=i * 5000, end_ms=i * 5000 + 2000, raw_text=text)
                for i, text in enumerate(DISTINCT_LINES)]
    cues = [Cue(start_ms=i * 5000 + 500, end_ms=i * 5000 + 2500, raw_text=text)
            for i, text in enumerate(DISTINCT_LINES)]
    return segments, cues
