import os

import pytest

from subalign.episodes import (
    SUBTITLE_EXTENSIONS,
    VIDEO_EXTENSIONS,
    collect_english_files,
    collect_episode_files,
    episode_sort_key,
    episode_token_from_path,
    normalize_episode_token,
    parse_episode_filter,
    resolve_media_file,
    season_start_offsets,
)
from subalign.exceptions import EpisodeNotFoundError, EpisodeTokenCollision, InvalidConfiguration


def _touch(root, *parts):
    path = os.path.join(str(root), *parts)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("")
    return path


@pytest.mark.parametrize("value,expected", [
    ("S04E30", "s4e30"),
    ("s04ep030", "s4e30"),
    ("4x30", "s4e30"),
    ("Show.Name.S01E02.1080p", "s1e2"),
    ("Show - 1x02 - Title", "s1e2"),
    ("Opening Credits", None),
    ("", None),
    (None, None),
])
def test_normalize_episode_token(value, expected):
    assert normalize_episode_token(value) == expected


def test_resolution_numbers_are_not_mistaken_for_episodes():
    assert normalize_episode_token("Movie 1920x1080") is None


def test_sort_key_orders_numerically():
    tokens = ["s2e1", "s1e10", "s1e2", "bogus"]
    assert sorted(tokens, key=episode_sort_key) == ["s1e2", "s1e10", "s2e1", "bogus"]


def test_leading_number_uses_season_folder(tmp_path):
    path = _touch(tmp_path, "Season 02", "03. The Return.mkv")
    assert episode_token_from_path(path) == "s2e3"


def test_leading_number_without_season_folder_is_unrecognized(tmp_path):
    path = _touch(tmp_path, "extras", "03. Interview.mkv")
    assert episode_token_from_path(path) is None


def test_parse_episode_filter():
    assert parse_episode_filter(None) is None
    assert parse_episode_filter("s1e1, S04E30,") == {"s1e1", "s4e30"}
    with pytest.raises(InvalidConfiguration):
        parse_episode_filter("s1e1,pilot")


def test_collect_skips_dot_files_and_other_extensions(tmp_path):
    _touch(tmp_path, "Show S01E01.mkv")
    _touch(tmp_path, ".Show S01E02.mkv")
    _touch(tmp_path, ".cache", "Show S01E03.mkv")
    _touch(tmp_path, "Show S01E04.nfo")
    _touch(tmp_path, "nested", "Show S02E01.mp4")

    found = collect_episode_files(str(tmp_path), VIDEO_EXTENSIONS)

    assert sorted(found) == ["s1e1", "s2e1"]


def test_collect_rejects_token_collisions(tmp_path):
    _touch(tmp_path, "Show S01E01.srt")
    _touch(tmp_path, "Show 1x01.ass")

    with pytest.raises(EpisodeTokenCollision):
        collect_episode_files(str(tmp_path), SUBTITLE_EXTENSIONS)


def test_missing_root_yields_nothing(tmp_path):
    assert collect_episode_files(str(tmp_path / "absent"), VIDEO_EXTENSIONS) == {}


def test_season_start_offsets():
    tokens = ["s1e1", "s1e12", "s2e1", "s2e13", "s3e2"]
    assert season_start_offsets(tokens) == {1: 0, 2: 12, 3: 25}


def test_english_absolute_numbers_map_through_japanese_seasons(tmp_path):
    jp_tokens = [f"s1e{i}" for i in range(1, 13)] + [f"s2e{i}" for i in range(1, 14)]
    _touch(tmp_path, "01 - Beginnings.srt")
    _touch(tmp_path, "13 - New Season.srt")
    _touch(tmp_path, "Episode 25.ass")
    _touch(tmp_path, "Show S02E02.srt")
    _touch(tmp_path, "99 - Unknown.srt")

    found = collect_english_files(str(tmp_path), jp_tokens)

    assert os.path.basename(found["s1e1"]) == "01 - Beginnings.srt"
    assert os.path.basename(found["s2e1"]) == "13 - New Season.srt"
    assert os.path.basename(found["s2e13"]) == "Episode 25.ass"
    assert os.path.basename(found["s2e2"]) == "Show S02E02.srt"
    assert len(found) == 4


def test_resolve_media_file(tmp_path):
    video = _touch(tmp_path, "videos", "Show S01E05.mkv")

    assert resolve_media_file(None, str(tmp_path / "videos"), "s1e5", VIDEO_EXTENSIONS, "Video") == video
    assert resolve_media_file(video, None, None, VIDEO_EXTENSIONS, "Video") == video
    with pytest.raises(EpisodeNotFoundError):
        resolve_media_file(None, str(tmp_path / "videos"), "s1e6", VIDEO_EXTENSIONS, "Video")
    with pytest.raises(EpisodeNotFoundError):
        resolve_media_file(str(tmp_path / "missing.mkv"), None, "s1e5", VIDEO_EXTENSIONS, "Video")
