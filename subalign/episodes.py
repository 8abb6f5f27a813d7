"""Episode token normalization and discovery of per-episode media files."""

import logging
import os
import re
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .exceptions import EpisodeNotFoundError, EpisodeTokenCollision, InvalidConfiguration

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = (".mkv", ".mp4", ".mov", ".webm")
SUBTITLE_EXTENSIONS = (".ass", ".srt")

_SEASON_EPISODE_RE = re.compile(r"s\s*0*(\d{1,2})\s*e(?:p)?\s*0*(\d{1,3})", re.IGNORECASE)
_CROSS_RE = re.compile(r"(?<!\d)(\d{1,2})x(\d{1,3})(?!\d)", re.IGNORECASE)
_TOKEN_RE = re.compile(r"^s(\d+)e(\d+)$", re.IGNORECASE)
_SEASON_DIR_RE = re.compile(r"^(?:season|s)[\s_.-]*0*(\d{1,2})$", re.IGNORECASE)
_LEADING_NUMBER_RE = re.compile(r"^\s*0*(\d{1,3})\s*[._ -]")
_ABSOLUTE_INDEX_RE = re.compile(r"^\s*0*(\d{1,3})\b")
_EPISODE_WORD_RE = re.compile(r"\bepisode\s*0*(\d{1,3})\b", re.IGNORECASE)


def normalize_episode_token(value) -> Optional[str]:
    """
    Canonical `s{season}e{episode}` token for strings like 'S04E30',
    's04ep030' or '4x30'; None when no episode can be recognized.
    """
    if value is None:
        return None
    text = str(value)
    m = _SEASON_EPISODE_RE.search(text) or _CROSS_RE.search(text)
    if not m:
        return None
    return f"s{int(m.group(1))}e{int(m.group(2))}"


def parse_episode_tuple(token: str) -> Optional[Tuple[int, int]]:
    """(season, episode) for a canonical token, else None."""
    m = _TOKEN_RE.match(str(token or ""))
    if not m:
        return None
    return int(m.group(1)), int(m.group(2))


def episode_sort_key(token: str) -> Tuple[float, float]:
    """Orders tokens by season then episode; unparseable tokens sort last."""
    parsed = parse_episode_tuple(token)
    if parsed is None:
        return float("inf"), float("inf")
    return float(parsed[0]), float(parsed[1])


def _season_from_dirs(file_path: str) -> Optional[int]:
    for part in reversed(os.path.dirname(file_path).split(os.sep)):
        m = _SEASON_DIR_RE.match(part.strip())
        if m:
            return int(m.group(1))
    return None


def episode_token_from_path(file_path: str) -> Optional[str]:
    """
    Token for a media file: from its basename, or for names like
    '03. Title.mkv' from the leading number plus a 'Season N' folder.
    """
    base = os.path.splitext(os.path.basename(file_path))[0]
    token = normalize_episode_token(base)
    if token:
        return token
    m = _LEADING_NUMBER_RE.match(base)
    if m:
        season = _season_from_dirs(file_path)
        if season is not None:
            return f"s{season}e{int(m.group(1))}"
    return None


def parse_episode_filter(raw: Optional[str]) -> Optional[Set[str]]:
    """
    Parses a comma separated episode list such as 's1e1,S04E30'.

    Raises:
        InvalidConfiguration: If an entry is not a recognizable episode.
    """
    if not raw:
        return None
    tokens = set()
    for part in (p.strip() for p in str(raw).split(",")):
        if not part:
            continue
        token = normalize_episode_token(part)
        if not token:
            raise InvalidConfiguration(f'Invalid episode token "{part}". Expected like s4e30.')
        tokens.add(token)
    return tokens


def list_files_recursive(root: str, extensions: Iterable[str]) -> List[str]:
    """Sorted files under `root` with one of `extensions`, skipping dot-entries."""
    if not root or not os.path.isdir(root):
        return []
    allowed = tuple(ext.lower() for ext in extensions)
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if not d.startswith(".")]
        for name in filenames:
            if name.startswith("."):
                continue
            if os.path.splitext(name)[1].lower() in allowed:
                found.append(os.path.join(dirpath, name))
    found.sort()
    return found


def _add_unique(mapping: Dict[str, str], token: str, file_path: str, root: str) -> None:
    existing = mapping.get(token)
    if existing is not None and existing != file_path:
        raise EpisodeTokenCollision(
            f"Files in {root} both map to episode {token}: {existing} and {file_path}")
    mapping[token] = file_path


def collect_episode_files(root: str, extensions: Iterable[str]) -> Dict[str, str]:
    """
    Maps episode token -> file for every recognizable file under `root`.

    Raises:
        EpisodeTokenCollision: If two files normalize to the same token.
    """
    mapping: Dict[str, str] = {}
    for file_path in list_files_recursive(root, extensions):
        token = episode_token_from_path(file_path)
        if not token:
            logger.debug(f"No episode token in file name, ignoring: {file_path}")
            continue
        _add_unique(mapping, token, file_path, root)
    return mapping


def season_start_offsets(tokens: Iterable[str]) -> Dict[int, int]:
    """
    Number of episodes preceding each season, from the highest episode seen
    per season. Used to map absolute episode numbers (01..89) onto seasons.
    """
    season_max: Dict[int, int] = {}
    for token in tokens:
        parsed = parse_episode_tuple(token)
        if parsed is None:
            continue
        season, episode = parsed
        season_max[season] = max(season_max.get(season, 0), episode)
    offsets = {}
    accumulated = 0
    for season in sorted(season_max):
        offsets[season] = accumulated
        accumulated += season_max[season]
    return offsets


def absolute_episode_index(file_path: str) -> Optional[int]:
    """Absolute episode number for names without a season, e.g. '27 - Title.srt'."""
    base = os.path.splitext(os.path.basename(file_path))[0]
    if normalize_episode_token(base):
        return None
    m = _ABSOLUTE_INDEX_RE.match(base) or _EPISODE_WORD_RE.search(base)
    return int(m.group(1)) if m else None


def collect_english_files(root: str, reference_tokens: Iterable[str]) -> Dict[str, str]:
    """
    Like collect_episode_files, but files named only by absolute episode
    number are mapped through the season structure of `reference_tokens`
    (normally the Japanese subtitle collection).

    Raises:
        EpisodeTokenCollision: If two files normalize to the same token.
    """
    reference_tokens = list(reference_tokens)
    offsets = season_start_offsets(reference_tokens)
    by_absolute: Dict[int, str] = {}
    for token in reference_tokens:
        parsed = parse_episode_tuple(token)
        if parsed and parsed[0] in offsets:
            by_absolute[offsets[parsed[0]] + parsed[1]] = token

    mapping: Dict[str, str] = {}
    for file_path in list_files_recursive(root, SUBTITLE_EXTENSIONS):
        token = episode_token_from_path(file_path)
        if not token:
            index = absolute_episode_index(file_path)
            token = by_absolute.get(index) if index is not None else None
            if token:
                logger.debug(f"Mapped absolute episode {index} to {token}: {file_path}")
        if not token:
            continue
        _add_unique(mapping, token, file_path, root)
    return mapping


def find_episode_file(root: str, token: str, extensions: Iterable[str]) -> Optional[str]:
    """The file under `root` for episode `token`, or None."""
    return collect_episode_files(root, extensions).get(token)


def resolve_media_file(explicit_path: Optional[str], root: Optional[str], token: Optional[str],
                       extensions: Iterable[str], kind: str) -> str:
    """
    An explicitly given file wins; otherwise the episode's file is looked up
    under `root`.

    Raises:
        EpisodeNotFoundError: If no file can be found.
    """
    if explicit_path:
        if not os.path.isfile(explicit_path):
            raise EpisodeNotFoundError(f"{kind} file not found: {explicit_path}")
        return explicit_path
    found = find_episode_file(root, token, extensions) if token and root else None
    if not found:
        raise EpisodeNotFoundError(f"{kind} not found for {token} in {root}")
    return found
