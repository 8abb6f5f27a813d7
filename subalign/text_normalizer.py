"""Text canonicalization and similarity used to compare subtitle cues with ASR output."""

import re
from typing import Optional, Set

_STYLE_OVERRIDE_RE = re.compile(r"\{[^}]*\}")
_TAG_RE = re.compile(r"<[^>]*>")
_BRACKET_RE = re.compile(r"\[[^\]]*\]")
_PAREN_RE = re.compile(r"[（(][^）)]*[）)]")
_WHITESPACE_RE = re.compile(r"\s+")
# Han ideographs (incl. iteration mark), hiragana, katakana (full and half width), ASCII alphanumerics.
_DISALLOWED_RE = re.compile(
    r"[^"
    r"々〇〡-〩㐀-䶿一-鿿豈-﫿"
    r"ぁ-ゖゝ-ゟ"
    r"ァ-ヺヽ-ヿㇰ-ㇿｦ-ｯｱ-ﾝ"
    r"a-zA-Z0-9"
    r"]"
)


def normalize_text(text: Optional[str]) -> str:
    """
    Reduces subtitle or transcript text to a canonical comparable form.

    Strips ASS override blocks, HTML-like tags, bracketed annotations and
    parenthetical asides, drops whitespace and anything that is not a CJK
    ideograph, kana or ASCII alphanumeric, then lowercases. Never fails.
    """
    if not text:
        return ""
    s = str(text)
    s = _STYLE_OVERRIDE_RE.sub("", s)
    s = _TAG_RE.sub("", s)
    s = _BRACKET_RE.sub("", s)
    s = _PAREN_RE.sub("", s)
    s = _WHITESPACE_RE.sub("", s)
    s = _DISALLOWED_RE.sub("", s)
    return s.lower()


def bigrams(s: str) -> Set[str]:
    """Character bigrams of s; a single character is its own singleton set."""
    if len(s) <= 1:
        return {s} if s else set()
    return {s[i:i + 2] for i in range(len(s) - 1)}


def dice_coefficient(a: str, b: str) -> float:
    """Bigram Dice similarity in [0, 1] between two normalized strings."""
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    set_a = bigrams(a)
    set_b = bigrams(b)
    intersection = len(set_a & set_b)
    return (2 * intersection) / ((len(set_a) + len(set_b)) or 1)
