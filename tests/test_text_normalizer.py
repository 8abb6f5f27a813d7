import pytest

from subalign.text_normalizer import bigrams, dice_coefficient, normalize_text


def test_strips_markup_and_annotations():
    assert normalize_text(r"{\an8}<i>Hello</i> [music] (laughs) World!") == "helloworld"


def test_strips_full_width_parentheticals():
    assert normalize_text("（笑）ありがとう、ございます。") == "ありがとうございます"


def test_keeps_kanji_kana_and_half_width_katakana():
    assert normalize_text("今日は 晴れ　ｶﾀｶﾅ カタカナ") == "今日は晴れｶﾀｶﾅカタカナ"


@pytest.mark.parametrize("value", [None, "", "   ", "♪～♪", "!!!"])
def test_empty_or_symbol_only_text_normalizes_to_empty(value):
    assert normalize_text(value) == ""


def test_bigrams_of_short_strings():
    assert bigrams("") == set()
    assert bigrams("a") == {"a"}
    assert bigrams("abca") == {"ab", "bc", "ca"}


def test_dice_identity_and_empty():
    assert dice_coefficient("abc", "abc") == 1.0
    assert dice_coefficient("", "abc") == 0.0
    assert dice_coefficient("abc", "") == 0.0


@pytest.mark.parametrize("a,b", [
    ("ありがとう", "ありがとうございます"),
    ("night", "nacht"),
    ("abcdef", "uvwxyz"),
    ("a", "ab"),
])
def test_dice_is_bounded_and_symmetric(a, b):
    forward = dice_coefficient(a, b)
    assert 0.0 <= forward <= 1.0
    assert forward == dice_coefficient(b, a)


def test_dice_of_disjoint_strings_is_zero():
    assert dice_coefficient("abcdef", "uvwxyz") == 0.0
