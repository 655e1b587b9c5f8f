import pytest

from chant.common.levenshtein import EditDistance, levenshtein


def test_levenshtein_classic_examples():
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("閃光上", "閃光よ") == 1
    assert levenshtein("烙印を", "烙印を") == 0


def test_levenshtein_empty_strings():
    assert levenshtein("", "") == 0
    assert levenshtein("", "熱風とともに") == 6
    assert levenshtein("獣と", "") == 2


def test_levenshtein_is_symmetric():
    pairs = [("猫犬。", "猿犬"), ("凍結彼方に", "東結彼方こ"), ("", "abc"), ("過ぎ去り", "授かり")]
    for a, b in pairs:
        assert levenshtein(a, b) == levenshtein(b, a)


def test_substitution_cost_two_never_beats_insert_plus_delete():
    assert levenshtein("a", "b", substitution_cost=2) == 2
    assert levenshtein("abc", "abd", substitution_cost=2) == 2
    assert levenshtein("abc", "xyz", substitution_cost=3) == 6


def test_edit_distance_binds_cost():
    dist = EditDistance(substitution_cost=2)
    assert dist.distance("火を", "水を") == 2
    assert EditDistance().distance("火を", "水を") == 1


def test_edit_distance_rejects_negative_cost():
    with pytest.raises(ValueError):
        EditDistance(-1)


def test_weighted_substitution_on_spell_text():
    assert levenshtein("閃光上", "閃光よ", substitution_cost=2) == 2
    assert EditDistance(2).distance("凍結彼方に", "東結彼方こ") == 4
