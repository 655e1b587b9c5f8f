import pytest

from chant.common.lexicon import StartupDataError
from chant.common.misread import MisreadTable


def test_candidates_rewrite_variants_then_original():
    table = MisreadTable({"を": ["ち", "そ"], "人": ["入"]})
    assert list(table.candidates("熱ち")) == ["熱を", "熱ち"]
    assert list(table.candidates("入そ")) == ["入を", "人そ", "入そ"]


def test_candidates_replace_every_occurrence():
    table = MisreadTable({"を": ["ち"]})
    assert list(table.candidates("ちち")) == ["をを", "ちち"]


def test_canonical_key_is_not_rewritten():
    table = MisreadTable({"火": ["大"], "を": ["ち"]})
    assert list(table.candidates("火")) == ["火"]
    assert list(table.candidates("猫")) == ["猫"]


def test_lookup_helpers():
    table = MisreadTable({"を": ["ち", "そ"]})
    assert "を" in table
    assert "ち" not in table
    assert table.variants("を") == ("ち", "そ")
    assert table.variants("に") == ()
    assert len(table) == 1


@pytest.mark.parametrize("bad", [{"": ["ち"]}, {"を": "ち"}, {"を": ["ち", ""]}, {"を": [None]}])
def test_invalid_tables_are_fatal(bad):
    with pytest.raises(StartupDataError):
        MisreadTable(bad)
