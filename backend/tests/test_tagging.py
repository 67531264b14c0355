"""Tests for identifier and tag normalisation."""

from utils.tagging import normalize_identifier, normalize_tags


def test_normalize_identifier_strips_all_whitespace():
    assert normalize_identifier("  3567 8901 2345 678\t") == "356789012345678"


def test_normalize_identifier_preserves_case():
    assert normalize_identifier("sn-AbC") == "sn-AbC"


def test_normalize_identifier_non_string():
    assert normalize_identifier(8944110000000000001) == "8944110000000000001"


def test_normalize_identifier_empty_becomes_none():
    assert normalize_identifier(None) is None
    assert normalize_identifier("") is None
    assert normalize_identifier("   ") is None


def test_normalize_tags_sorted_and_deduplicated():
    assert normalize_tags(["spare", "fleet", "spare", " fleet "]) == ["fleet", "spare"]


def test_normalize_tags_drops_empty_and_none():
    assert normalize_tags(["", "  ", None, "x"]) == ["x"]


def test_normalize_tags_comma_separated_string():
    assert normalize_tags("b, a,,c") == ["a", "b", "c"]


def test_normalize_tags_empty_input():
    assert normalize_tags(None) == []
    assert normalize_tags([]) == []
