"""Tests for item-name normalization and fuzzy matching."""

import pytest

from automation.fuzzy import fuzzy_match, normalize


def test_normalize_strips_punctuation_and_case():
    assert normalize("Chicken Bowl!") == "chicken bowl"


def test_normalize_collapses_whitespace():
    assert normalize("  Chips   &  Guac ") == "chips guac"


@pytest.mark.parametrize("candidate, query", [
    ("Chicken Burrito Bowl", "Chicken Bowl"),
    ("Chicken Bowl", "chicken bowl!"),
    ("Large Chips & Guacamole", "Chips"),
    ("Chips", "Chips & Guacamole"),
    ("Spicy Chicken Sandwich", "chicken sandwich spicy"),
])
def test_matches(candidate, query):
    assert fuzzy_match(candidate, query)


@pytest.mark.parametrize("candidate, query", [
    ("Salad", "Burger"),
    ("Veggie Bowl", "Chicken Burrito Steak"),
    ("", "Burger"),
    ("Burger", ""),
    (None, "Burger"),
    ("!!!", "Burger"),
])
def test_non_matches(candidate, query):
    assert not fuzzy_match(candidate, query)


def test_short_query_words_ignored():
    # Only "of" and "a" survive normalization as words and both are too short
    assert not fuzzy_match("Cup Soup", "a of")


def test_overlap_threshold():
    # 2 of 3 long query words (67%) is below the 70% bar
    assert not fuzzy_match("Chicken Rice Plate", "chicken rice burrito")
    # 3 of 4 (75%) clears it
    assert fuzzy_match("Chicken Rice Bean Plate", "plate bean rice taco")
