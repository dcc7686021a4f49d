"""Tests for the shared word-level matcher used by the scanner and the unlock engine."""

from worldforge.utils.text_matching import (
    contains_either_way,
    fuzzy_match,
    is_subset_of,
    normalize_name,
    significant_words,
    words_match,
)


class TestSignificantWords:

    def test_drops_stopwords_short_words_and_punctuation(self):
        assert significant_words("After entering the Temple!") == ["entering", "temple"]

    def test_deduplicates_in_order(self):
        assert significant_words("Temple temple TEMPLE gate") == ["temple", "gate"]

    def test_empty(self):
        assert significant_words("") == []

    def test_extra_ignore_words(self):
        assert significant_words("Lord Varen", ignore={"lord"}) == ["varen"]


class TestWordsMatch:

    def test_equal(self):
        assert words_match("temple", "temple")

    def test_containment(self):
        assert words_match("enter", "entering")

    def test_shared_root(self):
        assert words_match("dragons", "dragonfire")

    def test_short_words_need_containment(self):
        assert not words_match("orc", "ork")


class TestFuzzyMatch:

    def test_condition_matches_title(self):
        assert fuzzy_match("after entering the temple", "Enter the Temple")

    def test_symmetric_for_plain_words(self):
        assert fuzzy_match("Enter the Temple", "after entering the temple")

    def test_no_shared_words(self):
        assert not fuzzy_match("find the map", "slay the beast")

    def test_only_stopwords(self):
        assert not fuzzy_match("the and of", "the and of")

    def test_ignore_kind_words(self):
        assert fuzzy_match("Iron Guild", "Guild of Shadows")
        assert not fuzzy_match("Iron Guild", "Guild of Shadows", ignore={"guild"})


class TestNameHelpers:

    def test_normalize_drops_leading_article(self):
        assert normalize_name("  The   Thieves'  Guild ") == "thieves' guild"

    def test_contains_either_way_on_word_boundaries(self):
        assert contains_either_way("Varen", "Lord Varen")
        assert contains_either_way("Lord Varen", "Varen")
        assert not contains_either_way("Vare", "Lord Varen")

    def test_subset(self):
        assert is_subset_of("Gareth", "Gareth Blackwood")
        assert not is_subset_of("Gareth Stone", "Gareth Blackwood")
        assert not is_subset_of("the", "Gareth")
