"""
Tests for fact validation and near-duplicate detection.
"""

import pytest

from kimble.dedup import (
    DuplicateFactError,
    InvalidFactError,
    check_candidate,
    edit_distance,
    extract_keywords,
    is_duplicate,
    is_valid_fact,
    keyword_overlap,
    similarity_ratio,
)


# ─────────────────────────────────────────────────────────────
# edit_distance / similarity_ratio
# ─────────────────────────────────────────────────────────────

class TestEditDistance:

    def test_kitten_sitting(self):
        assert edit_distance("kitten", "sitting") == 3

    @pytest.mark.parametrize("s", ["", "a", "beholder", "The Tarrasque is a monster."])
    def test_identity_is_zero(self, s):
        assert edit_distance(s, s) == 0

    @pytest.mark.parametrize("a,b", [
        ("kitten", "sitting"),
        ("flaw", "lawn"),
        ("", "owlbear"),
        ("mind flayer", "illithid"),
        ("Vecna", "vecna"),
    ])
    def test_symmetric(self, a, b):
        assert edit_distance(a, b) == edit_distance(b, a)

    def test_empty_side_is_other_length(self):
        assert edit_distance("", "dragon") == 6
        assert edit_distance("dragon", "") == 6

    def test_case_sensitive(self):
        assert edit_distance("Lich", "lich") == 1


class TestSimilarityRatio:

    def test_identical_is_one(self):
        assert similarity_ratio("Sigil", "Sigil") == 1.0

    def test_both_empty_is_one(self):
        assert similarity_ratio("", "") == 1.0

    def test_ignores_case(self):
        assert similarity_ratio("LADY OF PAIN", "lady of pain") == 1.0

    def test_formula(self):
        # distance 3, longest length 7
        assert similarity_ratio("kitten", "sitting") == pytest.approx(4 / 7)


# ─────────────────────────────────────────────────────────────
# Keywords
# ─────────────────────────────────────────────────────────────

class TestKeywords:

    def test_stop_and_short_words_removed(self):
        keywords = extract_keywords("The lich is in the tomb with a wand.")
        assert "the" not in keywords
        assert "with" not in keywords
        assert "is" not in keywords
        assert "lich" in keywords
        assert "tomb" in keywords
        assert "wand" in keywords

    def test_plural_stemming(self):
        keywords = extract_keywords("Dragons hoard treasures in cities")
        assert {"dragon", "hoard", "treasure", "city"} <= keywords

    def test_synonyms_fold_together(self):
        assert extract_keywords("creature") == extract_keywords("monster")
        assert "destroy" in extract_keywords("it levels towns")

    def test_overlap_relative_to_candidate(self):
        # candidate keywords: beholder, floating, eyestalk ; 2 of 3 shared
        overlap = keyword_overlap("beholder floating eyestalks", "a beholder with eyestalks and a cone")
        assert overlap == pytest.approx(2 / 3)

    def test_overlap_zero_when_no_keywords(self):
        assert keyword_overlap("is it so", "Beholders float.") == 0.0


# ─────────────────────────────────────────────────────────────
# is_valid_fact
# ─────────────────────────────────────────────────────────────

class TestValidation:

    def test_49_chars_rejected(self):
        assert not is_valid_fact("x" * 49)

    def test_50_chars_accepted(self):
        assert is_valid_fact("x" * 50)

    def test_500_chars_accepted(self):
        assert is_valid_fact("x" * 500)

    def test_501_chars_rejected(self):
        assert not is_valid_fact("x" * 501)

    def test_blank_rejected(self):
        assert not is_valid_fact(" " * 80)

    def test_refusal_rejected(self):
        assert not is_valid_fact("I apologize, but I cannot share trivia about that topic right now.")
        assert not is_valid_fact("As an AI language model I do not have opinions on D&D editions.")

    def test_invalid_checked_before_duplicate(self):
        short = "Too short to be a fact."
        with pytest.raises(InvalidFactError):
            check_candidate(short, [short])

    def test_check_candidate_duplicate(self):
        fact = "The beholder first appeared in the 1975 Greyhawk supplement as a floating eye."
        with pytest.raises(DuplicateFactError):
            check_candidate(fact, [fact])

    def test_check_candidate_ok(self):
        check_candidate("x" * 50, [])


# ─────────────────────────────────────────────────────────────
# is_duplicate
# ─────────────────────────────────────────────────────────────

class TestIsDuplicate:

    def test_self_duplicate(self):
        fact = "Mind flayers debuted in The Strategic Review in 1975 and eat brains."
        assert is_duplicate(fact, [fact, "Something else entirely about dice and rolls."])

    def test_self_duplicate_minimal_string(self):
        fact = "a" * 50
        assert is_duplicate(fact, [fact])

    def test_tarrasque_rephrasing_is_duplicate(self):
        assert is_duplicate(
            "The Tarrasque is a 50-foot monster that destroys cities.",
            ["The Tarrasque is a giant creature that levels entire cities."],
        )

    def test_near_identical_wording_is_duplicate(self):
        assert is_duplicate(
            "Lolth is the Demon Queen of Spiders, the cruel goddess of the drow.",
            ["Lolth is the Demon Queen of Spiders and the cruel goddess of the drow!"],
        )

    def test_unrelated_is_not_duplicate(self):
        assert not is_duplicate(
            "Bahamut the Platinum Dragon is the god of good dragons and justice.",
            ["THAC0 stood for To Hit Armor Class 0 and was used for attack rolls in AD&D."],
        )

    def test_empty_corpus(self):
        assert not is_duplicate("Strahd von Zarovich rules the misty land of Barovia.", [])

    def test_no_keywords_falls_back_to_edit_distance(self):
        candidate = "is it so? " * 6
        assert extract_keywords(candidate) == set()
        assert not is_duplicate(candidate, ["Githyanki pirates sail the silver void on astral ships."])
        assert is_duplicate(candidate, [candidate.upper()])

    def test_thresholds_are_adjustable(self):
        a = "The Keep on the Borderlands shipped inside the Basic Set."
        b = "The Keep on the Borderlands came bundled with the Expert Set."
        assert not is_duplicate(a, [b], similarity_threshold=0.99, keyword_threshold=0.99)
        # shared keywords: keep, borderland (2 of 5)
        assert is_duplicate(a, [b], similarity_threshold=0.99, keyword_threshold=0.35)
