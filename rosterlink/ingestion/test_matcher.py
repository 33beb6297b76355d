"""
Matcher test suite.

Tier order: district-id (100) > state-id (95) > name-exact (85/80/70)
> name-fuzzy (<= 70). Deterministic data only.
"""

import pytest

from rosterlink.ingestion.matcher import (
    MatchStrategy,
    best_fuzzy_key,
    extract_name,
    fuzzy_confidence,
    resolve,
    similarity,
    split_full_name,
)
from rosterlink.ingestion.roster import RosterIndex, Student
from rosterlink.ingestion.settings import ImportSettings


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ANN = Student(
    id="s-ann", first_name="Ann", last_name="Lee", grade="5",
    district_id="12345678", state_id="FL000012345678",
)
BO = Student(
    id="s-bo", first_name="Bo", last_name="Kim", grade="4",
    district_id="87654321", state_id="FL000087654321",
)


def make_index(*students):
    return RosterIndex.build(list(students) or [ANN, BO])


# ---------------------------------------------------------------------------
# Name extraction
# ---------------------------------------------------------------------------

class TestNameExtraction:
    def test_comma_means_last_first(self):
        assert split_full_name("Lee, Ann") == ("Ann", "Lee")

    def test_space_means_first_last(self):
        assert split_full_name("Ann Lee") == ("Ann", "Lee")

    def test_middle_tokens_go_to_last(self):
        assert split_full_name("Ann Marie Lee") == ("Ann", "Marie Lee")

    def test_single_token_not_split(self):
        assert split_full_name("Cher") is None

    def test_split_columns_preferred(self):
        row = {"First Name": "Ann", "Last Name": "Lee", "Student Name": "Kim, Bo"}
        assert extract_name(row) == ("Ann", "Lee")

    def test_combined_column_used_when_split_missing(self):
        assert extract_name({"Student": "Lee, Ann"}) == ("Ann", "Lee")

    def test_name_header_does_not_hit_first_name(self):
        """'Name' must not be read as a first-name column."""
        assert extract_name({"Name": "Ann Lee"}) == ("Ann", "Lee")


# ---------------------------------------------------------------------------
# Tier 1: district id
# ---------------------------------------------------------------------------

class TestDistrictId:
    def test_exact_id_wins_regardless_of_name(self):
        row = {"Student ID": "12345678", "Student Name": "Kim, Bo"}
        result = resolve(row, make_index())
        assert result.strategy is MatchStrategy.DISTRICT_ID
        assert result.confidence == 100
        assert result.student_id == "s-ann"

    def test_formula_wrapped_id(self):
        result = resolve({"DCPS ID": '="12345678"'}, make_index())
        assert result.strategy is MatchStrategy.DISTRICT_ID

    def test_case_insensitive_header(self):
        result = resolve({"STUDENT id": "87654321"}, make_index())
        assert result.student_id == "s-bo"

    def test_wrong_length_rejected(self):
        assert resolve({"Student ID": "1234567"}, make_index()) is None

    def test_non_digit_rejected(self):
        assert resolve({"Student ID": "1234567A"}, make_index()) is None

    def test_unknown_id_falls_through_to_name(self):
        row = {"Student ID": "99999999", "Student": "Lee, Ann"}
        result = resolve(row, make_index())
        assert result.strategy is MatchStrategy.NAME_EXACT


# ---------------------------------------------------------------------------
# Tier 2: state id
# ---------------------------------------------------------------------------

class TestStateId:
    def test_state_id_under_student_id_header(self):
        """FAST exports put the state id in 'Student ID'."""
        result = resolve({"Student ID": "FL000012345678"}, make_index())
        assert result.strategy is MatchStrategy.STATE_ID
        assert result.confidence == 95

    def test_state_id_alias(self):
        result = resolve({"Florida Education Identifier": "FL000087654321"}, make_index())
        assert result.student_id == "s-bo"

    def test_lowercase_prefix_accepted(self):
        result = resolve({"FLEID": "fl000012345678"}, make_index())
        assert result.strategy is MatchStrategy.STATE_ID

    def test_wrong_prefix_rejected(self):
        assert resolve({"FLEID": "GA000012345678"}, make_index()) is None

    def test_configured_prefix(self):
        ga = Student(id="s-ga", first_name="Ga", last_name="Kid", state_id="GA000012345678")
        index = RosterIndex.build([ga], state_id_prefix="GA")
        settings = ImportSettings(state_id_prefix="GA")
        result = resolve({"State ID": "GA000012345678"}, index, settings)
        assert result.strategy is MatchStrategy.STATE_ID

    def test_district_beats_state(self):
        row = {"Student ID": "87654321", "FLEID": "FL000012345678"}
        result = resolve(row, make_index())
        assert result.strategy is MatchStrategy.DISTRICT_ID
        assert result.student_id == "s-bo"


# ---------------------------------------------------------------------------
# Tier 3: exact name
# ---------------------------------------------------------------------------

class TestExactName:
    def test_single_candidate(self):
        result = resolve({"Student": "Lee, Ann"}, make_index())
        assert result.strategy is MatchStrategy.NAME_EXACT
        assert result.confidence == 85

    def test_punctuation_and_case_ignored(self):
        obrien = Student(id="s-ob", first_name="Jane", last_name="O'Brien")
        result = resolve({"Student": "OBRIEN, JANE"}, make_index(obrien))
        assert result.student_id == "s-ob"
        assert result.confidence == 85

    def test_grade_disambiguates(self):
        a = Student(id="a", first_name="Ann", last_name="Lee", grade="3")
        b = Student(id="b", first_name="Ann", last_name="Lee", grade="5")
        result = resolve({"Student": "Lee, Ann", "Grade": "05"}, make_index(a, b))
        assert result.strategy is MatchStrategy.NAME_EXACT_DISAMBIGUATED
        assert result.confidence == 80
        assert result.student_id == "b"

    def test_no_grade_picks_first_in_roster_order(self):
        a = Student(id="a", first_name="Ann", last_name="Lee", grade="5")
        b = Student(id="b", first_name="Ann", last_name="Lee", grade="5")
        result = resolve({"Student": "Lee, Ann", "Grade": "5"}, make_index(a, b))
        assert result.strategy is MatchStrategy.NAME_EXACT_AMBIGUOUS
        assert result.confidence == 70
        assert result.student_id == "a"

    def test_grade_matching_nobody_is_ambiguous(self):
        a = Student(id="a", first_name="Ann", last_name="Lee", grade="3")
        b = Student(id="b", first_name="Ann", last_name="Lee", grade="5")
        result = resolve({"Student": "Lee, Ann", "Grade": "8"}, make_index(a, b))
        assert result.strategy is MatchStrategy.NAME_EXACT_AMBIGUOUS
        assert result.student_id == "a"


# ---------------------------------------------------------------------------
# Tier 4: fuzzy
# ---------------------------------------------------------------------------

class TestFuzzy:
    def test_similarity_is_positional(self):
        assert similarity("abcd", "abcd") == 1.0
        assert similarity("abcd", "abce") == 0.75
        # a one-letter shift destroys the positional score
        assert similarity("abcd", "xabcd") == 0.0

    def test_confidence_rounds_half_up(self):
        assert fuzzy_confidence(0.9) == 63
        assert fuzzy_confidence(0.95) == 67  # 66.5 rounds up

    def test_threshold_is_strict(self):
        assert best_fuzzy_key("abcdefghijklmnopqrst", ["abcdefghijklmnopqxyz"], 0.85) is None

    def test_typo_in_long_name_matches(self):
        student = Student(id="s1", first_name="Jonathan", last_name="Richardson")
        # richardson_jonathon vs richardson_jonathan: 18/19 positions equal
        result = resolve({"Student": "Richardson, Jonathon"}, make_index(student))
        assert result.strategy is MatchStrategy.NAME_FUZZY
        assert result.confidence == fuzzy_confidence(18 / 19)
        assert result.confidence <= 70

    def test_best_key_wins(self):
        keys = ["richardson_jonathxx", "richardson_jonathax"]
        key, score = best_fuzzy_key("richardson_jonathan", keys, 0.85)
        assert key == "richardson_jonathax"

    def test_ties_keep_earlier_key(self):
        keys = ["richardson_jonathxn", "richardson_jonatxan"]
        key, _ = best_fuzzy_key("richardson_jonathan", keys, 0.85)
        assert key == "richardson_jonathxn"

    def test_no_match_below_threshold(self):
        assert resolve({"Student": "Nobody, Zed"}, make_index()) is None

    def test_exact_key_present_skips_fuzzy(self):
        result = resolve({"Student": "Lee, Ann"}, make_index())
        assert result.strategy is not MatchStrategy.NAME_FUZZY


class TestNoIdentity:
    def test_row_without_identity_fields(self):
        assert resolve({"Score": "300"}, make_index()) is None

    def test_empty_row(self):
        assert resolve({}, make_index()) is None

    @pytest.mark.parametrize("strategy", list(MatchStrategy))
    def test_strategy_values_are_stable(self, strategy):
        assert strategy.value in {
            "district-id", "state-id", "name-exact", "name-exact-disambiguated",
            "name-exact-ambiguous", "name-fuzzy",
        }
