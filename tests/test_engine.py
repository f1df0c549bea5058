import pytest

from engine import (
    ShotSheet, ValidationError, clean_shot_scores, compute_shot_summary, compute_total,
    format_distance, format_grain_weight, format_score, format_score_display,
    next_shot_focus, normalize_shot_token, sanitize_numeric_input, strip_unit,
)


def test_v_bull_adds_five_points_and_a_tenth():
    s = compute_shot_summary(["5", "4", "v", "5"])
    assert s.numeric_total == 19
    assert s.v_count == 1
    assert s.total == pytest.approx(19.1)


def test_blank_tokens_are_ignored():
    assert compute_total(["", "5", "", "v"]) == pytest.approx(10.1)
    assert compute_total(["", "5", "", "v"]) == compute_total(["5", "v"])


def test_unknown_tokens_contribute_nothing():
    assert compute_total(["5", "x", "v"]) == compute_total(["5", "v"])


def test_uppercase_v_counts():
    assert compute_shot_summary(["V", "v"]).v_count == 2


def test_no_counted_tokens_gives_no_score():
    assert compute_shot_summary([]) is None
    assert compute_shot_summary(["", "  "]) is None
    assert compute_total(["x"]) is None


def test_derived_statistics():
    s = compute_shot_summary(["5", "4", "v", "5"])
    assert s.pure_numeric_total == 14
    assert s.v_points == 5
    assert s.shot_count == 4
    assert s.numeric_average == pytest.approx(14 / 3)


def test_average_is_none_with_only_v_bulls():
    s = compute_shot_summary(["v", "v"])
    assert s.numeric_average is None
    assert s.total == pytest.approx(10.2)


def test_format_score():
    assert format_score(19.1) == "19.1"
    assert format_score(20.0) == "20"
    assert format_score(47 + 0.2) == "47.2"
    assert format_score_display(20) == "20.0"


def test_normalize_shot_token():
    assert normalize_shot_token("V") == "v"
    assert normalize_shot_token(" 3 ") == "3"
    assert normalize_shot_token("") == ""
    with pytest.raises(ValidationError):
        normalize_shot_token("6")


def test_clean_shot_scores_drops_blanks_and_caps():
    assert clean_shot_scores(["5", "", "V", None]) == ["5", "v"]
    assert clean_shot_scores(None) == []
    with pytest.raises(ValidationError):
        clean_shot_scores(["5"] * 13)


def test_next_shot_focus():
    assert next_shot_focus(0, "5") == 1
    assert next_shot_focus(10, "v") == 11
    assert next_shot_focus(11, "5") is None
    assert next_shot_focus(3, "") is None


def test_shot_sheet_auto_advance_and_reselect():
    sheet = ShotSheet()
    sheet.select(0, "5")
    sheet.select(1, "V")
    assert sheet.focus == 2
    # earlier shots stay editable
    sheet.select(0, "4")
    assert sheet.slots[:2] == ["4", "v"]
    sheet.focus = 5
    sheet.select(3, "")
    assert sheet.focus == 5
    assert sheet.scores() == ["4", "v"]


def test_shot_sheet_does_not_wrap_past_last_shot():
    sheet = ShotSheet()
    sheet.select(11, "5")
    assert sheet.focus == 11
    with pytest.raises(IndexError):
        sheet.select(12, "5")


def test_shot_sheet_from_scores():
    sheet = ShotSheet.from_scores(["5", "V", "3"])
    assert sheet.slots[:4] == ["5", "v", "3", ""]
    assert sheet.focus == 3
    assert sheet.summary().total == pytest.approx(13.1)


def test_sanitize_numeric_input():
    assert sanitize_numeric_input("1a0.5b") == "10.5"
    assert sanitize_numeric_input("100 yards") == "100"
    # second point in a sequential edit is rejected
    assert sanitize_numeric_input("10.5.", previous="10.5") == "10.5"
    assert sanitize_numeric_input("1.2.3") == "1.23"
    assert sanitize_numeric_input("") == ""


def test_unit_formatting():
    assert format_distance("100") == "100 yards"
    assert format_distance("") == ""
    assert format_grain_weight("168") == "168 gr"
    assert strip_unit("100 yards") == "100"
    assert strip_unit(None) == ""
