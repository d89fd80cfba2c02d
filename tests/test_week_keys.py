import pytest

from pickpool.records import POSTSEASON, PRESEASON, PRO_BOWL, REGULAR
from pickpool.utils.week_keys import (
    is_postseason_week_key,
    is_scored_week_key,
    make_week_id,
    normalize_round_label,
    parse_week_key,
    split_week_id,
    to_week_key,
)


def test_regular_and_numbered_phases():
    assert to_week_key(REGULAR, 3) == "week-3"
    assert to_week_key(REGULAR, -18) == "week-18"
    assert to_week_key(PRESEASON, -2) == "preseason-2"
    assert to_week_key(PRO_BOWL, 4) == "pro-bowl-4"


@pytest.mark.parametrize("ordinal", [0, 19, -19])
def test_regular_week_out_of_range_is_rejected(ordinal):
    with pytest.raises(ValueError):
        to_week_key(REGULAR, ordinal)


@pytest.mark.parametrize(
    "label, expected",
    [
        ("Wild Card", "wild-card"),
        ("Wild-Card Round", "wild-card"),
        ("DIVISIONAL ROUND", "divisional"),
        ("Conf Championship", "conference"),
        ("Conference Championships", "conference"),
        ("Super Bowl LIX", "super-bowl"),
        ("super-bowl", "super-bowl"),
    ],
)
def test_postseason_labels_normalize(label, expected):
    assert to_week_key(POSTSEASON, 0, label) == expected


def test_unknown_postseason_label_raises():
    with pytest.raises(ValueError):
        normalize_round_label("Championship Weekend Bonanza")
    with pytest.raises(ValueError):
        to_week_key(POSTSEASON, 1, None)


def test_round_trip_reproduces_phase_and_label():
    cases = [
        (REGULAR, 7, None),
        (REGULAR, -7, None),
        (PRESEASON, 3, None),
        (PRO_BOWL, 4, None),
        (POSTSEASON, 0, "Divisional Round"),
        (POSTSEASON, 0, "Super Bowl LVIII"),
    ]
    for phase, ordinal, label in cases:
        parsed_phase, parsed_ordinal, parsed_label = parse_week_key(
            to_week_key(phase, ordinal, label)
        )
        assert parsed_phase == phase
        if phase == POSTSEASON:
            assert parsed_label == normalize_round_label(label)
        else:
            assert parsed_ordinal == abs(ordinal)
            assert parsed_label is None


def test_postseason_keys_parse_to_fixed_round_ordinals():
    assert parse_week_key("wild-card") == (POSTSEASON, 1, "wild card")
    assert parse_week_key("divisional")[1] == 2
    assert parse_week_key("conference")[1] == 3
    assert parse_week_key("super-bowl")[1] == 4


@pytest.mark.parametrize("key", ["week-0", "week-19", "week", "playoffs", "", None])
def test_parse_rejects_malformed_keys(key):
    with pytest.raises(ValueError):
        parse_week_key(key)


def test_week_ids():
    assert make_week_id(2024, "week-3") == "2024_week-3"
    assert split_week_id("2024_super-bowl") == (2024, "super-bowl")
    for bad in ("2024-week-3", "24_week-3", "2024_week-40", 2024, None):
        with pytest.raises(ValueError):
            split_week_id(bad)


def test_scored_and_postseason_helpers():
    assert is_scored_week_key("week-1")
    assert is_scored_week_key("wild-card")
    assert not is_scored_week_key("preseason-2")
    assert not is_scored_week_key("pro-bowl-4")
    assert is_postseason_week_key("conference")
    assert not is_postseason_week_key("week-18")
