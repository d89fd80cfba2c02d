import pytest

from pickpool.records import AWAY, HOME, LIVE, SCHEDULED, PickEntry, ScoreTally
from pickpool.settings import DRAW_AWAY_WINS, EngineSettings
from pickpool.utils.scoring import (
    countable_contests,
    is_countable,
    resolve_top_scores,
    score_participant,
    winning_side,
)
from tests.conftest import make_contest


def picks_for(**by_id):
    return {cid: PickEntry(cid, side) for cid, side in by_id.items()}


def test_countable_requires_final_status_and_numeric_scores():
    assert is_countable(make_contest("1", 21, 17))
    assert not is_countable(make_contest("2", 21, 17, status=LIVE))
    assert not is_countable(make_contest("3", None, None, status=SCHEDULED))
    assert not is_countable(make_contest("4", 21, None))
    assert not is_countable(make_contest("5", "21", 17))


def test_underdog_scenario_from_three_contests():
    contests = [
        make_contest("c1", 24, 10, favorite=HOME),
        make_contest("c2", 31, 3, favorite=HOME),
        make_contest("c3", 20, 13, favorite=AWAY),
    ]
    picks = {
        "c1": PickEntry("c1", AWAY),
        "c2": PickEntry("c2", HOME),
        "c3": PickEntry("c3", AWAY),
    }

    tally = score_participant(contests, picks)

    assert tally == ScoreTally(correct=1, total=3, underdog_picks=1, underdog_correct=0)
    assert tally.percentage == 33


def test_total_counts_unpicked_and_ignores_unfinished_contests():
    contests = [
        make_contest("1", 10, 7),
        make_contest("2", 3, 14),
        make_contest("3", 0, 0, status=LIVE),
        make_contest("4", 28, None),
    ]
    tally = score_participant(contests, {"1": PickEntry("1", HOME), "3": PickEntry("3", HOME)})

    assert tally.total == 2
    assert tally.correct == 1


def test_no_picks_on_countable_contests_means_not_played():
    contests = [make_contest(str(n), 20, 10) for n in range(10)]
    assert score_participant(contests, {}) is None
    # A pick on a contest that is still live does not count as playing
    live = [make_contest("99", 0, 0, status=LIVE)]
    assert score_participant(contests + live, {"99": PickEntry("99", HOME)}) is None


def test_numeric_contest_ids_match_string_pick_keys():
    contests = [make_contest(401547403, 27, 20)]
    tally = score_participant(contests, {"401547403": PickEntry("401547403", HOME)})
    assert tally.correct == 1


def test_legacy_raw_id_keys_are_used_as_fallback():
    contests = [make_contest(401547403, 13, 27)]
    tally = score_participant(contests, {401547403: PickEntry("401547403", AWAY)})
    assert tally.correct == 1


def test_draws_have_no_winner_by_default():
    contest = make_contest("1", 20, 20)
    assert winning_side(contest) is None
    assert winning_side(contest, DRAW_AWAY_WINS) == AWAY

    picks = picks_for(**{"1": AWAY})
    assert score_participant([contest], picks).correct == 0
    assert score_participant([contest], picks, DRAW_AWAY_WINS).correct == 1
    assert score_participant([contest], picks).total == 1


def test_top_scores_include_every_tie():
    tallies = {
        "ann": ScoreTally(5, 8, 0, 0),
        "bob": ScoreTally(5, 8, 1, 1),
        "cat": ScoreTally(3, 8, 0, 0),
    }
    assert resolve_top_scores(tallies) == {"ann", "bob"}


def test_top_scores_empty_when_nobody_scored():
    assert resolve_top_scores({}) == set()
    assert resolve_top_scores({"ann": ScoreTally(0, 4, 0, 0)}) == set()


def test_countable_contests_filters_in_order():
    contests = [make_contest("1", 1, 0), make_contest("2", None, None), make_contest("3", 0, 1)]
    assert [c.key for c in countable_contests(contests)] == ["1", "3"]


def test_engine_settings_reject_unknown_draw_policy():
    with pytest.raises(ValueError):
        EngineSettings(draw_policy="coin_flip")
    settings = EngineSettings.from_config({"DRAW_POLICY": "away_wins", "RECAP_INTER_WEEK_DELAY": "0"})
    assert settings.draw_policy == DRAW_AWAY_WINS
    assert settings.inter_week_delay == 0.0
