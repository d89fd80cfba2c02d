from datetime import datetime, timezone

from pickpool import db
from pickpool.models import WeekRecap
from pickpool.records import ParticipantRecap, RecapRecord
from pickpool.services.leaderboard_service import (
    SeasonStanding,
    assign_dense_ranks,
    build_leaderboard,
)
from pickpool.utils.week_keys import make_week_id

CALCULATED = datetime(2025, 1, 1, tzinfo=timezone.utc)


def store_recap(week_key, rows, season=2024):
    """rows: [(participant_id, correct, total, is_top_score)]"""
    participants = tuple(
        ParticipantRecap(pid, correct, total, round(100 * correct / total), 0, 0, top)
        for pid, correct, total, top in rows
    )
    week_id = make_week_id(season, week_key)
    WeekRecap.put_recap(week_id, RecapRecord(week_id, season, week_key, CALCULATED, participants))
    return week_id


def standings_by_id(result):
    return {row["participantId"]: row for row in result["standings"]}


def test_season_totals_and_did_not_play_weeks(app):
    for n in range(1, 6):
        rows = [("ann", 10, 16, True), ("bob", 8, 16, False)]
        if n <= 3:
            rows.append(("cat", 12, 16, False))
        store_recap(f"week-{n}", rows)

    result = build_leaderboard(2024)
    rows = standings_by_id(result)

    assert result["weekCount"] == 5
    assert rows["ann"]["totalCorrect"] == 50
    assert rows["ann"]["totalContests"] == 80
    assert rows["ann"]["overallPercentage"] == 63
    assert rows["ann"]["weeksWon"] == 5
    assert rows["ann"]["incomplete"] is False
    assert rows["cat"]["weeksPlayed"] == 3
    assert rows["cat"]["totalContests"] == 48
    assert rows["cat"]["overallPercentage"] == 75
    assert rows["cat"]["incomplete"] is True
    assert result["verification"]["ok"] is True


def test_dense_rank_does_not_skip_after_ties(app):
    store_recap(
        "week-1",
        [("ann", 9, 10, True), ("bob", 9, 10, True), ("cat", 7, 10, False), ("dan", 5, 10, False)],
    )

    rows = standings_by_id(build_leaderboard(2024))

    assert rows["ann"]["rank"] == rows["bob"]["rank"] == 1
    assert rows["cat"]["rank"] == 2
    assert rows["dan"]["rank"] == 3


def test_excluded_and_current_weeks_are_left_out(app):
    store_recap("preseason-2", [("ann", 10, 10, True)])
    store_recap("pro-bowl-4", [("ann", 1, 1, True)])
    store_recap("week-1", [("ann", 3, 10, False), ("bob", 4, 10, True)])
    current = store_recap("week-2", [("ann", 9, 10, True)])
    store_recap("wild-card", [("ann", 5, 6, True), ("bob", 2, 6, False)])
    store_recap("week-1", [("zed", 16, 16, True)], season=2023)

    result = build_leaderboard(2024, current_week_id=current)
    rows = standings_by_id(result)

    assert result["includedWeekIds"] == ["2024_week-1", "2024_wild-card"]
    assert rows["ann"]["totalCorrect"] == 8
    assert "zed" not in rows

    regular = standings_by_id(build_leaderboard(2024, current_week_id=current, regular_season_only=True))
    assert regular["ann"]["totalCorrect"] == 3
    assert regular["bob"]["rank"] == 1


def test_participant_who_never_played_is_absent(app, add_participant):
    add_participant("ghost")
    store_recap("week-1", [("ann", 3, 10, True)])

    rows = standings_by_id(build_leaderboard(2024))

    assert "ghost" not in rows
    assert rows["ann"]["displayName"] is None


def test_display_names_come_from_participants(app, add_participant):
    add_participant("ann", "Annie")
    store_recap("week-1", [("ann", 3, 10, True)])

    rows = standings_by_id(build_leaderboard(2024))

    assert rows["ann"]["displayName"] == "Annie"


def test_leaders_include_ties(app):
    store_recap("week-1", [("ann", 6, 10, True), ("bob", 4, 10, False)])
    store_recap("week-2", [("ann", 4, 10, False), ("bob", 6, 10, True)])

    leaders = build_leaderboard(2024)["leaders"]

    assert leaders["mostCorrect"] == {"value": 10, "participantIds": ["ann", "bob"]}
    assert leaders["mostWeeksWon"] == {"value": 1, "participantIds": ["ann", "bob"]}


def test_verification_mismatch_is_reported_not_corrected(app, caplog):
    week_id = store_recap("week-1", [("ann", 3, 10, True), ("bob", 2, 10, False)])
    # A row the validated fold rejects but the raw fold still counts
    row = db.session.get(WeekRecap, week_id)
    row.participant_stats = row.participant_stats + [
        {"participantId": "eve", "correct": 12, "total": 10, "isTopScore": False}
    ]
    db.session.commit()

    result = build_leaderboard(2024)

    assert "eve" not in standings_by_id(result)
    assert result["verification"]["ok"] is False
    fields = {(m["participantId"], m["field"]) for m in result["verification"]["mismatches"]}
    assert ("eve", "total_correct") in fields
    assert any("verification" in r.getMessage() for r in caplog.records)


def test_assign_dense_ranks_orders_by_total_correct():
    standings = [SeasonStanding("a", total_correct=3), SeasonStanding("b", total_correct=7), SeasonStanding("c", total_correct=7)]
    ordered = assign_dense_ranks(standings)
    assert [(s.participant_id, s.rank) for s in ordered] == [("b", 1), ("c", 1), ("a", 2)]


def test_whole_number_floats_do_not_trip_verification(app):
    week_id = store_recap("week-1", [("ann", 3, 10, True)])
    row = db.session.get(WeekRecap, week_id)
    row.participant_stats = [
        {"participantId": "ann", "correct": 3.0, "total": 10.0, "percentage": 30, "isTopScore": True}
    ]
    db.session.commit()

    result = build_leaderboard(2024)

    assert standings_by_id(result)["ann"]["totalCorrect"] == 3
    assert result["verification"] == {"ok": True, "mismatches": []}
