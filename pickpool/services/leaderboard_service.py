"""
Season standings folded from persisted week recaps.

The standings are built twice: once from validated recap records and once,
independently, from the raw stored documents. Disagreements are logged and
returned with the standings; the validated fold is always the one reported.
"""

import logging
from dataclasses import dataclass

from pickpool.models import Participant, WeekRecap
from pickpool.records import round_half_up
from pickpool.utils.week_keys import is_postseason_week_key, is_scored_week_key

logger = logging.getLogger(__name__)

COMPARED_FIELDS = ("total_correct", "total_contests", "weeks_played", "weeks_won")


@dataclass
class SeasonStanding:
    participant_id: str
    display_name: str = None
    total_correct: int = 0
    total_contests: int = 0
    weeks_played: int = 0
    weeks_won: int = 0
    rank: int = 0
    incomplete: bool = False

    @property
    def overall_percentage(self):
        if self.total_contests <= 0:
            return 0
        return round_half_up(100 * self.total_correct / self.total_contests)

    def to_dict(self):
        return {
            "participantId": self.participant_id,
            "displayName": self.display_name,
            "totalCorrect": self.total_correct,
            "totalContests": self.total_contests,
            "overallPercentage": self.overall_percentage,
            "weeksWon": self.weeks_won,
            "weeksPlayed": self.weeks_played,
            "rank": self.rank,
            "incomplete": self.incomplete,
        }


def is_eligible_week(week_key, regular_season_only=False):
    try:
        if not is_scored_week_key(week_key):
            return False
        return not (regular_season_only and is_postseason_week_key(week_key))
    except ValueError:
        logger.warning(f"Ignoring recap with malformed week key {week_key!r}")
        return False


def fold_records(records):
    """Primary fold over validated RecapRecords"""
    standings = {}
    for record in records:
        for row in record.participants:
            standing = standings.get(row.participant_id)
            if standing is None:
                standing = standings[row.participant_id] = SeasonStanding(
                    row.participant_id, display_name=row.display_name
                )
            standing.total_correct += row.correct
            standing.total_contests += row.total
            standing.weeks_played += 1
            if row.is_top_score:
                standing.weeks_won += 1
    return standings


def _count(value):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def fold_raw_documents(documents, week_ids):
    """
    Verification fold straight from the stored JSON. Only rows whose counts are
    numbers are summed; nothing else is interpreted.
    """
    totals = {}
    for document in documents:
        if document.get("weekId") not in week_ids:
            continue
        rows = document.get("perParticipant")
        if not isinstance(rows, list):
            continue
        for row in rows:
            if not isinstance(row, dict):
                continue
            pid = row.get("participantId") or row.get("userId")
            correct, total = _count(row.get("correct")), _count(row.get("total"))
            if not pid or correct is None or total is None:
                continue
            entry = totals.setdefault(
                str(pid),
                {"total_correct": 0, "total_contests": 0, "weeks_played": 0, "weeks_won": 0},
            )
            entry["total_correct"] += correct
            entry["total_contests"] += total
            entry["weeks_played"] += 1
            if row.get("isTopScore") is True:
                entry["weeks_won"] += 1
    return totals


def compare_folds(primary, verification):
    mismatches = []
    for pid in sorted(set(primary) | set(verification)):
        standing = primary.get(pid)
        check = verification.get(pid, {})
        for field in COMPARED_FIELDS:
            expected = getattr(standing, field) if standing else 0
            actual = check.get(field, 0)
            if expected != actual:
                mismatches.append(
                    {
                        "participantId": pid,
                        "field": field,
                        "primary": expected,
                        "verification": actual,
                    }
                )
    return mismatches


def assign_dense_ranks(standings):
    """Sort by total correct (desc) and give equal totals the same rank"""
    ordered = sorted(
        standings,
        key=lambda s: (-s.total_correct, -s.overall_percentage, s.display_name or "", s.participant_id),
    )
    rank = 0
    previous = None
    for standing in ordered:
        if standing.total_correct != previous:
            rank += 1
            previous = standing.total_correct
        standing.rank = rank
    return ordered


def _leaders(standings, attribute):
    best = max((getattr(s, attribute) for s in standings), default=0)
    if best <= 0:
        return {"value": 0, "participantIds": []}
    return {
        "value": best,
        "participantIds": [s.participant_id for s in standings if getattr(s, attribute) == best],
    }


def build_leaderboard(season, current_week_id=None, regular_season_only=False):
    """
    Standings for a season.

    Args:
        season: season year
        current_week_id: week in progress, left out of the standings
        regular_season_only: also leave out postseason weeks

    Returns:
        dict with standings, included week ids, leaders and verification report
    """
    records = [
        r
        for r in WeekRecap.list_for_season(season)
        if r.week_id != current_week_id and is_eligible_week(r.week_key, regular_season_only)
    ]
    week_ids = [r.week_id for r in records]

    primary = fold_records(records)
    verification = fold_raw_documents(WeekRecap.list_raw_for_season(season), set(week_ids))
    mismatches = compare_folds(primary, verification)
    if mismatches:
        logger.warning(
            f"Leaderboard verification for {season} found {len(mismatches)} mismatches: "
            f"{mismatches[:5]}"
        )

    names = Participant.display_names()
    standings = []
    for standing in primary.values():
        if standing.weeks_played <= 0:
            continue
        standing.display_name = names.get(standing.participant_id) or standing.display_name
        standing.incomplete = standing.weeks_played < len(week_ids)
        standings.append(standing)

    ordered = assign_dense_ranks(standings)

    return {
        "season": season,
        "currentWeekId": current_week_id,
        "regularSeasonOnly": regular_season_only,
        "includedWeekIds": sorted(week_ids),
        "weekCount": len(week_ids),
        "standings": [s.to_dict() for s in ordered],
        "leaders": {
            "mostCorrect": _leaders(ordered, "total_correct"),
            "mostWeeksWon": _leaders(ordered, "weeks_won"),
        },
        "verification": {"ok": not mismatches, "mismatches": mismatches},
    }
