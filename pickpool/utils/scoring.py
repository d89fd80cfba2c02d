"""
Scoring for one week of contests.

For persisted recaps and season totals see pickpool/services/recap_service.py
and pickpool/services/leaderboard_service.py.
"""

from pickpool.records import AWAY, FINAL, HOME, ScoreTally
from pickpool.settings import DRAW_AWAY_WINS, DRAW_NO_WINNER


def is_countable(contest):
    """Final with both scores present and numeric"""
    return contest.status == FINAL and contest.has_scores


def countable_contests(contests):
    return [c for c in contests if is_countable(c)]


def winning_side(contest, draw_policy=DRAW_NO_WINNER):
    """
    Returns "home", "away", or None for a draw under the no_winner policy.
    """
    if contest.home_score > contest.away_score:
        return HOME
    if contest.away_score > contest.home_score:
        return AWAY
    if draw_policy == DRAW_AWAY_WINS:
        return AWAY
    return None


def lookup_pick(picks, contest):
    """
    Picks are keyed by the string contest id. PickStore always returns string
    keys since documents are stored as JSON, so the raw-id lookup only applies to
    pick maps built in memory with the provider's raw ids.
    """
    pick = picks.get(contest.key)
    if pick is None and contest.id != contest.key:
        pick = picks.get(contest.id)
    return pick


def score_participant(contests, picks, draw_policy=DRAW_NO_WINNER):
    """
    Score one participant's picks against a week's contests.

    Args:
        contests: the week's contests (non-countable ones are ignored)
        picks: mapping of contest id -> PickEntry
        draw_policy: how an equal score is resolved

    Returns:
        ScoreTally, or None when the participant picked no countable contest
    """
    countable = countable_contests(contests)
    correct = 0
    picked = 0
    underdog_picks = 0
    underdog_correct = 0

    for contest in countable:
        pick = lookup_pick(picks, contest)
        if pick is None:
            continue
        picked += 1

        is_correct = pick.side == winning_side(contest, draw_policy)
        if is_correct:
            correct += 1

        if contest.favorite_side and pick.side != contest.favorite_side:
            underdog_picks += 1
            if is_correct:
                underdog_correct += 1

    if picked == 0:
        return None

    return ScoreTally(
        correct=correct,
        total=len(countable),
        underdog_picks=underdog_picks,
        underdog_correct=underdog_correct,
    )


def resolve_top_scores(tallies):
    """
    Args:
        tallies: mapping participant id -> ScoreTally

    Returns:
        set of participant ids tied at the week's best score; empty when the
        best score is zero
    """
    max_correct = max((t.correct for t in tallies.values()), default=0)
    if max_correct <= 0:
        return set()
    return {pid for pid, t in tallies.items() if t.correct == max_correct}
