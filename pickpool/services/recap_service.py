"""
Week recap computation and the persistence policy.

A recap is computed from the week's countable contests and every scored
participant's picks, then written in full. Whether a stored recap is recomputed
depends on the mode:

    create  compute only when no recap exists
    force   always recompute and overwrite
    stale   recompute when the week has ended after the recap was calculated
"""

import logging
from datetime import datetime, timezone

from pickpool.models import Participant, PickStore, WeekRecap
from pickpool.records import ParticipantRecap, RecapRecord
from pickpool.utils.cache_utils import invalidate_recap_cache
from pickpool.utils.logging_config import ContextualLogger
from pickpool.utils.results_gateway import ResultsGatewayError
from pickpool.utils.scoring import countable_contests, resolve_top_scores, score_participant
from pickpool.utils.timezone_utils import ensure_utc
from pickpool.utils.week_keys import is_scored_week_key

logger = logging.getLogger(__name__)

MODE_CREATE = "create"
MODE_FORCE = "force"
MODE_STALE = "stale"
MODES = (MODE_CREATE, MODE_FORCE, MODE_STALE)

STATUS_CREATED = "created"
STATUS_RECALCULATED = "recalculated"
STATUS_EXISTS = "exists"
STATUS_NO_FINISHED_GAMES = "no_finished_games"
STATUS_EXCLUDED = "excluded"
STATUS_FAILED = "failed"

SAMPLE_SIZE = 5


def needs_recompute(existing, week, now, mode):
    """
    Returns:
        (bool, reason)
    """
    if mode not in MODES:
        raise ValueError(f"Unknown recap mode: {mode!r}")
    if existing is None:
        return True, "no recap stored"
    if mode == MODE_FORCE:
        return True, "forced recompute"
    if mode == MODE_STALE:
        end_date = ensure_utc(week.end_date)
        week_ended = end_date <= ensure_utc(now)
        if week_ended and ensure_utc(existing.calculated_at) < end_date:
            return True, "recap calculated before the week ended"
    return False, "recap already exists"


def _result(week_id, success, status, message, record=None, diagnostics=None):
    return {
        "success": success,
        "weekId": week_id,
        "status": status,
        "message": message,
        "participantCount": len(record.participants) if record else 0,
        "topScore": record.top_score if record else 0,
        "diagnostics": diagnostics,
    }


class RecapService:
    """Computes and stores week recaps"""

    def __init__(self, gateway, settings, clock=None):
        self.gateway = gateway
        self.settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self):
        return ensure_utc(self._clock())

    def compute_week_recap(self, week, contests):
        """
        Score every scored participant for the week.

        Returns:
            (RecapRecord or None, diagnostics or None). None when the week has
            no countable contests.
        """
        countable = countable_contests(contests)
        if not countable:
            return None, None

        names = {}
        tallies = {}
        for participant in Participant.get_scored():
            picks = PickStore.get_picks(participant.id, week.week_id)
            tally = score_participant(countable, picks, self.settings.draw_policy)
            if tally is None:
                continue
            tallies[participant.id] = tally
            names[participant.id] = participant.display_name

        winners = resolve_top_scores(tallies)
        rows = tuple(
            ParticipantRecap.from_tally(
                pid, tally, pid in winners, display_name=names.get(pid)
            )
            for pid, tally in sorted(
                tallies.items(), key=lambda item: (-item[1].correct, item[0])
            )
        )

        record = RecapRecord(
            week_id=week.week_id,
            season=week.season,
            week_key=week.week_key,
            calculated_at=self.now(),
            participants=rows,
        )

        # Attached whenever the result looks like an identifier mismatch
        diagnostics = self.build_diagnostics(week, countable)
        if rows and record.top_score > 0 and diagnostics["anyIdOverlap"]:
            diagnostics = None

        return record, diagnostics

    def build_diagnostics(self, week, contests):
        """Compare contest identifiers with the keys stored in pick documents"""
        contest_keys = [c.key for c in contests]
        contest_key_set = set(contest_keys)

        with_picks = 0
        pick_keys = []
        overlap = False
        for participant in Participant.get_scored():
            keys = [str(k) for k in PickStore.get_raw_keys(participant.id, week.week_id)]
            if not keys:
                continue
            with_picks += 1
            if contest_key_set.intersection(keys):
                overlap = True
            for key in keys:
                if key not in pick_keys:
                    pick_keys.append(key)

        return {
            "participantsWithPicks": with_picks,
            "anyIdOverlap": overlap,
            "contestIdSample": contest_keys[:SAMPLE_SIZE],
            "pickKeySample": pick_keys[:SAMPLE_SIZE],
        }

    def debug_week(self, week):
        """Identifier diagnostics for a week without writing anything"""
        contests = self.gateway.list_contests_for_date_range(week.start_date, week.end_date)
        countable = countable_contests(contests)
        diagnostics = self.build_diagnostics(week, contests)
        diagnostics.update(
            {
                "weekId": week.week_id,
                "contestCount": len(contests),
                "countableCount": len(countable),
                "contests": [c.to_dict() for c in contests],
            }
        )
        return diagnostics

    def calculate_week(self, week, mode=MODE_CREATE):
        """
        Apply the persistence policy to one week and report the outcome.

        Gateway failures are reported as a failed result; they never propagate
        to the caller so a batch can continue with the next week.
        """
        week_id = week.week_id
        log = ContextualLogger(__name__, {"week": week_id, "mode": mode})

        if not is_scored_week_key(week.week_key):
            return _result(
                week_id, False, STATUS_EXCLUDED, "Week is excluded from scoring"
            )

        existing = WeekRecap.get_recap(week_id)
        recompute, reason = needs_recompute(existing, week, self.now(), mode)
        if not recompute:
            log.debug(f"Skipping: {reason}")
            return _result(week_id, True, STATUS_EXISTS, "Recap already exists", existing)

        try:
            contests = self.gateway.list_contests_for_date_range(
                week.start_date, week.end_date
            )
        except ResultsGatewayError as e:
            log.error(f"Could not load contests: {e}")
            return _result(week_id, False, STATUS_FAILED, f"Results provider error: {e}")

        record, diagnostics = self.compute_week_recap(week, contests)
        if record is None:
            log.info("No finished games, nothing stored")
            return _result(
                week_id, False, STATUS_NO_FINISHED_GAMES, "No finished games for this week"
            )

        if diagnostics:
            log.warning(
                f"Suspicious recap: {len(record.participants)} participants, "
                f"top score {record.top_score}, id overlap {diagnostics['anyIdOverlap']}"
            )

        calculated_at = WeekRecap.put_recap(week_id, record)
        invalidate_recap_cache(week_id)

        status = STATUS_CREATED if existing is None else STATUS_RECALCULATED
        log.info(
            f"Recap {status} ({reason}): {len(record.participants)} participants, "
            f"top score {record.top_score}, calculated at {calculated_at.isoformat()}"
        )
        return _result(
            week_id,
            True,
            status,
            f"Recap {status} for {len(record.participants)} participants",
            record,
            diagnostics,
        )
