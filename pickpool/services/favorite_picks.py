"""
Picks for the synthetic always-favorite participant.

This is a pick writer, kept apart from scoring: recap and leaderboard code
only ever read picks.
"""

import logging
from datetime import datetime, timezone

from pickpool import db
from pickpool.models import Participant, PickDocument
from pickpool.records import HOME, PickEntry
from pickpool.utils.results_gateway import ResultsGatewayError
from pickpool.utils.week_keys import is_scored_week_key

logger = logging.getLogger(__name__)


class FavoritePickGenerator:
    def __init__(self, gateway, settings, clock=None):
        self.gateway = gateway
        self.settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def ensure_participant(self):
        participant = db.session.get(Participant, self.settings.favorite_participant_id)
        if participant is None:
            participant = Participant(
                id=self.settings.favorite_participant_id,
                display_name=self.settings.favorite_participant_name,
                is_synthetic=True,
            )
            db.session.add(participant)
            db.session.commit()
            logger.info(f"Created synthetic participant {participant.id}")
        return participant

    def build_picks(self, contests):
        """Favorite side for every contest, home when no favorite is known"""
        submitted_at = self._clock().isoformat()
        return {
            c.key: PickEntry(c.key, c.favorite_side or HOME, submitted_at).to_raw()
            for c in contests
        }

    def generate_for_week(self, week, force=False):
        """
        Returns:
            (success, message)
        """
        if not is_scored_week_key(week.week_key):
            return False, f"{week.week_id} is excluded from scoring"

        participant = self.ensure_participant()
        if PickDocument.get(participant.id, week.week_id) and not force:
            return True, f"Picks already exist for {week.week_id}"

        try:
            contests = self.gateway.list_contests_for_date_range(week.start_date, week.end_date)
        except ResultsGatewayError as e:
            logger.error(f"Could not load contests for {week.week_id}: {e}")
            return False, str(e)

        if not contests:
            return False, f"No games found for {week.week_id}"

        try:
            PickDocument.save(participant.id, week.week_id, self.build_picks(contests))
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error saving favorite picks for {week.week_id}: {e}", exc_info=True)
            return False, str(e)

        logger.info(f"Stored {len(contests)} favorite picks for {week.week_id}")
        return True, f"Generated {len(contests)} picks for {week.week_id}"

    def run_weekly(self):
        """
        New picks for the current week, then a forced refresh of the previous
        week so late odds changes are reflected.
        """
        try:
            current = self.gateway.current_week()
            if current is None:
                return {"success": False, "message": "Off-season, no picks generated"}
            weeks = self.gateway.list_weeks(current.season)
        except ResultsGatewayError as e:
            logger.error(f"Favorite pick generation aborted: {e}")
            return {"success": False, "message": str(e)}

        ids = [w.week_id for w in weeks]
        previous = None
        if current.week_id in ids:
            earlier = [w for w in weeks[: ids.index(current.week_id)] if is_scored_week_key(w.week_key)]
            previous = earlier[-1] if earlier else None

        passes = {"current": self.generate_for_week(current)}
        if previous is not None:
            passes["previous"] = self.generate_for_week(previous, force=True)

        return {
            "success": any(ok for ok, _ in passes.values()),
            "currentWeekId": current.week_id,
            "previousWeekId": previous.week_id if previous else None,
            "passes": {name: {"success": ok, "message": msg} for name, (ok, msg) in passes.items()},
        }
