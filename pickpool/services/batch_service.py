import logging
import time
from datetime import datetime, timezone

from pickpool import db
from pickpool.services.recap_service import (
    MODE_CREATE,
    MODE_FORCE,
    MODE_STALE,
    STATUS_EXISTS,
    RecapService,
)
from pickpool.settings import EngineSettings
from pickpool.utils.performance import PerformanceMonitor
from pickpool.utils.results_gateway import ResultsGateway, ResultsGatewayError
from pickpool.utils.timezone_utils import ensure_utc
from pickpool.utils.week_keys import is_scored_week_key, split_week_id

logger = logging.getLogger(__name__)


class BatchAbortedError(Exception):
    """The season scan could not determine the current week or the week list"""


class WeekNotFoundError(LookupError):
    """The requested week is not in the provider's calendar"""


class ExcludedWeekError(ValueError):
    """The requested week is never scored (preseason or exhibition)"""


def default_season(now):
    # A season runs September to February; before September the last one applies
    return now.year if now.month >= 9 else now.year - 1


class BatchService:
    """Runs the recap policy over a whole season or a single requested week"""

    def __init__(self, gateway, settings, recap_service=None, clock=None, sleep=None):
        self.gateway = gateway
        self.settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sleep = sleep or time.sleep
        self.recap_service = recap_service or RecapService(gateway, settings, clock=self._clock)

    @classmethod
    def for_app(cls, app):
        """
        Services bound to the app's shared results gateway, with settings read
        from the app config at call time.
        """
        gateway = app.extensions.get("results_gateway")
        if gateway is None:
            gateway = app.extensions["results_gateway"] = ResultsGateway.from_config(app.config)
        return cls(gateway, EngineSettings.from_config(app.config))

    def now(self):
        return ensure_utc(self._clock())

    def current_week_id(self):
        """Id of the week in progress, None in the off-season"""
        current = self.gateway.current_week()
        return current.week_id if current else None

    def run_season(self, season=None, mode=MODE_STALE):
        """
        Process every ended, scored week of a season in calendar order.

        Raises:
            BatchAbortedError: current week or week list unavailable
        """
        try:
            current = self.gateway.current_week()
            season = season or (current.season if current else default_season(self.now()))
            weeks = self.gateway.list_weeks(season)
        except ResultsGatewayError as e:
            logger.error(f"Season batch aborted: {e}")
            raise BatchAbortedError(str(e)) from e

        current_week_id = current.week_id if current else None
        now = self.now()
        summary = {
            "success": True,
            "season": season,
            "mode": mode,
            "currentWeekId": current_week_id,
            "processed": 0,
            "succeeded": 0,
            "failed": 0,
            "skipped": 0,
            "results": [],
        }

        logger.info(f"Starting {mode} recap batch for season {season} ({len(weeks)} weeks)")

        with PerformanceMonitor(
            f"recap batch {season} ({mode})", self.settings.slow_operation_threshold
        ):
            called_provider = False
            for week in weeks:
                if not is_scored_week_key(week.week_key):
                    summary["skipped"] += 1
                    continue
                if week.week_id == current_week_id or ensure_utc(week.end_date) > now:
                    summary["skipped"] += 1
                    continue

                if called_provider and self.settings.inter_week_delay > 0:
                    self._sleep(self.settings.inter_week_delay)

                result = self._run_week(week, mode)
                called_provider = result["status"] != STATUS_EXISTS

                summary["processed"] += 1
                summary["results"].append(result)
                if result["success"]:
                    summary["succeeded"] += 1
                else:
                    summary["failed"] += 1

        logger.info(
            f"Recap batch for {season} done: {summary['succeeded']} succeeded, "
            f"{summary['failed']} failed, {summary['skipped']} skipped"
        )
        return summary

    def _run_week(self, week, mode):
        try:
            return self.recap_service.calculate_week(week, mode)
        except Exception as e:
            # One broken week must not stop the rest of the season
            db.session.rollback()
            logger.error(f"Recap for {week.week_id} failed: {e}", exc_info=True)
            return {
                "success": False,
                "weekId": week.week_id,
                "status": "failed",
                "message": str(e),
                "participantCount": 0,
                "topScore": 0,
                "diagnostics": None,
            }

    def resolve_week(self, week_id=None, week_offset=None):
        """
        Find a week by id ("2024_week-3") or by offset from the current week
        (0 = current, -1 = previous). Exactly one must be given.
        """
        if (week_id is None) == (week_offset is None):
            raise ValueError("Provide exactly one of weekId or weekOffset")

        if week_id is not None:
            season, week_key = split_week_id(week_id)
            week = next(
                (w for w in self.gateway.list_weeks(season) if w.week_key == week_key), None
            )
            if week is None:
                raise WeekNotFoundError(f"Week {week_id} is not in the {season} calendar")
        else:
            if isinstance(week_offset, bool) or not isinstance(week_offset, int):
                raise ValueError("weekOffset must be an integer")
            current = self.gateway.current_week()
            if current is None:
                raise WeekNotFoundError("No current week during the off-season")
            weeks = self.gateway.list_weeks(current.season)
            ids = [w.week_id for w in weeks]
            if current.week_id not in ids:
                raise WeekNotFoundError(f"Current week {current.week_id} not in calendar")
            index = ids.index(current.week_id) + week_offset
            if not 0 <= index < len(weeks):
                raise WeekNotFoundError(f"No week at offset {week_offset} from {current.week_id}")
            week = weeks[index]

        if not is_scored_week_key(week.week_key):
            raise ExcludedWeekError(f"Week {week.week_id} is excluded from scoring")
        return week

    def run_single_week(self, week_id=None, week_offset=None, force=False):
        week = self.resolve_week(week_id=week_id, week_offset=week_offset)
        return self.recap_service.calculate_week(week, MODE_FORCE if force else MODE_CREATE)
