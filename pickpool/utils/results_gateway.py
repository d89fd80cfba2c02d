import logging
import time
from functools import wraps

import requests

from pickpool.records import (
    AWAY,
    FINAL,
    HOME,
    LIVE,
    POSTSEASON,
    PRESEASON,
    PRO_BOWL,
    REGULAR,
    SCHEDULED,
    Contest,
    WeekInfo,
)
from pickpool.utils.timezone_utils import (
    format_scoreboard_date,
    parse_provider_datetime,
    scoreboard_days,
)
from pickpool.utils.week_keys import normalize_round_label, round_ordinal

logger = logging.getLogger(__name__)

# ESPN season types
SEASON_TYPE_PHASES = {1: PRESEASON, 2: REGULAR, 3: POSTSEASON}
OFF_SEASON_TYPE = 4

STATE_TO_STATUS = {"pre": SCHEDULED, "in": LIVE, "post": FINAL}


class ResultsGatewayError(Exception):
    """The results provider could not be reached or returned unusable data"""


def retry_with_backoff(max_retries=3, base_delay=1.0, backoff_factor=2.0, max_delay=5.0):
    """
    Retry a provider request on connection errors, timeouts, HTTP 429 and 5xx.

    The wrapped call is attempted once and then retried up to ``max_retries``
    times, waiting base_delay * backoff_factor**n (capped at max_delay) between
    attempts. Retry settings may be overridden per instance through the
    ``retry_settings`` attribute. Raises ResultsGatewayError when exhausted.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            settings = getattr(self, "retry_settings", None) or {}
            retries = settings.get("max_retries", max_retries)
            delay_base = settings.get("base_delay", base_delay)
            delay_cap = settings.get("max_delay", max_delay)

            last_error = None
            for attempt in range(retries + 1):
                try:
                    return func(self, *args, **kwargs)
                except requests.exceptions.HTTPError as e:
                    status = e.response.status_code if e.response is not None else None
                    if status != 429 and (status is None or status < 500):
                        # Client errors will not improve on retry
                        raise ResultsGatewayError(f"Provider returned HTTP {status}") from e
                    last_error = e
                except requests.exceptions.RequestException as e:
                    last_error = e

                if attempt < retries:
                    delay = min(delay_base * (backoff_factor**attempt), delay_cap)
                    logger.warning(
                        f"Provider request failed: {last_error}. Waiting {delay}s "
                        f"before retry {attempt + 1}/{retries}"
                    )
                    time.sleep(delay)

            raise ResultsGatewayError(
                f"Provider unavailable after {retries + 1} attempts: {last_error}"
            ) from last_error

        return wrapper

    return decorator


class ResultsGateway:
    """
    Read-only client for the ESPN public NFL scoreboard API: contests for a
    date range, the week calendar of a season and the current week.
    """

    def __init__(
        self,
        api_base_url=None,
        max_retries=3,
        base_delay=1.0,
        max_delay=5.0,
        min_request_interval=0.5,
        timeout=30,
    ):
        self.api_base_url = (
            api_base_url or "https://site.api.espn.com/apis/site/v2/sports/football/nfl"
        )
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "PickPool-Scoring/1.0"})
        self.timeout = timeout
        self.retry_settings = {
            "max_retries": max_retries,
            "base_delay": base_delay,
            "max_delay": max_delay,
        }

        # Client-side throttling
        self.last_request_time = 0
        self.min_request_interval = min_request_interval
        self.max_requests_per_minute = 60
        self.request_timestamps = []

    @classmethod
    def from_config(cls, config):
        return cls(
            api_base_url=config.get("NFL_API_BASE_URL"),
            max_retries=int(config.get("GATEWAY_MAX_RETRIES", 3)),
            base_delay=float(config.get("GATEWAY_BASE_DELAY", 1.0)),
            max_delay=float(config.get("GATEWAY_MAX_DELAY", 5.0)),
            min_request_interval=float(config.get("GATEWAY_MIN_REQUEST_INTERVAL", 0.5)),
            timeout=float(config.get("GATEWAY_TIMEOUT", 30)),
        )

    def _enforce_rate_limit(self):
        """Enforce rate limiting before making requests"""
        current_time = time.time()

        # Remove timestamps older than 1 minute
        self.request_timestamps = [
            ts for ts in self.request_timestamps if current_time - ts < 60
        ]

        if len(self.request_timestamps) >= self.max_requests_per_minute:
            sleep_time = 60 - (current_time - self.request_timestamps[0])
            if sleep_time > 0:
                logger.info(f"Rate limit reached. Sleeping for {sleep_time:.1f}s")
                time.sleep(sleep_time)
                self.request_timestamps = []

        time_since_last = current_time - self.last_request_time
        if time_since_last < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last)

        self.last_request_time = time.time()
        self.request_timestamps.append(self.last_request_time)

    @retry_with_backoff()
    def _get_json(self, path, params=None):
        """GET a provider endpoint and decode its JSON body"""
        self._enforce_rate_limit()
        url = f"{self.api_base_url}/{path}"

        response = self.session.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()

        try:
            return response.json()
        except ValueError as e:
            raise ResultsGatewayError(f"Provider returned invalid JSON for {url}") from e

    # Contests

    def list_contests_for_date_range(self, start, end):
        """
        All contests on every scoreboard day between start and end, de-duplicated
        by contest id and kept in provider order.
        """
        contests = []
        seen = set()

        for day in scoreboard_days(start, end):
            data = self._get_json("scoreboard", params={"dates": format_scoreboard_date(day)})
            for event in data.get("events", []) or []:
                contest = self._parse_event(event)
                if contest is None or contest.key in seen:
                    continue
                seen.add(contest.key)
                contests.append(contest)

        logger.debug(f"Fetched {len(contests)} contests between {start} and {end}")
        return contests

    def _parse_event(self, event):
        """Turn one scoreboard event into a Contest, or None if it is unusable"""
        event_id = event.get("id")
        competitions = event.get("competitions") or []
        if event_id is None or not competitions:
            logger.warning(f"Skipping scoreboard event without id/competition: {event_id!r}")
            return None

        competition = competitions[0]
        sides = {}
        for competitor in competition.get("competitors", []) or []:
            side = competitor.get("homeAway")
            if side in (HOME, AWAY):
                sides[side] = competitor

        if HOME not in sides or AWAY not in sides:
            logger.warning(f"Skipping event {event_id}: missing home/away competitor")
            return None

        status_type = (event.get("status") or competition.get("status") or {}).get("type", {})
        status = STATE_TO_STATUS.get(status_type.get("state"))
        if status is None:
            status = FINAL if status_type.get("completed") else SCHEDULED

        return Contest(
            id=event_id,
            date=parse_provider_datetime(event.get("date")),
            home=self._team_name(sides[HOME]),
            away=self._team_name(sides[AWAY]),
            home_score=self._parse_score(sides[HOME].get("score")),
            away_score=self._parse_score(sides[AWAY].get("score")),
            status=status,
            favorite_side=self._parse_favorite(competition, sides),
        )

    @staticmethod
    def _team_name(competitor):
        team = competitor.get("team") or {}
        return team.get("abbreviation") or team.get("name") or str(team.get("id", ""))

    @staticmethod
    def _parse_score(value):
        """Scores arrive as strings ("24"), numbers, or score objects"""
        if isinstance(value, dict):
            value = value.get("value", value.get("displayValue"))
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return int(value)
        try:
            return int(float(str(value).strip()))
        except ValueError:
            return None

    @staticmethod
    def _parse_favorite(competition, sides):
        """
        Favorite side from the first odds entry: explicit favorite flags first,
        then the sign of the spread, then the abbreviation in the odds details.
        """
        odds_list = competition.get("odds") or []
        if not odds_list:
            return None
        odds = odds_list[0] or {}

        if (odds.get("homeTeamOdds") or {}).get("favorite"):
            return HOME
        if (odds.get("awayTeamOdds") or {}).get("favorite"):
            return AWAY

        spread = odds.get("spread")
        if isinstance(spread, (int, float)) and not isinstance(spread, bool) and spread != 0:
            # Spread is quoted from the home side: negative means home is favored
            return HOME if spread < 0 else AWAY

        details = (odds.get("details") or "").upper()
        if details and details != "EVEN":
            favored = details.split()[0]
            for side, competitor in sides.items():
                abbreviation = ((competitor.get("team") or {}).get("abbreviation") or "").upper()
                if abbreviation and abbreviation == favored:
                    return side
        return None

    # Calendar

    def list_weeks(self, season):
        """
        Every week of a season in calendar order, built from the scoreboard
        calendar. Entries with an unknown round label are skipped with a warning.
        """
        data = self._get_json("scoreboard", params={"dates": int(season)})
        calendar = self._calendar(data)
        if not calendar:
            raise ResultsGatewayError(f"No calendar returned for season {season}")

        weeks = []
        for section in calendar:
            season_type = self._int(section.get("value"))
            phase = SEASON_TYPE_PHASES.get(season_type)
            if phase is None:
                continue
            for entry in section.get("entries", []) or []:
                try:
                    week = self._week_from_entry(season, phase, entry)
                except ValueError as e:
                    logger.warning(f"Skipping calendar entry {entry.get('label')!r}: {e}")
                    continue
                if week is not None:
                    weeks.append(week)

        logger.debug(f"Season {season} calendar has {len(weeks)} weeks")
        return weeks

    def current_week(self):
        """
        The week in progress, or None in the off-season. During the exhibition
        week the next week in the calendar is reported instead.
        """
        data = self._get_json("scoreboard")
        season_info = data.get("season") or {}
        season_type = self._int(season_info.get("type"))
        year = self._int(season_info.get("year"))
        number = self._int((data.get("week") or {}).get("number"))

        if season_type == OFF_SEASON_TYPE or season_type not in SEASON_TYPE_PHASES:
            logger.info("Provider reports the off-season")
            return None
        if year is None or number is None:
            raise ResultsGatewayError("Scoreboard response has no season/week")

        # The calendar embedded in the live scoreboard carries this week's dates
        weeks = []
        for section in self._calendar(data):
            phase = SEASON_TYPE_PHASES.get(self._int(section.get("value")))
            if phase is None:
                continue
            for entry in section.get("entries", []) or []:
                try:
                    week = self._week_from_entry(year, phase, entry)
                except ValueError:
                    continue
                if week is not None:
                    weeks.append((self._int(section.get("value")), self._int(entry.get("value")), week))

        for index, (entry_type, entry_number, week) in enumerate(weeks):
            if entry_type == season_type and entry_number == number:
                if week.phase == PRO_BOWL:
                    if index + 1 < len(weeks):
                        return weeks[index + 1][2]
                    return None
                return week

        raise ResultsGatewayError(
            f"Current week {number} (type {season_type}) not found in calendar"
        )

    def _week_from_entry(self, season, phase, entry):
        start = parse_provider_datetime(entry.get("startDate"))
        end = parse_provider_datetime(entry.get("endDate"))
        number = self._int(entry.get("value"))
        label = entry.get("label") or ""
        if start is None or end is None or number is None:
            raise ValueError("calendar entry missing dates or value")

        if phase == POSTSEASON and "pro bowl" in label.lower():
            week = WeekInfo(season, PRO_BOWL, number, start, end, label=label)
        elif phase == POSTSEASON:
            round_name = normalize_round_label(label)
            week = WeekInfo(
                season, POSTSEASON, round_ordinal(round_name), start, end,
                round_label=round_name, label=label,
            )
        else:
            week = WeekInfo(season, phase, number, start, end, label=label)

        # Raises ValueError for ordinals outside the phase range
        week.week_key
        return week

    @staticmethod
    def _calendar(data):
        leagues = data.get("leagues") or [{}]
        return leagues[0].get("calendar") or []

    @staticmethod
    def _int(value):
        try:
            return int(value)
        except (TypeError, ValueError):
            return None
