from datetime import datetime, timedelta, timezone

import pytest

from pickpool import create_app, db
from pickpool.models import Participant, PickDocument
from pickpool.records import FINAL, POSTSEASON, PRESEASON, PRO_BOWL, REGULAR, Contest, WeekInfo
from pickpool.utils.results_gateway import ResultsGatewayError

SEASON = 2024
SEASON_START = datetime(2024, 9, 3, 7, 0, tzinfo=timezone.utc)


def make_week(ordinal, phase=REGULAR, season=SEASON, round_label=None, start=None, label=None):
    """Week N of the test season, seven days long starting on a Tuesday"""
    if start is None:
        start = SEASON_START + timedelta(weeks=ordinal - 1)
    return WeekInfo(
        season=season,
        phase=phase,
        ordinal=ordinal,
        start_date=start,
        end_date=start + timedelta(days=7) - timedelta(minutes=1),
        round_label=round_label,
        label=label,
    )


def make_contest(contest_id, home_score=None, away_score=None, status=FINAL, favorite=None):
    return Contest(
        id=contest_id,
        home=f"H{contest_id}",
        away=f"A{contest_id}",
        home_score=home_score,
        away_score=away_score,
        status=status,
        favorite_side=favorite,
    )


def season_calendar():
    """Preseason week, weeks 1-3, wild card, pro bowl, super bowl"""
    weeks = [make_week(1, PRESEASON, start=SEASON_START - timedelta(weeks=1))]
    weeks += [make_week(n) for n in (1, 2, 3)]
    weeks.append(make_week(1, POSTSEASON, round_label="wild card", start=SEASON_START + timedelta(weeks=3)))
    weeks.append(make_week(4, PRO_BOWL, start=SEASON_START + timedelta(weeks=4)))
    weeks.append(make_week(4, POSTSEASON, round_label="super bowl", start=SEASON_START + timedelta(weeks=5)))
    return weeks


class FakeGateway:
    """In-memory results provider"""

    def __init__(self, weeks=None, current=None):
        self.weeks = list(weeks or [])
        self.current = current
        self.contests = {}
        self.failing_weeks = set()
        self.fail_calendar = False
        self.contest_calls = []

    def set_contests(self, week, contests):
        self.contests[week.start_date] = list(contests)

    def list_contests_for_date_range(self, start, end):
        self.contest_calls.append((start, end))
        if start in self.failing_weeks:
            raise ResultsGatewayError("provider down")
        return list(self.contests.get(start, []))

    def list_weeks(self, season):
        if self.fail_calendar:
            raise ResultsGatewayError("calendar unavailable")
        return [w for w in self.weeks if w.season == season]

    def current_week(self):
        if self.fail_calendar:
            raise ResultsGatewayError("scoreboard unavailable")
        return self.current


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def gateway(app):
    fake = FakeGateway(weeks=season_calendar())
    app.extensions["results_gateway"] = fake
    return fake


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers():
    return {"Authorization": "Bearer test-secret"}


@pytest.fixture
def add_participant(app):
    def _add(participant_id, display_name=None, is_active=True):
        participant = Participant(
            id=participant_id,
            display_name=participant_id.title() if display_name is None else display_name,
            is_active=is_active,
        )
        db.session.add(participant)
        db.session.commit()
        return participant

    return _add


@pytest.fixture
def add_picks(app):
    def _add(participant_id, week, picks):
        """picks: {contest_id: "home" | "away"}"""
        raw = {
            str(cid): {"pickedTeam": side, "pickedAt": "2024-09-05T12:00:00+00:00"}
            for cid, side in picks.items()
        }
        PickDocument.save(participant_id, week.week_id, raw)
        db.session.commit()

    return _add
