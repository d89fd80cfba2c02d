from datetime import datetime, timezone

import pytest
import requests

from pickpool.records import AWAY, FINAL, HOME, LIVE, POSTSEASON, PRESEASON, PRO_BOWL, REGULAR, SCHEDULED
from pickpool.utils import results_gateway
from pickpool.utils.results_gateway import ResultsGateway, ResultsGatewayError


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload if payload is not None else {}
        self.status_code = status_code

    def json(self):
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error", response=self)


def competitor(side, abbreviation, score):
    return {"homeAway": side, "score": score, "team": {"id": abbreviation, "abbreviation": abbreviation}}


def event(event_id, home_score, away_score, state="post", odds=None):
    competition = {
        "competitors": [competitor("home", "KC", home_score), competitor("away", "BAL", away_score)]
    }
    if odds is not None:
        competition["odds"] = [odds]
    return {
        "id": event_id,
        "date": "2024-09-06T00:20Z",
        "status": {"type": {"state": state, "completed": state == "post"}},
        "competitions": [competition],
    }


CALENDAR = [
    {
        "label": "Preseason",
        "value": "1",
        "entries": [
            {"label": "Hall of Fame Weekend", "value": "1", "startDate": "2024-07-31T07:00Z", "endDate": "2024-08-06T06:59Z"}
        ],
    },
    {
        "label": "Regular Season",
        "value": "2",
        "entries": [
            {"label": "Week 1", "value": "1", "startDate": "2024-09-04T07:00Z", "endDate": "2024-09-11T06:59Z"},
            {"label": "Week 2", "value": "2", "startDate": "2024-09-11T07:00Z", "endDate": "2024-09-18T06:59Z"},
        ],
    },
    {
        "label": "Postseason",
        "value": "3",
        "entries": [
            {"label": "Wild Card", "value": "1", "startDate": "2025-01-08T08:00Z", "endDate": "2025-01-15T07:59Z"},
            {"label": "Conf Championship", "value": "3", "startDate": "2025-01-22T08:00Z", "endDate": "2025-01-29T07:59Z"},
            {"label": "Pro Bowl", "value": "4", "startDate": "2025-01-29T08:00Z", "endDate": "2025-02-05T07:59Z"},
            {"label": "Super Bowl", "value": "5", "startDate": "2025-02-05T08:00Z", "endDate": "2025-02-12T07:59Z"},
        ],
    },
    {"label": "Off Season", "value": "4", "entries": []},
]


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    monkeypatch.setattr(results_gateway.time, "sleep", recorded.append)
    return recorded


@pytest.fixture
def gateway():
    return ResultsGateway(min_request_interval=0)


def serve(monkeypatch, gateway, responses):
    """Return queued responses (or raise queued exceptions) from session.get"""
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append((url, params))
        item = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    monkeypatch.setattr(gateway.session, "get", fake_get)
    return calls


def test_contests_are_parsed_and_deduplicated(monkeypatch, gateway, sleeps):
    day_one = FakeResponse(
        {
            "events": [
                event(401, "27", "20", odds={"homeTeamOdds": {"favorite": True}, "awayTeamOdds": {"favorite": False}}),
                event(402, "0", "0", state="pre", odds={"spread": 3.5}),
            ]
        }
    )
    day_two = FakeResponse(
        {"events": [event(402, "0", "0", state="pre"), event(403, "14", "", state="in", odds={"details": "BAL -2.5"})]}
    )
    calls = serve(monkeypatch, gateway, [day_one, day_two])

    contests = gateway.list_contests_for_date_range(
        datetime(2024, 9, 6, 12, tzinfo=timezone.utc), datetime(2024, 9, 7, 12, tzinfo=timezone.utc)
    )

    assert [c.key for c in contests] == ["401", "402", "403"]
    assert [p["dates"] for _, p in calls] == ["20240906", "20240907"]

    final, scheduled, live = contests
    assert (final.home_score, final.away_score, final.status) == (27, 20, FINAL)
    assert final.favorite_side == HOME
    assert final.home == "KC"
    assert scheduled.status == SCHEDULED
    assert scheduled.favorite_side == AWAY
    assert live.status == LIVE
    assert live.away_score is None
    assert live.favorite_side == AWAY


def test_events_without_both_sides_are_skipped(monkeypatch, gateway, sleeps):
    broken = event(500, "1", "2")
    broken["competitions"][0]["competitors"].pop()
    serve(monkeypatch, gateway, [FakeResponse({"events": [broken, {"id": 501}]})])

    day = datetime(2024, 9, 8, 17, tzinfo=timezone.utc)
    assert gateway.list_contests_for_date_range(day, day) == []


def test_server_errors_are_retried_with_backoff(monkeypatch, gateway, sleeps):
    serve(
        monkeypatch,
        gateway,
        [FakeResponse(status_code=503), FakeResponse(status_code=429), FakeResponse({"events": []})],
    )

    day = datetime(2024, 9, 8, 17, tzinfo=timezone.utc)
    assert gateway.list_contests_for_date_range(day, day) == []
    assert sleeps == [1.0, 2.0]


def test_exhausted_retries_raise_gateway_error(monkeypatch, gateway, sleeps):
    calls = serve(monkeypatch, gateway, [requests.exceptions.ConnectionError("down")])

    with pytest.raises(ResultsGatewayError):
        gateway.current_week()

    assert len(calls) == 4
    assert sleeps == [1.0, 2.0, 4.0]


def test_backoff_is_capped(monkeypatch, sleeps):
    gateway = ResultsGateway(base_delay=4.0, max_delay=5.0, min_request_interval=0)
    serve(monkeypatch, gateway, [requests.exceptions.Timeout("slow")])

    with pytest.raises(ResultsGatewayError):
        gateway.list_weeks(2024)

    assert sleeps == [4.0, 5.0, 5.0]


def test_client_errors_are_not_retried(monkeypatch, gateway, sleeps):
    calls = serve(monkeypatch, gateway, [FakeResponse(status_code=404)])

    with pytest.raises(ResultsGatewayError):
        gateway.list_weeks(2024)

    assert len(calls) == 1
    assert sleeps == []


def test_list_weeks_builds_calendar(monkeypatch, gateway, sleeps):
    serve(monkeypatch, gateway, [FakeResponse({"leagues": [{"calendar": CALENDAR}]})])

    weeks = gateway.list_weeks(2024)

    assert [w.week_key for w in weeks] == [
        "preseason-1",
        "week-1",
        "week-2",
        "wild-card",
        "conference",
        "pro-bowl-4",
        "super-bowl",
    ]
    assert weeks[0].phase == PRESEASON
    assert weeks[1].phase == REGULAR
    assert weeks[1].start_date == datetime(2024, 9, 4, 7, tzinfo=timezone.utc)
    assert weeks[3].phase == POSTSEASON and weeks[3].ordinal == 1
    assert weeks[5].phase == PRO_BOWL
    assert weeks[6].week_id == "2024_super-bowl"


def test_current_week_and_pro_bowl_rollover(monkeypatch, gateway, sleeps):
    regular = {"season": {"type": 2, "year": 2024}, "week": {"number": 2}, "leagues": [{"calendar": CALENDAR}]}
    serve(monkeypatch, gateway, [FakeResponse(regular)])
    assert gateway.current_week().week_id == "2024_week-2"

    pro_bowl = {"season": {"type": 3, "year": 2024}, "week": {"number": 4}, "leagues": [{"calendar": CALENDAR}]}
    serve(monkeypatch, gateway, [FakeResponse(pro_bowl)])
    assert gateway.current_week().week_id == "2024_super-bowl"


def test_current_week_is_none_in_the_off_season(monkeypatch, gateway, sleeps):
    serve(monkeypatch, gateway, [FakeResponse({"season": {"type": 4, "year": 2025}, "week": {"number": 1}})])
    assert gateway.current_week() is None


def test_from_config_reads_gateway_settings():
    gateway = ResultsGateway.from_config(
        {"NFL_API_BASE_URL": "http://example.test/nfl", "GATEWAY_MAX_RETRIES": "5", "GATEWAY_BASE_DELAY": "0.5"}
    )
    assert gateway.api_base_url == "http://example.test/nfl"
    assert gateway.retry_settings["max_retries"] == 5
    assert gateway.retry_settings["base_delay"] == 0.5
