import pytest

from pickpool.models import PickDocument, WeekRecap
from pickpool.services.scheduler_service import SchedulerService
from tests.conftest import make_contest, season_calendar


@pytest.fixture
def service(app, gateway):
    weeks = {w.week_id: w for w in season_calendar()}
    gateway.current = weeks["2024_week-3"]
    for week in weeks.values():
        gateway.set_contests(week, [make_contest(f"{week.week_key}-1", 24, 3)])

    service = SchedulerService()
    service.app = app
    return service


def test_manual_daily_run_updates_stats(service):
    ok, message = service.force_run("daily")

    assert ok, message
    assert WeekRecap.get_recap("2024_week-1") is not None
    stats = service.get_status()["stats"]
    assert stats["successful_runs"] == 1
    assert stats["weeks_processed"] == 4
    assert stats["last_run"] is not None


def test_manual_run_records_aborted_batch(service, gateway):
    gateway.fail_calendar = True

    ok, message = service.force_run("weekly")

    assert ok is False
    assert "unavailable" in message
    assert service.get_status()["stats"]["failed_runs"] == 1


def test_manual_favorite_run(service):
    ok, message = service.force_run("favorites")

    assert ok, message
    assert PickDocument.get("favorite-bot", "2024_week-3") is not None


def test_unknown_job_type(service):
    ok, message = service.force_run("hourly")
    assert ok is False
    assert "Unknown job type" in message


def test_status_without_scheduler():
    status = SchedulerService().get_status()
    assert status == {
        "is_running": False,
        "jobs": [],
        "stats": {
            "last_run": None,
            "total_runs": 0,
            "successful_runs": 0,
            "failed_runs": 0,
            "last_error": None,
            "weeks_processed": 0,
        },
    }
