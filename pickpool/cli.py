"""
Management commands, registered on the Flask CLI (``flask recap ...``) and
runnable through manage.py.
"""

import json
import logging

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pickpool import db
from pickpool.models import Participant, PickDocument, WeekRecap
from pickpool.records import InvalidRecordError, PickEntry
from pickpool.services.batch_service import (
    BatchAbortedError,
    BatchService,
    ExcludedWeekError,
    WeekNotFoundError,
)
from pickpool.services.favorite_picks import FavoritePickGenerator
from pickpool.services.leaderboard_service import build_leaderboard
from pickpool.services.recap_service import MODE_FORCE, MODE_STALE, RecapService
from pickpool.utils.results_gateway import ResultsGatewayError
from pickpool.utils.week_keys import split_week_id

logger = logging.getLogger(__name__)

STATUS_ICONS = {
    "created": "✅",
    "recalculated": "🔄",
    "exists": "⏭️ ",
    "no_finished_games": "⚠️ ",
    "excluded": "⚪",
    "failed": "❌",
}


def _echo_result(result):
    icon = STATUS_ICONS.get(result["status"], "•")
    click.echo(
        f"{icon} {result['weekId']}: {result['message']} "
        f"(participants: {result['participantCount']}, top score: {result['topScore']})"
    )
    if result.get("diagnostics"):
        diag = result["diagnostics"]
        click.echo(
            f"   🔍 participants with picks: {diag['participantsWithPicks']}, "
            f"id overlap: {diag['anyIdOverlap']}"
        )
        click.echo(f"      contest ids: {', '.join(diag['contestIdSample'])}")
        click.echo(f"      pick keys:   {', '.join(diag['pickKeySample'])}")


# Recap commands
@click.group()
def recap():
    """Week recap commands"""
    pass


@recap.command("calculate")
@click.option("--week-id", help="Week id, e.g. 2024_week-3")
@click.option("--offset", type=int, help="Offset from the current week (-1 = last week)")
@click.option("--force", is_flag=True, help="Overwrite an existing recap")
@with_appcontext
def calculate(week_id, offset, force):
    """Calculate the recap for one week"""
    try:
        service = BatchService.for_app(current_app)
        result = service.run_single_week(week_id=week_id, week_offset=offset, force=force)
        _echo_result(result)
    except (ExcludedWeekError, WeekNotFoundError, ValueError) as e:
        click.echo(f"❌ {e}")
    except ResultsGatewayError as e:
        click.echo(f"❌ Results provider error: {e}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error: {str(e)}")
        logging.error(f"Recap calculation failed - SQL error: {e}")


@recap.command("season")
@click.option("--season", type=int, help="Season year (defaults to the current season)")
@click.option("--force", is_flag=True, help="Recompute every ended week")
@with_appcontext
def season_batch(season, force):
    """Calculate recaps for every ended week of a season"""
    mode = MODE_FORCE if force else MODE_STALE
    try:
        summary = BatchService.for_app(current_app).run_season(season=season, mode=mode)
    except BatchAbortedError as e:
        click.echo(f"❌ Batch aborted: {e}")
        return

    click.echo(f"🏈 Season {summary['season']} ({mode})")
    for result in summary["results"]:
        _echo_result(result)
    click.echo(
        f"\n🎉 {summary['succeeded']} succeeded, {summary['failed']} failed, "
        f"{summary['skipped']} skipped"
    )


@recap.command("show")
@click.argument("week_id")
@with_appcontext
def show(week_id):
    """Show a stored recap"""
    record = WeekRecap.get_recap(week_id)
    if record is None:
        click.echo(f"❌ No recap stored for {week_id}")
        return

    click.echo(f"📅 {record.week_id} (calculated {record.calculated_at:%Y-%m-%d %H:%M} UTC)")
    for row in record.participants:
        crown = "👑" if row.is_top_score else "  "
        click.echo(
            f"  {crown} {row.display_name or row.participant_id}: "
            f"{row.correct}/{row.total} ({row.percentage}%) "
            f"underdogs {row.underdog_correct}/{row.underdog_picks}"
        )


@recap.command("debug")
@click.argument("week_id")
@with_appcontext
def debug(week_id):
    """Compare contest ids with stored pick keys for a week"""
    try:
        service = BatchService.for_app(current_app)
        week = service.resolve_week(week_id=week_id)
        diagnostics = RecapService(service.gateway, service.settings).debug_week(week)
    except (ExcludedWeekError, WeekNotFoundError, ValueError) as e:
        click.echo(f"❌ {e}")
        return
    except ResultsGatewayError as e:
        click.echo(f"❌ Results provider error: {e}")
        return

    click.echo(
        f"🔍 {week_id}: {diagnostics['countableCount']}/{diagnostics['contestCount']} "
        f"contests final"
    )
    click.echo(f"   participants with picks: {diagnostics['participantsWithPicks']}")
    click.echo(f"   id overlap: {'✅' if diagnostics['anyIdOverlap'] else '❌'}")
    click.echo(f"   contest ids: {', '.join(diagnostics['contestIdSample'])}")
    click.echo(f"   pick keys:   {', '.join(diagnostics['pickKeySample'])}")


@click.command("leaderboard")
@click.option("--season", type=int, required=True, help="Season year")
@click.option(
    "--current-week-id", help="Week in progress, left out (defaults to the provider's current week)"
)
@click.option("--regular-season-only", is_flag=True, help="Leave out postseason weeks")
@click.option("--json", "as_json", is_flag=True, help="Print the raw JSON")
@with_appcontext
def leaderboard_cmd(season, current_week_id, regular_season_only, as_json):
    """Show season standings"""
    if current_week_id is None:
        try:
            current_week_id = BatchService.for_app(current_app).current_week_id()
        except ResultsGatewayError as e:
            click.echo(f"❌ Could not determine the current week: {e}")
            return

    result = build_leaderboard(
        season, current_week_id=current_week_id, regular_season_only=regular_season_only
    )
    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.echo(f"🏆 Season {season} ({result['weekCount']} weeks)")
    for row in result["standings"]:
        flag = " *" if row["incomplete"] else ""
        click.echo(
            f"  {row['rank']:>3}. {row['displayName'] or row['participantId']}: "
            f"{row['totalCorrect']}/{row['totalContests']} ({row['overallPercentage']}%) "
            f"weeks won {row['weeksWon']}, played {row['weeksPlayed']}{flag}"
        )
    if not result["verification"]["ok"]:
        click.echo(
            f"⚠️  Verification found {len(result['verification']['mismatches'])} mismatches"
        )


# Participant commands
@click.group()
def participant():
    """Participant management commands"""
    pass


@participant.command("add")
@click.argument("participant_id")
@click.argument("display_name")
@click.option("--synthetic", is_flag=True, help="Generated participant")
@with_appcontext
def add_participant(participant_id, display_name, synthetic):
    """Add a participant"""
    if db.session.get(Participant, participant_id) is not None:
        click.echo(f"❌ Participant {participant_id} already exists!")
        return

    try:
        db.session.add(
            Participant(id=participant_id, display_name=display_name, is_synthetic=synthetic)
        )
        db.session.commit()
        click.echo(f"✅ Added participant {participant_id} ({display_name})")
    except IntegrityError:
        db.session.rollback()
        click.echo(f"❌ Participant {participant_id} already exists!")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error adding participant: {str(e)}")


@participant.command("list")
@with_appcontext
def list_participants():
    """List participants"""
    participants = Participant.query.order_by(Participant.id).all()
    if not participants:
        click.echo("No participants found.")
        return

    click.echo("Participants:")
    for p in participants:
        status = "🟢" if p.is_active else "⚪"
        kind = " (synthetic)" if p.is_synthetic else ""
        click.echo(f"  {status} {p.id}: {p.display_name or '-'}{kind}")


@participant.command("deactivate")
@click.argument("participant_id")
@with_appcontext
def deactivate(participant_id):
    """Stop scoring a participant"""
    p = db.session.get(Participant, participant_id)
    if p is None:
        click.echo(f"❌ Participant {participant_id} not found!")
        return
    p.is_active = False
    db.session.commit()
    click.echo(f"✅ Deactivated {participant_id}")


# Pick commands
@click.group()
def picks():
    """Pick document commands"""
    pass


@picks.command("import")
@click.argument("source", type=click.File("r"))
@with_appcontext
def import_picks(source):
    """
    Import pick documents from a JSON file:
    [{"participantId": ..., "weekId": ..., "picks": {"401": {"pickedTeam": "home"}}}]
    """
    try:
        documents = json.load(source)
    except ValueError as e:
        click.echo(f"❌ Invalid JSON: {e}")
        return
    if isinstance(documents, dict):
        documents = [documents]

    imported = 0
    for document in documents:
        pid = document.get("participantId") if isinstance(document, dict) else None
        week_id = document.get("weekId") if isinstance(document, dict) else None
        try:
            split_week_id(week_id)
            if db.session.get(Participant, pid) is None:
                raise ValueError(f"unknown participant {pid!r}")
            entries = {
                str(k): PickEntry.from_raw(k, v).to_raw()
                for k, v in (document.get("picks") or {}).items()
            }
        except (ValueError, InvalidRecordError, AttributeError) as e:
            click.echo(f"⚠️  Skipping document {pid}/{week_id}: {e}")
            continue

        PickDocument.save(pid, week_id, entries)
        imported += 1

    try:
        db.session.commit()
        click.echo(f"✅ Imported {imported} pick documents")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error importing picks: {str(e)}")


@picks.command("generate-favorites")
@click.option("--week-id", help="Week id (defaults to the current and previous week)")
@click.option("--force", is_flag=True, help="Overwrite existing picks")
@with_appcontext
def generate_favorites(week_id, force):
    """Generate picks for the always-favorite participant"""
    service = BatchService.for_app(current_app)
    generator = FavoritePickGenerator(service.gateway, service.settings)

    if week_id is None:
        result = generator.run_weekly()
        if "passes" not in result:
            click.echo(f"❌ {result['message']}")
            return
        for name, outcome in result["passes"].items():
            icon = "✅" if outcome["success"] else "❌"
            click.echo(f"{icon} {name}: {outcome['message']}")
        return

    try:
        week = service.resolve_week(week_id=week_id)
    except (ExcludedWeekError, WeekNotFoundError, ValueError) as e:
        click.echo(f"❌ {e}")
        return
    except ResultsGatewayError as e:
        click.echo(f"❌ Results provider error: {e}")
        return

    success, message = generator.generate_for_week(week, force=force)
    click.echo(f"{'✅' if success else '❌'} {message}")


# Database commands
@click.group("db-cmd")
def db_cmd():
    """Database management commands"""
    pass


@db_cmd.command("init")
@with_appcontext
def init_db():
    """Create all tables"""
    db.create_all()
    click.echo("✅ Database tables created")


@db_cmd.command("reset")
@click.confirmation_option(prompt="This deletes all recaps and picks. Continue?")
@with_appcontext
def reset():
    """Drop and recreate all tables"""
    db.drop_all()
    db.create_all()
    click.echo("✅ Database reset")


@click.command("status")
@with_appcontext
def status():
    """Show engine status"""
    click.echo("🏈 Pick Pool Status")
    click.echo("=" * 40)

    try:
        db.session.execute(text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except Exception as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    active = Participant.query.filter_by(is_active=True).count()
    click.echo(f"👥 Active participants: {active}")
    click.echo(f"📄 Pick documents: {PickDocument.query.count()}")
    click.echo(f"📊 Stored recaps: {WeekRecap.query.count()}")

    try:
        current = BatchService.for_app(current_app).gateway.current_week()
        if current:
            click.echo(f"📅 Current week: {current.week_id}")
        else:
            click.echo("📅 Current week: off-season")
    except ResultsGatewayError as e:
        click.echo(f"⚠️  Current week unavailable: {e}")


COMMANDS = (recap, leaderboard_cmd, participant, picks, db_cmd, status)


def register_commands(app):
    for command in COMMANDS:
        app.cli.add_command(command)
