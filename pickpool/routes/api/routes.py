import hmac
import logging
from datetime import datetime, timezone
from functools import wraps

from flask import current_app, jsonify, request
from sqlalchemy import text

from pickpool import db, limiter
from pickpool.models import WeekRecap
from pickpool.routes.api import bp
from pickpool.services.batch_service import (
    BatchAbortedError,
    BatchService,
    ExcludedWeekError,
    WeekNotFoundError,
    default_season,
)
from pickpool.services.leaderboard_service import build_leaderboard
from pickpool.services.recap_service import (
    MODE_FORCE,
    MODE_STALE,
    STATUS_FAILED,
    RecapService,
)
from pickpool.utils.cache_utils import cached_route
from pickpool.utils.results_gateway import ResultsGatewayError
from pickpool.utils.week_keys import split_week_id

logger = logging.getLogger(__name__)


def trigger_rate_limit():
    return current_app.config.get("TRIGGER_RATE_LIMIT", "30 per hour")


def require_cron_secret(f):
    """
    Require "Authorization: Bearer <CRON_SECRET>" on trigger endpoints.
    Without a configured secret the endpoints stay open.
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        secret = current_app.config.get("CRON_SECRET")
        if secret:
            header = request.headers.get("Authorization", "")
            if not hmac.compare_digest(header, f"Bearer {secret}"):
                logger.warning(f"Rejected unauthorized call to {request.path}")
                return jsonify({"success": False, "error": "Unauthorized"}), 401
        return f(*args, **kwargs)

    return decorated_function


def error_response(message, status):
    return jsonify({"success": False, "error": message}), status


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _season_arg(value):
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise ValueError("season must be a year")
    try:
        season = int(value)
    except (TypeError, ValueError):
        raise ValueError("season must be a year")
    if not 1900 <= season <= 2999:
        raise ValueError("season must be a year")
    return season


def _flag(value):
    if isinstance(value, bool):
        return value
    return str(value or "").lower() in ("1", "true", "yes")


@bp.route("/week-recap/calculate", methods=["POST"])
@limiter.limit(trigger_rate_limit)
@require_cron_secret
def calculate_week_recap():
    """Compute one week's recap, by week id or offset from the current week"""
    data = _json_body()
    week_id = data.get("weekId")
    week_offset = data.get("weekOffset")
    force = _flag(data.get("force", False))

    service = BatchService.for_app(current_app)
    try:
        result = service.run_single_week(week_id=week_id, week_offset=week_offset, force=force)
    except ExcludedWeekError as e:
        return error_response(str(e), 400)
    except WeekNotFoundError as e:
        return error_response(str(e), 404)
    except ValueError as e:
        return error_response(str(e), 400)
    except ResultsGatewayError as e:
        logger.error(f"Week recap trigger failed: {e}")
        return error_response(f"Results provider error: {e}", 502)

    status_code = 502 if result["status"] == STATUS_FAILED else 200
    return jsonify(result), status_code


def _run_season_batch(mode):
    try:
        season = _season_arg(_json_body().get("season"))
    except ValueError as e:
        return error_response(str(e), 400)

    try:
        summary = BatchService.for_app(current_app).run_season(season=season, mode=mode)
    except BatchAbortedError as e:
        return error_response(f"Batch aborted: {e}", 502)

    return jsonify(summary)


@bp.route("/cron/calculate-week-recaps", methods=["POST"])
@limiter.limit(trigger_rate_limit)
@require_cron_secret
def cron_calculate_week_recaps():
    """Season batch: missing and stale recaps only"""
    return _run_season_batch(MODE_STALE)


@bp.route("/cron/recalculate-all-week-recaps", methods=["POST"])
@limiter.limit(trigger_rate_limit)
@require_cron_secret
def cron_recalculate_all_week_recaps():
    """Season batch: every ended week recomputed"""
    return _run_season_batch(MODE_FORCE)


@bp.route("/stats/leaderboard")
@cached_route(timeout=300, key_prefix="leaderboard")
def leaderboard():
    try:
        season = _season_arg(request.args.get("season"))
    except ValueError as e:
        return {"success": False, "error": str(e)}, 400

    season = season or default_season(datetime.now(timezone.utc))
    current_week_id = request.args.get("current_week_id") or None
    if current_week_id is None:
        try:
            current_week_id = BatchService.for_app(current_app).current_week_id()
        except ResultsGatewayError as e:
            logger.error(f"Leaderboard could not determine the current week: {e}")
            return {"success": False, "error": f"Results provider error: {e}"}, 502

    result = build_leaderboard(
        season,
        current_week_id=current_week_id,
        regular_season_only=_flag(request.args.get("regular_season_only")),
    )
    return {"success": True, **result}


@bp.route("/week-recaps/<week_id>")
@cached_route(timeout=300, key_prefix="recap")
def get_week_recap(week_id):
    try:
        split_week_id(week_id)
    except ValueError as e:
        return {"success": False, "error": str(e)}, 400

    record = WeekRecap.get_recap(week_id)
    if record is None:
        return {"success": False, "error": f"No recap stored for {week_id}"}, 404
    return {"success": True, "recap": record.to_dict()}


@bp.route("/week-recaps")
@cached_route(timeout=300, key_prefix="recaps")
def list_week_recaps():
    try:
        season = _season_arg(request.args.get("season"))
    except ValueError as e:
        return {"success": False, "error": str(e)}, 400

    season = season or default_season(datetime.now(timezone.utc))
    recaps = WeekRecap.list_for_season(season)
    return {
        "success": True,
        "season": season,
        "count": len(recaps),
        "recaps": [r.to_dict() for r in recaps],
    }


@bp.route("/week-recaps/<week_id>/debug")
@require_cron_secret
def debug_week_recap(week_id):
    """Identifier overlap between the week's contests and stored picks"""
    service = BatchService.for_app(current_app)
    try:
        week = service.resolve_week(week_id=week_id)
        diagnostics = RecapService(service.gateway, service.settings).debug_week(week)
    except ExcludedWeekError as e:
        return error_response(str(e), 400)
    except WeekNotFoundError as e:
        return error_response(str(e), 404)
    except ValueError as e:
        return error_response(str(e), 400)
    except ResultsGatewayError as e:
        return error_response(f"Results provider error: {e}", 502)

    existing = WeekRecap.get_recap(week_id)
    diagnostics["storedRecap"] = existing.to_dict() if existing else None
    return jsonify({"success": True, "diagnostics": diagnostics})


@bp.route("/admin/scheduler/action", methods=["POST"])
@limiter.limit(trigger_rate_limit)
@require_cron_secret
def scheduler_action():
    """Scheduler control: status, pause_job, resume_job"""
    from pickpool.services.scheduler_service import scheduler_service

    data = _json_body()
    action = data.get("action")

    if action == "status":
        return jsonify({"success": True, **scheduler_service.get_status()})

    if action in ("pause_job", "resume_job"):
        job_id = data.get("job_id")
        if not job_id:
            return error_response("Job ID required", 400)

        handler = scheduler_service.pause_job if action == "pause_job" else scheduler_service.resume_job
        success, message = handler(job_id)
        if success:
            return jsonify({"success": True, "message": message})
        return error_response(message, 500)

    return error_response("Unknown action", 400)


@bp.route("/health")
def health():
    """Database and scheduler status"""
    try:
        db.session.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        db.session.rollback()
        logger.error(f"Health check database error: {e}")
        database = "error"

    from pickpool.services.scheduler_service import scheduler_service

    payload = {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "scheduler": scheduler_service.get_status(),
    }
    return jsonify(payload), 200 if database == "ok" else 503
