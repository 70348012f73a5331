import logging
from functools import wraps

from flask import abort, current_app, jsonify, request
from flask_login import current_user, login_required

from app import db
from app.models import Race, User
from app.routes.api import bp
from app.services.prediction_service import submit_prediction
from app.services.score_service import (
    get_race_scores,
    process_race_scores,
    recompute_user_totals,
)
from app.utils.cache_utils import cached_route
from app.utils.point_system import get_point_schedule

logger = logging.getLogger(__name__)


def admin_required(f):
    """Require an authenticated site admin"""

    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin:
            abort(403)
        return f(*args, **kwargs)

    return decorated_function


def _get_race_or_404(race_id):
    race = db.session.get(Race, race_id)
    if race is None:
        abort(404)
    return race


@bp.route("/leaderboard")
@cached_route(timeout=300, key_prefix="leaderboard")
def leaderboard():
    """Users ranked by total points"""
    limit = request.args.get("limit", type=int) or current_app.config.get(
        "LEADERBOARD_LIMIT", 100
    )
    return {"leaderboard": User.get_leaderboard(limit=limit)}


@bp.route("/point-schedule")
def point_schedule():
    """Point value of every scoring category"""
    schedule = get_point_schedule()
    return jsonify({"points": schedule.to_dict(), "max_points": schedule.max_points()})


@bp.route("/races/<int:race_id>/scores")
@cached_route(timeout=300, key_prefix="race_scores")
def race_scores(race_id):
    """Stored scores and breakdowns for a race"""
    race = _get_race_or_404(race_id)
    return {
        "race": race.to_dict(),
        "result": race.result.to_dict() if race.result else None,
        "scores": get_race_scores(race_id) if race.result else [],
    }


@bp.route("/races/<int:race_id>/head-to-head")
def race_head_to_head(race_id):
    """Configured matchups and their stored resolution"""
    race = _get_race_or_404(race_id)

    resolution = {}
    if race.result:
        resolution = {h2h.kind: h2h.to_dict() for h2h in race.result.head_to_heads}

    return jsonify(
        {
            "race_id": race.id,
            "configuration": race.head_to_head_config(),
            "driver": resolution.get("driver"),
            "team": resolution.get("team"),
        }
    )


@bp.route("/races/<int:race_id>/prediction")
@login_required
def my_prediction(race_id):
    """The current user's prediction for a race"""
    race = _get_race_or_404(race_id)
    prediction = race.predictions.filter_by(user_id=current_user.id).first()

    return jsonify(
        {
            "has_prediction": prediction is not None,
            "prediction": prediction.to_dict() if prediction else None,
            "accepts_predictions": race.accepts_predictions(),
        }
    )


@bp.route("/races/<int:race_id>/prediction", methods=["POST"])
@login_required
def submit_race_prediction(race_id):
    """Create or update the current user's prediction until the race closes"""
    race = _get_race_or_404(race_id)
    data = request.get_json(silent=True)

    prediction, created = submit_prediction(current_user, race, data)

    return jsonify(
        {
            "success": True,
            "message": "Prediction submitted" if created else "Prediction updated",
            "prediction": prediction.to_dict(),
        }
    ), (201 if created else 200)


@bp.route("/admin/races/<int:race_id>/process", methods=["POST"])
@admin_required
def process_race(race_id):
    """Score every prediction for a race; ?force=true re-scores"""
    force = request.args.get("force", "false").lower() in ("1", "true", "yes")

    logger.info(
        f"Admin {current_user.username} requested scoring for race {race_id} (force={force})"
    )
    report = process_race_scores(race_id, force=force)

    if report.skipped:
        message = f"Race already scored ({report.processed_count} predictions); use force=true to re-score"
    else:
        message = f"Scored {report.processed_count} predictions"

    return jsonify({"success": True, "message": message, **report.to_dict()})


@bp.route("/admin/recompute-totals", methods=["POST"])
@admin_required
def recompute_totals():
    """Rebuild user totals from stored prediction scores"""
    logger.info(f"Admin {current_user.username} requested totals recomputation")
    changed = recompute_user_totals()
    return jsonify({"success": True, "users_corrected": changed})
