from flask import abort, jsonify

from roundpicks import db
from roundpicks.models import PointSchedule, Round
from roundpicks.routes.api import bp
from roundpicks.services import leaderboard_service


@bp.route("/seasons/<int:season_id>/leaderboard")
def season_leaderboard(season_id):
    payload = leaderboard_service.get_leaderboard(season_id)
    if payload is None:
        abort(404)
    return jsonify(payload)


@bp.route("/seasons/<int:season_id>/graph")
def season_graph(season_id):
    """Cumulative points per participant, for charting"""
    payload = leaderboard_service.get_graph(season_id)
    if payload is None:
        abort(404)
    return jsonify(payload)


@bp.route("/rounds/<int:round_id>")
def round_detail(round_id):
    round_ = db.get_or_404(Round, round_id)
    return jsonify(round_.to_dict(include_outcome=True))


@bp.route("/point-schedule")
def point_schedule():
    return jsonify(PointSchedule.current().to_dict())
