"""Administrative endpoints; every route needs a signed-in administrator"""

import logging

from flask import jsonify, request
from flask_login import current_user, login_required

from roundpicks import db, get_real_ip
from roundpicks.forms.admin import AdminPickForm, PointScheduleForm, ResendLinksForm, RoundForm
from roundpicks.models import AdminAction, Round, Season, SeasonWinner
from roundpicks.routes.admin import bp
from roundpicks.services import pick_service, round_service, scoring_service, season_service

logger = logging.getLogger(__name__)


@bp.before_request
@login_required
def require_admin():
    """Gate the whole blueprint behind the admin session"""


def _form_error(form):
    return jsonify(
        {
            "error": "The request contains invalid values",
            "code": "validation_error",
            "fields": form.errors,
        }
    ), 400


@bp.route("/rounds", methods=["POST"])
def create_round():
    form = RoundForm()
    if not form.validate():
        return _form_error(form)

    season = db.get_or_404(Season, form.season_id.data)
    round_ = round_service.create_round(
        season,
        name=form.name.data,
        lock_time=form.lock_time_value,
        timezone_name=form.timezone.data or None,
        pick_type=form.pick_type.data,
        entrants=form.entrants.data,
        num_write_in_picks=form.num_write_in_picks.data or 1,
        email_message=form.email_message.data,
        admin_id=current_user.id,
    )
    return jsonify(round_.to_dict(include_outcome=True)), 201


@bp.route("/rounds/<int:round_id>/activate", methods=["POST"])
def activate_round(round_id):
    round_ = db.get_or_404(Round, round_id)
    delivery = round_service.activate_round(
        round_, admin_id=current_user.id, created_ip=get_real_ip()
    )
    return jsonify({"round": db.session.get(Round, round_id).to_dict(), **delivery})


@bp.route("/rounds/<int:round_id>/lock", methods=["POST"])
def lock_round(round_id):
    round_ = round_service.lock_round(db.get_or_404(Round, round_id), admin_id=current_user.id)
    return jsonify({"round": round_.to_dict()})


@bp.route("/rounds/lock-expired", methods=["POST"])
def lock_expired_rounds():
    return jsonify({"locked": round_service.lock_expired_rounds()})


@bp.route("/rounds/<int:round_id>/complete", methods=["POST"])
def complete_round(round_id):
    round_ = db.get_or_404(Round, round_id)
    outcome = round_service.parse_outcome(request.get_json(silent=True) or {})
    round_ = round_service.complete_round(round_, outcome, admin_id=current_user.id)
    return jsonify({"round": round_.to_dict(include_outcome=True)})


@bp.route("/rounds/<int:round_id>/reopen", methods=["POST"])
def reopen_round(round_id):
    round_ = round_service.reopen_round(
        db.get_or_404(Round, round_id), admin_id=current_user.id
    )
    return jsonify({"round": round_.to_dict(include_outcome=True)})


@bp.route("/rounds/<int:round_id>/resend", methods=["POST"])
def resend_links(round_id):
    round_ = db.get_or_404(Round, round_id)
    form = ResendLinksForm()
    if not form.validate():
        return _form_error(form)

    delivery = round_service.resend_links(
        round_,
        participant_ids=form.participant_ids.data or None,
        admin_id=current_user.id,
        created_ip=get_real_ip(),
    )
    return jsonify(delivery)


@bp.route("/rounds/<int:round_id>/picks", methods=["POST"])
def enter_pick(round_id):
    round_ = db.get_or_404(Round, round_id)
    form = AdminPickForm()
    if not form.validate():
        return _form_error(form)

    prediction = pick_service.admin_submit_pick(
        form.participant_id.data,
        round_.id,
        form.values.data,
        admin_id=current_user.id,
    )
    return jsonify({"pick": prediction.to_dict()})


@bp.route("/point-schedule", methods=["PUT"])
def update_point_schedule():
    form = PointScheduleForm()
    if not form.validate():
        return _form_error(form)

    schedule = scoring_service.update_point_schedule(form.values(), admin_id=current_user.id)
    return jsonify(schedule.to_dict())


@bp.route("/seasons/<int:season_id>/recompute", methods=["POST"])
def recompute_season(season_id):
    season = db.get_or_404(Season, season_id)
    written = scoring_service.recompute_season(season.id, admin_id=current_user.id)
    return jsonify({"seasonId": season_id, "records": written})


@bp.route("/seasons/<int:season_id>/end", methods=["POST"])
def end_season(season_id):
    season = season_service.end_season(
        db.get_or_404(Season, season_id), admin_id=current_user.id
    )
    return jsonify(
        {
            "season": season.to_dict(),
            "winners": [w.to_dict() for w in SeasonWinner.get_season_awards(season_id)],
        }
    )


@bp.route("/seasons/<int:season_id>/reopen", methods=["POST"])
def reopen_season(season_id):
    season = season_service.reopen_season(
        db.get_or_404(Season, season_id), admin_id=current_user.id
    )
    return jsonify({"season": season.to_dict()})


@bp.route("/actions", methods=["GET"])
def recent_actions():
    limit = min(request.args.get("limit", 50, type=int), 200)
    actions = AdminAction.query.order_by(AdminAction.id.desc()).limit(limit).all()
    return jsonify([action.to_dict() for action in actions])
