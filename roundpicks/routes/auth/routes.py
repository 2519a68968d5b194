import logging

from flask import jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from roundpicks import db, get_real_ip, limiter, login_manager
from roundpicks.errors import TokenNotFound
from roundpicks.forms.auth import MagicLinkForm
from roundpicks.models import AccessToken, Admin
from roundpicks.routes.auth import bp
from roundpicks.services import token_service
from roundpicks.utils.timezone_utils import get_utc_time

logger = logging.getLogger(__name__)


@login_manager.user_loader
def load_user(admin_id):
    return db.session.get(Admin, int(admin_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "Authentication required", "code": "unauthorized"}), 401


@bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify({"csrfToken": generate_csrf()})


@bp.route("/magic-link", methods=["POST"])
@limiter.limit("5 per minute")
def request_magic_link():
    """
    Email a single-use sign-in link to an administrator.

    Answers 202 whether or not the address belongs to an administrator.
    """
    form = MagicLinkForm()
    if not form.validate():
        return jsonify(
            {"error": "Please enter a valid email address", "code": "validation_error"}
        ), 400

    token_service.issue_admin_login(form.email.data, created_ip=get_real_ip())

    return jsonify(
        {"message": "If that address belongs to an administrator, a sign-in link is on its way."}
    ), 202


@bp.route("/magic/<token>", methods=["GET"])
@limiter.limit("10 per minute")
def redeem_magic_link(token):
    access = token_service.resolve(token, kind=AccessToken.KIND_ADMIN_LOGIN)

    admin = access.admin
    if admin is None or not admin.is_active:
        raise TokenNotFound(f"Admin token {access.id} has no active administrator")

    login_user(admin)
    admin.last_login = get_utc_time()
    db.session.commit()

    logger.info(f"Admin {admin.id} signed in with a magic link")
    return jsonify({"message": "Signed in", "admin": admin.to_dict()})


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    admin_id = current_user.id
    logout_user()
    logger.info(f"Admin {admin_id} signed out")
    return jsonify({"message": "Signed out"})


@bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(current_user.to_dict())
