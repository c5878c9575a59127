"""Government agency overview."""
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from utils.decorators import account_types_required

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.route("/overview", methods=["GET"])
@account_types_required("government")
def overview():
    limit = request.args.get("limit", default=10, type=int)
    limit = max(1, min(limit or 10, 50))
    policy = current_app.extensions["access_policy"]
    return jsonify(policy.admin_overview(current_user, recent_limit=limit))
