"""Blueprint registration, health, dashboard and media routes."""
import os

from flask import Blueprint, abort, current_app, jsonify, send_file
from flask_login import current_user, login_required
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from utils.errors import StorageError
from .admin import admin_bp
from .auth import auth_bp
from .tools import tools_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError:
        current_app.logger.exception("Health check database probe failed")
        database = "unavailable"
    status_code = 200 if database == "ok" else 503
    return jsonify({"status": "ok" if status_code == 200 else "degraded", "database": database}), status_code


@main_bp.route("/dashboard")
@login_required
def dashboard():
    policy = current_app.extensions["access_policy"]
    reports = policy.visible_reports(current_user, order="newest")
    return jsonify(
        {
            "user": current_user.profile_payload(),
            "stats": policy.dashboard_stats(current_user),
            "tools": [policy.serialize(report, current_user) for report in reports],
        }
    )


@main_bp.route("/media/<string:bucket>/<path:name>")
def media(bucket, name):
    storage = current_app.extensions["object_storage"]
    try:
        path = storage.path_for(bucket, name)
    except StorageError:
        abort(404)
    if not os.path.isfile(path):
        abort(404)
    return send_file(path, mimetype=_guess_mime_from_path(path), as_attachment=False, download_name=os.path.basename(path))


def _guess_mime_from_path(path: str) -> str:
    _, ext = os.path.splitext(path.lower())
    mapping = {
        ".jpg": "image/jpeg",
        ".jpeg": "image/jpeg",
        ".png": "image/png",
        ".webp": "image/webp",
        ".gif": "image/gif",
    }
    return mapping.get(ext, "application/octet-stream")


__all__ = ["main_bp", "auth_bp", "tools_bp", "admin_bp"]
