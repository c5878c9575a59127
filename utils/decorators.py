"""Authorization decorators for account-type access control."""
from functools import wraps

from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from extensions import db
from models import AuditLog


def account_types_required(*account_types):
    allowed = {t.lower() for t in account_types}

    def decorator(view_func):
        @wraps(view_func)
        @login_required
        def wrapped(*args, **kwargs):
            if (current_user.account_type or "").lower() in allowed:
                return view_func(*args, **kwargs)

            current_app.logger.warning(
                "Unauthorized account type access attempt",
                extra={"user_id": current_user.id, "account_type": current_user.account_type},
            )
            db.session.add(
                AuditLog(
                    user_id=current_user.id,
                    action_type="UNAUTHORIZED_ACCESS",
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent", "unknown"),
                    context_entity=request.path[:120],
                )
            )
            db.session.commit()
            return jsonify({"error": "You do not have access to this section."}), 403

        return wrapped

    return decorator
