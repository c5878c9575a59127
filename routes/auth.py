"""Authentication, profile and password reset blueprint."""
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request, session, url_for
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import SQLAlchemyError
from wtforms import BooleanField, PasswordField, StringField
from wtforms.validators import DataRequired, EqualTo

from extensions import db
from models import AuditLog, PasswordResetToken, User
from utils.accounts import authenticate, record_login, register_account, update_profile
from utils.email_service import EmailDeliveryError, send_password_reset_email
from utils.government_email import parse_domains
from utils.security import clear_attempts, generate_token, hash_value, track_attempt
from utils.validators import FieldRule, StrongPassword

auth_bp = Blueprint("auth", __name__)

LOGIN_ATTEMPT_LIMIT = 10


class LoginForm(FlaskForm):
    email = StringField("Email", validators=[FieldRule("email")])
    password = PasswordField("Password", validators=[DataRequired(message="Password is required")])
    remember_me = BooleanField("Remember me")


class ForgotPasswordForm(FlaskForm):
    email = StringField("Email", validators=[FieldRule("email")])


class ResetPasswordForm(FlaskForm):
    password = PasswordField("New Password", validators=[StrongPassword()])
    confirm_password = PasswordField(
        "Confirm Password",
        validators=[DataRequired(message="Please confirm your password"), EqualTo("password", message="Passwords do not match")],
    )


def form_errors(form: FlaskForm) -> dict:
    return {name: messages[0] for name, messages in form.errors.items() if messages}


def request_payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def log_action(action: str, user: User | None, context: str | None = None) -> None:
    entry = AuditLog(
        user_id=user.id if user else None,
        action_type=action,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent", "unknown")[:255],
        context_entity=context,
    )
    db.session.add(entry)


def commit_audit(action: str, user: User | None, context: str | None = None) -> None:
    """Record an audit entry in its own commit; a failure here never fails the request."""
    try:
        log_action(action, user, context)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Audit log failed", extra={"action": action}, exc_info=True)


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@auth_bp.route("/register", methods=["POST"])
def register():
    if current_user.is_authenticated:
        return jsonify({"error": "Already signed in"}), 400

    extra_domains = parse_domains(current_app.config.get("GOVERNMENT_EMAIL_DOMAINS"))
    user = register_account(db.session, request_payload(), extra_domains=extra_domains)
    commit_audit("REGISTER", user)
    return jsonify({"message": "Registration successful. You can now sign in.", "user": user.profile_payload()}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    if current_user.is_authenticated:
        return jsonify({"user": current_user.profile_payload()})

    form = LoginForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Please fix all errors before submitting", "errors": form_errors(form)}), 400

    email = form.email.data.strip().lower()
    attempt_key = f"login:{request.remote_addr}:{email}"
    if not track_attempt(attempt_key, limit=LOGIN_ATTEMPT_LIMIT):
        current_app.logger.warning("Login rate limit reached", extra={"email": email})
        return jsonify({"error": "Too many sign-in attempts. Try again later."}), 429

    user = authenticate(db.session, email, form.password.data)
    if not user:
        commit_audit("LOGIN_FAILED", None, context=email[:120])
        return jsonify({"error": "Invalid email or password"}), 401

    if not user.is_active:
        return jsonify({"error": "Your account is inactive. Please contact support."}), 403

    login_user(user, remember=bool(form.remember_me.data))
    session.permanent = True
    clear_attempts(attempt_key)
    record_login(db.session, user)
    commit_audit("LOGIN", user)
    return jsonify({"user": user.profile_payload()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    user = current_user._get_current_object()
    logout_user()
    session.clear()
    commit_audit("LOGOUT", user)
    return jsonify({"message": "You have been logged out."})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"user": current_user.profile_payload()})


@auth_bp.route("/profile", methods=["PUT"])
@login_required
def profile():
    user = update_profile(db.session, current_user._get_current_object(), request_payload())
    commit_audit("PROFILE_UPDATED", user)
    return jsonify({"message": "Profile updated successfully!", "user": user.profile_payload()})


@auth_bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    form = ForgotPasswordForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Please fix all errors before submitting", "errors": form_errors(form)}), 400

    generic = {"message": "If an account exists for that email, a reset link has been sent."}
    user = User.query.filter_by(email=form.email.data.strip().lower()).first()
    if not user:
        return jsonify(generic)

    ttl = int(current_app.config.get("PASSWORD_RESET_TTL_MINUTES", 60))
    token, expires_at = create_password_reset_token(user, validity_minutes=ttl)
    log_action("PASSWORD_RESET_REQUESTED", user)
    db.session.commit()
    try:
        send_password_reset_email(
            user.email,
            user.full_name,
            url_for("auth.reset_password", token=token, _external=True),
            expires_at.strftime("%Y-%m-%d %H:%M"),
        )
    except EmailDeliveryError as exc:
        current_app.logger.warning("Password reset email failed", extra={"user_id": user.id, "error": str(exc)})
    return jsonify(generic)


@auth_bp.route("/reset-password/<token>", methods=["POST"])
def reset_password(token):
    record = PasswordResetToken.query.filter_by(token_hash=hash_value(token)).first()
    if not record or record.is_used:
        return jsonify({"error": "Invalid or already used reset link."}), 400
    if record.is_expired:
        return jsonify({"error": "Reset link has expired. Please request a new one."}), 400

    form = ResetPasswordForm()
    if not form.validate_on_submit():
        return jsonify({"error": "Please fix all errors before submitting", "errors": form_errors(form)}), 400

    user = record.user
    user.set_password(form.password.data)
    record.consumed_at = datetime.utcnow()
    db.session.add_all([user, record])
    log_action("PASSWORD_RESET", user)
    db.session.commit()
    return jsonify({"message": "Password updated. You can now sign in with your new password."})


def create_password_reset_token(user: User, validity_minutes: int = 60) -> tuple[str, datetime]:
    token = generate_token(24)
    expires_at = datetime.utcnow() + timedelta(minutes=validity_minutes)
    # Only the newest link stays valid.
    PasswordResetToken.query.filter_by(user_id=user.id, consumed_at=None).delete()
    db.session.add(PasswordResetToken(user=user, token_hash=hash_value(token), expires_at=expires_at))
    return token, expires_at
