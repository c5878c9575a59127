"""Account registration, profile updates and credential checks."""
import logging
from datetime import datetime
from typing import Iterable, Mapping, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import ACCOUNT_TYPES, User
from utils.errors import PersistenceError, ValidationError
from utils.form_state import PROFILE_FIELDS, REGISTRATION_FIELDS, FormState
from utils.government_email import government_email_check
from utils.validators import canonical_field

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL_MESSAGE = "An account with this email already exists"


def _normalize(data: Mapping[str, object], allowed: Iterable[str]) -> dict:
    allowed = set(allowed)
    values: dict = {}
    for key, value in (data or {}).items():
        name = canonical_field(key)
        if name in allowed:
            values[name] = value.strip() if isinstance(value, str) and name != "password" else value
    return values


def _account_type_check(values: Mapping[str, object]) -> dict:
    account_type = values.get("account_type")
    if account_type and account_type not in ACCOUNT_TYPES:
        return {"account_type": "Account type is invalid"}
    return {}


def registration_form(extra_domains: Iterable[str] = ()) -> FormState:
    return FormState(
        REGISTRATION_FIELDS,
        checks=(_account_type_check, government_email_check(extra_domains)),
    )


def profile_form(user: User) -> FormState:
    return FormState(
        PROFILE_FIELDS,
        initial={
            "name": user.full_name,
            "phone": user.phone,
            "address": user.address,
            "city": user.city,
            "province": user.province,
            "postal_code": user.postal_code,
        },
    )


def register_account(session, data: Mapping[str, object], extra_domains: Iterable[str] = ()) -> User:
    """Create an account; government accounts need an institutional email."""
    form = registration_form(extra_domains)
    form.load(_normalize(data, REGISTRATION_FIELDS))
    created: list[User] = []

    def _create(values: dict) -> None:
        email = str(values["email"]).lower()
        if session.query(User).filter(User.email == email).first():
            raise ValidationError({"email": DUPLICATE_EMAIL_MESSAGE})
        user = User(
            email=email,
            full_name=values["name"],
            phone=values["phone"],
            address=values["address"],
            city=values["city"],
            province=values["province"],
            postal_code=str(values["postal_code"]).upper(),
            account_type=values["account_type"],
            is_active=True,
        )
        user.set_password(str(values["password"]))
        session.add(user)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ValidationError({"email": DUPLICATE_EMAIL_MESSAGE}) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Database error during registration")
            raise PersistenceError("Registration failed. Please try again.") from exc
        created.append(user)

    if not form.submit(_create):
        raise ValidationError(form.error_map)
    logger.info("Account registered", extra={"user_id": created[0].id, "account_type": created[0].account_type})
    return created[0]


def update_profile(session, user: User, data: Mapping[str, object]) -> User:
    """Update profile attributes. Email and account type are not editable here."""
    form = profile_form(user)
    form.load(_normalize(data, PROFILE_FIELDS))

    def _apply(values: dict) -> None:
        user.full_name = values["name"]
        user.phone = values["phone"]
        user.address = values["address"]
        user.city = values["city"]
        user.province = values["province"]
        user.postal_code = str(values["postal_code"]).upper()
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("Database error during profile update")
            raise PersistenceError("Failed to update profile") from exc

    if not form.submit(_apply):
        raise ValidationError(form.error_map)
    return user


def authenticate(session, email: str, password: str) -> Optional[User]:
    normalized = (email or "").strip().lower()
    if not normalized or not password:
        return None
    user = session.query(User).filter(User.email == normalized).first()
    if not user or not user.check_password(password):
        return None
    return user


def record_login(session, user: User) -> None:
    user.last_login_at = datetime.utcnow()
    session.add(user)
