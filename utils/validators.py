"""Field-level validation rules shared by every form and service.

Each rule maps a raw value to an error message, or to an empty string when the
value is acceptable. The rules are pure so they can run in request handlers,
services and WTForms fields alike.
"""
import re
from typing import Callable, Dict, Iterable, Mapping

from wtforms.validators import ValidationError as FieldValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[0-9]{10}$")
POSTAL_CODE_PATTERN = re.compile(r"^[A-Za-z][0-9][A-Za-z][ -]?[0-9][A-Za-z][0-9]$")

PASSWORD_MIN_LENGTH = 6
NAME_MIN_LENGTH = 2

REQUIRED_FIELD_LABELS: dict[str, str] = {
    "address": "Address",
    "city": "City",
    "province": "Province",
    "account_type": "Account type",
    "make": "Make",
    "model": "Model",
    "serial_number": "Serial number",
    "owner_name": "Owner name",
    "owner_phone": "Owner phone",
}

# camelCase names used by browser clients
FIELD_ALIASES: dict[str, str] = {
    "postalCode": "postal_code",
    "accountType": "account_type",
    "serialNumber": "serial_number",
    "ownerName": "owner_name",
    "ownerPhone": "owner_phone",
    "fullName": "name",
    "full_name": "name",
}


def _text(value) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def validate_email(value) -> str:
    email = _text(value)
    if not email:
        return "Email is required"
    if not EMAIL_PATTERN.fullmatch(email):
        return "Please enter a valid email address"
    return ""


def validate_password(value) -> str:
    password = _text(value)
    if not password:
        return "Password is required"
    if len(password) < PASSWORD_MIN_LENGTH:
        return f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
    return ""


def validate_name(value) -> str:
    name = _text(value).strip()
    if not name:
        return "Full name is required"
    if len(name) < NAME_MIN_LENGTH:
        return f"Name must be at least {NAME_MIN_LENGTH} characters"
    return ""


def validate_phone(value) -> str:
    phone = _text(value)
    if not phone:
        return "Phone number is required"
    # fullmatch: re's "$" also matches before a trailing newline
    if not PHONE_PATTERN.fullmatch(phone):
        return "Phone must be 10 digits"
    return ""


def validate_postal_code(value) -> str:
    postal_code = _text(value)
    if not postal_code:
        return "Postal code is required"
    if not POSTAL_CODE_PATTERN.fullmatch(postal_code):
        return "Please enter a valid postal code (e.g., A1A 1A1)"
    return ""


def validate_required(value, label: str) -> str:
    if not _text(value).strip():
        return f"{label} is required"
    return ""


FIELD_RULES: dict[str, Callable[[object], str]] = {
    "email": validate_email,
    "password": validate_password,
    "name": validate_name,
    "phone": validate_phone,
    "postal_code": validate_postal_code,
}


def canonical_field(field_name: str) -> str:
    return FIELD_ALIASES.get(field_name, field_name)


def validate_field(field_name: str, value) -> str:
    """Return the error message for ``value`` in ``field_name`` or ``""``."""
    name = canonical_field(field_name)
    rule = FIELD_RULES.get(name)
    if rule is not None:
        return rule(value)
    label = REQUIRED_FIELD_LABELS.get(name)
    if label is not None:
        return validate_required(value, label)
    return ""


def validate_form(field_names: Iterable[str], values: Mapping) -> Dict[str, str]:
    """Validate every named field and return only the failing ones."""
    errors: Dict[str, str] = {}
    for name in field_names:
        message = validate_field(name, values.get(name))
        if message:
            errors[name] = message
    return errors


def has_errors(errors: Mapping[str, str]) -> bool:
    return any(message for message in errors.values())


class FieldRule:
    """WTForms validator that delegates to :func:`validate_field`."""

    def __init__(self, field_name: str):
        self.field_name = field_name
        self.field_flags = {"required": True}

    def __call__(self, form, field):
        message = validate_field(self.field_name, field.data)
        if message:
            raise FieldValidationError(message)


# Reset passwords must meet at least four of these.
PASSWORD_STRENGTH_CHECKS: tuple[Callable[[str], bool], ...] = (
    lambda p: len(p) >= 8,
    lambda p: re.search(r"[A-Z]", p) is not None,
    lambda p: re.search(r"[a-z]", p) is not None,
    lambda p: re.search(r"[0-9]", p) is not None,
    lambda p: re.search(r'[!@#$%^&*(),.?":{}|<>]', p) is not None,
)
PASSWORD_STRENGTH_REQUIRED = 4
WEAK_PASSWORD_MESSAGE = "Please use a stronger password"


def password_strength(value) -> int:
    """Number of strength checks ``value`` meets (0-5)."""
    password = _text(value)
    return sum(1 for check in PASSWORD_STRENGTH_CHECKS if check(password))


def validate_password_strength(value) -> str:
    message = validate_password(value)
    if message:
        return message
    if password_strength(value) < PASSWORD_STRENGTH_REQUIRED:
        return WEAK_PASSWORD_MESSAGE
    return ""


class StrongPassword:
    """WTForms validator for new passwords chosen through the reset flow."""

    field_flags = {"required": True}

    def __call__(self, form, field):
        message = validate_password_strength(field.data)
        if message:
            raise FieldValidationError(message)
