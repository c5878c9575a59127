import pytest

from conftest import PASSWORD, registration_payload
from models import User
from utils.accounts import DUPLICATE_EMAIL_MESSAGE, authenticate, register_account, update_profile
from utils.errors import ValidationError
from utils.government_email import GOVERNMENT_EMAIL_MESSAGE


def test_register_owner_account(session):
    user = register_account(session, registration_payload("New.Owner@Example.com", postalCode="t2p 1a1"))

    assert user.email == "new.owner@example.com"
    assert user.postal_code == "T2P 1A1"
    assert user.full_name == "Test User"
    assert user.account_type == "owner"
    assert user.check_password(PASSWORD)
    assert session.query(User).count() == 1


def test_government_account_needs_institutional_email(session):
    with pytest.raises(ValidationError) as excinfo:
        register_account(session, registration_payload("cop@example.com", account_type="government"))
    assert excinfo.value.errors == {"email": GOVERNMENT_EMAIL_MESSAGE}
    assert session.query(User).count() == 0

    user = register_account(session, registration_payload("cop@calgarypolice.ca", account_type="government"))
    assert user.is_government


def test_configured_domain_allows_government_account(session):
    user = register_account(
        session,
        registration_payload("sgt@lethbridgepolice.ca", account_type="government"),
        extra_domains=("lethbridgepolice.ca",),
    )
    assert user.account_type == "government"


def test_registration_collects_every_field_error(session):
    with pytest.raises(ValidationError) as excinfo:
        register_account(session, {"email": "bad", "password": "123", "accountType": "admin"})

    errors = excinfo.value.errors
    assert errors["email"] == "Please enter a valid email address"
    assert errors["password"] == "Password must be at least 6 characters"
    assert errors["name"] == "Full name is required"
    assert errors["account_type"] == "Account type is invalid"
    assert {"phone", "postal_code", "address", "city", "province"} <= set(errors)


def test_duplicate_email_is_rejected(session):
    register_account(session, registration_payload("dup@example.com"))
    with pytest.raises(ValidationError) as excinfo:
        register_account(session, registration_payload("DUP@example.com"))
    assert excinfo.value.errors == {"email": DUPLICATE_EMAIL_MESSAGE}


def test_update_profile(session, make_user):
    user = make_user("p@example.com")
    update_profile(session, user, {"fullName": "Pat Lee", "phone": "5875550000", "city": "Edmonton"})

    refreshed = session.get(User, user.id)
    assert refreshed.full_name == "Pat Lee"
    assert refreshed.phone == "5875550000"
    assert refreshed.city == "Edmonton"
    assert refreshed.province == "AB"


def test_update_profile_validates(session, make_user):
    user = make_user("p@example.com")
    with pytest.raises(ValidationError) as excinfo:
        update_profile(session, user, {"phone": "555", "name": "P"})
    assert excinfo.value.errors == {"phone": "Phone must be 10 digits", "name": "Name must be at least 2 characters"}
    assert session.get(User, user.id).phone == "4035551234"


def test_authenticate(session, make_user):
    make_user("login@example.com")
    assert authenticate(session, " LOGIN@example.com ", PASSWORD).email == "login@example.com"
    assert authenticate(session, "login@example.com", "wrong-password") is None
    assert authenticate(session, "nobody@example.com", PASSWORD) is None
    assert authenticate(session, "", "") is None
