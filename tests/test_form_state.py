from utils.form_state import (
    BLOCKED,
    EDITING,
    PRISTINE,
    SUBMITTABLE,
    TOOL_REPORT_FIELDS,
    FormState,
)
from utils.government_email import GOVERNMENT_EMAIL_MESSAGE, government_email_check

VALID_REPORT = {
    "make": "Makita",
    "model": "XFD131",
    "serial_number": "MK-1",
    "owner_name": "Jo Owner",
    "owner_phone": "4035550000",
}


def test_new_form_is_pristine():
    form = FormState(TOOL_REPORT_FIELDS)
    assert form.state == PRISTINE
    assert form.error_map == {}


def test_change_clears_error_without_revalidating():
    form = FormState(TOOL_REPORT_FIELDS)
    form.blur("make")
    assert form.errors["make"] == "Make is required"

    form.change("make", "")
    assert form.state == EDITING
    assert form.errors["make"] == ""


def test_blur_marks_touched_and_records_result():
    form = FormState(TOOL_REPORT_FIELDS)
    form.change("owner_phone", "12")
    assert form.blur("owner_phone") == ""  # owner phone is only a required field
    assert "owner_phone" in form.touched
    assert form.field_props("owner_phone")["invalid"] is False

    form.blur("model")
    props = form.field_props("model")
    assert props == {"name": "model", "value": "", "error": "Model is required", "invalid": True}
    assert form.state == BLOCKED


def test_clean_blur_returns_to_editing_not_submittable():
    form = FormState(TOOL_REPORT_FIELDS)
    form.load(VALID_REPORT)

    assert form.blur("make") == ""
    assert form.state == EDITING

    assert form.validate_all()
    assert form.state == SUBMITTABLE


def test_untouched_errors_are_not_flagged_invalid_before_submit():
    form = FormState(TOOL_REPORT_FIELDS)
    form.errors["make"] = "Make is required"
    assert form.field_props("make")["invalid"] is False


def test_blocked_submit_never_calls_handler():
    calls = []
    form = FormState(TOOL_REPORT_FIELDS)
    form.load({"make": "Makita"})

    assert form.submit(calls.append) is False
    assert calls == []
    assert form.state == BLOCKED
    assert set(form.error_map) == {"model", "serial_number", "owner_name", "owner_phone"}
    assert form.field_props("model")["invalid"] is True


def test_fixed_form_submits_exactly_once():
    calls = []
    form = FormState(TOOL_REPORT_FIELDS)
    assert form.submit(calls.append) is False

    form.load(VALID_REPORT)
    assert form.submit(calls.append) is True
    assert form.state == SUBMITTABLE
    assert calls == [VALID_REPORT]


def test_form_checks_run_after_field_rules():
    form = FormState(("email", "account_type"), checks=(government_email_check(),))
    form.load({"email": "someone@example.com", "account_type": "government"})
    assert form.validate_all() is False
    assert form.error_map == {"email": GOVERNMENT_EMAIL_MESSAGE}

    form.change("email", "not-an-email")
    form.validate_all()
    # the field rule message wins over the form check
    assert form.error_map == {"email": "Please enter a valid email address"}


def test_reset_restores_initial_values():
    form = FormState(("name",), initial={"name": "Original"})
    form.change("name", "")
    form.blur("name")
    form.validate_all()

    form.reset()
    assert form.values == {"name": "Original"}
    assert form.errors == {}
    assert form.touched == set()
    assert form.submitted is False
    assert form.state == PRISTINE
