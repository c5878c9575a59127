"""Per-form validation state: values, errors, touched fields, submission."""
from typing import Callable, Dict, Iterable, Mapping, Optional

from utils.validators import validate_field

PRISTINE = "pristine"
EDITING = "editing"
VALIDATING = "validating"
SUBMITTABLE = "submittable"
BLOCKED = "blocked"

REGISTRATION_FIELDS: tuple[str, ...] = (
    "email",
    "password",
    "name",
    "phone",
    "postal_code",
    "address",
    "city",
    "province",
    "account_type",
)

PROFILE_FIELDS: tuple[str, ...] = (
    "name",
    "phone",
    "address",
    "city",
    "province",
    "postal_code",
)

TOOL_REPORT_FIELDS: tuple[str, ...] = (
    "make",
    "model",
    "serial_number",
    "owner_name",
    "owner_phone",
)

# Form-level checks run on submit after the per-field rules; each returns
# {field: message} for the problems it finds.
FormCheck = Callable[[Mapping[str, object]], Dict[str, str]]


class FormState:
    """Tracks one form instance from first edit to submission.

    Field changes clear that field's error without re-validating, blur runs the
    field rule and marks the field touched, and submit validates the whole
    schema before calling the handler exactly once.

    A blur only ever judges its own field: a failing rule moves the form to
    ``blocked`` and a passing one back to ``editing``, even when every other
    field is already valid. Only ``validate_all`` (and so ``submit``) can reach
    ``submittable``.
    """

    def __init__(
        self,
        fields: Iterable[str],
        initial: Optional[Mapping[str, object]] = None,
        checks: Iterable[FormCheck] = (),
    ) -> None:
        self.fields = tuple(fields)
        self.initial = dict(initial or {})
        self.checks = tuple(checks)
        self.values: Dict[str, object] = dict(self.initial)
        self.errors: Dict[str, str] = {}
        self.touched: set[str] = set()
        self.submitted = False
        self.state = PRISTINE

    def change(self, name: str, value) -> None:
        self.values[name] = value
        if self.errors.get(name):
            self.errors[name] = ""
        self.state = EDITING

    def load(self, data: Mapping[str, object]) -> None:
        for name, value in data.items():
            self.change(name, value)

    def blur(self, name: str) -> str:
        self.state = VALIDATING
        self.touched.add(name)
        message = validate_field(name, self.values.get(name))
        self.errors[name] = message
        self.state = BLOCKED if message else EDITING
        return message

    def validate_all(self) -> bool:
        self.state = VALIDATING
        errors = {name: validate_field(name, self.values.get(name)) for name in self.fields}
        for check in self.checks:
            for name, message in check(self.values).items():
                if message and not errors.get(name):
                    errors[name] = message
        self.errors = errors
        self.submitted = True
        ok = not self.has_errors
        self.state = SUBMITTABLE if ok else BLOCKED
        return ok

    def submit(self, handler: Callable[[Dict[str, object]], object]) -> bool:
        if not self.validate_all():
            return False
        handler(dict(self.values))
        return True

    @property
    def has_errors(self) -> bool:
        return any(self.errors.values())

    @property
    def error_map(self) -> Dict[str, str]:
        return {name: message for name, message in self.errors.items() if message}

    def field_props(self, name: str) -> dict:
        error = self.errors.get(name) or ""
        return {
            "name": name,
            "value": self.values.get(name) or "",
            "error": error,
            "invalid": bool(error) and (name in self.touched or self.submitted),
        }

    def reset(self) -> None:
        self.values = dict(self.initial)
        self.errors = {}
        self.touched = set()
        self.submitted = False
        self.state = PRISTINE
