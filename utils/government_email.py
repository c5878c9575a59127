"""Institutional email allow-list for government/police accounts."""
from typing import Iterable

GOVERNMENT_EMAIL_DOMAINS: tuple[str, ...] = (
    "calgarypolice.ca",
    "calgary.ca",
    "camrosepolice.ca",
    "edmontonpolice.ca",
    "ottawapolice.ca",
    "torontopolice.on.ca",
    "rcmp-grc.gc.ca",
    "vpd.ca",
    "cpkcpolice.com",
    "peelpolice.ca",
)

GOVERNMENT_EMAIL_MESSAGE = "Government accounts must use an official government email address"


def parse_domains(raw: str | None) -> tuple[str, ...]:
    """Split a comma separated config value into normalized domains."""
    return tuple(part.strip().lower() for part in (raw or "").split(",") if part.strip())


def is_institutional_email(email: str | None, extra_domains: Iterable[str] = ()) -> bool:
    if not email:
        return False
    normalized = email.strip().lower()
    domains = GOVERNMENT_EMAIL_DOMAINS + tuple(d.lower() for d in extra_domains)
    return any(domain in normalized for domain in domains)


def government_email_check(extra_domains: Iterable[str] = ()):
    """Form check rejecting government registrations from non-institutional addresses."""
    domains = tuple(extra_domains)

    def check(values) -> dict:
        if (values.get("account_type") or "") != "government":
            return {}
        if is_institutional_email(str(values.get("email") or ""), domains):
            return {}
        return {"email": GOVERNMENT_EMAIL_MESSAGE}

    return check
