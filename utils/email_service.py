"""SMTP-backed email dispatcher for account notifications."""
import html
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import List

from flask import current_app


class EmailDeliveryError(Exception):
    """Raised when email dispatch fails."""


def _dispatch_email(subject: str, text_body: str, html_body: str, sender: str, recipients: List[str]) -> None:
    if not recipients:
        raise EmailDeliveryError("No recipients resolved for email dispatch")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")

    host = current_app.config.get("MAIL_SERVER")
    port = int(current_app.config.get("MAIL_PORT", 25))
    username = current_app.config.get("MAIL_USERNAME")
    password = current_app.config.get("MAIL_PASSWORD")
    use_tls = bool(current_app.config.get("MAIL_USE_TLS"))
    use_ssl = bool(current_app.config.get("MAIL_USE_SSL"))

    if not host:
        raise EmailDeliveryError("MAIL_SERVER is not configured")

    try:
        if use_ssl:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(host, port, context=context) as server:
                if username and password:
                    server.login(username, password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(host, port) as server:
                server.ehlo()
                if use_tls:
                    server.starttls(context=ssl.create_default_context())
                if username and password:
                    server.login(username, password)
                server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:  # pragma: no cover - external I/O
        raise EmailDeliveryError(str(exc)) from exc


def send_password_reset_email(recipient: str, user_name: str, reset_link: str, expires_at: str) -> None:
    subject = "Reset your Tool Index password"
    text_body = (
        f"Hello {user_name},\n\n"
        "We received a request to reset your password. Use the link below to choose a new one:\n\n"
        f"{reset_link}\n\n"
        f"The link expires at {expires_at} UTC. If you did not ask for a reset, ignore this email."
    )
    html_body = (
        f"<p>Hello {html.escape(user_name)},</p>"
        "<p>We received a request to reset your password. Use the link below to choose a new one:</p>"
        f'<p><a href="{html.escape(reset_link, quote=True)}">Reset password</a></p>'
        f"<p>The link expires at {html.escape(expires_at)} UTC. If you did not ask for a reset, ignore this email.</p>"
    )
    sender = current_app.config.get("MAIL_DEFAULT_SENDER") or recipient
    _dispatch_email(subject, text_body, html_body, sender, [recipient])
