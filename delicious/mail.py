from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from flask import current_app, render_template

from .users import User


logger = logging.getLogger(__name__)


def build_message(user: User, subject: str, template: str, **context) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = current_app.config["MAIL_FROM"]
    message["To"] = user.email
    message.set_content(render_template(f"email/{template}.txt", user=user, **context))
    message.add_alternative(render_template(f"email/{template}.html", user=user, **context), subtype="html")
    return message


def send(message: EmailMessage) -> None:
    config = current_app.config
    if not config.get("MAIL_HOST"):
        logger.warning("MAIL_HOST is not set; not sending %r to %s", message["Subject"], message["To"])
        logger.debug("Unsent message body:\n%s", message.get_body(("plain",)).get_content())
        return
    with smtplib.SMTP(config["MAIL_HOST"], config["MAIL_PORT"], timeout=10) as smtp:
        if config.get("MAIL_USER"):
            smtp.starttls()
            smtp.login(config["MAIL_USER"], config["MAIL_PASS"])
        smtp.send_message(message)
    logger.info("Sent %r to %s", message["Subject"], message["To"])


def send_password_reset(user: User, reset_url: str) -> None:
    send(build_message(user, "Password Reset", "password-reset", reset_url=reset_url))
