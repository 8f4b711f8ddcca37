"""Mailer that records deliveries in the log (development default).

Secrets are never logged; only a hash of the recipient is.
"""

from __future__ import annotations

import logging

from app.adapters.mail.base import AbstractMailer
from app.core.logging import hash_for_log

logger = logging.getLogger(__name__)


class LoggingMailer(AbstractMailer):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send_verification_code(self, email: str, code: str) -> None:
        self.sent.append(("verification", email))
        logger.info("mail.verification_code_sent", extra={"email_hash": hash_for_log(email)})

    async def send_password_reset(self, email: str, token: str) -> None:
        self.sent.append(("password_reset", email))
        logger.info("mail.password_reset_sent", extra={"email_hash": hash_for_log(email)})


_mailer = LoggingMailer()


def get_mailer() -> AbstractMailer:
    return _mailer
