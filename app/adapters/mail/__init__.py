"""Outbound mail adapters (delivery itself is an external collaborator)."""

from app.adapters.mail.base import AbstractMailer
from app.adapters.mail.logging_mailer import LoggingMailer, get_mailer

__all__ = ["AbstractMailer", "LoggingMailer", "get_mailer"]
