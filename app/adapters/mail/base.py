"""Mailer interface used by the auth routes."""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractMailer(ABC):
    """Delivers one-time secrets to a user's inbox."""

    @abstractmethod
    async def send_verification_code(self, email: str, code: str) -> None:
        """Send a 6-digit email verification code."""
        raise NotImplementedError

    @abstractmethod
    async def send_password_reset(self, email: str, token: str) -> None:
        """Send a password reset link carrying ``token``."""
        raise NotImplementedError
