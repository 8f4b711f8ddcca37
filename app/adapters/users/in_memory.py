"""In-memory user directory (development and tests).

Per-process only. Passwords are not stored; updates are recorded by user id.
"""

from __future__ import annotations

from app.adapters.users.base import AbstractUserDirectory


class InMemoryUserDirectory(AbstractUserDirectory):
    def __init__(self, users: dict[str, str] | None = None) -> None:
        """Initialize the directory.

        Args:
            users: Mapping of email to user id.
        """
        self._users = {email.strip().lower(): user_id for email, user_id in (users or {}).items()}
        self.password_updates: list[str] = []

    async def find_user_id(self, email: str) -> str | None:
        return self._users.get(email.strip().lower())

    async def update_password(self, user_id: str, new_password: str) -> bool:
        if user_id not in self._users.values():
            return False
        self.password_updates.append(user_id)
        return True


_directory = InMemoryUserDirectory()


def get_user_directory() -> AbstractUserDirectory:
    return _directory
