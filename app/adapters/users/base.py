"""User directory interface.

The auth routes only need to resolve an email to a user id and to hand a
new password to whoever owns credential storage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class AbstractUserDirectory(ABC):
    @abstractmethod
    async def find_user_id(self, email: str) -> str | None:
        """Return the id of the account registered with ``email``."""
        raise NotImplementedError

    @abstractmethod
    async def update_password(self, user_id: str, new_password: str) -> bool:
        """Replace the user's password; False if the user is unknown."""
        raise NotImplementedError
