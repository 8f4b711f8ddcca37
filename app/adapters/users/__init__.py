"""User directory adapters (account storage is an external collaborator)."""

from app.adapters.users.base import AbstractUserDirectory
from app.adapters.users.in_memory import InMemoryUserDirectory, get_user_directory

__all__ = ["AbstractUserDirectory", "InMemoryUserDirectory", "get_user_directory"]
