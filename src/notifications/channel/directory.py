"""Recipient directory: resolves a user id to the address email goes to.

User records live in the platform's identity service; the engine only
needs the email address, so it talks to a directory port.
"""

from abc import ABC, abstractmethod


class RecipientDirectory(ABC):
    @abstractmethod
    def email_for(self, user_id: str) -> str | None:
        """Email address for a user, or None when unknown."""
        ...


class InMemoryRecipientDirectory(RecipientDirectory):
    """Directory backed by a dict; used in tests and single-node setups."""

    def __init__(self, addresses: dict[str, str] | None = None):
        self.addresses: dict[str, str] = dict(addresses or {})

    def register(self, user_id: str, email: str):
        self.addresses[str(user_id)] = email

    def email_for(self, user_id: str) -> str | None:
        return self.addresses.get(str(user_id))

    def reset(self):
        self.addresses.clear()
