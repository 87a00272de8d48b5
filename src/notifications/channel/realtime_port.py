"""Realtime channel port: pushes in-app notifications to connected clients."""

from abc import ABC, abstractmethod


class RealtimePort(ABC):
    """Abstract interface for realtime (websocket) push adapters."""

    @abstractmethod
    def push(self, user_id: str, payload: dict) -> dict:
        """Push a payload to every open session of a user.

        Returns:
            dict with keys: status ("pushed" or "failed"), error (optional)
        """
        ...
