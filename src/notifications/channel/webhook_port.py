"""Webhook channel port: delivers notification payloads to an external endpoint."""

from abc import ABC, abstractmethod


class WebhookPort(ABC):
    """Abstract interface for webhook dispatch adapters."""

    @abstractmethod
    def deliver(self, event: str, payload: dict) -> dict:
        """POST a notification payload for ``event``.

        Returns:
            dict with keys: status ("delivered" or "failed"), status_code,
            attempts, error (optional)
        """
        ...
