"""Email channel port: abstract interface for outbound email."""

from abc import ABC, abstractmethod


class EmailPort(ABC):
    """Abstract interface for email transport adapters."""

    @abstractmethod
    def send(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: str | None = None,
    ) -> dict:
        """Send one email with a plain-text body and optional HTML alternative.

        Adapters never raise for transport problems; they report them.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)
        """
        ...
