"""Fake webhook adapter: records delivered payloads for testing."""

from notifications.channel.webhook_port import WebhookPort


class FakeWebhookAdapter(WebhookPort):
    """Webhook adapter that records payloads in memory for test assertions."""

    def __init__(self):
        self.deliveries: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "HTTP 503: Service Unavailable"

    def configure(self, should_succeed: bool = True, failure_reason: str = "HTTP 503: Service Unavailable"):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def deliver(self, event: str, payload: dict) -> dict:
        if not self.should_succeed:
            return {"status": "failed", "status_code": 503, "attempts": 1, "error": self.failure_reason}

        self.deliveries.append({"event": event, "payload": payload})
        return {"status": "delivered", "status_code": 200, "attempts": 1}

    def reset(self):
        """Clear recorded deliveries (useful between tests)."""
        self.deliveries.clear()
        self.should_succeed = True
        self.failure_reason = "HTTP 503: Service Unavailable"
