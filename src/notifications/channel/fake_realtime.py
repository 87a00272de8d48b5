"""Fake realtime adapter: records pushed payloads for testing."""

from notifications.channel.realtime_port import RealtimePort


class FakeRealtimeAdapter(RealtimePort):
    """Realtime adapter that records pushes in memory for test assertions."""

    def __init__(self):
        self.pushed: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Realtime push failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Realtime push failed"):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def push(self, user_id: str, payload: dict) -> dict:
        if not self.should_succeed:
            return {"status": "failed", "error": self.failure_reason}

        self.pushed.append({"user_id": user_id, "payload": payload})
        return {"status": "pushed"}

    def reset(self):
        """Clear recorded pushes (useful between tests)."""
        self.pushed.clear()
        self.should_succeed = True
        self.failure_reason = "Realtime push failed"
