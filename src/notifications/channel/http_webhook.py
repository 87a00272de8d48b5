"""HTTP webhook adapter: signed JSON POSTs with retry on transient failures.

Retries use tenacity with exponential backoff of 1s, 2s, 4s and so on,
capped at 30s.
"""

import hashlib
import hmac
import json
import time
from datetime import UTC, datetime

import httpx
import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential
from notifications.channel.webhook_port import WebhookPort

logger = structlog.get_logger(__name__)

REQUEST_TIMEOUT = 10.0
MAX_BACKOFF_SECONDS = 30


def sign_payload(body: str, secret: str) -> str:
    """Hex HMAC-SHA256 of the request body."""
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


class WebhookAttemptFailed(Exception):
    """A delivery attempt that may succeed if repeated (5xx, 429, network)."""

    def __init__(self, error: str, status_code: int | None = None):
        super().__init__(error)
        self.error = error
        self.status_code = status_code


def _is_retryable(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


class HttpWebhookAdapter(WebhookPort):
    def __init__(
        self,
        url: str,
        secret: str | None = None,
        max_retries: int = 3,
        headers: dict | None = None,
        client: httpx.Client | None = None,
        sleep=time.sleep,
    ):
        self.url = url
        self.secret = secret
        self.max_retries = max_retries
        self.headers = headers or {}
        self.client = client or httpx.Client(timeout=REQUEST_TIMEOUT)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings):
        if not settings.webhook_url:
            raise ValueError("WEBHOOK_URL must be set when WEBHOOK_ADAPTER=http")
        return cls(
            url=settings.webhook_url,
            secret=settings.webhook_secret,
            max_retries=settings.webhook_max_retries,
        )

    def _request_headers(self, event: str, body: str) -> dict:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "hr-notifications-webhook/1.0",
            "X-Webhook-Event": event,
            "X-Webhook-Timestamp": datetime.now(UTC).isoformat(),
            **self.headers,
        }
        if self.secret:
            headers["X-Webhook-Signature"] = sign_payload(body, self.secret)
        return headers

    def _post(self, event: str, body: str, headers: dict, attempt: int) -> httpx.Response:
        """One POST. Transient failures raise ``WebhookAttemptFailed``."""
        try:
            response = self.client.post(self.url, content=body, headers=headers)
        except httpx.HTTPError as e:
            error, status_code = str(e) or type(e).__name__, None
        else:
            if response.is_success:
                return response
            error, status_code = f"HTTP {response.status_code}: {response.reason_phrase}", response.status_code

        logger.warning(
            "Webhook attempt failed",
            url=self.url,
            webhook_event=event,
            error=error,
            attempt=attempt,
            max_retries=self.max_retries,
        )
        if status_code is None or _is_retryable(status_code):
            raise WebhookAttemptFailed(error, status_code)
        return response

    def deliver(self, event: str, payload: dict) -> dict:
        body = json.dumps(payload, default=str)
        headers = self._request_headers(event, body)

        attempt = 0
        try:
            for retry_state in Retrying(
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_exponential(multiplier=1, max=MAX_BACKOFF_SECONDS),
                retry=retry_if_exception_type(WebhookAttemptFailed),
                sleep=self._sleep,
                reraise=True,
            ):
                with retry_state:
                    attempt = retry_state.retry_state.attempt_number
                    response = self._post(event, body, headers, attempt)
        except WebhookAttemptFailed as e:
            return {"status": "failed", "status_code": e.status_code, "attempts": attempt, "error": e.error}

        if not response.is_success:
            return {
                "status": "failed",
                "status_code": response.status_code,
                "attempts": attempt,
                "error": f"HTTP {response.status_code}: {response.reason_phrase}",
            }

        logger.info(
            "Webhook delivered",
            url=self.url,
            webhook_event=event,
            status_code=response.status_code,
            attempts=attempt,
        )
        return {"status": "delivered", "status_code": response.status_code, "attempts": attempt}

    def close(self):
        self.client.close()
