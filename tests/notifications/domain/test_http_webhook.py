"""Tests for the HTTP webhook adapter, driven through httpx.MockTransport."""

import hashlib
import hmac
import json

import httpx
import pytest
from notifications.channel.http_webhook import HttpWebhookAdapter, sign_payload

URL = "https://hooks.example.com/hr"


def _adapter(handler, **kwargs):
    sleeps = []
    adapter = HttpWebhookAdapter(
        url=URL,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=sleeps.append,
        **kwargs,
    )
    return adapter, sleeps


class TestSigning:
    def test_sign_payload_is_hmac_sha256(self):
        expected = hmac.new(b"s3cret", b'{"a": 1}', hashlib.sha256).hexdigest()
        assert sign_payload('{"a": 1}', "s3cret") == expected


class TestDeliver:
    def test_success(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        adapter, sleeps = _adapter(handler, secret="s3cret")
        result = adapter.deliver("JOB_POSTED", {"job_id": "j-1"})

        assert result == {"status": "delivered", "status_code": 200, "attempts": 1}
        assert sleeps == []
        request = seen[0]
        assert request.method == "POST"
        assert request.headers["X-Webhook-Event"] == "JOB_POSTED"
        assert "X-Webhook-Timestamp" in request.headers
        body = request.content.decode()
        assert json.loads(body) == {"job_id": "j-1"}
        assert request.headers["X-Webhook-Signature"] == sign_payload(body, "s3cret")

    def test_no_signature_without_secret(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        adapter, _ = _adapter(handler)
        adapter.deliver("JOB_POSTED", {})
        assert "X-Webhook-Signature" not in seen[0].headers

    def test_retries_server_errors_then_succeeds(self):
        responses = iter([httpx.Response(503), httpx.Response(502), httpx.Response(200)])

        adapter, sleeps = _adapter(lambda request: next(responses), max_retries=3)
        result = adapter.deliver("JOB_POSTED", {})

        assert result["status"] == "delivered"
        assert result["attempts"] == 3
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        adapter, sleeps = _adapter(handler, max_retries=2)
        result = adapter.deliver("JOB_POSTED", {})

        assert result["status"] == "failed"
        assert result["status_code"] == 500
        assert result["attempts"] == 3
        assert result["error"] == "HTTP 500: Internal Server Error"
        assert len(calls) == 3
        assert len(sleeps) == 2

    def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        adapter, sleeps = _adapter(handler)
        result = adapter.deliver("JOB_POSTED", {})

        assert result["status"] == "failed"
        assert result["status_code"] == 404
        assert len(calls) == 1
        assert sleeps == []

    def test_rate_limit_retried(self):
        responses = iter([httpx.Response(429), httpx.Response(200)])
        adapter, sleeps = _adapter(lambda request: next(responses))
        assert adapter.deliver("JOB_POSTED", {})["status"] == "delivered"
        assert sleeps == [1.0]

    def test_transport_error_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200)

        adapter, sleeps = _adapter(handler)
        result = adapter.deliver("JOB_POSTED", {})
        assert result["status"] == "delivered"
        assert result["attempts"] == 2

    def test_extra_headers(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        adapter, _ = _adapter(handler, headers={"Authorization": "Bearer t"})
        adapter.deliver("JOB_POSTED", {})
        assert seen[0].headers["Authorization"] == "Bearer t"

    def test_backoff_doubles_and_caps_at_thirty_seconds(self):
        adapter, sleeps = _adapter(lambda request: httpx.Response(500), max_retries=6)
        result = adapter.deliver("JOB_POSTED", {})

        assert result["attempts"] == 7
        assert sleeps == [1, 2, 4, 8, 16, 30]

    def test_transport_errors_exhausted(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        adapter, sleeps = _adapter(handler, max_retries=1)
        result = adapter.deliver("JOB_POSTED", {})

        assert result == {"status": "failed", "status_code": None, "attempts": 2, "error": "connection refused"}
        assert sleeps == [1]
