"""Tests for admin notification payloads and channels."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx

from remarketing.config import NotificationConfig
from remarketing.notifications import (
    EVENT_NAME,
    LogNotifier,
    WebhookNotifier,
    build_notifier,
    build_report,
    send_safely,
)

FINISHED = datetime(2026, 3, 1, 7, 0, 12, tzinfo=timezone.utc)


def test_success_report_shape():
    report = build_report("success", FINISHED, summary={"processed": 3, "failed": 0})
    assert report == {
        "event": EVENT_NAME,
        "status": "success",
        "finished_at": "2026-03-01T07:00:12+00:00",
        "summary": {"processed": 3, "failed": 0},
    }


def test_failure_report_has_error_only():
    report = build_report("failed", FINISHED, error="oracle not configured")
    assert report["error"] == "oracle not configured"
    assert "summary" not in report


def test_build_notifier_selects_channel():
    assert isinstance(build_notifier(NotificationConfig()), LogNotifier)
    webhook = build_notifier(NotificationConfig(webhook_url="https://hooks.test/x"))
    assert isinstance(webhook, WebhookNotifier)
    assert webhook.url == "https://hooks.test/x"


def test_webhook_posts_json():
    received: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(204)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    notifier = WebhookNotifier("https://hooks.test/remarketing", client=client)
    report = build_report("success", FINISHED, summary={"processed": 1})

    assert send_safely(notifier, report) is True
    assert received == [report]


def test_webhook_failure_is_swallowed(caplog):
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    notifier = WebhookNotifier("https://hooks.test/remarketing", client=client)

    assert send_safely(notifier, build_report("failed", FINISHED, error="x")) is False
    assert "webhook" in caplog.text


def test_log_notifier_writes_summary(caplog):
    caplog.set_level("INFO")
    LogNotifier().send(build_report("success", FINISHED, summary={"processed": 7}))
    assert "'processed': 7" in caplog.text
