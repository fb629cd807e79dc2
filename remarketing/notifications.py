"""
Admin notifications sent after each scheduled generation pass.

Notification is best effort.  ``send_safely()`` is the only entry point the
scheduler uses; it logs and swallows any notifier failure so the outcome of
the pass is never affected.

Channels:
  - ``LogNotifier``      writes the report to the application log (default).
  - ``WebhookNotifier``  POSTs the report as JSON to ``notifications.webhook_url``.

Payload::

    {"event": "recommendations.generated", "status": "success",
     "finished_at": "2026-03-01T07:00:12Z",
     "summary": {"processed": 40, "failed": 2, "skipped": 5, "total_generated": 71,
                 "expired": 3, "cleaned_up": 12}}

    {"event": "recommendations.generated", "status": "failed",
     "finished_at": "...", "error": "Recommendation oracle 'llm' is not configured."}
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    import httpx

    from remarketing.config import NotificationConfig

logger = logging.getLogger(__name__)

EVENT_NAME = "recommendations.generated"


def build_report(
    status: str,
    finished_at: datetime,
    summary: Optional[dict[str, int]] = None,
    error: Optional[str] = None,
) -> dict[str, Any]:
    """Assemble the notification payload for one pass."""
    report: dict[str, Any] = {
        "event": EVENT_NAME,
        "status": status,
        "finished_at": finished_at.isoformat(),
    }
    if summary is not None:
        report["summary"] = dict(summary)
    if error is not None:
        report["error"] = error
    return report


class AdminNotifier(ABC):
    """A channel that receives pass reports."""

    name: str = "notifier"

    @abstractmethod
    def send(self, report: dict[str, Any]) -> None:
        """Deliver one report.  May raise; callers use ``send_safely``."""
        ...


class LogNotifier(AdminNotifier):
    """Reports to the application log."""

    name = "log"

    def send(self, report: dict[str, Any]) -> None:
        if report.get("status") == "success":
            logger.info("Recommendation pass succeeded: %s", report.get("summary", {}))
        else:
            logger.error("Recommendation pass failed: %s", report.get("error", "unknown error"))


class WebhookNotifier(AdminNotifier):
    """POSTs each report as JSON to a webhook URL.

    Args:
        url:             Target endpoint.
        timeout_seconds: Per-request timeout.
        client:          Optional ``httpx.Client`` (tests inject a mock transport).
    """

    name = "webhook"

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 10.0,
        client: Optional["httpx.Client"] = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client = client

    def send(self, report: dict[str, Any]) -> None:
        """POST ``report``.

        Raises:
            httpx.HTTPError: On transport failure or a non-2xx response.
        """
        import httpx

        if self._client is not None:
            resp = self._client.post(self.url, json=report, timeout=self.timeout_seconds)
        else:
            resp = httpx.post(self.url, json=report, timeout=self.timeout_seconds)
        resp.raise_for_status()
        logger.debug("Webhook notification delivered (%d).", resp.status_code)


def build_notifier(config: "NotificationConfig") -> AdminNotifier:
    """Webhook notifier when a URL is configured, otherwise the log notifier."""
    if config.webhook_url:
        return WebhookNotifier(config.webhook_url, config.timeout_seconds)
    return LogNotifier()


def send_safely(notifier: AdminNotifier, report: dict[str, Any]) -> bool:
    """Deliver ``report``; log and swallow any failure.

    Returns:
        ``True`` if the notifier reported no error.
    """
    try:
        notifier.send(report)
    except Exception as exc:
        logger.warning("Notification via %s failed: %s", notifier.name, exc)
        return False
    return True
