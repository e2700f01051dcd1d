# Overview: Post-commit delivery of raised stock alerts.

from __future__ import annotations

import httpx
from flask import current_app

EXTENSION_KEY = "storecore.alert_notifier"


class AlertNotifier:
    """Receives serialized alerts after the unit of work that raised them commits."""

    def notify(self, alerts: list[dict]) -> None:
        raise NotImplementedError


class LoggingAlertNotifier(AlertNotifier):
    def __init__(self, logger):
        self.logger = logger

    def notify(self, alerts: list[dict]) -> None:
        for alert in alerts:
            self.logger.warning(
                "Stock alert %s: product %s at %s (min %s)%s",
                alert["id"],
                alert["product_id"],
                alert["current_stock"],
                alert["min_stock_level"],
                " [ZERO STOCK]" if alert.get("zero_stock") else "",
            )


class WebhookAlertNotifier(AlertNotifier):
    def __init__(self, url: str, timeout: float = 3.0, client: httpx.Client | None = None):
        self.url = url
        self.timeout = timeout
        self.client = client

    def notify(self, alerts: list[dict]) -> None:
        payload = {"event": "stock_alerts.raised", "alerts": alerts}
        if self.client is not None:
            response = self.client.post(self.url, json=payload, timeout=self.timeout)
        else:
            response = httpx.post(self.url, json=payload, timeout=self.timeout)
        response.raise_for_status()


def init_alert_notifier(app) -> AlertNotifier:
    url = app.config.get("ALERT_WEBHOOK_URL")
    if url:
        notifier = WebhookAlertNotifier(url, timeout=app.config.get("ALERT_WEBHOOK_TIMEOUT", 3.0))
    else:
        notifier = LoggingAlertNotifier(app.logger)
    app.extensions[EXTENSION_KEY] = notifier
    return notifier


def get_alert_notifier() -> AlertNotifier:
    notifier = current_app.extensions.get(EXTENSION_KEY)
    if notifier is None:
        notifier = init_alert_notifier(current_app)
    return notifier


def dispatch_alerts(alerts) -> None:
    """
    Deliver alerts raised by a committed unit of work.

    The write has already committed; delivery failures are logged and
    never surface to the caller.
    """
    if not alerts:
        return
    payload = [alert.to_dict() for alert in alerts]
    try:
        get_alert_notifier().notify(payload)
    except Exception:  # any notifier failure; the write is already committed
        current_app.logger.warning("Alert notification failed for %d alert(s)", len(payload), exc_info=True)
