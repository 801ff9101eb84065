"""Webhook notifications for booking events."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Mapping

import requests
from flask import current_app

_executor: ThreadPoolExecutor | None = None


def get_executor() -> ThreadPoolExecutor:
    """Shared pool used for deliveries so callers never wait on the network."""
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="webhook")
    return _executor


def webhook_url() -> str | None:
    url = (current_app.config.get("WEBHOOK_URL") or "").strip()
    if not url.startswith(("http://", "https://")):
        return None
    return url


def send_webhook(
    url: str,
    event: str,
    payload: Mapping[str, Any],
    *,
    timeout: float = 5.0,
    max_retries: int = 3,
    retry_delay: float = 1.0,
    logger: logging.Logger | None = None,
) -> bool:
    """POST ``{"event", "data", "timestamp"}`` to ``url``.

    Non-2xx responses and network errors are retried with exponential
    backoff: after attempt ``n`` the wait is ``retry_delay * 2 ** (n - 1)``.
    Returns whether any attempt succeeded; never raises.
    """

    log = logger or logging.getLogger(__name__)
    body = {
        "event": event,
        "data": dict(payload),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    attempts = max(int(max_retries), 1)
    for attempt in range(1, attempts + 1):
        try:
            response = requests.post(
                url,
                json=body,
                headers={
                    "Content-Type": "application/json",
                    "X-Webhook-Event": event,
                    "X-Attempt-Number": str(attempt),
                },
                timeout=timeout,
            )
            if 200 <= response.status_code < 300:
                log.info("Webhook %s delivered on attempt %s", event, attempt)
                return True
            log.warning("Webhook %s attempt %s returned HTTP %s", event, attempt, response.status_code)
        except requests.RequestException as exc:
            log.warning("Webhook %s attempt %s failed: %s", event, attempt, exc)
        if attempt < attempts:
            time.sleep(retry_delay * 2 ** (attempt - 1))
    log.error("Webhook %s failed after %s attempts", event, attempts)
    return False


def notify(event: str, payload: Mapping[str, Any]) -> Future | None:
    """Queue a webhook delivery and return immediately.

    Returns the delivery future, or ``None`` when no webhook is configured.
    """

    url = webhook_url()
    logger = current_app.logger
    if url is None:
        logger.debug("Webhook not configured, skipping %s", event)
        return None
    config = current_app.config
    return get_executor().submit(
        send_webhook,
        url,
        event,
        dict(payload),
        timeout=float(config.get("WEBHOOK_TIMEOUT_SECONDS", 5)),
        max_retries=int(config.get("WEBHOOK_MAX_RETRIES", 3)),
        retry_delay=float(config.get("WEBHOOK_RETRY_DELAY_SECONDS", 1.0)),
        logger=logger,
    )
