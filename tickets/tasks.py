"""Background tasks for the ticket service."""
from __future__ import annotations

import logging
from typing import Any, Dict

import requests
from celery import shared_task
from django.conf import settings

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=5)
def notify_ticket_event(self, payload: Dict[str, Any]) -> bool:
    """Forward a lifecycle event to the external notification service."""

    url = settings.TASKSCOUT_NOTIFICATION_URL
    if not url:
        logger.debug("No notification endpoint configured; dropping %s", payload.get("action"))
        return False

    try:
        response = requests.post(url, json=payload, timeout=settings.TASKSCOUT_SERVICE_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning(
            "Notifying %s for ticket %s failed: %s", payload.get("action"), payload.get("ticket_id"), exc
        )
        if self.request.retries >= self.max_retries:
            logger.error("Giving up on notification for ticket %s", payload.get("ticket_id"))
            return False
        raise self.retry(exc=exc, countdown=min(60, 2 ** self.request.retries))

    logger.info("Notified %s for ticket %s", payload.get("action"), payload.get("ticket_id"))
    return True
