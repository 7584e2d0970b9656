"""
Lifecycle Notifications.

Fire-and-forget events emitted after a claim transition has committed.
Delivery (email, in-app, webhooks) belongs to the notification service;
the engine only publishes and never lets a delivery failure reach the caller.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    SUBMISSION_COMPLETED = "submission_completed"
    SUBMISSION_FAILED = "submission_failed"
    BATCH_COMPLETED = "batch_completed"
    APPEAL_FILED = "appeal_filed"
    APPEAL_OUTCOME = "appeal_outcome"
    CLAIM_DENIED = "claim_denied"
    CLAIM_VOIDED = "claim_voided"


@dataclass
class ClaimNotification:
    """Payload handed to the notifier."""

    type: NotificationType
    claim_id: Optional[str] = None
    claim_number: Optional[str] = None
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier(Protocol):
    async def notify(self, notification: ClaimNotification) -> None:
        ...


class LoggingNotifier:
    """Default notifier: records events in the application log."""

    async def notify(self, notification: ClaimNotification) -> None:
        logger.info(
            f"[notification] {notification.type.value} "
            f"claim={notification.claim_number or notification.claim_id} {notification.message}"
        )


async def publish(notifier: Notifier, notification: ClaimNotification) -> None:
    """Deliver a notification; delivery errors are logged and dropped."""
    try:
        await notifier.notify(notification)
    except Exception as e:
        logger.warning(f"Notification {notification.type.value} could not be delivered: {e}")
