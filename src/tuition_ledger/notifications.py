"""Fire-and-forget notifications emitted after ledger changes.

Notifications are dispatched only after the ledger unit of work has
committed, and a failing notifier is logged and otherwise ignored.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

import httpx
from pydantic import BaseModel, Field

from .config import get_notification_url

logger = logging.getLogger(__name__)

PAYMENT_RECORDED = "payment.recorded"
FULLY_PAID = "payment.fully_paid"


class PaymentNotification(BaseModel):
    """Event handed to the notification collaborator."""
    kind: str
    student_id: str
    email: str
    reference: str
    amount: int
    installment: str
    payment_status: str
    occurred_at: datetime = Field(default_factory=datetime.utcnow)


class Notifier(ABC):
    """Delivery channel for payment notifications."""

    @abstractmethod
    async def notify(self, notification: PaymentNotification) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Default notifier: writes the event to the log."""

    async def notify(self, notification: PaymentNotification) -> None:
        logger.info(
            f"{notification.kind}: student {notification.student_id} "
            f"reference {notification.reference} amount {notification.amount} "
            f"status {notification.payment_status}"
        )


class HttpNotifier(Notifier):
    """Posts events as JSON to a downstream service (email, PDF receipts)."""

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def notify(self, notification: PaymentNotification) -> None:
        payload = notification.model_dump(mode="json")
        if self._client is not None:
            response = await self._client.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()


def get_notifier() -> Notifier:
    """Notifier configured from NOTIFICATION_WEBHOOK_URL, logging otherwise."""
    url = get_notification_url()
    if url:
        return HttpNotifier(url)
    return LoggingNotifier()


async def dispatch_notifications(
    notifier: Notifier,
    notifications: Iterable[PaymentNotification],
) -> None:
    """Deliver each notification, logging failures instead of raising."""
    for notification in notifications:
        try:
            await notifier.notify(notification)
        except Exception as e:
            logger.error(
                f"Failed to deliver {notification.kind} for reference "
                f"{notification.reference}: {e}"
            )
