"""
Notification Service
Tells the account owner about flow events (lead captured, notify actions)

Delivery channels:
- log (always)
- Supabase persistence (optional)
- external webhook (when configured)
"""
import logging
from typing import Optional, Dict, Any
from datetime import datetime
from dataclasses import dataclass, field
from enum import Enum
import httpx

from ..core.clock import utc_now
from ..core.config import settings
from ..core.supabase_client import supabase
from ..models.execution import FlowExecution

logger = logging.getLogger(__name__)

NOTIFICATIONS_TABLE = "dmflow_notifications"


class NotificationType(str, Enum):
    """Types of notifications"""
    FLOW_NOTIFY = "flow_notify"
    NEW_LEAD = "new_lead"


@dataclass
class FlowNotification:
    """Represents a notification raised by a flow"""
    notification_type: NotificationType
    account_id: str
    execution_id: str
    flow_id: str
    sender_id: str
    sender_username: Optional[str] = None
    recipient_email: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    delivered: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.notification_type.value,
            "account_id": self.account_id,
            "execution_id": self.execution_id,
            "flow_id": self.flow_id,
            "sender_id": self.sender_id,
            "sender_username": self.sender_username,
            "recipient_email": self.recipient_email,
            "data": self.data,
            "created_at": self.created_at.isoformat(),
        }


class NotificationService:
    """
    Emits flow notifications.

    Delivery failures are logged and reported as a False return, they never
    fail the flow.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        use_persistence: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.webhook_url = webhook_url if webhook_url is not None else settings.NOTIFICATION_WEBHOOK_URL
        self.use_persistence = use_persistence
        self._transport = transport

    async def notify_flow_event(
        self,
        execution: FlowExecution,
        notify_email: Optional[str] = None,
        notification_type: NotificationType = NotificationType.FLOW_NOTIFY
    ) -> FlowNotification:
        """
        Notify the account owner (or notify_email) about an execution.

        Args:
            execution: Execution that raised the notification
            notify_email: Explicit recipient, defaults to the account owner

        Returns:
            The notification, with delivered set when a webhook accepted it
        """
        notification = FlowNotification(
            notification_type=notification_type,
            account_id=execution.account_id,
            execution_id=execution.id,
            flow_id=execution.flow_id,
            sender_id=execution.sender_id,
            sender_username=execution.sender_username,
            recipient_email=notify_email,
            data=execution.context.model_dump(mode="json"),
        )

        logger.info(
            f"Notify {notify_email or 'account owner'} about flow {execution.flow_id} "
            f"(user @{execution.sender_username}, execution {execution.id})"
        )

        if self.use_persistence:
            try:
                supabase.table(NOTIFICATIONS_TABLE).insert(notification.to_dict()).execute()
            except Exception as e:
                logger.error(f"Failed to persist notification: {e}")

        if self.webhook_url:
            notification.delivered = await self._send_to_webhook(notification)

        return notification

    async def _send_to_webhook(self, notification: FlowNotification) -> bool:
        try:
            async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
                response = await client.post(
                    self.webhook_url,
                    json=notification.to_dict(),
                    headers={"Content-Type": "application/json"}
                )

            if response.status_code in [200, 201, 202, 204]:
                logger.debug(f"Notification for execution {notification.execution_id} delivered to webhook")
                return True

            logger.warning(
                f"Webhook returned {response.status_code} for execution {notification.execution_id}"
            )
            return False

        except httpx.HTTPError as e:
            logger.error(f"Error sending notification to webhook: {e}")
            return False


# Singleton instance
notification_service = NotificationService()
