"""
Instagram service - Graph API messaging
"""
import logging
from typing import Optional, Any, List, Dict
import httpx

from ..core.config import settings
from ..models.account import InstagramAccount

logger = logging.getLogger(__name__)

# Graph API limit for quick reply titles
QUICK_REPLY_TITLE_LIMIT = 20


def truncate_message(message: str, max_length: Optional[int] = None) -> str:
    """Truncate a message to the DM length limit"""
    max_length = max_length or settings.MAX_MESSAGE_LENGTH
    if len(message) <= max_length:
        return message
    return message[: max_length - 3] + "..."


class InstagramService:
    """
    Sends direct messages through the Instagram Graph API.

    Every send returns a delivered flag instead of raising, so callers can
    treat "not sent" as a normal outcome.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or settings.GRAPH_API_URL).rstrip("/")
        self.timeout = timeout or settings.GRAPH_API_TIMEOUT_SECONDS
        self._transport = transport

    def _get_headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    def _messages_endpoint(self, account: InstagramAccount) -> str:
        sender = account.instagram_account_id or account.page_id or "me"
        return f"{self.base_url}/{sender}/messages"

    async def _post_message(
        self,
        account: InstagramAccount,
        recipient_id: str,
        message: Dict[str, Any]
    ) -> bool:
        if not account.access_token:
            logger.error(f"[Instagram] Account {account.id} has no access token")
            return False

        payload = {"recipient": {"id": recipient_id}, "message": message}

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    self._messages_endpoint(account),
                    json=payload,
                    headers=self._get_headers(account.access_token),
                    timeout=self.timeout
                )

            if response.status_code == 200:
                logger.info(f"[Instagram] DM sent to {recipient_id} via account {account.id}")
                return True

            logger.error(
                f"[Instagram] Failed to send DM to {recipient_id}: "
                f"{response.status_code} - {response.text}"
            )
            return False

        except httpx.HTTPError as e:
            logger.error(f"[Instagram] Error sending DM to {recipient_id}: {e}")
            return False

    async def send_direct_message(
        self,
        account: InstagramAccount,
        recipient_id: str,
        text: str
    ) -> bool:
        """
        Send a plain text DM.

        Args:
            account: Sending account
            recipient_id: Instagram-scoped user ID
            text: Message text (truncated to the DM limit)

        Returns:
            True when the Graph API accepted the message
        """
        return await self._post_message(account, recipient_id, {"text": truncate_message(text)})

    async def send_quick_reply_message(
        self,
        account: InstagramAccount,
        recipient_id: str,
        text: str,
        options: List[Dict[str, str]]
    ) -> bool:
        """
        Send a DM with quick reply buttons.

        Args:
            options: [{"title": ..., "payload": ...}]
        """
        message = {
            "text": truncate_message(text),
            "quick_replies": [
                {
                    "content_type": "text",
                    "title": option["title"][:QUICK_REPLY_TITLE_LIMIT],
                    "payload": option["payload"],
                }
                for option in options
            ],
        }
        return await self._post_message(account, recipient_id, message)

    async def send_image_message(
        self,
        account: InstagramAccount,
        recipient_id: str,
        image_url: str
    ) -> bool:
        """Send an image attachment by URL"""
        message = {
            "attachment": {
                "type": "image",
                "payload": {"url": image_url},
            }
        }
        return await self._post_message(account, recipient_id, message)


# Singleton instance
instagram = InstagramService()
