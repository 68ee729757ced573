import httpx
import logging
from typing import List, Optional

from thriftverse.application.interfaces import EmailSender, PushSender
from thriftverse.domain.exceptions import NotificationError

logger = logging.getLogger(__name__)


class ResendEmailClient(EmailSender):
    def __init__(
        self,
        base_url: str,
        api_key: str,
        from_email: str,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._base_url = base_url
        self._api_key = api_key
        self._from_email = from_email
        self._transport = transport

    async def send(self, to: str, subject: str, html: str) -> None:
        if not self._api_key:
            raise NotificationError("RESEND_API_KEY is not configured")
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/emails",
                    json={
                        "from": self._from_email,
                        "to": [to],
                        "subject": subject,
                        "html": html
                    },
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    timeout=10.0
                )
        except httpx.RequestError as e:
            logger.error(f"Email service connection error: {e}")
            raise NotificationError(f"Email service unavailable: {str(e)}")

        if response.status_code not in (200, 201):
            raise NotificationError(f"Email service error: {response.status_code} {response.text}")


class ExpoPushClient(PushSender):
    def __init__(self, push_url: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._push_url = push_url
        self._transport = transport

    async def send(self, tokens: List[str], title: str, body: str, data: dict) -> None:
        if not tokens:
            return
        # Expo accepts a batch, one message per device token
        messages = [
            {
                "to": token,
                "title": title,
                "body": body,
                "data": data,
                "sound": "default",
                "channelId": "orders"
            }
            for token in tokens
        ]
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    self._push_url,
                    json=messages,
                    headers={"Accept": "application/json"},
                    timeout=10.0
                )
        except httpx.RequestError as e:
            logger.error(f"Push service connection error: {e}")
            raise NotificationError(f"Push service unavailable: {str(e)}")

        if response.status_code != 200:
            raise NotificationError(f"Push service error: {response.status_code}")

        tickets = response.json().get("data") or []
        errors = [t for t in tickets if t.get("status") == "error"]
        if errors:
            logger.error(f"Some push notifications failed: {errors}")
        if tickets and len(errors) == len(tickets):
            raise NotificationError("All push notifications failed")
