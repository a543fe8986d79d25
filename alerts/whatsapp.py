"""WhatsApp messaging through the Twilio REST API.

Only the narrow surface the backend needs: send a text message and download
media attached to an inbound message.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import aiohttp

from config.constants import (MEDIA_DOWNLOAD_TIMEOUT_SEC, TWILIO_ACCOUNT_SID,
                              TWILIO_API_URL, TWILIO_AUTH_TOKEN,
                              TWILIO_WHATSAPP_FROM, HTTP_REQUEST_TIMEOUT_SEC)
from utils.errors import ConfigurationError, ValidationError

logger = logging.getLogger("herd_health.alerts.whatsapp")

WHATSAPP_PREFIX = "whatsapp:"


def to_whatsapp_address(phone: str) -> str:
    return phone if phone.startswith(WHATSAPP_PREFIX) else f"{WHATSAPP_PREFIX}{phone}"


class MessageSender(ABC):
    @abstractmethod
    async def send(self, to: str, body: str) -> None:
        """Deliver `body` to the phone number `to`."""

    @abstractmethod
    async def download_media(self, media_url: str) -> bytes:
        """Fetch an inbound message attachment."""

    def is_configured(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class TwilioWhatsAppSender(MessageSender):
    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        api_url: Optional[str] = None,
    ):
        self.account_sid = account_sid if account_sid is not None else TWILIO_ACCOUNT_SID
        self.auth_token = auth_token if auth_token is not None else TWILIO_AUTH_TOKEN
        self.from_number = from_number if from_number is not None else TWILIO_WHATSAPP_FROM
        self.api_url = (api_url or TWILIO_API_URL).rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=HTTP_REQUEST_TIMEOUT_SEC)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def _auth(self) -> aiohttp.BasicAuth:
        return aiohttp.BasicAuth(self.account_sid, self.auth_token)

    async def send(self, to: str, body: str) -> None:
        if not self.is_configured():
            raise ConfigurationError("Twilio is not configured")
        if not to or not body:
            raise ValidationError("phone and message are required")

        url = f"{self.api_url}/Accounts/{self.account_sid}/Messages.json"
        form = {
            "From": to_whatsapp_address(self.from_number),
            "To": to_whatsapp_address(to),
            "Body": body,
        }
        session = await self._get_session()
        async with session.post(url, data=form, auth=self._auth()) as response:
            response.raise_for_status()
        logger.info("whatsapp_sent", extra={"to": to})

    async def download_media(self, media_url: str) -> bytes:
        session = await self._get_session()
        timeout = aiohttp.ClientTimeout(total=MEDIA_DOWNLOAD_TIMEOUT_SEC)
        async with session.get(media_url, auth=self._auth(), timeout=timeout) as response:
            response.raise_for_status()
            return await response.read()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()


class RecordingSender(MessageSender):
    """In-memory sender for tests; `media` maps URLs to the bytes `download_media` returns."""

    def __init__(self, media: Optional[dict] = None):
        self.sent: List[Tuple[str, str]] = []
        self.media = media or {}

    async def send(self, to: str, body: str) -> None:
        self.sent.append((to, body))
        logger.info("message_recorded", extra={"to": to})

    async def download_media(self, media_url: str) -> bytes:
        try:
            return self.media[media_url]
        except KeyError:
            raise ValidationError(f"unknown media url {media_url}") from None
