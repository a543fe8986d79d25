"""Scans submitted as images over WhatsApp."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from alerts.whatsapp import MessageSender
from config.constants import MAX_IMAGES_WHATSAPP
from models.records import Scan
from services.scan_service import ScanRequest, ScanService
from storage.repository import UserRepository

logger = logging.getLogger("herd_health.services.inbound")

WHATSAPP_SOURCE = "whatsapp"

NO_MEDIA_REPLY = (
    "Envía una o varias fotos del ganado para analizarlas. "
    "Responde con imágenes cuando quieras."
)
NO_IMAGES_REPLY = (
    "No se detectaron imágenes en el mensaje. "
    "Envía fotos (JPEG, PNG) del ganado para analizarlas."
)
UNKNOWN_USER_REPLY = (
    "No estás registrado en el sistema. "
    "Regístrate con el mismo número de WhatsApp para poder analizar imágenes."
)
PROCESSING_ERROR_REPLY = (
    "No pudimos procesar tu mensaje en este momento. "
    "Intenta enviar las fotos de nuevo en unos minutos."
)


@dataclass
class InboundMessage:
    sender: str
    media_urls: List[str]
    media_count: int

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "InboundMessage":
        """Parse a Twilio webhook form (From, NumMedia, MediaUrl{i}, MediaContentType{i})."""
        try:
            media_count = int(form.get("NumMedia") or 0)
        except (TypeError, ValueError):
            media_count = 0
        media_urls: List[str] = []
        for i in range(min(media_count, MAX_IMAGES_WHATSAPP)):
            url = form.get(f"MediaUrl{i}")
            content_type = str(form.get(f"MediaContentType{i}") or "")
            if url and content_type.startswith("image/"):
                media_urls.append(str(url))
        return cls(sender=str(form.get("From") or ""), media_urls=media_urls, media_count=media_count)


def summarize_results(scans: List[Scan], errors: List[Dict[str, Any]]) -> str:
    """Reply text with one count per classification bucket; empty buckets are omitted."""
    counts = {"critical": 0, "suspicious": 0, "healthy": 0}
    for scan in scans:
        counts[scan.verdict.classification] += 1

    summary = f"Procesadas {len(scans)} imagen(es)."
    if counts["critical"]:
        summary += f" {counts['critical']} crítica(s)."
    if counts["suspicious"]:
        summary += f" {counts['suspicious']} sospechosa(s)."
    if counts["healthy"]:
        summary += f" {counts['healthy']} sana(s)."
    if errors:
        summary += f" ({len(errors)} error(es))."
    return summary


class InboundMessageHandler:
    def __init__(self, users: UserRepository, scans: ScanService, sender: MessageSender):
        self.users = users
        self.scans = scans
        self.sender = sender

    async def handle(self, message: InboundMessage) -> Optional[str]:
        """Process one inbound message and send the reply; returns the reply text."""
        try:
            reply = await self._build_reply(message)
        except Exception:
            logger.exception("whatsapp_message_failed", extra={"from": message.sender})
            reply = PROCESSING_ERROR_REPLY
        try:
            await self.sender.send(message.sender, reply)
        except Exception as error:
            logger.error(f"whatsapp_reply_failed: {error}", extra={"to": message.sender})
        return reply

    async def _build_reply(self, message: InboundMessage) -> str:
        if message.media_count == 0:
            return NO_MEDIA_REPLY
        if not message.media_urls:
            return NO_IMAGES_REPLY

        try:
            user = await self.users.find_by_phone(message.sender)
        except Exception:
            logger.exception("user_lookup_failed", extra={"from": message.sender})
            user = None
        if user is None:
            return UNKNOWN_USER_REPLY

        # the summary reply replaces per-scan alerts
        request = ScanRequest(user=user, source=WHATSAPP_SOURCE, sender=message.sender, send_alerts=False)
        outcomes = await asyncio.gather(
            *(self._process_media(request, url) for url in message.media_urls),
            return_exceptions=True,
        )
        scans: List[Scan] = []
        errors: List[Dict[str, Any]] = []
        for index, outcome in enumerate(outcomes, start=1):
            if isinstance(outcome, BaseException):
                logger.error(f"whatsapp_image_failed: {outcome}", extra={"index": index})
                errors.append({"index": index, "error": str(outcome)})
            else:
                scans.append(outcome)
        return summarize_results(scans, errors)

    async def _process_media(self, request: ScanRequest, media_url: str) -> Scan:
        data = await self.sender.download_media(media_url)
        return await self.scans.create_scan(request, data)
