import logging
from datetime import datetime
from typing import Optional

from alerts.whatsapp import MessageSender
from models.records import AlertRecord, AlertSeverity
from models.verdict import Verdict
from utils import metrics

logger = logging.getLogger("herd_health.alerts")

ALERT_CLASSIFICATIONS = ("suspicious", "critical")
NO_DISEASES_TEXT = "No se detectaron enfermedades específicas"


def should_alert(verdict: Verdict) -> bool:
    return verdict.classification in ALERT_CLASSIFICATIONS


def alert_severity(verdict: Verdict) -> Optional[AlertSeverity]:
    if verdict.classification == "critical":
        return "high"
    if verdict.classification == "suspicious":
        return "medium"
    return None


def build_alert_message(verdict: Verdict, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    if verdict.diseases:
        diseases_text = "\n".join(
            f"  • {d.name} ({d.confidence * 100:.1f}%)" for d in verdict.diseases
        )
    else:
        diseases_text = NO_DISEASES_TEXT
    return (
        "🚨 Alerta de Ganado\n\n"
        f"Clasificación: {verdict.classification}\n"
        f"Confianza: {verdict.confidence * 100:.1f}%\n"
        f"Detecciones: {verdict.detection_count}\n\n"
        f"Enfermedades detectadas:\n{diseases_text}\n\n"
        f"Fecha: {now.strftime('%d/%m/%Y, %H:%M:%S')}"
    )


def build_batch_alert_message(index: int, verdict: Verdict) -> str:
    detail = verdict.summary.message or verdict.classification
    return f"Escaneo batch: imagen {index + 1} - {detail}"


class AlertService:
    """Sends alerts for suspicious or critical scans.

    Delivery is best-effort: failures are logged and reported as an unsent
    alert, never raised to the caller.
    """

    def __init__(self, sender: MessageSender):
        self.sender = sender

    async def notify_scan(self, phone: Optional[str], verdict: Verdict) -> AlertRecord:
        if not should_alert(verdict):
            return AlertRecord()
        return await self._deliver(phone, build_alert_message(verdict), verdict)

    async def notify_batch_item(self, phone: Optional[str], index: int, verdict: Verdict) -> AlertRecord:
        if not should_alert(verdict):
            return AlertRecord()
        return await self._deliver(phone, build_batch_alert_message(index, verdict), verdict)

    async def _deliver(self, phone: Optional[str], body: str, verdict: Verdict) -> AlertRecord:
        if not self.sender.is_configured():
            logger.warning("alert_skipped: messaging is not configured")
            metrics.incr("alerts.skipped")
            return AlertRecord()
        if not phone:
            logger.warning("alert_skipped: user has no phone number")
            return AlertRecord()
        try:
            await self.sender.send(phone, body)
        except Exception as error:
            logger.error(f"alert_failed: {error}", extra={"classification": verdict.classification})
            metrics.incr("alerts.failed")
            return AlertRecord()
        metrics.incr("alerts.sent")
        return AlertRecord(sent=True, severity=alert_severity(verdict))
