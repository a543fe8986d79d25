from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from alerts.alert_service import (NO_DISEASES_TEXT, AlertService,
                                  alert_severity, build_alert_message,
                                  build_batch_alert_message, should_alert)
from alerts.whatsapp import (RecordingSender, TwilioWhatsAppSender,
                             to_whatsapp_address)
from api.dependencies import build_services
from analysis.explainer import build_summary
from models.verdict import Disease, Verdict
from utils import metrics


def make_verdict(classification, confidence=0.0, diseases=()):
    diseases = list(diseases)
    return Verdict(
        classification=classification,
        confidence=confidence,
        diseases=diseases,
        detection_count=len(diseases),
        summary=build_summary(classification, confidence, diseases, []),
    )


@pytest.mark.parametrize("classification, alert, severity", [
    ("healthy", False, None),
    ("suspicious", True, "medium"),
    ("critical", True, "high"),
])
def test_alert_policy(classification, alert, severity):
    verdict = make_verdict(classification)
    assert should_alert(verdict) is alert
    assert alert_severity(verdict) == severity


def test_alert_message_lists_diseases():
    verdict = make_verdict("critical", 0.853, [Disease(name="lumpy", confidence=0.853, model="a")])

    message = build_alert_message(verdict, now=datetime(2024, 5, 1, 8, 30, 0))

    assert message.startswith("🚨 Alerta de Ganado")
    assert "Clasificación: critical" in message
    assert "Confianza: 85.3%" in message
    assert "  • lumpy (85.3%)" in message
    assert "Fecha: 01/05/2024, 08:30:00" in message


def test_alert_message_without_diseases():
    message = build_alert_message(make_verdict("suspicious", 0.5))
    assert NO_DISEASES_TEXT in message


def test_batch_alert_message_is_one_based():
    verdict = make_verdict("suspicious", 0.5, [Disease(name="mange", confidence=0.5, model="a")])
    assert build_batch_alert_message(0, verdict) == "Escaneo batch: imagen 1 - Posible signo de: mange (50%)."


@pytest.mark.asyncio
async def test_notify_scan_sends_for_critical():
    sender = RecordingSender()
    record = await AlertService(sender).notify_scan("+573001234567", make_verdict("critical", 0.9))

    assert record.sent and record.severity == "high"
    assert sender.sent[0][0] == "+573001234567"
    assert metrics.get_counter("alerts.sent") == 1


@pytest.mark.asyncio
async def test_notify_scan_skips_healthy_and_missing_phone():
    sender = RecordingSender()
    service = AlertService(sender)

    assert not (await service.notify_scan("+573001234567", make_verdict("healthy"))).sent
    assert not (await service.notify_scan(None, make_verdict("critical", 0.9))).sent
    assert sender.sent == []


@pytest.mark.asyncio
async def test_delivery_failure_is_not_raised():
    sender = RecordingSender()
    sender.send = AsyncMock(side_effect=ConnectionError("twilio down"))

    record = await AlertService(sender).notify_batch_item("+573001234567", 2, make_verdict("critical"))

    assert not record.sent
    assert record.severity is None
    assert metrics.get_counter("alerts.failed") == 1
    sender.send.assert_awaited_once()


def test_whatsapp_address_prefix_added_once():
    assert to_whatsapp_address("+57300") == "whatsapp:+57300"
    assert to_whatsapp_address("whatsapp:+57300") == "whatsapp:+57300"


@pytest.mark.asyncio
async def test_unconfigured_twilio_leaves_alert_unsent():
    sender = TwilioWhatsAppSender(account_sid="", auth_token="", from_number="")
    sender.send = AsyncMock()

    record = await AlertService(sender).notify_scan("+573001234567", make_verdict("critical", 0.9))

    assert record.sent is False
    assert record.severity is None
    sender.send.assert_not_awaited()
    assert metrics.get_counter("alerts.sent") == 0
    assert metrics.get_counter("alerts.skipped") == 1


@pytest.mark.asyncio
async def test_build_services_without_twilio_does_not_mark_alerts_sent(monkeypatch):
    for name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_WHATSAPP_FROM"):
        monkeypatch.setattr(f"alerts.whatsapp.{name}", "")
    monkeypatch.setattr("api.dependencies.USERS_FILE", "")

    services = build_services()
    try:
        assert isinstance(services.sender, TwilioWhatsAppSender)
        assert not services.sender.is_configured()
        record = await services.alerts.notify_scan(
            "+573001234567",
            make_verdict("critical", 0.9, [Disease(name="lumpy", confidence=0.9, model="a")]),
        )
        assert record.sent is False
    finally:
        await services.close()
