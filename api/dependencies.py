"""Application wiring: builds the collaborators and exposes them to handlers."""

import json
import logging
from typing import List, Optional

import httpx
from aiohttp import web

from alerts.alert_service import AlertService
from alerts.whatsapp import MessageSender, TwilioWhatsAppSender
from analysis.aggregator import Aggregator
from analysis.consolidation import ConsolidationEngine
from config.constants import ROBOFLOW_HTTP_TIMEOUT_SEC, USERS_FILE
from inference.roboflow_client import RoboflowClient, default_detector_configs
from models.records import User
from services.inbound_service import InboundMessageHandler
from services.scan_service import ScanService
from storage.images import ImageStore, LocalImageStore
from storage.repository import Repositories

logger = logging.getLogger("herd_health.api.dependencies")


class AppServices:
    """Container for everything request handlers need."""

    def __init__(
        self,
        repositories: Repositories,
        image_store: ImageStore,
        aggregator: Aggregator,
        sender: MessageSender,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.repositories = repositories
        self.image_store = image_store
        self.aggregator = aggregator
        self.sender = sender
        self.http_client = http_client
        self.consolidation = ConsolidationEngine(repositories.animals, repositories.scans)
        self.alerts = AlertService(sender)
        self.scans = ScanService(repositories, image_store, aggregator, self.consolidation, self.alerts)
        self.inbound = InboundMessageHandler(repositories.users, self.scans, sender)

    @property
    def detectors(self):
        return (self.aggregator.disease_a, self.aggregator.disease_b, self.aggregator.wound)

    async def close(self) -> None:
        await self.sender.close()
        if self.http_client is not None:
            await self.http_client.aclose()


def load_users_file(path: str) -> List[User]:
    with open(path, "r", encoding="utf-8") as f:
        return [User.model_validate(item) for item in json.load(f)]


def build_services(repositories: Optional[Repositories] = None) -> AppServices:
    """Wire the production collaborators from environment configuration."""
    http_client = httpx.AsyncClient(timeout=ROBOFLOW_HTTP_TIMEOUT_SEC)
    configs = default_detector_configs()
    aggregator = Aggregator(
        RoboflowClient(configs["disease_a"], http_client),
        RoboflowClient(configs["disease_b"], http_client),
        RoboflowClient(configs["wound"], http_client),
    )

    sender = TwilioWhatsAppSender()
    if not sender.is_configured():
        logger.warning("Twilio is not configured; alerts and WhatsApp replies are disabled")

    repositories = repositories or Repositories()
    if USERS_FILE:
        loaded = repositories.users.load(load_users_file(USERS_FILE))
        logger.info(f"Loaded {loaded} user(s) from {USERS_FILE}")

    return AppServices(
        repositories=repositories,
        image_store=LocalImageStore(),
        aggregator=aggregator,
        sender=sender,
        http_client=http_client,
    )


SERVICES_KEY = web.AppKey("services", AppServices)


def get_services(request: web.Request) -> AppServices:
    return request.app[SERVICES_KEY]


def current_user(request: web.Request) -> User:
    return request["user"]
