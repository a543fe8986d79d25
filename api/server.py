import logging
from typing import Optional

from aiohttp import web

from api import animals, health, scans, webhooks
from api.dependencies import SERVICES_KEY, AppServices, build_services
from api.middleware import error_middleware, user_middleware
from config.constants import MAX_UPLOAD_BYTES, BATCH_MAX_IMAGES
from storage.images import LocalImageStore

logger = logging.getLogger("herd_health.server")


async def on_cleanup(app: web.Application) -> None:
    """Finish webhook work and release HTTP clients on shutdown."""
    logger.info("Shutting down, closing outbound clients...")
    await webhooks.drain_background_tasks(app)
    await app[SERVICES_KEY].close()
    logger.info("Outbound clients closed")


def create_app(services: Optional[AppServices] = None) -> web.Application:
    services = services or build_services()
    app = web.Application(
        middlewares=[error_middleware, user_middleware],
        client_max_size=MAX_UPLOAD_BYTES * (2 * BATCH_MAX_IMAGES + 1),
    )
    app[SERVICES_KEY] = services
    app[webhooks.BACKGROUND_TASKS_KEY] = set()

    app.add_routes(health.router)
    app.add_routes(scans.router)
    app.add_routes(animals.router)
    app.add_routes(webhooks.router)

    store = services.image_store
    if isinstance(store, LocalImageStore) and store.is_available():
        app.router.add_static("/images", store.base_dir)

    app.on_cleanup.append(on_cleanup)
    return app
