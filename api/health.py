import logging
from datetime import datetime, timezone

from aiohttp import web

from api.dependencies import get_services
from utils import metrics

logger = logging.getLogger("herd_health.api.health")

router = web.RouteTableDef()


@router.get("/health")
async def health(request):
    """Basic liveness probe - always returns ok if the server is running."""
    return web.json_response(
        {
            "success": True,
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


@router.get("/ready")
async def ready(request):
    """Readiness probe - validates critical dependencies are available."""
    logger.info("Readiness check requested")
    services = get_services(request)
    checks = {}
    ready = True

    for detector in services.detectors:
        config = getattr(detector, "config", None)
        if config is not None and not config.is_configured():
            checks[detector.model_id] = "missing_api_key"
            ready = False
            logger.info(f"Readiness check failed: {detector.model_id} has no API key")
        else:
            checks[detector.model_id] = "ok"

    if services.image_store.is_available():
        checks["image_store"] = "ok"
    else:
        checks["image_store"] = "unavailable"
        ready = False
        logger.info("Readiness check failed: image store is not writable")

    # Messaging is optional: alerts are skipped when it is not configured
    checks["messaging"] = "configured" if services.sender.is_configured() else "not_configured"

    status_code = 200 if ready else 503
    return web.json_response({"ready": ready, "checks": checks}, status=status_code)


@router.get("/metrics")
async def metrics_view(request):
    return web.json_response(metrics.snapshot())
