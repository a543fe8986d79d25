import asyncio
import logging

from aiohttp import web

from api.dependencies import get_services
from services.inbound_service import InboundMessage

logger = logging.getLogger("herd_health.api.webhooks")

router = web.RouteTableDef()

BACKGROUND_TASKS_KEY = web.AppKey("background_tasks", set)


@router.post("/api/webhooks/whatsapp")
async def whatsapp_webhook(request: web.Request) -> web.Response:
    """Twilio inbound message hook.

    Answers 200 right away so Twilio does not retry; images are processed in
    the background and the user gets a summary message when done.
    """
    form = await request.post()
    message = InboundMessage.from_form(form)
    logger.info(
        "whatsapp_message_received",
        extra={"from": message.sender, "media": message.media_count},
    )

    handler = get_services(request).inbound
    tasks = request.app[BACKGROUND_TASKS_KEY]
    task = asyncio.create_task(handler.handle(message))
    tasks.add(task)
    task.add_done_callback(tasks.discard)
    return web.Response(status=200, text="")


async def drain_background_tasks(app: web.Application) -> None:
    tasks = list(app[BACKGROUND_TASKS_KEY])
    if tasks:
        logger.info(f"Waiting for {len(tasks)} webhook task(s) to finish")
        await asyncio.gather(*tasks, return_exceptions=True)
