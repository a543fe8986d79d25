import logging

from aiohttp import web

from api.dependencies import get_services
from config.constants import USER_ID_HEADER
from utils.errors import AuthenticationError, HerdHealthError

logger = logging.getLogger("herd_health.api.middleware")

PUBLIC_PREFIXES = ("/api/webhooks/",)


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Translate application errors into `{success: false, message}` JSON bodies."""
    try:
        return await handler(request)
    except HerdHealthError as error:
        if error.status >= 500:
            logger.error(f"request_failed: {error}", extra={"path": request.path})
        return web.json_response({"success": False, "message": error.message}, status=error.status)
    except web.HTTPNotFound:
        logger.warning(f"404: {request.method} {request.path}")
        return web.json_response(
            {
                "success": False,
                "message": "Ruta no encontrada",
                "received": f"{request.method} {request.path}",
            },
            status=404,
        )
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("unhandled_error", extra={"path": request.path})
        return web.json_response(
            {"success": False, "message": "Error interno del servidor"}, status=500
        )


@web.middleware
async def user_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Attribute `/api/` requests to a registered user.

    Token handling happens upstream; this layer only resolves the user id the
    gateway forwards in the `X-User-Id` header.
    """
    if not request.path.startswith("/api/") or request.path.startswith(PUBLIC_PREFIXES):
        return await handler(request)

    user_id = request.headers.get(USER_ID_HEADER, "").strip()
    if not user_id:
        raise AuthenticationError("No autorizado, falta el usuario")
    user = await get_services(request).repositories.users.get(user_id)
    if user is None:
        raise AuthenticationError("No autorizado, usuario no encontrado")
    request["user"] = user
    return await handler(request)
