import json
import logging

import pydantic
from aiohttp import web

from api.dependencies import current_user, get_services
from models.records import Animal
from utils.errors import PermissionDeniedError, ValidationError

logger = logging.getLogger("herd_health.api.animals")

router = web.RouteTableDef()

ANIMAL_FIELDS = ("name", "tag", "breed", "age", "gender", "location", "notes")


async def _owned_animal(request: web.Request) -> Animal:
    animal = await get_services(request).repositories.animals.get(request.match_info["animal_id"])
    if animal.user_id != current_user(request).id:
        raise PermissionDeniedError("No autorizado para acceder a este animal")
    return animal


@router.post("/api/animals")
async def create_animal(request: web.Request) -> web.Response:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise ValidationError("Cuerpo JSON inválido") from None
    if not isinstance(body, dict):
        raise ValidationError("Cuerpo JSON inválido")

    data = {key: body[key] for key in ANIMAL_FIELDS if body.get(key) is not None}
    try:
        animal = Animal(user_id=current_user(request).id, **data)
    except pydantic.ValidationError as error:
        raise ValidationError(f"Datos de animal inválidos: {error.error_count()} error(es)") from error

    await get_services(request).repositories.animals.save(animal)
    logger.info("animal_created", extra={"animal_id": animal.id})
    return web.json_response(
        {"success": True, "animal": animal.model_dump(mode="json")}, status=201
    )


@router.get("/api/animals")
async def list_animals(request: web.Request) -> web.Response:
    animals = await get_services(request).repositories.animals.list_for_user(current_user(request).id)
    return web.json_response(
        {
            "success": True,
            "count": len(animals),
            "animals": [animal.model_dump(mode="json") for animal in animals],
        }
    )


@router.get("/api/animals/{animal_id}")
async def get_animal(request: web.Request) -> web.Response:
    animal = await _owned_animal(request)
    scans = await get_services(request).repositories.scans.get_many(animal.scans)
    return web.json_response(
        {
            "success": True,
            "animal": animal.model_dump(mode="json"),
            "scans": [scan.model_dump(mode="json") for scan in scans],
        }
    )


@router.post("/api/animals/{animal_id}/scans/{scan_id}")
async def link_scan(request: web.Request) -> web.Response:
    """Attach an existing scan to an animal and recompute its diagnosis."""
    services = get_services(request)
    user = current_user(request)
    animal = await _owned_animal(request)
    scan = await services.repositories.scans.get(request.match_info["scan_id"])
    if scan.user_id != user.id:
        raise PermissionDeniedError("No autorizado")

    if scan.animal_id != animal.id:
        scan.animal_id = animal.id
        await services.repositories.scans.save(scan)
    animal = await services.consolidation.link_and_recompute(animal.id, [scan.id])
    return web.json_response(
        {
            "success": True,
            "animal": animal.model_dump(mode="json"),
            "message": "Escaneo asociado y diagnóstico actualizado",
        }
    )


@router.post("/api/animals/{animal_id}/consolidate")
async def consolidate_animal(request: web.Request) -> web.Response:
    animal = await _owned_animal(request)
    animal = await get_services(request).consolidation.recompute(animal.id)
    return web.json_response(
        {
            "success": True,
            "animal": animal.model_dump(mode="json"),
            "message": "Diagnóstico consolidado actualizado",
        }
    )
