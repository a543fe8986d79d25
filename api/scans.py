import logging

from aiohttp import web

from api.dependencies import current_user, get_services
from api.validation import parse_location, parse_scan_type, read_upload_form
from config.constants import BATCH_MAX_IMAGES, DEFAULT_SCAN_SOURCE
from services.scan_service import ScanRequest
from utils.errors import PermissionDeniedError, ValidationError

logger = logging.getLogger("herd_health.api.scans")

router = web.RouteTableDef()


def _scan_request(request: web.Request, form) -> ScanRequest:
    return ScanRequest(
        user=current_user(request),
        animal_id=form.get("animalId"),
        scan_type=parse_scan_type(form.get("scanType")),
        source=form.get("source") or DEFAULT_SCAN_SOURCE,
        location=parse_location(form.get("lat"), form.get("lng")),
    )


@router.post("/api/scans")
async def create_scan(request: web.Request) -> web.Response:
    """Create a scan from one RGB image and an optional thermal image."""
    form = await read_upload_form(request, {"rgb": 1, "thermal": 1})
    if not form.files.get("rgb"):
        raise ValidationError("Se requiere al menos la imagen RGB")
    scan_request = _scan_request(request, form)

    thermal = form.files.get("thermal")
    scan = await get_services(request).scans.create_scan(
        scan_request, form.files["rgb"][0], thermal[0] if thermal else None
    )
    return web.json_response(
        {"success": True, "scan": scan.model_dump(mode="json")}, status=201
    )


@router.post("/api/scans/batch")
async def create_batch(request: web.Request) -> web.Response:
    """Process several images in parallel; thermal images pair with RGB by index."""
    form = await read_upload_form(
        request, {"rgb": BATCH_MAX_IMAGES, "thermal": BATCH_MAX_IMAGES}
    )
    rgb_files = form.files.get("rgb") or []
    if not rgb_files:
        raise ValidationError(
            'Se requiere al menos una imagen RGB. Envía varias con el campo "rgb".'
        )
    thermal_files = form.files.get("thermal") or []
    pairs = [
        (rgb, thermal_files[i] if i < len(thermal_files) else None)
        for i, rgb in enumerate(rgb_files)
    ]

    result = await get_services(request).scans.create_batch(_scan_request(request, form), pairs)
    body = {
        "success": True,
        "count": len(result.scans),
        "total": result.total,
        "scans": [scan.model_dump(mode="json") for scan in result.scans],
    }
    if result.errors:
        body["errors"] = result.errors
    return web.json_response(body, status=201)


@router.get("/api/scans")
async def list_scans(request: web.Request) -> web.Response:
    user = current_user(request)
    animal_id = request.query.get("animalId") or None
    scans = await get_services(request).repositories.scans.list_for_user(user.id, animal_id)
    return web.json_response(
        {
            "success": True,
            "count": len(scans),
            "scans": [scan.model_dump(mode="json") for scan in scans],
        }
    )


@router.get("/api/scans/{scan_id}")
async def get_scan(request: web.Request) -> web.Response:
    scan = await get_services(request).repositories.scans.get(request.match_info["scan_id"])
    if scan.user_id != current_user(request).id:
        raise PermissionDeniedError("No autorizado para acceder a este escaneo")
    return web.json_response({"success": True, "scan": scan.model_dump(mode="json")})
