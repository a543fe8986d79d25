"""Request parsing and validation shared by the API handlers."""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, get_args

from aiohttp import BodyPartReader, hdrs, web

from config.constants import MAX_UPLOAD_BYTES
from models.records import Location, ScanType
from utils.errors import ValidationError

SCAN_TYPES = get_args(ScanType)


@dataclass
class UploadForm:
    files: Dict[str, List[bytes]] = field(default_factory=dict)
    fields: Dict[str, str] = field(default_factory=dict)

    def get(self, name: str) -> Optional[str]:
        value = self.fields.get(name)
        return value if value not in (None, "") else None


async def _read_limited(part: BodyPartReader, limit: int) -> bytes:
    chunks: List[bytes] = []
    size = 0
    while True:
        chunk = await part.read_chunk()
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise ValidationError(f"El archivo es demasiado grande (máximo {limit // (1024 * 1024)}MB)")
        chunks.append(chunk)
    return b"".join(chunks)


async def read_upload_form(
    request: web.Request, file_fields: Dict[str, int], limit: int = MAX_UPLOAD_BYTES
) -> UploadForm:
    """Read a multipart body; `file_fields` maps each accepted file field to its max count."""
    if not request.content_type.startswith("multipart/"):
        raise ValidationError("Se esperaba un formulario multipart")

    form = UploadForm()
    reader = await request.multipart()
    async for part in reader:
        if not isinstance(part, BodyPartReader) or part.name is None:
            continue
        if part.filename is None:
            form.fields[part.name] = await part.text()
            continue
        if part.name not in file_fields:
            raise ValidationError(f"Campo de archivo inesperado: {part.name}")
        if not part.headers.get(hdrs.CONTENT_TYPE, "").startswith("image/"):
            raise ValidationError("Solo se permiten archivos de imagen")
        files = form.files.setdefault(part.name, [])
        if len(files) >= file_fields[part.name]:
            raise ValidationError(f"Máximo {file_fields[part.name]} archivo(s) en {part.name}")
        files.append(await _read_limited(part, limit))
    return form


def parse_location(lat: Optional[str], lng: Optional[str]) -> Optional[Location]:
    """Both coordinates or neither; anything else is rejected."""
    if lat in (None, "") and lng in (None, ""):
        return None
    if lat in (None, "") or lng in (None, ""):
        raise ValidationError("lat y lng deben enviarse juntos")
    try:
        parsed_lat, parsed_lng = float(lat), float(lng)
    except (TypeError, ValueError):
        raise ValidationError("Coordenadas inválidas") from None
    if not (math.isfinite(parsed_lat) and math.isfinite(parsed_lng)):
        raise ValidationError("Coordenadas inválidas")
    if not -90.0 <= parsed_lat <= 90.0 or not -180.0 <= parsed_lng <= 180.0:
        raise ValidationError("Coordenadas fuera de rango")
    return Location(lat=parsed_lat, lng=parsed_lng)


def parse_scan_type(value: Optional[str]) -> str:
    if not value:
        return "other"
    if value not in SCAN_TYPES:
        raise ValidationError(f"scanType inválido: {value}")
    return value
