"""Per-image scan pipeline: store, analyze, persist, link, alert.

Analysis problems never block the scan: once the images are stored a scan
record is always created, with a default healthy verdict if analysis failed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from alerts.alert_service import AlertService
from analysis.aggregator import Aggregator, default_verdict
from analysis.consolidation import ConsolidationEngine
from config.constants import (BATCH_MAX_IMAGES, DEFAULT_SCAN_SOURCE,
                              DEFAULT_SCAN_TYPE)
from models.records import (Animal, Location, Scan, ScanImages, ScanMetadata,
                            User)
from models.verdict import Verdict
from preprocessing.image_decoder import prepare_upload
from storage.images import ImageStore
from storage.repository import Repositories
from utils import metrics
from utils.errors import NotFoundError, ValidationError

logger = logging.getLogger("herd_health.services.scan")

RGB_FOLDER = "scans/rgb"
THERMAL_FOLDER = "scans/thermal"

ImagePair = Tuple[bytes, Optional[bytes]]


@dataclass
class ScanRequest:
    user: User
    animal_id: Optional[str] = None
    scan_type: str = DEFAULT_SCAN_TYPE
    source: str = DEFAULT_SCAN_SOURCE
    location: Optional[Location] = None
    sender: Optional[str] = None
    send_alerts: bool = True


@dataclass
class BatchResult:
    total: int
    scans: List[Scan] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)


class ScanService:
    def __init__(
        self,
        repositories: Repositories,
        image_store: ImageStore,
        aggregator: Aggregator,
        consolidation: ConsolidationEngine,
        alerts: AlertService,
    ):
        self.repositories = repositories
        self.image_store = image_store
        self.aggregator = aggregator
        self.consolidation = consolidation
        self.alerts = alerts

    async def analyze(self, image_url: str) -> Verdict:
        """Aggregate detector results, degrading to a default verdict on failure."""
        start = metrics.time_ms()
        try:
            return await self.aggregator.analyze(image_url)
        except Exception as error:
            logger.error(f"analysis_failed: {error}", extra={"image_url": image_url})
            metrics.incr("analysis.failed")
            return default_verdict()
        finally:
            metrics.record_timing("analysis", metrics.time_ms() - start)

    async def create_scan(self, request: ScanRequest, rgb: bytes, thermal: Optional[bytes] = None) -> Scan:
        animal = await self._owned_animal(request)
        scan = await self._process_image(request, animal, rgb, thermal)

        if animal is not None:
            await self._link(animal.id, [scan.id])

        if not request.send_alerts:
            return scan
        scan.alert = await self.alerts.notify_scan(request.user.phone, scan.verdict)
        if scan.alert.sent:
            await self.repositories.scans.save(scan)
        return scan

    async def create_batch(self, request: ScanRequest, images: Sequence[ImagePair]) -> BatchResult:
        """Run every image through its own pipeline; one failure does not stop the others."""
        if not images:
            raise ValidationError("Se requiere al menos una imagen RGB.")
        if len(images) > BATCH_MAX_IMAGES:
            raise ValidationError(f"Máximo {BATCH_MAX_IMAGES} imágenes por lote.")

        animal = await self._owned_animal(request)
        outcomes = await asyncio.gather(
            *(
                self._process_image(request, animal, rgb, thermal, batch_index=index)
                for index, (rgb, thermal) in enumerate(images)
            ),
            return_exceptions=True,
        )

        result = BatchResult(total=len(images))
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"batch_item_failed: {outcome}", extra={"batch_index": index})
                result.errors.append({"index": index, "error": str(outcome)})
            else:
                result.scans.append(outcome)

        if animal is not None and result.scans:
            await self._link(animal.id, [scan.id for scan in result.scans])

        await asyncio.gather(*(self._alert_batch_item(request.user, scan) for scan in result.scans))
        logger.info(
            "batch_processed",
            extra={"total": result.total, "created": len(result.scans), "errors": len(result.errors)},
        )
        return result

    async def _alert_batch_item(self, user: User, scan: Scan) -> None:
        scan.alert = await self.alerts.notify_batch_item(user.phone, scan.metadata.batch_index or 0, scan.verdict)
        if scan.alert.sent:
            await self.repositories.scans.save(scan)

    async def _process_image(
        self,
        request: ScanRequest,
        animal: Optional[Animal],
        rgb: bytes,
        thermal: Optional[bytes],
        batch_index: Optional[int] = None,
    ) -> Scan:
        rgb_jpeg = prepare_upload(rgb)
        # without a thermal capture the RGB image stands in for it
        thermal_jpeg = prepare_upload(thermal) if thermal else rgb_jpeg
        rgb_url, thermal_url = await asyncio.gather(
            self.image_store.upload(rgb_jpeg, RGB_FOLDER),
            self.image_store.upload(thermal_jpeg, THERMAL_FOLDER),
        )

        verdict = await self.analyze(rgb_url)
        scan = Scan(
            user_id=request.user.id,
            animal_id=animal.id if animal else None,
            scan_type=request.scan_type,
            images=ScanImages(thermal=thermal_url, rgb=rgb_url),
            metadata=ScanMetadata(
                source=request.source,
                location=request.location,
                batch_index=batch_index,
                sender=request.sender,
            ),
            verdict=verdict,
            status="completed",
        )
        await self.repositories.scans.save(scan)
        metrics.incr("scans.created")
        logger.info(
            "scan_created",
            extra={"scan_id": scan.id, "classification": verdict.classification},
        )
        return scan

    async def _owned_animal(self, request: ScanRequest) -> Optional[Animal]:
        """Resolve the target animal; unknown or foreign ids are ignored."""
        if not request.animal_id:
            return None
        try:
            animal = await self.repositories.animals.get(request.animal_id)
        except NotFoundError:
            logger.warning("scan_animal_not_found", extra={"animal_id": request.animal_id})
            return None
        if animal.user_id != request.user.id:
            logger.warning("scan_animal_not_owned", extra={"animal_id": request.animal_id})
            return None
        return animal

    async def _link(self, animal_id: str, scan_ids: List[str]) -> None:
        try:
            await self.consolidation.link_and_recompute(animal_id, scan_ids)
        except Exception as error:
            # the scans exist already; a stale diagnosis can be recomputed later
            logger.error(f"animal_update_failed: {error}", extra={"animal_id": animal_id})
