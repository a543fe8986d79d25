"""Longitudinal diagnosis of one animal from all of its linked scans."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from analysis.thresholds import (DEFAULT_CONSOLIDATION_THRESHOLDS,
                                 ConsolidationThresholds)
from models.records import (Animal, ConsolidatedDiagnosis, ConsolidatedDisease,
                            Scan)
from models.verdict import Classification, Verdict
from storage.repository import AnimalRepository, ScanRepository
from utils.keyed_lock import KeyedLock

logger = logging.getLogger("herd_health.analysis.consolidation")


@dataclass
class ScanTally:
    critical: int = 0
    suspicious: int = 0
    healthy: int = 0
    max_confidence: float = 0.0

    @property
    def total(self) -> int:
        return self.critical + self.suspicious + self.healthy

    @property
    def problematic(self) -> int:
        return self.critical + self.suspicious


@dataclass
class _DiseaseGroup:
    name: str
    confidences: List[float]
    detected_in: int = 0


def classify_tally(
    tally: ScanTally, thresholds: ConsolidationThresholds = DEFAULT_CONSOLIDATION_THRESHOLDS
) -> Classification:
    if tally.critical > 0 or tally.max_confidence > thresholds.critical_confidence:
        classification: Classification = "critical"
    elif tally.suspicious > 0 or tally.max_confidence > thresholds.suspicious_confidence:
        classification = "suspicious"
    else:
        classification = "healthy"

    # a strict majority of problematic scans decides between critical and suspicious
    if tally.problematic > tally.total / 2:
        classification = "critical" if tally.critical > tally.suspicious else "suspicious"
    return classification


def consolidate(
    verdicts: Sequence[Verdict],
    now: Optional[datetime] = None,
    thresholds: ConsolidationThresholds = DEFAULT_CONSOLIDATION_THRESHOLDS,
) -> ConsolidatedDiagnosis:
    """Fold the verdicts of every scan of one animal into a single diagnosis."""
    now = now or datetime.now(timezone.utc)
    if not verdicts:
        return ConsolidatedDiagnosis(classification="healthy", confidence=0.0, diseases=[], last_updated=now)

    tally = ScanTally()
    groups: Dict[str, _DiseaseGroup] = {}
    for verdict in verdicts:
        if verdict.classification == "critical":
            tally.critical += 1
        elif verdict.classification == "suspicious":
            tally.suspicious += 1
        else:
            tally.healthy += 1
        tally.max_confidence = max(tally.max_confidence, verdict.confidence)

        for disease in verdict.diseases:
            group = groups.setdefault(disease.name, _DiseaseGroup(disease.name, []))
            group.confidences.append(disease.confidence)
            group.detected_in += 1

    diseases = sorted(
        (
            ConsolidatedDisease(
                name=group.name,
                confidence=max(group.confidences),
                detected_in=group.detected_in,
                total_scans=tally.total,
            )
            for group in groups.values()
        ),
        key=lambda d: d.confidence,
        reverse=True,
    )
    return ConsolidatedDiagnosis(
        classification=classify_tally(tally, thresholds),
        confidence=tally.max_confidence,
        diseases=diseases,
        last_updated=now,
    )


def apply_diagnosis(animal: Animal, diagnosis: ConsolidatedDiagnosis) -> None:
    """Overwrite the animal's diagnosis fields in place."""
    target = animal.consolidated_diagnosis
    for name in ConsolidatedDiagnosis.model_fields:
        setattr(target, name, getattr(diagnosis, name))


class ConsolidationEngine:
    """Recomputes consolidated diagnoses, one recompute per animal at a time.

    The animal and its scans are re-read inside the per-animal critical
    section so a concurrent link never gets lost.
    """

    def __init__(
        self,
        animals: AnimalRepository,
        scans: ScanRepository,
        locks: Optional[KeyedLock] = None,
        thresholds: ConsolidationThresholds = DEFAULT_CONSOLIDATION_THRESHOLDS,
    ):
        self.animals = animals
        self.scans = scans
        self.locks = locks or KeyedLock()
        self.thresholds = thresholds

    async def recompute(self, animal_id: str) -> Animal:
        return await self.link_and_recompute(animal_id, ())

    async def link_and_recompute(self, animal_id: str, scan_ids: Iterable[str]) -> Animal:
        """Append any missing `scan_ids` to the animal and recompute its diagnosis."""
        async with self.locks.acquire(animal_id):
            animal = await self.animals.get(animal_id)
            for scan_id in scan_ids:
                if scan_id not in animal.scans:
                    animal.scans.append(scan_id)

            linked: List[Scan] = await self.scans.get_many(animal.scans)
            diagnosis = consolidate([scan.verdict for scan in linked], thresholds=self.thresholds)
            apply_diagnosis(animal, diagnosis)
            animal.version += 1
            await self.animals.save(animal)

        logger.info(
            "diagnosis_consolidated",
            extra={
                "animal_id": animal_id,
                "scans": len(linked),
                "classification": diagnosis.classification,
            },
        )
        return animal
