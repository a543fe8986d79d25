import asyncio
from datetime import datetime, timezone

import pytest

from analysis.aggregator import default_verdict
from analysis.consolidation import (ConsolidationEngine, ScanTally,
                                    classify_tally, consolidate)
from analysis.explainer import build_summary
from models.records import Animal, Scan, ScanImages
from models.verdict import Disease, Verdict
from storage.repository import AnimalRepository, ScanRepository
from utils.keyed_lock import KeyedLock

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_verdict(classification, confidence, *diseases):
    parsed = [Disease(name=name, confidence=conf, model="cattle-diseases") for name, conf in diseases]
    return Verdict(
        classification=classification,
        confidence=confidence,
        diseases=parsed,
        summary=build_summary(classification, confidence, parsed, []),
    )


class SlowAnimalRepository(AnimalRepository):
    """Yields to the event loop on every read and write."""

    async def get(self, animal_id):
        await asyncio.sleep(0.01)
        return await super().get(animal_id)

    async def save(self, animal):
        await asyncio.sleep(0.01)
        return await super().save(animal)


def test_problematic_majority_with_tied_counts_is_suspicious():
    verdicts = [
        make_verdict("healthy", 0.9),
        make_verdict("suspicious", 0.55, ("dermatitis", 0.55)),
        make_verdict("critical", 0.85, ("lumpy", 0.85), ("dermatitis", 0.3)),
    ]

    diagnosis = consolidate(verdicts, now=FIXED_NOW)

    assert diagnosis.classification == "suspicious"
    assert diagnosis.confidence == pytest.approx(0.9)
    assert [(d.name, d.confidence, d.detected_in, d.total_scans) for d in diagnosis.diseases] == [
        ("lumpy", 0.85, 1, 3),
        ("dermatitis", 0.55, 2, 3),
    ]
    assert diagnosis.last_updated == FIXED_NOW


def test_no_scans_is_healthy():
    diagnosis = consolidate([], now=FIXED_NOW)
    assert diagnosis.classification == "healthy"
    assert diagnosis.confidence == 0.0
    assert diagnosis.diseases == []


def test_consolidation_is_deterministic():
    verdicts = [make_verdict("suspicious", 0.5, ("mange", 0.5)), make_verdict("healthy", 0.2)]
    assert consolidate(verdicts, now=FIXED_NOW) == consolidate(verdicts, now=FIXED_NOW)


def test_high_confidence_healthy_history_escalates():
    # max confidence alone crosses the suspicious bar
    diagnosis = consolidate([make_verdict("healthy", 0.8)], now=FIXED_NOW)
    assert diagnosis.classification == "suspicious"

    diagnosis = consolidate([make_verdict("healthy", 0.95)], now=FIXED_NOW)
    assert diagnosis.classification == "critical"


def test_all_low_confidence_healthy_stays_healthy():
    diagnosis = consolidate([make_verdict("healthy", 0.3), make_verdict("healthy", 0.6)], now=FIXED_NOW)
    assert diagnosis.classification == "healthy"


def test_suspicious_majority_overrides_critical_base():
    tally = ScanTally(critical=1, suspicious=2, healthy=0, max_confidence=0.5)
    assert classify_tally(tally) == "suspicious"


def test_majority_of_critical_scans_is_critical():
    tally = ScanTally(critical=2, suspicious=0, healthy=1, max_confidence=0.1)
    assert classify_tally(tally) == "critical"


def test_minority_problematic_keeps_base_grade():
    tally = ScanTally(critical=0, suspicious=1, healthy=3, max_confidence=0.4)
    assert classify_tally(tally) == "suspicious"


def test_disease_confidence_bounded_by_overall():
    verdicts = [
        make_verdict("suspicious", 0.6, ("mange", 0.6)),
        make_verdict("critical", 0.8, ("mange", 0.8)),
    ]
    diagnosis = consolidate(verdicts, now=FIXED_NOW)
    assert all(d.confidence <= diagnosis.confidence for d in diagnosis.diseases)
    assert all(1 <= d.detected_in <= d.total_scans for d in diagnosis.diseases)


async def seed(animals, scans, verdicts, user_id="user-1"):
    animal = await animals.save(Animal(user_id=user_id, name="Lola"))
    scan_ids = []
    for verdict in verdicts:
        scan = Scan(
            user_id=user_id,
            images=ScanImages(thermal="https://cdn.test/t.jpg", rgb="https://cdn.test/r.jpg"),
            verdict=verdict,
            status="completed",
        )
        await scans.save(scan)
        scan_ids.append(scan.id)
    return animal, scan_ids


@pytest.mark.asyncio
async def test_link_and_recompute_updates_animal():
    animals, scans = AnimalRepository(), ScanRepository()
    engine = ConsolidationEngine(animals, scans)
    animal, scan_ids = await seed(animals, scans, [make_verdict("critical", 0.85, ("lumpy", 0.85))])

    updated = await engine.link_and_recompute(animal.id, scan_ids)

    stored = await animals.get(animal.id)
    assert stored.scans == scan_ids
    assert stored.consolidated_diagnosis.classification == "critical"
    assert stored.version == updated.version == 1


@pytest.mark.asyncio
async def test_linking_same_scan_twice_does_not_duplicate():
    animals, scans = AnimalRepository(), ScanRepository()
    engine = ConsolidationEngine(animals, scans)
    animal, scan_ids = await seed(animals, scans, [default_verdict()])

    await engine.link_and_recompute(animal.id, scan_ids)
    await engine.link_and_recompute(animal.id, scan_ids)

    stored = await animals.get(animal.id)
    assert stored.scans == scan_ids
    assert stored.consolidated_diagnosis.classification == "healthy"


@pytest.mark.asyncio
async def test_concurrent_links_keep_every_scan():
    animals, scans = SlowAnimalRepository(), ScanRepository()
    engine = ConsolidationEngine(animals, scans)
    verdicts = [make_verdict("suspicious", 0.5, ("mange", 0.5)) for _ in range(5)]
    animal, scan_ids = await seed(animals, scans, verdicts)

    await asyncio.gather(*(engine.link_and_recompute(animal.id, [scan_id]) for scan_id in scan_ids))

    stored = await animals.get(animal.id)
    assert sorted(stored.scans) == sorted(scan_ids)
    assert stored.version == len(scan_ids)
    assert stored.consolidated_diagnosis.diseases[0].detected_in == len(scan_ids)
    assert len(engine.locks) == 0


@pytest.mark.asyncio
async def test_recompute_skips_missing_scans():
    animals, scans = AnimalRepository(), ScanRepository()
    engine = ConsolidationEngine(animals, scans)
    animal = await animals.save(Animal(user_id="user-1", scans=["gone"]))

    updated = await engine.recompute(animal.id)

    assert updated.consolidated_diagnosis.classification == "healthy"
    assert updated.scans == ["gone"]


@pytest.mark.asyncio
async def test_keyed_lock_serializes_same_key_only():
    locks = KeyedLock()
    order = []

    async def worker(key, name):
        async with locks.acquire(key):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a", "first"), worker("a", "second"))
    assert order == ["first-in", "first-out", "second-in", "second-out"]

    order.clear()
    await asyncio.gather(worker("a", "x"), worker("b", "y"))
    assert order[:2] == ["x-in", "y-in"]
    assert len(locks) == 0


def test_half_problematic_does_not_trigger_majority():
    verdicts = [
        make_verdict("critical", 0.75, ("lumpy", 0.75)),
        make_verdict("suspicious", 0.5, ("mange", 0.5)),
        make_verdict("healthy", 0.3),
        make_verdict("healthy", 0.2),
    ]

    diagnosis = consolidate(verdicts, now=FIXED_NOW)

    assert diagnosis.classification == "critical"
    assert diagnosis.confidence == pytest.approx(0.75)
    assert [(d.name, d.detected_in, d.total_scans) for d in diagnosis.diseases] == [
        ("lumpy", 1, 4),
        ("mange", 1, 4),
    ]


def test_half_suspicious_keeps_base_grade():
    assert classify_tally(ScanTally(critical=0, suspicious=2, healthy=2, max_confidence=0.5)) == "suspicious"
    assert classify_tally(ScanTally(critical=2, suspicious=0, healthy=2, max_confidence=0.1)) == "critical"
    # one more problematic scan makes it a strict majority
    assert classify_tally(ScanTally(critical=1, suspicious=2, healthy=1, max_confidence=0.5)) == "suspicious"
