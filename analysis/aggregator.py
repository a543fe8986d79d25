"""Multi-detector aggregation.

Runs the two disease detectors and the wound detector concurrently against
one image, tolerating individual failures, and folds their outputs into a
single classified `Verdict`.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from analysis.explainer import build_summary
from analysis.thresholds import DEFAULT_THRESHOLDS, AggregationThresholds
from config.constants import ROBOFLOW_HTTP_TIMEOUT_SEC
from models.detection import DetectionResult
from models.verdict import (Classification, Disease, ImageDimensions,
                            RawDetectorOutput, Verdict, Wound)
from utils import metrics
from utils.errors import AggregationFailure

logger = logging.getLogger("herd_health.analysis.aggregator")

DEFAULT_WOUND_CLASS = "wound"


class Detector(Protocol):
    model_id: str

    async def detect(self, image_url: str) -> DetectionResult:
        ...


def _is_healthy_label(label: str, thresholds: AggregationThresholds) -> bool:
    # exact match: detector labels are case-sensitive
    return label in thresholds.healthy_labels


def extract_wounds(
    result: DetectionResult, thresholds: AggregationThresholds = DEFAULT_THRESHOLDS
) -> List[Wound]:
    wounds: List[Wound] = []
    for detection in result.detections:
        if detection.confidence <= thresholds.wound_min:
            continue
        bbox = detection.bbox
        wounds.append(
            Wound(
                cls=detection.cls or DEFAULT_WOUND_CLASS,
                confidence=detection.confidence,
                x=bbox.x if bbox else None,
                y=bbox.y if bbox else None,
                width=bbox.width if bbox else None,
                height=bbox.height if bbox else None,
            )
        )
    wounds.sort(key=lambda w: w.confidence, reverse=True)
    return wounds


def extract_diseases(
    sources: Iterable[Tuple[str, DetectionResult]],
    thresholds: AggregationThresholds = DEFAULT_THRESHOLDS,
) -> List[Disease]:
    """Collect disease candidates from `(model_id, result)` pairs.

    Duplicate names keep the highest confidence seen; the first detector to
    report that confidence wins ties.
    """
    unique: Dict[str, Disease] = {}
    for model_id, result in sources:
        for detection in result.detections:
            name = detection.cls
            if not name or _is_healthy_label(name, thresholds):
                continue
            if detection.confidence <= thresholds.disease_min:
                continue
            current = unique.get(name)
            if current is None or current.confidence < detection.confidence:
                unique[name] = Disease(name=name, confidence=detection.confidence, model=model_id)
    return sorted(unique.values(), key=lambda d: d.confidence, reverse=True)


def merge_classes(results: Iterable[DetectionResult]) -> List[str]:
    return list(dict.fromkeys(c for result in results for c in result.classes))


def is_healthy(classes: Sequence[str], thresholds: AggregationThresholds = DEFAULT_THRESHOLDS) -> bool:
    """Explicit healthy signal with no disqualifying class."""
    has_healthy = any(_is_healthy_label(c, thresholds) for c in classes)
    has_other = any(not _is_healthy_label(c, thresholds) for c in classes)
    return has_healthy and not has_other


def classify(
    diseases: Sequence[Disease],
    wounds: Sequence[Wound],
    thresholds: AggregationThresholds = DEFAULT_THRESHOLDS,
) -> Classification:
    """Grade a scan; each rule may only raise severity."""
    classification: Classification = "healthy"
    if diseases:
        if diseases[0].confidence > thresholds.disease_critical:
            classification = "critical"
        else:
            classification = "suspicious"
    if wounds:
        if wounds[0].confidence > thresholds.wound_critical:
            classification = "critical"
        elif classification == "healthy":
            classification = "suspicious"
    return classification


def _image_dimensions(result: DetectionResult) -> Optional[ImageDimensions]:
    if result.image_width is None or result.image_height is None:
        return None
    return ImageDimensions(width=result.image_width, height=result.image_height)


def _raw(result: DetectionResult) -> RawDetectorOutput:
    return RawDetectorOutput(**result.to_dict())


def combine_results(
    disease_a: DetectionResult,
    disease_b: DetectionResult,
    wound: DetectionResult,
    disease_a_id: str = "model1",
    disease_b_id: str = "model2",
    thresholds: AggregationThresholds = DEFAULT_THRESHOLDS,
) -> Verdict:
    wounds = extract_wounds(wound, thresholds)
    diseases = extract_diseases(((disease_a_id, disease_a), (disease_b_id, disease_b)), thresholds)
    classes = merge_classes((disease_a, disease_b))
    healthy = is_healthy(classes, thresholds)
    classification = classify(diseases, wounds, thresholds)

    if healthy:
        confidence = disease_a.confidence
    else:
        top_disease = diseases[0].confidence if diseases else 0.0
        top_wound = wounds[0].confidence if wounds else 0.0
        confidence = max(top_disease, top_wound)

    return Verdict(
        classification=classification,
        confidence=confidence,
        diseases=diseases,
        wounds=wounds,
        predicted_classes=classes,
        is_healthy=healthy,
        detection_count=len(disease_a.detections) + len(disease_b.detections),
        image_dimensions=_image_dimensions(wound),
        summary=build_summary(classification, confidence, diseases, wounds, thresholds),
        model1=_raw(disease_a),
        model2=_raw(disease_b),
        wound=_raw(wound),
    )


def default_verdict() -> Verdict:
    """Healthy placeholder used when a scan could not be analyzed."""
    return Verdict(summary=build_summary("healthy", 0.0, [], []))


class Aggregator:
    """Fans one image out to three detectors and combines their outputs."""

    def __init__(
        self,
        disease_a: Detector,
        disease_b: Detector,
        wound: Detector,
        thresholds: AggregationThresholds = DEFAULT_THRESHOLDS,
        timeout: float = ROBOFLOW_HTTP_TIMEOUT_SEC,
    ):
        self.disease_a = disease_a
        self.disease_b = disease_b
        self.wound = wound
        self.thresholds = thresholds
        self.timeout = timeout

    async def analyze(self, image_url: str) -> Verdict:
        """Return the verdict for `image_url`.

        Detector failures degrade to empty results; only an unexpected fault
        while combining raises `AggregationFailure`.
        """
        disease_a, disease_b, wound = await self._run_detectors(image_url)
        try:
            verdict = combine_results(
                disease_a,
                disease_b,
                wound,
                self.disease_a.model_id,
                self.disease_b.model_id,
                self.thresholds,
            )
        except Exception as error:
            logger.exception("aggregation_failed", extra={"image_url": image_url})
            raise AggregationFailure(f"could not combine detector results: {error}") from error

        logger.info(
            "scan_analyzed",
            extra={
                "classification": verdict.classification,
                "confidence": verdict.confidence,
                "diseases": len(verdict.diseases),
                "wounds": len(verdict.wounds),
            },
        )
        return verdict

    async def _run_detectors(self, image_url: str) -> List[DetectionResult]:
        detectors = (self.disease_a, self.disease_b, self.wound)
        outcomes = await asyncio.gather(
            *(self._call_detector(detector, image_url) for detector in detectors),
            return_exceptions=True,
        )
        results: List[DetectionResult] = []
        for detector, outcome in zip(detectors, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(
                    f"detector_unavailable: {detector.model_id}: {outcome!r}",
                    extra={"model_id": detector.model_id},
                )
                metrics.incr(f"detector.failure.{detector.model_id}")
                results.append(DetectionResult.empty())
            else:
                results.append(outcome)
        return results

    async def _call_detector(self, detector: Detector, image_url: str) -> DetectionResult:
        return await asyncio.wait_for(detector.detect(image_url), timeout=self.timeout)
