"""Shared pytest fixtures for tests.

Provides JPEG bytes, scriptable fake detectors and a fully wired set of
application services backed by in-memory stores.
"""

import asyncio

import cv2
import numpy as np
import pytest

from alerts.whatsapp import RecordingSender
from analysis.aggregator import Aggregator
from api.dependencies import AppServices
from models.detection import BoundingBox, Detection, DetectionResult
from models.records import User
from storage.images import LocalImageStore
from storage.repository import Repositories
from utils import metrics


class FakeDetector:
    """Detector double returning a canned result or raising a canned error."""

    def __init__(self, model_id, result=None, error=None, delay=0.0):
        self.model_id = model_id
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = []

    async def detect(self, image_url):
        self.calls.append(image_url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result if self.result is not None else DetectionResult.empty()


def make_result(*detections, classes=None, confidence=None, width=None, height=None):
    """Build a DetectionResult from (label, confidence[, bbox]) tuples."""
    parsed = []
    for item in detections:
        label, conf = item[0], item[1]
        bbox = BoundingBox(*item[2]) if len(item) > 2 else None
        parsed.append(Detection(cls=label, confidence=conf, bbox=bbox))
    if classes is None:
        classes = tuple(dict.fromkeys(d.cls for d in parsed if d.cls))
    if confidence is None:
        confidence = sum(d.confidence for d in parsed) / len(parsed) if parsed else 0.0
    return DetectionResult(
        detections=tuple(parsed),
        confidence=confidence,
        classes=tuple(classes),
        image_width=width,
        image_height=height,
    )


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def result_factory():
    return make_result


@pytest.fixture
def detectors():
    return {
        "disease_a": FakeDetector("cattle-diseases"),
        "disease_b": FakeDetector("cow-diseases"),
        "wound": FakeDetector("wound-detection"),
    }


@pytest.fixture
def aggregator(detectors):
    return Aggregator(detectors["disease_a"], detectors["disease_b"], detectors["wound"], timeout=1.0)


@pytest.fixture
def jpeg_bytes():
    """Return JPEG-encoded bytes for a small gray image."""
    img = np.full((64, 96, 3), 128, dtype=np.uint8)
    _, buf = cv2.imencode(".jpg", img)
    return buf.tobytes()


@pytest.fixture
def rancher():
    return User(id="user-1", name="Rancher", email="rancher@example.com", phone="+573001234567")


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def app_services(tmp_path, aggregator, sender, rancher):
    repositories = Repositories()
    repositories.users.load([rancher, User(id="user-2", name="Other", phone="+573009999999")])
    store = LocalImageStore(base_dir=str(tmp_path / "images"), public_base_url="https://cdn.test/images")
    return AppServices(
        repositories=repositories,
        image_store=store,
        aggregator=aggregator,
        sender=sender,
    )
