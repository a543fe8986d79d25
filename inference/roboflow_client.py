import logging
from typing import Any, Dict, List, Optional

import httpx

from config.constants import (ROBOFLOW_API_KEY, ROBOFLOW_API_URL,
                              ROBOFLOW_HTTP_TIMEOUT_SEC as DEFAULT_HTTP_TIMEOUT,
                              ROBOFLOW_MODEL2_PROJECT, ROBOFLOW_MODEL2_VERSION,
                              ROBOFLOW_PROJECT, ROBOFLOW_VERSION,
                              ROBOFLOW_WOUND_PROJECT, ROBOFLOW_WOUND_VERSION)
from models.detection import BoundingBox, Detection, DetectionResult
from utils.errors import ConfigurationError, DetectorUnavailable, ValidationError

logger = logging.getLogger("herd_health.inference.roboflow")

DISEASE_MODEL_A_ID = "cattle-diseases"
DISEASE_MODEL_B_ID = "cow-diseases"
WOUND_MODEL_ID = "wound-detection"


class DetectorConfig:
    """Configuration for one Roboflow hosted model endpoint."""

    def __init__(
        self,
        model_id: str,
        project: str,
        version: str,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
    ):
        self.model_id = model_id
        self.api_key = api_key if api_key is not None else ROBOFLOW_API_KEY
        base = (api_url or ROBOFLOW_API_URL).rstrip("/")
        # V1 hosted API: https://detect.roboflow.com/{project}/{version}
        self.model_url = f"{base}/{project}/{version}"

    def is_configured(self) -> bool:
        """Check if the endpoint has both a URL and an access key."""
        return bool(self.model_url and self.api_key)

    def get_request_params(self, image_url: str) -> Dict[str, Any]:
        """Get HTTP query parameters for a hosted inference request."""
        return {"api_key": self.api_key, "image": image_url}


def default_detector_configs(api_key: Optional[str] = None) -> Dict[str, DetectorConfig]:
    """Return the two disease detectors and the wound detector keyed by role."""
    return {
        "disease_a": DetectorConfig(DISEASE_MODEL_A_ID, ROBOFLOW_PROJECT, ROBOFLOW_VERSION, api_key),
        "disease_b": DetectorConfig(DISEASE_MODEL_B_ID, ROBOFLOW_MODEL2_PROJECT, ROBOFLOW_MODEL2_VERSION, api_key),
        "wound": DetectorConfig(WOUND_MODEL_ID, ROBOFLOW_WOUND_PROJECT, ROBOFLOW_WOUND_VERSION, api_key),
    }


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _clamp_confidence(value: float) -> float:
    return min(1.0, max(0.0, value))


class DetectionParser:
    """Parses Roboflow responses into a normalized DetectionResult.

    Two upstream shapes are understood:
    - object detection: ``predictions`` is a list of dicts with class,
      confidence and an optional x/y/width/height box;
    - classification: ``predictions`` is a mapping of class name to
      ``{confidence, class_id}``.
    """

    @staticmethod
    def parse_response(response_data: Any) -> DetectionResult:
        if not isinstance(response_data, dict):
            response_data = {}
        predictions = response_data.get("predictions")

        top_confidence: Optional[float] = None
        if isinstance(predictions, list):
            detections, confidences = DetectionParser._parse_list(predictions)
        elif isinstance(predictions, dict):
            detections, confidences = DetectionParser._parse_mapping(predictions)
            if detections:
                top_confidence = max(d.confidence for d in detections)
        else:
            detections, confidences = [], []

        if top_confidence is not None:
            confidence = top_confidence
        elif confidences:
            confidence = sum(confidences) / len(confidences)
        else:
            confidence = 0.0

        width, height = DetectionParser._extract_image_size(response_data)
        return DetectionResult(
            detections=tuple(detections),
            confidence=_clamp_confidence(confidence),
            classes=DetectionParser._extract_classes(response_data, detections),
            image_width=width,
            image_height=height,
        )

    @staticmethod
    def _parse_list(predictions: List[Any]):
        detections: List[Detection] = []
        confidences: List[float] = []
        for prediction in predictions:
            if not isinstance(prediction, dict):
                continue
            raw_confidence = _to_float(prediction.get("confidence"))
            if raw_confidence is not None:
                confidences.append(_clamp_confidence(raw_confidence))
            detections.append(
                Detection(
                    cls=DetectionParser._extract_class_name(prediction),
                    confidence=_clamp_confidence(raw_confidence or 0.0),
                    bbox=DetectionParser._extract_bbox(prediction),
                    class_id=prediction.get("class_id"),
                )
            )
        return detections, confidences

    @staticmethod
    def _parse_mapping(predictions: Dict[str, Any]):
        detections: List[Detection] = []
        confidences: List[float] = []
        for class_name, prediction in predictions.items():
            prediction = prediction if isinstance(prediction, dict) else {}
            raw_confidence = _to_float(prediction.get("confidence"))
            confidence = _clamp_confidence(raw_confidence or 0.0)
            confidences.append(confidence)
            detections.append(
                Detection(cls=class_name, confidence=confidence, class_id=prediction.get("class_id"))
            )
        return detections, confidences

    @staticmethod
    def _extract_class_name(prediction: Dict[str, Any]) -> Optional[str]:
        """Extract class name from prediction."""
        name = prediction.get("class") or prediction.get("cls") or prediction.get("label")
        return str(name) if name else None

    @staticmethod
    def _extract_bbox(prediction: Dict[str, Any]) -> Optional[BoundingBox]:
        """Extract bounding box from prediction (center x/y, width, height)."""
        values = [_to_float(prediction.get(key)) for key in ("x", "y", "width", "height")]
        if any(v is None for v in values):
            return None
        return BoundingBox(*values)

    @staticmethod
    def _extract_classes(response_data: Dict[str, Any], detections: List[Detection]):
        predicted = response_data.get("predicted_classes")
        if isinstance(predicted, list) and predicted:
            return tuple(str(c) for c in predicted)
        # unique labels in first-seen order
        return tuple(dict.fromkeys(d.cls for d in detections if d.cls))

    @staticmethod
    def _extract_image_size(response_data: Dict[str, Any]):
        image = response_data.get("image")
        if not isinstance(image, dict):
            return None, None
        return _to_float(image.get("width")), _to_float(image.get("height"))


class RoboflowClient:
    """Async client for one Roboflow hosted model.

    The HTTP client may be shared between several detectors; a client passed
    in by the caller is not closed by `close()`.
    """

    def __init__(
        self,
        config: DetectorConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        self.config = config
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def model_id(self) -> str:
        return self.config.model_id

    def _ensure_client(self) -> httpx.AsyncClient:
        """Lazily initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def detect(self, image_url: str) -> DetectionResult:
        """Run the model on the image at `image_url`.

        Raises ConfigurationError when no access key is configured and
        DetectorUnavailable on any transport, status or parse failure.
        """
        if not isinstance(image_url, str) or not image_url.strip():
            raise ValidationError("image_url must be a non-empty string")
        if not self.config.is_configured():
            raise ConfigurationError(f"ROBOFLOW_API_KEY is not configured for {self.model_id}")

        client = self._ensure_client()
        try:
            response = await client.post(
                self.config.model_url,
                params=self.config.get_request_params(image_url),
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as error:
            raise DetectorUnavailable(
                self.model_id, f"HTTP {error.response.status_code}", error
            ) from error
        except (httpx.HTTPError, ValueError) as error:
            raise DetectorUnavailable(self.model_id, str(error) or type(error).__name__, error) from error

        result = DetectionParser.parse_response(payload)
        logger.debug(
            "detector.response",
            extra={"model_id": self.model_id, "detections": len(result.detections)},
        )
        return result

    async def close(self) -> None:
        """Close HTTP client resources."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


__all__ = [
    "DetectionParser",
    "DetectorConfig",
    "RoboflowClient",
    "default_detector_configs",
    "DISEASE_MODEL_A_ID",
    "DISEASE_MODEL_B_ID",
    "WOUND_MODEL_ID",
]
