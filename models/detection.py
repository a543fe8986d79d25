from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class Detection:
    """A single finding reported by one detector invocation."""

    cls: Optional[str]
    confidence: float
    bbox: Optional[BoundingBox] = None
    class_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"class": self.cls, "confidence": self.confidence}
        if self.bbox is not None:
            data.update(asdict(self.bbox))
        if self.class_id is not None:
            data["class_id"] = self.class_id
        return data


@dataclass(frozen=True)
class DetectionResult:
    """Normalized output of one detector call. Immutable once returned."""

    detections: Tuple[Detection, ...] = field(default_factory=tuple)
    confidence: float = 0.0
    classes: Tuple[str, ...] = field(default_factory=tuple)
    image_width: Optional[float] = None
    image_height: Optional[float] = None

    @classmethod
    def empty(cls) -> "DetectionResult":
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detections": [d.to_dict() for d in self.detections],
            "confidence": self.confidence,
            "classes": list(self.classes),
        }
