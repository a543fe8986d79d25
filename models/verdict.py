from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Classification = Literal["healthy", "suspicious", "critical"]
Severity = Literal["critical", "suspicious", "low", "healthy"]
FindingType = Literal["wound", "disease", "healthy"]


class Disease(BaseModel):
    name: str
    confidence: float = Field(ge=0.0, le=1.0)
    model: str


class Wound(BaseModel):
    cls: str
    confidence: float = Field(ge=0.0, le=1.0)
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None


class ImageDimensions(BaseModel):
    width: float
    height: float


class Indicator(BaseModel):
    type: FindingType
    id: str
    label: str
    value: str
    severity: Severity
    raw_confidence: float


class DiagnosisEntry(BaseModel):
    type: FindingType
    id: str
    label: str
    confidence_percent: int
    severity: Severity
    symptoms: str
    recommendation: str


class TopWound(BaseModel):
    cls: str
    confidence: float


class TopDisease(BaseModel):
    name: str
    confidence: float


class Summary(BaseModel):
    status: Classification
    status_label: str
    message: str
    has_wounds: bool
    wounds_count: int
    has_diseases: bool
    diseases_count: int
    top_wound: Optional[TopWound] = None
    top_diseases: List[TopDisease] = Field(default_factory=list)
    indicators: List[Indicator] = Field(default_factory=list)
    diagnoses: List[DiagnosisEntry] = Field(default_factory=list)
    confidence_percent: str


class RawDetectorOutput(BaseModel):
    """Per-detector output as persisted alongside the verdict."""

    detections: List[Dict[str, Any]] = Field(default_factory=list)
    confidence: float = 0.0
    classes: List[str] = Field(default_factory=list)


class Verdict(BaseModel):
    classification: Classification = "healthy"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    diseases: List[Disease] = Field(default_factory=list)
    wounds: List[Wound] = Field(default_factory=list)
    predicted_classes: List[str] = Field(default_factory=list)
    is_healthy: bool = False
    detection_count: int = 0
    image_dimensions: Optional[ImageDimensions] = None
    summary: Summary
    model1: RawDetectorOutput = Field(default_factory=RawDetectorOutput)
    model2: RawDetectorOutput = Field(default_factory=RawDetectorOutput)
    wound: RawDetectorOutput = Field(default_factory=RawDetectorOutput)
