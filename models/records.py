import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from config.constants import DEFAULT_SCAN_SOURCE, DEFAULT_SCAN_TYPE
from models.verdict import Classification, Verdict

ScanType = Literal["lateral", "frontal", "rear", "head_close", "legs", "other"]
ScanStatus = Literal["pending", "completed"]
AlertSeverity = Literal["low", "medium", "high"]
Gender = Literal["male", "female", "unknown"]


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class Location(BaseModel):
    lat: float
    lng: float


class ScanImages(BaseModel):
    thermal: str
    rgb: str


class ScanMetadata(BaseModel):
    source: str = DEFAULT_SCAN_SOURCE
    location: Optional[Location] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    batch_index: Optional[int] = None
    sender: Optional[str] = None


class AlertRecord(BaseModel):
    sent: bool = False
    severity: Optional[AlertSeverity] = None


class Scan(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    animal_id: Optional[str] = None
    scan_type: ScanType = DEFAULT_SCAN_TYPE
    images: ScanImages
    metadata: ScanMetadata = Field(default_factory=ScanMetadata)
    verdict: Verdict
    status: ScanStatus = "pending"
    alert: AlertRecord = Field(default_factory=AlertRecord)
    created_at: datetime = Field(default_factory=_utcnow)


class ConsolidatedDisease(BaseModel):
    name: str
    confidence: float = Field(ge=0.0, le=1.0)
    detected_in: int
    total_scans: int


class ConsolidatedDiagnosis(BaseModel):
    classification: Classification = "healthy"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    diseases: List[ConsolidatedDisease] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_utcnow)


class Animal(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    name: Optional[str] = None
    tag: Optional[str] = None
    breed: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0)
    gender: Gender = "unknown"
    location: Optional[Location] = None
    notes: Optional[str] = None
    scans: List[str] = Field(default_factory=list)
    consolidated_diagnosis: ConsolidatedDiagnosis = Field(default_factory=ConsolidatedDiagnosis)
    version: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
