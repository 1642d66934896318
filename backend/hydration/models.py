"""
models.py — Data Passed Between Pipeline Stages
================================================

All models are frozen dataclasses: a stage never mutates what it received,
it builds a new value. ``to_dict()`` produces the JSON-ready shape used at
the persistence, MQTT and HTTP boundaries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class NormalizedColor:
    """8-bit RGB triple, every channel within [0, 255]."""
    r: int
    g: int
    b: int

    def to_dict(self) -> dict:
        return {"r": self.r, "g": self.g, "b": self.b}


@dataclass(frozen=True)
class LabColor:
    l: float
    a: float
    b: float

    def to_dict(self) -> dict:
        return {"l": self.l, "a": self.a, "b": self.b}


@dataclass(frozen=True)
class RawSample:
    """
    One reading as it came off the wire (or out of the synthetic source).

    ``color`` is already normalized to 8-bit; ``clear`` keeps the raw clear
    channel when the sensor reported one. ``metadata`` carries display-format
    extras such as the firmware's hydration label, pH electrode voltage and raw ADC.
    """
    acidity: float
    color: NormalizedColor
    captured_at: datetime
    clear: Optional[int] = None
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        out = {
            "ph": self.acidity,
            "color": self.color.to_dict(),
            "captured_at": self.captured_at.isoformat(),
        }
        if self.clear is not None:
            out["clear"] = self.clear
        if self.metadata:
            out["metadata"] = dict(self.metadata)
        return out


@dataclass(frozen=True)
class ReferenceCluster:
    score: int                   # 1 (healthiest) .. 10
    centroid: LabColor
    sample_count: int
    description: str
    last_updated: datetime

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "centroid": self.centroid.to_dict(),
            "sample_count": self.sample_count,
            "description": self.description,
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass(frozen=True)
class ClassificationResult:
    score: int
    confidence: float
    lab: LabColor
    distance: float

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "confidence": self.confidence,
            "lab": self.lab.to_dict(),
            "distance": self.distance,
        }


@dataclass(frozen=True)
class Alert:
    kind: str
    message: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


@dataclass(frozen=True)
class ProcessedReading:
    """Per-cycle output: windowed pH average plus the colour classification."""
    ph_average: float
    classification: ClassificationResult
    color: NormalizedColor
    captured_at: datetime

    @property
    def score(self) -> int:
        return self.classification.score

    @property
    def confidence(self) -> float:
        return self.classification.confidence

    def to_dict(self) -> dict:
        return {
            "ph_average": self.ph_average,
            "score": self.classification.score,
            "confidence": self.classification.confidence,
            "lab": self.classification.lab.to_dict(),
            "color": self.color.to_dict(),
            "captured_at": self.captured_at.isoformat(),
        }


@dataclass(frozen=True)
class ReadingResult:
    """
    Tagged success/failure returned by the one-shot reading.

    ``sample`` keeps the averaged RawSample for in-process dispatch; it is
    not part of the serialized payload.
    """
    success: bool
    data: Optional[dict] = None
    error: Optional[str] = None
    sample: Optional[RawSample] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict:
        out = {"success": self.success}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        return out
