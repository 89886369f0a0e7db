"""
Pipeline Data Models

Data classes shared by the sampler, backends, composer, scheduler and overlay.
Bounding boxes are always stored in the source video's native pixel space.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np


BBox = Tuple[float, float, float, float]  # x, y, width, height


@dataclass(frozen=True)
class Detection:
    """Single localized object observation."""
    label: str
    score: float
    bbox: BBox

    def to_dict(self) -> Dict[str, Any]:
        x, y, w, h = self.bbox
        return {
            "label": self.label,
            "score": round(self.score, 4),
            "bbox": {"x": x, "y": y, "width": w, "height": h},
        }


@dataclass(frozen=True)
class Classification:
    """Whole-frame category estimate."""
    label: str
    probability: float

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "probability": round(self.probability, 4)}


@dataclass
class VisionResult:
    """Outcome of one successful analysis cycle."""
    detections: List[Detection] = field(default_factory=list)
    classifications: List[Classification] = field(default_factory=list)
    description: str = ""
    timestamp: float = field(default_factory=time.time)
    ocr_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "timestamp": self.timestamp,
            "detections": [d.to_dict() for d in self.detections],
            "classifications": [c.to_dict() for c in self.classifications],
            "ocr_text": self.ocr_text,
        }


@dataclass
class Frame:
    """A sampled video frame.

    ``image`` is a BGR array as decoded by OpenCV. ``width``/``height`` are the
    source's native dimensions, which is the space detections are reported in.
    ``encoded`` holds the base64 JPEG payload when the sampler encoded it.
    """
    image: np.ndarray
    width: int
    height: int
    encoded: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def data_url(self) -> Optional[str]:
        if self.encoded is None:
            return None
        return f"data:image/jpeg;base64,{self.encoded}"


class SchedulerPhase(Enum):
    """Lifecycle of the analysis loop."""
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class SchedulerState:
    """Mutable per-scheduler state. Written only by the tick handler."""
    is_analyzing: bool = False
    is_ocr_running: bool = False
    backoff_ms: int = 0
    consecutive_errors: int = 0
    last_description: str = ""
    generation: int = 0
    cycles: int = 0
    status: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_analyzing": self.is_analyzing,
            "is_ocr_running": self.is_ocr_running,
            "backoff_ms": self.backoff_ms,
            "consecutive_errors": self.consecutive_errors,
            "last_description": self.last_description,
            "generation": self.generation,
            "cycles": self.cycles,
            "status": self.status,
        }
