"""
Detection backend capability.

Any object with this shape can drive the scheduler. There is no shared base
class; the remote and local variants conform structurally.
"""

from typing import List, Optional, Protocol, runtime_checkable

import numpy as np

from ..models import Classification, Detection, Frame, VisionResult


@runtime_checkable
class VisionBackend(Protocol):
    name: str
    describes_scene: bool     # True: returns free text; False: needs the composer
    default_interval_ms: int

    @property
    def is_ready(self) -> bool:
        ...

    @property
    def last_error(self) -> str:
        """Short human-readable reason for the last failed or not-ready call."""
        ...

    async def analyze(self, frame: Frame) -> Optional[VisionResult]:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class ObjectDetector(Protocol):
    def detect(self, image: np.ndarray) -> List[Detection]:
        ...


@runtime_checkable
class SceneClassifier(Protocol):
    def classify(self, image: np.ndarray) -> List[Classification]:
        ...
