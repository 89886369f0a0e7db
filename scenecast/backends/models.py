"""
Local model wrappers (ultralytics).

YOLODetector finds objects and reports boxes in the frame's own pixel space.
YOLOClassifier ranks whole-frame ImageNet categories.

Both load weights lazily on first use. ultralytics downloads the weights the
first time a model name is used.
"""

import logging
from typing import List, Optional

import numpy as np

from ..models import Classification, Detection

logger = logging.getLogger(__name__)


# =============================================================================
# ULTRALYTICS AVAILABILITY
# =============================================================================

_ULTRALYTICS_AVAILABLE: Optional[bool] = None


def is_ultralytics_available() -> bool:
    """Check if ultralytics is installed."""
    global _ULTRALYTICS_AVAILABLE

    if _ULTRALYTICS_AVAILABLE is None:
        try:
            from ultralytics import YOLO  # noqa: F401
            _ULTRALYTICS_AVAILABLE = True
        except ImportError:
            _ULTRALYTICS_AVAILABLE = False

    return _ULTRALYTICS_AVAILABLE


def _load(model_path: str):
    if not is_ultralytics_available():
        raise RuntimeError("ultralytics not available. Install with: pip install scenecast[local]")

    from ultralytics import YOLO
    logger.info(f"Loading {model_path}")
    return YOLO(model_path)


# =============================================================================
# DETECTOR
# =============================================================================

class YOLODetector:
    """YOLO object detection wrapper."""

    def __init__(
        self,
        model_path: str = "yolov8n.pt",
        confidence: float = 0.25,
        device: str = "cpu",
    ):
        """
        Args:
            model_path: Path to weights or a model name known to ultralytics
            confidence: Model-side confidence floor (the composer applies its own)
            device: Device to use (cpu, cuda, mps)
        """
        self.model_path = model_path
        self.confidence = confidence
        self.device = device
        self._model = None

    @property
    def available(self) -> bool:
        return is_ultralytics_available()

    @property
    def model(self):
        """Lazy load YOLO model."""
        if self._model is None:
            self._model = _load(self.model_path)
        return self._model

    def detect(self, image: np.ndarray) -> List[Detection]:
        """Detect objects in a BGR frame.

        Returns:
            Detections with (x, y, width, height) boxes in frame pixels
        """
        results = self.model(
            image,
            conf=self.confidence,
            device=self.device,
            verbose=False,
        )

        detections = []
        for result in results:
            if result.boxes is None:
                continue

            names = result.names
            for box in result.boxes:
                x1, y1, x2, y2 = box.xyxy[0].tolist()
                cls_id = int(box.cls[0])
                detections.append(Detection(
                    label=names.get(cls_id, f"class_{cls_id}"),
                    score=float(box.conf[0]),
                    bbox=(x1, y1, x2 - x1, y2 - y1),
                ))

        return detections


# =============================================================================
# CLASSIFIER
# =============================================================================

class YOLOClassifier:
    """YOLO image classification wrapper."""

    def __init__(
        self,
        model_path: str = "yolov8n-cls.pt",
        top_k: int = 5,
        device: str = "cpu",
    ):
        self.model_path = model_path
        self.top_k = top_k
        self.device = device
        self._model = None

    @property
    def available(self) -> bool:
        return is_ultralytics_available()

    @property
    def model(self):
        """Lazy load classification model."""
        if self._model is None:
            self._model = _load(self.model_path)
        return self._model

    def classify(self, image: np.ndarray) -> List[Classification]:
        """Rank scene categories for a BGR frame, most probable first."""
        results = self.model(image, device=self.device, verbose=False)
        if not results or results[0].probs is None:
            return []

        result = results[0]
        probs = result.probs.data.tolist()
        ranked = sorted(range(len(probs)), key=lambda i: probs[i], reverse=True)[:self.top_k]
        return [
            Classification(
                label=result.names.get(i, f"class_{i}").replace("_", " "),
                probability=float(probs[i]),
            )
            for i in ranked
        ]
