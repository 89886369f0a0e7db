"""
Local Vision Backend

On-device analysis: an object detector and a scene classifier run side by side
on the same frame, then the composer turns their output into a description.

Inference is blocking, so each model call runs in a worker thread and the
event loop awaits both. A failing model does not take the other one down.

Usage:
    from scenecast.backends.local import LocalVisionBackend
    from scenecast.backends.models import YOLODetector, YOLOClassifier

    backend = LocalVisionBackend(YOLODetector(), YOLOClassifier())
    result = await backend.analyze(frame)
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Tuple

from ..composer import (
    DEFAULT_CLASSIFICATION_THRESHOLD,
    DEFAULT_SCORE_THRESHOLD,
    compose,
)
from ..exceptions import ModelInferenceError
from ..models import Classification, Frame, VisionResult
from .base import ObjectDetector, SceneClassifier

logger = logging.getLogger(__name__)


class LocalVisionBackend:
    """Parallel detector + classifier inference, no network."""

    name = "local"
    describes_scene = False
    default_interval_ms = 2_000

    def __init__(
        self,
        detector: ObjectDetector,
        classifier: SceneClassifier,
        score_threshold: float = DEFAULT_SCORE_THRESHOLD,
        classification_threshold: float = DEFAULT_CLASSIFICATION_THRESHOLD,
        max_workers: int = 2,
    ):
        self.detector = detector
        self.classifier = classifier
        self.score_threshold = score_threshold
        self.classification_threshold = classification_threshold
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="inference")
        self._last_error = ""

    @classmethod
    def from_config(cls, cfg) -> "LocalVisionBackend":
        from .models import YOLOClassifier, YOLODetector

        return cls(
            detector=YOLODetector(cfg.detector_model, device=cfg.device),
            classifier=YOLOClassifier(cfg.classifier_model, device=cfg.device),
            score_threshold=cfg.score_threshold,
            classification_threshold=cfg.classification_threshold,
        )

    @property
    def is_ready(self) -> bool:
        return (getattr(self.detector, "available", True)
                and getattr(self.classifier, "available", True))

    @property
    def last_error(self) -> str:
        if not self.is_ready:
            return "Local models unavailable"
        return self._last_error

    def _settle(self, model: str, outcome: Any) -> Tuple[list, bool]:
        """Unpack one gather() outcome. Returns (items, ok)."""
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            error = ModelInferenceError(model, outcome)
            logger.warning(str(error))
            return [], False
        return list(outcome or []), True

    async def analyze(self, frame: Frame) -> Optional[VisionResult]:
        """Run both models on one frame.

        Returns:
            VisionResult, or None if both models failed
        """
        loop = asyncio.get_running_loop()
        detect_future = loop.run_in_executor(self._executor, self.detector.detect, frame.image)
        classify_future = loop.run_in_executor(self._executor, self.classifier.classify, frame.image)

        joined = asyncio.gather(detect_future, classify_future, return_exceptions=True)
        try:
            detect_out, classify_out = await asyncio.shield(joined)
        except asyncio.CancelledError:
            # Model threads cannot be interrupted; the call ends when they do.
            await asyncio.wait({joined})
            raise

        detections, detect_ok = self._settle("detector", detect_out)
        classifications, classify_ok = self._settle("classifier", classify_out)

        if not detect_ok and not classify_ok:
            self._last_error = "Local inference failed"
            return None

        classifications: List[Classification] = sorted(
            classifications, key=lambda c: c.probability, reverse=True
        )

        description = compose(
            detections,
            classifications,
            score_threshold=self.score_threshold,
            classification_threshold=self.classification_threshold,
        )

        self._last_error = ""
        return VisionResult(
            detections=detections,
            classifications=classifications,
            description=description,
        )

    async def close(self) -> None:
        self._executor.shutdown(wait=False)
