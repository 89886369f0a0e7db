"""
Text Recognizer

Reads visible text (signs, labels, screens) from a frame. Used by the local
backend's cycles and by the manual "scan text" action.

The engine is python-doctr's end-to-end ``ocr_predictor``, loaded lazily on the
first call. Recognition never raises: any failure is logged and yields "".

Usage:
    from scenecast.ocr import TextRecognizer

    recognizer = TextRecognizer()
    text = await recognizer.recognize(frame)
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Protocol

import cv2
import numpy as np

from .exceptions import OcrFailure
from .models import Frame

logger = logging.getLogger(__name__)


_DOCTR_AVAILABLE: Optional[bool] = None


def is_doctr_available() -> bool:
    """Check if python-doctr is installed."""
    global _DOCTR_AVAILABLE

    if _DOCTR_AVAILABLE is None:
        try:
            from doctr.models import ocr_predictor  # noqa: F401
            _DOCTR_AVAILABLE = True
        except ImportError:
            _DOCTR_AVAILABLE = False

    return _DOCTR_AVAILABLE


class OcrEngine(Protocol):
    def read_text(self, image: np.ndarray) -> str:
        ...


class DocTREngine:
    """python-doctr text detection + recognition."""

    def __init__(self, det_arch: str = "db_resnet50", reco_arch: str = "crnn_vgg16_bn"):
        self.det_arch = det_arch
        self.reco_arch = reco_arch
        self._predictor = None

    @property
    def available(self) -> bool:
        return is_doctr_available()

    @property
    def predictor(self):
        if self._predictor is None:
            if not is_doctr_available():
                raise RuntimeError("python-doctr not available. Install with: pip install scenecast[ocr]")
            from doctr.models import ocr_predictor
            logger.info(f"Loading DocTR ({self.det_arch} + {self.reco_arch})")
            self._predictor = ocr_predictor(
                det_arch=self.det_arch,
                reco_arch=self.reco_arch,
                pretrained=True,
            )
        return self._predictor

    def read_text(self, image: np.ndarray) -> str:
        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        document = self.predictor([rgb])
        return " ".join(document.render().split())


class TextRecognizer:
    """Async, failure-proof wrapper around an OCR engine."""

    def __init__(self, engine: Optional[OcrEngine] = None):
        self.engine = engine or DocTREngine()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ocr")

    async def recognize(self, frame: Frame) -> str:
        """Recognized text, whitespace-normalized. "" on any failure."""
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(self._executor, self.engine.read_text, frame.image)
        except Exception as e:
            logger.warning(str(OcrFailure(f"OCR failed: {e}")))
            return ""
        return (text or "").strip()

    def close(self):
        self._executor.shutdown(wait=False)
