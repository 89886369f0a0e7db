"""
Frame Sampler

Pulls one frame from a video source for analysis.

Remote backends get a downscaled JPEG (base64) to keep requests small; local
models get the raw decoded frame.

Usage:
    from scenecast.frame_sampler import FrameSampler

    sampler = FrameSampler(max_width=640, quality=70)
    frame = await sampler.capture(source)
    if frame is None:
        ...  # source not decoding yet, skip this cycle
"""

import asyncio
import base64
import logging
from typing import Optional

import cv2
import numpy as np

from .models import Frame
from .sources import VideoSource

logger = logging.getLogger(__name__)


def has_geometry(source: Optional[VideoSource]) -> bool:
    """True when the source reports non-zero native dimensions."""
    if source is None:
        return False
    size = source.native_size
    if not size:
        return False
    width, height = size
    return bool(width) and bool(height) and width > 0 and height > 0


def downscale(image: np.ndarray, max_width: int) -> np.ndarray:
    """Shrink to ``max_width`` keeping the aspect ratio. Never upscales."""
    height, width = image.shape[:2]
    scale = min(1.0, max_width / float(width))
    if scale >= 1.0:
        return image
    new_size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
    return cv2.resize(image, new_size, interpolation=cv2.INTER_AREA)


def encode_jpeg_base64(image: np.ndarray, quality: int = 70) -> str:
    """JPEG-encode a BGR image and return the base64 payload."""
    ok, buffer = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return base64.b64encode(buffer.tobytes()).decode("ascii")


class FrameSampler:
    """Captures frames, optionally downsampled and encoded for network use."""

    def __init__(self, max_width: int = 640, quality: int = 70, encode: bool = True):
        self.max_width = max_width
        self.quality = quality
        self.encode = encode

    @classmethod
    def for_backend(cls, backend, max_width: int = 640, quality: int = 70) -> "FrameSampler":
        """Encoded frames for scene-describing (remote) backends, raw otherwise."""
        return cls(max_width=max_width, quality=quality,
                   encode=getattr(backend, "describes_scene", True))

    def _prepare(self, image: np.ndarray) -> str:
        return encode_jpeg_base64(downscale(image, self.max_width), self.quality)

    async def capture(self, source: Optional[VideoSource]) -> Optional[Frame]:
        """Grab the current frame.

        Returns:
            Frame, or None when the source has no usable geometry or image yet
        """
        if not has_geometry(source):
            return None

        loop = asyncio.get_running_loop()
        image = await loop.run_in_executor(None, source.read)
        if image is None or getattr(image, "size", 0) == 0:
            return None

        height, width = image.shape[:2]
        if not self.encode:
            return Frame(image=image, width=width, height=height)

        try:
            encoded = await loop.run_in_executor(None, self._prepare, image)
        except (cv2.error, ValueError) as e:
            logger.warning(f"Frame encoding failed: {e}")
            return None

        return Frame(image=image, width=width, height=height, encoded=encoded)
