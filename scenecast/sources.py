"""
Video Sources

Thin adapters over frame producers. The pipeline only needs geometry and the
latest decoded frame; acquisition itself belongs to OpenCV.

Usage:
    from scenecast.sources import OpenCVSource

    source = OpenCVSource(0)          # webcam
    source.start()
    frame = source.read()             # latest BGR frame or None
    source.stop()
"""

import logging
import time
from threading import Event, Lock, Thread
from typing import Optional, Protocol, Tuple, Union, runtime_checkable

import cv2
import numpy as np

logger = logging.getLogger(__name__)

Size = Tuple[int, int]  # width, height


@runtime_checkable
class VideoSource(Protocol):
    """What the sampler and overlay need from a video element."""

    @property
    def native_size(self) -> Optional[Size]:
        """Decoded resolution, or None/zeros while not decoding."""
        ...

    @property
    def display_size(self) -> Optional[Size]:
        """Size the video is shown at."""
        ...

    @property
    def is_active(self) -> bool:
        ...

    def read(self) -> Optional[np.ndarray]:
        """Latest decoded BGR frame (may block briefly)."""
        ...


class StaticSource:
    """Serves one fixed image. Used for stills and in tests."""

    def __init__(self, image: np.ndarray, display_size: Optional[Size] = None):
        self.image = image
        self._display_size = display_size
        self.active = True

    @classmethod
    def from_file(cls, path: str, display_size: Optional[Size] = None) -> "StaticSource":
        image = cv2.imread(str(path))
        if image is None:
            raise FileNotFoundError(f"Cannot read image: {path}")
        return cls(image, display_size)

    @property
    def native_size(self) -> Optional[Size]:
        if self.image is None:
            return None
        h, w = self.image.shape[:2]
        return (w, h)

    @property
    def display_size(self) -> Optional[Size]:
        return self._display_size or self.native_size

    @property
    def is_active(self) -> bool:
        return self.active

    def read(self) -> Optional[np.ndarray]:
        return self.image


class OpenCVSource:
    """Camera, file or stream URL read through cv2.VideoCapture.

    A background thread keeps only the newest frame so analysis never works on
    a stale buffered one.
    """

    def __init__(
        self,
        uri: Union[int, str] = 0,
        display_size: Optional[Size] = None,
        reconnect_delay: float = 2.0,
    ):
        if isinstance(uri, str) and uri.isdigit():
            uri = int(uri)
        self.uri = uri
        self._display_size = display_size
        self.reconnect_delay = reconnect_delay

        self._capture = None
        self._latest: Optional[np.ndarray] = None
        self._size: Size = (0, 0)
        self._lock = Lock()
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    def start(self):
        """Open the device and start grabbing frames."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = Thread(target=self._grab_loop, name="scenecast-capture", daemon=True)
        self._thread.start()

    def stop(self):
        """Stop grabbing and release the device."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        with self._lock:
            self._latest = None
            self._size = (0, 0)

    def _open(self) -> bool:
        self._capture = cv2.VideoCapture(self.uri)
        if not self._capture.isOpened():
            logger.warning(f"Cannot open video source {self.uri!r}")
            self._capture.release()
            self._capture = None
            return False
        self._capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        logger.info(f"Opened video source {self.uri!r}")
        return True

    def _grab_loop(self):
        try:
            while not self._stop_event.is_set():
                if self._capture is None and not self._open():
                    self._stop_event.wait(self.reconnect_delay)
                    continue

                ok, frame = self._capture.read()
                if not ok or frame is None:
                    logger.debug("Frame read failed, reopening source")
                    self._capture.release()
                    self._capture = None
                    with self._lock:
                        self._latest = None
                        self._size = (0, 0)
                    continue

                with self._lock:
                    self._latest = frame
                    self._size = (frame.shape[1], frame.shape[0])
        finally:
            if self._capture is not None:
                self._capture.release()
                self._capture = None

    @property
    def native_size(self) -> Optional[Size]:
        with self._lock:
            return self._size

    @property
    def display_size(self) -> Optional[Size]:
        return self._display_size or self.native_size

    @property
    def is_active(self) -> bool:
        return self._thread is not None and not self._stop_event.is_set()

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            return None if self._latest is None else self._latest.copy()

    def wait_ready(self, timeout: float = 5.0) -> bool:
        """Block until the first frame has been decoded."""
        deadline = time.time() + timeout
        while time.time() < deadline:
            w, h = self.native_size or (0, 0)
            if w and h:
                return True
            time.sleep(0.05)
        return False
