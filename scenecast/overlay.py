"""
Overlay Renderer

Draws the latest detections over the displayed video: a translucent box,
corner accents and a "label NN%" tag per object, plus an optional caption with
the last description and recognized text.

Boxes arrive in the source's native pixel space and are scaled to the display
size on every frame. The canvas is BGRA so it can be blended over any frame.

Usage:
    from scenecast.overlay import OverlayRenderer

    renderer = OverlayRenderer(fps=30)
    renderer.start(source, lambda: scheduler.latest_result, show)
    ...
    renderer.stop()
"""

import asyncio
import logging
import textwrap
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np

from .composer import DEFAULT_SCORE_THRESHOLD
from .models import VisionResult
from .sources import Size, VideoSource

logger = logging.getLogger(__name__)

FONT = cv2.FONT_HERSHEY_SIMPLEX
FONT_SCALE = 0.5
FONT_THICKNESS = 1
LABEL_PADDING = 4
MAX_CORNER = 12.0

# BGRA
BOX_FILL = (0, 255, 0, 40)
BOX_EDGE = (0, 255, 0, 255)
LABEL_BG = (0, 255, 0, 220)
LABEL_FG = (0, 0, 0, 255)
CAPTION_BG = (0, 0, 0, 160)
CAPTION_FG = (255, 255, 255, 255)

Sink = Callable[[Optional[np.ndarray]], None]


@dataclass
class OverlayBox:
    """One detection, already scaled to display pixels."""
    x: float
    y: float
    width: float
    height: float
    label: str
    corner: float
    text_width: int
    text_height: int


def measure_text(text: str) -> Tuple[int, int]:
    """Pixel (width, height) of ``text`` in the overlay font, baseline included."""
    (width, height), baseline = cv2.getTextSize(text, FONT, FONT_SCALE, FONT_THICKNESS)
    return width, height + baseline


def format_label(label: str, score: float) -> str:
    return f"{label} {int(score * 100 + 0.5)}%"


def corner_length(width: float, height: float) -> float:
    return min(MAX_CORNER, 0.2 * width, 0.2 * height)


def _valid(size: Optional[Size]) -> bool:
    if not size:
        return False
    width, height = size
    return bool(width) and bool(height) and width > 0 and height > 0


def layout(
    result: Optional[VisionResult],
    native_size: Optional[Size],
    display_size: Optional[Size],
    score_threshold: float = DEFAULT_SCORE_THRESHOLD,
) -> List[OverlayBox]:
    """Scale detections into display space. Pure; no drawing.

    Returns an empty list when there is nothing to draw or either size is
    missing or zero.
    """
    if result is None or not _valid(native_size) or not _valid(display_size):
        return []

    scale_x = display_size[0] / native_size[0]
    scale_y = display_size[1] / native_size[1]

    boxes = []
    for det in result.detections:
        if det.score < score_threshold:
            continue
        x, y, w, h = det.bbox
        width, height = w * scale_x, h * scale_y
        label = format_label(det.label, det.score)
        text_width, text_height = measure_text(label)
        boxes.append(OverlayBox(
            x=x * scale_x,
            y=y * scale_y,
            width=width,
            height=height,
            label=label,
            corner=corner_length(width, height),
            text_width=text_width,
            text_height=text_height,
        ))
    return boxes


def composite(frame: np.ndarray, overlay: Optional[np.ndarray]) -> np.ndarray:
    """Alpha-blend a BGRA overlay onto a BGR frame (resized to the overlay)."""
    if overlay is None:
        return frame

    height, width = overlay.shape[:2]
    if frame.shape[:2] != (height, width):
        frame = cv2.resize(frame, (width, height))

    alpha = overlay[:, :, 3:4].astype(np.float32) / 255.0
    blended = frame.astype(np.float32) * (1.0 - alpha) + overlay[:, :, :3].astype(np.float32) * alpha
    return blended.astype(np.uint8)


class OverlayRenderer:
    """Per-frame detection overlay with a bounded refresh task."""

    def __init__(
        self,
        score_threshold: float = DEFAULT_SCORE_THRESHOLD,
        caption_max_chars: int = 100,
        fps: float = 30.0,
        show_caption: bool = True,
        max_age: Optional[float] = None,
    ):
        """
        Args:
            score_threshold: Detections below this are never drawn
            caption_max_chars: Recognized text in the caption is cut to this length
            fps: Refresh rate of run()
            max_age: Results older than this many seconds are treated as absent
        """
        self.score_threshold = score_threshold
        self.caption_max_chars = caption_max_chars
        self.fps = fps
        self.show_caption = show_caption
        self.max_age = max_age
        self._task: Optional[asyncio.Task] = None

    # =========================================================================
    # DRAWING
    # =========================================================================

    def _draw_box(self, canvas: np.ndarray, box: OverlayBox):
        x1, y1 = int(round(box.x)), int(round(box.y))
        x2, y2 = int(round(box.x + box.width)), int(round(box.y + box.height))
        c = int(round(box.corner))

        cv2.rectangle(canvas, (x1, y1), (x2, y2), BOX_FILL, cv2.FILLED)
        cv2.rectangle(canvas, (x1, y1), (x2, y2), BOX_EDGE, 1)

        for (cx, cy, dx, dy) in ((x1, y1, 1, 1), (x2, y1, -1, 1), (x1, y2, 1, -1), (x2, y2, -1, -1)):
            cv2.line(canvas, (cx, cy), (cx + dx * c, cy), BOX_EDGE, 3)
            cv2.line(canvas, (cx, cy), (cx, cy + dy * c), BOX_EDGE, 3)

        tag_h = box.text_height + LABEL_PADDING
        top = y1 - tag_h if y1 - tag_h >= 0 else y1
        cv2.rectangle(
            canvas,
            (x1, top),
            (x1 + box.text_width + 2 * LABEL_PADDING, top + tag_h),
            LABEL_BG,
            cv2.FILLED,
        )
        cv2.putText(
            canvas, box.label, (x1 + LABEL_PADDING, top + tag_h - LABEL_PADDING),
            FONT, FONT_SCALE, LABEL_FG, FONT_THICKNESS, cv2.LINE_AA,
        )

    def caption_lines(self, result: VisionResult, width: int) -> List[str]:
        """Timestamped description plus truncated recognized text, wrapped to ``width``."""
        lines = []
        if result.description:
            stamp = datetime.fromtimestamp(result.timestamp).strftime("%H:%M:%S")
            lines.append(f"[{stamp}] {result.description}")
        if result.ocr_text:
            lines.append(f"Text: {result.ocr_text[:self.caption_max_chars]}")

        char_width = max(1, measure_text("M")[0])
        columns = max(10, (width - 2 * LABEL_PADDING) // char_width)
        wrapped = []
        for line in lines:
            wrapped.extend(textwrap.wrap(line, columns))
        return wrapped

    def _draw_caption(self, canvas: np.ndarray, lines: List[str]):
        if not lines:
            return
        height, width = canvas.shape[:2]
        line_h = measure_text("Ag")[1] + LABEL_PADDING
        top = max(0, height - line_h * len(lines) - LABEL_PADDING)
        cv2.rectangle(canvas, (0, top), (width, height), CAPTION_BG, cv2.FILLED)
        for i, line in enumerate(lines):
            y = top + (i + 1) * line_h
            cv2.putText(canvas, line, (LABEL_PADDING, y), FONT, FONT_SCALE,
                        CAPTION_FG, FONT_THICKNESS, cv2.LINE_AA)

    def draw(self, boxes: List[OverlayBox], size: Size,
             caption: Optional[List[str]] = None) -> np.ndarray:
        """Rasterize boxes (and caption lines) onto a transparent BGRA canvas."""
        width, height = int(size[0]), int(size[1])
        canvas = np.zeros((height, width, 4), dtype=np.uint8)
        for box in boxes:
            self._draw_box(canvas, box)
        if caption:
            self._draw_caption(canvas, caption)
        return canvas

    def _is_stale(self, result: VisionResult) -> bool:
        return self.max_age is not None and time.time() - result.timestamp > self.max_age

    def render(self, source: VideoSource, result: Optional[VisionResult]) -> Optional[np.ndarray]:
        """One overlay frame, or None meaning "clear"."""
        if not source.is_active or result is None or self._is_stale(result):
            return None

        display_size = source.display_size
        if not _valid(display_size) or not _valid(source.native_size):
            return None

        boxes = layout(result, source.native_size, display_size, self.score_threshold)
        caption = self.caption_lines(result, int(display_size[0])) if self.show_caption else None
        return self.draw(boxes, display_size, caption)

    # =========================================================================
    # REFRESH LOOP
    # =========================================================================

    async def run(
        self,
        source: VideoSource,
        get_result: Callable[[], Optional[VisionResult]],
        sink: Sink,
        frames: Optional[int] = None,
    ):
        """Refresh at ``fps`` until cancelled (or ``frames`` refreshes)."""
        interval = 1.0 / self.fps if self.fps > 0 else 0.0
        count = 0
        while frames is None or count < frames:
            sink(self.render(source, get_result()))
            count += 1
            await asyncio.sleep(interval)

    def start(self, source: VideoSource, get_result: Callable[[], Optional[VisionResult]], sink: Sink):
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self.run(source, get_result, sink))
        logger.debug(f"Overlay started at {self.fps} fps")

    def stop(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def wait_closed(self):
        task, self._task = self._task, None
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass
