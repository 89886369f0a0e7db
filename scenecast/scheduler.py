"""
Adaptive Scheduler

Drives the analysis loop: sample a frame, run the backend, optionally read
text, compose, and tell the agent when the scene changed.

- Remote: one call every ~10s, exponential backoff on HTTP 429
- Local: one call every ~2s, detector and classifier in parallel
- Ticks never overlap; a tick that finds one running is skipped, even
  across stop() and start()
- stop() cancels the pending wait and the in-flight call; results that
  resolve after stop() are discarded by a generation check

Usage:
    from scenecast.scheduler import AdaptiveScheduler

    scheduler = AdaptiveScheduler(backend)
    scheduler.start(lambda: source, on_update=print)
    ...
    scheduler.stop()
    await scheduler.wait_closed()
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from .composer import (
    DEFAULT_CLASSIFICATION_THRESHOLD,
    DEFAULT_OCR_MAX_CHARS,
    DEFAULT_SCORE_THRESHOLD,
    MIN_OCR_CHARS,
    compose,
)
from .diagnostics import metrics
from .exceptions import ConfigurationError, RateLimited, SourceUnavailable
from .filters import has_changed
from .frame_sampler import FrameSampler, has_geometry
from .models import Frame, SchedulerPhase, SchedulerState, VisionResult
from .sources import VideoSource

logger = logging.getLogger(__name__)

SourceGetter = Callable[[], Optional[VideoSource]]
UpdateCallback = Callable[[str], Union[None, Awaitable[None]]]
SleepFunc = Callable[[float], Awaitable[None]]

DEFAULT_BASE_BACKOFF_MS = 15_000
DEFAULT_MAX_BACKOFF_MS = 120_000

WAITING_FOR_SOURCE = "Waiting for video source"


class AdaptiveScheduler:
    """Periodic, rate-limit aware analysis loop for one backend."""

    def __init__(
        self,
        backend,
        sampler: Optional[FrameSampler] = None,
        recognizer=None,
        *,
        score_threshold: float = DEFAULT_SCORE_THRESHOLD,
        classification_threshold: float = DEFAULT_CLASSIFICATION_THRESHOLD,
        ocr_max_chars: int = DEFAULT_OCR_MAX_CHARS,
        ocr_every: int = 1,
        base_backoff_ms: int = DEFAULT_BASE_BACKOFF_MS,
        max_backoff_ms: int = DEFAULT_MAX_BACKOFF_MS,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Args:
            backend: Anything conforming to backends.VisionBackend
            sampler: Frame sampler (default: encoded for remote, raw for local)
            recognizer: TextRecognizer for in-cycle and manual OCR, or None
            ocr_every: Run in-cycle OCR on every Nth successful cycle
            sleep: Awaitable used between ticks (replaceable in tests)
        """
        self.backend = backend
        self.sampler = sampler or FrameSampler.for_backend(backend)
        self.recognizer = recognizer
        self.score_threshold = score_threshold
        self.classification_threshold = classification_threshold
        self.ocr_max_chars = ocr_max_chars
        self.ocr_every = max(1, ocr_every)
        self.base_backoff_ms = base_backoff_ms
        self.max_backoff_ms = max_backoff_ms
        self.interval_ms = backend.default_interval_ms

        self.state = SchedulerState()
        self._phase = SchedulerPhase.IDLE
        self._sleep = sleep
        self._raw_sampler = FrameSampler(encode=False)
        self._get_source: Optional[SourceGetter] = None
        self._on_update: Optional[UpdateCallback] = None
        self._task: Optional[asyncio.Task] = None
        self._latest_result: Optional[VisionResult] = None
        self._skipped = False

    @classmethod
    def from_config(cls, cfg, backend=None, recognizer=None, **kwargs) -> "AdaptiveScheduler":
        """Build a scheduler (and its backend, if not given) from PipelineConfig."""
        if backend is None:
            from .backends import create_backend
            backend = create_backend(cfg)

        if recognizer is None and cfg.ocr_enabled and not backend.describes_scene:
            from .ocr import TextRecognizer
            recognizer = TextRecognizer()

        scheduler = cls(
            backend,
            sampler=FrameSampler.for_backend(
                backend, max_width=cfg.frame_max_width, quality=cfg.frame_quality
            ),
            recognizer=recognizer,
            score_threshold=cfg.score_threshold,
            classification_threshold=cfg.classification_threshold,
            ocr_max_chars=cfg.composer_ocr_max_chars,
            ocr_every=cfg.ocr_every,
            base_backoff_ms=cfg.base_backoff_ms,
            max_backoff_ms=cfg.max_backoff_ms,
            **kwargs,
        )
        scheduler.interval_ms = cfg.effective_interval_ms
        return scheduler

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def phase(self) -> SchedulerPhase:
        return self._phase

    @property
    def is_active(self) -> bool:
        return self._phase in (SchedulerPhase.SCHEDULED, SchedulerPhase.RUNNING)

    @property
    def status(self) -> str:
        return self.state.status

    @property
    def latest_result(self) -> Optional[VisionResult]:
        return self._latest_result

    def next_delay_ms(self) -> int:
        """Base interval after a skipped tick, backoff while rate limited, else the interval."""
        if self._skipped:
            return self.interval_ms
        if self.state.backoff_ms > 0:
            return self.state.backoff_ms
        return self.interval_ms

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(
        self,
        get_source: SourceGetter,
        on_update: Optional[UpdateCallback] = None,
        interval_ms: Optional[int] = None,
    ):
        """Begin periodic analysis. Must be called from a running event loop.

        Runs one tick immediately. No-op while already active.
        """
        if self.is_active:
            return

        if interval_ms is not None:
            if interval_ms <= 0:
                raise ConfigurationError(f"interval_ms must be positive, got {interval_ms}")
            self.interval_ms = interval_ms

        self._get_source = get_source
        self._on_update = on_update
        self._phase = SchedulerPhase.SCHEDULED

        generation = self.state.generation
        self._task = asyncio.get_running_loop().create_task(self._run(generation))
        logger.info(
            f"Scheduler started - backend: {self.backend.name}, interval: {self.interval_ms}ms"
        )

    def stop(self):
        """Stop the loop and discard any cycle still in flight. Idempotent."""
        if self._phase == SchedulerPhase.STOPPED:
            return

        self.state.generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._phase = SchedulerPhase.STOPPED
        logger.info(f"Scheduler stopped after {self.state.cycles} cycles")

    async def wait_closed(self):
        """Wait for the loop task to finish after stop()."""
        task, self._task = self._task, None
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def close(self):
        """Stop, then release backend and OCR resources."""
        self.stop()
        await self.wait_closed()
        await self.backend.close()
        if self.recognizer is not None:
            self.recognizer.close()

    async def _run(self, generation: int):
        try:
            while generation == self.state.generation:
                self._phase = SchedulerPhase.RUNNING
                await self.tick()
                if generation != self.state.generation:
                    break

                self._phase = SchedulerPhase.SCHEDULED
                delay_ms = self.next_delay_ms()
                logger.debug(f"Next analysis in {delay_ms}ms")
                await self._sleep(delay_ms / 1000.0)
        except Exception:
            logger.exception("Analysis loop stopped unexpectedly")
            if generation == self.state.generation:
                self.state.generation += 1
                self._phase = SchedulerPhase.STOPPED

    # =========================================================================
    # CYCLE
    # =========================================================================

    def _require_source(self, source: Optional[VideoSource] = None) -> VideoSource:
        if source is None and self._get_source is not None:
            source = self._get_source()
        if source is None or not source.is_active or not has_geometry(source):
            raise SourceUnavailable(WAITING_FOR_SOURCE)
        return source

    def _escalate_backoff(self):
        self.state.consecutive_errors += 1
        self.state.backoff_ms = min(
            self.max_backoff_ms,
            self.base_backoff_ms * 2 ** (self.state.consecutive_errors - 1),
        )

    def _reset_backoff(self):
        self.state.consecutive_errors = 0
        self.state.backoff_ms = 0

    def _wants_text(self) -> bool:
        return (
            self.recognizer is not None
            and not self.backend.describes_scene
            and not self.state.is_ocr_running
            and self.state.cycles % self.ocr_every == 0
        )

    async def tick(self, source: Optional[VideoSource] = None) -> Optional[VisionResult]:
        """Run one analysis cycle on ``source`` (default: the start() source getter).

        Never raises for backend or capture failures; they end the cycle and
        set ``status``.

        Returns:
            The stored VisionResult, or None when the cycle was skipped
        """
        self._skipped = True
        if self.state.is_analyzing:
            logger.debug("Analysis already in progress, skipping tick")
            return None

        generation = self.state.generation

        try:
            source = self._require_source(source)
        except SourceUnavailable as e:
            self.state.status = str(e)
            return None

        if not self.backend.is_ready:
            self.state.status = self.backend.last_error or "Backend not ready"
            return None

        self.state.is_analyzing = True
        try:
            try:
                frame = await self.sampler.capture(source)
            except Exception as e:
                logger.error(f"Frame capture failed: {e}")
                frame = None
            if frame is None:
                self.state.status = WAITING_FOR_SOURCE
                return None

            self._skipped = False
            try:
                with metrics.track("backend.analyze"):
                    result = await self.backend.analyze(frame)
            except RateLimited:
                if generation != self.state.generation:
                    return None
                self._escalate_backoff()
                seconds = round(self.state.backoff_ms / 1000)
                self.state.status = f"Rate limited — retrying in {seconds}s"
                logger.warning(
                    f"Rate limited ({self.state.consecutive_errors} in a row), "
                    f"backing off {self.state.backoff_ms}ms"
                )
                return None
            except Exception as e:
                if generation != self.state.generation:
                    return None
                logger.error(f"Backend {self.backend.name} failed: {e}")
                self.state.status = "Analysis failed"
                return None

            if generation != self.state.generation:
                logger.debug("Discarding result from a stopped run")
                return None

            if result is None:
                self.state.status = self.backend.last_error or "Analysis failed"
                return None

            self._reset_backoff()

            if self._wants_text():
                result = await self._add_text(frame, result)
                if generation != self.state.generation:
                    return None

            self.state.cycles += 1
            self.state.status = ""
            self._latest_result = result
            await self._notify(result.description)
            return result
        finally:
            self.state.is_analyzing = False

    async def _read_text(self, frame: Frame) -> str:
        self.state.is_ocr_running = True
        try:
            with metrics.track("ocr"):
                return await self.recognizer.recognize(frame)
        finally:
            self.state.is_ocr_running = False

    async def _add_text(self, frame: Frame, result: VisionResult) -> VisionResult:
        text = await self._read_text(frame)
        if not text:
            return result

        result.ocr_text = text
        result.description = compose(
            result.detections,
            result.classifications,
            text,
            score_threshold=self.score_threshold,
            classification_threshold=self.classification_threshold,
            ocr_max_chars=self.ocr_max_chars,
        )
        return result

    async def _notify(self, description: str):
        if not has_changed(description, self.state.last_description):
            return

        self.state.last_description = description
        if self._on_update is None:
            return

        try:
            outcome = self._on_update(description)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"on_update failed: {e}")

    # =========================================================================
    # MANUAL TEXT SCAN
    # =========================================================================

    async def scan_text(self, source: Optional[VideoSource] = None) -> str:
        """Read text from the current frame now, outside the analysis cycle.

        Sends the text to the agent when at least a few characters were found.

        Returns:
            Recognized text, or "" when OCR is off, busy, or found nothing
        """
        if self.recognizer is None or self.state.is_ocr_running:
            return ""

        if source is None:
            try:
                source = self._require_source()
            except SourceUnavailable as e:
                self.state.status = str(e)
                return ""

        frame = await self._raw_sampler.capture(source)
        if frame is None:
            return ""

        text = await self._read_text(frame)
        if len(text) >= MIN_OCR_CHARS and self._on_update is not None:
            await self._notify(compose([], [], text, ocr_max_chars=self.ocr_max_chars))
        return text
