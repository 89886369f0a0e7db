"""
Pytest configuration for SceneCast tests.

Keeps tests away from the real .env file and provides fake sources, backends
and OCR engines so nothing touches the network or downloads model weights.
"""

import asyncio

import numpy as np
import pytest
from unittest.mock import patch

from scenecast.models import VisionResult
from scenecast.sources import StaticSource


@pytest.fixture(autouse=True)
def mock_config_save():
    """Prevent tests from modifying .env file."""
    with patch('scenecast.config.config.save'):
        yield


@pytest.fixture(autouse=True)
def reset_metrics():
    from scenecast.diagnostics import metrics
    metrics.reset()
    yield
    metrics.reset()


class FakeBackend:
    """Scripted VisionBackend.

    Each call to analyze() consumes one outcome: a description string, a
    VisionResult, None (failed call) or an exception instance to raise.
    """

    name = "fake"

    def __init__(self, outcomes=None, ready=True, describes_scene=True,
                 default_interval_ms=10_000, gate=None, uninterruptible=False):
        self.outcomes = list(outcomes or [])
        self.ready = ready
        self.describes_scene = describes_scene
        self.default_interval_ms = default_interval_ms
        self.gate = gate
        self.uninterruptible = uninterruptible
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False
        self._last_error = ""

    @property
    def is_ready(self):
        return self.ready

    @property
    def last_error(self):
        if not self.ready:
            return "Missing SC_VISION_API_KEY"
        return self._last_error

    async def analyze(self, frame):
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                while not self.gate.is_set():
                    try:
                        await self.gate.wait()
                    except asyncio.CancelledError:
                        if not self.uninterruptible:
                            raise
            else:
                await asyncio.sleep(0)

            outcome = self.outcomes.pop(0) if self.outcomes else "A quiet office."
            if isinstance(outcome, BaseException):
                raise outcome
            if outcome is None:
                self._last_error = "API error: 500"
                return None
            self._last_error = ""
            if isinstance(outcome, VisionResult):
                return outcome
            return VisionResult(description=outcome)
        finally:
            self.in_flight -= 1

    async def close(self):
        self.closed = True


class FakeRecognizer:
    """TextRecognizer stand-in returning fixed text."""

    def __init__(self, text=""):
        self.text = text
        self.calls = 0
        self.closed = False

    async def recognize(self, frame):
        self.calls += 1
        return self.text

    def close(self):
        self.closed = True


@pytest.fixture
def make_backend():
    return FakeBackend


@pytest.fixture
def make_recognizer():
    return FakeRecognizer


@pytest.fixture
def image():
    """Black 640x480 BGR frame."""
    return np.zeros((480, 640, 3), dtype=np.uint8)


@pytest.fixture
def source(image):
    return StaticSource(image)
