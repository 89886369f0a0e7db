"""
Tests for the remote and local vision backends
"""

import asyncio
import threading
from contextlib import asynccontextmanager
from types import SimpleNamespace

import numpy as np
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from unittest.mock import Mock

from scenecast.backends import (
    LocalVisionBackend,
    RemoteVisionBackend,
    VisionBackend,
    create_backend,
)
from scenecast.backends.models import YOLOClassifier, YOLODetector
from scenecast.config import PipelineConfig
from scenecast.exceptions import ConfigurationError, RateLimited
from scenecast.models import Classification, Detection, Frame


def make_frame(width=640, height=480):
    image = np.zeros((height, width, 3), dtype=np.uint8)
    return Frame(image=image, width=width, height=height)


@asynccontextmanager
async def vision_api(handler):
    """Local chat/completions endpoint; yields its base URL."""
    app = web.Application()
    app.router.add_post("/v1/chat/completions", handler)
    server = TestServer(app)
    await server.start_server()
    try:
        yield str(server.make_url("/v1"))
    finally:
        await server.close()


def completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


# =============================================================================
# REMOTE
# =============================================================================

class TestRemoteVisionBackend:
    """Test RemoteVisionBackend against a local HTTP server"""

    @pytest.mark.asyncio
    async def test_successful_description(self):
        seen = {}

        async def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = await request.json()
            return web.json_response(completion("  A red mug on a wooden desk.  "))

        async with vision_api(handler) as base_url:
            backend = RemoteVisionBackend(api_key="test-key", base_url=base_url, model="vision-model")
            try:
                result = await backend.analyze(make_frame())
            finally:
                await backend.close()

        assert result.description == "A red mug on a wooden desk."
        assert result.detections == []
        assert backend.last_error == ""

        body = seen["body"]
        assert seen["auth"] == "Bearer test-key"
        assert body["model"] == "vision-model"
        assert body["max_tokens"] == 300
        assert body["temperature"] == 0.3
        content = body["messages"][0]["content"]
        assert body["messages"][0]["role"] == "user"
        assert content[0]["type"] == "text"
        assert content[1]["type"] == "image_url"
        assert content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")

    @pytest.mark.asyncio
    async def test_rate_limit_raises(self):
        async def handler(request):
            return web.json_response({"error": "slow down"}, status=429, headers={"Retry-After": "7"})

        async with vision_api(handler) as base_url:
            backend = RemoteVisionBackend(api_key="test-key", base_url=base_url)
            try:
                with pytest.raises(RateLimited) as exc_info:
                    await backend.analyze(make_frame())
            finally:
                await backend.close()

        assert exc_info.value.status == 429
        assert exc_info.value.retry_after == 7.0

    @pytest.mark.asyncio
    async def test_server_error_returns_none(self):
        async def handler(request):
            return web.Response(status=500, text="upstream exploded")

        async with vision_api(handler) as base_url:
            backend = RemoteVisionBackend(api_key="test-key", base_url=base_url)
            try:
                result = await backend.analyze(make_frame())
            finally:
                await backend.close()

        assert result is None
        assert backend.last_error == "API error: 500"

    @pytest.mark.asyncio
    async def test_empty_content_returns_none(self):
        async def handler(request):
            return web.json_response(completion("   "))

        async with vision_api(handler) as base_url:
            backend = RemoteVisionBackend(api_key="test-key", base_url=base_url)
            try:
                result = await backend.analyze(make_frame())
            finally:
                await backend.close()

        assert result is None
        assert backend.last_error == "Empty response"

    @pytest.mark.asyncio
    async def test_missing_choices_returns_none(self):
        async def handler(request):
            return web.json_response({"id": "x"})

        async with vision_api(handler) as base_url:
            backend = RemoteVisionBackend(api_key="test-key", base_url=base_url)
            try:
                assert await backend.analyze(make_frame()) is None
            finally:
                await backend.close()

    @pytest.mark.asyncio
    async def test_connection_failure_returns_none(self):
        async def handler(request):
            return web.json_response(completion("unused"))

        async with vision_api(handler) as base_url:
            pass

        backend = RemoteVisionBackend(api_key="test-key", base_url=base_url, timeout=2)
        try:
            result = await backend.analyze(make_frame())
        finally:
            await backend.close()

        assert result is None
        assert backend.last_error == "Analysis failed"

    @pytest.mark.asyncio
    async def test_not_ready_without_key(self):
        backend = RemoteVisionBackend(api_key="")

        assert backend.is_ready is False
        assert backend.last_error == "Missing SC_VISION_API_KEY"
        assert await backend.analyze(make_frame()) is None

    def test_custom_response_path(self):
        backend = RemoteVisionBackend(api_key="k", response_path="$.output.text")
        assert backend.extract_description({"output": {"text": " hi "}}) == "hi"
        assert backend.extract_description({"output": {"text": 42}}) == ""

    def test_endpoint_strips_trailing_slash(self):
        backend = RemoteVisionBackend(api_key="k", base_url="https://api.example.com/v1/")
        assert backend.endpoint == "https://api.example.com/v1/chat/completions"

    def test_conforms_to_backend_protocol(self):
        assert isinstance(RemoteVisionBackend(api_key="k"), VisionBackend)


# =============================================================================
# LOCAL
# =============================================================================

def fake_detector(detections=None, error=None, available=True):
    detector = Mock()
    detector.available = available
    if error is not None:
        detector.detect.side_effect = error
    else:
        detector.detect.return_value = detections or []
    return detector


def fake_classifier(classifications=None, error=None, available=True):
    classifier = Mock()
    classifier.available = available
    if error is not None:
        classifier.classify.side_effect = error
    else:
        classifier.classify.return_value = classifications or []
    return classifier


class TestLocalVisionBackend:
    """Test LocalVisionBackend with stand-in models"""

    @pytest.mark.asyncio
    async def test_reference_scene(self):
        backend = LocalVisionBackend(
            fake_detector([
                Detection("person", 0.81, (10, 10, 100, 200)),
                Detection("cup", 0.62, (300, 200, 40, 50)),
            ]),
            fake_classifier([
                Classification("desk", 0.10),
                Classification("coffee mug", 0.35),
            ]),
        )
        try:
            result = await backend.analyze(make_frame())
        finally:
            await backend.close()

        assert result.description == "I can see a person, a cup. The scene appears to contain: coffee mug."
        assert [c.label for c in result.classifications] == ["coffee mug", "desk"]

    @pytest.mark.asyncio
    async def test_models_receive_the_frame(self):
        detector, classifier = fake_detector(), fake_classifier()
        backend = LocalVisionBackend(detector, classifier)
        frame = make_frame()
        try:
            await backend.analyze(frame)
        finally:
            await backend.close()

        detector.detect.assert_called_once_with(frame.image)
        classifier.classify.assert_called_once_with(frame.image)

    @pytest.mark.asyncio
    async def test_low_score_detections_kept_but_not_described(self):
        backend = LocalVisionBackend(
            fake_detector([Detection("chair", 0.3, (0, 0, 10, 10))]),
            fake_classifier(),
        )
        try:
            result = await backend.analyze(make_frame())
        finally:
            await backend.close()

        assert len(result.detections) == 1
        assert result.description == "No significant objects detected in view."

    @pytest.mark.asyncio
    async def test_detector_failure_is_isolated(self):
        backend = LocalVisionBackend(
            fake_detector(error=RuntimeError("CUDA out of memory")),
            fake_classifier([Classification("library", 0.8)]),
        )
        try:
            result = await backend.analyze(make_frame())
        finally:
            await backend.close()

        assert result.detections == []
        assert result.description == "The scene appears to contain: library."

    @pytest.mark.asyncio
    async def test_classifier_failure_is_isolated(self):
        backend = LocalVisionBackend(
            fake_detector([Detection("dog", 0.9, (0, 0, 10, 10))]),
            fake_classifier(error=ValueError("bad tensor")),
        )
        try:
            result = await backend.analyze(make_frame())
        finally:
            await backend.close()

        assert result.description == "I can see a dog."

    @pytest.mark.asyncio
    async def test_both_failures_skip_cycle(self):
        backend = LocalVisionBackend(
            fake_detector(error=RuntimeError("boom")),
            fake_classifier(error=RuntimeError("boom")),
        )
        try:
            result = await backend.analyze(make_frame())
        finally:
            await backend.close()

        assert result is None
        assert backend.last_error == "Local inference failed"

    @pytest.mark.asyncio
    async def test_cancel_waits_for_running_models(self):
        """Test a cancelled call only ends once the model thread has returned"""
        release = threading.Event()
        finished = threading.Event()

        def slow_detect(image):
            release.wait(2.0)
            finished.set()
            return []

        detector = fake_detector()
        detector.detect.side_effect = slow_detect
        backend = LocalVisionBackend(detector, fake_classifier())
        try:
            call = asyncio.ensure_future(backend.analyze(make_frame()))
            await asyncio.sleep(0.01)
            call.cancel()
            await asyncio.sleep(0.01)
            assert not call.done()

            release.set()
            with pytest.raises(asyncio.CancelledError):
                await call
            assert finished.is_set()
        finally:
            await backend.close()

    def test_readiness_follows_models(self):
        ready = LocalVisionBackend(fake_detector(), fake_classifier())
        missing = LocalVisionBackend(fake_detector(available=False), fake_classifier())

        assert ready.is_ready is True
        assert missing.is_ready is False
        assert missing.last_error == "Local models unavailable"

    def test_defaults(self):
        backend = LocalVisionBackend(fake_detector(), fake_classifier())
        assert backend.name == "local"
        assert backend.describes_scene is False
        assert backend.default_interval_ms == 2_000


# =============================================================================
# MODEL WRAPPERS
# =============================================================================

class FakeTensor(list):
    def tolist(self):
        return list(self)


class TestYOLOWrappers:
    """Result conversion of the ultralytics wrappers"""

    def test_detector_converts_corners_to_xywh(self):
        box = SimpleNamespace(xyxy=[FakeTensor([10.0, 20.0, 110.0, 220.0])], cls=[0], conf=[0.9])
        result = SimpleNamespace(boxes=[box], names={0: "person"})
        detector = YOLODetector()
        detector._model = Mock(return_value=[result])

        detections = detector.detect(np.zeros((480, 640, 3), dtype=np.uint8))

        assert detections == [Detection("person", 0.9, (10.0, 20.0, 100.0, 200.0))]

    def test_detector_skips_results_without_boxes(self):
        detector = YOLODetector()
        detector._model = Mock(return_value=[SimpleNamespace(boxes=None, names={})])
        assert detector.detect(np.zeros((10, 10, 3), dtype=np.uint8)) == []

    def test_classifier_ranks_top_k(self):
        probs = SimpleNamespace(data=FakeTensor([0.1, 0.7, 0.2]))
        result = SimpleNamespace(probs=probs, names={0: "desk", 1: "coffee_mug", 2: "monitor"})
        classifier = YOLOClassifier(top_k=2)
        classifier._model = Mock(return_value=[result])

        ranked = classifier.classify(np.zeros((10, 10, 3), dtype=np.uint8))

        assert [c.label for c in ranked] == ["coffee mug", "monitor"]
        assert ranked[0].probability == pytest.approx(0.7)


# =============================================================================
# FACTORY
# =============================================================================

class TestCreateBackend:
    """Test create_backend()"""

    def test_remote(self):
        backend = create_backend(PipelineConfig(backend="remote", api_key="k", model="m"))
        assert isinstance(backend, RemoteVisionBackend)
        assert backend.model == "m"

    def test_local(self):
        backend = create_backend(PipelineConfig(backend="local", detector_model="custom.pt"))
        assert isinstance(backend, LocalVisionBackend)
        assert backend.detector.model_path == "custom.pt"

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            create_backend(PipelineConfig(backend="cloud"))
