"""
SceneCast - live scene understanding for conversational voice agents

Samples a video source, describes what is in view (remote multimodal API or
local detector + classifier), and tells the agent when the scene changes.

Heavy modules (OpenCV, aiohttp, model wrappers) load only when accessed.
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"


def __getattr__(name):
    """Lazy import handler - imports modules only when accessed."""

    # Scheduling
    if name == "AdaptiveScheduler":
        from .scheduler import AdaptiveScheduler
        return AdaptiveScheduler

    # Backends
    if name in ("RemoteVisionBackend", "LocalVisionBackend", "create_backend", "VisionBackend"):
        from . import backends
        return getattr(backends, name)

    # Composition
    if name in ("compose", "FALLBACK_DESCRIPTION"):
        from . import composer
        return getattr(composer, name)
    if name == "has_changed":
        from .filters import has_changed
        return has_changed

    # Data models
    if name in ("Detection", "Classification", "VisionResult", "Frame",
                "SchedulerState", "SchedulerPhase"):
        from . import models
        return getattr(models, name)

    # Sources, sampling, OCR, overlay
    if name in ("OpenCVSource", "StaticSource", "VideoSource"):
        from . import sources
        return getattr(sources, name)
    if name == "FrameSampler":
        from .frame_sampler import FrameSampler
        return FrameSampler
    if name == "TextRecognizer":
        from .ocr import TextRecognizer
        return TextRecognizer
    if name == "OverlayRenderer":
        from .overlay import OverlayRenderer
        return OverlayRenderer

    # Agent
    if name in ("ConsoleAgent", "WebhookAgent", "agent_update_handler"):
        from . import agent
        return getattr(agent, name)

    # Config / diagnostics
    if name == "PipelineConfig":
        from .config import PipelineConfig
        return PipelineConfig
    if name in ("enable_diagnostics", "metrics"):
        from . import diagnostics
        return getattr(diagnostics, name)

    # Exceptions
    if name in ("SceneCastError", "ConfigurationError", "TransientBackendError",
                "RateLimited", "ModelInferenceError", "OcrFailure", "SourceUnavailable"):
        from . import exceptions
        return getattr(exceptions, name)

    raise AttributeError(f"module 'scenecast' has no attribute '{name}'")


__all__ = [
    # Scheduling
    "AdaptiveScheduler",

    # Backends
    "RemoteVisionBackend",
    "LocalVisionBackend",
    "VisionBackend",
    "create_backend",

    # Composition
    "compose",
    "FALLBACK_DESCRIPTION",
    "has_changed",

    # Models
    "Detection",
    "Classification",
    "VisionResult",
    "Frame",
    "SchedulerState",
    "SchedulerPhase",

    # IO
    "OpenCVSource",
    "StaticSource",
    "VideoSource",
    "FrameSampler",
    "TextRecognizer",
    "OverlayRenderer",
    "ConsoleAgent",
    "WebhookAgent",
    "agent_update_handler",

    # Config / diagnostics
    "PipelineConfig",
    "enable_diagnostics",
    "metrics",

    # Exceptions
    "SceneCastError",
    "ConfigurationError",
    "TransientBackendError",
    "RateLimited",
    "ModelInferenceError",
    "OcrFailure",
    "SourceUnavailable",
]
