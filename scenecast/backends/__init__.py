"""
Backends Module - pluggable scene analysis.

- remote.py: multimodal HTTP API, free-text description
- local.py: on-device detector + classifier
- models.py: ultralytics model wrappers for the local backend

Usage:
    from scenecast.backends import create_backend
    from scenecast.config import PipelineConfig

    backend = create_backend(PipelineConfig.from_env())
"""

from .base import ObjectDetector, SceneClassifier, VisionBackend
from .local import LocalVisionBackend
from .remote import VISION_PROMPT, RemoteVisionBackend

from ..exceptions import ConfigurationError

__all__ = [
    "VisionBackend",
    "ObjectDetector",
    "SceneClassifier",
    "RemoteVisionBackend",
    "LocalVisionBackend",
    "VISION_PROMPT",
    "create_backend",
]


def create_backend(cfg) -> VisionBackend:
    """Build the backend selected by ``cfg.backend``."""
    if cfg.backend == "remote":
        return RemoteVisionBackend.from_config(cfg)
    if cfg.backend == "local":
        return LocalVisionBackend.from_config(cfg)
    raise ConfigurationError(f"Unknown backend: {cfg.backend}")
