"""
Custom exceptions for SceneCast
"""

from typing import Optional

__all__ = [
    "SceneCastError",
    "ConfigurationError",
    "TransientBackendError",
    "RateLimited",
    "ModelInferenceError",
    "OcrFailure",
    "SourceUnavailable",
]


class SceneCastError(Exception):
    """Base exception for all SceneCast errors"""
    pass


class ConfigurationError(SceneCastError):
    """Configuration error"""
    pass


class TransientBackendError(SceneCastError):
    """Backend call failed for a reason other than rate limiting"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RateLimited(SceneCastError):
    """Backend answered HTTP 429"""

    def __init__(self, message: str = "Rate limited", status: int = 429,
                 retry_after: Optional[float] = None):
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after


class ModelInferenceError(SceneCastError):
    """A local model failed on a frame"""

    def __init__(self, model: str, cause: Optional[BaseException] = None):
        super().__init__(f"{model} inference failed: {cause}")
        self.model = model
        self.cause = cause


class OcrFailure(SceneCastError):
    """Text recognition failed"""
    pass


class SourceUnavailable(SceneCastError):
    """Video source is missing or not decoding yet"""
    pass
