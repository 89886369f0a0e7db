"""
SceneCast Configuration Module

Handles loading configuration from:
1. .env file
2. Environment variables
3. Default values

Usage:
    from scenecast.config import config, PipelineConfig

    backend = config.get("SC_BACKEND", "remote")
    config.set("SC_VISION_MODEL", "gpt-4o-mini")

    pipeline_config = PipelineConfig.from_env()
"""

__all__ = ["config", "Config", "DEFAULTS", "PipelineConfig"]

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Default configuration values
DEFAULTS = {
    # Backend selection
    "SC_BACKEND": "remote",            # remote (vision API) or local (on-device models)

    # Remote vision API (any OpenAI-compatible chat/completions endpoint)
    "SC_VISION_API_KEY": "",
    "SC_VISION_BASE_URL": "https://api.groq.com/openai/v1",
    "SC_VISION_MODEL": "meta-llama/llama-4-scout-17b-16e-instruct",
    "SC_VISION_MAX_TOKENS": "300",
    "SC_VISION_TEMPERATURE": "0.3",
    "SC_VISION_TIMEOUT": "30",         # seconds
    "SC_RESPONSE_PATH": "$.choices[0].message.content",

    # Scheduling
    "SC_REMOTE_INTERVAL_MS": "10000",  # 10s between remote analyses
    "SC_LOCAL_INTERVAL_MS": "2000",
    "SC_BASE_BACKOFF_MS": "15000",
    "SC_MAX_BACKOFF_MS": "120000",

    # Composition
    "SC_SCORE_THRESHOLD": "0.5",
    "SC_CLASSIFICATION_THRESHOLD": "0.3",
    "SC_COMPOSER_OCR_MAX_CHARS": "200",
    "SC_OVERLAY_OCR_MAX_CHARS": "100",

    # Frame sampling
    "SC_FRAME_MAX_WIDTH": "640",
    "SC_FRAME_QUALITY": "70",          # JPEG quality 1-100

    # Local models (auto-downloaded by ultralytics on first use)
    "SC_DETECTOR_MODEL": "yolov8n.pt",
    "SC_CLASSIFIER_MODEL": "yolov8n-cls.pt",
    "SC_DEVICE": "cpu",

    # OCR
    "SC_OCR_ENABLED": "false",
    "SC_OCR_EVERY": "1",               # run OCR every N analysis cycles

    # Overlay
    "SC_OVERLAY_FPS": "30",

    # Logging
    "SC_LOG_LEVEL": "INFO",
    "SC_LOG_FILE": "",
}

# Configuration categories, used when writing a full .env file
CONFIG_CATEGORIES = {
    "Backend": [
        ("SC_BACKEND", "Backend", "Detection backend: remote, local"),
    ],
    "Remote Vision API": [
        ("SC_VISION_API_KEY", "API Key", "Bearer token for the vision endpoint"),
        ("SC_VISION_BASE_URL", "Base URL", "OpenAI-compatible API base URL"),
        ("SC_VISION_MODEL", "Model", "Vision-capable model name"),
        ("SC_VISION_MAX_TOKENS", "Max Tokens", "Completion token limit"),
        ("SC_VISION_TEMPERATURE", "Temperature", "Sampling temperature"),
        ("SC_VISION_TIMEOUT", "Timeout (seconds)", "Request timeout"),
        ("SC_RESPONSE_PATH", "Response Path", "JSONPath of the description in the response"),
    ],
    "Scheduling": [
        ("SC_REMOTE_INTERVAL_MS", "Remote Interval (ms)", "Delay between remote analyses"),
        ("SC_LOCAL_INTERVAL_MS", "Local Interval (ms)", "Delay between local analyses"),
        ("SC_BASE_BACKOFF_MS", "Base Backoff (ms)", "First delay after HTTP 429"),
        ("SC_MAX_BACKOFF_MS", "Max Backoff (ms)", "Backoff ceiling"),
    ],
    "Composition": [
        ("SC_SCORE_THRESHOLD", "Score Threshold", "Minimum detection score"),
        ("SC_CLASSIFICATION_THRESHOLD", "Classification Threshold", "Minimum scene probability"),
        ("SC_COMPOSER_OCR_MAX_CHARS", "Description OCR Length", "Recognized text kept in descriptions"),
        ("SC_OVERLAY_OCR_MAX_CHARS", "Overlay OCR Length", "Recognized text shown on the overlay"),
    ],
    "Frame Sampling": [
        ("SC_FRAME_MAX_WIDTH", "Max Width", "Downsample width for remote analysis"),
        ("SC_FRAME_QUALITY", "JPEG Quality", "Encoding quality 1-100"),
    ],
    "Local Models": [
        ("SC_DETECTOR_MODEL", "Detector", "ultralytics detection weights"),
        ("SC_CLASSIFIER_MODEL", "Classifier", "ultralytics classification weights"),
        ("SC_DEVICE", "Device", "cpu, cuda, mps"),
    ],
    "OCR": [
        ("SC_OCR_ENABLED", "OCR Enabled", "Run text recognition during cycles (true/false)"),
        ("SC_OCR_EVERY", "OCR Every", "Run OCR every N cycles"),
    ],
    "Overlay": [
        ("SC_OVERLAY_FPS", "Overlay FPS", "Overlay redraw rate"),
    ],
    "Logging": [
        ("SC_LOG_LEVEL", "Log Level", "Logging level: DEBUG, INFO, WARNING, ERROR"),
        ("SC_LOG_FILE", "Log File", "Path to log file (empty = console only)"),
    ],
}


class Config:
    """Configuration manager for SceneCast"""

    def __init__(self):
        self._config: Dict[str, str] = {}
        self._env_file: Optional[Path] = None
        self._changed: set = set()
        self._load()

    def _find_env_file(self) -> Optional[Path]:
        """Find .env file in current directory or parent directories"""
        current = Path.cwd()

        for _ in range(5):
            env_path = current / ".env"
            if env_path.exists():
                return env_path
            current = current.parent

        return None

    def _load(self):
        """Load configuration from .env file and environment"""
        self._config = DEFAULTS.copy()

        self._env_file = self._find_env_file()
        if self._env_file:
            self._load_env_file(self._env_file)

        # Environment wins over .env
        for key in DEFAULTS.keys():
            env_val = os.environ.get(key)
            if env_val is not None:
                self._config[key] = env_val

    def _load_env_file(self, path: Path):
        """Load configuration from .env file"""
        try:
            with open(path, "r") as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    if "=" in line:
                        key, _, value = line.partition("=")
                        key = key.strip()
                        value = value.strip().strip('"').strip("'")
                        if key in DEFAULTS:
                            self._config[key] = value
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")

    def get(self, key: str, default: Any = None) -> str:
        """Get configuration value"""
        if default is None:
            default = DEFAULTS.get(key, "")
        return self._config.get(key, default)

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get configuration value as boolean"""
        val = self.get(key, str(default))
        return val.lower() in ("true", "1", "yes", "on")

    def get_int(self, key: str, default: int = 0) -> int:
        """Get configuration value as integer"""
        try:
            return int(self.get(key, str(default)))
        except ValueError:
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Get configuration value as float"""
        try:
            return float(self.get(key, str(default)))
        except ValueError:
            return default

    def set(self, key: str, value: str):
        """Set configuration value"""
        self._config[key] = str(value)
        self._changed.add(key)

    def save(self, path: Optional[Path] = None, keys_only: Optional[List[str]] = None):
        """Save configuration to .env file.

        Args:
            path: Path to save to (default: current .env file)
            keys_only: If provided, only update these keys in an existing file
        """
        if path is None:
            path = self._env_file or Path.cwd() / ".env"
        path = Path(path)

        if path.exists():
            with open(path, "r") as f:
                existing_lines = f.readlines()

            updated_lines = []
            written = set()
            for line in existing_lines:
                stripped = line.strip()
                if stripped and not stripped.startswith("#") and "=" in stripped:
                    key = stripped.split("=", 1)[0].strip()
                    wanted = keys_only is None or key in keys_only
                    if wanted and key in self._config:
                        updated_lines.append(f"{key}={self._config[key]}\n")
                        written.add(key)
                        continue
                updated_lines.append(line)

            # Keys set at runtime that the file did not have yet
            for key in sorted(self._changed - written):
                if keys_only is None or key in keys_only:
                    value = self._config[key]
                    if updated_lines and not updated_lines[-1].endswith("\n"):
                        updated_lines.append("\n")
                    updated_lines.append(f"{key}={value}\n")

            with open(path, "w") as f:
                f.writelines(updated_lines)
        else:
            lines = []
            for category, items in CONFIG_CATEGORIES.items():
                lines.append(f"\n# {category}")
                for key, _label, _desc in items:
                    lines.append(f"{key}={self._config.get(key, DEFAULTS.get(key, ''))}")

            with open(path, "w") as f:
                f.write("# SceneCast Configuration\n")
                f.write("\n".join(lines))
                f.write("\n")

        self._env_file = path

    def to_dict(self) -> Dict[str, str]:
        """Get all configuration as dictionary"""
        return self._config.copy()

    def reload(self):
        """Reload configuration from files"""
        self._load()


# Global config instance
config = Config()


BACKENDS = ("remote", "local")


@dataclass
class PipelineConfig:
    """Settings for one analysis pipeline instance."""
    backend: str = "remote"

    # Remote
    api_key: str = ""
    base_url: str = "https://api.groq.com/openai/v1"
    model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    max_tokens: int = 300
    temperature: float = 0.3
    timeout: float = 30.0
    response_path: str = "$.choices[0].message.content"

    # Scheduling
    interval_ms: Optional[int] = None  # None = backend default
    remote_interval_ms: int = 10_000
    local_interval_ms: int = 2_000
    base_backoff_ms: int = 15_000
    max_backoff_ms: int = 120_000

    # Composition
    score_threshold: float = 0.5
    classification_threshold: float = 0.3
    composer_ocr_max_chars: int = 200
    overlay_ocr_max_chars: int = 100

    # Frame sampling
    frame_max_width: int = 640
    frame_quality: int = 70

    # Local models
    detector_model: str = "yolov8n.pt"
    classifier_model: str = "yolov8n-cls.pt"
    device: str = "cpu"

    # OCR
    ocr_enabled: bool = False
    ocr_every: int = 1

    # Overlay
    overlay_fps: float = 30.0

    @property
    def effective_interval_ms(self) -> int:
        """Configured interval, or the default of the selected backend."""
        if self.interval_ms is not None:
            return self.interval_ms
        if self.backend == "local":
            return self.local_interval_ms
        return self.remote_interval_ms

    def validate(self) -> "PipelineConfig":
        """Raise ConfigurationError on values the pipeline cannot run with."""
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown backend '{self.backend}' (expected one of: {', '.join(BACKENDS)})"
            )
        if self.effective_interval_ms <= 0:
            raise ConfigurationError("Analysis interval must be positive")
        if self.base_backoff_ms <= 0 or self.max_backoff_ms < self.base_backoff_ms:
            raise ConfigurationError("Backoff must satisfy 0 < base <= max")
        if not 0.0 <= self.score_threshold <= 1.0:
            raise ConfigurationError("Score threshold must be within 0..1")
        if not 0.0 <= self.classification_threshold <= 1.0:
            raise ConfigurationError("Classification threshold must be within 0..1")
        if not 1 <= self.frame_quality <= 100:
            raise ConfigurationError("Frame quality must be within 1..100")
        if self.ocr_every < 1:
            raise ConfigurationError("OCR cadence must be at least 1")
        return self

    @classmethod
    def from_env(cls, cfg: Optional[Config] = None) -> "PipelineConfig":
        """Load config from environment/.env"""
        cfg = cfg or config
        return cls(
            backend=cfg.get("SC_BACKEND", "remote").strip().lower(),
            api_key=cfg.get("SC_VISION_API_KEY", ""),
            base_url=cfg.get("SC_VISION_BASE_URL").rstrip("/"),
            model=cfg.get("SC_VISION_MODEL"),
            max_tokens=cfg.get_int("SC_VISION_MAX_TOKENS", 300),
            temperature=cfg.get_float("SC_VISION_TEMPERATURE", 0.3),
            timeout=cfg.get_float("SC_VISION_TIMEOUT", 30.0),
            response_path=cfg.get("SC_RESPONSE_PATH"),
            remote_interval_ms=cfg.get_int("SC_REMOTE_INTERVAL_MS", 10_000),
            local_interval_ms=cfg.get_int("SC_LOCAL_INTERVAL_MS", 2_000),
            base_backoff_ms=cfg.get_int("SC_BASE_BACKOFF_MS", 15_000),
            max_backoff_ms=cfg.get_int("SC_MAX_BACKOFF_MS", 120_000),
            score_threshold=cfg.get_float("SC_SCORE_THRESHOLD", 0.5),
            classification_threshold=cfg.get_float("SC_CLASSIFICATION_THRESHOLD", 0.3),
            composer_ocr_max_chars=cfg.get_int("SC_COMPOSER_OCR_MAX_CHARS", 200),
            overlay_ocr_max_chars=cfg.get_int("SC_OVERLAY_OCR_MAX_CHARS", 100),
            frame_max_width=cfg.get_int("SC_FRAME_MAX_WIDTH", 640),
            frame_quality=cfg.get_int("SC_FRAME_QUALITY", 70),
            detector_model=cfg.get("SC_DETECTOR_MODEL"),
            classifier_model=cfg.get("SC_CLASSIFIER_MODEL"),
            device=cfg.get("SC_DEVICE", "cpu"),
            ocr_enabled=cfg.get_bool("SC_OCR_ENABLED", False),
            ocr_every=cfg.get_int("SC_OCR_EVERY", 1),
            overlay_fps=cfg.get_float("SC_OVERLAY_FPS", 30.0),
        )

    @classmethod
    def from_yaml(cls, path: Union[str, Path], base: Optional["PipelineConfig"] = None) -> "PipelineConfig":
        """Overlay values from a YAML mapping onto ``base`` (or the env config).

        Keys are the lowercase field names, e.g. ``backend: local``.
        """
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"{path}: expected a mapping at top level")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"{path}: unknown keys: {', '.join(unknown)}")

        return replace(base or cls.from_env(), **data)
