"""
Remote Vision Backend

Sends one frame per call to an OpenAI-compatible chat/completions endpoint and
returns the model's free-text scene description.

Works with Groq, OpenAI, OpenRouter, Together and other providers that accept
``image_url`` content parts.

Usage:
    from scenecast.backends.remote import RemoteVisionBackend

    backend = RemoteVisionBackend(api_key="gsk_...")
    result = await backend.analyze(frame)   # VisionResult or None
    await backend.close()

HTTP 429 raises RateLimited so the scheduler can back off. Every other failure
is logged and turns into ``None``.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp
from jsonpath_ng import parse as jsonpath_parse

from ..exceptions import RateLimited, TransientBackendError
from ..frame_sampler import downscale, encode_jpeg_base64
from ..models import Frame, VisionResult

logger = logging.getLogger(__name__)


VISION_PROMPT = (
    "You are the eyes of a voice assistant, describing a live camera feed in "
    "real time. Look at this frame and give a concise, natural description.\n\n"
    "Mention:\n"
    "- Objects and where they are relative to each other\n"
    "- Any readable text or labels\n"
    "- People and what they seem to be doing\n"
    "- Notable colors, brands or distinguishing details\n"
    "- The kind of place or scene\n\n"
    "Use at most 3 sentences. Be specific and factual. Do not say \"I see an "
    "image\" or \"This is a photo\"; describe the contents directly, as if "
    "looking through the camera."
)

DEFAULT_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_MODEL = "meta-llama/llama-4-scout-17b-16e-instruct"
DEFAULT_RESPONSE_PATH = "$.choices[0].message.content"


class RemoteVisionBackend:
    """Whole-scene description through a multimodal HTTP API."""

    name = "remote"
    describes_scene = True
    default_interval_ms = 10_000

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 300,
        temperature: float = 0.3,
        timeout: float = 30.0,
        response_path: str = DEFAULT_RESPONSE_PATH,
        prompt: str = VISION_PROMPT,
        max_width: int = 640,
        quality: int = 70,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.prompt = prompt
        self.max_width = max_width
        self.quality = quality
        self._response_expr = jsonpath_parse(response_path)
        self._session = session
        self._owns_session = session is None
        self._last_error = ""

        if self.api_key:
            logger.info(f"Vision ready - model: {self.model}, provider: {self.base_url}")

    @classmethod
    def from_config(cls, cfg) -> "RemoteVisionBackend":
        return cls(
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            model=cfg.model,
            max_tokens=cfg.max_tokens,
            temperature=cfg.temperature,
            timeout=cfg.timeout,
            response_path=cfg.response_path,
            max_width=cfg.frame_max_width,
            quality=cfg.frame_quality,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    @property
    def is_ready(self) -> bool:
        return bool(self.api_key)

    @property
    def last_error(self) -> str:
        if not self.is_ready:
            return "Missing SC_VISION_API_KEY"
        return self._last_error

    def build_payload(self, data_url: str) -> Dict[str, Any]:
        """Chat-completions request body for one frame."""
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": self.prompt},
                        {"type": "image_url", "image_url": {"url": data_url}},
                    ],
                }
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    def extract_description(self, data: Any) -> str:
        """Pull the description out of a response body ("" if absent)."""
        matches = self._response_expr.find(data)
        if not matches:
            return ""
        value = matches[0].value
        return value.strip() if isinstance(value, str) else ""

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    def _data_url(self, frame: Frame) -> str:
        if frame.data_url is not None:
            return frame.data_url
        encoded = encode_jpeg_base64(downscale(frame.image, self.max_width), self.quality)
        return f"data:image/jpeg;base64,{encoded}"

    async def _request(self, payload: Dict[str, Any]) -> Any:
        session = await self._get_session()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        try:
            async with session.post(self.endpoint, json=payload, headers=headers) as response:
                if response.status == 429:
                    await response.read()
                    raise RateLimited(
                        "Vision API rate limited",
                        retry_after=_retry_after(response.headers.get("Retry-After")),
                    )
                if not 200 <= response.status < 300:
                    body = await response.text()
                    raise TransientBackendError(
                        f"Vision API error: {response.status} {body[:200]}",
                        status=response.status,
                    )
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientBackendError(f"Vision API request failed: {e!r}") from e
        except ValueError as e:
            raise TransientBackendError(f"Vision API returned invalid JSON: {e}") from e

    async def analyze(self, frame: Frame) -> Optional[VisionResult]:
        """Describe one frame.

        Raises:
            RateLimited: on HTTP 429; all other failures return None
        """
        if not self.is_ready:
            return None

        try:
            payload = self.build_payload(self._data_url(frame))
        except ValueError as e:
            logger.error(f"Cannot encode frame: {e}")
            self._last_error = "Frame encoding failed"
            return None

        try:
            data = await self._request(payload)
        except TransientBackendError as e:
            logger.error(str(e))
            self._last_error = f"API error: {e.status}" if e.status else "Analysis failed"
            return None

        description = self.extract_description(data)
        if not description:
            logger.warning(f"Vision API returned no description. Raw data: {str(data)[:200]}")
            self._last_error = "Empty response"
            return None

        self._last_error = ""
        return VisionResult(description=description)

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


def _retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
