from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, OpenAIError

from ..config import DEFAULT_VISION_BASE_URL, DEFAULT_VISION_MODEL, Settings
from ..logging import get_logger
from .constants import MESSAGES
from .imaging import ImageUpload


LOG = get_logger("catalog-extraction")


EXTRACTION_PROMPT = (
    "This is a grocery receipt or a product price tag. Extract every product with its price. "
    "Respond with ONLY a JSON value: either a single object or an array of objects, each shaped "
    '{"title": string, "price": number or null, "currency": string}. '
    "Keep the title in its original language. Use null for price when it is not readable. "
    "currency must be an ISO 4217 code; if no currency is printed, guess it from the language, "
    "symbols or store. Do not include explanations, prose or markdown code fences."
)


class VisionExtractionError(RuntimeError):
    """The vision model call failed; details are logged, not shown."""

    user_message = MESSAGES["ai_failed"]


@dataclass(frozen=True)
class VisionConfig:
    """Connection settings for an OpenAI-compatible vision endpoint."""

    api_key: str
    model_name: str = DEFAULT_VISION_MODEL
    base_url: Optional[str] = DEFAULT_VISION_BASE_URL
    temperature: float = 0.0
    max_tokens: int = 512
    timeout_seconds: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "VisionConfig":
        if not settings.vision_api_key:
            raise ValueError("VISION_API_KEY (or GROQ_API_KEY/OPENAI_API_KEY) is not configured")
        return cls(
            api_key=settings.vision_api_key,
            model_name=settings.vision_model,
            base_url=settings.vision_base_url,
            timeout_seconds=settings.vision_timeout_seconds,
        )


def build_messages(upload: ImageUpload) -> List[Dict[str, Any]]:
    return [
        {
            "role": "user",
            "content": [
                {"type": "text", "text": EXTRACTION_PROMPT},
                {"type": "image_url", "image_url": {"url": upload.preview_data_uri()}},
            ],
        }
    ]


class VisionClient:
    """One-shot chat completion against a vision model; no retries."""

    def __init__(self, config: VisionConfig, client: Optional[Any] = None) -> None:
        self.config = config
        self._http_client: Optional[httpx.Client] = None
        if client is None:
            self._http_client = httpx.Client(
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            )
            client = OpenAI(
                api_key=config.api_key,
                base_url=config.base_url,
                http_client=self._http_client,
                max_retries=0,
                timeout=config.timeout_seconds,
            )
        self.client = client

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def __enter__(self) -> "VisionClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def extract_text(self, upload: ImageUpload) -> str:
        """Send the image with the extraction instruction; return the raw reply."""
        approx_kb = round(upload.byte_size / 1024, 1)
        LOG.info("Calling vision model '%s' (%s KB %s)", self.config.model_name, approx_kb, upload.mime_type)
        t0 = time.perf_counter()
        try:
            completion = self.client.chat.completions.create(
                model=self.config.model_name,
                messages=build_messages(upload),
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except (APIConnectionError, APITimeoutError) as e:
            LOG.error("Network/timeout while calling vision model: %s", e)
            raise VisionExtractionError(str(e)) from e
        except APIStatusError as e:
            body = getattr(getattr(e, "response", None), "text", None)
            LOG.error("Vision API returned %s. Body preview: %r", e.status_code, (body[:300] if body else None))
            raise VisionExtractionError(f"HTTP {e.status_code}") from e
        except OpenAIError as e:
            LOG.error("Vision API call failed: %s", e)
            raise VisionExtractionError(str(e)) from e

        choices = getattr(completion, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = getattr(message, "content", None)
        dt = time.perf_counter() - t0
        usage = getattr(completion, "usage", None)
        usage_dict = {k: getattr(usage, k, None) if usage else None for k in ("prompt_tokens", "completion_tokens", "total_tokens")}
        LOG.info("Vision completion finished in %.2fs id=%s usage=%s", dt, getattr(completion, "id", None), usage_dict)

        if not isinstance(content, str) or not content.strip():
            LOG.error("Vision model returned no content (choices=%d)", len(choices))
            raise VisionExtractionError("empty completion")
        return content
