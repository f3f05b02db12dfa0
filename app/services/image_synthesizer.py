"""Comic image synthesis through the OpenAI images API.

The provider answers with a short-lived URL, so every successful generation
is followed by a download; the bytes are what the rest of the pipeline keeps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx
import openai
from openai import OpenAI

from app.core.exceptions import ContentPolicyRejection, TransientProviderError, UpstreamServiceError
from app.core.metrics import record_content_policy_fallback, track_provider_call
from app.core.retry import RetryPolicy
from app.services.comic_prompts import build_comic_prompt, build_fallback_prompt, sanitize_narrative

logger = logging.getLogger(__name__)

PROVIDER_NAME = "openai"
PROMPT_PRIMARY = "primary"
PROMPT_FALLBACK = "fallback"

_CONTENT_POLICY_MARKERS = ("content_policy", "contentfilter", "content_filter", "safety system", "moderation")


class ImageProvider(Protocol):
    def generate(self, prompt: str) -> str:
        """Return a temporary URL for an image rendered from ``prompt``."""
        ...


class ImageDownloader(Protocol):
    def fetch(self, url: str) -> bytes: ...


def is_content_policy_error(exc: Exception) -> bool:
    code = getattr(exc, "code", None)
    if isinstance(code, str) and code.lower() in {"content_policy_violation", "content_filter", "contentfilter"}:
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _CONTENT_POLICY_MARKERS)


def translate_openai_error(exc: Exception) -> Exception:
    """Map an ``openai`` exception onto the pipeline's error taxonomy."""
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return TransientProviderError(f"Image provider unreachable: {exc}", provider=PROVIDER_NAME)
    if isinstance(exc, openai.RateLimitError):
        return TransientProviderError(f"Image provider rate limited: {exc}", provider=PROVIDER_NAME)
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        if status == 400 and is_content_policy_error(exc):
            return ContentPolicyRejection(f"Image prompt rejected by content policy: {exc}", provider=PROVIDER_NAME)
        if status in (408, 429) or status >= 500:
            return TransientProviderError(f"Image provider returned {status}: {exc}", provider=PROVIDER_NAME)
        return UpstreamServiceError(f"Image provider returned {status}: {exc}", provider=PROVIDER_NAME)
    return UpstreamServiceError(f"Image generation failed: {exc}", provider=PROVIDER_NAME)


class OpenAIImageProvider:
    def __init__(
        self,
        api_key: str | None,
        model: str = "dall-e-3",
        size: str = "1024x1024",
        quality: str = "standard",
        style: str = "vivid",
        timeout_seconds: float = 120.0,
        client: OpenAI | None = None,
    ):
        if client is None and not api_key:
            raise RuntimeError("OPENAI_API_KEY must be configured for image generation")
        # Retries belong to RetryPolicy, not the SDK.
        self._client = client or OpenAI(api_key=api_key, timeout=timeout_seconds, max_retries=0)
        self.model = model
        self.size = size
        self.quality = quality
        self.style = style

    def generate(self, prompt: str) -> str:
        try:
            with track_provider_call("openai.images.generate"):
                response = self._client.images.generate(
                    model=self.model,
                    prompt=prompt,
                    n=1,
                    size=self.size,
                    quality=self.quality,
                    style=self.style,
                    response_format="url",
                )
        except openai.OpenAIError as exc:
            raise translate_openai_error(exc) from exc

        if not response.data or not response.data[0].url:
            raise UpstreamServiceError("Image provider returned no image URL", provider=PROVIDER_NAME)
        return response.data[0].url

    def close(self) -> None:
        self._client.close()


class HttpImageDownloader:
    def __init__(self, timeout_seconds: float = 30.0, client: httpx.Client | None = None):
        self._client = client or httpx.Client(timeout=timeout_seconds, follow_redirects=True)

    def fetch(self, url: str) -> bytes:
        try:
            with track_provider_call("image.download"):
                response = self._client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (408, 429) or status >= 500:
                raise TransientProviderError(f"Image download returned {status}", provider=PROVIDER_NAME) from exc
            raise UpstreamServiceError(f"Image download returned {status}", provider=PROVIDER_NAME) from exc
        except httpx.TransportError as exc:
            raise TransientProviderError(f"Image download failed: {exc}", provider=PROVIDER_NAME) from exc

        if not response.content:
            raise UpstreamServiceError("Image download returned an empty body", provider=PROVIDER_NAME)
        return response.content

    def close(self) -> None:
        self._client.close()


@dataclass(frozen=True)
class SynthesizedImage:
    data: bytes
    prompt_kind: str


class ImageSynthesizer:
    """Render a narrative to image bytes, falling back to a generic prompt once.

    Holds no per-call state, so one instance is shared across requests.
    """

    def __init__(
        self,
        provider: ImageProvider,
        downloader: ImageDownloader,
        retry_policy: RetryPolicy | None = None,
    ):
        self.provider = provider
        self.downloader = downloader
        self.retry_policy = retry_policy or RetryPolicy()

    def synthesize(self, narrative: str, panel_count: int) -> SynthesizedImage:
        prompt = build_comic_prompt(sanitize_narrative(narrative), panel_count)
        try:
            return SynthesizedImage(self._render(prompt, PROMPT_PRIMARY), PROMPT_PRIMARY)
        except ContentPolicyRejection as exc:
            logger.warning("image prompt rejected, using fallback panels=%s error=%s", panel_count, exc)
            record_content_policy_fallback()

        # A rejection here is terminal.
        return SynthesizedImage(self._render(build_fallback_prompt(panel_count), PROMPT_FALLBACK), PROMPT_FALLBACK)

    def _render(self, prompt: str, prompt_kind: str) -> bytes:
        url = self.retry_policy.run(lambda: self.provider.generate(prompt), operation=f"image.generate.{prompt_kind}")
        data = self.retry_policy.run(lambda: self.downloader.fetch(url), operation="image.download")
        logger.info("image synthesized prompt_kind=%s bytes=%s", prompt_kind, len(data))
        return data

    def close(self) -> None:
        for part in (self.provider, self.downloader):
            close = getattr(part, "close", None)
            if close is not None:
                close()
