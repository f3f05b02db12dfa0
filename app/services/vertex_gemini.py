import logging
import uuid

import httpx
from google import genai
from google.genai import types

from app.core.exceptions import TransientProviderError, UpstreamServiceError
from app.core.metrics import track_provider_call

logger = logging.getLogger(__name__)

PROVIDER_NAME = "gemini"


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------


class GeminiError(UpstreamServiceError):
    """Non-retryable Gemini failure."""

    def __init__(self, message: str, request_id: str | None = None, model: str | None = None):
        super().__init__(message, provider=PROVIDER_NAME)
        self.request_id = request_id
        self.model = model


class GeminiTransientError(TransientProviderError):
    """Gemini failure worth retrying (rate limit, timeout, unavailable)."""

    def __init__(
        self,
        message: str,
        error_type: str,
        request_id: str | None = None,
        model: str | None = None,
    ):
        super().__init__(message, provider=PROVIDER_NAME)
        self.error_type = error_type
        self.request_id = request_id
        self.model = model


class GeminiContentFilterError(GeminiError):
    """Raised when content is blocked by safety filters."""

    def __init__(
        self,
        message: str,
        request_id: str | None = None,
        model: str | None = None,
        blocked_categories: list[str] | None = None,
    ):
        super().__init__(message, request_id, model)
        self.blocked_categories = blocked_categories or []


_TRANSIENT_TYPES = {"rate_limit", "timeout", "model_unavailable", "connection"}


class GeminiClient:
    """Single-shot Gemini text calls with error classification.

    Retries are the caller's job (see ``app.core.retry.RetryPolicy``); this
    client turns every failure into either ``GeminiTransientError`` or
    ``GeminiError`` so the policy can tell them apart.
    """

    def __init__(
        self,
        project: str | None,
        location: str | None,
        api_key: str | None,
        text_model: str,
        timeout_seconds: float = 60.0,
    ):
        if not api_key and (not project or not location):
            raise RuntimeError(
                "Either GEMINI_API_KEY or both GOOGLE_CLOUD_PROJECT and GOOGLE_CLOUD_LOCATION must be configured"
            )

        self._text_model = text_model
        self._timeout_seconds = timeout_seconds

        http_options = types.HttpOptions(timeout=int(timeout_seconds * 1000))
        if project and location:
            self._client = genai.Client(vertexai=True, project=project, location=location, http_options=http_options)
        else:
            self._client = genai.Client(api_key=api_key, http_options=http_options)

    def _classify_error(self, exc: Exception, error_text: str) -> tuple[str, bool]:
        """Classify error type and determine if retryable.

        Returns:
            Tuple of (error_type, is_retryable)
        """
        if isinstance(exc, httpx.TimeoutException):
            return "timeout", True
        if isinstance(exc, (httpx.TransportError, ConnectionError)):
            return "connection", True
        code = getattr(exc, "code", None)
        if isinstance(code, int):
            if code == 429:
                return "rate_limit", True
            if code == 408:
                return "timeout", True
            if code >= 500:
                return "model_unavailable", True
            if 400 <= code < 500:
                return "invalid_request", False
        if "RESOURCE_EXHAUSTED" in error_text or "429" in error_text:
            return "rate_limit", True
        if "SAFETY" in error_text.upper() or "blocked" in error_text.lower():
            return "content_filter", False
        if "timeout" in error_text.lower() or "deadline" in error_text.lower():
            return "timeout", True
        if "unavailable" in error_text.lower() or "503" in error_text:
            return "model_unavailable", True
        if "invalid" in error_text.lower() or "400" in error_text:
            return "invalid_request", False
        return "unknown", False

    def _check_response_safety(
        self,
        response: types.GenerateContentResponse,
        request_id: str,
        model_name: str,
    ) -> None:
        """Check if response was blocked by safety filters."""
        candidate = (response.candidates or [None])[0]
        if candidate is None:
            return

        finish_reason = getattr(candidate, "finish_reason", None)
        if finish_reason and "SAFETY" in str(finish_reason).upper():
            blocked_categories = []
            for rating in getattr(candidate, "safety_ratings", None) or []:
                if getattr(rating, "blocked", False):
                    blocked_categories.append(str(getattr(rating, "category", "UNKNOWN")))

            raise GeminiContentFilterError(
                f"Content blocked by safety filters: {blocked_categories}",
                request_id=request_id,
                model=model_name,
                blocked_categories=blocked_categories,
            )

    def _extract_text_from_response(
        self,
        response: types.GenerateContentResponse,
        request_id: str,
        model_name: str,
    ) -> str:
        candidate = (response.candidates or [None])[0]
        if candidate is None or not candidate.content or not candidate.content.parts:
            raise GeminiError("Gemini returned empty content", request_id=request_id, model=model_name)

        texts = [part.text for part in candidate.content.parts if part.text]
        if not texts:
            raise GeminiError("Gemini returned no textual content", request_id=request_id, model=model_name)

        return "\n".join(texts).strip()

    def generate_text(
        self,
        prompt: str,
        *,
        system_instruction: str | None = None,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
        json_response: bool = False,
    ) -> str:
        """Run one text generation.

        Raises:
            GeminiTransientError: rate limit, timeout, or 5xx.
            GeminiError: anything that will not improve on retry.
        """
        model_name = self._text_model
        request_id = str(uuid.uuid4())
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            response_mime_type="application/json" if json_response else None,
        )

        try:
            with track_provider_call("gemini.generate_text"):
                response = self._client.models.generate_content(
                    model=model_name,
                    contents=[prompt],
                    config=config,
                )
        except Exception as exc:  # noqa: BLE001
            raise self._translate(exc, request_id, model_name) from exc

        # Shared across request threads, so per-call details stay local.
        request_id = response.response_id or request_id
        usage = response.usage_metadata.model_dump() if response.usage_metadata else None
        logger.info(
            "gemini.generate_text done request_id=%s model=%s usage=%s",
            request_id,
            model_name,
            usage,
        )

        self._check_response_safety(response, request_id, model_name)
        return self._extract_text_from_response(response, request_id, model_name)

    def _translate(self, exc: Exception, request_id: str, model_name: str) -> Exception:
        error_type, is_retryable = self._classify_error(exc, str(exc))
        if is_retryable and error_type in _TRANSIENT_TYPES:
            logger.warning(
                "gemini.generate_text transient error request_id=%s model=%s type=%s error=%r",
                request_id,
                model_name,
                error_type,
                exc,
            )
            return GeminiTransientError(
                f"Gemini {error_type}: {exc}",
                error_type=error_type,
                request_id=request_id,
                model=model_name,
            )
        logger.error(
            "gemini.generate_text non-retryable error request_id=%s model=%s type=%s error=%r",
            request_id,
            model_name,
            error_type,
            exc,
        )
        if error_type == "content_filter":
            return GeminiContentFilterError(f"Gemini blocked the request: {exc}", request_id=request_id, model=model_name)
        return GeminiError(f"Gemini {error_type}: {exc}", request_id=request_id, model=model_name)
