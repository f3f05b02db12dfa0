"""
Centralized builders for external provider clients.

Every client is built from application settings in one place so routes,
the lifespan hook, and scripts agree on timeouts and retry behavior.
"""

from __future__ import annotations

from app.core.retry import RetryPolicy
from app.core.settings import settings
from app.services.image_synthesizer import HttpImageDownloader, ImageSynthesizer, OpenAIImageProvider
from app.services.narrative_analyzer import NarrativeAnalyzer
from app.services.places import GooglePlacesClient
from app.services.storage import URL_SAFETY_MARGIN, LocalArtifactStore
from app.services.vertex_gemini import GeminiClient


class ProviderNotConfiguredError(RuntimeError):
    """Raised when credentials for an external provider are missing."""

    def __init__(self, provider: str, hint: str) -> None:
        super().__init__(f"{provider} is not configured. Set {hint}.")
        self.provider = provider


def build_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.provider_max_attempts,
        base_delay_seconds=settings.provider_base_delay_seconds,
        max_jitter_seconds=settings.provider_max_jitter_seconds,
    )


def build_gemini_client() -> GeminiClient:
    """Build a GeminiClient from application settings.

    Raises:
        ProviderNotConfiguredError: If neither API key nor GCP project is set.
    """
    if not settings.google_cloud_project and not settings.gemini_api_key:
        raise ProviderNotConfiguredError("Gemini", "GEMINI_API_KEY or GOOGLE_CLOUD_PROJECT")

    return GeminiClient(
        project=settings.google_cloud_project,
        location=settings.google_cloud_location,
        api_key=settings.gemini_api_key,
        text_model=settings.gemini_text_model,
        timeout_seconds=settings.gemini_timeout_seconds,
    )


def build_narrative_analyzer() -> NarrativeAnalyzer:
    return NarrativeAnalyzer(
        build_gemini_client(),
        retry_policy=build_retry_policy(),
        analysis_cap=settings.analysis_cap,
    )


def build_image_synthesizer() -> ImageSynthesizer:
    if not settings.openai_api_key:
        raise ProviderNotConfiguredError("OpenAI image generation", "OPENAI_API_KEY")

    provider = OpenAIImageProvider(
        api_key=settings.openai_api_key,
        model=settings.openai_image_model,
        size=settings.openai_image_size,
        quality=settings.openai_image_quality,
        style=settings.openai_image_style,
        timeout_seconds=settings.openai_timeout_seconds,
    )
    return ImageSynthesizer(provider, HttpImageDownloader(), retry_policy=build_retry_policy())


def build_place_source() -> GooglePlacesClient:
    if not settings.google_places_api_key:
        raise ProviderNotConfiguredError("Google Places", "GOOGLE_PLACES_API_KEY")
    return GooglePlacesClient(
        api_key=settings.google_places_api_key,
        timeout_seconds=settings.google_places_timeout_seconds,
    )


def build_artifact_store() -> LocalArtifactStore:
    return LocalArtifactStore(
        root_dir=settings.media_root,
        url_prefix=settings.media_url_prefix,
        public_read=settings.media_public_read,
        signing_key=settings.media_signing_key,
        url_ttl=settings.cache_duration + URL_SAFETY_MARGIN,
        base_url=settings.public_base_url,
    )
