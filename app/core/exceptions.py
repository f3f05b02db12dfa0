"""
Application-level exception types.

Every failure the comic pipeline surfaces carries an ``ErrorKind`` so the
transport layer can map it to a user-facing response without inspecting
exception classes. The core never refers to HTTP status codes.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INSUFFICIENT_CONTENT = "insufficient_content"
    UPSTREAM_FAILURE = "upstream_failure"
    CONTENT_POLICY = "content_policy"
    STORAGE_FAILURE = "storage_failure"
    INVALID_INPUT = "invalid_input"


class AppError(Exception):
    """Base exception for all application errors."""

    kind: ErrorKind = ErrorKind.UPSTREAM_FAILURE

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        self.detail = detail or message
        super().__init__(message)


class InvalidInputError(AppError):
    """Raised when a caller supplies an unusable argument."""

    kind = ErrorKind.INVALID_INPUT


class PlaceNotFoundError(AppError):
    """Raised when the place source has no record for a place id."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, place_id: str) -> None:
        super().__init__(f"Place not found: {place_id}", detail="Place not found")
        self.place_id = place_id


class InsufficientContentError(AppError):
    """Raised when a place has too few usable reviews to build a comic."""

    kind = ErrorKind.INSUFFICIENT_CONTENT

    def __init__(self, message: str, *, found: int, required: int) -> None:
        super().__init__(message)
        self.found = found
        self.required = required


class UpstreamServiceError(AppError):
    """Raised when an external provider fails for good."""

    kind = ErrorKind.UPSTREAM_FAILURE

    def __init__(self, message: str, *, provider: str | None = None, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)
        self.provider = provider


class TransientProviderError(UpstreamServiceError):
    """A provider failure expected to succeed on retry (rate limit, timeout, 5xx)."""


class ContentPolicyRejection(AppError):
    """Raised when the image provider refuses the content of a prompt."""

    kind = ErrorKind.CONTENT_POLICY

    def __init__(self, message: str, *, provider: str | None = None) -> None:
        super().__init__(message, detail="The image provider rejected the comic content")
        self.provider = provider


class StorageError(AppError):
    """Raised when a cache, blob, or leaderboard write fails."""

    kind = ErrorKind.STORAGE_FAILURE

    def __init__(self, message: str, *, store: str) -> None:
        super().__init__(message, detail=f"{store} storage failure")
        self.store = store
