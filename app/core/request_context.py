import contextvars
from contextlib import contextmanager

request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)
stage_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("stage", default=None)
place_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("place_id", default=None)


def set_request_id(request_id: str) -> contextvars.Token:
    """Store the current request ID in a context variable."""
    return request_id_var.set(request_id)


def reset_request_id(token: contextvars.Token) -> None:
    """Reset the request ID context variable to a previous state."""
    request_id_var.reset(token)


def get_request_id() -> str | None:
    """Retrieve the current request ID from the context."""
    return request_id_var.get()


def get_stage() -> str | None:
    """Retrieve the current pipeline stage for logging."""
    return stage_var.get()


def get_place_id() -> str | None:
    """Retrieve the place currently being processed."""
    return place_id_var.get()


@contextmanager
def log_context(stage: str | None = None, place_id: str | None = None):
    """Temporarily scope stage/place context for structured logs."""
    tokens: list[tuple[contextvars.ContextVar[str | None], contextvars.Token]] = []
    if stage is not None:
        tokens.append((stage_var, stage_var.set(stage)))
    if place_id is not None:
        tokens.append((place_id_var, place_id_var.set(place_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
