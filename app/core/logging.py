import json
import logging

from app.core.request_context import get_place_id, get_request_id, get_stage

# Context fields copied onto every record, with the value used when unset.
CONTEXT_FIELDS = {
    "request_id": (get_request_id, "unknown"),
    "stage": (get_stage, ""),
    "place_id": (get_place_id, ""),
}

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "taskName"}


class RequestIdFilter(logging.Filter):
    """Stamp records with the request, pipeline stage and place being handled."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name, (getter, default) in CONTEXT_FIELDS.items():
            setattr(record, name, getter() or default)
        return True


class StructuredJsonFormatter(logging.Formatter):
    """One JSON object per line: fixed fields, then context, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name, (_getter, default) in CONTEXT_FIELDS.items():
            value = getattr(record, name, default)
            # request_id is always present; the rest only inside a pipeline run.
            if value or name == "request_id":
                payload[name] = value
        payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in CONTEXT_FIELDS and not key.startswith("_") and value is not None
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = record.stack_info
        try:
            return json.dumps(payload, default=str)
        except (TypeError, ValueError):
            return super().format(record)
