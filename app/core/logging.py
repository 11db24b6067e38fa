import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Optional

from app.core.context import get_principal_id, get_request_id
from app.core.settings import settings

AUDIT_LOGGER = "app.audit"
# Optional ``extra=`` keys that loan services attach to records.
LOAN_FIELDS = ("loan_id", "application_number", "workflow_stage", "event")
TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(request_id)s] %(name)s: %(message)s"


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.principal_id = get_principal_id()
        return True


class JsonFormatter(logging.Formatter):
    """Structured line per record, tagged with the stream it belongs to.

    ``audit`` lines carry the same correlation ids as the request that caused
    them so the two streams can be joined downstream.
    """

    def __init__(self, stream_label: str = "transactional") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "stream": self.stream_label,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
            "principal_id": getattr(record, "principal_id", "-"),
        }
        payload.update(
            {field: getattr(record, field) for field in LOAN_FIELDS if hasattr(record, field)}
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _formatters(use_json: bool) -> dict[str, dict[str, Any]]:
    if use_json:
        return {
            "app": {"()": JsonFormatter, "stream_label": "transactional"},
            "audit": {"()": JsonFormatter, "stream_label": "audit"},
        }
    return {"app": {"format": TEXT_FORMAT}, "audit": {"format": "AUDIT " + TEXT_FORMAT}}


def configure_logging(level: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    use_json = settings.log_format.lower() == "json"
    handlers = {
        name: {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": name,
            "filters": ["request_context"],
            "stream": "ext://sys.stdout",
        }
        for name in ("app", "audit")
    }
    loggers = {
        name: {"handlers": ["app"], "level": log_level, "propagate": False}
        for name in ("", "uvicorn", "uvicorn.error", "uvicorn.access")
    }
    loggers[AUDIT_LOGGER] = {"handlers": ["audit"], "level": log_level, "propagate": False}
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_context": {"()": RequestContextFilter}},
            "formatters": _formatters(use_json),
            "handlers": handlers,
            "loggers": loggers,
        }
    )
    logging.getLogger(__name__).info(
        "Logging configured for environment=%s level=%s format=%s",
        settings.environment,
        log_level,
        "json" if use_json else "text",
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER)
