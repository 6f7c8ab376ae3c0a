"""
Structured logging for the realtime service.

Every record is emitted as one JSON object on stdout carrying:
- timestamp, level, service, message
- module, function, line of the call site
- connection_id of the WebSocket session being served, if any
- request_id of the HTTP request being served, if any
- anything passed through ``extra=``

Both correlation IDs travel in context variables, so concurrent sessions on
the same event loop tag their own records without passing loggers around.
"""
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

connection_id_ctx: ContextVar[str] = ContextVar("connection_id", default="-")
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")

CONTEXT_VARS = {
    "connection_id": connection_id_ctx,
    "request_id": request_id_ctx,
}


class LogContextFilter(logging.Filter):
    """Stamps the current connection and request IDs onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field_name, var in CONTEXT_VARS.items():
            if not hasattr(record, field_name):
                setattr(record, field_name, var.get())
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter adding the service-wide mandatory fields.

    Args:
        service_name: Value of the ``service`` field on every record
    """

    def __init__(self, service_name: str = "huddle", *args, **kwargs):
        self.service_name = service_name
        super().__init__(*args, **kwargs)

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.update({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        })
        for field_name in CONTEXT_VARS:
            log_record[field_name] = getattr(record, field_name, "-")

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def configure_logging(service_name: str = "huddle", level: str = "INFO", enable_json: bool = True) -> None:
    """
    Install a single stdout handler on the root logger.

    Args:
        service_name: Service name stamped on JSON records
        level: Root log level name; unknown names fall back to INFO
        enable_json: JSON records when True, a compact text line otherwise
            (handy for local runs and test output)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(LogContextFilter())

    if enable_json:
        handler.setFormatter(CustomJsonFormatter(
            service_name=service_name,
            fmt="%(timestamp)s %(level)s %(service)s %(message)s"
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-7s %(name)s [conn=%(connection_id)s req=%(request_id)s] %(message)s"
        ))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    # Third-party loggers stay at WARNING
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
