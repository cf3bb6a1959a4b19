"""
Structured logging bound to the request and tenant.

Every record emitted while a request is being handled carries the request id
and, for company routes, the company id. Production writes one JSON object
per line; development writes a readable console line.
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
company_id_ctx_var: ContextVar[Optional[int]] = ContextVar("company_id", default=None)

# Record attributes copied into JSON lines when set
_STRUCTURED_FIELDS = (
    "company_id",
    "event_type",
    "error_code",
    "feature",
    "status",
    "path",
    "method",
    "latency_bucket",
    "streaming",
)

_LATENCY_BUCKETS = ((50, "<50ms"), (250, "50-250ms"), (1000, "250-1000ms"))


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def get_company_id(default: Optional[int] = None) -> Optional[int]:
    company_id = company_id_ctx_var.get()
    return company_id if company_id is not None else default


@contextmanager
def bind_request(request_id: str, company_id: Optional[int] = None) -> Iterator[None]:
    """Bind request and tenant ids to every record logged inside the block."""
    rid_token = request_id_ctx_var.set(request_id)
    company_token = company_id_ctx_var.set(company_id)
    try:
        yield
    finally:
        company_id_ctx_var.reset(company_token)
        request_id_ctx_var.reset(rid_token)


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    for upper, label in _LATENCY_BUCKETS:
        if latency_ms < upper:
            return label
    return ">=1000ms"


class ContextFilter(logging.Filter):
    """Fill request_id and company_id from the bound context."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        if getattr(record, "company_id", None) is None:
            record.company_id = get_company_id()
        return True


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        payload.update({
            name: getattr(record, name)
            for name in _STRUCTURED_FIELDS
            if getattr(record, name, None) is not None
        })
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        tags = ["[agenda]"]
        rid = getattr(record, "request_id", None)
        if rid:
            tags.append(f"[rid={rid}]")
        company = getattr(record, "company_id", None)
        if company is not None:
            tags.append(f"[company={company}]")
        line = f"{_timestamp(record)} {record.levelname} {''.join(tags)} {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(env: str = "development", level: Optional[str] = None) -> None:
    """Install one stdout handler on the "agenda" logger."""
    logger = logging.getLogger("agenda")
    logger.setLevel((level or os.getenv("LOG_LEVEL") or "INFO").upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else ConsoleFormatter())
    handler.addFilter(ContextFilter())

    logger.handlers = [handler]
    logger.propagate = True


def _truncate(value, limit: int = 500) -> str:
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    return text if len(text) <= limit else text[:limit] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str] = None,
    company_id: Optional[int] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
):
    """Log a named event with tenant fields; extra values are stringified and truncated."""
    logger = logging.getLogger("agenda")
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    fields: Dict[str, object] = {
        "request_id": request_id or get_request_id(),
        "company_id": company_id if company_id is not None else get_company_id(),
    }
    if event_type:
        fields["event_type"] = event_type
    if error_code:
        fields["error_code"] = error_code
    for key, value in (extra or {}).items():
        fields[key] = _truncate(value)

    getattr(logger, level, logger.info)(msg, extra=fields)
