"""Package logging for the Zigbee2MQTT bridge.

Every module logs through ``get_logger(__name__)``. Handlers live on the
``z2m_bridge`` package logger only; module loggers stay at NOTSET and
propagate to it, so the debug switch is a single level change.

Records are stamped with the active correlation id by ``CorrelationFilter``
and carry ``extra=`` context as ``record.extra_data``. Output goes to a
human-readable stream or file, a JSON-lines file, or both.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping, MutableMapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal, cast, override

from z2m_bridge.correlation import get_correlation_id

__all__ = [
    "PACKAGE_LOGGER_NAME",
    "BridgeLogger",
    "CorrelationFilter",
    "HumanReadableFormatter",
    "JSONFormatter",
    "configure_logging",
    "get_logger",
    "set_package_debug",
]

PACKAGE_LOGGER_NAME = "z2m_bridge"

type LogFormat = Literal["human", "json", "both"]

_NO_CORRELATION = "[------------]"


def _correlation_tag(record: logging.LogRecord) -> str:
    correlation_id = getattr(record, "correlation_id", None) or get_correlation_id()
    # "msg-"/"job-" prefix plus 8 hex chars
    return f"[{correlation_id[:12]}]" if correlation_id else _NO_CORRELATION


def _context_of(record: logging.LogRecord) -> dict[str, object]:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping) and extra_data:
        return dict(cast("Mapping[str, object]", extra_data))
    return {}


class CorrelationFilter(logging.Filter):
    """Copies the current correlation id onto each record as it is emitted."""

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "correlation_id", None):
            record.correlation_id = get_correlation_id()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "where": f"{record.module}:{record.lineno}",
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        }
        context = _context_of(record)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``time LEVEL [module:line] [correlation] > message | key=value``"""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_tag)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        record.correlation_tag = _correlation_tag(record)
        line = super().format(record)
        context = _context_of(record)
        if context:
            line += " | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return line


class BridgeLogger(logging.LoggerAdapter[logging.Logger]):
    """Adapter that accepts a plain mapping as ``extra=`` and files it under ``extra_data``."""

    def __init__(self, name: str) -> None:
        super().__init__(logging.getLogger(name))

    @override
    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = kwargs.pop("extra", None)
        if extra:
            kwargs["extra"] = {"extra_data": dict(extra)}
        return msg, kwargs


def _human_handler(target: str) -> logging.Handler:
    if target == "stdout":
        return logging.StreamHandler(sys.stdout)
    if target == "stderr":
        return logging.StreamHandler(sys.stderr)
    path = Path(target).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a")


def _json_handler(target: str | Path) -> logging.Handler:
    path = Path(target).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a")


def configure_logging(
    log_format: LogFormat | str = "human",
    json_file: str | Path | None = None,
    human_output: str = "stdout",
    debug: bool = False,
) -> logging.Logger:
    """(Re)install the package handlers.

    A JSON file that cannot be opened is skipped; a human log file that
    cannot be opened falls back to stderr. Both failures are logged once
    the remaining handlers are in place.
    """
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    level = logging.DEBUG if debug else logging.INFO
    package_logger.setLevel(level)
    failures: list[str] = []
    handlers: list[logging.Handler] = []

    if log_format in ("human", "both"):
        try:
            handler = _human_handler(human_output or "stdout")
        except OSError as exc:
            failures.append(f"human log {human_output}: {exc}")
            handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(HumanReadableFormatter())
        handlers.append(handler)

    if log_format in ("json", "both") and json_file:
        try:
            handler = _json_handler(json_file)
        except OSError as exc:
            failures.append(f"JSON log {json_file}: {exc}")
        else:
            handler.setFormatter(JSONFormatter())
            handlers.append(handler)

    for handler in handlers:
        handler.setLevel(level)
        handler.addFilter(CorrelationFilter())
        package_logger.addHandler(handler)

    for failure in failures:
        package_logger.warning("logging: cannot open %s", failure)
    return package_logger


def set_package_debug(enabled: bool) -> None:
    """Switch the package logger and its handlers between DEBUG and INFO."""
    level = logging.DEBUG if enabled else logging.INFO
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    package_logger.setLevel(level)
    for handler in package_logger.handlers:
        handler.setLevel(level)


def get_logger(name: str) -> BridgeLogger:
    """Return a logger for ``name``, configuring the package from the environment on first use."""
    if not logging.getLogger(PACKAGE_LOGGER_NAME).handlers:
        from z2m_bridge.const import Z2M_DEBUG, Z2M_LOG_FORMAT, Z2M_LOG_HUMAN_OUTPUT, Z2M_LOG_JSON_FILE

        _ = configure_logging(Z2M_LOG_FORMAT, Z2M_LOG_JSON_FILE, Z2M_LOG_HUMAN_OUTPUT, Z2M_DEBUG)
    return BridgeLogger(name)
