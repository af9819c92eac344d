from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

import structlog
from structlog.typing import EventDict, Processor

from video_digest.config import DigestSettings

LOGGER_NAME = "video_digest"
LOG_FILE_NAME = "video-digest.log"
TELEMETRY_LOG_FILE_NAME = "video-digest-telemetry.log"


def configure_application_logging(
    settings: DigestSettings,
    *,
    console_stream: TextIO | None = None,
) -> Path:
    """
    Route `video_digest.*` records to the operator console and a JSON log file.

    The console carries the per-video ranking lines and run status; the file
    keeps everything at DEBUG with record metadata. Telemetry events go to a
    separate file only.
    """
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = settings.log_dir / LOG_FILE_NAME
    stream = console_stream if console_stream is not None else sys.stdout

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler(stream=stream)
    console_handler.setLevel(_resolve_log_level(settings.log_level))
    console_handler.setFormatter(
        _processor_formatter(structlog.dev.ConsoleRenderer(colors=_supports_color(stream)))
    )
    _install_handlers(
        LOGGER_NAME,
        level=logging.DEBUG,
        handlers=[console_handler, _json_file_handler(log_file, logging.DEBUG)],
    )
    _install_handlers(
        f"{LOGGER_NAME}.telemetry",
        level=logging.INFO,
        handlers=[_json_file_handler(settings.log_dir / TELEMETRY_LOG_FILE_NAME, logging.INFO)],
    )

    logging.getLogger(LOGGER_NAME).debug(
        "logging configured console_level=%s path=%s",
        settings.log_level.upper(),
        log_file,
    )
    return log_file


def _install_handlers(name: str, *, level: int, handlers: list[logging.Handler]) -> None:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)


def _json_file_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(
        _processor_formatter(
            structlog.processors.JSONRenderer(sort_keys=True),
            extra=[_add_record_metadata, structlog.processors.format_exc_info],
        )
    )
    return handler


def _processor_formatter(
    renderer: Processor,
    *,
    extra: list[Processor] | None = None,
) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        ],
        processors=[
            *(extra or []),
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def _resolve_log_level(raw_level: str) -> int:
    resolved = getattr(logging, raw_level.strip().upper(), None)
    if isinstance(resolved, int):
        return resolved
    return logging.INFO


def _add_record_metadata(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict["pathname"] = record.pathname
        event_dict["lineno"] = record.lineno
        event_dict["func_name"] = record.funcName
    return event_dict


def _supports_color(stream: object) -> bool:
    isatty = getattr(stream, "isatty", None)
    if callable(isatty):
        try:
            return bool(isatty())
        except Exception:
            return False
    return False
