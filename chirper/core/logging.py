"""Structlog configuration with console and file output.

Configures structlog for structured logging with:
- Console output (colored key-value or JSON)
- Rotating JSON file output, plus a separate error log
- Request context injection via contextvars
- Masking of tokens and other secrets
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import EventDict, Processor

from chirper.core.context import get_context


if TYPE_CHECKING:
    from chirper.config.settings import Settings


# Minimum length for partial masking (show first 2 and last 2 chars)
_MIN_MASK_LENGTH = 4

SENSITIVE_KEYS = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "authorization",
        "credentials",
    }
)


def add_context_processor(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add request context (request_id, user_id, trace_id) to log events."""
    event_dict.update(get_context())
    return event_dict


def _mask(key: str, value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _mask(k, v) for k, v in value.items()}
    if isinstance(value, str) and any(s in key.lower() for s in SENSITIVE_KEYS):
        if len(value) > _MIN_MASK_LENGTH:
            return value[:2] + "*" * (len(value) - _MIN_MASK_LENGTH) + value[-2:]
        return "***"
    return value


def filter_sensitive_data(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Mask bearer tokens, secrets and credentials in log events."""
    return {k: _mask(k, v) for k, v in event_dict.items()}


def _shared_processors(settings: "Settings") -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_processor,
        filter_sensitive_data,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.log_include_caller_info:
        processors.append(
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.FILENAME,
                    structlog.processors.CallsiteParameter.LINENO,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                ]
            )
        )
    return processors


def _json_file_handler(
    path: Path,
    settings: "Settings",
    level: str,
    pre_chain: list[Processor],
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=settings.log_file_max_bytes,
        backupCount=settings.log_file_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=pre_chain,
        )
    )
    return handler


def configure_structlog(
    settings: "Settings",
    log_dir: Path | str | None = None,
) -> None:
    """Configure structlog with console and file output.

    Args:
        settings: Application settings.
        log_dir: Directory for log files. Defaults to ./logs.
    """
    log_level = settings.log_level
    log_dir = Path(log_dir) if log_dir is not None else Path("logs")
    log_dir.mkdir(parents=True, exist_ok=True)

    shared_processors = _shared_processors(settings)

    if settings.log_format == "json":
        final_processor: Processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=final_processor,
            foreign_pre_chain=shared_processors,
        )
    )
    root_logger.addHandler(console_handler)

    # File output is always JSON (for log analysis)
    root_logger.addHandler(
        _json_file_handler(
            log_dir / f"{settings.app_name}.log",
            settings,
            log_level,
            shared_processors,
        )
    )
    root_logger.addHandler(
        _json_file_handler(
            log_dir / f"{settings.app_name}.error.log",
            settings,
            "ERROR",
            shared_processors,
        )
    )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Silence noisy loggers
    for noisy in ("uvicorn.access", "uvicorn.error", "cassandra", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance."""
    return structlog.get_logger(name)
