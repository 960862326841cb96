"""
structlog configuration shared by the API process and the job worker.

Every log line passes through ``redact_secrets`` before rendering, so a
handler that accidentally binds key material never writes it out.
"""

import sys
import logging
from typing import Any, Optional
from pathlib import Path

import structlog
from rich.console import Console
from rich.logging import RichHandler

from .config import settings


REDACTED = "[REDACTED]"
_SENSITIVE_MARKERS = ("private_key", "privatekey", "secret", "mnemonic")


def redact_secrets(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Replace any value whose key looks like signing material."""
    for key in list(event_dict.keys()):
        lowered = key.lower()
        if any(marker in lowered for marker in _SENSITIVE_MARKERS):
            event_dict[key] = REDACTED
    return event_dict


def setup_logging(log_file: Optional[str] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_file: Optional path to an extra log file; overrides LOG_FILE
    """
    logging.getLogger().handlers.clear()

    timestamper = structlog.processors.TimeStamper(fmt="ISO")

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        redact_secrets,
        timestamper,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers = []
    level = getattr(logging, settings.log_level)

    # Console handler with Rich for development
    if settings.is_development and settings.log_format != "json":
        console = Console(file=sys.stderr)
        rich_handler = RichHandler(
            console=console,
            show_time=True,
            show_path=True,
            rich_tracebacks=True,
            # Locals can hold key material fetched from the KMS
            tracebacks_show_locals=False
        )
        rich_handler.setLevel(level)
        handlers.append(rich_handler)
    else:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setLevel(level)
        stream_handler.setFormatter(_build_formatter())
        handlers.append(stream_handler)

    if log_file or settings.log_file:
        file_path = Path(log_file or settings.log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(file_path)
        file_handler.setLevel(level)
        file_handler.setFormatter(_build_formatter())
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=True
    )

    # Client libraries log every request at INFO
    for noisy in ("uvicorn", "asyncio", "sqlalchemy.engine", "web3", "aio_pika", "aiormq"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _build_formatter() -> logging.Formatter:
    if settings.log_format == "json":
        return logging.Formatter('%(message)s')
    return logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
