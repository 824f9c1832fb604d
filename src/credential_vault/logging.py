"""Logging configuration for Credential Vault."""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from credential_vault.config import Settings, get_settings
from credential_vault.security.masking import mask_secret

# Event-dict keys whose values are always masked before rendering.
SENSITIVE_LOG_KEYS = frozenset(
    {
        "token",
        "access_token",
        "refresh_token",
        "authorization",
        "api_key",
        "secret",
        "client_secret",
        "password",
        "plaintext",
        "store_encryption_key",
        "app_secret",
    }
)


def mask_sensitive_fields(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Structlog processor that masks secret-bearing fields in place."""
    for key in event_dict.keys() & SENSITIVE_LOG_KEYS:
        value = event_dict[key]
        event_dict[key] = mask_secret(value if isinstance(value, str) else None)
    return event_dict


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structured logging with console and file outputs."""
    settings = settings or get_settings()
    log_level = settings.log_level_value
    log_to_file = settings.log_to_file

    if log_to_file:
        try:
            Path(settings.log_directory).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"Warning: Could not create log directory: {e}", file=sys.stderr)
            log_to_file = False

    # setup_logging may run more than once per process
    for handler in list(logging.root.handlers):
        logging.root.removeHandler(handler)
    logging.root.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    logging.root.addHandler(console_handler)

    file_handler = None
    if log_to_file:
        try:
            file_handler = RotatingFileHandler(
                filename=settings.log_file_path,
                maxBytes=settings.log_file_max_bytes,
                backupCount=settings.log_file_backup_count,
                encoding="utf-8",
            )
            file_handler.setLevel(log_level)
            logging.root.addHandler(file_handler)
        except OSError as e:
            print(f"Warning: Could not setup file logging: {e}", file=sys.stderr)
            file_handler = None

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            mask_sensitive_fields,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Human-readable output only in development
    console_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            (
                structlog.dev.ConsoleRenderer(colors=True)  # type: ignore[list-item]
                if settings.is_development
                else structlog.processors.JSONRenderer()
            ),
        ]
    )
    console_handler.setFormatter(console_formatter)

    # Rotated files are machine-read
    if file_handler:
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.processors.JSONRenderer(),
                ]
            )
        )

    logging.getLogger("asyncpg").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
