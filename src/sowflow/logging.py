"""Structured logging configuration for Sowflow.

This module configures structlog with support for:
- JSON and console output formats
- File rotation based on size
- Project context binding (name, type, branch) for every log line

The logging system integrates structlog with Python's stdlib logging
for handlers (file rotation), while using structlog exclusively for
actual log emission.

Example usage:
    from sowflow.config import LoggingConfig
    from sowflow.logging import setup_logging, get_logger, bind_project_context

    setup_logging(LoggingConfig(level="INFO", format="json"))

    logger = get_logger(__name__)
    bind_project_context(name="add-auth", project_type="standard", branch="feat/auth")
    logger.info("transition_fired", trigger="planning_complete")
"""

from __future__ import annotations

import logging
import logging.handlers
import sys

import structlog

from sowflow.config import LoggingConfig

_PROJECT_KEYS = ("project", "project_type", "branch")


def bind_project_context(name: str, project_type: str, branch: str) -> None:
    """Bind the active project to all subsequent logs in this context.

    Args:
        name: Project name
        project_type: Project type name
        branch: Git branch the project is bound to
    """
    structlog.contextvars.bind_contextvars(
        project=name, project_type=project_type, branch=branch
    )


def clear_project_context() -> None:
    """Remove the project keys bound by bind_project_context."""
    structlog.contextvars.unbind_contextvars(*_PROJECT_KEYS)


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog with the given configuration.

    Log lines go to stderr (or a rotating file when config.file is set) so
    they never mix with command output written to stdout.

    Args:
        config: Logging configuration from SowflowConfig
    """
    log_level = getattr(logging, config.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler: logging.Handler
    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            filename=config.file,
            maxBytes=config.rotation_size_mb * 1024 * 1024,
            backupCount=config.retention_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler(sys.stderr)

    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    if config.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            # Project context from bind_project_context
            structlog.contextvars.merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Configured structlog BoundLogger instance
    """
    return structlog.get_logger(name)
