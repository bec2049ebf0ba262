"""structlog configuration for skill diagnostics.

Every diagnostic line goes to stderr (and optionally a file) so that the
JSON a skill prints on stdout is never corrupted.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

# ---------------------------------------------------------------------------
# structlog configuration
# ---------------------------------------------------------------------------


_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def configure_logging(
    level: str = "WARNING",
    fmt: str = "console",
    log_file: str | Path | None = None,
    verbose: bool = False,
) -> None:
    """Configure structlog for the application.

    Sets up structlog with shared processors and a format-specific
    renderer. Configures the stdlib logging root to respect the given
    level and optionally adds a file handler.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Output format: ``"console"`` for human-readable or
            ``"json"`` for machine-parseable.
        log_file: Optional file path for log output (in addition to stderr).
        verbose: Lower the effective level to INFO so retry and pagination
            progress becomes visible.

    Raises:
        ValueError: If ``level`` is not a recognized log level.
    """
    level_upper = level.upper()
    if level_upper not in _VALID_LEVELS:
        msg = f"Invalid log level: {level!r}. Must be one of {sorted(_VALID_LEVELS)}"
        raise ValueError(msg)

    numeric_level = getattr(logging, level_upper)
    if verbose:
        numeric_level = min(numeric_level, logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: structlog.types.Processor
    if fmt == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers to avoid duplicates on re-configuration
    root_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(numeric_level)
    root_logger.addHandler(stderr_handler)

    if log_file:
        file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
        file_handler.setLevel(numeric_level)
        root_logger.addHandler(file_handler)

    # httpx logs every request at INFO; keep it out of verbose skill output
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    for handler in root_logger.handlers:
        handler.setFormatter(formatter)


# ---------------------------------------------------------------------------
# Operation logging context manager
# ---------------------------------------------------------------------------


@contextmanager
def skill_logging_context(
    skill: str,
    operation: str,
    **extra: Any,
) -> Iterator[structlog.stdlib.BoundLogger]:
    """Bind skill and operation names to every log entry in the block.

    Logs operation start and end at debug level and any escaping exception
    at error level, then re-raises it.

    Args:
        skill: Skill name (e.g. ``"boulevard"``).
        operation: Operation name (e.g. ``"list"``).
        **extra: Additional key-value pairs to bind.

    Yields:
        A bound structlog logger with the skill context.

    Example::

        with skill_logging_context("boulevard", "diff-services") as log:
            log.info("fetching_environment", env="prod")
    """
    structlog.contextvars.bind_contextvars(skill=skill, operation=operation, **extra)

    log: structlog.stdlib.BoundLogger = structlog.get_logger(skill)
    log.debug("operation_start")

    try:
        yield log
    except Exception as exc:
        log.error("operation_failed", error=str(exc), error_type=type(exc).__name__)
        raise
    finally:
        log.debug("operation_end")
        structlog.contextvars.unbind_contextvars("skill", "operation", *extra.keys())
