"""
Structured logging setup for entry points.

Library modules log through logging.getLogger(__name__); scripts call
configure_logging() once. A structlog ProcessorFormatter on the root
handler renders both stdlib and structlog records, so the bound run id
appears in every line.
"""

import logging
import uuid

import structlog

from core.config import get_settings

HANDLER_NAME = "structlog"


def configure_logging(level: str | None = None) -> str:
    """
    Configure structlog over stdlib logging and bind a run id.

    Parameters
    ----------
    level : str, optional
        Logging level name; defaults to settings.log_level

    Returns
    -------
    str
        Run id bound into the logging context
    """
    level = (level or get_settings().log_level).upper()

    # Applied to structlog events and to records from stdlib loggers alike
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if level == "DEBUG":
        render = [structlog.dev.ConsoleRenderer()]
    else:
        render = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *render,
        ],
    )

    handler = logging.StreamHandler()
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in root.handlers[:]:
        if existing.get_name() == HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level))

    # Unique id per run for log traceability
    run_id = str(uuid.uuid4())[:8]
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(run_id=run_id)
    return run_id
