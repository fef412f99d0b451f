"""
Structured logging for the gateway.

structlog renders every line; records from the stdlib ``logging`` module
(core modules, uvicorn, httpx) pass through the same processor chain, so the
request id bound by the request middleware appears on all of them.
"""

import logging
import sys
from typing import List, Optional

import structlog

from .config import Settings, settings as default_settings

# Libraries that log every connection at INFO.
NOISY_LOGGERS = ("uvicorn.access", "httpcore", "httpx")


def _shared_processors(json_output: bool) -> List[structlog.types.Processor]:
    processors: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if json_output:
        processors.append(structlog.processors.format_exc_info)
    return processors


def setup_logging(log_level: Optional[str] = None, config: Optional[Settings] = None) -> None:
    """Install structlog and route stdlib logging through it.

    JSON lines everywhere except non-production runs at DEBUG, which get
    the colored console renderer.

    Args:
        log_level: Override for ``config.log_level``
        config: Settings to read environment and level from
    """
    config = config or default_settings
    level = getattr(logging, (log_level or config.log_level).upper(), logging.INFO)
    json_output = config.is_production or level != logging.DEBUG

    shared = _shared_processors(json_output)
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
