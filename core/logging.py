from __future__ import annotations

import logging
from pathlib import Path

import structlog
from structlog.types import Processor

from core.config import LoggingCfg


def _build_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_dir: str | Path | None = None,
) -> structlog.stdlib.BoundLogger:
    """Configure structlog over stdlib logging.

    Console rendering goes to stderr. With ``json_format`` and a ``log_dir``,
    NDJSON lines are written into ``log_dir/app.ndjson`` instead.
    """

    handler: logging.Handler
    renderer: Processor
    if json_format and log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path / "app.ndjson", encoding="utf-8")
        renderer = structlog.processors.JSONRenderer()
    else:
        handler = logging.StreamHandler()
        renderer = (
            structlog.processors.JSONRenderer()
            if json_format
            else structlog.dev.ConsoleRenderer(colors=False)
        )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
        ],
    )
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level.upper())
    root_logger.addHandler(handler)

    structlog.configure(
        processors=_build_processors(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.stdlib.get_logger()


def setup_logging_from_config(cfg: LoggingCfg) -> structlog.stdlib.BoundLogger:
    return setup_logging(cfg.level, cfg.json_format, cfg.log_dir)
