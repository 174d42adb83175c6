"""Structured logging with structlog.

Request handlers and the leaderboard cache log through structlog; the
service layer and the arq worker use stdlib ``logging``. Both end up in the
same renderer through ``ProcessorFormatter``, so a deployment sees one
stream of JSON lines carrying the same ``request_id``.
"""

import logging

import structlog

from pglms.config import Settings

# Chatty at INFO, never below WARNING.
_QUIET_LOGGERS = ("sqlalchemy.engine", "arq.worker", "httpx")


def _service_fields(environment: str, version: str) -> structlog.types.Processor:
    def add_fields(_logger: object, _method: str, event_dict: dict) -> dict:
        event_dict.setdefault("service", "pglms-gamification")
        event_dict.setdefault("env", environment)
        event_dict.setdefault("version", version)
        return event_dict

    return add_fields


def setup_logging(settings: Settings) -> None:
    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _service_fields(settings.environment, settings.app_version),
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                renderer,
            ],
        )
    )

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
