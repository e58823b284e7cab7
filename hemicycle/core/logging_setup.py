"""structlog over stdlib logging for the ingestion worker.

Console output in local environments, one JSON object per line elsewhere.
Third-party loggers that are chatty at INFO (every httpx request, every arq
poll) are raised to WARNING so that ``fetch.*`` and ``ingest.*`` events stay
readable during a cycle.
"""

import logging.config

import structlog
from structlog.dev import ConsoleRenderer

_LOCAL_ENVIRONMENTS = frozenset({"", "local", "development", "dev"})
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncpg")

_CONFIGURED = False


def configure_logging(log_level: str, environment: str = "local") -> None:
    """Configure structlog once per process; later calls are no-ops."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if environment.lower() in _LOCAL_ENVIRONMENTS:
        # Accented names and themes render as-is on a terminal.
        renderer = ConsoleRenderer(colors=True, pad_event=40)
    else:
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "processors": [structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
                    "foreign_pre_chain": shared_processors,
                },
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "structured",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {"handlers": ["stdout"], "level": log_level},
            "loggers": {
                **{name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
                "arq": {"level": "INFO"},
            },
        }
    )

    _CONFIGURED = True
